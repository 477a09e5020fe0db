from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Protocol, Type, TypeVar

from pydantic import BaseModel

from ..services.llm_service import (
    LLMResponseError,
    llm_service,
    parse_json_response,
)

ModelT = TypeVar("ModelT", bound=BaseModel)


class JSONGenerator(Protocol):
    """The part of LLMService the agents depend on."""

    async def generate_json(self, prompt: str, system_prompt: Optional[str] = None) -> str:
        ...


class BaseAgent(ABC):
    """
    Common base for LLM-backed agents.

    Agents treat the model as a fallible classifier: every structured call
    either returns a validated model or raises LLMResponseError.
    """

    def __init__(self, name: str, description: str, llm: Optional[JSONGenerator] = None):
        self.name = name
        self.description = description
        self.llm = llm if llm is not None else llm_service

    @abstractmethod
    def get_system_prompt(self) -> str:
        ...

    @abstractmethod
    async def process(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def generate_structured(self, prompt: str, schema: Type[ModelT]) -> ModelT:
        """Ask the LLM for JSON and validate it against schema."""
        try:
            response = await self.llm.generate_json(prompt, self.get_system_prompt())
        except Exception as e:
            raise LLMResponseError(f"{self.name}: LLM call failed: {e}") from e

        return parse_json_response(response, schema)
