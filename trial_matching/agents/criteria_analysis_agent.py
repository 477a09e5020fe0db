import json
import logging
from typing import Any, Dict, List, Optional

from .base_agent import BaseAgent, JSONGenerator
from ..core.config import settings
from ..schemas.patient import PatientProfile
from ..schemas.matching import (
    ConfidenceLevel,
    CriteriaExtractionResponse,
    CriterionCategory,
    CriterionStatus,
    EligibilityCriterion,
    ExtractedCriterion,
)
from ..services.llm_service import LLMResponseError

logger = logging.getLogger(__name__)


def _coerce_enum(enum_cls, value: Optional[str], default):
    """Map free-form model output onto an enum, falling back to default."""
    try:
        return enum_cls((value or "").strip().lower())
    except ValueError:
        return default


class CriteriaAnalysisAgent(BaseAgent):
    """
    Agent responsible for reading a trial's free-text eligibility passage
    and judging the key criteria against the patient profile.

    Sparse trials are common, so a missing or trivially short passage
    yields no criteria rather than an error. Any LLM failure also yields
    no criteria; the structured checks still score the trial.
    """

    def __init__(self, llm: Optional[JSONGenerator] = None):
        super().__init__(
            name="Criteria Analysis Agent",
            description="Extract and evaluate key eligibility criteria from free-text trial criteria.",
            llm=llm
        )

    def get_system_prompt(self) -> str:
        return f"""You are a medical eligibility screening assistant. Analyze trial eligibility criteria against a patient profile.

Extract the key eligibility criteria and determine for each if the patient meets it.

Return JSON:
{{
    "criteria": [
        {{
            "id": "unique_id",
            "name": "Short criterion name",
            "description": "What this criterion requires",
            "category": "inclusion|exclusion|other",
            "status": "met|not_met|missing_data|unknown",
            "patientValue": "Relevant patient data or null",
            "requiredValue": "What the trial requires",
            "confidence": "high|medium|low",
            "aiReasoning": "Brief explanation of why this status was assigned"
        }}
    ]
}}

Guidelines:
- Extract no more than {settings.MAX_AI_CRITERIA} key criteria
- "met" = patient clearly qualifies
- "not_met" = patient clearly disqualified
- "missing_data" = we don't have the data to determine
- "unknown" = criteria is ambiguous or requires clinical judgment
- Exclusion criteria: if patient has what's excluded, status = "not_met"
"""

    async def process(self, input_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Input:
            - criteria_text: Free-text eligibility passage (may be None)
            - patient_profile: PatientProfile

        Output:
            - criteria: List[EligibilityCriterion] (possibly empty)
        """
        criteria = await self.analyze(
            input_data.get("criteria_text"),
            input_data["patient_profile"]
        )
        return {"criteria": criteria}

    async def analyze(
            self,
            criteria_text: Optional[str],
            profile: PatientProfile
    ) -> List[EligibilityCriterion]:
        if not criteria_text or len(criteria_text) < settings.MIN_CRITERIA_TEXT_LENGTH:
            return []

        prompt = f"""PATIENT PROFILE:
{json.dumps(build_patient_summary(profile), indent=2)}

ELIGIBILITY CRITERIA TEXT:
{criteria_text[:settings.MAX_CRITERIA_TEXT_CHARS]}"""

        try:
            response = await self.generate_structured(prompt, CriteriaExtractionResponse)
        except LLMResponseError as e:
            logger.warning("Eligibility criteria analysis failed, skipping free-text criteria: %s", e)
            return []

        return [
            to_eligibility_criterion(raw, i)
            for i, raw in enumerate(response.criteria[:settings.MAX_AI_CRITERIA])
        ]


def build_patient_summary(profile: PatientProfile) -> Dict[str, Any]:
    """Bounded view of the profile sent along with the eligibility text."""
    return {
        "age": profile.demographics.age,
        "sex": profile.demographics.gender,
        "conditions": [c.display for c in profile.conditions[:10]],
        "medications": [m.display for m in profile.medications[:10]],
        "labResults": [lab.summary() for lab in profile.lab_results[:5]],
    }


def to_eligibility_criterion(raw: ExtractedCriterion, index: int) -> EligibilityCriterion:
    """Default whatever the model left out or got wrong."""
    return EligibilityCriterion(
        id=raw.id or f"criteria_{index}",
        name=raw.name or "Unknown Criterion",
        description=raw.description,
        category=_coerce_enum(CriterionCategory, raw.category, CriterionCategory.OTHER),
        status=_coerce_enum(CriterionStatus, raw.status, CriterionStatus.UNKNOWN),
        confidence=_coerce_enum(ConfidenceLevel, raw.confidence, ConfidenceLevel.LOW),
        patient_value=raw.patient_value,
        required_value=raw.required_value,
        ai_reasoning=raw.ai_reasoning,
    )
