from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from pathlib import Path

# Find the project root (where .env is located)
PROJECT_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(PROJECT_DIR / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    PROJECT_NAME: str = "Trial Eligibility Matcher"
    LOG_LEVEL: str = "INFO"

    # LLM Settings - supports multiple keys for rate limit fallback
    # Fallback order: Groq 1 -> Gemini 1 -> Gemini 2 -> Groq 2 (last resort)
    GROQ_API_KEY: Optional[str] = None
    GROQ_API_KEY_2: Optional[str] = None  # Last resort backup
    GROQ_MODEL: str = "llama-3.1-8b-instant"

    # Google Gemini
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_API_KEY_2: Optional[str] = None  # Gemini backup
    GEMINI_MODEL: str = "gemini-2.0-flash"

    LLM_TEMPERATURE: float = 0.3
    LLM_MAX_TOKENS: int = 2048

    # Batch ranking
    MAX_TRIALS_PER_BATCH: int = 50
    DEFAULT_RESULT_LIMIT: int = 20
    DEFAULT_MIN_SCORE: int = 0

    # Free-text eligibility analysis
    MIN_CRITERIA_TEXT_LENGTH: int = 10
    MAX_CRITERIA_TEXT_CHARS: int = 2000
    MAX_AI_CRITERIA: int = 8


settings = Settings()
