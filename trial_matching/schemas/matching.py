from pydantic import Field, field_validator
from typing import Optional, List
from enum import Enum

from .patient import ProviderModel
from .trial import ClinicalTrial


class CriterionStatus(str, Enum):
    """Outcome of evaluating one eligibility rule for one patient."""
    MET = "met"
    NOT_MET = "not_met"
    MISSING_DATA = "missing_data"
    UNKNOWN = "unknown"


class CriterionCategory(str, Enum):
    AGE = "age"
    SEX = "sex"
    CONDITION = "condition"
    MEDICATION = "medication"
    LAB = "lab"
    INCLUSION = "inclusion"
    EXCLUSION = "exclusion"
    OTHER = "other"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class MatchTier(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    MODERATE = "moderate"
    LOW = "low"
    POOR = "poor"


# Axes where a clear mismatch dominates the score
CORE_CATEGORIES = frozenset({
    CriterionCategory.AGE,
    CriterionCategory.SEX,
    CriterionCategory.CONDITION,
})


class EligibilityCriterion(ProviderModel):
    """A single eligibility rule with its matching status."""
    id: str
    name: str
    description: Optional[str] = None
    category: CriterionCategory = CriterionCategory.OTHER
    status: CriterionStatus
    confidence: ConfidenceLevel
    patient_value: Optional[str] = None
    required_value: Optional[str] = None
    ai_reasoning: Optional[str] = Field(None, description="Rationale for the assigned status")

    @property
    def is_core(self) -> bool:
        return self.category in CORE_CATEGORIES


class ConditionMatchResult(ProviderModel):
    """Whether one trial-targeted condition corresponds to a patient condition."""
    trial_condition: str
    patient_condition: Optional[str] = None
    is_match: bool
    confidence: ConfidenceLevel = ConfidenceLevel.LOW
    reasoning: Optional[str] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _lowercase_confidence(cls, value):
        return value.lower() if isinstance(value, str) else value


class MatchScore(ProviderModel):
    """Aggregator output for one criterion list."""
    raw_score: int = Field(..., ge=0, le=100)
    final_score: int = Field(..., ge=0, le=100)
    hard_disqualifier: bool = False


class TrialMatchResult(ProviderModel):
    """Complete match result for a trial against a patient profile."""
    nct_id: str
    brief_title: str
    trial: Optional[ClinicalTrial] = None
    match_score: int = Field(..., ge=0, le=100)
    raw_score: int = Field(..., ge=0, le=100)
    hard_disqualifier: bool = False
    match_tier: MatchTier
    total_criteria: int
    met_criteria: int
    not_met_criteria: int
    missing_data_criteria: int
    unknown_criteria: int
    criteria: List[EligibilityCriterion] = Field(default_factory=list)
    matched_conditions: List[ConditionMatchResult] = Field(default_factory=list)

    @classmethod
    def build(
            cls,
            trial: ClinicalTrial,
            criteria: List[EligibilityCriterion],
            matched_conditions: List[ConditionMatchResult],
            score: MatchScore,
            tier: MatchTier
    ) -> "TrialMatchResult":
        """Assemble a result, deriving the per-status counts from the criteria."""
        def count(status: CriterionStatus) -> int:
            return sum(1 for c in criteria if c.status == status)

        return cls(
            nct_id=trial.nct_id,
            brief_title=trial.brief_title,
            trial=trial,
            match_score=score.final_score,
            raw_score=score.raw_score,
            hard_disqualifier=score.hard_disqualifier,
            match_tier=tier,
            total_criteria=len(criteria),
            met_criteria=count(CriterionStatus.MET),
            not_met_criteria=count(CriterionStatus.NOT_MET),
            missing_data_criteria=count(CriterionStatus.MISSING_DATA),
            unknown_criteria=count(CriterionStatus.UNKNOWN),
            criteria=list(criteria),
            matched_conditions=list(matched_conditions),
        )


class TrialMatchResponse(ProviderModel):
    """Ranked matches for one patient, as handed to the API layer."""
    matches: List[TrialMatchResult] = Field(default_factory=list)
    total_trials_analyzed: int = 0
    patient_conditions: List[str] = Field(default_factory=list)
    timestamp: str


# -----------------------------------------------------------------------------
# LLM response envelopes
# -----------------------------------------------------------------------------

class ConditionMatchResponse(ProviderModel):
    matches: List[ConditionMatchResult] = Field(..., min_length=1)


class ExtractedCriterion(ProviderModel):
    """Criterion as returned by the eligibility analysis model, before defaulting."""
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    patient_value: Optional[str] = None
    required_value: Optional[str] = None
    confidence: Optional[str] = None
    ai_reasoning: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _scalars_as_text(cls, value):
        # Models often answer "patientValue": 45 instead of "45"
        if isinstance(value, (int, float, bool)):
            return str(value)
        return value


class CriteriaExtractionResponse(ProviderModel):
    criteria: List[ExtractedCriterion] = Field(default_factory=list)
