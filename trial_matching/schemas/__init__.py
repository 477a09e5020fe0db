from .patient import (
    PatientProfile,
    PatientDemographics,
    PatientCondition,
    PatientLabResult,
    PatientMedication,
)
from .trial import ClinicalTrial, TrialEligibility
from .matching import (
    CriterionStatus,
    CriterionCategory,
    ConfidenceLevel,
    MatchTier,
    EligibilityCriterion,
    ConditionMatchResult,
    MatchScore,
    TrialMatchResult,
    TrialMatchResponse,
)
