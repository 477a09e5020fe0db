"""
Structured Eligibility Rules

Deterministic checks against the structured eligibility fields of a
trial record (minimum/maximum age, sex, healthy volunteers). These run
without any LLM call and always produce exactly one criterion each.
"""

import re
from typing import Dict, List, Optional

from ..schemas.patient import PatientCondition
from ..schemas.matching import (
    ConfidenceLevel,
    CriterionCategory,
    CriterionStatus,
    EligibilityCriterion,
)


# =============================================================================
# AGE
# =============================================================================

# "18 Years", "6 Months", "2 Weeks", "10 Days"
AGE_PATTERN = re.compile(r"(\d+)\s*([a-zA-Z]*)")

# Divisor converting each unit to years
AGE_UNIT_DIVISORS: Dict[str, float] = {
    "year": 1,
    "month": 12,
    "week": 52,
    "day": 365,
}


def parse_age_string(age_str: Optional[str]) -> Optional[float]:
    """
    Parse a ClinicalTrials.gov age bound into years.

    Returns None when no number can be found, which callers treat as
    "no bound". An unrecognized unit is read as years.
    """
    if not age_str:
        return None

    match = AGE_PATTERN.search(age_str)
    if not match:
        return None

    value = int(match.group(1))
    unit = match.group(2).lower()

    for prefix, divisor in AGE_UNIT_DIVISORS.items():
        if unit.startswith(prefix):
            return value / divisor

    return float(value)


def _age_requirement(minimum_age: Optional[str], maximum_age: Optional[str]) -> str:
    if minimum_age and maximum_age:
        return f"{minimum_age} - {maximum_age}"
    if minimum_age:
        return f"≥ {minimum_age}"
    if maximum_age:
        return f"≤ {maximum_age}"
    return "Any age"


def match_age(
    patient_age: Optional[int],
    minimum_age: Optional[str] = None,
    maximum_age: Optional[str] = None
) -> EligibilityCriterion:
    """Match patient age against the trial's age bounds."""
    min_years = parse_age_string(minimum_age)
    max_years = parse_age_string(maximum_age)

    fields = dict(
        id="age",
        name="Age Requirement",
        category=CriterionCategory.AGE,
        confidence=ConfidenceLevel.HIGH,
        required_value=_age_requirement(minimum_age, maximum_age),
    )

    if patient_age is None:
        return EligibilityCriterion(
            status=CriterionStatus.MISSING_DATA,
            patient_value="Age not available",
            **fields
        )

    patient_value = f"{patient_age} years"

    if min_years is None and max_years is None:
        return EligibilityCriterion(
            status=CriterionStatus.MET,
            patient_value=patient_value,
            description="No age restrictions",
            **fields
        )

    meets_min = min_years is None or patient_age >= min_years
    meets_max = max_years is None or patient_age <= max_years

    if meets_min and meets_max:
        status = CriterionStatus.MET
        description = "Age within required range"
    elif not meets_min:
        status = CriterionStatus.NOT_MET
        description = f"Patient is younger than minimum age ({minimum_age})"
    else:
        status = CriterionStatus.NOT_MET
        description = f"Patient is older than maximum age ({maximum_age})"

    return EligibilityCriterion(
        status=status,
        patient_value=patient_value,
        description=description,
        **fields
    )


# =============================================================================
# SEX
# =============================================================================

SEX_SYNONYMS: Dict[str, str] = {
    "m": "male",
    "f": "female",
}


def normalize_sex(value: str) -> str:
    """Lowercase and expand single-letter codes ('M' -> 'male')."""
    value = value.strip().lower()
    return SEX_SYNONYMS.get(value, value)


def match_sex(
    patient_sex: Optional[str],
    required_sex: Optional[str] = None
) -> EligibilityCriterion:
    """Match patient sex against the trial's sex restriction."""
    fields = dict(
        id="sex",
        name="Sex Requirement",
        category=CriterionCategory.SEX,
        confidence=ConfidenceLevel.HIGH,
        required_value=required_sex or "All",
    )

    if not patient_sex:
        return EligibilityCriterion(
            status=CriterionStatus.MISSING_DATA,
            patient_value="Sex not specified",
            **fields
        )

    # "All" or absent means no restriction
    if not required_sex or required_sex.strip().lower() == "all":
        return EligibilityCriterion(
            status=CriterionStatus.MET,
            patient_value=patient_sex,
            description="No sex restrictions",
            **fields
        )

    if normalize_sex(patient_sex) == normalize_sex(required_sex):
        return EligibilityCriterion(
            status=CriterionStatus.MET,
            patient_value=patient_sex,
            **fields
        )

    return EligibilityCriterion(
        status=CriterionStatus.NOT_MET,
        patient_value=patient_sex,
        description=f"Trial requires {required_sex} participants",
        **fields
    )


# =============================================================================
# HEALTHY VOLUNTEERS
# =============================================================================

def match_healthy_volunteers(
    patient_conditions: List[PatientCondition],
    healthy_volunteers: Optional[bool] = None
) -> EligibilityCriterion:
    """
    Check the patient against the trial's healthy-volunteer flag.

    Confidence is medium because active/inactive tagging in health
    records is not always reliable.
    """
    if healthy_volunteers is True:
        required_value = "Accepts healthy volunteers"
    elif healthy_volunteers is False:
        required_value = "No healthy volunteers"
    else:
        required_value = "Not specified"

    fields = dict(
        id="healthy_volunteers",
        name="Healthy Volunteers",
        category=CriterionCategory.OTHER,
        confidence=ConfidenceLevel.MEDIUM,
        required_value=required_value,
    )

    # Trials open to healthy volunteers take anyone
    if healthy_volunteers is None or healthy_volunteers:
        return EligibilityCriterion(
            status=CriterionStatus.MET,
            description="Trial accepts participants with or without conditions",
            **fields
        )

    active_count = sum(1 for c in patient_conditions if c.is_active)

    if active_count > 0:
        return EligibilityCriterion(
            status=CriterionStatus.MET,
            patient_value=f"{active_count} active conditions",
            description="Patient has medical conditions as required",
            **fields
        )

    return EligibilityCriterion(
        status=CriterionStatus.NOT_MET,
        patient_value=f"{active_count} active conditions",
        description="Trial requires participants with medical conditions",
        **fields
    )
