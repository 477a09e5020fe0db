from pydantic import Field, field_validator
from typing import Optional, List

from .patient import ProviderModel


class TrialEligibility(ProviderModel):
    """Eligibility block of a trial record, as served by ClinicalTrials.gov."""
    criteria: Optional[str] = Field(None, description="Free-text inclusion/exclusion passage")
    healthy_volunteers: Optional[bool] = None
    sex: Optional[str] = Field(None, description="'ALL', 'MALE' or 'FEMALE'")
    minimum_age: Optional[str] = Field(None, description="e.g. '18 Years'")
    maximum_age: Optional[str] = Field(None, description="e.g. '6 Months'")
    std_ages: Optional[List[str]] = None


class TrialIntervention(ProviderModel):
    type: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None


class ClinicalTrial(ProviderModel):
    """Trial record supplied by the Trial Catalog Provider."""
    nct_id: str = Field(..., min_length=1)
    brief_title: str = Field(..., min_length=1)
    official_title: Optional[str] = None
    brief_summary: Optional[str] = None
    overall_status: Optional[str] = None
    phases: List[str] = Field(default_factory=list)
    study_type: Optional[str] = None
    conditions: List[str] = Field(default_factory=list)
    interventions: List[TrialIntervention] = Field(default_factory=list)
    eligibility: Optional[TrialEligibility] = None

    @field_validator("phases", "conditions", "interventions", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return [] if value is None else value
