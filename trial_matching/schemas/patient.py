from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List


class ProviderModel(BaseModel):
    """Base for records handed over by the profile and trial providers.

    Provider payloads are camelCase JSON; attributes are snake_case.
    Records are read-only snapshots for the duration of a matching pass.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


class PatientAddress(ProviderModel):
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class PatientDemographics(ProviderModel):
    id: str
    name: str = ""
    gender: Optional[str] = None
    birth_date: Optional[str] = None
    age: Optional[int] = Field(None, ge=0)
    address: Optional[PatientAddress] = None


class PatientCondition(ProviderModel):
    code: str = ""
    display: str
    system: Optional[str] = None
    clinical_status: Optional[str] = Field(None, description="active, inactive, resolved, ...")
    onset_date: Optional[str] = None
    recorded_date: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return (self.clinical_status or "").lower() == "active"


class PatientLabResult(ProviderModel):
    code: str = ""
    display: str
    value: Optional[float] = None
    unit: Optional[str] = None
    value_string: Optional[str] = None
    effective_date: Optional[str] = None
    interpretation: Optional[str] = None
    reference_range: Optional[str] = None

    def summary(self) -> str:
        """One-line rendering used in LLM prompts, e.g. 'HbA1c: 7.2 %'."""
        if self.value is not None:
            shown = f"{self.value:g}"
        elif self.value_string is not None:
            shown = self.value_string
        else:
            shown = "N/A"
        return f"{self.display}: {shown} {self.unit or ''}"


class PatientMedication(ProviderModel):
    code: str = ""
    display: str
    status: Optional[str] = None
    authored_on: Optional[str] = None
    dosage_instruction: Optional[str] = None


class PatientProfile(ProviderModel):
    """Normalized patient profile supplied by the Patient Profile Provider."""
    demographics: PatientDemographics
    conditions: List[PatientCondition] = Field(default_factory=list)
    lab_results: List[PatientLabResult] = Field(default_factory=list)
    medications: List[PatientMedication] = Field(default_factory=list)
    last_updated: Optional[str] = None
    data_source: Optional[str] = None

    @field_validator("conditions", "lab_results", "medications", mode="before")
    @classmethod
    def _none_as_empty(cls, value):
        return [] if value is None else value

    @property
    def active_conditions(self) -> List[PatientCondition]:
        return [c for c in self.conditions if c.is_active]
