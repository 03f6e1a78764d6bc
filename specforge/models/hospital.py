from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

HospitalType = Literal["academic", "community", "specialty", "critical_access", "multi_site", "general"]

HOSPITAL_TYPES: tuple[str, ...] = (
    "academic",
    "community",
    "specialty",
    "critical_access",
    "multi_site",
    "general",
)


class HospitalProfile(BaseModel):
    """Normalized hospital identity and technology landscape.

    Produced once by the questionnaire processor and shared read-only by every
    downstream stage.
    """

    model_config = ConfigDict(frozen=True)

    hospital_id: str
    name: str
    type: HospitalType
    bed_count: int = Field(ge=1, le=5000)
    annual_volume: int | None = None
    location: str | None = None  # "Urban", "Suburban", "Rural", "Critical Access"
    primary_ehr: str | None = None
    additional_ehrs: tuple[str, ...] = ()
    clinical_systems: tuple[str, ...] = ()
    compliance_frameworks: tuple[str, ...] = ()
    interoperability_standards: tuple[str, ...] = ()
    integration_needs: tuple[str, ...] = ()
    timeline: str | None = None
    deployment_preference: str | None = None
    implementation_budget: float | None = None
    it_staff_count: int | None = None
    technology_maturity: float = Field(0.0, ge=0.0, le=10.0)

    @property
    def ehr_vendors(self) -> tuple[str, ...]:
        vendors = (self.primary_ehr,) if self.primary_ehr else ()
        return vendors + self.additional_ehrs

    @property
    def is_large(self) -> bool:
        return self.bed_count > 500

    @property
    def is_small(self) -> bool:
        return self.bed_count < 100
