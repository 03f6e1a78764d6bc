from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from specforge.models.assessment import HospitalAssessment
from specforge.models.metrics import ComputedMetrics
from specforge.models.questionnaire import RequirementSet

SPECIFICATION_SECTIONS: tuple[str, ...] = (
    "infrastructure",
    "integration",
    "security",
    "compliance",
    "deployment",
    "monitoring",
    "backup_recovery",
    "implementation_timeline",
    "resource_allocation",
    "risk_mitigation",
)

SUPPLEMENTARY_SECTIONS: tuple[str, ...] = ("testing_strategy", "training_plan")

Approach = Literal["phased", "standard", "accelerated"]


class PhaseStaffing(BaseModel):
    model_config = ConfigDict(frozen=True)

    technical: int
    project: int
    clinical: int

    @property
    def total(self) -> int:
        return self.technical + self.project + self.clinical


class ImplementationPhase(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    start_week: int
    duration_weeks: int
    staffing: PhaseStaffing
    activities: list[str] = Field(default_factory=list)


class ResourceOptimization(BaseModel):
    model_config = ConfigDict(frozen=True)

    available_staff: int | None
    peak_demand: int
    utilization: float | None
    shortfall: int
    strategy: str


class ImplementationPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    approach: Approach
    phases: list[ImplementationPhase]
    resource_optimization: ResourceOptimization
    complexity_multiplier: float
    total_weeks: int
    risk_adjusted_weeks: int
    target_weeks: int | None = None


class SpecificationMapping(BaseModel):
    """Intermediate output of the map stage: sections plus the context they came from."""

    model_config = ConfigDict(frozen=True)

    requirements: RequirementSet
    assessment: HospitalAssessment
    metrics: ComputedMetrics
    template: str
    vendor_overlay: str | None
    resource_multiplier: float
    implementation_plan: ImplementationPlan
    sections: dict[str, dict[str, Any]]
    requirement_trace: dict[str, list[str]]
    quality_score: float


class RefinementSuggestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    section: str
    field: str
    recommended_value: Any
    reason: str
    priority: Literal["high", "medium", "low"]


class Specification(BaseModel):
    """Generated technical specification.

    Never edited in place: refinement and optimization return new copies.
    """

    model_config = ConfigDict(frozen=True)

    metadata: dict[str, Any] = Field(default_factory=dict)
    infrastructure: dict[str, Any] = Field(default_factory=dict)
    integration: dict[str, Any] = Field(default_factory=dict)
    security: dict[str, Any] = Field(default_factory=dict)
    compliance: dict[str, Any] = Field(default_factory=dict)
    deployment: dict[str, Any] = Field(default_factory=dict)
    monitoring: dict[str, Any] = Field(default_factory=dict)
    backup_recovery: dict[str, Any] = Field(default_factory=dict)
    implementation_timeline: dict[str, Any] = Field(default_factory=dict)
    resource_allocation: dict[str, Any] = Field(default_factory=dict)
    risk_mitigation: dict[str, Any] = Field(default_factory=dict)
    testing_strategy: dict[str, Any] = Field(default_factory=dict)
    training_plan: dict[str, Any] = Field(default_factory=dict)
    requirement_trace: dict[str, list[str]] = Field(default_factory=dict)
    refinements: list[dict[str, Any]] = Field(default_factory=list)
    quality_score: float = 0.0

    def section(self, name: str) -> dict[str, Any]:
        if name not in SPECIFICATION_SECTIONS and name not in SUPPLEMENTARY_SECTIONS:
            raise KeyError(name)
        return getattr(self, name)

    def present_sections(self) -> list[str]:
        return [name for name in SPECIFICATION_SECTIONS if getattr(self, name)]
