from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from specforge.models.assessment import RiskAssessment, VendorCompatibility
from specforge.models.metrics import ComputedMetrics
from specforge.models.narrative import SpecificationNarrative
from specforge.models.specification import ImplementationPlan, Specification
from specforge.models.validation import ValidationResult


class ExecutiveSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    hospital_name: str
    hospital_type: str
    bed_count: int
    complexity_score: float
    integration_difficulty: float
    recommended_approach: str
    estimated_timeline: str
    estimated_cost: int
    risk_level: str
    recommended_vendors: list[str] = Field(default_factory=list)
    key_recommendations: list[str] = Field(default_factory=list)


class PipelineMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_stages: int
    successful_stages: int
    stage_quality: dict[str, float]
    stage_durations_ms: dict[str, float]
    overall_quality: float
    refinement_applied: bool


class TransformationResult(BaseModel):
    """Final pipeline output. Never changed once the run completes."""

    model_config = ConfigDict(frozen=True)

    id: str
    created_at: str
    hospital_id: str
    hospital_name: str
    specification: Specification
    implementation_plan: ImplementationPlan
    risk_assessment: RiskAssessment
    vendor_recommendations: list[VendorCompatibility]
    metrics: ComputedMetrics
    executive_summary: ExecutiveSummary
    pipeline_metrics: PipelineMetrics
    validation: ValidationResult
    quality_score: float
    processing_time_ms: float
    refinement_applied: bool = False

    def to_record(self) -> dict[str, Any]:
        """JSON-serializable record for the persistence layer."""
        return self.model_dump(mode="json")

    def document_payload(self) -> dict[str, Any]:
        """Fields a document renderer consumes."""
        return {
            "transformation_id": self.id,
            "specification": self.specification.model_dump(mode="json"),
            "executive_summary": self.executive_summary.model_dump(mode="json"),
            "implementation_roadmap": self.implementation_plan.model_dump(mode="json"),
            "risk_assessment": self.risk_assessment.model_dump(mode="json"),
        }


class TransformationRequest(BaseModel):
    questionnaire: dict[str, Any]
    include_narrative: bool = False


class TransformationResponse(BaseModel):
    transformation: TransformationResult
    narrative: SpecificationNarrative | None = None


class AssessmentRequest(BaseModel):
    questionnaire: dict[str, Any]


class TransformationListItem(BaseModel):
    id: str
    created_at: str
    hospital_id: str
    hospital_name: str
    quality_score: float
    processing_time_ms: float
