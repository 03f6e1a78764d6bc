from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from specforge.models.transformation import TransformationResult


class TransformationEvent(BaseModel):
    """Lifecycle event for one transformation run, routed by hospital."""

    model_config = ConfigDict(frozen=True)

    type: Literal["transformationCompleted", "transformationFailed"]
    transformation_id: str
    hospital_id: str
    processing_time_ms: float
    quality_score: float | None = None
    error: str | None = None
    stage: str | None = None

    @classmethod
    def completed(cls, result: TransformationResult) -> "TransformationEvent":
        return cls(
            type="transformationCompleted",
            transformation_id=result.id,
            hospital_id=result.hospital_id,
            processing_time_ms=result.processing_time_ms,
            quality_score=result.quality_score,
        )

    @classmethod
    def failed(
        cls,
        transformation_id: str,
        hospital_id: str,
        processing_time_ms: float,
        error: Exception,
        stage: str,
    ) -> "TransformationEvent":
        return cls(
            type="transformationFailed",
            transformation_id=transformation_id,
            hospital_id=hospital_id,
            processing_time_ms=round(processing_time_ms, 3),
            error=str(error),
            stage=stage,
        )

    def payload(self) -> dict[str, Any]:
        """JSON-ready dict: completed events carry no error, failed events no score."""
        return self.model_dump(exclude_none=True)
