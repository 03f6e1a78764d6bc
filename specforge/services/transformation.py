"""Orchestrates the questionnaire -> specification pipeline.

Stages run in order; after each one the engine yields to the event loop and
checks an optional cancel event, so many runs can share one loop and one
assessment cache.
"""

import asyncio
import enum
import logging
import secrets
import string
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any, TypeVar

from specforge.config import (
    ASSESSMENT_CACHE_L1_SIZE,
    ASSESSMENT_CACHE_L2_SIZE,
    ASSESSMENT_CACHE_L3_SIZE,
    CACHE_RECENCY_HALF_LIFE_SECONDS,
    REFINEMENT_FEASIBILITY_THRESHOLD,
)
from specforge.errors import (
    PipelineStageError,
    TransformationCancelledError,
    TransformationError,
    ValidationError,
)
from specforge.models.assessment import HospitalAssessment
from specforge.models.events import TransformationEvent
from specforge.models.metrics import ComputedMetrics
from specforge.models.questionnaire import RequirementSet
from specforge.models.specification import ImplementationPhase, ImplementationPlan, Specification
from specforge.models.transformation import ExecutiveSummary, PipelineMetrics, TransformationResult
from specforge.models.validation import ValidationResult
from specforge.services.assessment import HospitalAssessmentEngine
from specforge.services.assessment_cache import AssessmentCache
from specforge.services.event_bus import TransformationEventBus, event_bus
from specforge.services.formulas import compute_all
from specforge.services.questionnaire import QuestionnaireProcessor
from specforge.services.specification import SpecificationGenerator
from specforge.services.validation import ValidationEngine

logger = logging.getLogger(__name__)

T = TypeVar("T")

_ID_ALPHABET = string.digits + string.ascii_lowercase


class PipelineStage(str, enum.Enum):
    PARSE = "parse"
    EXTRACT = "extract"
    FORMULAS = "formulas"
    ASSESS = "assess"
    MAP = "map"
    GENERATE = "generate"
    VALIDATE = "validate"
    OPTIMIZE = "optimize"


# Stages whose own quality score feeds the pipeline quality mean
QUALITY_STAGES = (
    PipelineStage.PARSE,
    PipelineStage.EXTRACT,
    PipelineStage.ASSESS,
    PipelineStage.GENERATE,
    PipelineStage.VALIDATE,
)


def generate_transformation_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"transform-{int(time.time() * 1000)}-{suffix}"


class _RunState:
    def __init__(self, cancel_event: asyncio.Event | None) -> None:
        self.cancel_event = cancel_event
        self.durations: dict[str, float] = {}
        self.quality: dict[str, float] = {}
        self.completed = 0


class TransformationEngine:
    def __init__(
        self,
        processor: QuestionnaireProcessor | None = None,
        assessor: HospitalAssessmentEngine | None = None,
        generator: SpecificationGenerator | None = None,
        validator: ValidationEngine | None = None,
        bus: TransformationEventBus | None = None,
        cache: AssessmentCache | None = None,
    ) -> None:
        self.cache = cache or (assessor.cache if assessor is not None else AssessmentCache())
        self.processor = processor or QuestionnaireProcessor()
        self.assessor = assessor or HospitalAssessmentEngine(self.cache)
        self.generator = generator or SpecificationGenerator()
        self.validator = validator or ValidationEngine()
        self.event_bus = bus or event_bus
        self._metrics = {
            "total_transformations": 0,
            "successful_transformations": 0,
            "failed_transformations": 0,
            "refinements_applied": 0,
            "total_processing_time_ms": 0.0,
            "total_quality_score": 0.0,
        }

    async def transform(
        self,
        raw: Mapping[str, Any],
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> TransformationResult:
        """Run the full pipeline for one questionnaire.

        Raises ValidationError when identity fields are unusable,
        PipelineStageError when any later stage fails and
        TransformationCancelledError when ``cancel_event`` is set between
        stages. No partial result is returned in any of those cases.
        """
        transformation_id = generate_transformation_id()
        started = time.perf_counter()
        state = _RunState(cancel_event)
        self._metrics["total_transformations"] += 1
        hospital_id = self.processor.hospital_id_for(raw) or "unknown"

        try:
            result = await self._run(transformation_id, raw, state, started)
        except TransformationError as exc:
            self._metrics["failed_transformations"] += 1
            elapsed = (time.perf_counter() - started) * 1000
            logger.error("Transformation %s failed: %s", transformation_id, exc)
            await self.event_bus.publish(TransformationEvent.failed(
                transformation_id,
                hospital_id,
                elapsed,
                exc,
                stage=getattr(exc, "stage", PipelineStage.PARSE.value),
            ))
            raise

        self._metrics["successful_transformations"] += 1
        self._metrics["total_processing_time_ms"] += result.processing_time_ms
        self._metrics["total_quality_score"] += result.quality_score
        if result.refinement_applied:
            self._metrics["refinements_applied"] += 1
        await self.event_bus.publish(TransformationEvent.completed(result))
        logger.info(
            "Transformation %s completed in %.1f ms (quality %.3f)",
            result.id,
            result.processing_time_ms,
            result.quality_score,
        )
        return result

    async def _run(
        self,
        transformation_id: str,
        raw: Mapping[str, Any],
        state: _RunState,
        started: float,
    ) -> TransformationResult:
        processed = await self._stage(PipelineStage.PARSE, state, self.processor.process_questionnaire, raw)
        state.quality[PipelineStage.PARSE.value] = processed.quality_score

        requirements = await self._stage(
            PipelineStage.EXTRACT, state, self.processor.extract_requirements, processed
        )
        state.quality[PipelineStage.EXTRACT.value] = requirements.quality_score
        profile = requirements.profile

        metrics = await self._stage(PipelineStage.FORMULAS, state, compute_all, profile)

        assessment = await self._stage(PipelineStage.ASSESS, state, self.assessor.assess_hospital, profile)
        state.quality[PipelineStage.ASSESS.value] = assessment.quality_score

        mapping = await self._stage(
            PipelineStage.MAP,
            state,
            self.generator.map_requirements_to_specification,
            requirements,
            assessment,
            metrics,
        )

        specification = await self._stage(
            PipelineStage.GENERATE, state, self.generator.generate_specification, mapping
        )
        state.quality[PipelineStage.GENERATE.value] = specification.quality_score

        specification, validation, refined = await self._stage(
            PipelineStage.VALIDATE, state, self._validate_and_refine, specification, requirements
        )
        state.quality[PipelineStage.VALIDATE.value] = validation.quality_score

        specification = await self._stage(
            PipelineStage.OPTIMIZE,
            state,
            self.generator.optimize_specification,
            specification,
            validation.optimization_recommendations,
        )

        overall = sum(state.quality[stage.value] for stage in QUALITY_STAGES) / len(QUALITY_STAGES)
        plan = self._plan_from_specification(specification, mapping.implementation_plan)
        elapsed = round((time.perf_counter() - started) * 1000, 3)

        return TransformationResult(
            id=transformation_id,
            created_at=datetime.now(UTC).isoformat(),
            hospital_id=profile.hospital_id,
            hospital_name=profile.name,
            specification=specification,
            implementation_plan=plan,
            risk_assessment=assessment.risk_assessment,
            vendor_recommendations=assessment.vendor_compatibility,
            metrics=metrics,
            executive_summary=self.build_executive_summary(requirements, assessment, metrics, plan),
            pipeline_metrics=PipelineMetrics(
                total_stages=len(PipelineStage),
                successful_stages=state.completed,
                stage_quality={name: round(score, 4) for name, score in state.quality.items()},
                stage_durations_ms=state.durations,
                overall_quality=round(overall, 4),
                refinement_applied=refined,
            ),
            validation=validation,
            quality_score=round(overall, 4),
            processing_time_ms=elapsed,
            refinement_applied=refined,
        )

    async def _stage(self, stage: PipelineStage, state: _RunState, func: Callable[..., T], *args: Any) -> T:
        stage_started = time.perf_counter()
        logger.info("Stage %s started", stage.value)
        try:
            result = func(*args)
        except ValidationError:
            raise
        except Exception as exc:
            raise PipelineStageError(stage.value, exc) from exc
        state.durations[stage.value] = round((time.perf_counter() - stage_started) * 1000, 3)
        state.completed += 1
        logger.info("Stage %s finished in %.2f ms", stage.value, state.durations[stage.value])

        await asyncio.sleep(0)
        if state.cancel_event is not None and state.cancel_event.is_set():
            raise TransformationCancelledError(stage.value)
        return result

    def _validate_and_refine(
        self,
        specification: Specification,
        requirements: RequirementSet,
    ) -> tuple[Specification, ValidationResult, bool]:
        """Validate, and when feasibility is low apply exactly one refinement round."""
        validation = self.validator.validate_specification(specification, requirements)
        if not validation.refinement_required:
            return specification, validation, False

        logger.info("Feasibility %.3f below threshold; refining once", validation.feasibility_score)
        suggestions = self.validator.generate_refinement_suggestions(specification, validation)
        refined = self.generator.refine_specification(specification, suggestions)
        revalidated = self.validator.validate_specification(refined, requirements)
        if revalidated.refinement_required:
            logger.warning(
                "Feasibility still %.3f after refinement; accepting result",
                revalidated.feasibility_score,
            )
        return refined, revalidated, True

    @staticmethod
    def _plan_from_specification(specification: Specification, plan: ImplementationPlan) -> ImplementationPlan:
        timeline = specification.implementation_timeline
        if not timeline.get("phases"):
            return plan
        return plan.model_copy(update={
            "phases": [ImplementationPhase.model_validate(item) for item in timeline["phases"]],
            "total_weeks": timeline.get("total_weeks", plan.total_weeks),
            "risk_adjusted_weeks": timeline.get("risk_adjusted_weeks", plan.risk_adjusted_weeks),
            "target_weeks": timeline.get("target_weeks", plan.target_weeks),
        })

    @staticmethod
    def build_executive_summary(
        requirements: RequirementSet,
        assessment: HospitalAssessment,
        metrics: ComputedMetrics,
        plan: ImplementationPlan,
    ) -> ExecutiveSummary:
        profile = requirements.profile
        return ExecutiveSummary(
            hospital_name=profile.name,
            hospital_type=profile.type,
            bed_count=profile.bed_count,
            complexity_score=assessment.complexity_score,
            integration_difficulty=metrics.sidi,
            recommended_approach=assessment.recommended_approach,
            estimated_timeline=f"{plan.risk_adjusted_weeks} weeks",
            estimated_cost=metrics.raf.estimated_cost,
            risk_level=assessment.risk_assessment.risk_level,
            recommended_vendors=[item.vendor_name for item in assessment.vendor_compatibility[:3]],
            key_recommendations=list(assessment.key_recommendations),
        )

    def metrics(self) -> dict[str, Any]:
        successful = self._metrics["successful_transformations"]
        return {
            "total_transformations": self._metrics["total_transformations"],
            "successful_transformations": successful,
            "failed_transformations": self._metrics["failed_transformations"],
            "refinements_applied": self._metrics["refinements_applied"],
            "average_processing_time_ms": (
                round(self._metrics["total_processing_time_ms"] / successful, 3) if successful else 0.0
            ),
            "average_quality_score": (
                round(self._metrics["total_quality_score"] / successful, 4) if successful else 0.0
            ),
            "cache": self.cache.metrics(),
        }


def build_transformation_engine(bus: TransformationEventBus | None = None) -> TransformationEngine:
    cache = AssessmentCache(
        ASSESSMENT_CACHE_L1_SIZE,
        ASSESSMENT_CACHE_L2_SIZE,
        ASSESSMENT_CACHE_L3_SIZE,
        half_life_seconds=CACHE_RECENCY_HALF_LIFE_SECONDS,
    )
    return TransformationEngine(
        validator=ValidationEngine(REFINEMENT_FEASIBILITY_THRESHOLD),
        bus=bus,
        cache=cache,
    )
