import asyncio
import logging

from fastapi import APIRouter, HTTPException, Query, Request, WebSocket, WebSocketDisconnect

from specforge.database import get_transformation, list_transformations, save_transformation
from specforge.errors import PipelineStageError, ValidationError
from specforge.models.assessment import HospitalAssessment
from specforge.models.narrative import SpecificationNarrative
from specforge.models.transformation import (
    AssessmentRequest,
    TransformationListItem,
    TransformationRequest,
    TransformationResponse,
    TransformationResult,
)
from specforge.services.narrative import generate_narrative
from specforge.services.transformation import TransformationEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["transformations"])


def _engine(request: Request) -> TransformationEngine:
    return request.app.state.engine


async def _load(transformation_id: str) -> TransformationResult:
    result = await get_transformation(transformation_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Transformation not found")
    return result


@router.post("/api/transformations", response_model=TransformationResponse)
async def create_transformation(body: TransformationRequest, request: Request):
    """Run the questionnaire through the pipeline and persist the result.

    422 when identity fields are missing or malformed; 500 with the failing
    stage when a later stage raises. Nothing is stored for failed runs.
    """
    engine = _engine(request)
    try:
        result = await engine.transform(body.questionnaire)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"message": str(exc), "problems": exc.problems},
        ) from None
    except PipelineStageError as exc:
        raise HTTPException(
            status_code=500,
            detail={"message": str(exc), "stage": exc.stage},
        ) from None

    await save_transformation(result)
    narrative = await generate_narrative(result) if body.include_narrative else None
    return TransformationResponse(transformation=result, narrative=narrative)


@router.get("/api/transformations", response_model=list[TransformationListItem])
async def get_transformations(
    hospital_id: str | None = None,
    limit: int = Query(50, ge=1, le=500),
):
    """List stored transformations, newest first."""
    return await list_transformations(hospital_id=hospital_id, limit=limit)


@router.get("/api/transformations/{transformation_id}", response_model=TransformationResult)
async def get_transformation_detail(transformation_id: str):
    return await _load(transformation_id)


@router.get("/api/transformations/{transformation_id}/document")
async def get_transformation_document(transformation_id: str):
    """Specification, executive summary, roadmap and risks for document rendering."""
    result = await _load(transformation_id)
    return result.document_payload()


@router.get("/api/transformations/{transformation_id}/narrative", response_model=SpecificationNarrative)
async def get_transformation_narrative(transformation_id: str):
    result = await _load(transformation_id)
    return await generate_narrative(result)


@router.post("/api/assessments", response_model=HospitalAssessment)
async def assess_hospital(body: AssessmentRequest, request: Request):
    """Assessment only: complexity, vendor fit and risks, served through the cache."""
    engine = _engine(request)
    try:
        processed = engine.processor.process_questionnaire(body.questionnaire)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"message": str(exc), "problems": exc.problems},
        ) from None
    return engine.assessor.assess_hospital(processed.profile)


@router.get("/api/metrics")
async def get_metrics(request: Request):
    return _engine(request).metrics()


@router.websocket("/ws/transformations")
async def transformation_events_ws(websocket: WebSocket, hospital_id: str | None = None):
    """Live transformationCompleted / transformationFailed events.

    Pass ``hospital_id`` as a query parameter to receive a single hospital's events.
    """
    await websocket.accept()
    bus = websocket.app.state.engine.event_bus
    queue = bus.subscribe(hospital_id or None)
    logger.info("Transformation event client connected (hospital=%s)", hospital_id or "all")

    try:
        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=10.0)
            except TimeoutError:
                event = {"type": "ping"}
            await websocket.send_json(event)
    except WebSocketDisconnect:
        logger.info("Transformation event client disconnected")
    finally:
        bus.unsubscribe(hospital_id or None, queue)
