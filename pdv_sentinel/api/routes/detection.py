"""Detection trigger and status endpoints."""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from pdv_sentinel.domains.detection.orchestrator import (
    MAX_DAYS_BACK,
    DetectionOrchestrator,
    get_orchestrator,
    module_catalogue,
)

logger = structlog.get_logger()
router = APIRouter(prefix="/api/v1/detection", tags=["detection"])


class DetectionRunRequest(BaseModel):
    days_back: int | None = Field(default=None, ge=1, le=MAX_DAYS_BACK)
    date_from: datetime | None = None
    triggered_by: str = "api"


@router.post("/run")
async def run_detection(
    request: DetectionRunRequest | None = None,
    orchestrator: DetectionOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> dict:
    request = request or DetectionRunRequest()
    result = await orchestrator.run(
        days_back=request.days_back,
        date_from=request.date_from,
        triggered_by=request.triggered_by,
        is_manual=True,
    )
    return {
        "detection_id": result.detection_id,
        "success": result.success,
        "status": result.status.value,
        "message": result.message,
        "alerts_generated": result.total_alerts_generated,
        "alerts_stored": result.alerts_stored,
        "duration_ms": result.duration_ms,
        "summary": result.summary.model_dump(),
        "errors": result.errors,
    }


@router.get("/status")
async def detection_status(
    orchestrator: DetectionOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> dict:
    return {**orchestrator.status(), "modules": module_catalogue()}


@router.get("/last-run")
async def last_detection_run(
    orchestrator: DetectionOrchestrator = Depends(get_orchestrator),  # noqa: B008
) -> dict:
    if orchestrator.last_run is None:
        raise LookupError("No detection run has completed since startup")
    return orchestrator.last_run.model_dump(mode="json")
