"""Run audit history, statistics and report endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from pdv_sentinel.domains.audit.recorder import AuditRecorder, get_audit_recorder

router = APIRouter(prefix="/api/v1/audit", tags=["audit"])


@router.get("/syncs")
async def recent_syncs(
    limit: int = Query(default=10, ge=1, le=100),
    recorder: AuditRecorder = Depends(get_audit_recorder),  # noqa: B008
) -> dict:
    syncs = await recorder.recent_syncs(limit)
    return {"syncs": [s.model_dump(mode="json") for s in syncs]}


@router.get("/detections")
async def recent_detections(
    limit: int = Query(default=10, ge=1, le=100),
    recorder: AuditRecorder = Depends(get_audit_recorder),  # noqa: B008
) -> dict:
    detections = await recorder.recent_detections(limit)
    return {"detections": [d.model_dump(mode="json") for d in detections]}


@router.get("/statistics")
async def statistics(
    days_back: int = Query(default=30, ge=1, le=365),
    recorder: AuditRecorder = Depends(get_audit_recorder),  # noqa: B008
) -> dict:
    sync_stats = await recorder.sync_statistics(days_back)
    detection_stats = await recorder.detection_statistics(days_back)
    return {"sync": sync_stats.model_dump(), "detection": detection_stats.model_dump()}


@router.get("/report")
async def report(
    start: datetime,
    end: datetime,
    recorder: AuditRecorder = Depends(get_audit_recorder),  # noqa: B008
) -> dict:
    if end < start:
        raise ValueError("end must not be before start")
    result = await recorder.export_report(start, end)
    return result.model_dump(mode="json")
