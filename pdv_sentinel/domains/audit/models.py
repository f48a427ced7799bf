"""Read models for run audit history and statistics."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class SyncRunEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sync_id: str
    database_type: str
    sync_type: str
    host: str | None = None
    database: str | None = None
    started_at: datetime
    finished_at: datetime
    duration_ms: int
    records_fetched: int
    records_processed: int
    records_inserted: int
    records_updated: int
    records_skipped: int
    status: str
    error_count: int
    errors: list[str] = []
    triggered_by: str
    is_manual: bool


class DetectionRunEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    detection_id: str
    started_at: datetime
    finished_at: datetime
    duration_ms: int
    records_analyzed: int
    alerts_generated: int
    ghost_cancellations: int
    pbm_deviations: int
    no_sale_events: int
    cpf_abuses: int
    cash_discrepancies: int
    operators_updated: int
    status: str
    error_count: int
    errors: list[str] = []
    triggered_by: str
    is_manual: bool
    sync_id: str | None = None


class RunErrorEntry(BaseModel):
    run_kind: str
    run_id: str
    source: str | None = None
    message: str
    severity: str
    recoverable: bool
    created_at: datetime | None = None


class SyncStatistics(BaseModel):
    days_back: int
    total_syncs: int = 0
    successful_syncs: int = 0
    partial_syncs: int = 0
    failed_syncs: int = 0
    total_records_inserted: int = 0
    total_records_skipped: int = 0
    average_duration_ms: float = 0.0


class DetectionStatistics(BaseModel):
    days_back: int
    total_detections: int = 0
    successful_detections: int = 0
    partial_detections: int = 0
    failed_detections: int = 0
    total_alerts_generated: int = 0
    average_duration_ms: float = 0.0


class AuditReport(BaseModel):
    start: datetime
    end: datetime
    syncs: list[SyncRunEntry] = []
    detections: list[DetectionRunEntry] = []
    errors: list[RunErrorEntry] = []
