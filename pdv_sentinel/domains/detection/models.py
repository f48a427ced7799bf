"""Pydantic models for the detection domain."""

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field


class AlertType(StrEnum):
    GHOST_CANCELLATION = "GHOST_CANCELLATION"
    PBM_DEVIATION = "PBM_DEVIATION"
    NO_SALE = "NO_SALE"
    CPF_ABUSE = "CPF_ABUSE"
    CASH_DISCREPANCY = "CASH_DISCREPANCY"


class Severity(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class RiskLevel(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class InvestigationStatus(StrEnum):
    PENDING = "pending"
    INVESTIGATED = "investigated"
    FALSE_POSITIVE = "false_positive"
    CONFIRMED_FRAUD = "confirmed_fraud"


class RunStatus(StrEnum):
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class Shift(StrEnum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    NIGHT = "night"


# ---------------------------------------------------------------------------
# Evidence: one variant per alert type, discriminated by ``kind``
# ---------------------------------------------------------------------------


class GhostCancellationEvidence(BaseModel):
    kind: Literal["ghost_cancellation"] = "ghost_cancellation"
    camera_available: bool = True
    delay_seconds: int
    threshold_seconds: int


class PbmDeviationEvidence(BaseModel):
    kind: Literal["pbm_deviation"] = "pbm_deviation"
    camera_available: bool = True
    authorization_id: str
    authorization_code: str
    window_seconds: int


class NoSaleEvidence(BaseModel):
    kind: Literal["no_sale"] = "no_sale"
    camera_available: bool = True
    related_alerts: int
    shift: Shift
    shift_day: str


class CpfAbuseEvidence(BaseModel):
    kind: Literal["cpf_abuse"] = "cpf_abuse"
    camera_available: bool = True
    related_alerts: int
    customer_document: str
    is_employee_document: bool
    threshold: int
    total_amount: Decimal
    distinct_days: int


class CashDiscrepancyEvidence(BaseModel):
    kind: Literal["cash_discrepancy"] = "cash_discrepancy"
    camera_available: bool = True
    discrepancy_id: str
    expected_amount: Decimal | None = None
    actual_amount: Decimal | None = None
    discrepancy: Decimal


AlertEvidence = Annotated[
    GhostCancellationEvidence
    | PbmDeviationEvidence
    | NoSaleEvidence
    | CpfAbuseEvidence
    | CashDiscrepancyEvidence,
    Field(discriminator="kind"),
]


class FraudAlert(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    alert_id: str
    alert_type: AlertType
    severity: Severity
    operator_id: str
    operator_name: str | None = None
    pdv_id: str | None = None
    sale_id: str | None = None
    cancellation_id: str | None = None
    amount: Decimal | None = None
    sale_timestamp: datetime | None = None
    cancellation_timestamp: datetime | None = None
    delay_seconds: int | None = None
    risk_score: int
    evidence: AlertEvidence
    fingerprint: str
    status: InvestigationStatus = InvestigationStatus.PENDING
    investigation_notes: str | None = None
    created_at: datetime


class DetectionWindow(BaseModel):
    start: datetime
    end: datetime


class ModuleResult(BaseModel):
    alert_type: AlertType
    alerts: list[FraudAlert] = []
    processed_records: int = 0
    duration_ms: int = 0
    timestamp: datetime
    errors: list[str] = []
    failed: bool = False

    @property
    def alerts_generated(self) -> int:
        return len(self.alerts)


class RiskScoreDetails(BaseModel):
    operator_id: str
    ghost_cancellations: int = 0
    pbm_deviations: int = 0
    no_sale_events: int = 0
    cpf_abuse_count: int = 0
    cash_discrepancies: int = 0
    total_score: int = 0
    risk_level: RiskLevel = RiskLevel.LOW


class AggregationResult(BaseModel):
    operators_processed: int = 0
    high_risk_operators: int = 0
    scores: list[RiskScoreDetails] = []
    duration_ms: int = 0
    errors: list[str] = []


class DetectionSummary(BaseModel):
    ghost_cancellations: int = 0
    pbm_deviations: int = 0
    no_sale: int = 0
    cpf_abuse: int = 0
    cash_discrepancies: int = 0
    operators_updated: int = 0


class DetectionRunResult(BaseModel):
    detection_id: str
    success: bool
    status: RunStatus
    message: str
    started_at: datetime
    finished_at: datetime
    duration_ms: int
    window: DetectionWindow
    module_results: list[ModuleResult] = []
    aggregation: AggregationResult | None = None
    summary: DetectionSummary = Field(default_factory=DetectionSummary)
    total_alerts_generated: int = 0
    alerts_stored: int = 0
    errors: list[str] = []
    triggered_by: str = "system"
    is_manual: bool = False
