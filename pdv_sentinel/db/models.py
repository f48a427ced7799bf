"""SQLAlchemy ORM models for the entity store and run audit tables."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON on every other backend.
JSONType = JSON().with_variant(JSONB(), "postgresql")

# SQLite only autoincrements INTEGER primary keys.
PKType = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Retail entities
# ---------------------------------------------------------------------------


class Employee(Base):
    __tablename__ = "employees"

    cpf: Mapped[str] = mapped_column(String(11), primary_key=True)
    name: Mapped[str] = mapped_column(String)
    hire_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String, default="active", index=True)


class Sale(Base):
    __tablename__ = "sales"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    operator_id: Mapped[str] = mapped_column(String(20), index=True)
    pdv_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    sold_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    customer_document: Mapped[str | None] = mapped_column(String(11), nullable=True, index=True)


class Cancellation(Base):
    __tablename__ = "cancellations"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    sale_id: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    operator_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    cancelled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)


class DrawerEvent(Base):
    __tablename__ = "drawer_events"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    operator_id: Mapped[str] = mapped_column(String(20), index=True)
    pdv_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    kind: Mapped[str] = mapped_column(String, index=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


class PbmAuthorization(Base):
    __tablename__ = "pbm_authorizations"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    authorization_code: Mapped[str] = mapped_column(String(50))
    operator_id: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    pdv_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    authorized_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    status: Mapped[str] = mapped_column(String, default="approved", index=True)


class CashDiscrepancyRecord(Base):
    __tablename__ = "cash_discrepancies"

    id: Mapped[int] = mapped_column(PKType, primary_key=True, autoincrement=True)
    pdv_id: Mapped[str] = mapped_column(String(20), index=True)
    expected_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    actual_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    discrepancy: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    discrepancy_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


class ErpTransaction(Base):
    __tablename__ = "erp_transactions"
    __table_args__ = (UniqueConstraint("source", "external_id", name="uq_erp_source_external"),)

    id: Mapped[int] = mapped_column(PKType, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String, index=True)
    external_id: Mapped[str] = mapped_column(String)
    pdv_id: Mapped[str] = mapped_column(String(20))
    operator_id: Mapped[str] = mapped_column(String(20), index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    transaction_type: Mapped[str] = mapped_column(String)
    reference: Mapped[str | None] = mapped_column(String, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    extra: Mapped[dict] = mapped_column(JSONType, default=dict)
    synced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ---------------------------------------------------------------------------
# Detection output
# ---------------------------------------------------------------------------


class FraudAlertDB(Base):
    __tablename__ = "fraud_alerts"

    id: Mapped[int] = mapped_column(PKType, primary_key=True, autoincrement=True)
    alert_id: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    fingerprint: Mapped[str] = mapped_column(String, unique=True, index=True)
    alert_type: Mapped[str] = mapped_column(String, index=True)
    severity: Mapped[str] = mapped_column(String, index=True)
    operator_id: Mapped[str] = mapped_column(String(20), index=True)
    operator_name: Mapped[str | None] = mapped_column(String, nullable=True)
    pdv_id: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sale_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    cancellation_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    sale_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_timestamp: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delay_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    risk_score: Mapped[int] = mapped_column(Integer)
    evidence: Mapped[dict] = mapped_column(JSONType, default=dict)
    status: Mapped[str] = mapped_column(String, default="pending", index=True)
    investigation_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


class OperatorRiskScoreDB(Base):
    __tablename__ = "operator_risk_scores"

    id: Mapped[int] = mapped_column(PKType, primary_key=True, autoincrement=True)
    operator_id: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    risk_score: Mapped[int] = mapped_column(Integer, default=0)
    risk_level: Mapped[str] = mapped_column(String, default="LOW", index=True)
    ghost_cancellations: Mapped[int] = mapped_column(Integer, default=0)
    pbm_deviations: Mapped[int] = mapped_column(Integer, default=0)
    no_sale_events: Mapped[int] = mapped_column(Integer, default=0)
    cpf_abuse_count: Mapped[int] = mapped_column(Integer, default=0)
    cash_discrepancies: Mapped[int] = mapped_column(Integer, default=0)
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


# ---------------------------------------------------------------------------
# Run audit
# ---------------------------------------------------------------------------


class SyncRunDB(Base):
    __tablename__ = "sync_runs"

    id: Mapped[int] = mapped_column(PKType, primary_key=True, autoincrement=True)
    sync_id: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    database_type: Mapped[str] = mapped_column(String, index=True)
    sync_type: Mapped[str] = mapped_column(String)
    host: Mapped[str | None] = mapped_column(String, nullable=True)
    database: Mapped[str | None] = mapped_column(String, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    finished_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    duration_ms: Mapped[int] = mapped_column(Integer)
    records_fetched: Mapped[int] = mapped_column(Integer, default=0)
    records_processed: Mapped[int] = mapped_column(Integer, default=0)
    records_inserted: Mapped[int] = mapped_column(Integer, default=0)
    records_updated: Mapped[int] = mapped_column(Integer, default=0)
    records_skipped: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String, index=True)
    error_count: Mapped[int] = mapped_column(Integer, default=0)
    errors: Mapped[list] = mapped_column(JSONType, default=list)
    triggered_by: Mapped[str] = mapped_column(String, default="system")
    is_manual: Mapped[bool] = mapped_column(Boolean, default=False)


class SyncErrorDB(Base):
    __tablename__ = "sync_errors"

    id: Mapped[int] = mapped_column(PKType, primary_key=True, autoincrement=True)
    sync_id: Mapped[str] = mapped_column(String(50), index=True)
    message: Mapped[str] = mapped_column(Text)
    severity: Mapped[str] = mapped_column(String, index=True)
    recoverable: Mapped[bool] = mapped_column(Boolean, default=True)
    record_data: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    attempt_number: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class SyncDedupKeyDB(Base):
    __tablename__ = "sync_dedup_keys"

    id: Mapped[int] = mapped_column(PKType, primary_key=True, autoincrement=True)
    sync_id: Mapped[str] = mapped_column(String(50), index=True)
    dedup_key: Mapped[str] = mapped_column(String(255), index=True)
    pdv_id: Mapped[str] = mapped_column(String(20))
    operator_id: Mapped[str] = mapped_column(String(20))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    timestamp_bucket: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)


class DetectionRunDB(Base):
    __tablename__ = "detection_runs"

    id: Mapped[int] = mapped_column(PKType, primary_key=True, autoincrement=True)
    detection_id: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    finished_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    duration_ms: Mapped[int] = mapped_column(Integer)
    records_analyzed: Mapped[int] = mapped_column(Integer, default=0)
    alerts_generated: Mapped[int] = mapped_column(Integer, default=0)
    ghost_cancellations: Mapped[int] = mapped_column(Integer, default=0)
    pbm_deviations: Mapped[int] = mapped_column(Integer, default=0)
    no_sale_events: Mapped[int] = mapped_column(Integer, default=0)
    cpf_abuses: Mapped[int] = mapped_column(Integer, default=0)
    cash_discrepancies: Mapped[int] = mapped_column(Integer, default=0)
    operators_updated: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String, index=True)
    error_count: Mapped[int] = mapped_column(Integer, default=0)
    errors: Mapped[list] = mapped_column(JSONType, default=list)
    triggered_by: Mapped[str] = mapped_column(String, default="system")
    is_manual: Mapped[bool] = mapped_column(Boolean, default=False)
    sync_id: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)


class DetectionErrorDB(Base):
    __tablename__ = "detection_errors"

    id: Mapped[int] = mapped_column(PKType, primary_key=True, autoincrement=True)
    detection_id: Mapped[str] = mapped_column(String(50), index=True)
    module_type: Mapped[str] = mapped_column(String, index=True)
    message: Mapped[str] = mapped_column(Text)
    severity: Mapped[str] = mapped_column(String)
    recoverable: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
