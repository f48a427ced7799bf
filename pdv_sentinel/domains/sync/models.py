"""Pydantic models for ERP synchronization."""

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator


class DatabaseType(StrEnum):
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    ORACLE = "oracle"
    SQLSERVER = "sqlserver"


class TransactionType(StrEnum):
    SALE = "SALE"
    CANCELLATION = "CANCELLATION"
    REFUND = "REFUND"
    ADJUSTMENT = "ADJUSTMENT"


class SyncType(StrEnum):
    FULL = "FULL"
    INCREMENTAL = "INCREMENTAL"


class SyncStatus(StrEnum):
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


class ErrorSeverity(StrEnum):
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ConnectorConfig(BaseModel):
    """Connection parameters for one remote ERP database.

    Construct through :meth:`parse` to get ``ConfigurationError`` instead of
    a pydantic ``ValidationError``.
    """

    type: DatabaseType
    host: str
    port: int = Field(ge=1, le=65535)
    database: str
    username: str
    password: str = ""
    ssl: bool = False
    connection_timeout: int = Field(default=30, ge=1)
    source_table: str = "sale_transactions"
    name: str | None = None

    @field_validator("host", "database", "username")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be empty")
        return v

    @property
    def source_name(self) -> str:
        return self.name or f"{self.type.value}:{self.host}/{self.database}"

    @classmethod
    def parse(cls, data: dict[str, Any]) -> "ConnectorConfig":
        from pdv_sentinel.shared.exceptions import ConfigurationError

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}"
                for err in exc.errors()
            )
            raise ConfigurationError(f"Invalid connector configuration: {problems}") from exc


class TransactionRow(BaseModel):
    """Canonical shape every connector normalizes remote rows into."""

    id: str
    pdv: str
    operator: str
    amount: Decimal
    timestamp: datetime
    type: TransactionType = TransactionType.SALE
    reference: str | None = None
    metadata: dict[str, Any] = {}


class SyncError(BaseModel):
    message: str
    severity: ErrorSeverity = ErrorSeverity.ERROR
    recoverable: bool = True
    record: dict[str, Any] | None = None
    attempt: int = 1


class SyncResult(BaseModel):
    sync_id: str
    success: bool
    status: SyncStatus
    message: str
    database_type: DatabaseType
    source: str
    sync_type: SyncType
    started_at: datetime
    finished_at: datetime
    duration_ms: int
    records_fetched: int = 0
    records_processed: int = 0
    records_inserted: int = 0
    records_updated: int = 0
    records_skipped: int = 0
    dedup_keys_generated: int = 0
    errors: list[SyncError] = []
    triggered_by: str = "system"
    is_manual: bool = False

    @property
    def error_count(self) -> int:
        return len(self.errors)


class SyncJobResult(BaseModel):
    success: bool
    started_at: datetime
    finished_at: datetime
    duration_ms: int
    results: list[SyncResult] = []
    failures: dict[str, str] = {}

    @property
    def records_inserted(self) -> int:
        return sum(r.records_inserted for r in self.results)
