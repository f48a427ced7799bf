"""Abstract base class for ERP source connectors."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import UTC, date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, ClassVar

import structlog
from sqlalchemy import URL, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from pdv_sentinel.shared.exceptions import ConfigurationError, ConnectivityError

from ..models import ConnectorConfig, DatabaseType, TransactionRow, TransactionType

logger = structlog.get_logger()

# Remote column name -> canonical field, first match wins.
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "id": ("id", "transaction_id"),
    "pdv": ("pdv", "terminal", "pos"),
    "operator": ("operator", "employee", "operator_id"),
    "amount": ("amount", "total"),
    "timestamp": ("timestamp", "date", "created_at"),
    "type": ("type",),
    "reference": ("reference", "reference_id"),
}

_CONSUMED = {alias for aliases in COLUMN_ALIASES.values() for alias in aliases} | {"metadata"}

_DRIVER_ERRORS = (SQLAlchemyError, OSError, TimeoutError)


class SourceConnector(ABC):
    """Uniform fetch/count/connect contract over a remote ERP database.

    Subclasses only describe their dialect: the SQLAlchemy driver name, the
    connection arguments and the SQL used for unpaged and paged fetches.
    Driver failures surface as ``ConnectivityError`` so callers can retry.
    """

    database_type: ClassVar[DatabaseType]
    drivername: ClassVar[str]
    driver_module: ClassVar[str]
    supports_pagination: ClassVar[bool] = True
    ping_sql: ClassVar[str] = "SELECT 1"
    pool_size: ClassVar[int] = 10

    def __init__(self, config: ConnectorConfig) -> None:
        if config.type != self.database_type:
            raise ConfigurationError(
                f"{type(self).__name__} requires type={self.database_type.value}, "
                f"got {config.type.value}"
            )
        self.config = config
        self._engine: AsyncEngine | None = None
        self._log = logger.bind(database_type=config.type.value, host=config.host)

    @property
    def connected(self) -> bool:
        return self._engine is not None

    @property
    def table(self) -> str:
        return self.config.source_table

    # -- dialect hooks -------------------------------------------------------

    def url(self) -> URL:
        return URL.create(
            self.drivername,
            username=self.config.username,
            password=self.config.password or None,
            host=self.config.host,
            port=self.config.port,
            database=self.config.database,
        )

    def connect_args(self) -> dict[str, Any]:
        return {}

    def quote(self, column: str) -> str:
        return f'"{column}"'

    @property
    def select_list(self) -> str:
        ts = self.quote("timestamp")
        return f"id, pdv, operator, amount, {ts}, type, reference"

    def where_clause(self, from_date: datetime | None) -> str:
        if from_date is None:
            return ""
        return f" WHERE {self.quote('timestamp')} >= :from_date"

    @abstractmethod
    def select_sql(self, from_date: datetime | None) -> str:
        """Unpaged fetch bounded by ``:limit``."""

    @abstractmethod
    def page_sql(self, from_date: datetime | None) -> str:
        """Paged fetch bounded by ``:offset`` and ``:limit``, ordered by timestamp."""

    def count_sql(self, from_date: datetime | None) -> str:
        return f"SELECT COUNT(*) FROM {self.table}{self.where_clause(from_date)}"

    def last_sync_sql(self) -> str:
        return f"SELECT MAX(created_at) FROM {self.table}"

    # -- lifecycle -----------------------------------------------------------

    async def connect(self) -> None:
        if self._engine is not None:
            return
        self._log.info("erp_connecting", port=self.config.port, database=self.config.database)
        engine = create_async_engine(
            self.url(),
            pool_size=self.pool_size,
            max_overflow=0,
            pool_pre_ping=True,
            pool_timeout=self.config.connection_timeout,
            connect_args=self.connect_args(),
        )
        try:
            async with engine.connect() as conn:
                await conn.execute(text(self.ping_sql))
        except _DRIVER_ERRORS as exc:
            await engine.dispose()
            self._log.error("erp_connect_failed", error=str(exc))
            raise ConnectivityError(
                f"Could not connect to {self.config.source_name}: {exc}"
            ) from exc
        self._engine = engine
        self._log.info("erp_connected")

    async def disconnect(self) -> None:
        if self._engine is None:
            return
        engine, self._engine = self._engine, None
        await engine.dispose()
        self._log.info("erp_disconnected")

    async def test_connection(self) -> bool:
        try:
            await self.connect()
            await self._execute(self.ping_sql)
        except ConnectivityError as exc:
            self._log.warning("erp_connection_test_failed", error=str(exc))
            return False
        return True

    # -- queries -------------------------------------------------------------

    async def get_last_sync_timestamp(self) -> datetime | None:
        try:
            rows = await self._execute(self.last_sync_sql())
        except ConnectivityError as exc:
            self._log.warning("erp_last_sync_lookup_failed", error=str(exc))
            return None
        value = rows[0][0] if rows else None
        return parse_timestamp(value) if value is not None else None

    async def get_transaction_count(self, from_date: datetime | None = None) -> int:
        rows = await self._execute(self.count_sql(from_date), self._params(from_date))
        return int(rows[0][0] or 0) if rows else 0

    async def fetch_transactions(
        self, from_date: datetime | None = None, limit: int = 1000
    ) -> list[TransactionRow]:
        rows = await self._execute(
            self.select_sql(from_date), self._params(from_date, limit=limit)
        )
        return self._normalize_all(rows)

    async def fetch_transactions_batch(
        self, offset: int = 0, limit: int = 1000, from_date: datetime | None = None
    ) -> list[TransactionRow]:
        if not self.supports_pagination:
            raise NotImplementedError(f"{type(self).__name__} does not support paged fetches")
        rows = await self._execute(
            self.page_sql(from_date), self._params(from_date, limit=limit, offset=offset)
        )
        return self._normalize_all(rows)

    async def _execute(self, sql: str, params: dict[str, Any] | None = None) -> list:
        if self._engine is None:
            raise ConnectivityError(f"Not connected to {self.config.source_name}")
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(text(sql), params or {})
                return [row._mapping for row in result]
        except _DRIVER_ERRORS as exc:
            raise ConnectivityError(
                f"Query against {self.config.source_name} failed: {exc}"
            ) from exc

    @staticmethod
    def _params(from_date: datetime | None, **extra: int) -> dict[str, Any]:
        params: dict[str, Any] = dict(extra)
        if from_date is not None:
            params["from_date"] = from_date
        return params

    def _normalize_all(self, rows: list) -> list[TransactionRow]:
        normalized = [normalize_row(row) for row in rows]
        kept = [row for row in normalized if row is not None]
        self._log.debug("erp_rows_normalized", fetched=len(rows), kept=len(kept))
        return kept


def parse_timestamp(value: Any) -> datetime:
    """Parse a remote timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _pick(row: Mapping[str, Any], field: str) -> Any:
    for alias in COLUMN_ALIASES[field]:
        value = row.get(alias)
        if value is not None and value != "":
            return value
    return None


def normalize_row(raw: Mapping[str, Any]) -> TransactionRow | None:
    """Map a remote row onto the canonical shape, or drop it with a warning.

    Column names are matched case-insensitively. Columns that are not part of
    the canonical shape are kept in ``metadata``.
    """
    row = {str(k).lower(): v for k, v in dict(raw).items()}
    row_id = _pick(row, "id")

    def drop(reason: str) -> None:
        logger.warning("erp_row_dropped", reason=reason, row_id=row_id)

    if row_id is None:
        return drop("missing id")
    pdv = _pick(row, "pdv")
    if pdv is None:
        return drop("missing pdv")
    operator = _pick(row, "operator")
    if operator is None:
        return drop("missing operator")

    try:
        amount = Decimal(str(_pick(row, "amount") or 0))
    except InvalidOperation:
        return drop("invalid amount")
    if not amount.is_finite():
        return drop("invalid amount")
    if amount < 0:
        return drop("negative amount")

    try:
        timestamp = parse_timestamp(_pick(row, "timestamp"))
    except ValueError:
        return drop("invalid timestamp")

    raw_type = str(_pick(row, "type") or TransactionType.SALE.value).upper()
    try:
        tx_type = TransactionType(raw_type)
    except ValueError:
        return drop(f"unknown type {raw_type}")

    metadata = dict(row["metadata"]) if isinstance(row.get("metadata"), dict) else {}
    metadata.update(
        {k: _jsonable(v) for k, v in row.items() if k not in _CONSUMED and v is not None}
    )
    reference = _pick(row, "reference")

    return TransactionRow(
        id=str(row_id),
        pdv=str(pdv),
        operator=str(operator),
        amount=amount,
        timestamp=timestamp,
        type=tx_type,
        reference=str(reference) if reference is not None else None,
        metadata=metadata,
    )


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value
