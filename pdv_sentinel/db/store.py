"""Entity store: range-filtered reads and keyed upserts over the ORM tables."""

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Literal

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pdv_sentinel.shared.schemas import (
    AuthorizationRecord,
    AuthorizationStatus,
    CancellationRecord,
    CashDiscrepancyRecord,
    DrawerEventKind,
    DrawerEventRecord,
    OperatorRecord,
    SaleRecord,
)

from .models import (
    Cancellation,
    DrawerEvent,
    Employee,
    ErpTransaction,
    FraudAlertDB,
    OperatorRiskScoreDB,
    PbmAuthorization,
    Sale,
    SyncDedupKeyDB,
)
from .models import CashDiscrepancyRecord as CashDiscrepancyDB

if TYPE_CHECKING:
    from pdv_sentinel.domains.detection.models import FraudAlert, RiskScoreDetails
    from pdv_sentinel.domains.sync.models import TransactionRow

logger = structlog.get_logger()

UpsertOutcome = Literal["inserted", "updated"]


class EntityStore:
    """Thin persistence facade used by detection and synchronization.

    Each call opens its own session, so concurrent detection modules never
    share a session.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # -- reads ---------------------------------------------------------------

    async def fetch_sales(
        self,
        start: datetime,
        end: datetime,
        with_customer_document: bool = False,
    ) -> list[SaleRecord]:
        stmt = select(Sale).where(Sale.sold_at >= start, Sale.sold_at <= end)
        if with_customer_document:
            stmt = stmt.where(Sale.customer_document.is_not(None))
        rows = await self._scalars(stmt.order_by(Sale.sold_at))
        return [SaleRecord.model_validate(r) for r in rows]

    async def fetch_cancellations(self, start: datetime, end: datetime) -> list[CancellationRecord]:
        stmt = (
            select(Cancellation)
            .where(Cancellation.cancelled_at >= start, Cancellation.cancelled_at <= end)
            .order_by(Cancellation.cancelled_at)
        )
        return [CancellationRecord.model_validate(r) for r in await self._scalars(stmt)]

    async def fetch_drawer_events(
        self,
        start: datetime,
        end: datetime,
        kind: DrawerEventKind | None = None,
    ) -> list[DrawerEventRecord]:
        stmt = select(DrawerEvent).where(
            DrawerEvent.occurred_at >= start, DrawerEvent.occurred_at <= end
        )
        if kind is not None:
            stmt = stmt.where(DrawerEvent.kind == kind.value)
        rows = await self._scalars(stmt.order_by(DrawerEvent.occurred_at))
        return [DrawerEventRecord.model_validate(r) for r in rows]

    async def fetch_authorizations(
        self,
        start: datetime,
        end: datetime,
        status: AuthorizationStatus | None = None,
    ) -> list[AuthorizationRecord]:
        stmt = select(PbmAuthorization).where(
            PbmAuthorization.authorized_at >= start, PbmAuthorization.authorized_at <= end
        )
        if status is not None:
            stmt = stmt.where(PbmAuthorization.status == status.value)
        rows = await self._scalars(stmt.order_by(PbmAuthorization.authorized_at))
        return [AuthorizationRecord.model_validate(r) for r in rows]

    async def fetch_cash_discrepancies(
        self, start: datetime, end: datetime
    ) -> list[CashDiscrepancyRecord]:
        stmt = (
            select(CashDiscrepancyDB)
            .where(CashDiscrepancyDB.discrepancy_date >= start)
            .where(CashDiscrepancyDB.discrepancy_date <= end)
            .order_by(CashDiscrepancyDB.discrepancy_date)
        )
        return [CashDiscrepancyRecord.model_validate(r) for r in await self._scalars(stmt)]

    async def fetch_operators(self) -> list[OperatorRecord]:
        rows = await self._scalars(select(Employee).order_by(Employee.cpf))
        return [OperatorRecord.model_validate(r) for r in rows]

    async def fetch_alerts(
        self, since: datetime, until: datetime | None = None
    ) -> list["FraudAlert"]:
        from pdv_sentinel.domains.detection.models import FraudAlert

        stmt = select(FraudAlertDB).where(FraudAlertDB.created_at >= since)
        if until is not None:
            stmt = stmt.where(FraudAlertDB.created_at <= until)
        rows = await self._scalars(stmt.order_by(FraudAlertDB.created_at))
        return [FraudAlert.model_validate(r) for r in rows]

    async def find_dedup_keys(self, since: datetime) -> set[str]:
        """Dedup keys recorded by earlier sync runs whose bucket is at or after ``since``."""
        stmt = select(SyncDedupKeyDB.dedup_key).where(SyncDedupKeyDB.timestamp_bucket >= since)
        return set(await self._scalars(stmt))

    # -- writes --------------------------------------------------------------

    async def save_alerts(self, alerts: Iterable["FraudAlert"]) -> int:
        """Insert alerts, skipping any whose fingerprint is already stored.

        Returns the number of alerts actually inserted.
        """
        alerts = list(alerts)
        if not alerts:
            return 0

        async with self._session_factory() as session:
            fingerprints = [a.fingerprint for a in alerts]
            existing = set(
                (
                    await session.execute(
                        select(FraudAlertDB.fingerprint).where(
                            FraudAlertDB.fingerprint.in_(fingerprints)
                        )
                    )
                ).scalars()
            )
            saved = 0
            for alert in alerts:
                if alert.fingerprint in existing:
                    continue
                existing.add(alert.fingerprint)
                session.add(
                    FraudAlertDB(
                        **alert.model_dump(exclude={"evidence"}),
                        evidence=alert.evidence.model_dump(mode="json"),
                    )
                )
                saved += 1
            await session.commit()

        logger.info("alerts_saved", saved=saved, skipped=len(alerts) - saved)
        return saved

    async def upsert_risk_score(self, details: "RiskScoreDetails") -> UpsertOutcome:
        values = {
            "risk_score": details.total_score,
            "risk_level": details.risk_level.value,
            "ghost_cancellations": details.ghost_cancellations,
            "pbm_deviations": details.pbm_deviations,
            "no_sale_events": details.no_sale_events,
            "cpf_abuse_count": details.cpf_abuse_count,
            "cash_discrepancies": details.cash_discrepancies,
            "calculated_at": datetime.now(UTC),
        }
        async with self._session_factory() as session:
            stmt = select(OperatorRiskScoreDB).where(
                OperatorRiskScoreDB.operator_id == details.operator_id
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                session.add(OperatorRiskScoreDB(operator_id=details.operator_id, **values))
                outcome: UpsertOutcome = "inserted"
            else:
                for key, value in values.items():
                    setattr(row, key, value)
                outcome = "updated"
            await session.commit()
        return outcome

    async def upsert_transaction(self, row: "TransactionRow", source: str) -> UpsertOutcome:
        """Store a canonical ERP row and project it into the retail tables.

        SALE rows become ``sales``; CANCELLATION rows become ``cancellations``
        with ``reference`` naming the cancelled sale.
        """
        async with self._session_factory() as session:
            stmt = select(ErpTransaction).where(
                ErpTransaction.source == source, ErpTransaction.external_id == row.id
            )
            existing = (await session.execute(stmt)).scalar_one_or_none()
            values = {
                "pdv_id": row.pdv,
                "operator_id": row.operator,
                "amount": row.amount,
                "transaction_type": row.type.value,
                "reference": row.reference,
                "occurred_at": row.timestamp,
                "extra": row.metadata,
            }
            if existing is None:
                session.add(ErpTransaction(source=source, external_id=row.id, **values))
                outcome: UpsertOutcome = "inserted"
            else:
                for key, value in values.items():
                    setattr(existing, key, value)
                outcome = "updated"

            await self._project(session, row)
            await session.commit()
        return outcome

    async def _project(self, session: AsyncSession, row: "TransactionRow") -> None:
        from pdv_sentinel.domains.sync.models import TransactionType

        if row.type == TransactionType.SALE:
            await session.merge(
                Sale(
                    id=row.id,
                    operator_id=row.operator,
                    pdv_id=row.pdv,
                    total_amount=row.amount,
                    sold_at=row.timestamp,
                    customer_document=row.metadata.get("customer_document"),
                )
            )
        elif row.type == TransactionType.CANCELLATION:
            await session.merge(
                Cancellation(
                    id=row.id,
                    sale_id=row.reference,
                    operator_id=row.operator,
                    cancelled_at=row.timestamp,
                    reason=row.metadata.get("reason"),
                )
            )

    async def _scalars(self, stmt) -> list:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())
