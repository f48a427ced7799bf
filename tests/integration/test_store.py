"""Integration tests for the entity store over SQLite."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from pdv_sentinel.db.models import (
    Cancellation,
    CashDiscrepancyRecord,
    DrawerEvent,
    ErpTransaction,
    PbmAuthorization,
    Sale,
    SyncDedupKeyDB,
)
from pdv_sentinel.domains.detection.config import DetectionConfig
from pdv_sentinel.domains.detection.models import (
    AlertType,
    DetectionWindow,
    RiskLevel,
    RiskScoreDetails,
)
from pdv_sentinel.domains.detection.modules import GhostCancellationModule
from pdv_sentinel.domains.sync.models import TransactionType
from pdv_sentinel.shared.schemas import AuthorizationStatus, DrawerEventKind
from tests.fakes import T0, make_row

pytestmark = pytest.mark.integration

WINDOW = DetectionWindow(start=T0 - timedelta(days=1), end=T0 + timedelta(days=1))


async def _add(session_factory, *rows):
    async with session_factory() as session:
        session.add_all(rows)
        await session.commit()


class TestReads:
    @pytest.mark.asyncio
    async def test_fetch_sales_window(self, store, session_factory):
        await _add(
            session_factory,
            Sale(id="S-1", operator_id="1", pdv_id="P1", total_amount=Decimal("10"), sold_at=T0),
            Sale(
                id="S-2",
                operator_id="1",
                pdv_id="P1",
                total_amount=Decimal("10"),
                sold_at=T0 - timedelta(days=3),
            ),
            Sale(
                id="S-3",
                operator_id="1",
                pdv_id="P1",
                total_amount=Decimal("245.50"),
                sold_at=T0 + timedelta(hours=1),
                customer_document="99999999999",
            ),
        )

        sales = await store.fetch_sales(WINDOW.start, WINDOW.end)
        assert [s.id for s in sales] == ["S-1", "S-3"]
        assert sales[0].sold_at == T0
        assert sales[1].total_amount == Decimal("245.50")

        with_doc = await store.fetch_sales(WINDOW.start, WINDOW.end, with_customer_document=True)
        assert [s.id for s in with_doc] == ["S-3"]

    @pytest.mark.asyncio
    async def test_fetch_drawer_events_by_kind(self, store, session_factory):
        await _add(
            session_factory,
            DrawerEvent(id="E-1", operator_id="1", kind="drawer_open_no_sale", occurred_at=T0),
            DrawerEvent(id="E-2", operator_id="1", kind="cash_in", occurred_at=T0),
        )
        events = await store.fetch_drawer_events(
            WINDOW.start, WINDOW.end, kind=DrawerEventKind.DRAWER_OPEN_NO_SALE
        )
        assert [e.id for e in events] == ["E-1"]
        assert events[0].occurred_at.tzinfo is not None
        assert len(await store.fetch_drawer_events(WINDOW.start, WINDOW.end)) == 2

    @pytest.mark.asyncio
    async def test_fetch_authorizations_by_status(self, store, session_factory):
        await _add(
            session_factory,
            PbmAuthorization(
                id="A-1", authorization_code="X1", authorized_at=T0, status="approved"
            ),
            PbmAuthorization(
                id="A-2", authorization_code="X2", authorized_at=T0, status="declined"
            ),
        )
        approved = await store.fetch_authorizations(
            WINDOW.start, WINDOW.end, status=AuthorizationStatus.APPROVED
        )
        assert [a.id for a in approved] == ["A-1"]

    @pytest.mark.asyncio
    async def test_fetch_cash_discrepancies(self, store, session_factory):
        await _add(
            session_factory,
            CashDiscrepancyRecord(
                pdv_id="P1",
                expected_amount=Decimal("100"),
                actual_amount=Decimal("40"),
                discrepancy=Decimal("-60"),
                discrepancy_date=T0,
            ),
        )
        (record,) = await store.fetch_cash_discrepancies(WINDOW.start, WINDOW.end)
        assert record.discrepancy == Decimal("-60")
        assert isinstance(record.id, int)

    @pytest.mark.asyncio
    async def test_fetch_operators(self, store):
        operators = await store.fetch_operators()
        assert [(o.cpf, o.name) for o in operators] == [
            ("11111111111", "Ana Souza"),
            ("22222222222", "Bruno Lima"),
        ]


class TestAlerts:
    @pytest.mark.asyncio
    async def test_save_skips_known_fingerprints(self, store, session_factory):
        await _add(
            session_factory,
            Sale(
                id="S-1", operator_id="11111111111", total_amount=Decimal("20"), sold_at=T0
            ),
            Cancellation(id="C-1", sale_id="S-1", cancelled_at=T0 + timedelta(minutes=5)),
        )
        module, config = GhostCancellationModule(), DetectionConfig()

        first, _ = await module.detect(store, WINDOW, config)
        second, _ = await module.detect(store, WINDOW, config)

        assert await store.save_alerts(first) == 1
        assert await store.save_alerts(second) == 0
        assert await store.save_alerts([]) == 0

        (stored,) = await store.fetch_alerts(since=T0 - timedelta(days=365))
        assert stored.alert_type == AlertType.GHOST_CANCELLATION
        assert stored.evidence.kind == "ghost_cancellation"
        assert stored.evidence.delay_seconds == 300
        assert stored.operator_name == "Ana Souza"
        assert stored.fingerprint == "GHOST_CANCELLATION:C-1"


class TestRiskScores:
    @pytest.mark.asyncio
    async def test_upsert(self, store):
        details = RiskScoreDetails(
            operator_id="11111111111",
            ghost_cancellations=2,
            total_score=60,
            risk_level=RiskLevel.MEDIUM,
        )
        assert await store.upsert_risk_score(details) == "inserted"
        details.total_score = 400
        details.risk_level = RiskLevel.CRITICAL
        assert await store.upsert_risk_score(details) == "updated"


class TestTransactions:
    @pytest.mark.asyncio
    async def test_upsert_keyed_by_source(self, store, session_factory):
        row = make_row("T-1", T0)
        assert await store.upsert_transaction(row, "loja-centro") == "inserted"
        assert await store.upsert_transaction(row, "loja-centro") == "updated"
        assert await store.upsert_transaction(row, "loja-norte") == "inserted"

        async with session_factory() as session:
            count = await session.scalar(select(func.count(ErpTransaction.id)))
        assert count == 2

    @pytest.mark.asyncio
    async def test_sale_projection(self, store):
        row = make_row("T-1", T0, amount="33.30").model_copy(
            update={"metadata": {"customer_document": "99999999999"}}
        )
        await store.upsert_transaction(row, "loja-centro")

        (sale,) = await store.fetch_sales(WINDOW.start, WINDOW.end)
        assert sale.id == "T-1"
        assert sale.total_amount == Decimal("33.30")
        assert sale.customer_document == "99999999999"

    @pytest.mark.asyncio
    async def test_cancellation_projection(self, store):
        sale = make_row("T-1", T0)
        cancellation = make_row("T-2", T0 + timedelta(minutes=3), reference="T-1").model_copy(
            update={"type": TransactionType.CANCELLATION, "metadata": {"reason": "wrong item"}}
        )
        await store.upsert_transaction(sale, "loja-centro")
        await store.upsert_transaction(cancellation, "loja-centro")

        (stored,) = await store.fetch_cancellations(WINDOW.start, WINDOW.end)
        assert stored.sale_id == "T-1"
        assert stored.reason == "wrong item"
        assert len(await store.fetch_sales(WINDOW.start, WINDOW.end)) == 1


class TestDedupKeys:
    @pytest.mark.asyncio
    async def test_find_since(self, store, session_factory):
        def key(name, bucket):
            return SyncDedupKeyDB(
                sync_id="SYNC-1",
                dedup_key=name,
                pdv_id="P1",
                operator_id="1",
                amount=Decimal("1"),
                timestamp_bucket=bucket,
                created_at=T0,
            )

        await _add(session_factory, key("old", T0 - timedelta(days=10)), key("new", T0))
        assert await store.find_dedup_keys(T0 - timedelta(days=1)) == {"new"}
