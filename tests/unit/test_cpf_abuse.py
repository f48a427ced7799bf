"""Unit tests for the CPF abuse module."""

from datetime import timedelta
from decimal import Decimal

import pytest

from pdv_sentinel.domains.detection.models import AlertType, Severity
from pdv_sentinel.domains.detection.modules import CpfAbuseModule
from tests.fakes import T0, make_sale

MODULE = CpfAbuseModule()
CUSTOMER_CPF = "99999999999"
EMPLOYEE_CPF = "22222222222"


def _sales(count: int, document: str, operator_id: str = "11111111111", amount: str = "10.00"):
    return [
        make_sale(
            f"S-{document}-{operator_id}-{i}",
            sold_at=T0 + timedelta(hours=i),
            operator_id=operator_id,
            amount=amount,
            customer_document=document,
        )
        for i in range(count)
    ]


class TestCpfAbuse:
    @pytest.mark.asyncio
    async def test_customer_document_under_threshold(self, fake_store, window, detection_config):
        fake_store.sales = _sales(11, CUSTOMER_CPF)
        alerts, processed = await MODULE.detect(fake_store, window, detection_config)
        assert alerts == []
        assert processed == 11

    @pytest.mark.asyncio
    async def test_customer_document_over_threshold(self, fake_store, window, detection_config):
        fake_store.sales = _sales(21, CUSTOMER_CPF)

        alerts, _ = await MODULE.detect(fake_store, window, detection_config)

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.alert_type == AlertType.CPF_ABUSE
        assert alert.risk_score == 50
        assert alert.severity == Severity.MEDIUM
        assert alert.evidence.related_alerts == 21
        assert alert.evidence.threshold == 20
        assert alert.evidence.is_employee_document is False

    @pytest.mark.asyncio
    async def test_employee_document_is_critical(self, fake_store, window, detection_config):
        fake_store.sales = _sales(11, EMPLOYEE_CPF, amount="12.50")

        alerts, _ = await MODULE.detect(fake_store, window, detection_config)

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.severity == Severity.CRITICAL
        assert alert.evidence.is_employee_document is True
        assert alert.evidence.threshold == 10
        assert alert.amount == Decimal("137.50")
        assert alert.evidence.total_amount == Decimal("137.50")
        assert alert.sale_id == f"S-{EMPLOYEE_CPF}-11111111111-0"

    @pytest.mark.asyncio
    async def test_employee_document_at_threshold(self, fake_store, window, detection_config):
        fake_store.sales = _sales(10, EMPLOYEE_CPF)
        alerts, _ = await MODULE.detect(fake_store, window, detection_config)
        assert alerts == []

    @pytest.mark.asyncio
    async def test_grouped_per_operator(self, fake_store, window, detection_config):
        # 22 uses of one document split across two operators: neither exceeds 20
        fake_store.sales = _sales(11, CUSTOMER_CPF, "11111111111") + _sales(
            11, CUSTOMER_CPF, "33333333333"
        )
        alerts, _ = await MODULE.detect(fake_store, window, detection_config)
        assert alerts == []

    @pytest.mark.asyncio
    async def test_sales_without_document_skipped(self, fake_store, window, detection_config):
        fake_store.sales = [make_sale(f"S-{i}", sold_at=T0) for i in range(30)]
        alerts, processed = await MODULE.detect(fake_store, window, detection_config)
        assert alerts == []
        assert processed == 0

    @pytest.mark.asyncio
    async def test_distinct_days_counted(self, fake_store, window, detection_config):
        fake_store.sales = [
            make_sale(
                f"S-{i}",
                sold_at=T0 - timedelta(days=i % 3),
                customer_document=EMPLOYEE_CPF,
            )
            for i in range(12)
        ]
        alerts, _ = await MODULE.detect(fake_store, window, detection_config)
        assert alerts[0].evidence.distinct_days == 3
