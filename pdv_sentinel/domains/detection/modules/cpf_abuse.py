"""CPF abuse: one identity document attached to many sales by one operator."""

from collections import defaultdict
from decimal import Decimal
from typing import TYPE_CHECKING

from pdv_sentinel.shared.schemas import SaleRecord

from ..config import DetectionConfig
from ..models import AlertType, CpfAbuseEvidence, DetectionWindow, FraudAlert, Severity
from .base import DetectionModule

if TYPE_CHECKING:
    from pdv_sentinel.db.store import EntityStore


class CpfAbuseModule(DetectionModule):
    """Flags loyalty-point farming through repeated use of one CPF.

    Sales are grouped by customer document, then by operator. A document that
    belongs to an employee has the lower threshold and always yields a
    CRITICAL alert (self-dealing).
    """

    alert_type = AlertType.CPF_ABUSE
    name = "CPF Abuse"
    description = "Repeated use of one identity document across sales"

    async def detect(
        self,
        store: "EntityStore",
        window: DetectionWindow,
        config: DetectionConfig,
    ) -> tuple[list[FraudAlert], int]:
        operators = await store.fetch_operators()
        names = {op.cpf: op.name for op in operators}
        sales = await store.fetch_sales(window.start, window.end, with_customer_document=True)

        grouped: dict[str, dict[str, list[SaleRecord]]] = defaultdict(lambda: defaultdict(list))
        processed = 0
        for sale in sales:
            if not sale.customer_document:
                continue
            processed += 1
            grouped[sale.customer_document][sale.operator_id].append(sale)

        points = config.points.cpf_abuse
        alerts: list[FraudAlert] = []

        for document, by_operator in grouped.items():
            is_employee = document in names
            threshold = (
                config.cpf.employee_document_max
                if is_employee
                else config.cpf.customer_document_max
            )

            for operator_id, operator_sales in by_operator.items():
                count = len(operator_sales)
                if count <= threshold:
                    continue

                operator_sales.sort(key=lambda s: s.sold_at)
                first = operator_sales[0]
                total = sum((s.total_amount for s in operator_sales), Decimal("0"))
                distinct_days = len({s.sold_at.date() for s in operator_sales})

                alerts.append(
                    self._alert(
                        fingerprint=f"{document}:{operator_id}:{window.end.date().isoformat()}",
                        operator_id=operator_id,
                        operator_name=names.get(operator_id),
                        severity=Severity.CRITICAL if is_employee else None,
                        pdv_id=first.pdv_id,
                        sale_id=first.id,
                        amount=total,
                        sale_timestamp=first.sold_at,
                        risk_score=points,
                        evidence=CpfAbuseEvidence(
                            related_alerts=count,
                            customer_document=document,
                            is_employee_document=is_employee,
                            threshold=threshold,
                            total_amount=total,
                            distinct_days=distinct_days,
                        ),
                    )
                )

        return alerts, processed
