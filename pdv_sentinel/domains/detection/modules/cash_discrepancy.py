"""Cash discrepancy: drawer counts that do not match the expected amount."""

from typing import TYPE_CHECKING

from ..config import DetectionConfig
from ..models import AlertType, CashDiscrepancyEvidence, DetectionWindow, FraudAlert
from ..scoring import severity_from_discrepancy
from .base import DetectionModule

if TYPE_CHECKING:
    from pdv_sentinel.db.store import EntityStore

# Several operators may share a drawer during one count.
SHARED_DRAWER_OPERATOR = "MULTIPLE"


class CashDiscrepancyModule(DetectionModule):
    """Flags cash counts whose absolute discrepancy reaches the minimum amount.

    Severity follows the discrepancy magnitude rather than the risk score.
    """

    alert_type = AlertType.CASH_DISCREPANCY
    name = "Cash Discrepancy"
    description = "Differences between expected and counted cash"

    async def detect(
        self,
        store: "EntityStore",
        window: DetectionWindow,
        config: DetectionConfig,
    ) -> tuple[list[FraudAlert], int]:
        records = await store.fetch_cash_discrepancies(window.start, window.end)
        points = config.points.cash_discrepancy
        alerts: list[FraudAlert] = []

        for record in records:
            if record.discrepancy is None:
                continue
            magnitude = abs(record.discrepancy)
            if magnitude < config.cash.minimum_amount:
                continue

            alerts.append(
                self._alert(
                    fingerprint=str(record.id),
                    operator_id=SHARED_DRAWER_OPERATOR,
                    operator_name=f"PDV {record.pdv_id}",
                    severity=severity_from_discrepancy(magnitude, config),
                    pdv_id=record.pdv_id,
                    amount=magnitude,
                    sale_timestamp=record.discrepancy_date,
                    risk_score=points,
                    evidence=CashDiscrepancyEvidence(
                        discrepancy_id=str(record.id),
                        expected_amount=record.expected_amount,
                        actual_amount=record.actual_amount,
                        discrepancy=record.discrepancy,
                    ),
                )
            )

        return alerts, len(records)
