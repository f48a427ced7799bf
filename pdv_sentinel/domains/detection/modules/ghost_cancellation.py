"""Ghost cancellation: a sale cancelled long after the customer left."""

import math
from typing import TYPE_CHECKING

import structlog

from ..config import DetectionConfig
from ..models import AlertType, DetectionWindow, FraudAlert, GhostCancellationEvidence
from .base import DetectionModule

if TYPE_CHECKING:
    from pdv_sentinel.db.store import EntityStore

logger = structlog.get_logger()


class GhostCancellationModule(DetectionModule):
    """Flags cancellations recorded more than ``delay_seconds`` after their sale.

    Cancellations whose sale is absent from the window (or that carry no sale
    reference at all) are ignored.
    """

    alert_type = AlertType.GHOST_CANCELLATION
    name = "Ghost Cancellation"
    description = "Cancellations recorded well after the sale completed"

    async def detect(
        self,
        store: "EntityStore",
        window: DetectionWindow,
        config: DetectionConfig,
    ) -> tuple[list[FraudAlert], int]:
        sales = await store.fetch_sales(window.start, window.end)
        cancellations = await store.fetch_cancellations(window.start, window.end)
        names = await self._operator_names(store)

        sales_by_id = {sale.id: sale for sale in sales}
        threshold = config.ghost.delay_seconds
        points = config.points.ghost_cancellation
        alerts: list[FraudAlert] = []
        unlinked = 0

        for cancellation in cancellations:
            sale = sales_by_id.get(cancellation.sale_id) if cancellation.sale_id else None
            if sale is None:
                unlinked += 1
                continue

            delta = (cancellation.cancelled_at - sale.sold_at).total_seconds()
            delay_seconds = math.floor(delta)
            if delay_seconds <= threshold:
                continue

            alerts.append(
                self._alert(
                    fingerprint=cancellation.id,
                    operator_id=sale.operator_id,
                    operator_name=names.get(sale.operator_id),
                    pdv_id=sale.pdv_id,
                    sale_id=sale.id,
                    cancellation_id=cancellation.id,
                    amount=sale.total_amount,
                    sale_timestamp=sale.sold_at,
                    cancellation_timestamp=cancellation.cancelled_at,
                    delay_seconds=delay_seconds,
                    risk_score=points,
                    evidence=GhostCancellationEvidence(
                        delay_seconds=delay_seconds, threshold_seconds=threshold
                    ),
                )
            )

        if unlinked:
            logger.debug("ghost_cancellation_unlinked", count=unlinked)

        return alerts, len(cancellations)
