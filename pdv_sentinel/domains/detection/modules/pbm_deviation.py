"""PBM deviation: approved benefit authorizations with no matching sale."""

import bisect
from collections import defaultdict
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from pdv_sentinel.shared.schemas import AuthorizationStatus

from ..config import DetectionConfig
from ..models import AlertType, DetectionWindow, FraudAlert, PbmDeviationEvidence
from .base import DetectionModule

if TYPE_CHECKING:
    from pdv_sentinel.db.store import EntityStore

UNKNOWN_OPERATOR = "UNKNOWN"


class PbmDeviationModule(DetectionModule):
    """Flags approved authorizations with no same-PDV sale within ±window.

    Sales are indexed per PDV as sorted timestamp lists, so each
    authorization is matched with a binary search instead of a scan.
    """

    alert_type = AlertType.PBM_DEVIATION
    name = "PBM Deviation"
    description = "Approved PBM authorizations without a linked sale"

    async def detect(
        self,
        store: "EntityStore",
        window: DetectionWindow,
        config: DetectionConfig,
    ) -> tuple[list[FraudAlert], int]:
        match_window = timedelta(seconds=config.pbm.match_window_seconds)
        authorizations = await store.fetch_authorizations(
            window.start, window.end, status=AuthorizationStatus.APPROVED
        )
        # Widen the sales read so authorizations near the window edges can still match.
        sales = await store.fetch_sales(window.start - match_window, window.end + match_window)
        names = await self._operator_names(store)

        sale_times: dict[str | None, list[datetime]] = defaultdict(list)
        for sale in sales:
            sale_times[sale.pdv_id].append(sale.sold_at)
        for times in sale_times.values():
            times.sort()

        points = config.points.pbm_deviation
        alerts: list[FraudAlert] = []

        for auth in authorizations:
            if _has_sale_near(sale_times.get(auth.pdv_id, []), auth.authorized_at, match_window):
                continue

            operator_id = auth.operator_id or UNKNOWN_OPERATOR
            alerts.append(
                self._alert(
                    fingerprint=auth.id,
                    operator_id=operator_id,
                    operator_name=names.get(operator_id),
                    pdv_id=auth.pdv_id,
                    amount=auth.amount,
                    risk_score=points,
                    evidence=PbmDeviationEvidence(
                        authorization_id=auth.id,
                        authorization_code=auth.authorization_code,
                        window_seconds=config.pbm.match_window_seconds,
                    ),
                )
            )

        return alerts, len(authorizations)


def _has_sale_near(times: list[datetime], at: datetime, window: timedelta) -> bool:
    """True if any timestamp in sorted ``times`` lies within ``at ± window``."""
    idx = bisect.bisect_left(times, at - window)
    return idx < len(times) and times[idx] <= at + window
