"""No-sale ("blind drawer"): repeated drawer openings without a sale."""

from collections import Counter, defaultdict
from datetime import date, datetime
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from pdv_sentinel.shared.schemas import DrawerEventKind

from ..config import DetectionConfig
from ..models import AlertType, DetectionWindow, FraudAlert, NoSaleEvidence, Shift
from .base import DetectionModule

if TYPE_CHECKING:
    from pdv_sentinel.db.store import EntityStore


def shift_for(moment: datetime, tz: ZoneInfo) -> tuple[date, Shift]:
    """Return the (local calendar day, shift) an instant belongs to.

    Morning is [06, 12), afternoon [12, 18) and night [18, 06). The day is
    always the local calendar date, so the hours before 06:00 and after 18:00
    of one date share a night partition. Naive datetimes are taken as local
    time.
    """
    local = moment.astimezone(tz) if moment.tzinfo is not None else moment
    hour = local.hour
    if 6 <= hour < 12:
        return local.date(), Shift.MORNING
    if 12 <= hour < 18:
        return local.date(), Shift.AFTERNOON
    return local.date(), Shift.NIGHT


def shift_score(count: int, config: DetectionConfig) -> int:
    """Points for ``count`` no-sale events in one shift, capped per shift."""
    per_event = config.no_sale.points_per_event
    threshold = config.no_sale.events_per_shift
    score = per_event * min(count, threshold) + per_event * max(count - threshold, 0)
    return min(score, config.no_sale.shift_cap)


class NoSaleModule(DetectionModule):
    """Flags operators with more than ``events_per_shift`` blind openings in a shift."""

    alert_type = AlertType.NO_SALE
    name = "No Sale"
    description = "Drawer openings without a linked sale"

    async def detect(
        self,
        store: "EntityStore",
        window: DetectionWindow,
        config: DetectionConfig,
    ) -> tuple[list[FraudAlert], int]:
        events = await store.fetch_drawer_events(
            window.start, window.end, kind=DrawerEventKind.DRAWER_OPEN_NO_SALE
        )
        names = await self._operator_names(store)
        tz = ZoneInfo(config.no_sale.shift_timezone)

        partitions: dict[tuple[str, date, Shift], list] = defaultdict(list)
        for event in events:
            shift_day, shift = shift_for(event.occurred_at, tz)
            partitions[(event.operator_id, shift_day, shift)].append(event)

        alerts: list[FraudAlert] = []
        for (operator_id, shift_day, shift), shift_events in partitions.items():
            count = len(shift_events)
            if count <= config.no_sale.events_per_shift:
                continue

            pdvs = Counter(e.pdv_id for e in shift_events if e.pdv_id)
            alerts.append(
                self._alert(
                    fingerprint=f"{operator_id}:{shift_day.isoformat()}:{shift.value}",
                    operator_id=operator_id,
                    operator_name=names.get(operator_id),
                    pdv_id=pdvs.most_common(1)[0][0] if pdvs else None,
                    risk_score=shift_score(count, config),
                    evidence=NoSaleEvidence(
                        related_alerts=count,
                        shift=shift,
                        shift_day=shift_day.isoformat(),
                    ),
                )
            )

        return alerts, len(events)
