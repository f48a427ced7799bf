"""Abstract base class for detection modules."""

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from pdv_sentinel.shared.ids import dated_id

from ..config import DetectionConfig
from ..models import AlertEvidence, AlertType, DetectionWindow, FraudAlert, Severity
from ..scoring import severity_from_score

if TYPE_CHECKING:
    from pdv_sentinel.db.store import EntityStore


class DetectionModule(ABC):
    """Base class for the five detection modules.

    A module only reads from the entity store; the alerts it finds are
    returned to the orchestrator, which owns persistence.
    """

    alert_type: AlertType
    name: str
    description: str

    @abstractmethod
    async def detect(
        self,
        store: "EntityStore",
        window: DetectionWindow,
        config: DetectionConfig,
    ) -> tuple[list[FraudAlert], int]:
        """Scan ``window`` and return ``(alerts, processed_record_count)``."""
        ...

    async def _operator_names(self, store: "EntityStore") -> dict[str, str]:
        return {op.cpf: op.name for op in await store.fetch_operators()}

    def _alert(
        self,
        *,
        fingerprint: str,
        operator_id: str,
        risk_score: int,
        evidence: AlertEvidence,
        operator_name: str | None = None,
        severity: Severity | None = None,
        pdv_id: str | None = None,
        sale_id: str | None = None,
        cancellation_id: str | None = None,
        amount: Decimal | None = None,
        sale_timestamp: datetime | None = None,
        cancellation_timestamp: datetime | None = None,
        delay_seconds: int | None = None,
    ) -> FraudAlert:
        """Convenience: build an alert tagged with this module's type."""
        now = datetime.now(UTC)
        return FraudAlert(
            alert_id=dated_id("ALERT", now),
            alert_type=self.alert_type,
            severity=severity or severity_from_score(risk_score),
            operator_id=operator_id,
            operator_name=operator_name,
            pdv_id=pdv_id,
            sale_id=sale_id,
            cancellation_id=cancellation_id,
            amount=amount,
            sale_timestamp=sale_timestamp,
            cancellation_timestamp=cancellation_timestamp,
            delay_seconds=delay_seconds,
            risk_score=risk_score,
            evidence=evidence,
            fingerprint=f"{self.alert_type.value}:{fingerprint}",
            created_at=now,
        )
