"""Per-operator risk score aggregation over the alerts in a detection window.

score = 30*ghost + 40*pbm + 20*no_sale + 50*cpf_abuse + 35*cash_discrepancy

Risk levels:
  LOW       0-50
  MEDIUM    51-150
  HIGH      151-300
  CRITICAL  301+

Every known operator gets a row, including operators with no alerts, so the
stored table always reflects the latest window. The write is a keyed upsert,
which makes re-running over an unchanged alert set idempotent.
"""

import time
from collections import Counter, defaultdict
from typing import TYPE_CHECKING

import structlog

from .config import DetectionConfig, default_config
from .models import AggregationResult, AlertType, DetectionWindow, RiskLevel
from .scoring import score_operator

if TYPE_CHECKING:
    from pdv_sentinel.db.store import EntityStore

logger = structlog.get_logger()


class RiskScoreAggregator:
    def __init__(self, config: DetectionConfig | None = None) -> None:
        self._config = config or default_config

    async def aggregate(self, store: "EntityStore", window: DetectionWindow) -> AggregationResult:
        start = time.perf_counter()
        operators = await store.fetch_operators()
        alerts = await store.fetch_alerts(since=window.start)

        counts: dict[str, Counter[AlertType]] = defaultdict(Counter)
        for alert in alerts:
            counts[alert.operator_id][alert.alert_type] += 1

        result = AggregationResult()
        for operator in operators:
            result.operators_processed += 1
            details = score_operator(operator.cpf, dict(counts.get(operator.cpf, {})), self._config)
            try:
                await store.upsert_risk_score(details)
            except Exception as exc:
                logger.exception("risk_score_upsert_failed", operator_id=operator.cpf)
                result.errors.append(f"{operator.cpf}: {exc}")
                continue
            result.scores.append(details)

        result.high_risk_operators = sum(
            1 for s in result.scores if s.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
        )
        result.duration_ms = int((time.perf_counter() - start) * 1000)

        logger.info(
            "risk_scores_calculated",
            operators=result.operators_processed,
            critical=sum(1 for s in result.scores if s.risk_level == RiskLevel.CRITICAL),
            high=sum(1 for s in result.scores if s.risk_level == RiskLevel.HIGH),
            errors=len(result.errors),
        )
        return result
