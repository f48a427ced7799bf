"""Detection orchestrator: runs the five modules, aggregates risk, records audit.

Idle -> Running -> {Completed, Failed} -> Idle. The transition into Running is
guarded by a process-wide single-flight lock; a second trigger is rejected
with ``RunConflictError`` and never queued.
"""

import asyncio
import time
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog

from pdv_sentinel.shared.exceptions import ConfigurationError
from pdv_sentinel.shared.ids import dated_id
from pdv_sentinel.shared.single_flight import SingleFlight

from .config import DetectionConfig, default_config
from .models import (
    AggregationResult,
    AlertType,
    DetectionRunResult,
    DetectionSummary,
    DetectionWindow,
    ModuleResult,
    RunStatus,
)
from .modules import ALL_MODULES, DetectionModule
from .risk_aggregator import RiskScoreAggregator
from .scoring import points_for

if TYPE_CHECKING:
    from pdv_sentinel.db.store import EntityStore
    from pdv_sentinel.domains.audit.recorder import AuditRecorder

logger = structlog.get_logger()

MAX_DAYS_BACK = 90


class DetectionOrchestrator:
    def __init__(
        self,
        store: "EntityStore",
        recorder: "AuditRecorder | None" = None,
        config: DetectionConfig | None = None,
        modules: list[DetectionModule] | None = None,
        aggregator: RiskScoreAggregator | None = None,
    ) -> None:
        self._store = store
        self._recorder = recorder
        self._config = config or default_config
        self._modules = modules if modules is not None else ALL_MODULES
        self._aggregator = aggregator or RiskScoreAggregator(self._config)
        self._guard = SingleFlight("detection")
        self.last_run: DetectionRunResult | None = None

    @property
    def running(self) -> bool:
        return self._guard.running

    def status(self) -> dict:
        return {
            "running": self.running,
            "last_run": self.last_run.model_dump(mode="json") if self.last_run else None,
        }

    def window(
        self,
        days_back: int | None = None,
        date_from: datetime | None = None,
        now: datetime | None = None,
    ) -> DetectionWindow:
        end = now or datetime.now(UTC)
        if date_from is not None:
            return DetectionWindow(start=date_from, end=end)
        days = days_back if days_back is not None else self._config.lookback_days
        if not 1 <= days <= MAX_DAYS_BACK:
            raise ConfigurationError(f"days_back must be between 1 and {MAX_DAYS_BACK}, got {days}")
        return DetectionWindow(start=end - timedelta(days=days), end=end)

    async def run(
        self,
        days_back: int | None = None,
        date_from: datetime | None = None,
        triggered_by: str = "system",
        is_manual: bool = False,
        sync_id: str | None = None,
    ) -> DetectionRunResult:
        window = self.window(days_back, date_from)
        with self._guard.claim():
            result = await self._execute(window, triggered_by, is_manual, sync_id)
            self.last_run = result
        return result

    async def _execute(
        self,
        window: DetectionWindow,
        triggered_by: str,
        is_manual: bool,
        sync_id: str | None,
    ) -> DetectionRunResult:
        started_at = datetime.now(UTC)
        started = time.perf_counter()
        detection_id = dated_id("DET", started_at)
        log = logger.bind(detection_id=detection_id)
        log.info(
            "detection_run_started",
            window_start=window.start.isoformat(),
            window_end=window.end.isoformat(),
            triggered_by=triggered_by,
        )

        if self._config.parallel_modules:
            module_results = list(
                await asyncio.gather(*(self._run_module(m, window) for m in self._modules))
            )
        else:
            module_results = [await self._run_module(m, window) for m in self._modules]

        errors = [f"{r.alert_type.value}: {e}" for r in module_results for e in r.errors]
        alerts = [a for r in module_results for a in r.alerts]

        alerts_stored = 0
        try:
            alerts_stored = await self._store.save_alerts(alerts)
        except Exception as exc:
            log.exception("alert_persistence_failed", alerts=len(alerts))
            errors.append(f"alert persistence: {exc}")

        aggregation: AggregationResult | None = None
        try:
            aggregation = await self._aggregator.aggregate(self._store, window)
            errors.extend(f"risk score: {e}" for e in aggregation.errors)
        except Exception as exc:
            log.exception("risk_aggregation_failed")
            errors.append(f"risk aggregation: {exc}")

        summary = self._summarize(module_results, aggregation)
        all_failed = bool(module_results) and all(r.failed for r in module_results)
        success = not all_failed
        if not errors:
            status = RunStatus.SUCCESS
        elif success:
            status = RunStatus.PARTIAL
        else:
            status = RunStatus.FAILED

        finished_at = datetime.now(UTC)
        result = DetectionRunResult(
            detection_id=detection_id,
            success=success,
            status=status,
            message=self._message(status, len(alerts), len(errors)),
            started_at=started_at,
            finished_at=finished_at,
            duration_ms=int((time.perf_counter() - started) * 1000),
            window=window,
            module_results=module_results,
            aggregation=aggregation,
            summary=summary,
            total_alerts_generated=len(alerts),
            alerts_stored=alerts_stored,
            errors=errors,
            triggered_by=triggered_by,
            is_manual=is_manual,
        )

        if self._recorder is not None:
            try:
                await self._recorder.record_detection_run(result, sync_id=sync_id)
            except Exception:
                log.exception("detection_audit_failed")

        log.info(
            "detection_run_completed",
            status=status.value,
            alerts=len(alerts),
            stored=alerts_stored,
            errors=len(errors),
            duration_ms=result.duration_ms,
        )
        return result

    async def _run_module(self, module: DetectionModule, window: DetectionWindow) -> ModuleResult:
        """Run one module, turning any failure into a zero-alert result."""
        started = time.perf_counter()
        try:
            alerts, processed = await module.detect(self._store, window, self._config)
        except Exception as exc:
            logger.exception("detection_module_failed", module=module.alert_type.value)
            return ModuleResult(
                alert_type=module.alert_type,
                duration_ms=int((time.perf_counter() - started) * 1000),
                timestamp=datetime.now(UTC),
                errors=[str(exc) or type(exc).__name__],
                failed=True,
            )

        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "detection_module_completed",
            module=module.alert_type.value,
            alerts=len(alerts),
            processed=processed,
            duration_ms=duration_ms,
        )
        return ModuleResult(
            alert_type=module.alert_type,
            alerts=alerts,
            processed_records=processed,
            duration_ms=duration_ms,
            timestamp=datetime.now(UTC),
        )

    @staticmethod
    def _summarize(
        module_results: list[ModuleResult], aggregation: AggregationResult | None
    ) -> DetectionSummary:
        counts = {r.alert_type: r.alerts_generated for r in module_results}
        return DetectionSummary(
            ghost_cancellations=counts.get(AlertType.GHOST_CANCELLATION, 0),
            pbm_deviations=counts.get(AlertType.PBM_DEVIATION, 0),
            no_sale=counts.get(AlertType.NO_SALE, 0),
            cpf_abuse=counts.get(AlertType.CPF_ABUSE, 0),
            cash_discrepancies=counts.get(AlertType.CASH_DISCREPANCY, 0),
            operators_updated=len(aggregation.scores) if aggregation else 0,
        )

    @staticmethod
    def _message(status: RunStatus, alerts: int, errors: int) -> str:
        if status == RunStatus.SUCCESS:
            return f"Detection completed: {alerts} alerts generated"
        if status == RunStatus.PARTIAL:
            return f"Detection completed with {errors} errors: {alerts} alerts generated"
        return f"Detection failed: {errors} errors"


def module_catalogue(config: DetectionConfig = default_config) -> list[dict]:
    """Static description of the registered detection modules."""
    return [
        {
            "name": m.name,
            "type": m.alert_type.value,
            "description": m.description,
            "risk_points": points_for(m.alert_type, config),
        }
        for m in ALL_MODULES
    ]


_orchestrator: DetectionOrchestrator | None = None


def get_orchestrator() -> DetectionOrchestrator:
    """Process-wide orchestrator bound to the application database."""
    global _orchestrator
    if _orchestrator is None:
        from pdv_sentinel.db.database import async_session_factory
        from pdv_sentinel.db.store import EntityStore
        from pdv_sentinel.domains.audit.recorder import AuditRecorder

        _orchestrator = DetectionOrchestrator(
            store=EntityStore(async_session_factory),
            recorder=AuditRecorder(async_session_factory),
            config=DetectionConfig.from_env(),
        )
    return _orchestrator
