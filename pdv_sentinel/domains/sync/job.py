"""Process-wide sync job over one or more ERP connectors."""

import asyncio
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from pdv_sentinel.shared.single_flight import SingleFlight

from .config import SyncOptions
from .connectors import SourceConnector, create_connector
from .models import ConnectorConfig, SyncJobResult, SyncResult
from .service import SyncService

if TYPE_CHECKING:
    from pdv_sentinel.db.store import EntityStore
    from pdv_sentinel.domains.audit.recorder import AuditRecorder

logger = structlog.get_logger()


class SyncJob:
    """Syncs several connectors concurrently under one single-flight guard.

    Every connector is built before the run starts, so a configuration error
    rejects the whole job. Connectors are I/O-isolated, so one that fails
    while syncing is reported in ``failures`` and never stops the others.
    """

    def __init__(
        self,
        store: "EntityStore",
        recorder: "AuditRecorder | None" = None,
        connector_factory: Callable[[ConnectorConfig], SourceConnector] = create_connector,
    ) -> None:
        self._store = store
        self._recorder = recorder
        self._connector_factory = connector_factory
        self._guard = SingleFlight("sync")
        self.last_result: SyncJobResult | None = None
        self.sync_count = 0

    @property
    def running(self) -> bool:
        return self._guard.running

    def status(self) -> dict:
        return {
            "running": self.running,
            "sync_count": self.sync_count,
            "last_run": self.last_result.model_dump(mode="json") if self.last_result else None,
        }

    def service_for(
        self, config: ConnectorConfig, options: SyncOptions | None = None
    ) -> SyncService:
        return SyncService(
            self._connector_factory(config), self._store, self._recorder, options
        )

    async def test_connection(self, config: ConnectorConfig) -> bool:
        return await self.service_for(config).test_connection()

    async def run(
        self,
        configs: list[ConnectorConfig],
        options: SyncOptions | None = None,
        triggered_by: str = "system",
        is_manual: bool = False,
    ) -> SyncJobResult:
        # Unsupported dialects and missing drivers fail here, before any sync starts.
        services = [self.service_for(c, options) for c in configs]
        with self._guard.claim():
            started_at = datetime.now(UTC)
            started = time.perf_counter()
            logger.info("sync_job_started", connectors=len(configs), triggered_by=triggered_by)

            outcomes = await asyncio.gather(
                *(s.sync(triggered_by=triggered_by, is_manual=is_manual) for s in services),
                return_exceptions=True,
            )

            results: list[SyncResult] = []
            failures: dict[str, str] = {}
            for config, outcome in zip(configs, outcomes):
                if isinstance(outcome, SyncResult):
                    results.append(outcome)
                    if not outcome.success:
                        failures[config.source_name] = outcome.message
                elif isinstance(outcome, Exception):
                    logger.error(
                        "sync_connector_failed", source=config.source_name, error=str(outcome)
                    )
                    failures[config.source_name] = str(outcome)
                else:
                    raise outcome

            result = SyncJobResult(
                success=bool(configs) and not failures,
                started_at=started_at,
                finished_at=datetime.now(UTC),
                duration_ms=int((time.perf_counter() - started) * 1000),
                results=results,
                failures=failures,
            )
            self.last_result = result
            self.sync_count += 1

        logger.info(
            "sync_job_completed",
            success=result.success,
            inserted=result.records_inserted,
            failures=len(failures),
            duration_ms=result.duration_ms,
        )
        return result


_sync_job: SyncJob | None = None


def get_sync_job() -> SyncJob:
    """Process-wide sync job bound to the application database."""
    global _sync_job
    if _sync_job is None:
        from pdv_sentinel.db.database import async_session_factory
        from pdv_sentinel.db.store import EntityStore
        from pdv_sentinel.domains.audit.recorder import AuditRecorder

        _sync_job = SyncJob(
            store=EntityStore(async_session_factory),
            recorder=AuditRecorder(async_session_factory),
        )
    return _sync_job
