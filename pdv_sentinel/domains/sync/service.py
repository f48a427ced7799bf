"""Sync service: drives one connector through a full or incremental sync."""

import math
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from pdv_sentinel.shared.exceptions import ConnectivityError
from pdv_sentinel.shared.ids import dated_id
from pdv_sentinel.shared.single_flight import SingleFlight

from .config import SyncOptions
from .connectors import SourceConnector
from .dedup import DedupKey, bucket_for, generate_dedup_key
from .models import (
    ErrorSeverity,
    SyncError,
    SyncResult,
    SyncStatus,
    SyncType,
    TransactionRow,
)

if TYPE_CHECKING:
    from pdv_sentinel.db.store import EntityStore
    from pdv_sentinel.domains.audit.recorder import AuditRecorder

logger = structlog.get_logger()

T = TypeVar("T")

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def compute_status(error_count: int, records_processed: int) -> SyncStatus:
    if error_count == 0:
        return SyncStatus.SUCCESS
    if error_count < records_processed:
        return SyncStatus.PARTIAL
    return SyncStatus.FAILED


class _Counters:
    def __init__(self) -> None:
        self.fetched = 0
        self.processed = 0
        self.inserted = 0
        self.updated = 0
        self.skipped = 0


class SyncService:
    """Pulls transactions from one ERP connector into the entity store.

    Batches are fetched sequentially with offset pagination ordered by
    timestamp. Each fetch is retried on ``ConnectivityError`` with a delay of
    ``retry_delay_ms * attempt``; exhausted retries abort the batch loop with a
    critical error and fail the run, as does any other unexpected error. Row
    failures are collected and never abort a batch.
    """

    def __init__(
        self,
        connector: SourceConnector,
        store: "EntityStore",
        recorder: "AuditRecorder | None" = None,
        options: SyncOptions | None = None,
    ) -> None:
        self.connector = connector
        self._store = store
        self._recorder = recorder
        self.options = options or SyncOptions()
        self._guard = SingleFlight("sync")
        self.last_result: SyncResult | None = None

    @property
    def running(self) -> bool:
        return self._guard.running

    @property
    def source(self) -> str:
        return self.connector.config.source_name

    async def test_connection(self) -> bool:
        try:
            return await self.connector.test_connection()
        finally:
            await self._disconnect()

    async def sync(self, triggered_by: str = "system", is_manual: bool = False) -> SyncResult:
        with self._guard.claim():
            result = await self._sync(triggered_by, is_manual)
            self.last_result = result
        return result

    async def _sync(self, triggered_by: str, is_manual: bool) -> SyncResult:
        opts = self.options
        started_at = datetime.now(UTC)
        started = time.perf_counter()
        sync_id = dated_id("SYNC", started_at)
        sync_type = SyncType.FULL if opts.full_sync else SyncType.INCREMENTAL
        from_date = None if opts.full_sync else started_at - timedelta(days=opts.days_back)
        log = logger.bind(sync_id=sync_id, source=self.source)
        log.info("sync_started", sync_type=sync_type.value, from_date=from_date)

        counters = _Counters()
        errors: list[SyncError] = []
        keys: list[DedupKey] = []
        seen = await self._preload_keys(from_date, log) if opts.dedup_enabled else set()

        aborted = False
        try:
            await self._with_retry(self.connector.connect)
            total = await self._with_retry(self.connector.get_transaction_count, from_date)
            target = min(total, opts.max_records)
            batches = math.ceil(target / opts.batch_size)
            log.info("sync_plan", remote_records=total, target=target, batches=batches)

            if self.connector.supports_pagination:
                for batch in range(batches):
                    offset = batch * opts.batch_size
                    limit = min(opts.batch_size, target - offset)
                    rows = await self._with_retry(
                        self.connector.fetch_transactions_batch, offset, limit, from_date
                    )
                    log.info("sync_batch_fetched", batch=batch + 1, of=batches, rows=len(rows))
                    counters.fetched += len(rows)
                    await self._process(rows, counters, errors, keys, seen)
                    if not rows:
                        break
            elif target:
                rows = await self._with_retry(
                    self.connector.fetch_transactions, from_date, target
                )
                counters.fetched += len(rows)
                for i in range(0, len(rows), opts.batch_size):
                    await self._process(
                        rows[i : i + opts.batch_size], counters, errors, keys, seen
                    )
        except ConnectivityError as exc:
            log.error("sync_aborted", error=str(exc))
            aborted = True
            errors.append(
                SyncError(message=str(exc), severity=ErrorSeverity.CRITICAL, recoverable=False)
            )
        except Exception as exc:
            log.exception("sync_failed")
            aborted = True
            errors.append(
                SyncError(
                    message=f"Unexpected error: {exc}",
                    severity=ErrorSeverity.CRITICAL,
                    recoverable=False,
                )
            )
        finally:
            await self._disconnect()

        # An aborted run is failed whatever rows made it through.
        status = SyncStatus.FAILED if aborted else compute_status(len(errors), counters.processed)
        result = SyncResult(
            sync_id=sync_id,
            success=status != SyncStatus.FAILED,
            status=status,
            message=self._message(status, counters, len(errors)),
            database_type=self.connector.config.type,
            source=self.source,
            sync_type=sync_type,
            started_at=started_at,
            finished_at=datetime.now(UTC),
            duration_ms=int((time.perf_counter() - started) * 1000),
            records_fetched=counters.fetched,
            records_processed=counters.processed,
            records_inserted=counters.inserted,
            records_updated=counters.updated,
            records_skipped=counters.skipped,
            dedup_keys_generated=len(keys),
            errors=errors,
            triggered_by=triggered_by,
            is_manual=is_manual,
        )

        if self._recorder is not None:
            await self._recorder.record_sync_run(result, self.connector.config)
            await self._recorder.record_dedup_keys(sync_id, keys)

        log.info(
            "sync_completed",
            status=status.value,
            fetched=counters.fetched,
            inserted=counters.inserted,
            updated=counters.updated,
            skipped=counters.skipped,
            errors=len(errors),
            duration_ms=result.duration_ms,
        )
        return result

    async def _process(
        self,
        rows: list[TransactionRow],
        counters: _Counters,
        errors: list[SyncError],
        keys: list[DedupKey],
        seen: set[str],
    ) -> None:
        for row in rows:
            counters.processed += 1
            try:
                key = None
                if self.options.dedup_enabled:
                    key = generate_dedup_key(row, self.options.dedup_window_minutes)
                    if key.as_string() in seen:
                        counters.skipped += 1
                        continue

                outcome = await self._store.upsert_transaction(row, self.source)
                if outcome == "inserted":
                    counters.inserted += 1
                else:
                    counters.updated += 1

                if key is not None:
                    seen.add(key.as_string())
                    keys.append(key)
            except Exception as exc:
                logger.warning("sync_row_failed", row_id=row.id, error=str(exc))
                errors.append(
                    SyncError(
                        message=f"Row {row.id}: {exc}",
                        severity=ErrorSeverity.ERROR,
                        recoverable=True,
                        record=row.model_dump(mode="json"),
                    )
                )

    async def _preload_keys(self, from_date: datetime | None, log) -> set[str]:
        if not self.options.check_persisted_keys:
            return set()
        since = bucket_for(from_date, self.options.dedup_window_minutes) if from_date else EPOCH
        try:
            keys = await self._store.find_dedup_keys(since)
        except Exception as exc:
            log.warning("dedup_key_preload_failed", error=str(exc))
            return set()
        log.info("dedup_keys_preloaded", keys=len(keys))
        return keys

    async def _with_retry(self, fn: Callable[..., Awaitable[T]], *args) -> T:
        delay = self.options.retry_delay_ms / 1000
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.options.max_retries),
            wait=wait_incrementing(start=delay, increment=delay),
            retry=retry_if_exception_type(ConnectivityError),
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                result = await fn(*args)
        return result

    def _log_retry(self, state: RetryCallState) -> None:
        logger.warning(
            "sync_retry_scheduled",
            source=self.source,
            attempt=state.attempt_number,
            max_retries=self.options.max_retries,
            delay_s=state.next_action.sleep if state.next_action else None,
            error=str(state.outcome.exception()) if state.outcome else None,
        )

    async def _disconnect(self) -> None:
        try:
            await self.connector.disconnect()
        except Exception:
            logger.exception("erp_disconnect_failed", source=self.source)

    @staticmethod
    def _message(status: SyncStatus, counters: _Counters, errors: int) -> str:
        counts = (
            f"{counters.inserted} inserted, {counters.updated} updated, "
            f"{counters.skipped} skipped"
        )
        if status == SyncStatus.SUCCESS:
            return f"Sync completed: {counts}"
        if status == SyncStatus.PARTIAL:
            return f"Sync completed with {errors} errors: {counts}"
        return f"Sync failed with {errors} errors"
