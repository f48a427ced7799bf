"""Audit recorder: persists sync and detection run metadata.

Writes never raise. A failed audit write is logged and dropped so the run
result still reaches its caller.
"""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import structlog
from sqlalchemy import case, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pdv_sentinel.db.models import (
    DetectionErrorDB,
    DetectionRunDB,
    SyncDedupKeyDB,
    SyncErrorDB,
    SyncRunDB,
)

from .models import (
    AuditReport,
    DetectionRunEntry,
    DetectionStatistics,
    RunErrorEntry,
    SyncRunEntry,
    SyncStatistics,
)

if TYPE_CHECKING:
    from pdv_sentinel.domains.detection.models import DetectionRunResult
    from pdv_sentinel.domains.sync.dedup import DedupKey
    from pdv_sentinel.domains.sync.models import ConnectorConfig, SyncError, SyncResult

logger = structlog.get_logger()

DEDUP_KEY_BATCH_SIZE = 500


class AuditRecorder:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # -- sync writes ---------------------------------------------------------

    async def record_sync_run(
        self, result: "SyncResult", config: "ConnectorConfig | None" = None
    ) -> None:
        try:
            async with self._session_factory() as session:
                session.add(
                    SyncRunDB(
                        sync_id=result.sync_id,
                        database_type=result.database_type.value,
                        sync_type=result.sync_type.value,
                        host=config.host if config else None,
                        database=config.database if config else None,
                        started_at=result.started_at,
                        finished_at=result.finished_at,
                        duration_ms=result.duration_ms,
                        records_fetched=result.records_fetched,
                        records_processed=result.records_processed,
                        records_inserted=result.records_inserted,
                        records_updated=result.records_updated,
                        records_skipped=result.records_skipped,
                        status=result.status.value,
                        error_count=result.error_count,
                        errors=[e.message for e in result.errors],
                        triggered_by=result.triggered_by,
                        is_manual=result.is_manual,
                    )
                )
                await session.commit()
        except Exception:
            logger.exception("sync_audit_failed", sync_id=result.sync_id)
            return
        logger.info("sync_audit_recorded", sync_id=result.sync_id, status=result.status.value)
        await self.record_sync_errors(result.sync_id, result.errors)

    async def record_sync_errors(self, sync_id: str, errors: Sequence["SyncError"]) -> None:
        if not errors:
            return
        now = datetime.now(UTC)
        try:
            async with self._session_factory() as session:
                session.add_all(
                    SyncErrorDB(
                        sync_id=sync_id,
                        message=e.message,
                        severity=e.severity.value,
                        recoverable=e.recoverable,
                        record_data=e.record,
                        attempt_number=e.attempt,
                        created_at=now,
                    )
                    for e in errors
                )
                await session.commit()
        except Exception:
            logger.exception("sync_error_audit_failed", sync_id=sync_id, errors=len(errors))

    async def record_dedup_keys(self, sync_id: str, keys: Iterable["DedupKey"]) -> int:
        """Insert generated dedup keys in batches; returns the number written."""
        keys = list(keys)
        if not keys:
            return 0
        now = datetime.now(UTC)
        written = 0
        try:
            async with self._session_factory() as session:
                for i in range(0, len(keys), DEDUP_KEY_BATCH_SIZE):
                    batch = keys[i : i + DEDUP_KEY_BATCH_SIZE]
                    session.add_all(
                        SyncDedupKeyDB(
                            sync_id=sync_id,
                            dedup_key=k.as_string(),
                            pdv_id=k.pdv,
                            operator_id=k.operator,
                            amount=k.amount,
                            timestamp_bucket=k.bucket,
                            reference=k.reference,
                            created_at=now,
                        )
                        for k in batch
                    )
                    await session.flush()
                    written += len(batch)
                await session.commit()
        except Exception:
            logger.exception("dedup_key_audit_failed", sync_id=sync_id, keys=len(keys))
            return 0
        logger.debug("dedup_keys_recorded", sync_id=sync_id, keys=written)
        return written

    # -- detection writes ----------------------------------------------------

    async def record_detection_run(
        self, result: "DetectionRunResult", sync_id: str | None = None
    ) -> None:
        summary = result.summary
        try:
            async with self._session_factory() as session:
                session.add(
                    DetectionRunDB(
                        detection_id=result.detection_id,
                        started_at=result.started_at,
                        finished_at=result.finished_at,
                        duration_ms=result.duration_ms,
                        records_analyzed=sum(m.processed_records for m in result.module_results),
                        alerts_generated=result.total_alerts_generated,
                        ghost_cancellations=summary.ghost_cancellations,
                        pbm_deviations=summary.pbm_deviations,
                        no_sale_events=summary.no_sale,
                        cpf_abuses=summary.cpf_abuse,
                        cash_discrepancies=summary.cash_discrepancies,
                        operators_updated=summary.operators_updated,
                        status=result.status.value,
                        error_count=len(result.errors),
                        errors=list(result.errors),
                        triggered_by=result.triggered_by,
                        is_manual=result.is_manual,
                        sync_id=sync_id,
                    )
                )
                await session.commit()
        except Exception:
            logger.exception("detection_audit_failed", detection_id=result.detection_id)
            return
        logger.info(
            "detection_audit_recorded",
            detection_id=result.detection_id,
            status=result.status.value,
        )
        await self.record_detection_errors(result)

    async def record_detection_errors(self, result: "DetectionRunResult") -> None:
        rows = [
            DetectionErrorDB(
                detection_id=result.detection_id,
                module_type=m.alert_type.value,
                message=message,
                severity="ERROR",
                recoverable=True,
                created_at=result.finished_at,
            )
            for m in result.module_results
            for message in m.errors
        ]
        if not rows:
            return
        try:
            async with self._session_factory() as session:
                session.add_all(rows)
                await session.commit()
        except Exception:
            logger.exception("detection_error_audit_failed", detection_id=result.detection_id)

    # -- reads ---------------------------------------------------------------

    async def recent_syncs(self, limit: int = 10) -> list[SyncRunEntry]:
        stmt = select(SyncRunDB).order_by(SyncRunDB.started_at.desc()).limit(limit)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [SyncRunEntry.model_validate(r) for r in rows]

    async def recent_detections(self, limit: int = 10) -> list[DetectionRunEntry]:
        stmt = select(DetectionRunDB).order_by(DetectionRunDB.started_at.desc()).limit(limit)
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [DetectionRunEntry.model_validate(r) for r in rows]

    async def sync_statistics(self, days_back: int = 30) -> SyncStatistics:
        cutoff = datetime.now(UTC) - timedelta(days=days_back)
        stmt = select(
            func.count(SyncRunDB.id),
            func.sum(case((SyncRunDB.status == "SUCCESS", 1), else_=0)),
            func.sum(case((SyncRunDB.status == "PARTIAL", 1), else_=0)),
            func.sum(case((SyncRunDB.status == "FAILED", 1), else_=0)),
            func.sum(SyncRunDB.records_inserted),
            func.sum(SyncRunDB.records_skipped),
            func.avg(SyncRunDB.duration_ms),
        ).where(SyncRunDB.started_at >= cutoff)
        async with self._session_factory() as session:
            total, ok, partial, failed, inserted, skipped, avg = (await session.execute(stmt)).one()
        return SyncStatistics(
            days_back=days_back,
            total_syncs=total or 0,
            successful_syncs=ok or 0,
            partial_syncs=partial or 0,
            failed_syncs=failed or 0,
            total_records_inserted=inserted or 0,
            total_records_skipped=skipped or 0,
            average_duration_ms=round(float(avg or 0), 1),
        )

    async def detection_statistics(self, days_back: int = 30) -> DetectionStatistics:
        cutoff = datetime.now(UTC) - timedelta(days=days_back)
        stmt = select(
            func.count(DetectionRunDB.id),
            func.sum(case((DetectionRunDB.status == "SUCCESS", 1), else_=0)),
            func.sum(case((DetectionRunDB.status == "PARTIAL", 1), else_=0)),
            func.sum(case((DetectionRunDB.status == "FAILED", 1), else_=0)),
            func.sum(DetectionRunDB.alerts_generated),
            func.avg(DetectionRunDB.duration_ms),
        ).where(DetectionRunDB.started_at >= cutoff)
        async with self._session_factory() as session:
            total, ok, partial, failed, alerts, avg = (await session.execute(stmt)).one()
        return DetectionStatistics(
            days_back=days_back,
            total_detections=total or 0,
            successful_detections=ok or 0,
            partial_detections=partial or 0,
            failed_detections=failed or 0,
            total_alerts_generated=alerts or 0,
            average_duration_ms=round(float(avg or 0), 1),
        )

    async def clean_old_dedup_keys(self, days_to_keep: int = 30) -> int:
        cutoff = datetime.now(UTC) - timedelta(days=days_to_keep)
        async with self._session_factory() as session:
            result = await session.execute(
                delete(SyncDedupKeyDB).where(SyncDedupKeyDB.created_at < cutoff)
            )
            await session.commit()
        removed = result.rowcount or 0
        logger.info("dedup_keys_cleaned", removed=removed, days_to_keep=days_to_keep)
        return removed

    async def export_report(self, start: datetime, end: datetime) -> AuditReport:
        async with self._session_factory() as session:
            syncs = (
                await session.execute(
                    select(SyncRunDB)
                    .where(SyncRunDB.started_at >= start, SyncRunDB.started_at <= end)
                    .order_by(SyncRunDB.started_at)
                )
            ).scalars().all()
            detections = (
                await session.execute(
                    select(DetectionRunDB)
                    .where(DetectionRunDB.started_at >= start, DetectionRunDB.started_at <= end)
                    .order_by(DetectionRunDB.started_at)
                )
            ).scalars().all()
            sync_errors = (
                await session.execute(
                    select(SyncErrorDB)
                    .where(SyncErrorDB.sync_id.in_([s.sync_id for s in syncs]))
                    .order_by(SyncErrorDB.id)
                )
            ).scalars().all()
            detection_errors = (
                await session.execute(
                    select(DetectionErrorDB)
                    .where(
                        DetectionErrorDB.detection_id.in_([d.detection_id for d in detections])
                    )
                    .order_by(DetectionErrorDB.id)
                )
            ).scalars().all()

        errors = [
            RunErrorEntry(
                run_kind="sync",
                run_id=e.sync_id,
                message=e.message,
                severity=e.severity,
                recoverable=e.recoverable,
                created_at=e.created_at,
            )
            for e in sync_errors
        ] + [
            RunErrorEntry(
                run_kind="detection",
                run_id=e.detection_id,
                source=e.module_type,
                message=e.message,
                severity=e.severity,
                recoverable=e.recoverable,
                created_at=e.created_at,
            )
            for e in detection_errors
        ]
        logger.info(
            "audit_report_exported",
            syncs=len(syncs),
            detections=len(detections),
            errors=len(errors),
        )
        return AuditReport(
            start=start,
            end=end,
            syncs=[SyncRunEntry.model_validate(s) for s in syncs],
            detections=[DetectionRunEntry.model_validate(d) for d in detections],
            errors=errors,
        )


_recorder: AuditRecorder | None = None


def get_audit_recorder() -> AuditRecorder:
    global _recorder
    if _recorder is None:
        from pdv_sentinel.db.database import async_session_factory

        _recorder = AuditRecorder(async_session_factory)
    return _recorder
