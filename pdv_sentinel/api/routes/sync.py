"""ERP synchronization endpoints."""

from typing import Any

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from pdv_sentinel.config import settings
from pdv_sentinel.domains.sync.config import SyncOptions, load_connector_configs
from pdv_sentinel.domains.sync.connectors import CONNECTORS, driver_available
from pdv_sentinel.domains.sync.job import SyncJob, get_sync_job
from pdv_sentinel.domains.sync.models import ConnectorConfig
from pdv_sentinel.shared.exceptions import ConfigurationError

logger = structlog.get_logger()
router = APIRouter(prefix="/api/v1/sync", tags=["sync"])


class SyncRunRequest(BaseModel):
    connectors: list[dict[str, Any]] | None = None
    full_sync: bool = False
    days_back: int = Field(default=settings.sync_days_back, ge=1)
    batch_size: int = Field(default=settings.sync_batch_size, ge=1)
    max_records: int = Field(default=settings.sync_max_records, ge=0)
    dedup_enabled: bool = True
    triggered_by: str = "api"


def _resolve_configs(raw: list[dict[str, Any]] | None) -> list[ConnectorConfig]:
    if raw:
        return [ConnectorConfig.parse(entry) for entry in raw]
    if settings.erp_config_path:
        return load_connector_configs(settings.erp_config_path)
    raise ConfigurationError("No connectors given and ERP_CONFIG_PATH is not set")


@router.post("/run")
async def run_sync(
    request: SyncRunRequest | None = None,
    job: SyncJob = Depends(get_sync_job),  # noqa: B008
) -> dict:
    request = request or SyncRunRequest()
    configs = _resolve_configs(request.connectors)
    options = SyncOptions(
        batch_size=request.batch_size,
        max_records=request.max_records,
        days_back=request.days_back,
        full_sync=request.full_sync,
        dedup_enabled=request.dedup_enabled,
    )
    result = await job.run(
        configs, options, triggered_by=request.triggered_by, is_manual=True
    )
    return {
        "success": result.success,
        "duration_ms": result.duration_ms,
        "records_inserted": result.records_inserted,
        "results": [
            {
                "sync_id": r.sync_id,
                "source": r.source,
                "status": r.status.value,
                "message": r.message,
                "records_inserted": r.records_inserted,
                "records_updated": r.records_updated,
                "records_skipped": r.records_skipped,
                "error_count": r.error_count,
                "duration_ms": r.duration_ms,
            }
            for r in result.results
        ],
        "failures": result.failures,
    }


@router.post("/test-connection")
async def test_connection(
    connector: dict[str, Any],
    job: SyncJob = Depends(get_sync_job),  # noqa: B008
) -> dict:
    config = ConnectorConfig.parse(connector)
    connected = await job.test_connection(config)
    logger.info("erp_connection_tested", source=config.source_name, connected=connected)
    return {"source": config.source_name, "connected": connected}


@router.get("/status")
async def sync_status(job: SyncJob = Depends(get_sync_job)) -> dict:  # noqa: B008
    return job.status()


@router.get("/databases")
async def supported_databases() -> dict:
    return {
        "databases": [
            {
                "type": db_type.value,
                "driver": cls.driver_module,
                "installed": driver_available(cls.driver_module),
            }
            for db_type, cls in CONNECTORS.items()
        ]
    }
