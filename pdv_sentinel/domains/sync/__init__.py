"""ERP synchronization domain."""

from .config import SyncOptions, load_connector_configs
from .connectors import SourceConnector, create_connector, supported_database_types
from .dedup import DedupKey, generate_dedup_key
from .job import SyncJob, get_sync_job
from .models import (
    ConnectorConfig,
    DatabaseType,
    SyncError,
    SyncJobResult,
    SyncResult,
    SyncStatus,
    TransactionRow,
)
from .service import SyncService

__all__ = [
    "ConnectorConfig",
    "DatabaseType",
    "DedupKey",
    "SourceConnector",
    "SyncError",
    "SyncJob",
    "SyncJobResult",
    "SyncOptions",
    "SyncResult",
    "SyncService",
    "SyncStatus",
    "TransactionRow",
    "create_connector",
    "generate_dedup_key",
    "get_sync_job",
    "load_connector_configs",
    "supported_database_types",
]
