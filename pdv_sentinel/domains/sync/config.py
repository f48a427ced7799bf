"""Sync run options and connector configuration loading."""

from dataclasses import dataclass
from pathlib import Path

import yaml

from pdv_sentinel.config import settings
from pdv_sentinel.shared.exceptions import ConfigurationError

from .models import ConnectorConfig


@dataclass
class SyncOptions:
    batch_size: int = settings.sync_batch_size
    max_records: int = settings.sync_max_records
    days_back: int = settings.sync_days_back
    full_sync: bool = False
    dedup_enabled: bool = True
    dedup_window_minutes: int = settings.sync_dedup_window_minutes
    check_persisted_keys: bool = True
    max_retries: int = settings.sync_max_retries
    retry_delay_ms: int = settings.sync_retry_delay_ms

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be positive")
        if self.max_records < 0:
            raise ConfigurationError("max_records must not be negative")
        if self.max_retries < 1:
            raise ConfigurationError("max_retries must be at least 1")
        if self.dedup_window_minutes < 1:
            raise ConfigurationError("dedup_window_minutes must be at least 1")


def load_connector_configs(path: str | Path) -> list[ConnectorConfig]:
    """Read connector configs from a YAML file.

    The file holds either a list of connector mappings or a mapping with a
    ``connectors`` list. Mapping keys under ``connectors`` may also be named
    entries, in which case the key becomes the connector name.
    """
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as exc:
        raise ConfigurationError(f"Connector config file not found: {path}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Connector config file is not valid YAML: {exc}") from exc

    if isinstance(data, dict):
        data = data.get("connectors", [])
    if isinstance(data, dict):
        data = [{"name": name, **(entry or {})} for name, entry in data.items()]
    if not isinstance(data, list) or not data:
        raise ConfigurationError(f"No connectors defined in {path}")
    for entry in data:
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Connector entries must be mappings, got {entry!r}")
    return [ConnectorConfig.parse(entry) for entry in data]
