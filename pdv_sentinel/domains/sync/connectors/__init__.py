"""Connector registry: one adapter per supported database dialect."""

import importlib.util

from pdv_sentinel.shared.exceptions import UnsupportedDatabaseError

from ..models import ConnectorConfig, DatabaseType
from .base import SourceConnector, normalize_row, parse_timestamp
from .mysql import MySQLConnector
from .oracle import OracleConnector
from .postgres import PostgresConnector
from .sqlserver import SQLServerConnector

CONNECTORS: dict[DatabaseType, type[SourceConnector]] = {
    DatabaseType.MYSQL: MySQLConnector,
    DatabaseType.POSTGRESQL: PostgresConnector,
    DatabaseType.ORACLE: OracleConnector,
    DatabaseType.SQLSERVER: SQLServerConnector,
}


def driver_available(module: str) -> bool:
    return importlib.util.find_spec(module) is not None


def supported_database_types() -> list[DatabaseType]:
    return list(CONNECTORS)


def create_connector(config: ConnectorConfig) -> SourceConnector:
    """Build the adapter for ``config.type``.

    Raises ``UnsupportedDatabaseError`` when the dialect is unknown or its
    driver package is not installed.
    """
    connector_cls = CONNECTORS.get(config.type)
    if connector_cls is None:
        raise UnsupportedDatabaseError(f"Unsupported database type: {config.type}")
    if not driver_available(connector_cls.driver_module):
        raise UnsupportedDatabaseError(
            f"Driver '{connector_cls.driver_module}' for {config.type.value} is not installed"
        )
    return connector_cls(config)


__all__ = [
    "CONNECTORS",
    "MySQLConnector",
    "OracleConnector",
    "PostgresConnector",
    "SQLServerConnector",
    "SourceConnector",
    "create_connector",
    "driver_available",
    "normalize_row",
    "parse_timestamp",
    "supported_database_types",
]
