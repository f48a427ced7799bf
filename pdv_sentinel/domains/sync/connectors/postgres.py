"""PostgreSQL ERP connector (asyncpg)."""

import ssl
from datetime import datetime
from typing import Any

from ..models import DatabaseType
from .base import SourceConnector


class PostgresConnector(SourceConnector):
    database_type = DatabaseType.POSTGRESQL
    drivername = "postgresql+asyncpg"
    driver_module = "asyncpg"

    def connect_args(self) -> dict[str, Any]:
        args: dict[str, Any] = {"timeout": self.config.connection_timeout}
        if self.config.ssl:
            args["ssl"] = ssl.create_default_context()
        return args

    def select_sql(self, from_date: datetime | None) -> str:
        return (
            f"SELECT {self.select_list} FROM {self.table}{self.where_clause(from_date)}"
            f' ORDER BY "timestamp" ASC LIMIT :limit'
        )

    def page_sql(self, from_date: datetime | None) -> str:
        return (
            f"SELECT {self.select_list} FROM {self.table}{self.where_clause(from_date)}"
            f' ORDER BY "timestamp" ASC, id ASC LIMIT :limit OFFSET :offset'
        )
