"""MySQL / MariaDB ERP connector (aiomysql)."""

import ssl
from datetime import datetime
from typing import Any

from ..models import DatabaseType
from .base import SourceConnector


class MySQLConnector(SourceConnector):
    database_type = DatabaseType.MYSQL
    drivername = "mysql+aiomysql"
    driver_module = "aiomysql"

    def connect_args(self) -> dict[str, Any]:
        args: dict[str, Any] = {"connect_timeout": self.config.connection_timeout}
        if self.config.ssl:
            args["ssl"] = ssl.create_default_context()
        return args

    def quote(self, column: str) -> str:
        return f"`{column}`"

    def select_sql(self, from_date: datetime | None) -> str:
        return (
            f"SELECT {self.select_list} FROM {self.table}{self.where_clause(from_date)}"
            " ORDER BY `timestamp` ASC LIMIT :limit"
        )

    def page_sql(self, from_date: datetime | None) -> str:
        return (
            f"SELECT {self.select_list} FROM {self.table}{self.where_clause(from_date)}"
            " ORDER BY `timestamp` ASC, id ASC LIMIT :limit OFFSET :offset"
        )
