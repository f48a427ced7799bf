"""Oracle ERP connector (python-oracledb, async mode)."""

from datetime import datetime
from typing import Any

from sqlalchemy import URL

from ..models import DatabaseType
from .base import SourceConnector


class OracleConnector(SourceConnector):
    """``database`` is the Oracle service name.

    Unpaged fetches use ROWNUM; paged fetches need OFFSET/FETCH (12c+).
    """

    database_type = DatabaseType.ORACLE
    drivername = "oracle+oracledb"
    driver_module = "oracledb"
    ping_sql = "SELECT 1 FROM DUAL"

    def url(self) -> URL:
        return URL.create(
            self.drivername,
            username=self.config.username,
            password=self.config.password or None,
            host=self.config.host,
            port=self.config.port,
            query={"service_name": self.config.database},
        )

    def connect_args(self) -> dict[str, Any]:
        args: dict[str, Any] = {"tcp_connect_timeout": float(self.config.connection_timeout)}
        if self.config.ssl:
            args["protocol"] = "tcps"
        return args

    def quote(self, column: str) -> str:
        return f'"{column.upper()}"'

    def select_sql(self, from_date: datetime | None) -> str:
        ts = self.quote("timestamp")
        inner = (
            f"SELECT {self.select_list} FROM {self.table}{self.where_clause(from_date)}"
            f" ORDER BY {ts} ASC"
        )
        return f"SELECT * FROM ({inner}) WHERE ROWNUM <= :limit"

    def page_sql(self, from_date: datetime | None) -> str:
        ts = self.quote("timestamp")
        return (
            f"SELECT {self.select_list} FROM {self.table}{self.where_clause(from_date)}"
            f" ORDER BY {ts} ASC, id ASC OFFSET :offset ROWS FETCH NEXT :limit ROWS ONLY"
        )
