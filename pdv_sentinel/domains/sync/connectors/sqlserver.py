"""SQL Server ERP connector (aioodbc)."""

from datetime import datetime
from typing import Any

from sqlalchemy import URL

from ..models import DatabaseType
from .base import SourceConnector

ODBC_DRIVER = "ODBC Driver 18 for SQL Server"


class SQLServerConnector(SourceConnector):
    database_type = DatabaseType.SQLSERVER
    drivername = "mssql+aioodbc"
    driver_module = "aioodbc"

    def url(self) -> URL:
        return super().url().update_query_dict(
            {
                "driver": ODBC_DRIVER,
                "Encrypt": "yes" if self.config.ssl else "no",
                "TrustServerCertificate": "yes",
            }
        )

    def connect_args(self) -> dict[str, Any]:
        return {"timeout": self.config.connection_timeout}

    def quote(self, column: str) -> str:
        return f"[{column}]"

    def select_sql(self, from_date: datetime | None) -> str:
        return (
            f"SELECT TOP (:limit) {self.select_list} FROM {self.table}"
            f"{self.where_clause(from_date)} ORDER BY [timestamp] ASC"
        )

    def page_sql(self, from_date: datetime | None) -> str:
        return (
            f"SELECT {self.select_list} FROM {self.table}{self.where_clause(from_date)}"
            " ORDER BY [timestamp] ASC, id ASC OFFSET :offset ROWS FETCH NEXT :limit ROWS ONLY"
        )
