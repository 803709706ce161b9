"""SQL Server query executor (pymssql)."""

from typing import Optional

from sqlstudio.backends.base import ConnectFn, DbApiQueryExecutor
from sqlstudio.config import ConnectionConfig

DEFAULT_PORT = 1433


class SqlServerQueryExecutor(DbApiQueryExecutor):
    """
    Runs queries against SQL Server.

    The driver is imported on first connect, so the package imports without
    pymssql installed as long as no SQL Server step runs.
    """

    backend_name = "sqlserver"

    def __init__(
        self,
        host: str,
        database: str,
        user: str,
        password: Optional[str] = None,
        port: int = DEFAULT_PORT,
        connect: Optional[ConnectFn] = None,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self._password = password
        super().__init__(connect or self._pymssql_connect)

    def _pymssql_connect(self):
        import pymssql

        return pymssql.connect(
            server=self.host,
            port=self.port,
            user=self.user,
            password=self._password,
            database=self.database,
        )

    @classmethod
    def from_config(cls, config: ConnectionConfig) -> "SqlServerQueryExecutor":
        return cls(
            host=config.host,
            port=config.port or DEFAULT_PORT,
            database=config.database,
            user=config.user,
            password=config.resolve_password(),
        )

    def __repr__(self) -> str:
        return f"SqlServerQueryExecutor(host={self.host}, database={self.database})"
