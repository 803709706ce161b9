"""Redshift query executor (psycopg2)."""

from typing import Optional

from sqlstudio.backends.base import ConnectFn, DbApiQueryExecutor
from sqlstudio.config import ConnectionConfig

DEFAULT_PORT = 5439


class RedshiftQueryExecutor(DbApiQueryExecutor):
    """
    Runs queries against a Redshift cluster endpoint.

    The driver is imported on first connect.
    """

    backend_name = "redshift"

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
        super().__init__(connect or self._psycopg2_connect)

    def _psycopg2_connect(self):
        import psycopg2

        return psycopg2.connect(
            host=self.host,
            port=self.port,
            dbname=self.database,
            user=self.user,
            password=self._password,
        )

    @classmethod
    def from_config(cls, config: ConnectionConfig) -> "RedshiftQueryExecutor":
        return cls(
            host=config.host,
            port=config.port or DEFAULT_PORT,
            database=config.database,
            user=config.user,
            password=config.resolve_password(),
        )

    def __repr__(self) -> str:
        return f"RedshiftQueryExecutor(host={self.host}, database={self.database})"
