"""Tests for the database backends.

Drivers are never imported: every executor is built with an injected
connect factory returning a mock DB-API connection.
"""

from unittest.mock import MagicMock, patch

import pytest

from sqlstudio.backends import (
    DbApiQueryExecutor,
    QueryExecutor,
    RedshiftQueryExecutor,
    SqlServerQueryExecutor,
    build_executors,
)
from sqlstudio.config import ConnectionConfig, StudioConfig


def _connection(description=None, records=(), rowcount=-1):
    cursor = MagicMock()
    cursor.description = description
    cursor.rowcount = rowcount
    cursor.fetchall.return_value = list(records)
    conn = MagicMock()
    conn.cursor.return_value = cursor
    return conn, cursor


class TestDbApiQueryExecutor:
    """Tests for the shared DB-API executor."""

    def test_select(self):
        conn, cursor = _connection(
            description=[("id", None), ("name", None)],
            records=[(1, "Ada"), (2, "Grace")],
        )
        executor = DbApiQueryExecutor(lambda: conn)

        table = executor.execute_query("SELECT id, name FROM customers")

        cursor.execute.assert_called_once_with("SELECT id, name FROM customers")
        assert table.columns == ("id", "name")
        assert table.rows == ({"id": 1, "name": "Ada"}, {"id": 2, "name": "Grace"})
        cursor.close.assert_called_once()
        conn.close.assert_called_once()

    def test_statement_without_result_set(self):
        conn, cursor = _connection(description=None)
        executor = DbApiQueryExecutor(lambda: conn)

        table = executor.execute_query("TRUNCATE TABLE staging")

        assert table.row_count == 0
        conn.commit.assert_called_once()
        cursor.fetchall.assert_not_called()

    def test_statement_reports_affected_rows(self):
        conn, _ = _connection(description=None, rowcount=7)
        executor = DbApiQueryExecutor(lambda: conn)

        table = executor.execute_query("UPDATE customers SET active = 1")

        assert table.rows == ()
        assert table.affected_rows == 7
        assert table.row_count == 7
        conn.commit.assert_called_once()

    def test_connection_closed_on_error(self):
        conn, cursor = _connection()
        cursor.execute.side_effect = RuntimeError("syntax error")
        executor = DbApiQueryExecutor(lambda: conn)

        with pytest.raises(RuntimeError, match="syntax error"):
            executor.execute_query("SELEC 1")

        conn.close.assert_called_once()

    def test_new_connection_per_query(self):
        connect = MagicMock(side_effect=lambda: _connection(description=[("a", None)], records=[(1,)])[0])
        executor = DbApiQueryExecutor(connect)

        executor.execute_query("SELECT 1")
        executor.execute_query("SELECT 1")

        assert connect.call_count == 2

    def test_satisfies_protocol(self):
        assert isinstance(DbApiQueryExecutor(MagicMock()), QueryExecutor)


class TestSqlServerQueryExecutor:
    """Tests for SqlServerQueryExecutor."""

    def test_from_config(self, monkeypatch):
        monkeypatch.setenv("MSSQL_PW", "secret")
        config = ConnectionConfig(host="db", database="dm", user="u", password_env="MSSQL_PW")

        executor = SqlServerQueryExecutor.from_config(config)

        assert executor.port == 1433
        assert executor.host == "db"
        assert executor._password == "secret"

    def test_default_connect_uses_pymssql(self):
        fake_driver = MagicMock()
        executor = SqlServerQueryExecutor(host="db", database="dm", user="u", password="p")

        with patch.dict("sys.modules", {"pymssql": fake_driver}):
            executor._connect()

        fake_driver.connect.assert_called_once_with(
            server="db", port=1433, user="u", password="p", database="dm"
        )


class TestRedshiftQueryExecutor:
    """Tests for RedshiftQueryExecutor."""

    def test_from_config(self):
        config = ConnectionConfig(host="rs", database="an", user="u", port=5440, password="p")

        executor = RedshiftQueryExecutor.from_config(config)

        assert executor.port == 5440
        assert executor.database == "an"

    def test_default_connect_uses_psycopg2(self):
        fake_driver = MagicMock()
        executor = RedshiftQueryExecutor(host="rs", database="an", user="u", password="p")

        with patch.dict("sys.modules", {"psycopg2": fake_driver}):
            executor._connect()

        fake_driver.connect.assert_called_once_with(
            host="rs", port=5439, dbname="an", user="u", password="p"
        )

    def test_injected_connect(self):
        conn, _ = _connection(description=[("n", None)], records=[(1,)])
        executor = RedshiftQueryExecutor(host="rs", database="an", user="u", connect=lambda: conn)

        assert executor.execute_query("SELECT 1").rows == ({"n": 1},)


class TestBuildExecutors:
    """Tests for build_executors."""

    def test_only_configured_backends(self, tmp_path):
        config = StudioConfig(
            data_dir=tmp_path,
            redshift=ConnectionConfig(host="rs", database="an", user="u", password="p"),
        )

        executors = build_executors(config)

        assert list(executors) == ["redshift"]
        assert isinstance(executors["redshift"], RedshiftQueryExecutor)

    def test_both_backends(self, tmp_path):
        config = StudioConfig(
            data_dir=tmp_path,
            sqlserver=ConnectionConfig(host="db", database="dm", user="u", password="p"),
            redshift=ConnectionConfig(host="rs", database="an", user="u", password="p"),
        )

        assert set(build_executors(config)) == {"sqlserver", "redshift"}
