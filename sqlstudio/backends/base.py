"""
Query executor protocol and the DB-API implementation shared by backends.

A query executor runs one SQL string and returns the rows it produced.
The engine treats executors as opaque: anything with an ``execute_query``
method satisfies the protocol, including test doubles.
"""

import logging
import time
from typing import Any, Callable, Protocol, Union, runtime_checkable

from sqlstudio.schemas import TabularResult

logger = logging.getLogger(__name__)

ConnectFn = Callable[[], Any]


@runtime_checkable
class QueryExecutor(Protocol):
    """
    Protocol for database backends.

    execute_query returns a TabularResult or a mapping shaped
    {"columns": [...], "rows": [...], "rowCount": n}.
    """

    def execute_query(self, sql: str) -> Union[TabularResult, dict[str, Any]]:
        ...


class DbApiQueryExecutor:
    """
    QueryExecutor over a DB-API 2.0 driver.

    A connection is opened for each query and closed afterwards, so one
    executor can serve concurrent executions on separate threads.

    Args:
        connect: Zero-argument callable returning a new DB-API connection
    """

    backend_name = "database"

    def __init__(self, connect: ConnectFn):
        self._connect = connect

    def execute_query(self, sql: str) -> TabularResult:
        started = time.monotonic()
        conn = self._connect()
        try:
            cursor = conn.cursor()
            try:
                cursor.execute(sql)
                if cursor.description is None:
                    # Statement without a result set (DDL/DML)
                    conn.commit()
                    columns: list[str] = []
                    rows: list[dict[str, Any]] = []
                    # DB-API reports -1 when the count is unknown
                    rowcount = cursor.rowcount
                    affected = rowcount if isinstance(rowcount, int) and rowcount >= 0 else None
                else:
                    columns = [d[0] for d in cursor.description]
                    rows = [dict(zip(columns, record)) for record in cursor.fetchall()]
                    affected = None
            finally:
                cursor.close()
        finally:
            conn.close()

        logger.debug(
            "%s query returned %d rows in %.3fs",
            self.backend_name, len(rows), time.monotonic() - started,
        )
        return TabularResult(columns=tuple(columns), rows=tuple(rows), affected_rows=affected)
