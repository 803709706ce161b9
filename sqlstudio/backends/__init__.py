"""
Database backends for query steps.

Usage:
    from sqlstudio.backends import build_executors

    executors = build_executors(config)
    registry = HandlerRegistry.create_default(**executors)
"""

from typing import TYPE_CHECKING

from sqlstudio.backends.base import DbApiQueryExecutor, QueryExecutor
from sqlstudio.backends.redshift import RedshiftQueryExecutor
from sqlstudio.backends.sqlserver import SqlServerQueryExecutor

if TYPE_CHECKING:
    from sqlstudio.config import StudioConfig


def build_executors(config: "StudioConfig") -> dict[str, QueryExecutor]:
    """Create an executor for every backend configured in config."""
    executors: dict[str, QueryExecutor] = {}
    if config.sqlserver is not None:
        executors["sqlserver"] = SqlServerQueryExecutor.from_config(config.sqlserver)
    if config.redshift is not None:
        executors["redshift"] = RedshiftQueryExecutor.from_config(config.redshift)
    return executors


__all__ = [
    "QueryExecutor",
    "DbApiQueryExecutor",
    "SqlServerQueryExecutor",
    "RedshiftQueryExecutor",
    "build_executors",
]
