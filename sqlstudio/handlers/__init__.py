"""
Handlers module for sqlstudio step execution.

This module provides the step executor layer between the orchestrator and
the data sources:
- the executor orchestrates (Job -> Execution -> StepResult)
- handlers run one step each and return the table it produced

Usage:
    from sqlstudio.handlers import HandlerRegistry

    registry = HandlerRegistry.create_default(sqlserver=mssql, redshift=rs)
    table = registry.dispatch(step, context)
"""

from sqlstudio.handlers.base import Handler, StepContext
from sqlstudio.handlers.registry import HandlerRegistry
from sqlstudio.handlers.query import QueryStepHandler
from sqlstudio.handlers.merge import MergeStepHandler

__all__ = [
    "Handler",
    "StepContext",
    "HandlerRegistry",
    "QueryStepHandler",
    "MergeStepHandler",
]
