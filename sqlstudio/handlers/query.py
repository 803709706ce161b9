"""
Query Handler for sqlserver_query and redshift_query steps.

Runs the step's SQL verbatim against one QueryExecutor. No templating or
parameter substitution happens at this layer.
"""

import logging

from sqlstudio.backends import QueryExecutor
from sqlstudio.errors import InvalidConfigurationError, StepExecutionError
from sqlstudio.handlers.base import Handler, StepContext
from sqlstudio.schemas import QueryStep, TabularResult

logger = logging.getLogger(__name__)


class QueryStepHandler(Handler):
    """
    Handler dispatching query steps to a database backend.

    Usage:
        handler = QueryStepHandler(SqlServerQueryExecutor(...))
        table = handler.execute(step, context)
    """

    def __init__(self, executor: QueryExecutor):
        self._executor = executor

    @property
    def executor(self) -> QueryExecutor:
        return self._executor

    def execute(self, step: QueryStep, context: StepContext) -> TabularResult:
        """
        Run the step's query.

        Raises:
            InvalidConfigurationError: If the step has no query (checked
                before the backend is contacted)
            StepExecutionError: If the backend call fails
        """
        if not step.query or not step.query.strip():
            raise InvalidConfigurationError(
                f"No query provided for {step.step_type.backend_label} step '{step.step_name}'"
            )

        logger.debug(
            "Running %s query for step %s of execution %s",
            step.step_type.value, step.step_number, context.execution_id,
        )
        try:
            result = self._executor.execute_query(step.query)
            return TabularResult.coerce(result)
        except Exception as e:
            raise StepExecutionError(step.step_number, step.step_name, str(e), cause=e) from e
