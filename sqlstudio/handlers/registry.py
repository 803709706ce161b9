"""
Handler Registry for dispatching steps to the appropriate handler.

The registry maps step types to their Handler implementations, providing the
lookup table the executor dispatches through:
- sqlserver_query: QueryStepHandler over the SQL Server executor
- redshift_query: QueryStepHandler over the Redshift executor
- merge: MergeStepHandler
"""

from typing import Optional, TYPE_CHECKING

from sqlstudio.errors import InvalidConfigurationError
from sqlstudio.handlers.base import Handler, StepContext
from sqlstudio.schemas import Step, StepType, TabularResult

if TYPE_CHECKING:
    from sqlstudio.backends import QueryExecutor


class HandlerRegistry:
    """
    Registry for handler dispatch by step type.

    Usage:
        registry = HandlerRegistry()
        registry.register(StepType.SQLSERVER_QUERY, QueryStepHandler(sqlserver))

        # Dispatch a step
        table = registry.dispatch(step, context)

        # Or use the factory with both backends
        registry = HandlerRegistry.create_default(sqlserver=..., redshift=...)
    """

    def __init__(self) -> None:
        """Initialize an empty handler registry."""
        self._handlers: dict[StepType, Handler] = {}

    def register(self, step_type: StepType, handler: Handler) -> None:
        """
        Register a handler for a step type.

        Args:
            step_type: The step type handled
            handler: Handler instance for this step type
        """
        self._handlers[StepType(step_type)] = handler

    def get(self, step_type: StepType) -> Handler:
        """
        Get handler for a step type.

        Raises:
            InvalidConfigurationError: If no handler is registered
        """
        if step_type not in self._handlers:
            registered = [t.value for t in self._handlers]
            raise InvalidConfigurationError(
                f"No handler registered for step type: {step_type.value}. "
                f"Registered: {registered}"
            )
        return self._handlers[step_type]

    def has(self, step_type: StepType) -> bool:
        return step_type in self._handlers

    def list_step_types(self) -> list[StepType]:
        return list(self._handlers)

    def dispatch(self, step: Step, context: StepContext) -> TabularResult:
        """
        Dispatch a step to the handler for its step type.

        Returns:
            The table produced by the handler
        """
        return self.get(step.step_type).execute(step, context)

    @classmethod
    def create_default(
        cls,
        sqlserver: Optional["QueryExecutor"] = None,
        redshift: Optional["QueryExecutor"] = None,
    ) -> "HandlerRegistry":
        """
        Create a registry with the merge handler and the given backends.

        A backend that is not provided has no handler; steps of that type
        fail with InvalidConfigurationError at dispatch.
        """
        from sqlstudio.handlers.merge import MergeStepHandler
        from sqlstudio.handlers.query import QueryStepHandler

        registry = cls()
        if sqlserver is not None:
            registry.register(StepType.SQLSERVER_QUERY, QueryStepHandler(sqlserver))
        if redshift is not None:
            registry.register(StepType.REDSHIFT_QUERY, QueryStepHandler(redshift))
        registry.register(StepType.MERGE, MergeStepHandler())
        return registry
