"""
Base handler protocol and step context.

Handlers execute one workflow step and return the table it produced.
Each handler covers one step type:
- QueryStepHandler: sqlserver_query, redshift_query (via a QueryExecutor)
- MergeStepHandler: merge (via the merge engine)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from sqlstudio.schemas import Step, TabularResult
from sqlstudio.table_store import VariableTableStore


@dataclass
class StepContext:
    """
    Execution-scoped state handed to every handler.

    Attributes:
        job_id: The job being run
        execution_id: The execution this step belongs to
        tables: The execution's table store
    """
    job_id: Any
    execution_id: str
    tables: VariableTableStore


class Handler(ABC):
    """
    Abstract base class for step handlers.

    Handlers raise InvalidConfigurationError for steps that cannot run at all
    and StepExecutionError for runtime failures.
    """

    @abstractmethod
    def execute(self, step: Step, context: StepContext) -> TabularResult:
        """
        Execute a step.

        Args:
            step: The step to execute
            context: Execution-scoped state

        Returns:
            The table produced by the step
        """
        pass
