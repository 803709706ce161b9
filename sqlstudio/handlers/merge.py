"""
Merge Handler for merge steps.

Delegates to the merge engine. Shape problems and unresolved source tables
surface as InvalidConfigurationError; anything that goes wrong while
combining the data is a runtime StepExecutionError.
"""

from sqlstudio.errors import SqlStudioError, StepExecutionError
from sqlstudio.handlers.base import Handler, StepContext
from sqlstudio.merge import merge_tables
from sqlstudio.schemas import MergeStep, TabularResult


class MergeStepHandler(Handler):
    """Handler combining tables from the execution's table store."""

    def execute(self, step: MergeStep, context: StepContext) -> TabularResult:
        try:
            return merge_tables(step, context.tables)
        except SqlStudioError:
            raise
        except Exception as e:
            raise StepExecutionError(step.step_number, step.step_name, str(e), cause=e) from e
