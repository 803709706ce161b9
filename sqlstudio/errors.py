"""
Error classes for sqlstudio workflow execution.

These error types classify failures at the orchestrator boundaries:
- JobNotFoundError: The referenced job does not exist (always fatal)
- InvalidConfigurationError: The job or step cannot be executed as defined
  (always fatal, independent of the workflow's error_handling mode)
- StepExecutionError: A step's backend call or merge failed at runtime
  (subject to error_handling: 'stop' promotes it, 'continue' records it)

Handlers raise these errors to signal how a failure is treated.
The executor catches at the step boundary for recording and at the run
boundary for persisting the failed execution.

Error handling contract:
- Errors are exceptions, not values
- Every failure either reaches the caller or leaves a failed StepResult
"""

from typing import Optional


class SqlStudioError(Exception):
    """Base exception for sqlstudio."""
    pass


class JobNotFoundError(SqlStudioError):
    """Raised when a job id has no matching job."""

    def __init__(self, job_id):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class InvalidConfigurationError(SqlStudioError):
    """
    Structurally invalid job, step or merge definition.

    Examples:
    - Workflow job without a workflow definition
    - Query step without SQL
    - Merge with fewer than 2 source tables
    - Join without join keys
    - Reference to a table no earlier step produced

    Always fatal: the workflow cannot be executed at all.
    """
    pass


class StepExecutionError(SqlStudioError):
    """
    Runtime failure of a single step (bad SQL, lost connection, bad data).

    The executor applies the workflow's error_handling policy to these.
    """

    def __init__(
        self,
        step_number: int,
        step_name: str,
        message: str,
        cause: Optional[BaseException] = None,
    ):
        self.step_number = step_number
        self.step_name = step_name
        self.cause = cause
        super().__init__(f"Step '{step_name}' failed: {message}")
