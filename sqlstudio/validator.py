"""
Workflow Validator - pre-flight checks on a job before it runs.

Validation is pure: it reads the Job and either returns or raises
InvalidConfigurationError. The executor calls it before creating an
execution record, so an invalid job leaves no trace in the Job Service.
"""

from sqlstudio.errors import InvalidConfigurationError
from sqlstudio.schemas import Job, JobType


def _invalid(job: Job, detail: str) -> InvalidConfigurationError:
    return InvalidConfigurationError(f"Invalid job configuration for job {job.id}: {detail}")


def validate_job(job: Job) -> None:
    """
    Check that a job can be executed as defined.

    Rules:
    - workflow jobs need a workflow definition with at least one step
    - function jobs need a target function
    - step numbers and save_as names are unique within a workflow

    Raises:
        InvalidConfigurationError: If any rule is violated
    """
    if job.job_type == JobType.FUNCTION:
        if not job.target_function:
            raise _invalid(job, "function job has no target_function")
        return

    workflow = job.workflow_definition
    if workflow is None or not workflow.steps:
        raise _invalid(job, "workflow job has no steps")

    seen_numbers: set[int] = set()
    seen_outputs: set[str] = set()
    for step in workflow.steps:
        if step.step_number in seen_numbers:
            raise _invalid(job, f"duplicate step_number {step.step_number}")
        seen_numbers.add(step.step_number)

        name = step.output_name
        if name is None:
            continue
        if name in seen_outputs:
            raise _invalid(job, f"duplicate save_as name '{name}'")
        seen_outputs.add(name)
