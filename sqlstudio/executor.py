"""
Executor - Orchestration of a single job run.

The JobExecutor implements:
- Job loading and pre-flight validation
- Execution record lifecycle (pending -> running -> completed | failed)
- Step dispatch to handlers via HandlerRegistry
- The per-execution table store that carries saved tables between steps
- Retry of runtime step failures (job.max_retries)
- error_handling semantics ('stop' aborts, 'continue' records and moves on)
- Lifecycle events through a progress sink

Execution flow:
1. Load the job, raise JobNotFoundError if absent
2. Validate the job (no execution record for an invalid job)
3. Create the execution record, mark it running, emit execution_started
4. Function job: invoke the target function once
   Workflow job: for each step in ascending step_number order
   a. emit step_started
   b. dispatch to the handler for its step_type (with retries)
   c. publish the output under save_as, append a StepResult, emit
      step_completed / step_failed, persist step_results
5. Persist the terminal state and emit execution_completed or
   execution_failed

Error classes:
- InvalidConfigurationError, JobNotFoundError: always fatal
- StepExecutionError: subject to the workflow's error_handling
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from sqlstudio.broadcaster import EventType, ProgressSink, progress_event
from sqlstudio.errors import (
    InvalidConfigurationError,
    JobNotFoundError,
    SqlStudioError,
    StepExecutionError,
)
from sqlstudio.functions import FunctionRegistry, get_default_registry
from sqlstudio.handlers import HandlerRegistry, StepContext
from sqlstudio.job_service import JobService
from sqlstudio.schemas import (
    ErrorHandling,
    Execution,
    ExecutionStatus,
    Job,
    JobType,
    Step,
    StepResult,
    StepStatus,
    TabularResult,
    TriggerType,
)
from sqlstudio.table_store import VariableTableStore
from sqlstudio.utils import retry_with_backoff
from sqlstudio.validator import validate_job

logger = logging.getLogger(__name__)

FUNCTION_STEP_TYPE = "function"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_trigger_type(value: Any) -> TriggerType:
    try:
        return TriggerType(value)
    except ValueError:
        raise InvalidConfigurationError(
            f"Unknown trigger_type: {value!r} (expected manual or scheduled)"
        ) from None


@dataclass
class _Run:
    """State owned by one execution."""
    job: Job
    execution_id: str
    started_at: datetime
    tables: VariableTableStore = field(default_factory=VariableTableStore)
    step_results: list[StepResult] = field(default_factory=list)


class JobExecutor:
    """
    Runs jobs and records their executions.

    The executor holds no per-run state, so one instance can serve concurrent
    execute_job calls on separate threads.

    Usage:
        registry = HandlerRegistry.create_default(sqlserver=mssql, redshift=rs)
        executor = JobExecutor(
            job_service=InMemoryJobService([job]),
            handlers=registry,
            progress=ProgressBroadcaster(SubscriptionHub()),
        )
        execution = executor.execute_job(job.id)
    """

    def __init__(
        self,
        job_service: JobService,
        handlers: HandlerRegistry,
        functions: Optional[FunctionRegistry] = None,
        progress: Optional[ProgressSink] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        """
        Initialize the executor.

        Args:
            job_service: Source of jobs and store for executions
            handlers: HandlerRegistry for step dispatch
            functions: FunctionRegistry for function jobs (default registry
                when omitted)
            progress: Sink for lifecycle events (events are dropped when
                omitted)
            sleep: Sleep function used between step retries
        """
        self._job_service = job_service
        self._handlers = handlers
        self._functions = functions or get_default_registry()
        self._progress = progress
        self._sleep = sleep

    def execute_job(self, job_id: Any, trigger_type: str = "manual") -> Execution:
        """
        Execute a job once.

        Args:
            job_id: ID of the job to run
            trigger_type: "manual" or "scheduled"

        Returns:
            The terminal Execution as stored by the Job Service

        Raises:
            JobNotFoundError: If the job does not exist
            InvalidConfigurationError: If the job or one of its steps is
                invalid
            StepExecutionError: If a step fails under error_handling 'stop'
        """
        job = self._job_service.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        validate_job(job)
        trigger = _parse_trigger_type(trigger_type)

        execution = self._job_service.create_execution(job.id, trigger)
        run = _Run(job=job, execution_id=execution.id, started_at=execution.started_at or _utcnow())
        self._job_service.update_execution(
            execution.id,
            {"status": ExecutionStatus.RUNNING, "started_at": run.started_at},
        )
        logger.info(
            "Execution %s started for job %s (%s)", execution.id, job.id, trigger.value,
            extra={"event": EventType.EXECUTION_STARTED.value, "execution_id": execution.id},
        )
        self._emit(run, EventType.EXECUTION_STARTED, trigger_type=trigger.value)

        try:
            if job.job_type == JobType.FUNCTION:
                self._run_function(run)
            else:
                self._run_workflow(run)
            self._complete(run)
        except Exception as e:
            self._fail(run, e)
            raise
        finally:
            run.tables.clear()

        return self._job_service.get_execution(execution.id)

    # ------------------------------------------------------------------
    # Workflow jobs
    # ------------------------------------------------------------------

    def _run_workflow(self, run: _Run) -> None:
        workflow = run.job.workflow_definition
        context = StepContext(job_id=run.job.id, execution_id=run.execution_id, tables=run.tables)

        for step in workflow.ordered_steps():
            self._emit(run, EventType.STEP_STARTED, **self._step_fields(step))
            started_at = _utcnow()
            try:
                table = self._dispatch_with_retry(run.job, step, context)
                if step.output_name:
                    run.tables.put(step.output_name, table)
            except StepExecutionError as e:
                self._record_failure(run, step, started_at, e)
                if workflow.error_handling == ErrorHandling.STOP:
                    raise
                logger.warning(
                    "Step %s (%s) failed, continuing: %s", step.step_number, step.step_name, e,
                    extra={"event": EventType.STEP_FAILED.value, "execution_id": run.execution_id},
                )
                continue
            except SqlStudioError as e:
                self._record_failure(run, step, started_at, e)
                raise

            self._record_success(run, step, started_at, table)

    def _dispatch_with_retry(self, job: Job, step: Step, context: StepContext) -> TabularResult:
        def dispatch() -> TabularResult:
            try:
                return self._handlers.dispatch(step, context)
            except SqlStudioError:
                raise
            except Exception as e:
                raise StepExecutionError(step.step_number, step.step_name, str(e), cause=e) from e

        return retry_with_backoff(
            dispatch,
            max_attempts=max(job.max_retries, 0) + 1,
            backoff_seconds=job.retry_delay_seconds,
            backoff_multiplier=1.0,
            logger=logger,
            retry_on=(StepExecutionError,),
            sleep=self._sleep,
        )

    def _step_fields(self, step: Step) -> dict[str, Any]:
        return {
            "step_number": step.step_number,
            "step_name": step.step_name,
            "step_type": step.step_type.value,
        }

    def _record_success(self, run: _Run, step: Step, started_at: datetime, table: TabularResult) -> None:
        result = StepResult(
            step_number=step.step_number,
            step_name=step.step_name,
            step_type=step.step_type.value,
            status=StepStatus.SUCCESS,
            rows_affected=table.row_count,
            started_at=started_at,
            completed_at=_utcnow(),
            output_preview=table.preview(),
        )
        self._append_result(run, result)
        self._emit(
            run,
            EventType.STEP_COMPLETED,
            **self._step_fields(step),
            rows_affected=result.rows_affected,
            duration_seconds=result.duration_seconds,
        )

    def _record_failure(self, run: _Run, step: Step, started_at: datetime, error: Exception) -> None:
        result = StepResult(
            step_number=step.step_number,
            step_name=step.step_name,
            step_type=step.step_type.value,
            status=StepStatus.FAILED,
            error=str(error),
            started_at=started_at,
            completed_at=_utcnow(),
        )
        self._append_result(run, result)
        self._emit(
            run,
            EventType.STEP_FAILED,
            **self._step_fields(step),
            error=result.error,
            duration_seconds=result.duration_seconds,
        )

    def _append_result(self, run: _Run, result: StepResult) -> None:
        run.step_results.append(result)
        self._job_service.update_execution(
            run.execution_id, {"step_results": tuple(run.step_results)}
        )

    # ------------------------------------------------------------------
    # Function jobs
    # ------------------------------------------------------------------

    def _run_function(self, run: _Run) -> None:
        job = run.job
        fields = {"step_number": 1, "step_name": job.target_function, "step_type": FUNCTION_STEP_TYPE}
        self._emit(run, EventType.STEP_STARTED, **fields)
        started_at = _utcnow()
        try:
            value = self._functions.invoke(job.target_function, job.parameters)
        except Exception as e:
            result = StepResult(
                step_number=1,
                step_name=job.target_function,
                step_type=FUNCTION_STEP_TYPE,
                status=StepStatus.FAILED,
                error=str(e),
                started_at=started_at,
                completed_at=_utcnow(),
            )
            self._append_result(run, result)
            self._emit(run, EventType.STEP_FAILED, **fields, error=result.error)
            raise

        rows_affected, preview = _summarize_function_result(value)
        result = StepResult(
            step_number=1,
            step_name=job.target_function,
            step_type=FUNCTION_STEP_TYPE,
            status=StepStatus.SUCCESS,
            rows_affected=rows_affected,
            started_at=started_at,
            completed_at=_utcnow(),
            output_preview=preview,
        )
        self._append_result(run, result)
        self._emit(
            run, EventType.STEP_COMPLETED, **fields,
            rows_affected=rows_affected, duration_seconds=result.duration_seconds,
        )

    # ------------------------------------------------------------------
    # Terminal states
    # ------------------------------------------------------------------

    def _complete(self, run: _Run) -> None:
        completed_at = _utcnow()
        duration = (completed_at - run.started_at).total_seconds()
        rows_processed = sum(
            r.rows_affected or 0 for r in run.step_results if r.status == StepStatus.SUCCESS
        )
        failed_steps = [r.step_number for r in run.step_results if r.status == StepStatus.FAILED]

        self._job_service.update_execution(
            run.execution_id,
            {
                "status": ExecutionStatus.COMPLETED,
                "completed_at": completed_at,
                "duration_seconds": duration,
                "rows_processed": rows_processed,
                "step_results": tuple(run.step_results),
            },
        )
        # Status is terminal from here on
        try:
            self._job_service.update_last_run_time(run.job.id)
        except Exception:
            logger.exception("Could not update last run time of job %s", run.job.id)

        logger.info(
            "Execution %s completed: %d rows, %d failed steps, %.2fs",
            run.execution_id, rows_processed, len(failed_steps), duration,
            extra={"event": EventType.EXECUTION_COMPLETED.value, "execution_id": run.execution_id},
        )
        self._emit(
            run,
            EventType.EXECUTION_COMPLETED,
            status=ExecutionStatus.COMPLETED.value,
            rows_processed=rows_processed,
            duration_seconds=duration,
            failed_steps=failed_steps,
        )

    def _fail(self, run: _Run, error: Exception) -> None:
        completed_at = _utcnow()
        duration = (completed_at - run.started_at).total_seconds()
        message = str(error)

        logger.error(
            "Execution %s failed: %s", run.execution_id, message,
            extra={"event": EventType.EXECUTION_FAILED.value, "execution_id": run.execution_id},
        )
        try:
            self._job_service.update_execution(
                run.execution_id,
                {
                    "status": ExecutionStatus.FAILED,
                    "error_message": message,
                    "completed_at": completed_at,
                    "duration_seconds": duration,
                    "step_results": tuple(run.step_results),
                },
            )
        except Exception:
            logger.exception("Could not persist failed state of execution %s", run.execution_id)

        self._emit(
            run,
            EventType.EXECUTION_FAILED,
            status=ExecutionStatus.FAILED.value,
            error=message,
            duration_seconds=duration,
        )

    def _emit(self, run: _Run, event_type: EventType, **fields: Any) -> None:
        if self._progress is None:
            return
        event = progress_event(event_type, run.job.id, run.execution_id, **fields)
        try:
            self._progress.broadcast(run.job.id, event)
        except Exception:
            logger.exception("Progress broadcast failed for %s event", event_type.value)


def _summarize_function_result(value: Any) -> tuple[Optional[int], Optional[list[dict[str, Any]]]]:
    """Row count and preview of a function's return value, when it has rows."""
    if isinstance(value, TabularResult) or (isinstance(value, Mapping) and "rows" in value):
        table = TabularResult.coerce(value)
        return table.row_count, table.preview()
    if isinstance(value, int) and not isinstance(value, bool):
        return value, None
    return 0, None
