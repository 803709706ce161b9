"""
Job schema - workflow and function job definitions.

A Job is owned by the Job Service and only read by the executor.
Workflow jobs carry a WorkflowDefinition: an ordered list of steps plus the
error handling mode for the whole run.

Steps are a tagged union discriminated by ``step_type``:
- QueryStep: sqlserver_query | redshift_query
- MergeStep: merge

Parsing goes through the STEP_PARSERS lookup table, so adding a step type is a
new enum member, a dataclass and one table entry.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Union

from sqlstudio.errors import InvalidConfigurationError


class JobType(str, Enum):
    """Kind of job."""
    WORKFLOW = "workflow"
    FUNCTION = "function"


class StepType(str, Enum):
    """Discriminator of the workflow step union."""
    SQLSERVER_QUERY = "sqlserver_query"
    REDSHIFT_QUERY = "redshift_query"
    MERGE = "merge"

    @property
    def is_query(self) -> bool:
        return self in (StepType.SQLSERVER_QUERY, StepType.REDSHIFT_QUERY)

    @property
    def backend_label(self) -> str:
        """Human readable backend name used in error messages."""
        return {
            StepType.SQLSERVER_QUERY: "SQL Server",
            StepType.REDSHIFT_QUERY: "Redshift",
            StepType.MERGE: "merge",
        }[self]


class MergeType(str, Enum):
    """How a merge step combines its source tables."""
    UNION = "union"
    UNION_ALL = "union_all"
    INNER_JOIN = "inner_join"
    LEFT_JOIN = "left_join"
    RIGHT_JOIN = "right_join"
    FULL_JOIN = "full_join"

    @property
    def is_join(self) -> bool:
        return self not in (MergeType.UNION, MergeType.UNION_ALL)


class ErrorHandling(str, Enum):
    """Policy for runtime step failures."""
    STOP = "stop"
    CONTINUE = "continue"


def _parse_enum(enum_cls, value: Any, what: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidConfigurationError(
            f"Unknown {what}: {value!r} (expected one of: {allowed})"
        ) from None


@dataclass(frozen=True)
class JoinKey:
    """A pair of columns matched between the left and right table."""
    left: str
    right: str

    @classmethod
    def from_value(cls, value: Any) -> "JoinKey":
        """Accept either {"left": .., "right": ..} or a shared column name."""
        if isinstance(value, JoinKey):
            return value
        if isinstance(value, str):
            return cls(left=value, right=value)
        if isinstance(value, dict) and value.get("left") and value.get("right"):
            return cls(left=value["left"], right=value["right"])
        raise InvalidConfigurationError(f"Invalid join key: {value!r}")

    def to_dict(self) -> dict[str, str]:
        return {"left": self.left, "right": self.right}


@dataclass(frozen=True)
class QueryStep:
    """
    A step that runs SQL against one backend.

    Attributes:
        step_number: Execution order (ascending)
        step_name: Display name
        step_type: sqlserver_query or redshift_query
        query: SQL passed verbatim to the backend (may be None/empty; the
            handler rejects that before contacting the backend)
        save_as: Name under which the result is published to the table store
    """
    step_number: int
    step_name: str
    step_type: StepType
    query: Optional[str] = None
    save_as: Optional[str] = None

    @property
    def output_name(self) -> Optional[str]:
        return self.save_as

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "step_number": self.step_number,
            "step_name": self.step_name,
            "step_type": self.step_type.value,
        }
        if self.query is not None:
            result["query"] = self.query
        if self.save_as:
            result["save_as"] = self.save_as
        return result


@dataclass(frozen=True)
class MergeStep:
    """
    A step that combines tables saved by earlier steps.

    Attributes:
        step_number: Execution order (ascending)
        step_name: Display name
        merge_type: union, union_all or one of the joins
        source_tables: Names of tables in the execution's table store
        join_keys: Column pairs for join merges
        save_as: Name for the merged table (generated when absent)
    """
    step_number: int
    step_name: str
    merge_type: MergeType
    source_tables: tuple[str, ...] = field(default_factory=tuple)
    join_keys: tuple[JoinKey, ...] = field(default_factory=tuple)
    save_as: Optional[str] = None
    step_type: StepType = field(default=StepType.MERGE, init=False)

    @property
    def output_name(self) -> str:
        return self.save_as or f"step_{self.step_number}_merge"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "step_number": self.step_number,
            "step_name": self.step_name,
            "step_type": self.step_type.value,
            "merge_type": self.merge_type.value,
            "source_tables": list(self.source_tables),
        }
        if self.join_keys:
            result["join_keys"] = [k.to_dict() for k in self.join_keys]
        if self.save_as:
            result["save_as"] = self.save_as
        return result


Step = Union[QueryStep, MergeStep]


def _parse_query_step(data: dict[str, Any], step_number: int, step_name: str, step_type: StepType) -> QueryStep:
    return QueryStep(
        step_number=step_number,
        step_name=step_name,
        step_type=step_type,
        query=data.get("query"),
        save_as=data.get("save_as"),
    )


def _parse_merge_step(data: dict[str, Any], step_number: int, step_name: str, step_type: StepType) -> MergeStep:
    merge_type = _parse_enum(MergeType, data.get("merge_type"), "merge_type")
    return MergeStep(
        step_number=step_number,
        step_name=step_name,
        merge_type=merge_type,
        source_tables=tuple(data.get("source_tables") or ()),
        join_keys=tuple(JoinKey.from_value(k) for k in data.get("join_keys") or ()),
        save_as=data.get("save_as"),
    )


STEP_PARSERS: dict[StepType, Callable[..., Step]] = {
    StepType.SQLSERVER_QUERY: _parse_query_step,
    StepType.REDSHIFT_QUERY: _parse_query_step,
    StepType.MERGE: _parse_merge_step,
}


def parse_step(data: dict[str, Any], position: int = 1) -> Step:
    """
    Parse one step from a dictionary.

    Both the stored format (step_number, step_name, step_type) and the
    editor format (name, type) are accepted. A missing step_number falls back
    to the 1-based position in the step list.

    Raises:
        InvalidConfigurationError: If step_type or merge_type is unknown
    """
    raw_type = data.get("step_type") or data.get("type")
    step_type = _parse_enum(StepType, raw_type, "step_type")
    step_number = data.get("step_number")
    if step_number is None:
        step_number = position
    step_name = data.get("step_name") or data.get("name") or f"Step {step_number}"
    return STEP_PARSERS[step_type](data, int(step_number), step_name, step_type)


def _parse_error_handling(value: Any) -> ErrorHandling:
    if value is None:
        return ErrorHandling.STOP
    if isinstance(value, dict):
        value = value.get("on_step_failure") or ErrorHandling.STOP.value
    return _parse_enum(ErrorHandling, value, "error_handling")


@dataclass(frozen=True)
class WorkflowDefinition:
    """
    Ordered steps plus the error handling mode for the run.

    Attributes:
        steps: Steps as defined (see ordered_steps for execution order)
        error_handling: 'stop' aborts on the first runtime failure,
            'continue' records it and moves on
    """
    steps: tuple[Step, ...] = field(default_factory=tuple)
    error_handling: ErrorHandling = ErrorHandling.STOP

    def ordered_steps(self) -> list[Step]:
        """Steps in ascending step_number order (stable for ties)."""
        return sorted(self.steps, key=lambda s: s.step_number)

    def to_dict(self) -> dict[str, Any]:
        return {
            "steps": [s.to_dict() for s in self.steps],
            "error_handling": self.error_handling.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WorkflowDefinition":
        steps = tuple(
            parse_step(step_data, position=i)
            for i, step_data in enumerate(data.get("steps") or [], start=1)
        )
        return cls(
            steps=steps,
            error_handling=_parse_error_handling(data.get("error_handling")),
        )


@dataclass(frozen=True)
class Job:
    """
    A workflow or function job.

    Attributes:
        id: Job identifier
        job_name: Display name
        job_type: workflow or function
        workflow_definition: Present iff job_type is workflow
        target_function: Registered function name, iff job_type is function
        parameters: Keyword parameters passed to the function
        max_retries: Extra attempts for a step whose backend call fails
        retry_delay_seconds: Delay between those attempts
        description: Free text
        is_active: Whether the job may be scheduled
        last_run_time: Set by the Job Service after a completed run
    """
    id: Any
    job_name: str
    job_type: JobType
    workflow_definition: Optional[WorkflowDefinition] = None
    target_function: Optional[str] = None
    parameters: dict[str, Any] = field(default_factory=dict)
    max_retries: int = 0
    retry_delay_seconds: float = 60
    description: Optional[str] = None
    is_active: bool = True
    last_run_time: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "job_name": self.job_name,
            "job_type": self.job_type.value,
            "max_retries": self.max_retries,
            "retry_delay_seconds": self.retry_delay_seconds,
            "is_active": self.is_active,
        }
        if self.workflow_definition is not None:
            result["workflow_definition"] = self.workflow_definition.to_dict()
        if self.target_function:
            result["target_function"] = self.target_function
        if self.parameters:
            result["parameters"] = self.parameters
        if self.description:
            result["description"] = self.description
        if self.last_run_time:
            result["last_run_time"] = self.last_run_time.isoformat()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Job":
        """
        Deserialize from dictionary.

        Raises:
            InvalidConfigurationError: On unknown job/step/merge types
        """
        workflow = data.get("workflow_definition")
        last_run_time = data.get("last_run_time")
        if isinstance(last_run_time, str):
            last_run_time = datetime.fromisoformat(last_run_time)
        return cls(
            id=data["id"],
            job_name=data.get("job_name") or str(data["id"]),
            job_type=_parse_enum(JobType, data.get("job_type"), "job_type"),
            workflow_definition=WorkflowDefinition.from_dict(workflow) if workflow else None,
            target_function=data.get("target_function"),
            parameters=data.get("parameters") or {},
            max_retries=data.get("max_retries", 0),
            retry_delay_seconds=data.get("retry_delay_seconds", 60),
            description=data.get("description"),
            is_active=data.get("is_active", True),
            last_run_time=last_run_time,
        )
