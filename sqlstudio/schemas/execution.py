"""
Execution schemas - the persisted record of one job run.

An Execution is created by the executor at the start of a run and mutated
only by the executor (through the Job Service) until it is terminal.
StepResult records the outcome of a single workflow step.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class ExecutionStatus(str, Enum):
    """Lifecycle status of an execution."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)


class TriggerType(str, Enum):
    """How an execution was started."""
    MANUAL = "manual"
    SCHEDULED = "scheduled"


class StepStatus(str, Enum):
    """Outcome of a single step."""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class StepResult:
    """
    The outcome of executing one step.

    Attributes:
        step_number: Number of the step in its workflow
        step_name: Display name of the step
        step_type: Step type value (sqlserver_query, redshift_query, merge, function)
        status: success, failed or skipped
        rows_affected: Rows produced by the step (None when it failed)
        error: Error message when status is failed
        started_at: When the step started
        completed_at: When the step finished
        output_preview: First rows of the produced table
    """
    step_number: int
    step_name: str
    step_type: str
    status: StepStatus
    rows_affected: Optional[int] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    output_preview: Optional[list[dict[str, Any]]] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "step_number": self.step_number,
            "step_name": self.step_name,
            "step_type": self.step_type,
            "status": self.status.value,
        }
        if self.rows_affected is not None:
            result["rows_affected"] = self.rows_affected
        if self.error is not None:
            result["error"] = self.error
        if self.started_at is not None:
            result["started_at"] = self.started_at.isoformat()
        if self.completed_at is not None:
            result["completed_at"] = self.completed_at.isoformat()
        if self.duration_seconds is not None:
            result["duration_seconds"] = self.duration_seconds
        if self.output_preview is not None:
            result["output_preview"] = self.output_preview
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepResult":
        """Deserialize from dictionary."""
        return cls(
            step_number=data["step_number"],
            step_name=data["step_name"],
            step_type=data["step_type"],
            status=StepStatus(data["status"]),
            rows_affected=data.get("rows_affected"),
            error=data.get("error"),
            started_at=_parse_dt(data.get("started_at")),
            completed_at=_parse_dt(data.get("completed_at")),
            output_preview=data.get("output_preview"),
        )


@dataclass(frozen=True)
class Execution:
    """
    A record of one job run.

    Attributes:
        id: Execution identifier (ULID for the bundled Job Services)
        job_id: The job being run
        status: pending -> running -> completed | failed
        trigger_type: manual or scheduled
        started_at: When the run started
        completed_at: When the run reached a terminal status
        duration_seconds: Wall time of the run
        error_message: Message of the fatal error, if any
        rows_processed: Rows produced by successful steps
        step_results: One StepResult per executed step, in step order
    """
    id: str
    job_id: Any
    status: ExecutionStatus = ExecutionStatus.PENDING
    trigger_type: TriggerType = TriggerType.MANUAL
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[float] = None
    error_message: Optional[str] = None
    rows_processed: Optional[int] = None
    step_results: tuple[StepResult, ...] = field(default_factory=tuple)

    def failed_steps(self) -> tuple[StepResult, ...]:
        """Step results with status failed."""
        return tuple(r for r in self.step_results if r.status == StepStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "id": self.id,
            "job_id": self.job_id,
            "status": self.status.value,
            "trigger_type": self.trigger_type.value,
            "step_results": [r.to_dict() for r in self.step_results],
        }
        if self.started_at is not None:
            result["started_at"] = self.started_at.isoformat()
        if self.completed_at is not None:
            result["completed_at"] = self.completed_at.isoformat()
        if self.duration_seconds is not None:
            result["duration_seconds"] = self.duration_seconds
        if self.error_message is not None:
            result["error_message"] = self.error_message
        if self.rows_processed is not None:
            result["rows_processed"] = self.rows_processed
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Execution":
        """Deserialize from dictionary."""
        return cls(
            id=data["id"],
            job_id=data["job_id"],
            status=ExecutionStatus(data.get("status", "pending")),
            trigger_type=TriggerType(data.get("trigger_type", "manual")),
            started_at=_parse_dt(data.get("started_at")),
            completed_at=_parse_dt(data.get("completed_at")),
            duration_seconds=data.get("duration_seconds"),
            error_message=data.get("error_message"),
            rows_processed=data.get("rows_processed"),
            step_results=tuple(
                StepResult.from_dict(r) for r in data.get("step_results", [])
            ),
        )
