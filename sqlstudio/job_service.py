"""
JobService - Persist jobs and execution records.

The JobService manages:
- Jobs (read by the executor, written by the caller)
- Executions (created and updated by the executor during a run)
- The job's last_run_time (bumped after a completed run)

Storage backends:
- In-memory (for testing and embedding)
- File-based (for the command line)
"""

import json
import random
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml

from sqlstudio.errors import SqlStudioError
from sqlstudio.schemas import Execution, ExecutionStatus, Job, TriggerType


def generate_ulid() -> str:
    """
    Generate a ULID (Universally Unique Lexicographically Sortable Identifier).

    ULIDs are 26 characters, encoding:
    - 48 bits of timestamp (milliseconds since Unix epoch)
    - 80 bits of randomness
    """
    # Crockford's Base32 alphabet (excludes I, L, O, U)
    alphabet = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

    timestamp_ms = int(time.time() * 1000)
    timestamp_chars = []
    for _ in range(10):
        timestamp_chars.append(alphabet[timestamp_ms & 0x1F])
        timestamp_ms >>= 5
    timestamp_part = "".join(reversed(timestamp_chars))

    random_part = "".join(random.choice(alphabet) for _ in range(16))

    return timestamp_part + random_part


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _oldest_first(executions: list[Execution]) -> list[Execution]:
    # ULIDs order by millisecond only
    return sorted(executions, key=lambda e: (e.started_at or datetime.min.replace(tzinfo=timezone.utc), e.id))


def _apply_patch(execution: Execution, patch: dict[str, Any]) -> Execution:
    unknown = set(patch) - set(Execution.__dataclass_fields__)
    if "id" in patch:
        unknown.add("id")
    if unknown:
        raise SqlStudioError(f"Cannot update execution fields: {sorted(unknown)}")
    values = dict(patch)
    if "status" in values:
        values["status"] = ExecutionStatus(values["status"])
    if "step_results" in values:
        values["step_results"] = tuple(values["step_results"])
    return replace(execution, **values)


class JobService(ABC):
    """
    Abstract base class for job and execution storage.

    Implementations must provide methods to:
    - Retrieve and save jobs
    - Create, update and retrieve executions
    - Record a job's last run time
    """

    @abstractmethod
    def get_job(self, job_id: Any) -> Optional[Job]:
        """
        Retrieve a job by ID.

        Returns:
            The Job if found, None otherwise
        """
        pass

    @abstractmethod
    def save_job(self, job: Job) -> None:
        """Create or replace a job."""
        pass

    @abstractmethod
    def list_jobs(self) -> list[Job]:
        pass

    @abstractmethod
    def create_execution(self, job_id: Any, trigger_type: TriggerType) -> Execution:
        """
        Create a new pending execution record.

        Args:
            job_id: The job being run
            trigger_type: manual or scheduled

        Returns:
            The created Execution with a new ULID
        """
        pass

    @abstractmethod
    def update_execution(self, execution_id: str, patch: dict[str, Any]) -> Execution:
        """
        Apply a partial update to an execution.

        Args:
            execution_id: The execution ULID
            patch: Execution field names mapped to their new values

        Returns:
            The updated Execution

        Raises:
            SqlStudioError: If the execution does not exist or the patch
                names an unknown field
        """
        pass

    @abstractmethod
    def get_execution(self, execution_id: str) -> Optional[Execution]:
        pass

    @abstractmethod
    def list_executions(self, job_id: Any) -> list[Execution]:
        """Executions of a job, oldest first."""
        pass

    @abstractmethod
    def update_last_run_time(self, job_id: Any) -> None:
        pass


class InMemoryJobService(JobService):
    """
    In-memory implementation of JobService.

    Safe to share between threads running concurrent executions.
    All data is lost when the instance is garbage collected.
    """

    def __init__(self, jobs: Optional[list[Job]] = None):
        self._lock = threading.Lock()
        self._jobs: dict[Any, Job] = {}
        self._executions: dict[str, Execution] = {}
        for job in jobs or []:
            self._jobs[job.id] = job

    def get_job(self, job_id: Any) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    def save_job(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = job

    def list_jobs(self) -> list[Job]:
        with self._lock:
            return list(self._jobs.values())

    def create_execution(self, job_id: Any, trigger_type: TriggerType) -> Execution:
        execution = Execution(
            id=generate_ulid(),
            job_id=job_id,
            status=ExecutionStatus.PENDING,
            trigger_type=TriggerType(trigger_type),
            started_at=_utcnow(),
        )
        with self._lock:
            self._executions[execution.id] = execution
        return execution

    def update_execution(self, execution_id: str, patch: dict[str, Any]) -> Execution:
        with self._lock:
            current = self._executions.get(execution_id)
            if current is None:
                raise SqlStudioError(f"Execution {execution_id} not found")
            updated = _apply_patch(current, patch)
            self._executions[execution_id] = updated
            return updated

    def get_execution(self, execution_id: str) -> Optional[Execution]:
        with self._lock:
            return self._executions.get(execution_id)

    def list_executions(self, job_id: Any) -> list[Execution]:
        with self._lock:
            matches = [e for e in self._executions.values() if e.job_id == job_id]
        return _oldest_first(matches)

    def update_last_run_time(self, job_id: Any) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is not None:
                self._jobs[job_id] = replace(job, last_run_time=_utcnow())

    def clear(self) -> None:
        """Clear all stored data (for testing)."""
        with self._lock:
            self._jobs.clear()
            self._executions.clear()


class FileJobService(JobService):
    """
    File-based implementation of JobService.

    Stores records in a directory tree:
        data_dir/
            jobs/
                {job_id}.yaml (or .yml / .json)
            executions/
                {execution_id}.json

    Job files are hand-editable; saved jobs are written as YAML.
    """

    JOB_SUFFIXES = (".yaml", ".yml", ".json")

    def __init__(self, data_dir: Path | str):
        self._data_dir = Path(data_dir)
        self._lock = threading.Lock()
        self._ensure_dirs()

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _ensure_dirs(self) -> None:
        """Create the directory structure if needed."""
        for subdir in ["jobs", "executions"]:
            (self._data_dir / subdir).mkdir(parents=True, exist_ok=True)

    def _job_path(self, job_id: Any) -> Optional[Path]:
        for suffix in self.JOB_SUFFIXES:
            path = self._data_dir / "jobs" / f"{job_id}{suffix}"
            if path.exists():
                return path
        return None

    def _execution_path(self, execution_id: str) -> Path:
        return self._data_dir / "executions" / f"{execution_id}.json"

    def _read_job(self, path: Path) -> Job:
        with open(path) as f:
            if path.suffix == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
        if not isinstance(data, dict):
            raise SqlStudioError(f"Job file {path} does not contain a mapping")
        data.setdefault("id", path.stem)
        return Job.from_dict(data)

    def _write_execution(self, execution: Execution) -> None:
        with open(self._execution_path(execution.id), "w") as f:
            json.dump(execution.to_dict(), f, indent=2, default=str)

    def _read_execution(self, path: Path) -> Execution:
        with open(path) as f:
            return Execution.from_dict(json.load(f))

    def get_job(self, job_id: Any) -> Optional[Job]:
        path = self._job_path(job_id)
        if path is None:
            return None
        return self._read_job(path)

    def save_job(self, job: Job) -> None:
        existing = self._job_path(job.id)
        if existing is not None and existing.suffix == ".json":
            with open(existing, "w") as f:
                json.dump(job.to_dict(), f, indent=2)
            return
        path = existing or self._data_dir / "jobs" / f"{job.id}.yaml"
        path.write_text(yaml.safe_dump(job.to_dict(), sort_keys=False))

    def list_jobs(self) -> list[Job]:
        paths = [
            p for p in sorted((self._data_dir / "jobs").iterdir())
            if p.suffix in self.JOB_SUFFIXES
        ]
        return [self._read_job(p) for p in paths]

    def create_execution(self, job_id: Any, trigger_type: TriggerType) -> Execution:
        execution = Execution(
            id=generate_ulid(),
            job_id=job_id,
            status=ExecutionStatus.PENDING,
            trigger_type=TriggerType(trigger_type),
            started_at=_utcnow(),
        )
        with self._lock:
            self._write_execution(execution)
        return execution

    def update_execution(self, execution_id: str, patch: dict[str, Any]) -> Execution:
        path = self._execution_path(execution_id)
        with self._lock:
            if not path.exists():
                raise SqlStudioError(f"Execution {execution_id} not found")
            updated = _apply_patch(self._read_execution(path), patch)
            self._write_execution(updated)
        return updated

    def get_execution(self, execution_id: str) -> Optional[Execution]:
        path = self._execution_path(execution_id)
        if not path.exists():
            return None
        return self._read_execution(path)

    def list_executions(self, job_id: Any) -> list[Execution]:
        executions = [
            self._read_execution(p)
            for p in (self._data_dir / "executions").glob("*.json")
        ]
        return _oldest_first([e for e in executions if str(e.job_id) == str(job_id)])

    def update_last_run_time(self, job_id: Any) -> None:
        job = self.get_job(job_id)
        if job is not None:
            self.save_job(replace(job, last_run_time=_utcnow()))
