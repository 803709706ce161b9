from unittest.mock import MagicMock

import pytest

from sqlstudio.executor import JobExecutor
from sqlstudio.functions import FunctionRegistry
from sqlstudio.handlers import HandlerRegistry
from sqlstudio.job_service import InMemoryJobService
from sqlstudio.schemas import Job


class RecordingSink:
    """Progress sink that keeps every event it receives."""

    def __init__(self):
        self.events = []

    def broadcast(self, job_id, event):
        self.events.append((job_id, event))

    def types(self):
        return [event["type"] for _, event in self.events]

    def of_type(self, event_type):
        return [event for _, event in self.events if event["type"] == event_type]


def _backend(columns, rows):
    backend = MagicMock()
    backend.execute_query.return_value = {
        "columns": columns,
        "rows": rows,
        "rowCount": len(rows),
    }
    return backend


@pytest.fixture
def sqlserver():
    """Mock SQL Server backend returning two customers."""
    return _backend(
        ["id", "name"],
        [{"id": 1, "name": "Ada"}, {"id": 2, "name": "Grace"}],
    )


@pytest.fixture
def redshift():
    """Mock Redshift backend returning orders for customer 1 and 3."""
    return _backend(
        ["customer_id", "total"],
        [{"customer_id": 1, "total": 10.5}, {"customer_id": 3, "total": 7.0}],
    )


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def job_service():
    return InMemoryJobService()


@pytest.fixture
def functions():
    return FunctionRegistry()


@pytest.fixture
def sleep():
    return MagicMock()


@pytest.fixture
def executor(job_service, sqlserver, redshift, functions, sink, sleep):
    return JobExecutor(
        job_service=job_service,
        handlers=HandlerRegistry.create_default(sqlserver=sqlserver, redshift=redshift),
        functions=functions,
        progress=sink,
        sleep=sleep,
    )


@pytest.fixture
def make_workflow_job(job_service):
    """Factory that builds a workflow job and saves it in the job service."""
    def _make(steps, error_handling="stop", job_id="job-1", **kwargs):
        job = Job.from_dict({
            "id": job_id,
            "job_name": "Test workflow",
            "job_type": "workflow",
            "workflow_definition": {"steps": steps, "error_handling": error_handling},
            **kwargs,
        })
        job_service.save_job(job)
        return job
    return _make
