"""Tests for the sqlstudio data model.

Tests cover:
- Step parsing (stored and editor formats, join key shorthand)
- WorkflowDefinition ordering and error_handling forms
- Job serialization
- TabularResult normalisation and previews
- Execution and StepResult serialization
"""

from datetime import datetime, timedelta, timezone

import pytest

from sqlstudio.errors import InvalidConfigurationError
from sqlstudio.schemas import (
    ErrorHandling,
    Execution,
    ExecutionStatus,
    Job,
    JobType,
    JoinKey,
    MergeStep,
    MergeType,
    QueryStep,
    StepResult,
    StepStatus,
    StepType,
    TabularResult,
    TriggerType,
    WorkflowDefinition,
    parse_step,
)


# -----------------------------------------------------------------------------
# Steps
# -----------------------------------------------------------------------------


class TestParseStep:
    """Tests for parse_step."""

    def test_query_step(self):
        step = parse_step({
            "step_number": 1,
            "step_name": "Customers",
            "step_type": "sqlserver_query",
            "query": "SELECT * FROM customers",
            "save_as": "customers",
        })

        assert isinstance(step, QueryStep)
        assert step.step_type == StepType.SQLSERVER_QUERY
        assert step.query == "SELECT * FROM customers"
        assert step.output_name == "customers"

    def test_merge_step(self):
        step = parse_step({
            "step_number": 3,
            "step_name": "Join",
            "step_type": "merge",
            "merge_type": "left_join",
            "source_tables": ["customers", "orders"],
            "join_keys": [{"left": "id", "right": "customer_id"}],
            "save_as": "joined",
        })

        assert isinstance(step, MergeStep)
        assert step.merge_type == MergeType.LEFT_JOIN
        assert step.source_tables == ("customers", "orders")
        assert step.join_keys == (JoinKey("id", "customer_id"),)

    def test_join_key_string_shorthand(self):
        step = parse_step({
            "step_type": "merge",
            "merge_type": "inner_join",
            "source_tables": ["a", "b"],
            "join_keys": ["id"],
        })
        assert step.join_keys == (JoinKey("id", "id"),)

    def test_editor_format_and_position_default(self):
        step = parse_step({"name": "Orders", "type": "redshift_query", "query": "SELECT 1"}, position=4)

        assert step.step_name == "Orders"
        assert step.step_type == StepType.REDSHIFT_QUERY
        assert step.step_number == 4

    def test_merge_without_save_as_gets_generated_name(self):
        step = parse_step({"step_number": 5, "step_type": "merge", "merge_type": "union",
                           "source_tables": ["a", "b"]})
        assert step.output_name == "step_5_merge"

    def test_unknown_step_type(self):
        with pytest.raises(InvalidConfigurationError, match="Unknown step_type"):
            parse_step({"step_type": "mongo_query"})

    def test_unknown_merge_type(self):
        with pytest.raises(InvalidConfigurationError, match="Unknown merge_type"):
            parse_step({"step_type": "merge", "merge_type": "cross_join", "source_tables": ["a", "b"]})

    def test_invalid_join_key(self):
        with pytest.raises(InvalidConfigurationError, match="Invalid join key"):
            JoinKey.from_value({"left": "id"})


class TestWorkflowDefinition:
    """Tests for WorkflowDefinition."""

    def test_ordered_steps_sorts_by_step_number(self):
        workflow = WorkflowDefinition.from_dict({"steps": [
            {"step_number": 10, "step_type": "sqlserver_query", "query": "q10"},
            {"step_number": 2, "step_type": "redshift_query", "query": "q2"},
        ]})

        assert [s.step_number for s in workflow.ordered_steps()] == [2, 10]

    def test_default_error_handling_is_stop(self):
        assert WorkflowDefinition.from_dict({"steps": []}).error_handling == ErrorHandling.STOP

    def test_error_handling_object_form(self):
        workflow = WorkflowDefinition.from_dict({
            "steps": [],
            "error_handling": {"on_step_failure": "continue"},
        })
        assert workflow.error_handling == ErrorHandling.CONTINUE

    def test_unknown_error_handling(self):
        with pytest.raises(InvalidConfigurationError):
            WorkflowDefinition.from_dict({"steps": [], "error_handling": "retry"})


# -----------------------------------------------------------------------------
# Job
# -----------------------------------------------------------------------------


class TestJob:
    """Tests for Job."""

    def test_from_dict_defaults(self):
        job = Job.from_dict({"id": 7, "job_type": "function", "target_function": "refresh"})

        assert job.job_type == JobType.FUNCTION
        assert job.job_name == "7"
        assert job.max_retries == 0
        assert job.retry_delay_seconds == 60
        assert job.is_active is True
        assert job.workflow_definition is None

    def test_roundtrip(self):
        data = {
            "id": "daily",
            "job_name": "Daily revenue",
            "job_type": "workflow",
            "max_retries": 2,
            "retry_delay_seconds": 5,
            "workflow_definition": {
                "steps": [{"step_number": 1, "step_name": "q", "step_type": "sqlserver_query",
                           "query": "SELECT 1", "save_as": "one"}],
                "error_handling": "continue",
            },
            "last_run_time": "2024-01-02T03:04:05+00:00",
        }

        job = Job.from_dict(data)
        again = Job.from_dict(job.to_dict())

        assert again == job
        assert job.last_run_time == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

    def test_unknown_job_type(self):
        with pytest.raises(InvalidConfigurationError, match="Unknown job_type"):
            Job.from_dict({"id": 1, "job_type": "pipeline"})


# -----------------------------------------------------------------------------
# TabularResult
# -----------------------------------------------------------------------------


class TestTabularResult:
    """Tests for TabularResult."""

    def test_coerce_backend_mapping(self):
        table = TabularResult.coerce({"columns": ["a", "b"], "rows": [{"a": 1, "b": 2}], "rowCount": 1})

        assert table.columns == ("a", "b")
        assert table.row_count == 1

    def test_coerce_keeps_affected_row_count(self):
        table = TabularResult.coerce({"columns": [], "rows": [], "rowCount": 5})

        assert table.affected_rows == 5
        assert table.row_count == 5
        assert table.to_dict()["row_count"] == 5

    def test_coerce_infers_columns(self):
        table = TabularResult.coerce({"rows": [{"a": 1}, {"b": 2, "a": 3}]})
        assert table.columns == ("a", "b")

    def test_coerce_rejects_other_types(self):
        with pytest.raises(TypeError, match="unsupported result type"):
            TabularResult.coerce([1, 2, 3])

    def test_rows_are_copied(self):
        source = [{"a": 1}]
        table = TabularResult.from_rows(source)
        source[0]["a"] = 99

        assert table.rows[0]["a"] == 1

    def test_preview_limits_to_ten_rows(self):
        table = TabularResult.from_rows([{"n": i} for i in range(25)])

        assert len(table.preview()) == 10
        assert table.preview(3) == [{"n": 0}, {"n": 1}, {"n": 2}]


# -----------------------------------------------------------------------------
# Execution
# -----------------------------------------------------------------------------


class TestExecution:
    """Tests for Execution and StepResult."""

    def test_step_result_duration(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        result = StepResult(1, "s", "merge", StepStatus.SUCCESS,
                            started_at=start, completed_at=start + timedelta(seconds=2.5))
        assert result.duration_seconds == 2.5
        assert result.to_dict()["duration_seconds"] == 2.5

    def test_roundtrip_with_step_results(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        execution = Execution(
            id="01ABC",
            job_id="job-1",
            status=ExecutionStatus.COMPLETED,
            trigger_type=TriggerType.SCHEDULED,
            started_at=start,
            completed_at=start + timedelta(seconds=1),
            duration_seconds=1.0,
            rows_processed=2,
            step_results=(
                StepResult(1, "q", "sqlserver_query", StepStatus.SUCCESS, rows_affected=2,
                           started_at=start, completed_at=start, output_preview=[{"a": 1}]),
                StepResult(2, "r", "redshift_query", StepStatus.FAILED, error="boom"),
            ),
        )

        assert Execution.from_dict(execution.to_dict()) == execution

    def test_failed_steps(self):
        execution = Execution(id="x", job_id=1, step_results=(
            StepResult(1, "a", "merge", StepStatus.SUCCESS),
            StepResult(2, "b", "merge", StepStatus.FAILED, error="e"),
        ))
        assert [r.step_number for r in execution.failed_steps()] == [2]

    def test_terminal_statuses(self):
        assert ExecutionStatus.COMPLETED.is_terminal
        assert ExecutionStatus.FAILED.is_terminal
        assert not ExecutionStatus.RUNNING.is_terminal
