"""Tests for sqlstudio error classes.

Tests cover:
- Error hierarchy
- Messages and attributes carried by each error
"""

import pytest

from sqlstudio.config import ConfigError
from sqlstudio.errors import (
    InvalidConfigurationError,
    JobNotFoundError,
    SqlStudioError,
    StepExecutionError,
)


class TestHierarchy:
    """All engine errors share a base class."""

    @pytest.mark.parametrize("cls", [JobNotFoundError, InvalidConfigurationError, StepExecutionError])
    def test_is_sqlstudio_error(self, cls):
        assert issubclass(cls, SqlStudioError)

    def test_config_error_is_separate(self):
        """Configuration-file errors are not engine errors."""
        assert not issubclass(ConfigError, SqlStudioError)


class TestJobNotFoundError:
    """Tests for JobNotFoundError."""

    def test_message(self):
        error = JobNotFoundError("abc")
        assert str(error) == "Job abc not found"
        assert error.job_id == "abc"


class TestStepExecutionError:
    """Tests for StepExecutionError."""

    def test_message_and_attributes(self):
        cause = RuntimeError("connection reset")
        error = StepExecutionError(3, "Load orders", "connection reset", cause=cause)

        assert str(error) == "Step 'Load orders' failed: connection reset"
        assert error.step_number == 3
        assert error.step_name == "Load orders"
        assert error.cause is cause

    def test_can_be_caught_as_base(self):
        with pytest.raises(SqlStudioError):
            raise StepExecutionError(1, "s", "boom")
