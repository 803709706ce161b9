"""Tests for the progress broadcaster.

Tests cover:
- progress_event common fields
- ProgressBroadcaster delivery, flush, close and failure isolation
- SubscriptionHub per-job fan-out and client dropping
- LoggingSink and ConsoleSink output
"""

import io
import json
import logging
import threading
from unittest.mock import MagicMock

from rich.console import Console

from sqlstudio.broadcaster import (
    ConsoleSink,
    EventType,
    LoggingSink,
    ProgressBroadcaster,
    SubscriptionHub,
    progress_event,
)


class TestProgressEvent:
    """Tests for progress_event."""

    def test_common_fields(self):
        event = progress_event(EventType.STEP_STARTED, "job-1", "01EXEC", step_number=2)

        assert event["type"] == "step_started"
        assert event["job_id"] == "job-1"
        assert event["execution_id"] == "01EXEC"
        assert event["step_number"] == 2
        assert "timestamp" in event


class TestProgressBroadcaster:
    """Tests for ProgressBroadcaster."""

    def test_delivers_in_order(self, sink):
        broadcaster = ProgressBroadcaster(sink)
        for i in range(5):
            broadcaster.broadcast("job-1", {"type": "step_started", "n": i})

        broadcaster.flush()
        broadcaster.close()

        assert [event["n"] for _, event in sink.events] == [0, 1, 2, 3, 4]

    def test_sink_errors_are_logged_not_raised(self, caplog):
        failing = MagicMock()
        failing.broadcast.side_effect = RuntimeError("socket closed")
        broadcaster = ProgressBroadcaster(failing)

        with caplog.at_level(logging.ERROR, logger="sqlstudio.broadcaster"):
            broadcaster.broadcast("job-1", {"type": "step_started"})
            broadcaster.broadcast("job-1", {"type": "step_completed"})
            broadcaster.flush()
        broadcaster.close()

        assert failing.broadcast.call_count == 2
        assert "Progress sink failed" in caplog.text

    def test_full_queue_drops_event(self, caplog):
        release = threading.Event()
        blocking = MagicMock()
        blocking.broadcast.side_effect = lambda job_id, event: release.wait(5)
        broadcaster = ProgressBroadcaster(blocking, queue_size=1)

        with caplog.at_level(logging.WARNING, logger="sqlstudio.broadcaster"):
            for i in range(5):
                broadcaster.broadcast("job-1", {"type": "step_started", "n": i})
        release.set()
        broadcaster.flush()
        broadcaster.close()

        assert "queue full" in caplog.text
        assert blocking.broadcast.call_count < 5

    def test_broadcast_after_close_is_dropped(self, sink):
        broadcaster = ProgressBroadcaster(sink)
        broadcaster.close()

        broadcaster.broadcast("job-1", {"type": "step_started"})

        assert sink.events == []

    def test_close_delivers_pending_events(self, sink):
        broadcaster = ProgressBroadcaster(sink)
        broadcaster.broadcast("job-1", {"type": "execution_completed"})

        broadcaster.close()

        assert sink.types() == ["execution_completed"]


class TestSubscriptionHub:
    """Tests for SubscriptionHub."""

    def test_broadcast_only_to_job_subscribers(self):
        hub = SubscriptionHub()
        a, b = MagicMock(), MagicMock()
        hub.add_client("c1", a, "job-1")
        hub.add_client("c2", b, "job-2")

        hub.broadcast("job-1", {"type": "step_started"})

        a.send.assert_called_once()
        assert json.loads(a.send.call_args[0][0]) == {"type": "step_started"}
        b.send.assert_not_called()

    def test_broadcast_all(self):
        hub = SubscriptionHub()
        a, b = MagicMock(), MagicMock()
        hub.add_client("c1", a, "job-1")
        hub.add_client("c2", b, "job-2")

        hub.broadcast_all({"type": "shutdown"})

        a.send.assert_called_once()
        b.send.assert_called_once()

    def test_failing_client_is_dropped(self):
        hub = SubscriptionHub()
        broken, healthy = MagicMock(), MagicMock()
        broken.send.side_effect = ConnectionError("gone")
        hub.add_client("broken", broken, "job-1")
        hub.add_client("healthy", healthy, "job-1")

        hub.broadcast("job-1", {"type": "step_started"})

        assert hub.client_count() == 1
        assert hub.clients_for_job("job-1") == 1
        healthy.send.assert_called_once()

    def test_counts_and_remove(self):
        hub = SubscriptionHub()
        hub.add_client("c1", MagicMock(), "job-1")
        hub.add_client("c2", MagicMock(), "job-1")
        hub.add_client("c3", MagicMock(), "job-2")

        assert hub.client_count() == 3
        assert hub.clients_for_job("job-1") == 2

        hub.remove_client("c1")
        hub.remove_client("unknown")

        assert hub.clients_for_job("job-1") == 1

    def test_works_behind_broadcaster(self):
        hub = SubscriptionHub()
        client = MagicMock()
        hub.add_client("c1", client, "job-1")
        broadcaster = ProgressBroadcaster(hub)

        broadcaster.broadcast("job-1", progress_event(EventType.EXECUTION_STARTED, "job-1", "01E"))
        broadcaster.close()

        client.send.assert_called_once()


class TestSinks:
    """Tests for LoggingSink and ConsoleSink."""

    def test_logging_sink(self, caplog):
        with caplog.at_level(logging.INFO, logger="sqlstudio.broadcaster"):
            LoggingSink().broadcast("job-1", {"type": "execution_started"})

        assert "job job-1: execution_started" in caplog.text

    def test_console_sink(self):
        buffer = io.StringIO()
        sink = ConsoleSink(Console(file=buffer, width=200))

        sink.broadcast("job-1", {
            "type": "step_completed", "step_number": 1, "step_name": "Customers", "rows_affected": 2,
        })

        assert "step_completed [1] Customers (2 rows)" in buffer.getvalue()
