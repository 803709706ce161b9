"""
Progress Broadcaster - fire-and-forget delivery of execution lifecycle events.

The executor hands events to a ProgressBroadcaster, which queues them and
returns immediately. A daemon worker thread delivers queued events to a sink.
Delivery is best effort: a full queue or a failing sink is logged and the
event is dropped. Progress reporting never fails an execution.

Sinks:
- SubscriptionHub: per-job subscribers (e.g. websocket connections)
- LoggingSink: writes events to the sqlstudio log
- ConsoleSink: prints events with rich (used by the CLI)
"""

import json
import logging
import queue
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Protocol, runtime_checkable

from rich.console import Console

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1000


class EventType(str, Enum):
    """Lifecycle event kinds."""
    EXECUTION_STARTED = "execution_started"
    STEP_STARTED = "step_started"
    STEP_COMPLETED = "step_completed"
    STEP_FAILED = "step_failed"
    EXECUTION_COMPLETED = "execution_completed"
    EXECUTION_FAILED = "execution_failed"


def progress_event(event_type: EventType, job_id: Any, execution_id: str, **fields: Any) -> dict[str, Any]:
    """Build an event with the common type/job_id/execution_id/timestamp fields."""
    event = {
        "type": EventType(event_type).value,
        "job_id": job_id,
        "execution_id": execution_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    event.update(fields)
    return event


@runtime_checkable
class ProgressSink(Protocol):
    """Anything that accepts events for a job."""

    def broadcast(self, job_id: Any, event: dict[str, Any]) -> None:
        ...


@runtime_checkable
class Subscriber(Protocol):
    """A connected client; send receives the JSON-encoded event."""

    def send(self, data: str) -> None:
        ...


class SubscriptionHub:
    """
    Fan-out of events to the clients subscribed to a job.

    A client whose send raises is removed. Safe to use from the broadcaster
    worker thread while clients connect and disconnect on other threads.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._clients: dict[str, tuple[Subscriber, Any]] = {}

    def add_client(self, client_id: str, client: Subscriber, job_id: Any) -> None:
        with self._lock:
            self._clients[client_id] = (client, job_id)
        logger.info("Client connected: %s for job %s", client_id, job_id)

    def remove_client(self, client_id: str) -> None:
        with self._lock:
            removed = self._clients.pop(client_id, None)
        if removed is not None:
            logger.info("Client disconnected: %s", client_id)

    def _send(self, targets: list[tuple[str, Subscriber]], event: dict[str, Any]) -> None:
        data = json.dumps(event, default=str)
        for client_id, client in targets:
            try:
                client.send(data)
            except Exception:
                logger.exception("Error sending to client %s, dropping it", client_id)
                self.remove_client(client_id)

    def broadcast(self, job_id: Any, event: dict[str, Any]) -> None:
        """Send an event to every client subscribed to job_id."""
        with self._lock:
            targets = [
                (client_id, client)
                for client_id, (client, subscribed) in self._clients.items()
                if subscribed == job_id
            ]
        self._send(targets, event)

    def broadcast_all(self, event: dict[str, Any]) -> None:
        """Send an event to every connected client."""
        with self._lock:
            targets = [(client_id, client) for client_id, (client, _) in self._clients.items()]
        self._send(targets, event)

    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def clients_for_job(self, job_id: Any) -> int:
        with self._lock:
            return sum(1 for _, subscribed in self._clients.values() if subscribed == job_id)


class LoggingSink:
    """Sink that writes each event to the log."""

    def __init__(self, level: int = logging.INFO):
        self._level = level

    def broadcast(self, job_id: Any, event: dict[str, Any]) -> None:
        logger.log(
            self._level,
            "job %s: %s",
            job_id,
            event.get("type"),
            extra={"event": event.get("type"), "metadata": event},
        )


class ConsoleSink:
    """Sink that prints a one-line summary of each event."""

    STYLES = {
        EventType.EXECUTION_STARTED.value: "bold cyan",
        EventType.STEP_STARTED.value: "cyan",
        EventType.STEP_COMPLETED.value: "green",
        EventType.STEP_FAILED.value: "red",
        EventType.EXECUTION_COMPLETED.value: "bold green",
        EventType.EXECUTION_FAILED.value: "bold red",
    }

    def __init__(self, console: Optional[Console] = None):
        self._console = console or Console(stderr=True)

    def broadcast(self, job_id: Any, event: dict[str, Any]) -> None:
        kind = event.get("type", "")
        detail = ""
        if "step_name" in event:
            detail = f" [{event.get('step_number')}] {event['step_name']}"
        if "rows_affected" in event:
            detail += f" ({event['rows_affected']} rows)"
        if "error" in event:
            detail += f": {event['error']}"
        self._console.print(f"{kind}{detail}", style=self.STYLES.get(kind), markup=False)


_STOP = object()


class ProgressBroadcaster:
    """
    Non-blocking event queue with a background delivery thread.

    Usage:
        broadcaster = ProgressBroadcaster(SubscriptionHub())
        broadcaster.broadcast(job_id, event)   # returns immediately
        broadcaster.flush()                    # wait for queued events
        broadcaster.close()
    """

    def __init__(self, sink: ProgressSink, queue_size: int = DEFAULT_QUEUE_SIZE):
        self._sink = sink
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._closed = False
        self._worker = threading.Thread(
            target=self._run, name="sqlstudio-progress", daemon=True
        )
        self._worker.start()

    @property
    def sink(self) -> ProgressSink:
        return self._sink

    def broadcast(self, job_id: Any, event: dict[str, Any]) -> None:
        """Queue an event for delivery. Never blocks and never raises."""
        if self._closed:
            logger.warning("Broadcaster closed, dropping %s event", event.get("type"))
            return
        try:
            self._queue.put_nowait((job_id, event))
        except queue.Full:
            logger.warning("Progress queue full, dropping %s event", event.get("type"))

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                job_id, event = item
                try:
                    self._sink.broadcast(job_id, event)
                except Exception:
                    logger.exception("Progress sink failed for %s event", event.get("type"))
            finally:
                self._queue.task_done()

    def flush(self) -> None:
        """Block until every queued event has been handed to the sink."""
        self._queue.join()

    def close(self, timeout: Optional[float] = 5.0) -> None:
        """Deliver what is queued, then stop the worker thread."""
        if self._closed:
            return
        self._closed = True
        self._queue.put(_STOP)
        self._worker.join(timeout)
