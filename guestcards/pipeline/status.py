from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Callable, List, Optional, Union

if TYPE_CHECKING:
    from .orchestrator import BatchResult


logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class JobEvent:
    job_id: str
    status: JobStatus
    timestamp: datetime = field(default_factory=_now)
    error: Optional[str] = None


@dataclass(frozen=True)
class BatchComplete:
    result: "BatchResult"
    timestamp: datetime = field(default_factory=_now)


StatusEvent = Union[JobEvent, BatchComplete]
Subscriber = Callable[[StatusEvent], None]


class JobStatusReporter:
    """
    Append-only stream of job transitions.

    Events are handed to subscribers one at a time under a lock, so every
    subscriber sees the same total order. A job's events are emitted by the
    thread driving that job, which keeps them in status order. Subscribers
    that attach late only see what is emitted after they attach.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._subscribers: List[Subscriber] = []
        self.event_count = 0

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def emit(self, event: StatusEvent) -> None:
        with self._lock:
            self.event_count += 1
            for callback in list(self._subscribers):
                try:
                    callback(event)
                except Exception:
                    logger.exception("Status subscriber %r failed", callback)

    def job(self, job_id: str, status: JobStatus, error: Optional[str] = None) -> None:
        self.emit(JobEvent(job_id=job_id, status=status, error=error))

    def complete(self, result: "BatchResult") -> None:
        self.emit(BatchComplete(result=result))


class EventRecorder:
    """Subscriber that keeps every event it receives, in order."""

    def __init__(self) -> None:
        self.events: List[StatusEvent] = []

    def __call__(self, event: StatusEvent) -> None:
        self.events.append(event)

    def job_events(self, job_id: str | None = None) -> List[JobEvent]:
        return [
            event
            for event in self.events
            if isinstance(event, JobEvent) and (job_id is None or event.job_id == job_id)
        ]


def log_events(event: StatusEvent) -> None:
    if isinstance(event, BatchComplete):
        result = event.result
        logger.info(
            "Batch complete: %s/%s jobs succeeded, %s failed%s",
            result.succeeded,
            result.total_jobs,
            result.failed,
            " (cancelled)" if result.cancelled else "",
        )
    elif event.status == JobStatus.FAILED:
        logger.warning("Job %s failed: %s", event.job_id, event.error)
    else:
        logger.debug("Job %s %s", event.job_id, event.status.value)
