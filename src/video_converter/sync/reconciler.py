# Event-Reconciler: wendet die ungeordneten Backend-Events auf die Job-Sammlung an.
# Jede Regel ist idempotent und prueft den aktuellen Status beim Anwenden,
# nicht per Zeitstempel.

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Iterator, Optional

from video_converter.errors import EventDecodeError
from video_converter.ipc.protocol import (
    DEFAULT_LOG_CHANNEL,
    EVENT_PROGRESS,
    EVENT_QUEUE_FINISHED,
    EVENT_STATUS_CHANGE,
    BackendEvent,
)
from video_converter.models.collection import JobCollection
from video_converter.models.job import JobStatus

log = logging.getLogger(__name__)

LOG_CAPACITY = 500


class LogBuffer:
    """Fixed-capacity line buffer; the oldest lines are evicted first."""

    def __init__(self, capacity: int = LOG_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._lines: deque[str] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._lines.maxlen

    def append(self, line: str) -> None:
        self._lines.append(line)

    def clear(self) -> None:
        self._lines.clear()

    def lines(self) -> list[str]:
        return list(self._lines)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._lines))

    def __len__(self) -> int:
        return len(self._lines)


class ChangeKind(Enum):
    JOB_UPDATED = "job_updated"
    LOG_APPENDED = "log_appended"
    QUEUE_FINISHED = "queue_finished"


@dataclass(frozen=True)
class Change:
    kind: ChangeKind
    job_id: Optional[str] = None
    text: Optional[str] = None


def _job_event_payload(payload: Any) -> tuple[str, Any]:
    # Events carrying a job arrive as [job_id, body]
    if not isinstance(payload, (list, tuple)) or len(payload) != 2:
        raise EventDecodeError(f"expected [job_id, body], got {payload!r}")
    job_id, body = payload
    if not isinstance(job_id, str) or not job_id:
        raise EventDecodeError(f"invalid job id: {job_id!r}")
    return job_id, body


class EventReconciler:
    """Applies backend events to the collection and the log buffer.

    apply() returns a Change describing what happened, or None when the event
    was dropped (unknown job, stale progress, malformed payload).
    """

    def __init__(
        self,
        jobs: JobCollection,
        logs: Optional[LogBuffer] = None,
        log_channel: str = DEFAULT_LOG_CHANNEL,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._jobs = jobs
        self.logs = logs if logs is not None else LogBuffer()
        self._log_channel = log_channel
        self._clock = clock
        self.processing = False
        self._handlers = {
            EVENT_PROGRESS: self._on_progress,
            EVENT_STATUS_CHANGE: self._on_status_change,
            EVENT_QUEUE_FINISHED: self._on_queue_finished,
            log_channel: self._on_log_line,
        }

    def apply(self, event: BackendEvent) -> Optional[Change]:
        handler = self._handlers.get(event.name)
        if handler is None:
            log.debug("Ignoring event %s", event.name)
            return None
        try:
            return handler(event.payload)
        except EventDecodeError as e:
            log.warning("Dropping malformed %s event: %s", event.name, e)
            return None

    # -- handlers ---------------------------------------------------------------

    def _on_progress(self, payload: Any) -> Optional[Change]:
        job_id, body = _job_event_payload(payload)
        if isinstance(body, dict):
            if "percentage" not in body:
                raise EventDecodeError("progress event without percentage")
            percentage = body["percentage"]
        else:
            percentage = body
        status = JobStatus.processing(percentage)

        job = self._jobs.find(job_id)
        if job is None:
            log.debug("Progress for unknown job %s dropped", job_id)
            return None
        if not job.status.is_active:
            # Stale progress after a terminal (or paused) status never reverts it.
            log.debug("Progress for job %s ignored in state %s", job_id, job.status.kind.value)
            return None
        job.apply_status(status, self._now())
        self._jobs.touch()
        return Change(ChangeKind.JOB_UPDATED, job_id=job_id)

    def _on_status_change(self, payload: Any) -> Optional[Change]:
        job_id, body = _job_event_payload(payload)
        status = JobStatus.from_wire(body)
        job = self._jobs.find(job_id)
        if job is None:
            log.debug("Status change for unknown job %s dropped", job_id)
            return None
        job.apply_status(status, self._now())
        self._jobs.touch()
        return Change(ChangeKind.JOB_UPDATED, job_id=job_id)

    def _on_log_line(self, payload: Any) -> Change:
        if not isinstance(payload, str):
            raise EventDecodeError(f"log line is not a string: {payload!r}")
        self.logs.append(payload)
        return Change(ChangeKind.LOG_APPENDED, text=payload)

    def _on_queue_finished(self, _payload: Any) -> Change:
        self.processing = False
        return Change(ChangeKind.QUEUE_FINISHED)

    def _now(self) -> Optional[datetime]:
        return self._clock() if self._clock is not None else None
