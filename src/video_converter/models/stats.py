# Queue-Statistik: abgeleitete Zaehler pro Status-Kategorie.

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from video_converter.errors import EventDecodeError
from video_converter.models.job import Job, StatusKind


@dataclass(frozen=True)
class QueueStats:
    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    # Paused jobs and jobs with an unrecognised status are reported separately
    # and are not part of total.
    paused: int = 0
    unknown: int = 0

    @classmethod
    def from_jobs(cls, jobs: Iterable[Job]) -> QueueStats:
        counts = dict.fromkeys(StatusKind, 0)
        for job in jobs:
            counts[job.status.kind] += 1
        pending = counts[StatusKind.PENDING]
        processing = counts[StatusKind.PROCESSING]
        completed = counts[StatusKind.COMPLETED]
        failed = counts[StatusKind.FAILED]
        cancelled = counts[StatusKind.CANCELLED]
        return cls(
            total=pending + processing + completed + failed + cancelled,
            pending=pending,
            processing=processing,
            completed=completed,
            failed=failed,
            cancelled=cancelled,
            paused=counts[StatusKind.PAUSED],
            unknown=counts[StatusKind.UNKNOWN],
        )

    @classmethod
    def from_dict(cls, data: dict) -> QueueStats:
        try:
            return cls(
                total=int(data["total"]),
                pending=int(data["pending"]),
                processing=int(data["processing"]),
                completed=int(data["completed"]),
                failed=int(data["failed"]),
                cancelled=int(data["cancelled"]),
                paused=int(data.get("paused", 0)),
                unknown=int(data.get("unknown", 0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise EventDecodeError(f"invalid queue stats payload: {e}") from e

    def agrees_with(self, other: QueueStats) -> bool:
        """Compare the five per-category counts (total is not compared)."""
        return (
            self.pending == other.pending
            and self.processing == other.processing
            and self.completed == other.completed
            and self.failed == other.failed
            and self.cancelled == other.cancelled
        )
