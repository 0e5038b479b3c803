# Geordnete Job-Sammlung: Einfuegereihenfolge bleibt erhalten, Zugriff per id in O(1).
# Nur die Engine schreibt hinein; alle anderen sehen lediglich all().

from __future__ import annotations

from typing import Iterable, Iterator, Optional

from video_converter.models.job import Job


class JobsView:
    """Read-only, restartable view over the collection in insertion order."""

    def __init__(self, collection: JobCollection) -> None:
        self._collection = collection

    def __iter__(self) -> Iterator[Job]:
        jobs = self._collection._jobs
        for job_id in list(self._collection._order):
            job = jobs.get(job_id)
            if job is not None:
                yield job

    def __len__(self) -> int:
        return len(self._collection)


class JobCollection:
    def __init__(self, jobs: Iterable[Job] = ()) -> None:
        self._jobs: dict[str, Job] = {}
        self._order: list[str] = []  # insertion order
        self._revision = 0
        for job in jobs:
            self.upsert(job)

    @property
    def revision(self) -> int:
        """Incremented on every mutation; projections memoize on it."""
        return self._revision

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    def upsert(self, job: Job) -> None:
        """Append an unseen job, or replace a known one at the same position."""
        if job.id not in self._jobs:
            self._order.append(job.id)
        self._jobs[job.id] = job
        self._revision += 1

    def remove(self, job_id: str) -> bool:
        """Remove a job; returns False (and changes nothing) if it is absent."""
        if job_id not in self._jobs:
            return False
        del self._jobs[job_id]
        self._order.remove(job_id)
        self._revision += 1
        return True

    def find(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    def all(self) -> JobsView:
        return JobsView(self)

    def touch(self) -> None:
        """Record an in-place change of a stored job (e.g. a status update)."""
        self._revision += 1

    def replace_all(self, jobs: Iterable[Job]) -> None:
        """Full resync: the backend's list becomes the collection, in its order."""
        self._jobs.clear()
        self._order.clear()
        for job in jobs:
            if job.id not in self._jobs:
                self._order.append(job.id)
            self._jobs[job.id] = job
        self._revision += 1

    def clear(self) -> None:
        if not self._jobs:
            return
        self._jobs.clear()
        self._order.clear()
        self._revision += 1
