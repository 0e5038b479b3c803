# Queue-View: reine, synchrone Projektionen ueber die Job-Sammlung
# (Filter, Seiten, Zaehler, Statistik). Schreibt nie in die Sammlung.

from __future__ import annotations

import math
from enum import Enum
from typing import Iterable, Sequence, TypeVar

from video_converter.models.collection import JobCollection
from video_converter.models.job import Job, StatusKind
from video_converter.models.stats import QueueStats

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 7


class StatusFilter(Enum):
    ALL = "all"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"
    CANCELLED = "cancelled"

    def matches(self, job: Job) -> bool:
        if self is StatusFilter.ALL:
            return True
        return job.status.kind == StatusKind(self.value)


def page_count(count: int, page_size: int) -> int:
    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")
    return math.ceil(count / page_size)


def paginate(items: Iterable[T], page_size: int, page: int) -> list[T]:
    """Return one page (1-based); the page number is clamped into range."""
    seq: Sequence[T] = items if isinstance(items, Sequence) else list(items)
    pages = page_count(len(seq), page_size)
    if pages == 0:
        return []
    page = min(max(page, 1), pages)
    start = (page - 1) * page_size
    return list(seq[start:start + page_size])


class QueueView:
    """Projections memoized on the collection revision."""

    def __init__(self, jobs: JobCollection) -> None:
        self._jobs = jobs
        self._revision = -1
        self._cache: dict[object, object] = {}

    def _cached(self, key, compute):
        if self._revision != self._jobs.revision:
            self._cache.clear()
            self._revision = self._jobs.revision
        if key not in self._cache:
            self._cache[key] = compute()
        return self._cache[key]

    def _filtered(self, category: StatusFilter) -> tuple[Job, ...]:
        return self._cached(
            ("filter", category),
            lambda: tuple(j for j in self._jobs.all() if category.matches(j)),
        )

    def filter(self, category: StatusFilter = StatusFilter.ALL) -> list[Job]:
        """Jobs of one category, in collection order."""
        return list(self._filtered(category))

    def count_by_category(self, category: StatusFilter) -> int:
        if category is StatusFilter.ALL:
            return len(self._jobs)
        return len(self._filtered(category))

    def aggregate_stats(self) -> QueueStats:
        return self._cached("stats", lambda: QueueStats.from_jobs(self._jobs.all()))

    def page(self, category: StatusFilter, page: int,
             page_size: int = DEFAULT_PAGE_SIZE) -> list[Job]:
        return paginate(self.filter(category), page_size, page)

    def page_count(self, category: StatusFilter,
                   page_size: int = DEFAULT_PAGE_SIZE) -> int:
        return page_count(self.count_by_category(category), page_size)

    paginate = staticmethod(paginate)
