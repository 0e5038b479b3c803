"""Tests for the ordered job collection."""

from __future__ import annotations

from conftest import make_job
from video_converter.models.collection import JobCollection
from video_converter.models.job import JobStatus


def ids(collection: JobCollection) -> list[str]:
    return [job.id for job in collection.all()]


def test_upsert_preserves_first_insertion_order() -> None:
    jobs = JobCollection()
    for job_id in ("c", "a", "b"):
        jobs.upsert(make_job(job_id))
    # Updates never reorder.
    jobs.upsert(make_job("a", {"Processing": {"progress": 30}}))
    jobs.upsert(make_job("c", "Cancelled"))
    jobs.upsert(make_job("a", {"Processing": {"progress": 60}}))
    assert ids(jobs) == ["c", "a", "b"]
    assert jobs.find("a").status == JobStatus.processing(60)


def test_remove_is_idempotent() -> None:
    jobs = JobCollection([make_job("a"), make_job("b")])
    assert jobs.remove("a") is True
    revision = jobs.revision
    assert jobs.remove("a") is False
    assert ids(jobs) == ["b"]
    assert jobs.revision == revision


def test_find_returns_none_for_unknown_ids() -> None:
    jobs = JobCollection()
    assert jobs.find("missing") is None
    assert "missing" not in jobs


def test_all_is_restartable_and_lazy() -> None:
    jobs = JobCollection([make_job("a"), make_job("b")])
    view = jobs.all()
    assert [j.id for j in view] == ["a", "b"]
    assert [j.id for j in view] == ["a", "b"]
    jobs.upsert(make_job("c"))
    # The same view reflects later changes.
    assert [j.id for j in view] == ["a", "b", "c"]
    assert len(view) == 3
    assert not hasattr(view, "append")


def test_removed_id_is_appended_again_at_the_end() -> None:
    jobs = JobCollection([make_job("a"), make_job("b")])
    jobs.remove("a")
    jobs.upsert(make_job("a"))
    assert ids(jobs) == ["b", "a"]


def test_replace_all_adopts_backend_order() -> None:
    jobs = JobCollection([make_job("a"), make_job("b")])
    jobs.replace_all([make_job("c"), make_job("b")])
    assert ids(jobs) == ["c", "b"]


def test_revision_changes_on_every_mutation() -> None:
    jobs = JobCollection()
    seen = {jobs.revision}
    jobs.upsert(make_job("a"))
    seen.add(jobs.revision)
    jobs.touch()
    seen.add(jobs.revision)
    jobs.clear()
    seen.add(jobs.revision)
    assert len(seen) == 4
