"""Tests for the queue viewmodel: commands, event handling and error surfacing."""

from __future__ import annotations

import pytest

from conftest import error, job_payload, ok, progress, status_change
from video_converter.ipc.protocol import BackendEvent
from video_converter.models.job import EncodingSettings, StatusKind


class Recorder:
    def __init__(self, vm) -> None:
        self.errors: list[tuple[str, str]] = []
        self.processing: list[bool] = []
        self.updated: list[str] = []
        self.changed = 0
        self.logs: list[str] = []
        vm.error_reported.connect(lambda op, msg: self.errors.append((op, msg)))
        vm.processing_changed.connect(self.processing.append)
        vm.job_updated.connect(self.updated.append)
        vm.jobs_changed.connect(self._on_changed)
        vm.log_appended.connect(self.logs.append)

    def _on_changed(self) -> None:
        self.changed += 1


@pytest.fixture
def rec(vm) -> Recorder:
    return Recorder(vm)


def add_jobs(vm, transport, *job_ids: str) -> None:
    paths = [f"/videos/{j}.mov" for j in job_ids]
    vm.add_files(paths, "/out", EncodingSettings())
    vm.handle_response(ok(transport.last("add_files"), [job_payload(j) for j in job_ids]))


def statuses(vm) -> dict[str, StatusKind]:
    return {job.id: job.status.kind for job in vm.jobs}


def test_added_jobs_are_applied_in_order(vm, transport, rec) -> None:
    add_jobs(vm, transport, "A", "B")
    add_jobs(vm, transport, "C")
    assert [j.id for j in vm.jobs] == ["A", "B", "C"]
    assert rec.changed == 2


def test_partial_add_applies_returned_jobs_only(vm, transport) -> None:
    vm.add_files(["/videos/a.mov", "/videos/broken.txt"], "/out", EncodingSettings())
    vm.handle_response(ok(transport.last(), [job_payload("a")]))
    assert [j.id for j in vm.jobs] == ["a"]


def test_validation_error_is_reported_and_nothing_sent(vm, transport, rec) -> None:
    assert vm.add_files([], "/out", EncodingSettings()) is None
    assert transport.sent == []
    assert rec.errors[0][0] == "add_files"


def test_backend_error_is_reported(vm, transport, rec) -> None:
    vm.add_files(["/videos/a.mov"], "/out", EncodingSettings())
    vm.handle_response(error(transport.last(), "ffprobe failed"))
    assert vm.jobs == []
    assert rec.errors == [("add_files", "add_files: ffprobe failed")]


def test_start_then_out_of_order_events(vm, transport, rec) -> None:
    add_jobs(vm, transport, "A", "B", "C")
    vm.start_processing()
    vm.handle_response(ok(transport.last("start_processing")))
    assert vm.is_processing

    vm.handle_event(progress("B", 40))
    vm.handle_event(status_change("B", {"Completed": {"output_path": "/out/B.mp4"}}))
    vm.handle_event(progress("B", 35))

    assert statuses(vm) == {
        "A": StatusKind.PENDING,
        "B": StatusKind.COMPLETED,
        "C": StatusKind.PENDING,
    }
    assert rec.updated == ["B", "B"]


def test_cancel_is_not_applied_optimistically(vm, transport) -> None:
    add_jobs(vm, transport, "A")
    call = vm.cancel_job("A")
    assert transport.last()["type"] == "cancel_job"
    # The backend never confirms.
    assert not call.done
    assert vm.find_job("A").status.kind == StatusKind.PENDING


def test_cancel_confirmation_resyncs(vm, transport) -> None:
    add_jobs(vm, transport, "A")
    vm.cancel_job("A")
    vm.handle_response(ok(transport.last("cancel_job")))
    assert transport.last()["type"] == "get_jobs"
    vm.handle_response(ok(transport.last(), [job_payload("A", "Cancelled")]))
    assert vm.find_job("A").status.kind == StatusKind.CANCELLED


def test_unknown_ids_are_no_ops(vm, transport, rec) -> None:
    assert vm.cancel_job("nope") is None
    assert vm.remove_job("nope") is None
    assert transport.sent == []
    assert rec.errors == []


def test_remove_is_local_and_idempotent(vm, transport, rec) -> None:
    add_jobs(vm, transport, "A", "B")
    vm.remove_job("A")
    # Backend says the job was already gone: local removal stands.
    vm.handle_response(error(transport.last("remove_job"), "job not found"))
    vm.remove_job("A")
    assert [j.id for j in vm.jobs] == ["B"]
    assert transport.types().count("remove_job") == 1


def test_remove_surfaces_channel_failure(vm, transport, rec) -> None:
    add_jobs(vm, transport, "A")
    transport.broken = True
    assert vm.remove_job("A") is None
    assert vm.jobs == []
    assert rec.errors[0][0] == "remove_job"


def test_start_failure_reverts_processing_flag(vm, transport, rec) -> None:
    vm.start_processing(True)
    assert transport.last()["should_shutdown"] is True
    vm.handle_response(error(transport.last(), "encoder missing"))
    assert not vm.is_processing
    assert rec.processing == [True, False]


def test_start_with_broken_channel(vm, transport, rec) -> None:
    transport.broken = True
    vm.start_processing()
    assert not vm.is_processing
    assert rec.errors[0][0] == "start_processing"


def test_pause_and_queue_finished_clear_processing(vm, transport, rec) -> None:
    vm.start_processing()
    vm.handle_response(ok(transport.last()))
    vm.pause_queue()
    vm.handle_response(ok(transport.last("pause_queue")))
    assert not vm.is_processing
    vm.resume_queue()
    vm.handle_response(ok(transport.last("resume_queue")))
    assert vm.is_processing
    vm.handle_event(BackendEvent("queue-finished"))
    assert not vm.is_processing
    assert rec.processing[-1] is False


def test_malformed_event_does_not_block_later_events(vm, transport, rec) -> None:
    add_jobs(vm, transport, "A")
    vm.handle_event(BackendEvent("encoding-progress", {"garbage": True}))
    vm.handle_event(progress("A", 25))
    assert vm.find_job("A").status.progress == 25.0
    assert rec.errors == []


def test_log_lines_reach_the_buffer(vm, rec) -> None:
    vm.handle_event(BackendEvent("ffmpeg-log", "frame=  10 fps=30"))
    assert vm.logs == ["frame=  10 fps=30"]
    assert rec.logs == ["frame=  10 fps=30"]
    vm.clear_logs()
    assert vm.logs == []


def test_resync_replaces_collection(vm, transport) -> None:
    add_jobs(vm, transport, "A", "B")
    vm.resync()
    vm.handle_response(ok(transport.last("get_jobs"), [job_payload("B", "Paused")]))
    assert [j.id for j in vm.jobs] == ["B"]
    assert vm.find_job("B").status.kind == StatusKind.PAUSED


def test_clear_completed_removes_and_resyncs(vm, transport) -> None:
    add_jobs(vm, transport, "A", "B", "C")
    vm.handle_event(status_change("B", {"Completed": {"output_path": "/out/B.mp4"}}))
    vm.clear_completed()
    assert [j.id for j in vm.jobs] == ["A", "C"]
    assert transport.types()[-2:] == ["remove_job", "get_jobs"]


def test_clear_all(vm, transport) -> None:
    add_jobs(vm, transport, "A", "B")
    vm.clear_all()
    vm.handle_response(ok(transport.last("clear_jobs")))
    assert vm.jobs == []
    assert transport.last()["type"] == "get_jobs"


def test_backend_stats_are_cross_checked(vm, transport, caplog) -> None:
    add_jobs(vm, transport, "A")
    received = []
    vm.stats_received.connect(received.append)
    vm.refresh_stats()
    vm.handle_response(ok(transport.last(), {
        "total": 1, "pending": 0, "processing": 1, "completed": 0, "failed": 0, "cancelled": 0,
    }))
    assert received[0].processing == 1
    assert vm.backend_stats == received[0]
    assert "differ from local" in caplog.text


def test_connection_lost_fails_pending_calls(vm, transport, rec) -> None:
    add_jobs(vm, transport, "A")
    vm.start_processing()
    call = vm.cancel_job("A")
    vm._on_connection_lost()
    assert call.done and call.error is not None
    assert not vm.is_processing
    assert transport.stopped
    # Jobs keep their last known status.
    assert vm.find_job("A").status.kind == StatusKind.PENDING
    assert ("backend", "Connection to backend lost") in rec.errors


def test_sessions_load_into_collection(vm, transport) -> None:
    add_jobs(vm, transport, "A")
    vm.load_session(3)
    vm.handle_response(ok(transport.last("load_session"), [job_payload("X"), job_payload("Y")]))
    assert [j.id for j in vm.jobs] == ["X", "Y"]


def test_refresh_job_updates_or_drops_it(vm, transport, rec) -> None:
    add_jobs(vm, transport, "A", "B")
    vm.refresh_job("A")
    vm.handle_response(ok(transport.last("get_job"), job_payload("A", "Paused")))
    assert vm.find_job("A").status.kind == StatusKind.PAUSED
    assert rec.updated == ["A"]

    vm.refresh_job("B")
    vm.handle_response(ok(transport.last("get_job"), None))
    assert [j.id for j in vm.jobs] == ["A"]


def test_resolution_presets_are_kept_and_announced(vm, transport) -> None:
    received = []
    vm.resolution_presets_received.connect(received.append)
    vm.load_resolution_presets()
    vm.handle_response(ok(transport.last("get_resolution_presets"), [["4K", [3840, 2160]]]))
    assert [p.resolution for p in vm.resolution_presets] == [(3840, 2160)]
    assert received == [vm.resolution_presets]
