"""Shared fixtures: a Qt core application, a fake backend transport and job payloads."""

from __future__ import annotations

import os
from typing import Any, Optional

import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

from PyQt6.QtCore import QCoreApplication  # noqa: E402

from video_converter.ipc.protocol import BackendEvent, CommandResponse  # noqa: E402
from video_converter.models.job import Job  # noqa: E402
from video_converter.viewmodels.queue_viewmodel import QueueViewModel  # noqa: E402


class FakeTransport:
    """Records every request instead of writing it to a backend process."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.broken = False
        self.stopped = False

    def send(self, msg: dict) -> None:
        if self.broken:
            raise BrokenPipeError("pipe closed")
        self.sent.append(msg)

    def stop(self) -> None:
        self.stopped = True

    def last(self, msg_type: Optional[str] = None) -> dict:
        for msg in reversed(self.sent):
            if msg_type is None or msg["type"] == msg_type:
                return msg
        raise AssertionError(f"no {msg_type} request sent")

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]


def job_payload(job_id: str, status: Any = "Pending", name: Optional[str] = None) -> dict:
    name = name or f"{job_id}.mov"
    return {
        "id": job_id,
        "input_path": f"/videos/{name}",
        "output_path": f"/out/{job_id}.mp4",
        "video_info": {
            "path": f"/videos/{name}",
            "duration": 12.5,
            "width": 1920,
            "height": 1080,
            "bitrate": 8_000_000,
            "codec": "h264",
            "fps": 25.0,
            "size": 12_500_000,
            "audio_codec": "aac",
            "audio_bitrate": 128_000,
        },
        "settings": {"output_format": "mp4", "video_codec": "libx264", "crf": 23},
        "status": status,
        "created_at": "2024-05-01T10:00:00.123456Z",
    }


def make_job(job_id: str, status: Any = "Pending") -> Job:
    return Job.from_dict(job_payload(job_id, status))


def ok(request: dict, result: Any = None) -> CommandResponse:
    return CommandResponse(request_id=request["request_id"], ok=True, result=result)


def error(request: dict, message: str) -> CommandResponse:
    return CommandResponse(request_id=request["request_id"], ok=False, error=message)


def progress(job_id: str, percentage: Any) -> BackendEvent:
    return BackendEvent("encoding-progress", [job_id, {"percentage": percentage, "fps": 30.0}])


def status_change(job_id: str, status: Any) -> BackendEvent:
    return BackendEvent("job-status-change", [job_id, status])


@pytest.fixture(scope="session")
def qapp():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def vm(qapp, transport) -> QueueViewModel:
    return QueueViewModel(transport)
