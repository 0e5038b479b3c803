# Command-Gateway: typisierte Befehle an das Backend.
# Jeder Befehl liefert ein PendingCall, das aufgeloest wird, sobald die Antwort
# mit passender request_id eintrifft. Die Job-Sammlung wird hier nie veraendert.

from __future__ import annotations

import itertools
import logging
import os
from typing import Any, Callable, Optional, Protocol

from PyQt6.QtCore import QObject, pyqtSignal

from video_converter.errors import BackendCallError, EventDecodeError, ValidationError
from video_converter.ipc.protocol import (
    AddDirectoryRequest,
    AddFilesRequest,
    CommandResponse,
    CreateSessionRequest,
    JobIdRequest,
    ProbeVideoRequest,
    ResolutionPreset,
    Session,
    SessionIdRequest,
    SetMaxConcurrentJobsRequest,
    SimpleRequest,
    StartProcessingRequest,
    SystemInfo,
)
from video_converter.models.job import EncodingSettings, Job, VideoInfo
from video_converter.models.stats import QueueStats

log = logging.getLogger(__name__)


class Transport(Protocol):
    def send(self, msg: dict) -> None: ...


class PendingCall(QObject):
    """Result handle of one command; emits exactly one of its two signals."""

    succeeded = pyqtSignal(object)  # decoded result
    failed = pyqtSignal(object)     # BackendCallError

    def __init__(self, command: str, request_id: int,
                 decode: Callable[[Any], Any]) -> None:
        super().__init__()
        self.command = command
        self.request_id = request_id
        self._decode = decode
        self.done = False
        self.result: Any = None
        self.error: Optional[BackendCallError] = None

    def resolve(self, response: CommandResponse) -> None:
        if self.done:
            return
        if not response.ok:
            self.fail(BackendCallError(self.command, response.error or "Unknown error"))
            return
        try:
            result = self._decode(response.result)
        except (EventDecodeError, KeyError, TypeError, ValueError) as e:
            self.fail(BackendCallError(self.command, f"invalid response payload: {e}"))
            return
        self.done = True
        self.result = result
        self.succeeded.emit(result)

    def fail(self, error: BackendCallError) -> None:
        if self.done:
            return
        self.done = True
        self.error = error
        self.failed.emit(error)


def _none(_result: Any) -> None:
    return None


def _job_list(result: Any) -> list[Job]:
    if not isinstance(result, list):
        raise EventDecodeError("expected a list of jobs")
    return [Job.from_dict(j) for j in result]


def _optional_job(result: Any) -> Optional[Job]:
    return Job.from_dict(result) if result is not None else None


def _session_list(result: Any) -> list[Session]:
    if not isinstance(result, list):
        raise EventDecodeError("expected a list of sessions")
    return [Session.from_dict(s) for s in result]


def _resolution_presets(result: Any) -> list[ResolutionPreset]:
    if not isinstance(result, list):
        raise EventDecodeError("expected a list of resolution presets")
    return [ResolutionPreset.from_wire(p) for p in result]


def _require_absolute(value: str, what: str) -> None:
    if not value:
        raise ValidationError(f"{what} must not be empty")
    if not os.path.isabs(value):
        raise ValidationError(f"{what} must be an absolute path: {value}")


class CommandGateway(QObject):
    """Translates intents into backend requests and tracks their responses."""

    def __init__(self, transport: Transport, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._transport = transport
        self._ids = itertools.count(1)
        self._pending: dict[int, PendingCall] = {}

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # -- commands ---------------------------------------------------------------

    def add_files(self, paths: list[str], output_dir: str,
                  settings: EncodingSettings) -> PendingCall:
        if not paths:
            raise ValidationError("no files given")
        for p in paths:
            _require_absolute(p, "input path")
        _require_absolute(output_dir, "output directory")
        return self._call(AddFilesRequest(list(paths), output_dir, settings).to_dict(), _job_list)

    def add_directory(self, dir_path: str, output_dir: str,
                      settings: EncodingSettings, recursive: bool = True) -> PendingCall:
        _require_absolute(dir_path, "directory")
        if not os.path.isdir(dir_path):
            raise ValidationError(f"not a directory: {dir_path}")
        _require_absolute(output_dir, "output directory")
        req = AddDirectoryRequest(dir_path, output_dir, settings, recursive)
        return self._call(req.to_dict(), _job_list)

    def remove_job(self, job_id: str) -> PendingCall:
        return self._call(JobIdRequest("remove_job", job_id).to_dict(), _none)

    def cancel_job(self, job_id: str) -> PendingCall:
        return self._call(JobIdRequest("cancel_job", job_id).to_dict(), _none)

    def get_job(self, job_id: str) -> PendingCall:
        return self._call(JobIdRequest("get_job", job_id).to_dict(), _optional_job)

    def clear_jobs(self) -> PendingCall:
        return self._call(SimpleRequest("clear_jobs").to_dict(), _none)

    def start_processing(self, should_shutdown: bool = False) -> PendingCall:
        return self._call(StartProcessingRequest(bool(should_shutdown)).to_dict(), _none)

    def pause_queue(self) -> PendingCall:
        return self._call(SimpleRequest("pause_queue").to_dict(), _none)

    def resume_queue(self) -> PendingCall:
        return self._call(SimpleRequest("resume_queue").to_dict(), _none)

    def set_max_concurrent_jobs(self, count: int) -> PendingCall:
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            raise ValidationError(f"concurrency must be a positive integer, got {count!r}")
        return self._call(SetMaxConcurrentJobsRequest(count).to_dict(), _none)

    def get_jobs(self) -> PendingCall:
        return self._call(SimpleRequest("get_jobs").to_dict(), _job_list)

    def get_queue_stats(self) -> PendingCall:
        return self._call(SimpleRequest("get_queue_stats").to_dict(), QueueStats.from_dict)

    def get_system_info(self) -> PendingCall:
        return self._call(SimpleRequest("get_system_info").to_dict(), SystemInfo.from_dict)

    def probe_video_file(self, path: str) -> PendingCall:
        _require_absolute(path, "input path")
        return self._call(ProbeVideoRequest(path).to_dict(), VideoInfo.from_dict)

    def get_resolution_presets(self) -> PendingCall:
        return self._call(SimpleRequest("get_resolution_presets").to_dict(), _resolution_presets)

    # -- sessions ---------------------------------------------------------------

    def create_session(self, name: str) -> PendingCall:
        if not name or not name.strip():
            raise ValidationError("session name must not be empty")
        return self._call(CreateSessionRequest(name.strip()).to_dict(), int)

    def save_session(self) -> PendingCall:
        return self._call(SimpleRequest("save_session").to_dict(), _none)

    def load_session(self, session_id: int) -> PendingCall:
        return self._call(SessionIdRequest("load_session", int(session_id)).to_dict(), _job_list)

    def get_sessions(self) -> PendingCall:
        return self._call(SimpleRequest("get_sessions").to_dict(), _session_list)

    def delete_session(self, session_id: int) -> PendingCall:
        return self._call(SessionIdRequest("delete_session", int(session_id)).to_dict(), _none)

    # -- responses --------------------------------------------------------------

    def handle_response(self, response: CommandResponse) -> None:
        call = self._pending.pop(response.request_id, None)
        if call is None:
            log.warning("Response for unknown request %d dropped", response.request_id)
            return
        if not response.ok:
            log.error("Backend rejected %s: %s", call.command, response.error)
        call.resolve(response)

    def fail_all(self, message: str) -> None:
        """Fail every outstanding call, e.g. after the backend went away."""
        pending = list(self._pending.values())
        self._pending.clear()
        for call in pending:
            call.fail(BackendCallError(call.command, message))

    # -- internal ---------------------------------------------------------------

    def _call(self, msg: dict, decode: Callable[[Any], Any]) -> PendingCall:
        command = msg["type"]
        request_id = next(self._ids)
        msg["request_id"] = request_id
        call = PendingCall(command, request_id, decode)
        self._pending[request_id] = call
        try:
            self._transport.send(msg)
        except (RuntimeError, BrokenPipeError, OSError) as e:
            self._pending.pop(request_id, None)
            raise BackendCallError(command, str(e)) from e
        log.debug("Sent %s (request %d)", command, request_id)
        return call
