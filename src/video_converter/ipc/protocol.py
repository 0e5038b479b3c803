# IPC-Protokoll: Nachrichten-Typen fuer die Kommunikation mit dem Encoding-Backend.
# Kommunikation erfolgt ueber NDJSON auf stdin/stdout.
# Jede Anfrage traegt eine request_id; das Backend antwortet mit einer "response"
# gleicher id und schickt unabhaengig davon "event"-Nachrichten.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from video_converter.errors import EventDecodeError
from video_converter.models.job import EncodingSettings

# Event names pushed by the backend
EVENT_PROGRESS = "encoding-progress"
EVENT_STATUS_CHANGE = "job-status-change"
EVENT_QUEUE_FINISHED = "queue-finished"
DEFAULT_LOG_CHANNEL = "ffmpeg-log"


# ---------------------------------------------------------------------------
# Requests (Python -> Backend)
# ---------------------------------------------------------------------------

@dataclass
class AddFilesRequest:
    paths: list[str]
    output_dir: str
    settings: EncodingSettings

    def to_dict(self) -> dict:
        return {
            "type": "add_files",
            "paths": list(self.paths),
            "output_dir": self.output_dir,
            "settings": self.settings.to_dict(),
        }


@dataclass
class AddDirectoryRequest:
    dir_path: str
    output_dir: str
    settings: EncodingSettings
    recursive: bool = True

    def to_dict(self) -> dict:
        return {
            "type": "add_directory",
            "dir_path": self.dir_path,
            "output_dir": self.output_dir,
            "settings": self.settings.to_dict(),
            "recursive": self.recursive,
        }


@dataclass
class JobIdRequest:
    """remove_job, cancel_job and get_job share the same shape."""

    type: str
    id: str

    def to_dict(self) -> dict:
        return {"type": self.type, "id": self.id}


@dataclass
class StartProcessingRequest:
    should_shutdown: bool = False

    def to_dict(self) -> dict:
        return {"type": "start_processing", "should_shutdown": self.should_shutdown}


@dataclass
class SetMaxConcurrentJobsRequest:
    count: int

    def to_dict(self) -> dict:
        return {"type": "set_max_concurrent_jobs", "count": self.count}


@dataclass
class ProbeVideoRequest:
    path: str

    def to_dict(self) -> dict:
        return {"type": "probe_video_file", "path": self.path}


@dataclass
class CreateSessionRequest:
    name: str

    def to_dict(self) -> dict:
        return {"type": "create_session", "name": self.name}


@dataclass
class SessionIdRequest:
    """load_session and delete_session."""

    type: str
    session_id: int

    def to_dict(self) -> dict:
        return {"type": self.type, "session_id": self.session_id}


@dataclass
class SimpleRequest:
    """Commands without arguments (get_jobs, pause_queue, shutdown, ...)."""

    type: str

    def to_dict(self) -> dict:
        return {"type": self.type}


# ---------------------------------------------------------------------------
# Responses / events (Backend -> Python)
# ---------------------------------------------------------------------------

@dataclass
class CommandResponse:
    request_id: int
    ok: bool
    result: Any = None
    error: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> CommandResponse:
        request_id = data.get("request_id")
        if isinstance(request_id, bool) or not isinstance(request_id, int):
            raise EventDecodeError(f"response without valid request_id: {request_id!r}")
        ok = bool(data.get("ok", False))
        return cls(
            request_id=request_id,
            ok=ok,
            result=data.get("result"),
            error=None if ok else str(data.get("error") or "Unknown error"),
        )


@dataclass
class BackendEvent:
    """A pushed event; the payload is decoded by the reconciler."""

    name: str
    payload: Any = None

    @classmethod
    def from_dict(cls, data: dict) -> BackendEvent:
        name = data.get("event")
        if not isinstance(name, str) or not name:
            raise EventDecodeError(f"event without name: {data!r}")
        return cls(name=name, payload=data.get("payload"))


@dataclass
class SystemInfo:
    encoder_available: bool = False
    probe_available: bool = False
    hardware_encoders: list[str] = field(default_factory=list)
    max_concurrent_jobs: int = 1
    cpu_cores: int = 1

    @classmethod
    def from_dict(cls, data: dict) -> SystemInfo:
        # The backend still uses the ffmpeg_* names.
        return cls(
            encoder_available=bool(data.get("encoder_available", data.get("ffmpeg_available", False))),
            probe_available=bool(data.get("probe_available", data.get("ffprobe_available", False))),
            hardware_encoders=[str(e) for e in data.get("hardware_encoders", [])],
            max_concurrent_jobs=max(1, int(data.get("max_concurrent_jobs", 1))),
            cpu_cores=max(1, int(data.get("cpu_cores", 1))),
        )


@dataclass(frozen=True)
class ResolutionPreset:
    name: str
    width: int
    height: int

    @property
    def resolution(self) -> tuple[int, int]:
        return (self.width, self.height)

    @classmethod
    def from_wire(cls, item: Any) -> ResolutionPreset:
        # Serialized as [name, [width, height]]
        name, (width, height) = item
        if not isinstance(name, str) or not all(
                isinstance(v, int) and not isinstance(v, bool) and v > 0 for v in (width, height)):
            raise EventDecodeError(f"invalid resolution preset: {item!r}")
        return cls(name, width, height)


@dataclass
class Session:
    id: int
    name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> Session:
        def ts(value: Any) -> Optional[datetime]:
            return datetime.fromisoformat(value) if value else None

        return cls(
            id=int(data["id"]),
            name=str(data["name"]),
            created_at=ts(data.get("created_at")),
            updated_at=ts(data.get("updated_at")),
        )


# ---------------------------------------------------------------------------
# Dispatcher: raw dict -> typed message
# ---------------------------------------------------------------------------

_MESSAGE_MAP = {
    "response": CommandResponse,
    "event": BackendEvent,
}


def parse_message(data: Any) -> Optional[object]:
    """Parse a raw JSON value into a CommandResponse or BackendEvent.

    Returns None for unknown message types; raises EventDecodeError when a
    known type is malformed.
    """
    if not isinstance(data, dict):
        raise EventDecodeError(f"message is not an object: {data!r}")
    cls = _MESSAGE_MAP.get(data.get("type"))
    if cls is None:
        return None
    return cls.from_dict(data)
