# Datenmodell fuer einen einzelnen Konvertierungs-Job und seinen Status.
# Der Status ist eine getaggte Variante mit explizitem Diskriminator (kind).

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from video_converter.errors import EventDecodeError


class StatusKind(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


TERMINAL_KINDS = frozenset({StatusKind.COMPLETED, StatusKind.FAILED, StatusKind.CANCELLED})

# Legacy untagged encoding: "Pending" or {"Processing": {"progress": 40.0}}
_LEGACY_NAMES = {
    "Pending": StatusKind.PENDING,
    "Processing": StatusKind.PROCESSING,
    "Completed": StatusKind.COMPLETED,
    "Failed": StatusKind.FAILED,
    "Paused": StatusKind.PAUSED,
    "Cancelled": StatusKind.CANCELLED,
}


def _clamp_progress(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise EventDecodeError(f"progress is not a number: {value!r}")
    value = float(value)
    if math.isnan(value):
        raise EventDecodeError("progress is NaN")
    return min(100.0, max(0.0, value))


@dataclass(frozen=True)
class JobStatus:
    kind: StatusKind
    progress: float = 0.0
    output_path: Optional[str] = None
    error: Optional[str] = None
    raw: Any = None  # original payload of an UNKNOWN variant

    @classmethod
    def pending(cls) -> JobStatus:
        return cls(StatusKind.PENDING)

    @classmethod
    def processing(cls, progress: float) -> JobStatus:
        return cls(StatusKind.PROCESSING, progress=_clamp_progress(progress))

    @classmethod
    def completed(cls, output_path: str) -> JobStatus:
        return cls(StatusKind.COMPLETED, output_path=output_path)

    @classmethod
    def failed(cls, error: str) -> JobStatus:
        return cls(StatusKind.FAILED, error=error)

    @classmethod
    def paused(cls) -> JobStatus:
        return cls(StatusKind.PAUSED)

    @classmethod
    def cancelled(cls) -> JobStatus:
        return cls(StatusKind.CANCELLED)

    @property
    def is_terminal(self) -> bool:
        return self.kind in TERMINAL_KINDS

    @property
    def is_active(self) -> bool:
        """Pending or processing: the only states progress events may touch."""
        return self.kind in (StatusKind.PENDING, StatusKind.PROCESSING)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {"kind": self.kind.value}
        if self.kind == StatusKind.PROCESSING:
            d["progress"] = self.progress
        elif self.kind == StatusKind.COMPLETED:
            d["output_path"] = self.output_path
        elif self.kind == StatusKind.FAILED:
            d["error"] = self.error
        return d

    @classmethod
    def from_wire(cls, data: Any) -> JobStatus:
        """Decode a status in either the tagged or the legacy untagged form.

        Variants that are not recognised become UNKNOWN; payloads that are
        structurally broken raise EventDecodeError.
        """
        if isinstance(data, str):
            kind = _LEGACY_NAMES.get(data)
            if kind is None:
                try:
                    kind = StatusKind(data)
                except ValueError:
                    return cls(StatusKind.UNKNOWN, raw=data)
            if kind in (StatusKind.PROCESSING, StatusKind.COMPLETED, StatusKind.FAILED):
                raise EventDecodeError(f"status {data!r} requires a payload")
            return cls(kind)

        if not isinstance(data, dict):
            raise EventDecodeError(f"status must be a string or object, got {type(data).__name__}")

        if "kind" in data:
            try:
                kind = StatusKind(data["kind"])
            except (ValueError, TypeError):
                return cls(StatusKind.UNKNOWN, raw=data)
            return cls._from_fields(kind, data)

        if len(data) != 1:
            raise EventDecodeError(f"untagged status must have exactly one key: {data!r}")
        name, body = next(iter(data.items()))
        kind = _LEGACY_NAMES.get(name)
        if kind is None:
            return cls(StatusKind.UNKNOWN, raw=data)
        if body is None:
            body = {}
        if not isinstance(body, dict):
            raise EventDecodeError(f"status body for {name} must be an object")
        return cls._from_fields(kind, body)

    @classmethod
    def _from_fields(cls, kind: StatusKind, fields: dict) -> JobStatus:
        if kind == StatusKind.PROCESSING:
            if "progress" not in fields:
                raise EventDecodeError("processing status without progress")
            return cls.processing(fields["progress"])
        if kind == StatusKind.COMPLETED:
            output_path = fields.get("output_path")
            if not isinstance(output_path, str):
                raise EventDecodeError("completed status without output_path")
            return cls.completed(output_path)
        if kind == StatusKind.FAILED:
            error = fields.get("error")
            if not isinstance(error, str):
                raise EventDecodeError("failed status without error message")
            return cls.failed(error)
        if kind == StatusKind.UNKNOWN:
            return cls(StatusKind.UNKNOWN, raw=fields)
        return cls(kind)


@dataclass(frozen=True)
class VideoInfo:
    path: str
    duration: float = 0.0
    width: int = 0
    height: int = 0
    bitrate: int = 0
    codec: str = ""
    fps: float = 0.0
    size: int = 0
    audio_codec: Optional[str] = None
    audio_bitrate: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict) -> VideoInfo:
        return cls(
            path=str(data["path"]),
            duration=float(data.get("duration", 0.0)),
            width=int(data.get("width", 0)),
            height=int(data.get("height", 0)),
            bitrate=int(data.get("bitrate", 0)),
            codec=str(data.get("codec", "")),
            fps=float(data.get("fps", 0.0)),
            size=int(data.get("size", 0)),
            audio_codec=data.get("audio_codec"),
            audio_bitrate=data.get("audio_bitrate"),
        )


@dataclass(frozen=True)
class EncodingSettings:
    output_format: str = "mp4"
    video_codec: str = "libx264"
    audio_codec: str = "aac"
    resolution: Optional[tuple[int, int]] = None
    bitrate: Optional[int] = None
    crf: Optional[int] = 23
    preset: str = "medium"
    use_hardware: bool = True
    remove_metadata: bool = False
    custom_metadata: Optional[tuple[tuple[str, str], ...]] = None

    def to_dict(self) -> dict:
        return {
            "output_format": self.output_format,
            "video_codec": self.video_codec,
            "audio_codec": self.audio_codec,
            "resolution": list(self.resolution) if self.resolution else None,
            "bitrate": self.bitrate,
            "crf": self.crf,
            "preset": self.preset,
            "use_hardware": self.use_hardware,
            "remove_metadata": self.remove_metadata,
            "custom_metadata": (
                [list(pair) for pair in self.custom_metadata]
                if self.custom_metadata else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict) -> EncodingSettings:
        """Build settings from a stored/wire dict; unknown keys are ignored.

        Raises ValueError when a known field has the wrong type.
        """
        if not isinstance(data, dict):
            raise ValueError(f"encoding settings must be an object, got {data!r}")
        defaults = cls()
        return cls(
            output_format=_str_field(data, "output_format", defaults.output_format),
            video_codec=_str_field(data, "video_codec", defaults.video_codec),
            audio_codec=_str_field(data, "audio_codec", defaults.audio_codec),
            resolution=_resolution_field(data.get("resolution")),
            bitrate=_int_field(data, "bitrate", None),
            crf=_int_field(data, "crf", defaults.crf),
            preset=_str_field(data, "preset", defaults.preset),
            use_hardware=_bool_field(data, "use_hardware", defaults.use_hardware),
            remove_metadata=_bool_field(data, "remove_metadata", defaults.remove_metadata),
            custom_metadata=_metadata_field(data.get("custom_metadata")),
        )


def _str_field(data: dict, key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {value!r}")
    return value


def _int_field(data: dict, key: str, default: Optional[int]) -> Optional[int]:
    value = data.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    return value


def _bool_field(data: dict, key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be a boolean, got {value!r}")
    return value


def _resolution_field(value: Any) -> Optional[tuple[int, int]]:
    if not value:
        return None
    if (not isinstance(value, (list, tuple)) or len(value) != 2
            or any(isinstance(v, bool) or not isinstance(v, int) or v < 1 for v in value)):
        raise ValueError(f"resolution must be [width, height], got {value!r}")
    return (value[0], value[1])


def _metadata_field(value: Any) -> Optional[tuple[tuple[str, str], ...]]:
    if not value:
        return None
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"custom_metadata must be a list of pairs, got {value!r}")
    pairs = []
    for pair in value:
        if (not isinstance(pair, (list, tuple)) or len(pair) != 2
                or not all(isinstance(p, str) for p in pair)):
            raise ValueError(f"invalid custom_metadata entry: {pair!r}")
        pairs.append((pair[0], pair[1]))
    return tuple(pairs)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(eq=False)
class Job:
    id: str
    input_path: str
    output_path: str
    video_info: VideoInfo
    settings: EncodingSettings = field(default_factory=EncodingSettings)
    status: JobStatus = field(default_factory=JobStatus.pending)
    created_at: datetime = field(default_factory=_utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Job):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def apply_status(self, status: JobStatus, now: Optional[datetime] = None) -> None:
        """Set the status and stamp started_at / completed_at the first time."""
        now = max(now or _utcnow(), self.created_at)
        self.status = status
        if status.kind == StatusKind.PROCESSING and self.started_at is None:
            self.started_at = now
        elif status.is_terminal and self.completed_at is None:
            self.completed_at = max(now, self.started_at or now)

    @classmethod
    def from_dict(cls, data: dict) -> Job:
        """Decode a job as returned by the backend."""
        try:
            return cls(
                id=str(data["id"]),
                input_path=str(data["input_path"]),
                output_path=str(data["output_path"]),
                video_info=VideoInfo.from_dict(data["video_info"]),
                settings=EncodingSettings.from_dict(data.get("settings") or {}),
                status=JobStatus.from_wire(data.get("status", "Pending")),
                created_at=_parse_timestamp(data.get("created_at")) or _utcnow(),
                started_at=_parse_timestamp(data.get("started_at")),
                completed_at=_parse_timestamp(data.get("completed_at")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise EventDecodeError(f"invalid job payload: {e}") from e
