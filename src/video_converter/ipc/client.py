# IPC-Client: Startet das Encoding-Backend als Subprocess und kommuniziert
# ueber NDJSON auf stdin/stdout.

from __future__ import annotations

import json
import logging
import os
import subprocess
from pathlib import Path
from typing import Generator, Optional

from video_converter.errors import EventDecodeError
from video_converter.ipc.protocol import SimpleRequest, parse_message

log = logging.getLogger(__name__)

BACKEND_ENV = "VIDEO_CONVERTER_BACKEND"
BACKEND_NAME = "video-converter-backend"


def find_backend_binary() -> str:
    """Locate the backend binary.

    Resolution order:
      1. VIDEO_CONVERTER_BACKEND environment variable
      2. backend/target/{release,debug} next to the project root
      3. On PATH as 'video-converter-backend'
    """
    env = os.environ.get(BACKEND_ENV)
    if env:
        return env

    # src/video_converter/ipc/client.py -> up 3 levels to the project root
    project_root = Path(__file__).resolve().parents[3]
    for profile in ("release", "debug"):
        candidate = project_root / "backend" / "target" / profile / BACKEND_NAME
        if candidate.is_file():
            return str(candidate)

    return BACKEND_NAME


class IpcClient:
    """Manages the backend subprocess and provides IPC over NDJSON."""

    def __init__(self, backend_path: Optional[str] = None) -> None:
        self._backend_path = backend_path or find_backend_binary()
        self._process: Optional[subprocess.Popen] = None

    @property
    def backend_path(self) -> str:
        return self._backend_path

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def start(self) -> None:
        """Start the backend subprocess."""
        if self.is_running:
            return
        log.info("Starting backend: %s", self._backend_path)
        self._process = subprocess.Popen(
            [self._backend_path, "--ipc"],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            bufsize=1,  # line-buffered
        )

    def stop(self) -> None:
        """Send shutdown command and terminate the backend."""
        if not self.is_running:
            self._process = None
            return
        try:
            self.send(SimpleRequest("shutdown").to_dict())
        except (RuntimeError, BrokenPipeError, OSError):
            pass
        try:
            self._process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            self._process.terminate()
            try:
                self._process.wait(timeout=3)
            except subprocess.TimeoutExpired:
                self._process.kill()
        self._process = None

    def send(self, msg: dict) -> None:
        """Write one message as a single NDJSON line."""
        if self._process is None or self._process.stdin is None:
            raise RuntimeError("Backend not running")
        line = json.dumps(msg, separators=(",", ":")) + "\n"
        self._process.stdin.write(line)
        self._process.stdin.flush()

    def read_messages(self) -> Generator:
        """Blocking generator: yields parsed messages from stdout.

        This should be called from a worker thread, not the main thread.
        """
        if self._process is None or self._process.stdout is None:
            return
        yield from iter_messages(self._process.stdout)


def iter_messages(lines) -> Generator:
    """Decode NDJSON lines; invalid lines are logged and skipped."""
    for line in lines:
        line = line.strip()
        if not line:
            continue
        try:
            data = json.loads(line)
        except json.JSONDecodeError:
            log.warning("Invalid JSON from backend: %s", line[:200])
            continue
        try:
            message = parse_message(data)
        except EventDecodeError as e:
            log.warning("Malformed message from backend: %s", e)
            continue
        if message is not None:
            yield message
        else:
            log.warning("Unknown message type: %s", data.get("type"))
