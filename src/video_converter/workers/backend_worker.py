# Worker: Liest kontinuierlich Nachrichten vom Backend und leitet sie
# als Qt-Signals an die Engine weiter.  Laeuft in QThreadPool.
# Die Signals landen per Queued-Connection im GUI-Thread; dort ist der einzige
# Schreiber der Job-Sammlung.

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from PyQt6.QtCore import QObject, QRunnable, pyqtSignal, pyqtSlot

from video_converter.ipc.protocol import BackendEvent, CommandResponse

if TYPE_CHECKING:
    from video_converter.ipc.client import IpcClient

log = logging.getLogger(__name__)


class WorkerSignals(QObject):
    """Signals emitted by BackendWorker (must be on QObject, not QRunnable)."""

    response_received = pyqtSignal(object)  # CommandResponse
    event_received = pyqtSignal(object)     # BackendEvent
    connection_lost = pyqtSignal()


class BackendWorker(QRunnable):
    """Reads messages from the IPC client in a background thread."""

    def __init__(self, ipc_client: IpcClient) -> None:
        super().__init__()
        self.signals = WorkerSignals()
        self._client = ipc_client
        self._running = True
        self.setAutoDelete(False)

    def stop(self) -> None:
        self._running = False

    @pyqtSlot()
    def run(self) -> None:
        """Main loop: read messages and dispatch to signals."""
        try:
            for message in self._client.read_messages():
                if not self._running:
                    break
                self._dispatch(message)
        except Exception:
            log.exception("Backend reader error")
        finally:
            if self._running:
                self.signals.connection_lost.emit()
            log.info("Backend worker stopped")

    def _dispatch(self, message: object) -> None:
        if isinstance(message, CommandResponse):
            self.signals.response_received.emit(message)
        elif isinstance(message, BackendEvent):
            self.signals.event_received.emit(message)
        else:
            log.warning("Unhandled message: %r", message)
