# App-Factory: Startet das Backend, baut Engine und Einstellungen und verbindet
# das Hauptfenster damit.

import logging
import os
import shutil
import time
from typing import Optional

from PyQt6.QtWidgets import QMessageBox

from video_converter.config.store import (
    ACTIVE_TABS,
    KEY_ACTIVE_TAB,
    KEY_CONCURRENT_JOBS,
    KEY_ENCODING_SETTINGS,
    KEY_OUTPUT_DIR,
    KEY_SHOULD_SHUTDOWN,
    PersistentValue,
    SettingsStore,
)
from video_converter.ipc.client import IpcClient, find_backend_binary
from video_converter.models.job import EncodingSettings
from video_converter.viewmodels.queue_viewmodel import QueueViewModel
from video_converter.views.main_window import MainWindow

log = logging.getLogger(__name__)


class AppSettings:
    """The persisted settings of the application, bound to one store."""

    def __init__(self, store: SettingsStore) -> None:
        self.store = store
        self.encoding = PersistentValue(store, KEY_ENCODING_SETTINGS, EncodingSettings().to_dict())
        self.output_dir = PersistentValue(store, KEY_OUTPUT_DIR, "")
        self.should_shutdown = PersistentValue(store, KEY_SHOULD_SHUTDOWN, False)
        self.concurrent_jobs = PersistentValue(store, KEY_CONCURRENT_JOBS, 1)
        self.active_tab = PersistentValue(store, KEY_ACTIVE_TAB, ACTIVE_TABS[0])

    def encoding_settings(self) -> EncodingSettings:
        try:
            return EncodingSettings.from_dict(self.encoding.value or {})
        except ValueError as e:
            log.warning("Stored encoding settings are invalid, using defaults: %s", e)
            return EncodingSettings()


def create_app() -> Optional[MainWindow]:
    """Erzeugt und konfiguriert das Hauptfenster.

    Returns None if the backend binary cannot be found or started (shows error dialog).
    """
    backend_path = find_backend_binary()

    if not _backend_available(backend_path):
        QMessageBox.critical(
            None,
            "Backend not found",
            f"The encoding backend could not be found.\n\n"
            f"Searched: {backend_path}\n\n"
            f"Set the VIDEO_CONVERTER_BACKEND environment variable to the "
            f"correct path or make sure the backend is installed.",
        )
        return None

    client = IpcClient(backend_path)
    try:
        client.start()
    except OSError as exc:
        QMessageBox.critical(None, "Backend start failed",
                             f"The backend could not be started:\n\n{exc}")
        return None

    time.sleep(0.2)
    if not client.is_running:
        QMessageBox.critical(None, "Backend error",
                             "The backend exited immediately.\nPlease check the installation.")
        return None

    settings = AppSettings(SettingsStore())

    window = MainWindow(settings)
    vm = QueueViewModel(client, concurrency=settings.concurrent_jobs, parent=window)
    # Stored (or seeded) concurrency is pushed to the backend as soon as it is known.
    settings.concurrent_jobs.changed.connect(vm.set_max_concurrent_jobs)
    vm.system_info_received.connect(
        lambda _info: vm.set_max_concurrent_jobs(settings.concurrent_jobs.value))
    vm.start_worker()
    vm.load_system_info()
    vm.load_resolution_presets()
    vm.resync()

    window.set_viewmodel(vm)
    return window


def _backend_available(path: str) -> bool:
    """Check whether the backend binary exists."""
    if os.path.isabs(path):
        return os.path.isfile(path)
    # On PATH
    return shutil.which(path) is not None
