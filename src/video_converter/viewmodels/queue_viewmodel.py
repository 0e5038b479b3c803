# ViewModel fuer die Job-Queue.
# Haelt die lokale Sicht auf alle Jobs, schickt Befehle ueber das Command-Gateway
# und wendet die Backend-Events ueber den Reconciler an.
# Alle Schreibzugriffe auf die Job-Sammlung passieren hier, im GUI-Thread.

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from PyQt6.QtCore import QObject, QThreadPool, pyqtSignal

from video_converter.config.store import PersistentValue
from video_converter.errors import BackendCallError, ConverterError, NotFoundError, ValidationError
from video_converter.ipc.gateway import CommandGateway, PendingCall, Transport
from video_converter.ipc.protocol import BackendEvent, CommandResponse, ResolutionPreset, SystemInfo
from video_converter.models.collection import JobCollection
from video_converter.models.job import EncodingSettings, Job, StatusKind
from video_converter.models.stats import QueueStats
from video_converter.sync.reconciler import LOG_CAPACITY, ChangeKind, EventReconciler, LogBuffer
from video_converter.viewmodels.queue_view import QueueView
from video_converter.workers.backend_worker import BackendWorker

log = logging.getLogger(__name__)


class QueueViewModel(QObject):
    """Holds the job queue and coordinates IPC with the backend."""

    jobs_changed = pyqtSignal()
    job_updated = pyqtSignal(str)              # job_id
    processing_changed = pyqtSignal(bool)
    log_appended = pyqtSignal(str)
    error_reported = pyqtSignal(str, str)      # operation, message
    stats_received = pyqtSignal(object)        # QueueStats
    system_info_received = pyqtSignal(object)  # SystemInfo
    sessions_received = pyqtSignal(object)     # list[Session]
    resolution_presets_received = pyqtSignal(object)  # list[ResolutionPreset]

    def __init__(
        self,
        ipc_client: Transport,
        concurrency: Optional[PersistentValue] = None,
        log_capacity: int = LOG_CAPACITY,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._client = ipc_client
        self._gateway = CommandGateway(ipc_client, parent=self)
        self._jobs = JobCollection()
        self._reconciler = EventReconciler(self._jobs, LogBuffer(log_capacity))
        self._view = QueueView(self._jobs)
        self._concurrency = concurrency
        self._worker: Optional[BackendWorker] = None
        self.backend_stats: Optional[QueueStats] = None
        self.system_info: Optional[SystemInfo] = None
        self.resolution_presets: list[ResolutionPreset] = []

    # -- read-only state --------------------------------------------------------

    @property
    def jobs(self) -> list[Job]:
        return list(self._jobs.all())

    @property
    def view(self) -> QueueView:
        return self._view

    @property
    def gateway(self) -> CommandGateway:
        return self._gateway

    @property
    def logs(self) -> list[str]:
        return self._reconciler.logs.lines()

    @property
    def is_processing(self) -> bool:
        return self._reconciler.processing

    def find_job(self, job_id: str) -> Optional[Job]:
        return self._jobs.find(job_id)

    # -- commands ---------------------------------------------------------------

    def add_files(self, paths: list[str], output_dir: str,
                  settings: EncodingSettings) -> Optional[PendingCall]:
        return self._issue(
            "add_files",
            lambda: self._gateway.add_files(paths, output_dir, settings),
            self._on_jobs_added,
        )

    def add_directory(self, dir_path: str, output_dir: str,
                      settings: EncodingSettings, recursive: bool = True) -> Optional[PendingCall]:
        return self._issue(
            "add_directory",
            lambda: self._gateway.add_directory(dir_path, output_dir, settings, recursive),
            self._on_jobs_added,
        )

    def remove_job(self, job_id: str) -> Optional[PendingCall]:
        """Remove a job locally right away and tell the backend."""
        try:
            self._require_job(job_id)
        except NotFoundError as e:
            log.debug("remove_job ignored: %s", e)
            return None
        self._jobs.remove(job_id)
        self.jobs_changed.emit()
        return self._issue("remove_job", lambda: self._gateway.remove_job(job_id))

    def cancel_job(self, job_id: str) -> Optional[PendingCall]:
        """Request cancellation; the status only changes once the backend confirms it."""
        try:
            self._require_job(job_id)
        except NotFoundError as e:
            log.debug("cancel_job ignored: %s", e)
            return None
        return self._issue(
            "cancel_job",
            lambda: self._gateway.cancel_job(job_id),
            lambda _result: self.resync(),
        )

    def refresh_job(self, job_id: str) -> Optional[PendingCall]:
        """Fetch one job from the backend; drop it locally if the backend no longer has it."""
        return self._issue(
            "get_job",
            lambda: self._gateway.get_job(job_id),
            lambda job: self._on_job_refreshed(job_id, job),
        )

    def clear_all(self) -> Optional[PendingCall]:
        return self._issue("clear_jobs", self._gateway.clear_jobs, self._on_cleared)

    def clear_completed(self) -> None:
        """Remove every completed job, then resync with the backend."""
        done = [j.id for j in self._jobs.all() if j.status.kind == StatusKind.COMPLETED]
        if not done:
            return
        for job_id in done:
            self.remove_job(job_id)
        self.resync()

    def start_processing(self, should_shutdown: bool = False) -> Optional[PendingCall]:
        self._set_processing(True)
        return self._issue(
            "start_processing",
            lambda: self._gateway.start_processing(should_shutdown),
            on_failure=lambda _error: self._set_processing(False),
        )

    def pause_queue(self) -> Optional[PendingCall]:
        return self._issue(
            "pause_queue",
            self._gateway.pause_queue,
            lambda _result: self._set_processing(False),
        )

    def resume_queue(self) -> Optional[PendingCall]:
        return self._issue(
            "resume_queue",
            self._gateway.resume_queue,
            lambda _result: self._set_processing(True),
        )

    def set_max_concurrent_jobs(self, count: int) -> Optional[PendingCall]:
        return self._issue(
            "set_max_concurrent_jobs",
            lambda: self._gateway.set_max_concurrent_jobs(count),
        )

    def resync(self) -> Optional[PendingCall]:
        """Replace the local collection with the backend's job list."""
        return self._issue("get_jobs", self._gateway.get_jobs, self._on_resynced)

    def refresh_stats(self) -> Optional[PendingCall]:
        return self._issue("get_queue_stats", self._gateway.get_queue_stats, self._on_stats)

    def load_system_info(self) -> Optional[PendingCall]:
        return self._issue("get_system_info", self._gateway.get_system_info, self._on_system_info)

    def load_resolution_presets(self) -> Optional[PendingCall]:
        return self._issue(
            "get_resolution_presets",
            self._gateway.get_resolution_presets,
            self._on_resolution_presets,
        )

    def clear_logs(self) -> None:
        self._reconciler.logs.clear()

    # -- sessions ---------------------------------------------------------------

    def create_session(self, name: str) -> Optional[PendingCall]:
        return self._issue("create_session", lambda: self._gateway.create_session(name))

    def save_session(self) -> Optional[PendingCall]:
        return self._issue("save_session", self._gateway.save_session)

    def load_session(self, session_id: int) -> Optional[PendingCall]:
        return self._issue(
            "load_session",
            lambda: self._gateway.load_session(session_id),
            self._on_resynced,
        )

    def list_sessions(self) -> Optional[PendingCall]:
        return self._issue("get_sessions", self._gateway.get_sessions, self.sessions_received.emit)

    def delete_session(self, session_id: int) -> Optional[PendingCall]:
        return self._issue("delete_session", lambda: self._gateway.delete_session(session_id))

    # -- backend messages -------------------------------------------------------

    def handle_response(self, response: CommandResponse) -> None:
        self._gateway.handle_response(response)

    def handle_event(self, event: BackendEvent) -> None:
        change = self._reconciler.apply(event)
        if change is None:
            return
        if change.kind == ChangeKind.JOB_UPDATED:
            self.job_updated.emit(change.job_id)
        elif change.kind == ChangeKind.LOG_APPENDED:
            self.log_appended.emit(change.text)
        elif change.kind == ChangeKind.QUEUE_FINISHED:
            log.info("Queue finished")
            self.processing_changed.emit(False)

    def start_worker(self) -> None:
        """Start the backend reader worker in the thread pool."""
        if self._worker is not None:
            return
        self._worker = BackendWorker(self._client)
        self._worker.signals.response_received.connect(self.handle_response)
        self._worker.signals.event_received.connect(self.handle_event)
        self._worker.signals.connection_lost.connect(self._on_connection_lost)
        QThreadPool.globalInstance().start(self._worker)

    def stop(self) -> None:
        """Stop the worker and the backend."""
        if self._worker is not None:
            self._worker.stop()
        # Backend zuerst beenden: schliesst stdout -> Worker-Thread kehrt sofort zurueck
        self._client.stop()
        if self._worker is not None:
            QThreadPool.globalInstance().waitForDone(3000)
            self._worker = None

    # -- internal ---------------------------------------------------------------

    def _issue(
        self,
        operation: str,
        send: Callable[[], PendingCall],
        on_success: Optional[Callable[[Any], None]] = None,
        on_failure: Optional[Callable[[ConverterError], None]] = None,
    ) -> Optional[PendingCall]:
        try:
            call = send()
        except (ValidationError, BackendCallError) as e:
            self._report(operation, e)
            if on_failure is not None:
                on_failure(e)
            return None
        if on_success is not None:
            call.succeeded.connect(on_success)
        call.failed.connect(lambda error: self._report(operation, error))
        if on_failure is not None:
            call.failed.connect(on_failure)
        return call

    def _require_job(self, job_id: str) -> Job:
        job = self._jobs.find(job_id)
        if job is None:
            raise NotFoundError(job_id)
        return job

    def _report(self, operation: str, error: Exception) -> None:
        log.error("%s failed: %s", operation, error)
        self.error_reported.emit(operation, str(error))

    def _set_processing(self, processing: bool) -> None:
        if self._reconciler.processing == processing:
            return
        self._reconciler.processing = processing
        self.processing_changed.emit(processing)

    def _on_jobs_added(self, jobs: list[Job]) -> None:
        for job in jobs:
            self._jobs.upsert(job)
        log.info("%d job(s) added", len(jobs))
        self.jobs_changed.emit()

    def _on_job_refreshed(self, job_id: str, job: Optional[Job]) -> None:
        if job is None:
            if self._jobs.remove(job_id):
                self.jobs_changed.emit()
            return
        self._jobs.upsert(job)
        self.job_updated.emit(job.id)

    def _on_resynced(self, jobs: list[Job]) -> None:
        self._jobs.replace_all(jobs)
        self.jobs_changed.emit()

    def _on_cleared(self, _result: Any) -> None:
        self._jobs.clear()
        self.jobs_changed.emit()
        self.resync()

    def _on_stats(self, stats: QueueStats) -> None:
        local = self._view.aggregate_stats()
        if not stats.agrees_with(local):
            log.warning("Backend stats %s differ from local %s", stats, local)
        self.backend_stats = stats
        self.stats_received.emit(stats)

    def _on_system_info(self, info: SystemInfo) -> None:
        self.system_info = info
        if self._concurrency is not None:
            self._concurrency.set_default(info.max_concurrent_jobs)
        if not info.encoder_available:
            log.warning("Encoder not available on this system")
        self.system_info_received.emit(info)

    def _on_resolution_presets(self, presets: list[ResolutionPreset]) -> None:
        self.resolution_presets = presets
        self.resolution_presets_received.emit(presets)

    def _on_connection_lost(self) -> None:
        log.error("Connection to backend lost")
        if self._worker is not None:
            try:
                self._worker.signals.response_received.disconnect()
                self._worker.signals.event_received.disconnect()
                self._worker.signals.connection_lost.disconnect()
            except (TypeError, RuntimeError):
                pass  # already disconnected
            self._worker = None
        self._gateway.fail_all("connection to backend lost")
        self._set_processing(False)
        self.error_reported.emit("backend", "Connection to backend lost")
        self._client.stop()
