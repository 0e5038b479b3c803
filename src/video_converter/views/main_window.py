# Hauptfenster der Anwendung.
# Zeigt die Projektionen der Engine (Seiten der Job-Liste, Statistik, Logs)
# und leitet Benutzeraktionen an das ViewModel weiter.

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QAction
from PyQt6.QtWidgets import (
    QAbstractItemView,
    QCheckBox,
    QComboBox,
    QFileDialog,
    QFormLayout,
    QGroupBox,
    QHBoxLayout,
    QHeaderView,
    QLabel,
    QLineEdit,
    QMainWindow,
    QMenu,
    QMessageBox,
    QPlainTextEdit,
    QPushButton,
    QSpinBox,
    QSplitter,
    QStatusBar,
    QTableWidget,
    QTableWidgetItem,
    QTabWidget,
    QToolBar,
    QVBoxLayout,
    QWidget,
)

from video_converter.config.store import ACTIVE_TABS
from video_converter.ipc.protocol import ResolutionPreset, SystemInfo
from video_converter.models.job import EncodingSettings, Job, StatusKind
from video_converter.viewmodels.queue_view import DEFAULT_PAGE_SIZE, StatusFilter

if TYPE_CHECKING:
    from video_converter.app import AppSettings
    from video_converter.viewmodels.queue_viewmodel import QueueViewModel

VIDEO_EXTENSIONS = {".mp4", ".mkv", ".avi", ".mov", ".wmv", ".flv", ".webm", ".m4v"}

COL_FILENAME = 0
COL_STATUS = 1
COL_PROGRESS = 2
COL_OUTPUT = 3
NUM_COLS = 4

_STATUS_LABEL = {
    StatusKind.PENDING: "Pending",
    StatusKind.PROCESSING: "Processing",
    StatusKind.COMPLETED: "Completed",
    StatusKind.FAILED: "Failed",
    StatusKind.PAUSED: "Paused",
    StatusKind.CANCELLED: "Cancelled",
    StatusKind.UNKNOWN: "Unknown",
}

_FILTERS = [
    StatusFilter.ALL,
    StatusFilter.PENDING,
    StatusFilter.PROCESSING,
    StatusFilter.COMPLETED,
    StatusFilter.FAILED,
]


def resolution_label(resolution: Optional[tuple[int, int]]) -> str:
    if not resolution:
        return "Original"
    return f"{resolution[0]}x{resolution[1]}"


def hardware_hint(info: SystemInfo) -> str:
    """Text shown under the hardware checkbox once the system info is known."""
    if not info.encoder_available:
        return "FFmpeg not found: encoding is unavailable"
    if info.hardware_encoders:
        return "Detected: " + ", ".join(info.hardware_encoders)
    return "No hardware encoders detected"


class MainWindow(QMainWindow):
    """Hauptfenster des Video Converters."""

    def __init__(self, settings: AppSettings) -> None:
        super().__init__()
        self._vm: Optional[QueueViewModel] = None
        self._settings = settings
        self._filter = StatusFilter.ALL
        self._page = 1
        self.setWindowTitle("Video Converter")
        self.setMinimumSize(1000, 650)
        self.setAcceptDrops(True)

        self._build_toolbar()
        self._build_central()
        self.setStatusBar(QStatusBar())
        self._bind_settings()

    # -- public -----------------------------------------------------------------

    def set_viewmodel(self, vm: QueueViewModel) -> None:
        self._vm = vm
        vm.jobs_changed.connect(self._refresh)
        vm.job_updated.connect(lambda _job_id: self._refresh())
        vm.processing_changed.connect(self._on_processing_changed)
        vm.log_appended.connect(self._log_view.appendPlainText)
        vm.error_reported.connect(self._on_error)
        vm.system_info_received.connect(self._on_system_info)
        vm.resolution_presets_received.connect(self._on_resolution_presets)
        if vm.system_info is not None:
            self._on_system_info(vm.system_info)
        if vm.resolution_presets:
            self._on_resolution_presets(vm.resolution_presets)
        self._refresh()

    # -- building ---------------------------------------------------------------

    def _build_toolbar(self) -> None:
        tb = QToolBar("Main")
        tb.setMovable(False)
        self.addToolBar(tb)
        for text, slot in (
            ("Add Files", self._on_add_files),
            ("Add Folder", self._on_add_folder),
            (None, None),
            ("Start", self._on_start_pause),
            ("Clear Completed", lambda: self._vm and self._vm.clear_completed()),
            ("Clear Queue", lambda: self._vm and self._vm.clear_all()),
        ):
            if text is None:
                tb.addSeparator()
                continue
            action = QAction(text, self)
            action.triggered.connect(slot)
            tb.addAction(action)
            if text == "Start":
                self._act_start = action

    def _build_central(self) -> None:
        splitter = QSplitter(Qt.Orientation.Horizontal)
        self.setCentralWidget(splitter)

        left = QWidget()
        ll = QVBoxLayout(left)
        self._stats_label = QLabel("")
        ll.addWidget(self._stats_label)

        self._tabs = QTabWidget()
        queue_tab = QWidget()
        ql = QVBoxLayout(queue_tab)
        self._combo_filter = QComboBox()
        self._combo_filter.currentIndexChanged.connect(self._on_filter_changed)
        ql.addWidget(self._combo_filter)

        self._table = QTableWidget(0, NUM_COLS)
        self._table.setHorizontalHeaderLabels(["File", "Status", "Progress", "Output"])
        self._table.setSelectionBehavior(QAbstractItemView.SelectionBehavior.SelectRows)
        self._table.setEditTriggers(QAbstractItemView.EditTrigger.NoEditTriggers)
        self._table.setContextMenuPolicy(Qt.ContextMenuPolicy.CustomContextMenu)
        self._table.customContextMenuRequested.connect(self._on_table_context_menu)
        self._table.horizontalHeader().setSectionResizeMode(
            COL_FILENAME, QHeaderView.ResizeMode.Stretch)
        ql.addWidget(self._table)

        pager = QHBoxLayout()
        self._btn_prev = QPushButton("<")
        self._btn_prev.clicked.connect(lambda: self._go_to_page(self._page - 1))
        self._btn_next = QPushButton(">")
        self._btn_next.clicked.connect(lambda: self._go_to_page(self._page + 1))
        self._page_label = QLabel("")
        pager.addWidget(self._btn_prev)
        pager.addWidget(self._page_label)
        pager.addWidget(self._btn_next)
        pager.addStretch()
        ql.addLayout(pager)
        self._tabs.addTab(queue_tab, "File Queue")

        self._log_view = QPlainTextEdit()
        self._log_view.setReadOnly(True)
        self._log_view.setMaximumBlockCount(500)
        self._tabs.addTab(self._log_view, "FFmpeg Logs")
        self._tabs.currentChanged.connect(
            lambda index: self._settings.active_tab.set(ACTIVE_TABS[index]))
        ll.addWidget(self._tabs)
        splitter.addWidget(left)

        splitter.addWidget(self._build_settings_panel())
        splitter.setStretchFactor(0, 3)
        splitter.setStretchFactor(1, 1)

    def _build_settings_panel(self) -> QWidget:
        container = QWidget()
        layout = QVBoxLayout(container)

        grp_output = QGroupBox("Output")
        ol = QHBoxLayout(grp_output)
        self._output_dir_edit = QLineEdit()
        self._output_dir_edit.setPlaceholderText("Choose output folder...")
        self._output_dir_edit.editingFinished.connect(
            lambda: self._settings.output_dir.set(self._output_dir_edit.text().strip()))
        ol.addWidget(self._output_dir_edit)
        btn_browse = QPushButton("Browse")
        btn_browse.clicked.connect(self._on_browse_output)
        ol.addWidget(btn_browse)
        layout.addWidget(grp_output)

        grp_enc = QGroupBox("Encoding")
        fl = QFormLayout(grp_enc)
        self._combo_format = QComboBox()
        self._combo_format.addItems(["mp4", "mkv", "webm", "mov"])
        fl.addRow("Format:", self._combo_format)
        self._combo_codec = QComboBox()
        self._combo_codec.addItems(["libx264", "libx265", "libvpx-vp9", "libaom-av1"])
        fl.addRow("Video codec:", self._combo_codec)
        self._combo_resolution = QComboBox()
        self._combo_resolution.addItem(resolution_label(None), None)
        fl.addRow("Resolution:", self._combo_resolution)
        self._spin_crf = QSpinBox()
        self._spin_crf.setRange(0, 51)
        fl.addRow("CRF:", self._spin_crf)
        self._combo_preset = QComboBox()
        self._combo_preset.addItems(["ultrafast", "fast", "medium", "slow", "veryslow"])
        fl.addRow("Preset:", self._combo_preset)
        self._chk_hw = QCheckBox("Use hardware encoder")
        fl.addRow(self._chk_hw)
        self._hw_hint = QLabel("")
        self._hw_hint.setWordWrap(True)
        self._hw_hint.setStyleSheet("color: gray; font-style: italic;")
        fl.addRow(self._hw_hint)
        self._chk_strip = QCheckBox("Remove metadata")
        fl.addRow(self._chk_strip)
        for combo in (self._combo_format, self._combo_codec, self._combo_resolution,
                      self._combo_preset):
            combo.currentTextChanged.connect(self._save_encoding)
        self._spin_crf.valueChanged.connect(self._save_encoding)
        self._chk_hw.toggled.connect(self._save_encoding)
        self._chk_strip.toggled.connect(self._save_encoding)
        layout.addWidget(grp_enc)

        grp_queue = QGroupBox("Queue")
        gl = QFormLayout(grp_queue)
        self._spin_parallel = QSpinBox()
        self._spin_parallel.setRange(1, os.cpu_count() or 8)
        self._spin_parallel.valueChanged.connect(self._settings.concurrent_jobs.set)
        gl.addRow("Parallel jobs:", self._spin_parallel)
        self._chk_shutdown = QCheckBox("Shut down when finished")
        self._chk_shutdown.toggled.connect(self._settings.should_shutdown.set)
        gl.addRow(self._chk_shutdown)
        layout.addWidget(grp_queue)

        layout.addStretch()
        return container

    # -- settings ---------------------------------------------------------------

    def _bind_settings(self) -> None:
        s = self._settings
        s.encoding.changed.connect(lambda _v: self._show_encoding(s.encoding_settings()))
        s.output_dir.changed.connect(self._output_dir_edit.setText)
        s.should_shutdown.changed.connect(self._chk_shutdown.setChecked)
        s.concurrent_jobs.changed.connect(self._spin_parallel.setValue)
        s.active_tab.changed.connect(self._show_tab)
        self._show_encoding(s.encoding_settings())
        self._output_dir_edit.setText(s.output_dir.value)
        # Initial values must not be written back before the stored ones arrive.
        for w in (self._chk_shutdown, self._spin_parallel):
            w.blockSignals(True)
        self._chk_shutdown.setChecked(bool(s.should_shutdown.value))
        self._spin_parallel.setValue(int(s.concurrent_jobs.value))
        for w in (self._chk_shutdown, self._spin_parallel):
            w.blockSignals(False)
        self._show_tab(s.active_tab.value)

    def _show_encoding(self, enc: EncodingSettings) -> None:
        widgets = (self._combo_format, self._combo_codec, self._combo_resolution,
                   self._combo_preset, self._spin_crf, self._chk_hw, self._chk_strip)
        for w in widgets:
            w.blockSignals(True)
        self._combo_format.setCurrentText(enc.output_format)
        self._combo_codec.setCurrentText(enc.video_codec)
        self._select_resolution(enc.resolution)
        self._combo_preset.setCurrentText(enc.preset)
        self._spin_crf.setValue(enc.crf if enc.crf is not None else 23)
        self._chk_hw.setChecked(enc.use_hardware)
        self._chk_strip.setChecked(enc.remove_metadata)
        for w in widgets:
            w.blockSignals(False)

    def _select_resolution(self, resolution: Optional[tuple[int, int]]) -> None:
        combo = self._combo_resolution
        for i in range(combo.count()):
            data = combo.itemData(i)
            if (tuple(data) if data else None) == resolution:
                combo.setCurrentIndex(i)
                return
        # Stored value that is not among the presets
        combo.addItem(resolution_label(resolution), resolution)
        combo.setCurrentIndex(combo.count() - 1)

    def _show_tab(self, tab: str) -> None:
        if tab in ACTIVE_TABS:
            self._tabs.blockSignals(True)
            self._tabs.setCurrentIndex(ACTIVE_TABS.index(tab))
            self._tabs.blockSignals(False)

    def _gather_settings(self) -> EncodingSettings:
        base = self._settings.encoding_settings()
        return EncodingSettings.from_dict({
            **base.to_dict(),
            "output_format": self._combo_format.currentText(),
            "video_codec": self._combo_codec.currentText(),
            "resolution": list(self._combo_resolution.currentData() or []) or None,
            "crf": self._spin_crf.value(),
            "preset": self._combo_preset.currentText(),
            "use_hardware": self._chk_hw.isChecked(),
            "remove_metadata": self._chk_strip.isChecked(),
        })

    def _save_encoding(self, *_args) -> None:
        self._settings.encoding.set(self._gather_settings().to_dict())

    # -- actions ----------------------------------------------------------------

    def _on_add_files(self) -> None:
        exts = " ".join(f"*{e}" for e in sorted(VIDEO_EXTENSIONS))
        paths, _ = QFileDialog.getOpenFileNames(
            self, "Select video files", "", f"Video Files ({exts});;All Files (*)")
        if paths:
            self._submit(lambda out: self._vm.add_files(paths, out, self._gather_settings()))

    def _on_add_folder(self) -> None:
        folder = QFileDialog.getExistingDirectory(self, "Select folder")
        if folder:
            self._submit(lambda out: self._vm.add_directory(folder, out, self._gather_settings()))

    def _submit(self, send) -> None:
        if self._vm is None:
            return
        output_dir = self._output_dir_edit.text().strip() or self._choose_output_dir()
        if output_dir:
            send(output_dir)

    def _choose_output_dir(self) -> str:
        folder = QFileDialog.getExistingDirectory(self, "Select output folder")
        if folder:
            self._output_dir_edit.setText(folder)
            self._settings.output_dir.set(folder)
        return folder

    def _on_browse_output(self) -> None:
        self._choose_output_dir()

    def _on_start_pause(self) -> None:
        if self._vm is None:
            return
        if self._vm.is_processing:
            self._vm.pause_queue()
            return
        if not self._vm.jobs:
            QMessageBox.information(self, "Queue empty", "Add files to the queue first.")
            return
        self._vm.start_processing(bool(self._settings.should_shutdown.value))

    def _on_processing_changed(self, processing: bool) -> None:
        self._act_start.setText("Pause" if processing else "Start")
        if not processing and self._vm is not None:
            self._vm.refresh_stats()

    def _on_system_info(self, info: SystemInfo) -> None:
        hint = hardware_hint(info)
        self._hw_hint.setText(hint)
        self._chk_hw.setToolTip(hint)
        if not info.encoder_available:
            self.statusBar().showMessage(hint)

    def _on_resolution_presets(self, presets: list[ResolutionPreset]) -> None:
        combo = self._combo_resolution
        combo.blockSignals(True)
        combo.clear()
        combo.addItem(resolution_label(None), None)
        for preset in presets:
            combo.addItem(f"{preset.name} ({resolution_label(preset.resolution)})",
                          preset.resolution)
        self._select_resolution(self._settings.encoding_settings().resolution)
        combo.blockSignals(False)

    def _on_error(self, operation: str, message: str) -> None:
        self.statusBar().showMessage(f"{operation}: {message}", 8000)
        if operation in ("add_files", "add_directory"):
            QMessageBox.warning(self, "Error adding files", message)

    def _on_filter_changed(self, index: int) -> None:
        if 0 <= index < len(_FILTERS):
            self._filter = _FILTERS[index]
            self._page = 1
            self._refresh()

    def _go_to_page(self, page: int) -> None:
        self._page = page
        self._refresh()

    def _on_table_context_menu(self, pos) -> None:
        job = self._job_at(self._table.rowAt(pos.y()))
        if job is None or self._vm is None:
            return
        menu = QMenu(self)
        act_cancel = menu.addAction("Cancel")
        act_cancel.setEnabled(job.status.is_active)
        act_remove = menu.addAction("Remove")
        action = menu.exec(self._table.viewport().mapToGlobal(pos))
        if action == act_cancel:
            self._vm.cancel_job(job.id)
        elif action == act_remove:
            self._vm.remove_job(job.id)

    # -- rendering --------------------------------------------------------------

    def _current_page(self) -> list[Job]:
        if self._vm is None:
            return []
        return self._vm.view.page(self._filter, self._page, DEFAULT_PAGE_SIZE)

    def _job_at(self, row: int) -> Optional[Job]:
        jobs = self._current_page()
        return jobs[row] if 0 <= row < len(jobs) else None

    def _refresh(self) -> None:
        if self._vm is None:
            return
        view = self._vm.view
        pages = max(1, view.page_count(self._filter))
        self._page = min(max(self._page, 1), pages)

        self._combo_filter.blockSignals(True)
        self._combo_filter.clear()
        for f in _FILTERS:
            self._combo_filter.addItem(f"{f.value.title()} ({view.count_by_category(f)})")
        self._combo_filter.setCurrentIndex(_FILTERS.index(self._filter))
        self._combo_filter.blockSignals(False)

        jobs = self._current_page()
        self._table.setRowCount(len(jobs))
        for row, job in enumerate(jobs):
            self._set_row(row, job)
        self._page_label.setText(f"Page {self._page} / {pages}")
        self._btn_prev.setEnabled(self._page > 1)
        self._btn_next.setEnabled(self._page < pages)

        stats = view.aggregate_stats()
        self._stats_label.setText(
            f"Total {stats.total} | Pending {stats.pending} | Processing {stats.processing}"
            f" | Completed {stats.completed} | Failed {stats.failed}")

    def _set_row(self, row: int, job: Job) -> None:
        self._table.setItem(row, COL_FILENAME, QTableWidgetItem(Path(job.input_path).name))
        status_item = QTableWidgetItem(_STATUS_LABEL[job.status.kind])
        if job.status.kind == StatusKind.FAILED:
            status_item.setToolTip(job.status.error or "")
            status_item.setForeground(Qt.GlobalColor.red)
        elif job.status.kind == StatusKind.COMPLETED:
            status_item.setForeground(Qt.GlobalColor.darkGreen)
        self._table.setItem(row, COL_STATUS, status_item)
        progress = job.status.progress if job.status.kind == StatusKind.PROCESSING else (
            100.0 if job.status.kind == StatusKind.COMPLETED else 0.0)
        self._table.setItem(row, COL_PROGRESS, QTableWidgetItem(f"{progress:.0f} %"))
        self._table.setItem(row, COL_OUTPUT, QTableWidgetItem(job.output_path))

    # -- drag & drop ------------------------------------------------------------

    def dragEnterEvent(self, event) -> None:
        if event.mimeData().hasUrls():
            event.acceptProposedAction()

    def dropEvent(self, event) -> None:
        paths = []
        for url in event.mimeData().urls():
            path = Path(url.toLocalFile())
            if path.is_file() and path.suffix.lower() in VIDEO_EXTENSIONS:
                paths.append(str(path))
            elif path.is_dir():
                paths.extend(str(f) for f in sorted(path.rglob("*"))
                             if f.is_file() and f.suffix.lower() in VIDEO_EXTENSIONS)
        if paths:
            self._submit(lambda out: self._vm.add_files(paths, out, self._gather_settings()))

    # -- cleanup ----------------------------------------------------------------

    def closeEvent(self, event) -> None:
        self._settings.store.flush()
        if self._vm is not None:
            self._vm.stop()
        super().closeEvent(event)
