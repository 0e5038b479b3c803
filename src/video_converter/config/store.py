# Persistente Einstellungen ueber QSettings.
# load() liefert sofort den bekannten Wert (oder den Default) und den gespeicherten
# Wert spaeter ueber das Signal loaded. save() schreibt verzoegert (Debounce).
# Solange ein Schluessel noch geladen wird, werden Schreibzugriffe verworfen, damit
# ein voruebergehender Default keinen gespeicherten Wert ueberschreibt.

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from PyQt6.QtCore import QObject, QSettings, Qt, QTimer, pyqtSignal

log = logging.getLogger(__name__)

ORGANIZATION = "video-converter"
APPLICATION = "VideoConverter"

# Persisted keys
KEY_ENCODING_SETTINGS = "encodingSettings"
KEY_OUTPUT_DIR = "outputDir"
KEY_SHOULD_SHUTDOWN = "shouldShutdown"
KEY_CONCURRENT_JOBS = "concurrentJobs"
KEY_ACTIVE_TAB = "activeTab"

ACTIVE_TABS = ("queue", "logs")

_MISSING = object()


def _well_typed(value: Any, default: Any) -> bool:
    if default is None:
        return True
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, (int, float)):
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    return isinstance(value, type(default))


class SettingsStore(QObject):
    """Typed key/value adapter over one QSettings namespace."""

    loaded = pyqtSignal(str, object)  # key, value
    _load_requested = pyqtSignal(str, object)

    def __init__(
        self,
        settings: Optional[QSettings] = None,
        debounce_ms: int = 250,
        parent: Optional[QObject] = None,
    ) -> None:
        super().__init__(parent)
        self._settings = settings or QSettings(ORGANIZATION, APPLICATION)
        self._cache: dict[str, Any] = {}
        self._resolved: set[str] = set()  # keys whose load has completed
        self._loading: set[str] = set()
        self._dirty: dict[str, Any] = {}
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.setInterval(debounce_ms)
        self._timer.timeout.connect(self.flush)
        # Deliver stored values on the next event loop iteration.
        self._load_requested.connect(self._resolve_load, Qt.ConnectionType.QueuedConnection)

    def load(self, key: str, default: Any = None) -> Any:
        """Return the known value now; emit loaded(key, value) once resolved."""
        if key in self._resolved:
            value = self._cache.get(key, default)
            self._load_requested.emit(key, default)
            return value
        if key not in self._loading:
            self._loading.add(key)
            self._load_requested.emit(key, default)
        return self._cache.get(key, default)

    def is_loaded(self, key: str) -> bool:
        return key in self._resolved

    def has_value(self, key: str) -> bool:
        """True if a value is known for key (stored or saved in this process)."""
        return key in self._cache

    def save(self, key: str, value: Any) -> None:
        if key in self._loading:
            log.debug("Save of %s suppressed until its load has resolved", key)
            return
        try:
            json.dumps(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"value for {key} is not JSON serializable: {e}") from e
        self._cache[key] = value
        self._resolved.add(key)
        self._dirty[key] = value
        self._timer.start()

    def flush(self) -> None:
        """Write pending values to QSettings and sync to disk."""
        self._timer.stop()
        if not self._dirty:
            return
        for key, value in self._dirty.items():
            self._settings.setValue(key, json.dumps(value))
        self._dirty.clear()
        self._settings.sync()
        if self._settings.status() != QSettings.Status.NoError:
            log.error("Failed to persist settings: %s", self._settings.status())

    # -- internal ---------------------------------------------------------------

    def _resolve_load(self, key: str, default: Any) -> None:
        if key in self._loading:
            self._loading.discard(key)
            if key not in self._resolved:
                stored = self._read(key, default)
                if stored is not _MISSING:
                    self._cache[key] = stored
                self._resolved.add(key)
        self.loaded.emit(key, self._cache.get(key, default))

    def _read(self, key: str, default: Any) -> Any:
        raw = self._settings.value(key)
        if raw is None:
            return _MISSING
        try:
            value = json.loads(str(raw))
        except json.JSONDecodeError:
            log.warning("Stored value for %s is not valid JSON, using default", key)
            return _MISSING
        if not _well_typed(value, default):
            log.warning("Stored value for %s has type %s, using default",
                        key, type(value).__name__)
            return _MISSING
        return value


class PersistentValue(QObject):
    """One persisted setting: holds the current value and keeps the store in sync."""

    changed = pyqtSignal(object)

    def __init__(self, store: SettingsStore, key: str, default: Any,
                 parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._store = store
        self._key = key
        self._default = default
        self._touched = False  # set() called before the load resolved
        store.loaded.connect(self._on_loaded)
        self._value = store.load(key, default)

    @property
    def key(self) -> str:
        return self._key

    @property
    def value(self) -> Any:
        return self._value

    @property
    def is_loaded(self) -> bool:
        return self._store.is_loaded(self._key)

    def set(self, value: Any) -> None:
        """Update the value; it is only persisted once the initial load resolved."""
        self._value = value
        self._touched = True
        self._store.save(self._key, value)
        self.changed.emit(value)

    def set_default(self, default: Any) -> None:
        """Replace the default; adopted as value if nothing was stored."""
        self._default = default
        if self.is_loaded and not self._touched and not self._store.has_value(self._key):
            self._value = default
            self.changed.emit(default)

    def _on_loaded(self, key: str, value: Any) -> None:
        if key != self._key:
            return
        if not self._store.has_value(key):
            if self._touched:
                return
            value = self._default
        if value != self._value:
            self._value = value
            self.changed.emit(value)
