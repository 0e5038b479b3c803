"""Tests for the QSettings-backed store and persistent values."""

from __future__ import annotations

import json
import time

import pytest
from PyQt6.QtCore import QSettings

from video_converter.app import AppSettings
from video_converter.config.store import PersistentValue, SettingsStore
from video_converter.models.job import EncodingSettings


@pytest.fixture
def ini_path(tmp_path):
    return str(tmp_path / "settings.ini")


def make_store(path: str, debounce_ms: int = 0) -> SettingsStore:
    return SettingsStore(QSettings(path, QSettings.Format.IniFormat), debounce_ms=debounce_ms)


def seed(path: str, **values) -> None:
    settings = QSettings(path, QSettings.Format.IniFormat)
    for key, value in values.items():
        settings.setValue(key, json.dumps(value))
    settings.sync()


def test_load_returns_default_then_delivers_stored_value(qapp, ini_path) -> None:
    seed(ini_path, outputDir="/media/out")
    store = make_store(ini_path)
    delivered = []
    store.loaded.connect(lambda key, value: delivered.append((key, value)))

    assert store.load("outputDir", "") == ""
    assert delivered == []
    qapp.processEvents()
    assert delivered == [("outputDir", "/media/out")]
    assert store.is_loaded("outputDir")


def test_read_after_write_uses_saved_value(qapp, ini_path) -> None:
    store = make_store(ini_path, debounce_ms=10_000)
    store.load("concurrentJobs", 2)
    qapp.processEvents()
    store.save("concurrentJobs", 6)
    # Not flushed yet, but visible in-process.
    assert store.load("concurrentJobs", 2) == 6


def test_save_during_load_is_suppressed(qapp, ini_path) -> None:
    seed(ini_path, shouldShutdown=True)
    store = make_store(ini_path)
    assert store.load("shouldShutdown", False) is False
    store.save("shouldShutdown", False)
    qapp.processEvents()
    store.flush()
    assert store.load("shouldShutdown", False) is True
    fresh = make_store(ini_path)
    fresh.load("shouldShutdown", False)
    qapp.processEvents()
    assert fresh.load("shouldShutdown", False) is True


def test_wrongly_typed_value_falls_back_to_default(qapp, ini_path) -> None:
    seed(ini_path, concurrentJobs="lots", activeTab="logs")
    store = make_store(ini_path)
    delivered = {}
    store.loaded.connect(lambda key, value: delivered.__setitem__(key, value))
    store.load("concurrentJobs", 2)
    store.load("activeTab", "queue")
    qapp.processEvents()
    assert delivered == {"concurrentJobs": 2, "activeTab": "logs"}
    assert not store.has_value("concurrentJobs")


def test_unserializable_value_is_rejected(qapp, ini_path) -> None:
    store = make_store(ini_path)
    with pytest.raises(ValueError):
        store.save("outputDir", object())


def test_flush_persists_to_disk(qapp, ini_path) -> None:
    store = make_store(ini_path, debounce_ms=10_000)
    encoding = {"output_format": "mkv", "video_codec": "libx265", "crf": 20}
    store.save("encodingSettings", encoding)
    store.flush()

    fresh = make_store(ini_path)
    fresh.load("encodingSettings", {})
    qapp.processEvents()
    assert fresh.load("encodingSettings", {}) == encoding


def test_debounced_save_is_written_by_the_timer(qapp, ini_path) -> None:
    store = make_store(ini_path, debounce_ms=0)
    store.save("activeTab", "logs")
    deadline = time.monotonic() + 2.0
    while time.monotonic() < deadline and store._dirty:
        qapp.processEvents()
    raw = QSettings(ini_path, QSettings.Format.IniFormat).value("activeTab")
    assert json.loads(raw) == "logs"


def test_persistent_value_picks_up_stored_value(qapp, ini_path) -> None:
    seed(ini_path, concurrentJobs=4)
    store = make_store(ini_path)
    value = PersistentValue(store, "concurrentJobs", 2)
    changes = []
    value.changed.connect(changes.append)
    assert value.value == 2
    assert not value.is_loaded
    qapp.processEvents()
    assert value.value == 4
    assert changes == [4]


def test_persistent_value_set_saves_after_load(qapp, ini_path) -> None:
    store = make_store(ini_path, debounce_ms=10_000)
    value = PersistentValue(store, "outputDir", "")
    qapp.processEvents()
    value.set("/srv/out")
    store.flush()
    fresh = PersistentValue(make_store(ini_path), "outputDir", "")
    qapp.processEvents()
    assert fresh.value == "/srv/out"


def test_set_default_only_applies_when_nothing_stored(qapp, ini_path) -> None:
    seed(ini_path, shouldShutdown=True)
    store = make_store(ini_path)
    value = PersistentValue(store, "concurrentJobs", 2)
    qapp.processEvents()
    value.set_default(8)
    assert value.value == 8

    stored = PersistentValue(store, "shouldShutdown", False)
    qapp.processEvents()
    stored.set_default(False)
    assert stored.value is True


def test_set_default_does_not_override_user_choice(qapp, ini_path) -> None:
    store = make_store(ini_path, debounce_ms=10_000)
    value = PersistentValue(store, "concurrentJobs", 2)
    qapp.processEvents()
    value.set(3)
    value.set_default(8)
    assert value.value == 3


@pytest.mark.parametrize("stored", [
    {"resolution": 5},
    {"custom_metadata": [1]},
])
def test_malformed_encoding_settings_fall_back_to_defaults(qapp, ini_path, caplog, stored) -> None:
    seed(ini_path, encodingSettings=stored)
    settings = AppSettings(make_store(ini_path))
    qapp.processEvents()
    # The dict passes the store's outer type check; its contents do not decode.
    assert settings.encoding.value == stored
    assert settings.encoding_settings() == EncodingSettings()
    assert "encoding settings are invalid" in caplog.text


def test_valid_encoding_settings_are_restored(qapp, ini_path) -> None:
    seed(ini_path, encodingSettings={"video_codec": "libx265", "resolution": [1280, 720]})
    settings = AppSettings(make_store(ini_path))
    qapp.processEvents()
    restored = settings.encoding_settings()
    assert restored.video_codec == "libx265"
    assert restored.resolution == (1280, 720)
