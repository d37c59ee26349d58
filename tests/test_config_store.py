from __future__ import annotations

import json
from pathlib import Path

from config import JsonConfigStore


def test_defaults(tmp_path: Path) -> None:
    store = JsonConfigStore(path=tmp_path / "config.json")

    assert store.get_api_key() == ""
    assert store.get_hotkey() == "Key.f8"
    assert store.get_dictation_hotkey() == "Key.f9"
    assert store.get_base_url() == "http://localhost:3000"
    assert store.get_engine() == "on_device"
    assert store.get_transcription_backend() == "http"
    assert store.get_intent_backend() == "http"
    assert store.get_language() == "en-IN"
    assert store.get_speak_feedback() is True
    assert store.get_log_level() == "INFO"


def test_config_read_write(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    store = JsonConfigStore(path=path)

    store.set_api_key("abc")
    store.set_hotkey("Key.f10")
    store.set_base_url("https://assess.example.com/")
    store.set_language("hi-IN")

    reloaded = JsonConfigStore(path=path)
    assert reloaded.get_api_key() == "abc"
    assert reloaded.get_hotkey() == "Key.f10"
    assert reloaded.get_base_url() == "https://assess.example.com"
    assert reloaded.get_language() == "hi-IN"


def test_unknown_engine_falls_back(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"engine": "quantum", "log_level": "debug"}), encoding="utf-8")

    store = JsonConfigStore(path=path)
    assert store.get_engine() == "on_device"
    assert store.get_log_level() == "DEBUG"


def test_config_invalid_json_fallback(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{invalid", encoding="utf-8")

    store = JsonConfigStore(path=path)
    assert store.get_api_key() == ""
    assert store.get_hotkey() == "Key.f8"


def test_non_object_config_is_ignored(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("[1, 2]", encoding="utf-8")

    assert JsonConfigStore(path=path).get_engine() == "on_device"
