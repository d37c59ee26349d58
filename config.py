"""Simple JSON-based config store."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULTS: dict[str, Any] = {
    "api_key": "",
    "hotkey": "Key.f8",
    "dictation_hotkey": "Key.f9",
    "base_url": "http://localhost:3000",
    "engine": "on_device",
    "transcription_backend": "http",
    "intent_backend": "http",
    "language": "en-IN",
    "vosk_model_path": "",
    "speak_feedback": True,
    "log_level": "INFO",
}


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "voice_nav" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    def get_api_key(self) -> str:
        return str(self._get("api_key"))

    def set_api_key(self, key: str) -> None:
        self._set("api_key", key)

    def get_hotkey(self) -> str:
        return str(self._get("hotkey"))

    def set_hotkey(self, hotkey: str) -> None:
        self._set("hotkey", hotkey)

    def get_dictation_hotkey(self) -> str:
        return str(self._get("dictation_hotkey"))

    def get_base_url(self) -> str:
        return str(self._get("base_url")).rstrip("/")

    def set_base_url(self, url: str) -> None:
        self._set("base_url", url)

    def get_engine(self) -> str:
        value = str(self._get("engine"))
        return value if value in ("on_device", "cloud") else DEFAULTS["engine"]

    def get_transcription_backend(self) -> str:
        return str(self._get("transcription_backend"))

    def get_intent_backend(self) -> str:
        return str(self._get("intent_backend"))

    def get_language(self) -> str:
        return str(self._get("language"))

    def set_language(self, language: str) -> None:
        self._set("language", language)

    def get_vosk_model_path(self) -> str:
        return str(self._get("vosk_model_path"))

    def get_speak_feedback(self) -> bool:
        return bool(self._get("speak_feedback"))

    def get_log_level(self) -> str:
        return str(self._get("log_level")).upper()

    def _get(self, key: str) -> Any:
        return self._read_all().get(key, DEFAULTS[key])

    def _set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            logger.warning("ignoring unreadable config %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
