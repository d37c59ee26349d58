"""Global toggle hotkeys based on pynput."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional

try:
    from pynput import keyboard
except Exception:  # pragma: no cover
    keyboard = None  # type: ignore

logger = logging.getLogger(__name__)


class GlobalHotkeyAdapter:
    """Calls a handler once per key press for each bound key name.

    Key names use the ``str(key)`` form pynput reports (``Key.f8``, ``'a'``).
    Auto-repeat while the key is held does not fire the handler again.
    """

    def __init__(self) -> None:
        self._bindings: Dict[str, Callable[[], None]] = {}
        self._held: set[str] = set()
        self._listener: Optional[object] = None
        self._lock = threading.Lock()

    def bind(self, hotkey_name: str, handler: Callable[[], None]) -> None:
        with self._lock:
            self._bindings[hotkey_name] = handler

    def start(self) -> None:
        if keyboard is None:
            raise RuntimeError("pynput is not installed")
        if self._listener is not None:
            return
        self._listener = keyboard.Listener(on_press=self._on_press, on_release=self._on_release)
        self._listener.start()
        logger.info("listening for hotkeys: %s", ", ".join(sorted(self._bindings)))

    def stop(self) -> None:
        listener = self._listener
        if listener is not None:
            listener.stop()
            self._listener = None
        with self._lock:
            self._held.clear()

    def _on_press(self, key: object) -> None:
        name = str(key)
        with self._lock:
            handler = self._bindings.get(name)
            if handler is None or name in self._held:
                return
            self._held.add(name)
        try:
            handler()
        except Exception:
            logger.exception("hotkey handler for %s failed", name)

    def _on_release(self, key: object) -> None:
        with self._lock:
            self._held.discard(str(key))
