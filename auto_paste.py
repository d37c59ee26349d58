"""Dictation sink: type recognized text into the focused application."""

from __future__ import annotations

import logging
import sys
import time

from errors import NO_ACTIVE_TARGET
from models import PasteResult

try:
    import pyperclip
except Exception:  # pragma: no cover
    pyperclip = None  # type: ignore

try:
    from pynput.keyboard import Controller, Key
except Exception:  # pragma: no cover
    Controller = None  # type: ignore
    Key = None  # type: ignore

logger = logging.getLogger(__name__)


def paste_modifier() -> object:
    return Key.cmd if sys.platform == "darwin" else Key.ctrl


class ClipboardPasteService:
    """Puts dictated text on the clipboard and sends the paste shortcut.

    The previous clipboard contents are put back once the target had time to
    read the new text. When the keystroke fails the dictated text stays on
    the clipboard so the user can paste it by hand.
    """

    def __init__(self, restore_delay_s: float = 0.1, restore_clipboard: bool = True) -> None:
        self._restore_delay_s = restore_delay_s
        self._restore_clipboard = restore_clipboard

    def paste_text(self, text: str) -> PasteResult:
        text = text.strip()
        if not text:
            return PasteResult(success=False, reason="empty text", clipboard_restored=True)
        if pyperclip is None or Controller is None or Key is None:
            return PasteResult(
                success=False,
                reason="pyperclip/pynput is not installed",
                clipboard_restored=False,
            )

        previous = None
        try:
            previous = pyperclip.paste()
        except Exception as exc:
            logger.warning("could not read clipboard: %s", exc)

        try:
            pyperclip.copy(text)
            keyboard = Controller()
            modifier = paste_modifier()
            with keyboard.pressed(modifier):
                keyboard.press("v")
                keyboard.release("v")
        except Exception as exc:
            logger.warning("paste keystroke failed: %s", exc)
            return PasteResult(
                success=False,
                reason=f"{NO_ACTIVE_TARGET}: {exc}",
                clipboard_restored=False,
            )

        if not self._restore_clipboard or previous is None:
            return PasteResult(success=True, reason="ok", clipboard_restored=False)
        time.sleep(self._restore_delay_s)
        try:
            pyperclip.copy(previous)
        except Exception as exc:
            logger.warning("could not restore clipboard: %s", exc)
            return PasteResult(success=True, reason="ok", clipboard_restored=False)
        logger.debug("pasted %d characters", len(text))
        return PasteResult(success=True, reason="ok", clipboard_restored=True)
