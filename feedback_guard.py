"""Pauses capture while synthesized speech is playing."""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

from event_bus import PLAYBACK_ENDED, PLAYBACK_STARTED, EventBus

logger = logging.getLogger(__name__)


class PausableSource(Protocol):
    def pause(self) -> None: ...

    def resume(self) -> None: ...


class FeedbackLoopGuard:
    """Keeps the microphone deaf to the client's own voice.

    ``is_recording`` reports whether the user still wants capture; it is read
    again on ``tts_end`` so a session stopped during playback stays stopped.
    Failures while pausing or resuming are logged and never reach capture.
    """

    def __init__(
        self,
        bus: EventBus,
        source: PausableSource,
        is_recording: Callable[[], bool],
    ) -> None:
        self._bus = bus
        self._source = source
        self._is_recording = is_recording
        self._paused = False
        self._installed = False

    def install(self) -> None:
        if self._installed:
            return
        self._bus.subscribe(PLAYBACK_STARTED, self._on_playback_started)
        self._bus.subscribe(PLAYBACK_ENDED, self._on_playback_ended)
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        self._bus.unsubscribe(PLAYBACK_STARTED, self._on_playback_started)
        self._bus.unsubscribe(PLAYBACK_ENDED, self._on_playback_ended)
        self._installed = False

    def _on_playback_started(self, _payload: Any = None) -> None:
        if not self._is_recording():
            return
        try:
            self._source.pause()
            self._paused = True
            logger.debug("capture paused for playback")
        except Exception:
            logger.exception("could not pause capture")

    def _on_playback_ended(self, _payload: Any = None) -> None:
        if not self._paused:
            return
        self._paused = False
        if not self._is_recording():
            return
        try:
            self._source.resume()
            logger.debug("capture resumed after playback")
        except Exception:
            logger.exception("could not resume capture")
