"""Speech output: synthesize text, play it, and announce playback lifecycle."""

from __future__ import annotations

import base64
import binascii
import logging
import threading

from errors import VoiceServiceError
from event_bus import PLAYBACK_ENDED, PLAYBACK_STARTED, EventBus
from interfaces import AudioPlayer, SpeechSynthesizer
from models import DEFAULT_LANGUAGE, SpeechResult

logger = logging.getLogger(__name__)

MAX_TTS_CHARS = 2500


def truncate_text(text: str, max_chars: int = MAX_TTS_CHARS) -> str:
    if len(text) <= max_chars:
        return text
    return text[: max(0, max_chars - 3)] + "..."


class SpeechOutputService:
    """Single speaker shared by the whole client.

    ``tts_start`` is emitted right before playback and is always paired with
    exactly one ``tts_end``, whether playback completes or fails.
    """

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        player: AudioPlayer,
        bus: EventBus,
        max_chars: int = MAX_TTS_CHARS,
    ) -> None:
        self._synthesizer = synthesizer
        self._player = player
        self._bus = bus
        self._max_chars = max_chars
        self._lock = threading.Lock()
        self._speaking = False

    @property
    def is_speaking(self) -> bool:
        return self._speaking

    def speak(self, text: str, language: str = DEFAULT_LANGUAGE) -> SpeechResult:
        if not text.strip():
            return SpeechResult(success=False, reason="empty text")
        with self._lock:
            if self._speaking:
                return SpeechResult(success=False, reason="already speaking")
            self._speaking = True
        try:
            return self._speak(truncate_text(text, self._max_chars), language)
        finally:
            with self._lock:
                self._speaking = False

    def _speak(self, text: str, language: str) -> SpeechResult:
        try:
            audio_b64 = self._synthesizer.synthesize(text, language)
        except VoiceServiceError as exc:
            logger.warning("speech synthesis failed [%s]: %s", exc.code, exc)
            return SpeechResult(success=False, reason=str(exc))
        if not audio_b64:
            return SpeechResult(success=False, reason="No audio returned")
        try:
            wav_bytes = base64.b64decode(audio_b64, validate=True)
        except (binascii.Error, ValueError) as exc:
            return SpeechResult(success=False, reason=f"invalid audio payload: {exc}")

        self._bus.emit(PLAYBACK_STARTED)
        try:
            self._player.play(wav_bytes)
        except Exception as exc:
            logger.warning("playback failed: %s", exc)
            return SpeechResult(success=False, reason=f"Playback failed: {exc}", played=True)
        finally:
            self._bus.emit(PLAYBACK_ENDED)
        return SpeechResult(success=True, reason="ok", played=True)
