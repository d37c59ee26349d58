"""Protocol interfaces used by the speech source and session controller."""

from __future__ import annotations

from queue import Queue
from typing import Any, Callable, Optional, Protocol

from models import AudioFrame, PasteResult, RecognitionEvent, TranscriptionResult


class Recorder(Protocol):
    def start(self, audio_queue: Queue[AudioFrame | None]) -> None: ...

    def stop(self) -> None: ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...


class ContinuousRecognizer(Protocol):
    def start(
        self,
        audio_queue: Queue[AudioFrame | None],
        on_event: Callable[[RecognitionEvent], None],
    ) -> None: ...

    def stop(self) -> None: ...


class TranscriptionService(Protocol):
    def transcribe(self, audio_base64: str, language: Optional[str] = None) -> TranscriptionResult: ...


class IntentClassifier(Protocol):
    def classify(self, transcript: str) -> dict[str, Any]: ...


class SpeechSynthesizer(Protocol):
    def synthesize(self, text: str, language: str) -> str: ...


class AudioPlayer(Protocol):
    def play(self, wav_bytes: bytes) -> None: ...


class Navigator(Protocol):
    def push(self, path: str) -> None: ...


class PasteService(Protocol):
    def paste_text(self, text: str) -> PasteResult: ...

