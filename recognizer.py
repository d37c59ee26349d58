"""Continuous on-device recognizer adapter using Vosk.

Frames are consumed from the recorder queue on a worker thread and fed to a
``KaldiRecognizer``. Interim hypotheses flow out as ``partial`` events and
every finalized utterance as a ``final`` fragment. When the audio stream ends
without :meth:`VoskRecognizerAdapter.stop` being called, the remaining audio is
flushed and an ``end`` event tells the owner that the engine terminated.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from queue import Empty, Queue
from typing import Any, Callable, Optional

from errors import ENGINE_ERROR
from models import AudioFrame, RecognitionEvent, RecognitionKind

try:
    import vosk
except Exception:  # pragma: no cover
    vosk = None  # type: ignore

logger = logging.getLogger(__name__)


class VoskRecognizerAdapter:
    def __init__(
        self,
        model_path: str = "",
        sample_rate: int = 16000,
        model: Any = None,
    ) -> None:
        self._model_path = model_path
        self._sample_rate = sample_rate
        self._model = model
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def available(self) -> bool:
        if vosk is None:
            return False
        return self._model is not None or (bool(self._model_path) and Path(self._model_path).is_dir())

    def start(
        self,
        audio_queue: Queue[AudioFrame | None],
        on_event: Callable[[RecognitionEvent], None],
    ) -> None:
        if self._thread_busy():
            return
        recognizer = self._new_recognizer()
        self._stop_event = threading.Event()
        self._thread = threading.Thread(
            target=self._worker,
            args=(recognizer, audio_queue, on_event, self._stop_event),
            daemon=True,
        )
        self._thread.start()
        logger.debug("vosk recognizer started")

    def stop(self) -> None:
        self._stop_event.set()
        if self._thread_busy():
            self._thread.join(timeout=0.5)  # type: ignore[union-attr]

    def _thread_busy(self) -> bool:
        # The worker may restart or stop the engine from its own end event.
        thread = self._thread
        return bool(thread and thread.is_alive() and thread is not threading.current_thread())

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _new_recognizer(self) -> Any:
        if vosk is None:
            raise RuntimeError("vosk is not installed")
        if self._model is None:
            if not self._model_path or not Path(self._model_path).is_dir():
                raise RuntimeError(f"vosk model not found: {self._model_path or '<unset>'}")
            vosk.SetLogLevel(-1)
            self._model = vosk.Model(self._model_path)
        return vosk.KaldiRecognizer(self._model, self._sample_rate)

    def _worker(
        self,
        recognizer: Any,
        audio_queue: Queue[AudioFrame | None],
        emit: Callable[[RecognitionEvent], None],
        stop_event: threading.Event,
    ) -> None:
        last_partial = ""
        try:
            while not stop_event.is_set():
                try:
                    frame = audio_queue.get(timeout=0.2)
                except Empty:
                    continue
                if frame is None:  # Sentinel
                    break
                if recognizer.AcceptWaveform(frame.pcm16_bytes):
                    text = _text_of(recognizer.Result(), "text")
                    if text:
                        emit(RecognitionEvent(kind=RecognitionKind.FINAL.value, text=text))
                    if last_partial:
                        last_partial = ""
                        emit(RecognitionEvent(kind=RecognitionKind.PARTIAL.value, text=""))
                    continue
                partial = _text_of(recognizer.PartialResult(), "partial")
                if partial != last_partial:
                    last_partial = partial
                    emit(RecognitionEvent(kind=RecognitionKind.PARTIAL.value, text=partial))

            if stop_event.is_set():
                return
            text = _text_of(recognizer.FinalResult(), "text")
            if text:
                emit(RecognitionEvent(kind=RecognitionKind.FINAL.value, text=text))
        except Exception as exc:
            if stop_event.is_set():
                return
            logger.exception("vosk recognizer failed")
            emit(
                RecognitionEvent(
                    kind=RecognitionKind.ERROR.value,
                    code=ENGINE_ERROR,
                    message=str(exc),
                    retryable=True,
                )
            )
        emit(RecognitionEvent(kind=RecognitionKind.END.value))


def _text_of(raw: str, key: str) -> str:
    try:
        data = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return ""
    return str(data.get(key, "")).strip()
