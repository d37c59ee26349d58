"""Microphone recorder adapter."""

from __future__ import annotations

import logging
import threading
import time
from queue import Full, Queue
from typing import Any

from errors import MicrophoneError
from models import AudioFrame

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


class SoundDeviceRecorder:
    """Owns the input device stream and pushes PCM16 frames to a queue.

    A ``None`` sentinel is queued whenever the stream ends, either through
    :meth:`stop` or because the device stream died underneath us.
    """

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_ms: int = 100,
        device: str | int | None = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_ms = chunk_ms
        self.device = device
        self._stream: Any = None
        self._running = False
        self._paused = False
        self._lock = threading.Lock()
        self.dropped_chunks = 0
        self._audio_queue: Queue[AudioFrame | None] | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def paused(self) -> bool:
        return self._paused

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise RuntimeError("sounddevice is not installed")
            self._audio_queue = audio_queue
            self._paused = False
            blocksize = int(self.sample_rate * (self.chunk_ms / 1000.0))
            try:
                self._stream = sd.InputStream(
                    samplerate=self.sample_rate,
                    channels=self.channels,
                    dtype="int16",
                    blocksize=blocksize,
                    device=self.device,
                    callback=self._on_audio,
                    finished_callback=self._on_finished,
                )
                self._running = True
                self._stream.start()
            except Exception as exc:
                self._running = False
                self._close_stream()
                raise MicrophoneError(f"cannot open microphone: {exc}") from exc
            logger.debug("microphone stream started (%d Hz)", self.sample_rate)

    def stop(self) -> None:
        with self._lock:
            self._running = False
            self._paused = False
            if self._stream is not None:
                self._close_stream()
                logger.debug("microphone stream released")
            self._emit_sentinel_if_needed()

    def pause(self) -> None:
        """Stop delivering frames while keeping the device stream open."""
        with self._lock:
            if self._running:
                self._paused = True

    def resume(self) -> None:
        with self._lock:
            self._paused = False

    def _close_stream(self) -> None:
        stream = self._stream
        self._stream = None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()

    def _on_audio(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if not self._running or self._paused or self._audio_queue is None:
            return
        if np is None:
            return
        payload = np.asarray(indata, dtype=np.int16).tobytes()
        frame = AudioFrame(
            pcm16_bytes=payload,
            sample_rate=self.sample_rate,
            channels=self.channels,
            timestamp_ms=int(time.time() * 1000),
        )
        try:
            self._audio_queue.put_nowait(frame)
        except Full:
            self.dropped_chunks += 1

    def _on_finished(self) -> None:
        # Only an unexpected end needs reporting; stop() already queued the sentinel.
        if not self._running:
            return
        logger.warning("microphone stream ended unexpectedly")
        self._running = False
        self._emit_sentinel_if_needed()

    def _emit_sentinel_if_needed(self) -> None:
        if self._audio_queue is None:
            return
        try:
            self._audio_queue.put_nowait(None)
        except Full:
            pass
