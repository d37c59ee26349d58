"""Speech source: one capture session over either recognition engine.

The on-device engine streams partial and final fragments until stopped; the
push-to-talk engine buffers raw audio and sends one clip to the remote
transcription service on stop. Both sit behind ``start``/``stop``/``pause``/
``resume`` so callers never branch on the active engine.
"""

from __future__ import annotations

import logging
import threading
import time
from queue import Empty, Queue
from typing import Any, Callable, List, Optional

from errors import (
    ENGINE_ERROR,
    ENGINE_NETWORK,
    ENGINE_NO_SPEECH,
    ENGINE_TRANSIENT_FAILURE,
    ERROR_MESSAGES,
    PERMISSION_DENIED,
    MicrophoneError,
)
from interfaces import ContinuousRecognizer, Recorder, TranscriptionService
from models import (
    DEFAULT_LANGUAGE,
    AudioFrame,
    EngineKind,
    RecognitionEvent,
    RecognitionKind,
    TranscriptionResult,
)
from transcriber import pcm_to_wav_base64

logger = logging.getLogger(__name__)

PartialCallback = Callable[[str], None]
CodeCallback = Callable[[str, str], None]
Deferred = List[Callable[[], Any]]


class EngineHealth:
    """Restart bookkeeping for the on-device engine.

    A restart requested less than ``cooldown_s`` after the previous one means
    the engine is failing fast and must not be restarted again.
    """

    def __init__(self, cooldown_s: float = 1.0) -> None:
        self.cooldown_s = cooldown_s
        self.last_restart_at: Optional[float] = None

    def allow_restart(self, now: float) -> bool:
        if self.last_restart_at is not None and now - self.last_restart_at < self.cooldown_s:
            return False
        self.last_restart_at = now
        return True

    def reset(self) -> None:
        self.last_restart_at = None


class SpeechSource:
    def __init__(
        self,
        recorder: Recorder,
        recognizer: ContinuousRecognizer,
        transcriber: TranscriptionService,
        engine: EngineKind = EngineKind.ON_DEVICE_CONTINUOUS,
        language: str = DEFAULT_LANGUAGE,
        push_to_talk_timeout_s: float = 5.0,
        restart_cooldown_s: float = 1.0,
        finalize_timeout_s: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
        timer_factory: Callable[..., Any] = threading.Timer,
        on_partial: Optional[PartialCallback] = None,
        on_notice: Optional[CodeCallback] = None,
        on_failure: Optional[CodeCallback] = None,
        on_auto_stop: Optional[Callable[[], Any]] = None,
    ) -> None:
        self._recorder = recorder
        self._recognizer = recognizer
        self._transcriber = transcriber
        self._preferred_engine = engine
        self._engine = engine
        self._language_hint = language
        self._push_to_talk_timeout_s = push_to_talk_timeout_s
        self._finalize_timeout_s = finalize_timeout_s
        self._clock = clock
        self._timer_factory = timer_factory
        self.on_partial = on_partial
        self.on_notice = on_notice
        self.on_failure = on_failure
        self.on_auto_stop = on_auto_stop

        self.health = EngineHealth(restart_cooldown_s)
        self._lock = threading.RLock()
        self._downgraded = False
        self._capturing = False
        self._paused = False
        self._finalizing = False
        self._ended = threading.Event()
        self._generation = 0
        self._run = 0
        self._timer: Any = None
        self._audio_queue: Queue[AudioFrame | None] = Queue()
        self._final_parts: list[str] = []
        self._interim = ""
        self._language = language

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def engine(self) -> EngineKind:
        return self._engine

    @property
    def capturing(self) -> bool:
        return self._capturing

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def transcript_final(self) -> str:
        return " ".join(part for part in self._final_parts if part).strip()

    @property
    def transcript_interim(self) -> str:
        return self._interim

    @property
    def detected_language(self) -> str:
        return self._language

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Acquire the microphone and begin capture.

        Raises ``MicrophoneError`` when the device cannot be opened. A missing
        on-device engine downgrades to push-to-talk instead of failing.
        """
        deferred: Deferred = []
        with self._lock:
            if self._capturing:
                return
            self._generation += 1
            self._final_parts = []
            self._interim = ""
            self._language = self._language_hint
            self._paused = False
            self._finalizing = False
            if self._engine == EngineKind.ON_DEVICE_CONTINUOUS:
                try:
                    self._start_continuous_locked()
                except MicrophoneError:
                    raise
                except RuntimeError as exc:
                    logger.warning("on-device engine unavailable: %s", exc)
                    self._downgrade_locked(deferred)
            if self._engine == EngineKind.REMOTE_PUSH_TO_TALK:
                self._start_push_to_talk_locked()
            self._capturing = True
            logger.info("capture started (%s)", self._engine.value)
        self._run_deferred(deferred)

    def stop(self) -> TranscriptionResult:
        """Finish capture and return the final transcript.

        For push-to-talk this performs the remote transcription call and lets
        ``VoiceServiceError`` propagate to the caller.
        """
        with self._lock:
            if not self._capturing:
                return TranscriptionResult(self.transcript_final, self._language)
            self._capturing = False
            self._cancel_timer_locked()
            engine = self._engine
            was_paused = self._paused
            self._paused = False
            audio_queue = self._audio_queue
            if engine == EngineKind.ON_DEVICE_CONTINUOUS:
                self._finalizing = True
                self._ended.clear()

        if engine == EngineKind.ON_DEVICE_CONTINUOUS:
            return self._finish_continuous(was_paused)
        return self._finish_push_to_talk(audio_queue)

    def cancel(self) -> None:
        """Drop the current capture without producing a transcript."""
        with self._lock:
            self._capturing = False
            self._paused = False
            self._finalizing = False
            self._run += 1
            self._cancel_timer_locked()
        self._release()

    def pause(self) -> None:
        """Stop listening without finalizing; used while speech is playing."""
        with self._lock:
            if not self._capturing or self._paused:
                return
            self._paused = True
            if self._engine == EngineKind.REMOTE_PUSH_TO_TALK:
                self._recorder.pause()
                return
            self._run += 1
        self._release()

    def resume(self) -> None:
        deferred: Deferred = []
        with self._lock:
            if not self._capturing or not self._paused:
                return
            self._paused = False
            if self._engine == EngineKind.REMOTE_PUSH_TO_TALK:
                self._recorder.resume()
                return
            self._restart_or_downgrade_locked(deferred, count_restart=False)
        self._run_deferred(deferred)

    def reset_engine(self) -> None:
        """Forget a previous downgrade and return to the configured engine."""
        with self._lock:
            self._downgraded = False
            self.health.reset()
            if not self._capturing:
                self._engine = self._preferred_engine

    def close(self) -> None:
        self.cancel()

    # ------------------------------------------------------------------
    # Continuous engine
    # ------------------------------------------------------------------

    def _start_continuous_locked(self) -> None:
        self._run += 1
        run = self._run
        self._audio_queue = Queue(maxsize=50)
        self._recognizer.start(self._audio_queue, lambda event: self._on_engine_event(run, event))
        try:
            self._start_recorder_locked()
        except MicrophoneError:
            self._recognizer.stop()
            raise

    def _finish_continuous(self, was_paused: bool) -> TranscriptionResult:
        self._recorder.stop()
        if not was_paused and not self._ended.wait(timeout=self._finalize_timeout_s):
            logger.warning("on-device engine did not flush within %.1fs", self._finalize_timeout_s)
        self._recognizer.stop()
        with self._lock:
            self._finalizing = False
            self._run += 1
            self._interim = ""
            result = TranscriptionResult(self.transcript_final, self._language)
        logger.info("capture stopped: %r", result.transcript[:50])
        return result

    def _on_engine_event(self, run: int, event: RecognitionEvent) -> None:
        deferred: Deferred = []
        with self._lock:
            if run != self._run:
                return
            kind = event.kind
            if kind == RecognitionKind.PARTIAL.value:
                self._interim = event.text
                self._notify_partial_locked(deferred)
            elif kind == RecognitionKind.FINAL.value:
                if event.text.strip():
                    self._final_parts.append(event.text.strip())
                self._interim = ""
                self._notify_partial_locked(deferred)
            elif kind == RecognitionKind.ERROR.value:
                self._on_engine_error_locked(event, deferred)
            elif kind == RecognitionKind.END.value:
                self._on_engine_end_locked(deferred)
        self._run_deferred(deferred)

    def _on_engine_error_locked(self, event: RecognitionEvent, deferred: Deferred) -> None:
        if event.code == ENGINE_NO_SPEECH:
            return
        if not self._capturing or self._finalizing:
            logger.warning("engine error after capture ended: %s", event.message)
            return
        if event.code == ENGINE_NETWORK:
            self._run += 1
            deferred.append(self._recognizer.stop)
            self._recorder.stop()
            self._downgrade_locked(deferred)
            self._start_push_to_talk_or_fail_locked(deferred)
            return
        self._fail_locked(ENGINE_ERROR, event.message or ERROR_MESSAGES[ENGINE_ERROR], deferred)

    def _on_engine_end_locked(self, deferred: Deferred) -> None:
        if self._finalizing:
            self._ended.set()
            return
        if not self._capturing or self._paused:
            return
        logger.info("on-device engine terminated unexpectedly")
        self._restart_or_downgrade_locked(deferred, count_restart=True)

    def _restart_or_downgrade_locked(self, deferred: Deferred, count_restart: bool) -> None:
        if count_restart and not self.health.allow_restart(self._clock()):
            logger.warning("on-device engine restarted within %.1fs; downgrading", self.health.cooldown_s)
            self._run += 1
            self._recorder.stop()
            self._downgrade_locked(deferred)
            self._start_push_to_talk_or_fail_locked(deferred)
            return
        self._recorder.stop()
        try:
            self._start_continuous_locked()
        except MicrophoneError as exc:
            logger.warning("microphone unavailable: %s", exc)
            self._fail_locked(PERMISSION_DENIED, ERROR_MESSAGES[PERMISSION_DENIED], deferred)
        except RuntimeError as exc:
            logger.warning("on-device engine restart failed: %s", exc)
            self._downgrade_locked(deferred)
            self._start_push_to_talk_or_fail_locked(deferred)

    # ------------------------------------------------------------------
    # Push-to-talk engine
    # ------------------------------------------------------------------

    def _start_push_to_talk_locked(self) -> None:
        self._audio_queue = Queue()
        self._start_recorder_locked()
        generation = self._generation
        timer = self._timer_factory(self._push_to_talk_timeout_s, self._on_timeout, args=(generation,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _start_push_to_talk_or_fail_locked(self, deferred: Deferred) -> None:
        try:
            self._start_push_to_talk_locked()
        except MicrophoneError as exc:
            logger.warning("microphone unavailable: %s", exc)
            self._fail_locked(PERMISSION_DENIED, ERROR_MESSAGES[PERMISSION_DENIED], deferred)

    def _on_timeout(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or not self._capturing:
                return
            if self._engine != EngineKind.REMOTE_PUSH_TO_TALK:
                return
            self._timer = None
        logger.info("push-to-talk limit of %.1fs reached", self._push_to_talk_timeout_s)
        (self.on_auto_stop or self.stop)()

    def _finish_push_to_talk(self, audio_queue: Queue[AudioFrame | None]) -> TranscriptionResult:
        self._recorder.stop()
        pcm = bytearray()
        sample_rate = 16000
        channels = 1
        while True:
            try:
                frame = audio_queue.get_nowait()
            except Empty:
                break
            if frame is None:
                continue
            pcm.extend(frame.pcm16_bytes)
            sample_rate = frame.sample_rate
            channels = frame.channels

        with self._lock:
            language_hint = self._language
        if not pcm:
            logger.info("push-to-talk buffer is empty")
            return TranscriptionResult(self.transcript_final, language_hint)

        wav_b64 = pcm_to_wav_base64(bytes(pcm), sample_rate, channels)
        result = self._transcriber.transcribe(wav_b64, language_hint)
        with self._lock:
            if result.transcript.strip():
                self._final_parts.append(result.transcript.strip())
            self._language = result.language_code or language_hint
            return TranscriptionResult(self.transcript_final, self._language)

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _start_recorder_locked(self) -> None:
        try:
            self._recorder.start(self._audio_queue)
        except MicrophoneError:
            raise
        except RuntimeError as exc:
            raise MicrophoneError(str(exc)) from exc

    def _downgrade_locked(self, deferred: Deferred) -> None:
        self._engine = EngineKind.REMOTE_PUSH_TO_TALK
        if self._downgraded:
            return
        self._downgraded = True
        logger.warning("switched to cloud engine")
        callback = self.on_notice
        if callback is not None:
            message = ERROR_MESSAGES[ENGINE_TRANSIENT_FAILURE]
            deferred.append(lambda: callback(ENGINE_TRANSIENT_FAILURE, message))

    def _fail_locked(self, code: str, message: str, deferred: Deferred) -> None:
        self._capturing = False
        self._paused = False
        self._run += 1
        self._cancel_timer_locked()
        deferred.append(self._release)
        callback = self.on_failure
        if callback is not None:
            deferred.append(lambda: callback(code, message))

    def _notify_partial_locked(self, deferred: Deferred) -> None:
        callback = self.on_partial
        if callback is None:
            return
        text = " ".join(part for part in (self.transcript_final, self._interim) if part)
        deferred.append(lambda: callback(text))

    def _cancel_timer_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _release(self) -> None:
        for name, stop in (("recognizer", self._recognizer.stop), ("recorder", self._recorder.stop)):
            try:
                stop()
            except Exception:
                logger.exception("%s teardown failed", name)

    @staticmethod
    def _run_deferred(deferred: Deferred) -> None:
        for call in deferred:
            call()
