"""State-machine based voice session orchestration."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Any, Callable, Optional

from command_resolver import CommandResolver
from dispatcher import ActionDispatcher
from errors import (
    ACTION_FAILED,
    EMPTY_TRANSCRIPT,
    ERROR_MESSAGES,
    NO_ACTIVE_TARGET,
    PERMISSION_DENIED,
    REMOTE_SERVICE_FAILURE,
    UNRESOLVED_INTENT,
    MicrophoneError,
    VoiceServiceError,
    get_feedback,
)
from interfaces import PasteService
from models import IntentResult, PasteResult, SessionMode, SessionStatus, VoiceSession
from speech_output import SpeechOutputService
from speech_source import SpeechSource

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionStatus, SessionStatus], None]
PartialCallback = Callable[[str], None]
ErrorCallback = Callable[[str, str], None]
MessageCallback = Callable[[str], None]


class SessionController:
    """Owns the single active VoiceSession.

    Idle -> Recording -> Processing -> Success | Error -> Idle. Every timer
    carries the id of the session that scheduled it and does nothing once a
    newer session exists.
    """

    def __init__(
        self,
        source: SpeechSource,
        resolver: CommandResolver,
        dispatcher: ActionDispatcher,
        paste_service: Optional[PasteService] = None,
        speech_output: Optional[SpeechOutputService] = None,
        speak_feedback: bool = False,
        confirm_delay_s: float = 0.8,
        error_display_s: float = 3.0,
        timer_factory: Callable[..., Any] = threading.Timer,
        on_state_change: Optional[StateCallback] = None,
        on_partial: Optional[PartialCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_message: Optional[MessageCallback] = None,
    ) -> None:
        self._source = source
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._paste_service = paste_service
        self._speech_output = speech_output
        self._speak_feedback = speak_feedback
        self._confirm_delay_s = confirm_delay_s
        self._error_display_s = error_display_s
        self._timer_factory = timer_factory
        self._on_state_change = on_state_change
        self._on_partial = on_partial
        self._on_error = on_error
        self._on_message = on_message

        source.on_partial = self._handle_partial
        source.on_notice = self._handle_notice
        source.on_failure = self._handle_failure
        source.on_auto_stop = self.stop_session

        self._lock = threading.RLock()
        self._session_id = 0
        self._session = VoiceSession(session_id=0, engine=source.engine)
        self._timer: Any = None

    @property
    def state(self) -> SessionStatus:
        return self._session.status

    @property
    def session(self) -> VoiceSession:
        with self._lock:
            return replace(self._session)

    def is_recording(self) -> bool:
        return self._session.status == SessionStatus.RECORDING

    def start_session(self, mode: SessionMode = SessionMode.COMMAND) -> None:
        with self._lock:
            if self._session.status in (SessionStatus.RECORDING, SessionStatus.PROCESSING):
                return
            self._cancel_timer()
            self._session_id += 1
            previous = self._session.status
            self._session = VoiceSession(
                session_id=self._session_id,
                mode=mode,
                status=previous,
                engine=self._source.engine,
            )
            try:
                self._source.start()
            except MicrophoneError as exc:
                logger.warning("microphone unavailable: %s", exc)
                self._fail(PERMISSION_DENIED, ERROR_MESSAGES[PERMISSION_DENIED])
                return
            self._session.engine = self._source.engine
            self._session.message = get_feedback("listening", self._session.detected_language)
            logger.info("session %d started (%s, %s)", self._session_id, mode.value, self._source.engine.value)
            self._transition(SessionStatus.RECORDING)
            self._emit_message(self._session.message)

    def stop_session(self) -> None:
        """Finish capture and run the command pipeline. Blocks on remote calls."""
        with self._lock:
            if self._session.status != SessionStatus.RECORDING:
                return
            session_id = self._session_id
            self._transition(SessionStatus.PROCESSING)

        try:
            transcription = self._source.stop()
        except VoiceServiceError as exc:
            logger.warning("transcription failed [%s]: %s", exc.code, exc)
            self._fail_if_current(session_id, REMOTE_SERVICE_FAILURE, ERROR_MESSAGES[REMOTE_SERVICE_FAILURE])
            return
        except Exception:
            logger.exception("capture stop failed")
            self._fail_if_current(session_id, REMOTE_SERVICE_FAILURE, ERROR_MESSAGES[REMOTE_SERVICE_FAILURE])
            return

        with self._lock:
            if not self._is_current(session_id, SessionStatus.PROCESSING):
                return
            text = transcription.transcript.strip()
            language = transcription.language_code
            self._session.transcript_final = text
            self._session.transcript_interim = ""
            self._session.detected_language = language
            self._session.engine = self._source.engine
            mode = self._session.mode
            if not text:
                self._fail(EMPTY_TRANSCRIPT, ERROR_MESSAGES[EMPTY_TRANSCRIPT])
                return

        if mode == SessionMode.DICTATION:
            self._finish_dictation(session_id, text, language)
            return

        resolved = self._resolve(text)
        with self._lock:
            if not self._is_current(session_id, SessionStatus.PROCESSING):
                return
            if resolved is None:
                message = f'"{text}" — {get_feedback("not_understood", language)}'
                self._fail(UNRESOLVED_INTENT, message)
                return
            self._session.result = resolved
            self._session.message = f"{get_feedback('navigating', language)}: {resolved.intent}"
            logger.info("session %d resolved to %s (%s)", session_id, resolved.intent, resolved.action)
            self._transition(SessionStatus.SUCCESS)
            self._emit_message(self._session.message)
            self._schedule(self._confirm_delay_s, self._dispatch)
            self._speak(self._session.message, language)

    def toggle_session(self, mode: SessionMode = SessionMode.COMMAND) -> None:
        if self._session.status == SessionStatus.RECORDING:
            self.stop_session()
        else:
            self.start_session(mode)

    def cancel_session(self, reason: str) -> None:
        with self._lock:
            if self._session.status == SessionStatus.IDLE:
                return
            logger.info("session %d cancelled: %s", self._session_id, reason)
            self._cancel_timer()
            self._session_id += 1
            session_id = self._session_id
            self._transition(SessionStatus.IDLE)
        self._release_capture(session_id, only_if_capturing=False)

    def close(self) -> None:
        self.cancel_session("shutdown")
        with self._lock:
            self._cancel_timer()
        self._source.close()

    # ------------------------------------------------------------------
    # Pipeline steps
    # ------------------------------------------------------------------

    def _resolve(self, text: str) -> Optional[IntentResult]:
        try:
            return self._resolver.resolve(text)
        except Exception:
            logger.exception("command resolution failed")
            return None

    def _dispatch(self, session_id: int) -> None:
        with self._lock:
            if not self._is_current(session_id, SessionStatus.SUCCESS):
                return
            self._timer = None
            result = self._session.result
            transcript = self._session.transcript_final
        if result is None:
            return
        try:
            self._dispatcher.dispatch(result, transcript, session_id)
        except Exception:
            logger.exception("dispatch of %s failed", result.intent)
            self._fail_if_current(session_id, ACTION_FAILED, ERROR_MESSAGES[ACTION_FAILED])
            return
        with self._lock:
            if self._is_current(session_id, SessionStatus.SUCCESS):
                self._transition(SessionStatus.IDLE)

    def _finish_dictation(self, session_id: int, text: str, language: str) -> None:
        result = self._run_paste(text)
        with self._lock:
            if not self._is_current(session_id, SessionStatus.PROCESSING):
                return
            if not result.success:
                logger.warning("dictation paste failed: %s", result.reason)
                self._fail(NO_ACTIVE_TARGET, ERROR_MESSAGES[NO_ACTIVE_TARGET])
                return
            self._session.message = f"{get_feedback('dictated', language)}: {text}"
            self._transition(SessionStatus.SUCCESS)
            self._emit_message(self._session.message)
            self._schedule(self._confirm_delay_s, self._return_to_idle)

    def _run_paste(self, text: str) -> PasteResult:
        if self._paste_service is None:
            return PasteResult(success=False, reason="dictation is not available", clipboard_restored=True)
        try:
            return self._paste_service.paste_text(text)
        except Exception as exc:
            logger.exception("paste failed")
            return PasteResult(success=False, reason=str(exc), clipboard_restored=False)

    def _return_to_idle(self, session_id: int) -> None:
        with self._lock:
            if session_id != self._session_id:
                return
            if self._session.status in (SessionStatus.SUCCESS, SessionStatus.ERROR):
                self._timer = None
                self._transition(SessionStatus.IDLE)

    # ------------------------------------------------------------------
    # Speech source callbacks
    # ------------------------------------------------------------------

    def _handle_partial(self, text: str) -> None:
        with self._lock:
            if self._session.status != SessionStatus.RECORDING:
                return
            self._session.transcript_interim = self._source.transcript_interim
            callback = self._on_partial
        if callback:
            callback(text)

    def _handle_notice(self, code: str, message: str) -> None:
        with self._lock:
            self._session.last_error = message
            self._session.engine = self._source.engine
            logger.info("session %d notice [%s]: %s", self._session_id, code, message)
        self._emit_error(code, message)

    def _handle_failure(self, code: str, message: str) -> None:
        with self._lock:
            if self._session.status != SessionStatus.RECORDING:
                return
            session_id = self._session_id
            self._fail(code, message)
        self._release_capture(session_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_current(self, session_id: int, status: SessionStatus) -> bool:
        return session_id == self._session_id and self._session.status == status

    def _fail_if_current(self, session_id: int, code: str, message: str) -> None:
        with self._lock:
            if session_id != self._session_id:
                return
            if self._session.status in (SessionStatus.IDLE, SessionStatus.ERROR):
                return
            self._fail(code, message)
        self._release_capture(session_id)

    def _fail(self, code: str, message: str) -> None:
        """Enter Error. Callers release a still-running capture after dropping the lock."""
        logger.warning("session %d failed [%s]: %s", self._session_id, code, message)
        self._session.last_error = message
        self._session.message = message
        self._transition(SessionStatus.ERROR)
        self._emit_error(code, message)
        self._schedule(self._error_display_s, self._return_to_idle)
        self._speak(message, self._session.detected_language)

    def _schedule(self, delay_s: float, callback: Callable[[int], None]) -> None:
        self._cancel_timer()
        timer = self._timer_factory(delay_s, callback, args=(self._session_id,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _speak(self, text: str, language: str) -> None:
        if not self._speak_feedback or self._speech_output is None:
            return
        threading.Thread(
            target=self._speech_output.speak,
            args=(text, language),
            daemon=True,
        ).start()

    def _release_capture(self, session_id: int, only_if_capturing: bool = True) -> None:
        # Must run without the lock: stopping the engine joins a worker that may wait on it.
        with self._lock:
            if session_id != self._session_id:
                return
            if only_if_capturing and not self._source.capturing:
                return
        try:
            self._source.cancel()
        except Exception:
            logger.exception("releasing capture failed")

    def _emit_error(self, code: str, message: str) -> None:
        if self._on_error:
            self._on_error(code, message)

    def _emit_message(self, message: str) -> None:
        if self._on_message:
            self._on_message(message)

    def _transition(self, to_state: SessionStatus) -> None:
        from_state = self._session.status
        if from_state == to_state:
            return
        self._session.status = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
