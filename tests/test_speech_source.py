from __future__ import annotations

import base64
from queue import Queue

import pytest

from errors import ENGINE_ERROR, ENGINE_TRANSIENT_FAILURE, MicrophoneError
from models import AudioFrame, EngineKind, RecognitionEvent, RecognitionKind, TranscriptionResult
from speech_source import EngineHealth, SpeechSource


class FakeTimer:
    def __init__(self, interval: float, function, args=()) -> None:  # noqa: ANN001
        self.interval = interval
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if not self.cancelled:
            self.function(*self.args)


class TimerLog:
    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, interval: float, function, args=()) -> FakeTimer:  # noqa: ANN001
        timer = FakeTimer(interval, function, args)
        self.timers.append(timer)
        return timer


class FakeRecorder:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.queue: Queue[AudioFrame | None] | None = None
        self.starts = 0
        self.stops = 0
        self.paused = False

    def start(self, audio_queue: Queue[AudioFrame | None]) -> None:
        if self.error is not None:
            raise self.error
        self.starts += 1
        self.queue = audio_queue

    def stop(self) -> None:
        self.stops += 1

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    def feed(self, n_samples: int = 1600) -> None:
        assert self.queue is not None
        self.queue.put_nowait(AudioFrame(pcm16_bytes=b"\x01\x00" * n_samples))


class FakeRecognizer:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.on_event = None
        self.starts = 0
        self.stops = 0

    def start(self, audio_queue, on_event) -> None:  # noqa: ANN001
        if self.error is not None:
            raise self.error
        self.starts += 1
        self.on_event = on_event

    def stop(self) -> None:
        self.stops += 1

    def emit(self, kind: RecognitionKind, text: str = "", code: str = "") -> None:
        assert self.on_event is not None
        self.on_event(RecognitionEvent(kind=kind.value, text=text, code=code, message=code))


class FakeTranscriber:
    def __init__(self, transcript: str = "", language_code: str = "en-IN") -> None:
        self.result = TranscriptionResult(transcript, language_code)
        self.calls: list[tuple[str, str | None]] = []

    def transcribe(self, audio_base64: str, language: str | None = None) -> TranscriptionResult:
        self.calls.append((audio_base64, language))
        return self.result


class Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _source(engine=EngineKind.ON_DEVICE_CONTINUOUS, **kwargs):  # noqa: ANN001, ANN202
    recorder = kwargs.pop("recorder", FakeRecorder())
    recognizer = kwargs.pop("recognizer", FakeRecognizer())
    transcriber = kwargs.pop("transcriber", FakeTranscriber())
    timers = TimerLog()
    clock = Clock()
    notices: list[tuple[str, str]] = []
    failures: list[tuple[str, str]] = []
    partials: list[str] = []
    source = SpeechSource(
        recorder,
        recognizer,
        transcriber,
        engine=engine,
        finalize_timeout_s=0.01,
        clock=clock,
        timer_factory=timers,
        on_partial=partials.append,
        on_notice=lambda code, msg: notices.append((code, msg)),
        on_failure=lambda code, msg: failures.append((code, msg)),
        **kwargs,
    )
    return source, recorder, recognizer, transcriber, timers, clock, notices, failures, partials


def test_engine_health_cooldown() -> None:
    health = EngineHealth(cooldown_s=1.0)
    assert health.allow_restart(10.0) is True
    assert health.allow_restart(10.5) is False
    assert health.allow_restart(12.0) is True
    health.reset()
    assert health.allow_restart(12.1) is True


def test_continuous_capture_collects_fragments() -> None:
    source, recorder, recognizer, transcriber, _, _, _, _, partials = _source()

    source.start()
    assert source.capturing is True
    assert recognizer.starts == 1 and recorder.starts == 1

    recognizer.emit(RecognitionKind.PARTIAL, "go to")
    recognizer.emit(RecognitionKind.FINAL, "go to dashboard")
    assert source.transcript_final == "go to dashboard"
    assert partials == ["go to", "go to dashboard"]

    result = source.stop()
    assert result.transcript == "go to dashboard"
    assert source.capturing is False
    assert recorder.stops >= 1 and recognizer.stops >= 1
    assert transcriber.calls == []


def test_push_to_talk_transcribes_buffered_audio() -> None:
    transcriber = FakeTranscriber("mujhe results dikhao", "hi-IN")
    source, recorder, _, _, timers, _, _, _, _ = _source(
        EngineKind.REMOTE_PUSH_TO_TALK, transcriber=transcriber, language="en-IN"
    )

    source.start()
    recorder.feed()
    recorder.feed()
    result = source.stop()

    assert result.transcript == "mujhe results dikhao"
    assert result.language_code == "hi-IN"
    assert source.detected_language == "hi-IN"
    audio, language = transcriber.calls[0]
    assert language == "en-IN"
    assert base64.b64decode(audio)[:4] == b"RIFF"
    assert timers.timers[0].interval == 5.0
    assert timers.timers[0].cancelled is True


def test_push_to_talk_empty_buffer_skips_remote_call() -> None:
    source, _, _, transcriber, _, _, _, _, _ = _source(EngineKind.REMOTE_PUSH_TO_TALK)

    source.start()
    result = source.stop()

    assert result.transcript == ""
    assert transcriber.calls == []


def test_push_to_talk_auto_stops_after_timeout() -> None:
    auto_stops: list[bool] = []
    source, _, _, _, timers, _, _, _, _ = _source(
        EngineKind.REMOTE_PUSH_TO_TALK, on_auto_stop=lambda: auto_stops.append(True)
    )

    source.start()
    timers.timers[0].fire()

    assert auto_stops == [True]


def test_push_to_talk_timeout_without_owner_stops_capture() -> None:
    source, _, _, _, timers, _, _, _, _ = _source(EngineKind.REMOTE_PUSH_TO_TALK)

    source.start()
    timers.timers[0].fire()

    assert source.capturing is False


def test_stale_timer_from_previous_session_is_ignored() -> None:
    auto_stops: list[bool] = []
    source, _, _, _, timers, _, _, _, _ = _source(
        EngineKind.REMOTE_PUSH_TO_TALK, on_auto_stop=lambda: auto_stops.append(True)
    )

    source.start()
    source.stop()
    source.start()
    old = timers.timers[0]
    old.cancelled = False
    old.fire()

    assert auto_stops == []
    assert source.capturing is True


def test_fast_failing_engine_downgrades_once() -> None:
    source, recorder, recognizer, _, timers, clock, notices, failures, _ = _source()

    source.start()
    clock.now = 0.0
    recognizer.emit(RecognitionKind.END)
    assert recognizer.starts == 2
    assert source.engine == EngineKind.ON_DEVICE_CONTINUOUS

    clock.now = 0.4
    recognizer.emit(RecognitionKind.END)
    assert source.engine == EngineKind.REMOTE_PUSH_TO_TALK
    assert source.capturing is True
    assert len(timers.timers) == 1
    assert [code for code, _ in notices] == [ENGINE_TRANSIENT_FAILURE]
    assert failures == []

    clock.now = 0.6
    recognizer.emit(RecognitionKind.END)
    assert len(notices) == 1
    assert recognizer.starts == 2

    source.stop()
    source.start()
    source.stop()
    assert source.engine == EngineKind.REMOTE_PUSH_TO_TALK
    assert len(notices) == 1


def test_slow_engine_restarts_keep_on_device() -> None:
    source, _, recognizer, _, _, clock, notices, _, _ = _source()

    source.start()
    recognizer.emit(RecognitionKind.END)
    clock.now = 5.0
    recognizer.emit(RecognitionKind.END)

    assert recognizer.starts == 3
    assert source.engine == EngineKind.ON_DEVICE_CONTINUOUS
    assert notices == []


def test_network_error_downgrades_mid_capture_and_keeps_fragments() -> None:
    transcriber = FakeTranscriber("settings")
    source, recorder, recognizer, _, _, _, notices, _, _ = _source(transcriber=transcriber)

    source.start()
    recognizer.emit(RecognitionKind.FINAL, "open")
    recognizer.emit(RecognitionKind.ERROR, code="network")

    assert source.engine == EngineKind.REMOTE_PUSH_TO_TALK
    assert len(notices) == 1
    recorder.feed()
    result = source.stop()

    assert result.transcript == "open settings"


def test_no_speech_error_is_ignored() -> None:
    source, _, recognizer, _, _, _, notices, failures, _ = _source()

    source.start()
    recognizer.emit(RecognitionKind.ERROR, code="no-speech")

    assert source.capturing is True
    assert notices == [] and failures == []


def test_fatal_engine_error_fails_capture() -> None:
    source, recorder, recognizer, _, _, _, _, failures, _ = _source()

    source.start()
    recognizer.emit(RecognitionKind.ERROR, code="audio-capture")

    assert source.capturing is False
    assert failures[0][0] == ENGINE_ERROR
    assert recorder.stops >= 1


def test_microphone_denied_raises() -> None:
    recognizer = FakeRecognizer()
    source, _, _, _, _, _, _, _, _ = _source(
        recorder=FakeRecorder(error=MicrophoneError("denied")), recognizer=recognizer
    )

    with pytest.raises(MicrophoneError):
        source.start()
    assert source.capturing is False
    assert recognizer.stops == 1


def test_missing_on_device_engine_starts_push_to_talk() -> None:
    source, recorder, _, _, timers, _, notices, _, _ = _source(
        recognizer=FakeRecognizer(error=RuntimeError("vosk model not found"))
    )

    source.start()

    assert source.engine == EngineKind.REMOTE_PUSH_TO_TALK
    assert source.capturing is True
    assert recorder.starts == 1
    assert len(timers.timers) == 1
    assert [code for code, _ in notices] == [ENGINE_TRANSIENT_FAILURE]


def test_pause_ignores_events_until_resume() -> None:
    source, _, recognizer, _, _, _, _, _, partials = _source()

    source.start()
    old_callback = recognizer.on_event
    source.pause()
    assert source.paused is True
    old_callback(RecognitionEvent(kind="partial", text="hello from speaker"))
    old_callback(RecognitionEvent(kind="end"))
    assert partials == []
    assert recognizer.starts == 1

    source.resume()
    assert source.paused is False
    assert recognizer.starts == 2
    recognizer.emit(RecognitionKind.FINAL, "results")
    assert source.stop().transcript == "results"


def test_push_to_talk_pause_holds_recorder() -> None:
    source, recorder, _, _, _, _, _, _, _ = _source(EngineKind.REMOTE_PUSH_TO_TALK)

    source.start()
    source.pause()
    assert recorder.paused is True
    source.resume()
    assert recorder.paused is False


def test_reset_engine_returns_to_on_device() -> None:
    source, _, recognizer, _, _, _, notices, _, _ = _source(
        recognizer=FakeRecognizer(error=RuntimeError("offline"))
    )

    source.start()
    source.stop()
    recognizer.error = None
    source.reset_engine()
    source.start()

    assert source.engine == EngineKind.ON_DEVICE_CONTINUOUS
    assert recognizer.starts == 1
    assert len(notices) == 1
