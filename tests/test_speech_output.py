from __future__ import annotations

import base64
import threading

from errors import REMOTE_SERVICE_FAILURE, VoiceServiceError
from event_bus import PLAYBACK_ENDED, PLAYBACK_STARTED, EventBus
from speech_output import SpeechOutputService, truncate_text

AUDIO = base64.b64encode(b"RIFF fake wav").decode("ascii")


class FakeSynthesizer:
    def __init__(self, audio: str = AUDIO, exc: Exception | None = None) -> None:
        self.audio = audio
        self.exc = exc
        self.calls: list[tuple[str, str]] = []

    def synthesize(self, text: str, language: str) -> str:
        self.calls.append((text, language))
        if self.exc is not None:
            raise self.exc
        return self.audio


class FakePlayer:
    def __init__(self, fail: bool = False, gate: threading.Event | None = None) -> None:
        self.fail = fail
        self.gate = gate
        self.started = threading.Event()
        self.played: list[bytes] = []

    def play(self, wav_bytes: bytes) -> None:
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=2.0)
        if self.fail:
            raise RuntimeError("device lost")
        self.played.append(wav_bytes)


def _bus_log():  # noqa: ANN202
    bus = EventBus()
    events: list[str] = []
    bus.subscribe(PLAYBACK_STARTED, lambda _p: events.append("start"))
    bus.subscribe(PLAYBACK_ENDED, lambda _p: events.append("end"))
    return bus, events


def test_successful_playback_emits_start_then_end() -> None:
    bus, events = _bus_log()
    player = FakePlayer()
    result = SpeechOutputService(FakeSynthesizer(), player, bus).speak("Navigating: dashboard", "hi-IN")

    assert result.success is True
    assert result.played is True
    assert player.played == [b"RIFF fake wav"]
    assert events == ["start", "end"]


def test_playback_failure_still_emits_end() -> None:
    bus, events = _bus_log()
    result = SpeechOutputService(FakeSynthesizer(), FakePlayer(fail=True), bus).speak("hello")

    assert result.success is False
    assert "Playback failed" in result.reason
    assert events == ["start", "end"]


def test_synthesis_failure_emits_nothing() -> None:
    bus, events = _bus_log()
    synth = FakeSynthesizer(exc=VoiceServiceError(REMOTE_SERVICE_FAILURE, "No audio returned"))
    result = SpeechOutputService(synth, FakePlayer(), bus).speak("hello")

    assert result.success is False
    assert result.reason == "No audio returned"
    assert events == []


def test_invalid_audio_is_rejected_before_playback() -> None:
    bus, events = _bus_log()
    result = SpeechOutputService(FakeSynthesizer(audio="not base64!"), FakePlayer(), bus).speak("hello")

    assert result.success is False
    assert events == []


def test_empty_text_is_not_synthesized() -> None:
    bus, _ = _bus_log()
    synth = FakeSynthesizer()
    result = SpeechOutputService(synth, FakePlayer(), bus).speak("   ")

    assert result.success is False
    assert synth.calls == []


def test_long_text_is_truncated_before_synthesis() -> None:
    bus, _ = _bus_log()
    synth = FakeSynthesizer()
    SpeechOutputService(synth, FakePlayer(), bus).speak("x" * 3000)

    sent, _ = synth.calls[0]
    assert len(sent) == 2500
    assert sent.endswith("...")


def test_truncate_text_keeps_short_text() -> None:
    assert truncate_text("hello", 10) == "hello"
    assert truncate_text("abcdefghijkl", 10) == "abcdefg..."


def test_second_request_while_speaking_is_refused() -> None:
    bus, events = _bus_log()
    gate = threading.Event()
    player = FakePlayer(gate=gate)
    service = SpeechOutputService(FakeSynthesizer(), player, bus)

    worker = threading.Thread(target=service.speak, args=("first",))
    worker.start()
    assert player.started.wait(timeout=2.0)
    assert service.is_speaking is True

    second = service.speak("second")
    gate.set()
    worker.join(timeout=2.0)

    assert second.success is False
    assert second.reason == "already speaking"
    assert events == ["start", "end"]
    assert service.is_speaking is False
