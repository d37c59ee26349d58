"""Blocking playback of synthesized WAV audio."""

from __future__ import annotations

import io
import logging
import wave

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


def decode_wav(wav_bytes: bytes) -> tuple["np.ndarray", int]:
    """Decode 16-bit PCM WAV into an (frames, channels) int16 array."""
    if np is None:
        raise RuntimeError("numpy is not installed")
    with wave.open(io.BytesIO(wav_bytes), "rb") as wf:
        if wf.getsampwidth() != 2:
            raise ValueError(f"unsupported sample width: {wf.getsampwidth()}")
        channels = wf.getnchannels()
        sample_rate = wf.getframerate()
        frames = wf.readframes(wf.getnframes())
    samples = np.frombuffer(frames, dtype=np.int16).reshape(-1, channels)
    return samples, sample_rate


class SoundDevicePlayer:
    def __init__(self, device: str | int | None = None) -> None:
        self.device = device

    def play(self, wav_bytes: bytes) -> None:
        """Play the clip and return when playback has finished."""
        if sd is None:
            raise RuntimeError("sounddevice is not installed")
        samples, sample_rate = decode_wav(wav_bytes)
        logger.debug("playing %d frames at %d Hz", len(samples), sample_rate)
        sd.play(samples, samplerate=sample_rate, device=self.device)
        sd.wait()

    def stop(self) -> None:
        if sd is not None:
            sd.stop()
