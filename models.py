"""Core data models for the voice client."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional

DEFAULT_LANGUAGE = "en-IN"


class SessionStatus(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


class EngineKind(str, Enum):
    ON_DEVICE_CONTINUOUS = "on_device"
    REMOTE_PUSH_TO_TALK = "cloud"


class SessionMode(str, Enum):
    COMMAND = "command"
    DICTATION = "dictation"


class RecognitionKind(str, Enum):
    PARTIAL = "partial"
    FINAL = "final"
    ERROR = "error"
    END = "end"


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class RecognitionEvent:
    kind: str
    text: str = ""
    code: str = ""
    message: str = ""
    retryable: bool = False


@dataclass
class TranscriptionResult:
    transcript: str
    language_code: str = DEFAULT_LANGUAGE


@dataclass(frozen=True)
class CommandMapping:
    """One row of the local keyword table. Row order is match priority."""

    keywords: FrozenSet[str]
    action: str
    intent: str


@dataclass
class IntentResult:
    intent: str
    action: str
    confidence: float = 100.0
    transcript: str = ""
    local: bool = False


@dataclass
class VoiceSession:
    """One capture-to-action cycle."""

    session_id: int
    mode: SessionMode = SessionMode.COMMAND
    status: SessionStatus = SessionStatus.IDLE
    engine: EngineKind = EngineKind.ON_DEVICE_CONTINUOUS
    transcript_final: str = ""
    transcript_interim: str = ""
    detected_language: str = DEFAULT_LANGUAGE
    started_at: float = field(default_factory=time.time)
    last_error: Optional[str] = None
    message: str = ""
    result: Optional[IntentResult] = None


@dataclass
class PasteResult:
    success: bool
    reason: str
    clipboard_restored: bool


@dataclass
class SpeechResult:
    success: bool
    reason: str = ""
    played: bool = False
