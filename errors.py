"""Shared error codes, user-facing messages and localized feedback."""

from __future__ import annotations

from models import DEFAULT_LANGUAGE

PERMISSION_DENIED = "PERMISSION_DENIED"
EMPTY_TRANSCRIPT = "EMPTY_TRANSCRIPT"
ENGINE_TRANSIENT_FAILURE = "ENGINE_TRANSIENT_FAILURE"
ENGINE_ERROR = "ENGINE_ERROR"
REMOTE_SERVICE_FAILURE = "REMOTE_SERVICE_FAILURE"
UNRESOLVED_INTENT = "UNRESOLVED_INTENT"
NETWORK_ERROR = "NETWORK_ERROR"
AUTH_FAILED = "AUTH_FAILED"
NO_ACTIVE_TARGET = "NO_ACTIVE_TARGET"
ASR_PROTOCOL_ERROR = "ASR_PROTOCOL_ERROR"
ACTION_FAILED = "ACTION_FAILED"

# Codes reported by the continuous engine itself.
ENGINE_NO_SPEECH = "no-speech"
ENGINE_NETWORK = "network"

ERROR_MESSAGES = {
    PERMISSION_DENIED: "Microphone access denied. Please allow microphone access.",
    EMPTY_TRANSCRIPT: "No speech detected. Try again.",
    ENGINE_TRANSIENT_FAILURE: "On-device engine failed. Switching to cloud engine for stability...",
    ENGINE_ERROR: "Speech recognition stopped unexpectedly.",
    REMOTE_SERVICE_FAILURE: "Voice processing failed. Check your connection.",
    UNRESOLVED_INTENT: "Sorry, I didn't understand. Try: dashboard, settings, results",
    NETWORK_ERROR: "Network failed, please retry.",
    AUTH_FAILED: "API key is invalid.",
    NO_ACTIVE_TARGET: "No active input target, result kept in clipboard.",
    ASR_PROTOCOL_ERROR: "ASR response format is invalid.",
    ACTION_FAILED: "Could not perform the requested action.",
}

FEEDBACK = {
    "listening": {
        "en-IN": "Listening...",
        "hi-IN": "सुन रहा हूँ...",
        "bn-IN": "শুনছি...",
        "ta-IN": "கேட்கிறேன்...",
    },
    "navigating": {
        "en-IN": "Navigating",
        "hi-IN": "जा रहा हूँ",
        "bn-IN": "যাচ্ছি",
        "ta-IN": "செல்கிறேன்",
    },
    "not_understood": {
        "en-IN": "Sorry, I didn't understand. Try: dashboard, settings, results",
        "hi-IN": "समझ नहीं आया। कहें: डैशबोर्ड, सेटिंग्स, नतीजे",
    },
    "dictated": {
        "en-IN": "Typed",
        "hi-IN": "लिख दिया",
    },
}


def get_feedback(key: str, lang: str) -> str:
    messages = FEEDBACK.get(key, {})
    return messages.get(lang) or messages.get(DEFAULT_LANGUAGE) or key


class VoiceServiceError(RuntimeError):
    """A remote voice service answered with a failure or an unusable payload."""

    def __init__(self, code: str, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.retryable = retryable


class MicrophoneError(RuntimeError):
    """The input device could not be acquired."""


def classify_exception(exc: BaseException) -> tuple[str, bool]:
    """Map an SDK/network exception to an error code and retryable flag."""
    low = str(exc).lower()
    if "401" in low or "auth" in low or "api key" in low:
        return AUTH_FAILED, False
    if "timeout" in low or "network" in low or "connection" in low:
        return NETWORK_ERROR, True
    return REMOTE_SERVICE_FAILURE, True
