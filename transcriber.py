"""Remote transcription backend using DashScope qwen3-asr-flash.

The push-to-talk engine hands over one complete clip as base64 WAV. The model
streams back growing hypotheses; the last one is the transcript. Language
identification is enabled so the detected locale can drive feedback text.
"""

from __future__ import annotations

import base64
import io
import logging
import os
import wave
from typing import Optional

from errors import ASR_PROTOCOL_ERROR, AUTH_FAILED, VoiceServiceError, classify_exception
from models import DEFAULT_LANGUAGE, TranscriptionResult

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)

# qwen3-asr language ids -> locales used by the web application.
LOCALES = {
    "en": "en-IN",
    "hi": "hi-IN",
    "bn": "bn-IN",
    "ta": "ta-IN",
    "te": "te-IN",
    "gu": "gu-IN",
    "kn": "kn-IN",
    "ml": "ml-IN",
    "mr": "mr-IN",
    "pa": "pa-IN",
}


def pcm_to_wav_base64(
    pcm: bytes,
    sample_rate: int = 16000,
    channels: int = 1,
    sample_width: int = 2,
) -> str:
    """Convert raw PCM bytes to a base64-encoded WAV string."""
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sample_width)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    wav_bytes = buf.getvalue()
    return base64.b64encode(wav_bytes).decode("ascii")


def to_locale(language: str, fallback: str = DEFAULT_LANGUAGE) -> str:
    if not language:
        return fallback
    if "-" in language:
        return language
    return LOCALES.get(language.lower(), fallback)


class DashscopeTranscriber:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s

    def transcribe(self, audio_base64: str, language: Optional[str] = None) -> TranscriptionResult:
        if dashscope is None:
            raise VoiceServiceError(ASR_PROTOCOL_ERROR, "dashscope is not installed")
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise VoiceServiceError(AUTH_FAILED, "No API key configured")

        asr_options: dict = {"enable_itn": False, "enable_lid": True}
        if language:
            asr_options["language"] = language.split("-")[0]

        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": audio_base64}]},
                ],
                result_format="message",
                asr_options=asr_options,
                stream=True,
                timeout=self._request_timeout_s,
            )
            latest_text = ""
            detected = ""
            for chunk in response:
                status = chunk.get("status_code") if isinstance(chunk, dict) else None
                if status not in (None, 200):
                    raise RuntimeError(f"{status} {chunk.get('code', '')}: {chunk.get('message', '')}")
                text = self._extract_text(chunk)
                if text:
                    latest_text = text
                detected = self._extract_language(chunk) or detected
        except Exception as exc:
            code, retryable = classify_exception(exc)
            logger.warning("dashscope transcription failed: %s", exc)
            raise VoiceServiceError(code, str(exc), retryable=retryable) from exc

        locale = to_locale(detected, fallback=language or DEFAULT_LANGUAGE)
        logger.info("transcribed %r (%s)", latest_text[:50], locale)
        return TranscriptionResult(transcript=latest_text, language_code=locale)

    def _extract_text(self, chunk: object) -> str:
        """Pull text from a dashscope streaming chunk dict."""
        message = self._message_of(chunk)
        content = message.get("content", [])
        if not content:
            return ""
        value = content[0]
        if isinstance(value, dict):
            return str(value.get("text", ""))
        return ""

    def _extract_language(self, chunk: object) -> str:
        annotations = self._message_of(chunk).get("annotations") or []
        for annotation in annotations:
            if isinstance(annotation, dict) and annotation.get("language"):
                return str(annotation["language"])
        return ""

    @staticmethod
    def _message_of(chunk: object) -> dict:
        if not isinstance(chunk, dict):
            return {}
        choices = (chunk.get("output") or {}).get("choices", [])
        if not choices:
            return {}
        return choices[0].get("message", {}) or {}
