"""HTTP client for the web application's voice routes.

The assessment web app exposes three stateless routes that wrap the vendor
services: ``/api/voice/stt`` (transcription), ``/api/voice/intent`` (intent
classification) and ``/api/voice/tts`` (speech synthesis).
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Callable, Optional

import httpx

from errors import NETWORK_ERROR, REMOTE_SERVICE_FAILURE, VoiceServiceError
from models import DEFAULT_LANGUAGE, TranscriptionResult

logger = logging.getLogger(__name__)

STT_PATH = "/api/voice/stt"
INTENT_PATH = "/api/voice/intent"
TTS_PATH = "/api/voice/tts"

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse the JSON object embedded in a model reply.

    Markdown fences and any prose around the outermost ``{...}`` are ignored.
    Raises ``ValueError`` when no object can be decoded.
    """
    cleaned = _FENCE_RE.sub("", text or "").strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start < 0 or end <= start:
        raise ValueError(f"no JSON object in {cleaned[:80]!r}")
    data = json.loads(cleaned[start : end + 1])
    if not isinstance(data, dict):
        raise ValueError("embedded JSON is not an object")
    return data


class VoiceApiClient:
    """Blocking client; callers run it off the UI thread."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        max_retries: int = 2,
        backoff_factor: float = 0.5,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.max_retries = max(1, max_retries)
        self.backoff_factor = backoff_factor
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self._client.close()

    def transcribe(self, audio_base64: str, language: Optional[str] = None) -> TranscriptionResult:
        payload: dict[str, Any] = {"audio": audio_base64}
        if language:
            payload["language"] = language
        data = self._post(STT_PATH, payload)
        transcript = data.get("transcript") or data.get("text") or ""
        if not isinstance(transcript, str):
            raise VoiceServiceError(REMOTE_SERVICE_FAILURE, "transcript is not a string")
        locale = data.get("language_code") or language or DEFAULT_LANGUAGE
        logger.info("transcribed %r (%s)", transcript[:50], locale)
        return TranscriptionResult(transcript=transcript, language_code=str(locale))

    def classify(self, transcript: str) -> dict[str, Any]:
        return self._post(INTENT_PATH, {"transcript": transcript})

    def synthesize(self, text: str, language: str = DEFAULT_LANGUAGE) -> str:
        data = self._post(TTS_PATH, {"text": text, "language": language})
        audio = data.get("audioBase64")
        if not audio or not isinstance(audio, str):
            raise VoiceServiceError(REMOTE_SERVICE_FAILURE, "No audio returned")
        return audio

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        delay = self.backoff_factor
        for attempt in range(1, self.max_retries + 1):
            try:
                resp = self._client.post(path, json=payload)
                resp.raise_for_status()
                break
            except (httpx.ConnectError, httpx.ReadTimeout, httpx.RemoteProtocolError) as exc:
                logger.warning(
                    "request to %s failed (attempt %d/%d): %s", path, attempt, self.max_retries, exc
                )
                if attempt == self.max_retries:
                    raise VoiceServiceError(NETWORK_ERROR, str(exc), retryable=True) from exc
                self._sleep(delay)
                delay *= 2
            except httpx.HTTPStatusError as exc:
                # 4xx or 5xx: no point retrying
                logger.error("%s returned HTTP %d", path, exc.response.status_code)
                raise VoiceServiceError(
                    REMOTE_SERVICE_FAILURE, f"{path} returned {exc.response.status_code}"
                ) from exc
            except httpx.HTTPError as exc:
                raise VoiceServiceError(NETWORK_ERROR, str(exc), retryable=True) from exc
        try:
            return extract_json_object(resp.text)
        except ValueError as exc:
            raise VoiceServiceError(REMOTE_SERVICE_FAILURE, f"malformed payload from {path}: {exc}") from exc
