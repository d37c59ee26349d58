"""Intent classification backed by a DashScope chat model."""

from __future__ import annotations

import logging
import os
from typing import Any

from errors import ASR_PROTOCOL_ERROR, AUTH_FAILED, REMOTE_SERVICE_FAILURE, VoiceServiceError, classify_exception
from services import extract_json_object

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a voice navigation assistant for an AI assessment platform.
Map the user's spoken command to the correct navigation intent and target URL.
You must return your response in strict JSON format.

Available Intents and URLs:
- "dashboard" -> "/dashboard"
- "settings" -> "/dashboard/settings"
- "results" -> "/dashboard/results"
- "courses" -> "/courses"
- "login" -> "/login"
- "logout" -> "/api/auth/signout"
- "next_question" -> "ACTION_EVENT:next_question"
- "prev_question" -> "ACTION_EVENT:prev_question"
- "submit_assessment" -> "ACTION_EVENT:submit_assessment"
- "simplify_content" -> "ACTION_EVENT:simplify_content"
- "go_to_lesson" -> "ACTION_EVENT:go_to_lesson"
- "go_to_video" -> "ACTION_EVENT:go_to_video"
- "go_to_quiz" -> "ACTION_EVENT:go_to_quiz"
- "go_to_practice" -> "ACTION_EVENT:go_to_practice"
- "go_to_reflection" -> "ACTION_EVENT:go_to_reflection"
- "select_option_a" -> "ACTION_EVENT:select_option_a"
- "select_option_b" -> "ACTION_EVENT:select_option_b"
- "select_option_c" -> "ACTION_EVENT:select_option_c"
- "select_option_d" -> "ACTION_EVENT:select_option_d"

If they want to browse or see courses (e.g., "show me courses", "open course catalogue"):
Set intent to "courses", and action to "/courses"

If they want to take a specific assessment (e.g., "take assignment of operating systems"):
Set intent to "take_assessment" and map the action to "/dashboard".

If they want to take a specific course (e.g., "take the computer science course"):
Set intent to "take_course" and map the action to "/courses".

If they want to go to a specific module section (e.g., "go to the video", "show me the quiz"):
Map the intent to "go_to_[section]" and action to "ACTION_EVENT:go_to_[section]"

If you cannot confidently map to any intent, set intent to "unknown" and action to "".

JSON Format:
{
  "intent": "string",
  "action": "string",
  "confidence": number(0-100)
}"""


class DashscopeIntentClassifier:
    def __init__(
        self,
        api_key: str,
        model: str = "qwen-turbo",
        temperature: float = 0.1,
        max_tokens: int = 100,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens

    def classify(self, transcript: str) -> dict[str, Any]:
        if dashscope is None:
            raise VoiceServiceError(ASR_PROTOCOL_ERROR, "dashscope is not installed")
        api_key = self._api_key or os.getenv("DASHSCOPE_API_KEY", "")
        if not api_key:
            raise VoiceServiceError(AUTH_FAILED, "No API key configured")

        try:
            response = dashscope.Generation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": f'User command: "{transcript}"'},
                ],
                result_format="message",
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                response_format={"type": "json_object"},
            )
        except Exception as exc:
            code, retryable = classify_exception(exc)
            raise VoiceServiceError(code, str(exc), retryable=retryable) from exc

        if response.get("status_code") != 200:
            raise VoiceServiceError(
                REMOTE_SERVICE_FAILURE,
                f"intent model returned {response.get('status_code')}: {response.get('message', '')}",
            )
        try:
            content = response["output"]["choices"][0]["message"]["content"]
            result = extract_json_object(content)
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise VoiceServiceError(REMOTE_SERVICE_FAILURE, f"malformed intent payload: {exc}") from exc
        logger.debug("classified %r as %s", transcript[:50], result.get("intent"))
        return result
