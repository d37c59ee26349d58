"""Two-tier command resolution: local keyword table, then remote classifier."""

from __future__ import annotations

import logging
import numbers
from typing import Any, Optional, Sequence

from errors import VoiceServiceError
from interfaces import IntentClassifier
from models import CommandMapping, IntentResult

logger = logging.getLogger(__name__)

ACTION_EVENT_PREFIX = "ACTION_EVENT:"
UNKNOWN_INTENT = "unknown"
MAX_CONFIDENCE = 100.0


def _row(keywords: Sequence[str], action: str, intent: str) -> CommandMapping:
    return CommandMapping(keywords=frozenset(keywords), action=action, intent=intent)


# First matching row wins, so order is priority.
COMMAND_MAP: tuple[CommandMapping, ...] = (
    _row(["dashboard", "home", "main"], "/dashboard", "dashboard"),
    _row(["settings", "accessibility", "profile"], "/dashboard/settings", "settings"),
    _row(["results", "scores", "history", "past"], "/dashboard/results", "results"),
    _row(["courses", "course", "catalogue", "learn", "study"], "/courses", "courses"),
    _row(["enroll", "continue", "start", "join"], "ACTION_EVENT:start_course", "start_course"),
    _row(["simplify", "easier", "bullets", "analogies"], "ACTION_EVENT:simplify_content", "simplify_content"),
    _row(["video", "watch"], "ACTION_EVENT:go_to_video", "go_to_video"),
    _row(["quiz", "questions"], "ACTION_EVENT:go_to_quiz", "go_to_quiz"),
    _row(["practice", "activity", "try"], "ACTION_EVENT:go_to_practice", "go_to_practice"),
    _row(["reflection", "feedback", "summary"], "ACTION_EVENT:go_to_reflection", "go_to_reflection"),
    _row(["login", "sign in", "signin"], "/login", "login"),
    _row(["next", "next question", "forward"], "ACTION_EVENT:next_question", "next_question"),
    _row(["previous", "prev", "back", "go back"], "ACTION_EVENT:prev_question", "prev_question"),
    _row(["submit", "finish", "done", "complete"], "ACTION_EVENT:submit_assessment", "submit_assessment"),
    _row(["a", "alpha", "option a", "select a", "choose a"], "ACTION_EVENT:select_option_a", "select_option_a"),
    _row(["b", "bravo", "option b", "select b", "choose b"], "ACTION_EVENT:select_option_b", "select_option_b"),
    _row(["c", "charlie", "option c", "select c", "choose c"], "ACTION_EVENT:select_option_c", "select_option_c"),
    _row(["d", "delta", "option d", "select d", "choose d"], "ACTION_EVENT:select_option_d", "select_option_d"),
)


def keyword_matches(text: str, keyword: str) -> bool:
    """Match ``keyword`` inside normalized ``text`` on space boundaries.

    Single-letter keywords only match the whole utterance; "give me a hint"
    must not select option A.
    """
    if text == keyword:
        return True
    if len(keyword) == 1:
        return False
    return (
        text.startswith(keyword + " ")
        or text.endswith(" " + keyword)
        or f" {keyword} " in text
    )


def match_local(transcript: str, table: Sequence[CommandMapping] = COMMAND_MAP) -> Optional[CommandMapping]:
    text = " ".join(transcript.lower().split())
    if not text:
        return None
    for mapping in table:
        # Sorted so the winning keyword is deterministic for logging.
        for keyword in sorted(mapping.keywords):
            if keyword_matches(text, keyword):
                logger.debug("local match %r -> %s via %r", text[:50], mapping.intent, keyword)
                return mapping
    return None


def is_app_action(action: str) -> bool:
    """True for an in-app path or an in-page event; external URLs are refused."""
    if action.startswith(ACTION_EVENT_PREFIX):
        return True
    return action.startswith("/") and not action.startswith("//")


def parse_intent_payload(payload: Any, transcript: str) -> Optional[IntentResult]:
    """Validate a classifier reply; ``None`` means unresolved."""
    if not isinstance(payload, dict):
        return None
    intent = payload.get("intent")
    action = payload.get("action")
    if not isinstance(intent, str) or not intent or intent == UNKNOWN_INTENT:
        return None
    if not isinstance(action, str) or not is_app_action(action.strip()):
        return None
    confidence = payload.get("confidence", 0)
    if isinstance(confidence, bool) or not isinstance(confidence, numbers.Real):
        confidence = 0
    return IntentResult(
        intent=intent,
        action=action.strip(),
        confidence=max(0.0, min(MAX_CONFIDENCE, float(confidence))),
        transcript=transcript,
    )


class CommandResolver:
    def __init__(
        self,
        classifier: IntentClassifier,
        table: Sequence[CommandMapping] = COMMAND_MAP,
    ) -> None:
        self._classifier = classifier
        self._table = tuple(table)

    def resolve(self, transcript: str) -> Optional[IntentResult]:
        """Resolve a finished transcript; ``None`` when nothing actionable was found.

        The result keeps the source transcript for search-augmented dispatch.
        Remote failures are logged and reported as unresolved.
        """
        mapping = match_local(transcript, self._table)
        if mapping is not None:
            return IntentResult(
                intent=mapping.intent,
                action=mapping.action,
                confidence=MAX_CONFIDENCE,
                transcript=transcript,
                local=True,
            )

        try:
            payload = self._classifier.classify(transcript)
        except VoiceServiceError as exc:
            logger.warning("intent classification failed [%s]: %s", exc.code, exc)
            return None
        result = parse_intent_payload(payload, transcript)
        if result is None:
            logger.info("classifier could not resolve %r", transcript[:50])
        return result
