"""Turns resolved intents into navigation or in-page events."""

from __future__ import annotations

import logging
import threading
import webbrowser
from typing import Optional
from urllib.parse import quote

from command_resolver import ACTION_EVENT_PREFIX
from event_bus import VOICE_COMMAND, EventBus
from interfaces import Navigator
from models import IntentResult

logger = logging.getLogger(__name__)

# Intents whose spoken description becomes a search query. A value replaces
# the classifier's action as the base path.
SEARCH_AUGMENTED: dict[str, Optional[str]] = {
    "take_assessment": None,
    "take_course": "/courses",
}


def build_target(result: IntentResult, source_transcript: str) -> str:
    if result.intent in SEARCH_AUGMENTED:
        base = SEARCH_AUGMENTED[result.intent] or result.action
        return f"{base}?search={quote(source_transcript.strip(), safe='')}"
    return result.action


class BrowserNavigator:
    """Opens paths of the web application in the default browser."""

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url.rstrip("/")

    def push(self, path: str) -> None:
        url = f"{self._base_url}/{path.lstrip('/')}"
        logger.info("navigating to %s", url)
        webbrowser.open(url, new=0)


class ActionDispatcher:
    def __init__(self, bus: EventBus, navigator: Navigator) -> None:
        self._bus = bus
        self._navigator = navigator
        self._lock = threading.Lock()
        self._last_session_id: Optional[int] = None

    def dispatch(
        self,
        result: IntentResult,
        source_transcript: str,
        session_id: Optional[int] = None,
    ) -> bool:
        """Run the action once per session id. Returns False for repeats.

        Session ids only increase, so an id at or below the last dispatched
        one is a repeat.
        """
        with self._lock:
            if session_id is not None:
                if self._last_session_id is not None and session_id <= self._last_session_id:
                    logger.debug("session %d already dispatched", session_id)
                    return False
                self._last_session_id = session_id

        if result.action.startswith(ACTION_EVENT_PREFIX):
            event_name = result.action[len(ACTION_EVENT_PREFIX):]
            logger.info("broadcasting %s=%s", VOICE_COMMAND, event_name)
            self._bus.emit(VOICE_COMMAND, event_name)
            return True

        self._navigator.push(build_target(result, source_transcript))
        return True
