"""Process-wide publish/subscribe bus for playback and in-page action events."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

logger = logging.getLogger(__name__)

PLAYBACK_STARTED = "tts_start"
PLAYBACK_ENDED = "tts_end"
VOICE_COMMAND = "voice_command"

Handler = Callable[[Any], None]


class EventBus:
    """Named-event bus.

    Events of the same name are delivered in emission order to the handlers
    subscribed at emit time. A failing handler is logged and does not keep
    the remaining handlers from running.
    """

    def __init__(self) -> None:
        self._subs: DefaultDict[str, List[Handler]] = defaultdict(list)
        self._lock = threading.RLock()

    def subscribe(self, name: str, handler: Handler) -> None:
        with self._lock:
            self._subs[name].append(handler)

    def unsubscribe(self, name: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._subs.get(name)
            if handlers and handler in handlers:
                handlers.remove(handler)

    def emit(self, name: str, payload: Any = None) -> None:
        # Delivery stays under the lock so same-name events keep emission order.
        with self._lock:
            handlers = list(self._subs.get(name, ()))
            logger.debug("emit %s -> %d handler(s)", name, len(handlers))
            for handler in handlers:
                try:
                    handler(payload)
                except Exception:
                    logger.exception("handler for %s failed", name)
