import logging
from typing import Any, Dict, List, Tuple

logger = logging.getLogger("gopos.events")

FAILURE_EVENTS = {
    "history_load_failed",
    "history_save_failed",
    "ai_response_failed",
    "reply_delivery_failed",
    "note_store_failed",
    "note_delete_missed",
}


class EventSink:
    """Receives structured events from the bot core."""

    def emit(self, event: str, **fields: Any) -> None:
        raise NotImplementedError


class LoggingEventSink(EventSink):
    def __init__(self, log: logging.Logger | None = None):
        self._log = log or logger

    def emit(self, event: str, **fields: Any) -> None:
        rendered = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
        level = logging.WARNING if event in FAILURE_EVENTS else logging.INFO
        self._log.log(level, "%s %s", event, rendered)


class RecordingEventSink(EventSink):
    """Keeps emitted events in memory; handy for tests and debugging shells."""

    def __init__(self):
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def emit(self, event: str, **fields: Any) -> None:
        self.events.append((event, dict(fields)))

    def names(self) -> List[str]:
        return [name for name, _ in self.events]
