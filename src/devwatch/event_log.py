"""Passive subscriber writing one log line per semantic event."""

import logging
from typing import Dict, Optional

from .models import EventType, WatchEvent

logger = logging.getLogger(__name__)

MESSAGES: Dict[EventType, str] = {
    EventType.ADD_STORE: "Store \"{path}\" has been added, initializing...",
    EventType.CHANGE_STORE: "Store \"{path}\" has been changed, reinitializing...",
    EventType.UNLINK_STORE: "Store \"{path}\" has been unlinked, removing...",
    EventType.RELOAD_STORE: "Store \"{path}\" has been reloaded",
    EventType.ADD_COMPONENT: "Component \"{path}\" has been added, initializing...",
    EventType.CHANGE_COMPONENT: "Component \"{path}\" has been changed, reinitializing...",
    EventType.CHANGE_LOGIC: "Logic file of component \"{path}\" has been changed, reinitializing...",
    EventType.CHANGE_TEMPLATES: "Templates of component \"{path}\" have been changed, reinitializing...",
    EventType.UNLINK_COMPONENT: "Component \"{path}\" has been unlinked, removing...",
}


class EventLogger:
    """
    Logs semantic watch events.

    Attach it with ``watcher.add_listener(EventLogger())``; it never
    influences event handling.
    """

    def __init__(self, target: Optional[logging.Logger] = None):
        self.logger = target or logger

    def format(self, event: WatchEvent) -> str:
        if event.event_type is EventType.ERROR:
            return f"Watch error: {event.error}"
        return MESSAGES[event.event_type].format(path=event.path)

    def __call__(self, event: WatchEvent) -> None:
        level = logging.ERROR if event.event_type is EventType.ERROR else logging.INFO
        self.logger.log(level, self.format(event))
