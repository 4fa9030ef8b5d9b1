"""
Store event bus and transient notifications.

Stores emit events (habit_moved, task_moved, note_saved, sync_error, ...).
The notification feed listens and keeps the short messages a client shows as
toasts: successes and failures of single actions.
"""
import logging
import threading
from collections import deque
from typing import Dict, Callable, List, Optional

from .schema import utc_now

logger = logging.getLogger(__name__)


class StoreEvents:
    """Routes store events to subscribers."""

    def __init__(self):
        self.subscribers: Dict[str, list] = {}  # event_type -> list of callbacks

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """Register a callback for an event type ("*" receives everything)."""
        if event_type not in self.subscribers:
            self.subscribers[event_type] = []
        self.subscribers[event_type].append(callback)

    def emit(self, event_type: str, **kwargs) -> None:
        """Emit an event to all subscribers. Callback errors are logged, not raised."""
        callbacks = self.subscribers.get(event_type, []) + self.subscribers.get("*", [])
        for callback in callbacks:
            try:
                callback(event_type=event_type, **kwargs)
            except Exception as e:
                logger.error(f"Error in {event_type} callback: {e}")


# event_type -> (level, message template)
NOTIFICATION_TEMPLATES = {
    "habit_added": ("success", "Habit created successfully."),
    "habit_moved": ("success", "Habit moved to {bucket}."),
    "habit_status": ("success", "Habit marked as {status}."),
    "habit_updated": ("success", "Habit updated."),
    "habit_deleted": ("success", "Habit deleted."),
    "task_added": ("success", "Task created successfully."),
    "task_moved": ("success", "Task moved to {status}."),
    "task_deleted": ("success", "Task deleted."),
    "note_saved": ("success", "Note saved."),
    "sync_error": ("error", "Failed to {action}. Please try again."),
    "queued_offline": ("warning", "You're offline. This change will sync when you reconnect."),
    "outbox_replayed": ("success", "Synced {count} offline change(s)."),
}


class NotificationFeed:
    """Bounded, thread-safe list of toasts per user."""

    def __init__(self, events: StoreEvents, limit: int = 50):
        self.limit = limit
        self._feeds: Dict[str, deque] = {}
        self._lock = threading.Lock()
        events.subscribe("*", self._on_event)

    def _on_event(self, event_type: str, user_id: Optional[str] = None, **kwargs) -> None:
        template = NOTIFICATION_TEMPLATES.get(event_type)
        if template is None or user_id is None:
            return
        level, message = template
        try:
            text = message.format(**kwargs)
        except KeyError:
            text = message
        self.push(user_id, level, text)

    def push(self, user_id: str, level: str, message: str) -> None:
        with self._lock:
            feed = self._feeds.setdefault(user_id, deque(maxlen=self.limit))
            feed.append({"level": level, "message": message, "timestamp": utc_now()})

    def drain(self, user_id: str) -> List[dict]:
        """Return and clear the user's pending notifications (oldest first)."""
        with self._lock:
            feed = self._feeds.pop(user_id, None)
        return list(feed) if feed else []
