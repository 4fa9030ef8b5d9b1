"""
Daily board: habit columns by time of day, task columns by status, the day's
note and a quote. One Board per signed-in user, handed out by BoardRegistry.
"""
import logging
import threading
from typing import Dict, Any, List, Optional

from .analytics import day_summary
from .dates import format_date_string, format_date_for_display, next_date, previous_date
from .defaults import random_quote
from .habits import HabitStore
from .notes import NotesStore, NoteAutosaver, DEFAULT_DEBOUNCE_MS
from .offline import Connectivity
from .remote import RemoteStore
from .schema import Habit, TimeOfDay, TaskStatus
from .tasks import TaskStore

logger = logging.getLogger(__name__)


class Board:
    """The three stores for one user plus drop handling."""

    def __init__(self, remote: RemoteStore, user_id: str,
                 connectivity: Optional[Connectivity] = None, events=None,
                 debounce_ms: int = DEFAULT_DEBOUNCE_MS):
        self.user_id = user_id
        self.habits = HabitStore(remote, user_id, connectivity, events)
        self.tasks = TaskStore(remote, user_id, connectivity, events)
        self.notes = NotesStore(remote, user_id, connectivity, events)
        self.autosaver = NoteAutosaver(self.notes, delay_ms=debounce_ms)

    @property
    def date(self) -> Optional[str]:
        """The loaded day, or None while the three stores disagree."""
        date = self.habits.date
        if self.tasks.date != date or self.notes.date != date:
            return None
        return date

    @property
    def error(self) -> Optional[str]:
        return self.habits.error or self.tasks.error or self.notes.error

    def open(self, date: str) -> bool:
        """
        Load habits, tasks and the note for a date. Returns False when any of
        the loads failed (the failing store carries ``error``).
        """
        date = format_date_string(date)
        if self.habits.date and self.habits.date != date:
            # Edits for the previous day go out before its working set is replaced
            self.autosaver.flush()
        ok = self.habits.fetch(date) is not None
        ok = self.tasks.fetch(date) is not None and ok
        self.notes.fetch(date)
        return ok and self.notes.error is None

    def columns(self) -> Dict[str, List[Habit]]:
        """Habits grouped by bucket, in board order."""
        return {bucket.value: self.habits.by_bucket(bucket) for bucket in TimeOfDay}

    def task_columns(self) -> Dict[str, list]:
        return {status.value: self.tasks.by_status(status) for status in TaskStatus}

    def handle_drop(self, habit_id: str, target: str) -> Optional[Habit]:
        """A habit card dropped on a column. Dropping on its own column does nothing."""
        bucket = TimeOfDay.from_str(target)
        habit = self.habits.get(habit_id)
        if habit is not None and habit.time_of_day == bucket:
            return habit
        return self.habits.move(habit_id, bucket)

    def handle_task_drop(self, task_id: str, target: str):
        return self.tasks.move(task_id, TaskStatus.from_str(target))

    def to_dict(self) -> Dict[str, Any]:
        date = self.date
        return {
            "date": date,
            "display_date": format_date_for_display(date) if date else None,
            "previous_date": previous_date(date) if date else None,
            "next_date": next_date(date) if date else None,
            "columns": {
                name: [h.to_dict() for h in habits]
                for name, habits in self.columns().items()
            },
            "task_columns": {
                name: [t.to_dict() for t in tasks]
                for name, tasks in self.task_columns().items()
            },
            "note": self.notes.content,
            "summary": day_summary(list(self.habits.items), list(self.tasks.items)),
            "sync": {
                "habits": self.habits.status_dict(),
                "tasks": self.tasks.status_dict(),
                "note": self.notes.status_dict(),
            },
            "quote": random_quote(),
        }


class BoardRegistry:
    """Hands out one Board per user, sharing the process-wide handles."""

    def __init__(self, remote: RemoteStore, connectivity: Optional[Connectivity] = None,
                 events=None, debounce_ms: int = DEFAULT_DEBOUNCE_MS):
        self.remote = remote
        self.connectivity = connectivity
        self.events = events
        self.debounce_ms = debounce_ms
        self._boards: Dict[str, Board] = {}
        self._lock = threading.Lock()

    def for_user(self, user_id: str) -> Board:
        with self._lock:
            board = self._boards.get(user_id)
            if board is None:
                board = Board(self.remote, user_id, self.connectivity, self.events,
                              debounce_ms=self.debounce_ms)
                self._boards[user_id] = board
                logger.info(f"Opened board for user {user_id}")
            return board

    def flush(self, user_id: str) -> int:
        """Write the user's pending note edits now. Returns the number saved."""
        with self._lock:
            board = self._boards.get(user_id)
        return len(board.autosaver.flush()) if board else 0

    def drop(self, user_id: str) -> None:
        """Forget a user's board (sign-out); pending note edits are written first."""
        with self._lock:
            board = self._boards.pop(user_id, None)
        if board:
            board.autosaver.flush()
