"""
Daily notes: one free-text note per user per day.

"One per day" is kept here, not by the database: a save looks up the note's
id for (user, date) and updates it, or inserts when there is none. There is
no compare-and-swap; two writers racing on the same day means the later write
wins.
"""
import logging
import threading
from typing import Optional, Dict, Any, List

from .dates import format_date_string
from .offline import Mutation
from .remote import RemoteStore, RemoteError, NoRowsError
from .schema import DailyNote
from .store import WorkingSetStore

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 1000


def upsert_note_row(remote: RemoteStore, user_id: str, date: str, content: str) -> Dict[str, Any]:
    """Select-then-branch upsert of the (user, date) note. Returns the saved row."""
    try:
        existing = remote.select_one("daily_notes", {"user_id": user_id, "date": date})
    except NoRowsError:
        existing = None

    if existing:
        return remote.update("daily_notes", existing["id"], {"note_content": content})
    return remote.insert("daily_notes", {
        "user_id": user_id,
        "date": date,
        "note_content": content,
    })[0]


class NotesStore(WorkingSetStore):
    """The note for the viewed date."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.note: Optional[DailyNote] = None

    @property
    def content(self) -> str:
        return self.note.content if self.note else ""

    def fetch(self, date: str) -> Optional[DailyNote]:
        """
        Load the note for a date.

        A day without a note is not an error: ``note`` becomes None and
        ``content`` "". On remote failure ``error`` is set.
        """
        date = format_date_string(date)
        if not self._online():
            if date == self.date:
                return self.note
            self._require_online(f"load the note for {date}")

        self.loading = True
        self.error = None
        try:
            row = self.remote.select_one("daily_notes", {"user_id": self.user_id, "date": date})
            note = DailyNote.from_dict(row)
        except NoRowsError:
            note = None
        except RemoteError as e:
            self.loading = False
            self._failed("load note", e)
            return None

        with self._lock:
            self.note = note
            self.date = date
        self._loaded()
        return note

    def update_locally(self, content: str, date: Optional[str] = None) -> None:
        """Patch the working copy without touching the remote table."""
        date = format_date_string(date) if date else self.date
        with self._lock:
            if date != self.date:
                return
            if self.note is None:
                self.note = DailyNote(id="", user_id=self.user_id, date=date)
            self.note.content = content

    def save(self, date: str, content: str) -> Optional[DailyNote]:
        """Upsert the note for a date. Returns the saved note, or None on failure."""
        date = format_date_string(date)
        content = content or ""
        if not self._online():
            self.update_locally(content, date)
            self.connectivity.queue(
                Mutation(table="daily_notes", op="upsert_note", entity_id=date,
                         payload={"note_content": content}, user_id=self.user_id)
            )
            return self.note if date == self.date else None

        self._begin()
        try:
            row = upsert_note_row(self.remote, self.user_id, date, content)
        except RemoteError as e:
            self._failed("save note", e)
            return None

        note = DailyNote.from_dict(row)
        with self._lock:
            if date == self.date:
                self.note = note
        self._synced()
        self._emit("note_saved", date=date)
        return note

    def to_dict(self) -> Dict[str, Any]:
        data = self.status_dict()
        with self._lock:
            data["note"] = self.note.to_dict() if self.note else None
            data["content"] = self.note.content if self.note else ""
        return data


class NoteAutosaver:
    """
    Debounced saves: edits within ``delay_ms`` of each other collapse into one
    remote write carrying the latest content.
    """

    def __init__(self, store: NotesStore, delay_ms: int = DEFAULT_DEBOUNCE_MS):
        self.store = store
        self.delay = delay_ms / 1000.0
        self._timers: Dict[str, threading.Timer] = {}
        self._pending: Dict[str, str] = {}
        self._lock = threading.Lock()

    def schedule(self, date: str, content: str) -> None:
        """Record an edit; the remote write happens once edits pause."""
        date = format_date_string(date)
        self.store.update_locally(content, date)
        with self._lock:
            timer = self._timers.pop(date, None)
            if timer:
                timer.cancel()
            self._pending[date] = content
            timer = threading.Timer(self.delay, self._fire, args=(date,))
            timer.daemon = True
            self._timers[date] = timer
            timer.start()

    def _fire(self, date: str) -> Optional[DailyNote]:
        with self._lock:
            self._timers.pop(date, None)
            content = self._pending.pop(date, None)
        if content is None:
            return None
        return self.store.save(date, content)

    def pending(self) -> List[str]:
        with self._lock:
            return sorted(self._pending)

    def flush(self, date: Optional[str] = None) -> List[DailyNote]:
        """Write pending edits now (all dates, or just one)."""
        with self._lock:
            dates = [format_date_string(date)] if date else list(self._pending)
            for d in dates:
                timer = self._timers.pop(d, None)
                if timer:
                    timer.cancel()
        saved = []
        for d in dates:
            note = self._fire(d)
            if note is not None:
                saved.append(note)
        return saved

    def cancel(self) -> None:
        """Drop pending edits without saving."""
        with self._lock:
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._pending.clear()
