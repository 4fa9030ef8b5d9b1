"""
Habit store: the working set of one user's habits for the viewed date.

All mutations go through the actions here; callers never patch ``items``.
Each remote write flips ``sync_status`` to "syncing", then to "synced" (and
stamps ``last_synced``) or to "error" (recording ``error`` and leaving
``items`` as they were).
"""
import logging
from typing import List, Optional, Dict, Any

from .dates import format_date_string
from .defaults import default_habit_rows
from .offline import Mutation
from .remote import RemoteError, NoRowsError
from .schema import (
    Habit, HabitStatus, HistoryEntry, NotFoundError, TimeOfDay,
    ValidationError, status_for_bucket,
    validate_description, validate_title,
)
from .store import WorkingSetStore

logger = logging.getLogger(__name__)


class HabitStore(WorkingSetStore):
    """Habits for (user, date), synchronized with the remote ``habits`` table."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.items: List[Habit] = []

    # ── queries ──

    def get(self, habit_id: str) -> Optional[Habit]:
        with self._lock:
            for habit in self.items:
                if habit.id == habit_id:
                    return habit
        return None

    def _require(self, habit_id: str) -> Habit:
        habit = self.get(habit_id)
        if habit is None:
            raise NotFoundError(f"Habit {habit_id} not found")
        return habit

    def by_bucket(self, bucket: TimeOfDay) -> List[Habit]:
        with self._lock:
            return [h for h in self.items if h.time_of_day == bucket]

    def _replace(self, updated: Habit) -> None:
        with self._lock:
            for index, habit in enumerate(self.items):
                if habit.id == updated.id:
                    self.items[index] = updated
                    return

    # ── actions ──

    def fetch(self, date: str) -> Optional[List[Habit]]:
        """
        Load the habits for a date, seeding the default set when there are none.

        Returns the loaded habits, or None when the remote call failed
        (``error`` is set and ``items`` must not be trusted).
        """
        date = format_date_string(date)
        if not self._online():
            if date == self.date:
                return list(self.items)
            self._require_online(f"load habits for {date}")

        self.loading = True
        self.error = None
        try:
            rows = self.remote.select("habits", eq={"user_id": self.user_id, "date": date})
            if not rows:
                rows = self.remote.insert("habits", default_habit_rows(self.user_id, date))
                logger.info(f"Seeded {len(rows)} default habits for {self.user_id} on {date}")
        except RemoteError as e:
            self.loading = False
            self._failed("load habits", e)
            return None

        with self._lock:
            self.items = [Habit.from_dict(r) for r in rows]
            self.date = date
        self._loaded()
        return list(self.items)

    def add(self, title: str, description: Optional[str] = None,
            time_of_day: str = "morning") -> Optional[Habit]:
        """Create a habit on the loaded date."""
        title = validate_title(title)
        description = validate_description(description)
        bucket = TimeOfDay.from_str(time_of_day)
        if self.date is None:
            raise ValidationError("No habit board loaded")
        self._require_online("add a habit")

        row = {
            "user_id": self.user_id,
            "title": title,
            "description": description,
            "time_of_day": bucket.value,
            "date": self.date,
            "status": status_for_bucket(bucket).value,
            "is_default": False,
        }
        self._begin()
        try:
            inserted = self.remote.insert("habits", row)
        except RemoteError as e:
            self._failed("create habit", e)
            return None

        habit = Habit.from_dict(inserted[0])
        with self._lock:
            self.items.append(habit)
        self._synced()
        self._emit("habit_added", habit_id=habit.id)
        return habit

    def _write(self, habit: Habit, values: Dict[str, Any], action: str,
               event: str, **event_kwargs) -> Optional[Habit]:
        """Send one by-id update, or apply it locally and queue it when offline."""
        if not self._online():
            with self._lock:
                for key, value in values.items():
                    if key == "time_of_day":
                        value = TimeOfDay(value)
                    elif key == "status":
                        value = HabitStatus(value)
                    setattr(habit, key, value)
            self.connectivity.queue(
                Mutation(table="habits", op="update", entity_id=habit.id,
                         payload=values, user_id=self.user_id)
            )
            return habit

        self._begin()
        try:
            row = self.remote.update("habits", habit.id, values)
        except NoRowsError as e:
            self._failed(action, e)
            raise NotFoundError(f"Habit {habit.id} no longer exists")
        except RemoteError as e:
            self._failed(action, e)
            return None

        updated = Habit.from_dict(row)
        self._replace(updated)
        self._synced()
        self._emit(event, habit_id=updated.id, **event_kwargs)
        return updated

    def _record_completion(self, habit: Habit) -> None:
        entry = HistoryEntry(user_id=habit.user_id, habit_id=habit.id, date=habit.date)
        if not self._online():
            self.connectivity.queue(
                Mutation(table="history", op="insert", entity_id=habit.id,
                         payload=entry.to_row(), user_id=self.user_id)
            )
            return
        try:
            self.remote.insert("history", entry.to_row())
        except RemoteError as e:
            # The habit itself is already saved; only the history row is missing
            self._failed("record habit history", e)

    def move(self, habit_id: str, bucket) -> Optional[Habit]:
        """
        Move a habit to another board bucket.

        Same bucket: no-op. Otherwise bucket and derived status are written,
        and a history row is appended when the target is "completed".
        Returns the habit, or None when the remote write failed.
        """
        if not isinstance(bucket, TimeOfDay):
            bucket = TimeOfDay.from_str(bucket)
        habit = self._require(habit_id)
        if habit.time_of_day == bucket:
            return habit

        values = {"time_of_day": bucket.value, "status": status_for_bucket(bucket).value}
        moved = self._write(habit, values, "move habit", "habit_moved", bucket=bucket.value)
        if moved is not None and bucket == TimeOfDay.COMPLETED:
            self._record_completion(moved)
        return moved

    def update(self, habit_id: str, title: Optional[str] = None,
               description: Optional[str] = None) -> Optional[Habit]:
        """Edit title and/or description."""
        habit = self._require(habit_id)
        values = {}
        if title is not None:
            values["title"] = validate_title(title)
        if description is not None:
            values["description"] = validate_description(description)
        if not values:
            return habit
        return self._write(habit, values, "update habit", "habit_updated")

    def set_status(self, habit_id: str, status) -> Optional[Habit]:
        """
        Explicit status edit from the habit list view.

        completed -> same as moving to the completed bucket (history included)
        skipped   -> status only, bucket unchanged
        pending   -> status only, bucket unchanged

        Skipped and pending are only for habits still in a time-of-day bucket.
        """
        if not isinstance(status, HabitStatus):
            status = HabitStatus.from_str(status)
        habit = self._require(habit_id)

        if status == HabitStatus.COMPLETED:
            return self.move(habit_id, TimeOfDay.COMPLETED)
        if habit.time_of_day == TimeOfDay.COMPLETED:
            raise ValidationError(
                f"Cannot mark a completed habit {status.value}; "
                f"move it back to a time of day first"
            )
        if habit.status == status:
            return habit
        return self._write(habit, {"status": status.value}, "update habit",
                           "habit_status", status=status.value)

    def delete(self, habit_id: str) -> bool:
        self._require(habit_id)
        self._require_online("delete a habit")
        self._begin()
        try:
            self.remote.delete("habits", habit_id)
        except RemoteError as e:
            self._failed("delete habit", e)
            return False

        with self._lock:
            self.items = [h for h in self.items if h.id != habit_id]
        self._synced()
        self._emit("habit_deleted", habit_id=habit_id)
        return True

    def refresh(self, habit_id: str) -> Optional[Habit]:
        """Re-read one habit from the remote table (manual recovery after an error)."""
        try:
            row = self.remote.select_one("habits", {"id": habit_id, "user_id": self.user_id})
        except NoRowsError:
            with self._lock:
                self.items = [h for h in self.items if h.id != habit_id]
            return None
        except RemoteError as e:
            self._failed("reload habit", e)
            return None
        habit = Habit.from_dict(row)
        self._replace(habit)
        return habit

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            items = [h.to_dict() for h in self.items]
        data = self.status_dict()
        data["items"] = items
        return data
