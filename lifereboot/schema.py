"""
Habit, task and note schema.

Habit board lifecycle:
  morning | afternoon | evening  <->  completed

A habit's status follows its bucket: the "completed" bucket means status
"completed", every other bucket means "pending". "skipped" is only reachable
through an explicit status edit and leaves the bucket where it is.
"""
import re
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Dict, Any


TITLE_MAX = 100
DESCRIPTION_MAX = 500
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$")


class ValidationError(Exception):
    """Raised when user input fails validation (before any remote call)."""
    pass


class NotFoundError(LookupError):
    """Raised when an action targets a row outside the working set (or gone remotely)."""
    pass


def utc_now() -> str:
    """ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


class TimeOfDay(Enum):
    """Board buckets, in display order."""
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    COMPLETED = "completed"

    @classmethod
    def from_str(cls, value: str) -> "TimeOfDay":
        try:
            return cls(value.strip().lower())
        except (ValueError, AttributeError):
            raise ValidationError(
                f"Invalid time of day: '{value}'. "
                f"Allowed: {', '.join(t.value for t in cls)}"
            )


class HabitStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"

    @classmethod
    def from_str(cls, value: str) -> "HabitStatus":
        try:
            return cls(value.strip().lower())
        except (ValueError, AttributeError):
            raise ValidationError(
                f"Invalid habit status: '{value}'. "
                f"Allowed: {', '.join(s.value for s in cls)}"
            )


class TaskStatus(Enum):
    """Task board columns, in display order."""
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    @classmethod
    def from_str(cls, value: str) -> "TaskStatus":
        try:
            return cls(value.strip().lower())
        except (ValueError, AttributeError):
            raise ValidationError(
                f"Invalid task status: '{value}'. "
                f"Allowed: {', '.join(s.value for s in cls)}"
            )


class SyncStatus(Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    SYNCED = "synced"
    ERROR = "error"


def status_for_bucket(bucket: TimeOfDay) -> HabitStatus:
    """Status implied by a board bucket."""
    return HabitStatus.COMPLETED if bucket == TimeOfDay.COMPLETED else HabitStatus.PENDING


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Validation
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def validate_title(title: Optional[str]) -> str:
    """Return the stripped title, or raise ValidationError."""
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required")
    if len(title) > TITLE_MAX:
        raise ValidationError(f"Title is too long (max {TITLE_MAX} characters)")
    return title


def validate_description(description: Optional[str]) -> Optional[str]:
    """Empty descriptions are stored as None."""
    if description is None:
        return None
    description = str(description).strip()
    if len(description) > DESCRIPTION_MAX:
        raise ValidationError(
            f"Description is too long (max {DESCRIPTION_MAX} characters)"
        )
    return description or None


def validate_scheduled_time(value: Optional[str]) -> Optional[str]:
    """Wall-clock HH:MM (24h); empty means unscheduled."""
    if value is None or str(value).strip() == "":
        return None
    value = str(value).strip()
    if not _TIME_RE.match(value):
        raise ValidationError(f"Invalid scheduled time: '{value}' (expected HH:MM)")
    return value[:5]


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Entities
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass
class Habit:
    """One habit on one day's board."""

    id: str
    user_id: str
    title: str
    date: str
    description: Optional[str] = None
    time_of_day: TimeOfDay = TimeOfDay.MORNING
    status: HabitStatus = HabitStatus.PENDING
    is_default: bool = False
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "time_of_day": self.time_of_day.value,
            "date": self.date,
            "status": self.status.value,
            "is_default": self.is_default,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Habit":
        return cls(
            id=str(data.get("id", "")),
            user_id=str(data.get("user_id", "")),
            title=data.get("title", ""),
            date=data.get("date", ""),
            description=data.get("description"),
            time_of_day=TimeOfDay(data.get("time_of_day") or "morning"),
            status=HabitStatus(data.get("status") or "pending"),
            is_default=bool(data.get("is_default", False)),
            created_at=data.get("created_at"),
        )


@dataclass
class Task:
    """One task card on one day's task board."""

    id: str
    user_id: str
    title: str
    date: str
    description: Optional[str] = None
    scheduled_time: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "scheduled_time": self.scheduled_time,
            "status": self.status.value,
            "date": self.date,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        scheduled = data.get("scheduled_time")
        return cls(
            id=str(data.get("id", "")),
            user_id=str(data.get("user_id", "")),
            title=data.get("title", ""),
            date=data.get("date", ""),
            description=data.get("description"),
            # Postgres "time" columns come back as HH:MM:SS
            scheduled_time=scheduled[:5] if scheduled else None,
            status=TaskStatus(data.get("status") or "todo"),
            created_at=data.get("created_at"),
        )


@dataclass
class DailyNote:
    id: str
    user_id: str
    date: str
    content: str = ""
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "date": self.date,
            "note_content": self.content,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DailyNote":
        return cls(
            id=str(data.get("id", "")),
            user_id=str(data.get("user_id", "")),
            date=data.get("date", ""),
            content=data.get("note_content") or "",
            created_at=data.get("created_at"),
        )


@dataclass
class HistoryEntry:
    """Append-only record of a habit reaching "completed"."""

    user_id: str
    habit_id: str
    date: str
    status: HabitStatus = HabitStatus.COMPLETED
    id: Optional[str] = None
    created_at: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        """Insert payload (id and created_at are assigned remotely)."""
        return {
            "user_id": self.user_id,
            "habit_id": self.habit_id,
            "date": self.date,
            "status": self.status.value,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_row()
        data["id"] = self.id
        data["created_at"] = self.created_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        return cls(
            id=str(data["id"]) if data.get("id") is not None else None,
            user_id=str(data.get("user_id", "")),
            habit_id=str(data.get("habit_id", "")),
            date=data.get("date", ""),
            status=HabitStatus(data.get("status") or "completed"),
            created_at=data.get("created_at"),
        )


@dataclass
class UserProfile:
    id: str
    email: str = ""
    preferred_language: str = "en"
    theme: str = "system"
    created_at: Optional[str] = field(default=None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "preferred_language": self.preferred_language,
            "theme": self.theme,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            id=str(data.get("id", "")),
            email=data.get("email") or "",
            preferred_language=data.get("preferred_language") or "en",
            theme=data.get("theme") or "system",
            created_at=data.get("created_at"),
        )
