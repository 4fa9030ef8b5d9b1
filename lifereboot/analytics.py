"""
Read-only views over the remote tables: completion stats, the history
calendar and per-day summaries.
"""
from collections import Counter
from typing import List, Optional, Dict, Any, Iterable

from .dates import format_date_string, shift_date
from .remote import RemoteStore
from .schema import Habit, HabitStatus, HistoryEntry, Task, TaskStatus

NO_COMPLETIONS = "No habits completed yet"


def _habits_since(remote: RemoteStore, user_id: str, since: str,
                  ascending: bool = True) -> List[Habit]:
    rows = remote.select("habits", eq={"user_id": user_id}, gte={"date": since},
                         order="date", ascending=ascending)
    return [Habit.from_dict(r) for r in rows]


def streak_days(completed_dates: Iterable[str], today: str) -> int:
    """
    Consecutive days with at least one completed habit, ending today.

    A day that has not been completed yet does not break the streak: when
    today has no completion the count starts from yesterday.
    """
    done = set(completed_dates)
    day = today if today in done else shift_date(today, -1)
    count = 0
    while day in done:
        count += 1
        day = shift_date(day, -1)
    return count


def completion_stats(remote: RemoteStore, user_id: str, today: str,
                     days: int = 30) -> Dict[str, Any]:
    """Totals over the last ``days`` days."""
    today = format_date_string(today)
    habits = _habits_since(remote, user_id, shift_date(today, -days))

    completed = [h for h in habits if h.status == HabitStatus.COMPLETED]
    total = len(habits)
    rate = round(len(completed) / total * 100) if total else 0

    # Ties go to the title completed first
    counts = Counter(h.title for h in completed)
    most_completed = NO_COMPLETIONS
    if counts:
        most_completed = max(counts, key=lambda title: counts[title])

    return {
        "days": days,
        "total_habits": total,
        "completed_habits": len(completed),
        "completion_rate": rate,
        "streak_days": streak_days((h.date for h in completed), today),
        "most_completed_habit": most_completed,
    }


def history_calendar(remote: RemoteStore, user_id: str, today: str, days: int = 90,
                     selected_date: Optional[str] = None) -> Dict[str, Any]:
    """
    Habit rows of the last ``days`` days, newest date first, plus the dates
    that have at least one completion. ``selected_date`` narrows the rows to
    one day (the calendar markers still cover the whole window).
    """
    today = format_date_string(today)
    habits = _habits_since(remote, user_id, shift_date(today, -days), ascending=False)
    completed_dates = sorted({h.date for h in habits if h.status == HabitStatus.COMPLETED})

    if selected_date:
        selected_date = format_date_string(selected_date)
        habits = [h for h in habits if h.date == selected_date]

    return {
        "days": days,
        "selected_date": selected_date,
        "completed_dates": completed_dates,
        "items": [h.to_dict() for h in habits],
    }


def day_summary(habits: List[Habit], tasks: List[Task]) -> Dict[str, Any]:
    """Counts per habit status and per task column for one board."""
    habit_counts = {s.value: 0 for s in HabitStatus}
    for h in habits:
        habit_counts[h.status.value] += 1
    task_counts = {s.value: 0 for s in TaskStatus}
    for t in tasks:
        task_counts[t.status.value] += 1
    return {
        "habits": habit_counts,
        "tasks": task_counts,
        "habits_total": len(habits),
        "tasks_total": len(tasks),
    }


def habit_history(remote: RemoteStore, user_id: str,
                  since: Optional[str] = None) -> List[HistoryEntry]:
    """Completion log entries, newest first."""
    gte = {"date": format_date_string(since)} if since else None
    rows = remote.select("history", eq={"user_id": user_id}, gte=gte,
                         order="date", ascending=False)
    return [HistoryEntry.from_dict(r) for r in rows]
