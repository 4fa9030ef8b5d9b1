"""
Task store: one user's task cards for the viewed date.

Columns are todo / in_progress / done and any column can follow any other
(done -> todo reopens a task). Task moves write no history rows.
"""
import logging
from typing import List, Optional, Dict, Any

from .dates import format_date_string
from .defaults import default_task_rows
from .offline import Mutation
from .remote import RemoteError, NoRowsError
from .schema import (
    Task, TaskStatus, NotFoundError, ValidationError,
    validate_description, validate_scheduled_time, validate_title,
)
from .store import WorkingSetStore

logger = logging.getLogger(__name__)


class TaskStore(WorkingSetStore):
    """Tasks for (user, date), synchronized with the remote ``tasks`` table."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.items: List[Task] = []

    def get(self, task_id: str) -> Optional[Task]:
        with self._lock:
            for task in self.items:
                if task.id == task_id:
                    return task
        return None

    def by_status(self, status: TaskStatus) -> List[Task]:
        with self._lock:
            return [t for t in self.items if t.status == status]

    def fetch(self, date: str, seed: bool = True) -> Optional[List[Task]]:
        """Load the tasks for a date; an empty date gets the 3 default tasks."""
        date = format_date_string(date)
        if not self._online():
            if date == self.date:
                return list(self.items)
            self._require_online(f"load tasks for {date}")

        self.loading = True
        self.error = None
        try:
            rows = self.remote.select("tasks", eq={"user_id": self.user_id, "date": date})
            if not rows and seed:
                rows = self.remote.insert("tasks", default_task_rows(self.user_id, date))
                logger.info(f"Seeded {len(rows)} default tasks for {self.user_id} on {date}")
        except RemoteError as e:
            self.loading = False
            self._failed("load tasks", e)
            return None

        with self._lock:
            self.items = [Task.from_dict(r) for r in rows]
            self.date = date
        self._loaded()
        return list(self.items)

    def add(self, title: str, description: Optional[str] = None,
            scheduled_time: Optional[str] = None) -> Optional[Task]:
        title = validate_title(title)
        description = validate_description(description)
        scheduled_time = validate_scheduled_time(scheduled_time)
        if self.date is None:
            raise ValidationError("No task board loaded")
        self._require_online("add a task")

        self._begin()
        try:
            inserted = self.remote.insert("tasks", {
                "user_id": self.user_id,
                "title": title,
                "description": description,
                "status": TaskStatus.TODO.value,
                "scheduled_time": scheduled_time,
                "date": self.date,
            })
        except RemoteError as e:
            self._failed("create task", e)
            return None

        task = Task.from_dict(inserted[0])
        with self._lock:
            self.items.append(task)
        self._synced()
        self._emit("task_added", task_id=task.id)
        return task

    def move(self, task_id: str, status) -> Optional[Task]:
        """Move a task to another column. Same column is a no-op."""
        if not isinstance(status, TaskStatus):
            status = TaskStatus.from_str(status)
        task = self.get(task_id)
        if task is None:
            raise NotFoundError(f"Task {task_id} not found")
        if task.status == status:
            return task

        values = {"status": status.value}
        if not self._online():
            with self._lock:
                task.status = status
            self.connectivity.queue(
                Mutation(table="tasks", op="update", entity_id=task.id,
                         payload=values, user_id=self.user_id)
            )
            return task

        self._begin()
        try:
            self.remote.update("tasks", task_id, values)
        except NoRowsError as e:
            self._failed("update task", e)
            raise NotFoundError(f"Task {task_id} no longer exists")
        except RemoteError as e:
            self._failed("update task", e)
            return None

        with self._lock:
            task.status = status
        self._synced()
        self._emit("task_moved", task_id=task_id, status=status.value.replace("_", " "))
        return task

    def delete(self, task_id: str) -> bool:
        if self.get(task_id) is None:
            raise NotFoundError(f"Task {task_id} not found")
        self._require_online("delete a task")
        self._begin()
        try:
            self.remote.delete("tasks", task_id)
        except RemoteError as e:
            self._failed("delete task", e)
            return False

        with self._lock:
            self.items = [t for t in self.items if t.id != task_id]
        self._synced()
        self._emit("task_deleted", task_id=task_id)
        return True

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            items = [t.to_dict() for t in self.items]
        data = self.status_dict()
        data["items"] = items
        return data
