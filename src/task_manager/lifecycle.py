"""
Task lifecycle: validated state transitions and derived views.

Transitions: created (active) -> completed <-> incomplete, and
archived <-> restored on an independent axis. Archived tasks are read-only
apart from restore and delete.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .errors import NotFoundError, TaskArchivedError, ValidationError
from .models import TaskEntity
from .notifications import Notifier, due_date_message, notify_safely
from .repositories import TaskQuery, TaskRepository, UserRepository
from .utils import as_utc

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = frozenset({"title", "description", "end_date", "completed"})


# PUBLIC_INTERFACE
def filter_by_period(
    tasks: Iterable[TaskEntity],
    month: int,
    year: int,
    tz: tzinfo = timezone.utc,
) -> List[TaskEntity]:
    """
    Keep tasks whose created_at falls in the given calendar month (1..12)
    and year, evaluated in `tz`.
    """
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    out = []
    for task in tasks:
        local = task["created_at"].astimezone(tz)
        if local.year == year and local.month == month:
            out.append(task)
    return out


# PUBLIC_INTERFACE
def compute_stats(tasks: Iterable[TaskEntity]) -> Dict[str, int]:
    """
    Count tasks: total, completed and incomplete (both non-archived only),
    and archived.
    """
    stats = {"total": 0, "completed": 0, "incomplete": 0, "archived": 0}
    for task in tasks:
        stats["total"] += 1
        if task["is_archived"]:
            stats["archived"] += 1
        elif task["completed"]:
            stats["completed"] += 1
        else:
            stats["incomplete"] += 1
    return stats


# PUBLIC_INTERFACE
def filter_due_soon(tasks: Iterable[TaskEntity], now: datetime, days: int = 2) -> List[TaskEntity]:
    """Incomplete, non-archived tasks due between now and now + `days`."""
    horizon = now + timedelta(days=days)
    return [
        t for t in tasks
        if not t["completed"]
        and not t["is_archived"]
        and t["end_date"] is not None
        and now <= t["end_date"] <= horizon
    ]


class TaskLifecycleManager:
    """
    Applies lifecycle operations to the task store on behalf of an owner.

    Holds no state of its own between calls. The owner id always comes from
    the authenticated credential and is part of every store call.
    """

    def __init__(
        self,
        tasks: TaskRepository,
        users: UserRepository,
        notifier: Notifier,
        *,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self.tasks = tasks
        self.users = users
        self.notifier = notifier
        self.tz = tz

    def _notify_due_date(self, task: TaskEntity) -> None:
        if task["end_date"] is None:
            return
        owner = self.users.get_by_id(task["owner_id"])
        if owner is None:
            logger.warning("Task %s has no resolvable owner; skipping due date email", task["id"])
            return
        subject, body = due_date_message(task["title"], task["end_date"], self.tz)
        notify_safely(self.notifier, owner["email"], subject, body)

    def _get_owned(self, owner_id: str, task_id: str) -> TaskEntity:
        task = self.tasks.get(task_id, owner_id)
        if task is None:
            raise NotFoundError("Task not found")
        return task

    def create(
        self,
        owner_id: str,
        title: str,
        description: Optional[str] = None,
        end_date: Optional[datetime] = None,
    ) -> TaskEntity:
        """Persist a new active task; email the owner if it has a due date."""
        clean_title = (title or "").strip()
        if not clean_title:
            raise ValidationError("title is required")

        task = self.tasks.insert(owner_id, clean_title, description, as_utc(end_date))
        logger.info("Task created id=%s owner=%s", task["id"], owner_id)
        self._notify_due_date(task)
        return task

    def update(self, owner_id: str, task_id: str, changes: Mapping[str, Any]) -> TaskEntity:
        """
        Apply the provided fields (title, description, end_date, completed)
        in one atomic store update.
        """
        patch = {k: v for k, v in changes.items() if k in _EDITABLE_FIELDS}
        if "title" in patch:
            patch["title"] = (patch["title"] or "").strip()
            if not patch["title"]:
                raise ValidationError("title must not be empty")
        if "end_date" in patch:
            patch["end_date"] = as_utc(patch["end_date"])

        current = self._get_owned(owner_id, task_id)
        if current["is_archived"]:
            raise TaskArchivedError("Archived tasks cannot be edited; restore it first")

        updated = self.tasks.update_one(task_id, owner_id, patch, only_active=True)
        if updated is None:
            # Archived or deleted between the read and the write
            self._raise_for_missing_or_archived(owner_id, task_id)

        assert updated is not None
        if "end_date" in patch and updated["end_date"] is not None and updated["end_date"] != current["end_date"]:
            self._notify_due_date(updated)
        return updated

    def toggle_complete(self, owner_id: str, task_id: str) -> TaskEntity:
        current = self._get_owned(owner_id, task_id)
        if current["is_archived"]:
            raise TaskArchivedError("Archived tasks cannot be completed; restore it first")
        updated = self.tasks.update_one(
            task_id, owner_id, {"completed": not current["completed"]}, only_active=True
        )
        if updated is None:
            self._raise_for_missing_or_archived(owner_id, task_id)
        assert updated is not None
        return updated

    def _raise_for_missing_or_archived(self, owner_id: str, task_id: str) -> None:
        if self.tasks.get(task_id, owner_id) is None:
            raise NotFoundError("Task not found")
        raise TaskArchivedError("Archived tasks cannot be edited; restore it first")

    def _set_archived(self, owner_id: str, task_id: str, archived: bool) -> TaskEntity:
        updated = self.tasks.update_one(task_id, owner_id, {"is_archived": archived})
        if updated is None:
            raise NotFoundError("Task not found")
        return updated

    def archive(self, owner_id: str, task_id: str) -> TaskEntity:
        """Hide the task from default listings. Archiving twice is a no-op."""
        return self._set_archived(owner_id, task_id, True)

    def restore(self, owner_id: str, task_id: str) -> TaskEntity:
        return self._set_archived(owner_id, task_id, False)

    def delete(self, owner_id: str, task_id: str) -> None:
        if not self.tasks.delete_one(task_id, owner_id):
            raise NotFoundError("Task not found")
        logger.info("Task deleted id=%s owner=%s", task_id, owner_id)

    def list(self, owner_id: str, include_archived: bool = False) -> List[TaskEntity]:
        items = self.tasks.find(owner_id, TaskQuery(include_archived=include_archived))
        return sorted(items, key=lambda t: t["created_at"])

    def stats(self, owner_id: str, month: Optional[int] = None, year: Optional[int] = None) -> Dict[str, int]:
        """Stats over all of the owner's tasks, archived included, optionally limited to a month."""
        items = self.list(owner_id, include_archived=True)
        if month is not None or year is not None:
            if month is None or year is None:
                raise ValidationError("month and year must be given together")
            items = filter_by_period(items, month, year, self.tz)
        return compute_stats(items)
