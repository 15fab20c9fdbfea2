from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from threading import RLock
from typing import Any, Dict, List, Mapping, Optional

from .errors import ConflictError
from .models import TaskEntity, UserEntity
from .settings import get_settings
from .utils import as_utc, utcnow

logger = logging.getLogger(__name__)

# Fields a patch may touch; id, owner_id and created_at are immutable
MUTABLE_TASK_FIELDS = frozenset({"title", "description", "completed", "is_archived", "end_date"})


@dataclass(frozen=True)
class TaskQuery:
    """
    Filter for listing an owner's tasks.
    """
    include_archived: bool = False


def new_id() -> str:
    return uuid.uuid4().hex


def clean_patch(patch: Mapping[str, Any]) -> Dict[str, Any]:
    """Drop keys that are not mutable task fields; end_date is stored as aware UTC."""
    cleaned = {k: v for k, v in patch.items() if k in MUTABLE_TASK_FIELDS}
    if "end_date" in cleaned:
        cleaned["end_date"] = as_utc(cleaned["end_date"])
    return cleaned


# PUBLIC_INTERFACE
class TaskRepository(ABC):
    """
    Abstract contract for task storage backends.

    Every method except find_due_between is scoped by owner: a backend never
    returns or mutates a task belonging to a different owner, even when the
    task id is known.
    """

    @abstractmethod
    def insert(
        self,
        owner_id: str,
        title: str,
        description: Optional[str] = None,
        end_date: Optional[datetime] = None,
    ) -> TaskEntity:
        """Create a task with completed=False, is_archived=False and return it."""

    @abstractmethod
    def get(self, task_id: str, owner_id: str) -> Optional[TaskEntity]:
        """Return the task, or None if absent or owned by someone else."""

    @abstractmethod
    def find(self, owner_id: str, query: Optional[TaskQuery] = None) -> List[TaskEntity]:
        """Return the owner's tasks matching the query, in no particular order."""

    @abstractmethod
    def update_one(
        self,
        task_id: str,
        owner_id: str,
        patch: Mapping[str, Any],
        *,
        only_active: bool = False,
    ) -> Optional[TaskEntity]:
        """
        Apply `patch` to a single task atomically and return the updated task.

        Returns None when no task matches. With only_active, archived tasks
        do not match.
        """

    @abstractmethod
    def delete_one(self, task_id: str, owner_id: str) -> bool:
        """Delete a task. Return True if deleted, False if not found."""

    @abstractmethod
    def find_due_between(self, start: datetime, end: datetime) -> List[TaskEntity]:
        """
        Return incomplete, non-archived tasks of any owner with
        start <= end_date < end. Used by the reminder sweep only.
        """


# PUBLIC_INTERFACE
class UserRepository(ABC):
    """Abstract contract for user credential storage."""

    @abstractmethod
    def create(self, email: str, password_hash: str) -> UserEntity:
        """Create a user. Raises ConflictError if the email is taken."""

    @abstractmethod
    def get_by_id(self, user_id: str) -> Optional[UserEntity]:
        """Return a user by id, or None."""

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[UserEntity]:
        """Return a user by (lower-cased) email, or None."""

    @abstractmethod
    def set_reset_token(
        self,
        user_id: str,
        token_hash: Optional[str],
        expires_at: Optional[datetime],
    ) -> None:
        """Store or clear the reset token; hash and expiry are written together."""

    @abstractmethod
    def set_password(self, user_id: str, password_hash: str) -> None:
        """Replace the password hash and clear any reset token."""


class InMemoryTaskRepository(TaskRepository):
    """
    Thread-safe in-memory task store suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, TaskEntity] = {}

    def insert(
        self,
        owner_id: str,
        title: str,
        description: Optional[str] = None,
        end_date: Optional[datetime] = None,
    ) -> TaskEntity:
        entity: TaskEntity = {
            "id": new_id(),
            "owner_id": owner_id,
            "title": title,
            "description": description,
            "completed": False,
            "is_archived": False,
            "created_at": utcnow(),
            "end_date": as_utc(end_date),
        }
        with self._lock:
            self._items[entity["id"]] = entity
        return entity.copy()  # type: ignore[return-value]

    def _owned(self, task_id: str, owner_id: str) -> Optional[TaskEntity]:
        item = self._items.get(task_id)
        if item is None or item["owner_id"] != owner_id:
            return None
        return item

    def get(self, task_id: str, owner_id: str) -> Optional[TaskEntity]:
        with self._lock:
            item = self._owned(task_id, owner_id)
            return None if item is None else item.copy()  # type: ignore[return-value]

    def find(self, owner_id: str, query: Optional[TaskQuery] = None) -> List[TaskEntity]:
        q = query or TaskQuery()
        with self._lock:
            items = [t for t in self._items.values() if t["owner_id"] == owner_id]
            if not q.include_archived:
                items = [t for t in items if not t["is_archived"]]
            # Return copies to avoid external mutation
            return [t.copy() for t in items]  # type: ignore[misc]

    def update_one(
        self,
        task_id: str,
        owner_id: str,
        patch: Mapping[str, Any],
        *,
        only_active: bool = False,
    ) -> Optional[TaskEntity]:
        with self._lock:
            existing = self._owned(task_id, owner_id)
            if existing is None:
                return None
            if only_active and existing["is_archived"]:
                return None

            updated = existing.copy()
            updated.update(clean_patch(patch))  # type: ignore[typeddict-item]
            self._items[task_id] = updated  # type: ignore[assignment]
            return updated.copy()  # type: ignore[return-value]

    def delete_one(self, task_id: str, owner_id: str) -> bool:
        with self._lock:
            if self._owned(task_id, owner_id) is None:
                return False
            del self._items[task_id]
            return True

    def find_due_between(self, start: datetime, end: datetime) -> List[TaskEntity]:
        with self._lock:
            return [
                t.copy()  # type: ignore[misc]
                for t in self._items.values()
                if not t["completed"]
                and not t["is_archived"]
                and t["end_date"] is not None
                and start <= t["end_date"] < end
            ]


class InMemoryUserRepository(UserRepository):
    """Thread-safe in-memory user store."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: Dict[str, UserEntity] = {}

    def create(self, email: str, password_hash: str) -> UserEntity:
        with self._lock:
            if self._find_email(email) is not None:
                raise ConflictError("User already exists")
            user: UserEntity = {
                "id": new_id(),
                "email": email,
                "password_hash": password_hash,
                "reset_token_hash": None,
                "reset_token_expires_at": None,
                "created_at": utcnow(),
            }
            self._items[user["id"]] = user
            return user.copy()  # type: ignore[return-value]

    def _find_email(self, email: str) -> Optional[UserEntity]:
        for user in self._items.values():
            if user["email"] == email:
                return user
        return None

    def get_by_id(self, user_id: str) -> Optional[UserEntity]:
        with self._lock:
            user = self._items.get(user_id)
            return None if user is None else user.copy()  # type: ignore[return-value]

    def get_by_email(self, email: str) -> Optional[UserEntity]:
        with self._lock:
            user = self._find_email(email)
            return None if user is None else user.copy()  # type: ignore[return-value]

    def set_reset_token(
        self,
        user_id: str,
        token_hash: Optional[str],
        expires_at: Optional[datetime],
    ) -> None:
        if (token_hash is None) != (expires_at is None):
            raise ValueError("reset token hash and expiry must be set or cleared together")
        with self._lock:
            user = self._items.get(user_id)
            if user is None:
                return
            user["reset_token_hash"] = token_hash
            user["reset_token_expires_at"] = expires_at

    def set_password(self, user_id: str, password_hash: str) -> None:
        with self._lock:
            user = self._items.get(user_id)
            if user is None:
                return
            user["password_hash"] = password_hash
            user["reset_token_hash"] = None
            user["reset_token_expires_at"] = None


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_task_repository() -> TaskRepository:
    """
    Return the process-wide task store configured in settings.
    - memory: InMemoryTaskRepository
    - sqlite: SQLiteTaskRepository (stdlib sqlite3)

    Cached so request handlers and the reminder scheduler share one store.
    """
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteTaskRepository

        logger.info("Using sqlite task store db=%s", settings.sqlite_db_path)
        return SQLiteTaskRepository(settings.sqlite_db_path)
    logger.info("Using in-memory task store")
    return InMemoryTaskRepository()


# PUBLIC_INTERFACE
@lru_cache(maxsize=1)
def get_user_repository() -> UserRepository:
    """Return the process-wide user store configured in settings."""
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteUserRepository

        return SQLiteUserRepository(settings.sqlite_db_path)
    return InMemoryUserRepository()
