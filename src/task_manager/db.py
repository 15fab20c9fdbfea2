from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Generator, List, Mapping, Optional

from .errors import ConflictError, StoreFailure
from .models import TaskEntity, UserEntity
from .repositories import (
    TaskQuery,
    TaskRepository,
    UserRepository,
    clean_patch,
    new_id,
)
from .utils import from_storage, to_storage, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _TaskCols:
    table: str = "tasks"
    id: str = "id"
    owner_id: str = "owner_id"
    title: str = "title"
    description: str = "description"
    completed: str = "completed"
    is_archived: str = "is_archived"
    created_at: str = "created_at"
    end_date: str = "end_date"


@dataclass(frozen=True)
class _UserCols:
    table: str = "users"
    id: str = "id"
    email: str = "email"
    password_hash: str = "password_hash"
    reset_token_hash: str = "reset_token_hash"
    reset_token_expires_at: str = "reset_token_expires_at"
    created_at: str = "created_at"


_T = _TaskCols()
_U = _UserCols()


class _SQLiteBase:
    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        try:
            conn = sqlite3.connect(self._db_path, timeout=30.0)
        except sqlite3.Error as e:
            logger.exception("sqlite connect failed db=%s", self._db_path)
            raise StoreFailure("Storage unavailable") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            raise
        except sqlite3.Error as e:
            conn.rollback()
            logger.exception("sqlite operation failed db=%s", self._db_path)
            raise StoreFailure("Storage operation failed") from e
        finally:
            conn.close()

    def _init_db(self) -> None:
        raise NotImplementedError


class SQLiteTaskRepository(_SQLiteBase, TaskRepository):
    """
    Lightweight SQLite task store implementing the TaskRepository interface.

    Every statement filters on owner_id, so a guessed id never reaches
    another owner's row.
    """

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_T.table} (
                    {_T.id} TEXT PRIMARY KEY,
                    {_T.owner_id} TEXT NOT NULL,
                    {_T.title} TEXT NOT NULL,
                    {_T.description} TEXT NULL,
                    {_T.completed} INTEGER NOT NULL DEFAULT 0,
                    {_T.is_archived} INTEGER NOT NULL DEFAULT 0,
                    {_T.created_at} TEXT NOT NULL,
                    {_T.end_date} TEXT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_T.table}_owner ON {_T.table}({_T.owner_id}, {_T.is_archived})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_T.table}_due "
                f"ON {_T.table}({_T.end_date}, {_T.completed}, {_T.is_archived})"
            )

    def _row_to_entity(self, row: sqlite3.Row) -> TaskEntity:
        return {
            "id": str(row[_T.id]),
            "owner_id": str(row[_T.owner_id]),
            "title": str(row[_T.title]),
            "description": row[_T.description],
            "completed": bool(row[_T.completed]),
            "is_archived": bool(row[_T.is_archived]),
            "created_at": from_storage(row[_T.created_at]),  # type: ignore[typeddict-item]
            "end_date": from_storage(row[_T.end_date]),
        }

    def _select_owned(self, conn: sqlite3.Connection, task_id: str, owner_id: str) -> Optional[sqlite3.Row]:
        return conn.execute(
            f"SELECT * FROM {_T.table} WHERE {_T.id} = ? AND {_T.owner_id} = ?",
            (task_id, owner_id),
        ).fetchone()

    def insert(
        self,
        owner_id: str,
        title: str,
        description: Optional[str] = None,
        end_date: Optional[datetime] = None,
    ) -> TaskEntity:
        task_id = new_id()
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO {_T.table} ({_T.id}, {_T.owner_id}, {_T.title}, {_T.description},
                    {_T.completed}, {_T.is_archived}, {_T.created_at}, {_T.end_date})
                VALUES (?, ?, ?, ?, 0, 0, ?, ?)
                """,
                (task_id, owner_id, title, description, to_storage(utcnow()), to_storage(end_date)),
            )
            row = self._select_owned(conn, task_id, owner_id)
            assert row is not None
            return self._row_to_entity(row)

    def get(self, task_id: str, owner_id: str) -> Optional[TaskEntity]:
        with self._conn() as conn:
            row = self._select_owned(conn, task_id, owner_id)
            return self._row_to_entity(row) if row else None

    def find(self, owner_id: str, query: Optional[TaskQuery] = None) -> List[TaskEntity]:
        q = query or TaskQuery()
        clauses = [f"{_T.owner_id} = ?"]
        params: list = [owner_id]

        if not q.include_archived:
            clauses.append(f"{_T.is_archived} = 0")

        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM {_T.table} WHERE {' AND '.join(clauses)} ORDER BY {_T.created_at} ASC",
                params,
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]

    def update_one(
        self,
        task_id: str,
        owner_id: str,
        patch: Mapping[str, Any],
        *,
        only_active: bool = False,
    ) -> Optional[TaskEntity]:
        fields: List[str] = []
        params: List[Any] = []
        for name, value in clean_patch(patch).items():
            fields.append(f"{name} = ?")
            if name in {"completed", "is_archived"}:
                params.append(1 if value else 0)
            elif name == "end_date":
                params.append(to_storage(value))
            else:
                params.append(value)

        where = f"{_T.id} = ? AND {_T.owner_id} = ?"
        if only_active:
            where += f" AND {_T.is_archived} = 0"

        with self._conn() as conn:
            if fields:
                cur = conn.execute(
                    f"UPDATE {_T.table} SET {', '.join(fields)} WHERE {where}",
                    [*params, task_id, owner_id],
                )
                if cur.rowcount == 0:
                    return None
            else:
                row = conn.execute(f"SELECT * FROM {_T.table} WHERE {where}", (task_id, owner_id)).fetchone()
                if row is None:
                    return None
            row2 = self._select_owned(conn, task_id, owner_id)
            assert row2 is not None
            return self._row_to_entity(row2)

    def delete_one(self, task_id: str, owner_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                f"DELETE FROM {_T.table} WHERE {_T.id} = ? AND {_T.owner_id} = ?",
                (task_id, owner_id),
            )
            return cur.rowcount > 0

    def find_due_between(self, start: datetime, end: datetime) -> List[TaskEntity]:
        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM {_T.table}
                WHERE {_T.completed} = 0
                  AND {_T.is_archived} = 0
                  AND {_T.end_date} IS NOT NULL
                  AND {_T.end_date} >= ?
                  AND {_T.end_date} < ?
                ORDER BY {_T.end_date} ASC
                """,
                (to_storage(start), to_storage(end)),
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]


class SQLiteUserRepository(_SQLiteBase, UserRepository):
    """SQLite user store sharing the database file with the task store."""

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_U.table} (
                    {_U.id} TEXT PRIMARY KEY,
                    {_U.email} TEXT NOT NULL UNIQUE,
                    {_U.password_hash} TEXT NOT NULL,
                    {_U.reset_token_hash} TEXT NULL,
                    {_U.reset_token_expires_at} TEXT NULL,
                    {_U.created_at} TEXT NOT NULL,
                    CHECK (({_U.reset_token_hash} IS NULL) = ({_U.reset_token_expires_at} IS NULL))
                )
                """
            )

    def _row_to_entity(self, row: sqlite3.Row) -> UserEntity:
        return {
            "id": str(row[_U.id]),
            "email": str(row[_U.email]),
            "password_hash": str(row[_U.password_hash]),
            "reset_token_hash": row[_U.reset_token_hash],
            "reset_token_expires_at": from_storage(row[_U.reset_token_expires_at]),
            "created_at": from_storage(row[_U.created_at]),  # type: ignore[typeddict-item]
        }

    def create(self, email: str, password_hash: str) -> UserEntity:
        user_id = new_id()
        try:
            with self._conn() as conn:
                conn.execute(
                    f"""
                    INSERT INTO {_U.table} ({_U.id}, {_U.email}, {_U.password_hash}, {_U.created_at})
                    VALUES (?, ?, ?, ?)
                    """,
                    (user_id, email, password_hash, to_storage(utcnow())),
                )
                row = conn.execute(f"SELECT * FROM {_U.table} WHERE {_U.id} = ?", (user_id,)).fetchone()
                assert row is not None
                return self._row_to_entity(row)
        except sqlite3.IntegrityError as e:
            raise ConflictError("User already exists") from e

    def get_by_id(self, user_id: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute(f"SELECT * FROM {_U.table} WHERE {_U.id} = ?", (user_id,)).fetchone()
            return self._row_to_entity(row) if row else None

    def get_by_email(self, email: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute(f"SELECT * FROM {_U.table} WHERE {_U.email} = ?", (email,)).fetchone()
            return self._row_to_entity(row) if row else None

    def set_reset_token(
        self,
        user_id: str,
        token_hash: Optional[str],
        expires_at: Optional[datetime],
    ) -> None:
        if (token_hash is None) != (expires_at is None):
            raise ValueError("reset token hash and expiry must be set or cleared together")
        with self._conn() as conn:
            conn.execute(
                f"UPDATE {_U.table} SET {_U.reset_token_hash} = ?, {_U.reset_token_expires_at} = ? WHERE {_U.id} = ?",
                (token_hash, to_storage(expires_at), user_id),
            )

    def set_password(self, user_id: str, password_hash: str) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                UPDATE {_U.table}
                SET {_U.password_hash} = ?, {_U.reset_token_hash} = NULL, {_U.reset_token_expires_at} = NULL
                WHERE {_U.id} = ?
                """,
                (password_hash, user_id),
            )
