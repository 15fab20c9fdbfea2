from __future__ import annotations

from datetime import datetime
from typing import Optional, TypedDict


# PUBLIC_INTERFACE
class TaskEntity(TypedDict):
    """
    A lightweight domain model representing a task for non-ORM storage
    backends.

    Fields:
    - id: Opaque unique identifier
    - owner_id: Identifier of the owning user (immutable after creation)
    - title: Short title (non-empty, trimmed on input)
    - description: Optional detailed description
    - completed: Boolean completion flag
    - is_archived: Soft-delete flag; archived tasks are read-only until restored
    - created_at: UTC creation timestamp (immutable)
    - end_date: Optional UTC due date
    """

    id: str
    owner_id: str
    title: str
    description: Optional[str]
    completed: bool
    is_archived: bool
    created_at: datetime
    end_date: Optional[datetime]


# PUBLIC_INTERFACE
class UserEntity(TypedDict):
    """
    A registered user.

    reset_token_hash and reset_token_expires_at are only present during an
    active password reset, and are always set or cleared together.
    """

    id: str
    email: str
    password_hash: str
    reset_token_hash: Optional[str]
    reset_token_expires_at: Optional[datetime]
    created_at: datetime
