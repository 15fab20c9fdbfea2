from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .utils import as_utc

# Shared type for incoming endDate which can be a date, datetime, or ISO8601 string
DueDateInput = Union[date, datetime, str]

_INVALID_DUE_DATE = (
    "Invalid endDate format. Use ISO8601 date or datetime string "
    "(e.g., '2025-01-31' or '2025-01-31T13:45:00Z')."
)


def _parse_due_date(value: Optional[DueDateInput]) -> Optional[datetime]:
    """
    Internal helper to normalize endDate input into an aware UTC datetime.
    - If value is a string, attempt to parse via datetime.fromisoformat; if time is missing, set to 00:00.
    - If value is a date (not datetime), convert to datetime at 00:00.
    - Naive datetimes are interpreted as UTC.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return as_utc(value)

    if isinstance(value, date):
        # Promote a date to a datetime at midnight
        return as_utc(datetime(value.year, value.month, value.day))

    if isinstance(value, str):
        s = value.strip()
        if s.endswith("Z"):
            # JavaScript clients send toISOString() output
            s = s[:-1] + "+00:00"
        try:
            return as_utc(datetime.fromisoformat(s))
        except ValueError:
            try:
                d = date.fromisoformat(s)
                return as_utc(datetime(d.year, d.month, d.day))
            except ValueError as e:
                raise ValueError(_INVALID_DUE_DATE) from e

    raise ValueError("Invalid type for endDate; expected date, datetime, or ISO8601 string.")


def _clean_title(value: str) -> str:
    s = value.strip()
    if not (1 <= len(s) <= 200):
        raise ValueError("title length must be between 1 and 200 characters")
    return s


def _normalize_email(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Schema for creating a new task. The owner always comes from the bearer
    token; an owner field in the body is ignored.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "title": "Pay rent",
                "description": "Transfer to landlord",
                "endDate": "2025-02-01T18:00:00Z",
            }
        },
    )

    title: str = Field(..., description="Short title for the task", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    end_date: Optional[datetime] = Field(
        default=None,
        alias="endDate",
        description="Due date of the task. Accepts ISO8601 date or datetime; dates are set to 00:00 UTC",
    )

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..200 length.
        """
        return _clean_title(v)

    @field_validator("end_date", mode="before")
    @classmethod
    def parse_end_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        return _parse_due_date(v)


# PUBLIC_INTERFACE
class TaskUpdate(BaseModel):
    """
    Schema for updating an existing task.
    All fields are optional; only provided fields will be updated, and an
    explicit null endDate clears the due date.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "title": "Pay rent and utilities",
                "description": "Transfer to landlord",
                "endDate": "2025-02-02T09:30:00Z",
                "completed": True,
            }
        },
    )

    title: Optional[str] = Field(default=None, description="Short title for the task", min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    end_date: Optional[datetime] = Field(default=None, alias="endDate", description="Due date of the task")
    completed: Optional[bool] = Field(default=None, description="Completion status flag")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _clean_title(v)

    @field_validator("end_date", mode="before")
    @classmethod
    def parse_end_date(cls, v: Optional[DueDateInput]) -> Optional[datetime]:
        return _parse_due_date(v)

    def changes(self) -> dict:
        """Return only the fields the client actually sent, keyed by entity field name."""
        provided = self.model_dump(include=self.model_fields_set)
        # null title/completed mean "leave unchanged"; only endDate and description may be cleared
        return {
            k: v for k, v in provided.items()
            if v is not None or k in {"end_date", "description"}
        }


# PUBLIC_INTERFACE
class TaskOut(BaseModel):
    """
    Schema returned by the API for a task.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "_id": "3f0c9a3e5b7d4c1e9f2a6b8d0c4e7a19",
                "userId": "a1b2c3d4e5f6a7b8c9d0e1f2a3b4c5d6",
                "title": "Pay rent",
                "description": "Transfer to landlord",
                "completed": False,
                "isArchived": False,
                "createdAt": "2025-01-25T10:15:30.123456Z",
                "endDate": "2025-02-01T18:00:00Z",
            }
        },
    )

    id: str = Field(..., alias="_id", description="Unique identifier of the task")
    owner_id: str = Field(..., alias="userId", description="Identifier of the owning user")
    title: str = Field(..., description="Short title for the task")
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    completed: bool = Field(..., description="Completion status flag")
    is_archived: bool = Field(..., alias="isArchived", description="Whether the task is archived")
    created_at: datetime = Field(..., alias="createdAt", description="Creation timestamp (UTC)")
    end_date: Optional[datetime] = Field(default=None, alias="endDate", description="Due date (UTC)")


# PUBLIC_INTERFACE
class TaskStats(BaseModel):
    """Aggregated counts over a set of tasks. completed/incomplete exclude archived tasks."""

    total: int
    completed: int
    incomplete: int
    archived: int


class MessageOut(BaseModel):
    message: str


# PUBLIC_INTERFACE
class RegisterRequest(BaseModel):
    """Credentials for a new account."""

    email: EmailStr = Field(..., description="Login and notification address")
    password: str = Field(..., min_length=6, max_length=72, description="Plain password (6..72 chars)")

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: Any) -> Any:
        return _normalize_email(v)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: Any) -> Any:
        return _normalize_email(v)


class TokenOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(..., description="Bearer token for the Authorization header")
    user_id: str = Field(..., alias="userId")


class ForgotPasswordRequest(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: Any) -> Any:
        return _normalize_email(v)


# PUBLIC_INTERFACE
class ResetPasswordRequest(BaseModel):
    """Body posted from the reset link page."""

    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=6, max_length=72)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: Any) -> Any:
        return _normalize_email(v)
