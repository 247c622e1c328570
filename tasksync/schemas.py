from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .models import TaskPriority, TaskStatus
from .utils.time_utils import as_aware_utc, to_utc_naive


class _CamelModel(BaseModel):
    """Accepts snake_case or camelCase input; serializes as camelCase."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


# ---- Users / auth ------------------------------------------------------------------


class RegisterRequest(_CamelModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6, max_length=256)


class LoginRequest(_CamelModel):
    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=256)


class ProfileUpdate(_CamelModel):
    name: str = Field(..., min_length=2, max_length=100)


class UserOut(_CamelModel):
    id: str
    name: str
    email: str


class AuthResponse(_CamelModel):
    message: str
    user: UserOut
    access_token: str
    token_type: str = "bearer"


class UserEnvelope(_CamelModel):
    user: UserOut


# ---- Tasks -------------------------------------------------------------------------


def _naive_utc(v: Optional[datetime]) -> Optional[datetime]:
    if v is None:
        return None
    return to_utc_naive(v)


class TaskCreate(_CamelModel):
    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1)
    due_date: datetime
    priority: TaskPriority
    status: TaskStatus
    # Filled from the authenticated caller when omitted by the client.
    creator_id: Optional[str] = Field(default=None, min_length=1, max_length=36)
    assigned_to_id: Optional[str] = Field(default=None, max_length=36)

    @field_validator("due_date")
    @classmethod
    def normalize_due(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(v)


class TaskUpdate(_CamelModel):
    """Partial update. Only fields present in the payload are applied.

    Use `model_fields_set` (or `changes()`) to tell an omitted field from one
    that was sent; an explicit null is rejected since every task field is
    required on the stored record.
    """

    title: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1)
    due_date: Optional[datetime] = None
    priority: Optional[TaskPriority] = None
    status: Optional[TaskStatus] = None
    assigned_to_id: Optional[str] = Field(default=None, min_length=1, max_length=36)

    @field_validator("due_date")
    @classmethod
    def normalize_due(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _naive_utc(v)

    @model_validator(mode="after")
    def reject_explicit_nulls(self) -> "TaskUpdate":
        for name in self.model_fields_set:
            if getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict:
        return {name: getattr(self, name) for name in self.model_fields_set}

    def sets(self, field: str) -> bool:
        return field in self.model_fields_set


class TaskFilter(BaseModel):
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    sort_by_due_date: Optional[Literal["asc", "desc"]] = None


class TaskOut(_CamelModel):
    id: str
    title: str
    description: str
    due_date: datetime
    priority: TaskPriority
    status: TaskStatus
    creator_id: str
    assigned_to_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    @field_serializer("due_date", "created_at", "updated_at")
    def iso_utc(self, v: Optional[datetime]) -> Optional[str]:
        if v is None:
            return None
        return as_aware_utc(to_utc_naive(v)).isoformat().replace("+00:00", "Z")


class DashboardOut(_CamelModel):
    mine: List[TaskOut] = Field(default_factory=list)
    overdue: List[TaskOut] = Field(default_factory=list)


# ---- Notifications -----------------------------------------------------------------


class NotificationOut(_CamelModel):
    id: str
    user_id: str
    message: str
    read: bool
    created_at: datetime

    @field_serializer("created_at")
    def iso_utc(self, v: datetime) -> str:
        return as_aware_utc(to_utc_naive(v)).isoformat().replace("+00:00", "Z")


class UnreadCountOut(_CamelModel):
    unread: int


# ---- Live events -------------------------------------------------------------------


def task_payload(task) -> dict:
    """Full task record as observed by live clients."""
    return TaskOut.model_validate(task).model_dump(mode="json", by_alias=True)


def notification_payload(notification) -> dict:
    return NotificationOut.model_validate(notification).model_dump(mode="json", by_alias=True)
