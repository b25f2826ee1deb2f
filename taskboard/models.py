"""
Domain entities for users, sessions, task categories and tasks.
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field

from taskboard.errors import InvalidField

# Column widths of the relational schema.
MAX_ID_LENGTH = 64
MAX_TOKEN_LENGTH = 64
MAX_USERNAME_LENGTH = 255
MAX_CATEGORY_LABEL_LENGTH = 64


def generate_entity_id() -> str:
    """Random opaque id for categories and tasks (32 hex chars)."""
    return secrets.token_hex(16)


def check_entity_id(kind: str, entity_id: str) -> str:
    if not isinstance(entity_id, str) or not entity_id:
        raise InvalidField(kind, "must be a non-empty string")
    if len(entity_id) > MAX_ID_LENGTH:
        raise InvalidField(kind, f"longer than {MAX_ID_LENGTH} characters")
    return entity_id


def _check_text(name: str, value: str, *, max_length: int | None = None,
                allow_empty: bool = False) -> None:
    if not isinstance(value, str):
        raise InvalidField(name, "must be a string")
    if not allow_empty and not value.strip():
        raise InvalidField(name, "must not be empty")
    if max_length is not None and len(value) > max_length:
        raise InvalidField(name, f"longer than {max_length} characters")


def check_user_fields(username: str, password_hash: str) -> None:
    _check_text("username", username, max_length=MAX_USERNAME_LENGTH)
    _check_text("password_hash", password_hash)


def check_category_label(label: str) -> str:
    _check_text("label", label, max_length=MAX_CATEGORY_LABEL_LENGTH)
    return label


def check_task_text(label: str, description: str) -> None:
    """
    Task labels must be non-empty. Descriptions may be empty: only NOT NULL
    is enforced on them, which relaxes the "non-empty" wording the data model
    uses for both fields.
    """
    _check_text("label", label)
    _check_text("description", description, allow_empty=True)


@dataclass(frozen=True)
class User:
    user_id: int
    username: str
    password_hash: str = field(repr=False, compare=False)

    def __post_init__(self):
        check_user_fields(self.username, self.password_hash)

    def as_dict(self) -> dict:
        return {"user_id": self.user_id, "username": self.username}


@dataclass(frozen=True)
class Session:
    token: str = field(repr=False)
    user_id: int
    created_at: float = field(default_factory=time.time)

    def __post_init__(self):
        _check_text("token", self.token, max_length=MAX_TOKEN_LENGTH)

    def age(self, now: float | None = None) -> float:
        return (time.time() if now is None else now) - self.created_at


@dataclass(frozen=True)
class TaskCategory:
    category_id: str
    user_id: int
    label: str

    def __post_init__(self):
        check_entity_id("category_id", self.category_id)
        check_category_label(self.label)

    def as_dict(self) -> dict:
        return {"category_id": self.category_id, "label": self.label}


@dataclass(frozen=True)
class Task:
    task_id: str
    user_id: int
    category_id: str
    label: str
    description: str = ""

    def __post_init__(self):
        check_entity_id("task_id", self.task_id)
        check_entity_id("category_id", self.category_id)
        check_task_text(self.label, self.description)

    def as_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "category_id": self.category_id,
            "label": self.label,
            "description": self.description,
        }
