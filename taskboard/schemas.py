"""
Pydantic schemas for the task board HTTP API.
"""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field

from taskboard.models import MAX_CATEGORY_LABEL_LENGTH, MAX_ID_LENGTH


class CredentialsPayload(BaseModel):
    username: str = Field(..., max_length=255)
    password: str = Field(..., max_length=1024)


class UserResponse(BaseModel):
    user_id: int
    username: str


class SessionResponse(BaseModel):
    username: str
    token: str


class CategoryPayload(BaseModel):
    label: str = Field(..., min_length=1, max_length=MAX_CATEGORY_LABEL_LENGTH)
    category_id: Optional[str] = Field(default=None, min_length=1, max_length=MAX_ID_LENGTH)


class CategoryResponse(BaseModel):
    category_id: str
    label: str


class TaskPayload(BaseModel):
    category_id: str = Field(
        ...,
        max_length=MAX_ID_LENGTH,
        validation_alias=AliasChoices("categoryId", "category_id"),
    )
    label: str = Field(..., min_length=1)
    description: str = ""


class CreateTaskPayload(TaskPayload):
    task_id: Optional[str] = Field(default=None, min_length=1, max_length=MAX_ID_LENGTH)


class TaskResponse(BaseModel):
    task_id: str
    category_id: str
    label: str
    description: str


class BoardTask(BaseModel):
    task_id: str
    label: str
    description: str


class BoardCategory(BaseModel):
    category_id: str
    label: str
    ordered_tasks: list[BoardTask]


class BoardResponse(BaseModel):
    ordered_categories: list[BoardCategory]


class LogoutResponse(BaseModel):
    status: str = "ok"
