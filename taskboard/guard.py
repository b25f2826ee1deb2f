"""
Access guard: turns a presented session token into an owner-scoped store.

Handlers only ever see ``OwnerScopedStore``; the user id it carries comes
from the resolved session, never from the request body or path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from taskboard.db import TaskStore
from taskboard.errors import Unauthorized
from taskboard.models import Task, TaskCategory
from taskboard.sessions import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class CategoryColumn:
    category: TaskCategory
    tasks: list[Task] = field(default_factory=list)

    def as_dict(self) -> dict:
        payload = self.category.as_dict()
        payload["ordered_tasks"] = [task.as_dict() for task in self.tasks]
        return payload


def build_board(
    categories: list[TaskCategory], tasks: list[Task]
) -> list[CategoryColumn]:
    """Group tasks under their categories, both kept in insertion order."""
    columns = [CategoryColumn(category=c) for c in categories]
    by_id = {column.category.category_id: column for column in columns}
    for task in tasks:
        column = by_id.get(task.category_id)
        if column is None:
            # Ownership checks on write make this unreachable.
            raise RuntimeError(
                f"task {task.task_id} references missing category {task.category_id}"
            )
        column.tasks.append(task)
    return columns


class OwnerScopedStore:
    """Store view with the authenticated user id bound to every call."""

    def __init__(self, store: TaskStore, user_id: int):
        self._store = store
        self.user_id = user_id

    def list_categories(self) -> list[TaskCategory]:
        return self._store.list_categories(self.user_id)

    def create_category(
        self, label: str, category_id: Optional[str] = None
    ) -> TaskCategory:
        return self._store.create_category(self.user_id, label, category_id)

    def list_tasks(self) -> list[Task]:
        return self._store.list_tasks(self.user_id)

    def create_task(
        self,
        category_id: str,
        label: str,
        description: str,
        task_id: Optional[str] = None,
    ) -> Task:
        return self._store.create_task(
            self.user_id, category_id, label, description, task_id
        )

    def update_task(
        self, task_id: str, *, label: str, description: str, category_id: str
    ) -> Task:
        return self._store.update_task(
            self.user_id,
            task_id,
            label=label,
            description=description,
            category_id=category_id,
        )

    def delete_task(self, task_id: str) -> None:
        self._store.delete_task(self.user_id, task_id)

    def board(self) -> list[CategoryColumn]:
        return build_board(self.list_categories(), self.list_tasks())


@dataclass(frozen=True)
class AuthorizedUser:
    user_id: int
    token: str = field(repr=False)
    store: OwnerScopedStore = field(repr=False, compare=False)


class AccessGuard:
    def __init__(self, store: TaskStore, sessions: SessionManager):
        self.store = store
        self.sessions = sessions

    def authenticate(self, token: Optional[str]) -> AuthorizedUser:
        """Resolve ``token`` or raise ``Unauthorized`` before any data access."""
        try:
            user_id = self.sessions.resolve(token)
        except Unauthorized as exc:
            logger.debug("Rejected request: %s", exc)
            raise
        return AuthorizedUser(
            user_id=user_id,
            token=token,
            store=OwnerScopedStore(self.store, user_id),
        )

    def scope(self, token: Optional[str]) -> OwnerScopedStore:
        return self.authenticate(token).store
