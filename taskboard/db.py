"""
Store abstraction with an in-memory implementation and a SQLAlchemy one.

Both backends raise the error kinds from ``taskboard.errors`` and return the
same entities in the same order, so callers never branch on the backend.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Dict, Iterator, Protocol, Sequence

from sqlalchemy import (
    Column,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    event,
    func,
    select,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session as OrmSession
from sqlalchemy.orm import declarative_base, sessionmaker

from taskboard.errors import (
    BackendUnavailable,
    CategoryNotOwned,
    DuplicateId,
    DuplicateToken,
    DuplicateUsername,
    NotFound,
    StoreError,
)
from taskboard.models import (
    MAX_CATEGORY_LABEL_LENGTH,
    MAX_ID_LENGTH,
    MAX_TOKEN_LENGTH,
    MAX_USERNAME_LENGTH,
    Session,
    Task,
    TaskCategory,
    User,
    check_category_label,
    check_entity_id,
    check_task_text,
    check_user_fields,
    generate_entity_id,
)

logger = logging.getLogger(__name__)


class TaskStore(Protocol):
    """Interface every storage backend implements."""

    def create_user(
        self,
        username: str,
        password_hash: str,
        default_categories: Sequence[str] = (),
    ) -> User:
        """Create the user and seed ``default_categories`` as one unit."""
        ...

    def find_user_by_username(self, username: str) -> User:
        ...

    def get_user(self, user_id: int) -> User:
        ...

    def create_session(
        self, user_id: int, token: str, created_at: float | None = None
    ) -> Session:
        ...

    def find_session(self, token: str) -> Session:
        ...

    def delete_session(self, token: str) -> None:
        ...

    def delete_sessions_created_before(self, cutoff: float) -> int:
        ...

    def create_category(
        self, user_id: int, label: str, category_id: str | None = None
    ) -> TaskCategory:
        ...

    def add_categories(
        self, user_id: int, labels: Sequence[str]
    ) -> list[TaskCategory]:
        ...

    def list_categories(self, user_id: int) -> list[TaskCategory]:
        ...

    def create_task(
        self,
        user_id: int,
        category_id: str,
        label: str,
        description: str,
        task_id: str | None = None,
    ) -> Task:
        ...

    def update_task(
        self,
        user_id: int,
        task_id: str,
        *,
        label: str,
        description: str,
        category_id: str,
    ) -> Task:
        ...

    def delete_task(self, user_id: int, task_id: str) -> None:
        ...

    def list_tasks(self, user_id: int) -> list[Task]:
        ...


def _resolve_id(kind: str, entity_id: str | None) -> str:
    if entity_id is None:
        return generate_entity_id()
    return check_entity_id(kind, entity_id)


def _new_session(user_id: int, token: str, created_at: float | None) -> Session:
    if created_at is None:
        return Session(token=token, user_id=user_id)
    return Session(token=token, user_id=user_id, created_at=created_at)


class InMemoryTaskStore:
    """
    Process-local store for development and tests. Nothing survives a restart.

    Every public method holds ``_lock`` for its whole body, so ownership checks
    and the writes that depend on them cannot interleave with other requests.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.users: Dict[int, User] = {}
        self.user_ids_by_name: Dict[str, int] = {}
        self.sessions: Dict[str, Session] = {}
        # Owner-keyed, insertion ordered.
        self.categories: Dict[int, Dict[str, TaskCategory]] = {}
        self.tasks: Dict[int, Dict[str, Task]] = {}
        # Global id -> owner, for uniqueness across users.
        self._category_owners: Dict[str, int] = {}
        self._task_owners: Dict[str, int] = {}
        self._next_user_id = 1

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        with self._lock:
            self.users.clear()
            self.user_ids_by_name.clear()
            self.sessions.clear()
            self.categories.clear()
            self.tasks.clear()
            self._category_owners.clear()
            self._task_owners.clear()
            self._next_user_id = 1

    def _require_user(self, user_id: int) -> None:
        if user_id not in self.users:
            raise NotFound("user", user_id)

    def _owned_category(self, user_id: int, category_id: str) -> TaskCategory:
        category = self.categories.get(user_id, {}).get(category_id)
        if category is None:
            raise CategoryNotOwned(category_id)
        return category

    def _new_categories(
        self, user_id: int, labels: Sequence[str]
    ) -> list[TaskCategory]:
        # Builds and checks only; state is untouched until _keep_categories.
        created = [
            TaskCategory(category_id=generate_entity_id(), user_id=user_id, label=label)
            for label in labels
        ]
        ids = [c.category_id for c in created]
        if len(set(ids)) != len(ids) or any(i in self._category_owners for i in ids):
            raise DuplicateId("category", "<generated>")
        return created

    def _keep_categories(self, user_id: int, created: list[TaskCategory]) -> None:
        owned = self.categories.setdefault(user_id, {})
        for category in created:
            owned[category.category_id] = category
            self._category_owners[category.category_id] = user_id

    def create_user(
        self,
        username: str,
        password_hash: str,
        default_categories: Sequence[str] = (),
    ) -> User:
        check_user_fields(username, password_hash)
        for label in default_categories:
            check_category_label(label)
        with self._lock:
            if username in self.user_ids_by_name:
                raise DuplicateUsername(username)
            user = User(
                user_id=self._next_user_id,
                username=username,
                password_hash=password_hash,
            )
            seeded = self._new_categories(user.user_id, default_categories)
            self._next_user_id += 1
            self.users[user.user_id] = user
            self.user_ids_by_name[username] = user.user_id
            self._keep_categories(user.user_id, seeded)
            return user

    def find_user_by_username(self, username: str) -> User:
        with self._lock:
            user_id = self.user_ids_by_name.get(username)
            if user_id is None:
                raise NotFound("user", username)
            return self.users[user_id]

    def get_user(self, user_id: int) -> User:
        with self._lock:
            user = self.users.get(user_id)
            if user is None:
                raise NotFound("user", user_id)
            return user

    def create_session(
        self, user_id: int, token: str, created_at: float | None = None
    ) -> Session:
        session = _new_session(user_id, token, created_at)
        with self._lock:
            self._require_user(user_id)
            if token in self.sessions:
                raise DuplicateToken()
            self.sessions[token] = session
            return session

    def find_session(self, token: str) -> Session:
        with self._lock:
            session = self.sessions.get(token)
            if session is None:
                raise NotFound("session", "<redacted>")
            return session

    def delete_session(self, token: str) -> None:
        with self._lock:
            if self.sessions.pop(token, None) is None:
                raise NotFound("session", "<redacted>")

    def delete_sessions_created_before(self, cutoff: float) -> int:
        with self._lock:
            stale = [
                token
                for token, session in self.sessions.items()
                if session.created_at < cutoff
            ]
            for token in stale:
                del self.sessions[token]
            return len(stale)

    def create_category(
        self, user_id: int, label: str, category_id: str | None = None
    ) -> TaskCategory:
        check_category_label(label)
        category_id = _resolve_id("category_id", category_id)
        with self._lock:
            self._require_user(user_id)
            if category_id in self._category_owners:
                raise DuplicateId("category", category_id)
            category = TaskCategory(
                category_id=category_id, user_id=user_id, label=label
            )
            self.categories.setdefault(user_id, {})[category_id] = category
            self._category_owners[category_id] = user_id
            return category

    def add_categories(
        self, user_id: int, labels: Sequence[str]
    ) -> list[TaskCategory]:
        for label in labels:
            check_category_label(label)
        with self._lock:
            self._require_user(user_id)
            created = self._new_categories(user_id, labels)
            self._keep_categories(user_id, created)
            return created

    def list_categories(self, user_id: int) -> list[TaskCategory]:
        with self._lock:
            return list(self.categories.get(user_id, {}).values())

    def create_task(
        self,
        user_id: int,
        category_id: str,
        label: str,
        description: str,
        task_id: str | None = None,
    ) -> Task:
        check_task_text(label, description)
        task_id = _resolve_id("task_id", task_id)
        with self._lock:
            self._require_user(user_id)
            self._owned_category(user_id, category_id)
            if task_id in self._task_owners:
                raise DuplicateId("task", task_id)
            task = Task(
                task_id=task_id,
                user_id=user_id,
                category_id=category_id,
                label=label,
                description=description,
            )
            self.tasks.setdefault(user_id, {})[task_id] = task
            self._task_owners[task_id] = user_id
            return task

    def update_task(
        self,
        user_id: int,
        task_id: str,
        *,
        label: str,
        description: str,
        category_id: str,
    ) -> Task:
        check_task_text(label, description)
        with self._lock:
            owned = self.tasks.get(user_id, {})
            if task_id not in owned:
                raise NotFound("task", task_id)
            self._owned_category(user_id, category_id)
            task = Task(
                task_id=task_id,
                user_id=user_id,
                category_id=category_id,
                label=label,
                description=description,
            )
            owned[task_id] = task
            return task

    def delete_task(self, user_id: int, task_id: str) -> None:
        with self._lock:
            owned = self.tasks.get(user_id, {})
            if owned.pop(task_id, None) is None:
                raise NotFound("task", task_id)
            del self._task_owners[task_id]

    def list_tasks(self, user_id: int) -> list[Task]:
        with self._lock:
            return list(self.tasks.get(user_id, {}).values())


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SqlTaskStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (Postgres in
    production, SQLite for tests).

    Each call checks a pooled connection out for one transaction and returns
    it on every exit path. Constraint violations are translated into the same
    error kinds the in-memory store raises; connectivity failures become
    ``BackendUnavailable``.
    """

    def __init__(
        self, database_url: str, *, create_schema: bool = True, **engine_kwargs
    ):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlTaskStore")
        engine_kwargs.setdefault("pool_pre_ping", True)
        engine_kwargs.setdefault("pool_recycle", 1800)
        self.engine = create_engine(database_url, future=True, **engine_kwargs)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        self.Session = sessionmaker(
            bind=self.engine, class_=OrmSession, expire_on_commit=False, future=True
        )
        if create_schema:
            self.create_schema()

    def create_schema(self) -> None:
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as exc:
            logger.exception("Failed to create schema")
            raise BackendUnavailable(str(exc)) from exc

    def dispose(self) -> None:
        self.engine.dispose()

    @contextmanager
    def _transaction(
        self, conflict: StoreError | None = None
    ) -> Iterator[OrmSession]:
        """
        Run the body in one transaction. ``conflict`` is raised in place of an
        ``IntegrityError`` surfacing at flush or commit time.
        """
        try:
            with self.Session.begin() as session:
                yield session
        except IntegrityError as exc:
            if conflict is not None:
                raise conflict from exc
            logger.exception("Unexpected constraint violation")
            raise StoreError(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            logger.exception("Database operation failed")
            raise BackendUnavailable(str(exc)) from exc

    @staticmethod
    def _to_user(row: "UserRow") -> User:
        return User(
            user_id=row.user_id, username=row.username, password_hash=row.password_hash
        )

    @staticmethod
    def _to_session(row: "SessionRow") -> Session:
        return Session(token=row.token, user_id=row.user_id, created_at=row.created_at)

    @staticmethod
    def _to_category(row: "CategoryRow") -> TaskCategory:
        return TaskCategory(
            category_id=row.category_id, user_id=row.user_id, label=row.label
        )

    @staticmethod
    def _to_task(row: "TaskRow") -> Task:
        return Task(
            task_id=row.task_id,
            user_id=row.user_id,
            category_id=row.category_id,
            label=row.label,
            description=row.description,
        )

    @staticmethod
    def _lock_user(session: OrmSession, user_id: int) -> "UserRow":
        # Serializes writes per owner on backends with row locks.
        stmt = select(UserRow).where(UserRow.user_id == user_id).with_for_update()
        user = session.execute(stmt).scalar_one_or_none()
        if user is None:
            raise NotFound("user", user_id)
        return user

    @staticmethod
    def _owned_category(
        session: OrmSession, user_id: int, category_id: str
    ) -> "CategoryRow":
        stmt = (
            select(CategoryRow)
            .where(
                CategoryRow.category_id == category_id,
                CategoryRow.user_id == user_id,
            )
            .with_for_update()
        )
        category = session.execute(stmt).scalar_one_or_none()
        if category is None:
            raise CategoryNotOwned(category_id)
        return category

    @staticmethod
    def _next_position(session: OrmSession, row_cls, user_id: int) -> int:
        stmt = select(func.coalesce(func.max(row_cls.position), 0)).where(
            row_cls.user_id == user_id
        )
        return session.execute(stmt).scalar_one() + 1

    def _insert_categories(
        self, session: OrmSession, user_id: int, labels: Sequence[str]
    ) -> list["CategoryRow"]:
        ids = [generate_entity_id() for _ in labels]
        if ids:
            taken = select(CategoryRow.category_id).where(CategoryRow.category_id.in_(ids))
            if len(set(ids)) != len(ids) or session.execute(taken).first() is not None:
                raise DuplicateId("category", "<generated>")
        position = self._next_position(session, CategoryRow, user_id)
        rows = [
            CategoryRow(
                category_id=category_id,
                user_id=user_id,
                label=label,
                position=position + offset,
            )
            for offset, (category_id, label) in enumerate(zip(ids, labels))
        ]
        session.add_all(rows)
        session.flush()
        return rows

    def create_user(
        self,
        username: str,
        password_hash: str,
        default_categories: Sequence[str] = (),
    ) -> User:
        check_user_fields(username, password_hash)
        for label in default_categories:
            check_category_label(label)
        with self._transaction(conflict=DuplicateUsername(username)) as session:
            stmt = select(UserRow.user_id).where(UserRow.username == username)
            if session.execute(stmt).first() is not None:
                raise DuplicateUsername(username)
            row = UserRow(username=username, password_hash=password_hash)
            session.add(row)
            session.flush()
            self._insert_categories(session, row.user_id, default_categories)
            return self._to_user(row)

    def find_user_by_username(self, username: str) -> User:
        with self._transaction() as session:
            stmt = select(UserRow).where(UserRow.username == username)
            row = session.execute(stmt).scalar_one_or_none()
            if row is None:
                raise NotFound("user", username)
            return self._to_user(row)

    def get_user(self, user_id: int) -> User:
        with self._transaction() as session:
            row = session.get(UserRow, user_id)
            if row is None:
                raise NotFound("user", user_id)
            return self._to_user(row)

    def create_session(
        self, user_id: int, token: str, created_at: float | None = None
    ) -> Session:
        created = _new_session(user_id, token, created_at)
        with self._transaction(conflict=DuplicateToken()) as session:
            if session.get(UserRow, user_id) is None:
                raise NotFound("user", user_id)
            if session.get(SessionRow, token) is not None:
                raise DuplicateToken()
            session.add(
                SessionRow(
                    token=created.token,
                    user_id=created.user_id,
                    created_at=created.created_at,
                )
            )
            return created

    def find_session(self, token: str) -> Session:
        with self._transaction() as session:
            row = session.get(SessionRow, token)
            if row is None:
                raise NotFound("session", "<redacted>")
            return self._to_session(row)

    def delete_session(self, token: str) -> None:
        with self._transaction() as session:
            result = session.execute(delete(SessionRow).where(SessionRow.token == token))
            if result.rowcount == 0:
                raise NotFound("session", "<redacted>")

    def delete_sessions_created_before(self, cutoff: float) -> int:
        with self._transaction() as session:
            result = session.execute(
                delete(SessionRow).where(SessionRow.created_at < cutoff)
            )
            return result.rowcount or 0

    def create_category(
        self, user_id: int, label: str, category_id: str | None = None
    ) -> TaskCategory:
        check_category_label(label)
        category_id = _resolve_id("category_id", category_id)
        conflict = DuplicateId("category", category_id)
        with self._transaction(conflict=conflict) as session:
            self._lock_user(session, user_id)
            if session.get(CategoryRow, category_id) is not None:
                raise conflict
            row = CategoryRow(
                category_id=category_id,
                user_id=user_id,
                label=label,
                position=self._next_position(session, CategoryRow, user_id),
            )
            session.add(row)
            return self._to_category(row)

    def add_categories(
        self, user_id: int, labels: Sequence[str]
    ) -> list[TaskCategory]:
        for label in labels:
            check_category_label(label)
        with self._transaction(conflict=DuplicateId("category", "<generated>")) as session:
            self._lock_user(session, user_id)
            rows = self._insert_categories(session, user_id, labels)
            return [self._to_category(row) for row in rows]

    def list_categories(self, user_id: int) -> list[TaskCategory]:
        with self._transaction() as session:
            stmt = (
                select(CategoryRow)
                .where(CategoryRow.user_id == user_id)
                .order_by(CategoryRow.position.asc(), CategoryRow.category_id.asc())
            )
            return [self._to_category(row) for row in session.execute(stmt).scalars()]

    def create_task(
        self,
        user_id: int,
        category_id: str,
        label: str,
        description: str,
        task_id: str | None = None,
    ) -> Task:
        check_task_text(label, description)
        task_id = _resolve_id("task_id", task_id)
        conflict = DuplicateId("task", task_id)
        with self._transaction(conflict=conflict) as session:
            self._lock_user(session, user_id)
            self._owned_category(session, user_id, category_id)
            if session.get(TaskRow, task_id) is not None:
                raise conflict
            row = TaskRow(
                task_id=task_id,
                user_id=user_id,
                category_id=category_id,
                label=label,
                description=description,
                position=self._next_position(session, TaskRow, user_id),
            )
            session.add(row)
            return self._to_task(row)

    def update_task(
        self,
        user_id: int,
        task_id: str,
        *,
        label: str,
        description: str,
        category_id: str,
    ) -> Task:
        check_task_text(label, description)
        with self._transaction(conflict=CategoryNotOwned(category_id)) as session:
            stmt = (
                select(TaskRow)
                .where(TaskRow.task_id == task_id, TaskRow.user_id == user_id)
                .with_for_update()
            )
            row = session.execute(stmt).scalar_one_or_none()
            if row is None:
                raise NotFound("task", task_id)
            self._owned_category(session, user_id, category_id)
            row.label = label
            row.description = description
            row.category_id = category_id
            session.flush()
            return self._to_task(row)

    def delete_task(self, user_id: int, task_id: str) -> None:
        with self._transaction() as session:
            result = session.execute(
                delete(TaskRow).where(
                    TaskRow.task_id == task_id, TaskRow.user_id == user_id
                )
            )
            if result.rowcount == 0:
                raise NotFound("task", task_id)

    def list_tasks(self, user_id: int) -> list[Task]:
        with self._transaction() as session:
            stmt = (
                select(TaskRow)
                .where(TaskRow.user_id == user_id)
                .order_by(TaskRow.position.asc(), TaskRow.task_id.asc())
            )
            return [self._to_task(row) for row in session.execute(stmt).scalars()]


Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(MAX_USERNAME_LENGTH), unique=True, nullable=False)
    password_hash = Column("password", String(255), nullable=False)


class SessionRow(Base):
    __tablename__ = "sessions"

    token = Column(String(MAX_TOKEN_LENGTH), primary_key=True)
    user_id = Column(
        Integer, ForeignKey("users.user_id"), nullable=False, index=True
    )
    created_at = Column(Float, nullable=False, default=time.time, index=True)


class CategoryRow(Base):
    __tablename__ = "task_categories"

    category_id = Column(String(MAX_ID_LENGTH), primary_key=True)
    user_id = Column(
        Integer, ForeignKey("users.user_id"), nullable=False, index=True
    )
    label = Column(String(MAX_CATEGORY_LABEL_LENGTH), nullable=False)
    position = Column(Integer, nullable=False)


class TaskRow(Base):
    __tablename__ = "tasks"

    task_id = Column(String(MAX_ID_LENGTH), primary_key=True)
    user_id = Column(
        Integer, ForeignKey("users.user_id"), nullable=False, index=True
    )
    category_id = Column(
        String(MAX_ID_LENGTH),
        ForeignKey("task_categories.category_id"),
        nullable=False,
    )
    label = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    position = Column(Integer, nullable=False)
