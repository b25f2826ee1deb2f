"""
Dependency wiring for the FastAPI app.

The service container is built once per application by ``create_app`` and
hung on ``app.state``; request handlers receive it through ``Depends``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request
from sqlalchemy.engine import make_url

from taskboard.auth import AccountService
from taskboard.config import Settings, get_settings
from taskboard.db import InMemoryTaskStore, SqlTaskStore, TaskStore
from taskboard.guard import AccessGuard, AuthorizedUser
from taskboard.sessions import SessionManager

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    store: TaskStore
    sessions: SessionManager
    accounts: AccountService
    guard: AccessGuard


def create_store(settings: Settings) -> TaskStore:
    if settings.use_in_memory_backends or not settings.database_url:
        logger.info("Using in-memory store, since no database URL is set")
        return InMemoryTaskStore()
    safe_url = make_url(settings.database_url).render_as_string(hide_password=True)
    logger.info("Connecting to database: %s", safe_url)
    return SqlTaskStore(settings.database_url)


def build_services(
    settings: Optional[Settings] = None, store: Optional[TaskStore] = None
) -> Services:
    settings = settings or get_settings()
    store = store if store is not None else create_store(settings)
    sessions = SessionManager(store, ttl_seconds=settings.session_ttl_seconds)
    return Services(
        settings=settings,
        store=store,
        sessions=sessions,
        accounts=AccountService(
            store, sessions, default_categories=settings.default_categories
        ),
        guard=AccessGuard(store, sessions),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_accounts(services: Services = Depends(get_services)) -> AccountService:
    return services.accounts


def get_session_token(
    request: Request,
    authorization: Optional[str] = Header(default=None),
    services: Services = Depends(get_services),
) -> Optional[str]:
    """Read the token from the session cookie, falling back to a bearer header."""
    token = request.cookies.get(services.settings.session_cookie_name)
    if token:
        return token.strip()
    if authorization:
        scheme, _, value = authorization.partition(" ")
        if scheme.lower() == "bearer" and value:
            return value.strip()
    return None


def get_authorized_user(
    token: Optional[str] = Depends(get_session_token),
    services: Services = Depends(get_services),
) -> AuthorizedUser:
    return services.guard.authenticate(token)
