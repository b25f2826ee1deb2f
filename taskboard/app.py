"""
FastAPI application entry point for the task board service.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from taskboard.config import Settings, get_settings
from taskboard.db import TaskStore
from taskboard.dependencies import build_services
from taskboard.errors import (
    BackendUnavailable,
    CategoryNotOwned,
    DuplicateId,
    DuplicateToken,
    DuplicateUsername,
    NotFound,
    StoreError,
    Unauthorized,
    ValidationFailed,
)
from taskboard.routes import router

logger = logging.getLogger(__name__)

# Checked in order; first match wins.
_STATUS_BY_ERROR: tuple[tuple[type[StoreError], int], ...] = (
    (ValidationFailed, 400),
    (NotFound, 404),
    (DuplicateUsername, 409),
    (DuplicateId, 409),
    (DuplicateToken, 409),
    (CategoryNotOwned, 422),
    (BackendUnavailable, 503),
)


def status_for(exc: StoreError) -> int:
    for error_cls, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status_code
    return 500


async def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    status_code = status_for(exc)
    headers = {"Retry-After": "1"} if exc.retryable else None
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status_code, content={"detail": exc.code}, headers=headers
    )


async def _unauthorized_handler(request: Request, exc: Unauthorized) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"detail": exc.code},
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_app(
    settings: Optional[Settings] = None, store: Optional[TaskStore] = None
) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    app = FastAPI(title="Task Board Backend (FastAPI)", version="0.1.0")
    app.state.services = build_services(settings, store)
    app.add_exception_handler(StoreError, _store_error_handler)
    app.add_exception_handler(Unauthorized, _unauthorized_handler)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
