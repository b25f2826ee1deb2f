"""
HTTP routes for the task board API.

Every route except ``/register`` and ``/login`` goes through
``get_authorized_user``; domain errors are turned into responses by the
handlers registered in ``taskboard.app``.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from taskboard.auth import AccountService
from taskboard.dependencies import (
    Services,
    get_accounts,
    get_authorized_user,
    get_services,
)
from taskboard.guard import AuthorizedUser
from taskboard.models import Session, Task
from taskboard.schemas import (
    BoardResponse,
    CategoryPayload,
    CategoryResponse,
    CreateTaskPayload,
    CredentialsPayload,
    LogoutResponse,
    SessionResponse,
    TaskPayload,
    TaskResponse,
    UserResponse,
)

router = APIRouter()


def _write_session_cookie(
    response: Response, services: Services, session: Session
) -> None:
    response.set_cookie(
        key=services.settings.session_cookie_name,
        value=session.token,
        httponly=True,
        secure=services.settings.session_cookie_secure,
        samesite="lax",
        max_age=(
            int(services.settings.session_ttl_seconds)
            if services.settings.session_ttl_seconds
            else None
        ),
    )


def _task_response(task: Task) -> TaskResponse:
    return TaskResponse(**task.as_dict())


@router.post("/register", response_model=SessionResponse, status_code=201)
def register(
    payload: CredentialsPayload,
    response: Response,
    accounts: AccountService = Depends(get_accounts),
    services: Services = Depends(get_services),
):
    user, session = accounts.register(payload.username, payload.password)
    _write_session_cookie(response, services, session)
    return SessionResponse(username=user.username, token=session.token)


@router.post("/login", response_model=SessionResponse)
def login(
    payload: CredentialsPayload,
    response: Response,
    accounts: AccountService = Depends(get_accounts),
    services: Services = Depends(get_services),
):
    user, session = accounts.login(payload.username, payload.password)
    _write_session_cookie(response, services, session)
    return SessionResponse(username=user.username, token=session.token)


@router.post("/logout", response_model=LogoutResponse)
def logout(
    response: Response,
    user: AuthorizedUser = Depends(get_authorized_user),
    accounts: AccountService = Depends(get_accounts),
    services: Services = Depends(get_services),
):
    accounts.logout(user.token)
    response.delete_cookie(services.settings.session_cookie_name)
    return LogoutResponse()


@router.get("/user", response_model=UserResponse)
def get_user(
    user: AuthorizedUser = Depends(get_authorized_user),
    accounts: AccountService = Depends(get_accounts),
):
    record = accounts.get_user(user.user_id)
    return UserResponse(user_id=record.user_id, username=record.username)


@router.get("/categories", response_model=list[CategoryResponse])
def list_categories(user: AuthorizedUser = Depends(get_authorized_user)):
    return [CategoryResponse(**c.as_dict()) for c in user.store.list_categories()]


@router.post("/categories", response_model=CategoryResponse, status_code=201)
def create_category(
    payload: CategoryPayload,
    user: AuthorizedUser = Depends(get_authorized_user),
):
    category = user.store.create_category(payload.label, payload.category_id)
    return CategoryResponse(**category.as_dict())


@router.get("/tasks", response_model=BoardResponse)
def get_tasks(user: AuthorizedUser = Depends(get_authorized_user)):
    """
    Return the caller's board: categories in creation order, each holding
    its tasks in creation order.
    """
    columns = user.store.board()
    return BoardResponse(ordered_categories=[column.as_dict() for column in columns])


@router.post("/tasks", response_model=TaskResponse, status_code=201)
def create_task(
    payload: CreateTaskPayload,
    user: AuthorizedUser = Depends(get_authorized_user),
):
    task = user.store.create_task(
        payload.category_id, payload.label, payload.description, payload.task_id
    )
    return _task_response(task)


@router.put("/tasks/{task_id}", response_model=TaskResponse)
def modify_task(
    task_id: str,
    payload: TaskPayload,
    user: AuthorizedUser = Depends(get_authorized_user),
):
    task = user.store.update_task(
        task_id,
        label=payload.label,
        description=payload.description,
        category_id=payload.category_id,
    )
    return _task_response(task)


@router.delete("/tasks/{task_id}", status_code=204)
def delete_task(
    task_id: str,
    user: AuthorizedUser = Depends(get_authorized_user),
):
    user.store.delete_task(task_id)
    return Response(status_code=204)
