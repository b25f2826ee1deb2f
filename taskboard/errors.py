"""
Error kinds shared by every store backend and the auth layer.

Callers catch these instead of backend-specific exceptions, so the HTTP layer
never needs to know whether it talks to the in-memory or the SQL store.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for typed store failures."""

    code = "store_error"
    retryable = False


class DuplicateUsername(StoreError):
    code = "user_already_exists"

    def __init__(self, username: str):
        super().__init__(f"Username already taken: {username!r}")
        self.username = username


class DuplicateId(StoreError):
    code = "duplicate_id"

    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind} id already in use: {entity_id!r}")
        self.kind = kind
        self.entity_id = entity_id


class DuplicateToken(StoreError):
    code = "duplicate_token"

    def __init__(self):
        super().__init__("Session token collision")


class NotFound(StoreError):
    code = "not_found"

    def __init__(self, kind: str, key: object):
        super().__init__(f"{kind} not found: {key!r}")
        self.kind = kind
        self.key = key


class CategoryNotOwned(StoreError):
    code = "category_not_owned"

    def __init__(self, category_id: str):
        super().__init__(f"Category not owned by caller: {category_id!r}")
        self.category_id = category_id


class BackendUnavailable(StoreError):
    code = "backend_unavailable"
    retryable = True


class ValidationFailed(StoreError):
    code = "invalid_input"


class InvalidUsername(ValidationFailed):
    code = "invalid_username"


class InvalidPassword(ValidationFailed):
    code = "invalid_password"


class InvalidField(ValidationFailed):
    code = "invalid_field"

    def __init__(self, field: str, reason: str):
        super().__init__(f"{field}: {reason}")
        self.field = field


class Unauthorized(Exception):
    """Missing, malformed, unknown or expired session token."""

    code = "unauthorized"

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class InvalidCredentials(Unauthorized):
    code = "incorrect_password"

    def __init__(self):
        super().__init__("Incorrect username or password")
