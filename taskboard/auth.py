"""
Account registration, login and logout on top of the store and sessions.
"""

from __future__ import annotations

import logging
from typing import Sequence

from werkzeug.security import check_password_hash, generate_password_hash

from taskboard.db import TaskStore
from taskboard.errors import InvalidCredentials, InvalidPassword, InvalidUsername
from taskboard.models import Session, User, check_category_label
from taskboard.sessions import SessionManager

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = ("ToDo", "In progress", "Completed")
PASSWORD_SPECIAL_CHARS = "$@!"
MIN_USERNAME_LENGTH = 6
MIN_PASSWORD_LENGTH = 8


def validate_username(username: str) -> bool:
    """
    Usernames are at least six characters of letters, digits or underscore.

    >>> validate_username("user123465")
    True
    >>> validate_username("m")
    False
    """
    if len(username) < MIN_USERNAME_LENGTH:
        return False
    return all(c.isalpha() or (c.isascii() and c.isdigit()) or c == "_" for c in username)


def validate_password(password: str) -> bool:
    """
    Passwords need eight or more characters drawn from letters, digits and
    ``$@!``, with at least one lowercase, uppercase, digit and special char.
    """
    if len(password) < MIN_PASSWORD_LENGTH:
        return False

    def allowed(c: str) -> bool:
        return c.isalpha() or (c.isascii() and c.isdigit()) or c in PASSWORD_SPECIAL_CHARS

    return (
        all(allowed(c) for c in password)
        and any(c.islower() for c in password)
        and any(c.isupper() for c in password)
        and any(c.isascii() and c.isdigit() for c in password)
        and any(c in PASSWORD_SPECIAL_CHARS for c in password)
    )


class AccountService:
    def __init__(
        self,
        store: TaskStore,
        sessions: SessionManager,
        *,
        default_categories: Sequence[str] = DEFAULT_CATEGORIES,
    ):
        for label in default_categories:
            check_category_label(label)
        self.store = store
        self.sessions = sessions
        self.default_categories = tuple(default_categories)

    def register(self, username: str, password: str) -> tuple[User, Session]:
        """
        Create a user with its default categories, then log it in.

        The account and its categories are written together, so a failed
        registration leaves nothing behind. If only issuing the session
        fails, the account is complete and ``login`` works for it.
        """
        if not validate_username(username):
            raise InvalidUsername(f"Invalid username: {username!r}")
        if not validate_password(password):
            raise InvalidPassword("Password does not meet the requirements")

        user = self.store.create_user(
            username,
            generate_password_hash(password),
            default_categories=self.default_categories,
        )
        session = self.sessions.issue(user.user_id)
        logger.info("Registered user %s (id=%s)", username, user.user_id)
        return user, session

    def login(self, username: str, password: str) -> tuple[User, Session]:
        user = self.store.find_user_by_username(username)
        if not check_password_hash(user.password_hash, password):
            logger.info("Rejected login for %s: incorrect password", username)
            raise InvalidCredentials()
        return user, self.sessions.issue(user.user_id)

    def logout(self, token: str) -> None:
        self.sessions.revoke(token)

    def get_user(self, user_id: int) -> User:
        return self.store.get_user(user_id)
