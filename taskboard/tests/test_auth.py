import unittest
from unittest.mock import patch

from taskboard.auth import AccountService, validate_password, validate_username
from taskboard.db import InMemoryTaskStore
from taskboard.errors import (
    DuplicateId,
    DuplicateUsername,
    InvalidCredentials,
    InvalidField,
    InvalidPassword,
    InvalidUsername,
    NotFound,
    Unauthorized,
)
from taskboard.sessions import SessionManager

USERNAME = "user123"
PASSWORD = "Abc123456@"


class ValidationTests(unittest.TestCase):
    def test_valid_usernames(self):
        for username in (
            "Ab12345_",
            "_aaabbB1",
            "user_user",
            "test_1514_test",
            "________",
            "abcdefghijklmnopqrstuvwxyz" * 10,
        ):
            self.assertTrue(validate_username(username), username)

    def test_invalid_usernames(self):
        for username in (
            "",
            "test",
            "ABab5",
            "12345678A@",
            "!@$abcdefh123",
            "user name",
            "user-name",
        ):
            self.assertFalse(validate_username(username), username)

    def test_valid_passwords(self):
        for password in (
            "Ab12345@",
            "@aaabbB1",
            "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ123456789@$!",
        ):
            self.assertTrue(validate_password(password), password)

    def test_invalid_passwords(self):
        for password in (
            "",
            "ABab1@",        # too short
            "12345678A@",    # no lowercase
            "12345678a@",    # no uppercase
            "abcdefhABCDEF@",  # no digit
            "ABCabc123",     # no special char
            "Aa123456@_",    # disallowed char
            "Aa123456@\n",
            "Aa123456@\0",
        ):
            self.assertFalse(validate_password(password), repr(password))


class AccountServiceTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryTaskStore()
        self.sessions = SessionManager(self.store)
        self.accounts = AccountService(self.store, self.sessions)

    def test_register_creates_session_and_default_categories(self):
        user, session = self.accounts.register(USERNAME, PASSWORD)
        self.assertEqual(self.sessions.resolve(session.token), user.user_id)
        labels = [c.label for c in self.store.list_categories(user.user_id)]
        self.assertEqual(labels, ["ToDo", "In progress", "Completed"])

    def test_password_is_stored_hashed(self):
        user, _ = self.accounts.register(USERNAME, PASSWORD)
        stored = self.store.find_user_by_username(USERNAME).password_hash
        self.assertNotEqual(stored, PASSWORD)
        self.assertNotIn(PASSWORD, stored)

    def test_register_without_default_categories(self):
        accounts = AccountService(self.store, self.sessions, default_categories=())
        user, _ = accounts.register(USERNAME, PASSWORD)
        self.assertEqual(self.store.list_categories(user.user_id), [])

    def test_default_categories_are_checked_up_front(self):
        with self.assertRaises(InvalidField):
            AccountService(self.store, self.sessions, default_categories=["x" * 65])

    def test_failed_registration_can_be_retried(self):
        self.store.create_user("bobbob", "hash")
        self.store.create_category(1, "Bob's", "taken-id")
        with patch("taskboard.db.generate_entity_id", return_value="taken-id"):
            with self.assertRaises(DuplicateId):
                self.accounts.register(USERNAME, PASSWORD)
        with self.assertRaises(NotFound):
            self.store.find_user_by_username(USERNAME)

        user, session = self.accounts.register(USERNAME, PASSWORD)
        self.assertEqual(self.sessions.resolve(session.token), user.user_id)
        self.assertEqual(len(self.store.list_categories(user.user_id)), 3)

    def test_register_validates_input(self):
        with self.assertRaises(InvalidUsername):
            self.accounts.register("user1", PASSWORD)
        with self.assertRaises(InvalidPassword):
            self.accounts.register(USERNAME, "ABc123456")
        with self.assertRaises(NotFound):
            self.store.find_user_by_username(USERNAME)

    def test_register_existing_username(self):
        self.accounts.register(USERNAME, PASSWORD)
        with self.assertRaises(DuplicateUsername):
            self.accounts.register(USERNAME, PASSWORD)

    def test_login(self):
        registered, _ = self.accounts.register(USERNAME, PASSWORD)
        user, session = self.accounts.login(USERNAME, PASSWORD)
        self.assertEqual(user, registered)
        self.assertEqual(self.sessions.resolve(session.token), registered.user_id)

    def test_login_unknown_user(self):
        with self.assertRaises(NotFound):
            self.accounts.login(USERNAME, PASSWORD)

    def test_login_incorrect_password(self):
        self.accounts.register(USERNAME, PASSWORD)
        for password in (PASSWORD + "a", "a" + PASSWORD, PASSWORD[:-1], "", "#", "\0"):
            with self.assertRaises(InvalidCredentials):
                self.accounts.login(USERNAME, password)

    def test_incorrect_password_is_unauthorized(self):
        self.assertTrue(issubclass(InvalidCredentials, Unauthorized))

    def test_logout(self):
        _, session = self.accounts.register(USERNAME, PASSWORD)
        self.accounts.logout(session.token)
        with self.assertRaises(Unauthorized):
            self.sessions.resolve(session.token)

    def test_many_users(self):
        created = []
        for n in range(25):
            username = f"{USERNAME}{n}"
            user, session = self.accounts.register(username, f"{PASSWORD}{n}")
            created.append((user.user_id, username, session.token))

        for user_id, username, token in created:
            self.assertEqual(self.sessions.resolve(token), user_id)
            self.assertEqual(self.accounts.get_user(user_id).username, username)


if __name__ == "__main__":
    unittest.main()
