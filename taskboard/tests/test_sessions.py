import string
import time
import unittest
from unittest.mock import MagicMock

from taskboard.db import InMemoryTaskStore
from taskboard.errors import NotFound, Unauthorized
from taskboard.sessions import SessionManager, generate_token, is_well_formed

URL_SAFE = set(string.ascii_letters + string.digits + "-_")


class TokenTests(unittest.TestCase):
    def test_tokens_are_64_url_safe_chars(self):
        for _ in range(100):
            token = generate_token()
            self.assertEqual(len(token), 64)
            self.assertTrue(set(token) <= URL_SAFE)
            self.assertTrue(is_well_formed(token))

    def test_tokens_are_unique(self):
        tokens = {generate_token() for _ in range(1000)}
        self.assertEqual(len(tokens), 1000)

    def test_malformed_tokens(self):
        for token in (None, "", "short", "a" * 63, "a" * 65, "a" * 63 + "=", "a" * 63 + "/", 42):
            self.assertFalse(is_well_formed(token), token)


class SessionManagerTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryTaskStore()
        self.user = self.store.create_user("alice", "hash")
        self.now = time.time()
        self.manager = SessionManager(self.store, clock=lambda: self.now)

    def test_issue_and_resolve(self):
        session = self.manager.issue(self.user.user_id)
        self.assertEqual(self.manager.resolve(session.token), self.user.user_id)
        self.assertEqual(
            self.store.find_session(session.token).user_id, self.user.user_id
        )

    def test_unknown_token_is_unauthorized(self):
        with self.assertRaises(Unauthorized):
            self.manager.resolve(generate_token())

    def test_malformed_token_never_reaches_store(self):
        store = MagicMock()
        manager = SessionManager(store)
        for token in (None, "", "not-a-token"):
            with self.assertRaises(Unauthorized):
                manager.resolve(token)
        store.find_session.assert_not_called()

    def test_revoke(self):
        session = self.manager.issue(self.user.user_id)
        self.manager.revoke(session.token)
        with self.assertRaises(Unauthorized):
            self.manager.resolve(session.token)
        with self.assertRaises(NotFound):
            self.manager.revoke(session.token)

    def test_revoke_leaves_other_sessions(self):
        first = self.manager.issue(self.user.user_id)
        second = self.manager.issue(self.user.user_id)
        self.manager.revoke(first.token)
        self.assertEqual(self.manager.resolve(second.token), self.user.user_id)

    def test_no_expiry_by_default(self):
        session = self.manager.issue(self.user.user_id)
        self.now += 10 * 365 * 24 * 3600
        self.assertEqual(self.manager.resolve(session.token), self.user.user_id)
        self.assertEqual(self.manager.sweep_expired(), 0)

    def test_expired_session_is_rejected_and_removed(self):
        manager = SessionManager(self.store, ttl_seconds=60, clock=lambda: self.now)
        session = manager.issue(self.user.user_id)
        self.assertEqual(manager.resolve(session.token), self.user.user_id)

        self.now += 120
        with self.assertRaises(Unauthorized):
            manager.resolve(session.token)
        with self.assertRaises(NotFound):
            self.store.find_session(session.token)

    def test_sweep_expired(self):
        manager = SessionManager(self.store, ttl_seconds=60, clock=lambda: self.now)
        old = manager.issue(self.user.user_id)
        self.now += 120
        self.assertEqual(manager.sweep_expired(), 1)
        with self.assertRaises(NotFound):
            self.store.find_session(old.token)

    def test_expiry_follows_injected_clock(self):
        now = [1000.0]
        manager = SessionManager(self.store, ttl_seconds=60, clock=lambda: now[0])
        session = manager.issue(self.user.user_id)
        self.assertEqual(session.created_at, 1000.0)
        self.assertEqual(self.store.find_session(session.token).created_at, 1000.0)

        now[0] += 59
        self.assertEqual(manager.resolve(session.token), self.user.user_id)
        self.assertEqual(manager.sweep_expired(), 0)

        now[0] += 2
        self.assertEqual(manager.sweep_expired(), 1)
        with self.assertRaises(Unauthorized):
            manager.resolve(session.token)

    def test_issue_retries_on_collision(self):
        first, second = "a" * 64, "b" * 64
        tokens = iter([first, first, second])
        manager = SessionManager(self.store, token_factory=lambda: next(tokens))
        self.assertEqual(manager.issue(self.user.user_id).token, first)
        self.assertEqual(manager.issue(self.user.user_id).token, second)

    def test_ttl_must_be_positive(self):
        with self.assertRaises(ValueError):
            SessionManager(self.store, ttl_seconds=0)


if __name__ == "__main__":
    unittest.main()
