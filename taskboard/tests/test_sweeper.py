import unittest
from unittest.mock import MagicMock, patch

from taskboard.config import Settings
from taskboard.db import InMemoryTaskStore
from taskboard.sessions import SessionManager
from taskboard.sweeper import main, run

SQLITE_URL = "sqlite+pysqlite:///:memory:"


class _Stop(Exception):
    pass


class SweeperTests(unittest.TestCase):
    def test_run_once_removes_expired_sessions(self):
        store = InMemoryTaskStore()
        user = store.create_user("alice", "hash")
        now = [1000.0]
        sessions = SessionManager(store, ttl_seconds=60, clock=lambda: now[0])
        sessions.issue(user.user_id)
        sessions.issue(user.user_id)
        self.assertEqual(run(sessions, interval_seconds=1, once=True), 0)

        now[0] += 120
        removed = run(sessions, interval_seconds=1, once=True)
        self.assertEqual(removed, 2)
        self.assertEqual(store.sessions, {})

    def test_loop_survives_failures(self):
        sessions = MagicMock()
        sessions.sweep_expired.side_effect = [RuntimeError("db down"), 3]
        sleep = MagicMock(side_effect=[None, _Stop()])

        with self.assertRaises(_Stop):
            run(sessions, interval_seconds=5, jitter_seconds=0, sleep=sleep)

        self.assertEqual(sessions.sweep_expired.call_count, 2)
        sleep.assert_called_with(5)

    @patch("taskboard.sweeper.get_settings")
    def test_main_without_ttl_is_noop(self, mock_settings):
        mock_settings.return_value = Settings(use_in_memory_backends=True)
        with patch("taskboard.sweeper.create_store") as create_store:
            self.assertEqual(main(["--once"]), 0)
        create_store.assert_not_called()

    @patch("taskboard.sweeper.get_settings")
    def test_main_without_database_fails(self, mock_settings):
        for settings in (
            Settings(session_ttl_seconds=60, database_url=None),
            Settings(
                session_ttl_seconds=60,
                database_url=SQLITE_URL,
                use_in_memory_backends=True,
            ),
        ):
            mock_settings.return_value = settings
            with patch("taskboard.sweeper.create_store") as create_store, patch(
                "taskboard.sweeper.run"
            ) as mock_run:
                self.assertEqual(main(["--once"]), 1)
            create_store.assert_not_called()
            mock_run.assert_not_called()

    @patch("taskboard.sweeper.get_settings")
    def test_main_once(self, mock_settings):
        mock_settings.return_value = Settings(
            session_ttl_seconds=60, database_url=SQLITE_URL
        )
        with patch("taskboard.sweeper.create_store") as create_store, patch(
            "taskboard.sweeper.run"
        ) as mock_run:
            self.assertEqual(main(["--once"]), 0)
        create_store.assert_called_once_with(mock_settings.return_value)
        _, kwargs = mock_run.call_args
        self.assertTrue(kwargs["once"])
        self.assertEqual(kwargs["interval_seconds"], 600)


if __name__ == "__main__":
    unittest.main()
