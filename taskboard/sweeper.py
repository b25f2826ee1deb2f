"""
Daemon that periodically deletes expired sessions.
"""

from __future__ import annotations

import argparse
import logging
import random
import time
from typing import Callable, Optional, Sequence

from taskboard.config import get_settings
from taskboard.dependencies import create_store
from taskboard.sessions import SessionManager

logger = logging.getLogger(__name__)


def run(
    sessions: SessionManager,
    *,
    interval_seconds: float,
    jitter_seconds: float = 0.0,
    once: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> int:
    """Sweep until ``once`` is set; returns the total number of sessions removed."""
    total = 0
    while True:
        try:
            removed = sessions.sweep_expired()
            total += removed
            logger.info("Sweep complete, removed %d sessions", removed)
        except Exception as exc:
            logger.exception("Sweep failed: %s", exc)

        if once:
            return total

        sleep_for = interval_seconds + random.uniform(0, jitter_seconds)
        logger.info("Sleeping for %.1fs", sleep_for)
        sleep(sleep_for)


def main(argv: Optional[Sequence[str]] = None) -> int:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Expired session sweeper")
    parser.add_argument(
        "--interval-seconds",
        type=int,
        default=settings.sweep_interval_seconds,
        help="Seconds between sweeps",
    )
    parser.add_argument(
        "--jitter-seconds",
        type=int,
        default=30,
        help="Max random jitter added to sleep",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single sweep and exit",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    if settings.session_ttl_seconds is None:
        logger.warning("TASKBOARD_SESSION_TTL_SECONDS is not set; nothing to sweep")
        return 0
    if settings.use_in_memory_backends or not settings.database_url:
        # An in-memory store here would be private to this process.
        logger.error("Sweeping needs a database; set TASKBOARD_DATABASE_URL")
        return 1

    sessions = SessionManager(
        create_store(settings), ttl_seconds=settings.session_ttl_seconds
    )
    run(
        sessions,
        interval_seconds=args.interval_seconds,
        jitter_seconds=args.jitter_seconds,
        once=args.once,
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
