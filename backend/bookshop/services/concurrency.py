# Overview: Row locking and retry helpers shared by the stock-mutating services.

from __future__ import annotations

import logging
import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)


class ConcurrencyConflict(Exception):
    """A unit of work lost a race in application code and can be replayed."""


def lock_for_update(query):
    """
    Apply row-level locking to a query whose rows are about to be mutated.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id counters
    on Item, Customer and Bill catch lost updates instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a unit of work, retrying when the database reports a concurrency conflict.

    OperationalError covers deadlocks and lock timeouts; StaleDataError is an
    optimistic-locking conflict (another transaction bumped version_id first);
    ConcurrencyConflict is raised by services that detect a lost race themselves.
    The session is rolled back before every retry so func() starts from fresh
    rows. Any other exception propagates immediately.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, ConcurrencyConflict) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            delay = backoff_base * (2 ** attempt)
            logger.warning(
                "Concurrency conflict (%s), retrying in %.2fs (attempt %d/%d)",
                type(exc).__name__, delay, attempt + 1, attempts,
            )
            time.sleep(delay)
