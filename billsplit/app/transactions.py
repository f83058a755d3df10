"""
transactions.py — Commit-with-retry for mutations that touch the balance cache.

Every write that changes a group's ledger also overwrites that group's
GroupBalance row. Two concurrent writers in the same group both read version v;
the second UPDATE ... WHERE version = v matches nothing and SQLAlchemy raises
StaleDataError. The loser is rolled back and re-run from scratch against the
committed state.

Usage (routes):

    result = run_in_transaction(
        db.session,
        lambda: expense_service.create_expense(group_id, user_id, data, db.session),
        operation="create_expense",
    )
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from billsplit.app.errors import AppError, ErrorCode

logger = logging.getLogger(__name__)

T = TypeVar("T")

# PostgreSQL serialization_failure and deadlock_detected.
_RETRYABLE_SQLSTATES = frozenset({"40001", "40P01"})


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.05
    max_delay: float = 1.0

    @classmethod
    def from_config(cls, config) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, int(config.get("TRANSACTION_MAX_ATTEMPTS", 3))),
            base_delay=float(config.get("TRANSACTION_RETRY_BACKOFF_SECONDS", 0.05)),
            max_delay=float(config.get("TRANSACTION_RETRY_MAX_BACKOFF_SECONDS", 1.0)),
        )

    def delay_for(self, attempt: int) -> float:
        """Exponential backoff after the given 1-based failed attempt."""
        return min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))


def current_policy() -> RetryPolicy:
    """The policy the app factory stored for the running app."""
    return current_app.extensions.get("retry_policy") or RetryPolicy()


def is_retryable(error: Exception) -> bool:
    if isinstance(error, StaleDataError):
        return True
    if isinstance(error, OperationalError):
        sqlstate = getattr(error.orig, "pgcode", None) or getattr(error.orig, "sqlstate", None)
        return sqlstate in _RETRYABLE_SQLSTATES
    return False


def run_in_transaction(
        session,
        work: Callable[[], T],
        *,
        operation: str,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Runs work() and commits. Retries the whole unit on a concurrency conflict.

    Raises:
        AppError(CONCURRENT_UPDATE, 409) once policy.max_attempts are used up.
        Anything else work() or the commit raises, after a rollback.
    """
    if policy is None:
        policy = current_policy()

    attempt = 0
    while True:
        attempt += 1
        try:
            result = work()
            session.commit()
            return result
        except Exception as error:
            session.rollback()
            if not is_retryable(error):
                raise

            if attempt >= policy.max_attempts:
                logger.error(
                    "%s: giving up after %d attempts (%s)",
                    operation, attempt, error.__class__.__name__,
                )
                raise AppError(
                    ErrorCode.CONCURRENT_UPDATE,
                    "The group was modified concurrently. Please retry.",
                    409,
                ) from error

            delay = policy.delay_for(attempt)
            logger.warning(
                "%s: attempt %d/%d hit %s, retrying in %.3fs",
                operation, attempt, policy.max_attempts,
                error.__class__.__name__, delay,
            )
            if delay > 0:
                sleep(delay)
