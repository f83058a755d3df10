"""
tests/unit/test_transactions.py — run_in_transaction retry behaviour.

The session is a MagicMock; a fake sleep records backoff delays instead of
waiting.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from billsplit.app.errors import AppError, ErrorCode
from billsplit.app.transactions import RetryPolicy, is_retryable, run_in_transaction


class _FakeSleep:
    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _operational(sqlstate: str) -> OperationalError:
    orig = Exception("db said no")
    orig.pgcode = sqlstate
    return OperationalError("UPDATE group_balances ...", {}, orig)


POLICY = RetryPolicy(max_attempts=3, base_delay=0.1, max_delay=0.15)


def test_success_commits_once():
    session = MagicMock()
    result = run_in_transaction(session, lambda: "ok", operation="op", policy=POLICY)
    assert result == "ok"
    session.commit.assert_called_once()
    session.rollback.assert_not_called()


def test_conflict_is_retried_then_succeeds():
    session = MagicMock()
    sleep = _FakeSleep()
    attempts = {"n": 0}

    def work():
        attempts["n"] += 1
        if attempts["n"] == 1:
            raise StaleDataError("version mismatch")
        return attempts["n"]

    assert run_in_transaction(session, work, operation="op", policy=POLICY, sleep=sleep) == 2
    assert session.rollback.call_count == 1
    assert session.commit.call_count == 1
    assert sleep.calls == [0.1]


def test_conflict_on_commit_is_retried():
    session = MagicMock()
    session.commit.side_effect = [StaleDataError("lost race"), None]
    sleep = _FakeSleep()

    assert run_in_transaction(session, lambda: 1, operation="op", policy=POLICY, sleep=sleep) == 1
    assert session.commit.call_count == 2


def test_exhaustion_raises_concurrent_update():
    session = MagicMock()
    sleep = _FakeSleep()

    def work():
        raise StaleDataError("always")

    with pytest.raises(AppError) as exc_info:
        run_in_transaction(session, work, operation="op", policy=POLICY, sleep=sleep)

    assert exc_info.value.code == ErrorCode.CONCURRENT_UPDATE
    assert exc_info.value.http_status == 409
    assert isinstance(exc_info.value.__cause__, StaleDataError)
    assert session.rollback.call_count == 3
    # Backoff doubles and is capped; no sleep after the final attempt.
    assert sleep.calls == [0.1, 0.15]


def test_other_errors_roll_back_and_propagate_without_retry():
    session = MagicMock()
    sleep = _FakeSleep()
    error = AppError(ErrorCode.FORBIDDEN, "no", 403)

    def work():
        raise error

    with pytest.raises(AppError) as exc_info:
        run_in_transaction(session, work, operation="op", policy=POLICY, sleep=sleep)

    assert exc_info.value is error
    session.rollback.assert_called_once()
    session.commit.assert_not_called()
    assert sleep.calls == []


def test_zero_delay_does_not_sleep():
    session = MagicMock()
    session.commit.side_effect = [StaleDataError("x"), None]
    sleep = _FakeSleep()
    policy = RetryPolicy(max_attempts=2, base_delay=0.0, max_delay=0.0)

    run_in_transaction(session, lambda: None, operation="op", policy=policy, sleep=sleep)
    assert sleep.calls == []


@pytest.mark.parametrize("error,expected", [
    (StaleDataError("x"), True),
    (_operational("40001"), True),
    (_operational("40P01"), True),
    (_operational("23505"), False),
    (ValueError("x"), False),
])
def test_is_retryable(error, expected):
    assert is_retryable(error) is expected


def test_policy_from_config():
    policy = RetryPolicy.from_config({
        "TRANSACTION_MAX_ATTEMPTS": 0,
        "TRANSACTION_RETRY_BACKOFF_SECONDS": 0.2,
        "TRANSACTION_RETRY_MAX_BACKOFF_SECONDS": 2,
    })
    assert policy.max_attempts == 1
    assert policy.delay_for(1) == 0.2
    assert policy.delay_for(2) == 0.4
    assert policy.delay_for(10) == 2.0
