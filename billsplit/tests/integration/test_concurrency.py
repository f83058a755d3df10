"""
tests/integration/test_concurrency.py — Optimistic locking on group_balances.

Two independent sessions against a file-backed SQLite database, so each has
its own connection. The in-memory test database shares a single connection
and cannot show two writers racing.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from billsplit.app.extensions import db
from billsplit.app.models.expense import Expense, SplitType
from billsplit.app.models.group import Group
from billsplit.app.models.group_balance import GroupBalance
from billsplit.app.models.membership import Membership
from billsplit.app.models.split import Split
from billsplit.app.models.user import User
from billsplit.app.services import balance_service
from billsplit.app.transactions import RetryPolicy, run_in_transaction

_NO_WAIT = RetryPolicy(max_attempts=3, base_delay=0.0, max_delay=0.0)


@pytest.fixture
def engine(app, tmp_path):
    file_engine = create_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    db.metadata.create_all(file_engine)
    yield file_engine
    file_engine.dispose()


@pytest.fixture
def seeded(engine):
    """Alice and Bob in one group with a zero balance row. Returns ids."""
    with Session(engine) as session:
        alice = User(email="alice@test.com", display_name="Alice", password_hash="x")
        bob = User(email="bob@test.com", display_name="Bob", password_hash="x")
        session.add_all([alice, bob])
        session.flush()

        group = Group(name="Flat", owner_user_id=alice.id)
        session.add(group)
        session.flush()
        session.add_all([
            Membership(group_id=group.id, user_id=alice.id),
            Membership(group_id=group.id, user_id=bob.id),
        ])
        balance_service.initialise_group_balance(group.id, session)
        session.commit()
        return group.id, alice.id, bob.id


def _add_expense(session: Session, group_id: int, payer_id: int, other_id: int, amount: str) -> None:
    total = Decimal(amount)
    half = total / 2
    expense = Expense(
        group_id=group_id,
        paid_by_user_id=payer_id,
        description="Groceries",
        amount=total,
        currency="USD",
        split_type=SplitType.EQUAL,
    )
    expense.splits = [
        Split(user_id=payer_id, amount=half, position=0),
        Split(user_id=other_id, amount=half, position=1),
    ]
    session.add(expense)
    session.flush()


def test_second_writer_on_a_stale_row_is_rejected(engine, seeded):
    group_id, alice_id, bob_id = seeded

    with Session(engine) as first, Session(engine) as second:
        first.get(GroupBalance, group_id)
        stale = second.get(GroupBalance, group_id)
        assert stale.version == 1

        _add_expense(first, group_id, alice_id, bob_id, "20.00")
        balance_service.recompute_group_balance(group_id, first)
        first.commit()

        _add_expense(second, group_id, bob_id, alice_id, "10.00")
        with pytest.raises(StaleDataError):
            balance_service.recompute_group_balance(group_id, second)
        second.rollback()

    with Session(engine) as check:
        row = check.get(GroupBalance, group_id)
        assert row.version == 2
        assert check.query(Expense).count() == 1
        assert row.balances_by_currency["USD"][str(bob_id)]["net_balance"] == "-10.00"


def test_retry_replays_the_losing_writer_on_fresh_state(engine, seeded):
    group_id, alice_id, bob_id = seeded
    attempts: list[int] = []

    with Session(engine) as first, Session(engine) as second:
        first.get(GroupBalance, group_id)
        second.get(GroupBalance, group_id)

        _add_expense(first, group_id, alice_id, bob_id, "20.00")
        balance_service.recompute_group_balance(group_id, first)
        first.commit()

        def losing_writer() -> GroupBalance:
            attempts.append(1)
            _add_expense(second, group_id, bob_id, alice_id, "10.00")
            return balance_service.recompute_group_balance(group_id, second)

        row = run_in_transaction(
            second,
            losing_writer,
            operation="add_expense",
            policy=_NO_WAIT,
            sleep=lambda _: None,
        )
        assert len(attempts) == 2
        assert row.version == 3

    with Session(engine) as check:
        row = check.get(GroupBalance, group_id)
        assert row.version == 3
        assert check.query(Expense).count() == 2
        # Alice is owed 10.00 and owes 5.00.
        assert row.balances_by_currency["USD"][str(alice_id)]["net_balance"] == "5.00"
        assert row.balances_by_currency["USD"][str(bob_id)]["net_balance"] == "-5.00"
