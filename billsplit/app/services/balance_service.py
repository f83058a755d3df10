"""
services/balance_service.py — Balance materializer.

This module is the only writer of GroupBalance. Every mutation that can move
money inside a group (expense or settlement create/edit/delete, member
add/remove) calls recompute_group_balance() inside its own transaction, so
the cached document is always consistent with the ledger it was built from.
Reads (get_group_balance, get_member_balance, get_pairwise_debt) never
recompute; they are a single primary-key lookup.

Pipeline:
  snapshot  active expenses (with splits), active settlements, member ids
  aggregate ledger_aggregator.aggregate()  → balances_by_currency
  simplify  debt_simplifier.simplify()     → simplified_debts
  persist   overwrite the row; SQLAlchemy bumps `version`

No Flask imports. Receives ints and a session, returns dicts or ORM rows.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from billsplit.app import money
from billsplit.app.errors import AppError, ErrorCode
from billsplit.app.models.expense import Category, Expense
from billsplit.app.models.group_balance import GroupBalance
from billsplit.app.models.settlement import Settlement
from billsplit.app.models.user import User
from billsplit.app.services import debt_simplifier, ledger_aggregator
from billsplit.app.services.access import get_group_or_404, get_member_ids, require_member

logger = logging.getLogger(__name__)


# ── Snapshot readers ───────────────────────────────────────────────────────
# Soft-deleted rows are filtered here, in the query, and again by the
# aggregator. Nothing balance-related reads Expense without this filter.

def get_active_expenses(
        group_id: int,
        session: Session,
        category: Category | None = None,
) -> list[Expense]:
    """Active expenses with their splits eagerly loaded, oldest first."""
    stmt = (
        select(Expense)
        .where(
            Expense.group_id == group_id,
            Expense.deleted_at.is_(None),
        )
        .options(selectinload(Expense.splits))
        .order_by(Expense.id.asc())
        .execution_options(populate_existing=True)
    )
    if category is not None:
        stmt = stmt.where(Expense.category == category)

    return list(session.execute(stmt).scalars().all())


def get_active_settlements(group_id: int, session: Session) -> list[Settlement]:
    stmt = (
        select(Settlement)
        .where(
            Settlement.group_id == group_id,
            Settlement.deleted_at.is_(None),
        )
        .order_by(Settlement.id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def _get_balance_row(group_id: int, session: Session) -> GroupBalance:
    """
    Every group gets its row at creation time. A missing row means the data
    is broken, not that the group is new.
    """
    row = session.get(GroupBalance, group_id)
    if row is None:
        raise AppError(
            ErrorCode.BALANCE_NOT_FOUND,
            f"Group {group_id} has no balance record.",
            500,
        )
    return row


def _display_names(user_ids: set[int], session: Session) -> dict[int, str]:
    if not user_ids:
        return {}
    stmt = select(User.id, User.display_name).where(User.id.in_(user_ids))
    return {uid: name for uid, name in session.execute(stmt).all()}


# ── Writers ────────────────────────────────────────────────────────────────

def initialise_group_balance(group_id: int, session: Session) -> GroupBalance:
    """Creates the all-zero document. Called in the same transaction as the group."""
    row = GroupBalance(
        group_id=group_id,
        balances_by_currency={},
        simplified_debts=[],
        last_updated_at=datetime.now(timezone.utc),
    )
    session.add(row)
    session.flush()
    return row


def recompute_group_balance(group_id: int, session: Session) -> GroupBalance:
    """
    Rebuilds and overwrites a group's cached balance.

    Runs inside the caller's transaction. If another transaction updated the
    row since it was read, the flush raises StaleDataError and the caller's
    run_in_transaction() retries the whole unit of work.

    Raises:
        AppError(BALANCE_NOT_FOUND, 500)
        AppError(INTERNAL_ERROR, 500)  ledger does not net to zero
    """
    row = _get_balance_row(group_id, session)

    expenses = get_active_expenses(group_id, session)
    settlements = get_active_settlements(group_id, session)
    member_ids = get_member_ids(group_id, session)

    balances = ledger_aggregator.aggregate(group_id, expenses, settlements, member_ids)
    debts = debt_simplifier.simplify(balances)

    # New objects, not in-place edits: plain JSON columns only notice reassignment.
    row.balances_by_currency = balances
    row.simplified_debts = [
        {**debt, "amount": money.format_amount(debt["amount"], debt["currency"])}
        for debt in debts
    ]
    row.last_updated_at = datetime.now(timezone.utc)
    session.flush()

    logger.info(
        "Recomputed balance for group %s: version=%s currencies=%s debts=%d",
        group_id, row.version, ",".join(sorted(balances)) or "-", len(debts),
    )
    return row


# ── Readers ────────────────────────────────────────────────────────────────

def get_group_balance(group_id: int, caller_id: int, session: Session) -> dict:
    """
    Payload for GET /groups/:id/balances. Members only.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)
        AppError(FORBIDDEN, 403)
        AppError(BALANCE_NOT_FOUND, 500)
    """
    get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)
    return serialize_balance(_get_balance_row(group_id, session), session)


def serialize_balance(row: GroupBalance, session: Session) -> dict:
    """Cached document plus display names, shaped for the API."""
    user_ids: set[int] = set()
    for members in row.balances_by_currency.values():
        user_ids.update(int(uid) for uid in members)
    names = _display_names(user_ids, session)

    def _name(user_id: int) -> str:
        return names.get(user_id, f"user_{user_id}")

    balances = {
        currency: [
            {
                **entry,
                "display_name": _name(entry["user_id"]),
            }
            for _, entry in sorted(members.items(), key=lambda item: int(item[0]))
        ]
        for currency, members in sorted(row.balances_by_currency.items())
    }

    return {
        "group_id": row.group_id,
        "version": row.version,
        "last_updated_at": row.last_updated_at.isoformat() if row.last_updated_at else None,
        "balances_by_currency": balances,
        "simplified_debts": [
            {
                **debt,
                "from_name": _name(debt["from_user_id"]),
                "to_name": _name(debt["to_user_id"]),
            }
            for debt in row.simplified_debts
        ],
    }


def get_member_balance(group_id: int, user_id: int, session: Session) -> dict[str, Decimal]:
    """
    {currency: net_balance} for one member, from the cache.
    Currencies the member has never touched are reported as zero.
    """
    row = _get_balance_row(group_id, session)
    result: dict[str, Decimal] = {}
    for currency, members in row.balances_by_currency.items():
        entry = members.get(str(user_id))
        result[currency] = Decimal(entry["net_balance"]) if entry else Decimal(0)
    return result


def get_pairwise_debt(
        group_id: int,
        debtor_id: int,
        creditor_id: int,
        currency: str,
        session: Session,
) -> Decimal:
    """What debtor_id currently owes creditor_id in `currency`. Never negative."""
    row = _get_balance_row(group_id, session)
    entry = row.balances_by_currency.get(currency, {}).get(str(debtor_id))
    if not entry:
        return Decimal(0)
    owed = entry["owes"].get(str(creditor_id))
    return Decimal(owed) if owed is not None else Decimal(0)


def compute_category_balances(
        group_id: int,
        caller_id: int,
        category: Category,
        session: Session,
) -> dict:
    """
    Live, informational view of one category's expenses.

    Settlements are not category-scoped, so they are left out and no
    simplified debts are offered: paying these figures would double count
    whatever has already been settled.
    """
    get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    expenses = get_active_expenses(group_id, session, category)
    member_ids = get_member_ids(group_id, session)
    balances = ledger_aggregator.aggregate(group_id, expenses, (), member_ids)

    user_ids = {int(uid) for members in balances.values() for uid in members}
    names = _display_names(user_ids, session)

    return {
        "group_id": group_id,
        "category": category.value,
        "balances_by_currency": {
            currency: [
                {**entry, "display_name": names.get(entry["user_id"], f"user_{entry['user_id']}")}
                for _, entry in sorted(members.items(), key=lambda item: int(item[0]))
            ]
            for currency, members in balances.items()
        },
        "simplified_debts": [],
    }
