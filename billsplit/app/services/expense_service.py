"""
services/expense_service.py — Expense business logic.

Rules enforced here (everything that needs the database):
  PAYER_NOT_MEMBER (422)       paid_by_user_id must be a group member
  SPLIT_USER_NOT_MEMBER (422)  every participant must be a group member
  EXPENSE_DELETED (422)        a soft-deleted expense cannot be edited
  FORBIDDEN (403)              caller must be a member; edit/delete is
                               reserved for the payer and the group owner

Share computation is delegated to split_calculator, which raises
SPLIT_SUM_MISMATCH / PERCENTAGE_SUM_MISMATCH / NO_PARTICIPANTS before any
row is written. Every successful mutation ends with
balance_service.recompute_group_balance() in the same transaction.

Commits belong to the route (via run_in_transaction); only flush here.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from billsplit.app import money
from billsplit.app.errors import AppError, ErrorCode
from billsplit.app.models.expense import Category, Expense, SplitType
from billsplit.app.models.split import Split
from billsplit.app.services import balance_service, split_calculator
from billsplit.app.services.access import (
    get_group_or_404,
    get_member_ids,
    require_member,
    require_payer_or_owner,
)

# PATCH keys that change who owes what and force a re-split.
_SPLIT_KEYS = ("amount", "currency", "split_type", "participants", "splits")


# ── Private helpers ────────────────────────────────────────────────────────

def _get_expense_or_404(expense_id: int, session: Session) -> Expense:
    """Returns the Expense (active or deleted) or raises EXPENSE_NOT_FOUND (404)."""
    expense = session.get(Expense, expense_id)
    if expense is None:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
            404,
        )
    return expense


def _validate_payer_is_member(paid_by_user_id: int, group_id: int, member_ids: list[int]) -> None:
    if paid_by_user_id not in member_ids:
        raise AppError(
            ErrorCode.PAYER_NOT_MEMBER,
            f"User {paid_by_user_id} is not a member of group {group_id}.",
            422,
            field="paid_by_user_id",
        )


def _validate_participants_are_members(
        participants: list[int],
        group_id: int,
        member_ids: list[int],
        field: str,
) -> None:
    member_set = set(member_ids)
    for user_id in participants:
        if user_id not in member_set:
            raise AppError(
                ErrorCode.SPLIT_USER_NOT_MEMBER,
                f"User {user_id} is not a member of group {group_id}.",
                422,
                field=field,
            )


def _resolve_split_inputs(
        split_type: SplitType,
        data: dict,
        member_ids: list[int],
        existing: Expense | None = None,
) -> tuple[list[int], list[dict] | None, str]:
    """
    Works out (participants, strategy_params, field) for the calculator.

    On create, an equal split without `participants` covers every member.
    On edit, whatever the request leaves out comes from the stored splits.
    """
    if split_type == SplitType.EQUAL:
        participants = data.get("participants")
        if participants is None:
            participants = (
                [s.user_id for s in existing.splits] if existing is not None else member_ids
            )
        return list(participants), None, "participants"

    splits = data.get("splits")
    if splits is None and existing is not None:
        if split_type == SplitType.EXACT:
            splits = [{"user_id": s.user_id, "amount": s.amount} for s in existing.splits]
        else:
            splits = [{"user_id": s.user_id, "percentage": s.percentage} for s in existing.splits]
    splits = splits or []
    return [s["user_id"] for s in splits], splits, "splits"


def _replace_splits(expense: Expense, computed: list[dict], session: Session) -> None:
    # Flush the deletes first: (expense_id, user_id) is unique and the unit
    # of work would otherwise insert the new rows before deleting the old.
    expense.splits.clear()
    session.flush()
    for position, share in enumerate(computed):
        expense.splits.append(Split(
            user_id=share["user_id"],
            amount=share["amount"],
            percentage=share["percentage"],
            position=position,
        ))
    session.flush()


# ── Public service functions ───────────────────────────────────────────────

def create_expense(
        group_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> Expense:
    """
    Records a new expense and refreshes the group's balance.

    Args:
        data: validated dict from CreateExpenseSchema.

    Raises:
        AppError(GROUP_NOT_FOUND, 404), AppError(FORBIDDEN, 403),
        AppError(PAYER_NOT_MEMBER, 422), AppError(SPLIT_USER_NOT_MEMBER, 422),
        and any split_calculator error.
    """
    get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    member_ids = get_member_ids(group_id, session)
    paid_by_user_id: int = data["paid_by_user_id"]
    _validate_payer_is_member(paid_by_user_id, group_id, member_ids)

    split_type: SplitType = data.get("split_type", SplitType.EQUAL)
    amount: Decimal = data["amount"]
    currency: str = data["currency"]

    participants, params, field = _resolve_split_inputs(split_type, data, member_ids)
    _validate_participants_are_members(participants, group_id, member_ids, field)
    computed = split_calculator.compute_splits(amount, currency, participants, split_type, params)

    expense = Expense(
        group_id=group_id,
        paid_by_user_id=paid_by_user_id,
        description=data["description"].strip(),
        amount=amount,
        currency=currency,
        split_type=split_type,
        category=data.get("category", Category.OTHER),
    )
    for position, share in enumerate(computed):
        expense.splits.append(Split(
            user_id=share["user_id"],
            amount=share["amount"],
            percentage=share["percentage"],
            position=position,
        ))
    session.add(expense)
    session.flush()

    balance_service.recompute_group_balance(group_id, session)
    return expense


def list_expenses(group_id: int, caller_id: int, session: Session) -> list[Expense]:
    """Active expenses for a group, newest first. Members only."""
    get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    stmt = (
        select(Expense)
        .where(
            Expense.group_id == group_id,
            Expense.deleted_at.is_(None),
        )
        .options(selectinload(Expense.splits).selectinload(Split.user), selectinload(Expense.payer))
        .order_by(Expense.created_at.desc(), Expense.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def get_expense(expense_id: int, caller_id: int, session: Session) -> Expense:
    """
    Returns one expense with its splits, deleted or not; deleted_at tells the
    client which.
    """
    expense = _get_expense_or_404(expense_id, session)
    require_member(expense.group_id, caller_id, session)
    return expense


def edit_expense(
        expense_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> Expense:
    """
    Partially updates an expense.

    Touching any of amount, currency, split_type, participants or splits
    re-runs the split calculator; inputs the request leaves out are taken
    from the stored expense. updated_at is stamped on every successful PATCH.

    Raises:
        AppError(EXPENSE_NOT_FOUND, 404), AppError(FORBIDDEN, 403),
        AppError(EXPENSE_DELETED, 422), AppError(PAYER_NOT_MEMBER, 422),
        AppError(SPLITS_SENT_FOR_EQUAL_SPLIT, 400),
        AppError(INVALID_AMOUNT_PRECISION, 400), and any split_calculator error.
    """
    expense = _get_expense_or_404(expense_id, session)
    require_member(expense.group_id, caller_id, session)

    if expense.is_deleted:
        raise AppError(
            ErrorCode.EXPENSE_DELETED,
            f"Expense {expense_id} has been deleted and cannot be edited.",
            422,
        )

    group = get_group_or_404(expense.group_id, session)
    require_payer_or_owner(group, expense.paid_by_user_id, caller_id, "edit", "expense")

    member_ids = get_member_ids(expense.group_id, session)

    if "description" in data:
        expense.description = data["description"].strip()

    if "category" in data:
        expense.category = data["category"]

    if "paid_by_user_id" in data:
        _validate_payer_is_member(data["paid_by_user_id"], expense.group_id, member_ids)
        expense.paid_by_user_id = data["paid_by_user_id"]

    if any(key in data for key in _SPLIT_KEYS):
        amount: Decimal = data.get("amount", expense.amount)
        currency: str = data.get("currency", expense.currency)
        split_type: SplitType = data.get("split_type", expense.split_type)

        if split_type == SplitType.EQUAL and "splits" in data:
            raise AppError(
                ErrorCode.SPLITS_SENT_FOR_EQUAL_SPLIT,
                "Do not send a splits array when split_type is 'equal'.",
                400,
                field="splits",
            )
        if split_type != SplitType.EQUAL and "participants" in data:
            raise AppError(
                ErrorCode.INVALID_FIELD,
                "participants is only used with split_type 'equal'.",
                400,
                field="participants",
            )
        if not money.has_valid_precision(amount, currency):
            raise AppError(
                ErrorCode.INVALID_AMOUNT_PRECISION,
                f"Amount {amount} has more decimal places than {currency} allows.",
                400,
                field="amount",
            )

        participants, params, field = _resolve_split_inputs(split_type, data, member_ids, expense)
        _validate_participants_are_members(participants, expense.group_id, member_ids, field)
        computed = split_calculator.compute_splits(amount, currency, participants, split_type, params)

        expense.amount = amount
        expense.currency = currency
        expense.split_type = split_type
        _replace_splits(expense, computed, session)

    expense.updated_at = datetime.now(timezone.utc)
    session.flush()

    balance_service.recompute_group_balance(expense.group_id, session)
    return expense


def delete_expense(expense_id: int, caller_id: int, session: Session) -> None:
    """
    Soft-deletes an expense. Splits stay for audit; the balance drops it.
    Deleting an already-deleted expense is a no-op.
    """
    expense = _get_expense_or_404(expense_id, session)
    require_member(expense.group_id, caller_id, session)

    group = get_group_or_404(expense.group_id, session)
    require_payer_or_owner(group, expense.paid_by_user_id, caller_id, "delete", "expense")

    if expense.is_deleted:
        return

    expense.deleted_at = datetime.now(timezone.utc)
    session.flush()
    balance_service.recompute_group_balance(expense.group_id, session)
