"""
services/settlement_service.py — Settlement business logic.

Rules enforced here:
  FORBIDDEN (403)             caller must be a member; edit/delete is
                              reserved for the payer and the group owner
  SELF_SETTLEMENT (422)       payer and payee must differ (the payer comes
                              from the auth context, so the schema cannot check)
  RECIPIENT_NOT_MEMBER (422)  payee must be a group member
  SETTLEMENT_DELETED (422)    a soft-deleted settlement cannot be edited
  OVERPAYMENT (warning)       paying more than is owed is recorded anyway,
                              with a warning next to the 201

The overpayment check reads the pairwise debt from the cached balance, which
every mutation keeps current inside its own transaction.

Commits belong to the route; only flush here.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from billsplit.app import money
from billsplit.app.errors import AppError, ErrorCode, WarningCode
from billsplit.app.models.settlement import Settlement
from billsplit.app.services import balance_service
from billsplit.app.services.access import (
    get_group_or_404,
    is_member,
    require_member,
    require_payer_or_owner,
)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_settlement_or_404(settlement_id: int, session: Session) -> Settlement:
    settlement = session.get(Settlement, settlement_id)
    if settlement is None:
        raise AppError(
            ErrorCode.SETTLEMENT_NOT_FOUND,
            f"Settlement {settlement_id} does not exist.",
            404,
        )
    return settlement


def _validate_parties(group_id: int, payer_id: int, payee_id: int, session: Session) -> None:
    if payer_id == payee_id:
        raise AppError(
            ErrorCode.SELF_SETTLEMENT,
            "A settlement cannot be made to yourself.",
            422,
            field="paid_to_user_id",
        )
    if not is_member(group_id, payee_id, session):
        raise AppError(
            ErrorCode.RECIPIENT_NOT_MEMBER,
            f"User {payee_id} is not a member of group {group_id}.",
            422,
            field="paid_to_user_id",
        )


def _overpayment_warnings(
        group_id: int,
        payer_id: int,
        payee_id: int,
        amount: Decimal,
        currency: str,
        session: Session,
) -> list[dict]:
    """Compares against the debt as it stands before this settlement is applied."""
    current_debt = balance_service.get_pairwise_debt(group_id, payer_id, payee_id, currency, session)
    if amount <= current_debt:
        return []
    return [{
        "code": WarningCode.OVERPAYMENT,
        "message": (
            f"Settlement of {money.format_amount(amount, currency)} {currency} exceeds "
            f"the {money.format_amount(current_debt, currency)} {currency} user {payer_id} "
            f"owes user {payee_id}. Recorded anyway."
        ),
    }]


# ── Public service functions ───────────────────────────────────────────────

def create_settlement(
        group_id: int,
        paid_by_id: int,
        data: dict,
        session: Session,
) -> tuple[Settlement, list[dict]]:
    """
    Records a payment from the caller to paid_to_user_id.

    Args:
        paid_by_id: the authenticated user, who is the payer.
        data:       validated dict from CreateSettlementSchema.

    Returns:
        (Settlement, warnings); warnings is empty unless the payment overpays.
    """
    get_group_or_404(group_id, session)
    require_member(group_id, paid_by_id, session)

    paid_to_user_id: int = data["paid_to_user_id"]
    amount: Decimal = data["amount"]
    currency: str = data["currency"]

    _validate_parties(group_id, paid_by_id, paid_to_user_id, session)
    warnings = _overpayment_warnings(group_id, paid_by_id, paid_to_user_id, amount, currency, session)

    settlement = Settlement(
        group_id=group_id,
        paid_by_user_id=paid_by_id,
        paid_to_user_id=paid_to_user_id,
        amount=amount,
        currency=currency,
        note=data.get("note"),
        created_by_user_id=paid_by_id,
    )
    session.add(settlement)
    session.flush()

    balance_service.recompute_group_balance(group_id, session)
    return settlement, warnings


def list_settlements(group_id: int, caller_id: int, session: Session) -> list[Settlement]:
    """Active settlements for a group, newest first. Members only."""
    get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    stmt = (
        select(Settlement)
        .where(
            Settlement.group_id == group_id,
            Settlement.deleted_at.is_(None),
        )
        .order_by(Settlement.created_at.desc(), Settlement.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def update_settlement(
        settlement_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> Settlement:
    """
    Edits payee, amount, currency or note. The payer is fixed.

    Raises:
        AppError(SETTLEMENT_NOT_FOUND, 404), AppError(FORBIDDEN, 403),
        AppError(SETTLEMENT_DELETED, 422), AppError(SELF_SETTLEMENT, 422),
        AppError(RECIPIENT_NOT_MEMBER, 422), AppError(INVALID_AMOUNT_PRECISION, 400)
    """
    settlement = _get_settlement_or_404(settlement_id, session)
    require_member(settlement.group_id, caller_id, session)

    if settlement.is_deleted:
        raise AppError(
            ErrorCode.SETTLEMENT_DELETED,
            f"Settlement {settlement_id} has been deleted and cannot be edited.",
            422,
        )

    group = get_group_or_404(settlement.group_id, session)
    require_payer_or_owner(group, settlement.paid_by_user_id, caller_id, "edit", "settlement")

    if "paid_to_user_id" in data:
        _validate_parties(
            settlement.group_id, settlement.paid_by_user_id, data["paid_to_user_id"], session
        )
        settlement.paid_to_user_id = data["paid_to_user_id"]

    amount: Decimal = data.get("amount", settlement.amount)
    currency: str = data.get("currency", settlement.currency)
    if not money.has_valid_precision(amount, currency):
        raise AppError(
            ErrorCode.INVALID_AMOUNT_PRECISION,
            f"Amount {amount} has more decimal places than {currency} allows.",
            400,
            field="amount",
        )
    settlement.amount = amount
    settlement.currency = currency

    if "note" in data:
        settlement.note = data["note"]

    settlement.updated_at = datetime.now(timezone.utc)
    session.flush()

    balance_service.recompute_group_balance(settlement.group_id, session)
    return settlement


def delete_settlement(settlement_id: int, caller_id: int, session: Session) -> None:
    """Soft delete. Deleting an already-deleted settlement is a no-op."""
    settlement = _get_settlement_or_404(settlement_id, session)
    require_member(settlement.group_id, caller_id, session)

    group = get_group_or_404(settlement.group_id, session)
    require_payer_or_owner(group, settlement.paid_by_user_id, caller_id, "delete", "settlement")

    if settlement.is_deleted:
        return

    settlement.deleted_at = datetime.now(timezone.utc)
    session.flush()
    balance_service.recompute_group_balance(settlement.group_id, session)
