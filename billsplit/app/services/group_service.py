"""
services/group_service.py — Group and membership business logic.

Authorization:
  - Adding a member or deleting the group: owner only
  - Removing a member: the owner may remove anyone, a member may remove self

A member whose net balance is non-zero in any currency cannot be removed
(OUTSTANDING_BALANCE, 422): their debts would otherwise become unpayable.

Group creation also creates the all-zero GroupBalance row. Membership
changes recompute it, since every member appears in every currency.

Commits belong to the route; only flush here.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload

from billsplit.app.errors import AppError, ErrorCode
from billsplit.app.models.expense import Expense
from billsplit.app.models.group import Group
from billsplit.app.models.group_balance import GroupBalance
from billsplit.app.models.membership import Membership
from billsplit.app.models.settlement import Settlement
from billsplit.app.models.split import Split
from billsplit.app.models.user import User
from billsplit.app.services import balance_service
from billsplit.app.services.access import get_group_or_404, require_member

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _require_owner(group: Group, caller_id: int, action: str) -> None:
    if caller_id != group.owner_user_id:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"Only the group owner may {action}.",
            403,
        )


def _get_membership(group_id: int, user_id: int, session: Session) -> Membership | None:
    return session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()


def _member_dicts(group_id: int, session: Session) -> list[dict]:
    stmt = (
        select(User, Membership.joined_at)
        .join(Membership, User.id == Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.joined_at.asc(), Membership.user_id.asc())
    )
    return [
        {
            "id": user.id,
            "display_name": user.display_name,
            "email": user.email,
            "joined_at": joined_at.isoformat() if joined_at else None,
        }
        for user, joined_at in session.execute(stmt).all()
    ]


def _caller_net_balances(row: GroupBalance | None, user_id: int) -> dict[str, str]:
    """{currency: net_balance} for one user, straight from the cached document."""
    if row is None:
        return {}
    result = {}
    for currency, members in sorted(row.balances_by_currency.items()):
        entry = members.get(str(user_id))
        if entry is not None:
            result[currency] = entry["net_balance"]
    return result


# ── Public service functions ───────────────────────────────────────────────

def create_group(name: str, owner_id: int, session: Session) -> dict:
    """
    Creates a group with the caller as owner and first member, plus its
    zero balance, all in the caller's transaction.
    """
    group = Group(name=name.strip(), owner_user_id=owner_id)
    session.add(group)
    session.flush()

    session.add(Membership(user_id=owner_id, group_id=group.id))
    session.flush()

    row = balance_service.initialise_group_balance(group.id, session)

    return {
        "id": group.id,
        "name": group.name,
        "owner_user_id": group.owner_user_id,
        "created_at": group.created_at.isoformat() if group.created_at else None,
        "members": _member_dicts(group.id, session),
        "balance": balance_service.serialize_balance(row, session),
    }


def list_groups(user_id: int, session: Session) -> list[dict]:
    """
    Groups the user belongs to, oldest first, each with the user's own net
    balance per currency. Read from the cache; nothing is recomputed.
    """
    stmt = (
        select(Group)
        .join(Membership, Group.id == Membership.group_id)
        .where(Membership.user_id == user_id)
        .options(selectinload(Group.balance))
        .order_by(Group.created_at.asc(), Group.id.asc())
    )
    groups = session.execute(stmt).scalars().all()

    return [
        {
            "id": g.id,
            "name": g.name,
            "owner_user_id": g.owner_user_id,
            "created_at": g.created_at.isoformat() if g.created_at else None,
            "member_count": g.member_count,
            "my_balances": _caller_net_balances(g.balance, user_id),
        }
        for g in groups
    ]


def get_group(group_id: int, caller_id: int, session: Session) -> dict:
    """Group detail with members and the materialized balance. Members only."""
    group = get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    return {
        "id": group.id,
        "name": group.name,
        "owner_user_id": group.owner_user_id,
        "created_at": group.created_at.isoformat() if group.created_at else None,
        "members": _member_dicts(group_id, session),
        "balance": balance_service.get_group_balance(group_id, caller_id, session),
    }


def add_member(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        session: Session,
) -> dict:
    """
    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)        caller is not the owner
      AppError(USER_NOT_FOUND, 404)
      AppError(ALREADY_MEMBER, 409)
    """
    group = get_group_or_404(group_id, session)
    _require_owner(group, caller_id, "add members")

    target_user = session.get(User, target_user_id)
    if target_user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {target_user_id} does not exist.",
            404,
        )

    if _get_membership(group_id, target_user_id, session) is not None:
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"User {target_user_id} is already a member of group {group_id}.",
            409,
        )

    membership = Membership(user_id=target_user_id, group_id=group_id)
    session.add(membership)
    session.flush()

    balance_service.recompute_group_balance(group_id, session)

    return {
        "group_id": group_id,
        "user_id": target_user_id,
        "display_name": target_user.display_name,
        "joined_at": membership.joined_at.isoformat() if membership.joined_at else None,
    }


def remove_member(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        session: Session,
) -> None:
    """
    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)             not the owner and not removing self
      AppError(OWNER_CANNOT_LEAVE, 422)    target is the group owner
      AppError(USER_NOT_FOUND, 404)        target is not a member
      AppError(OUTSTANDING_BALANCE, 422)   target still owes or is owed money
    """
    group = get_group_or_404(group_id, session)
    require_member(group_id, caller_id, session)

    if caller_id not in (group.owner_user_id, target_user_id):
        raise AppError(
            ErrorCode.FORBIDDEN,
            "You may only remove yourself from a group unless you are the owner.",
            403,
        )

    if target_user_id == group.owner_user_id:
        raise AppError(
            ErrorCode.OWNER_CANNOT_LEAVE,
            "The group owner cannot leave or be removed from the group.",
            422,
        )

    membership = _get_membership(group_id, target_user_id, session)
    if membership is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {target_user_id} is not a member of group {group_id}.",
            404,
        )

    outstanding = {
        currency: net
        for currency, net in balance_service.get_member_balance(group_id, target_user_id, session).items()
        if net != Decimal(0)
    }
    if outstanding:
        summary = ", ".join(f"{net} {currency}" for currency, net in sorted(outstanding.items()))
        raise AppError(
            ErrorCode.OUTSTANDING_BALANCE,
            f"User {target_user_id} has an outstanding balance ({summary}) "
            f"and cannot leave group {group_id} until it is settled.",
            422,
        )

    session.delete(membership)
    session.flush()

    balance_service.recompute_group_balance(group_id, session)


def delete_group(group_id: int, caller_id: int, session: Session) -> None:
    """
    Owner only. Removes the group with its expenses, splits, settlements,
    memberships and balance. Soft-deleted rows go too; this is a hard delete.
    """
    group = get_group_or_404(group_id, session)
    _require_owner(group, caller_id, "delete the group")

    expense_ids = select(Expense.id).where(Expense.group_id == group_id)
    session.execute(
        delete(Split).where(Split.expense_id.in_(expense_ids)).execution_options(synchronize_session=False)
    )
    for model in (Expense, Settlement, Membership, GroupBalance):
        session.execute(
            delete(model).where(model.group_id == group_id).execution_options(synchronize_session=False)
        )
    # Children are gone at this point, so the ORM delete has nothing to null out.
    session.delete(group)
    session.flush()

    logger.info("Deleted group %s (requested by user %s)", group_id, caller_id)
