"""
services/access.py — Lookups and membership guards shared by the services.

Non-members get 403, not 404: a group's existence is not a secret, its
contents are.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from billsplit.app.errors import AppError, ErrorCode
from billsplit.app.models.group import Group
from billsplit.app.models.membership import Membership


def get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def get_member_ids(group_id: int, session: Session) -> list[int]:
    """Current members of a group, in the order they joined."""
    stmt = (
        select(Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.joined_at.asc(), Membership.user_id.asc())
    )
    return list(session.execute(stmt).scalars().all())


def is_member(group_id: int, user_id: int, session: Session) -> bool:
    membership = session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()
    return membership is not None


def require_member(group_id: int, user_id: int, session: Session) -> None:
    """Raises FORBIDDEN (403) if user_id is not a member of group_id."""
    if not is_member(group_id, user_id, session):
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


def require_payer_or_owner(
        group: Group,
        payer_id: int,
        caller_id: int,
        action: str,
        noun: str,
) -> None:
    """Edits and deletes are reserved for whoever paid and the group owner."""
    if caller_id not in (payer_id, group.owner_user_id):
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"Only the payer or group owner may {action} this {noun}.",
            403,
        )
