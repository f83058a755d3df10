"""
models/membership.py — Who belongs to which group.

Keyed by (group_id, user_id): a user is in a group at most once. Removing a
member deletes the row; their past expenses and settlements stay.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billsplit.app.extensions import db


class Membership(db.Model):
    __tablename__ = "memberships"

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        primary_key=True,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        primary_key=True,
        index=True,
    )

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    user: Mapped["User"] = relationship("User", back_populates="memberships")  # noqa: F821
    group: Mapped["Group"] = relationship("Group", back_populates="memberships")  # noqa: F821

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Membership group_id={self.group_id} user_id={self.user_id}>"
