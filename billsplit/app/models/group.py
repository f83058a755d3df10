"""
models/group.py — Expense-sharing groups.

A group owns its memberships, expenses and settlements, and exactly one
GroupBalance row created in the same transaction as the group. Deleting a
group removes all of them (services/group_service.delete_group).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, func, select
from sqlalchemy.orm import Mapped, column_property, mapped_column, relationship

from billsplit.app.extensions import db
from billsplit.app.models.membership import Membership


class Group(db.Model):
    __tablename__ = "groups"

    __table_args__ = (
        CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_groups_name_nonempty"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    owner_user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Loaded with the row; used by the group listings.
    member_count: Mapped[int] = column_property(
        select(func.count(Membership.user_id))
        .where(Membership.group_id == id)
        .correlate_except(Membership)
        .scalar_subquery()
    )

    owner: Mapped["User"] = relationship("User", foreign_keys=[owner_user_id])  # noqa: F821

    memberships: Mapped[list[Membership]] = relationship(
        Membership,
        back_populates="group",
    )
    expenses: Mapped[list["Expense"]] = relationship(  # noqa: F821
        "Expense",
        back_populates="group",
    )
    settlements: Mapped[list["Settlement"]] = relationship(  # noqa: F821
        "Settlement",
        back_populates="group",
    )
    balance: Mapped["GroupBalance | None"] = relationship(  # noqa: F821
        "GroupBalance",
        back_populates="group",
        uselist=False,
        passive_deletes=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Group id={self.id} name={self.name!r}>"
