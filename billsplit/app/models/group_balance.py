"""
models/group_balance.py — Materialized per-group balance cache.

Exactly one row per group, created together with the group and overwritten
by balance_service.recompute_group_balance() after every mutation. Nothing
else writes to this table.

`version` doubles as the optimistic-concurrency token: SQLAlchemy adds
`WHERE version = :old` to every UPDATE and raises StaleDataError when another
transaction got there first. transactions.run_in_transaction() retries that.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billsplit.app.extensions import db


class GroupBalance(db.Model):
    __tablename__ = "group_balances"

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        primary_key=True,
    )

    # {"USD": {"1": {"user_id": 1, "net_balance": "25.00",
    #                "owes": {}, "owed_by": {"2": "25.00"}}}}
    balances_by_currency: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )

    # [{"from_user_id": 2, "to_user_id": 1, "amount": "25.00", "currency": "USD"}]
    simplified_debts: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    last_updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="balance",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<GroupBalance group_id={self.group_id} "
            f"version={self.version} "
            f"currencies={sorted(self.balances_by_currency or {})}>"
        )
