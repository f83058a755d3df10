"""
tests/unit/test_ledger_aggregator.py — ledger_aggregator.aggregate().

Inputs are SimpleNamespace stand-ins for Expense / Split / Settlement rows;
the aggregator only reads attributes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from billsplit.app.errors import AppError, ErrorCode
from billsplit.app.services.ledger_aggregator import aggregate, net_balances


def _expense(payer: int, amount: str, shares: dict[int, str], currency: str = "USD", deleted: bool = False):
    return SimpleNamespace(
        paid_by_user_id=payer,
        amount=Decimal(amount),
        currency=currency,
        deleted_at=datetime.now(timezone.utc) if deleted else None,
        splits=[SimpleNamespace(user_id=uid, amount=Decimal(a)) for uid, a in shares.items()],
    )


def _settlement(payer: int, payee: int, amount: str, currency: str = "USD", deleted: bool = False):
    return SimpleNamespace(
        paid_by_user_id=payer,
        paid_to_user_id=payee,
        amount=Decimal(amount),
        currency=currency,
        deleted_at=datetime.now(timezone.utc) if deleted else None,
    )


class TestNet:

    def test_single_expense(self):
        doc = aggregate(1, [_expense(1, "30.00", {1: "10.00", 2: "10.00", 3: "10.00"})], [])
        assert {k: v["net_balance"] for k, v in doc["USD"].items()} == {
            "1": "20.00", "2": "-10.00", "3": "-10.00",
        }

    def test_settlement_moves_payer_up_and_payee_down(self):
        doc = aggregate(
            1,
            [_expense(1, "20.00", {1: "10.00", 2: "10.00"})],
            [_settlement(2, 1, "10.00")],
        )
        assert doc["USD"]["1"]["net_balance"] == "0.00"
        assert doc["USD"]["2"]["net_balance"] == "0.00"

    def test_deleted_rows_are_skipped(self):
        doc = aggregate(
            1,
            [_expense(1, "20.00", {1: "10.00", 2: "10.00"}, deleted=True)],
            [_settlement(2, 1, "5.00", deleted=True)],
        )
        assert doc == {}

    def test_members_without_activity_appear_as_zero(self):
        doc = aggregate(1, [_expense(1, "10.00", {1: "5.00", 2: "5.00"})], [], member_ids=[1, 2, 3])
        assert doc["USD"]["3"] == {"user_id": 3, "net_balance": "0.00", "owes": {}, "owed_by": {}}

    def test_currencies_are_kept_apart(self):
        doc = aggregate(
            1,
            [
                _expense(1, "10.00", {1: "5.00", 2: "5.00"}),
                _expense(2, "1000", {1: "500", 2: "500"}, currency="JPY"),
            ],
            [],
        )
        assert list(doc) == ["JPY", "USD"]
        assert doc["JPY"]["1"]["net_balance"] == "-500"
        assert doc["USD"]["1"]["net_balance"] == "5.00"

    def test_every_currency_sums_to_zero(self):
        doc = aggregate(
            1,
            [
                _expense(1, "71.17", {1: "23.73", 2: "23.72", 3: "23.72"}),
                _expense(3, "0.03", {1: "0.01", 2: "0.01", 3: "0.01"}),
            ],
            [_settlement(2, 3, "4.44")],
        )
        nets = net_balances(doc)
        assert sum(nets["USD"].values()) == Decimal(0)

    def test_inconsistent_expense_raises_internal_error(self):
        # Splits that do not add up to the amount can only come from corrupt data.
        with pytest.raises(AppError) as exc_info:
            aggregate(1, [_expense(1, "10.00", {1: "5.00", 2: "4.00"})], [])
        assert exc_info.value.code == ErrorCode.INTERNAL_ERROR
        assert exc_info.value.http_status == 500


class TestPairwise:

    def test_participant_owes_payer_their_share(self):
        doc = aggregate(1, [_expense(1, "30.00", {1: "10.00", 2: "10.00", 3: "10.00"})], [])
        assert doc["USD"]["2"]["owes"] == {"1": "10.00"}
        assert doc["USD"]["1"]["owed_by"] == {"2": "10.00", "3": "10.00"}
        assert doc["USD"]["1"]["owes"] == {}

    def test_opposite_directions_are_netted(self):
        doc = aggregate(
            1,
            [
                _expense(1, "50.00", {1: "25.00", 2: "25.00"}),
                _expense(2, "20.00", {1: "10.00", 2: "10.00"}),
            ],
            [],
        )
        assert doc["USD"]["2"]["owes"] == {"1": "15.00"}
        assert doc["USD"]["1"]["owes"] == {}

    def test_settlement_pays_down_pairwise_debt(self):
        doc = aggregate(
            1,
            [_expense(1, "50.00", {1: "25.00", 2: "25.00"})],
            [_settlement(2, 1, "10.00")],
        )
        assert doc["USD"]["2"]["owes"] == {"1": "15.00"}

    def test_overpayment_flips_direction(self):
        doc = aggregate(
            1,
            [_expense(1, "50.00", {1: "25.00", 2: "25.00"})],
            [_settlement(2, 1, "40.00")],
        )
        assert doc["USD"]["1"]["owes"] == {"2": "15.00"}
        assert doc["USD"]["2"]["owes"] == {}

    def test_zero_share_creates_no_debt(self):
        doc = aggregate(1, [_expense(1, "10.00", {1: "10.00", 2: "0.00"})], [])
        assert doc["USD"]["2"]["owes"] == {}


def test_net_balances_projection():
    doc = aggregate(1, [_expense(1, "10.00", {1: "5.00", 2: "5.00"})], [])
    assert net_balances(doc) == {"USD": {1: Decimal("5.00"), 2: Decimal("-5.00")}}
