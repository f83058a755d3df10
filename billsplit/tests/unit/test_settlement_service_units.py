"""Unit tests for settlement_service guards and the overpayment warning."""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from billsplit.app.errors import AppError, ErrorCode, WarningCode
from billsplit.app.services import settlement_service

_MODULE = "billsplit.app.services.settlement_service"


def test_self_settlement_is_rejected_before_any_lookup():
    session = MagicMock()
    with pytest.raises(AppError) as exc_info:
        settlement_service._validate_parties(1, 4, 4, session)
    assert exc_info.value.code == ErrorCode.SELF_SETTLEMENT
    assert exc_info.value.http_status == 422
    session.execute.assert_not_called()


def test_payee_must_be_member():
    with patch(f"{_MODULE}.is_member", return_value=False):
        with pytest.raises(AppError) as exc_info:
            settlement_service._validate_parties(1, 4, 5, MagicMock())
    assert exc_info.value.code == ErrorCode.RECIPIENT_NOT_MEMBER
    assert exc_info.value.field == "paid_to_user_id"


@pytest.mark.parametrize("owed,paid,warns", [
    ("50.00", "50.00", False),
    ("50.00", "20.00", False),
    ("50.00", "50.01", True),
    ("0", "1.00", True),
])
def test_overpayment_warning(owed, paid, warns):
    with patch(f"{_MODULE}.balance_service.get_pairwise_debt", return_value=Decimal(owed)):
        warnings = settlement_service._overpayment_warnings(1, 2, 3, Decimal(paid), "USD", MagicMock())
    assert bool(warnings) is warns
    if warns:
        assert warnings[0]["code"] == WarningCode.OVERPAYMENT
        assert "Recorded anyway" in warnings[0]["message"]


def test_create_returns_settlement_and_warnings():
    session = MagicMock()
    data = {"paid_to_user_id": 3, "amount": Decimal("80.00"), "currency": "USD", "note": "cash"}
    with patch(f"{_MODULE}.get_group_or_404"), \
            patch(f"{_MODULE}.require_member"), \
            patch(f"{_MODULE}.is_member", return_value=True), \
            patch(f"{_MODULE}.balance_service.get_pairwise_debt", return_value=Decimal("50.00")), \
            patch(f"{_MODULE}.balance_service.recompute_group_balance") as recompute:
        settlement, warnings = settlement_service.create_settlement(1, 2, data, session)

    assert settlement.paid_by_user_id == 2
    assert settlement.created_by_user_id == 2
    assert settlement.note == "cash"
    assert [w["code"] for w in warnings] == [WarningCode.OVERPAYMENT]
    session.add.assert_called_once_with(settlement)
    recompute.assert_called_once_with(1, session)


def test_update_deleted_settlement_is_rejected():
    stored = SimpleNamespace(group_id=1, paid_by_user_id=2, is_deleted=True)
    with patch(f"{_MODULE}._get_settlement_or_404", return_value=stored), \
            patch(f"{_MODULE}.require_member"):
        with pytest.raises(AppError) as exc_info:
            settlement_service.update_settlement(7, 2, {"amount": Decimal("1.00")}, MagicMock())
    assert exc_info.value.code == ErrorCode.SETTLEMENT_DELETED
