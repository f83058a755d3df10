"""
schemas/settlement_schema.py — Marshmallow schemas for settlement endpoints.

Checked here: field types, positive amount, currency code, precision for
that currency.
Checked in services/settlement_service.py (needs the caller or the DB):
SELF_SETTLEMENT, RECIPIENT_NOT_MEMBER, SETTLEMENT_DELETED, FORBIDDEN and
the OVERPAYMENT warning.

The payer is the authenticated user (flask.g.user_id), never the body.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate, validates_schema

from billsplit.app.schemas.expense_schema import (
    CurrencyField,
    check_precision,
    validate_currency,
    validate_positive_amount,
)


class CreateSettlementSchema(Schema):
    """POST /groups/:id/settlements"""

    paid_to_user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(
            min=1,
            error="paid_to_user_id must be a positive integer.",
        ),
    )

    # Overpaying is allowed; the service only warns.
    amount = fields.Decimal(
        required=True,
        validate=validate_positive_amount,
    )

    currency = CurrencyField(
        required=True,
        validate=validate_currency,
    )

    note = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=255),
    )

    @validates_schema
    def validate_precision(self, data: dict, **kwargs) -> None:
        check_precision(data["amount"], data["currency"], "amount")


class PatchSettlementSchema(Schema):
    """
    PATCH /settlements/:id

    The payer cannot be changed; delete and re-create instead.
    """

    paid_to_user_id = fields.Int(
        strict=True,
        validate=validate.Range(
            min=1,
            error="paid_to_user_id must be a positive integer.",
        ),
    )

    amount = fields.Decimal(validate=validate_positive_amount)

    currency = CurrencyField(validate=validate_currency)

    note = fields.Str(allow_none=True, validate=validate.Length(max=255))

    @validates_schema
    def validate_precision(self, data: dict, **kwargs) -> None:
        # Without a currency in the body the service checks against the stored one.
        if data.get("amount") is not None and data.get("currency") is not None:
            check_precision(data["amount"], data["currency"], "amount")
