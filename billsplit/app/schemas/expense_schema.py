"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation split:
  - This file (request shape, 400):
      field types and lengths, currency code, enum values,
      amount precision for the given currency,
      SPLITS_SENT_FOR_EQUAL_SPLIT, DUPLICATE_SPLIT_USER,
      splits required for exact / percentage
  - services/expense_service.py (needs the database, 4xx):
      PAYER_NOT_MEMBER, SPLIT_USER_NOT_MEMBER, EXPENSE_DELETED, FORBIDDEN
  - services/split_calculator.py:
      SPLIT_SUM_MISMATCH, PERCENTAGE_SUM_MISMATCH, NO_PARTICIPANTS

Inherits from marshmallow.Schema directly, never ma.Schema (see extensions.py).
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    validate,
    validates_schema,
)

from billsplit.app import money
from billsplit.app.errors import ErrorCode
from billsplit.app.models.expense import Category, SplitType

# Numeric(15, 3) leaves twelve integer digits.
MAX_AMOUNT = Decimal("999999999999")


# ── Shared validators ──────────────────────────────────────────────────────

def validate_positive_amount(value: Decimal) -> None:
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if value > MAX_AMOUNT:
        raise ValidationError("Amount is too large.")


def validate_currency(value: str) -> None:
    if not money.is_supported_currency(value):
        raise ValidationError(ErrorCode.INVALID_CURRENCY)


# splits.percentage is Numeric(7, 4).
PERCENTAGE_PLACES = 4


def validate_percentage_places(value: Decimal) -> None:
    if value.is_finite() and value.normalize().as_tuple().exponent < -PERCENTAGE_PLACES:
        raise ValidationError(
            f"percentage allows at most {PERCENTAGE_PLACES} decimal places."
        )


def validate_non_empty_after_trim(value: str) -> None:
    """validate.Length(min=1) lets "   " through; the DB CHECK would not."""
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def check_precision(amount: Decimal, currency: str, field: str) -> None:
    """INVALID_AMOUNT_PRECISION if `amount` is finer than the currency's minor unit."""
    if not money.has_valid_precision(amount, currency):
        raise ValidationError({field: [ErrorCode.INVALID_AMOUNT_PRECISION]})


class CurrencyField(fields.Str):
    """ISO-4217 code; accepts any case, stores upper case."""

    def _deserialize(self, value, attr, data, **kwargs):
        return super()._deserialize(value, attr, data, **kwargs).strip().upper()


# ── Sub-schema: one entry in `splits` ─────────────────────────────────────

class SplitInputSchema(Schema):
    """
    {"user_id": 2, "amount": "12.50"}      split_type=exact
    {"user_id": 2, "percentage": "37.5"}   split_type=percentage
    """

    user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )

    # Zero is a legal share: the participant is in, but owes nothing.
    amount = fields.Decimal(
        load_default=None,
        validate=validate.Range(min=Decimal("0"), max=MAX_AMOUNT),
    )

    percentage = fields.Decimal(
        load_default=None,
        validate=[
            validate.Range(
                min=Decimal("0"),
                max=Decimal("100"),
                error="percentage must be between 0 and 100.",
            ),
            validate_percentage_places,
        ],
    )


def _check_split_shape(
        split_type: SplitType | None,
        splits: list[dict] | None,
        participants: list[int] | None,
) -> None:
    """Request-shape rules shared by create and patch."""
    if split_type == SplitType.EQUAL:
        if splits is not None:
            raise ValidationError({"splits": [ErrorCode.SPLITS_SENT_FOR_EQUAL_SPLIT]})
        if participants is not None and len(participants) != len(set(participants)):
            raise ValidationError({"participants": [ErrorCode.DUPLICATE_SPLIT_USER]})
        return

    if split_type is not None and participants is not None:
        raise ValidationError(
            {"participants": ["participants is only used with split_type 'equal'."]}
        )

    if split_type in (SplitType.EXACT, SplitType.PERCENTAGE) and splits is None:
        raise ValidationError(
            {"splits": [f"splits is required when split_type is '{split_type.value}'."]}
        )

    if splits is None:
        return

    user_ids = [s["user_id"] for s in splits]
    if len(user_ids) != len(set(user_ids)):
        raise ValidationError({"splits": [ErrorCode.DUPLICATE_SPLIT_USER]})

    if split_type == SplitType.EXACT and any(s.get("amount") is None for s in splits):
        raise ValidationError(
            {"splits": ["Every split needs an amount when split_type is 'exact'."]}
        )
    if split_type == SplitType.PERCENTAGE and any(s.get("percentage") is None for s in splits):
        raise ValidationError(
            {"splits": ["Every split needs a percentage when split_type is 'percentage'."]}
        )


# ── Create expense ─────────────────────────────────────────────────────────

class CreateExpenseSchema(Schema):
    """
    POST /groups/:id/expenses

    split_type:
      equal       no splits; optional `participants` (defaults to every member)
      exact       splits [{user_id, amount}] that add up to `amount`
      percentage  splits [{user_id, percentage}] that add up to 100
    """

    paid_by_user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="paid_by_user_id must be a positive integer."),
    )

    description = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Description must be between 1 and 255 characters.",
            ),
            validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(
        required=True,
        validate=validate_positive_amount,
    )

    currency = CurrencyField(
        required=True,
        validate=validate_currency,
    )

    split_type = fields.Enum(
        SplitType,
        load_default=SplitType.EQUAL,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )

    category = fields.Enum(
        Category,
        load_default=Category.OTHER,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_CATEGORY},
    )

    participants = fields.List(
        fields.Int(strict=True, validate=validate.Range(min=1)),
        load_default=None,
    )

    splits = fields.List(
        fields.Nested(SplitInputSchema),
        load_default=None,
    )

    @validates_schema
    def validate_split_and_precision(self, data: dict, **kwargs) -> None:
        currency = data["currency"]
        check_precision(data["amount"], currency, "amount")

        _check_split_shape(data["split_type"], data.get("splits"), data.get("participants"))

        for split in data.get("splits") or []:
            if split.get("amount") is not None:
                check_precision(split["amount"], currency, "splits")


# ── Patch expense ──────────────────────────────────────────────────────────

class PatchExpenseSchema(Schema):
    """
    PATCH /expenses/:id — every field optional.

    Anything that affects the shares (amount, currency, split_type,
    participants, splits) makes the service re-split the expense. Missing
    inputs are taken from the stored expense: its participants for equal,
    its share amounts for exact, its percentages for percentage. An amount
    change on an exact split therefore needs new splits, or it fails the
    sum check.
    """

    paid_by_user_id = fields.Int(
        strict=True,
        validate=validate.Range(min=1, error="paid_by_user_id must be a positive integer."),
    )

    description = fields.Str(
        validate=[
            validate.Length(
                min=1,
                max=255,
                error="Description must be between 1 and 255 characters.",
            ),
            validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(validate=validate_positive_amount)

    currency = CurrencyField(validate=validate_currency)

    split_type = fields.Enum(
        SplitType,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )

    category = fields.Enum(
        Category,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_CATEGORY},
    )

    participants = fields.List(fields.Int(strict=True, validate=validate.Range(min=1)))

    splits = fields.List(fields.Nested(SplitInputSchema))

    @validates_schema
    def validate_patch_shape(self, data: dict, **kwargs) -> None:
        _check_split_shape(data.get("split_type"), data.get("splits"), data.get("participants"))

        # Precision against the stored currency is checked by the service.
        currency = data.get("currency")
        if currency is None:
            return
        if data.get("amount") is not None:
            check_precision(data["amount"], currency, "amount")
        for split in data.get("splits") or []:
            if split.get("amount") is not None:
                check_precision(split["amount"], currency, "splits")
