"""
services/split_calculator.py — Divides an expense amount among participants.

Three strategies:
  equal       total // n each; the first (total % n) participants, in the
              order given, get one extra minor unit.
              10.00 USD / 3 → [3.34, 3.33, 3.33]
  exact       caller supplies every share; they must add up to the total.
  percentage  floor(total * pct / 100) each; leftover minor units go
              one at a time to the non-zero percentages, largest first.

Everything is done in integer minor units of the expense currency (see
billsplit.app.money), so sum(result) == total holds exactly for every
strategy. All failures are raised before anything is written.

Pure Python: no Flask, no session.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal

from billsplit.app.errors import AppError, ErrorCode
from billsplit.app.models.expense import SplitType
from billsplit.app import money

# Percentages must add up to 100 within this many percentage points.
PERCENTAGE_TOLERANCE = Decimal("0.01")

_HUNDRED = Decimal(100)


def compute_splits(
        total_amount: Decimal,
        currency: str,
        participants: list[int],
        strategy: SplitType | str,
        strategy_params: list[dict] | None = None,
) -> list[dict]:
    """
    Returns [{"user_id": int, "amount": Decimal, "percentage": Decimal | None}]
    in participant order.

    Args:
        participants:    ordered user ids. For exact/percentage this is the
                         order of strategy_params.
        strategy_params: exact → [{"user_id", "amount"}]
                         percentage → [{"user_id", "percentage"}]
                         ignored for equal.

    Raises:
        AppError(NO_PARTICIPANTS, 422)
        AppError(DUPLICATE_SPLIT_USER, 400)
        AppError(SPLIT_SUM_MISMATCH, 422)        exact shares ≠ total
        AppError(PERCENTAGE_SUM_MISMATCH, 422)   percentages ≠ 100
        AppError(INVALID_AMOUNT_PRECISION, 400)  share finer than the currency allows
    """
    strategy = SplitType(strategy)
    participants = list(participants)

    if not participants:
        raise AppError(
            ErrorCode.NO_PARTICIPANTS,
            "An expense needs at least one participant.",
            422,
            field="participants",
        )
    if len(set(participants)) != len(participants):
        raise AppError(
            ErrorCode.DUPLICATE_SPLIT_USER,
            "The same user_id appears more than once.",
            400,
            field="splits",
        )

    total_units = money.to_minor_units(total_amount, currency)

    if strategy == SplitType.EQUAL:
        units = _equal_units(total_units, len(participants))
        percentages = [None] * len(participants)
    elif strategy == SplitType.EXACT:
        units = _exact_units(total_units, currency, participants, strategy_params or [])
        percentages = [None] * len(participants)
    else:
        percentages = _percentages_for(participants, strategy_params or [])
        units = _percentage_units(total_units, percentages)

    # Post-condition. A failure here is a bug, not bad input.
    if sum(units) != total_units:
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            f"{strategy.value} split produced {sum(units)} minor units "
            f"for a total of {total_units}.",
            500,
        )

    return [
        {
            "user_id": user_id,
            "amount": money.from_minor_units(share, currency),
            "percentage": pct,
        }
        for user_id, share, pct in zip(participants, units, percentages)
    ]


def _equal_units(total_units: int, n: int) -> list[int]:
    base, remainder = divmod(total_units, n)
    return [base + 1 if i < remainder else base for i in range(n)]


def _exact_units(
        total_units: int,
        currency: str,
        participants: list[int],
        params: list[dict],
) -> list[int]:
    by_user = {p["user_id"]: p.get("amount") for p in params}
    units: list[int] = []
    for user_id in participants:
        amount = by_user.get(user_id)
        if amount is None:
            raise AppError(
                ErrorCode.MISSING_FIELD,
                f"No amount given for user {user_id}.",
                400,
                field="splits",
            )
        try:
            units.append(money.to_minor_units(amount, currency))
        except ValueError:
            raise AppError(
                ErrorCode.INVALID_AMOUNT_PRECISION,
                f"Split amount {amount} has more decimal places than {currency} allows.",
                400,
                field="splits",
            ) from None

    # Shares are whole minor units, so "within one minor unit" means equal.
    if sum(units) != total_units:
        raise AppError(
            ErrorCode.SPLIT_SUM_MISMATCH,
            f"Split amounts ({money.format_amount(money.from_minor_units(sum(units), currency), currency)}) "
            f"do not equal expense amount "
            f"({money.format_amount(money.from_minor_units(total_units, currency), currency)}).",
            422,
            field="splits",
        )
    return units


def _percentages_for(participants: list[int], params: list[dict]) -> list[Decimal]:
    by_user = {p["user_id"]: p.get("percentage") for p in params}
    percentages: list[Decimal] = []
    for user_id in participants:
        pct = by_user.get(user_id)
        if pct is None:
            raise AppError(
                ErrorCode.MISSING_FIELD,
                f"No percentage given for user {user_id}.",
                400,
                field="splits",
            )
        pct = Decimal(pct)
        if pct < 0:
            raise AppError(
                ErrorCode.INVALID_FIELD,
                "Percentages must not be negative.",
                400,
                field="splits",
            )
        percentages.append(pct)

    total_pct = sum(percentages, Decimal(0))
    if abs(total_pct - _HUNDRED) > PERCENTAGE_TOLERANCE:
        raise AppError(
            ErrorCode.PERCENTAGE_SUM_MISMATCH,
            f"Percentages add up to {total_pct}, expected 100.",
            422,
            field="splits",
        )
    return percentages


def _percentage_units(total_units: int, percentages: list[Decimal]) -> list[int]:
    units = [
        int((Decimal(total_units) * pct / _HUNDRED).to_integral_value(rounding=ROUND_FLOOR))
        for pct in percentages
    ]

    # Percentages within tolerance of 100 can leave the floors short of or,
    # above 100, over the total. Only non-zero percentages absorb the
    # difference, largest first, ties in participant order.
    order = sorted(
        (idx for idx, pct in enumerate(percentages) if pct > 0),
        key=lambda idx: (-percentages[idx], idx),
    )
    leftover = total_units - sum(units)
    step = 1 if leftover > 0 else -1
    i = 0
    while leftover != 0:
        idx = order[i % len(order)]
        if step > 0 or units[idx] > 0:
            units[idx] += step
            leftover -= step
        i += 1
    return units
