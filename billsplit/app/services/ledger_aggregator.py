"""
services/ledger_aggregator.py — Folds expenses and settlements into balances.

Canonical formula, per currency:
  expense     payer  += amount          each participant -= share
  settlement  payer  += amount          payee            -= amount

Positive net_balance: the member is owed money. Negative: the member owes.

Alongside the net figure every member carries pairwise detail:
  owes     {creditor_id: amount}   what this member still owes each creditor
  owed_by  {debtor_id: amount}     what each debtor still owes this member
A participant owes the payer their share; a settlement pays that down. The
two directions between a pair are netted, so at most one of them is non-zero.

All arithmetic is in integer minor units. The result is the JSON document
stored on GroupBalance.balances_by_currency, with amounts as strings and ids
as string keys so a round trip through JSON is lossless.

Pure: takes snapshots, returns plain dicts, never touches a session.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Iterable

from billsplit.app import money
from billsplit.app.errors import AppError, ErrorCode


def aggregate(
        group_id: int,
        expenses: Iterable,
        settlements: Iterable,
        member_ids: Iterable[int] = (),
) -> dict[str, dict[str, dict]]:
    """
    Builds balances_by_currency for a group.

    Args:
        expenses:    Expense-like objects with paid_by_user_id, amount,
                     currency, deleted_at and splits (user_id, amount).
        settlements: Settlement-like objects with paid_by_user_id,
                     paid_to_user_id, amount, currency, deleted_at.
        member_ids:  current members; each appears in every currency present.

    Returns:
        {"USD": {"1": {"user_id": 1, "net_balance": "25.00",
                       "owes": {}, "owed_by": {"2": "25.00"}}}}

    Raises:
        AppError(INTERNAL_ERROR, 500) if a currency does not net to zero.
    """
    # net[currency][user] and pair[currency][(debtor, creditor)], in minor units
    net: dict[str, dict[int, int]] = defaultdict(lambda: defaultdict(int))
    pair: dict[str, dict[tuple[int, int], int]] = defaultdict(lambda: defaultdict(int))

    for expense in expenses:
        if expense.deleted_at is not None:
            continue
        currency = expense.currency
        payer = expense.paid_by_user_id
        net[currency][payer] += money.to_minor_units(expense.amount, currency)
        for split in expense.splits:
            share = money.to_minor_units(split.amount, currency)
            net[currency][split.user_id] -= share
            if split.user_id != payer and share:
                pair[currency][(split.user_id, payer)] += share

    for settlement in settlements:
        if settlement.deleted_at is not None:
            continue
        currency = settlement.currency
        amount = money.to_minor_units(settlement.amount, currency)
        payer = settlement.paid_by_user_id
        payee = settlement.paid_to_user_id
        net[currency][payer] += amount
        net[currency][payee] -= amount
        pair[currency][(payer, payee)] -= amount

    members = list(member_ids)
    result: dict[str, dict[str, dict]] = {}

    for currency in sorted(net):
        totals = net[currency]
        for member_id in members:
            totals.setdefault(member_id, 0)

        imbalance = sum(totals.values())
        if imbalance != 0:
            raise AppError(
                ErrorCode.INTERNAL_ERROR,
                f"Balance integrity check failed for group {group_id}: "
                f"{currency} nets to {money.from_minor_units(imbalance, currency)} "
                f"instead of zero.",
                500,
            )

        owes, owed_by = _net_pairs(pair[currency])
        result[currency] = {
            str(user_id): {
                "user_id": user_id,
                "net_balance": money.format_amount(
                    money.from_minor_units(totals[user_id], currency), currency
                ),
                "owes": _format_pairs(owes.get(user_id, {}), currency),
                "owed_by": _format_pairs(owed_by.get(user_id, {}), currency),
            }
            for user_id in sorted(totals)
        }

    return result


def _net_pairs(
        raw: dict[tuple[int, int], int],
) -> tuple[dict[int, dict[int, int]], dict[int, dict[int, int]]]:
    """Nets A→B against B→A and splits the survivors into owes / owed_by."""
    owes: dict[int, dict[int, int]] = defaultdict(dict)
    owed_by: dict[int, dict[int, int]] = defaultdict(dict)

    seen: set[tuple[int, int]] = set()
    for a, b in raw:
        key = (min(a, b), max(a, b))
        if key in seen:
            continue
        seen.add(key)
        low, high = key
        # positive: low owes high
        amount = raw.get((low, high), 0) - raw.get((high, low), 0)
        if amount > 0:
            owes[low][high] = amount
            owed_by[high][low] = amount
        elif amount < 0:
            owes[high][low] = -amount
            owed_by[low][high] = -amount

    return owes, owed_by


def _format_pairs(pairs: dict[int, int], currency: str) -> dict[str, str]:
    return {
        str(other): money.format_amount(money.from_minor_units(units, currency), currency)
        for other, units in sorted(pairs.items())
    }


def net_balances(balances_by_currency: dict) -> dict[str, dict[int, Decimal]]:
    """Projects a balances document down to {currency: {user_id: Decimal}}."""
    return {
        currency: {
            int(user_id): Decimal(entry["net_balance"])
            for user_id, entry in members.items()
        }
        for currency, members in balances_by_currency.items()
    }
