"""
services/debt_simplifier.py — Greedy minimum cash flow, per currency.

Repeatedly matches the largest creditor with the largest debtor and moves
min(credit, debt) between them. The party that reaches zero drops out; the
other goes back on its heap. Each currency therefore needs at most
creditors + debtors - 1 transfers, and the total transferred equals the sum
of positive balances.

Greedy is not globally minimal (that problem is NP-hard) but it is
deterministic: heap entries are (-magnitude, user_id), so ties go to the
smaller user id, and currencies are processed in sorted order.
"""

from __future__ import annotations

import heapq

from billsplit.app import money


def simplify(balances_by_currency: dict) -> list[dict]:
    """
    Args:
        balances_by_currency: the aggregator's document; only net_balance is read.

    Returns:
        [{"from_user_id": int, "to_user_id": int, "amount": Decimal, "currency": str}]
        An empty list means everyone is settled.
    """
    transfers: list[dict] = []

    for currency in sorted(balances_by_currency):
        creditors: list[tuple[int, int]] = []
        debtors: list[tuple[int, int]] = []

        for entry in balances_by_currency[currency].values():
            units = money.to_minor_units(entry["net_balance"], currency)
            if units > 0:
                creditors.append((-units, entry["user_id"]))
            elif units < 0:
                debtors.append((units, entry["user_id"]))

        heapq.heapify(creditors)
        heapq.heapify(debtors)

        while creditors and debtors:
            neg_credit, creditor_id = heapq.heappop(creditors)
            neg_debt, debtor_id = heapq.heappop(debtors)
            credit, debt = -neg_credit, -neg_debt

            transfer = min(credit, debt)
            transfers.append({
                "from_user_id": debtor_id,
                "to_user_id": creditor_id,
                "amount": money.from_minor_units(transfer, currency),
                "currency": currency,
            })

            if credit > transfer:
                heapq.heappush(creditors, (-(credit - transfer), creditor_id))
            if debt > transfer:
                heapq.heappush(debtors, (-(debt - transfer), debtor_id))

    return transfers
