"""
tests/integration/test_categories.py — GET /groups/:id/balances?category=X.

The category view is computed live from that category's expenses only.
Settlements are not categorised, so they are left out, and no simplified
debts are offered.
"""

from __future__ import annotations

from .conftest import auth_headers, make_expense, settle


def _category_balance(client, token, group_id, category):
    return client.get(
        f"/api/v1/groups/{group_id}/balances?category={category}",
        headers=auth_headers(token),
    )


def test_category_view_only_counts_that_category(client, trio):
    alice, bob, carol, group = trio
    make_expense(client, alice["access_token"], group["id"], alice["user"]["id"], "30.00", category="food")
    make_expense(client, bob["access_token"], group["id"], bob["user"]["id"], "60.00", category="transport")

    resp = _category_balance(client, alice["access_token"], group["id"], "food")
    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["category"] == "food"
    nets = {e["user_id"]: e["net_balance"] for e in data["balances_by_currency"]["USD"]}
    assert nets == {
        alice["user"]["id"]: "20.00",
        bob["user"]["id"]: "-10.00",
        carol["user"]["id"]: "-10.00",
    }
    assert data["simplified_debts"] == []


def test_category_view_ignores_settlements(client, trio):
    alice, bob, carol, group = trio
    make_expense(client, alice["access_token"], group["id"], alice["user"]["id"], "30.00", category="food")
    settle(client, bob["access_token"], group["id"], alice["user"]["id"], "10.00")

    data = _category_balance(client, alice["access_token"], group["id"], "food").get_json()["data"]
    nets = {e["user_id"]: e["net_balance"] for e in data["balances_by_currency"]["USD"]}
    assert nets[bob["user"]["id"]] == "-10.00"


def test_category_without_expenses_is_empty(client, trio):
    alice, bob, carol, group = trio
    make_expense(client, alice["access_token"], group["id"], alice["user"]["id"], "30.00", category="food")

    data = _category_balance(client, alice["access_token"], group["id"], "utilities").get_json()["data"]
    assert data["balances_by_currency"] == {}


def test_deleted_expenses_are_excluded(client, trio):
    alice, bob, carol, group = trio
    expense = make_expense(
        client, alice["access_token"], group["id"], alice["user"]["id"], "30.00", category="food"
    ).get_json()["data"]
    client.delete(f"/api/v1/expenses/{expense['id']}", headers=auth_headers(alice["access_token"]))

    data = _category_balance(client, alice["access_token"], group["id"], "food").get_json()["data"]
    assert data["balances_by_currency"] == {}


def test_unknown_category_is_400(client, trio):
    alice, bob, carol, group = trio
    resp = _category_balance(client, alice["access_token"], group["id"], "spaceships")
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "INVALID_CATEGORY"


def test_unknown_category_on_expense_is_400(client, trio):
    alice, bob, carol, group = trio
    resp = make_expense(
        client, alice["access_token"], group["id"], alice["user"]["id"], "30.00", category="spaceships"
    )
    assert resp.status_code == 400
    assert resp.get_json()["error"]["code"] == "INVALID_CATEGORY"


def test_expense_category_can_be_changed(client, trio):
    alice, bob, carol, group = trio
    expense = make_expense(
        client, alice["access_token"], group["id"], alice["user"]["id"], "30.00", category="food"
    ).get_json()["data"]
    resp = client.patch(
        f"/api/v1/expenses/{expense['id']}",
        json={"category": "entertainment"},
        headers=auth_headers(alice["access_token"]),
    )
    assert resp.status_code == 200
    assert resp.get_json()["data"]["category"] == "entertainment"

    data = _category_balance(client, alice["access_token"], group["id"], "food").get_json()["data"]
    assert data["balances_by_currency"] == {}
