"""
tests/integration/test_settlements.py — Settlement endpoints.

The payer is always the caller; the body names only the payee. Paying more
than is owed is recorded with an OVERPAYMENT warning next to the 201.
"""

from __future__ import annotations

from .conftest import auth_headers, balances, make_expense, net_of, register, settle


def _bob_owes_alice(client, alice, bob, group, amount="100.00"):
    """Alice pays `amount` split equally with Bob."""
    resp = make_expense(
        client, alice["access_token"], group["id"], alice["user"]["id"], amount,
        participants=[alice["user"]["id"], bob["user"]["id"]],
    )
    assert resp.status_code == 201


class TestCreateSettlement:

    def test_settlement_offsets_debt(self, client, trio):
        alice, bob, carol, group = trio
        _bob_owes_alice(client, alice, bob, group)

        resp = settle(client, bob["access_token"], group["id"], alice["user"]["id"], "50.00")
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["warnings"] == []
        assert body["data"]["paid_by_user_id"] == bob["user"]["id"]
        assert body["data"]["paid_to_user_id"] == alice["user"]["id"]
        assert body["data"]["amount"] == "50.00"

        bal = balances(client, alice["access_token"], group["id"])
        assert net_of(bal, "USD", alice["user"]["id"]) == "0.00"
        assert net_of(bal, "USD", bob["user"]["id"]) == "0.00"
        assert bal["simplified_debts"] == []

    def test_partial_settlement(self, client, trio):
        alice, bob, carol, group = trio
        _bob_owes_alice(client, alice, bob, group)
        settle(client, bob["access_token"], group["id"], alice["user"]["id"], "20.00")

        bal = balances(client, alice["access_token"], group["id"])
        assert net_of(bal, "USD", bob["user"]["id"]) == "-30.00"
        assert bal["simplified_debts"][0]["amount"] == "30.00"

    def test_overpayment_is_recorded_with_warning(self, client, trio):
        alice, bob, carol, group = trio
        _bob_owes_alice(client, alice, bob, group)

        resp = settle(client, bob["access_token"], group["id"], alice["user"]["id"], "80.00")
        assert resp.status_code == 201
        (warning,) = resp.get_json()["warnings"]
        assert warning["code"] == "OVERPAYMENT"

        bal = balances(client, alice["access_token"], group["id"])
        assert net_of(bal, "USD", bob["user"]["id"]) == "30.00"
        assert net_of(bal, "USD", alice["user"]["id"]) == "-30.00"

    def test_paying_someone_you_owe_nothing_warns(self, client, trio):
        alice, bob, carol, group = trio
        resp = settle(client, bob["access_token"], group["id"], carol["user"]["id"], "5.00")
        assert resp.status_code == 201
        assert resp.get_json()["warnings"][0]["code"] == "OVERPAYMENT"

    def test_self_settlement_is_422(self, client, trio):
        alice, bob, carol, group = trio
        resp = settle(client, bob["access_token"], group["id"], bob["user"]["id"], "5.00")
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "SELF_SETTLEMENT"

    def test_payee_must_be_member(self, client, trio):
        alice, bob, carol, group = trio
        eve = register(client, "eve")
        resp = settle(client, bob["access_token"], group["id"], eve["user"]["id"], "5.00")
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "RECIPIENT_NOT_MEMBER"

    def test_non_member_cannot_settle(self, client, trio):
        alice, bob, carol, group = trio
        eve = register(client, "eve")
        resp = settle(client, eve["access_token"], group["id"], alice["user"]["id"], "5.00")
        assert resp.status_code == 403

    def test_settlement_precision_follows_currency(self, client, trio):
        alice, bob, carol, group = trio
        resp = settle(client, bob["access_token"], group["id"], alice["user"]["id"], "5.5", currency="JPY")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_AMOUNT_PRECISION"

    def test_settlement_in_other_currency_leaves_usd_alone(self, client, trio):
        alice, bob, carol, group = trio
        _bob_owes_alice(client, alice, bob, group)
        settle(client, bob["access_token"], group["id"], alice["user"]["id"], "50.00", currency="EUR")

        bal = balances(client, alice["access_token"], group["id"])
        assert net_of(bal, "USD", bob["user"]["id"]) == "-50.00"
        assert net_of(bal, "EUR", bob["user"]["id"]) == "50.00"


class TestListEditDelete:

    def test_list_settlements(self, client, trio):
        alice, bob, carol, group = trio
        settle(client, bob["access_token"], group["id"], alice["user"]["id"], "5.00")
        settle(client, carol["access_token"], group["id"], alice["user"]["id"], "7.00")

        resp = client.get(
            f"/api/v1/groups/{group['id']}/settlements", headers=auth_headers(alice["access_token"])
        )
        assert resp.status_code == 200
        assert [s["amount"] for s in resp.get_json()["data"]] == ["7.00", "5.00"]

    def test_edit_settlement_amount(self, client, trio):
        alice, bob, carol, group = trio
        _bob_owes_alice(client, alice, bob, group)
        created = settle(client, bob["access_token"], group["id"], alice["user"]["id"], "10.00").get_json()["data"]

        resp = client.patch(
            f"/api/v1/settlements/{created['id']}",
            json={"amount": "50.00", "note": "all square"},
            headers=auth_headers(bob["access_token"]),
        )
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["amount"] == "50.00"
        assert data["note"] == "all square"

        bal = balances(client, alice["access_token"], group["id"])
        assert net_of(bal, "USD", bob["user"]["id"]) == "0.00"

    def test_edit_to_self_is_422(self, client, trio):
        alice, bob, carol, group = trio
        created = settle(client, bob["access_token"], group["id"], alice["user"]["id"], "10.00").get_json()["data"]
        resp = client.patch(
            f"/api/v1/settlements/{created['id']}",
            json={"paid_to_user_id": bob["user"]["id"]},
            headers=auth_headers(bob["access_token"]),
        )
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "SELF_SETTLEMENT"

    def test_only_payer_or_owner_edits(self, client, trio):
        alice, bob, carol, group = trio
        created = settle(client, bob["access_token"], group["id"], alice["user"]["id"], "10.00").get_json()["data"]
        resp = client.patch(
            f"/api/v1/settlements/{created['id']}",
            json={"amount": "1.00"},
            headers=auth_headers(carol["access_token"]),
        )
        assert resp.status_code == 403

    def test_delete_settlement_restores_debt(self, client, trio):
        alice, bob, carol, group = trio
        _bob_owes_alice(client, alice, bob, group)
        created = settle(client, bob["access_token"], group["id"], alice["user"]["id"], "50.00").get_json()["data"]

        resp = client.delete(
            f"/api/v1/settlements/{created['id']}", headers=auth_headers(bob["access_token"])
        )
        assert resp.status_code == 200

        bal = balances(client, alice["access_token"], group["id"])
        assert net_of(bal, "USD", bob["user"]["id"]) == "-50.00"

        listed = client.get(
            f"/api/v1/groups/{group['id']}/settlements", headers=auth_headers(alice["access_token"])
        ).get_json()["data"]
        assert listed == []

    def test_edit_deleted_settlement_is_422(self, client, trio):
        alice, bob, carol, group = trio
        created = settle(client, bob["access_token"], group["id"], alice["user"]["id"], "10.00").get_json()["data"]
        client.delete(f"/api/v1/settlements/{created['id']}", headers=auth_headers(bob["access_token"]))

        resp = client.patch(
            f"/api/v1/settlements/{created['id']}",
            json={"amount": "5.00"},
            headers=auth_headers(bob["access_token"]),
        )
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "SETTLEMENT_DELETED"

    def test_missing_settlement_is_404(self, client, trio):
        alice, bob, carol, group = trio
        resp = client.delete("/api/v1/settlements/99999", headers=auth_headers(alice["access_token"]))
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "SETTLEMENT_NOT_FOUND"
