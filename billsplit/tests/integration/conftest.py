"""
tests/integration/conftest.py — Fixtures and helpers for the HTTP tests.

  - One app per session, create_app("testing"). The database is in-memory
    SQLite unless TEST_DATABASE_URL points at PostgreSQL.
  - Tables come from db.create_all(); the models need nothing Alembic-only.
  - Rows are deleted after every test, children first.

Helpers are plain functions, not fixtures, so tests can call them with
whatever arguments they need:

  register(client, name)          → {"user", "access_token", "refresh_token"}
  login(client, email)            → same shape
  auth_headers(token)
  make_group(client, token)       → group dict
  add_member(client, token, group_id, user_id)   → response
  make_expense(client, token, group_id, ...)     → response
  settle(client, token, group_id, ...)           → response
  balances(client, token, group_id)              → balance payload
"""

from __future__ import annotations

import pytest
from sqlalchemy import text

from billsplit.app import create_app
from billsplit.app.extensions import db as _db

_TABLES_CHILDREN_FIRST = (
    "splits",
    "expenses",
    "settlements",
    "group_balances",
    "memberships",
    "refresh_tokens",
    "groups",
    "users",
)


@pytest.fixture(scope="session")
def app():
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def clean_tables(app):
    yield

    with app.app_context():
        _db.session.rollback()
        with _db.engine.connect() as conn:
            for table in _TABLES_CHILDREN_FIRST:
                conn.execute(text(f"DELETE FROM {table}"))
            conn.commit()
        _db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


# ── Helpers ────────────────────────────────────────────────────────────────

PASSWORD = "Password1"


def register(client, name: str = "alice", email: str | None = None, password: str = PASSWORD) -> dict:
    if email is None:
        email = f"{name}@test.com"
    resp = client.post(
        "/api/v1/auth/register",
        json={"email": email, "display_name": name.title(), "password": password},
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]


def login(client, email: str, password: str = PASSWORD) -> dict:
    resp = client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def make_group(client, token: str, name: str = "Test Group") -> dict:
    resp = client.post(
        "/api/v1/groups/",
        json={"name": name},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def add_member(client, token: str, group_id: int, user_id: int):
    return client.post(
        f"/api/v1/groups/{group_id}/members",
        json={"user_id": user_id},
        headers=auth_headers(token),
    )


def make_expense(
    client,
    token: str,
    group_id: int,
    paid_by_user_id: int,
    amount: str,
    currency: str = "USD",
    split_type: str = "equal",
    participants: list[int] | None = None,
    splits: list[dict] | None = None,
    description: str = "Test Expense",
    category: str = "other",
):
    """Equal splits default to every member; pass splits for exact/percentage."""
    payload: dict = {
        "paid_by_user_id": paid_by_user_id,
        "description": description,
        "amount": amount,
        "currency": currency,
        "split_type": split_type,
        "category": category,
    }
    if participants is not None:
        payload["participants"] = participants
    if splits is not None:
        payload["splits"] = splits

    return client.post(
        f"/api/v1/groups/{group_id}/expenses",
        json=payload,
        headers=auth_headers(token),
    )


def settle(client, token: str, group_id: int, paid_to_user_id: int, amount: str, currency: str = "USD"):
    return client.post(
        f"/api/v1/groups/{group_id}/settlements",
        json={"paid_to_user_id": paid_to_user_id, "amount": amount, "currency": currency},
        headers=auth_headers(token),
    )


def balances(client, token: str, group_id: int) -> dict:
    resp = client.get(
        f"/api/v1/groups/{group_id}/balances",
        headers=auth_headers(token),
    )
    assert resp.status_code == 200, f"balances failed: {resp.get_json()}"
    return resp.get_json()["data"]


def net_of(balance: dict, currency: str, user_id: int) -> str:
    """net_balance string for one member in one currency."""
    for entry in balance["balances_by_currency"][currency]:
        if entry["user_id"] == user_id:
            return entry["net_balance"]
    raise AssertionError(f"user {user_id} missing from {currency} balances")


@pytest.fixture
def trio(client):
    """Alice (owner), Bob and Carol in one group."""
    alice = register(client, "alice")
    bob = register(client, "bob")
    carol = register(client, "carol")
    group = make_group(client, alice["access_token"])
    for member in (bob, carol):
        resp = add_member(client, alice["access_token"], group["id"], member["user"]["id"])
        assert resp.status_code == 201
    return alice, bob, carol, group
