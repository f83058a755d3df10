"""
routes/expenses.py — Expense route handlers.

Registered at url_prefix=/api/v1 because the blueprint owns both
/groups/:id/expenses and /expenses/:id.

Mutations run through run_in_transaction so a lost race on the group's
balance row is retried rather than surfaced.

Endpoints:
  POST   /groups/:id/expenses   → 201  create
  GET    /groups/:id/expenses   → 200  list active
  GET    /expenses/:id          → 200  one expense with splits
  PATCH  /expenses/:id          → 200  partial update (payer or owner)
  DELETE /expenses/:id          → 200  soft delete (payer or owner)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from billsplit.app import money
from billsplit.app.extensions import db
from billsplit.app.middleware.auth_middleware import require_auth
from billsplit.app.models.expense import Expense
from billsplit.app.schemas.expense_schema import CreateExpenseSchema, PatchExpenseSchema
from billsplit.app.services import expense_service
from billsplit.app.transactions import run_in_transaction

expenses_bp = Blueprint("expenses", __name__)


def _serialize_expense(expense: Expense) -> dict:
    """Amounts are strings at the currency's precision."""
    currency = expense.currency
    return {
        "id": expense.id,
        "group_id": expense.group_id,
        "paid_by_user_id": expense.paid_by_user_id,
        "paid_by_name": expense.payer.display_name,
        "description": expense.description,
        "amount": money.format_amount(expense.amount, currency),
        "currency": currency,
        "split_type": expense.split_type.value,
        "category": expense.category.value,
        "created_at": expense.created_at.isoformat(),
        "updated_at": expense.updated_at.isoformat() if expense.updated_at else None,
        "deleted_at": expense.deleted_at.isoformat() if expense.deleted_at else None,
        "splits": [
            {
                "user_id": s.user_id,
                "display_name": s.user.display_name,
                "amount": money.format_amount(s.amount, currency),
                "percentage": format(s.percentage.normalize(), "f") if s.percentage is not None else None,
            }
            for s in expense.splits
        ],
    }


@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["POST"])
@require_auth
def create_expense(group_id: int):
    data = CreateExpenseSchema().load(request.get_json(force=True) or {})
    expense = run_in_transaction(
        db.session,
        lambda: expense_service.create_expense(
            group_id=group_id,
            caller_id=g.user_id,
            data=data,
            session=db.session,
        ),
        operation="create_expense",
    )
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 201


@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["GET"])
@require_auth
def list_expenses(group_id: int):
    expenses = expense_service.list_expenses(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["GET"])
@require_auth
def get_expense(expense_id: int):
    expense = expense_service.get_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["PATCH"])
@require_auth
def edit_expense(expense_id: int):
    data = PatchExpenseSchema().load(request.get_json(force=True) or {})
    expense = run_in_transaction(
        db.session,
        lambda: expense_service.edit_expense(
            expense_id=expense_id,
            caller_id=g.user_id,
            data=data,
            session=db.session,
        ),
        operation="edit_expense",
    )
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["DELETE"])
@require_auth
def delete_expense(expense_id: int):
    run_in_transaction(
        db.session,
        lambda: expense_service.delete_expense(
            expense_id=expense_id,
            caller_id=g.user_id,
            session=db.session,
        ),
        operation="delete_expense",
    )
    return jsonify({
        "data": {"deleted": True, "expense_id": expense_id},
        "warnings": [],
    }), 200
