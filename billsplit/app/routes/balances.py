"""
routes/balances.py — Balance route handlers.

  GET /groups/:id/balances              → 200  materialized balance (O(1) read)
  GET /groups/:id/balances?category=X   → 200  live view of one category

The category view leaves settlements out and offers no simplified debts;
it is informational only.
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from billsplit.app.errors import AppError, ErrorCode
from billsplit.app.extensions import db
from billsplit.app.middleware.auth_middleware import require_auth
from billsplit.app.models.expense import Category
from billsplit.app.services import balance_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<int:group_id>/balances", methods=["GET"])
@require_auth
def get_balances(group_id: int):
    category_param = request.args.get("category")

    if category_param is None:
        result = balance_service.get_group_balance(
            group_id=group_id,
            caller_id=g.user_id,
            session=db.session,
        )
        return jsonify({"data": result, "warnings": []}), 200

    try:
        category = Category(category_param)
    except ValueError:
        raise AppError(
            ErrorCode.INVALID_CATEGORY,
            f"'{category_param}' is not a valid category. "
            f"Valid values: {', '.join(c.value for c in Category)}.",
            400,
            field="category",
        ) from None

    result = balance_service.compute_category_balances(
        group_id=group_id,
        caller_id=g.user_id,
        category=category,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
