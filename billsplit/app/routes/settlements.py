"""
routes/settlements.py — Settlement route handlers.

Registered at url_prefix=/api/v1: the blueprint owns both
/groups/:id/settlements and /settlements/:id.

An overpaying settlement is still a 201; the OVERPAYMENT warning rides in
the envelope's `warnings` array.

Endpoints:
  POST   /groups/:id/settlements  → 201  record a payment (payer = caller)
  GET    /groups/:id/settlements  → 200  list active
  PATCH  /settlements/:id         → 200  edit (payer or owner)
  DELETE /settlements/:id         → 200  soft delete (payer or owner)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from billsplit.app import money
from billsplit.app.extensions import db
from billsplit.app.middleware.auth_middleware import require_auth
from billsplit.app.models.settlement import Settlement
from billsplit.app.schemas.settlement_schema import CreateSettlementSchema, PatchSettlementSchema
from billsplit.app.services import settlement_service
from billsplit.app.transactions import run_in_transaction

settlements_bp = Blueprint("settlements", __name__)


def _serialize_settlement(s: Settlement) -> dict:
    return {
        "id": s.id,
        "group_id": s.group_id,
        "paid_by_user_id": s.paid_by_user_id,
        "paid_to_user_id": s.paid_to_user_id,
        "amount": money.format_amount(s.amount, s.currency),
        "currency": s.currency,
        "note": s.note,
        "created_at": s.created_at.isoformat(),
        "updated_at": s.updated_at.isoformat() if s.updated_at else None,
    }


@settlements_bp.route("/groups/<int:group_id>/settlements", methods=["POST"])
@require_auth
def create_settlement(group_id: int):
    data = CreateSettlementSchema().load(request.get_json(force=True) or {})
    settlement, warnings = run_in_transaction(
        db.session,
        lambda: settlement_service.create_settlement(
            group_id=group_id,
            paid_by_id=g.user_id,
            data=data,
            session=db.session,
        ),
        operation="create_settlement",
    )
    return jsonify({"data": _serialize_settlement(settlement), "warnings": warnings}), 201


@settlements_bp.route("/groups/<int:group_id>/settlements", methods=["GET"])
@require_auth
def list_settlements(group_id: int):
    settlements = settlement_service.list_settlements(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_settlement(s) for s in settlements],
        "warnings": [],
    }), 200


@settlements_bp.route("/settlements/<int:settlement_id>", methods=["PATCH"])
@require_auth
def update_settlement(settlement_id: int):
    data = PatchSettlementSchema().load(request.get_json(force=True) or {})
    settlement = run_in_transaction(
        db.session,
        lambda: settlement_service.update_settlement(
            settlement_id=settlement_id,
            caller_id=g.user_id,
            data=data,
            session=db.session,
        ),
        operation="update_settlement",
    )
    return jsonify({"data": _serialize_settlement(settlement), "warnings": []}), 200


@settlements_bp.route("/settlements/<int:settlement_id>", methods=["DELETE"])
@require_auth
def delete_settlement(settlement_id: int):
    run_in_transaction(
        db.session,
        lambda: settlement_service.delete_settlement(
            settlement_id=settlement_id,
            caller_id=g.user_id,
            session=db.session,
        ),
        operation="delete_settlement",
    )
    return jsonify({
        "data": {"deleted": True, "settlement_id": settlement_id},
        "warnings": [],
    }), 200
