"""
routes/groups.py — Group and membership route handlers.

Parse, validate, call ONE service inside run_in_transaction, return the
envelope. Reads skip the transaction wrapper.

Endpoints (url_prefix=/api/v1/groups):
  POST   /                        → 201  create group (+ owner membership, zero balance)
  GET    /                        → 200  caller's groups with caller's balances
  GET    /:id                     → 200  group, members, balance
  DELETE /:id                     → 200  delete group (owner only)
  POST   /:id/members             → 201  add member (owner only)
  DELETE /:id/members/:uid        → 200  remove member (owner or self)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from billsplit.app.extensions import db
from billsplit.app.middleware.auth_middleware import require_auth
from billsplit.app.schemas.group_schema import AddMemberSchema, CreateGroupSchema
from billsplit.app.services import group_service
from billsplit.app.transactions import run_in_transaction

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("/", methods=["POST"])
@require_auth
def create_group():
    data = CreateGroupSchema().load(request.get_json(force=True) or {})
    result = run_in_transaction(
        db.session,
        lambda: group_service.create_group(
            name=data["name"],
            owner_id=g.user_id,
            session=db.session,
        ),
        operation="create_group",
    )
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/", methods=["GET"])
@require_auth
def list_groups():
    result = group_service.list_groups(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["GET"])
@require_auth
def get_group(group_id: int):
    result = group_service.get_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["DELETE"])
@require_auth
def delete_group(group_id: int):
    run_in_transaction(
        db.session,
        lambda: group_service.delete_group(
            group_id=group_id,
            caller_id=g.user_id,
            session=db.session,
        ),
        operation="delete_group",
    )
    return jsonify({
        "data": {"deleted": True, "group_id": group_id},
        "warnings": [],
    }), 200


@groups_bp.route("/<int:group_id>/members", methods=["POST"])
@require_auth
def add_member(group_id: int):
    data = AddMemberSchema().load(request.get_json(force=True) or {})
    result = run_in_transaction(
        db.session,
        lambda: group_service.add_member(
            group_id=group_id,
            caller_id=g.user_id,
            target_user_id=data["user_id"],
            session=db.session,
        ),
        operation="add_member",
    )
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/<int:group_id>/members/<int:target_uid>", methods=["DELETE"])
@require_auth
def remove_member(group_id: int, target_uid: int):
    run_in_transaction(
        db.session,
        lambda: group_service.remove_member(
            group_id=group_id,
            caller_id=g.user_id,
            target_user_id=target_uid,
            session=db.session,
        ),
        operation="remove_member",
    )
    return jsonify({
        "data": {
            "removed": True,
            "group_id": group_id,
            "user_id": target_uid,
        },
        "warnings": [],
    }), 200
