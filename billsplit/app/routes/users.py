"""
routes/users.py — User lookup.

  GET /users/lookup?email=  → 200 {"id", "display_name"}

Lets a group owner turn an email address into the user_id that
POST /groups/:id/members expects.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from billsplit.app.extensions import db
from billsplit.app.middleware.auth_middleware import require_auth
from billsplit.app.schemas.auth_schema import UserLookupSchema
from billsplit.app.services import auth_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/lookup", methods=["GET"])
@require_auth
def lookup_user():
    data = UserLookupSchema().load(request.args.to_dict())
    result = auth_service.lookup_user_by_email(
        email=data["email"],
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
