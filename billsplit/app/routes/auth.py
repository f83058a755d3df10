"""
routes/auth.py — Authentication route handlers.

Each handler: parse, validate with a schema, call ONE service, commit,
return {"data": ..., "warnings": []}. AppError propagates to the global
handler in app/__init__.py.

Endpoints (url_prefix=/api/v1/auth):
  POST /register  → 201
  POST /login     → 200
  POST /refresh   → 200  rotates the refresh token
  POST /logout    → 200
  GET  /me        → 200
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from billsplit.app.extensions import db
from billsplit.app.middleware.auth_middleware import require_auth
from billsplit.app.schemas.auth_schema import LoginSchema, RefreshTokenSchema, RegisterSchema
from billsplit.app.services import auth_service

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/register", methods=["POST"])
def register():
    data = RegisterSchema().load(request.get_json(force=True) or {})
    result = auth_service.register_user(
        email=data["email"],
        display_name=data["display_name"],
        password=data["password"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    data = LoginSchema().load(request.get_json(force=True) or {})
    result = auth_service.login_user(
        email=data["email"],
        password=data["password"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """The presented refresh token is spent; the response carries its replacement."""
    data = RefreshTokenSchema().load(request.get_json(force=True) or {})
    result = auth_service.refresh_tokens(
        raw_refresh_token=data["refresh_token"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/logout", methods=["POST"])
@require_auth
def logout():
    data = RefreshTokenSchema().load(request.get_json(force=True) or {})
    auth_service.logout_user(
        raw_refresh_token=data["refresh_token"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": {"message": "Logged out successfully."}, "warnings": []}), 200


@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    result = auth_service.get_current_user(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
