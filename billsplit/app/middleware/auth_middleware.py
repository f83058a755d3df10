"""
middleware/auth_middleware.py — JWT authentication decorator.

@require_auth verifies the Bearer token and puts the caller's id on
flask.g.user_id. It answers "who are you" (401) only; whether that user may
touch a group is decided by the services (403).

  TOKEN_MISSING  no Authorization header
  TOKEN_INVALID  malformed header, bad signature or bad claims
  TOKEN_EXPIRED  signature fine, exp in the past
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from billsplit.app.errors import AppError, ErrorCode


def require_auth(f: Callable) -> Callable:
    """
    Usage:
        @groups_bp.get("/")
        @require_auth
        def list_groups():
            user_id = g.user_id  # int
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        g.user_id = authenticate_request()
        return f(*args, **kwargs)

    return decorated


def authenticate_request() -> int:
    """Returns the user id from the request's Bearer token or raises AppError."""
    auth_header = request.headers.get("Authorization", "")

    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    try:
        payload = jwt.decode(
            parts[1],
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Use POST /auth/refresh to obtain a new one.",
            401,
        ) from None
    except jwt.InvalidTokenError:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        ) from None

    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token does not carry a valid user id.",
            401,
        ) from None
