"""
services/auth_service.py — Registration, login and token lifecycle.

Tokens:
  - Access token: JWT (HS256), short TTL, sub = user_id as str.
  - Refresh token: random hex, stored only as its SHA-256 digest.
    Single use: refreshing revokes the presented token and issues a new pair,
    so a stolen token that has already been used is worthless.

Passwords are hashed with bcrypt at BCRYPT_LOG_ROUNDS and never logged.

This is the one service that reads current_app.config (JWT secret, TTLs,
bcrypt cost). It never touches request or g.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timezone

import bcrypt
import jwt
from flask import current_app
from sqlalchemy import select
from sqlalchemy.orm import Session

from billsplit.app.errors import AppError, ErrorCode
from billsplit.app.models.refresh_token import RefreshToken
from billsplit.app.models.user import User

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _create_access_token(user_id: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + current_app.config["JWT_ACCESS_TOKEN_EXPIRES"],
        # two tokens minted in the same second still differ
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def _create_refresh_token(user_id: int, session: Session) -> str:
    """Persists the digest and returns the raw token, which is shown once."""
    raw_token = secrets.token_hex(32)
    session.add(RefreshToken(
        user_id=user_id,
        token_hash=_hash_token(raw_token),
        expires_at=datetime.now(timezone.utc) + current_app.config["JWT_REFRESH_TOKEN_EXPIRES"],
    ))
    session.flush()
    return raw_token


def _build_token_pair(user_id: int, session: Session) -> dict:
    return {
        "access_token": _create_access_token(user_id),
        "refresh_token": _create_refresh_token(user_id, session),
    }


def build_user_dict(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "display_name": user.display_name,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def _find_live_refresh_token(raw_refresh_token: str, session: Session) -> RefreshToken:
    record = session.execute(
        select(RefreshToken).where(RefreshToken.token_hash == _hash_token(raw_refresh_token))
    ).scalar_one_or_none()

    if (
            record is None
            or record.is_revoked
            or _as_utc(record.expires_at) <= datetime.now(timezone.utc)
    ):
        raise AppError(
            ErrorCode.REFRESH_TOKEN_INVALID,
            "The refresh token is invalid, expired, or has been revoked.",
            401,
        )
    return record


# ── Public service functions ───────────────────────────────────────────────

def register_user(
        email: str,
        display_name: str,
        password: str,
        session: Session,
) -> dict:
    """
    Creates an account and signs the new user in.

    Raises:
      AppError(DUPLICATE_EMAIL, 409)

    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    existing = session.execute(
        select(User).where(User.email == email)
    ).scalar_one_or_none()
    if existing is not None:
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    password_hash = bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")

    user = User(
        email=email,
        display_name=display_name.strip(),
        password_hash=password_hash,
    )
    session.add(user)
    session.flush()

    logger.info("Registered user %s", user.id)
    return {
        "user": build_user_dict(user),
        **_build_token_pair(user.id, session),
    }


def login_user(email: str, password: str, session: Session) -> dict:
    """
    Raises:
      AppError(INVALID_CREDENTIALS, 401) for an unknown email or a wrong
      password alike, so the response does not reveal which accounts exist.
    """
    user = session.execute(
        select(User).where(User.email == email)
    ).scalar_one_or_none()

    if user is None or not bcrypt.checkpw(
            password.encode("utf-8"),
            user.password_hash.encode("utf-8"),
    ):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "The email or password is incorrect.",
            401,
        )

    return {
        "user": build_user_dict(user),
        **_build_token_pair(user.id, session),
    }


def refresh_tokens(raw_refresh_token: str, session: Session) -> dict:
    """
    Rotates a refresh token: the presented one is revoked, a new pair issued.

    Raises:
      AppError(REFRESH_TOKEN_INVALID, 401) — unknown, revoked or expired.

    Returns: {"access_token": "...", "refresh_token": "..."}
    """
    record = _find_live_refresh_token(raw_refresh_token, session)
    record.revoke(datetime.now(timezone.utc))
    session.flush()
    return _build_token_pair(record.user_id, session)


def logout_user(raw_refresh_token: str, session: Session) -> None:
    """
    Revokes a refresh token. Access tokens stay valid until they expire.

    Raises:
      AppError(REFRESH_TOKEN_INVALID, 401) — unknown or already revoked.
    """
    record = session.execute(
        select(RefreshToken).where(RefreshToken.token_hash == _hash_token(raw_refresh_token))
    ).scalar_one_or_none()

    if record is None or record.is_revoked:
        raise AppError(
            ErrorCode.REFRESH_TOKEN_INVALID,
            "The refresh token is invalid or has already been revoked.",
            401,
        )

    record.revoke(datetime.now(timezone.utc))
    session.flush()


def get_current_user(user_id: int, session: Session) -> dict:
    """
    Raises:
      AppError(USER_NOT_FOUND, 404) — the token outlived its user.
    """
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    return build_user_dict(user)


def lookup_user_by_email(email: str, session: Session) -> dict:
    """
    Resolves an email to a public profile so a group owner can add members
    by address. Only id and display_name are exposed.
    """
    user = session.execute(
        select(User).where(User.email == email)
    ).scalar_one_or_none()
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            "No user is registered with that email address.",
            404,
            field="email",
        )
    return {"id": user.id, "display_name": user.display_name}
