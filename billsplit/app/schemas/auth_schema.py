"""
schemas/auth_schema.py — Marshmallow schemas for authentication endpoints.

Email uniqueness (DUPLICATE_EMAIL) and credential checks need the database
and live in services/auth_service.py.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates

from billsplit.app.schemas.expense_schema import validate_non_empty_after_trim


class NormalizedEmail(fields.Email):
    """Emails are matched case-insensitively, so store them lower-cased."""

    def _deserialize(self, value, attr, data, **kwargs):
        return super()._deserialize(value, attr, data, **kwargs).strip().lower()


class RegisterSchema(Schema):
    """
    POST /auth/register

      email        : valid address, at most 255 chars
      display_name : 1–100 chars, not just whitespace
      password     : at least 8 chars with a letter and a digit
    """

    email = NormalizedEmail(
        required=True,
        validate=validate.Length(max=255),
    )

    display_name = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Display name must be between 1 and 100 characters.",
            ),
            validate_non_empty_after_trim,
        ],
    )

    password = fields.Str(required=True, load_only=True)

    @validates("password")
    def validate_password_strength(self, value: str, **kwargs) -> None:
        if len(value) < 8:
            raise ValidationError("Password must be at least 8 characters long.")
        if not any(c.isalpha() for c in value):
            raise ValidationError("Password must contain at least one letter.")
        if not any(c.isdigit() for c in value):
            raise ValidationError("Password must contain at least one digit.")


class LoginSchema(Schema):
    """POST /auth/login — wrong email or password is INVALID_CREDENTIALS (401)."""

    email = NormalizedEmail(required=True)
    password = fields.Str(required=True, load_only=True)


class RefreshTokenSchema(Schema):
    """POST /auth/refresh and /auth/logout"""

    refresh_token = fields.Str(required=True)


class UserLookupSchema(Schema):
    """GET /users/lookup?email="""

    email = NormalizedEmail(required=True)
