"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Shape only. Ownership, membership, USER_NOT_FOUND and ALREADY_MEMBER need
the database and live in services/group_service.py.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from billsplit.app.schemas.expense_schema import validate_non_empty_after_trim


class CreateGroupSchema(Schema):
    """POST /groups — name is non-empty after trim, at most 100 chars."""

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Group name must be between 1 and 100 characters.",
            ),
            validate_non_empty_after_trim,
        ],
    )


class AddMemberSchema(Schema):
    """POST /groups/:id/members"""

    user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(
            min=1,
            error="user_id must be a positive integer.",
        ),
    )
