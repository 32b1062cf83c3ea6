"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim).
  - services/group_service.py: USER_NOT_FOUND, ALREADY_MEMBER, GROUP_NOT_FOUND,
    admin checks.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate

from groupledger.app.models.membership import Role


def _validate_non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or contains only whitespace.
    Mirrors the DB CHECK(LENGTH(TRIM(...)) > 0) constraint at the API layer.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


class CreateGroupSchema(Schema):
    """POST /groups — name non-empty after trim, max 100 chars."""

    name = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=1,
                max=100,
                error="Group name must be between 1 and 100 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=300),
    )


class AddMemberSchema(Schema):
    """POST /groups/:id/members"""

    member_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(
            min=1,
            error="member_id must be a positive integer.",
        ),
    )

    role = fields.Enum(
        Role,
        by_value=True,
        load_default=Role.MEMBER,
    )
