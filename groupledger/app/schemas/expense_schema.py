"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation responsibility:
  - This file (request shape, no DB):
      - field types, lengths, decimal precision
      - at least one participant
      - DUPLICATE_PARTICIPANT (400) — same member_id twice
      - share_amount >= 0 with at most 2 dp; share_percent in [0, 100]
        with at most 4 dp
  - services/expense_service.py (needs DB or the resolved total):
      - GROUP_NOT_FOUND, FORBIDDEN, PAYER_NOT_MEMBER, PARTICIPANT_NOT_MEMBER
      - INVALID_PARTICIPANT_DATA (neither or both shares given)
      - PARTS_SUM_MISMATCH

INVALID_PARTICIPANT_DATA is left to the service on purpose: it is part of the
ordered precondition list and must not pre-empt the membership checks.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    post_load,
    validate,
    validates_schema,
)

from groupledger.app.errors import ErrorCode
from groupledger.app.requests import ExpenseRequest, ParticipantShare


# ── Shared monetary validators ─────────────────────────────────────────────
#
# Input with more decimal places than the column keeps is REJECTED with
# INVALID_AMOUNT_PRECISION, never rounded.
# ──────────────────────────────────────────────────────────────────────────

def _validate_monetary_amount(value: Decimal) -> None:
    """Strictly positive, at most 2 decimal places."""
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")

    # as_tuple().exponent is the negated scale: Decimal("10.123") -> -3.
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_share_amount(value: Decimal) -> None:
    """Zero is allowed: a participant can be included without owing anything."""
    if value < Decimal("0"):
        raise ValidationError("share_amount must not be negative.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_share_percent(value: Decimal) -> None:
    if value < Decimal("0") or value > Decimal("100"):
        raise ValidationError("share_percent must be between 0 and 100.")
    if value.as_tuple().exponent < -4:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


# ── Sub-schema: one entry in the `participants` array ─────────────────────

class ParticipantInputSchema(Schema):

    member_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="member_id must be a positive integer."),
    )

    share_amount = fields.Decimal(
        load_default=None,
        allow_none=True,
        validate=_validate_share_amount,
    )

    share_percent = fields.Decimal(
        load_default=None,
        allow_none=True,
        validate=_validate_share_percent,
    )

    @post_load
    def make_share(self, data: dict, **kwargs) -> ParticipantShare:
        return ParticipantShare(**data)


# ── Create expense ─────────────────────────────────────────────────────────

class CreateExpenseSchema(Schema):
    """
    POST /groups/:id/expenses

    Loads into an ExpenseRequest. Each participant loads into a
    ParticipantShare before the schema-level validators run.
    """

    payer_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="payer_id must be a positive integer."),
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    description = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=300),
    )

    location = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=200),
    )

    paid_at = fields.DateTime(
        load_default=None,
        allow_none=True,
    )

    participants = fields.List(
        fields.Nested(ParticipantInputSchema),
        required=True,
        validate=validate.Length(min=1, error="At least one participant is required."),
    )

    @validates_schema
    def validate_unique_participants(self, data: dict, **kwargs) -> None:
        participants = data.get("participants") or []
        member_ids = [p.member_id for p in participants]
        if len(member_ids) != len(set(member_ids)):
            raise ValidationError({"participants": [ErrorCode.DUPLICATE_PARTICIPANT]})

    @post_load
    def make_request(self, data: dict, **kwargs) -> ExpenseRequest:
        if data.get("description") is not None:
            data["description"] = data["description"].strip() or None
        return ExpenseRequest(**data)


class ListExpensesQuerySchema(Schema):
    """Query string for GET /groups/:id/expenses."""

    page = fields.Int(load_default=None, validate=validate.Range(min=1))
    limit = fields.Int(load_default=None, validate=validate.Range(min=1, max=100))
    paid_from = fields.Date(load_default=None)
    paid_to = fields.Date(load_default=None)

    @validates_schema
    def validate_window(self, data: dict, **kwargs) -> None:
        start, end = data.get("paid_from"), data.get("paid_to")
        if start is not None and end is not None and start > end:
            raise ValidationError({"paid_to": ["paid_to must not be before paid_from."]})
