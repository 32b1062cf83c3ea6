"""
schemas/settlement_schema.py — Marshmallow schema for settlement endpoints.

Validation responsibility:
  - This file: field types, decimal precision, positive amount, paid_on date.
  - services/settlement_service.py:
      - FORBIDDEN, FROM_USER_NOT_MEMBER, TO_USER_NOT_MEMBER (DB lookups)
      - SAME_USER — kept in the service so it is reported after the
        membership checks, in the documented order.

payer_id is part of the body: any member may record a payment between two
other members (for example the treasurer confirming a bank transfer).

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, post_load, validate

from groupledger.app.errors import ErrorCode
from groupledger.app.requests import SettlementRequest


def _validate_monetary_amount(value: Decimal) -> None:
    """Strictly positive, at most 2 decimal places. Never rounded."""
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


class CreateSettlementSchema(Schema):
    """POST /groups/:id/settlements — loads into a SettlementRequest."""

    payer_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="payer_id must be a positive integer."),
    )

    receiver_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="receiver_id must be a positive integer."),
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    paid_on = fields.Date(required=True)

    @post_load
    def make_request(self, data: dict, **kwargs) -> SettlementRequest:
        return SettlementRequest(**data)
