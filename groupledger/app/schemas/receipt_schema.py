"""
schemas/receipt_schema.py — Marshmallow schema for receipt attachment.

The exactly-one-target rule is checked here for a clean 400 and again in
receipt_service.py for callers that bypass the HTTP layer.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates_schema


class AttachReceiptSchema(Schema):
    """POST /groups/:id/receipts"""

    storage_ref = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=500),
    )

    expense_id = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1),
    )

    settlement_id = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1),
    )

    @validates_schema
    def validate_single_target(self, data: dict, **kwargs) -> None:
        if (data.get("expense_id") is None) == (data.get("settlement_id") is None):
            raise ValidationError(
                "Give exactly one of expense_id or settlement_id.",
                field_name="expense_id",
            )
