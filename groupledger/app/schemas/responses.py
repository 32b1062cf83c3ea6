"""
schemas/responses.py — Output schemas for API responses.

Pure data shaping: no DB access, no logic. Monetary values are dumped as
strings so clients never see a binary float.

These inherit ma.Schema (flask-marshmallow); they are only dumped inside a
request, where an application context exists.
"""

from __future__ import annotations

from marshmallow import fields

from groupledger.app.extensions import ma


class SplitOutSchema(ma.Schema):
    member_id = fields.Int()
    display_name = fields.Function(lambda s: s.member.display_name if s.member else None)
    share_amount = fields.Decimal(as_string=True)
    share_percent = fields.Decimal(as_string=True, allow_none=True)


class ExpenseOutSchema(ma.Schema):
    id = fields.Int()
    group_id = fields.Int()
    payer_id = fields.Int()
    payer_name = fields.Function(lambda e: e.payer.display_name if e.payer else None)
    description = fields.Str(allow_none=True)
    amount = fields.Decimal(as_string=True)
    location = fields.Str(allow_none=True)
    paid_at = fields.DateTime()
    created_at = fields.DateTime()
    splits = fields.List(fields.Nested(SplitOutSchema))


class SettlementOutSchema(ma.Schema):
    id = fields.Int()
    group_id = fields.Int()
    payer_id = fields.Int()
    receiver_id = fields.Int()
    amount = fields.Decimal(as_string=True)
    paid_on = fields.Date()
    created_at = fields.DateTime()


class ReceiptOutSchema(ma.Schema):
    id = fields.Int()
    group_id = fields.Int()
    expense_id = fields.Int(allow_none=True)
    settlement_id = fields.Int(allow_none=True)
    storage_ref = fields.Str()
    attached_by = fields.Int()
    created_at = fields.DateTime()


expense_out = ExpenseOutSchema()
expenses_out = ExpenseOutSchema(many=True)
settlement_out = SettlementOutSchema()
settlements_out = SettlementOutSchema(many=True)
receipt_out = ReceiptOutSchema()
