"""
tests/unit/test_validation_schemas.py — Request schemas and error flattening.

What this file proves:
  - Schemas load into the typed request objects services expect.
  - Excess decimal places are rejected with INVALID_AMOUNT_PRECISION, never
    rounded.
  - Shape rules owned by the schemas (duplicates, empty lists, blank names,
    receipt target) fail with a 400-style ValidationError.
  - _first_validation_message() reports the top-level field of a nested error.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from marshmallow import ValidationError

from groupledger.app import _first_validation_message
from groupledger.app.errors import ErrorCode
from groupledger.app.requests import ExpenseRequest, ParticipantShare, SettlementRequest
from groupledger.app.schemas.expense_schema import CreateExpenseSchema, ListExpensesQuerySchema
from groupledger.app.schemas.group_schema import CreateGroupSchema
from groupledger.app.schemas.receipt_schema import AttachReceiptSchema
from groupledger.app.schemas.settlement_schema import CreateSettlementSchema


def _expense_payload(**overrides) -> dict:
    payload = {
        "payer_id": 1,
        "amount": "30.00",
        "description": "  Groceries  ",
        "participants": [
            {"member_id": 1, "share_amount": "10.00"},
            {"member_id": 2, "share_percent": "66.6667"},
        ],
    }
    payload.update(overrides)
    return payload


def _errors(schema, payload) -> dict:
    with pytest.raises(ValidationError) as exc_info:
        schema.load(payload)
    return exc_info.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# CreateExpenseSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateExpenseSchema:

    def test_loads_into_expense_request(self):
        request = CreateExpenseSchema().load(_expense_payload())

        assert isinstance(request, ExpenseRequest)
        assert request.amount == Decimal("30.00")
        assert request.description == "Groceries"
        assert request.participants == [
            ParticipantShare(member_id=1, share_amount=Decimal("10.00")),
            ParticipantShare(member_id=2, share_percent=Decimal("66.6667")),
        ]

    def test_blank_description_becomes_none(self):
        request = CreateExpenseSchema().load(_expense_payload(description="   "))
        assert request.description is None

    @pytest.mark.parametrize("amount", ["10.001", "0.999"])
    def test_amount_precision_rejected(self, amount):
        errors = _errors(CreateExpenseSchema(), _expense_payload(amount=amount))
        assert errors == {"amount": [ErrorCode.INVALID_AMOUNT_PRECISION]}

    @pytest.mark.parametrize("amount", ["0", "0.00", "-5.00"])
    def test_amount_must_be_positive(self, amount):
        errors = _errors(CreateExpenseSchema(), _expense_payload(amount=amount))
        assert "amount" in errors

    def test_share_percent_allows_four_places_only(self):
        payload = _expense_payload(participants=[{"member_id": 1, "share_percent": "33.33333"}])
        errors = _errors(CreateExpenseSchema(), payload)
        assert errors == {"participants": {0: {"share_percent": [ErrorCode.INVALID_AMOUNT_PRECISION]}}}

    def test_zero_share_amount_allowed(self):
        payload = _expense_payload(participants=[
            {"member_id": 1, "share_amount": "30.00"},
            {"member_id": 2, "share_amount": "0"},
        ])
        request = CreateExpenseSchema().load(payload)
        assert request.participants[1].share_amount == Decimal("0")

    def test_negative_share_rejected(self):
        payload = _expense_payload(participants=[{"member_id": 1, "share_amount": "-1.00"}])
        assert "participants" in _errors(CreateExpenseSchema(), payload)

    def test_duplicate_participant(self):
        payload = _expense_payload(participants=[
            {"member_id": 1, "share_amount": "15.00"},
            {"member_id": 1, "share_amount": "15.00"},
        ])
        errors = _errors(CreateExpenseSchema(), payload)
        assert errors == {"participants": [ErrorCode.DUPLICATE_PARTICIPANT]}

    def test_empty_participants(self):
        errors = _errors(CreateExpenseSchema(), _expense_payload(participants=[]))
        assert "participants" in errors

    def test_share_shape_left_to_service(self):
        """Neither share given still loads; the service reports it in order."""
        payload = _expense_payload(participants=[{"member_id": 1}])
        request = CreateExpenseSchema().load(payload)
        assert request.participants == [ParticipantShare(member_id=1)]

    def test_string_payer_id_rejected(self):
        errors = _errors(CreateExpenseSchema(), _expense_payload(payer_id="1"))
        assert "payer_id" in errors


class TestListExpensesQuerySchema:

    def test_window_and_paging(self):
        query = ListExpensesQuerySchema().load(
            {"page": "2", "limit": "10", "paid_from": "2026-09-01", "paid_to": "2026-09-30"}
        )
        assert query == {
            "page": 2,
            "limit": 10,
            "paid_from": date(2026, 9, 1),
            "paid_to": date(2026, 9, 30),
        }

    def test_inverted_window_rejected(self):
        errors = _errors(ListExpensesQuerySchema(), {"paid_from": "2026-09-30", "paid_to": "2026-09-01"})
        assert "paid_to" in errors

    def test_limit_capped(self):
        assert "limit" in _errors(ListExpensesQuerySchema(), {"limit": "101"})


# ═══════════════════════════════════════════════════════════════════════════
# Other schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateSettlementSchema:

    def test_loads_into_settlement_request(self):
        request = CreateSettlementSchema().load(
            {"payer_id": 2, "receiver_id": 1, "amount": "12.50", "paid_on": "2026-10-01"}
        )
        assert request == SettlementRequest(
            payer_id=2,
            receiver_id=1,
            amount=Decimal("12.50"),
            paid_on=date(2026, 10, 1),
        )

    def test_same_user_left_to_service(self):
        request = CreateSettlementSchema().load(
            {"payer_id": 2, "receiver_id": 2, "amount": "1.00", "paid_on": "2026-10-01"}
        )
        assert request.payer_id == request.receiver_id

    def test_precision_rejected(self):
        errors = _errors(
            CreateSettlementSchema(),
            {"payer_id": 2, "receiver_id": 1, "amount": "1.005", "paid_on": "2026-10-01"},
        )
        assert errors == {"amount": [ErrorCode.INVALID_AMOUNT_PRECISION]}


class TestCreateGroupSchema:

    @pytest.mark.parametrize("name", ["", "   ", "x" * 101])
    def test_bad_names(self, name):
        assert "name" in _errors(CreateGroupSchema(), {"name": name})

    def test_valid_name(self):
        assert CreateGroupSchema().load({"name": "Flat 4B"})["name"] == "Flat 4B"


class TestAttachReceiptSchema:

    @pytest.mark.parametrize("payload", [
        {"storage_ref": "s3://r/1.jpg"},
        {"storage_ref": "s3://r/1.jpg", "expense_id": 1, "settlement_id": 2},
    ])
    def test_exactly_one_target(self, payload):
        assert "expense_id" in _errors(AttachReceiptSchema(), payload)

    def test_settlement_target(self):
        data = AttachReceiptSchema().load({"storage_ref": "s3://r/1.jpg", "settlement_id": 4})
        assert data["settlement_id"] == 4
        assert data["expense_id"] is None


# ═══════════════════════════════════════════════════════════════════════════
# _first_validation_message
# ═══════════════════════════════════════════════════════════════════════════

class TestFirstValidationMessage:

    def test_flat(self):
        assert _first_validation_message({"amount": ["Not a valid number."]}) == (
            "amount", "Not a valid number.",
        )

    def test_nested_reports_top_level_field(self):
        messages = {"participants": {0: {"share_amount": [ErrorCode.INVALID_AMOUNT_PRECISION]}}}
        assert _first_validation_message(messages) == (
            "participants", ErrorCode.INVALID_AMOUNT_PRECISION,
        )

    def test_schema_level_error_has_no_field(self):
        assert _first_validation_message({"_schema": ["Invalid input type."]}) == (
            None, "Invalid input type.",
        )

    def test_empty_list(self):
        assert _first_validation_message({"amount": []}) == ("amount", "Invalid value.")
