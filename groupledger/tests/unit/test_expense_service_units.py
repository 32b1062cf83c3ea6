"""
tests/unit/test_expense_service_units.py — Unit tests for expense validation.

What this file proves:
  - resolve_shares() turns percents into amounts and rejects neither/both.
  - The parts-sum check allows a drift of exactly 0.01 and no more.
  - Zero shares produce a warning, not an error.
  - record_expense() checks preconditions in order and writes nothing when
    any of them fails.

No database. The session is a MagicMock whose execute() result answers both
the group lookup (scalar_one_or_none) and the member-id query (scalars().all).
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from groupledger.app.errors import AppError, ErrorCode, WarningCode
from groupledger.app.requests import ExpenseRequest, ParticipantShare
from groupledger.app.services import expense_service
from groupledger.app.services.expense_service import resolve_shares


def _session(member_ids=(1, 2, 3), group_exists=True) -> MagicMock:
    session = MagicMock()
    result = session.execute.return_value
    result.scalar_one_or_none.return_value = SimpleNamespace(id=10) if group_exists else None
    result.scalars.return_value.all.return_value = list(member_ids)
    return session


def _request(payer_id=1, amount="30.00", participants=None) -> ExpenseRequest:
    if participants is None:
        participants = [
            ParticipantShare(member_id=1, share_amount=Decimal("10.00")),
            ParticipantShare(member_id=2, share_amount=Decimal("20.00")),
        ]
    return ExpenseRequest(payer_id=payer_id, amount=Decimal(amount), participants=participants)


def _record(request, requester_id=1, session=None):
    session = session or _session()
    with pytest.raises(AppError) as exc_info:
        expense_service.record_expense(10, requester_id, request, session)
    session.add.assert_not_called()
    return exc_info.value


# ═══════════════════════════════════════════════════════════════════════════
# resolve_shares
# ═══════════════════════════════════════════════════════════════════════════

class TestResolveShares:

    def test_fixed_amounts_pass_through(self):
        participants = [ParticipantShare(member_id=1, share_amount=Decimal("7.25"))]
        [(p, share)] = resolve_shares(participants, Decimal("7.25"))
        assert p is participants[0]
        assert share == Decimal("7.25")

    def test_percent_becomes_amount(self):
        participants = [
            ParticipantShare(member_id=1, share_percent=Decimal("25")),
            ParticipantShare(member_id=2, share_percent=Decimal("75")),
        ]
        shares = resolve_shares(participants, Decimal("80.00"))
        assert [s for _, s in shares] == [Decimal("20.0000"), Decimal("60.0000")]

    def test_percent_kept_at_four_places(self):
        participants = [ParticipantShare(member_id=1, share_percent=Decimal("33.33"))]
        [(_, share)] = resolve_shares(participants, Decimal("10.00"))
        assert share == Decimal("3.3330")

    def test_mixed_forms_allowed(self):
        participants = [
            ParticipantShare(member_id=1, share_amount=Decimal("5.00")),
            ParticipantShare(member_id=2, share_percent=Decimal("50")),
        ]
        shares = resolve_shares(participants, Decimal("10.00"))
        assert [s for _, s in shares] == [Decimal("5.00"), Decimal("5.0000")]

    @pytest.mark.parametrize("participant", [
        ParticipantShare(member_id=1),
        ParticipantShare(member_id=1, share_amount=Decimal("5"), share_percent=Decimal("50")),
    ])
    def test_neither_or_both_rejected(self, participant):
        with pytest.raises(AppError) as exc_info:
            resolve_shares([participant], Decimal("10.00"))

        err = exc_info.value
        assert err.code == ErrorCode.INVALID_PARTICIPANT_DATA
        assert err.http_status == 400
        assert err.field == "participants"


# ═══════════════════════════════════════════════════════════════════════════
# Parts sum and warnings
# ═══════════════════════════════════════════════════════════════════════════

def _shares(*amounts: str):
    return [
        (ParticipantShare(member_id=i, share_amount=Decimal(a)), Decimal(a))
        for i, a in enumerate(amounts, start=1)
    ]


class TestPartsSum:

    @pytest.mark.parametrize("amounts", [
        ("10.00", "20.00"),
        ("10.00", "19.99"),       # 0.01 short
        ("10.00", "20.01"),       # 0.01 over
        ("3.33", "3.33", "3.33"),  # 10.00 in thirds
    ])
    def test_within_tolerance(self, amounts):
        total = Decimal("10.00") if len(amounts) == 3 else Decimal("30.00")
        expense_service._validate_parts_sum(_shares(*amounts), total)

    @pytest.mark.parametrize("amounts", [("10.00", "19.98"), ("10.00", "20.02")])
    def test_outside_tolerance(self, amounts):
        with pytest.raises(AppError) as exc_info:
            expense_service._validate_parts_sum(_shares(*amounts), Decimal("30.00"))
        assert exc_info.value.code == ErrorCode.PARTS_SUM_MISMATCH


class TestZeroShareWarnings:

    def test_one_warning_per_zero_share(self):
        warnings = expense_service._zero_share_warnings(_shares("10.00", "0", "0.00"))

        assert [w["code"] for w in warnings] == [WarningCode.ZERO_SHARE_PARTICIPANT] * 2
        assert "Member 2" in warnings[0]["message"]

    def test_no_zero_shares(self):
        assert expense_service._zero_share_warnings(_shares("1.00")) == []


# ═══════════════════════════════════════════════════════════════════════════
# record_expense preconditions
# ═══════════════════════════════════════════════════════════════════════════

class TestRecordExpensePreconditions:

    def test_group_not_found_first(self):
        err = _record(_request(payer_id=99), requester_id=99, session=_session(group_exists=False))
        assert err.code == ErrorCode.GROUP_NOT_FOUND
        assert err.http_status == 404

    def test_requester_not_member(self):
        err = _record(_request(payer_id=99), requester_id=42)
        assert err.code == ErrorCode.FORBIDDEN
        assert err.http_status == 403

    def test_payer_not_member_before_participants(self):
        request = _request(
            payer_id=99,
            participants=[ParticipantShare(member_id=77, share_amount=Decimal("30.00"))],
        )
        err = _record(request)
        assert err.code == ErrorCode.PAYER_NOT_MEMBER
        assert err.field == "payer_id"

    def test_first_non_member_participant(self):
        request = _request(participants=[
            ParticipantShare(member_id=2, share_amount=Decimal("10.00")),
            ParticipantShare(member_id=77, share_amount=Decimal("10.00")),
            ParticipantShare(member_id=88, share_amount=Decimal("10.00")),
        ])
        err = _record(request)
        assert err.code == ErrorCode.PARTICIPANT_NOT_MEMBER
        assert "77" in err.message

    def test_membership_checked_before_share_shape(self):
        request = _request(participants=[
            ParticipantShare(member_id=1),
            ParticipantShare(member_id=77, share_amount=Decimal("30.00")),
        ])
        assert _record(request).code == ErrorCode.PARTICIPANT_NOT_MEMBER

    def test_share_shape_before_sum(self):
        request = _request(participants=[
            ParticipantShare(member_id=1),
            ParticipantShare(member_id=2, share_amount=Decimal("1.00")),
        ])
        assert _record(request).code == ErrorCode.INVALID_PARTICIPANT_DATA

    def test_parts_sum_mismatch(self):
        request = _request(amount="50.00")
        assert _record(request).code == ErrorCode.PARTS_SUM_MISMATCH
