"""
requests.py — Typed request objects handed from schemas to services.

The marshmallow schemas in app/schemas/ build these in @post_load, so a
service never sees a raw JSON dict. Tests construct them directly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal


@dataclass(frozen=True)
class ParticipantShare:
    """One participant of an expense. Exactly one of the two shares must be set."""
    member_id: int
    share_amount: Decimal | None = None
    share_percent: Decimal | None = None


@dataclass(frozen=True)
class ExpenseRequest:
    payer_id: int
    amount: Decimal
    participants: list[ParticipantShare] = field(default_factory=list)
    description: str | None = None
    location: str | None = None
    paid_at: datetime | None = None


@dataclass(frozen=True)
class SettlementRequest:
    payer_id: int
    receiver_id: int
    amount: Decimal
    paid_on: date
