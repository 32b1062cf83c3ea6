"""
models/ledger_entry.py — LedgerEntry table definition.

The ledger is the single source of truth for money in a group. Every balance
the API reports is an aggregate over these rows; no balance is stored.

  - Append-only. A row is never updated, and is deleted only by
    group_service.delete_group() inside ledger_store.ledger_teardown().
    The guard lives in services/ledger_store.py (ORM events) and, on
    PostgreSQL, in migration 002 (row trigger).
  - Every expense writes one Credit for the payer (full amount) and one Debit
    per participant with a positive share.
  - Every settlement writes one Debit for the payer and one Credit for the
    receiver, both for the settlement amount.
  - `origin` says which of expense_id / settlement_id is set; the CHECK below
    keeps the pair consistent.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from groupledger.app.extensions import db


class Origin(str, enum.Enum):
    EXPENSE    = "expense"
    SETTLEMENT = "settlement"


class Direction(str, enum.Enum):
    DEBIT  = "D"
    CREDIT = "C"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'C'), not names ('CREDIT')."""
    return [member.value for member in enum_cls]


class LedgerEntry(db.Model):
    __tablename__ = "ledger_entries"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_ledger_entries_amount_positive"),
        CheckConstraint(
            "(origin = 'expense' AND expense_id IS NOT NULL AND settlement_id IS NULL) "
            "OR (origin = 'settlement' AND settlement_id IS NOT NULL AND expense_id IS NULL)",
            name="ck_ledger_entries_origin_reference",
        ),
        # Balance queries aggregate per (group, member).
        Index("idx_ledger_entries_group_member", "group_id", "member_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
    )

    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="RESTRICT"),
        nullable=False,
    )

    origin: Mapped[Origin] = mapped_column(
        Enum(
            Origin,
            name="ledger_origin_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    expense_id: Mapped[int | None] = mapped_column(
        ForeignKey("expenses.id", ondelete="RESTRICT"),
        nullable=True,
    )

    settlement_id: Mapped[int | None] = mapped_column(
        ForeignKey("settlements.id", ondelete="RESTRICT"),
        nullable=True,
    )

    direction: Mapped[Direction] = mapped_column(
        Enum(
            Direction,
            name="ledger_direction_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    # Four decimal places: percent-derived debits are stored unrounded.
    amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 4),
        nullable=False,
    )

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    @property
    def origin_id(self) -> int | None:
        """The id of the expense or settlement this entry came from."""
        if self.origin == Origin.EXPENSE:
            return self.expense_id
        return self.settlement_id

    @property
    def signed_amount(self) -> Decimal:
        """+amount for a credit, -amount for a debit."""
        return self.amount if self.direction == Direction.CREDIT else -self.amount

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<LedgerEntry id={self.id} "
            f"group_id={self.group_id} "
            f"member_id={self.member_id} "
            f"{self.direction.value} {self.amount} "
            f"{self.origin.value}={self.origin_id}>"
        )
