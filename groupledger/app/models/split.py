"""
models/split.py — ExpenseSplit table definition.

One row per participant of an expense. Exactly one of share amount / share
percent is authoritative in the request; percent rows are resolved to an
amount (total * percent / 100) by the expense service, and both values are
stored so the original intent stays visible.

share_amount uses four decimal places: a percent share of a two-decimal total
is kept at full precision and only rounded when balances are reported.

Split conservation (sum(share_amount) within 0.01 of the expense amount) is
checked in expense_service.py before the write, not here.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db


class ExpenseSplit(db.Model):
    __tablename__ = "expense_splits"

    __table_args__ = (
        UniqueConstraint("expense_id", "member_id", name="uq_expense_splits_expense_member"),
        CheckConstraint("share_amount >= 0", name="ck_expense_splits_share_nonnegative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # Denormalised so teardown and summaries can filter splits by group directly.
    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="RESTRICT"),
        nullable=False,
    )

    share_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 4),
        nullable=False,
    )

    share_percent: Mapped[Decimal | None] = mapped_column(
        Numeric(7, 4),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    expense: Mapped["Expense"] = relationship(  # noqa: F821
        "Expense",
        back_populates="splits",
    )

    member: Mapped["Member"] = relationship(  # noqa: F821
        "Member",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ExpenseSplit id={self.id} "
            f"expense_id={self.expense_id} "
            f"member_id={self.member_id} "
            f"share_amount={self.share_amount}>"
        )
