"""
models/receipt.py — Receipt metadata table definition.

The receipt-upload service stores the image and hands back an opaque
reference; this table only links that reference to one expense or one
settlement. File content is never inspected here.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from groupledger.app.extensions import db


class Receipt(db.Model):
    __tablename__ = "receipts"

    __table_args__ = (
        CheckConstraint(
            "(expense_id IS NULL) <> (settlement_id IS NULL)",
            name="ck_receipts_single_target",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    expense_id: Mapped[int | None] = mapped_column(
        ForeignKey("expenses.id", ondelete="RESTRICT"),
        nullable=True,
    )

    settlement_id: Mapped[int | None] = mapped_column(
        ForeignKey("settlements.id", ondelete="RESTRICT"),
        nullable=True,
    )

    storage_ref: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )

    attached_by: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="RESTRICT"),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:  # pragma: no cover
        target = (
            f"expense_id={self.expense_id}"
            if self.expense_id is not None
            else f"settlement_id={self.settlement_id}"
        )
        return f"<Receipt id={self.id} group_id={self.group_id} {target}>"
