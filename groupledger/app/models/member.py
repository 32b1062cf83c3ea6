"""
models/member.py — Member table definition.

A Member is the internal identity every engine operation is keyed on.
The identity collaborator maps external principals onto Member.id; this
service never stores credentials.
No business logic. No imports from services or routes.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from groupledger.app.extensions import db


class Member(db.Model):
    __tablename__ = "members"

    __table_args__ = (
        CheckConstraint(
            "LENGTH(TRIM(display_name)) > 0",
            name="ck_members_display_name_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    display_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    # Contact address. Not used for login.
    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        unique=True,
    )

    # External payment identifier (bank alias, wallet handle). Opaque here.
    payment_alias: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="member",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Member id={self.id} display_name={self.display_name!r}>"
