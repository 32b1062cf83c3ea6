"""
services/balance_service.py — Balance Calculator.

This file is the SINGLE SOURCE OF TRUTH for how balances are computed:

    balance(group, member) = sum(Credit amounts) - sum(Debit amounts)

over ledger_entries. Positive means the group owes the member (net creditor);
negative means the member owes the group (net debtor). Nothing is cached:
every call re-aggregates the ledger.

Rounding:
  Aggregation runs at full precision. Values are rounded to 2 decimal places
  (ROUND_HALF_UP) only when they leave this module through get_* functions.
  compute_* functions return unrounded Decimals for internal callers.

Layer rules:
  - No Flask imports. Receives ids and a SQLAlchemy Session.
  - Returns Decimals and plain dicts.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.expense import Expense
from groupledger.app.models.group import Group
from groupledger.app.models.ledger_entry import Direction, LedgerEntry
from groupledger.app.models.member import Member
from groupledger.app.models.membership import Membership
from groupledger.app.models.split import ExpenseSplit

ZERO = Decimal("0")
CENT = Decimal("0.01")


def round_money(value: Decimal) -> Decimal:
    """Rounds a full-precision amount to 2 decimal places for output."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def _signed_amount():
    """SQL expression: +amount for credits, -amount for debits."""
    return case(
        (LedgerEntry.direction == Direction.CREDIT, LedgerEntry.amount),
        else_=-LedgerEntry.amount,
    )


# ── Access checks ──────────────────────────────────────────────────────────

def require_group_member(group_id: int, member_id: int, session: Session) -> None:
    """
    Raises GROUP_NOT_FOUND (404) if the group does not exist, then FORBIDDEN
    (403) if member_id does not belong to it.
    """
    if session.get(Group, group_id) is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )

    membership = session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.member_id == member_id,
        )
    ).scalar_one_or_none()

    if membership is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


# ── Core aggregation ───────────────────────────────────────────────────────

def compute_member_balance(group_id: int, member_id: int, session: Session) -> Decimal:
    """
    Full-precision ledger balance of one member. Zero when the member has
    no ledger rows; absence is not an error.
    """
    stmt = select(func.coalesce(func.sum(_signed_amount()), 0)).where(
        LedgerEntry.group_id == group_id,
        LedgerEntry.member_id == member_id,
    )
    return Decimal(session.execute(stmt).scalar_one())


def get_member_balance(group_id: int, member_id: int, session: Session) -> Decimal:
    """The member's ledger balance rounded to 2 decimal places."""
    return round_money(compute_member_balance(group_id, member_id, session))


def compute_member_balances(group_id: int, session: Session) -> dict[int, Decimal]:
    """
    Full-precision balance for every current member of the group.

    Members without ledger rows appear with Decimal("0"). Ledger rows of
    members who have since left are not included (a member can only leave
    with a zero balance).
    """
    stmt = (
        select(
            Membership.member_id,
            func.coalesce(func.sum(_signed_amount()), 0),
        )
        .select_from(Membership)
        .outerjoin(
            LedgerEntry,
            (LedgerEntry.group_id == Membership.group_id)
            & (LedgerEntry.member_id == Membership.member_id),
        )
        .where(Membership.group_id == group_id)
        .group_by(Membership.member_id)
        .order_by(Membership.member_id)
    )
    return {member_id: Decimal(total) for member_id, total in session.execute(stmt).all()}


def get_group_summary(group_id: int, session: Session) -> dict:
    """
    Group-wide totals plus a per-member breakdown.

      total       — sum of all expense amounts in the group
      total_paid  — sum of expense amounts the member paid
      total_owed  — sum of the member's split shares (explanatory; it does
                    not read the ledger)
      balance     — ledger balance

    Members are ordered by id so repeated calls without writes return
    identical output.
    """
    total = session.execute(
        select(func.coalesce(func.sum(Expense.amount), 0)).where(Expense.group_id == group_id)
    ).scalar_one()

    paid_by_member = dict(session.execute(
        select(Expense.payer_id, func.sum(Expense.amount))
        .where(Expense.group_id == group_id)
        .group_by(Expense.payer_id)
    ).all())

    owed_by_member = dict(session.execute(
        select(ExpenseSplit.member_id, func.sum(ExpenseSplit.share_amount))
        .where(ExpenseSplit.group_id == group_id)
        .group_by(ExpenseSplit.member_id)
    ).all())

    names = dict(session.execute(
        select(Member.id, Member.display_name)
        .join(Membership, Membership.member_id == Member.id)
        .where(Membership.group_id == group_id)
    ).all())

    balances = compute_member_balances(group_id, session)

    return {
        "group_id": group_id,
        "total": round_money(Decimal(total)),
        "per_member": [
            {
                "member_id": member_id,
                "display_name": names.get(member_id),
                "total_paid": round_money(Decimal(paid_by_member.get(member_id) or ZERO)),
                "total_owed": round_money(Decimal(owed_by_member.get(member_id) or ZERO)),
                "balance": round_money(balance),
            }
            for member_id, balance in balances.items()
        ],
    }


# ── Membership-checked entry points ────────────────────────────────────────

def get_my_balance(group_id: int, caller_id: int, session: Session) -> dict:
    """Caller's own rounded balance. GROUP_NOT_FOUND / FORBIDDEN first."""
    require_group_member(group_id, caller_id, session)
    return {
        "group_id": group_id,
        "member_id": caller_id,
        "balance": get_member_balance(group_id, caller_id, session),
    }


def get_summary(group_id: int, caller_id: int, session: Session) -> dict:
    """get_group_summary() for a verified group member."""
    require_group_member(group_id, caller_id, session)
    return get_group_summary(group_id, session)
