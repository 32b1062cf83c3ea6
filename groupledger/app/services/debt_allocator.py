"""
services/debt_allocator.py — Proportional debt and credit allocation.

Answers "whom do I owe, and how much?" (get_my_debts) and the mirror
question "who owes me?" (get_my_credits) from the current ledger balances.

Allocation is proportional, not a minimum-transaction netting:

    debts(m)   : debt = |b_m| spread over every creditor c in proportion to
                 b_c / sum(b_c over creditors)
    credits(m) : credit = b_m spread over every debtor d in proportion to
                 |b_d| / sum(|b_d| over debtors)

Each share is rounded to 2 decimal places and shares of 0.01 or less are
dropped. Shares are not forced to add back to the full amount.

allocate_debts() / allocate_credits() are pure functions over balances.
get_my_debts() / get_my_credits() read the ledger through balance_service
and refuse to answer when the ledger is not zero-sum enough to have a
counterparty (LEDGER_INTEGRITY_VIOLATION).
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.member import Member
from groupledger.app.services import balance_service

logger = logging.getLogger(__name__)

NOISE_THRESHOLD = Decimal("0.01")
_CENT = Decimal("0.01")
_ZERO = Decimal("0")


def _spread(amount: Decimal, weights: dict[int, Decimal]) -> list[dict]:
    total_weight = sum(weights.values(), _ZERO)
    allocations = []
    for member_id in sorted(weights):
        share = (amount * weights[member_id] / total_weight).quantize(_CENT, rounding=ROUND_HALF_UP)
        if share > NOISE_THRESHOLD:
            allocations.append({"member_id": member_id, "amount": share})
    return allocations


def allocate_debts(balance: Decimal, others: dict[int, Decimal]) -> list[dict]:
    """
    Splits a negative balance across the members with positive balances.

    Args:
        balance: The member's own full-precision balance.
        others:  {member_id: balance} for every OTHER member of the group.

    Returns:
        [{"member_id": creditor_id, "amount": Decimal}], ordered by member id.
        Empty when the member owes nothing or there is no creditor.
    """
    if balance >= 0:
        return []
    creditors = {mid: b for mid, b in others.items() if b > 0}
    if not creditors:
        return []
    return _spread(-balance, creditors)


def allocate_credits(balance: Decimal, others: dict[int, Decimal]) -> list[dict]:
    """Mirror of allocate_debts(): spreads a positive balance across debtors."""
    if balance <= 0:
        return []
    debtors = {mid: -b for mid, b in others.items() if b < 0}
    if not debtors:
        return []
    return _spread(balance, debtors)


# ── Service functions ──────────────────────────────────────────────────────

def _split_balances(
        group_id: int,
        member_id: int,
        session: Session,
) -> tuple[Decimal, dict[int, Decimal]]:
    balances = balance_service.compute_member_balances(group_id, session)
    own = balances.pop(member_id, _ZERO)
    return own, balances


def _assert_counterparty(
        group_id: int,
        member_id: int,
        balance: Decimal,
        counterparties: dict[int, Decimal],
) -> None:
    """
    A member more than 0.01 in debt (or credit) with nobody on the other side
    means the ledger is not zero-sum. Surface it; never guess an allocation.
    """
    if abs(balance) > NOISE_THRESHOLD and not counterparties:
        logger.error(
            "Ledger integrity violation in group %s: member %s has balance %s "
            "and no counterparty",
            group_id, member_id, balance,
        )
        raise AppError(
            ErrorCode.LEDGER_INTEGRITY_VIOLATION,
            f"Group {group_id} has inconsistent ledger data; balances cannot be allocated.",
            500,
        )


def _with_names(allocations: list[dict], session: Session) -> list[dict]:
    if not allocations:
        return []
    ids = [a["member_id"] for a in allocations]
    names = dict(session.execute(
        select(Member.id, Member.display_name).where(Member.id.in_(ids))
    ).all())
    return [{**a, "display_name": names.get(a["member_id"])} for a in allocations]


def get_my_debts(group_id: int, member_id: int, session: Session) -> list[dict]:
    """
    Whom the member owes and how much, proportional to creditor balances.

    Raises:
        AppError(GROUP_NOT_FOUND, 404), AppError(FORBIDDEN, 403)
        AppError(LEDGER_INTEGRITY_VIOLATION, 500) — debt with no creditor
    """
    balance_service.require_group_member(group_id, member_id, session)
    balance, others = _split_balances(group_id, member_id, session)

    if balance < 0:
        _assert_counterparty(group_id, member_id, balance,
                             {mid: b for mid, b in others.items() if b > 0})

    return _with_names(allocate_debts(balance, others), session)


def get_my_credits(group_id: int, member_id: int, session: Session) -> list[dict]:
    """
    Who owes the member and how much, proportional to debtor balances.

    Raises:
        AppError(GROUP_NOT_FOUND, 404), AppError(FORBIDDEN, 403)
        AppError(LEDGER_INTEGRITY_VIOLATION, 500) — credit with no debtor
    """
    balance_service.require_group_member(group_id, member_id, session)
    balance, others = _split_balances(group_id, member_id, session)

    if balance > 0:
        _assert_counterparty(group_id, member_id, balance,
                             {mid: b for mid, b in others.items() if b < 0})

    return _with_names(allocate_credits(balance, others), session)
