"""
services/expense_service.py — Expense Recorder.

record_expense() validates a request and writes, in one transaction:
  1. the Expense row
  2. one ExpenseSplit per participant
  3. one Credit ledger entry for the payer (full amount)
  4. one Debit ledger entry per participant whose share is > 0

Preconditions, checked before any write, first failure wins:
  GROUP_NOT_FOUND (404)          — group does not exist
  FORBIDDEN (403)                — requester is not a member
  PAYER_NOT_MEMBER (400)         — payer is not a member
  PARTICIPANT_NOT_MEMBER (400)   — first participant that is not a member
  INVALID_PARTICIPANT_DATA (400) — a participant gives neither or both shares
  PARTS_SUM_MISMATCH (400)       — |sum(shares) - total| > 0.01

Once writing has begun the only outcomes are success or a full rollback
(FAILED_TO_CREATE_EXPENSE, 500). AppErrors raised by the ledger guard
propagate unchanged after the rollback.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Receives plain ints and typed request objects; returns ORM objects.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from groupledger.app.errors import AppError, ErrorCode, WarningCode
from groupledger.app.models.expense import Expense
from groupledger.app.models.group import Group
from groupledger.app.models.membership import Membership
from groupledger.app.models.split import ExpenseSplit
from groupledger.app.requests import ExpenseRequest, ParticipantShare
from groupledger.app.services import ledger_store

logger = logging.getLogger(__name__)

SUM_TOLERANCE = Decimal("0.01")
_SHARE_QUANT = Decimal("0.0001")


# ── Private helpers ────────────────────────────────────────────────────────

def _get_group_or_404(group_id: int, session: Session, lock: bool = False) -> Group:
    """
    Returns the Group or raises GROUP_NOT_FOUND (404).

    lock=True takes a shared row lock (FOR SHARE) so a concurrent
    delete_group(), which needs FOR UPDATE, waits for this transaction.
    """
    if lock:
        group = session.execute(
            select(Group).where(Group.id == group_id).with_for_update(read=True)
        ).scalar_one_or_none()
    else:
        group = session.get(Group, group_id)

    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def _get_member_ids(group_id: int, session: Session) -> set[int]:
    """Returns the member_ids of all current members of a group."""
    stmt = select(Membership.member_id).where(Membership.group_id == group_id)
    return set(session.execute(stmt).scalars().all())


def _require_member(group_id: int, member_id: int, member_ids: set[int]) -> None:
    """Raises FORBIDDEN (403) if member_id is not in the group."""
    if member_id not in member_ids:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )


def _validate_payer_is_member(payer_id: int, group_id: int, member_ids: set[int]) -> None:
    if payer_id not in member_ids:
        raise AppError(
            ErrorCode.PAYER_NOT_MEMBER,
            f"Member {payer_id} is not a member of group {group_id}.",
            400,
            field="payer_id",
        )


def _validate_participants_are_members(
        participants: list[ParticipantShare],
        group_id: int,
        member_ids: set[int],
) -> None:
    """Raises PARTICIPANT_NOT_MEMBER (400) for the first participant not in the group."""
    for participant in participants:
        if participant.member_id not in member_ids:
            raise AppError(
                ErrorCode.PARTICIPANT_NOT_MEMBER,
                f"Member {participant.member_id} is not a member of group {group_id}.",
                400,
                field="participants",
            )


def resolve_shares(
        participants: list[ParticipantShare],
        total: Decimal,
) -> list[tuple[ParticipantShare, Decimal]]:
    """
    Resolves every participant to a concrete share amount.

    A percent share becomes total * percent / 100, kept at four decimal
    places. Exactly one of share_amount / share_percent must be given.

    Returns:
        [(participant, share_amount), ...] in request order.
    """
    resolved = []
    for participant in participants:
        has_amount = participant.share_amount is not None
        has_percent = participant.share_percent is not None

        if has_amount == has_percent:
            raise AppError(
                ErrorCode.INVALID_PARTICIPANT_DATA,
                f"Participant {participant.member_id} must give exactly one of "
                f"share_amount or share_percent.",
                400,
                field="participants",
            )

        if has_amount:
            share = participant.share_amount
        else:
            share = (total * participant.share_percent / Decimal("100")).quantize(_SHARE_QUANT)

        resolved.append((participant, share))
    return resolved


def _validate_parts_sum(shares: list[tuple[ParticipantShare, Decimal]], total: Decimal) -> None:
    """Raises PARTS_SUM_MISMATCH (400) if the shares miss the total by more than 0.01."""
    parts_sum = sum((share for _, share in shares), Decimal("0"))
    if abs(parts_sum - total) > SUM_TOLERANCE:
        raise AppError(
            ErrorCode.PARTS_SUM_MISMATCH,
            f"Participant shares ({parts_sum}) do not add up to the expense amount ({total}).",
            400,
            field="participants",
        )


def _zero_share_warnings(shares: list[tuple[ParticipantShare, Decimal]]) -> list[dict]:
    return [
        {
            "code": WarningCode.ZERO_SHARE_PARTICIPANT,
            "message": f"Member {p.member_id} is included with a zero share.",
        }
        for p, share in shares
        if share == 0
    ]


def _write_expense(
        group_id: int,
        request: ExpenseRequest,
        shares: list[tuple[ParticipantShare, Decimal]],
        session: Session,
) -> Expense:
    expense = Expense(
        group_id=group_id,
        payer_id=request.payer_id,
        description=request.description,
        amount=request.amount,
        location=request.location,
    )
    if request.paid_at is not None:
        expense.paid_at = request.paid_at
    session.add(expense)
    session.flush()  # populate expense.id for splits and ledger entries

    for participant, share in shares:
        session.add(ExpenseSplit(
            expense_id=expense.id,
            group_id=group_id,
            member_id=participant.member_id,
            share_amount=share,
            share_percent=participant.share_percent,
        ))
    session.flush()

    entries = [ledger_store.credit(group_id, request.payer_id, request.amount, expense_id=expense.id)]
    entries.extend(
        ledger_store.debit(group_id, participant.member_id, share, expense_id=expense.id)
        for participant, share in shares
        if share > 0
    )
    ledger_store.append_entries(session, entries)
    return expense


# ── Public service functions ───────────────────────────────────────────────

def record_expense(
        group_id: int,
        requester_id: int,
        request: ExpenseRequest,
        session: Session,
) -> tuple[Expense, list[dict]]:
    """
    Records an expense with its splits and ledger entries atomically.

    Args:
        group_id:     The group the expense belongs to.
        requester_id: The authenticated member recording it.
        request:      ExpenseRequest built by CreateExpenseSchema.

    Returns:
        (expense, warnings). warnings lists participants included with a zero
        share; they get a split row but no ledger entry.
    """
    _get_group_or_404(group_id, session, lock=True)
    member_ids = _get_member_ids(group_id, session)

    _require_member(group_id, requester_id, member_ids)
    _validate_payer_is_member(request.payer_id, group_id, member_ids)
    _validate_participants_are_members(request.participants, group_id, member_ids)

    shares = resolve_shares(request.participants, request.amount)
    _validate_parts_sum(shares, request.amount)

    try:
        expense = _write_expense(group_id, request, shares, session)
    except AppError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Expense write rolled back for group %s", group_id)
        raise AppError(
            ErrorCode.FAILED_TO_CREATE_EXPENSE,
            "The expense could not be recorded. No changes were made.",
            500,
        ) from exc

    logger.info(
        "Recorded expense %s in group %s: payer=%s amount=%s participants=%d",
        expense.id, group_id, request.payer_id, request.amount, len(shares),
    )
    return expense, _zero_share_warnings(shares)


def list_expenses(
        group_id: int,
        caller_id: int,
        session: Session,
        page: int | None = None,
        limit: int | None = None,
        paid_from: date | None = None,
        paid_to: date | None = None,
) -> list[Expense]:
    """
    Returns a group's expenses, newest paid_at first.

    paid_from / paid_to are inclusive calendar days. page is 1-based and only
    applies when limit is given.
    """
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, _get_member_ids(group_id, session))

    stmt = (
        select(Expense)
        .where(Expense.group_id == group_id)
        .options(selectinload(Expense.splits), selectinload(Expense.payer))
        .order_by(Expense.paid_at.desc(), Expense.id.desc())
    )
    if paid_from is not None:
        stmt = stmt.where(Expense.paid_at >= datetime.combine(paid_from, time.min))
    if paid_to is not None:
        stmt = stmt.where(Expense.paid_at < datetime.combine(paid_to + timedelta(days=1), time.min))
    if limit is not None:
        stmt = stmt.limit(limit).offset((max(page or 1, 1) - 1) * limit)

    return list(session.execute(stmt).scalars().all())


def get_expense(
        group_id: int,
        expense_id: int,
        caller_id: int,
        session: Session,
) -> Expense:
    """Returns one expense with its splits. EXPENSE_NOT_FOUND if it is not in this group."""
    _get_group_or_404(group_id, session)
    _require_member(group_id, caller_id, _get_member_ids(group_id, session))

    expense = session.get(Expense, expense_id)
    if expense is None or expense.group_id != group_id:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist in group {group_id}.",
            404,
        )
    return expense
