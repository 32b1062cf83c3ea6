"""
services/settlement_service.py — Settlement Recorder.

record_settlement() writes, in one transaction:
  1. the Settlement row
  2. a Debit ledger entry for the payer
  3. a Credit ledger entry for the receiver
both for the settlement amount and both referencing the settlement.

Preconditions, first failure wins:
  GROUP_NOT_FOUND (404), FORBIDDEN (403), FROM_USER_NOT_MEMBER (400),
  TO_USER_NOT_MEMBER (400), SAME_USER (400).

Net effect: the payer's balance moves by -amount, the receiver's by +amount,
and the sum over the group is unchanged.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.group import Group
from groupledger.app.models.membership import Membership
from groupledger.app.models.settlement import Settlement
from groupledger.app.requests import SettlementRequest
from groupledger.app.services import ledger_store

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_group_or_404(group_id: int, session: Session, lock: bool = False) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404). lock=True takes FOR SHARE."""
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
    stmt = select(Membership.member_id).where(Membership.group_id == group_id)
    return set(session.execute(stmt).scalars().all())


def _validate_parties(
        group_id: int,
        requester_id: int,
        request: SettlementRequest,
        member_ids: set[int],
) -> None:
    if requester_id not in member_ids:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )
    if request.payer_id not in member_ids:
        raise AppError(
            ErrorCode.FROM_USER_NOT_MEMBER,
            f"Member {request.payer_id} is not a member of group {group_id}.",
            400,
            field="payer_id",
        )
    if request.receiver_id not in member_ids:
        raise AppError(
            ErrorCode.TO_USER_NOT_MEMBER,
            f"Member {request.receiver_id} is not a member of group {group_id}.",
            400,
            field="receiver_id",
        )
    if request.payer_id == request.receiver_id:
        raise AppError(
            ErrorCode.SAME_USER,
            "A settlement needs two different members.",
            400,
            field="receiver_id",
        )


# ── Public service functions ───────────────────────────────────────────────

def record_settlement(
        group_id: int,
        requester_id: int,
        request: SettlementRequest,
        session: Session,
) -> Settlement:
    """
    Records a direct payment between two members and its paired ledger entries.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)
        AppError(FORBIDDEN, 403)
        AppError(FROM_USER_NOT_MEMBER | TO_USER_NOT_MEMBER | SAME_USER, 400)
        AppError(FAILED_TO_CREATE_SETTLEMENT, 500) — storage failure, rolled back
    """
    _get_group_or_404(group_id, session, lock=True)
    _validate_parties(group_id, requester_id, request, _get_member_ids(group_id, session))

    try:
        settlement = Settlement(
            group_id=group_id,
            payer_id=request.payer_id,
            receiver_id=request.receiver_id,
            amount=request.amount,
            paid_on=request.paid_on,
        )
        session.add(settlement)
        session.flush()

        ledger_store.append_entries(session, [
            ledger_store.debit(group_id, request.payer_id, request.amount,
                               settlement_id=settlement.id),
            ledger_store.credit(group_id, request.receiver_id, request.amount,
                                settlement_id=settlement.id),
        ])
    except AppError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Settlement write rolled back for group %s", group_id)
        raise AppError(
            ErrorCode.FAILED_TO_CREATE_SETTLEMENT,
            "The settlement could not be recorded. No changes were made.",
            500,
        ) from exc

    logger.info(
        "Recorded settlement %s in group %s: %s -> %s amount=%s",
        settlement.id, group_id, request.payer_id, request.receiver_id, request.amount,
    )
    return settlement


def list_settlements(group_id: int, caller_id: int, session: Session) -> list[Settlement]:
    """Returns a group's settlements, newest paid_on first."""
    _get_group_or_404(group_id, session)
    if caller_id not in _get_member_ids(group_id, session):
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )

    stmt = (
        select(Settlement)
        .where(Settlement.group_id == group_id)
        .order_by(Settlement.paid_on.desc(), Settlement.id.desc())
    )
    return list(session.execute(stmt).scalars().all())
