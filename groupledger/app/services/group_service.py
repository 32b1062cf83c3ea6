"""
services/group_service.py — Group lifecycle and membership.

Authorization rules:
  - Create group:    any existing member; creator becomes admin
  - Add member:      group admin only
  - Remove member:   group admin only, never themselves, and only while the
                     target's ledger balance is zero (within 0.01)
  - Delete group:    group admin only

delete_group() is the one place that erases ledger rows. It locks the group
row (SELECT ... FOR UPDATE) so no expense or settlement write, which takes
FOR SHARE on the same row, can interleave, then deletes every child table in
dependency order inside ledger_store.ledger_teardown().

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.expense import Expense
from groupledger.app.models.group import Group
from groupledger.app.models.ledger_entry import LedgerEntry
from groupledger.app.models.member import Member
from groupledger.app.models.membership import Membership, Role
from groupledger.app.models.receipt import Receipt
from groupledger.app.models.settlement import Settlement
from groupledger.app.models.split import ExpenseSplit
from groupledger.app.services import balance_service, ledger_store

logger = logging.getLogger(__name__)

BALANCE_TOLERANCE = balance_service.CENT

# Child tables of a group, in the order teardown must clear them.
_TEARDOWN_ORDER = (
    Receipt,
    LedgerEntry,
    ExpenseSplit,
    Expense,
    Settlement,
    Membership,
)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_group_or_404(group_id: int, session: Session, lock: bool = False) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404). lock=True takes FOR UPDATE."""
    if lock:
        group = session.execute(
            select(Group).where(Group.id == group_id).with_for_update()
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


def _get_member_or_404(member_id: int, session: Session) -> Member:
    member = session.get(Member, member_id)
    if member is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"Member {member_id} does not exist.",
            404,
        )
    return member


def _get_membership(group_id: int, member_id: int, session: Session) -> Membership | None:
    return session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.member_id == member_id,
        )
    ).scalar_one_or_none()


def _require_admin(group_id: int, member_id: int, session: Session, action: str) -> None:
    """Raises FORBIDDEN (403) unless member_id is an admin of group_id."""
    membership = _get_membership(group_id, member_id, session)
    if membership is None or not membership.is_admin:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"Only a group admin may {action}.",
            403,
        )


def _serialize_membership(membership: Membership, member: Member) -> dict:
    return {
        "group_id": membership.group_id,
        "member_id": member.id,
        "display_name": member.display_name,
        "role": membership.role.value,
        "joined_at": membership.joined_at.isoformat() if membership.joined_at else None,
    }


# ── Public service functions ───────────────────────────────────────────────

def create_group(
        name: str,
        creator_id: int,
        session: Session,
        description: str | None = None,
) -> dict:
    """
    Creates a group. The creator becomes its first member, with the admin role.

    Raises:
        AppError(USER_NOT_FOUND, 404) — creator is not a known member
    """
    creator = _get_member_or_404(creator_id, session)

    group = Group(name=name.strip(), description=description)
    session.add(group)
    session.flush()  # populate group.id before creating membership

    membership = Membership(group_id=group.id, member_id=creator_id, role=Role.ADMIN)
    session.add(membership)
    session.flush()
    session.refresh(group)
    session.refresh(membership)

    logger.info("Created group %s by member %s", group.id, creator_id)
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "created_at": group.created_at.isoformat() if group.created_at else None,
        "members": [_serialize_membership(membership, creator)],
    }


def add_member(
        group_id: int,
        requester_id: int,
        member_id: int,
        session: Session,
        role: Role = Role.MEMBER,
) -> dict:
    """
    Adds a member to a group. Admin only.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)  — group does not exist
      AppError(FORBIDDEN, 403)        — requester is not a group admin
      AppError(USER_NOT_FOUND, 404)   — target member does not exist
      AppError(ALREADY_MEMBER, 409)   — target is already in the group
    """
    _get_group_or_404(group_id, session)
    _require_admin(group_id, requester_id, session, "add members")
    member = _get_member_or_404(member_id, session)

    if _get_membership(group_id, member_id, session) is not None:
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            f"Member {member_id} is already in group {group_id}.",
            409,
        )

    membership = Membership(group_id=group_id, member_id=member_id, role=role)
    session.add(membership)
    session.flush()
    session.refresh(membership)

    return _serialize_membership(membership, member)


def remove_member(
        group_id: int,
        requester_id: int,
        member_id: int,
        session: Session,
) -> None:
    """
    Removes a member from a group. Admin only.

    A member can only leave once their ledger balance is zero within 0.01;
    otherwise money they owe (or are owed) would vanish from every report.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403)                          — requester is not an admin
      AppError(CANNOT_REMOVE_SELF, 400)                 — admin targets themselves
      AppError(USER_NOT_FOUND, 404)                     — target not in the group
      AppError(CANNOT_REMOVE_MEMBER_WITH_BALANCE, 409)  — |balance| > 0.01
    """
    _get_group_or_404(group_id, session)
    _require_admin(group_id, requester_id, session, "remove members")

    if member_id == requester_id:
        raise AppError(
            ErrorCode.CANNOT_REMOVE_SELF,
            "You cannot remove yourself from the group.",
            400,
        )

    membership = _get_membership(group_id, member_id, session)
    if membership is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"Member {member_id} is not in group {group_id}.",
            404,
        )

    balance = balance_service.compute_member_balance(group_id, member_id, session)
    if abs(balance) > BALANCE_TOLERANCE:
        raise AppError(
            ErrorCode.CANNOT_REMOVE_MEMBER_WITH_BALANCE,
            f"Member {member_id} still has a balance of "
            f"{balance_service.round_money(balance)} in group {group_id}.",
            409,
        )

    session.delete(membership)
    session.flush()


def delete_group(group_id: int, requester_id: int, session: Session) -> None:
    """
    Permanently deletes a group and everything recorded in it. Admin only.

    Sequence, inside the caller's transaction:
      1. lock the group row exclusively
      2. open the ledger teardown window (guard disarmed)
      3. delete receipts, ledger entries, splits, expenses, settlements,
         memberships, then the group row
      4. close the window (guard re-armed, also on failure)

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN, 403) — requester is not a group admin
    """
    _get_group_or_404(group_id, session)
    _require_admin(group_id, requester_id, session, "delete the group")

    _get_group_or_404(group_id, session, lock=True)

    with ledger_store.ledger_teardown(session):
        for model in _TEARDOWN_ORDER:
            session.execute(delete(model).where(model.group_id == group_id))
        session.execute(delete(Group).where(Group.id == group_id))

    logger.warning("Deleted group %s and its ledger (requested by member %s)", group_id, requester_id)
