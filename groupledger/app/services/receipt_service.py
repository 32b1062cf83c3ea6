"""
services/receipt_service.py — Receipt references for expenses and settlements.

The upload service stores the file and passes back an opaque storage
reference. This service only checks that the target belongs to the group
and records the link.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from groupledger.app.errors import AppError, ErrorCode
from groupledger.app.models.expense import Expense
from groupledger.app.models.receipt import Receipt
from groupledger.app.models.settlement import Settlement
from groupledger.app.services import balance_service


def attach_receipt(
        group_id: int,
        requester_id: int,
        storage_ref: str,
        session: Session,
        expense_id: int | None = None,
        settlement_id: int | None = None,
) -> Receipt:
    """
    Links an uploaded receipt to exactly one expense or settlement of the group.

    Raises:
        AppError(GROUP_NOT_FOUND, 404), AppError(FORBIDDEN, 403)
        AppError(INVALID_FIELD, 400)         — zero or two targets given
        AppError(EXPENSE_NOT_FOUND, 404)     — expense not in this group
        AppError(SETTLEMENT_NOT_FOUND, 404)  — settlement not in this group
    """
    balance_service.require_group_member(group_id, requester_id, session)

    if (expense_id is None) == (settlement_id is None):
        raise AppError(
            ErrorCode.INVALID_FIELD,
            "Give exactly one of expense_id or settlement_id.",
            400,
        )

    if expense_id is not None:
        expense = session.get(Expense, expense_id)
        if expense is None or expense.group_id != group_id:
            raise AppError(
                ErrorCode.EXPENSE_NOT_FOUND,
                f"Expense {expense_id} does not exist in group {group_id}.",
                404,
                field="expense_id",
            )
    else:
        settlement = session.get(Settlement, settlement_id)
        if settlement is None or settlement.group_id != group_id:
            raise AppError(
                ErrorCode.SETTLEMENT_NOT_FOUND,
                f"Settlement {settlement_id} does not exist in group {group_id}.",
                404,
                field="settlement_id",
            )

    receipt = Receipt(
        group_id=group_id,
        expense_id=expense_id,
        settlement_id=settlement_id,
        storage_ref=storage_ref,
        attached_by=requester_id,
    )
    session.add(receipt)
    session.flush()
    return receipt
