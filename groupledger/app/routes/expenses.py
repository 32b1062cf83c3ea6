"""
routes/expenses.py — Expense route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/groups):
  POST /groups/:id/expenses        → 201  record expense + splits + ledger entries
  GET  /groups/:id/expenses        → 200  list (?page, ?limit, ?paid_from, ?paid_to)
  GET  /groups/:id/expenses/:eid   → 200  expense with splits
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.schemas.expense_schema import CreateExpenseSchema, ListExpensesQuerySchema
from groupledger.app.schemas.responses import expense_out, expenses_out
from groupledger.app.services import expense_service

expenses_bp = Blueprint("expenses", __name__)


@expenses_bp.route("/<int:group_id>/expenses", methods=["POST"])
@require_auth
def create_expense(group_id: int):
    """POST /groups/:id/expenses — Record an expense."""
    expense_request = CreateExpenseSchema().load(request.get_json(force=True) or {})
    expense, warnings = expense_service.record_expense(
        group_id=group_id,
        requester_id=g.member_id,
        request=expense_request,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": expense_out.dump(expense), "warnings": warnings}), 201


@expenses_bp.route("/<int:group_id>/expenses", methods=["GET"])
@require_auth
def list_expenses(group_id: int):
    """GET /groups/:id/expenses — List a group's expenses, newest first."""
    query = ListExpensesQuerySchema().load(request.args)
    limit = query["limit"]
    if limit is None and query["page"] is not None:
        limit = current_app.config["DEFAULT_PAGE_SIZE"]

    expenses = expense_service.list_expenses(
        group_id=group_id,
        caller_id=g.member_id,
        session=db.session,
        page=query["page"],
        limit=limit,
        paid_from=query["paid_from"],
        paid_to=query["paid_to"],
    )
    return jsonify({"data": expenses_out.dump(expenses), "warnings": []}), 200


@expenses_bp.route("/<int:group_id>/expenses/<int:expense_id>", methods=["GET"])
@require_auth
def get_expense(group_id: int, expense_id: int):
    """GET /groups/:id/expenses/:eid — Expense detail including splits."""
    expense = expense_service.get_expense(
        group_id=group_id,
        expense_id=expense_id,
        caller_id=g.member_id,
        session=db.session,
    )
    return jsonify({"data": expense_out.dump(expense), "warnings": []}), 200
