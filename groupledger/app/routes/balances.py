"""
routes/balances.py — Balance and allocation route handlers.

Every figure is recomputed from the ledger on each request.

Endpoints (base url_prefix=/api/v1/groups):
  GET /groups/:id/balances/me       → 200  caller's balance
  GET /groups/:id/balances/debts    → 200  whom the caller owes (proportional)
  GET /groups/:id/balances/credits  → 200  who owes the caller (proportional)
  GET /groups/:id/balances/summary  → 200  group totals and per-member breakdown
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.services import balance_service, debt_allocator

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/<int:group_id>/balances/me", methods=["GET"])
@require_auth
def my_balance(group_id: int):
    result = balance_service.get_my_balance(group_id, g.member_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200


@balances_bp.route("/<int:group_id>/balances/debts", methods=["GET"])
@require_auth
def my_debts(group_id: int):
    result = debt_allocator.get_my_debts(group_id, g.member_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200


@balances_bp.route("/<int:group_id>/balances/credits", methods=["GET"])
@require_auth
def my_credits(group_id: int):
    result = debt_allocator.get_my_credits(group_id, g.member_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200


@balances_bp.route("/<int:group_id>/balances/summary", methods=["GET"])
@require_auth
def summary(group_id: int):
    """GET /groups/:id/balances/summary — total, total_paid, total_owed, balance."""
    result = balance_service.get_summary(group_id, g.member_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200
