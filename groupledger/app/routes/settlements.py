"""
routes/settlements.py — Settlement route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/groups):
  POST   /groups/:id/settlements  → 201  record a direct payment
  GET    /groups/:id/settlements  → 200  list settlements, newest first
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.schemas.responses import settlement_out, settlements_out
from groupledger.app.schemas.settlement_schema import CreateSettlementSchema
from groupledger.app.services import settlement_service

settlements_bp = Blueprint("settlements", __name__)


@settlements_bp.route("/<int:group_id>/settlements", methods=["POST"])
@require_auth
def create_settlement(group_id: int):
    """POST /groups/:id/settlements — Record a payment from payer_id to receiver_id."""
    settlement_request = CreateSettlementSchema().load(request.get_json(force=True) or {})
    settlement = settlement_service.record_settlement(
        group_id=group_id,
        requester_id=g.member_id,
        request=settlement_request,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": settlement_out.dump(settlement), "warnings": []}), 201


@settlements_bp.route("/<int:group_id>/settlements", methods=["GET"])
@require_auth
def list_settlements(group_id: int):
    """GET /groups/:id/settlements — List all settlements for a group."""
    settlements = settlement_service.list_settlements(
        group_id=group_id,
        caller_id=g.member_id,
        session=db.session,
    )
    return jsonify({"data": settlements_out.dump(settlements), "warnings": []}), 200
