"""
routes/receipts.py — Receipt reference route handler.

Endpoints (base url_prefix=/api/v1/groups):
  POST /groups/:id/receipts → 201  link an uploaded receipt to an expense or settlement
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.schemas.receipt_schema import AttachReceiptSchema
from groupledger.app.schemas.responses import receipt_out
from groupledger.app.services import receipt_service

receipts_bp = Blueprint("receipts", __name__)


@receipts_bp.route("/<int:group_id>/receipts", methods=["POST"])
@require_auth
def attach_receipt(group_id: int):
    data = AttachReceiptSchema().load(request.get_json(force=True) or {})
    receipt = receipt_service.attach_receipt(
        group_id=group_id,
        requester_id=g.member_id,
        storage_ref=data["storage_ref"],
        session=db.session,
        expense_id=data["expense_id"],
        settlement_id=data["settlement_id"],
    )
    db.session.commit()
    return jsonify({"data": receipt_out.dump(receipt), "warnings": []}), 201
