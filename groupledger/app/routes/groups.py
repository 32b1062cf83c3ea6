"""
routes/groups.py — Group lifecycle and membership route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/groups):
  POST   /groups                        → 201  create group (caller becomes admin)
  DELETE /groups/:id                    → 200  delete group and its ledger (admin)
  POST   /groups/:id/members            → 201  add member (admin)
  DELETE /groups/:id/members/:mid       → 200  remove member with zero balance (admin)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from groupledger.app.extensions import db
from groupledger.app.middleware.auth_middleware import require_auth
from groupledger.app.schemas.group_schema import AddMemberSchema, CreateGroupSchema
from groupledger.app.services import group_service

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("", methods=["POST"])
@require_auth
def create_group():
    """POST /groups — Create a new group."""
    data = CreateGroupSchema().load(request.get_json(force=True) or {})
    result = group_service.create_group(
        name=data["name"],
        creator_id=g.member_id,
        session=db.session,
        description=data.get("description"),
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/<int:group_id>", methods=["DELETE"])
@require_auth
def delete_group(group_id: int):
    """DELETE /groups/:id — Tear down the group, including its ledger. Admin only."""
    group_service.delete_group(
        group_id=group_id,
        requester_id=g.member_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {"deleted": True, "group_id": group_id},
        "warnings": [],
    }), 200


@groups_bp.route("/<int:group_id>/members", methods=["POST"])
@require_auth
def add_member(group_id: int):
    """POST /groups/:id/members — Add a member. Admin only."""
    data = AddMemberSchema().load(request.get_json(force=True) or {})
    result = group_service.add_member(
        group_id=group_id,
        requester_id=g.member_id,
        member_id=data["member_id"],
        session=db.session,
        role=data["role"],
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/<int:group_id>/members/<int:member_id>", methods=["DELETE"])
@require_auth
def remove_member(group_id: int, member_id: int):
    """DELETE /groups/:id/members/:mid — Remove a member whose balance is zero."""
    group_service.remove_member(
        group_id=group_id,
        requester_id=g.member_id,
        member_id=member_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {
            "removed": True,
            "group_id": group_id,
            "member_id": member_id,
        },
        "warnings": [],
    }), 200
