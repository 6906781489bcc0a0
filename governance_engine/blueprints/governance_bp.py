"""Governance administration blueprint.

Endpoint groups
───────────────
  Settings   GET  /governance/settings                                   Read settings
             PUT  /governance/settings                                   Partial update
  Boards     GET  /governance/boards                                     List boards
             POST /governance/boards                                     Create board
             GET  /governance/boards/<bid>                               Get board
             PUT  /governance/boards/<bid>                               Rename / (de)activate
             DELETE /governance/boards/<bid>                             Delete unused board
  Members    GET  /governance/boards/<bid>/members                       Roster (history opt-in)
             POST /governance/boards/<bid>/members                       Upsert membership
  Criteria   GET  /governance/boards/<bid>/criteria/versions             List versions
             POST /governance/boards/<bid>/criteria/versions             Create draft
             PUT  /governance/boards/<bid>/criteria/versions/<vid>       Edit draft
             POST /governance/boards/<bid>/criteria/versions/<vid>/publish
  Queue      GET  /governance/queue                                      Submissions awaiting governance
  Events     GET  /governance/events?since_id=<n>                        Review lifecycle feed
"""

import logging

from flask import Blueprint, g, jsonify, request

from governance_engine.blueprints import bool_arg, int_arg, json_body
from governance_engine.middleware.identity import require_identity
from governance_engine.services import (
    board_service,
    criteria_service,
    intake_service,
    review_lifecycle,
    settings_service,
)
from governance_engine.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

governance_bp = Blueprint("governance", __name__, url_prefix="/api/v1/governance")
register_error_handlers(governance_bp)


# ══════════════════════════════════════════════════════════════════
# 1.  Settings
# ══════════════════════════════════════════════════════════════════

@governance_bp.route("/settings", methods=["GET"])
def get_settings():
    return jsonify(settings_service.get_settings())


@governance_bp.route("/settings", methods=["PUT"])
@require_identity
def update_settings():
    result = settings_service.update_settings(
        json_body(), updated_by=g.user_oid, updated_by_name=g.user_name,
    )
    return jsonify(result)


# ══════════════════════════════════════════════════════════════════
# 2.  Boards
# ══════════════════════════════════════════════════════════════════

@governance_bp.route("/boards", methods=["GET"])
def list_boards():
    items = board_service.list_boards(include_inactive=bool_arg("include_inactive"))
    return jsonify({"items": items, "total": len(items)})


@governance_bp.route("/boards", methods=["POST"])
@require_identity
def create_board():
    data = json_body()
    board = board_service.create_board(
        data.get("name"),
        is_active=data.get("is_active", True),
        created_by=g.user_oid,
        created_by_name=g.user_name,
    )
    return jsonify(board), 201


@governance_bp.route("/boards/<int:board_id>", methods=["GET"])
def get_board(board_id):
    return jsonify(board_service.get_board(board_id))


@governance_bp.route("/boards/<int:board_id>", methods=["PUT"])
@require_identity
def update_board(board_id):
    board = board_service.update_board(
        board_id, json_body(), updated_by=g.user_oid, updated_by_name=g.user_name,
    )
    return jsonify(board)


@governance_bp.route("/boards/<int:board_id>", methods=["DELETE"])
@require_identity
def delete_board(board_id):
    board_service.delete_board(board_id, deleted_by=g.user_oid, deleted_by_name=g.user_name)
    return jsonify({"deleted": True, "id": board_id})


# ══════════════════════════════════════════════════════════════════
# 3.  Memberships
# ══════════════════════════════════════════════════════════════════

@governance_bp.route("/boards/<int:board_id>/members", methods=["GET"])
def list_members(board_id):
    items = board_service.list_members(board_id, include_inactive=bool_arg("include_inactive"))
    return jsonify({"items": items, "total": len(items)})


@governance_bp.route("/boards/<int:board_id>/members", methods=["POST"])
@require_identity
def upsert_member(board_id):
    data = json_body()
    membership = board_service.upsert_membership(
        board_id,
        data.get("user_oid"),
        role=data.get("role", "member"),
        is_active=data.get("is_active", True),
        effective_from=data.get("effective_from"),
        effective_to=data.get("effective_to"),
        user_name=data.get("user_name"),
        created_by=g.user_oid,
        created_by_name=g.user_name,
    )
    return jsonify(membership)


# ══════════════════════════════════════════════════════════════════
# 4.  Criteria versions
# ══════════════════════════════════════════════════════════════════

@governance_bp.route("/boards/<int:board_id>/criteria/versions", methods=["GET"])
def list_criteria_versions(board_id):
    items = criteria_service.list_versions(board_id)
    return jsonify({"items": items, "total": len(items)})


@governance_bp.route("/boards/<int:board_id>/criteria/versions", methods=["POST"])
@require_identity
def create_criteria_version(board_id):
    version = criteria_service.create_draft(
        board_id, json_body().get("criteria"),
        created_by=g.user_oid, created_by_name=g.user_name,
    )
    return jsonify(version), 201


@governance_bp.route("/boards/<int:board_id>/criteria/versions/<int:version_id>", methods=["PUT"])
@require_identity
def update_criteria_version(board_id, version_id):
    version = criteria_service.update_draft(
        version_id, json_body().get("criteria"),
        updated_by=g.user_oid, updated_by_name=g.user_name, board_id=board_id,
    )
    return jsonify(version)


@governance_bp.route(
    "/boards/<int:board_id>/criteria/versions/<int:version_id>/publish", methods=["POST"],
)
@require_identity
def publish_criteria_version(board_id, version_id):
    version = criteria_service.publish(
        version_id, published_by=g.user_oid, published_by_name=g.user_name, board_id=board_id,
    )
    return jsonify(version)


# ══════════════════════════════════════════════════════════════════
# 5.  Queue & event feed
# ══════════════════════════════════════════════════════════════════

@governance_bp.route("/queue", methods=["GET"])
def governance_queue():
    result = intake_service.governance_queue(
        board_id=int_arg("board_id"),
        governance_status=(request.args.get("governance_status") or "").strip() or None,
        decision=(request.args.get("decision") or "").strip() or None,
        page=int_arg("page", 1, minimum=1),
        limit=int_arg("limit", intake_service.QUEUE_DEFAULT_LIMIT, minimum=1),
    )
    return jsonify(result)


@governance_bp.route("/events", methods=["GET"])
def governance_events():
    since_id = int_arg("since_id", 0, minimum=0)
    events = review_lifecycle.list_governance_events(
        since_id=since_id,
        limit=int_arg("limit", review_lifecycle.MAX_EVENT_PAGE, minimum=1),
    )
    next_since = events[-1]["id"] if events else since_id
    return jsonify({"items": events, "next_since_id": next_since})
