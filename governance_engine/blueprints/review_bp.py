"""Governance review blueprint — intake submissions and review rounds.

Endpoint groups
───────────────
  Submissions  POST /submissions                                  Create (governance defaults resolved)
               GET  /submissions/<sid>                            Get submission
               POST /submissions/<sid>/governance/apply           Require governance
               POST /submissions/<sid>/governance/skip            Exempt from governance
  Rounds       POST /submissions/<sid>/governance/start           Open next review round
               GET  /submissions/<sid>/governance                 Latest round live status
               GET  /governance/reviews/<rid>                     Round live status
  Lifecycle    POST /governance/reviews/<rid>/votes               Cast / overwrite own vote
               POST /governance/reviews/<rid>/decide              Record decision
               POST /governance/reviews/<rid>/cancel              Cancel round
"""

import logging

from flask import Blueprint, g, jsonify

from governance_engine.blueprints import json_body
from governance_engine.core.exceptions import ValidationError
from governance_engine.middleware.identity import require_identity
from governance_engine.services import intake_service, review_lifecycle
from governance_engine.utils.errors import register_error_handlers
from governance_engine.utils.helpers import parse_bool

logger = logging.getLogger(__name__)

review_bp = Blueprint("review", __name__, url_prefix="/api/v1")
register_error_handlers(review_bp)


def _optional_int(data: dict, field: str):
    value = data.get(field)
    if value in (None, ""):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer", details={field: "integer required"})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer", details={field: "integer required"})


# ══════════════════════════════════════════════════════════════════
# 1.  Submissions (intake collaborator)
# ══════════════════════════════════════════════════════════════════

@review_bp.route("/submissions", methods=["POST"])
@require_identity
def create_submission():
    data = json_body()
    submission = intake_service.create_submission(
        data.get("title"),
        submitter_oid=g.user_oid,
        submitter_name=g.user_name,
        governance_mode=data.get("governance_mode", "off"),
        board_id=_optional_int(data, "board_id"),
    )
    return jsonify(submission), 201


@review_bp.route("/submissions/<int:submission_id>", methods=["GET"])
def get_submission(submission_id):
    return jsonify(intake_service.get_submission(submission_id))


@review_bp.route("/submissions/<int:submission_id>/governance/apply", methods=["POST"])
@require_identity
def apply_governance(submission_id):
    data = json_body()
    submission = intake_service.apply_governance(
        submission_id,
        reason=data.get("reason"),
        board_id=_optional_int(data, "board_id"),
        applied_by=g.user_oid,
        applied_by_name=g.user_name,
    )
    return jsonify(submission)


@review_bp.route("/submissions/<int:submission_id>/governance/skip", methods=["POST"])
@require_identity
def skip_governance(submission_id):
    submission = intake_service.skip_governance(
        submission_id,
        reason=json_body().get("reason"),
        skipped_by=g.user_oid,
        skipped_by_name=g.user_name,
    )
    return jsonify(submission)


# ══════════════════════════════════════════════════════════════════
# 2.  Review rounds
# ══════════════════════════════════════════════════════════════════

@review_bp.route("/submissions/<int:submission_id>/governance/start", methods=["POST"])
@require_identity
def start_review(submission_id):
    data = json_body()
    status = review_lifecycle.open_review(
        submission_id,
        board_id=_optional_int(data, "board_id"),
        started_by=g.user_oid,
        started_by_name=g.user_name,
        criteria_version_id=_optional_int(data, "criteria_version_id"),
    )
    return jsonify(status), 201


@review_bp.route("/submissions/<int:submission_id>/governance", methods=["GET"])
def submission_review_status(submission_id):
    return jsonify(review_lifecycle.get_review_status(submission_id))


@review_bp.route("/governance/reviews/<int:review_id>", methods=["GET"])
def review_status(review_id):
    return jsonify(review_lifecycle.compute_status(review_id))


# ══════════════════════════════════════════════════════════════════
# 3.  Votes & terminal transitions
# ══════════════════════════════════════════════════════════════════

@review_bp.route("/governance/reviews/<int:review_id>/votes", methods=["POST"])
@require_identity
def cast_vote(review_id):
    data = json_body()
    allow_late = None
    if "allow_late" in data:
        allow_late = parse_bool(data["allow_late"])
        if allow_late is None:
            raise ValidationError("allow_late must be boolean", details={"allow_late": "boolean required"})
    result = review_lifecycle.cast_vote(
        review_id,
        g.user_oid,
        scores=data.get("scores"),
        comment=data.get("comment"),
        conflict_declared=data.get("conflict_declared", False),
        allow_late=allow_late,
        voter_name=g.user_name,
    )
    return jsonify(result), 201 if result["created"] else 200


@review_bp.route("/governance/reviews/<int:review_id>/decide", methods=["POST"])
@require_identity
def decide_review(review_id):
    data = json_body()
    decision = data.get("decision")
    if not decision:
        raise ValidationError("decision is required", details={"decision": "required"})
    status = review_lifecycle.decide(
        review_id,
        decision,
        reason=data.get("reason"),
        decided_by=g.user_oid,
        decided_by_name=g.user_name,
    )
    return jsonify(status)


@review_bp.route("/governance/reviews/<int:review_id>/cancel", methods=["POST"])
@require_identity
def cancel_review(review_id):
    status = review_lifecycle.cancel(
        review_id,
        reason=json_body().get("reason"),
        cancelled_by=g.user_oid,
        cancelled_by_name=g.user_name,
    )
    return jsonify(status)
