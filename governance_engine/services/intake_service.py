"""
Intake collaborator — the governance-facing side of intake submissions.

A submission's governance requirement is resolved when it is created:

    governance_required = settings.governance_enabled and mode == "required"
    governance_status   = "not-started" if required else "skipped"

Intake managers can later apply or skip governance by hand.  Neither is
allowed once a decision exists; applying is also refused on closed
(approved / rejected) submissions.  The queue lists submissions that require
governance, highest priority score first.
"""

from __future__ import annotations

import logging

from sqlalchemy import case, func, select

from governance_engine.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from governance_engine.models import db
from governance_engine.models.audit import write_audit
from governance_engine.models.governance import GovernanceBoard
from governance_engine.models.intake import (
    CLOSED_SUBMISSION_STATUSES,
    GOVERNANCE_MODES,
    GOVERNANCE_STATUS_DECIDED,
    GOVERNANCE_STATUS_IN_REVIEW,
    GOVERNANCE_STATUS_NOT_STARTED,
    GOVERNANCE_STATUS_SKIPPED,
    GOVERNANCE_STATUSES,
    IntakeSubmission,
)
from governance_engine.services.settings_service import load_settings
from governance_engine.utils.helpers import atomic

logger = logging.getLogger(__name__)

QUEUE_DEFAULT_LIMIT = 50
QUEUE_MAX_LIMIT = 100

_REASON_REQUIRED = "Governance required by intake form policy."
_REASON_NOT_REQUIRED = "Governance not required for this submission."
_REASON_APPLIED = "Marked for governance review by intake manager."
_REASON_SKIPPED = "Governance skipped by intake manager."


def _get_or_404(submission_id: int) -> IntakeSubmission:
    submission = db.session.get(IntakeSubmission, submission_id)
    if submission is None:
        raise NotFoundError("IntakeSubmission", submission_id)
    return submission


def _snapshot(submission: IntakeSubmission) -> dict:
    return {
        "governance_required": bool(submission.governance_required),
        "governance_status": submission.governance_status,
        "governance_reason": submission.governance_reason,
        "governance_board_id": submission.governance_board_id,
    }


def _reason_or(reason, default: str) -> str:
    if isinstance(reason, str) and reason.strip():
        return reason.strip()
    return default


def _check_board(board_id) -> int | None:
    if board_id is None:
        return None
    if db.session.get(GovernanceBoard, board_id) is None:
        raise NotFoundError("GovernanceBoard", board_id)
    return board_id


def get_submission(submission_id: int) -> dict:
    return _get_or_404(submission_id).to_dict()


def create_submission(
    title,
    submitter_oid: str | None = None,
    submitter_name: str | None = None,
    governance_mode: str = "off",
    board_id: int | None = None,
) -> dict:
    """Create a submission with its governance defaults resolved from settings.

    Raises:
        ValidationError: empty title or unknown governance mode.
        NotFoundError: unknown board.
    """
    cleaned = title.strip() if isinstance(title, str) else ""
    if not cleaned:
        raise ValidationError("title is required", details={"title": "required"})
    mode = (governance_mode or "off").strip().lower() if isinstance(governance_mode, str) else None
    if mode not in GOVERNANCE_MODES:
        raise ValidationError(
            f"governance_mode must be one of: {', '.join(GOVERNANCE_MODES)}",
            details={"governance_mode": "invalid"},
        )

    with atomic():
        board_id = _check_board(board_id)
        settings = load_settings()
        required = bool(settings.governance_enabled) and mode == "required"
        submission = IntakeSubmission(
            title=cleaned,
            submitter_oid=submitter_oid,
            submitter_name=submitter_name,
            governance_mode=mode,
            governance_board_id=board_id,
            governance_required=required,
            governance_status=GOVERNANCE_STATUS_NOT_STARTED if required else GOVERNANCE_STATUS_SKIPPED,
            governance_reason=_REASON_REQUIRED if required else _REASON_NOT_REQUIRED,
        )
        db.session.add(submission)
        db.session.flush()
        write_audit(
            entity_type="submission",
            entity_id=submission.id,
            action="submission.create",
            actor=submitter_oid,
            actor_name=submitter_name,
            diff={"after": {"title": cleaned, "governance_mode": mode, **_snapshot(submission)}},
        )

    logger.info(
        "Submission created id=%s mode=%s governance_required=%s",
        submission.id, mode, required,
    )
    return submission.to_dict()


def apply_governance(
    submission_id: int,
    reason: str | None = None,
    board_id: int | None = None,
    applied_by: str | None = None,
    applied_by_name: str | None = None,
) -> dict:
    """Mark a submission as requiring governance.

    A skipped submission moves back to ``not-started``; other statuses are kept.

    Raises:
        NotFoundError: unknown submission or board.
        InvalidStateError: submission is closed or already decided.
    """
    with atomic():
        submission = _get_or_404(submission_id)
        if (submission.status or "").lower() in CLOSED_SUBMISSION_STATUSES:
            raise InvalidStateError(
                "Cannot apply governance to a closed submission",
                current_status=submission.status,
            )
        if submission.governance_status == GOVERNANCE_STATUS_DECIDED:
            raise InvalidStateError(
                "Governance already decided for this submission",
                current_status=submission.governance_status,
            )
        before = _snapshot(submission)
        if board_id is not None:
            submission.governance_board_id = _check_board(board_id)
        submission.governance_required = True
        if submission.governance_status == GOVERNANCE_STATUS_SKIPPED:
            submission.governance_status = GOVERNANCE_STATUS_NOT_STARTED
        submission.governance_reason = _reason_or(reason, _REASON_APPLIED)
        db.session.flush()
        write_audit(
            entity_type="submission",
            entity_id=submission.id,
            action="submission.governance_apply",
            actor=applied_by,
            actor_name=applied_by_name,
            diff={"before": before, "after": _snapshot(submission)},
        )

    logger.info("Governance applied to submission id=%s by=%s", submission_id, applied_by)
    return submission.to_dict()


def skip_governance(
    submission_id: int,
    reason: str | None = None,
    skipped_by: str | None = None,
    skipped_by_name: str | None = None,
) -> dict:
    """Exempt a submission from governance.

    Raises:
        NotFoundError: unknown submission.
        InvalidStateError: already decided, or a review round is open
            (cancel it first).
    """
    with atomic():
        submission = _get_or_404(submission_id)
        if submission.governance_status == GOVERNANCE_STATUS_DECIDED:
            raise InvalidStateError(
                "Cannot skip governance after decision",
                current_status=submission.governance_status,
            )
        if submission.governance_status == GOVERNANCE_STATUS_IN_REVIEW:
            raise InvalidStateError(
                "Cancel the open governance review before skipping governance",
                current_status=submission.governance_status,
            )
        before = _snapshot(submission)
        submission.governance_required = False
        submission.governance_status = GOVERNANCE_STATUS_SKIPPED
        submission.governance_reason = _reason_or(reason, _REASON_SKIPPED)
        db.session.flush()
        write_audit(
            entity_type="submission",
            entity_id=submission.id,
            action="submission.governance_skip",
            actor=skipped_by,
            actor_name=skipped_by_name,
            diff={"before": before, "after": _snapshot(submission)},
        )

    logger.info("Governance skipped for submission id=%s by=%s", submission_id, skipped_by)
    return submission.to_dict()


def governance_queue(
    board_id: int | None = None,
    governance_status: str | None = None,
    decision: str | None = None,
    page: int = 1,
    limit: int = QUEUE_DEFAULT_LIMIT,
) -> dict:
    """Submissions that require governance, paginated.

    Ordered by priority score (highest first, unscored last), then oldest
    submission first.
    """
    if governance_status and governance_status not in GOVERNANCE_STATUSES:
        raise ValidationError(
            f"governance_status must be one of: {', '.join(GOVERNANCE_STATUSES)}",
            details={"governance_status": "invalid"},
        )
    page = max(1, page or 1)
    limit = min(QUEUE_MAX_LIMIT, max(1, limit or QUEUE_DEFAULT_LIMIT))

    filters = [IntakeSubmission.governance_required.is_(True)]
    if board_id is not None:
        filters.append(IntakeSubmission.governance_board_id == board_id)
    if governance_status:
        filters.append(IntakeSubmission.governance_status == governance_status)
    if decision:
        filters.append(IntakeSubmission.governance_decision == decision)

    total = db.session.execute(
        select(func.count(IntakeSubmission.id)).where(*filters)
    ).scalar_one()
    rows = db.session.execute(
        select(IntakeSubmission)
        .where(*filters)
        .order_by(
            case((IntakeSubmission.priority_score.is_(None), 1), else_=0),
            IntakeSubmission.priority_score.desc(),
            IntakeSubmission.submitted_at.asc(),
            IntakeSubmission.id.asc(),
        )
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()

    return {
        "items": [s.to_dict() for s in rows],
        "total": total,
        "page": page,
        "limit": limit,
    }
