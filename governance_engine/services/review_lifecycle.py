"""
Review lifecycle — open, vote, decide, cancel, live status.

State machine (see ``core/review_state.py``):

    in-review ──decide──▶ decided    (terminal, decision set)
        │
        └─────cancel───▶ cancelled  (terminal, no decision)

Opening a round snapshots everything the round depends on:
    - criteria_snapshot_json  ← the board's published rubric
    - policy_snapshot_json    ← current governance settings
    - participant rows        ← memberships eligible at open time
After that, scoring and quorum read only the snapshots.  Membership, rubric
and settings changes never touch a round that is already open.

The submission's governance columns are kept in step with its reviews inside
the same transaction as each lifecycle change.

The weighted score is advisory.  Nothing here derives a decision from it.
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import select

from governance_engine.core.exceptions import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    QuorumNotMetError,
    ValidationError,
)
from governance_engine.core.review_state import DECISIONS, Cancelled, Decided
from governance_engine.core.rubric import VoteScores
from governance_engine.models import db
from governance_engine.models.audit import REVIEW_EVENT_ACTIONS, AuditLog, write_audit
from governance_engine.models.governance import (
    CRITERIA_STATUS_PUBLISHED,
    GovernanceBoard,
    GovernanceCriteriaVersion,
    GovernanceReview,
    GovernanceReviewParticipant,
)
from governance_engine.models.intake import (
    GOVERNANCE_STATUS_DECIDED,
    GOVERNANCE_STATUS_IN_REVIEW,
    GOVERNANCE_STATUS_NOT_STARTED,
    IntakeSubmission,
)
from governance_engine.services import review_repository as repo
from governance_engine.services.board_service import eligible_members
from governance_engine.services.criteria_service import get_current_published
from governance_engine.services.quorum import QuorumResult, evaluate_quorum, participation_pct
from governance_engine.services.scoring import ScoredVote, ScoreSummary, aggregate_scores
from governance_engine.services.settings_service import load_settings
from governance_engine.utils.helpers import as_utc, atomic, isoformat, parse_bool, utcnow

logger = logging.getLogger(__name__)

MAX_EVENT_PAGE = 100


# ── Private helpers ────────────────────────────────────────────────────────────


def _get_submission_or_404(submission_id: int) -> IntakeSubmission:
    submission = db.session.get(IntakeSubmission, submission_id)
    if submission is None:
        raise NotFoundError("IntakeSubmission", submission_id)
    return submission


def _score_range() -> tuple[float, float]:
    cfg = current_app.config
    return float(cfg.get("GOVERNANCE_SCORE_MIN", 0)), float(cfg.get("GOVERNANCE_SCORE_MAX", 100))


def _eligible_oids(review: GovernanceReview) -> set[str]:
    return {p.user_oid for p in review.participants if p.is_eligible_voter}


def _quorum_for(review: GovernanceReview) -> QuorumResult:
    """Evaluate quorum against the review's own policy snapshot."""
    policy = review.policy_snapshot
    eligible = _eligible_oids(review)
    voters = {v.voter_user_oid for v in review.votes if v.voter_user_oid in eligible}
    return evaluate_quorum(
        eligible_count=len(eligible),
        votes_cast=len(voters),
        quorum_percent=int(policy.get("quorumPercent", 60)),
        quorum_min_count=int(policy.get("quorumMinCount", 1)),
    )


def _scores_for(review: GovernanceReview) -> ScoreSummary:
    return aggregate_scores(
        review.criteria_snapshot,
        [ScoredVote(scores=v.scores, conflict_declared=bool(v.conflict_declared)) for v in review.votes],
    )


def _as_priority(score: float | None) -> Decimal | None:
    return Decimal(str(score)) if score is not None else None


def _deadline_passed(review: GovernanceReview, now=None) -> bool:
    deadline = as_utc(review.vote_deadline_at)
    return deadline is not None and (now or utcnow()) > deadline


def _resolve_criteria_version(board_id: int, criteria_version_id) -> GovernanceCriteriaVersion:
    if criteria_version_id is None:
        version = get_current_published(board_id)
        if version is None:
            raise NotFoundError("GovernanceBoard", board_id, reason="has no published criteria version")
        return version

    version = db.session.get(GovernanceCriteriaVersion, criteria_version_id)
    if version is None or version.board_id != board_id:
        raise NotFoundError("GovernanceCriteriaVersion", criteria_version_id)
    if version.status != CRITERIA_STATUS_PUBLISHED:
        raise InvalidStateError(
            f"Criteria version {version.id} is {version.status}; only the published version can be used",
            current_status=version.status,
        )
    return version


# ── Opening a round ────────────────────────────────────────────────────────────


def open_review(
    submission_id: int,
    board_id: int | None = None,
    started_by: str | None = None,
    started_by_name: str | None = None,
    criteria_version_id: int | None = None,
) -> dict:
    """Open the next governance review round for a submission.

    ``board_id`` defaults to the board already assigned to the submission.

    Raises:
        NotFoundError: unknown submission; unknown or inactive board; board
            without a published criteria version.
        ConflictError: the submission already has an in-review round.
        InvalidStateError: governance is not required for the submission,
            the board has no eligible members, or a pinned criteria version
            is not published.
        ValidationError: no board given and none assigned.
    """
    with atomic():
        submission = _get_submission_or_404(submission_id)

        existing = repo.open_review_for(submission.id)
        if existing is not None:
            raise ConflictError(
                "GovernanceReview", "submission_id", submission.id,
                message=f"Submission {submission.id} already has review round "
                        f"{existing.review_round} in progress",
            )
        if not submission.governance_required:
            raise InvalidStateError(
                "Governance is not required for this submission",
                current_status=submission.governance_status,
            )

        board_id = board_id or submission.governance_board_id
        if not board_id:
            raise ValidationError("board_id is required", details={"board_id": "required"})
        board = db.session.get(GovernanceBoard, board_id)
        if board is None:
            raise NotFoundError("GovernanceBoard", board_id)
        if not board.is_active:
            raise NotFoundError("GovernanceBoard", board_id, reason="is inactive")

        version = _resolve_criteria_version(board.id, criteria_version_id)
        settings = load_settings()
        now = utcnow()

        members = eligible_members(board.id, now)
        if not members:
            raise InvalidStateError(f"Board '{board.name}' has no eligible members")

        deadline = (
            now + timedelta(days=settings.vote_window_days)
            if settings.vote_window_days else None
        )
        review = GovernanceReview(
            submission_id=submission.id,
            board_id=board.id,
            review_round=repo.next_review_round(submission.id),
            criteria_version_id=version.id,
            criteria_snapshot_json=version.criteria_json,
            policy_snapshot_json=json.dumps(settings.policy_snapshot()),
            vote_deadline_at=deadline,
            started_at=now,
            started_by_oid=started_by,
        )
        participants = [
            GovernanceReviewParticipant(
                user_oid=m.user_oid,
                user_name=m.user_name,
                participant_role=m.role,
                is_eligible_voter=True,
                created_at=now,
            )
            for m in members
        ]
        repo.create_review(review, participants)

        submission.governance_board_id = board.id
        submission.governance_status = GOVERNANCE_STATUS_IN_REVIEW
        submission.governance_decision = None

        write_audit(
            entity_type="governance_review",
            entity_id=review.id,
            action="governance.review_opened",
            actor=started_by,
            actor_name=started_by_name,
            diff={"after": {
                "submission_id": submission.id,
                "board_id": board.id,
                "review_round": review.review_round,
                "criteria_version_id": version.id,
                "participant_count": len(participants),
                "vote_deadline_at": deadline,
            }},
        )

    logger.info(
        "Governance review opened",
        extra={
            "review_id": review.id,
            "submission_id": submission_id,
            "board_id": review.board_id,
            "review_round": review.review_round,
            "actor": started_by,
        },
    )
    return compute_status(review.id)


# ── Voting ─────────────────────────────────────────────────────────────────────


def cast_vote(
    review_id: int,
    voter_user_oid: str,
    scores=None,
    comment: str | None = None,
    conflict_declared=False,
    allow_late: bool | None = None,
    voter_name: str | None = None,
) -> dict:
    """Create or overwrite the caller's vote on an open review.

    ``allow_late`` overrides the ``GOVERNANCE_ACCEPT_LATE_VOTES`` setting for
    votes after the deadline; accepted late votes are flagged in the result.

    Raises:
        NotFoundError: unknown review.
        InvalidStateError: review is decided or cancelled.
        ForbiddenError: caller is not an eligible participant of the round.
        ExpiredError: the vote deadline has passed and late votes are refused.
        ValidationError: bad scores, comment or conflict flag.
    """
    conflict = parse_bool(conflict_declared) if conflict_declared is not None else False
    if conflict is None:
        raise ValidationError(
            "conflict_declared must be boolean",
            details={"conflict_declared": "boolean required"},
        )
    if comment is not None and not isinstance(comment, str):
        raise ValidationError("comment must be a string", details={"comment": "string required"})
    comment = (comment or "").strip() or None
    if allow_late is None:
        allow_late = bool(current_app.config.get("GOVERNANCE_ACCEPT_LATE_VOTES", False))
    score_min, score_max = _score_range()

    with atomic():
        review = repo.get_review_for_update(review_id)
        if not review.is_open:
            raise InvalidStateError(
                f"Review {review.id} is {review.status}; voting is closed",
                current_status=review.status,
            )

        participant = next(
            (p for p in review.participants if p.user_oid == voter_user_oid and p.is_eligible_voter),
            None,
        )
        if participant is None:
            raise ForbiddenError("Only eligible participants of this review round can vote")

        now = utcnow()
        late = _deadline_passed(review, now)
        if late and not allow_late:
            raise ExpiredError(
                "The voting deadline for this review has passed",
                details={"vote_deadline_at": isoformat(review.vote_deadline_at)},
            )

        parsed = VoteScores.from_input(scores, review.criteria_snapshot, score_min, score_max)

        vote, created = repo.upsert_vote(
            review_id=review.id,
            voter_user_oid=voter_user_oid,
            voter_name=voter_name or participant.user_name,
            scores_json=parsed.to_json(),
            comment=comment,
            conflict_declared=conflict,
            now=now,
        )

        summary = _scores_for(review)
        submission = db.session.get(IntakeSubmission, review.submission_id)
        if submission is not None:
            submission.priority_score = _as_priority(summary.overall_score)

        write_audit(
            entity_type="governance_review",
            entity_id=review.id,
            action="governance.vote_create" if created else "governance.vote_update",
            actor=voter_user_oid,
            actor_name=voter_name or participant.user_name,
            diff={"after": {
                "scores": parsed.to_dict(),
                "conflict_declared": conflict,
                "late": late,
            }},
        )
        result = {
            "vote": vote.to_dict(),
            "created": created,
            "late": late,
            "quorum": _quorum_for(review).to_dict(),
            "overall_score": summary.overall_score,
        }

    if late:
        logger.warning(
            "Late governance vote accepted",
            extra={"review_id": review_id, "actor": voter_user_oid},
        )
    logger.info(
        "Governance vote %s", "cast" if created else "updated",
        extra={"review_id": review_id, "actor": voter_user_oid, "conflict_declared": conflict},
    )
    return result


# ── Terminal transitions ───────────────────────────────────────────────────────


def decide(
    review_id: int,
    decision: str,
    reason: str | None = None,
    decided_by: str | None = None,
    decided_by_name: str | None = None,
) -> dict:
    """Record the board's decision and close the round.

    Raises:
        ValidationError: unknown decision value.
        NotFoundError: unknown review.
        InvalidStateError: review is not in-review (including a lost race).
        QuorumNotMetError: quorum is required by the review's policy
            snapshot and has not been reached.
    """
    if decision not in DECISIONS:
        raise ValidationError(
            f"decision must be one of: {', '.join(DECISIONS)}",
            details={"decision": "invalid"},
        )
    if reason is not None and not isinstance(reason, str):
        raise ValidationError("reason must be a string", details={"reason": "string required"})
    reason = (reason or "").strip() or None

    with atomic():
        review = repo.get_review_for_update(review_id)
        if not review.is_open:
            raise InvalidStateError(
                f"Review {review.id} is already {review.status}",
                current_status=review.status,
            )

        quorum = _quorum_for(review)
        if review.policy_snapshot.get("decisionRequiresQuorum", True) and not quorum.met:
            raise QuorumNotMetError(quorum.reason, details={"quorum": quorum.to_dict()})

        summary = _scores_for(review)
        now = utcnow()
        repo.transition_status(review.id, Decided(decision=decision, reason=reason), decided_by, now)

        submission = db.session.get(IntakeSubmission, review.submission_id)
        if submission is not None:
            submission.governance_status = GOVERNANCE_STATUS_DECIDED
            submission.governance_decision = decision
            submission.governance_reason = reason
            submission.priority_score = _as_priority(summary.overall_score)

        write_audit(
            entity_type="governance_review",
            entity_id=review.id,
            action="governance.review_decided",
            actor=decided_by,
            actor_name=decided_by_name,
            diff={"after": {
                "submission_id": review.submission_id,
                "review_round": review.review_round,
                "decision": decision,
                "reason": reason,
                "quorum_met": quorum.met,
                "overall_score": summary.overall_score,
            }},
        )

    logger.info(
        "Governance review decided",
        extra={
            "review_id": review_id,
            "submission_id": review.submission_id,
            "decision": decision,
            "actor": decided_by,
        },
    )
    return compute_status(review_id)


def cancel(
    review_id: int,
    reason: str | None = None,
    cancelled_by: str | None = None,
    cancelled_by_name: str | None = None,
) -> dict:
    """Cancel an open round; the submission goes back to ``not-started``.

    Raises:
        NotFoundError: unknown review.
        InvalidStateError: review is not in-review.
    """
    if reason is not None and not isinstance(reason, str):
        raise ValidationError("reason must be a string", details={"reason": "string required"})
    reason = (reason or "").strip() or None

    with atomic():
        review = repo.get_review_for_update(review_id)
        if not review.is_open:
            raise InvalidStateError(
                f"Review {review.id} is already {review.status}",
                current_status=review.status,
            )
        repo.transition_status(review.id, Cancelled(reason=reason), cancelled_by, utcnow())

        submission = db.session.get(IntakeSubmission, review.submission_id)
        if submission is not None and submission.governance_status == GOVERNANCE_STATUS_IN_REVIEW:
            submission.governance_status = GOVERNANCE_STATUS_NOT_STARTED

        write_audit(
            entity_type="governance_review",
            entity_id=review.id,
            action="governance.review_cancelled",
            actor=cancelled_by,
            actor_name=cancelled_by_name,
            diff={"after": {
                "submission_id": review.submission_id,
                "review_round": review.review_round,
                "reason": reason,
            }},
        )

    logger.info(
        "Governance review cancelled",
        extra={"review_id": review_id, "submission_id": review.submission_id, "actor": cancelled_by},
    )
    return compute_status(review_id)


# ── Read model ─────────────────────────────────────────────────────────────────


def compute_status(review_id: int) -> dict:
    """Live status of one round: snapshot, participants, votes, quorum, scores."""
    review = repo.get_review_or_404(review_id)
    quorum = _quorum_for(review)
    summary = _scores_for(review)
    voted = {v.voter_user_oid for v in review.votes}
    deadline_passed = _deadline_passed(review)
    requires_quorum = bool(review.policy_snapshot.get("decisionRequiresQuorum", True))

    participants = []
    for p in review.participants:
        d = p.to_dict()
        d["has_voted"] = p.user_oid in voted
        participants.append(d)

    return {
        "review": review.to_dict(),
        "participants": participants,
        "votes": [v.to_dict() for v in review.votes],
        "quorum": quorum.to_dict(),
        "participation_pct": participation_pct(quorum.eligible_count, quorum.votes_cast),
        "scores": summary.to_dict(),
        "deadline_passed": deadline_passed,
        "can_decide": review.is_open and (quorum.met or not requires_quorum),
    }


def get_review_status(submission_id: int) -> dict:
    """Governance view of a submission: its columns plus the latest round's live status."""
    submission = _get_submission_or_404(submission_id)
    latest = repo.latest_review(submission.id)
    rounds = [
        {"id": r.id, "review_round": r.review_round, "status": r.status, "decision": r.decision}
        for r in repo.list_reviews(submission.id)
    ]
    return {
        "submission": submission.to_dict(),
        "rounds": rounds,
        "current": compute_status(latest.id) if latest is not None else None,
    }


# ── Event feed ─────────────────────────────────────────────────────────────────


def list_governance_events(since_id: int = 0, limit: int = MAX_EVENT_PAGE) -> list[dict]:
    """Review lifecycle events with audit id greater than ``since_id``, oldest first.

    Intake polls this with the last id it processed.
    """
    if isinstance(since_id, bool) or not isinstance(since_id, int) or since_id < 0:
        raise ValidationError("since_id must be a non-negative integer", details={"since_id": "invalid"})
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ValidationError("limit must be a positive integer", details={"limit": "invalid"})
    limit = min(limit, MAX_EVENT_PAGE)

    rows = db.session.execute(
        select(AuditLog)
        .where(AuditLog.id > since_id, AuditLog.action.in_(REVIEW_EVENT_ACTIONS))
        .order_by(AuditLog.id.asc())
        .limit(limit)
    ).scalars().all()

    events = []
    for row in rows:
        payload = row.diff.get("after", {})
        events.append({
            "id": row.id,
            "action": row.action,
            "review_id": int(row.entity_id),
            "submission_id": payload.get("submission_id"),
            "actor": row.actor,
            "timestamp": isoformat(row.timestamp),
            "payload": payload,
        })
    return events
