"""
Persistence primitives for governance reviews.

Each write here is one conditioned statement, so correctness never depends on
an in-process lock:

    create_review       INSERT review + participants; the partial unique index
                        ``uq_governance_review_open_per_submission`` rejects a
                        second in-review round (→ ConflictError)
    upsert_vote         INSERT ... SELECT ... WHERE EXISTS (review in-review)
                        ON CONFLICT (review_id, voter_user_oid) DO UPDATE
                        (rowcount must be 1, otherwise InvalidStateError)
    transition_status   UPDATE ... WHERE id = :id AND status = 'in-review'
                        (rowcount must be 1, otherwise InvalidStateError)

None of these commit; callers wrap them in ``atomic()``.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, literal, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from governance_engine.core.exceptions import ConflictError, InvalidStateError, NotFoundError
from governance_engine.core.review_state import (
    STATUS_IN_REVIEW,
    Cancelled,
    Decided,
    ReviewState,
    can_transition,
)
from governance_engine.models import db
from governance_engine.models.governance import (
    GovernanceReview,
    GovernanceReviewParticipant,
    GovernanceVote,
)

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


# ── Reads ──────────────────────────────────────────────────────────────────────


def get_review_or_404(review_id: int) -> GovernanceReview:
    review = db.session.get(GovernanceReview, review_id)
    if review is None:
        raise NotFoundError("GovernanceReview", review_id)
    return review


def get_review_for_update(review_id: int) -> GovernanceReview:
    """Load a review with a row lock (SELECT ... FOR UPDATE where supported).

    Serialises a vote against a concurrent decide/cancel on the same review.
    """
    review = db.session.execute(
        select(GovernanceReview)
        .where(GovernanceReview.id == review_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if review is None:
        raise NotFoundError("GovernanceReview", review_id)
    return review


def latest_review(submission_id: int) -> GovernanceReview | None:
    """Highest-round review of a submission, whatever its status."""
    return db.session.execute(
        select(GovernanceReview)
        .where(GovernanceReview.submission_id == submission_id)
        .order_by(GovernanceReview.review_round.desc())
        .limit(1)
    ).scalar_one_or_none()


def open_review_for(submission_id: int) -> GovernanceReview | None:
    return db.session.execute(
        select(GovernanceReview).where(
            GovernanceReview.submission_id == submission_id,
            GovernanceReview.status == STATUS_IN_REVIEW,
        )
    ).scalar_one_or_none()


def next_review_round(submission_id: int) -> int:
    current_max = db.session.execute(
        select(func.max(GovernanceReview.review_round))
        .where(GovernanceReview.submission_id == submission_id)
    ).scalar()
    return (current_max or 0) + 1


def list_reviews(submission_id: int) -> list[GovernanceReview]:
    return db.session.execute(
        select(GovernanceReview)
        .where(GovernanceReview.submission_id == submission_id)
        .order_by(GovernanceReview.review_round.asc())
    ).scalars().all()


def get_vote(review_id: int, voter_user_oid: str) -> GovernanceVote | None:
    return db.session.execute(
        select(GovernanceVote)
        .where(
            GovernanceVote.review_id == review_id,
            GovernanceVote.voter_user_oid == voter_user_oid,
        )
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


# ── Writes ─────────────────────────────────────────────────────────────────────


def create_review(review: GovernanceReview, participants: list[GovernanceReviewParticipant]) -> GovernanceReview:
    """Insert a review round with its participant snapshot.

    Raises:
        ConflictError: another in-review round for the submission exists, or
            the same round number was taken concurrently.
    """
    review.participants = participants
    db.session.add(review)
    try:
        db.session.flush()
    except IntegrityError as exc:
        logger.warning(
            "Review insert rejected by unique constraint submission_id=%s round=%s",
            review.submission_id, review.review_round,
        )
        raise ConflictError(
            "GovernanceReview", "submission_id", review.submission_id,
            message=f"Submission {review.submission_id} already has a governance review in progress",
        ) from exc
    return review


def upsert_vote(
    *,
    review_id: int,
    voter_user_oid: str,
    voter_name: str | None,
    scores_json: str,
    comment: str | None,
    conflict_declared: bool,
    now: datetime,
) -> tuple[GovernanceVote, bool]:
    """Insert or overwrite the vote for (review_id, voter_user_oid).

    One statement, conditioned on the review still being in-review::

        INSERT INTO governance_votes (...)
        SELECT :values WHERE EXISTS (
            SELECT 1 FROM governance_reviews WHERE id = :rid AND status = 'in-review')
        ON CONFLICT (review_id, voter_user_oid) DO UPDATE ...

    On conflict the scores, comment and conflict flag are replaced and
    ``updated_at`` is stamped; ``submitted_at`` keeps its first value.

    Returns:
        (vote, created) where ``created`` is False for a resubmission.

    Raises:
        InvalidStateError: the review left in-review before the write.
    """
    existed = db.session.execute(
        select(GovernanceVote.id).where(
            GovernanceVote.review_id == review_id,
            GovernanceVote.voter_user_oid == voter_user_oid,
        )
    ).first() is not None

    dialect = db.session.get_bind().dialect.name
    insert_fn = _UPSERT_INSERTS.get(dialect)
    if insert_fn is None:
        raise NotImplementedError(f"Vote upsert is not supported on dialect '{dialect}'")

    cols = GovernanceVote.__table__.c
    review_open = (
        select(GovernanceReview.id)
        .where(
            GovernanceReview.id == review_id,
            GovernanceReview.status == STATUS_IN_REVIEW,
        )
        .exists()
    )
    source = select(
        literal(review_id, cols.review_id.type),
        literal(voter_user_oid, cols.voter_user_oid.type),
        literal(voter_name, cols.voter_name.type),
        literal(scores_json, cols.scores_json.type),
        literal(comment, cols.comment.type),
        literal(conflict_declared, cols.conflict_declared.type),
        literal(now, cols.submitted_at.type),
    ).where(review_open)

    stmt = insert_fn(GovernanceVote).from_select(
        [
            "review_id",
            "voter_user_oid",
            "voter_name",
            "scores_json",
            "comment",
            "conflict_declared",
            "submitted_at",
        ],
        source,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["review_id", "voter_user_oid"],
        set_={
            "scores_json": stmt.excluded.scores_json,
            "comment": stmt.excluded.comment,
            "conflict_declared": stmt.excluded.conflict_declared,
            "voter_name": func.coalesce(stmt.excluded.voter_name, cols.voter_name),
            "updated_at": now,
        },
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        current = db.session.execute(
            select(GovernanceReview.status).where(GovernanceReview.id == review_id)
        ).scalar()
        logger.warning(
            "Vote write rejected, review no longer in review review_id=%s status=%s",
            review_id, current,
        )
        raise InvalidStateError(
            f"Review {review_id} is {current}; voting is closed",
            current_status=current,
        )

    vote = get_vote(review_id, voter_user_oid)
    review = db.session.get(GovernanceReview, review_id)
    if review is not None:
        db.session.expire(review, ["votes"])
    return vote, not existed


def transition_status(
    review_id: int,
    target: ReviewState,
    actor: str | None,
    at: datetime,
) -> None:
    """Compare-and-swap a review from in-review to a terminal state.

    Raises:
        InvalidStateError: the review is no longer in-review (someone else
            decided or cancelled it first).
    """
    if not can_transition(STATUS_IN_REVIEW, target.status):
        raise InvalidStateError(f"Cannot move a review to '{target.status}'")

    values = {
        "status": target.status,
        "decided_at": at,
        "decided_by_oid": actor,
    }
    if isinstance(target, Decided):
        values["decision"] = target.decision
        values["decision_reason"] = target.reason
    elif isinstance(target, Cancelled):
        values["decision"] = None
        values["decision_reason"] = target.reason

    result = db.session.execute(
        update(GovernanceReview)
        .where(
            GovernanceReview.id == review_id,
            GovernanceReview.status == STATUS_IN_REVIEW,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        current = db.session.execute(
            select(GovernanceReview.status).where(GovernanceReview.id == review_id)
        ).scalar()
        raise InvalidStateError(
            f"Review {review_id} is not in review",
            current_status=current,
        )

    review = db.session.get(GovernanceReview, review_id)
    if review is not None:
        db.session.refresh(review)
