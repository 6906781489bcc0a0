"""
Governance Review Engine
Governance domain models.

Models:
    - GovernanceSettings:           singleton row of global governance toggles
    - GovernanceBoard:              a review board (unique name)
    - GovernanceMembership:         effective-dated board membership rows
    - GovernanceCriteriaVersion:    versioned weighted rubric (draft → published → retired)
    - GovernanceReview:             one review round for an intake submission
    - GovernanceReviewParticipant:  frozen voter snapshot taken when a round opens
    - GovernanceVote:               one upserted vote per (review, voter)

Snapshot-then-freeze: a review copies the rubric (``criteria_snapshot_json``),
the quorum policy (``policy_snapshot_json``) and the eligible roster
(participant rows) at open time.  Later edits to memberships, criteria versions
or settings never change an open or closed review.
"""

import json
from datetime import datetime, timezone

from sqlalchemy import text

from governance_engine.core.review_state import STATUS_IN_REVIEW, review_state_of
from governance_engine.core.rubric import CriteriaSet, VoteScores
from governance_engine.models import db
from governance_engine.utils.helpers import isoformat

# ── Constants ────────────────────────────────────────────────────────────────

MEMBER_ROLES = ("member", "chair")

CRITERIA_STATUS_DRAFT = "draft"
CRITERIA_STATUS_PUBLISHED = "published"
CRITERIA_STATUS_RETIRED = "retired"
CRITERIA_STATUSES = (CRITERIA_STATUS_DRAFT, CRITERIA_STATUS_PUBLISHED, CRITERIA_STATUS_RETIRED)

QUORUM_PERCENT_RANGE = (1, 100)
VOTE_WINDOW_DAYS_RANGE = (1, 90)


def _utcnow():
    return datetime.now(timezone.utc)


class GovernanceSettings(db.Model):
    """
    Global governance toggles.  Exactly one logical row.

    Read fresh at the start of every lifecycle operation that needs it;
    never cached across requests.
    """

    __tablename__ = "governance_settings"
    __table_args__ = (
        db.CheckConstraint("quorum_percent BETWEEN 1 AND 100", name="ck_governance_settings_quorum_percent"),
        db.CheckConstraint("quorum_min_count >= 1", name="ck_governance_settings_quorum_min_count"),
        db.CheckConstraint(
            "vote_window_days IS NULL OR vote_window_days BETWEEN 1 AND 90",
            name="ck_governance_settings_vote_window_days",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    governance_enabled = db.Column(db.Boolean, nullable=False, default=False)
    quorum_percent = db.Column(db.Integer, nullable=False, default=60)
    quorum_min_count = db.Column(db.Integer, nullable=False, default=1)
    decision_requires_quorum = db.Column(db.Boolean, nullable=False, default=True)
    vote_window_days = db.Column(db.Integer, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    updated_by_oid = db.Column(db.String(100), nullable=True)

    def policy_snapshot(self) -> dict:
        """Quorum policy copied onto a review when it opens (camelCase contract)."""
        return {
            "governanceEnabled": bool(self.governance_enabled),
            "quorumPercent": self.quorum_percent,
            "quorumMinCount": self.quorum_min_count,
            "decisionRequiresQuorum": bool(self.decision_requires_quorum),
            "voteWindowDays": self.vote_window_days,
        }

    def to_dict(self) -> dict:
        return {
            "governance_enabled": bool(self.governance_enabled),
            "quorum_percent": self.quorum_percent,
            "quorum_min_count": self.quorum_min_count,
            "decision_requires_quorum": bool(self.decision_requires_quorum),
            "vote_window_days": self.vote_window_days,
            "updated_at": isoformat(self.updated_at),
            "updated_by_oid": self.updated_by_oid,
        }

    def __repr__(self):
        return f"<GovernanceSettings enabled={self.governance_enabled} quorum={self.quorum_percent}%>"


class GovernanceBoard(db.Model):
    """A governance review board with its roster and rubric versions."""

    __tablename__ = "governance_boards"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by_oid = db.Column(db.String(100), nullable=True)

    memberships = db.relationship(
        "GovernanceMembership",
        backref="board",
        lazy="dynamic",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    criteria_versions = db.relationship(
        "GovernanceCriteriaVersion",
        backref="board",
        lazy="dynamic",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self, active_member_count: int | None = None) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "is_active": bool(self.is_active),
            "created_at": isoformat(self.created_at),
            "created_by_oid": self.created_by_oid,
        }
        if active_member_count is not None:
            d["active_member_count"] = active_member_count
        return d

    def __repr__(self):
        return f"<GovernanceBoard {self.id}: {self.name}>"


class GovernanceMembership(db.Model):
    """
    Effective-dated membership row.

    History is kept by closing a row (``effective_to``) and inserting a new
    one whenever role or active status changes.  At most one active row per
    (board_id, user_oid); enforced by board_service, not by a constraint,
    because closed rows must be retained.
    """

    __tablename__ = "governance_memberships"
    __table_args__ = (
        db.CheckConstraint("role IN ('member', 'chair')", name="ck_governance_membership_role"),
        db.Index("ix_governance_membership_board_active", "board_id", "is_active"),
    )

    id = db.Column(db.Integer, primary_key=True)
    board_id = db.Column(
        db.Integer,
        db.ForeignKey("governance_boards.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_oid = db.Column(db.String(100), nullable=False, index=True)
    user_name = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(20), nullable=False, default="member")
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    effective_from = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    effective_to = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by_oid = db.Column(db.String(100), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "board_id": self.board_id,
            "user_oid": self.user_oid,
            "user_name": self.user_name,
            "role": self.role,
            "is_active": bool(self.is_active),
            "effective_from": isoformat(self.effective_from),
            "effective_to": isoformat(self.effective_to),
            "created_at": isoformat(self.created_at),
            "created_by_oid": self.created_by_oid,
        }

    def __repr__(self):
        return f"<GovernanceMembership board={self.board_id} {self.user_oid} {self.role}>"


class GovernanceCriteriaVersion(db.Model):
    """
    A versioned, weighted scoring rubric for one board.

    Business rules (enforced in criteria_service):
    - version_no is unique per board and allocated as max + 1.
    - Only drafts are mutable.
    - Publishing retires the previously published version in the same
      transaction, so at most one version per board is published. The partial
      unique index ``uq_governance_criteria_published_per_board`` backs this
      in the database.
    """

    __tablename__ = "governance_criteria_versions"
    __table_args__ = (
        db.UniqueConstraint("board_id", "version_no", name="uq_governance_criteria_board_version"),
        db.CheckConstraint(
            "status IN ('draft', 'published', 'retired')",
            name="ck_governance_criteria_status",
        ),
        db.Index("ix_governance_criteria_board_status", "board_id", "status"),
        db.Index(
            "uq_governance_criteria_published_per_board",
            "board_id",
            unique=True,
            sqlite_where=text("status = 'published'"),
            postgresql_where=text("status = 'published'"),
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    board_id = db.Column(
        db.Integer,
        db.ForeignKey("governance_boards.id", ondelete="CASCADE"),
        nullable=False,
    )
    version_no = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=CRITERIA_STATUS_DRAFT)
    criteria_json = db.Column(db.Text, nullable=False, default="[]")
    published_at = db.Column(db.DateTime(timezone=True), nullable=True)
    published_by_oid = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    created_by_oid = db.Column(db.String(100), nullable=True)

    @property
    def criteria(self) -> CriteriaSet:
        return CriteriaSet.from_json(self.criteria_json)

    def to_dict(self) -> dict:
        criteria = self.criteria
        return {
            "id": self.id,
            "board_id": self.board_id,
            "version_no": self.version_no,
            "status": self.status,
            "criteria": criteria.to_list(),
            "weight_total": criteria.enabled_weight_total,
            "published_at": isoformat(self.published_at),
            "published_by_oid": self.published_by_oid,
            "created_at": isoformat(self.created_at),
            "created_by_oid": self.created_by_oid,
        }

    def __repr__(self):
        return f"<GovernanceCriteriaVersion board={self.board_id} v{self.version_no} {self.status}>"


class GovernanceReview(db.Model):
    """
    One governance review round for an intake submission.

    status: in-review → decided | cancelled (both terminal).
    A partial unique index allows only one in-review row per submission.
    The board and criteria-version FKs use NO ACTION so referenced boards
    cannot be deleted out from under review history.
    """

    __tablename__ = "governance_reviews"
    __table_args__ = (
        db.UniqueConstraint("submission_id", "review_round", name="uq_governance_review_submission_round"),
        db.CheckConstraint(
            "status IN ('in-review', 'decided', 'cancelled')",
            name="ck_governance_review_status",
        ),
        db.CheckConstraint(
            "decision IS NULL OR decision IN ('approved-now', 'approved-backlog', 'needs-info', 'rejected')",
            name="ck_governance_review_decision",
        ),
        db.Index(
            "uq_governance_review_open_per_submission",
            "submission_id",
            unique=True,
            sqlite_where=text("status = 'in-review'"),
            postgresql_where=text("status = 'in-review'"),
        ),
        db.Index("ix_governance_review_board_status", "board_id", "status"),
        db.Index("ix_governance_review_vote_deadline", "status", "vote_deadline_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    submission_id = db.Column(
        db.Integer,
        db.ForeignKey("intake_submissions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    board_id = db.Column(db.Integer, db.ForeignKey("governance_boards.id"), nullable=False)
    review_round = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=STATUS_IN_REVIEW)
    decision = db.Column(db.String(30), nullable=True)
    decision_reason = db.Column(db.Text, nullable=True)
    criteria_version_id = db.Column(
        db.Integer,
        db.ForeignKey("governance_criteria_versions.id"),
        nullable=True,
        comment="Historical pointer only; scoring always uses criteria_snapshot_json",
    )
    criteria_snapshot_json = db.Column(db.Text, nullable=False)
    policy_snapshot_json = db.Column(db.Text, nullable=True)
    vote_deadline_at = db.Column(db.DateTime(timezone=True), nullable=True)
    started_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    started_by_oid = db.Column(db.String(100), nullable=True)
    decided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    decided_by_oid = db.Column(db.String(100), nullable=True)

    board = db.relationship("GovernanceBoard")
    participants = db.relationship(
        "GovernanceReviewParticipant",
        backref="review",
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="GovernanceReviewParticipant.id",
    )
    votes = db.relationship(
        "GovernanceVote",
        backref="review",
        lazy="selectin",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="GovernanceVote.id",
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def criteria_snapshot(self) -> CriteriaSet:
        return CriteriaSet.from_json(self.criteria_snapshot_json)

    @property
    def policy_snapshot(self) -> dict:
        try:
            return json.loads(self.policy_snapshot_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    @property
    def state(self):
        return review_state_of(self.status, self.decision, self.decision_reason)

    @property
    def is_open(self) -> bool:
        return self.status == STATUS_IN_REVIEW

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "submission_id": self.submission_id,
            "board_id": self.board_id,
            "board_name": self.board.name if self.board else None,
            "review_round": self.review_round,
            "status": self.status,
            "decision": self.decision,
            "decision_reason": self.decision_reason,
            "criteria_version_id": self.criteria_version_id,
            "criteria": [c.to_dict() for c in self.criteria_snapshot.ordered],
            "policy": self.policy_snapshot,
            "vote_deadline_at": isoformat(self.vote_deadline_at),
            "started_at": isoformat(self.started_at),
            "started_by_oid": self.started_by_oid,
            "decided_at": isoformat(self.decided_at),
            "decided_by_oid": self.decided_by_oid,
        }

    def __repr__(self):
        return f"<GovernanceReview {self.id}: submission={self.submission_id} round={self.review_round} {self.status}>"


class GovernanceReviewParticipant(db.Model):
    """Frozen eligibility row; created in bulk when a review opens, never mutated."""

    __tablename__ = "governance_review_participants"
    __table_args__ = (
        db.UniqueConstraint("review_id", "user_oid", name="uq_governance_participant_review_user"),
        db.Index("ix_governance_participant_review_eligible", "review_id", "is_eligible_voter"),
    )

    id = db.Column(db.Integer, primary_key=True)
    review_id = db.Column(
        db.Integer,
        db.ForeignKey("governance_reviews.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_oid = db.Column(db.String(100), nullable=False, index=True)
    user_name = db.Column(db.String(255), nullable=True)
    participant_role = db.Column(db.String(20), nullable=False, default="member")
    is_eligible_voter = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "review_id": self.review_id,
            "user_oid": self.user_oid,
            "user_name": self.user_name,
            "participant_role": self.participant_role,
            "is_eligible_voter": bool(self.is_eligible_voter),
            "created_at": isoformat(self.created_at),
        }

    def __repr__(self):
        return f"<GovernanceReviewParticipant review={self.review_id} {self.user_oid}>"


class GovernanceVote(db.Model):
    """
    One vote per (review_id, voter_user_oid).

    Written with an INSERT ... ON CONFLICT DO UPDATE so that resubmission
    overwrites the scores and stamps ``updated_at`` while ``submitted_at``
    keeps the first submission time.
    """

    __tablename__ = "governance_votes"
    __table_args__ = (
        db.UniqueConstraint("review_id", "voter_user_oid", name="uq_governance_vote_review_voter"),
    )

    id = db.Column(db.Integer, primary_key=True)
    review_id = db.Column(
        db.Integer,
        db.ForeignKey("governance_reviews.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    voter_user_oid = db.Column(db.String(100), nullable=False, index=True)
    voter_name = db.Column(db.String(255), nullable=True)
    scores_json = db.Column(db.Text, nullable=False, default="{}")
    comment = db.Column(db.Text, nullable=True)
    conflict_declared = db.Column(db.Boolean, nullable=False, default=False)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def scores(self) -> VoteScores:
        return VoteScores.from_json(self.scores_json)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "review_id": self.review_id,
            "voter_user_oid": self.voter_user_oid,
            "voter_name": self.voter_name,
            "scores": self.scores.to_dict(),
            "comment": self.comment,
            "conflict_declared": bool(self.conflict_declared),
            "submitted_at": isoformat(self.submitted_at),
            "updated_at": isoformat(self.updated_at),
        }

    def __repr__(self):
        return f"<GovernanceVote review={self.review_id} voter={self.voter_user_oid}>"
