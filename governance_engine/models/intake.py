"""
Governance Review Engine
Intake submission model.

The intake module that owns submissions (forms, conversations, conversion
to projects) lives outside this engine.  This table carries only the
columns the governance engine reads and writes:

    governance_required   whether the submission must pass governance
    governance_status     not-started | in-review | decided | skipped
    governance_decision   final decision copied from the deciding review
    governance_reason     why governance applies, or the decision reason
    priority_score        latest advisory weighted score
"""

from datetime import datetime, timezone

from governance_engine.models import db
from governance_engine.utils.helpers import isoformat

GOVERNANCE_MODES = ("off", "optional", "required")

GOVERNANCE_STATUS_NOT_STARTED = "not-started"
GOVERNANCE_STATUS_IN_REVIEW = "in-review"
GOVERNANCE_STATUS_DECIDED = "decided"
GOVERNANCE_STATUS_SKIPPED = "skipped"
GOVERNANCE_STATUSES = (
    GOVERNANCE_STATUS_NOT_STARTED,
    GOVERNANCE_STATUS_IN_REVIEW,
    GOVERNANCE_STATUS_DECIDED,
    GOVERNANCE_STATUS_SKIPPED,
)

# Submission workflow states that close a submission for governance.
CLOSED_SUBMISSION_STATUSES = ("approved", "rejected")


def _utcnow():
    return datetime.now(timezone.utc)


class IntakeSubmission(db.Model):
    """An intake request that may need a governance decision."""

    __tablename__ = "intake_submissions"
    __table_args__ = (
        db.CheckConstraint(
            "governance_status IN ('not-started', 'in-review', 'decided', 'skipped')",
            name="ck_intake_submission_governance_status",
        ),
        db.CheckConstraint(
            "governance_mode IN ('off', 'optional', 'required')",
            name="ck_intake_submission_governance_mode",
        ),
        db.Index("ix_intake_submission_governance", "governance_required", "governance_status"),
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(30), nullable=False, default="pending")
    submitter_oid = db.Column(db.String(100), nullable=True)
    submitter_name = db.Column(db.String(255), nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    governance_mode = db.Column(db.String(20), nullable=False, default="off")
    governance_board_id = db.Column(
        db.Integer,
        db.ForeignKey("governance_boards.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    governance_required = db.Column(db.Boolean, nullable=False, default=False)
    governance_status = db.Column(db.String(20), nullable=False, default=GOVERNANCE_STATUS_NOT_STARTED)
    governance_decision = db.Column(db.String(30), nullable=True)
    governance_reason = db.Column(db.Text, nullable=True)
    priority_score = db.Column(db.Numeric(9, 2), nullable=True)

    governance_board = db.relationship("GovernanceBoard")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "submitter_oid": self.submitter_oid,
            "submitter_name": self.submitter_name,
            "submitted_at": isoformat(self.submitted_at),
            "governance_mode": self.governance_mode,
            "governance_board_id": self.governance_board_id,
            "governance_board_name": self.governance_board.name if self.governance_board else None,
            "governance_required": bool(self.governance_required),
            "governance_status": self.governance_status,
            "governance_decision": self.governance_decision,
            "governance_reason": self.governance_reason,
            "priority_score": float(self.priority_score) if self.priority_score is not None else None,
        }

    def __repr__(self):
        return f"<IntakeSubmission {self.id}: {self.title} governance={self.governance_status}>"
