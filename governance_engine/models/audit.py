"""
Governance Review Engine
Audit domain model.

Models:
    - AuditLog: immutable, append-only audit trail for governance events.

The audit log doubles as the event feed the intake collaborator polls to
learn that a review was opened, decided or cancelled
(see ``review_lifecycle.list_governance_events``).
"""

import json
from datetime import datetime, timezone

from governance_engine.models import db
from governance_engine.utils.helpers import isoformat

# ── Constants ────────────────────────────────────────────────────────────────

AUDIT_ENTITY_TYPES = {
    "governance_settings",
    "governance_board",
    "governance_membership",
    "governance_criteria_version",
    "governance_review",
    "submission",
}

AUDIT_ACTIONS = {
    # Administration
    "governance.settings_update",
    "governance.board_create",
    "governance.board_update",
    "governance.board_delete",
    "governance.member_upsert",
    "governance.criteria_version_create",
    "governance.criteria_version_update",
    "governance.criteria_version_publish",
    # Intake collaboration
    "submission.create",
    "submission.governance_apply",
    "submission.governance_skip",
    # Review lifecycle
    "governance.review_opened",
    "governance.vote_create",
    "governance.vote_update",
    "governance.review_decided",
    "governance.review_cancelled",
}

# Actions the intake collaborator reacts to.
REVIEW_EVENT_ACTIONS = (
    "governance.review_opened",
    "governance.review_decided",
    "governance.review_cancelled",
)


class AuditLog(db.Model):
    """
    Immutable audit trail for every governance mutation.

    One row per action.  ``diff_json`` carries the before/after payload.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_actor", "actor"),
        db.Index("idx_audit_action", "action"),
        db.Index("idx_audit_ts", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Polymorphic entity reference
    entity_type = db.Column(
        db.String(40), nullable=False,
        comment="governance_board | governance_review | submission | …",
    )
    entity_id = db.Column(
        db.String(36), nullable=False,
        comment="PK of the referenced entity as string",
    )

    # What happened
    action = db.Column(
        db.String(60), nullable=False,
        comment="governance.review_decided | governance.member_upsert | …",
    )
    actor = db.Column(
        db.String(150), nullable=False, default="system",
        comment="Authenticated user OID or 'system'",
    )
    actor_name = db.Column(db.String(255), nullable=True)

    # Change payload
    diff_json = db.Column(
        db.Text, default="{}",
        comment="JSON: {before, after} snapshot of the change",
    )

    # Timestamp (immutable)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    # ── Helpers ──────────────────────────────────────────────────────────

    @property
    def diff(self) -> dict:
        """Deserialise *diff_json* to a Python dict."""
        try:
            return json.loads(self.diff_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "actor_name": self.actor_name,
            "diff": self.diff,
            "timestamp": isoformat(self.timestamp),
        }

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────


def write_audit(
    *,
    entity_type: str,
    entity_id,
    action: str,
    actor: str | None = None,
    actor_name: str | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """
    Append a single audit row.  Uses ``flush`` so callers keep
    transaction control: the row commits or rolls back with the change
    it describes.

    Returns the (flushed) AuditLog instance.
    """
    log = AuditLog(
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor or "system",
        actor_name=actor_name,
        diff_json=json.dumps(diff or {}, default=str),
    )
    db.session.add(log)
    db.session.flush()
    return log
