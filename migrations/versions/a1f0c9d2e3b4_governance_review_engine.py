"""governance_review_engine

Creates the governance review engine schema:
  - governance_settings             — global toggles (one logical row)
  - governance_boards               — review boards (unique name)
  - intake_submissions              — governance columns of intake submissions
  - governance_memberships          — effective-dated board membership history
  - governance_criteria_versions    — versioned weighted rubrics per board
  - governance_reviews              — review rounds with frozen snapshots
  - governance_review_participants  — eligibility snapshot per round
  - governance_votes                — one vote per (review, voter)
  - audit_logs                      — append-only audit trail / event feed

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: a1f0c9d2e3b4
Revises:
Create Date: 2026-10-19 09:12:44.318207
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = 'a1f0c9d2e3b4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── GovernanceSettings ────────────────────────────────────────────────
    if "governance_settings" not in existing:
        op.create_table(
            "governance_settings",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("governance_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("quorum_percent", sa.Integer(), nullable=False, server_default="60"),
            sa.Column("quorum_min_count", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("decision_requires_quorum", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("vote_window_days", sa.Integer(), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_by_oid", sa.String(length=100), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint("quorum_percent BETWEEN 1 AND 100", name="ck_governance_settings_quorum_percent"),
            sa.CheckConstraint("quorum_min_count >= 1", name="ck_governance_settings_quorum_min_count"),
            sa.CheckConstraint(
                "vote_window_days IS NULL OR vote_window_days BETWEEN 1 AND 90",
                name="ck_governance_settings_vote_window_days",
            ),
        )

    # ── GovernanceBoard ───────────────────────────────────────────────────
    if "governance_boards" not in existing:
        op.create_table(
            "governance_boards",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("created_by_oid", sa.String(length=100), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    # ── IntakeSubmission ──────────────────────────────────────────────────
    if "intake_submissions" not in existing:
        op.create_table(
            "intake_submissions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="pending"),
            sa.Column("submitter_oid", sa.String(length=100), nullable=True),
            sa.Column("submitter_name", sa.String(length=255), nullable=True),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("governance_mode", sa.String(length=20), nullable=False, server_default="off"),
            sa.Column("governance_board_id", sa.Integer(), nullable=True),
            sa.Column("governance_required", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column(
                "governance_status", sa.String(length=20), nullable=False,
                server_default="not-started",
                comment="not-started | in-review | decided | skipped",
            ),
            sa.Column("governance_decision", sa.String(length=30), nullable=True),
            sa.Column("governance_reason", sa.Text(), nullable=True),
            sa.Column("priority_score", sa.Numeric(precision=9, scale=2), nullable=True),
            sa.ForeignKeyConstraint(["governance_board_id"], ["governance_boards.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "governance_status IN ('not-started', 'in-review', 'decided', 'skipped')",
                name="ck_intake_submission_governance_status",
            ),
            sa.CheckConstraint(
                "governance_mode IN ('off', 'optional', 'required')",
                name="ck_intake_submission_governance_mode",
            ),
        )
        op.create_index(
            "ix_intake_submissions_governance_board_id", "intake_submissions", ["governance_board_id"],
        )
        op.create_index(
            "ix_intake_submission_governance", "intake_submissions",
            ["governance_required", "governance_status"],
        )

    # ── GovernanceMembership ──────────────────────────────────────────────
    if "governance_memberships" not in existing:
        op.create_table(
            "governance_memberships",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("board_id", sa.Integer(), nullable=False),
            sa.Column("user_oid", sa.String(length=100), nullable=False),
            sa.Column("user_name", sa.String(length=255), nullable=True),
            sa.Column("role", sa.String(length=20), nullable=False, server_default="member"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("effective_from", sa.DateTime(timezone=True), nullable=False),
            sa.Column(
                "effective_to", sa.DateTime(timezone=True), nullable=True,
                comment="Set when the row is closed; NULL means open-ended.",
            ),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("created_by_oid", sa.String(length=100), nullable=True),
            sa.ForeignKeyConstraint(["board_id"], ["governance_boards.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint("role IN ('member', 'chair')", name="ck_governance_membership_role"),
        )
        op.create_index("ix_governance_memberships_user_oid", "governance_memberships", ["user_oid"])
        op.create_index(
            "ix_governance_membership_board_active", "governance_memberships", ["board_id", "is_active"],
        )

    # ── GovernanceCriteriaVersion ─────────────────────────────────────────
    if "governance_criteria_versions" not in existing:
        op.create_table(
            "governance_criteria_versions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("board_id", sa.Integer(), nullable=False),
            sa.Column("version_no", sa.Integer(), nullable=False),
            sa.Column(
                "status", sa.String(length=20), nullable=False, server_default="draft",
                comment="draft | published | retired",
            ),
            sa.Column("criteria_json", sa.Text(), nullable=False),
            sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("published_by_oid", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("created_by_oid", sa.String(length=100), nullable=True),
            sa.ForeignKeyConstraint(["board_id"], ["governance_boards.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("board_id", "version_no", name="uq_governance_criteria_board_version"),
            sa.CheckConstraint(
                "status IN ('draft', 'published', 'retired')",
                name="ck_governance_criteria_status",
            ),
        )
        op.create_index(
            "ix_governance_criteria_board_status", "governance_criteria_versions", ["board_id", "status"],
        )
        op.create_index(
            "uq_governance_criteria_published_per_board", "governance_criteria_versions", ["board_id"],
            unique=True,
            sqlite_where=sa.text("status = 'published'"),
            postgresql_where=sa.text("status = 'published'"),
        )

    # ── GovernanceReview ──────────────────────────────────────────────────
    if "governance_reviews" not in existing:
        op.create_table(
            "governance_reviews",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("submission_id", sa.Integer(), nullable=False),
            sa.Column("board_id", sa.Integer(), nullable=False),
            sa.Column("review_round", sa.Integer(), nullable=False),
            sa.Column(
                "status", sa.String(length=20), nullable=False, server_default="in-review",
                comment="in-review | decided | cancelled",
            ),
            sa.Column("decision", sa.String(length=30), nullable=True),
            sa.Column("decision_reason", sa.Text(), nullable=True),
            sa.Column(
                "criteria_version_id", sa.Integer(), nullable=True,
                comment="Historical pointer only; scoring always uses criteria_snapshot_json",
            ),
            sa.Column("criteria_snapshot_json", sa.Text(), nullable=False),
            sa.Column("policy_snapshot_json", sa.Text(), nullable=True),
            sa.Column("vote_deadline_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("started_by_oid", sa.String(length=100), nullable=True),
            sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("decided_by_oid", sa.String(length=100), nullable=True),
            sa.ForeignKeyConstraint(["submission_id"], ["intake_submissions.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["board_id"], ["governance_boards.id"]),
            sa.ForeignKeyConstraint(["criteria_version_id"], ["governance_criteria_versions.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("submission_id", "review_round", name="uq_governance_review_submission_round"),
            sa.CheckConstraint(
                "status IN ('in-review', 'decided', 'cancelled')",
                name="ck_governance_review_status",
            ),
            sa.CheckConstraint(
                "decision IS NULL OR decision IN ('approved-now', 'approved-backlog', 'needs-info', 'rejected')",
                name="ck_governance_review_decision",
            ),
        )
        op.create_index("ix_governance_reviews_submission_id", "governance_reviews", ["submission_id"])
        op.create_index(
            "uq_governance_review_open_per_submission", "governance_reviews", ["submission_id"],
            unique=True,
            sqlite_where=sa.text("status = 'in-review'"),
            postgresql_where=sa.text("status = 'in-review'"),
        )
        op.create_index("ix_governance_review_board_status", "governance_reviews", ["board_id", "status"])
        op.create_index(
            "ix_governance_review_vote_deadline", "governance_reviews", ["status", "vote_deadline_at"],
        )

    # ── GovernanceReviewParticipant ───────────────────────────────────────
    if "governance_review_participants" not in existing:
        op.create_table(
            "governance_review_participants",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("review_id", sa.Integer(), nullable=False),
            sa.Column("user_oid", sa.String(length=100), nullable=False),
            sa.Column("user_name", sa.String(length=255), nullable=True),
            sa.Column("participant_role", sa.String(length=20), nullable=False, server_default="member"),
            sa.Column("is_eligible_voter", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["review_id"], ["governance_reviews.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("review_id", "user_oid", name="uq_governance_participant_review_user"),
        )
        op.create_index(
            "ix_governance_review_participants_user_oid", "governance_review_participants", ["user_oid"],
        )
        op.create_index(
            "ix_governance_participant_review_eligible", "governance_review_participants",
            ["review_id", "is_eligible_voter"],
        )

    # ── GovernanceVote ────────────────────────────────────────────────────
    if "governance_votes" not in existing:
        op.create_table(
            "governance_votes",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("review_id", sa.Integer(), nullable=False),
            sa.Column("voter_user_oid", sa.String(length=100), nullable=False),
            sa.Column("voter_name", sa.String(length=255), nullable=True),
            sa.Column("scores_json", sa.Text(), nullable=False),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("conflict_declared", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["review_id"], ["governance_reviews.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("review_id", "voter_user_oid", name="uq_governance_vote_review_voter"),
        )
        op.create_index("ix_governance_votes_review_id", "governance_votes", ["review_id"])
        op.create_index("ix_governance_votes_voter_user_oid", "governance_votes", ["voter_user_oid"])

    # ── AuditLog ──────────────────────────────────────────────────────────
    if "audit_logs" not in existing:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("entity_type", sa.String(length=40), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("actor_name", sa.String(length=255), nullable=True),
            sa.Column("diff_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_actor", "audit_logs", ["actor"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    for table in (
        "audit_logs",
        "governance_votes",
        "governance_review_participants",
        "governance_reviews",
        "governance_criteria_versions",
        "governance_memberships",
        "intake_submissions",
        "governance_boards",
        "governance_settings",
    ):
        if table in existing:
            op.drop_table(table)
