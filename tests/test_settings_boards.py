"""
Settings store and board registry tests.

Covers:
    - settings defaults and range validation
    - board name uniqueness, rename, delete guard
    - effective-dated membership upsert (close-and-insert, no-op, windows)
"""

from datetime import timedelta

import pytest

from governance_engine.core.exceptions import ConflictError, NotFoundError, ValidationError
from governance_engine.models import db
from governance_engine.models.audit import AuditLog
from governance_engine.models.governance import GovernanceSettings
from governance_engine.services import board_service, settings_service
from governance_engine.utils.helpers import utcnow


# ── Helpers ──────────────────────────────────────────────────────────────


def _audit_actions():
    return [a.action for a in db.session.query(AuditLog).order_by(AuditLog.id).all()]


# ═════════════════════════════════════════════════════════════════════════════
# Settings
# ═════════════════════════════════════════════════════════════════════════════


class TestSettings:
    def test_defaults_created_on_first_read(self):
        settings = settings_service.get_settings()
        assert settings["governance_enabled"] is False
        assert settings["quorum_percent"] == 60
        assert settings["quorum_min_count"] == 1
        assert settings["decision_requires_quorum"] is True
        assert settings["vote_window_days"] is None

    def test_partial_update_keeps_other_fields(self):
        result = settings_service.update_settings({"quorum_percent": 75}, updated_by="admin")
        assert result["quorum_percent"] == 75
        assert result["quorum_min_count"] == 1
        assert result["updated_by_oid"] == "admin"
        assert "governance.settings_update" in _audit_actions()

    def test_single_row(self):
        settings_service.update_settings({"governance_enabled": True})
        settings_service.update_settings({"vote_window_days": 14})
        assert db.session.query(GovernanceSettings).count() == 1

    @pytest.mark.parametrize("payload", [
        {"quorum_percent": 0},
        {"quorum_percent": 101},
        {"quorum_percent": "50"},
        {"quorum_min_count": 0},
        {"vote_window_days": 0},
        {"vote_window_days": 91},
        {"governance_enabled": "maybe"},
        {},
        {"unknown": 1},
    ])
    def test_rejects_out_of_range(self, payload):
        with pytest.raises(ValidationError):
            settings_service.update_settings(payload)

    def test_vote_window_can_be_cleared(self):
        settings_service.update_settings({"vote_window_days": 7})
        assert settings_service.update_settings({"vote_window_days": None})["vote_window_days"] is None


# ═════════════════════════════════════════════════════════════════════════════
# Boards
# ═════════════════════════════════════════════════════════════════════════════


class TestBoards:
    def test_create_and_get(self):
        board = board_service.create_board("  Architecture Board  ", created_by="admin")
        assert board["name"] == "Architecture Board"
        assert board["is_active"] is True
        assert board_service.get_board(board["id"])["active_member_count"] == 0

    def test_duplicate_name_is_conflict(self):
        board_service.create_board("Data Board")
        with pytest.raises(ConflictError):
            board_service.create_board("data board")

    def test_rename_onto_existing_name_is_conflict(self):
        board_service.create_board("A")
        b = board_service.create_board("B")
        with pytest.raises(ConflictError):
            board_service.update_board(b["id"], {"name": "A"})

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            board_service.create_board("   ")

    def test_list_hides_inactive_by_default(self):
        board_service.create_board("Active")
        board_service.create_board("Dormant", is_active=False)
        assert [b["name"] for b in board_service.list_boards()] == ["Active"]
        assert len(board_service.list_boards(include_inactive=True)) == 2

    def test_delete_unused_board(self):
        b = board_service.create_board("Temp")
        board_service.upsert_membership(b["id"], "u1")
        board_service.delete_board(b["id"], deleted_by="admin")
        with pytest.raises(NotFoundError):
            board_service.get_board(b["id"])

    def test_delete_blocked_by_review(self, opened_review):
        board_id = opened_review["review"]["board_id"]
        with pytest.raises(ConflictError, match="cannot be deleted"):
            board_service.delete_board(board_id)
        assert board_service.get_board(board_id)["id"] == board_id


# ═════════════════════════════════════════════════════════════════════════════
# Memberships
# ═════════════════════════════════════════════════════════════════════════════


class TestMemberships:
    def test_role_change_closes_and_inserts(self):
        b = board_service.create_board("Board")
        first = board_service.upsert_membership(b["id"], "u1", role="member", user_name="Ada")
        second = board_service.upsert_membership(b["id"], "u1", role="chair")

        assert second["id"] != first["id"]
        assert second["user_name"] == "Ada"

        history = board_service.list_members(b["id"], include_inactive=True)
        assert [m["id"] for m in history] == [second["id"], first["id"]]
        closed = history[1]
        assert closed["is_active"] is False
        assert closed["effective_to"] is not None

        current = board_service.list_members(b["id"])
        assert [(m["user_oid"], m["role"]) for m in current] == [("u1", "chair")]

    def test_matching_upsert_is_noop(self):
        b = board_service.create_board("Board")
        first = board_service.upsert_membership(b["id"], "u1")
        again = board_service.upsert_membership(b["id"], "u1", user_name="Renamed")
        assert again["id"] == first["id"]
        assert again["user_name"] == "Renamed"
        assert len(board_service.list_members(b["id"], include_inactive=True)) == 1

    def test_deactivation_removes_from_eligible(self):
        b = board_service.create_board("Board")
        board_service.upsert_membership(b["id"], "u1")
        board_service.upsert_membership(b["id"], "u2")
        board_service.upsert_membership(b["id"], "u2", is_active=False)
        assert [m.user_oid for m in board_service.eligible_members(b["id"])] == ["u1"]

    def test_future_window_not_yet_eligible(self):
        b = board_service.create_board("Board")
        start = utcnow() + timedelta(days=7)
        board_service.upsert_membership(b["id"], "u9", effective_from=start.isoformat())
        assert board_service.eligible_members(b["id"]) == []
        eligible_later = board_service.eligible_members(b["id"], at=start + timedelta(hours=1))
        assert [m.user_oid for m in eligible_later] == ["u9"]

    def test_window_end_is_exclusive(self):
        b = board_service.create_board("Board")
        start = utcnow() - timedelta(days=10)
        end = utcnow() + timedelta(days=1)
        board_service.upsert_membership(
            b["id"], "u1", effective_from=start.isoformat(), effective_to=end.isoformat(),
        )
        assert len(board_service.eligible_members(b["id"], at=end - timedelta(seconds=1))) == 1
        assert board_service.eligible_members(b["id"], at=end) == []

    def test_chairs_listed_first(self):
        b = board_service.create_board("Board")
        board_service.upsert_membership(b["id"], "u1")
        board_service.upsert_membership(b["id"], "u2", role="chair")
        assert [m.user_oid for m in board_service.eligible_members(b["id"])] == ["u2", "u1"]

    @pytest.mark.parametrize("kwargs", [
        {"user_oid": ""},
        {"user_oid": "u1", "role": "owner"},
        {"user_oid": "u1", "effective_from": "not-a-date"},
        {"user_oid": "u1", "effective_from": "2030-01-02", "effective_to": "2030-01-01"},
    ])
    def test_invalid_membership_rejected(self, kwargs):
        b = board_service.create_board("Board")
        with pytest.raises(ValidationError):
            board_service.upsert_membership(b["id"], **kwargs)

    def test_unknown_board(self):
        with pytest.raises(NotFoundError):
            board_service.upsert_membership(999, "u1")
