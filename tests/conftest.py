"""
Shared pytest fixtures for the governance review engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test app context with table recreate (autouse)
    - client: Flask test client (function-scoped)
    - enabled_settings: governance switched on, 50 % quorum, min 1 voter
    - board: active board with a published 3-criterion rubric and 4 members
    - submission: submission requiring governance, assigned to ``board``
    - opened_review: review round opened on ``submission``
    - board_factory: builds further boards with custom rosters and rubrics
"""

import pytest

from governance_engine import create_app
from governance_engine.models import db as _db
from governance_engine.services import (
    board_service,
    criteria_service,
    intake_service,
    review_lifecycle,
    settings_service,
)

ADMIN = "admin-oid"
MEMBERS = ("u1", "u2", "u3", "u4")

DEFAULT_CRITERIA = [
    {"id": "fit", "name": "Strategic fit", "weight": 40},
    {"id": "value", "name": "Business value", "weight": 40},
    {"id": "risk", "name": "Delivery risk", "weight": 20},
]


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Domain fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def enabled_settings():
    return settings_service.update_settings(
        {"governance_enabled": True, "quorum_percent": 50, "quorum_min_count": 1},
        updated_by=ADMIN,
    )


def _make_board(name="Architecture Board", members=MEMBERS, criteria=None, chair=None):
    """Board with a published rubric and the given members (first one chairs)."""
    board = board_service.create_board(name, created_by=ADMIN)
    draft = criteria_service.create_draft(board["id"], criteria or DEFAULT_CRITERIA, created_by=ADMIN)
    criteria_service.publish(draft["id"], published_by=ADMIN)
    chair = chair if chair is not None else (members[0] if members else None)
    for oid in members:
        board_service.upsert_membership(
            board["id"], oid,
            role="chair" if oid == chair else "member",
            user_name=f"User {oid}",
            created_by=ADMIN,
        )
    return board


@pytest.fixture()
def board():
    return _make_board()


@pytest.fixture()
def submission(enabled_settings, board):
    return intake_service.create_submission(
        "New CRM integration",
        submitter_oid="requester",
        governance_mode="required",
        board_id=board["id"],
    )


@pytest.fixture()
def opened_review(submission):
    return review_lifecycle.open_review(submission["id"], started_by=ADMIN)


@pytest.fixture()
def board_factory():
    """Build extra boards: ``board_factory("Data Board", members=("a", "b"))``."""
    return _make_board
