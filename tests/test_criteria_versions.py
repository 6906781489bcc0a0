"""
Criteria version store tests.

Lifecycle: draft → published → retired.  Publishing retires the previous
published version; a board never has two published versions.
"""

import itertools

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy.exc import IntegrityError

from governance_engine.core.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError
from governance_engine.models import db
from governance_engine.models.governance import GovernanceCriteriaVersion
from governance_engine.services import board_service, criteria_service

RUBRIC = [{"id": "fit", "name": "Fit", "weight": 60}, {"id": "cost", "name": "Cost", "weight": 40}]

_board_names = itertools.count(1)


def _new_board():
    return board_service.create_board(f"Criteria board {next(_board_names)}")


def _statuses(board_id):
    return {v["version_no"]: v["status"] for v in criteria_service.list_versions(board_id)}


def test_draft_numbers_increment():
    board = _new_board()
    v1 = criteria_service.create_draft(board["id"], RUBRIC)
    v2 = criteria_service.create_draft(board["id"], RUBRIC)
    assert (v1["version_no"], v2["version_no"]) == (1, 2)
    assert v1["status"] == "draft"
    assert v1["weight_total"] == 100


def test_publish_retires_previous():
    board = _new_board()
    v1 = criteria_service.create_draft(board["id"], RUBRIC)
    criteria_service.publish(v1["id"], published_by="admin")
    v2 = criteria_service.create_draft(board["id"], RUBRIC)
    published = criteria_service.publish(v2["id"], published_by="admin")

    assert published["status"] == "published"
    assert published["published_by_oid"] == "admin"
    assert published["published_at"] is not None
    assert _statuses(board["id"]) == {1: "retired", 2: "published"}
    assert criteria_service.get_current_published(board["id"]).id == v2["id"]


def test_only_drafts_are_editable():
    board = _new_board()
    v1 = criteria_service.create_draft(board["id"], RUBRIC)
    updated = criteria_service.update_draft(v1["id"], [{"id": "only", "name": "Only", "weight": 1}])
    assert [c["id"] for c in updated["criteria"]] == ["only"]

    criteria_service.publish(v1["id"])
    with pytest.raises(InvalidStateError):
        criteria_service.update_draft(v1["id"], RUBRIC)
    with pytest.raises(InvalidStateError):
        criteria_service.publish(v1["id"])


def test_invalid_rubric_rejected():
    board = _new_board()
    with pytest.raises(ValidationError):
        criteria_service.create_draft(board["id"], [{"name": "Fit", "weight": -5}])
    assert criteria_service.list_versions(board["id"]) == []


def test_version_must_belong_to_board():
    a, b = _new_board(), _new_board()
    v = criteria_service.create_draft(a["id"], RUBRIC)
    with pytest.raises(NotFoundError):
        criteria_service.publish(v["id"], board_id=b["id"])
    with pytest.raises(NotFoundError):
        criteria_service.create_draft(999_999, RUBRIC)


def test_database_rejects_second_published_version():
    board = _new_board()
    v1 = criteria_service.create_draft(board["id"], RUBRIC)
    criteria_service.publish(v1["id"])

    db.session.add(GovernanceCriteriaVersion(
        board_id=board["id"], version_no=2, status="published", criteria_json="[]",
    ))
    with pytest.raises(IntegrityError):
        db.session.flush()
    db.session.rollback()

    assert _statuses(board["id"]) == {1: "published"}


def test_concurrent_publish_is_conflict(monkeypatch):
    board = _new_board()
    v1 = criteria_service.create_draft(board["id"], RUBRIC)
    real_audit = criteria_service.write_audit

    def rival_publish(**kwargs):
        db.session.add(GovernanceCriteriaVersion(
            board_id=board["id"], version_no=99, status="published", criteria_json="[]",
        ))
        db.session.flush()
        return real_audit(**kwargs)

    monkeypatch.setattr(criteria_service, "write_audit", rival_publish)
    with pytest.raises(ConflictError):
        criteria_service.publish(v1["id"])

    monkeypatch.undo()
    assert _statuses(board["id"]) == {1: "draft"}


@given(st.lists(st.tuples(st.booleans(), st.integers(min_value=0, max_value=9)), min_size=1, max_size=8))
@settings(
    max_examples=25,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.too_slow],
)
def test_at_most_one_published_version(steps):
    """Any sequence of create/publish keeps ≤ 1 published version, the last one published."""
    board = _new_board()
    drafts = []
    last_published = None
    for create, pick in steps:
        if create or not drafts:
            drafts.append(criteria_service.create_draft(board["id"], RUBRIC)["id"])
            continue
        version_id = drafts.pop(pick % len(drafts))
        criteria_service.publish(version_id)
        last_published = version_id

        statuses = _statuses(board["id"])
        assert list(statuses.values()).count("published") <= 1

    current = criteria_service.get_current_published(board["id"])
    if last_published is None:
        assert current is None
    else:
        assert current.id == last_published
