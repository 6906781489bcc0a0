"""
Criteria version store — versioned scoring rubrics per board.

    draft ──publish──▶ published ──(next publish)──▶ retired

Only drafts are editable.  Publishing demotes the board's currently published
version to ``retired`` and promotes the draft in one transaction, so a board
never has two published versions.  Open reviews are unaffected: they scored
against their own ``criteria_snapshot_json``.
"""

from __future__ import annotations

import logging

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from governance_engine.core.exceptions import ConflictError, InvalidStateError, NotFoundError
from governance_engine.core.rubric import CriteriaSet
from governance_engine.models import db
from governance_engine.models.audit import write_audit
from governance_engine.models.governance import (
    CRITERIA_STATUS_DRAFT,
    CRITERIA_STATUS_PUBLISHED,
    CRITERIA_STATUS_RETIRED,
    GovernanceCriteriaVersion,
)
from governance_engine.services.board_service import get_board_or_404
from governance_engine.utils.helpers import atomic, utcnow

logger = logging.getLogger(__name__)


def get_version_or_404(version_id: int, board_id: int | None = None) -> GovernanceCriteriaVersion:
    """Load a version; with ``board_id`` it must also belong to that board."""
    version = db.session.get(GovernanceCriteriaVersion, version_id)
    if version is None or (board_id is not None and version.board_id != board_id):
        raise NotFoundError("GovernanceCriteriaVersion", version_id)
    return version


def _next_version_no(board_id: int) -> int:
    current_max = db.session.execute(
        select(func.max(GovernanceCriteriaVersion.version_no))
        .where(GovernanceCriteriaVersion.board_id == board_id)
    ).scalar()
    return (current_max or 0) + 1


def list_versions(board_id: int) -> list[dict]:
    """All versions of a board, newest first."""
    get_board_or_404(board_id)
    rows = db.session.execute(
        select(GovernanceCriteriaVersion)
        .where(GovernanceCriteriaVersion.board_id == board_id)
        .order_by(GovernanceCriteriaVersion.version_no.desc())
    ).scalars().all()
    return [v.to_dict() for v in rows]


def get_current_published(board_id: int) -> GovernanceCriteriaVersion | None:
    return db.session.execute(
        select(GovernanceCriteriaVersion)
        .where(
            GovernanceCriteriaVersion.board_id == board_id,
            GovernanceCriteriaVersion.status == CRITERIA_STATUS_PUBLISHED,
        )
        .order_by(GovernanceCriteriaVersion.version_no.desc())
        .limit(1)
    ).scalar_one_or_none()


def create_draft(
    board_id: int,
    criteria,
    created_by: str | None = None,
    created_by_name: str | None = None,
) -> dict:
    """Create a new draft version with ``version_no = max + 1``.

    Raises:
        NotFoundError: unknown board.
        ValidationError: invalid criteria list.
        ConflictError: a concurrent draft took the same version number.
    """
    rubric = CriteriaSet.from_input(criteria)

    try:
        with atomic():
            board = get_board_or_404(board_id)
            version = GovernanceCriteriaVersion(
                board_id=board.id,
                version_no=_next_version_no(board.id),
                status=CRITERIA_STATUS_DRAFT,
                criteria_json=rubric.to_json(),
                created_by_oid=created_by,
            )
            db.session.add(version)
            db.session.flush()
            write_audit(
                entity_type="governance_criteria_version",
                entity_id=version.id,
                action="governance.criteria_version_create",
                actor=created_by,
                actor_name=created_by_name,
                diff={"after": {"board_id": board.id, "version_no": version.version_no,
                                "criteria": rubric.to_list()}},
            )
    except IntegrityError as exc:
        raise ConflictError("GovernanceCriteriaVersion", "version_no", message=(
            "Another criteria version was created concurrently; retry"
        )) from exc

    logger.info(
        "Criteria draft created board_id=%s version_no=%s criteria=%d",
        board_id, version.version_no, len(rubric),
    )
    return version.to_dict()


def update_draft(
    version_id: int,
    criteria,
    updated_by: str | None = None,
    updated_by_name: str | None = None,
    board_id: int | None = None,
) -> dict:
    """Replace the criteria of a draft version.

    Raises:
        NotFoundError, ValidationError,
        InvalidStateError: the version is published or retired.
    """
    rubric = CriteriaSet.from_input(criteria)

    with atomic():
        version = get_version_or_404(version_id, board_id=board_id)
        if version.status != CRITERIA_STATUS_DRAFT:
            raise InvalidStateError(
                "Only draft criteria versions can be edited",
                current_status=version.status,
            )
        before = version.criteria.to_list()
        version.criteria_json = rubric.to_json()
        db.session.flush()
        write_audit(
            entity_type="governance_criteria_version",
            entity_id=version.id,
            action="governance.criteria_version_update",
            actor=updated_by,
            actor_name=updated_by_name,
            diff={"before": {"criteria": before}, "after": {"criteria": rubric.to_list()}},
        )

    logger.info("Criteria draft updated id=%s criteria=%d", version_id, len(rubric))
    return version.to_dict()


def publish(
    version_id: int,
    published_by: str | None = None,
    published_by_name: str | None = None,
    board_id: int | None = None,
) -> dict:
    """Publish a draft, retiring the board's previously published version.

    Raises:
        NotFoundError: unknown version.
        InvalidStateError: the version is not a draft.
        ConflictError: another version of the board was published concurrently.
    """
    try:
        with atomic():
            version = get_version_or_404(version_id, board_id=board_id)
            if version.status != CRITERIA_STATUS_DRAFT:
                raise InvalidStateError(
                    "Only draft criteria versions can be published",
                    current_status=version.status,
                )

            retired = db.session.execute(
                update(GovernanceCriteriaVersion)
                .where(
                    GovernanceCriteriaVersion.board_id == version.board_id,
                    GovernanceCriteriaVersion.status == CRITERIA_STATUS_PUBLISHED,
                    GovernanceCriteriaVersion.id != version.id,
                )
                .values(status=CRITERIA_STATUS_RETIRED)
                .execution_options(synchronize_session="fetch")
            ).rowcount

            promoted = db.session.execute(
                update(GovernanceCriteriaVersion)
                .where(
                    GovernanceCriteriaVersion.id == version.id,
                    GovernanceCriteriaVersion.status == CRITERIA_STATUS_DRAFT,
                )
                .values(
                    status=CRITERIA_STATUS_PUBLISHED,
                    published_at=utcnow(),
                    published_by_oid=published_by,
                )
                .execution_options(synchronize_session="fetch")
            ).rowcount
            if promoted != 1:
                raise InvalidStateError("Criteria version was published concurrently", current_status=CRITERIA_STATUS_PUBLISHED)

            write_audit(
                entity_type="governance_criteria_version",
                entity_id=version.id,
                action="governance.criteria_version_publish",
                actor=published_by,
                actor_name=published_by_name,
                diff={"after": {"board_id": version.board_id, "version_no": version.version_no,
                                "retired_count": retired}},
            )
    except IntegrityError as exc:
        raise ConflictError("GovernanceCriteriaVersion", "status", message=(
            "Another criteria version of this board was published concurrently; retry"
        )) from exc

    db.session.refresh(version)
    logger.info(
        "Criteria version published id=%s board_id=%s version_no=%s retired=%s",
        version.id, version.board_id, version.version_no, retired,
    )
    return version.to_dict()
