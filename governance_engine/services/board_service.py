"""
Governance board registry — boards and their effective-dated rosters.

Business rules:
    - Board names are unique (ConflictError).
    - A board referenced by any review cannot be deleted (ConflictError);
      otherwise deletion cascades memberships and criteria versions.
    - Membership upsert is keyed by (board_id, user_oid) and keeps history
      with close-and-insert: when role, active flag or window changes, the
      current row is closed (``effective_to = now``, inactive) and a new row
      is inserted.
      Rows that past review snapshots were taken from are never rewritten.
    - Eligible on a date ⇔ is_active and effective_from <= at < (effective_to or ∞).

db.session.commit() happens only inside ``atomic()`` blocks in this file.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from governance_engine.core.exceptions import ConflictError, NotFoundError, ValidationError
from governance_engine.models import db
from governance_engine.models.audit import write_audit
from governance_engine.models.governance import (
    MEMBER_ROLES,
    GovernanceBoard,
    GovernanceMembership,
    GovernanceReview,
)
from governance_engine.utils.helpers import as_utc, atomic, parse_bool, parse_datetime, utcnow

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────────


def _clean_name(name) -> str:
    cleaned = name.strip() if isinstance(name, str) else ""
    if not cleaned:
        raise ValidationError("name is required", details={"name": "required"})
    if len(cleaned) > 255:
        raise ValidationError("name must be ≤ 255 characters", details={"name": "too long"})
    return cleaned


def _assert_name_free(name: str, exclude_id: int | None = None) -> None:
    stmt = select(GovernanceBoard.id).where(func.lower(GovernanceBoard.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(GovernanceBoard.id != exclude_id)
    if db.session.execute(stmt).first() is not None:
        raise ConflictError("GovernanceBoard", "name", name)


def _is_current(membership: GovernanceMembership, at: datetime) -> bool:
    """Row has not been closed as of ``at``."""
    effective_to = as_utc(membership.effective_to)
    return effective_to is None or effective_to > at


def is_eligible(membership: GovernanceMembership, at: datetime) -> bool:
    """Active flag set and ``at`` inside [effective_from, effective_to)."""
    if not membership.is_active:
        return False
    effective_from = as_utc(membership.effective_from)
    if effective_from is not None and effective_from > at:
        return False
    return _is_current(membership, at)


def _current_membership(board_id: int, user_oid: str, at: datetime) -> GovernanceMembership | None:
    rows = db.session.execute(
        select(GovernanceMembership)
        .where(
            GovernanceMembership.board_id == board_id,
            GovernanceMembership.user_oid == user_oid,
        )
        .order_by(GovernanceMembership.id.desc())
    ).scalars().all()
    for row in rows:
        if _is_current(row, at):
            return row
    return None


def _active_member_count(board_id: int, at: datetime) -> int:
    return len(eligible_members(board_id, at))


# ── Boards ─────────────────────────────────────────────────────────────────────


def get_board_or_404(board_id: int) -> GovernanceBoard:
    board = db.session.get(GovernanceBoard, board_id)
    if board is None:
        raise NotFoundError("GovernanceBoard", board_id)
    return board


def get_board(board_id: int) -> dict:
    board = get_board_or_404(board_id)
    return board.to_dict(active_member_count=_active_member_count(board.id, utcnow()))


def list_boards(include_inactive: bool = False) -> list[dict]:
    """Return boards ordered by name, each with its eligible member count."""
    stmt = select(GovernanceBoard).order_by(GovernanceBoard.name.asc())
    if not include_inactive:
        stmt = stmt.where(GovernanceBoard.is_active.is_(True))
    now = utcnow()
    return [
        b.to_dict(active_member_count=_active_member_count(b.id, now))
        for b in db.session.execute(stmt).scalars().all()
    ]


def create_board(
    name,
    is_active=True,
    created_by: str | None = None,
    created_by_name: str | None = None,
) -> dict:
    """Create a governance board.

    Raises:
        ValidationError: empty name, non-boolean is_active.
        ConflictError: a board with this name already exists.
    """
    cleaned = _clean_name(name)
    active = parse_bool(is_active) if is_active is not None else True
    if active is None:
        raise ValidationError("is_active must be boolean", details={"is_active": "boolean required"})

    try:
        with atomic():
            _assert_name_free(cleaned)
            board = GovernanceBoard(name=cleaned, is_active=active, created_by_oid=created_by)
            db.session.add(board)
            db.session.flush()
            write_audit(
                entity_type="governance_board",
                entity_id=board.id,
                action="governance.board_create",
                actor=created_by,
                actor_name=created_by_name,
                diff={"after": {"name": cleaned, "is_active": active}},
            )
    except IntegrityError as exc:
        raise ConflictError("GovernanceBoard", "name", cleaned) from exc

    logger.info("Governance board created id=%s name=%s by=%s", board.id, cleaned, created_by)
    return board.to_dict(active_member_count=0)


def update_board(
    board_id: int,
    data: dict,
    updated_by: str | None = None,
    updated_by_name: str | None = None,
) -> dict:
    """Rename and/or (de)activate a board.

    Raises:
        NotFoundError, ValidationError, ConflictError.
    """
    changes: dict = {}
    if "name" in data:
        changes["name"] = _clean_name(data["name"])
    if "is_active" in data:
        parsed = parse_bool(data["is_active"])
        if parsed is None:
            raise ValidationError("is_active must be boolean", details={"is_active": "boolean required"})
        changes["is_active"] = parsed
    if not changes:
        raise ValidationError("No valid fields to update")

    try:
        with atomic():
            board = get_board_or_404(board_id)
            before = {"name": board.name, "is_active": bool(board.is_active)}
            if "name" in changes:
                _assert_name_free(changes["name"], exclude_id=board.id)
            for field, value in changes.items():
                setattr(board, field, value)
            db.session.flush()
            write_audit(
                entity_type="governance_board",
                entity_id=board.id,
                action="governance.board_update",
                actor=updated_by,
                actor_name=updated_by_name,
                diff={"before": before, "after": changes},
            )
    except IntegrityError as exc:
        raise ConflictError("GovernanceBoard", "name", changes.get("name")) from exc

    logger.info("Governance board updated id=%s fields=%s", board_id, sorted(changes))
    return get_board(board_id)


def delete_board(board_id: int, deleted_by: str | None = None, deleted_by_name: str | None = None) -> None:
    """Delete a board with its memberships and criteria versions.

    Raises:
        NotFoundError: unknown board.
        ConflictError: at least one review references the board.
    """
    with atomic():
        board = get_board_or_404(board_id)
        review_count = db.session.execute(
            select(func.count(GovernanceReview.id)).where(GovernanceReview.board_id == board.id)
        ).scalar_one()
        if review_count:
            raise ConflictError(
                "GovernanceBoard", "id", board.id,
                message=f"Board '{board.name}' is referenced by {review_count} review(s) and cannot be deleted",
            )
        write_audit(
            entity_type="governance_board",
            entity_id=board.id,
            action="governance.board_delete",
            actor=deleted_by,
            actor_name=deleted_by_name,
            diff={"before": {"name": board.name, "is_active": bool(board.is_active)}},
        )
        db.session.delete(board)

    logger.info("Governance board deleted id=%s by=%s", board_id, deleted_by)


# ── Memberships ────────────────────────────────────────────────────────────────


def eligible_members(board_id: int, at: datetime | None = None) -> list[GovernanceMembership]:
    """Memberships eligible to vote on a review opened at ``at`` (default now).

    Ordered chairs first, then by row creation, matching roster display order.
    """
    at = as_utc(at) or utcnow()
    rows = db.session.execute(
        select(GovernanceMembership)
        .where(
            GovernanceMembership.board_id == board_id,
            GovernanceMembership.is_active.is_(True),
        )
        .order_by(GovernanceMembership.id.asc())
    ).scalars().all()
    eligible = [m for m in rows if is_eligible(m, at)]
    eligible.sort(key=lambda m: (m.role != "chair", m.id))
    return eligible


def list_members(board_id: int, include_inactive: bool = False) -> list[dict]:
    """Return the board roster.

    Default: rows that are active and not closed.  ``include_inactive`` returns
    the whole effective-dated history, newest first.
    """
    get_board_or_404(board_id)
    rows = db.session.execute(
        select(GovernanceMembership)
        .where(GovernanceMembership.board_id == board_id)
        .order_by(GovernanceMembership.id.desc())
    ).scalars().all()
    if include_inactive:
        return [m.to_dict() for m in rows]
    now = utcnow()
    return [m.to_dict() for m in rows if m.is_active and _is_current(m, now)]


def upsert_membership(
    board_id: int,
    user_oid,
    role: str = "member",
    is_active=True,
    effective_from=None,
    effective_to=None,
    user_name: str | None = None,
    created_by: str | None = None,
    created_by_name: str | None = None,
) -> dict:
    """Create or change a user's membership on a board (close-and-insert).

    - No current row: insert one.
    - Current row already matches role / active flag / window: no-op.
    - Otherwise: close the current row at ``now`` and insert the new state,
      starting at ``effective_from`` (default ``now``).

    Returns:
        The membership row now describing the user's state on the board.

    Raises:
        NotFoundError: unknown board.
        ValidationError: empty user_oid, unknown role, bad dates.
    """
    oid = user_oid.strip() if isinstance(user_oid, str) else ""
    if not oid:
        raise ValidationError("user_oid is required", details={"user_oid": "required"})
    if role not in MEMBER_ROLES:
        raise ValidationError(
            f"role must be one of: {', '.join(MEMBER_ROLES)}",
            details={"role": "invalid"},
        )
    active = parse_bool(is_active) if is_active is not None else True
    if active is None:
        raise ValidationError("is_active must be boolean", details={"is_active": "boolean required"})

    start = parse_datetime(effective_from) if effective_from else None
    if effective_from and start is None:
        raise ValidationError("effective_from is not a valid date", details={"effective_from": "invalid"})
    end = parse_datetime(effective_to) if effective_to else None
    if effective_to and end is None:
        raise ValidationError("effective_to is not a valid date", details={"effective_to": "invalid"})

    now = utcnow()
    with atomic():
        board = get_board_or_404(board_id)
        current = _current_membership(board.id, oid, now)
        start = start or now
        if end is not None and end <= start:
            raise ValidationError(
                "effective_to must be after effective_from",
                details={"effective_to": "must be after effective_from"},
            )

        if current is not None and (
            current.role == role
            and bool(current.is_active) == active
            and as_utc(current.effective_to) == end
            and (effective_from is None or as_utc(current.effective_from) == start)
        ):
            if user_name and current.user_name != user_name:
                current.user_name = user_name
            result = current.to_dict()
            action = "unchanged"
        else:
            before = current.to_dict() if current is not None else None
            if current is not None:
                current.effective_to = now
                current.is_active = False
            membership = GovernanceMembership(
                board_id=board.id,
                user_oid=oid,
                user_name=user_name or (current.user_name if current is not None else None),
                role=role,
                is_active=active,
                effective_from=start,
                effective_to=end,
                created_by_oid=created_by,
            )
            db.session.add(membership)
            db.session.flush()
            write_audit(
                entity_type="governance_membership",
                entity_id=membership.id,
                action="governance.member_upsert",
                actor=created_by,
                actor_name=created_by_name,
                diff={"before": before, "after": membership.to_dict()},
            )
            result = membership.to_dict()
            action = "replaced" if current is not None else "created"

    logger.info(
        "Governance membership %s board_id=%s user_oid=%s role=%s active=%s",
        action, board_id, oid, role, active,
    )
    return result
