"""
Governance settings store.

One logical ``GovernanceSettings`` row holds the global toggles.  It is
created with safe defaults on first read (governance disabled, 60 % quorum,
minimum one voter, decisions require quorum, no vote window).

Callers read settings at the start of each operation and never cache them
across requests.  Reviews that are already open keep their own
``policy_snapshot_json``; updating settings never changes them.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from governance_engine.core.exceptions import ValidationError
from governance_engine.models import db
from governance_engine.models.audit import write_audit
from governance_engine.models.governance import (
    QUORUM_PERCENT_RANGE,
    VOTE_WINDOW_DAYS_RANGE,
    GovernanceSettings,
)
from governance_engine.utils.helpers import atomic, parse_bool

logger = logging.getLogger(__name__)

_BOOL_FIELDS = ("governance_enabled", "decision_requires_quorum")


def load_settings() -> GovernanceSettings:
    """Return the settings row, inserting the default row if none exists.

    Flushes (never commits) so it can run inside a caller's unit of work.
    """
    settings = db.session.execute(
        select(GovernanceSettings).order_by(GovernanceSettings.id).limit(1)
    ).scalar_one_or_none()
    if settings is None:
        settings = GovernanceSettings(
            governance_enabled=False,
            quorum_percent=60,
            quorum_min_count=1,
            decision_requires_quorum=True,
            vote_window_days=None,
        )
        db.session.add(settings)
        db.session.flush()
    return settings


def get_settings() -> dict:
    with atomic():
        settings = load_settings()
        return settings.to_dict()


def _validate_int(field: str, value, low: int, high: int | None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", details={field: "integer required"})
    if value < low or (high is not None and value > high):
        bounds = f"between {low} and {high}" if high is not None else f">= {low}"
        raise ValidationError(f"{field} must be {bounds}", details={field: bounds})
    return value


def validate_settings_update(data: dict) -> dict:
    """Validate a partial settings update and return the normalised changes.

    Rules:
        quorum_percent    ∈ [1, 100]
        quorum_min_count  ≥ 1
        vote_window_days  ∈ [1, 90] or null
        governance_enabled / decision_requires_quorum: booleans
    """
    changes: dict = {}
    for field in _BOOL_FIELDS:
        if field in data:
            parsed = parse_bool(data[field])
            if parsed is None:
                raise ValidationError(f"{field} must be boolean", details={field: "boolean required"})
            changes[field] = parsed

    if "quorum_percent" in data:
        changes["quorum_percent"] = _validate_int("quorum_percent", data["quorum_percent"], *QUORUM_PERCENT_RANGE)
    if "quorum_min_count" in data:
        changes["quorum_min_count"] = _validate_int("quorum_min_count", data["quorum_min_count"], 1, None)
    if "vote_window_days" in data:
        value = data["vote_window_days"]
        changes["vote_window_days"] = (
            None if value is None
            else _validate_int("vote_window_days", value, *VOTE_WINDOW_DAYS_RANGE)
        )

    if not changes:
        raise ValidationError("No valid fields to update")
    return changes


def update_settings(data: dict, updated_by: str | None = None, updated_by_name: str | None = None) -> dict:
    """Apply a validated partial update to the global settings.

    Raises:
        ValidationError: any field out of range, or nothing to update.
    """
    changes = validate_settings_update(data)

    with atomic():
        settings = load_settings()
        before = settings.to_dict()
        for field, value in changes.items():
            setattr(settings, field, value)
        settings.updated_by_oid = updated_by
        db.session.flush()
        after = settings.to_dict()

        write_audit(
            entity_type="governance_settings",
            entity_id=settings.id,
            action="governance.settings_update",
            actor=updated_by,
            actor_name=updated_by_name,
            diff={"before": before, "after": after},
        )

    logger.info("Governance settings updated fields=%s by=%s", sorted(changes), updated_by)
    return after
