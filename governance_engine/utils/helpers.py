"""Shared utility functions for services and blueprints.

utcnow / as_utc / isoformat:  timezone handling (SQLite returns naive datetimes)
parse_datetime:               lenient ISO / DD.MM.YYYY parsing, None on bad input
parse_bool:                   JSON / query-string boolean coercion, None on bad input
atomic:                       one unit of work, commit on success, rollback on error
"""
import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone

from governance_engine.models import db

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes.

    ``DateTime(timezone=True)`` round-trips as a naive value on SQLite;
    every stored timestamp in this engine is written in UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def isoformat(value: datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def parse_datetime(value):
    """Parse an ISO datetime / date string (or DD.MM.YYYY) to an aware UTC datetime.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DDTHH:MM:SS[+offset|Z]
    - YYYY-MM-DD (midnight UTC)
    - DD.MM.YYYY (midnight UTC)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(text, "%d.%m.%Y").replace(tzinfo=timezone.utc)
    except (ValueError, TypeError):
        return None


def parse_bool(value):
    """Return True/False for boolean-ish input, None when not recognisable."""
    if value is True or value is False:
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    return None


# ── Transaction helper ───────────────────────────────────────────────────────

@contextmanager
def atomic():
    """Run the block as a single unit of work.

    Usage::

        with atomic():
            db.session.add(review)
            db.session.add_all(participants)

    Commits when the block exits normally.  Any exception (typed governance
    errors included) rolls the session back and is re-raised unchanged, so a
    failed operation never leaves partial writes behind.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
