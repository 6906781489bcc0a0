"""
Governance Review Engine
Blueprint registry and shared request helpers.
"""

from flask import request

from governance_engine.core.exceptions import ValidationError


def json_body() -> dict:
    """Return the JSON request body as a dict (empty when absent)."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def int_arg(name: str, default=None, minimum: int | None = None):
    """Parse an integer query parameter; ValidationError on garbage."""
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", details={name: "integer required"})
    if minimum is not None and value < minimum:
        raise ValidationError(f"{name} must be >= {minimum}", details={name: f">= {minimum}"})
    return value


def bool_arg(name: str, default: bool = False) -> bool:
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    return raw.strip().lower() in ("1", "true", "yes")
