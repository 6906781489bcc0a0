"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in governance_engine/__init__.py with no
default limits; this module applies limits per route category.

Usage:
    from governance_engine.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

from governance_engine.middleware.identity import USER_OID_HEADER

logger = logging.getLogger(__name__)

ADMIN_LIMIT = "60/minute"
REVIEW_LIMIT = "120/minute"


def rate_limit_key():
    """Caller identity when forwarded by the proxy, else remote IP."""
    user_oid = getattr(g, "user_oid", None) or (flask_request.headers.get(USER_OID_HEADER) or "").strip()
    if user_oid:
        return f"user:{user_oid}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per caller):
        - Governance admin / queue / events:  60/minute
        - Review lifecycle and voting:       120/minute
        - Health check:                      exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("governance")
    if bp:
        limiter.limit(ADMIN_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("review")
    if bp:
        limiter.limit(REVIEW_LIMIT, key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured: governance=%s, review=%s", ADMIN_LIMIT, REVIEW_LIMIT
    )
