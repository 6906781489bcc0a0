"""
Caller identity middleware — reads the identity set by the auth proxy.

Authentication happens upstream.  The proxy forwards the verified user as:

    X-User-Oid   directory object id (required for writes and votes)
    X-User-Name  display name (optional)

Usage:
    @bp.route("/api/v1/governance/reviews/<int:review_id>/votes", methods=["POST"])
    @require_identity
    def cast_vote(review_id):
        voter = g.user_oid
"""

import functools
import logging

from flask import g, request

from governance_engine.utils.errors import E, api_error

logger = logging.getLogger(__name__)

USER_OID_HEADER = "X-User-Oid"
USER_NAME_HEADER = "X-User-Name"


def init_identity(app):
    """Register identity extraction as a before_request hook."""

    @app.before_request
    def _load_identity():
        g.user_oid = (request.headers.get(USER_OID_HEADER) or "").strip() or None
        g.user_name = (request.headers.get(USER_NAME_HEADER) or "").strip() or None


def require_identity(f):
    """Reject the request with 401 when no caller identity was forwarded."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if not getattr(g, "user_oid", None):
            logger.info("Request without caller identity rejected: %s %s", request.method, request.path)
            return api_error(E.UNAUTHORIZED, f"{USER_OID_HEADER} header is required")
        return f(*args, **kwargs)

    return decorated
