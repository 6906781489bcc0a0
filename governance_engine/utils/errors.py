"""Standardised API error responses.

Usage
-----
    from governance_engine.utils.errors import api_error, E, register_error_handlers

    return api_error(E.VALIDATION_REQUIRED, "decision is required")
    register_error_handlers(governance_bp)
"""

from __future__ import annotations

import logging

from flask import jsonify, request

from governance_engine.core.exceptions import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    GovernanceError,
    InvalidStateError,
    NotFoundError,
    QuorumNotMetError,
    ValidationError,
)

logger = logging.getLogger(__name__)


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Convention:
     • ERR_  prefix for standard application errors
     • GOVERNANCE_ prefix for governance-rule errors
    """

    # Validation – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict / duplicate / state – HTTP 409
    CONFLICT_DUPLICATE = "ERR_CONFLICT_DUPLICATE"
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    # Identity – HTTP 401
    UNAUTHORIZED = "ERR_UNAUTHORIZED"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Deadline passed – HTTP 410
    VOTE_EXPIRED = "ERR_VOTE_EXPIRED"

    # Server – HTTP 500
    INTERNAL = "ERR_INTERNAL"

    # Governance rule – HTTP 422
    GOVERNANCE_QUORUM_NOT_MET = "GOVERNANCE_QUORUM_NOT_MET"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.NOT_FOUND: 404,
    E.CONFLICT_DUPLICATE: 409,
    E.CONFLICT_STATE: 409,
    E.UNAUTHORIZED: 401,
    E.FORBIDDEN: 403,
    E.VOTE_EXPIRED: 410,
    E.INTERNAL: 500,
    E.GOVERNANCE_QUORUM_NOT_MET: 422,
}

# Exception type → error code.  Order matters only for subclasses.
_EXCEPTION_CODES: tuple[tuple[type[GovernanceError], str], ...] = (
    (ValidationError, E.VALIDATION_INVALID),
    (NotFoundError, E.NOT_FOUND),
    (ConflictError, E.CONFLICT_DUPLICATE),
    (InvalidStateError, E.CONFLICT_STATE),
    (ForbiddenError, E.FORBIDDEN),
    (ExpiredError, E.VOTE_EXPIRED),
    (QuorumNotMetError, E.GOVERNANCE_QUORUM_NOT_MET),
)


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Extra structured payload (quorum result, offending fields, etc.).

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def error_code_for(error: GovernanceError) -> str:
    for exc_type, code in _EXCEPTION_CODES:
        if isinstance(error, exc_type):
            return code
    return E.INTERNAL


def register_error_handlers(blueprint) -> None:
    """Map every GovernanceError subclass to its JSON error response on ``blueprint``."""

    @blueprint.errorhandler(GovernanceError)
    def _handle_governance_error(error: GovernanceError):
        code = error_code_for(error)
        logger.info(
            "Governance request rejected code=%s endpoint=%s: %s",
            code, request.endpoint, error,
        )
        return api_error(code, str(error), details=error.details)
