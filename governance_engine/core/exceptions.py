"""
Governance-wide exception hierarchy.

Every service in the engine raises one of these types instead of returning
error tuples. Blueprints register handlers against them once and get the
same HTTP status codes everywhere (see ``governance_engine.utils.errors``).

All of them are recoverable, caller-facing errors: the service that raised
has rolled back its unit of work, so state is unchanged.  Backing-store
failures (``sqlalchemy.exc.OperationalError`` and friends) are NOT wrapped
here; they propagate unmodified.

Usage:
    from governance_engine.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="GovernanceBoard", resource_id=42)
    raise ValidationError("name is required", details={"name": "required"})
"""


class GovernanceError(Exception):
    """Base class for every typed governance error.

    Attributes:
        code: Machine-readable error code (``E.*`` constant).
        details: Optional structured payload echoed in API responses.
    """

    code = "ERR_GOVERNANCE"

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotFoundError(GovernanceError):
    """Raised when a referenced resource does not exist or is not usable.

    Also used when a board is inactive or has no published criteria version,
    since for the caller the board is not available for review.

    Args:
        resource: Human-readable model name (e.g. "GovernanceBoard").
        resource_id: The identifier that was looked up.
        reason: Optional suffix replacing the default "not found".
    """

    code = "ERR_NOT_FOUND"

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        reason: str | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += f" {reason or 'not found'}"
        super().__init__(msg)


class ValidationError(GovernanceError):
    """Raised when input is malformed or out of range.

    Examples: missing criterion name, negative weight, score outside the
    accepted range, quorum setting outside its bounds.
    """

    code = "ERR_VALIDATION_INVALID"


class ConflictError(GovernanceError):
    """Raised when an operation would duplicate something that must be unique.

    Duplicate open review round, duplicate board name, duplicate version number.

    Args:
        resource: Model name.
        field: The unique field that would be duplicated.
        value: The conflicting value.
        message: Optional override for the generated message.
    """

    code = "ERR_CONFLICT_DUPLICATE"

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | int | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message or f"{resource} with {field}={value!r} already exists")


class InvalidStateError(GovernanceError):
    """Raised when an operation is not legal for the entity's current status.

    Voting on a decided review, publishing a non-draft version, editing a
    published rubric.
    """

    code = "ERR_CONFLICT_STATE"

    def __init__(self, message: str, current_status: str | None = None) -> None:
        self.current_status = current_status
        details = {"current_status": current_status} if current_status else None
        super().__init__(message, details)


class ForbiddenError(GovernanceError):
    """Raised when a voter is not in the frozen eligibility snapshot."""

    code = "ERR_FORBIDDEN"


class ExpiredError(GovernanceError):
    """Raised when a vote arrives after the review's vote deadline."""

    code = "ERR_VOTE_EXPIRED"


class QuorumNotMetError(GovernanceError):
    """Raised when a decision is attempted without quorum while quorum is required.

    ``details`` carries the serialised quorum result so the caller can show
    how many more votes are needed.
    """

    code = "GOVERNANCE_QUORUM_NOT_MET"
