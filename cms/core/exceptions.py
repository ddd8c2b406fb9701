"""
Platform-wide exception hierarchy.

Services raise these types; blueprints register handlers against them once
and get consistent HTTP status codes everywhere.  Callers must be able to
tell "not found", "not your workflow" and "wrong stage" apart, so each has
its own class.

Usage:
    from cms.core.exceptions import NotFoundError, StateConflictError

    raise NotFoundError(resource="Workflow", resource_id=wf_id)
    raise StateConflictError(wf_id, "claim", "in_review", "already claimed")
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist.

    Always checked before any other precondition.

    Args:
        resource: Human-readable model/entity name (e.g. "Workflow", "User").
        resource_id: The PK that was looked up.
    """

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        super().__init__(msg)


class AuthorizationError(Exception):
    """Raised when the actor is not allowed to perform the action.

    E.g. a non-creator submitting, or a reviewer deciding a workflow that
    someone else has claimed.  Maps to HTTP 403.
    """

    def __init__(self, user_id: int | None, action: str, reason: str | None = None) -> None:
        msg = f"User {user_id} may not '{action}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.user_id = user_id
        self.action = action
        self.reason = reason


class StateConflictError(Exception):
    """Raised when a transition is illegal from the workflow's current status.

    Also raised when a compare-and-set write affects zero rows, i.e. another
    request changed the workflow between our read and our write (the lost
    side of a claim race).  Maps to HTTP 409.
    """

    def __init__(
        self,
        workflow_id: str,
        action: str,
        current_status: str | None,
        reason: str | None = None,
    ) -> None:
        msg = f"Cannot '{action}' workflow {workflow_id} (status={current_status})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
        self.workflow_id = workflow_id
        self.action = action
        self.current_status = current_status
        self.reason = reason


class ValidationError(Exception):
    """Raised when input fails business-rule validation in the service layer.

    Distinct from HTTP 400 (malformed input, caught in the blueprint). This
    exception signals that the data was well-formed but violated a business
    rule (e.g. blank comment on reject, unknown entity type).

    Maps to HTTP 422 in blueprint error handlers.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would create a duplicate unique constraint violation.

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)
