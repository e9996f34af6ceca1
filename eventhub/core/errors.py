"""
Domain error taxonomy.

Services raise these; ``eventhub.main`` maps each one to an HTTP status so
routes never build ``HTTPException`` objects for domain failures.
"""
from typing import Optional


class EventHubError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500
    default_detail = "Internal error"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFoundError(EventHubError):
    """Event or attendance record does not exist."""

    status_code = 404
    default_detail = "Not found"


class NotAuthenticatedError(EventHubError):
    """No valid identity was presented."""

    status_code = 401
    default_detail = "Not authenticated"


class NotAuthorizedError(EventHubError):
    """The identity is valid but its role or ownership forbids the action."""

    status_code = 403
    default_detail = "Not authorized"


class TransientIOError(EventHubError):
    """Storage or messaging I/O failed; the operation may be retried."""

    status_code = 503
    default_detail = "Service temporarily unavailable"


class ConflictError(EventHubError):
    """The change would break an invariant of the current state."""

    status_code = 409
    default_detail = "Conflict"
