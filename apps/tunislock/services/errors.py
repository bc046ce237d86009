"""
Domain error taxonomy shared by every service.

All errors subclass ValueError so callers that only care about "bad request"
can keep catching ValueError; routes map each kind to its HTTP status.
"""


class TunisLockError(ValueError):
    """Base class for caller-visible domain errors."""


class AuthenticationError(TunisLockError):
    """Raised when no caller can be resolved from the request."""


class AuthorizationError(TunisLockError):
    """Raised when the caller lacks the required relationship to a resource."""


class NotFoundError(TunisLockError):
    """Raised when a referenced match, invitation, user or notification does not exist."""


class ValidationError(TunisLockError):
    """Raised on malformed or out-of-range input."""


class ConflictError(TunisLockError):
    """Raised on uniqueness violations or when the state already satisfies the request."""


class InvalidStateError(TunisLockError):
    """Raised when the operation is not permitted in the current lifecycle state."""


class CapacityError(TunisLockError):
    """Raised when a team, position or match capacity is exhausted."""
