"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, error mapping) lives here; every sub-router
imports what it needs from this package.
"""

import logging
import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.exc import DBAPIError

from tunislock.services.errors import (
    AuthenticationError,
    AuthorizationError,
    CapacityError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    TunisLockError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

# ---------------------------------------------------------------------------
# Domain error -> HTTP status
# ---------------------------------------------------------------------------
ERROR_STATUS_CODES = {
    AuthenticationError: 401,
    AuthorizationError: 403,
    NotFoundError: 404,
    ValidationError: 400,
    ConflictError: 409,
    InvalidStateError: 409,
    CapacityError: 409,
}

CONCURRENT_UPDATE_RESPONSE = HTTPException(
    status_code=409, detail="Conflicting concurrent update, please retry"
)

# PostgreSQL serialization_failure and deadlock_detected
SERIALIZATION_FAILURE_SQLSTATES = {"40001", "40P01"}


def to_http_exception(error: TunisLockError) -> HTTPException:
    """Translate a domain error into the matching HTTPException."""
    for error_type, status_code in ERROR_STATUS_CODES.items():
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))


def is_concurrent_update_failure(error: DBAPIError) -> bool:
    """True when the database aborted the transaction because of a concurrent one."""
    orig = error.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code in SERIALIZATION_FAILURE_SQLSTATES:
            return True
    return False


async def database_error_response(session, error: DBAPIError, action: str) -> HTTPException:
    """
    Roll back after a database error and pick the response.

    A transaction aborted by a concurrent one is a 409 the client can retry;
    anything else is logged and returned as a 500.
    """
    await session.rollback()
    if is_concurrent_update_failure(error):
        return CONCURRENT_UPDATE_RESPONSE
    logger.error(f"Error {action}: {str(error)}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Error {action}: {str(error)}")


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from tunislock.api.routes.matches import router as matches_router  # noqa: E402
from tunislock.api.routes.ratings import router as ratings_router  # noqa: E402
from tunislock.api.routes.profiles import router as profiles_router  # noqa: E402
from tunislock.api.routes.invitations import router as invitations_router  # noqa: E402
from tunislock.api.routes.chat import router as chat_router  # noqa: E402
from tunislock.api.routes.notifications import router as notifications_router  # noqa: E402
from tunislock.api.routes.aggregation import router as aggregation_router  # noqa: E402

router = APIRouter()
router.include_router(matches_router)
router.include_router(ratings_router)
router.include_router(profiles_router)
router.include_router(invitations_router)
router.include_router(chat_router)
router.include_router(notifications_router)
router.include_router(aggregation_router)
