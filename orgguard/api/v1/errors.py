"""Translate access-control errors into HTTP responses.

Non-admin callers cannot tell a missing owner from an owner they may not see: both are 403.
"""

import logging

from fastapi import HTTPException, status

from orgguard.services.errors import (
    AccessControlError,
    MalformedIdentifierError,
    OwnerNotFoundError,
    StoreUnavailableError,
)
from orgguard.services.policy import ROLE_ADMIN, normalize_role

logger = logging.getLogger(__name__)

ACCESS_DENIED_DETAIL = "Access denied"
NOT_FOUND_DETAIL = "Resource not found"
UNAVAILABLE_DETAIL = "Service temporarily unavailable"
INVALID_ID_DETAIL = "Invalid identifier"


def to_http_exception(error: AccessControlError, actor_role: str | None) -> HTTPException:
    """Map an AccessControlError to the HTTPException the caller should see. Denials are 403."""
    if isinstance(error, StoreUnavailableError):
        logger.error(
            "Hierarchy store unavailable",
            extra={"query": error.query, "reason": error.message[:200]},
        )
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=UNAVAILABLE_DETAIL,
            headers={"Retry-After": "1"},
        )
    if isinstance(error, MalformedIdentifierError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=INVALID_ID_DETAIL,
        )
    if isinstance(error, OwnerNotFoundError):
        if normalize_role(actor_role) == ROLE_ADMIN:
            return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)
        logger.info("Owner not found; reported as denied", extra={"owner_id": error.user_id})
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ACCESS_DENIED_DETAIL)
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=ACCESS_DENIED_DETAIL)
