"""Access check endpoint: evaluate the decision table for one resource family and owner."""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from orgguard.api.v1.auth import get_current_user
from orgguard.api.v1.errors import to_http_exception
from orgguard.core.config import get_settings
from orgguard.core.database import get_db
from orgguard.schemas.access import AccessCheckResponse
from orgguard.schemas.auth import CurrentUser
from orgguard.services.errors import AccessControlError, StoreUnavailableError
from orgguard.services.guards import RESOURCE_FAMILIES, build_guard
from orgguard.services.policy import REASON_STORE_UNAVAILABLE

router = APIRouter()


@router.get("/{resource}/{owner_id}", response_model=AccessCheckResponse)
def get_access_decision(
    resource: str,
    owner_id: str,
    db: Annotated[Session, Depends(get_db)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> AccessCheckResponse:
    """
    Return whether the caller may access owner_id's records in the given resource family.

    A deny is a normal 200 response with allowed=false. The decision does not depend on
    whether owner_id exists, so it reveals nothing about the organization. A store failure
    is a 503, never an allow.
    """
    if resource not in RESOURCE_FAMILIES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown resource family. Expected one of: {', '.join(RESOURCE_FAMILIES)}.",
        )
    guard = build_guard(resource, db, get_settings())
    try:
        decision = guard.decide(user.id, user.role, owner_id)
        if decision.reason == REASON_STORE_UNAVAILABLE:
            raise StoreUnavailableError("Access check failed closed.", query="check_access")
    except AccessControlError as e:
        raise to_http_exception(e, user.role) from e
    return AccessCheckResponse(
        resource=resource,
        owner_id=owner_id,
        allowed=decision.allowed,
        reason=decision.reason,
    )
