"""User endpoints: report listings, guarded user detail, manager chain, and admin reassignment."""

import logging
from collections.abc import Iterable
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orgguard.api.v1.auth import get_current_user, require_admin
from orgguard.api.v1.errors import to_http_exception
from orgguard.core.config import get_settings
from orgguard.core.database import get_db
from orgguard.models.user import User
from orgguard.schemas.access import (
    ActiveStatusRequest,
    ManagerAssignmentRequest,
    ManagerChainResponse,
    ReportsResponse,
    UserSummary,
)
from orgguard.schemas.auth import CurrentUser
from orgguard.services.errors import AccessControlError, StoreUnavailableError
from orgguard.services.guards import build_guard, build_resolver
from orgguard.services.hierarchy_cache import get_hierarchy_cache
from orgguard.services.policy import ROLE_ADMIN, ROLE_MANAGER, normalize_role
from orgguard.services.store import ensure_user_id

logger = logging.getLogger(__name__)
router = APIRouter()

# Roles that may be assigned as someone's manager.
MANAGER_ROLES = frozenset({ROLE_MANAGER, ROLE_ADMIN})


def _load_summaries(db: Session, user_ids: Iterable[str]) -> list[UserSummary]:
    """Fetch user rows for ids, ordered by last name then first name."""
    ids = list(user_ids)
    if not ids:
        return []
    try:
        users = (
            db.query(User)
            .filter(User.id.in_(ids))
            .order_by(User.last_name, User.first_name, User.id)
            .all()
        )
    except SQLAlchemyError as e:
        raise to_http_exception(
            StoreUnavailableError("Loading user summaries failed.", query="load_summaries", cause=e),
            None,
        ) from e
    return [UserSummary.model_validate(u) for u in users]


def _get_user_or_404(db: Session, user_id: str) -> User:
    try:
        ensure_user_id(user_id)
    except AccessControlError as e:
        raise to_http_exception(e, ROLE_ADMIN) from e
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Resource not found")
    return user


@router.get("/me/direct-reports", response_model=ReportsResponse)
def get_my_direct_reports(
    db: Annotated[Session, Depends(get_db)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> ReportsResponse:
    """Active users who report directly to the caller. MANAGER and ADMIN only."""
    guard = build_guard("profile", db, get_settings())
    try:
        partition = guard.list_reports(user.id, user.role)
    except AccessControlError as e:
        raise to_http_exception(e, user.role) from e
    users = _load_summaries(db, partition.direct)
    return ReportsResponse(users=users, count=len(users))


@router.get("/me/indirect-reports", response_model=ReportsResponse)
def get_my_indirect_reports(
    db: Annotated[Session, Depends(get_db)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> ReportsResponse:
    """
    Active users below the caller's direct reports, at any depth.

    Direct reports are not repeated here; together the two listings cover every descendant once.
    """
    guard = build_guard("profile", db, get_settings())
    try:
        partition = guard.list_reports(user.id, user.role)
    except AccessControlError as e:
        raise to_http_exception(e, user.role) from e
    users = _load_summaries(db, partition.indirect)
    return ReportsResponse(users=users, count=len(users))


@router.get("/{user_id}", response_model=UserSummary)
def get_user(
    user_id: str,
    db: Annotated[Session, Depends(get_db)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> UserSummary:
    """User detail: self, ADMIN, or a manager above the user in the hierarchy."""
    guard = build_guard("profile", db, get_settings())
    try:
        target = guard.scoped(user.id, user.role, user_id, lambda owner_id: db.get(User, owner_id))
    except AccessControlError as e:
        raise to_http_exception(e, user.role) from e
    return UserSummary.model_validate(target)


@router.get("/{user_id}/manager-chain", response_model=ManagerChainResponse)
def get_manager_chain(
    user_id: str,
    db: Annotated[Session, Depends(get_db)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> ManagerChainResponse:
    """Ancestor ids of user_id, immediate manager first. Guarded like user detail."""
    guard = build_guard("profile", db, get_settings())
    try:
        chain = guard.scoped(
            user.id, user.role, user_id, guard.engine.resolver.get_manager_chain
        )
    except AccessControlError as e:
        raise to_http_exception(e, user.role) from e
    return ManagerChainResponse(user_id=user_id, manager_ids=chain)


@router.put("/{user_id}/manager", response_model=UserSummary)
def put_manager(
    user_id: str,
    body: ManagerAssignmentRequest,
    db: Annotated[Session, Depends(get_db)],
    admin: Annotated[CurrentUser, Depends(require_admin)],
) -> UserSummary:
    """
    Reassign (or clear) a user's manager. ADMIN only.

    The new manager must exist, hold MANAGER or ADMIN, and must not sit below the user:
    that assignment would turn the hierarchy into a cycle.
    """
    settings = get_settings()
    target = _get_user_or_404(db, user_id)
    new_manager_id = body.manager_id

    if new_manager_id is not None:
        if new_manager_id == user_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User cannot be their own manager",
            )
        manager = db.get(User, new_manager_id)
        if manager is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Manager not found")
        if normalize_role(manager.role) not in MANAGER_ROLES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Selected user is not a manager or admin",
            )
        resolver = build_resolver(db, settings)
        try:
            creates_cycle = resolver.would_create_cycle(user_id, new_manager_id)
        except AccessControlError as e:
            raise to_http_exception(e, admin.role) from e
        if creates_cycle:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Assignment would create a reporting cycle",
            )

    old_manager_id = target.manager_id
    target.manager_id = new_manager_id
    db.commit()
    db.refresh(target)

    cache = get_hierarchy_cache(settings)
    if cache is not None:
        cache.invalidate(old_manager_id, new_manager_id)
    logger.info(
        "Manager reassigned",
        extra={
            "user_id": user_id,
            "old_manager_id": old_manager_id,
            "new_manager_id": new_manager_id,
            "admin_id": admin.id,
        },
    )
    return UserSummary.model_validate(target)


@router.put("/{user_id}/status", response_model=UserSummary)
def put_status(
    user_id: str,
    body: ActiveStatusRequest,
    db: Annotated[Session, Depends(get_db)],
    admin: Annotated[CurrentUser, Depends(require_admin)],
) -> UserSummary:
    """Activate or deactivate a user. ADMIN only. Deactivated users drop out of report listings."""
    target = _get_user_or_404(db, user_id)
    if target.id == admin.id and not body.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admins cannot deactivate themselves",
        )
    target.is_active = body.is_active
    db.commit()
    db.refresh(target)

    cache = get_hierarchy_cache(get_settings())
    if cache is not None:
        cache.invalidate(target.manager_id, target.id)
    logger.info(
        "User status changed",
        extra={"user_id": user_id, "is_active": body.is_active, "admin_id": admin.id},
    )
    return UserSummary.model_validate(target)
