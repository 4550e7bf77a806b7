"""Resource guards: bridge a resource family's owner id to the access policy engine.

Every per-user record family (feedback, assessments, achievements, performance, attendance,
ticket statistics) goes through ResourceGuard.authorize or ResourceGuard.scoped; none of them
compares roles on its own. Listing endpoints use ResourceGuard.list_reports, rooted at the
actor, so no per-item check is needed.
"""

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, TypeVar

from sqlalchemy.orm import Session

from orgguard.schemas.access import AccessDecision
from orgguard.services.errors import (
    AccessDeniedError,
    OwnerNotFoundError,
    StoreUnavailableError,
)
from orgguard.services.hierarchy import HierarchyResolver, ReportPartition
from orgguard.services.hierarchy_cache import get_hierarchy_cache
from orgguard.services.policy import (
    REASON_STORE_UNAVAILABLE,
    ROLE_ADMIN,
    ROLE_MANAGER,
    AccessPolicyEngine,
    normalize_role,
)
from orgguard.services.store import HierarchyStore, SqlAlchemyHierarchyStore, ensure_user_id

if TYPE_CHECKING:
    from orgguard.core.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

RESOURCE_FAMILIES: tuple[str, ...] = (
    "feedback",
    "manager_feedback",
    "colleague_feedback",
    "assessments",
    "achievements",
    "performance",
    "attendance",
    "ticket_statistics",
    "profile",
)

# Roles allowed to list their own reports.
LISTING_ROLES = frozenset({ROLE_MANAGER, ROLE_ADMIN})


class ResourceGuard:
    """Access gate for one resource family."""

    def __init__(self, resource: str, engine: AccessPolicyEngine, store: HierarchyStore) -> None:
        if resource not in RESOURCE_FAMILIES:
            raise ValueError(f"Unknown resource family: {resource!r}")
        self.resource = resource
        self.engine = engine
        self.store = store

    def decide(self, actor_id: str, actor_role: str | None, target_owner_id: str) -> AccessDecision:
        """Run the decision table only. Never raises for a deny; callers inspect the decision."""
        return self.engine.check_access(actor_id, actor_role, target_owner_id)

    def authorize(
        self, actor_id: str, actor_role: str | None, target_owner_id: str
    ) -> AccessDecision:
        """
        Allow or raise.

        Raises MalformedIdentifierError, StoreUnavailableError (fail closed),
        AccessDeniedError, or OwnerNotFoundError when an allowed owner id has no user.
        """
        decision = self.decide(actor_id, actor_role, target_owner_id)
        if decision.reason == REASON_STORE_UNAVAILABLE:
            raise StoreUnavailableError(
                f"Access check for {self.resource} could not reach the hierarchy store.",
                query="check_access",
            )
        if not decision.allowed:
            logger.warning(
                "Access denied",
                extra={
                    "resource": self.resource,
                    "actor_id": actor_id,
                    "actor_role": actor_role,
                    "owner_id": target_owner_id,
                    "reason": decision.reason,
                },
            )
            raise AccessDeniedError()
        if self.store.find_by_id(target_owner_id) is None:
            raise OwnerNotFoundError(target_owner_id)
        logger.debug(
            "Access allowed",
            extra={
                "resource": self.resource,
                "actor_id": actor_id,
                "owner_id": target_owner_id,
                "reason": decision.reason,
            },
        )
        return decision

    def scoped(
        self,
        actor_id: str,
        actor_role: str | None,
        target_owner_id: str,
        fetch: Callable[[str], T],
    ) -> T:
        """Authorize, then load the owner's records with fetch(owner_id)."""
        self.authorize(actor_id, actor_role, target_owner_id)
        return fetch(target_owner_id)

    def list_reports(self, actor_id: str, actor_role: str | None) -> ReportPartition:
        """Direct and indirect reports of the actor. EMPLOYEE actors are denied."""
        ensure_user_id(actor_id, "actor id")
        if normalize_role(actor_role) not in LISTING_ROLES:
            logger.warning(
                "Report listing denied",
                extra={"resource": self.resource, "actor_id": actor_id, "actor_role": actor_role},
            )
            raise AccessDeniedError()
        return self.engine.resolver.partition_reports(actor_id)


def build_resolver(db: Session, settings: "Settings") -> HierarchyResolver:
    """Resolver for one request: SQLAlchemy store, per-request deadline, shared cache if enabled."""
    timeout = settings.STORE_QUERY_TIMEOUT_SEC
    store = SqlAlchemyHierarchyStore(db, statement_timeout_sec=timeout)
    return HierarchyResolver(
        store,
        deadline=time.monotonic() + timeout,
        cache=get_hierarchy_cache(settings),
    )


def build_guard(resource: str, db: Session, settings: "Settings") -> ResourceGuard:
    """Guard for a resource family wired to a request-scoped resolver."""
    resolver = build_resolver(db, settings)
    return ResourceGuard(resource, AccessPolicyEngine(resolver), resolver.store)
