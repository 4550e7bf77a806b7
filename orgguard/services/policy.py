"""Access policy engine: one decision table for every resource family.

Rules, first match wins:
  1. actor is the owner           -> allow (self)
  2. actor role is ADMIN          -> allow (admin_override)
  3. MANAGER and owner descends   -> allow (hierarchy)
  4. otherwise                    -> deny  (insufficient_privilege)

Store failures never turn into an allow: the engine returns a deny with reason
store_unavailable, which guards surface as a retryable error.
"""

import logging

from orgguard.schemas.access import AccessDecision, AccessReason
from orgguard.services.errors import StoreUnavailableError
from orgguard.services.hierarchy import HierarchyResolver
from orgguard.services.store import ensure_user_id

logger = logging.getLogger(__name__)

ROLE_EMPLOYEE = "EMPLOYEE"
ROLE_MANAGER = "MANAGER"
ROLE_ADMIN = "ADMIN"

REASON_SELF: AccessReason = "self"
REASON_ADMIN_OVERRIDE: AccessReason = "admin_override"
REASON_HIERARCHY: AccessReason = "hierarchy"
REASON_INSUFFICIENT_PRIVILEGE: AccessReason = "insufficient_privilege"
REASON_STORE_UNAVAILABLE: AccessReason = "store_unavailable"


def normalize_role(role: str | None) -> str | None:
    """Canonical upper-case role, or None for anything that is not EMPLOYEE/MANAGER/ADMIN."""
    if not role or not isinstance(role, str):
        return None
    canonical = role.strip().upper()
    if canonical in (ROLE_EMPLOYEE, ROLE_MANAGER, ROLE_ADMIN):
        return canonical
    return None


class AccessPolicyEngine:
    """Pure decision function over (actor, role, owner) plus the resolver's hierarchy snapshot."""

    def __init__(self, resolver: HierarchyResolver) -> None:
        self.resolver = resolver

    def check_access(
        self, actor_id: str, actor_role: str | None, target_owner_id: str
    ) -> AccessDecision:
        """
        Decide whether actor_id may access records owned by target_owner_id.

        Raises MalformedIdentifierError before any store query if either id is malformed.
        """
        ensure_user_id(actor_id, "actor id")
        ensure_user_id(target_owner_id, "owner id")

        if actor_id == target_owner_id:
            return AccessDecision(allowed=True, reason=REASON_SELF)

        role = normalize_role(actor_role)
        if role == ROLE_ADMIN:
            return AccessDecision(allowed=True, reason=REASON_ADMIN_OVERRIDE)

        if role == ROLE_MANAGER:
            try:
                in_hierarchy = self.resolver.is_direct_report(
                    actor_id, target_owner_id
                ) or self.resolver.is_descendant(actor_id, target_owner_id)
            except StoreUnavailableError as e:
                logger.warning(
                    "Access check failed closed: hierarchy store unavailable",
                    extra={
                        "actor_id": actor_id,
                        "owner_id": target_owner_id,
                        "query": e.query,
                        "reason": e.message[:200],
                    },
                )
                return AccessDecision(allowed=False, reason=REASON_STORE_UNAVAILABLE)
            if in_hierarchy:
                return AccessDecision(allowed=True, reason=REASON_HIERARCHY)

        return AccessDecision(allowed=False, reason=REASON_INSUFFICIENT_PRIVILEGE)
