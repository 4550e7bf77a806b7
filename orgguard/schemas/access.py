"""Pydantic schemas for access decisions, report listings and manager assignment."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# self: actor is the owner. admin_override: ADMIN role. hierarchy: owner is a descendant.
# insufficient_privilege: decision table fell through. store_unavailable: fail-closed deny.
AccessReason = Literal[
    "self",
    "admin_override",
    "hierarchy",
    "insufficient_privilege",
    "store_unavailable",
]


class AccessDecision(BaseModel):
    """Allow/deny outcome of one policy evaluation. Derived per request; never persisted."""

    model_config = ConfigDict(frozen=True)

    allowed: bool = Field(..., description="True if the actor may access the owner's records.")
    reason: AccessReason = Field(..., description="Which rule produced the decision.")


class AccessCheckResponse(BaseModel):
    """Response for GET /access/{resource}/{owner_id}."""

    resource: str = Field(..., description="Resource family checked (e.g. feedback).")
    owner_id: str = Field(..., description="Owner whose records were checked.")
    allowed: bool
    reason: AccessReason


class UserSummary(BaseModel):
    """Public view of a user (no password hash)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    first_name: str
    last_name: str
    position: str | None = None
    role: str
    manager_id: str | None = None
    is_active: bool


class ReportsResponse(BaseModel):
    """Response for the direct-reports and indirect-reports listings."""

    users: list[UserSummary] = Field(default_factory=list)
    count: int = Field(0, ge=0)


class ManagerChainResponse(BaseModel):
    """Ancestor ids of a user, immediate manager first."""

    user_id: str
    manager_ids: list[str] = Field(default_factory=list)


class ManagerAssignmentRequest(BaseModel):
    """Body for PUT /users/{user_id}/manager. null removes the manager."""

    manager_id: str | None = Field(
        default=None,
        min_length=1,
        max_length=100,
        pattern=r"^[A-Za-z0-9_-]+$",
        description="New manager id, or null to make the user a root.",
    )


class ActiveStatusRequest(BaseModel):
    """Body for PUT /users/{user_id}/status."""

    is_active: bool = Field(..., description="False deactivates the account.")
