"""Pydantic request/response schemas."""

from orgguard.schemas.access import (
    AccessCheckResponse,
    AccessDecision,
    AccessReason,
    ActiveStatusRequest,
    ManagerAssignmentRequest,
    ManagerChainResponse,
    ReportsResponse,
    UserSummary,
)
from orgguard.schemas.auth import CurrentUser, LoginRequest, TokenResponse
from orgguard.schemas.health import HealthResponse

__all__ = [
    "AccessCheckResponse",
    "AccessDecision",
    "AccessReason",
    "ActiveStatusRequest",
    "CurrentUser",
    "HealthResponse",
    "LoginRequest",
    "ManagerAssignmentRequest",
    "ManagerChainResponse",
    "ReportsResponse",
    "TokenResponse",
    "UserSummary",
]
