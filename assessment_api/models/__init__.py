"""Pydantic models."""
from assessment_api.models.auth import (
    AuthSessionResponse,
    MessageResponse,
    RevokeSessionsResponse,
    TokenResponse,
    UserLogin,
    UserResponse,
)
from assessment_api.models.reports import (
    ErrorEnvelope,
    IndividualDetailResponse,
    IndividualReportQuery,
    IndividualReportsQuery,
    IndividualReportsResponse,
    SessionReportsQuery,
    SessionReportsResponse,
    SessionSummaryResponse,
)
from assessment_api.models.sessions import (
    MaintenanceResponse,
    ModuleAssignment,
    SessionModulesResponse,
    SessionModulesUpdate,
)

__all__ = [
    "AuthSessionResponse",
    "ErrorEnvelope",
    "IndividualDetailResponse",
    "IndividualReportQuery",
    "IndividualReportsQuery",
    "IndividualReportsResponse",
    "MaintenanceResponse",
    "MessageResponse",
    "ModuleAssignment",
    "RevokeSessionsResponse",
    "SessionModulesResponse",
    "SessionModulesUpdate",
    "SessionReportsQuery",
    "SessionReportsResponse",
    "SessionSummaryResponse",
    "TokenResponse",
    "UserLogin",
    "UserResponse",
]
