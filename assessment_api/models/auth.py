"""Pydantic models for authentication."""
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserLogin(BaseModel):
    """User login request."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    """JWT token response."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class UserResponse(BaseModel):
    """User response (public info)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    nik: str | None = None
    role: str
    is_active: bool
    created_at: datetime


class MessageResponse(BaseModel):
    """Simple message response."""

    message: str


class AuthSessionResponse(BaseModel):
    """One of the caller's login sessions."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: datetime
    last_used: datetime
    expires_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    is_current: bool = False


class RevokeSessionsResponse(BaseModel):
    revoked: int
