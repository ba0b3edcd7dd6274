"""Authentication dependencies for FastAPI."""
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_api.database import get_db
from assessment_api.models.db.user import User
from assessment_api.models.records import Caller
from assessment_api.services.auth_service import (
    extend_session,
    get_active_session,
    get_user_by_id,
    verify_token,
)

# HTTP Bearer scheme for JWT
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_caller(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Caller:
    """Resolve the bearer token to the calling user and their auth session.

    Raises:
        HTTPException: 401 if not authenticated or token is invalid.
    """
    if credentials is None:
        raise _unauthorized("Not authenticated")

    payload = verify_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Invalid or expired token")

    jti = payload.get("jti")
    user_id = payload.get("sub")
    if not jti or user_id is None:
        raise _unauthorized("Invalid token payload")

    # Check if session is still active
    auth_session = await get_active_session(db, jti)
    if auth_session is None:
        raise _unauthorized("Session expired or invalidated")

    user = await get_user_by_id(db, int(user_id))
    if user is None:
        raise _unauthorized("User not found")
    if not user.is_active:
        raise _unauthorized("User is inactive")

    # Extend session on activity
    await extend_session(db, auth_session)

    return Caller(subject_id=user.id, role=user.role, auth_session_id=auth_session.id)


async def get_current_user(
    caller: Annotated[Caller, Depends(get_current_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get the current authenticated user record."""
    user = await get_user_by_id(db, caller.subject_id)
    if user is None:
        raise _unauthorized("User not found")
    return user


async def require_admin(
    caller: Annotated[Caller, Depends(get_current_caller)],
) -> Caller:
    """Allow only administrators through.

    Raises:
        HTTPException: 403 for non-admin callers.
    """
    if not caller.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied. Admin privileges required.",
        )
    return caller
