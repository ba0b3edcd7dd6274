"""Authentication routes."""
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_api.config import ACCESS_TOKEN_EXPIRE_MINUTES
from assessment_api.database import get_db
from assessment_api.dependencies.auth import get_current_caller, get_current_user
from assessment_api.dependencies.stores import get_session_manager
from assessment_api.models.auth import (
    AuthSessionResponse,
    MessageResponse,
    RevokeSessionsResponse,
    TokenResponse,
    UserLogin,
    UserResponse,
)
from assessment_api.models.db.user import User
from assessment_api.models.records import Caller
from assessment_api.services.auth_service import (
    create_access_token,
    create_auth_session,
    get_user_by_email,
    verify_password,
)
from assessment_api.services.session_maintenance_service import SessionManager

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
async def login(
    data: UserLogin,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> TokenResponse:
    """Login and get JWT token.

    Each login opens a new auth session; the user's oldest sessions beyond
    the configured cap are removed.
    """
    user = await get_user_by_email(db, data.email)

    if user is None or not verify_password(data.password, user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User is inactive",
        )

    # Create token and session
    token, jti = create_access_token(user.id)
    expires_at = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    await create_auth_session(
        db,
        user.id,
        jti,
        expires_at,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    await session_manager.limit_user_sessions(user.id)

    return TokenResponse(
        access_token=token,
        token_type="bearer",
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(
    caller: Annotated[Caller, Depends(get_current_caller)],
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> MessageResponse:
    """Logout and revoke the current session."""
    await session_manager.revoke_session(caller.auth_session_id, caller.subject_id)
    return MessageResponse(message="Logged out successfully")


@router.get("/me", response_model=UserResponse)
async def get_me(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user info."""
    return current_user


@router.get("/sessions", response_model=list[AuthSessionResponse])
async def list_my_sessions(
    caller: Annotated[Caller, Depends(get_current_caller)],
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> list[AuthSessionResponse]:
    """List the caller's live login sessions, most recently used first."""
    sessions = await session_manager.get_user_active_sessions(caller.subject_id)
    return [
        AuthSessionResponse.model_validate(s).model_copy(
            update={"is_current": s.id == caller.auth_session_id}
        )
        for s in sessions
    ]


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
async def revoke_my_session(
    session_id: int,
    caller: Annotated[Caller, Depends(get_current_caller)],
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> MessageResponse:
    """Revoke one of the caller's sessions."""
    if not await session_manager.revoke_session(session_id, caller.subject_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )
    return MessageResponse(message="Session revoked")


@router.post("/sessions/revoke-others", response_model=RevokeSessionsResponse)
async def revoke_other_sessions(
    caller: Annotated[Caller, Depends(get_current_caller)],
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
) -> RevokeSessionsResponse:
    """Revoke every session of the caller except the current one."""
    revoked = await session_manager.revoke_other_user_sessions(
        caller.subject_id, caller.auth_session_id
    )
    return RevokeSessionsResponse(revoked=revoked)
