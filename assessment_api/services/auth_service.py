"""Authentication service for password checks, JWT handling and auth sessions."""
import uuid
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_api.config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    ALGORITHM,
    SECRET_KEY,
    SESSION_EXTEND_MINUTES,
)
from assessment_api.models.db.user import AuthSession, User


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str | None) -> bool:
    """Verify a password against its hash. Accounts without a password never match."""
    if not hashed_password:
        return False
    return bcrypt.checkpw(
        plain_password.encode("utf-8"), hashed_password.encode("utf-8")
    )


def create_access_token(user_id: int, jti: str | None = None) -> tuple[str, str]:
    """Create a JWT access token.

    Returns:
        Tuple of (token, jti)
    """
    if jti is None:
        jti = str(uuid.uuid4())

    expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {
        "sub": str(user_id),
        "exp": expire,
        "jti": jti,
    }
    encoded_jwt = jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)
    return encoded_jwt, jti


def verify_token(token: str) -> dict | None:
    """Verify and decode a JWT token.

    Returns:
        Decoded token payload or None if invalid.
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        return payload
    except JWTError:
        return None


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Get user by email (case-insensitive)."""
    result = await db.execute(select(User).where(User.email == email.strip().lower()))
    return result.scalars().first()


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Get user by ID."""
    return await db.get(User, user_id)


async def create_auth_session(
    db: AsyncSession,
    user_id: int,
    token_jti: str,
    expires_at: datetime,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuthSession:
    """Record a new login session for the user."""
    auth_session = AuthSession(
        user_id=user_id,
        token_jti=token_jti,
        expires_at=expires_at,
        ip_address=ip_address,
        user_agent=user_agent[:500] if user_agent else None,
    )
    db.add(auth_session)
    await db.commit()
    await db.refresh(auth_session)
    return auth_session


async def get_active_session(db: AsyncSession, token_jti: str) -> AuthSession | None:
    """Get an active, unexpired session by token JTI."""
    now = datetime.now(timezone.utc)
    result = await db.execute(
        select(AuthSession).where(
            AuthSession.token_jti == token_jti,
            AuthSession.is_active.is_(True),
            AuthSession.expires_at > now,
        )
    )
    return result.scalars().first()


async def extend_session(db: AsyncSession, auth_session: AuthSession) -> AuthSession:
    """Extend session expiration and update last use."""
    now = datetime.now(timezone.utc)
    auth_session.last_used = now
    auth_session.expires_at = now + timedelta(minutes=SESSION_EXTEND_MINUTES)
    await db.commit()
    return auth_session
