"""Housekeeping for login (auth) sessions."""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assessment_api.config import INACTIVE_SESSION_DAYS, MAX_ACTIVE_SESSIONS_PER_USER
from assessment_api.models.db.user import AuthSession

logger = logging.getLogger(__name__)


@dataclass
class SessionStats:
    total_sessions: int = 0
    active_sessions: int = 0
    expired_sessions: int = 0


class SessionManager:
    """Expiry, inactivity, per-user cap and revocation of auth sessions.

    Every operation is a single set-based statement, so running it twice (or
    from two processes at once) is harmless. Failures are logged and reported
    as a zero count or False; they never propagate to the caller.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _execute(self, stmt) -> int:
        async with self._session_factory() as db:
            result = await db.execute(stmt.execution_options(synchronize_session=False))
            await db.commit()
            return result.rowcount or 0

    async def cleanup_expired_sessions(self) -> int:
        """Delete sessions whose expiry has passed."""
        now = datetime.now(timezone.utc)
        try:
            deleted = await self._execute(delete(AuthSession).where(AuthSession.expires_at < now))
        except Exception as e:
            logger.error(f"Failed to cleanup expired sessions: {e}")
            return 0
        if deleted > 0:
            logger.info(f"Cleaned up {deleted} expired sessions")
        return deleted

    async def cleanup_inactive_sessions(self, days: int = INACTIVE_SESSION_DAYS) -> int:
        """Delete sessions not used for ``days`` days."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        try:
            deleted = await self._execute(delete(AuthSession).where(AuthSession.last_used < cutoff))
        except Exception as e:
            logger.error(f"Failed to cleanup inactive sessions: {e}")
            return 0
        if deleted > 0:
            logger.info(f"Cleaned up {deleted} sessions inactive for {days} days")
        return deleted

    async def limit_user_sessions(
        self, user_id: int, max_sessions: int = MAX_ACTIVE_SESSIONS_PER_USER
    ) -> int:
        """Keep only the ``max_sessions`` most recently used live sessions of a user."""
        now = datetime.now(timezone.utc)
        live = (
            AuthSession.user_id == user_id,
            AuthSession.is_active.is_(True),
            AuthSession.expires_at > now,
        )
        keep = (
            select(AuthSession.id)
            .where(*live)
            .order_by(AuthSession.last_used.desc(), AuthSession.id.desc())
            .limit(max(max_sessions, 0))
        )
        try:
            deleted = await self._execute(
                delete(AuthSession).where(*live, AuthSession.id.not_in(keep))
            )
        except Exception as e:
            logger.error(f"Failed to limit sessions for user {user_id}: {e}")
            return 0
        if deleted > 0:
            logger.info(f"Removed {deleted} surplus sessions for user {user_id}")
        return deleted

    async def get_user_active_sessions(self, user_id: int) -> list[AuthSession]:
        now = datetime.now(timezone.utc)
        stmt = (
            select(AuthSession)
            .where(
                AuthSession.user_id == user_id,
                AuthSession.is_active.is_(True),
                AuthSession.expires_at > now,
            )
            .order_by(AuthSession.last_used.desc())
        )
        try:
            async with self._session_factory() as db:
                return list((await db.execute(stmt)).scalars().all())
        except Exception as e:
            logger.error(f"Failed to list sessions for user {user_id}: {e}")
            return []

    async def revoke_session(self, session_id: int, user_id: int | None = None) -> bool:
        """Mark one session inactive. When ``user_id`` is given it must own the session."""
        stmt = update(AuthSession).where(AuthSession.id == session_id)
        if user_id is not None:
            stmt = stmt.where(AuthSession.user_id == user_id)
        stmt = stmt.values(is_active=False, updated_at=datetime.now(timezone.utc))
        try:
            revoked = await self._execute(stmt)
        except Exception as e:
            logger.error(f"Failed to revoke session {session_id}: {e}")
            return False
        return revoked > 0

    async def revoke_other_user_sessions(self, user_id: int, current_session_id: int) -> int:
        """Mark every other active session of the user inactive."""
        stmt = (
            update(AuthSession)
            .where(
                AuthSession.user_id == user_id,
                AuthSession.id != current_session_id,
                AuthSession.is_active.is_(True),
            )
            .values(is_active=False, updated_at=datetime.now(timezone.utc))
        )
        try:
            revoked = await self._execute(stmt)
        except Exception as e:
            logger.error(f"Failed to revoke other sessions for user {user_id}: {e}")
            return 0
        if revoked > 0:
            logger.info(f"Revoked {revoked} other sessions for user {user_id}")
        return revoked

    async def get_session_stats(self) -> SessionStats:
        now = datetime.now(timezone.utc)
        live = (AuthSession.is_active.is_(True), AuthSession.expires_at > now)
        try:
            async with self._session_factory() as db:
                total = (await db.execute(select(func.count(AuthSession.id)))).scalar_one()
                active = (
                    await db.execute(select(func.count(AuthSession.id)).where(*live))
                ).scalar_one()
                expired = (
                    await db.execute(
                        select(func.count(AuthSession.id)).where(AuthSession.expires_at <= now)
                    )
                ).scalar_one()
        except Exception as e:
            logger.error(f"Failed to collect session stats: {e}")
            return SessionStats()
        return SessionStats(total_sessions=total, active_sessions=active, expired_sessions=expired)

    async def perform_maintenance_cleanup(self) -> dict[str, object]:
        """Run the expiry and inactivity sweeps and report the resulting counts."""
        expired = await self.cleanup_expired_sessions()
        inactive = await self.cleanup_inactive_sessions()
        stats = await self.get_session_stats()
        logger.info(
            f"Session maintenance: {expired} expired and {inactive} inactive sessions removed, "
            f"{stats.active_sessions} active remain"
        )
        return {
            "expired_cleaned": expired,
            "inactive_cleaned": inactive,
            "session_stats": asdict(stats),
        }
