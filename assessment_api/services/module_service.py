"""Service for test session module assignment."""
import logging

from fastapi import HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_api.models.db import SessionModule, Test, TestSession
from assessment_api.models.sessions import ModuleAssignment

logger = logging.getLogger(__name__)


async def replace_session_modules(
    db: AsyncSession, session_id: int, modules: list[ModuleAssignment]
) -> list[SessionModule]:
    """Replace every module assignment of a test session.

    Raises:
        HTTPException: 404 if the session or any referenced test does not exist.
    """
    if await db.get(TestSession, session_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Test session {session_id} not found",
        )

    test_ids = {m.test_id for m in modules}
    if test_ids:
        found = set((await db.execute(select(Test.id).where(Test.id.in_(test_ids)))).scalars())
        missing = sorted(test_ids - found)
        if missing:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Tests not found: {', '.join(str(t) for t in missing)}",
            )

    await db.execute(delete(SessionModule).where(SessionModule.session_id == session_id))
    rows = [
        SessionModule(
            session_id=session_id,
            test_id=m.test_id,
            sequence=m.sequence,
            is_required=m.is_required,
            weight=m.weight,
        )
        for m in sorted(modules, key=lambda m: m.sequence)
    ]
    db.add_all(rows)
    await db.commit()
    logger.info(f"Assigned {len(rows)} modules to session {session_id}")
    return rows
