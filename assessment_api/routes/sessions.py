"""Test session administration endpoints."""
from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from assessment_api.database import get_db
from assessment_api.dependencies.auth import require_admin
from assessment_api.models.records import Caller
from assessment_api.models.sessions import (
    ModuleAssignment,
    SessionModulesResponse,
    SessionModulesUpdate,
)
from assessment_api.services.module_service import replace_session_modules

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.put("/{session_id}/modules", response_model=SessionModulesResponse)
async def update_session_modules(
    session_id: int,
    data: SessionModulesUpdate,
    db: Annotated[AsyncSession, Depends(get_db)],
    _admin: Annotated[Caller, Depends(require_admin)],
) -> SessionModulesResponse:
    """Replace the module list of a test session."""
    rows = await replace_session_modules(db, session_id, data.modules)
    return SessionModulesResponse(
        session_id=session_id,
        modules=[ModuleAssignment.model_validate(row) for row in rows],
    )
