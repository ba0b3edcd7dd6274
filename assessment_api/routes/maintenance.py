"""Maintenance endpoints."""
from typing import Annotated

from fastapi import APIRouter, Depends

from assessment_api.dependencies.auth import require_admin
from assessment_api.dependencies.stores import get_session_manager
from assessment_api.models.records import Caller
from assessment_api.models.sessions import MaintenanceResponse
from assessment_api.services.session_maintenance_service import SessionManager

router = APIRouter(prefix="/api/maintenance", tags=["maintenance"])


@router.post("/sessions", response_model=MaintenanceResponse)
async def run_session_maintenance(
    session_manager: Annotated[SessionManager, Depends(get_session_manager)],
    _admin: Annotated[Caller, Depends(require_admin)],
) -> MaintenanceResponse:
    """Remove expired and long-unused login sessions."""
    result = await session_manager.perform_maintenance_cleanup()
    return MaintenanceResponse.model_validate(result)
