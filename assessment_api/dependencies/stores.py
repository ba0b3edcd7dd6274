"""Service wiring dependencies for FastAPI."""
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from assessment_api.database import get_session_factory
from assessment_api.services.report_store import ReportStore, SqlReportStore
from assessment_api.services.session_maintenance_service import SessionManager


def get_report_store(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> ReportStore:
    return SqlReportStore(session_factory)


def get_session_manager(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> SessionManager:
    return SessionManager(session_factory)
