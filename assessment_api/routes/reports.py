"""Report endpoints."""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse

from assessment_api.dependencies.auth import get_current_caller
from assessment_api.dependencies.stores import get_report_store
from assessment_api.models.records import Caller
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
from assessment_api.services.report_detail_service import (
    build_individual_report,
    build_session_summary,
)
from assessment_api.services.report_service import (
    ReportAccessDenied,
    ReportNotFound,
    build_individual_reports,
    build_session_reports,
)
from assessment_api.services.report_store import ReportStore
from assessment_api.utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reports", tags=["reports"])

ERROR_RESPONSES = {
    403: {"model": ErrorEnvelope},
    500: {"model": ErrorEnvelope},
}
DETAIL_ERROR_RESPONSES = {**ERROR_RESPONSES, 404: {"model": ErrorEnvelope}}


def _error(status_code: int, message: str) -> JSONResponse:
    body = ErrorEnvelope(message=message, timestamp=utc_now())
    return JSONResponse(status_code=status_code, content=body.model_dump())


@router.get("/individual", response_model=IndividualReportsResponse, responses=ERROR_RESPONSES)
async def list_individual_reports(
    caller: Annotated[Caller, Depends(get_current_caller)],
    store: Annotated[ReportStore, Depends(get_report_store)],
    query: Annotated[IndividualReportsQuery, Query()],
) -> IndividualReportsResponse | JSONResponse:
    """List subjects with their aggregated results.

    Participants only ever receive their own row. ``per_page`` is clamped
    to the configured maximum rather than rejected.
    """
    try:
        data = await build_individual_reports(store, query, caller)
    except Exception:
        logger.exception(f"Failed to build individual reports for user {caller.subject_id}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to get individual reports")

    return IndividualReportsResponse(
        success=True,
        message="Individual reports retrieved successfully",
        data=data,
        timestamp=utc_now(),
    )


@router.get(
    "/individual/{user_id}", response_model=IndividualDetailResponse, responses=DETAIL_ERROR_RESPONSES
)
async def get_individual_report(
    user_id: int,
    caller: Annotated[Caller, Depends(get_current_caller)],
    store: Annotated[ReportStore, Depends(get_report_store)],
    query: Annotated[IndividualReportQuery, Query()],
) -> IndividualDetailResponse | JSONResponse:
    """Detailed report for one subject: every attempt, trait profile and overall figures."""
    try:
        data = await build_individual_report(store, user_id, query, caller)
    except ReportAccessDenied as e:
        return _error(status.HTTP_403_FORBIDDEN, e.message)
    except ReportNotFound as e:
        return _error(status.HTTP_404_NOT_FOUND, e.message)
    except Exception:
        logger.exception(f"Failed to build individual report for user {user_id}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to get individual report")

    return IndividualDetailResponse(
        success=True,
        message="Individual report retrieved successfully",
        data=data,
        timestamp=utc_now(),
    )


@router.get("/sessions", response_model=SessionReportsResponse, responses=ERROR_RESPONSES)
async def list_session_reports(
    caller: Annotated[Caller, Depends(get_current_caller)],
    store: Annotated[ReportStore, Depends(get_report_store)],
    query: Annotated[SessionReportsQuery, Query()],
) -> SessionReportsResponse | JSONResponse:
    """List test sessions with participation and score aggregates. Admin only."""
    try:
        data = await build_session_reports(store, query, caller)
    except ReportAccessDenied as e:
        return _error(status.HTTP_403_FORBIDDEN, e.message)
    except Exception:
        logger.exception("Failed to build session reports")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to get session reports")

    return SessionReportsResponse(
        success=True,
        message="Session reports retrieved successfully",
        data=data,
        timestamp=utc_now(),
    )


@router.get(
    "/sessions/{session_id}/summary",
    response_model=SessionSummaryResponse,
    responses=DETAIL_ERROR_RESPONSES,
)
async def get_session_summary(
    session_id: int,
    caller: Annotated[Caller, Depends(get_current_caller)],
    store: Annotated[ReportStore, Depends(get_report_store)],
) -> SessionSummaryResponse | JSONResponse:
    """Summary of one test session: modules, score distribution and top performers. Admin only."""
    try:
        data = await build_session_summary(store, session_id, caller)
    except ReportAccessDenied as e:
        return _error(status.HTTP_403_FORBIDDEN, e.message)
    except ReportNotFound as e:
        return _error(status.HTTP_404_NOT_FOUND, e.message)
    except Exception:
        logger.exception(f"Failed to build summary for session {session_id}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to get session summary")

    return SessionSummaryResponse(
        success=True,
        message="Session summary retrieved successfully",
        data=data,
        timestamp=utc_now(),
    )
