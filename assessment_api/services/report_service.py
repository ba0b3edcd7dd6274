"""Assembly of the individual and session report lists.

Only the page of subjects (or sessions) itself is required; every statistic
merged onto the page comes from an independent query whose failure is
logged and replaced by defaults, so a degraded report keeps its shape.
"""
import asyncio
import logging
from collections.abc import Awaitable
from datetime import datetime, timezone
from typing import Any, TypeVar

from assessment_api.config import EXPECTED_MINUTES_PER_TEST
from assessment_api.models.db.user import UserRole
from assessment_api.models.records import (
    Caller,
    SessionFilter,
    SessionRecord,
    SortSpec,
    SubjectFilter,
    SubjectRecord,
)
from assessment_api.models.reports import (
    AttemptDateRange,
    IndividualReport,
    IndividualReportsData,
    IndividualReportsQuery,
    IndividualReportsSummary,
    Pagination,
    SessionDateRange,
    SessionReport,
    SessionReportsData,
    SessionReportsQuery,
    SessionReportsSummary,
    SortApplied,
)
from assessment_api.services.aggregation_service import (
    calculate_session_aggregate,
    calculate_user_average_from_fresh_scores,
    completion_rate,
    diversity_score,
    group_fresh_scores_by_user,
    mean,
    time_efficiency,
)
from assessment_api.services.fresh_score_service import (
    calculate_fresh_scores_for_sessions,
    calculate_fresh_scores_for_subjects,
)
from assessment_api.services.report_store import ReportStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

ACCESS_DENIED_MESSAGE = "Access denied. Admin privileges required."

# Requested sort key -> column the store can sort on. Aggregate keys are
# sorted by a stable proxy since their true value is only known after scoring.
INDIVIDUAL_SORTS = {
    "name": "name",
    "email": "email",
    "overall_score": "name",
    "completion_rate": "name",
    "last_test_date": "created_at",
}
INDIVIDUAL_DEFAULT_SORT = ("name", "asc")

SESSION_SORTS = {
    "session_name": "session_name",
    "start_time": "start_time",
    "total_participants": "start_time",
    "completion_rate": "start_time",
}
SESSION_DEFAULT_SORT = ("start_time", "desc")


class ReportAccessDenied(Exception):
    """Raised when a caller may not see the requested report."""

    def __init__(self, message: str = ACCESS_DENIED_MESSAGE) -> None:
        super().__init__(message)
        self.message = message


class ReportNotFound(Exception):
    """Raised when the subject or session of a detail report does not exist."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def resolve_sort(
    requested: str | None,
    order: str | None,
    sorts: dict[str, str],
    default: tuple[str, str],
) -> tuple[SortSpec, SortApplied]:
    default_key, default_order = default
    requested_key = requested or default_key
    column = sorts.get(requested_key)
    if column is None:
        column = sorts[default_key]
    sort_order = order or default_order
    applied = SortApplied(
        requested_sort_by=requested_key,
        sort_by=column,
        sort_order=sort_order,
        is_proxy=column != requested_key,
    )
    return SortSpec(column=column, descending=sort_order == "desc"), applied


async def or_default(label: str, awaitable: Awaitable[T], default: T) -> T:
    try:
        return await awaitable
    except Exception:
        logger.exception(f"Error getting {label}; continuing with defaults")
        return default


def session_status(start_time: datetime, end_time: datetime, now: datetime) -> str:
    if start_time > now:
        return "upcoming"
    if end_time < now:
        return "completed"
    return "active"


def _default_subject_stats() -> dict[str, Any]:
    return {
        "overall_score": None,
        "overall_grade": None,
        "overall_percentile": None,
        "average_score": None,
        "consistency_score": None,
        "sessions_participated": [],
        "sessions_count": 0,
        "total_tests_taken": 0,
        "total_tests_completed": 0,
        "completion_rate": 0.0,
        "total_time_spent_minutes": 0,
        "first_test_date": None,
        "last_test_date": None,
        "has_complete_reports": False,
        "time_efficiency": None,
        "data_quality_score": 0.0,
    }


def _subject_filter(query: IndividualReportsQuery, caller: Caller) -> SubjectFilter:
    if not caller.is_admin:
        # Participants only ever see themselves, whatever they asked for
        return SubjectFilter(subject_ids=(caller.subject_id,), role=None)
    return SubjectFilter(
        role=UserRole.PARTICIPANT.value,
        search=query.search,
        session_id=query.session_id,
        has_reports=query.has_reports,
        date_from=query.date_from,
        date_to=query.date_to,
    )


async def build_individual_reports(
    store: ReportStore, query: IndividualReportsQuery, caller: Caller
) -> IndividualReportsData:
    """Build one page of the individual report list for ``caller``."""
    subject_filter = _subject_filter(query, caller)
    sort, sort_applied = resolve_sort(
        query.sort_by, query.sort_order, INDIVIDUAL_SORTS, INDIVIDUAL_DEFAULT_SORT
    )

    total, subjects = await asyncio.gather(
        store.count_subjects(subject_filter),
        store.fetch_subjects(subject_filter, sort, query.offset, query.per_page),
    )
    pagination = Pagination.build(query.page, query.per_page, total)
    if not subjects:
        return IndividualReportsData(
            individuals=[],
            pagination=pagination,
            summary=IndividualReportsSummary(),
            sort_applied=sort_applied,
        )

    user_ids = [s.id for s in subjects]
    attempt_stats, participation, fresh_scores = await asyncio.gather(
        or_default("attempt statistics", store.fetch_attempt_stats(user_ids), []),
        or_default("session participation", store.fetch_session_participation(user_ids), []),
        calculate_fresh_scores_for_subjects(store, subject_filter),
    )

    stats: dict[int, dict[str, Any]] = {uid: _default_subject_stats() for uid in user_ids}

    for row in attempt_stats:
        entry = stats.get(row.user_id)
        if entry is None:
            continue
        rate = completion_rate(row.total_completed, row.total_tests)
        minutes = row.total_time / 60
        efficiency = (
            time_efficiency(minutes, row.total_tests * EXPECTED_MINUTES_PER_TEST)
            if row.total_time > 0
            else None
        )
        entry.update(
            total_tests_taken=row.total_tests,
            total_tests_completed=row.total_completed,
            completion_rate=rate,
            total_time_spent_minutes=round(minutes),
            first_test_date=row.first_test,
            last_test_date=row.last_test,
            has_complete_reports=row.total_completed > 0,
            time_efficiency=efficiency,
            data_quality_score=round(min(100.0, (efficiency or 0.0) + rate / 2), 2),
        )

    for row in participation:
        entry = stats.get(row.user_id)
        if entry is None:
            continue
        entry["sessions_participated"].append(
            {
                "session_id": row.session_id,
                "session_name": row.session_name,
                "status": row.status,
                "participation_date": row.participation_date,
            }
        )
        entry["sessions_count"] += 1

    for user_id, scores in group_fresh_scores_by_user(fresh_scores).items():
        entry = stats.get(user_id)
        if entry is None:
            continue
        average = calculate_user_average_from_fresh_scores(scores)
        if average.scorable_tests == 0:
            continue
        entry.update(
            overall_score=average.overall_score,
            overall_grade=average.overall_grade,
            overall_percentile=average.overall_percentile,
            average_score=average.overall_score,
            consistency_score=average.consistency_score,
        )

    individuals = [_individual_row(subject, stats[subject.id]) for subject in subjects]
    return IndividualReportsData(
        individuals=individuals,
        pagination=pagination,
        summary=_individual_summary(subjects, individuals),
        sort_applied=sort_applied,
    )


def _individual_row(subject: SubjectRecord, stats: dict[str, Any]) -> IndividualReport:
    return IndividualReport(
        user_id=subject.id,
        name=subject.name,
        email=subject.email,
        nik=subject.nik,
        gender=subject.gender,
        province=subject.province,
        profile_picture_url=subject.profile_picture_url,
        created_at=subject.created_at,
        **stats,
    )


def _individual_summary(
    subjects: list[SubjectRecord], individuals: list[IndividualReport]
) -> IndividualReportsSummary:
    first_dates = [i.first_test_date for i in individuals if i.first_test_date]
    last_dates = [i.last_test_date for i in individuals if i.last_test_date]
    session_ids = {p.session_id for i in individuals for p in i.sessions_participated}
    return IndividualReportsSummary(
        total_users_with_reports=sum(1 for i in individuals if i.has_complete_reports),
        average_completion_rate=round(mean(i.completion_rate for i in individuals) or 0.0, 2),
        total_sessions_represented=len(session_ids),
        date_range=AttemptDateRange(
            earliest_test=min(first_dates, default=None),
            latest_test=max(last_dates, default=None),
        ),
        gender_diversity_score=diversity_score(s.gender for s in subjects),
        province_diversity_score=diversity_score(s.province for s in subjects),
    )


def _default_session_stats() -> dict[str, Any]:
    return {
        "total_test_modules": 0,
        "total_duration_minutes": 0,
        "total_registered": 0,
        "total_completed": 0,
        "completion_rate": 0.0,
        "average_score": None,
        "weighted_average_score": None,
        "score_range": {"min": None, "max": None},
        "average_time_per_participant": 0.0,
        "total_test_attempts": 0,
        "last_activity": None,
    }


async def build_session_reports(
    store: ReportStore,
    query: SessionReportsQuery,
    caller: Caller,
    now: datetime | None = None,
) -> SessionReportsData:
    """Build one page of the session report list. Admin only.

    Raises:
        ReportAccessDenied: If the caller is not an administrator.
    """
    if not caller.is_admin:
        raise ReportAccessDenied()

    now = now or datetime.now(timezone.utc)
    session_filter = SessionFilter(
        now=now,
        search=query.search,
        status=query.status,
        has_results=query.has_results,
        date_from=query.date_from,
        date_to=query.date_to,
    )
    sort, sort_applied = resolve_sort(
        query.sort_by, query.sort_order, SESSION_SORTS, SESSION_DEFAULT_SORT
    )

    total, sessions = await asyncio.gather(
        store.count_sessions(session_filter),
        store.fetch_sessions(session_filter, sort, query.offset, query.per_page),
    )
    pagination = Pagination.build(query.page, query.per_page, total)
    if not sessions:
        return SessionReportsData(
            sessions=[],
            pagination=pagination,
            summary=SessionReportsSummary(total_sessions=total),
            sort_applied=sort_applied,
        )

    session_ids = [s.id for s in sessions]
    participation, timing, modules, fresh_by_session = await asyncio.gather(
        or_default("participation stats", store.fetch_participation_stats(session_ids), []),
        or_default("timing stats", store.fetch_timing_stats(session_ids), []),
        or_default("module stats", store.fetch_modules(session_ids), []),
        or_default(
            "session fresh scores", calculate_fresh_scores_for_sessions(store, session_ids), {}
        ),
    )

    stats: dict[int, dict[str, Any]] = {sid: _default_session_stats() for sid in session_ids}

    for row in participation:
        entry = stats.get(row.session_id)
        if entry is None:
            continue
        entry.update(
            total_registered=row.total_registered,
            total_completed=row.total_completed,
            completion_rate=completion_rate(row.total_completed, row.total_registered),
        )

    for row in timing:
        entry = stats.get(row.session_id)
        if entry is None:
            continue
        entry.update(
            average_time_per_participant=round(row.avg_time / 60, 2),
            total_test_attempts=row.total_attempts,
            last_activity=row.last_activity,
        )

    weights: dict[int, dict[int, float]] = {}
    for module in modules:
        entry = stats.get(module.session_id)
        if entry is None:
            continue
        entry["total_test_modules"] += 1
        entry["total_duration_minutes"] += module.time_limit
        weights.setdefault(module.session_id, {})[module.test_id] = module.weight

    for session_id, scores in fresh_by_session.items():
        entry = stats.get(session_id)
        if entry is None:
            continue
        aggregate = calculate_session_aggregate(scores, weights.get(session_id))
        entry.update(
            average_score=aggregate.average_score,
            weighted_average_score=aggregate.weighted_average_score,
            score_range={"min": aggregate.min_score, "max": aggregate.max_score},
        )

    rows = [_session_row(session, stats[session.id], now) for session in sessions]
    return SessionReportsData(
        sessions=rows,
        pagination=pagination,
        summary=_session_summary(total, sessions, rows),
        sort_applied=sort_applied,
    )


def _session_row(session: SessionRecord, stats: dict[str, Any], now: datetime) -> SessionReport:
    completed = stats["total_completed"]
    return SessionReport(
        session_id=session.id,
        session_name=session.session_name,
        session_code=session.session_code,
        target_position=session.target_position,
        location=session.location,
        start_time=session.start_time,
        end_time=session.end_time,
        status=session_status(session.start_time, session.end_time, now),
        created_at=session.created_at,
        has_individual_reports=completed > 0,
        has_session_summary=completed > 0,
        **{**stats, "last_activity": stats["last_activity"] or session.created_at},
    )


def _session_summary(
    total: int, sessions: list[SessionRecord], rows: list[SessionReport]
) -> SessionReportsSummary:
    return SessionReportsSummary(
        total_sessions=total,
        total_completed_sessions=sum(1 for r in rows if r.status == "completed"),
        total_participants_across_sessions=sum(r.total_completed for r in rows),
        average_completion_rate=round(mean(r.completion_rate for r in rows) or 0.0, 2),
        date_range=SessionDateRange(
            earliest_session=min(s.start_time for s in sessions),
            latest_session=max(s.end_time for s in sessions),
        ),
        position_diversity_score=diversity_score(s.target_position for s in sessions),
    )
