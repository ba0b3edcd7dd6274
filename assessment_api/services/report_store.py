"""Read-side storage for the report endpoints.

``ReportStore`` is the query surface the fresh score and report services
depend on. ``SqlReportStore`` implements it with SQLAlchemy; every method
opens its own session so callers can fan several queries out concurrently.
"""
from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from typing import Protocol

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from assessment_api.models.db import (
    Answer,
    Attempt,
    AttemptStatus,
    ParticipantStatus,
    SessionModule,
    SessionParticipant,
    Test,
    TestSession,
    User,
)
from assessment_api.models.records import (
    AnswerRecord,
    AttemptFilter,
    AttemptRecord,
    AttemptStatsRow,
    ModuleRecord,
    ParticipationRow,
    ParticipationStatsRow,
    QuestionRecord,
    SessionFilter,
    SessionRecord,
    SortSpec,
    SubjectFilter,
    SubjectRecord,
    TestDefinition,
    TimingStatsRow,
)
from assessment_api.utils.time_utils import ensure_utc

SUBJECT_SORT_COLUMNS = {
    "name": User.name,
    "email": User.email,
    "created_at": User.created_at,
}

SESSION_SORT_COLUMNS = {
    "session_name": TestSession.session_name,
    "start_time": TestSession.start_time,
    "created_at": TestSession.created_at,
}


class ReportStore(Protocol):
    """Queries needed to assemble individual and session reports."""

    async def count_subjects(self, subject_filter: SubjectFilter) -> int: ...

    async def fetch_subjects(
        self, subject_filter: SubjectFilter, sort: SortSpec, offset: int, limit: int
    ) -> list[SubjectRecord]: ...

    async def fetch_attempts(self, attempt_filter: AttemptFilter) -> list[AttemptRecord]: ...

    async def fetch_answers(self, attempt_ids: Sequence[str]) -> dict[str, list[AnswerRecord]]: ...

    async def fetch_test_definitions(self, test_ids: Sequence[int]) -> dict[int, TestDefinition]: ...

    async def fetch_attempt_stats(self, user_ids: Sequence[int]) -> list[AttemptStatsRow]: ...

    async def fetch_session_participation(
        self, user_ids: Sequence[int]
    ) -> list[ParticipationRow]: ...

    async def count_sessions(self, session_filter: SessionFilter) -> int: ...

    async def fetch_sessions(
        self, session_filter: SessionFilter, sort: SortSpec, offset: int, limit: int
    ) -> list[SessionRecord]: ...

    async def fetch_participation_stats(
        self, session_ids: Sequence[int]
    ) -> list[ParticipationStatsRow]: ...

    async def fetch_timing_stats(self, session_ids: Sequence[int]) -> list[TimingStatsRow]: ...

    async def fetch_modules(self, session_ids: Sequence[int]) -> list[ModuleRecord]: ...


def _completed_on():
    return func.coalesce(Attempt.end_time, Attempt.start_time)


def _subject_conditions(subject_filter: SubjectFilter) -> list:
    conditions = []
    if subject_filter.subject_ids is not None:
        conditions.append(User.id.in_(subject_filter.subject_ids))
    if subject_filter.role:
        conditions.append(User.role == subject_filter.role)
    if subject_filter.search and subject_filter.search.strip():
        term = f"%{subject_filter.search.strip().lower()}%"
        conditions.append(
            or_(
                func.lower(User.name).like(term),
                func.lower(User.email).like(term),
                func.lower(func.coalesce(User.nik, "")).like(term),
            )
        )
    if subject_filter.session_id is not None:
        conditions.append(
            User.id.in_(
                select(SessionParticipant.user_id).where(
                    SessionParticipant.session_id == subject_filter.session_id
                )
            )
        )

    completed = select(Attempt.user_id).where(Attempt.status == AttemptStatus.COMPLETED.value)
    if subject_filter.has_reports is True:
        conditions.append(User.id.in_(completed))
    elif subject_filter.has_reports is False:
        conditions.append(User.id.not_in(completed))

    if subject_filter.date_from is not None or subject_filter.date_to is not None:
        in_window = select(Attempt.user_id)
        if subject_filter.date_from is not None:
            in_window = in_window.where(_completed_on() >= subject_filter.date_from)
        if subject_filter.date_to is not None:
            in_window = in_window.where(_completed_on() <= subject_filter.date_to)
        conditions.append(User.id.in_(in_window))
    return conditions


def _session_conditions(session_filter: SessionFilter) -> list:
    conditions = []
    now = session_filter.now
    if session_filter.session_ids is not None:
        conditions.append(TestSession.id.in_(session_filter.session_ids))
    if session_filter.search and session_filter.search.strip():
        term = f"%{session_filter.search.strip().lower()}%"
        conditions.append(
            or_(
                func.lower(TestSession.session_name).like(term),
                func.lower(TestSession.session_code).like(term),
                func.lower(func.coalesce(TestSession.target_position, "")).like(term),
            )
        )
    if session_filter.status == "upcoming":
        conditions.append(TestSession.start_time > now)
    elif session_filter.status == "active":
        conditions.append(TestSession.start_time <= now)
        conditions.append(TestSession.end_time >= now)
    elif session_filter.status == "completed":
        conditions.append(TestSession.end_time < now)

    with_results = select(Attempt.session_test_id).where(
        Attempt.session_test_id.is_not(None),
        Attempt.status == AttemptStatus.COMPLETED.value,
    )
    if session_filter.has_results is True:
        conditions.append(TestSession.id.in_(with_results))
    elif session_filter.has_results is False:
        conditions.append(TestSession.id.not_in(with_results))

    if session_filter.date_from is not None:
        conditions.append(TestSession.start_time >= session_filter.date_from)
    if session_filter.date_to is not None:
        conditions.append(TestSession.end_time <= session_filter.date_to)
    return conditions


def _order_by(columns: dict, sort: SortSpec, tie_breaker):
    column = columns[sort.column]
    if sort.descending:
        return column.desc(), tie_breaker.desc()
    return column.asc(), tie_breaker.asc()


class SqlReportStore:
    """SQLAlchemy-backed ``ReportStore``."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def count_subjects(self, subject_filter: SubjectFilter) -> int:
        stmt = select(func.count(User.id)).where(*_subject_conditions(subject_filter))
        async with self._session_factory() as db:
            return (await db.execute(stmt)).scalar_one()

    async def fetch_subjects(
        self, subject_filter: SubjectFilter, sort: SortSpec, offset: int, limit: int
    ) -> list[SubjectRecord]:
        stmt = (
            select(User)
            .where(*_subject_conditions(subject_filter))
            # id breaks ties so consecutive pages never overlap
            .order_by(*_order_by(SUBJECT_SORT_COLUMNS, sort, User.id))
            .offset(offset)
            .limit(limit)
        )
        async with self._session_factory() as db:
            users = (await db.execute(stmt)).scalars().all()
            return [
                SubjectRecord(
                    id=u.id,
                    name=u.name,
                    email=u.email,
                    role=u.role,
                    created_at=ensure_utc(u.created_at),
                    nik=u.nik,
                    gender=u.gender,
                    province=u.province,
                    profile_picture_url=u.profile_picture_url,
                )
                for u in users
            ]

    async def fetch_attempts(self, attempt_filter: AttemptFilter) -> list[AttemptRecord]:
        stmt = select(Attempt)
        if attempt_filter.user_ids is not None:
            stmt = stmt.where(Attempt.user_id.in_(attempt_filter.user_ids))
        if attempt_filter.subjects is not None:
            subjects = select(User.id).where(*_subject_conditions(attempt_filter.subjects))
            stmt = stmt.where(Attempt.user_id.in_(subjects))
        if attempt_filter.test_ids is not None:
            stmt = stmt.where(Attempt.test_id.in_(attempt_filter.test_ids))
        if attempt_filter.session_ids is not None:
            stmt = stmt.where(Attempt.session_test_id.in_(attempt_filter.session_ids))
        if attempt_filter.date_from is not None:
            stmt = stmt.where(_completed_on() >= attempt_filter.date_from)
        if attempt_filter.date_to is not None:
            stmt = stmt.where(_completed_on() <= attempt_filter.date_to)
        stmt = stmt.order_by(Attempt.start_time, Attempt.id)

        async with self._session_factory() as db:
            attempts = (await db.execute(stmt)).scalars().all()
            return [
                AttemptRecord(
                    id=a.id,
                    user_id=a.user_id,
                    test_id=a.test_id,
                    status=a.status,
                    start_time=ensure_utc(a.start_time),
                    session_id=a.session_test_id,
                    end_time=ensure_utc(a.end_time),
                    time_spent=a.time_spent,
                    questions_answered=a.questions_answered,
                    total_questions=a.total_questions,
                )
                for a in attempts
            ]

    async def fetch_answers(self, attempt_ids: Sequence[str]) -> dict[str, list[AnswerRecord]]:
        if not attempt_ids:
            return {}
        stmt = select(Answer).where(Answer.attempt_id.in_(attempt_ids))
        grouped: dict[str, list[AnswerRecord]] = defaultdict(list)
        async with self._session_factory() as db:
            for answer in (await db.execute(stmt)).scalars():
                grouped[answer.attempt_id].append(
                    AnswerRecord(
                        attempt_id=answer.attempt_id,
                        question_id=answer.question_id,
                        answer=answer.answer,
                        answer_data=answer.answer_data,
                        score=answer.score,
                        is_correct=answer.is_correct,
                        time_taken=answer.time_taken,
                        confidence_level=answer.confidence_level,
                    )
                )
        return dict(grouped)

    async def fetch_test_definitions(self, test_ids: Sequence[int]) -> dict[int, TestDefinition]:
        if not test_ids:
            return {}
        stmt = select(Test).where(Test.id.in_(test_ids)).options(selectinload(Test.questions))
        async with self._session_factory() as db:
            tests = (await db.execute(stmt)).scalars().all()
            return {
                t.id: TestDefinition(
                    id=t.id,
                    name=t.name,
                    module_type=t.module_type,
                    category=t.category,
                    question_type=t.question_type,
                    time_limit=t.time_limit,
                    total_questions=t.total_questions,
                    questions=tuple(
                        QuestionRecord(
                            id=q.id,
                            question_type=q.question_type,
                            correct_answer=q.correct_answer,
                            options=q.options,
                            scoring_key=q.scoring_key,
                        )
                        for q in sorted(t.questions, key=lambda q: q.sequence)
                    ),
                )
                for t in tests
            }

    async def fetch_attempt_stats(self, user_ids: Sequence[int]) -> list[AttemptStatsRow]:
        if not user_ids:
            return []
        completed = case((Attempt.status == AttemptStatus.COMPLETED.value, 1), else_=0)
        stmt = (
            select(
                Attempt.user_id,
                func.count(Attempt.id).label("total_tests"),
                func.coalesce(func.sum(completed), 0).label("total_completed"),
                func.coalesce(func.sum(Attempt.time_spent), 0).label("total_time"),
                func.min(Attempt.start_time).label("first_test"),
                func.max(Attempt.end_time).label("last_test"),
            )
            .where(Attempt.user_id.in_(user_ids))
            .group_by(Attempt.user_id)
        )
        async with self._session_factory() as db:
            rows = (await db.execute(stmt)).all()
        return [
            AttemptStatsRow(
                user_id=row.user_id,
                total_tests=int(row.total_tests),
                total_completed=int(row.total_completed),
                total_time=int(row.total_time),
                first_test=ensure_utc(row.first_test),
                last_test=ensure_utc(row.last_test),
            )
            for row in rows
        ]

    async def fetch_session_participation(self, user_ids: Sequence[int]) -> list[ParticipationRow]:
        if not user_ids:
            return []
        stmt = (
            select(
                SessionParticipant.user_id,
                SessionParticipant.session_id,
                SessionParticipant.status,
                SessionParticipant.registered_at,
                TestSession.session_name,
            )
            .join(TestSession, TestSession.id == SessionParticipant.session_id)
            .where(SessionParticipant.user_id.in_(user_ids))
            .order_by(SessionParticipant.registered_at.desc(), SessionParticipant.id.desc())
        )
        async with self._session_factory() as db:
            rows = (await db.execute(stmt)).all()
        return [
            ParticipationRow(
                user_id=row.user_id,
                session_id=row.session_id,
                session_name=row.session_name,
                status=row.status,
                participation_date=ensure_utc(row.registered_at),
            )
            for row in rows
        ]

    async def count_sessions(self, session_filter: SessionFilter) -> int:
        stmt = select(func.count(TestSession.id)).where(*_session_conditions(session_filter))
        async with self._session_factory() as db:
            return (await db.execute(stmt)).scalar_one()

    async def fetch_sessions(
        self, session_filter: SessionFilter, sort: SortSpec, offset: int, limit: int
    ) -> list[SessionRecord]:
        stmt = (
            select(TestSession)
            .where(*_session_conditions(session_filter))
            .order_by(*_order_by(SESSION_SORT_COLUMNS, sort, TestSession.id))
            .offset(offset)
            .limit(limit)
        )
        async with self._session_factory() as db:
            sessions = (await db.execute(stmt)).scalars().all()
            return [
                SessionRecord(
                    id=s.id,
                    session_name=s.session_name,
                    session_code=s.session_code,
                    start_time=ensure_utc(s.start_time),
                    end_time=ensure_utc(s.end_time),
                    created_at=ensure_utc(s.created_at),
                    target_position=s.target_position,
                    location=s.location,
                    description=s.description,
                )
                for s in sessions
            ]

    async def fetch_participation_stats(
        self, session_ids: Sequence[int]
    ) -> list[ParticipationStatsRow]:
        if not session_ids:
            return []
        completed = case(
            (SessionParticipant.status == ParticipantStatus.COMPLETED.value, 1), else_=0
        )
        stmt = (
            select(
                SessionParticipant.session_id,
                func.count(SessionParticipant.id).label("total_registered"),
                func.coalesce(func.sum(completed), 0).label("total_completed"),
            )
            .where(SessionParticipant.session_id.in_(session_ids))
            .group_by(SessionParticipant.session_id)
        )
        async with self._session_factory() as db:
            rows = (await db.execute(stmt)).all()
        return [
            ParticipationStatsRow(
                session_id=row.session_id,
                total_registered=int(row.total_registered),
                total_completed=int(row.total_completed),
            )
            for row in rows
        ]

    async def fetch_timing_stats(self, session_ids: Sequence[int]) -> list[TimingStatsRow]:
        if not session_ids:
            return []
        stmt = (
            select(
                Attempt.session_test_id,
                func.coalesce(func.avg(Attempt.time_spent), 0).label("avg_time"),
                func.count(Attempt.id).label("total_attempts"),
                func.max(Attempt.end_time).label("last_activity"),
            )
            .where(Attempt.session_test_id.in_(session_ids))
            .group_by(Attempt.session_test_id)
        )
        async with self._session_factory() as db:
            rows = (await db.execute(stmt)).all()
        return [
            TimingStatsRow(
                session_id=row.session_test_id,
                avg_time=float(row.avg_time),
                total_attempts=int(row.total_attempts),
                last_activity=ensure_utc(row.last_activity),
            )
            for row in rows
        ]

    async def fetch_modules(self, session_ids: Sequence[int]) -> list[ModuleRecord]:
        if not session_ids:
            return []
        stmt = (
            select(
                SessionModule.session_id,
                SessionModule.test_id,
                SessionModule.sequence,
                SessionModule.weight,
                SessionModule.is_required,
                Test.time_limit,
                Test.name.label("test_name"),
            )
            .join(Test, Test.id == SessionModule.test_id)
            .where(SessionModule.session_id.in_(session_ids))
            .order_by(SessionModule.session_id, SessionModule.sequence)
        )
        async with self._session_factory() as db:
            rows = (await db.execute(stmt)).all()
        return [
            ModuleRecord(
                session_id=row.session_id,
                test_id=row.test_id,
                sequence=row.sequence,
                weight=float(row.weight),
                is_required=row.is_required,
                time_limit=row.time_limit or 0,
                test_name=row.test_name,
            )
            for row in rows
        ]
