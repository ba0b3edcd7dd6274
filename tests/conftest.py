import os
import tempfile

# Keep the default database out of the working tree while tests import the app
os.environ.setdefault("DB_DIR", tempfile.mkdtemp(prefix="assessment-tests-"))

import uuid  # noqa: E402
from collections.abc import Generator, Sequence  # noqa: E402
from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from assessment_api.database import Base, create_session_factory, to_async_url  # noqa: E402
from assessment_api.models.db import (  # noqa: E402
    Answer,
    Attempt,
    AuthSession,
    Question,
    SessionModule,
    SessionParticipant,
    Test,
    TestSession,
    User,
)
from assessment_api.models.records import (  # noqa: E402
    AnswerRecord,
    AttemptFilter,
    AttemptRecord,
    AttemptStatsRow,
    ModuleRecord,
    ParticipationRow,
    ParticipationStatsRow,
    SessionFilter,
    SessionRecord,
    SortSpec,
    SubjectFilter,
    SubjectRecord,
    TestDefinition,
    TimingStatsRow,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Seeder:
    """Writes fixture rows through a plain sync session."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        return obj

    def user(
        self,
        name: str,
        role: str = "participant",
        email: str | None = None,
        hashed_password: str | None = None,
        **fields,
    ) -> User:
        email = email or f"{name.lower().replace(' ', '.')}.{uuid.uuid4().hex[:6]}@example.com"
        return self._save(
            User(name=name, role=role, email=email, hashed_password=hashed_password, **fields)
        )

    def test(
        self,
        name: str = "Numerical Reasoning",
        module_type: str = "cognitive",
        category: str = "numerical",
        questions: Sequence[dict] = (),
        time_limit: int = 30,
        question_type: str = "multiple_choice",
    ) -> Test:
        test = Test(
            name=name,
            module_type=module_type,
            category=category,
            question_type=question_type,
            time_limit=time_limit,
            total_questions=len(questions),
        )
        for sequence, spec in enumerate(questions, start=1):
            question = Question(
                question_type=spec.get("type", "multiple_choice"),
                sequence=sequence,
                correct_answer=spec.get("correct"),
            )
            question.options = spec.get("options")
            question.scoring_key = spec.get("scoring_key")
            test.questions.append(question)
        return self._save(test)

    def mc_test(self, count: int = 4, **kwargs) -> Test:
        return self.test(questions=[{"type": "multiple_choice", "correct": "a"}] * count, **kwargs)

    def session(
        self,
        name: str,
        start: datetime,
        end: datetime,
        code: str | None = None,
        **fields,
    ) -> TestSession:
        return self._save(
            TestSession(
                session_name=name,
                session_code=code or uuid.uuid4().hex[:8].upper(),
                start_time=start,
                end_time=end,
                **fields,
            )
        )

    def participant(
        self,
        session: TestSession,
        user: User,
        status: str = "registered",
        registered_at: datetime | None = None,
    ) -> SessionParticipant:
        return self._save(
            SessionParticipant(
                session_id=session.id,
                user_id=user.id,
                status=status,
                registered_at=registered_at or utcnow(),
            )
        )

    def module(
        self, session: TestSession, test: Test, sequence: int, weight: float = 1.0
    ) -> SessionModule:
        return self._save(
            SessionModule(session_id=session.id, test_id=test.id, sequence=sequence, weight=weight)
        )

    def attempt(
        self,
        user: User,
        test: Test,
        answers: dict[int, str] | None = None,
        session: TestSession | None = None,
        status: str = "completed",
        start: datetime | None = None,
        end: datetime | None = None,
        time_spent: int | None = 1200,
    ) -> Attempt:
        """Record an attempt; ``answers`` maps question position (0-based) to the answer given."""
        start = start or utcnow() - timedelta(hours=1)
        attempt = Attempt(
            id=uuid.uuid4().hex,
            user_id=user.id,
            test_id=test.id,
            session_test_id=session.id if session else None,
            start_time=start,
            end_time=end if end is not None else (start + timedelta(minutes=20)),
            time_spent=time_spent,
            status=status,
            questions_answered=len(answers or {}),
            total_questions=len(test.questions),
        )
        questions = sorted(test.questions, key=lambda q: q.sequence)
        for position, value in (answers or {}).items():
            attempt.answers.append(
                Answer(user_id=user.id, question_id=questions[position].id, answer=value)
            )
        return self._save(attempt)

    def auth_session(
        self,
        user: User,
        last_used: datetime,
        expires_at: datetime | None = None,
        is_active: bool = True,
    ) -> AuthSession:
        return self._save(
            AuthSession(
                user_id=user.id,
                token_jti=uuid.uuid4().hex,
                last_used=last_used,
                expires_at=expires_at or utcnow() + timedelta(hours=1),
                is_active=is_active,
            )
        )


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
def db_session(db_url: str) -> Generator[Session, None, None]:
    engine = create_engine(db_url)
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def seed(db_session: Session) -> Seeder:
    return Seeder(db_session)


@pytest.fixture
def session_factory(db_url: str, db_session: Session) -> async_sessionmaker[AsyncSession]:
    # NullPool: every aiosqlite connection is closed as soon as its session ends
    return create_session_factory(to_async_url(db_url), poolclass=NullPool)


class FakeReportStore:
    """In-memory ``ReportStore`` with switchable failures.

    Filtering is limited to what the services rely on (subject ids, role,
    user, subject, test and session ids); names listed in ``failing`` raise when called.
    """

    def __init__(
        self,
        subjects: Sequence[SubjectRecord] = (),
        attempts: Sequence[AttemptRecord] = (),
        answers: dict[str, list[AnswerRecord]] | None = None,
        tests: dict[int, TestDefinition] | None = None,
        attempt_stats: Sequence[AttemptStatsRow] = (),
        participation: Sequence[ParticipationRow] = (),
        sessions: Sequence[SessionRecord] = (),
        participation_stats: Sequence[ParticipationStatsRow] = (),
        timing_stats: Sequence[TimingStatsRow] = (),
        modules: Sequence[ModuleRecord] = (),
    ) -> None:
        self.subjects = list(subjects)
        self.attempts = list(attempts)
        self.answers = answers or {}
        self.tests = tests or {}
        self.attempt_stats = list(attempt_stats)
        self.participation = list(participation)
        self.sessions = list(sessions)
        self.participation_stats = list(participation_stats)
        self.timing_stats = list(timing_stats)
        self.modules = list(modules)
        self.failing: set[str] = set()
        self.calls: list[str] = []
        self.subject_filters: list[SubjectFilter] = []
        self.sorts: list[SortSpec] = []

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failing:
            raise RuntimeError(f"{name} unavailable")

    def _matching_subjects(self, subject_filter: SubjectFilter) -> list[SubjectRecord]:
        return [
            s
            for s in self.subjects
            if (subject_filter.subject_ids is None or s.id in subject_filter.subject_ids)
            and (subject_filter.role is None or s.role == subject_filter.role)
        ]

    async def count_subjects(self, subject_filter: SubjectFilter) -> int:
        self._call("count_subjects")
        self.subject_filters.append(subject_filter)
        return len(self._matching_subjects(subject_filter))

    async def fetch_subjects(
        self, subject_filter: SubjectFilter, sort: SortSpec, offset: int, limit: int
    ) -> list[SubjectRecord]:
        self._call("fetch_subjects")
        self.sorts.append(sort)
        return self._matching_subjects(subject_filter)[offset:offset + limit]

    async def fetch_attempts(self, attempt_filter: AttemptFilter) -> list[AttemptRecord]:
        self._call("fetch_attempts")
        subject_ids = set()
        if attempt_filter.subjects is not None:
            subject_ids = {s.id for s in self._matching_subjects(attempt_filter.subjects)}
        return [
            a
            for a in self.attempts
            if (attempt_filter.user_ids is None or a.user_id in attempt_filter.user_ids)
            and (attempt_filter.subjects is None or a.user_id in subject_ids)
            and (attempt_filter.test_ids is None or a.test_id in attempt_filter.test_ids)
            and (attempt_filter.session_ids is None or a.session_id in attempt_filter.session_ids)
        ]

    async def fetch_answers(self, attempt_ids: Sequence[str]) -> dict[str, list[AnswerRecord]]:
        self._call("fetch_answers")
        return {aid: self.answers[aid] for aid in attempt_ids if aid in self.answers}

    async def fetch_test_definitions(self, test_ids: Sequence[int]) -> dict[int, TestDefinition]:
        self._call("fetch_test_definitions")
        return {tid: self.tests[tid] for tid in test_ids if tid in self.tests}

    async def fetch_attempt_stats(self, user_ids: Sequence[int]) -> list[AttemptStatsRow]:
        self._call("fetch_attempt_stats")
        return [r for r in self.attempt_stats if r.user_id in user_ids]

    async def fetch_session_participation(self, user_ids: Sequence[int]) -> list[ParticipationRow]:
        self._call("fetch_session_participation")
        return [r for r in self.participation if r.user_id in user_ids]

    def _matching_sessions(self, session_filter: SessionFilter) -> list[SessionRecord]:
        if session_filter.session_ids is None:
            return self.sessions
        return [s for s in self.sessions if s.id in session_filter.session_ids]

    async def count_sessions(self, session_filter: SessionFilter) -> int:
        self._call("count_sessions")
        return len(self._matching_sessions(session_filter))

    async def fetch_sessions(
        self, session_filter: SessionFilter, sort: SortSpec, offset: int, limit: int
    ) -> list[SessionRecord]:
        self._call("fetch_sessions")
        self.sorts.append(sort)
        return self._matching_sessions(session_filter)[offset:offset + limit]

    async def fetch_participation_stats(
        self, session_ids: Sequence[int]
    ) -> list[ParticipationStatsRow]:
        self._call("fetch_participation_stats")
        return [r for r in self.participation_stats if r.session_id in session_ids]

    async def fetch_timing_stats(self, session_ids: Sequence[int]) -> list[TimingStatsRow]:
        self._call("fetch_timing_stats")
        return [r for r in self.timing_stats if r.session_id in session_ids]

    async def fetch_modules(self, session_ids: Sequence[int]) -> list[ModuleRecord]:
        self._call("fetch_modules")
        return [r for r in self.modules if r.session_id in session_ids]


@pytest.fixture
def fake_store_cls() -> type[FakeReportStore]:
    return FakeReportStore
