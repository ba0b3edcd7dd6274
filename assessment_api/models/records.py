"""Plain records exchanged between the report store and the services.

Rows leave the database as these frozen dataclasses so that the scoring and
report code never touches ORM objects outside of an open session.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Caller:
    """Identity of the user making a request, as resolved by the auth layer."""

    subject_id: int
    role: str
    auth_session_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


@dataclass(frozen=True)
class QuestionRecord:
    id: int
    question_type: str
    correct_answer: str | None = None
    options: list[dict[str, Any]] = field(default_factory=list)
    scoring_key: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TestDefinition:
    """A test together with its question definitions."""

    id: int
    name: str
    module_type: str
    category: str
    question_type: str | None = None
    time_limit: int = 0
    total_questions: int = 0
    questions: tuple[QuestionRecord, ...] = ()


@dataclass(frozen=True)
class AttemptRecord:
    id: str
    user_id: int
    test_id: int
    status: str
    start_time: datetime
    session_id: int | None = None
    end_time: datetime | None = None
    time_spent: int | None = None
    questions_answered: int = 0
    total_questions: int | None = None


@dataclass(frozen=True)
class AnswerRecord:
    attempt_id: str
    question_id: int
    answer: str | None = None
    answer_data: dict[str, Any] | None = None
    score: float | None = None
    is_correct: bool | None = None
    time_taken: int | None = None
    confidence_level: int | None = None


@dataclass(frozen=True)
class SubjectRecord:
    id: int
    name: str
    email: str
    role: str
    created_at: datetime
    nik: str | None = None
    gender: str | None = None
    province: str | None = None
    profile_picture_url: str | None = None


@dataclass(frozen=True)
class ParticipationRow:
    user_id: int
    session_id: int
    session_name: str
    status: str
    participation_date: datetime | None = None


@dataclass(frozen=True)
class AttemptStatsRow:
    user_id: int
    total_tests: int
    total_completed: int
    total_time: int  # seconds
    first_test: datetime | None = None
    last_test: datetime | None = None


@dataclass(frozen=True)
class SessionRecord:
    id: int
    session_name: str
    session_code: str
    start_time: datetime
    end_time: datetime
    created_at: datetime
    target_position: str | None = None
    location: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class ParticipationStatsRow:
    session_id: int
    total_registered: int
    total_completed: int


@dataclass(frozen=True)
class TimingStatsRow:
    session_id: int
    avg_time: float  # seconds per attempt
    total_attempts: int
    last_activity: datetime | None = None


@dataclass(frozen=True)
class ModuleRecord:
    session_id: int
    test_id: int
    sequence: int
    weight: float = 1.0
    is_required: bool = True
    time_limit: int = 0  # minutes
    test_name: str = ""


@dataclass(frozen=True)
class SortSpec:
    column: str
    descending: bool = False


@dataclass(frozen=True)
class SubjectFilter:
    """Conditions selecting which subjects appear in an individual report list."""

    subject_ids: tuple[int, ...] | None = None
    role: str | None = "participant"
    search: str | None = None
    session_id: int | None = None
    has_reports: bool | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


@dataclass(frozen=True)
class AttemptFilter:
    """Conditions selecting attempts to score.

    ``subjects`` limits attempts to the users a subject filter matches, so a
    whole report population can be scored without listing its ids.
    """

    user_ids: tuple[int, ...] | None = None
    subjects: SubjectFilter | None = None
    test_ids: tuple[int, ...] | None = None
    session_ids: tuple[int, ...] | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


@dataclass(frozen=True)
class SessionFilter:
    """Conditions selecting which test sessions appear in a session report list."""

    now: datetime
    session_ids: tuple[int, ...] | None = None
    search: str | None = None
    status: str | None = None
    has_results: bool | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
