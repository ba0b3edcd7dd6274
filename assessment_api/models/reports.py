"""Report-related Pydantic models."""
import math
from datetime import date, datetime, time, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from assessment_api.config import REPORTS_DEFAULT_PER_PAGE, REPORTS_MAX_PER_PAGE
from assessment_api.utils.time_utils import ensure_utc


class _DateWindow(BaseModel):
    """Attempt date window shared by the report queries.

    A bare date as ``date_to`` covers that whole day.
    """

    date_from: datetime | None = None
    date_to: datetime | None = None

    @field_validator("date_to", mode="before")
    @classmethod
    def end_of_day(cls, value: object) -> object:
        if isinstance(value, str):
            try:
                value = date.fromisoformat(value.strip())
            except ValueError:
                return value
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime.combine(value, time.max, tzinfo=timezone.utc)
        return value

    @field_validator("date_from", "date_to")
    @classmethod
    def as_utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)


class _ReportQuery(_DateWindow):
    """Paging, search and sorting shared by the report list queries."""

    page: int = Field(1, ge=1)
    per_page: int = REPORTS_DEFAULT_PER_PAGE
    search: str | None = None
    sort_by: str | None = None
    sort_order: Literal["asc", "desc"] | None = None

    @field_validator("per_page")
    @classmethod
    def clamp_per_page(cls, value: int) -> int:
        return max(1, min(value, REPORTS_MAX_PER_PAGE))

    @field_validator("sort_order", mode="before")
    @classmethod
    def normalize_sort_order(cls, value: object) -> str | None:
        if value is None or value == "":
            return None
        return "desc" if str(value).lower() == "desc" else "asc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


class IndividualReportsQuery(_ReportQuery):
    """Filters for the individual report list."""

    session_id: int | None = None
    has_reports: bool | None = None


class SessionReportsQuery(_ReportQuery):
    """Filters for the session report list."""

    status: Literal["upcoming", "active", "completed"] | None = None
    has_results: bool | None = None


class IndividualReportQuery(_DateWindow):
    """Scope of a single subject's detailed report."""

    session_id: int | None = None


class Pagination(BaseModel):
    current_page: int
    per_page: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, page: int, per_page: int, total: int) -> "Pagination":
        total_pages = math.ceil(total / per_page) if per_page > 0 else 0
        return cls(
            current_page=page,
            per_page=per_page,
            total=total,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_prev_page=page > 1,
        )


class SortApplied(BaseModel):
    """Sort actually used, which may be a proxy for the requested key."""

    requested_sort_by: str
    sort_by: str
    sort_order: Literal["asc", "desc"]
    is_proxy: bool


class SessionParticipation(BaseModel):
    session_id: int
    session_name: str
    status: str
    participation_date: datetime | None = None


class IndividualReport(BaseModel):
    """One subject row of the individual report list."""

    user_id: int
    name: str
    email: str
    nik: str | None = None
    gender: str | None = None
    province: str | None = None
    profile_picture_url: str | None = None
    created_at: datetime

    overall_score: float | None = None
    overall_grade: str | None = None
    overall_percentile: float | None = None
    average_score: float | None = None
    consistency_score: float | None = None

    sessions_participated: list[SessionParticipation] = Field(default_factory=list)
    sessions_count: int = 0
    total_tests_taken: int = 0
    total_tests_completed: int = 0
    completion_rate: float = 0.0
    total_time_spent_minutes: int = 0
    first_test_date: datetime | None = None
    last_test_date: datetime | None = None
    has_complete_reports: bool = False
    time_efficiency: float | None = None
    data_quality_score: float = 0.0


class AttemptDateRange(BaseModel):
    earliest_test: datetime | None = None
    latest_test: datetime | None = None


class IndividualReportsSummary(BaseModel):
    total_users_with_reports: int = 0
    average_completion_rate: float = 0.0
    total_sessions_represented: int = 0
    date_range: AttemptDateRange = Field(default_factory=AttemptDateRange)
    gender_diversity_score: float = 0.0
    province_diversity_score: float = 0.0


class IndividualReportsData(BaseModel):
    individuals: list[IndividualReport]
    pagination: Pagination
    summary: IndividualReportsSummary
    sort_applied: SortApplied


class ScoreRange(BaseModel):
    min: float | None = None
    max: float | None = None


class SessionReport(BaseModel):
    """One session row of the session report list."""

    session_id: int
    session_name: str
    session_code: str
    target_position: str | None = None
    location: str | None = None
    start_time: datetime
    end_time: datetime
    status: Literal["upcoming", "active", "completed"]
    created_at: datetime

    total_test_modules: int = 0
    total_duration_minutes: int = 0
    total_registered: int = 0
    total_completed: int = 0
    completion_rate: float = 0.0
    average_score: float | None = None
    weighted_average_score: float | None = None
    score_range: ScoreRange = Field(default_factory=ScoreRange)
    average_time_per_participant: float = 0.0  # minutes
    total_test_attempts: int = 0
    last_activity: datetime | None = None
    has_individual_reports: bool = False
    has_session_summary: bool = False


class SessionDateRange(BaseModel):
    earliest_session: datetime | None = None
    latest_session: datetime | None = None


class SessionReportsSummary(BaseModel):
    total_sessions: int = 0
    total_completed_sessions: int = 0
    total_participants_across_sessions: int = 0
    average_completion_rate: float = 0.0
    date_range: SessionDateRange = Field(default_factory=SessionDateRange)
    position_diversity_score: float = 0.0


class SessionReportsData(BaseModel):
    sessions: list[SessionReport]
    pagination: Pagination
    summary: SessionReportsSummary
    sort_applied: SortApplied


class ParticipantInfo(BaseModel):
    id: int
    name: str
    email: str
    nik: str | None = None
    gender: str | None = None
    province: str | None = None
    profile_picture_url: str | None = None
    created_at: datetime


class AssessmentPeriod(BaseModel):
    start_date: datetime | None = None
    end_date: datetime | None = None


class AssessmentOverview(BaseModel):
    total_tests_taken: int = 0
    total_tests_completed: int = 0
    overall_completion_rate: float = 0.0
    total_time_spent_minutes: int = 0
    assessment_period: AssessmentPeriod = Field(default_factory=AssessmentPeriod)
    sessions_participated: list[SessionParticipation] = Field(default_factory=list)


class TraitResult(BaseModel):
    trait: str
    score: float
    max_score: float
    percentage: float
    items: int


class AttemptPerformance(BaseModel):
    """One scored attempt. Rating-scale tests carry traits instead of a score."""

    attempt_id: str
    test_id: int
    test_name: str | None = None
    module_type: str | None = None
    category: str | None = None
    session_id: int | None = None
    is_rating_scale_test: bool = False
    raw_score: float | None = None
    scaled_score: float | None = None
    percentile: int | None = None
    grade: str | None = None
    correct_answers: int = 0
    answered_questions: int = 0
    total_questions: int = 0
    accuracy_rate: float = 0.0
    completion_rate: float = 0.0
    time_spent_minutes: int = 0
    time_efficiency: float | None = None
    completed_at: datetime | None = None
    trait_scores: list[TraitResult] = Field(default_factory=list)


class OverallAssessment(BaseModel):
    composite_score: float | None = None
    overall_percentile: float | None = None
    overall_grade: str | None = None
    consistency_score: float | None = None
    scorable_tests: int = 0


class IndividualDetailReport(BaseModel):
    """Full report for one subject."""

    participant: ParticipantInfo
    assessment_overview: AssessmentOverview
    test_performances: list[AttemptPerformance]
    psychological_profile: list[TraitResult]
    overall_assessment: OverallAssessment


class SessionInfo(BaseModel):
    id: int
    session_name: str
    session_code: str
    target_position: str | None = None
    location: str | None = None
    description: str | None = None
    start_time: datetime
    end_time: datetime
    status: Literal["upcoming", "active", "completed"]
    created_at: datetime


class SessionParticipationStats(BaseModel):
    total_registered: int = 0
    total_completed: int = 0
    completion_rate: float = 0.0
    total_test_attempts: int = 0
    average_time_spent_minutes: float = 0.0


class SessionScores(BaseModel):
    average_score: float | None = None
    weighted_average_score: float | None = None
    score_range: ScoreRange = Field(default_factory=ScoreRange)


class ModuleAnalysis(BaseModel):
    """Per-module figures within one session."""

    test_id: int
    test_name: str
    sequence: int
    weight: float
    is_required: bool
    time_limit: int
    participants_started: int = 0
    participants_completed: int = 0
    completion_rate: float = 0.0
    average_score: float | None = None
    average_time_minutes: float = 0.0
    difficulty_level: str | None = None


class TopPerformer(BaseModel):
    user_id: int
    name: str | None = None
    overall_score: float
    overall_grade: str | None = None
    overall_percentile: float | None = None


class PerformanceDistribution(BaseModel):
    score_ranges: dict[str, int]
    grade_distribution: dict[str, int]
    percentile_ranges: dict[str, int]
    top_performers: list[TopPerformer] = Field(default_factory=list)


class SessionSummaryReport(BaseModel):
    """Summary of one test session."""

    session_info: SessionInfo
    participation_stats: SessionParticipationStats
    scores: SessionScores
    test_modules: list[ModuleAnalysis]
    performance_distribution: PerformanceDistribution


class ReportEnvelope(BaseModel):
    success: bool = True
    message: str
    timestamp: str


class IndividualReportsResponse(ReportEnvelope):
    data: IndividualReportsData


class SessionReportsResponse(ReportEnvelope):
    data: SessionReportsData


class ErrorEnvelope(BaseModel):
    """Body of every failed report request."""

    success: bool = False
    message: str
    timestamp: str


class IndividualDetailResponse(ReportEnvelope):
    data: IndividualDetailReport


class SessionSummaryResponse(ReportEnvelope):
    data: SessionSummaryReport
