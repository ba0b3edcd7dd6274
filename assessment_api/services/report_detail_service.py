"""Detailed reports for a single subject or a single test session.

Both reuse the fresh score and aggregation services of the report lists.
The subject or session itself (and, for a subject, its attempts) must load;
everything else degrades to defaults like the list reports do.
"""
import asyncio
import logging
from collections import Counter, defaultdict
from datetime import datetime, timezone

from assessment_api.config import EXPECTED_MINUTES_PER_TEST
from assessment_api.models.db import AttemptStatus
from assessment_api.models.records import (
    AttemptFilter,
    AttemptRecord,
    Caller,
    ModuleRecord,
    SessionFilter,
    SortSpec,
    SubjectFilter,
)
from assessment_api.models.reports import (
    AssessmentOverview,
    AssessmentPeriod,
    AttemptPerformance,
    IndividualDetailReport,
    IndividualReportQuery,
    ModuleAnalysis,
    OverallAssessment,
    ParticipantInfo,
    PerformanceDistribution,
    ScoreRange,
    SessionInfo,
    SessionParticipation,
    SessionParticipationStats,
    SessionScores,
    SessionSummaryReport,
    TopPerformer,
    TraitResult,
)
from assessment_api.services.aggregation_service import (
    GRADE_BANDS,
    LOWEST_GRADE,
    calculate_session_aggregate,
    calculate_user_average_from_fresh_scores,
    completion_rate,
    grade_for_score,
    group_fresh_scores_by_user,
    mean,
    scorable,
    time_efficiency,
)
from assessment_api.services.fresh_score_service import (
    calculate_fresh_scores_for_session,
    calculate_fresh_scores_for_tests,
)
from assessment_api.services.report_service import (
    ReportAccessDenied,
    ReportNotFound,
    or_default,
    session_status,
)
from assessment_api.services.report_store import ReportStore
from assessment_api.services.scoring_service import FreshScore, TraitScore

logger = logging.getLogger(__name__)

OWN_REPORT_ONLY_MESSAGE = "Access denied. You can only access your own report."
TOP_PERFORMERS_LIMIT = 5

# (label, inclusive upper bound)
SCORE_RANGES = (("0-20", 20), ("21-40", 40), ("41-60", 60), ("61-80", 80), ("81-100", 100))
PERCENTILE_RANGES = (("0-25", 25), ("26-50", 50), ("51-75", 75), ("76-100", 100))

# (level, minimum completion rate, minimum average score), checked in order
DIFFICULTY_LEVELS = (
    ("very_easy", 90.0, 80.0),
    ("easy", 80.0, 70.0),
    ("moderate", 60.0, 60.0),
    ("difficult", 40.0, 50.0),
)


def _bucket(value: float, ranges: tuple[tuple[str, int], ...]) -> str:
    for label, upper in ranges:
        if value <= upper:
            return label
    return ranges[-1][0]


def difficulty_level(rate: float, average_score: float | None) -> str | None:
    """Rough module difficulty from its completion rate and average score."""
    if average_score is None:
        return None
    for level, min_rate, min_score in DIFFICULTY_LEVELS:
        if rate >= min_rate and average_score >= min_score:
            return level
    return "very_difficult"


def _trait_results(traits: list[TraitScore]) -> list[TraitResult]:
    return [
        TraitResult(
            trait=t.trait,
            score=t.score,
            max_score=t.max_score,
            percentage=t.percentage,
            items=t.items,
        )
        for t in traits
    ]


def merge_traits(scores: list[FreshScore]) -> list[TraitScore]:
    """Sum every attempt's trait breakdown into one profile."""
    merged: dict[str, TraitScore] = {}
    for score in scores:
        for trait in score.trait_breakdown:
            total = merged.setdefault(trait.trait, TraitScore(trait=trait.trait))
            total.score += trait.score
            total.max_score += trait.max_score
            total.items += trait.items
    return sorted(merged.values(), key=lambda t: t.trait)


def _performance(score: FreshScore) -> AttemptPerformance:
    minutes = (score.time_spent or 0) / 60
    optimal = score.test_time_limit or EXPECTED_MINUTES_PER_TEST
    rated = score.is_rating_scale_test
    return AttemptPerformance(
        attempt_id=score.attempt_id,
        test_id=score.test_id,
        test_name=score.test_name,
        module_type=score.test_module_type,
        category=score.test_category,
        session_id=score.session_id,
        is_rating_scale_test=rated,
        raw_score=None if rated else score.raw_score,
        scaled_score=None if rated else score.scaled_score,
        percentile=score.percentile,
        grade=None if rated else grade_for_score(score.scaled_score),
        correct_answers=score.correct_answers,
        answered_questions=score.answered_questions,
        total_questions=score.total_questions,
        accuracy_rate=score.accuracy_rate,
        completion_rate=score.completion_percentage,
        time_spent_minutes=round(minutes),
        time_efficiency=time_efficiency(minutes, optimal) if score.time_spent else None,
        completed_at=score.completed_at,
        trait_scores=_trait_results(score.trait_breakdown),
    )


def _overview(
    attempts: list[AttemptRecord], sessions: list[SessionParticipation]
) -> AssessmentOverview:
    completed = sum(1 for a in attempts if a.status == AttemptStatus.COMPLETED.value)
    total_seconds = sum(a.time_spent or 0 for a in attempts)
    return AssessmentOverview(
        total_tests_taken=len(attempts),
        total_tests_completed=completed,
        overall_completion_rate=completion_rate(completed, len(attempts)),
        total_time_spent_minutes=round(total_seconds / 60),
        assessment_period=AssessmentPeriod(
            start_date=min(a.start_time for a in attempts),
            end_date=max(a.end_time or a.start_time for a in attempts),
        ),
        sessions_participated=sessions,
    )


async def build_individual_report(
    store: ReportStore, user_id: int, query: IndividualReportQuery, caller: Caller
) -> IndividualDetailReport:
    """Full report for one subject. Admins see anyone, participants only themselves.

    Raises:
        ReportAccessDenied: If a participant asks for somebody else.
        ReportNotFound: If the subject does not exist or has no attempts in scope.
    """
    if not caller.is_admin and caller.subject_id != user_id:
        raise ReportAccessDenied(OWN_REPORT_ONLY_MESSAGE)

    subjects = await store.fetch_subjects(
        SubjectFilter(subject_ids=(user_id,), role=None), SortSpec(column="name"), 0, 1
    )
    if not subjects:
        raise ReportNotFound("User not found")
    subject = subjects[0]

    attempts = await store.fetch_attempts(
        AttemptFilter(
            user_ids=(user_id,),
            session_ids=(query.session_id,) if query.session_id is not None else None,
            date_from=query.date_from,
            date_to=query.date_to,
        )
    )
    if not attempts:
        raise ReportNotFound("No test data found for this user")

    # Percentiles rank against everyone who took the same tests in the same window
    participation, population = await asyncio.gather(
        or_default("session participation", store.fetch_session_participation([user_id]), []),
        calculate_fresh_scores_for_tests(
            store,
            sorted({a.test_id for a in attempts}),
            session_id=query.session_id,
            date_from=query.date_from,
            date_to=query.date_to,
        ),
    )
    scores = sorted(
        (s for s in population if s.user_id == user_id),
        key=lambda s: s.completed_at or datetime.min.replace(tzinfo=timezone.utc),
        reverse=True,
    )

    attempted_sessions = {a.session_id for a in attempts if a.session_id is not None}
    sessions = [
        SessionParticipation(
            session_id=row.session_id,
            session_name=row.session_name,
            status=row.status,
            participation_date=row.participation_date,
        )
        for row in participation
        if row.session_id in attempted_sessions
    ]

    average = calculate_user_average_from_fresh_scores(scores)
    has_score = average.scorable_tests > 0
    return IndividualDetailReport(
        participant=ParticipantInfo(
            id=subject.id,
            name=subject.name,
            email=subject.email,
            nik=subject.nik,
            gender=subject.gender,
            province=subject.province,
            profile_picture_url=subject.profile_picture_url,
            created_at=subject.created_at,
        ),
        assessment_overview=_overview(attempts, sessions),
        test_performances=[_performance(s) for s in scores],
        psychological_profile=_trait_results(merge_traits(scores)),
        overall_assessment=OverallAssessment(
            composite_score=average.overall_score if has_score else None,
            overall_percentile=average.overall_percentile,
            overall_grade=average.overall_grade,
            consistency_score=average.consistency_score,
            scorable_tests=average.scorable_tests,
        ),
    )


def _module_analysis(module: ModuleRecord, scores: list[FreshScore]) -> ModuleAnalysis:
    started = {s.user_id for s in scores}
    finished = {s.user_id for s in scores if s.is_completed}
    rate = completion_rate(len(finished), len(started))
    average = mean(s.scaled_score for s in scorable(scores))
    average = round(average, 2) if average is not None else None
    minutes = mean(s.time_spent / 60 for s in scores if s.time_spent)
    return ModuleAnalysis(
        test_id=module.test_id,
        test_name=module.test_name,
        sequence=module.sequence,
        weight=module.weight,
        is_required=module.is_required,
        time_limit=module.time_limit,
        participants_started=len(started),
        participants_completed=len(finished),
        completion_rate=rate,
        average_score=average,
        average_time_minutes=round(minutes or 0.0, 2),
        difficulty_level=difficulty_level(rate, average),
    )


def _distribution(scores: list[FreshScore]) -> PerformanceDistribution:
    counted = scorable(scores)
    score_ranges = Counter(_bucket(s.scaled_score, SCORE_RANGES) for s in counted)
    grades = Counter(grade_for_score(s.scaled_score) for s in counted)
    percentiles = Counter(
        _bucket(s.percentile, PERCENTILE_RANGES) for s in counted if s.percentile is not None
    )
    return PerformanceDistribution(
        score_ranges={label: score_ranges[label] for label, _ in SCORE_RANGES},
        grade_distribution={
            grade: grades[grade] for grade in [g for g, _ in GRADE_BANDS] + [LOWEST_GRADE]
        },
        percentile_ranges={label: percentiles[label] for label, _ in PERCENTILE_RANGES},
    )


async def _top_performers(store: ReportStore, scores: list[FreshScore]) -> list[TopPerformer]:
    averages = [
        (user_id, calculate_user_average_from_fresh_scores(user_scores))
        for user_id, user_scores in group_fresh_scores_by_user(scores).items()
    ]
    ranked = sorted(
        ((uid, avg) for uid, avg in averages if avg.scorable_tests > 0),
        key=lambda item: (-item[1].overall_score, item[0]),
    )[:TOP_PERFORMERS_LIMIT]
    if not ranked:
        return []

    user_ids = tuple(uid for uid, _ in ranked)
    subjects = await or_default(
        "top performer names",
        store.fetch_subjects(
            SubjectFilter(subject_ids=user_ids, role=None),
            SortSpec(column="name"),
            0,
            len(user_ids),
        ),
        [],
    )
    names = {s.id: s.name for s in subjects}
    return [
        TopPerformer(
            user_id=uid,
            name=names.get(uid),
            overall_score=avg.overall_score,
            overall_grade=avg.overall_grade,
            overall_percentile=avg.overall_percentile,
        )
        for uid, avg in ranked
    ]


async def build_session_summary(
    store: ReportStore, session_id: int, caller: Caller, now: datetime | None = None
) -> SessionSummaryReport:
    """Summary of one test session. Admin only.

    Raises:
        ReportAccessDenied: If the caller is not an administrator.
        ReportNotFound: If the session does not exist.
    """
    if not caller.is_admin:
        raise ReportAccessDenied()

    now = now or datetime.now(timezone.utc)
    sessions = await store.fetch_sessions(
        SessionFilter(now=now, session_ids=(session_id,)), SortSpec(column="start_time"), 0, 1
    )
    if not sessions:
        raise ReportNotFound("Session not found")
    session = sessions[0]

    participation, timing, modules, scores = await asyncio.gather(
        or_default("participation stats", store.fetch_participation_stats([session_id]), []),
        or_default("timing stats", store.fetch_timing_stats([session_id]), []),
        or_default("module stats", store.fetch_modules([session_id]), []),
        calculate_fresh_scores_for_session(store, session_id),
    )

    stats = SessionParticipationStats()
    for row in participation:
        stats.total_registered = row.total_registered
        stats.total_completed = row.total_completed
        stats.completion_rate = completion_rate(row.total_completed, row.total_registered)
    for row in timing:
        stats.total_test_attempts = row.total_attempts
        stats.average_time_spent_minutes = round(row.avg_time / 60, 2)

    by_test: dict[int, list[FreshScore]] = defaultdict(list)
    for score in scores:
        by_test[score.test_id].append(score)

    aggregate = calculate_session_aggregate(scores, {m.test_id: m.weight for m in modules})
    distribution = _distribution(scores)
    distribution.top_performers = await _top_performers(store, scores)
    logger.info(f"Built summary for session {session_id} from {len(scores)} scored attempts")

    return SessionSummaryReport(
        session_info=SessionInfo(
            id=session.id,
            session_name=session.session_name,
            session_code=session.session_code,
            target_position=session.target_position,
            location=session.location,
            description=session.description,
            start_time=session.start_time,
            end_time=session.end_time,
            status=session_status(session.start_time, session.end_time, now),
            created_at=session.created_at,
        ),
        participation_stats=stats,
        scores=SessionScores(
            average_score=aggregate.average_score,
            weighted_average_score=aggregate.weighted_average_score,
            score_range=ScoreRange(min=aggregate.min_score, max=aggregate.max_score),
        ),
        test_modules=[_module_analysis(m, by_test.get(m.test_id, [])) for m in modules],
        performance_distribution=distribution,
    )
