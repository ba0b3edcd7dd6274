"""Fresh score calculation.

Scores are recomputed from raw answers on every request instead of being
read back from stored result rows, so a rescored test or a corrected key
shows up immediately in every report. All data for a batch is fetched in
one pass per table and grouped in memory.
"""
import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime

from assessment_api.models.records import AttemptFilter, SubjectFilter
from assessment_api.services.report_store import ReportStore
from assessment_api.services.scoring_service import (
    FreshScore,
    assign_percentiles,
    normalize_attempt,
)

logger = logging.getLogger(__name__)


async def calculate_fresh_scores(store: ReportStore, attempt_filter: AttemptFilter) -> list[FreshScore]:
    """Score every attempt matching the filter.

    A storage failure degrades to an empty list so that a report can still
    be rendered without its score columns.
    """
    try:
        attempts = await store.fetch_attempts(attempt_filter)
        if not attempts:
            return []
        attempt_ids = [a.id for a in attempts]
        test_ids = sorted({a.test_id for a in attempts})
        answers, tests = await asyncio.gather(
            store.fetch_answers(attempt_ids),
            store.fetch_test_definitions(test_ids),
        )
    except Exception as e:
        logger.error(f"Failed to load attempts for fresh scoring: {e}")
        return []

    scores: list[FreshScore] = []
    for attempt in attempts:
        test = tests.get(attempt.test_id)
        if test is None:
            logger.warning(f"Skipping attempt {attempt.id}: test {attempt.test_id} not found")
            continue
        scores.append(normalize_attempt(attempt, test, answers.get(attempt.id, [])))
    return assign_percentiles(scores)


async def calculate_fresh_scores_for_users(
    store: ReportStore,
    user_ids: Sequence[int],
    session_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> list[FreshScore]:
    """Fresh scores for a batch of users, optionally limited to one session or a date window."""
    if not user_ids:
        return []
    attempt_filter = AttemptFilter(
        user_ids=tuple(user_ids),
        session_ids=(session_id,) if session_id is not None else None,
        date_from=date_from,
        date_to=date_to,
    )
    return await calculate_fresh_scores(store, attempt_filter)


async def calculate_fresh_scores_for_subjects(
    store: ReportStore, subject_filter: SubjectFilter
) -> list[FreshScore]:
    """Fresh scores for every subject a report filter matches.

    The filter's session and date window also scope the attempts. Ranking
    against this whole population keeps a subject's percentile independent
    of the page it happens to be listed on.
    """
    attempt_filter = AttemptFilter(
        subjects=subject_filter,
        session_ids=(subject_filter.session_id,) if subject_filter.session_id is not None else None,
        date_from=subject_filter.date_from,
        date_to=subject_filter.date_to,
    )
    return await calculate_fresh_scores(store, attempt_filter)


async def calculate_fresh_scores_for_tests(
    store: ReportStore,
    test_ids: Sequence[int],
    session_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> list[FreshScore]:
    """Fresh scores for every attempt at the given tests, ranked per test."""
    if not test_ids:
        return []
    attempt_filter = AttemptFilter(
        test_ids=tuple(test_ids),
        session_ids=(session_id,) if session_id is not None else None,
        date_from=date_from,
        date_to=date_to,
    )
    return await calculate_fresh_scores(store, attempt_filter)


async def calculate_fresh_scores_for_session(store: ReportStore, session_id: int) -> list[FreshScore]:
    """Fresh scores for every attempt taken inside one test session."""
    return await calculate_fresh_scores(store, AttemptFilter(session_ids=(session_id,)))


async def calculate_fresh_scores_for_sessions(
    store: ReportStore, session_ids: Sequence[int]
) -> dict[int, list[FreshScore]]:
    """Score several sessions concurrently, keyed by session id.

    Each session is its own percentile population.
    """
    results = await asyncio.gather(
        *(calculate_fresh_scores_for_session(store, sid) for sid in session_ids)
    )
    return dict(zip(session_ids, results))
