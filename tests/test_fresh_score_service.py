from datetime import datetime, timezone

import pytest

from assessment_api.models.records import (
    AnswerRecord,
    AttemptRecord,
    QuestionRecord,
    SubjectFilter,
    SubjectRecord,
)
from assessment_api.models.records import TestDefinition as Definition
from assessment_api.services.fresh_score_service import (
    calculate_fresh_scores_for_session,
    calculate_fresh_scores_for_sessions,
    calculate_fresh_scores_for_subjects,
    calculate_fresh_scores_for_tests,
    calculate_fresh_scores_for_users,
)

START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def _definition(test_id: int) -> Definition:
    return Definition(
        id=test_id,
        name=f"Test {test_id}",
        module_type="cognitive",
        category="numerical",
        total_questions=2,
        questions=(
            QuestionRecord(id=test_id * 10 + 1, question_type="multiple_choice", correct_answer="a"),
            QuestionRecord(id=test_id * 10 + 2, question_type="multiple_choice", correct_answer="a"),
        ),
    )


def _attempt(attempt_id: str, user_id: int, test_id: int, session_id: int | None = None) -> AttemptRecord:
    return AttemptRecord(
        id=attempt_id,
        user_id=user_id,
        test_id=test_id,
        status="completed",
        start_time=START,
        session_id=session_id,
    )


def _answers(attempt_id: str, test_id: int, *values: str) -> list[AnswerRecord]:
    return [
        AnswerRecord(attempt_id=attempt_id, question_id=test_id * 10 + i, answer=value)
        for i, value in enumerate(values, start=1)
    ]


@pytest.fixture
def store(fake_store_cls):
    return fake_store_cls(
        attempts=[
            _attempt("u1-t1", 1, 1, session_id=5),
            _attempt("u2-t1", 2, 1, session_id=5),
            _attempt("u1-t2", 1, 2, session_id=6),
        ],
        answers={
            "u1-t1": _answers("u1-t1", 1, "a", "a"),
            "u2-t1": _answers("u2-t1", 1, "a", "b"),
            "u1-t2": _answers("u1-t2", 2, "b"),
        },
        tests={1: _definition(1), 2: _definition(2)},
    )


@pytest.mark.asyncio
async def test_scores_a_user_batch_with_one_query_per_table(store) -> None:
    scores = await calculate_fresh_scores_for_users(store, [1, 2])

    assert sorted(store.calls) == ["fetch_answers", "fetch_attempts", "fetch_test_definitions"]
    by_attempt = {s.attempt_id: s for s in scores}
    assert by_attempt["u1-t1"].scaled_score == 100.0
    assert by_attempt["u2-t1"].scaled_score == 50.0
    assert by_attempt["u1-t2"].scaled_score == 0.0
    assert by_attempt["u1-t1"].percentile == 50
    assert by_attempt["u2-t1"].percentile == 0
    # Only one attempt at test 2, too few to rank
    assert by_attempt["u1-t2"].percentile is None


@pytest.mark.asyncio
async def test_session_scope_limits_attempts(store) -> None:
    scores = await calculate_fresh_scores_for_users(store, [1, 2], session_id=6)

    assert [s.attempt_id for s in scores] == ["u1-t2"]


@pytest.mark.asyncio
async def test_empty_user_batch_skips_storage(store) -> None:
    assert await calculate_fresh_scores_for_users(store, []) == []
    assert store.calls == []


@pytest.mark.parametrize("failing", ["fetch_attempts", "fetch_answers", "fetch_test_definitions"])
@pytest.mark.asyncio
async def test_storage_failure_degrades_to_empty_result(store, failing: str) -> None:
    store.failing.add(failing)

    assert await calculate_fresh_scores_for_users(store, [1, 2]) == []


@pytest.mark.asyncio
async def test_attempt_for_unknown_test_is_skipped(store) -> None:
    del store.tests[2]

    scores = await calculate_fresh_scores_for_users(store, [1])

    assert [s.attempt_id for s in scores] == ["u1-t1"]


@pytest.mark.asyncio
async def test_sessions_are_scored_separately(store) -> None:
    assert [s.attempt_id for s in await calculate_fresh_scores_for_session(store, 5)] == [
        "u1-t1",
        "u2-t1",
    ]

    by_session = await calculate_fresh_scores_for_sessions(store, [5, 6, 7])

    assert {sid: len(scores) for sid, scores in by_session.items()} == {5: 2, 6: 1, 7: 0}


@pytest.mark.asyncio
async def test_subject_population_is_scored_as_a_whole(store) -> None:
    store.subjects = [
        SubjectRecord(id=uid, name=f"User {uid}", email=f"u{uid}@example.com", role="participant", created_at=START)
        for uid in (1, 2)
    ]

    scores = await calculate_fresh_scores_for_subjects(store, SubjectFilter(session_id=5))

    assert {s.attempt_id: s.percentile for s in scores} == {"u1-t1": 50, "u2-t1": 0}

    only_second = await calculate_fresh_scores_for_subjects(store, SubjectFilter(subject_ids=(2,)))
    assert [s.attempt_id for s in only_second] == ["u2-t1"]


@pytest.mark.asyncio
async def test_test_population_includes_every_taker(store) -> None:
    scores = await calculate_fresh_scores_for_tests(store, [1])

    assert sorted(s.attempt_id for s in scores) == ["u1-t1", "u2-t1"]
    assert await calculate_fresh_scores_for_tests(store, []) == []
