import pytest

from assessment_api.services.aggregation_service import (
    calculate_session_aggregate,
    calculate_user_average_from_fresh_scores,
    completion_rate,
    consistency_score,
    diversity_score,
    grade_for_score,
    group_fresh_scores_by_session,
    group_fresh_scores_by_user,
    time_efficiency,
)
from assessment_api.services.scoring_service import FreshScore


def _score(
    scaled: float,
    user_id: int = 1,
    test_id: int = 1,
    session_id: int | None = None,
    rating: bool = False,
    percentile: int | None = None,
    **fields,
) -> FreshScore:
    return FreshScore(
        user_id=user_id,
        test_id=test_id,
        attempt_id=f"{user_id}-{test_id}-{scaled}",
        session_id=session_id,
        scaled_score=scaled,
        percentile=percentile,
        is_rating_scale_test=rating,
        **fields,
    )


@pytest.mark.parametrize(
    ("score", "grade"),
    [
        (100.0, "A"),
        (90.0, "A"),
        (89.999, "B"),
        (80.0, "B"),
        (70.0, "C"),
        (60.0, "D"),
        (59.99, "E"),
        (0.0, "E"),
    ],
)
def test_grade_bands(score: float, grade: str) -> None:
    assert grade_for_score(score) == grade


def test_rating_only_scores_have_no_overall_score_or_grade() -> None:
    average = calculate_user_average_from_fresh_scores(
        [_score(0.0, rating=True, completion_percentage=100.0, is_completed=True)]
    )

    assert average.overall_score == 0
    assert average.overall_grade is None
    assert average.overall_percentile is None
    assert average.scorable_tests == 0
    assert average.completed_attempts == 1
    assert average.average_completion_rate == 100.0


def test_zero_on_a_scorable_test_grades_e() -> None:
    average = calculate_user_average_from_fresh_scores([_score(0.0)])

    assert average.overall_score == 0
    assert average.overall_grade == "E"


def test_user_average_excludes_rating_tests() -> None:
    scores = [
        _score(80.0, test_id=1, percentile=40, correct_answers=8, answered_questions=10),
        _score(100.0, test_id=2, percentile=60, correct_answers=10, answered_questions=10),
        _score(0.0, test_id=3, rating=True, percentile=None),
    ]

    average = calculate_user_average_from_fresh_scores(scores)

    assert average.overall_score == 90.0
    assert average.overall_grade == "A"
    assert average.overall_percentile == 50.0
    assert average.total_attempts == 3
    assert average.total_correct_answers == 18
    assert average.overall_accuracy_rate == 90.0
    assert average.consistency_score == 0.89


def test_consistency_needs_two_scores() -> None:
    assert consistency_score([75.0]) is None
    assert consistency_score([80.0, 80.0]) == 1.0
    assert consistency_score([0.0, 100.0]) == 0.0


def test_diversity_score() -> None:
    assert diversity_score(["m", "f", "m", "f"]) == 1.0
    assert diversity_score(["a", "a", "a", "b"]) == 0.81
    assert diversity_score(["x", "x"]) == 0.0
    assert diversity_score([]) == 0.0
    assert diversity_score([None, "", "x", "y"]) == 1.0


def test_time_efficiency() -> None:
    assert time_efficiency(45, 0) == 100.0
    assert time_efficiency(120, 60) == 50.0
    assert time_efficiency(30, 60) == 100.0


def test_completion_rate() -> None:
    assert completion_rate(2, 5) == 40.0
    assert completion_rate(0, 0) == 0.0


def test_grouping() -> None:
    scores = [
        _score(50.0, user_id=1, session_id=7),
        _score(60.0, user_id=2, session_id=7),
        _score(70.0, user_id=1, session_id=None),
    ]

    assert {k: len(v) for k, v in group_fresh_scores_by_user(scores).items()} == {1: 2, 2: 1}
    assert {k: len(v) for k, v in group_fresh_scores_by_session(scores).items()} == {7: 2}


def test_session_aggregate_without_scorable_scores() -> None:
    aggregate = calculate_session_aggregate([_score(0.0, rating=True)])

    assert aggregate.average_score is None
    assert aggregate.weighted_average_score is None
    assert aggregate.min_score is None
    assert aggregate.max_score is None


def test_session_aggregate_weights_per_test_means() -> None:
    scores = [
        _score(60.0, user_id=1, test_id=1),
        _score(80.0, user_id=2, test_id=1),
        _score(100.0, user_id=1, test_id=2),
    ]

    aggregate = calculate_session_aggregate(scores, {1: 2.0, 2: 0.5})

    assert aggregate.average_score == 80.0
    # (70 * 2.0 + 100 * 0.5) / 2.5
    assert aggregate.weighted_average_score == 76.0
    assert aggregate.min_score == 60.0
    assert aggregate.max_score == 100.0


def test_grade_follows_the_rounded_overall_score() -> None:
    average = calculate_user_average_from_fresh_scores(
        [_score(90.0, test_id=1), _score(90.0, test_id=2), _score(89.99, test_id=3)]
    )

    assert average.overall_score == 90.0
    assert average.overall_grade == "A"
