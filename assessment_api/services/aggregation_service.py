"""Aggregation of fresh scores into per-user and per-session figures."""
from __future__ import annotations

import math
from collections import Counter, defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from assessment_api.services.scoring_service import FreshScore, clamp

GRADE_BANDS = (
    ("A", 90.0),
    ("B", 80.0),
    ("C", 70.0),
    ("D", 60.0),
)
LOWEST_GRADE = "E"


@dataclass
class UserAverage:
    overall_score: float = 0.0
    overall_percentile: float | None = None
    overall_grade: str | None = None
    scorable_tests: int = 0
    total_attempts: int = 0
    completed_attempts: int = 0
    average_completion_rate: float = 0.0
    total_correct_answers: int = 0
    total_answered_questions: int = 0
    overall_accuracy_rate: float = 0.0
    consistency_score: float | None = None


@dataclass
class SessionScoreAggregate:
    average_score: float | None = None
    weighted_average_score: float | None = None
    min_score: float | None = None
    max_score: float | None = None
    scored_attempts: int = 0


def mean(values: Iterable[float]) -> float | None:
    values = list(values)
    if not values:
        return None
    return sum(values) / len(values)


def group_fresh_scores_by_user(scores: Iterable[FreshScore]) -> dict[int, list[FreshScore]]:
    grouped: dict[int, list[FreshScore]] = defaultdict(list)
    for score in scores:
        grouped[score.user_id].append(score)
    return dict(grouped)


def group_fresh_scores_by_session(scores: Iterable[FreshScore]) -> dict[int, list[FreshScore]]:
    """Group by session id; attempts taken outside any session are dropped."""
    grouped: dict[int, list[FreshScore]] = defaultdict(list)
    for score in scores:
        if score.session_id is not None:
            grouped[score.session_id].append(score)
    return dict(grouped)


def scorable(scores: Iterable[FreshScore]) -> list[FreshScore]:
    """Drop rating-scale tests, which have no right answers to average."""
    return [s for s in scores if not s.is_rating_scale_test]


def grade_for_score(score: float) -> str:
    for grade, threshold in GRADE_BANDS:
        if score >= threshold:
            return grade
    return LOWEST_GRADE


def consistency_score(values: Iterable[float]) -> float | None:
    """One minus the coefficient of variation, floored at zero.

    Returns None when fewer than two values are available.
    """
    values = list(values)
    if len(values) < 2:
        return None
    avg = sum(values) / len(values)
    if avg == 0:
        return 0.0
    variance = sum((v - avg) ** 2 for v in values) / len(values)
    return round(max(0.0, 1 - math.sqrt(variance) / avg), 2)


def diversity_score(values: Iterable[str | None]) -> float:
    """Normalized Shannon entropy of a categorical distribution, in [0, 1].

    Missing values are ignored; a single category (or none) scores zero.
    """
    counts = Counter(v for v in values if v)
    total = sum(counts.values())
    if total == 0 or len(counts) < 2:
        return 0.0
    entropy = -sum((n / total) * math.log2(n / total) for n in counts.values())
    return round(entropy / math.log2(len(counts)), 2)


def time_efficiency(actual_minutes: float, optimal_minutes: float) -> float:
    """Percentage of the expected time actually needed, capped at 100."""
    if optimal_minutes <= 0 or actual_minutes <= 0:
        return 100.0
    return round(clamp(optimal_minutes / actual_minutes * 100, 0.0, 100.0), 2)


def completion_rate(completed: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(completed / total * 100, 2)


def calculate_user_average_from_fresh_scores(scores: list[FreshScore]) -> UserAverage:
    """Collapse one user's fresh scores into overall figures.

    Rating-scale tests are excluded from the score and percentile. When no
    scorable test remains the overall score is 0 and no grade is given, which
    tells "took no scorable test" apart from "scored zero" (grade E).
    """
    result = UserAverage(
        total_attempts=len(scores),
        completed_attempts=sum(1 for s in scores if s.is_completed),
        average_completion_rate=round(mean(s.completion_percentage for s in scores) or 0.0, 2),
    )

    counted = scorable(scores)
    if not counted:
        return result

    scaled = [s.scaled_score for s in counted]
    # Grade the reported (rounded) figure: 89.996 shows as 90.0 and grades A
    overall = round(sum(scaled) / len(scaled), 2)
    percentile = mean(s.percentile for s in counted if s.percentile is not None)
    answered = sum(s.answered_questions for s in counted)
    correct = sum(s.correct_answers for s in counted)

    result.overall_score = overall
    result.overall_percentile = round(percentile, 2) if percentile is not None else None
    result.overall_grade = grade_for_score(overall)
    result.scorable_tests = len(counted)
    result.total_correct_answers = correct
    result.total_answered_questions = answered
    result.overall_accuracy_rate = round(correct / answered * 100, 2) if answered else 0.0
    result.consistency_score = consistency_score(scaled)
    return result


def calculate_session_aggregate(
    scores: list[FreshScore], module_weights: Mapping[int, float] | None = None
) -> SessionScoreAggregate:
    """Average, module-weighted average and range over a session's scorable attempts.

    Tests without an assigned module weight count with weight 1.0. Every
    figure is None when the session has no scorable attempt yet.
    """
    counted = scorable(scores)
    if not counted:
        return SessionScoreAggregate()

    scaled = [s.scaled_score for s in counted]
    weights = module_weights or {}

    per_test: dict[int, list[float]] = defaultdict(list)
    for score in counted:
        per_test[score.test_id].append(score.scaled_score)
    weighted_sum = 0.0
    weight_total = 0.0
    for test_id, test_scores in per_test.items():
        weight = weights.get(test_id, 1.0)
        weighted_sum += weight * (sum(test_scores) / len(test_scores))
        weight_total += weight

    return SessionScoreAggregate(
        average_score=round(sum(scaled) / len(scaled), 2),
        weighted_average_score=round(weighted_sum / weight_total, 2) if weight_total else None,
        min_score=round(min(scaled), 2),
        max_score=round(max(scaled), 2),
        scored_attempts=len(counted),
    )
