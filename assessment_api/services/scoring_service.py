"""Score normalization for a single test attempt.

Turns one attempt plus its answers and the test definition into a
``FreshScore``: raw and maximum points, a 0-100 scaled score, answer
accuracy, completion and, for rating-scale items, a per-trait breakdown.
Nothing here touches the database; the fresh score service feeds it
records fetched in bulk.
"""
from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from assessment_api.models.db.attempt import AttemptStatus
from assessment_api.models.db.test_catalog import QuestionType
from assessment_api.models.records import (
    AnswerRecord,
    AttemptRecord,
    QuestionRecord,
    TestDefinition,
)

RATING_SCALE_MODULE_TYPES = frozenset({"personality"})
RATING_SCALE_CATEGORIES = frozenset({"mbti", "big_five", "disc", "papi_kostick"})

# Question types graded by comparing the answer with the stored key
KEYED_QUESTION_TYPES = frozenset(
    {QuestionType.MULTIPLE_CHOICE.value, QuestionType.TRUE_FALSE.value}
)

ITEM_MAX_SCORE = 1.0


@dataclass
class TraitScore:
    """Accumulated rating-scale points for one trait."""

    trait: str
    score: float = 0.0
    max_score: float = 0.0
    items: int = 0

    @property
    def percentage(self) -> float:
        if self.max_score <= 0:
            return 0.0
        return round(self.score / self.max_score * 100, 2)


@dataclass
class FreshScore:
    """Score of one attempt, recomputed from its raw answers."""

    user_id: int
    test_id: int
    attempt_id: str
    session_id: int | None = None
    test_name: str | None = None
    test_module_type: str | None = None
    test_category: str | None = None
    test_time_limit: int = 0  # minutes
    raw_score: float = 0.0
    max_score: float = 0.0
    scaled_score: float = 0.0
    percentile: int | None = None
    correct_answers: int = 0
    answered_questions: int = 0
    total_questions: int = 0
    accuracy_rate: float = 0.0
    completion_percentage: float = 0.0
    is_rating_scale_test: bool = False
    is_completed: bool = False
    time_spent: int | None = None
    completed_at: datetime | None = None
    trait_breakdown: list[TraitScore] = field(default_factory=list)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def is_rating_scale_test(
    module_type: str | None, category: str | None, question_type: str | None = None
) -> bool:
    """True for tests scored as trait profiles rather than right/wrong points."""
    if question_type == QuestionType.RATING_SCALE.value:
        return True
    if module_type and module_type.lower() in RATING_SCALE_MODULE_TYPES:
        return True
    return bool(category) and category.lower() in RATING_SCALE_CATEGORIES


def has_answer(answer: AnswerRecord | None) -> bool:
    if answer is None:
        return False
    if answer.answer is not None and answer.answer.strip():
        return True
    return bool(answer.answer_data)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _rating_option(question: QuestionRecord, answer: AnswerRecord) -> dict[str, Any] | None:
    chosen = (answer.answer or "").strip()
    for option in question.options:
        if str(option.get("value", "")).strip() == chosen:
            return option
    return None


def score_answer(question: QuestionRecord, answer: AnswerRecord | None) -> tuple[float, bool]:
    """Score one answered item.

    Returns:
        Tuple of (points, counted_as_correct). Keyed items earn the full
        point on an exact match; other scorable items earn their graded
        score, bounded by the item maximum.
    """
    if not has_answer(answer):
        return 0.0, False

    if question.question_type in KEYED_QUESTION_TYPES:
        if question.correct_answer is None or answer.answer is None:
            return 0.0, False
        correct = answer.answer.strip() == question.correct_answer.strip()
        return (ITEM_MAX_SCORE if correct else 0.0), correct

    if question.question_type == QuestionType.RATING_SCALE.value:
        option = _rating_option(question, answer)
        if option is None:
            return 0.0, False
        return _as_number(option.get("score")) or 0.0, True

    # Manually graded items (text, drawing, sequence, matrix)
    if answer.score is None:
        return 0.0, bool(answer.is_correct)
    points = clamp(float(answer.score), 0.0, ITEM_MAX_SCORE)
    correct = answer.is_correct if answer.is_correct is not None else points > 0
    return points, correct


def _trait_breakdown(
    questions: tuple[QuestionRecord, ...], answers: dict[int, AnswerRecord]
) -> list[TraitScore]:
    traits: dict[str, TraitScore] = {}
    for question in questions:
        if question.question_type != QuestionType.RATING_SCALE.value:
            continue
        trait_name = question.scoring_key.get("trait")
        answer = answers.get(question.id)
        if not trait_name or not has_answer(answer):
            continue
        points, matched = score_answer(question, answer)
        if not matched:
            continue
        option_scores = [
            s for s in (_as_number(o.get("score")) for o in question.options) if s is not None
        ]
        trait = traits.setdefault(trait_name, TraitScore(trait=trait_name))
        trait.score += points
        trait.max_score += max(option_scores, default=0.0)
        trait.items += 1
    return sorted(traits.values(), key=lambda t: t.trait)


def normalize_attempt(
    attempt: AttemptRecord, test: TestDefinition, answers: list[AnswerRecord]
) -> FreshScore:
    """Compute the fresh score for one attempt."""
    by_question = {a.question_id: a for a in answers}

    raw_score = 0.0
    max_score = 0.0
    correct = 0
    answered = 0
    scorable_answered = 0
    for question in test.questions:
        answer = by_question.get(question.id)
        answered_item = has_answer(answer)
        if answered_item:
            answered += 1
        if question.question_type == QuestionType.RATING_SCALE.value:
            continue

        max_score += ITEM_MAX_SCORE
        if not answered_item:
            continue
        scorable_answered += 1
        points, is_correct = score_answer(question, answer)
        raw_score += points
        if is_correct:
            correct += 1

    scaled = clamp(raw_score / max_score * 100, 0.0, 100.0) if max_score > 0 else 0.0
    total_questions = test.total_questions or len(test.questions)
    completion = clamp(answered / total_questions * 100, 0.0, 100.0) if total_questions else 0.0
    accuracy = correct / scorable_answered * 100 if scorable_answered else 0.0

    rating_only = bool(test.questions) and all(
        q.question_type == QuestionType.RATING_SCALE.value for q in test.questions
    )

    return FreshScore(
        user_id=attempt.user_id,
        test_id=attempt.test_id,
        attempt_id=attempt.id,
        session_id=attempt.session_id,
        test_name=test.name,
        test_module_type=test.module_type,
        test_category=test.category,
        test_time_limit=test.time_limit,
        raw_score=round(raw_score, 2),
        max_score=round(max_score, 2),
        scaled_score=round(scaled, 2),
        correct_answers=correct,
        answered_questions=answered,
        total_questions=total_questions,
        accuracy_rate=round(accuracy, 2),
        completion_percentage=round(completion, 2),
        is_rating_scale_test=rating_only
        or is_rating_scale_test(test.module_type, test.category, test.question_type),
        is_completed=attempt.status == AttemptStatus.COMPLETED.value,
        time_spent=attempt.time_spent,
        completed_at=attempt.end_time or attempt.start_time,
        trait_breakdown=_trait_breakdown(test.questions, by_question),
    )


def percentile_rank(value: float, population: list[float]) -> int | None:
    """Share of the population scoring strictly below ``value``, as 0-100.

    Populations of fewer than two scores carry no ranking information.
    """
    if len(population) < 2:
        return None
    below = sum(1 for other in population if other < value)
    return math.floor(below / len(population) * 100 + 0.5)


def assign_percentiles(scores: list[FreshScore]) -> list[FreshScore]:
    """Rank each score against the other scores for the same test."""
    populations: dict[int, list[float]] = defaultdict(list)
    for score in scores:
        if not score.is_rating_scale_test:
            populations[score.test_id].append(score.scaled_score)

    ranked = []
    for score in scores:
        if score.is_rating_scale_test:
            ranked.append(replace(score, percentile=None))
            continue
        ranked.append(
            replace(score, percentile=percentile_rank(score.scaled_score, populations[score.test_id]))
        )
    return ranked
