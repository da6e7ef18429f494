"""Scoring engine for quiz submissions.

Each question type has its own grader:
  - multiple-choice → exact match against the text of the correct option
  - true-false      → boolean comparison ("true"/"false" strings accepted)
  - short-answer /
    fill-blank      → trimmed, case-insensitive match against the acceptable
                      answers (or the single ``correct_answer``)

The reported score is *equal-weight*: the share of answered questions that
are correct.  Per-question points are still computed and stored
(``points_awarded`` / ``max_points``) but do not influence pass/fail.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from courseflow.config import settings
from courseflow.db.models import Question, QuestionTypeEnum

logger = logging.getLogger(__name__)


# ── Arithmetic helpers ────────────────────────────────────────────────────────


def round_half_up(value: float) -> int:
    """Round like a calculator: 2.5 → 3 (Python's round() would give 2)."""
    return int(math.floor(value + 0.5))


def percentage(part: float, whole: float) -> int:
    """``round(100 * part / whole)``; 0 when *whole* is 0."""
    if not whole:
        return 0
    return round_half_up(100 * part / whole)


# ── Text normalisation ────────────────────────────────────────────────────────


def _normalise(text: Any) -> str:
    return str(text).strip().lower()


def _as_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and _normalise(value) in ("true", "false"):
        return _normalise(value) == "true"
    return None


# ── Per-type graders ──────────────────────────────────────────────────────────


def _grade_multiple_choice(question: Question, answer: Any) -> bool:
    if answer is None:
        return False
    correct = next(
        (
            opt
            for opt in (question.options or [])
            if opt.get("is_correct", opt.get("isCorrect"))
        ),
        None,
    )
    return correct is not None and answer == correct.get("text")


def _grade_true_false(question: Question, answer: Any) -> bool:
    expected = question.correct_boolean
    if expected is None:
        # Older questions keep the truth value in correct_answer
        expected = _as_bool(question.correct_answer)
    submitted = _as_bool(answer)
    return expected is not None and submitted is not None and submitted == expected


def _grade_text(question: Question, answer: Any) -> bool:
    if answer is None:
        return False
    submitted = _normalise(answer)
    acceptable = [a for a in (question.acceptable_answers or []) if a is not None]
    if acceptable:
        return any(submitted == _normalise(a) for a in acceptable)
    return submitted == _normalise(question.correct_answer or "")


_GRADERS: dict[QuestionTypeEnum, Callable[[Question, Any], bool]] = {
    QuestionTypeEnum.MULTIPLE_CHOICE: _grade_multiple_choice,
    QuestionTypeEnum.TRUE_FALSE: _grade_true_false,
    QuestionTypeEnum.SHORT_ANSWER: _grade_text,
    QuestionTypeEnum.FILL_BLANK: _grade_text,
}


def grade_answer(question: Question, answer: Any) -> bool:
    """Grade one submitted *answer* against *question*."""
    try:
        grader = _GRADERS[QuestionTypeEnum(question.question_type)]
    except (KeyError, ValueError):
        logger.warning("No grader for question %s of type %r", question.id, question.question_type)
        return False
    return grader(question, answer)


# ── Evaluation of a whole submission ──────────────────────────────────────────


@dataclass
class AnswerResult:
    """Outcome for one submitted answer."""

    question_ref: str
    question_id: int | None
    answer: Any
    is_correct: bool = False
    points_awarded: int = 0


@dataclass
class Evaluation:
    results: list[AnswerResult] = field(default_factory=list)
    correct_count: int = 0
    total_points: int = 0
    max_points: int = 0

    @property
    def answered_count(self) -> int:
        return len(self.results)

    @property
    def score(self) -> int:
        return percentage(self.correct_count, self.answered_count)


def resolve_passing_score(passing_score: int | None) -> int:
    return settings.DEFAULT_PASSING_SCORE if passing_score is None else passing_score


def is_passing(score: int, passing_score: int | None = None) -> bool:
    return score >= resolve_passing_score(passing_score)


def evaluate(
    questions: Iterable[Question],
    answers: Iterable[Mapping[str, Any]],
) -> Evaluation:
    """Grade every submitted answer against the quiz's questions.

    Args:
        questions: The quiz's question rows.
        answers: ``[{"question": <id>, "answer": <value>}, ...]`` as sent by
            the client; ids may be ints or numeric strings.

    Returns:
        An :class:`Evaluation`. Answers that reference no question of the
        quiz count as answered and incorrect, carry zero points and do not
        add to ``max_points``.
    """
    question_map = {str(q.id): q for q in questions}
    evaluation = Evaluation()

    for submitted in answers:
        ref = str(submitted.get("question"))
        value = submitted.get("answer")
        question = question_map.get(ref)

        if question is None:
            logger.warning("Submitted answer references unknown question %s", ref)
            evaluation.results.append(AnswerResult(question_ref=ref, question_id=None, answer=value))
            continue

        points = question.points if question.points is not None else 1
        evaluation.max_points += points

        correct = grade_answer(question, value)
        awarded = points if correct else 0
        evaluation.total_points += awarded
        if correct:
            evaluation.correct_count += 1

        logger.debug(
            "Question %s (%s): answer=%r → %s (%d/%d pts)",
            question.id, question.question_type, value, correct, awarded, points,
        )
        evaluation.results.append(
            AnswerResult(
                question_ref=ref,
                question_id=question.id,
                answer=value,
                is_correct=correct,
                points_awarded=awarded,
            )
        )

    return evaluation
