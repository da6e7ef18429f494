"""Per-quiz analytics rollup.

The rollup is always recomputed from the full set of completed attempts,
never incremented, so running it twice (or concurrently) converges on the
same numbers.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from courseflow.core.errors import NotFound
from courseflow.db.models import AttemptStatusEnum, Quiz, QuizAttempt
from courseflow.services.scoring import percentage, round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuizAnalytics:
    total_attempts: int = 0
    average_score: int = 0
    pass_rate: int = 0
    average_time_spent: int = 0


def summarise(attempts: list[QuizAttempt]) -> QuizAnalytics:
    total = len(attempts)
    if total == 0:
        return QuizAnalytics()

    sum_scores = sum(a.score for a in attempts if a.score is not None)
    passed_count = sum(1 for a in attempts if a.passed)
    sum_time = sum(a.time_spent for a in attempts if a.time_spent is not None)

    return QuizAnalytics(
        total_attempts=total,
        average_score=round_half_up(sum_scores / total),
        pass_rate=percentage(passed_count, total),
        average_time_spent=round_half_up(sum_time / total),
    )


def recompute_quiz_analytics(db: Session, quiz_id: int) -> QuizAnalytics:
    """Recompute and store the analytics fields of *quiz_id*."""
    quiz = db.get(Quiz, quiz_id)
    if quiz is None:
        raise NotFound("Quiz not found")

    completed = (
        db.query(QuizAttempt)
        .filter(
            QuizAttempt.quiz_id == quiz_id,
            QuizAttempt.status == AttemptStatusEnum.COMPLETED,
        )
        .all()
    )
    rollup = summarise(completed)

    quiz.total_attempts = rollup.total_attempts
    quiz.average_score = rollup.average_score
    quiz.pass_rate = rollup.pass_rate
    quiz.average_time_spent = rollup.average_time_spent
    db.commit()

    logger.info(
        "Quiz %s analytics: attempts=%d avg=%d pass_rate=%d avg_time=%ds",
        quiz_id, rollup.total_attempts, rollup.average_score,
        rollup.pass_rate, rollup.average_time_spent,
    )
    return rollup


def read_quiz_analytics(quiz: Quiz) -> QuizAnalytics:
    return QuizAnalytics(
        total_attempts=quiz.total_attempts or 0,
        average_score=quiz.average_score or 0,
        pass_rate=quiz.pass_rate or 0,
        average_time_spent=quiz.average_time_spent or 0,
    )
