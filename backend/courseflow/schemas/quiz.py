"""Quiz attempt schemas (start, start-info, submit, analytics)."""

from typing import Any

from courseflow.schemas.common import CamelModel


class AttemptStarted(CamelModel):
    """POST /api/quizzes/{quiz_id}/attempts returns a numeric id, or ``guest-…``."""

    attempt_id: int | str


class QuizStartInfo(CamelModel):
    allowed: bool
    message: str | None = None
    total_attempts: int
    max_attempts: int | None = None
    remaining_attempts: int | None = None


class SubmittedAnswer(CamelModel):
    """One answer as sent by the quiz runner."""

    question: int | str
    answer: Any = None


class AttemptSubmit(CamelModel):
    """POST /api/quizzes/attempts/{attempt_id}/submit"""

    answers: list[SubmittedAnswer] = []
    quiz_id_for_guest: int | str | None = None


class SubmitResult(CamelModel):
    score: int
    passed: bool


class QuizAnalyticsRead(CamelModel):
    quiz_id: int
    total_attempts: int
    average_score: int
    pass_rate: int
    average_time_spent: int
