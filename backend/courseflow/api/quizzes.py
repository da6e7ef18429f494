"""Quiz routes: attempt lifecycle and analytics.

The attempt routes accept an optional bearer token; without one the caller is a
guest and may only use quizzes in the course's free preview.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from courseflow.api.deps import get_current_user, get_optional_user
from courseflow.core.errors import NotFound
from courseflow.db.models import Quiz, User
from courseflow.db.session import get_db
from courseflow.schemas.quiz import (
    AttemptStarted,
    AttemptSubmit,
    QuizAnalyticsRead,
    QuizStartInfo,
    SubmitResult,
)
from courseflow.services import analytics
from courseflow.services.attempts import get_start_info, start_attempt, submit_attempt

router = APIRouter()


@router.post(
    "/{quiz_id}/attempts",
    response_model=AttemptStarted,
    status_code=status.HTTP_201_CREATED,
)
def start_quiz_attempt(
    quiz_id: int,
    current_user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Open a new attempt; guests receive an ephemeral ``guest-…`` id."""
    started = start_attempt(db, quiz_id, user=current_user)
    return AttemptStarted(attempt_id=started.attempt_id)


@router.get("/{quiz_id}/start-info", response_model=QuizStartInfo)
def quiz_start_info(
    quiz_id: int,
    current_user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    info = get_start_info(db, quiz_id, user=current_user)
    return QuizStartInfo.model_validate(info)


@router.post("/attempts/{attempt_id}/submit", response_model=SubmitResult)
def submit_quiz_attempt(
    attempt_id: str,
    body: AttemptSubmit,
    current_user: User | None = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Grade the submitted answers and return the score."""
    answers = [a.model_dump() for a in body.answers]
    result = submit_attempt(
        db,
        attempt_id,
        answers,
        user=current_user,
        quiz_id_for_guest=body.quiz_id_for_guest,
    )
    return SubmitResult(score=result.score, passed=result.passed)


@router.get("/{quiz_id}/analytics", response_model=QuizAnalyticsRead)
def quiz_analytics(
    quiz_id: int,
    _: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Return the stored analytics rollup of one quiz."""
    quiz = db.get(Quiz, quiz_id)
    if quiz is None:
        raise NotFound("Quiz not found")
    rollup = analytics.read_quiz_analytics(quiz)
    return QuizAnalyticsRead(
        quiz_id=quiz.id,
        total_attempts=rollup.total_attempts,
        average_score=rollup.average_score,
        pass_rate=rollup.pass_rate,
        average_time_spent=rollup.average_time_spent,
    )
