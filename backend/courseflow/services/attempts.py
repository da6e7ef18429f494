"""Quiz attempt manager: eligibility, attempt lifecycle and submission.

Flow:
  1. start_attempt     → eligibility checks, then a persisted in-progress
                         attempt (or an ephemeral guest id)
  2. get_start_info    → the same checks, read-only, for pre-flight UI state
  3. submit_attempt    → grade, persist the completed attempt, then refresh
                         quiz analytics and learner progress (best-effort)

The calling user is always passed in explicitly; ``None`` means guest.
Guests may only use quizzes inside the course's free preview and their
attempts are never stored.
"""

import logging
import math
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from courseflow.config import settings
from courseflow.core.clock import as_utc, utcnow
from courseflow.core.errors import (
    AttemptAlreadySubmitted,
    NotFound,
    QuotaExceeded,
    Unauthorized,
    Unavailable,
)
from courseflow.db.models import (
    AttemptAnswer,
    AttemptStatusEnum,
    ContentStatusEnum,
    ItemKindEnum,
    Quiz,
    QuizAttempt,
    User,
)
from courseflow.services import analytics, progress
from courseflow.services.scoring import evaluate, is_passing
from courseflow.services.sequencer import build_sequence, is_free, position_of
from courseflow.tasks import recompute_quiz_analytics_task, record_quiz_completion_task

logger = logging.getLogger(__name__)


# ── Result types ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class StartedAttempt:
    attempt_id: int | str
    attempt_number: int | None = None

    @property
    def is_guest(self) -> bool:
        return is_guest_attempt_id(self.attempt_id)


@dataclass(frozen=True)
class StartInfo:
    allowed: bool
    message: str | None
    total_attempts: int
    max_attempts: int | None
    remaining_attempts: int | None


@dataclass(frozen=True)
class SideEffectOutcome:
    """Result of one post-submission aggregate update."""

    name: str
    ok: bool
    error: str | None = None
    requeued: bool = False


@dataclass
class SubmissionResult:
    score: int
    passed: bool
    side_effects: list[SideEffectOutcome] = field(default_factory=list)


# ── Guest ids ─────────────────────────────────────────────────────────────────


def new_guest_attempt_id() -> str:
    """``guest-<epoch millis>-<random suffix>``."""
    return f"{settings.GUEST_ATTEMPT_PREFIX}{int(time.time() * 1000)}-{secrets.token_hex(4)}"


def is_guest_attempt_id(attempt_id: Any) -> bool:
    return str(attempt_id).startswith(settings.GUEST_ATTEMPT_PREFIX)


# ── Eligibility ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class _Eligibility:
    quiz: Quiz
    position: int
    free: bool


def _load_quiz(db: Session, quiz_id: Any) -> Quiz:
    try:
        key = int(quiz_id)
    except (TypeError, ValueError):
        raise NotFound("Quiz not found")
    quiz = db.get(Quiz, key)
    if quiz is None or quiz.status == ContentStatusEnum.ARCHIVED:
        raise NotFound("Quiz not found")
    if quiz.course is None:
        raise NotFound("Quiz not associated with any course")
    return quiz


def _check_access(db: Session, quiz_id: Any, user: User | None) -> _Eligibility:
    """Raise NotFound / Unauthorized; report the quiz's place in its course."""
    quiz = _load_quiz(db, quiz_id)
    sequence = build_sequence(quiz.course)
    position = position_of(sequence, ItemKindEnum.QUIZ, quiz.id)
    free = is_free(position, quiz.course.free_item_count)
    if user is None and not free:
        raise Unauthorized("Sign in to take this quiz")
    if not quiz.questions:
        raise NotFound("Quiz has no questions")
    return _Eligibility(quiz=quiz, position=position, free=free)


def _availability_error(quiz: Quiz, now: datetime) -> str | None:
    available_from = as_utc(quiz.available_from)
    available_until = as_utc(quiz.available_until)
    if available_from is not None and now < available_from:
        return "Quiz is not yet available"
    if available_until is not None and now > available_until:
        return "Quiz is no longer available"
    return None


def _count_attempts(db: Session, user: User, quiz_id: int) -> int:
    return (
        db.query(QuizAttempt)
        .filter(QuizAttempt.user_id == user.id, QuizAttempt.quiz_id == quiz_id)
        .count()
    )


# ── Start ─────────────────────────────────────────────────────────────────────


def start_attempt(
    db: Session,
    quiz_id: Any,
    user: User | None = None,
    now: datetime | None = None,
) -> StartedAttempt:
    """Create a new attempt for *user* (or a guest id when ``user`` is None).

    Raises:
        NotFound: quiz missing, archived, detached or without questions
        Unauthorized: guest on a quiz outside the free preview
        Unavailable: outside the availability window
        QuotaExceeded: ``max_attempts`` already used up
    """
    now = now or utcnow()
    eligibility = _check_access(db, quiz_id, user)
    quiz = eligibility.quiz
    questions = quiz.questions

    reason = _availability_error(quiz, now)
    if reason:
        raise Unavailable(reason)

    if user is None:
        guest_id = new_guest_attempt_id()
        logger.info("Guest attempt %s started on free quiz %s", guest_id, quiz.id)
        return StartedAttempt(attempt_id=guest_id)

    # attempt_number is unique per (user, quiz): a concurrent start that
    # grabbed the same number makes us re-count and try again.
    for _ in range(max(1, settings.ATTEMPT_CREATE_RETRIES)):
        attempt_number = _count_attempts(db, user, quiz.id) + 1
        if quiz.max_attempts is not None and attempt_number > quiz.max_attempts:
            raise QuotaExceeded(
                f"Maximum number of attempts ({quiz.max_attempts}) reached"
            )

        attempt = QuizAttempt(
            user_id=user.id,
            quiz_id=quiz.id,
            attempt_number=attempt_number,
            status=AttemptStatusEnum.IN_PROGRESS,
            started_at=now,
            answers=[
                AttemptAnswer(question_id=q.id, answer=None, is_correct=False, points_awarded=0)
                for q in questions
            ],
        )
        db.add(attempt)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.info(
                "Attempt number %d for user %s on quiz %s taken concurrently; retrying",
                attempt_number, user.id, quiz.id,
            )
            continue

        logger.info(
            "Attempt %s (#%d) started by user %s on quiz %s",
            attempt.id, attempt_number, user.id, quiz.id,
        )
        return StartedAttempt(attempt_id=attempt.id, attempt_number=attempt_number)

    raise QuotaExceeded("Could not allocate an attempt number, please retry")


def get_start_info(
    db: Session,
    quiz_id: Any,
    user: User | None = None,
    now: datetime | None = None,
) -> StartInfo:
    """Read-only version of :func:`start_attempt` for the quiz intro screen."""
    now = now or utcnow()
    eligibility = _check_access(db, quiz_id, user)
    quiz = eligibility.quiz

    total_attempts = _count_attempts(db, user, quiz.id) if user is not None else 0
    max_attempts = quiz.max_attempts
    remaining = max(0, max_attempts - total_attempts) if max_attempts is not None else None

    allowed = True
    message = _availability_error(quiz, now)
    if message:
        allowed = False
    elif remaining == 0:
        allowed = False
        message = f"You have used all {max_attempts} attempts for this quiz"

    return StartInfo(
        allowed=allowed,
        message=message,
        total_attempts=total_attempts,
        max_attempts=max_attempts,
        remaining_attempts=remaining,
    )


# ── Submit ────────────────────────────────────────────────────────────────────


def _submit_guest(
    db: Session,
    answers: list[Mapping[str, Any]],
    quiz_id_for_guest: Any,
) -> SubmissionResult:
    if quiz_id_for_guest is None:
        raise NotFound("Quiz id is required for guest submissions")
    eligibility = _check_access(db, quiz_id_for_guest, None)
    quiz = eligibility.quiz

    result = evaluate(quiz.questions, answers)
    score = result.score
    return SubmissionResult(score=score, passed=is_passing(score, quiz.passing_score))


def _load_own_attempt(db: Session, attempt_id: Any, user: User) -> QuizAttempt:
    try:
        key = int(attempt_id)
    except (TypeError, ValueError):
        raise NotFound("Attempt not found")
    attempt = db.get(QuizAttempt, key)
    # Someone else's attempt is reported exactly like a missing one
    if attempt is None or attempt.user_id != user.id:
        raise NotFound("Attempt not found")
    return attempt


def _run_side_effect(
    db: Session,
    name: str,
    action: Callable[[], Any],
    requeue: Callable[[], Any],
) -> SideEffectOutcome:
    """Run one aggregate update; on failure log it and hand it to Celery."""
    try:
        action()
        return SideEffectOutcome(name=name, ok=True)
    except Exception as exc:
        db.rollback()
        logger.warning("Post-submission %s update failed: %s", name, exc, exc_info=True)
        try:
            requeue()
        except Exception:
            logger.exception("Could not re-queue %s update", name)
            return SideEffectOutcome(name=name, ok=False, error=str(exc))
        return SideEffectOutcome(name=name, ok=False, error=str(exc), requeued=True)


def submit_attempt(
    db: Session,
    attempt_id: Any,
    answers: Iterable[Mapping[str, Any]],
    user: User | None = None,
    quiz_id_for_guest: Any = None,
    now: datetime | None = None,
) -> SubmissionResult:
    """Grade a submission and return ``score`` / ``passed``.

    Guest ids are graded in memory only. For stored attempts the graded
    attempt is committed first; analytics and progress are refreshed
    afterwards and their failures never change the returned score.
    """
    answers = list(answers or [])
    if is_guest_attempt_id(attempt_id):
        return _submit_guest(db, answers, quiz_id_for_guest)

    if user is None:
        raise Unauthorized()

    now = now or utcnow()
    attempt = _load_own_attempt(db, attempt_id, user)
    if attempt.status == AttemptStatusEnum.COMPLETED:
        raise AttemptAlreadySubmitted()

    quiz = attempt.quiz
    if quiz is None:
        raise NotFound("Quiz not found")

    result = evaluate(quiz.questions, answers)
    score = result.score
    passed = is_passing(score, quiz.passing_score)

    started_at = as_utc(attempt.started_at)
    time_spent = 0
    if started_at is not None:
        time_spent = max(0, math.floor((now - started_at).total_seconds()))

    attempt.answers = [
        AttemptAnswer(
            question_id=r.question_id,
            answer=r.answer,
            is_correct=r.is_correct,
            points_awarded=r.points_awarded,
        )
        for r in result.results
    ]
    attempt.status = AttemptStatusEnum.COMPLETED
    attempt.completed_at = now
    attempt.time_spent = time_spent
    attempt.total_points = result.total_points
    attempt.max_points = result.max_points
    attempt.score = score
    attempt.passed = passed
    db.commit()

    logger.info(
        "Attempt %s submitted by user %s: %d/%d correct → %d%% (%s)",
        attempt.id, user.id, result.correct_count, result.answered_count,
        score, "passed" if passed else "failed",
    )

    quiz_id = quiz.id
    user_id = user.id
    side_effects = [
        _run_side_effect(
            db,
            "analytics",
            lambda: analytics.recompute_quiz_analytics(db, quiz_id),
            lambda: recompute_quiz_analytics_task.delay(quiz_id),
        ),
        _run_side_effect(
            db,
            "progress",
            lambda: progress.record_quiz_completion(db, user_id, quiz_id, score, passed, now=now),
            lambda: record_quiz_completion_task.delay(str(user_id), quiz_id, score, passed),
        ),
    ]
    return SubmissionResult(score=score, passed=passed, side_effects=side_effects)
