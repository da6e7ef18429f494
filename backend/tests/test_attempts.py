"""Service-level tests for the quiz attempt manager.

Covers eligibility (free preview, availability window, attempt quota),
guest attempts, attempt numbering and submission side effects.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.orm import Session

from conftest import add_questions, multiple_choice
from courseflow.core.clock import utcnow
from courseflow.core.errors import (
    AttemptAlreadySubmitted,
    NotFound,
    QuotaExceeded,
    Unauthorized,
    Unavailable,
)
from courseflow.db.models import (
    AttemptStatusEnum,
    ContentStatusEnum,
    Quiz,
    QuizAttempt,
    UserProgress,
)
from courseflow.services import attempts as attempts_service
from courseflow.services.attempts import (
    get_start_info,
    is_guest_attempt_id,
    start_attempt,
    submit_attempt,
)


def _answers(quiz: Quiz, value=True) -> list[dict]:
    return [{"question": q.id, "answer": value} for q in quiz.questions]


def _attempt_count(db: Session) -> int:
    return db.query(QuizAttempt).count()


# ── Guests ────────────────────────────────────────────────────────────────────


def test_guest_start_on_free_quiz_returns_guest_id(db, make_course):
    built = make_course(layout=[["quiz", "lesson"]], free_item_count=1)
    quiz = built.quizzes[0]

    started = start_attempt(db, quiz.id, user=None)

    assert is_guest_attempt_id(started.attempt_id)
    assert started.is_guest
    assert started.attempt_id.startswith("guest-")
    assert _attempt_count(db) == 0


def test_guest_start_on_paid_quiz_is_unauthorized(db, make_course):
    built = make_course(layout=[["lesson", "quiz"]], free_item_count=1)
    with pytest.raises(Unauthorized):
        start_attempt(db, built.quizzes[0].id, user=None)


def test_guest_submission_is_graded_but_not_stored(db, make_course):
    built = make_course(layout=[["quiz"]], free_item_count=1)
    quiz = built.quizzes[0]
    guest_id = start_attempt(db, quiz.id).attempt_id

    result = submit_attempt(db, guest_id, _answers(quiz), quiz_id_for_guest=quiz.id)

    assert result.score == 100
    assert result.passed is True
    assert result.side_effects == []
    assert _attempt_count(db) == 0
    assert db.query(UserProgress).count() == 0
    db.refresh(quiz)
    assert quiz.total_attempts == 0


def test_guest_submission_requires_quiz_id(db, make_course):
    make_course(layout=[["quiz"]], free_item_count=1)
    with pytest.raises(NotFound):
        submit_attempt(db, "guest-1-abc", [], quiz_id_for_guest=None)


def test_guest_submission_for_paid_quiz_is_unauthorized(db, make_course):
    built = make_course(layout=[["lesson", "quiz"]], free_item_count=1)
    with pytest.raises(Unauthorized):
        submit_attempt(db, "guest-1-abc", [], quiz_id_for_guest=built.quizzes[0].id)


# ── Starting ──────────────────────────────────────────────────────────────────


def test_attempt_numbers_increase(db, make_user, make_course):
    user = make_user()
    quiz = make_course(layout=[["quiz"]]).quizzes[0]

    numbers = [start_attempt(db, quiz.id, user=user).attempt_number for _ in range(3)]

    assert numbers == [1, 2, 3]
    stored = db.query(QuizAttempt).order_by(QuizAttempt.attempt_number).all()
    assert [a.status for a in stored] == [AttemptStatusEnum.IN_PROGRESS] * 3
    assert all(len(a.answers) == 2 for a in stored)


def test_attempt_numbers_are_per_user(db, make_user, make_course):
    quiz = make_course(layout=[["quiz"]]).quizzes[0]
    first, second = make_user(), make_user()

    assert start_attempt(db, quiz.id, user=first).attempt_number == 1
    assert start_attempt(db, quiz.id, user=second).attempt_number == 1


def test_concurrent_number_clash_retries(db, make_user, make_course):
    """A stale count collides on the unique constraint and is re-counted."""
    user = make_user()
    quiz = make_course(layout=[["quiz"]]).quizzes[0]
    start_attempt(db, quiz.id, user=user)

    real_count = attempts_service._count_attempts
    stale = iter([0])

    def _stale_or_real(session, u, quiz_id):
        value = next(stale, None)
        return value if value is not None else real_count(session, u, quiz_id)

    with patch.object(attempts_service, "_count_attempts", side_effect=_stale_or_real):
        started = start_attempt(db, quiz.id, user=user)

    assert started.attempt_number == 2
    assert _attempt_count(db) == 2


def test_quota_exceeded(db, make_user, make_course):
    user = make_user()
    quiz = make_course(layout=[["quiz"]], max_attempts=1).quizzes[0]
    attempt_id = start_attempt(db, quiz.id, user=user).attempt_id
    submit_attempt(db, attempt_id, _answers(quiz), user=user)

    with pytest.raises(QuotaExceeded):
        start_attempt(db, quiz.id, user=user)

    info = get_start_info(db, quiz.id, user=user)
    assert info.allowed is False
    assert info.remaining_attempts == 0
    assert info.total_attempts == 1
    assert info.max_attempts == 1


def test_start_info_for_unlimited_quiz(db, make_user, make_course):
    user = make_user()
    quiz = make_course(layout=[["quiz"]]).quizzes[0]
    start_attempt(db, quiz.id, user=user)

    info = get_start_info(db, quiz.id, user=user)
    assert info.allowed is True
    assert info.message is None
    assert info.total_attempts == 1
    assert info.max_attempts is None
    assert info.remaining_attempts is None


@pytest.mark.parametrize(
    "window",
    [
        {"available_from": timedelta(days=1)},
        {"available_until": timedelta(days=-1)},
    ],
)
def test_outside_availability_window(db, make_user, make_course, window):
    now = utcnow()
    settings = {key: now + delta for key, delta in window.items()}
    user = make_user()
    quiz = make_course(layout=[["quiz"]], **settings).quizzes[0]

    with pytest.raises(Unavailable):
        start_attempt(db, quiz.id, user=user, now=now)
    info = get_start_info(db, quiz.id, user=user, now=now)
    assert info.allowed is False
    assert "available" in info.message


def test_inside_availability_window(db, make_user, make_course):
    now = utcnow()
    quiz = make_course(
        layout=[["quiz"]],
        available_from=now - timedelta(hours=1),
        available_until=now + timedelta(hours=1),
    ).quizzes[0]
    started = start_attempt(db, quiz.id, user=make_user(), now=now)
    assert started.attempt_number == 1


def test_missing_archived_and_empty_quizzes_are_not_found(db, make_user, make_course):
    user = make_user()
    built = make_course(layout=[["quiz", "quiz"]], questions_per_quiz=0)
    archived, empty = built.quizzes
    archived.status = ContentStatusEnum.ARCHIVED
    db.commit()

    with pytest.raises(NotFound):
        start_attempt(db, 9999, user=user)
    with pytest.raises(NotFound):
        start_attempt(db, archived.id, user=user)
    with pytest.raises(NotFound):
        start_attempt(db, empty.id, user=user)


def test_start_info_for_quiz_without_questions(db, make_user, make_course):
    """The intro screen reports the same failure the start button would hit."""
    user = make_user()
    quiz = make_course(layout=[["quiz"]], questions_per_quiz=0).quizzes[0]

    with pytest.raises(NotFound):
        get_start_info(db, quiz.id, user=user)
    with pytest.raises(NotFound):
        start_attempt(db, quiz.id, user=user)


# ── Submitting ────────────────────────────────────────────────────────────────


def test_submit_grades_and_stores_attempt(db, make_user, make_course):
    user = make_user()
    built = make_course(layout=[["quiz"]], questions_per_quiz=0, passing_score=60)
    quiz = built.quizzes[0]
    q1, q2, q3 = add_questions(
        db,
        quiz,
        [multiple_choice("A", ["B"]), multiple_choice("C", ["D"]), multiple_choice("E", ["F"], points=5)],
    )
    started_at = utcnow()
    attempt_id = start_attempt(db, quiz.id, user=user, now=started_at).attempt_id

    result = submit_attempt(
        db,
        attempt_id,
        [
            {"question": q1.id, "answer": "A"},
            {"question": q2.id, "answer": "C"},
            {"question": q3.id, "answer": "F"},
        ],
        user=user,
        now=started_at + timedelta(seconds=95, milliseconds=700),
    )

    assert result.score == 67
    assert result.passed is True
    assert [o.ok for o in result.side_effects] == [True, True]

    attempt = db.get(QuizAttempt, attempt_id)
    assert attempt.status == AttemptStatusEnum.COMPLETED
    assert attempt.score == 67
    assert attempt.passed is True
    assert attempt.time_spent == 95
    assert attempt.total_points == 2
    assert attempt.max_points == 7
    assert [a.is_correct for a in attempt.answers] == [True, True, False]


def test_submit_updates_analytics_and_progress(db, make_user, make_course):
    user = make_user()
    built = make_course(layout=[["lesson", "quiz"]])
    quiz = built.quizzes[0]
    attempt_id = start_attempt(db, quiz.id, user=user).attempt_id

    submit_attempt(db, attempt_id, _answers(quiz), user=user)

    db.refresh(quiz)
    assert quiz.total_attempts == 1
    assert quiz.average_score == 100
    assert quiz.pass_rate == 100

    record = db.query(UserProgress).filter_by(user_id=user.id).one()
    assert [qs.quiz_id for qs in record.quiz_scores] == [quiz.id]
    assert record.progress_percentage == 50


def test_failing_score_uses_default_passing_score(db, make_user, make_course):
    user = make_user()
    quiz = make_course(layout=[["quiz"]], questions_per_quiz=3).quizzes[0]
    attempt_id = start_attempt(db, quiz.id, user=user).attempt_id
    questions = quiz.questions

    result = submit_attempt(
        db,
        attempt_id,
        [
            {"question": questions[0].id, "answer": True},
            {"question": questions[1].id, "answer": True},
            {"question": questions[2].id, "answer": False},
        ],
        user=user,
    )
    assert result.score == 67
    assert result.passed is False


def test_submit_someone_elses_attempt_is_not_found(db, make_user, make_course):
    owner, intruder = make_user(), make_user()
    quiz = make_course(layout=[["quiz"]]).quizzes[0]
    attempt_id = start_attempt(db, quiz.id, user=owner).attempt_id

    with pytest.raises(NotFound):
        submit_attempt(db, attempt_id, _answers(quiz), user=intruder)
    with pytest.raises(NotFound):
        submit_attempt(db, 424242, _answers(quiz), user=owner)


def test_submit_stored_attempt_requires_user(db, make_user, make_course):
    quiz = make_course(layout=[["quiz"]]).quizzes[0]
    attempt_id = start_attempt(db, quiz.id, user=make_user()).attempt_id
    with pytest.raises(Unauthorized):
        submit_attempt(db, attempt_id, _answers(quiz), user=None)


def test_resubmission_is_rejected(db, make_user, make_course):
    user = make_user()
    quiz = make_course(layout=[["quiz"]]).quizzes[0]
    attempt_id = start_attempt(db, quiz.id, user=user).attempt_id
    submit_attempt(db, attempt_id, _answers(quiz), user=user)

    with pytest.raises(AttemptAlreadySubmitted):
        submit_attempt(db, attempt_id, _answers(quiz, False), user=user)
    assert db.get(QuizAttempt, attempt_id).score == 100


def test_side_effect_failure_keeps_score_and_requeues(db, make_user, make_course, mock_celery_tasks):
    user = make_user()
    quiz = make_course(layout=[["quiz"]]).quizzes[0]
    quiz_id = quiz.id
    attempt_id = start_attempt(db, quiz_id, user=user).attempt_id

    with patch(
        "courseflow.services.analytics.recompute_quiz_analytics",
        side_effect=RuntimeError("analytics store down"),
    ):
        result = submit_attempt(db, attempt_id, _answers(quiz), user=user)

    assert result.score == 100
    assert result.passed is True
    analytics_outcome, progress_outcome = result.side_effects
    assert analytics_outcome.ok is False
    assert analytics_outcome.requeued is True
    assert "analytics store down" in analytics_outcome.error
    assert progress_outcome.ok is True
    mock_celery_tasks.analytics.delay.assert_called_once_with(quiz_id)
    mock_celery_tasks.progress.delay.assert_not_called()

    assert db.get(QuizAttempt, attempt_id).status == AttemptStatusEnum.COMPLETED


def test_requeue_failure_is_reported(db, make_user, make_course, mock_celery_tasks):
    user = make_user()
    quiz = make_course(layout=[["quiz"]]).quizzes[0]
    attempt_id = start_attempt(db, quiz.id, user=user).attempt_id
    mock_celery_tasks.progress.delay.side_effect = ConnectionError("broker unreachable")

    with patch(
        "courseflow.services.progress.record_quiz_completion",
        side_effect=RuntimeError("progress store down"),
    ):
        result = submit_attempt(db, attempt_id, _answers(quiz), user=user)

    assert result.score == 100
    progress_outcome = result.side_effects[1]
    assert progress_outcome.ok is False
    assert progress_outcome.requeued is False
    mock_celery_tasks.progress.delay.assert_called_once_with(str(user.id), quiz.id, 100, True)
