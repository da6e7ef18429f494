"""Progress aggregator: the single per-user, per-course completion record.

Writers:
  - :func:`record_lesson_progress`  (lesson watch / completion endpoint)
  - :func:`record_quiz_completion`  (after a graded quiz submission)

Reader:
  - :func:`get_progress`  (pure projection; only lazily creates the record)

Totals always come from the curriculum sequencer, so "how many items does
this course have" is answered the same way everywhere.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from courseflow.config import settings
from courseflow.core.clock import utcnow
from courseflow.core.errors import NotFound
from courseflow.db.models import (
    AttemptStatusEnum,
    CompletedLesson,
    Course,
    ItemKindEnum,
    LessonScore,
    LessonState,
    ProgressStatusEnum,
    Quiz,
    QuizAttempt,
    QuizScore,
    UserProgress,
)
from courseflow.services.scoring import percentage, round_half_up
from courseflow.services.sequencer import (
    NOT_FOUND,
    OrderedItem,
    build_sequence,
    module_sequence,
    position_of,
)

logger = logging.getLogger(__name__)


# ── Result types ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProgressSummary:
    total_items: int
    completed_items: int
    progress_percentage: int
    status: ProgressStatusEnum


@dataclass
class LessonProgressItem:
    lesson_id: int
    is_completed: bool
    progress: int
    position_seconds: float | None = None
    last_watched_at: datetime | None = None


@dataclass
class ModuleProgressItem:
    module_id: int
    total_items: int
    completed_items: int
    completed: bool


@dataclass
class CourseProgress:
    course_id: int
    total_lessons: int
    completed_lessons: int
    progress_percentage: int
    status: ProgressStatusEnum
    quiz_count: int
    enrolled_at: datetime | None = None
    last_accessed_at: datetime | None = None
    next_incomplete_item: OrderedItem | None = None
    lesson_progress: list[LessonProgressItem] = field(default_factory=list)
    completed_quizzes: list[int] = field(default_factory=list)
    modules_progress: list[ModuleProgressItem] = field(default_factory=list)


# ── Pure helpers ──────────────────────────────────────────────────────────────


def progress_percentage(completed_items: int, total_items: int) -> int:
    """Integer percentage in [0, 100]; 0 for an empty course."""
    return max(0, min(100, percentage(completed_items, total_items)))


def derive_status(pct: int) -> ProgressStatusEnum:
    if pct <= 0:
        return ProgressStatusEnum.NOT_STARTED
    if pct >= 100:
        return ProgressStatusEnum.COMPLETED
    return ProgressStatusEnum.IN_PROGRESS


def is_auto_completed(watch_progress: float | None) -> bool:
    return watch_progress is not None and watch_progress >= settings.AUTO_COMPLETE_THRESHOLD


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _completed_lesson_ids(progress: UserProgress) -> list[int]:
    return [c.lesson_id for c in progress.completed_lessons]


def _passed_quiz_ids(progress: UserProgress) -> list[int]:
    return [qs.quiz_id for qs in progress.quiz_scores if qs.passed]


def _is_done(item: OrderedItem, lessons: set[int], quizzes: set[int]) -> bool:
    if item.type == ItemKindEnum.LESSON:
        return item.id in lessons
    return item.id in quizzes


# ── Record lookup ─────────────────────────────────────────────────────────────


def _load_course(db: Session, course_id: int) -> Course:
    course = db.get(Course, course_id)
    if course is None:
        raise NotFound("Course not found")
    return course


def find_progress(db: Session, user_id: uuid.UUID, course_id: int) -> UserProgress | None:
    return (
        db.query(UserProgress)
        .filter(UserProgress.user_id == user_id, UserProgress.course_id == course_id)
        .first()
    )


def get_or_create_progress(
    db: Session,
    user_id: uuid.UUID,
    course_id: int,
    now: datetime | None = None,
) -> UserProgress:
    """Return the (user, course) record, creating an empty one if needed."""
    progress = find_progress(db, user_id, course_id)
    if progress is not None:
        return progress

    progress = UserProgress(
        user_id=user_id,
        course_id=course_id,
        status=ProgressStatusEnum.NOT_STARTED,
        progress_percentage=0,
        enrolled_at=now or utcnow(),
    )
    db.add(progress)
    try:
        db.flush()
    except IntegrityError:
        # Another request created it between our read and insert
        db.rollback()
        progress = find_progress(db, user_id, course_id)
        if progress is None:
            raise
    else:
        logger.info("Created progress record for user %s in course %s", user_id, course_id)
    return progress


# ── Totals / status ───────────────────────────────────────────────────────────


def _count_done(sequence: list[OrderedItem], progress: UserProgress) -> int:
    """Completed items that are part of the course; stale ids are ignored."""
    lessons = set(_completed_lesson_ids(progress))
    quizzes = set(_passed_quiz_ids(progress))
    return sum(1 for item in sequence if _is_done(item, lessons, quizzes))


def _apply_totals(progress: UserProgress, course: Course, now: datetime) -> ProgressSummary:
    sequence = build_sequence(course)
    total_items = len(sequence)
    completed_items = _count_done(sequence, progress)
    pct = progress_percentage(completed_items, total_items)
    status = derive_status(pct)

    progress.progress_percentage = pct
    progress.status = status
    progress.last_accessed_at = now
    if status != ProgressStatusEnum.NOT_STARTED and progress.started_at is None:
        progress.started_at = now
    if status == ProgressStatusEnum.COMPLETED and progress.completed_at is None:
        progress.completed_at = now

    return ProgressSummary(
        total_items=total_items,
        completed_items=completed_items,
        progress_percentage=pct,
        status=status,
    )


# ── Writers ───────────────────────────────────────────────────────────────────


def _upsert_lesson_state(
    progress: UserProgress,
    lesson_id: int,
    is_completed: bool,
    watch_progress: float | None,
    position_seconds: float | None,
    duration_seconds: float | None,
    now: datetime,
) -> None:
    state = next((s for s in progress.lesson_states if s.lesson_id == lesson_id), None)
    if state is None:
        state = LessonState(lesson_id=lesson_id)
        progress.lesson_states.append(state)

    if watch_progress is not None:
        state.progress = round_half_up(_clamp(watch_progress, 0, 100))
    else:
        state.progress = 100 if is_completed else 0
    if position_seconds is not None:
        state.position_seconds = max(0.0, position_seconds)
    if duration_seconds is not None:
        state.duration_seconds = max(0.0, duration_seconds)
    state.last_watched_at = now


def record_lesson_progress(
    db: Session,
    user_id: uuid.UUID,
    course_id: int,
    lesson_id: int,
    is_completed: bool,
    watch_progress: float | None = None,
    position_seconds: float | None = None,
    duration_seconds: float | None = None,
    now: datetime | None = None,
) -> ProgressSummary:
    """Store a lesson watch update and recompute the course totals.

    Watching at least ``AUTO_COMPLETE_THRESHOLD`` percent completes the
    lesson even when ``is_completed`` is False; an explicit False below the
    threshold un-completes it.

    Raises:
        NotFound: unknown course, or a lesson that is not in its sequence
    """
    now = now or utcnow()
    course = _load_course(db, course_id)
    if position_of(build_sequence(course), ItemKindEnum.LESSON, lesson_id) == NOT_FOUND:
        raise NotFound("Lesson not found in this course")
    progress = get_or_create_progress(db, user_id, course_id, now=now)

    clamped = _clamp(watch_progress, 0, 100) if watch_progress is not None else None
    _upsert_lesson_state(
        progress, lesson_id, is_completed, clamped, position_seconds, duration_seconds, now
    )

    effective_completed = is_completed or is_auto_completed(clamped)
    existing = next((c for c in progress.completed_lessons if c.lesson_id == lesson_id), None)
    if effective_completed:
        if existing is None:
            progress.completed_lessons.append(CompletedLesson(lesson_id=lesson_id, completed_at=now))
    elif existing is not None:
        progress.completed_lessons.remove(existing)

    summary = _apply_totals(progress, course, now)
    db.commit()

    logger.info(
        "Lesson %s progress for user %s: completed=%s → %d%% (%s)",
        lesson_id, user_id, effective_completed, summary.progress_percentage, summary.status.value,
    )
    return summary


def record_quiz_completion(
    db: Session,
    user_id: uuid.UUID,
    quiz_id: int,
    score: int,
    passed: bool,
    now: datetime | None = None,
) -> ProgressSummary:
    """File a graded quiz result under the quiz's course progress record."""
    now = now or utcnow()
    quiz = db.get(Quiz, quiz_id)
    if quiz is None:
        raise NotFound("Quiz not found")
    course = _load_course(db, quiz.course_id)
    progress = get_or_create_progress(db, user_id, course.id, now=now)

    attempts = (
        db.query(QuizAttempt)
        .filter(
            QuizAttempt.user_id == user_id,
            QuizAttempt.quiz_id == quiz_id,
            QuizAttempt.status == AttemptStatusEnum.COMPLETED,
        )
        .count()
    )

    entry = next((qs for qs in progress.quiz_scores if qs.quiz_id == quiz_id), None)
    if entry is None:
        entry = QuizScore(quiz_id=quiz_id)
        progress.quiz_scores.append(entry)
    entry.score = score
    entry.attempts = attempts
    entry.passed = passed
    entry.completed_at = now

    if quiz.lesson_id is not None:
        lesson_entry = next(
            (ls for ls in progress.lesson_scores if ls.lesson_id == quiz.lesson_id), None
        )
        if lesson_entry is None:
            lesson_entry = LessonScore(lesson_id=quiz.lesson_id)
            progress.lesson_scores.append(lesson_entry)
        lesson_entry.score = score
        lesson_entry.attempts = attempts
        lesson_entry.completed_at = now

    summary = _apply_totals(progress, course, now)
    db.commit()
    return summary


# ── Reader ────────────────────────────────────────────────────────────────────


def get_progress(db: Session, user_id: uuid.UUID, course_id: int) -> CourseProgress:
    """Build the course progress read model for one learner."""
    course = _load_course(db, course_id)
    progress = find_progress(db, user_id, course_id)
    if progress is None:
        progress = get_or_create_progress(db, user_id, course_id)
        db.commit()

    completed_lessons = set(_completed_lesson_ids(progress))
    passed_quizzes = _passed_quiz_ids(progress)
    passed_set = set(passed_quizzes)
    states = {s.lesson_id: s for s in progress.lesson_states}

    sequence = build_sequence(course)
    completed_items = _count_done(sequence, progress)
    pct = progress_percentage(completed_items, len(sequence))

    lesson_progress: list[LessonProgressItem] = []
    for item in sequence:
        if item.type != ItemKindEnum.LESSON:
            continue
        done = item.id in completed_lessons
        state = states.get(item.id)
        lesson_progress.append(
            LessonProgressItem(
                lesson_id=item.id,
                is_completed=done,
                progress=100 if done else (state.progress if state else 0),
                position_seconds=state.position_seconds if state else None,
                last_watched_at=state.last_watched_at if state else None,
            )
        )

    modules_progress: list[ModuleProgressItem] = []
    for module in course.modules:
        items = module_sequence(module)
        done_count = sum(1 for it in items if _is_done(it, completed_lessons, passed_set))
        modules_progress.append(
            ModuleProgressItem(
                module_id=module.id,
                total_items=len(items),
                completed_items=done_count,
                completed=bool(items) and done_count == len(items),
            )
        )

    next_item = next(
        (it for it in sequence if not _is_done(it, completed_lessons, passed_set)), None
    )

    return CourseProgress(
        course_id=course.id,
        total_lessons=len(sequence),
        completed_lessons=completed_items,
        progress_percentage=pct,
        status=derive_status(pct),
        quiz_count=sum(1 for it in sequence if it.type == ItemKindEnum.QUIZ),
        enrolled_at=progress.enrolled_at,
        last_accessed_at=progress.last_accessed_at,
        next_incomplete_item=next_item,
        lesson_progress=lesson_progress,
        completed_quizzes=passed_quizzes,
        modules_progress=modules_progress,
    )
