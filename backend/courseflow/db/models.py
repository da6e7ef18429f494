"""SQLAlchemy ORM models for the course progress & quiz engine.

Tables
------
- users                  – learners / admins (authentication only)
- courses                – ordered modules + number of free leading items
- modules                – course sections holding lessons and quizzes
- module_contents        – explicit ordered lesson/quiz entries of a module
- lessons                – video / reading units
- quizzes                – assessments with settings, window and analytics
- questions              – typed questions with correctness data
- quiz_questions         – ordered quiz ↔ question join
- quiz_attempts          – one learner taking one quiz once
- attempt_answers        – graded per‑question answers of an attempt
- user_progress          – per‑user per‑course completion record
- progress_completed_lessons / progress_lesson_states /
  progress_quiz_scores / progress_lesson_scores – progress child rows
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from courseflow.db.session import Base


# ── helpers ───────────────────────────────────────────────────────────────────


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> uuid.UUID:
    return uuid.uuid4()


# ── Enums (stored as VARCHAR via SQLAlchemy Enum) ─────────────────────────────


class RoleEnum(str, enum.Enum):
    STUDENT = "student"
    ADMIN = "admin"


class ItemKindEnum(str, enum.Enum):
    LESSON = "lesson"
    QUIZ = "quiz"


class ContentStatusEnum(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class QuestionTypeEnum(str, enum.Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    TRUE_FALSE = "true-false"
    SHORT_ANSWER = "short-answer"
    FILL_BLANK = "fill-blank"


class AttemptStatusEnum(str, enum.Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class ProgressStatusEnum(str, enum.Enum):
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    PAUSED = "paused"
    DROPPED = "dropped"


# ── Users ─────────────────────────────────────────────────────────────────────


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=_uuid
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255))
    full_name: Mapped[str] = mapped_column(String(255))
    role: Mapped[RoleEnum] = mapped_column(
        Enum(RoleEnum, name="role_enum"), default=RoleEnum.STUDENT
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    attempts: Mapped[list["QuizAttempt"]] = relationship(back_populates="user")
    progress_records: Mapped[list["UserProgress"]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )


# ── Courses & modules ─────────────────────────────────────────────────────────


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255))
    free_item_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    modules: Mapped[list["Module"]] = relationship(
        back_populates="course",
        cascade="all, delete-orphan",
        order_by="Module.position",
    )


class Module(Base):
    __tablename__ = "modules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    course_id: Mapped[int] = mapped_column(Integer, ForeignKey("courses.id"), index=True)
    title: Mapped[str] = mapped_column(String(255))
    position: Mapped[int] = mapped_column(Integer, default=0)  # index in the course

    course: Mapped["Course"] = relationship(back_populates="modules")
    contents: Mapped[list["ModuleContent"]] = relationship(
        back_populates="module",
        cascade="all, delete-orphan",
        order_by="ModuleContent.position",
    )
    lessons: Mapped[list["Lesson"]] = relationship(back_populates="module")
    quizzes: Mapped[list["Quiz"]] = relationship(back_populates="module")


class ModuleContent(Base):
    """One ordered entry of a module: either a lesson or a quiz."""

    __tablename__ = "module_contents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module_id: Mapped[int] = mapped_column(Integer, ForeignKey("modules.id"), index=True)
    position: Mapped[int] = mapped_column(Integer, default=0)
    kind: Mapped[ItemKindEnum] = mapped_column(Enum(ItemKindEnum, name="item_kind_enum"))
    lesson_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("lessons.id"), nullable=True
    )
    quiz_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("quizzes.id"), nullable=True
    )

    module: Mapped["Module"] = relationship(back_populates="contents")


# ── Lessons ───────────────────────────────────────────────────────────────────


class Lesson(Base):
    __tablename__ = "lessons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module_id: Mapped[int] = mapped_column(Integer, ForeignKey("modules.id"), index=True)
    title: Mapped[str] = mapped_column(String(255))
    order: Mapped[int] = mapped_column(Integer, default=0)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[ContentStatusEnum] = mapped_column(
        Enum(ContentStatusEnum, name="content_status_enum"),
        default=ContentStatusEnum.PUBLISHED,
    )

    module: Mapped["Module"] = relationship(back_populates="lessons")


# ── Questions ─────────────────────────────────────────────────────────────────


class Question(Base):
    __tablename__ = "questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    text: Mapped[str] = mapped_column(Text)
    question_type: Mapped[QuestionTypeEnum] = mapped_column(
        Enum(QuestionTypeEnum, name="question_type_enum"),
        default=QuestionTypeEnum.MULTIPLE_CHOICE,
    )
    # [{"text": "...", "is_correct": bool}, ...] for multiple-choice
    options: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)
    correct_boolean: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    correct_answer: Mapped[str | None] = mapped_column(Text, nullable=True)
    acceptable_answers: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    points: Mapped[int] = mapped_column(Integer, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )


# ── Quizzes ───────────────────────────────────────────────────────────────────


class Quiz(Base):
    __tablename__ = "quizzes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255))
    course_id: Mapped[int] = mapped_column(Integer, ForeignKey("courses.id"), index=True)
    module_id: Mapped[int] = mapped_column(Integer, ForeignKey("modules.id"), index=True)
    lesson_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("lessons.id"), nullable=True
    )
    order: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[ContentStatusEnum] = mapped_column(
        Enum(ContentStatusEnum, name="content_status_enum", create_constraint=False),
        default=ContentStatusEnum.PUBLISHED,
    )

    # settings
    passing_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    max_attempts: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # availability window
    available_from: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    available_until: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # analytics rollup (recomputed after every completed attempt)
    total_attempts: Mapped[int] = mapped_column(Integer, default=0)
    average_score: Mapped[int] = mapped_column(Integer, default=0)
    pass_rate: Mapped[int] = mapped_column(Integer, default=0)
    average_time_spent: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    course: Mapped["Course"] = relationship("Course")
    module: Mapped["Module"] = relationship(back_populates="quizzes")
    quiz_questions: Mapped[list["QuizQuestion"]] = relationship(
        back_populates="quiz",
        cascade="all, delete-orphan",
        order_by="QuizQuestion.position",
    )

    @property
    def questions(self) -> list["Question"]:
        return [qq.question for qq in self.quiz_questions if qq.question is not None]


class QuizQuestion(Base):
    """Join table between Quiz and Question with ordering."""

    __tablename__ = "quiz_questions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quiz_id: Mapped[int] = mapped_column(Integer, ForeignKey("quizzes.id"))
    question_id: Mapped[int] = mapped_column(Integer, ForeignKey("questions.id"))
    position: Mapped[int] = mapped_column(Integer, default=0)

    quiz: Mapped["Quiz"] = relationship(back_populates="quiz_questions")
    question: Mapped["Question"] = relationship("Question")


# ── Attempts ──────────────────────────────────────────────────────────────────


class QuizAttempt(Base):
    __tablename__ = "quiz_attempts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), index=True
    )
    quiz_id: Mapped[int] = mapped_column(Integer, ForeignKey("quizzes.id"), index=True)
    attempt_number: Mapped[int] = mapped_column(Integer)
    status: Mapped[AttemptStatusEnum] = mapped_column(
        Enum(AttemptStatusEnum, name="attempt_status_enum"),
        default=AttemptStatusEnum.IN_PROGRESS,
    )
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    time_spent: Mapped[int | None] = mapped_column(Integer, nullable=True)  # seconds

    # scoring
    total_points: Mapped[int] = mapped_column(Integer, default=0)
    max_points: Mapped[int] = mapped_column(Integer, default=0)
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    passed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    user: Mapped["User"] = relationship(back_populates="attempts")
    quiz: Mapped["Quiz"] = relationship("Quiz")
    answers: Mapped[list["AttemptAnswer"]] = relationship(
        back_populates="attempt",
        cascade="all, delete-orphan",
        order_by="AttemptAnswer.id",
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "quiz_id", "attempt_number", name="uq_attempt_user_quiz_number"
        ),
    )


class AttemptAnswer(Base):
    """Individual answer within an attempt."""

    __tablename__ = "attempt_answers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    attempt_id: Mapped[int] = mapped_column(Integer, ForeignKey("quiz_attempts.id"))
    question_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("questions.id"), nullable=True
    )  # None when the submitted reference matched no quiz question
    answer: Mapped[Any] = mapped_column(JSON, nullable=True)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False)
    points_awarded: Mapped[int] = mapped_column(Integer, default=0)

    attempt: Mapped["QuizAttempt"] = relationship(back_populates="answers")


# ── Progress (per‑user, per‑course completion record) ─────────────────────────


class UserProgress(Base):
    __tablename__ = "user_progress"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), index=True
    )
    course_id: Mapped[int] = mapped_column(Integer, ForeignKey("courses.id"), index=True)
    status: Mapped[ProgressStatusEnum] = mapped_column(
        Enum(ProgressStatusEnum, name="progress_status_enum"),
        default=ProgressStatusEnum.NOT_STARTED,
    )
    progress_percentage: Mapped[int] = mapped_column(Integer, default=0)
    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_accessed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    user: Mapped["User"] = relationship(back_populates="progress_records")
    course: Mapped["Course"] = relationship("Course")
    completed_lessons: Mapped[list["CompletedLesson"]] = relationship(
        back_populates="progress",
        cascade="all, delete-orphan",
        order_by="CompletedLesson.id",
    )
    lesson_states: Mapped[list["LessonState"]] = relationship(
        back_populates="progress_record",
        cascade="all, delete-orphan",
        order_by="LessonState.id",
    )
    quiz_scores: Mapped[list["QuizScore"]] = relationship(
        back_populates="progress",
        cascade="all, delete-orphan",
        order_by="QuizScore.id",
    )
    lesson_scores: Mapped[list["LessonScore"]] = relationship(
        back_populates="progress",
        cascade="all, delete-orphan",
        order_by="LessonScore.id",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "course_id", name="uq_user_course_progress"),
    )


class CompletedLesson(Base):
    __tablename__ = "progress_completed_lessons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    progress_id: Mapped[int] = mapped_column(Integer, ForeignKey("user_progress.id"))
    lesson_id: Mapped[int] = mapped_column(Integer)
    completed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow
    )

    progress: Mapped["UserProgress"] = relationship(back_populates="completed_lessons")

    __table_args__ = (
        UniqueConstraint("progress_id", "lesson_id", name="uq_progress_completed_lesson"),
    )


class LessonState(Base):
    """Per‑lesson playback state (watch percentage and position)."""

    __tablename__ = "progress_lesson_states"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    progress_id: Mapped[int] = mapped_column(Integer, ForeignKey("user_progress.id"))
    lesson_id: Mapped[int] = mapped_column(Integer)
    progress: Mapped[int] = mapped_column(Integer, default=0)
    position_seconds: Mapped[float | None] = mapped_column(nullable=True)
    duration_seconds: Mapped[float | None] = mapped_column(nullable=True)
    last_watched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    progress_record: Mapped["UserProgress"] = relationship(
        "UserProgress", back_populates="lesson_states"
    )

    __table_args__ = (
        UniqueConstraint("progress_id", "lesson_id", name="uq_progress_lesson_state"),
    )


class QuizScore(Base):
    __tablename__ = "progress_quiz_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    progress_id: Mapped[int] = mapped_column(Integer, ForeignKey("user_progress.id"))
    quiz_id: Mapped[int] = mapped_column(Integer)
    score: Mapped[int] = mapped_column(Integer, default=0)
    attempts: Mapped[int] = mapped_column(Integer, default=1)
    passed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    progress: Mapped["UserProgress"] = relationship(back_populates="quiz_scores")

    __table_args__ = (
        UniqueConstraint("progress_id", "quiz_id", name="uq_progress_quiz_score"),
    )


class LessonScore(Base):
    """Quiz result filed under the lesson the quiz is linked to."""

    __tablename__ = "progress_lesson_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    progress_id: Mapped[int] = mapped_column(Integer, ForeignKey("user_progress.id"))
    lesson_id: Mapped[int] = mapped_column(Integer)
    score: Mapped[int] = mapped_column(Integer, default=0)
    attempts: Mapped[int] = mapped_column(Integer, default=1)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    progress: Mapped["UserProgress"] = relationship(back_populates="lesson_scores")

    __table_args__ = (
        UniqueConstraint("progress_id", "lesson_id", name="uq_progress_lesson_score"),
    )
