"""Shared pytest fixtures for backend tests."""

import uuid
from dataclasses import dataclass, field
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from courseflow.core.security import create_access_token, hash_password
from courseflow.db.models import (
    Course,
    ItemKindEnum,
    Lesson,
    Module,
    ModuleContent,
    Question,
    QuestionTypeEnum,
    Quiz,
    QuizQuestion,
    RoleEnum,
    User,
)
from courseflow.db.session import Base, get_db
from courseflow.main import app

# Use an in-memory SQLite database for testing with static pool
SQLALCHEMY_TEST_URL = "sqlite:///:memory:"


@pytest.fixture(autouse=True)
def mock_celery_tasks():
    """Mock Celery tasks for all tests to prevent Redis connection."""
    analytics_task = MagicMock()
    analytics_task.delay = MagicMock(return_value=MagicMock(id="fake-task-id"))
    progress_task = MagicMock()
    progress_task.delay = MagicMock(return_value=MagicMock(id="fake-task-id"))

    # Patch at the import point in the attempts service
    with patch(
        "courseflow.services.attempts.recompute_quiz_analytics_task", analytics_task
    ), patch("courseflow.services.attempts.record_quiz_completion_task", progress_task):
        yield SimpleNamespace(analytics=analytics_task, progress=progress_task)


@pytest.fixture(scope="function")
def engine():
    """A fresh in-memory database per test."""
    engine = create_engine(
        SQLALCHEMY_TEST_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,  # Use StaticPool to keep connection alive
        echo=False,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(engine):
    """Get a fresh DB session for each test."""
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def client(db: Session):
    """FastAPI test client with overridden DB dependency."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    # Remove TrustedHostMiddleware for tests to allow 'testserver' host
    app.user_middleware = [m for m in app.user_middleware if "TrustedHost" not in str(m)]

    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ── Builders ──────────────────────────────────────────────────────────────────


@pytest.fixture
def make_user(db: Session):
    def _make(email: str | None = None, role: RoleEnum = RoleEnum.STUDENT) -> User:
        user = User(
            email=email or f"learner_{uuid.uuid4().hex[:8]}@ex.com",
            hashed_password=hash_password("testpwd1"),
            full_name="Test Learner",
            role=role,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user: User) -> dict:
        token = create_access_token(user.id, user.role.value)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@dataclass
class BuiltCourse:
    course: Course
    modules: list[Module] = field(default_factory=list)
    lessons: list[Lesson] = field(default_factory=list)
    quizzes: list[Quiz] = field(default_factory=list)


def add_questions(db: Session, quiz: Quiz, questions: list[Question]) -> list[Question]:
    """Attach *questions* to *quiz* in the given order."""
    db.add_all(questions)
    db.flush()
    offset = len(quiz.quiz_questions)
    for i, question in enumerate(questions):
        db.add(QuizQuestion(quiz_id=quiz.id, question_id=question.id, position=offset + i))
    db.commit()
    db.refresh(quiz)
    return questions


def true_false(correct: bool = True, points: int = 1) -> Question:
    return Question(
        text="True or false?",
        question_type=QuestionTypeEnum.TRUE_FALSE,
        correct_boolean=correct,
        points=points,
    )


def multiple_choice(correct: str, wrong: list[str], points: int = 1) -> Question:
    options = [{"text": correct, "is_correct": True}]
    options += [{"text": w, "is_correct": False} for w in wrong]
    return Question(
        text=f"Pick {correct}",
        question_type=QuestionTypeEnum.MULTIPLE_CHOICE,
        options=options,
        points=points,
    )


@pytest.fixture
def make_course(db: Session):
    """Build a course from a layout like ``[["lesson", "quiz"], ["lesson"]]``.

    With ``explicit=True`` every module gets ``module_contents`` rows in
    layout order; otherwise lessons and quizzes only carry an ``order``.
    Every quiz gets ``questions_per_quiz`` true/false questions whose
    correct answer is ``True``.
    """

    def _make(
        layout=(("lesson", "lesson", "quiz"),),
        free_item_count: int = 0,
        explicit: bool = True,
        questions_per_quiz: int = 2,
        **quiz_settings,
    ) -> BuiltCourse:
        course = Course(title="Test course", free_item_count=free_item_count)
        db.add(course)
        db.flush()
        built = BuiltCourse(course=course)

        for m_index, kinds in enumerate(layout):
            module = Module(course_id=course.id, title=f"Module {m_index + 1}", position=m_index)
            db.add(module)
            db.flush()
            built.modules.append(module)

            for pos, kind in enumerate(kinds):
                if kind == "lesson":
                    lesson = Lesson(module_id=module.id, title=f"Lesson {pos}", order=pos)
                    db.add(lesson)
                    db.flush()
                    built.lessons.append(lesson)
                    entry = dict(kind=ItemKindEnum.LESSON, lesson_id=lesson.id)
                else:
                    quiz = Quiz(
                        title=f"Quiz {pos}",
                        course_id=course.id,
                        module_id=module.id,
                        order=pos,
                        **quiz_settings,
                    )
                    db.add(quiz)
                    db.flush()
                    for i in range(questions_per_quiz):
                        question = true_false(True)
                        db.add(question)
                        db.flush()
                        db.add(QuizQuestion(quiz_id=quiz.id, question_id=question.id, position=i))
                    built.quizzes.append(quiz)
                    entry = dict(kind=ItemKindEnum.QUIZ, quiz_id=quiz.id)
                if explicit:
                    db.add(ModuleContent(module_id=module.id, position=pos, **entry))

        db.commit()
        db.refresh(course)
        return built

    return _make
