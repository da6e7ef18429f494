"""Course progress schemas."""

from datetime import datetime

from pydantic import Field

from courseflow.db.models import ItemKindEnum, ProgressStatusEnum
from courseflow.schemas.common import CamelModel


class OrderedItemRead(CamelModel):
    type: ItemKindEnum
    id: int


class LessonProgressRead(CamelModel):
    lesson_id: int
    is_completed: bool
    progress: int
    position_seconds: float | None = None
    last_watched_at: datetime | None = None


class ModuleProgressRead(CamelModel):
    module_id: int
    total_items: int
    completed_items: int
    completed: bool


class CourseProgressRead(CamelModel):
    """GET /api/progress?courseId=…: lesson and quiz completion for one course.

    ``total_lessons`` / ``completed_lessons`` count every sequence item
    (lessons *and* quizzes) to stay compatible with the course player.
    """

    course_id: int
    total_lessons: int
    completed_lessons: int
    progress_percentage: int
    status: ProgressStatusEnum
    quiz_count: int
    enrolled_at: datetime | None = None
    last_accessed_at: datetime | None = None
    next_incomplete_item: OrderedItemRead | None = None
    lesson_progress: list[LessonProgressRead] = []
    completed_quizzes: list[int] = []
    modules_progress: list[ModuleProgressRead] = []


class LessonProgressUpdate(CamelModel):
    """POST /api/progress body."""

    course_id: int
    lesson_id: int
    is_completed: bool = False
    progress: float | None = Field(default=None)
    position_seconds: float | None = None
    duration_seconds: float | None = None


class ProgressSummaryRead(CamelModel):
    total_lessons: int
    completed_lessons: int
    progress_percentage: int
    status: ProgressStatusEnum


class LessonProgressResponse(CamelModel):
    success: bool = True
    progress: ProgressSummaryRead
