"""Pydantic schemas: re-exported for convenience."""

from courseflow.schemas.common import CamelModel, ErrorResponse  # noqa: F401
from courseflow.schemas.user import (  # noqa: F401
    AuthResponse,
    UserCreate,
    UserLogin,
    UserRead,
)
from courseflow.schemas.quiz import (  # noqa: F401
    AttemptStarted,
    AttemptSubmit,
    QuizAnalyticsRead,
    QuizStartInfo,
    SubmitResult,
    SubmittedAnswer,
)
from courseflow.schemas.progress import (  # noqa: F401
    CourseProgressRead,
    LessonProgressResponse,
    LessonProgressUpdate,
    ProgressSummaryRead,
)
