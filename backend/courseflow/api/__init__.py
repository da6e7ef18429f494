"""API route package: imports all routers for main.py."""

from courseflow.api.health import router as health_router  # noqa: F401
from courseflow.api.users import router as users_router  # noqa: F401
from courseflow.api.quizzes import router as quizzes_router  # noqa: F401
from courseflow.api.progress import router as progress_router  # noqa: F401
