"""Background tasks executed by Celery workers.

Both tasks re-run an aggregate update that failed inside the submission
request.  The updates are full recomputations / upserts, so running one
more than once is harmless.
"""

import logging
import uuid

from courseflow.celery_app import celery_app
from courseflow.config import settings
from courseflow.core.errors import NotFound
from courseflow.db.session import get_session_factory
from courseflow.services.analytics import recompute_quiz_analytics
from courseflow.services.progress import record_quiz_completion

logger = logging.getLogger(__name__)


@celery_app.task(
    bind=True, name="recompute_quiz_analytics", max_retries=settings.SIDE_EFFECT_RETRY_LIMIT
)
def recompute_quiz_analytics_task(self, quiz_id: int) -> dict:
    """Recompute the analytics rollup of one quiz."""
    factory = get_session_factory()
    db = factory()
    try:
        rollup = recompute_quiz_analytics(db, quiz_id)
        return {"success": True, "quiz_id": quiz_id, "total_attempts": rollup.total_attempts}
    except NotFound:
        logger.error("Quiz %s not found; skipping analytics recompute", quiz_id)
        return {"success": False, "error": "quiz_not_found"}
    except Exception as exc:
        logger.exception("Analytics recompute failed for quiz %s", quiz_id)
        db.rollback()
        # Retry with exponential back-off (10s, 30s, 90s)
        raise self.retry(exc=exc, countdown=10 * (3**self.request.retries))
    finally:
        db.close()


@celery_app.task(
    bind=True, name="record_quiz_completion", max_retries=settings.SIDE_EFFECT_RETRY_LIMIT
)
def record_quiz_completion_task(
    self, user_id: str, quiz_id: int, score: int, passed: bool
) -> dict:
    """File a graded quiz result under the learner's course progress."""
    factory = get_session_factory()
    db = factory()
    try:
        summary = record_quiz_completion(db, uuid.UUID(user_id), quiz_id, score, passed)
        return {
            "success": True,
            "quiz_id": quiz_id,
            "progress_percentage": summary.progress_percentage,
        }
    except NotFound:
        logger.error("Quiz %s or its course not found; skipping progress update", quiz_id)
        return {"success": False, "error": "quiz_not_found"}
    except Exception as exc:
        logger.exception("Progress update failed for user %s, quiz %s", user_id, quiz_id)
        db.rollback()
        raise self.retry(exc=exc, countdown=10 * (3**self.request.retries))
    finally:
        db.close()
