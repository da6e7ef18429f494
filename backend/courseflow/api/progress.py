"""Course progress routes."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from courseflow.api.deps import get_current_user
from courseflow.core.errors import NotFound
from courseflow.db.models import User
from courseflow.db.session import get_db
from courseflow.schemas.progress import (
    CourseProgressRead,
    LessonProgressResponse,
    LessonProgressUpdate,
    ProgressSummaryRead,
)
from courseflow.services import progress as progress_service

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_course_id(raw: str | None) -> int:
    if raw is None or not raw.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Course ID is required"
        )
    try:
        return int(raw)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid course ID"
        )


@router.get("/", response_model=CourseProgressRead)
def get_progress(
    course_id: str | None = Query(default=None, alias="courseId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Return the current learner's progress through one course."""
    key = _parse_course_id(course_id)
    try:
        result = progress_service.get_progress(db, current_user.id, key)
    except NotFound:
        raise
    except Exception:
        logger.exception("Failed to load progress for course %s", key)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load progress",
        )
    return CourseProgressRead.model_validate(result)


async def _json_object_body(request: Request) -> dict[str, Any]:
    """Request body as a non-empty JSON object, or 400."""
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be valid JSON"
        )
    if not isinstance(payload, dict) or not payload:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Course ID and lesson ID are required",
        )
    return payload


@router.post("/", response_model=LessonProgressResponse)
def update_lesson_progress(
    current_user: User = Depends(get_current_user),
    payload: dict[str, Any] = Depends(_json_object_body),
    db: Session = Depends(get_db),
):
    """Record a lesson watch update and return the refreshed course totals."""
    try:
        body = LessonProgressUpdate.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=exc.errors(include_url=False, include_context=False),
        )

    try:
        summary = progress_service.record_lesson_progress(
            db,
            current_user.id,
            body.course_id,
            body.lesson_id,
            is_completed=body.is_completed,
            watch_progress=body.progress,
            position_seconds=body.position_seconds,
            duration_seconds=body.duration_seconds,
        )
    except NotFound:
        raise
    except Exception:
        db.rollback()
        logger.exception(
            "Failed to update lesson %s progress in course %s", body.lesson_id, body.course_id
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update progress",
        )

    return LessonProgressResponse(
        success=True,
        progress=ProgressSummaryRead(
            total_lessons=summary.total_items,
            completed_lessons=summary.completed_items,
            progress_percentage=summary.progress_percentage,
            status=summary.status,
        ),
    )
