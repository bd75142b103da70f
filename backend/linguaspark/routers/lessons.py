"""Lesson generation and saved-lesson API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from linguaspark.database import get_db
from linguaspark.schemas import (
    LessonDetailOut,
    LessonGenerateIn,
    LessonGenerateOut,
    LessonSummaryOut,
)
from linguaspark.services.error_classifier import ErrorType, user_message
from linguaspark.services.lesson_generator import LessonGenerationError, generate_lesson
from linguaspark.services.lesson_store import delete_lesson, get_lesson_detail, get_lessons, save_lesson

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/lessons", tags=["lessons"])


@router.post("/generate", response_model=LessonGenerateOut)
def generate_lesson_endpoint(body: LessonGenerateIn, db: Session = Depends(get_db)):
    try:
        generated = generate_lesson(
            body.source_text,
            body.lesson_type,
            body.cefr_level,
            body.target_language,
            metadata=body.extraction,
        )
    except LessonGenerationError as e:
        msg = user_message(e.error_type, e.error_id)
        status = 429 if e.error_type == ErrorType.QUOTA_EXCEEDED else 502
        raise HTTPException(
            status_code=status,
            detail={
                "error_id": msg.error_id,
                "error_type": e.error_type.value,
                "section": e.section,
                "completed_sections": e.completed_sections,
                "title": msg.title,
                "message": msg.message,
                "actionable_steps": msg.actionable_steps,
            },
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    lesson_id = None
    if body.save:
        lesson_id = save_lesson(db, generated, body.source_text).id
        logger.info(f"Saved lesson {lesson_id}: {generated.lesson.title!r}")

    return {"id": lesson_id, "lesson": generated.lesson, "quality": generated.quality}


@router.get("", response_model=list[LessonSummaryOut])
def list_lessons(db: Session = Depends(get_db)):
    return get_lessons(db)


@router.get("/{lesson_id}", response_model=LessonDetailOut)
def get_lesson_endpoint(lesson_id: int, db: Session = Depends(get_db)):
    try:
        return get_lesson_detail(db, lesson_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/{lesson_id}")
def delete_lesson_endpoint(lesson_id: int, db: Session = Depends(get_db)):
    try:
        return delete_lesson(db, lesson_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
