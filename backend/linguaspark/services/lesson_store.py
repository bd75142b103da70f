"""Saved lessons: create, list, fetch and delete."""

from sqlalchemy.orm import Session

from linguaspark.models import Lesson
from linguaspark.services.lesson_generator import GeneratedLesson
from linguaspark.services.quality_metrics import LessonQualityReport
from linguaspark.services.sections import LessonStructure


def save_lesson(db: Session, generated: GeneratedLesson, source_text: str) -> Lesson:
    lesson = generated.lesson
    row = Lesson(
        title=lesson.title,
        lesson_type=lesson.lesson_type.value,
        cefr_level=lesson.cefr_level.value,
        target_language=lesson.target_language,
        source_url=lesson.source_url,
        source_text=source_text,
        lesson_data=lesson.model_dump(mode="json"),
        quality_report=generated.quality.model_dump(mode="json"),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def get_lessons(db: Session) -> list[Lesson]:
    """Return all lessons ordered by created_at desc."""
    return db.query(Lesson).order_by(Lesson.created_at.desc(), Lesson.id.desc()).all()


def get_lesson_detail(db: Session, lesson_id: int) -> dict:
    row = db.query(Lesson).filter(Lesson.id == lesson_id).first()
    if not row:
        raise ValueError(f"Lesson {lesson_id} not found")
    return {
        "id": row.id,
        "title": row.title,
        "lesson_type": row.lesson_type,
        "cefr_level": row.cefr_level,
        "target_language": row.target_language,
        "source_url": row.source_url,
        "created_at": row.created_at,
        "source_text": row.source_text,
        "lesson": LessonStructure.model_validate(row.lesson_data),
        "quality": LessonQualityReport.model_validate(row.quality_report) if row.quality_report else None,
    }


def delete_lesson(db: Session, lesson_id: int) -> dict:
    row = db.query(Lesson).filter(Lesson.id == lesson_id).first()
    if not row:
        raise ValueError(f"Lesson {lesson_id} not found")
    db.delete(row)
    db.commit()
    return {"deleted": lesson_id}
