from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from linguaspark.services.cefr import CEFRLevel
from linguaspark.services.quality_metrics import LessonQualityReport
from linguaspark.services.sections import ExtractionMetadata, LessonStructure, LessonType


class LessonGenerateIn(BaseModel):
    source_text: str
    lesson_type: LessonType
    cefr_level: CEFRLevel
    target_language: str
    extraction: Optional[ExtractionMetadata] = None
    save: bool = True


class LessonGenerateOut(BaseModel):
    id: Optional[int] = None
    lesson: LessonStructure
    quality: LessonQualityReport


class LessonSummaryOut(BaseModel):
    id: int
    title: str
    lesson_type: str
    cefr_level: str
    target_language: str
    source_url: Optional[str] = None
    created_at: Optional[datetime] = None
    model_config = {"from_attributes": True}


class LessonDetailOut(LessonSummaryOut):
    source_text: str
    lesson: LessonStructure
    quality: Optional[LessonQualityReport] = None


class LessonErrorOut(BaseModel):
    error_id: str
    error_type: str
    section: Optional[str] = None
    completed_sections: list[str] = []
    title: str
    message: str
    actionable_steps: list[str] = []
