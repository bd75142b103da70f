from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON

from linguaspark.database import Base


class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    lesson_type = Column(String(20), nullable=False, index=True)  # discussion/grammar/travel/business/pronunciation
    cefr_level = Column(String(2), nullable=False)
    target_language = Column(String(30), nullable=False)
    source_url = Column(Text, nullable=True)
    source_text = Column(Text, nullable=False)
    lesson_data = Column(JSON, nullable=False)  # LessonStructure, kind-tagged sections
    quality_report = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), index=True)
