"""Lesson generation pipeline.

Builds the shared context once, then generates every section in SECTION_ORDER
through a RegenerationController, recording each outcome in a per-request
QualityMetricsTracker, and finally assembles a LessonStructure.

Sections run one after another: later sections read vocabulary and text
accepted earlier. A hard failure stops the lesson and raises
LessonGenerationError naming the section, the error type and the sections
already completed.
"""

import logging
import time

from pydantic import BaseModel

from linguaspark.config import settings
from linguaspark.services.cefr import CEFRLevel
from linguaspark.services.error_classifier import ErrorType, classify, new_error_id
from linguaspark.services.generation_log import log_generation_event
from linguaspark.services.llm import GenerationServiceFailure
from linguaspark.services.quality_metrics import LessonQualityReport, QualityMetricsTracker
from linguaspark.services.regeneration import ExhaustedRegeneration, RegenerationController
from linguaspark.services.section_generators import GENERATORS
from linguaspark.services.section_validators import validate_section
from linguaspark.services.sections import (
    SECTION_ORDER,
    ExtractionMetadata,
    LessonStructure,
    LessonType,
    SectionKind,
)
from linguaspark.services.shared_context import SharedContext, build_shared_context
from linguaspark.services.text_analysis import word_count
from linguaspark.services.title_generator import choose_title

logger = logging.getLogger(__name__)


class LessonRequestError(ValueError):
    pass


class LessonGenerationError(Exception):
    """A section failed hard; the lesson cannot be completed."""

    def __init__(
        self,
        section: str,
        error_type: ErrorType,
        message: str,
        completed_sections: list[str],
        cause: BaseException | None = None,
    ):
        super().__init__(f"{section} failed ({error_type.value}): {message}")
        self.section = section
        self.error_type = error_type
        self.message = message
        self.completed_sections = completed_sections
        self.cause = cause
        self.error_id = new_error_id()


class GeneratedLesson(BaseModel):
    lesson: LessonStructure
    quality: LessonQualityReport


def validate_request(
    source_text: str | None,
    lesson_type: str | None,
    cefr_level: str | None,
    target_language: str | None,
) -> None:
    missing = [
        name for name, value in (
            ("source_text", source_text),
            ("lesson_type", lesson_type),
            ("cefr_level", cefr_level),
            ("target_language", target_language),
        )
        if value is None or not str(value).strip()
    ]
    if missing:
        raise LessonRequestError(f"Missing required fields: {', '.join(missing)}")
    try:
        LessonType(lesson_type)
        CEFRLevel(cefr_level)
    except ValueError as e:
        raise LessonRequestError(str(e)) from e
    words = word_count(source_text)
    if words < settings.min_source_words:
        raise LessonRequestError(
            f"Source text has {words} words, at least {settings.min_source_words} are needed"
        )


def assemble_lesson(
    context: SharedContext,
    title: str,
    sections: dict[SectionKind, object],
    metadata: ExtractionMetadata | None = None,
) -> LessonStructure:
    ordered = {kind.value: sections[kind] for kind in SECTION_ORDER if kind in sections}
    return LessonStructure(
        lesson_type=context.lesson_type,
        cefr_level=context.cefr_level,
        target_language=context.target_language,
        title=title,
        sections=ordered,
        source_url=metadata.source_url if metadata else None,
        domain=metadata.domain if metadata else None,
        banner_image_url=metadata.banner_image_url if metadata else None,
        author=metadata.author if metadata else None,
    )


def generate_lesson(
    source_text: str,
    lesson_type: LessonType | str,
    cefr_level: CEFRLevel | str,
    target_language: str,
    metadata: ExtractionMetadata | None = None,
    tracker: QualityMetricsTracker | None = None,
) -> GeneratedLesson:
    """Generate a complete lesson.

    Raises:
        LessonRequestError: a required field is missing or the text is too short.
        LessonGenerationError: a section failed hard.
    """
    validate_request(source_text, lesson_type, cefr_level, target_language)

    tracker = tracker or QualityMetricsTracker()
    tracker.reset()

    context = build_shared_context(
        source_text,
        LessonType(lesson_type),
        CEFRLevel(cefr_level),
        target_language,
        source_title=metadata.title if metadata else None,
    )

    sections: dict[SectionKind, object] = {}
    for kind in SECTION_ORDER:
        if kind == SectionKind.TITLE:
            continue
        controller = RegenerationController(kind, GENERATORS[kind], validate_section)
        try:
            outcome = controller.run(context, dict(sections))
        except (GenerationServiceFailure, ExhaustedRegeneration) as e:
            error_type = classify(e)
            completed = [k.value for k in sections]
            log_generation_event(
                "lesson_failed", kind.value, error=str(e),
                error_type=error_type.value, completed_sections=completed,
            )
            logger.error(f"Lesson generation failed at {kind.value} ({error_type.value}): {e}")
            raise LessonGenerationError(kind.value, error_type, str(e), completed, cause=e) from e

        tracker.record(
            kind.value,
            outcome.validation.score,
            outcome.attempts,
            outcome.duration_ms,
            issues=len(outcome.validation.issues),
            warnings=len(outcome.validation.warnings),
            regenerated=outcome.regenerated,
            accepted=outcome.accepted,
        )
        if not outcome.accepted:
            tracker.add_warning(
                f"{kind.value}: shipped after {outcome.attempts} attempts without passing validation "
                f"({'; '.join(outcome.validation.issues)})"
            )
        sections[kind] = outcome.section

        if kind == SectionKind.VOCABULARY:
            context = context.with_vocabulary(outcome.section.words)

    start = time.time()
    choice = choose_title(context, metadata)
    tracker.record(
        SectionKind.TITLE.value,
        choice.score,
        1,
        int((time.time() - start) * 1000),
        warnings=0 if choice.source == "llm" else 1,
        regenerated=False,
    )
    if choice.source != "llm":
        tracker.add_warning(f"title: fell back to {choice.source}")

    lesson = assemble_lesson(context, choice.title, sections, metadata)
    tracker.log_summary()
    report = tracker.report()
    log_generation_event(
        "lesson_complete", score=report.overall_score,
        regenerations=report.total_regenerations, duration_ms=report.total_generation_time_ms,
    )
    return GeneratedLesson(lesson=lesson, quality=report)
