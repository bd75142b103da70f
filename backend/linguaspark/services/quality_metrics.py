"""Per-lesson quality metrics.

One tracker per lesson request. reset() starts a new lesson; record() adds one
section; report() aggregates. Trackers are never shared between requests.
"""

import logging
import time
from datetime import datetime, timezone

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class QualityMetricsRecord(BaseModel):
    section: str
    score: int
    attempts: int
    duration_ms: int
    issue_count: int = 0
    warning_count: int = 0
    regenerated: bool = False
    accepted: bool = True


class LessonQualityReport(BaseModel):
    overall_score: int
    total_generation_time_ms: int
    total_regenerations: int
    regenerated_sections: int
    sections: list[QualityMetricsRecord] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    generated_at: datetime


class QualityMetricsTracker:
    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self._records: list[QualityMetricsRecord] = []
        self._warnings: list[str] = []
        self._started = time.monotonic()

    def record(
        self,
        section: str,
        score: int,
        attempts: int,
        duration_ms: int,
        issues: int = 0,
        warnings: int = 0,
        regenerated: bool | None = None,
        accepted: bool = True,
    ) -> QualityMetricsRecord:
        entry = QualityMetricsRecord(
            section=section,
            score=score,
            attempts=attempts,
            duration_ms=duration_ms,
            issue_count=issues,
            warning_count=warnings,
            regenerated=attempts > 1 if regenerated is None else regenerated,
            accepted=accepted,
        )
        self._records.append(entry)
        return entry

    def add_warning(self, message: str) -> None:
        self._warnings.append(message)

    @property
    def records(self) -> list[QualityMetricsRecord]:
        return list(self._records)

    def report(self) -> LessonQualityReport:
        scores = [r.score for r in self._records]
        return LessonQualityReport(
            overall_score=round(sum(scores) / len(scores)) if scores else 0,
            total_generation_time_ms=int((time.monotonic() - self._started) * 1000),
            total_regenerations=sum(r.attempts - 1 for r in self._records),
            regenerated_sections=sum(1 for r in self._records if r.regenerated),
            sections=list(self._records),
            warnings=list(self._warnings),
            generated_at=datetime.now(timezone.utc),
        )

    def log_summary(self) -> None:
        report = self.report()
        logger.info(
            f"Lesson quality: overall={report.overall_score} sections={len(report.sections)} "
            f"regenerations={report.total_regenerations} time={report.total_generation_time_ms}ms"
        )
        for r in report.sections:
            flag = "" if r.accepted else " (exhausted)"
            logger.info(
                f"  {r.section}: score={r.score} attempts={r.attempts} "
                f"issues={r.issue_count} warnings={r.warning_count} {r.duration_ms}ms{flag}"
            )
        for w in report.warnings:
            logger.warning(f"  quality warning: {w}")
