import json
from datetime import datetime, timezone
from pathlib import Path

from linguaspark.config import settings


def _get_log_path() -> Path:
    log_dir = settings.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    return log_dir / f"lesson_gen_{today}.jsonl"


def log_generation_event(
    event: str,
    section: str | None = None,
    attempt: int | None = None,
    state: str | None = None,
    valid: bool | None = None,
    score: int | None = None,
    issues: list[str] | None = None,
    warnings: list[str] | None = None,
    error: str | None = None,
    **extra,
) -> None:
    entry = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": event,
        "section": section,
        "attempt": attempt,
        "state": state,
        "valid": valid,
        "score": score,
        "issues": issues or None,
        "warnings": warnings or None,
        "error": error,
        **extra,
    }
    entry = {k: v for k, v in entry.items() if v is not None}

    with open(_get_log_path(), "a") as f:
        f.write(json.dumps(entry, ensure_ascii=False) + "\n")
