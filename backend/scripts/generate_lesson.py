#!/usr/bin/env python3
"""Generate a lesson from a text file and print it as JSON.

Runs the same pipeline as POST /api/lessons/generate.

Usage:
    python scripts/generate_lesson.py article.txt                      # discussion lesson, B1
    python scripts/generate_lesson.py article.txt --type grammar --level A2
    python scripts/generate_lesson.py article.txt --title "Page title" --domain example.com
    python scripts/generate_lesson.py article.txt --save                # also store in the DB
    python scripts/generate_lesson.py article.txt --quality-only        # print only the quality report
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from linguaspark.database import SessionLocal, init_db
from linguaspark.services.cefr import CEFRLevel
from linguaspark.services.error_classifier import user_message
from linguaspark.services.lesson_generator import LessonGenerationError, LessonRequestError, generate_lesson
from linguaspark.services.lesson_store import save_lesson
from linguaspark.services.sections import ExtractionMetadata, LessonType

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)


def main():
    parser = argparse.ArgumentParser(description="Generate a lesson from a text file")
    parser.add_argument("path", help="Plain text file with the source article")
    parser.add_argument("--type", default=LessonType.DISCUSSION.value, choices=[t.value for t in LessonType])
    parser.add_argument("--level", default=CEFRLevel.B1.value, choices=[l.value for l in CEFRLevel])
    parser.add_argument("--language", default="English", help="Target language (default: English)")
    parser.add_argument("--title", default=None, help="Page title from extraction metadata")
    parser.add_argument("--domain", default=None, help="Source site domain")
    parser.add_argument("--url", default=None, help="Source URL")
    parser.add_argument("--save", action="store_true", help="Store the lesson in the database")
    parser.add_argument("--quality-only", action="store_true", help="Print only the quality report")
    args = parser.parse_args()

    source_text = Path(args.path).read_text()
    metadata = None
    if args.title or args.domain or args.url:
        metadata = ExtractionMetadata(title=args.title, domain=args.domain, source_url=args.url)

    try:
        generated = generate_lesson(source_text, args.type, args.level, args.language, metadata=metadata)
    except LessonRequestError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(2)
    except LessonGenerationError as e:
        msg = user_message(e.error_type, e.error_id)
        print(f"ERROR [{e.error_type.value}] at {e.section}: {e.message}", file=sys.stderr)
        print(f"  completed: {', '.join(e.completed_sections) or 'none'}", file=sys.stderr)
        print(f"  {msg.title}: {msg.message} (error id {msg.error_id})", file=sys.stderr)
        sys.exit(1)

    if args.save:
        init_db()
        db = SessionLocal()
        try:
            row = save_lesson(db, generated, source_text)
            print(f"Saved lesson {row.id}", file=sys.stderr)
        finally:
            db.close()

    payload = generated.quality if args.quality_only else generated
    print(json.dumps(payload.model_dump(mode="json"), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
