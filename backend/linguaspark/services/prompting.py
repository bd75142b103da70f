"""Prompt pieces shared by the section generators."""

from linguaspark.services.cefr import describe_level
from linguaspark.services.shared_context import SharedContext

SYSTEM_PROMPT = """\
You are an experienced English teacher who writes materials for one-to-one \
lessons with adult students. You write natural, accurate English pitched exactly \
at the student's CEFR level. You follow the requested output format strictly \
and never add commentary outside it."""


def context_block(context: SharedContext, vocabulary: list[str] | None = None) -> str:
    words = vocabulary if vocabulary is not None else list(context.key_vocabulary)
    lines = [
        describe_level(context.cefr_level),
        f"Lesson type: {context.lesson_type.value}",
        f"Student's language: {context.target_language}",
    ]
    if context.themes:
        lines.append(f"Main themes: {', '.join(context.themes)}")
    if words:
        lines.append(f"Key vocabulary: {', '.join(words)}")
    if context.summary:
        lines.append(f"Summary of the source: {context.summary}")
    return "\n".join(lines)


def retry_block(feedback: list[str] | None) -> str:
    if not feedback:
        return ""
    problems = "\n".join(f"- {f}" for f in feedback)
    return f"\nPREVIOUS ATTEMPT FAILED. Fix these problems:\n{problems}\n"


def source_block(context: SharedContext) -> str:
    return f'Source text:\n"""\n{context.prompt_source}\n"""'
