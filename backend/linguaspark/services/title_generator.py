"""Lesson title with a fallback ladder. Never raises.

1. LLM title, joined with the cleaned page title when there is one
2. page title from extraction metadata, site-name suffix removed
3. leading sentence of the source text, truncated
4. "<Type> Lesson - <Level>"
"""

import logging
import re
from dataclasses import dataclass

from linguaspark.services.cefr import CEFRLevel
from linguaspark.services.llm import LLMError, generate_text
from linguaspark.services.prompting import SYSTEM_PROMPT
from linguaspark.services.response_parsing import ResponseParseError, parse_json, strip_fences
from linguaspark.services.sections import ExtractionMetadata, LessonType
from linguaspark.services.shared_context import SharedContext
from linguaspark.services.text_analysis import normalize_whitespace, split_sentences, word_count

logger = logging.getLogger(__name__)

TITLE_MAX_TOKENS = 60
MAX_AI_TITLE_CHARS = 80
MAX_COMBINED_TITLE_CHARS = 120
MAX_SENTENCE_TITLE_CHARS = 60
SITE_SEPARATORS = (" | ", " - ", " — ", " – ", " :: ", " · ")
# A short tail after these is a site or section name; after a dash it may be a subtitle.
STRONG_SITE_SEPARATORS = (" | ", " :: ", " · ")
MAX_SITE_NAME_WORDS = 3
SITE_NAME_RE = re.compile(
    r"(?i:\b(news|times|post|journal|magazine|blog|daily|weekly|tribune|herald|gazette|guardian|wiki\w*|"
    r"online|media|press)\b|\b\w+\.(com|org|net|co|io)\b)|\b[A-Z]{2,}\b"
)
# Words that make a title generic when nothing else is present.
PLACEHOLDER_TITLE_WORDS = frozenset(
    {"a", "an", "the", "my", "our", "this", "new", "today's", "english", "esl", "language", "lesson", "lessons", "title"}
    | {t.value for t in LessonType}
    | {c.value.lower() for c in CEFRLevel}
)

# Metrics score for each rung of the ladder.
SOURCE_SCORES = {"llm": 100, "metadata": 70, "source_text": 50, "generic": 30}


@dataclass
class TitleChoice:
    title: str
    source: str

    @property
    def score(self) -> int:
        return SOURCE_SCORES[self.source]


def _site_key(domain: str | None) -> str:
    if not domain:
        return ""
    host = re.sub(r"^https?://", "", domain.lower()).split("/")[0]
    host = re.sub(r"^www\.", "", host)
    return re.sub(r"[^a-z0-9]", "", host.split(".")[0])


def clean_source_title(title: str | None, domain: str | None = None) -> str | None:
    """Strip a trailing " | Site Name" style suffix from a page title."""
    title = normalize_whitespace(title or "").strip("\"'“”")
    if not title:
        return None
    site = _site_key(domain)
    for sep in SITE_SEPARATORS:
        head, found, tail = title.rpartition(sep)
        if not found or not head.strip():
            continue
        tail_key = re.sub(r"[^a-z0-9]", "", tail.lower())
        is_site = bool(site) and bool(tail_key) and (tail_key in site or site in tail_key)
        short = word_count(tail) <= MAX_SITE_NAME_WORDS
        if is_site or (short and (sep in STRONG_SITE_SEPARATORS or SITE_NAME_RE.search(tail))):
            title = head.strip()
            break
    return title or None


def title_from_source_text(text: str) -> str | None:
    sentences = split_sentences(text)
    if not sentences:
        return None
    sentence = sentences[0].rstrip(".!?")
    if len(sentence) <= MAX_SENTENCE_TITLE_CHARS:
        return sentence or None
    cut = sentence[: MAX_SENTENCE_TITLE_CHARS - 3].rsplit(" ", 1)[0].rstrip(",;:")
    return f"{cut}..."


def generic_title(lesson_type: LessonType, level: CEFRLevel) -> str:
    return f"{LessonType(lesson_type).value.capitalize()} Lesson - {CEFRLevel(level).value}"


def clean_ai_title(raw: str) -> str:
    try:
        data = parse_json(raw)
    except ResponseParseError:
        data = None
    if isinstance(data, dict) and isinstance(data.get("title"), str):
        text = data["title"]
    else:
        lines = [l for l in strip_fences(raw).splitlines() if l.strip()]
        text = lines[0] if lines else ""
    text = re.sub(r"^\s*(lesson\s+)?title\s*:\s*", "", text, flags=re.IGNORECASE)
    text = text.strip().strip("*#").strip().strip("\"'“”").strip()
    return text.rstrip(".")


def is_plausible_title(title: str) -> bool:
    words = word_count(title)
    if not 2 <= words <= 10 or len(title) > MAX_AI_TITLE_CHARS:
        return False
    tokens = re.findall(r"[a-z0-9']+", title.lower())
    return not all(t in PLACEHOLDER_TITLE_WORDS for t in tokens)


def _combine(ai_title: str, source_title: str | None) -> str:
    if not source_title:
        return ai_title
    a, s = ai_title.lower(), source_title.lower()
    if a in s or s in a:
        return ai_title
    combined = f"{ai_title}: {source_title}"
    return combined if len(combined) <= MAX_COMBINED_TITLE_CHARS else ai_title


def _ask_for_title(context: SharedContext) -> str:
    prompt = f"""Write a short, engaging title (3-8 words) for an English lesson about this text.
Put the topic first. Do not use the word "lesson".

Themes: {', '.join(context.themes) or 'general'}
Summary: {context.summary or context.prompt_source[:300]}

Return JSON: {{"title": "..."}}"""
    completion = generate_text(
        prompt,
        system_prompt=SYSTEM_PROMPT,
        max_output_tokens=TITLE_MAX_TOKENS,
        json_mode=True,
        task_type="title",
    )
    return clean_ai_title(completion.text)


def choose_title(context: SharedContext, metadata: ExtractionMetadata | None = None) -> TitleChoice:
    source_title = clean_source_title(
        metadata.title if metadata else None,
        metadata.domain if metadata else None,
    )

    try:
        ai_title = _ask_for_title(context)
        if is_plausible_title(ai_title):
            return TitleChoice(_combine(ai_title, source_title), "llm")
        logger.info(f"Discarding implausible AI title {ai_title!r}")
    except LLMError as e:
        logger.warning(f"Title generation failed, using fallback: {e}")
    except Exception:
        logger.exception("Unexpected error generating title, using fallback")

    if source_title:
        return TitleChoice(source_title, "metadata")
    sentence_title = title_from_source_text(context.source_text)
    if sentence_title:
        return TitleChoice(sentence_title, "source_text")
    return TitleChoice(generic_title(context.lesson_type, context.cefr_level), "generic")


def generate_title(context: SharedContext, metadata: ExtractionMetadata | None = None) -> str:
    return choose_title(context, metadata).title
