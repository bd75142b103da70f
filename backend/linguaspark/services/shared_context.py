"""Shared context for one lesson request.

Built once, before any section is generated, from a cheap deterministic pass
over the source text: candidate vocabulary by frequency, theme tags from
keyword buckets, and a difficulty signal from sentence and word lengths.
Every section generator reads the same context so vocabulary, themes and
level stay consistent across the lesson.
"""

import logging
from collections import Counter

from pydantic import BaseModel, Field

from linguaspark.services.cefr import GUIDANCE, LEVEL_ORDER, CEFRLevel
from linguaspark.services.sections import LessonType
from linguaspark.services.text_analysis import (
    content_words,
    normalize_whitespace,
    split_sentences,
    tokenize,
)

logger = logging.getLogger(__name__)

PROMPT_SOURCE_CHARS = 1000
SUMMARY_SENTENCES = 3
SUMMARY_MAX_CHARS = 400
MIN_THEME_HITS = 2
MAX_THEMES = 3

THEME_KEYWORDS: dict[str, tuple[str, ...]] = {
    "environment": ("climate", "carbon", "emissions", "warming", "temperature", "pollution", "environment",
                    "renewable", "energy", "fossil", "planet", "weather", "drought", "flood", "ocean", "forest"),
    "technology": ("technology", "software", "computer", "digital", "internet", "data", "artificial",
                   "intelligence", "robot", "device", "online", "smartphone", "algorithm"),
    "business": ("business", "company", "market", "economy", "profit", "customer", "investment", "finance",
                 "industry", "startup", "sales", "employees", "revenue", "trade"),
    "health": ("health", "medical", "doctor", "hospital", "disease", "patient", "exercise", "diet",
               "medicine", "illness", "treatment", "wellbeing", "sleep"),
    "travel": ("travel", "trip", "tourist", "tourism", "hotel", "flight", "airport", "destination",
               "journey", "vacation", "holiday", "passport", "luggage"),
    "education": ("education", "school", "student", "teacher", "university", "learning", "classroom",
                  "exam", "study", "course", "lesson"),
    "sports": ("sport", "sports", "football", "soccer", "tennis", "golf", "match", "team", "player",
               "tournament", "coach", "athlete", "championship"),
    "food": ("food", "cooking", "recipe", "restaurant", "meal", "kitchen", "chef", "ingredients",
             "dinner", "breakfast", "nutrition"),
    "culture": ("culture", "tradition", "festival", "art", "museum", "language", "heritage", "custom",
                "celebration", "film", "literature"),
    "science": ("science", "research", "scientist", "experiment", "study", "discovery", "laboratory",
                "theory", "evidence", "species", "space"),
    "politics": ("government", "election", "policy", "president", "minister", "parliament", "vote",
                 "law", "political", "democracy"),
    "history": ("history", "historical", "century", "ancient", "empire", "war", "king", "queen",
                "revolution", "historian"),
    "music": ("music", "song", "band", "concert", "album", "singer", "musician", "guitar", "piano"),
}

# Shorter words are too basic to teach above elementary level.
MIN_VOCAB_WORD_LENGTH: dict[CEFRLevel, int] = {
    CEFRLevel.A1: 4,
    CEFRLevel.A2: 4,
    CEFRLevel.B1: 5,
    CEFRLevel.B2: 6,
    CEFRLevel.C1: 6,
}


class LanguagePair(BaseModel):
    source: str
    target: str
    model_config = {"frozen": True}


class DifficultySignal(BaseModel):
    avg_sentence_length: float = 0.0
    avg_word_length: float = 0.0
    long_word_ratio: float = 0.0
    readability: float = 0.0
    estimated_level: CEFRLevel = CEFRLevel.B1
    model_config = {"frozen": True}


class SharedContext(BaseModel):
    cefr_level: CEFRLevel
    lesson_type: LessonType
    key_vocabulary: tuple[str, ...] = ()
    themes: tuple[str, ...] = ()
    language_pair: LanguagePair
    difficulty: DifficultySignal = Field(default_factory=DifficultySignal)
    source_text: str
    summary: str = ""
    source_title: str | None = None
    model_config = {"frozen": True}

    @property
    def target_language(self) -> str:
        return self.language_pair.target

    @property
    def prompt_source(self) -> str:
        return self.source_text[:PROMPT_SOURCE_CHARS]

    @property
    def relevance_terms(self) -> list[str]:
        """Theme tags and vocabulary, the words relevance checks look for."""
        seen = []
        for term in (*self.themes, *self.key_vocabulary):
            if term.lower() not in {s.lower() for s in seen}:
                seen.append(term)
        return seen

    def with_vocabulary(self, words: list[str]) -> "SharedContext":
        """Return a copy whose key vocabulary also includes `words`."""
        merged = list(self.key_vocabulary)
        known = {w.lower() for w in merged}
        for word in words:
            cleaned = word.strip()
            if cleaned and cleaned.lower() not in known:
                merged.append(cleaned)
                known.add(cleaned.lower())
        return self.model_copy(update={"key_vocabulary": tuple(merged)})


def extract_vocabulary(text: str, cefr_level: CEFRLevel) -> list[str]:
    """Most frequent content words, ties broken by first appearance."""
    words = content_words(text)
    if not words:
        return []
    counts = Counter(words)
    first_seen: dict[str, int] = {}
    for i, w in enumerate(words):
        first_seen.setdefault(w, i)
    ranked = sorted(counts, key=lambda w: (-counts[w], first_seen[w]))

    size = GUIDANCE[cefr_level].vocabulary_size
    min_len = MIN_VOCAB_WORD_LENGTH[cefr_level]
    picked = [w for w in ranked if len(w) >= min_len][:size]
    if len(picked) < size:
        # Relax the length filter rather than return too few words.
        picked += [w for w in ranked if w not in picked][: size - len(picked)]
    return picked


def extract_themes(text: str) -> list[str]:
    """Theme tags: matched bucket names followed by the keywords that matched them."""
    tokens = Counter(w.lower() for w in tokenize(text))
    hits: list[tuple[str, list[str]]] = []
    for theme, keywords in THEME_KEYWORDS.items():
        matched = [k for k in keywords if tokens.get(k)]
        if len(matched) >= MIN_THEME_HITS:
            matched.sort(key=lambda k: -tokens[k])
            hits.append((theme, matched))
    hits.sort(key=lambda h: -sum(tokens[k] for k in h[1]))

    tags: list[str] = []
    for theme, matched in hits[:MAX_THEMES]:
        for tag in (theme, *matched[:4]):
            if tag not in tags:
                tags.append(tag)
    return tags


def estimate_difficulty(text: str) -> DifficultySignal:
    sentences = split_sentences(text)
    words = tokenize(text)
    if not sentences or not words:
        return DifficultySignal()

    avg_sentence = len(words) / len(sentences)
    avg_word = sum(len(w) for w in words) / len(words)
    long_ratio = sum(1 for w in words if len(w) >= 7) / len(words)
    readability = max(0.0, min(1.0, 1 - abs(avg_sentence - 15) / 15))

    # Weighted lexical/syntactic load mapped onto the five levels.
    load = (avg_sentence / 25) * 0.5 + (avg_word / 7) * 0.25 + (long_ratio / 0.35) * 0.25
    index = min(len(LEVEL_ORDER) - 1, max(0, int(load * len(LEVEL_ORDER) - 1)))
    return DifficultySignal(
        avg_sentence_length=round(avg_sentence, 1),
        avg_word_length=round(avg_word, 2),
        long_word_ratio=round(long_ratio, 3),
        readability=round(readability, 3),
        estimated_level=LEVEL_ORDER[index],
    )


def summarize(text: str) -> str:
    summary = " ".join(split_sentences(text)[:SUMMARY_SENTENCES])
    if len(summary) > SUMMARY_MAX_CHARS:
        summary = summary[:SUMMARY_MAX_CHARS].rsplit(" ", 1)[0] + "..."
    return summary


def build_shared_context(
    source_text: str,
    lesson_type: LessonType,
    cefr_level: CEFRLevel,
    target_language: str,
    source_language: str = "en",
    source_title: str | None = None,
) -> SharedContext:
    """Analyze the source text once for the whole lesson.

    Never raises on thin input: empty vocabulary or theme lists are a valid
    result and every generator handles them.
    """
    level = CEFRLevel(cefr_level)
    text = normalize_whitespace(source_text)
    vocabulary = extract_vocabulary(text, level)
    themes = extract_themes(text)
    difficulty = estimate_difficulty(text)

    logger.info(
        f"Shared context: level={level.value} vocabulary={len(vocabulary)} themes={themes[:3]} "
        f"source_estimate={difficulty.estimated_level.value}"
    )
    return SharedContext(
        cefr_level=level,
        lesson_type=LessonType(lesson_type),
        key_vocabulary=tuple(vocabulary),
        themes=tuple(themes),
        language_pair=LanguagePair(source=source_language, target=target_language),
        difficulty=difficulty,
        source_text=text,
        summary=summarize(text),
        source_title=source_title,
    )
