"""CEFR guidance tables shared by every section generator and validator.

Prompts take structure and constraints from here, never content. Validators
read the same tables so a prompt and its check cannot drift apart.
"""

from dataclasses import dataclass
from enum import Enum


class CEFRLevel(str, Enum):
    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"


LEVEL_ORDER = [CEFRLevel.A1, CEFRLevel.A2, CEFRLevel.B1, CEFRLevel.B2, CEFRLevel.C1]


def level_rank(level: CEFRLevel) -> int:
    return LEVEL_ORDER.index(CEFRLevel(level))


def is_below(level: CEFRLevel, other: CEFRLevel) -> bool:
    return level_rank(level) < level_rank(other)


@dataclass(frozen=True)
class LevelGuidance:
    label: str
    description: str
    sentence_length: tuple[int, int]
    vocabulary_size: int
    tenses: tuple[str, ...]
    complexity: str


GUIDANCE: dict[CEFRLevel, LevelGuidance] = {
    CEFRLevel.A1: LevelGuidance(
        label="Beginner",
        description="very common everyday words, short simple sentences, concrete topics",
        sentence_length=(5, 10),
        vocabulary_size=6,
        tenses=("present simple", "present continuous", "can for ability"),
        complexity="simple",
    ),
    CEFRLevel.A2: LevelGuidance(
        label="Elementary",
        description="familiar topics, simple connectors (and, but, because), basic descriptions",
        sentence_length=(8, 15),
        vocabulary_size=7,
        tenses=("present simple", "present continuous", "past simple", "going to future"),
        complexity="simple",
    ),
    CEFRLevel.B1: LevelGuidance(
        label="Intermediate",
        description="main points of clear texts, opinions with simple reasons, some abstract topics",
        sentence_length=(10, 18),
        vocabulary_size=8,
        tenses=("past continuous", "present perfect", "will future", "first conditional"),
        complexity="intermediate",
    ),
    CEFRLevel.B2: LevelGuidance(
        label="Upper-Intermediate",
        description="complex texts, argued viewpoints, advantages and disadvantages",
        sentence_length=(12, 22),
        vocabulary_size=8,
        tenses=("present perfect continuous", "past perfect", "passive voice", "second and third conditionals"),
        complexity="advanced",
    ),
    CEFRLevel.C1: LevelGuidance(
        label="Advanced",
        description="demanding texts, implicit meaning, precise and nuanced argument",
        sentence_length=(15, 25),
        vocabulary_size=8,
        tenses=("all tenses", "mixed conditionals", "inversion", "subjunctive"),
        complexity="advanced",
    ),
}

MAX_VOCABULARY_WORDS = 8

# Exact example sentences required per vocabulary entry.
EXAMPLE_COUNT: dict[CEFRLevel, int] = {
    CEFRLevel.A1: 5,
    CEFRLevel.A2: 5,
    CEFRLevel.B1: 4,
    CEFRLevel.B2: 3,
    CEFRLevel.C1: 3,
}

EXAMPLE_LENGTH: dict[CEFRLevel, tuple[int, int]] = {
    level: guidance.sentence_length for level, guidance in GUIDANCE.items()
}

DISCUSSION_WORD_BANDS: dict[CEFRLevel, tuple[int, int]] = {
    CEFRLevel.A1: (4, 12),
    CEFRLevel.A2: (5, 15),
    CEFRLevel.B1: (6, 18),
    CEFRLevel.B2: (8, 22),
    CEFRLevel.C1: (10, 25),
}

# Phrasings that signal a discussion question pitched above the level.
DISCUSSION_AVOID_PATTERNS: dict[CEFRLevel, tuple[str, ...]] = {
    CEFRLevel.A1: ("to what extent", "hypothetically", "implications", "evaluate", "analyze"),
    CEFRLevel.A2: ("to what extent", "hypothetically", "implications", "evaluate"),
    CEFRLevel.B1: ("to what extent", "implications"),
    CEFRLevel.B2: (),
    CEFRLevel.C1: (),
}

DISCUSSION_PROGRESSION = (
    "Question 1: personal and simple, about the student's own life or experience",
    "Question 2: opinion about the main topic",
    "Question 3: comparison or connection to the student's country or culture",
    "Question 4: problem, cause or consequence",
    "Question 5: evaluative or abstract, asking the student to judge or predict",
)

READING_WORD_BANDS: dict[CEFRLevel, tuple[int, int]] = {
    CEFRLevel.A1: (120, 250),
    CEFRLevel.A2: (150, 300),
    CEFRLevel.B1: (200, 400),
    CEFRLevel.B2: (250, 450),
    CEFRLevel.C1: (300, 500),
}

GRAMMAR_POINTS: dict[CEFRLevel, tuple[str, ...]] = {
    CEFRLevel.A1: ("present simple", "articles a/an/the", "prepositions of place"),
    CEFRLevel.A2: ("past simple", "comparatives and superlatives", "modal verbs can/must/should"),
    CEFRLevel.B1: ("present perfect", "first and second conditionals", "passive voice"),
    CEFRLevel.B2: ("relative clauses", "third and mixed conditionals", "reported speech"),
    CEFRLevel.C1: ("subjunctive", "cleft sentences", "inversion for emphasis"),
}

DIALOGUE_MIN_LINES = 12
DIALOGUE_OPENING_ROLE = "Student"
DIALOGUE_ROLES = ("Student", "Tutor")

# Words a beginner dialogue should steer around.
BEGINNER_AVOID_WORDS: dict[CEFRLevel, tuple[str, ...]] = {
    CEFRLevel.A1: ("nevertheless", "furthermore", "consequently", "substantial", "comprehensive", "significant"),
    CEFRLevel.A2: ("nevertheless", "furthermore", "consequently", "comprehensive"),
}

WARMUP_QUESTION_COUNT = 3
COMPREHENSION_QUESTION_COUNT = 5
DISCUSSION_QUESTION_COUNT = 5
WRAPUP_QUESTION_COUNT = 3
GRAMMAR_MIN_EXAMPLES = 5
GRAMMAR_EXERCISE_COUNT = 5
GRAMMAR_MIN_FORM_CHARS = 20
GRAMMAR_MIN_USAGE_CHARS = 30
PRONUNCIATION_TARGET_WORDS = 5
PRONUNCIATION_MIN_WORDS = 3

# Warm-up question style the level calls for.
WARMUP_COMPLEXITY: dict[CEFRLevel, tuple[str, ...]] = {
    CEFRLevel.A1: ("simple",),
    CEFRLevel.A2: ("simple",),
    CEFRLevel.B1: ("simple", "intermediate"),
    CEFRLevel.B2: ("intermediate", "advanced"),
    CEFRLevel.C1: ("intermediate", "advanced"),
}


def describe_level(level: CEFRLevel) -> str:
    """One prompt-ready block describing what the level allows."""
    g = GUIDANCE[CEFRLevel(level)]
    low, high = g.sentence_length
    return (
        f"CEFR {CEFRLevel(level).value} ({g.label}): {g.description}.\n"
        f"Sentence length: {low}-{high} words.\n"
        f"Grammar the student knows: {', '.join(g.tenses)}."
    )
