"""Lesson section payloads.

GeneratedSection is a closed union of frozen, kind-tagged models. Validators and
the lesson assembler dispatch on `kind`, so adding a section means adding a
variant here and a branch in each dispatcher.
"""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field

from linguaspark.services.cefr import CEFRLevel


class LessonType(str, Enum):
    DISCUSSION = "discussion"
    GRAMMAR = "grammar"
    TRAVEL = "travel"
    BUSINESS = "business"
    PRONUNCIATION = "pronunciation"


class SectionKind(str, Enum):
    WARMUP = "warmup"
    VOCABULARY = "vocabulary"
    READING = "reading"
    COMPREHENSION = "comprehension"
    DISCUSSION = "discussion"
    DIALOGUE_PRACTICE = "dialogue_practice"
    DIALOGUE_FILL_GAP = "dialogue_fill_gap"
    GRAMMAR = "grammar"
    PRONUNCIATION = "pronunciation"
    WRAPUP = "wrapup"
    TITLE = "title"


# Generation order. Later sections read vocabulary and text from earlier ones.
SECTION_ORDER = [
    SectionKind.WARMUP,
    SectionKind.VOCABULARY,
    SectionKind.READING,
    SectionKind.COMPREHENSION,
    SectionKind.DISCUSSION,
    SectionKind.DIALOGUE_PRACTICE,
    SectionKind.DIALOGUE_FILL_GAP,
    SectionKind.GRAMMAR,
    SectionKind.PRONUNCIATION,
    SectionKind.WRAPUP,
    SectionKind.TITLE,
]

GAP_MARKER = "_____"

_frozen = {"frozen": True}


class WarmupSection(BaseModel):
    kind: Literal["warmup"] = "warmup"
    questions: list[str]
    model_config = _frozen


class VocabularyEntry(BaseModel):
    word: str
    definition: str
    part_of_speech: str | None = None
    examples: list[str] = Field(default_factory=list)
    model_config = _frozen


class VocabularySection(BaseModel):
    kind: Literal["vocabulary"] = "vocabulary"
    entries: list[VocabularyEntry]
    model_config = _frozen

    @property
    def words(self) -> list[str]:
        return [e.word for e in self.entries]


class ReadingSection(BaseModel):
    kind: Literal["reading"] = "reading"
    title: str | None = None
    passage: str
    model_config = _frozen


class ComprehensionSection(BaseModel):
    kind: Literal["comprehension"] = "comprehension"
    questions: list[str]
    model_config = _frozen


class DiscussionSection(BaseModel):
    kind: Literal["discussion"] = "discussion"
    questions: list[str]
    model_config = _frozen


class DialogueLine(BaseModel):
    speaker: str
    line: str
    is_gap: bool = False
    model_config = _frozen


class DialoguePracticeSection(BaseModel):
    kind: Literal["dialogue_practice"] = "dialogue_practice"
    lines: list[DialogueLine]
    follow_up_questions: list[str] = Field(default_factory=list)
    model_config = _frozen


class DialogueFillGapSection(BaseModel):
    kind: Literal["dialogue_fill_gap"] = "dialogue_fill_gap"
    lines: list[DialogueLine]
    answers: list[str] = Field(default_factory=list)
    model_config = _frozen

    @property
    def gap_count(self) -> int:
        return sum(line.line.count(GAP_MARKER) for line in self.lines)


class GrammarExercise(BaseModel):
    prompt: str
    answer: str
    explanation: str
    model_config = _frozen


class GrammarSection(BaseModel):
    kind: Literal["grammar"] = "grammar"
    grammar_point: str
    form: str
    usage: str
    level_notes: str | None = None
    examples: list[str] = Field(default_factory=list)
    exercises: list[GrammarExercise] = Field(default_factory=list)
    model_config = _frozen


class PronunciationWord(BaseModel):
    word: str
    ipa: str
    difficult_sounds: list[str] = Field(default_factory=list)
    tips: list[str] = Field(default_factory=list)
    practice_sentence: str
    model_config = _frozen


class TongueTwister(BaseModel):
    text: str
    target_sounds: list[str] = Field(default_factory=list)
    difficulty: str = ""
    model_config = _frozen


class PronunciationSection(BaseModel):
    kind: Literal["pronunciation"] = "pronunciation"
    words: list[PronunciationWord]
    tongue_twisters: list[TongueTwister] = Field(default_factory=list)
    model_config = _frozen


class WrapupSection(BaseModel):
    kind: Literal["wrapup"] = "wrapup"
    questions: list[str]
    model_config = _frozen


GeneratedSection = Annotated[
    Union[
        WarmupSection,
        VocabularySection,
        ReadingSection,
        ComprehensionSection,
        DiscussionSection,
        DialoguePracticeSection,
        DialogueFillGapSection,
        GrammarSection,
        PronunciationSection,
        WrapupSection,
    ],
    Field(discriminator="kind"),
]


class ExtractionMetadata(BaseModel):
    """Page metadata from the content extractor. Every field is optional."""

    title: str | None = None
    author: str | None = None
    domain: str | None = None
    source_url: str | None = None
    banner_image_url: str | None = None
    word_count: int | None = None
    reading_time: int | None = None


class LessonStructure(BaseModel):
    lesson_type: LessonType
    cefr_level: CEFRLevel
    target_language: str
    title: str
    sections: dict[str, GeneratedSection]
    source_url: str | None = None
    domain: str | None = None
    banner_image_url: str | None = None
    author: str | None = None
