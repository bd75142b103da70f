"""Deterministic validation of generated lesson sections.

One pure function per section kind, all returning ValidationResult. Issues are
blocking and send the section back for regeneration; warnings only lower the
score. Calling a validator twice on the same section and context always gives
the same result.

Scoring: 100 - 20 per issue (15 for grammar) - 5 per warning, +10 when valid,
clamped to 0..100.
"""

import math
import re
from dataclasses import dataclass, field

from linguaspark.services.cefr import (
    BEGINNER_AVOID_WORDS,
    COMPREHENSION_QUESTION_COUNT,
    DIALOGUE_MIN_LINES,
    DIALOGUE_OPENING_ROLE,
    DIALOGUE_ROLES,
    DISCUSSION_AVOID_PATTERNS,
    DISCUSSION_QUESTION_COUNT,
    DISCUSSION_WORD_BANDS,
    EXAMPLE_COUNT,
    EXAMPLE_LENGTH,
    GRAMMAR_EXERCISE_COUNT,
    GRAMMAR_MIN_EXAMPLES,
    GRAMMAR_MIN_FORM_CHARS,
    GRAMMAR_MIN_USAGE_CHARS,
    MAX_VOCABULARY_WORDS,
    PRONUNCIATION_MIN_WORDS,
    PRONUNCIATION_TARGET_WORDS,
    READING_WORD_BANDS,
    WARMUP_COMPLEXITY,
    WARMUP_QUESTION_COUNT,
    WRAPUP_QUESTION_COUNT,
    CEFRLevel,
    is_below,
)
from linguaspark.services.sections import (
    GAP_MARKER,
    ComprehensionSection,
    DialogueFillGapSection,
    DialogueLine,
    DialoguePracticeSection,
    DiscussionSection,
    GrammarSection,
    PronunciationSection,
    ReadingSection,
    VocabularySection,
    WarmupSection,
    WrapupSection,
)
from linguaspark.services.shared_context import SharedContext
from linguaspark.services.text_analysis import (
    content_words,
    contains_term,
    ends_with_terminal_punctuation,
    first_word,
    starts_capitalized,
    terms_used,
    word_count,
)

RELEVANCE_THRESHOLD = 0.6
MIN_QUESTION_CHARS = 10
MAX_QUESTION_CHARS = 200

CONTENT_ASSUMPTION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"\bin the (text|article|passage|story|reading)\b",
        r"\bthe (article|passage|author|text)\b",
        r"\baccording to (the )?(author|text|article|passage)\b",
        r"\bwhat happened\b",
        r"\bdo you remember\b",
        r"\bwhen did\b",
        r"\bwho was\b",
        r"\bmentioned\b",
    )
]

ADVANCED_QUESTION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"hypothetically", r"in what ways", r"to what extent", r"how might", r"what factors",
        r"analy[sz]e", r"evaluate", r"compare and contrast", r"what implications", r"how would you assess",
    )
]

INTERMEDIATE_QUESTION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"why do you think", r"what would", r"how could", r"in your opinion", r"do you believe",
        r"what are the (advantages|disadvantages)", r"how does .+ affect",
    )
]

PERSONAL_MARKERS = re.compile(r"\b(you|your|yourself)\b", re.IGNORECASE)
EVALUATIVE_MARKERS = re.compile(
    r"\b(should|would|might|why|agree|disagree|better|worse|important|future|extent|believe|"
    r"opinion|judge|evaluate|best|worst|fair|effective|responsib\w*)\b",
    re.IGNORECASE,
)
OPINION_MARKERS = re.compile(r"\b(do you think|your opinion|would you|do you agree|how do you feel)\b", re.IGNORECASE)
REFLECTIVE_MARKERS = re.compile(
    r"\b(learn\w*|remember|today|new|use|practi[cs]e|change[ds]?|think|surpris\w*|most|interest\w*)\b",
    re.IGNORECASE,
)

PERFECT_RE = re.compile(r"\b(?:have|has)\s+(\w+ed|been|gone|done|seen|made)\b", re.IGNORECASE)
PASSIVE_RE = re.compile(r"\b(?:is|are|was|were|been)\s+(\w+ed)\b", re.IGNORECASE)
# -ed words that are not verb participles after have/has/is.
NON_PARTICIPLE_ED = frozenset({
    "red", "bed", "need", "seed", "feed", "weed", "speed", "shed", "hundred", "sacred", "naked", "wicked",
})
# Participles beginners use as plain adjectives ("I am tired", "she is interested").
ADJECTIVAL_PARTICIPLES = frozenset({
    "interested", "tired", "excited", "bored", "worried", "married", "surprised", "scared", "pleased",
    "satisfied", "disappointed", "embarrassed", "confused", "amazed", "annoyed", "relaxed", "shocked",
    "frightened", "crowded", "closed", "located", "finished", "retired", "prepared", "impressed",
})
RELATIVE_CLAUSE_RE = re.compile(r"\b(who|which|whose|whom)\b|,\s*that\b", re.IGNORECASE)
CONDITIONAL_RE = re.compile(r"\bif\b[^.?!]*\b(would|will|had|could|might)\b", re.IGNORECASE)
PAST_PERFECT_RE = re.compile(r"\bhad\s+\w+(ed|en)\b", re.IGNORECASE)


@dataclass
class ValidationResult:
    valid: bool
    score: int
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _result(issues: list[str], warnings: list[str], issue_penalty: int = 20) -> ValidationResult:
    valid = not issues
    score = 100 - issue_penalty * len(issues) - 5 * len(warnings) + (10 if valid else 0)
    return ValidationResult(
        valid=valid,
        score=max(0, min(100, score)),
        issues=issues,
        warnings=warnings,
    )


def _check_question_format(questions: list[str], issues: list[str]) -> None:
    for i, q in enumerate(questions, 1):
        if not q.strip().endswith("?"):
            issues.append(f"Question {i} must end with a question mark")
        if len(q.strip()) <= MIN_QUESTION_CHARS:
            issues.append(f"Question {i} is too short")


def _is_relevant(text: str, terms: list[str]) -> bool:
    return any(contains_term(text, t) for t in terms)


def _relevance_ratio(items: list[str], terms: list[str]) -> float:
    if not items:
        return 0.0
    return sum(1 for item in items if _is_relevant(item, terms)) / len(items)


def _distinct_starters(questions: list[str]) -> int:
    return len({first_word(q) for q in questions if first_word(q)})


def assess_question_complexity(questions: list[str]) -> str:
    text = " ".join(questions)
    advanced = sum(1 for p in ADVANCED_QUESTION_PATTERNS if p.search(text))
    intermediate = sum(1 for p in INTERMEDIATE_QUESTION_PATTERNS if p.search(text))
    if advanced >= 2:
        return "advanced"
    if advanced >= 1 or intermediate >= 2:
        return "intermediate"
    return "simple"


def validate_warmup(section: WarmupSection, context: SharedContext) -> ValidationResult:
    """Warm-ups activate what students already know, before any reading."""
    issues: list[str] = []
    warnings: list[str] = []
    questions = section.questions

    if len(questions) != WARMUP_QUESTION_COUNT:
        issues.append(f"Expected exactly {WARMUP_QUESTION_COUNT} questions, got {len(questions)}")
    _check_question_format(questions, issues)

    for i, q in enumerate(questions, 1):
        if len(q) > MAX_QUESTION_CHARS:
            warnings.append(f"Question {i} is very long")
        for pattern in CONTENT_ASSUMPTION_PATTERNS:
            if pattern.search(q):
                issues.append(f"Question {i} assumes the students have read the text ('{pattern.search(q).group(0)}')")
                break

    if questions:
        complexity = assess_question_complexity(questions)
        expected = WARMUP_COMPLEXITY[context.cefr_level]
        if complexity not in expected:
            message = f"Questions are {complexity} but {context.cefr_level.value} calls for {' or '.join(expected)}"
            # Too hard for beginners blocks; too easy for advanced students only warns.
            if is_below(context.cefr_level, CEFRLevel.B1):
                issues.append(message)
            else:
                warnings.append(message)

    if len(questions) >= 2 and _distinct_starters(questions) < 2:
        warnings.append("Questions all start the same way")

    terms = context.relevance_terms
    if terms and questions and not any(_is_relevant(q, terms) for q in questions):
        warnings.append("No question touches the lesson topic")

    return _result(issues, warnings)


def _example_is_contextual(example: str, word: str, context_words: set[str]) -> bool:
    others = {w for w in content_words(example) if w != word.lower()}
    return bool(others & context_words)


def validate_vocabulary(section: VocabularySection, context: SharedContext) -> ValidationResult:
    issues: list[str] = []
    warnings: list[str] = []
    expected = EXAMPLE_COUNT[context.cefr_level]
    low, high = EXAMPLE_LENGTH[context.cefr_level]

    if not section.entries:
        issues.append("No vocabulary entries")
    if len(section.entries) > MAX_VOCABULARY_WORDS:
        issues.append(f"Too many vocabulary entries ({len(section.entries)} > {MAX_VOCABULARY_WORDS})")

    context_words = set(content_words(context.source_text)) | {t.lower() for t in context.relevance_terms}
    total_examples = 0
    contextual = 0

    for entry in section.entries:
        label = entry.word or "?"
        if not entry.word.strip():
            issues.append("Vocabulary entry with no word")
            continue
        if not entry.definition.strip():
            issues.append(f"'{label}' has no definition")
        if len(entry.examples) != expected:
            issues.append(f"'{label}' has {len(entry.examples)} examples, {context.cefr_level.value} requires {expected}")

        badly_formatted = 0
        out_of_band = 0
        for example in entry.examples:
            total_examples += 1
            if not contains_term(example, entry.word):
                issues.append(f"Example for '{label}' does not use the word: {example[:60]}")
            if not starts_capitalized(example) or not ends_with_terminal_punctuation(example):
                badly_formatted += 1
            if not low <= word_count(example) <= high:
                out_of_band += 1
            if _example_is_contextual(example, entry.word, context_words):
                contextual += 1
        if badly_formatted:
            warnings.append(f"{badly_formatted} example(s) for '{label}' lack a capital or final punctuation")
        if out_of_band:
            warnings.append(f"{out_of_band} example(s) for '{label}' are outside {low}-{high} words")

    if total_examples and contextual / total_examples < RELEVANCE_THRESHOLD:
        warnings.append(f"Only {contextual}/{total_examples} examples relate to the source material")

    return _result(issues, warnings)


def validate_reading(section: ReadingSection, context: SharedContext) -> ValidationResult:
    issues: list[str] = []
    warnings: list[str] = []
    low, high = READING_WORD_BANDS[context.cefr_level]
    count = word_count(section.passage)

    if not section.passage.strip():
        issues.append("Reading passage is empty")
    elif count < low * 0.75 or count > high * 1.5:
        issues.append(f"Reading passage has {count} words, far outside {low}-{high}")
    elif not low <= count <= high:
        warnings.append(f"Reading passage has {count} words, outside {low}-{high}")

    vocabulary = list(context.key_vocabulary)
    if len(vocabulary) >= 2 and section.passage.strip():
        used = terms_used(section.passage, vocabulary)
        if len(used) < 2:
            warnings.append(f"Passage uses only {len(used)} lesson vocabulary word(s)")

    return _result(issues, warnings)


def validate_comprehension(section: ComprehensionSection, context: SharedContext) -> ValidationResult:
    issues: list[str] = []
    warnings: list[str] = []
    questions = section.questions

    if len(questions) != COMPREHENSION_QUESTION_COUNT:
        issues.append(f"Expected exactly {COMPREHENSION_QUESTION_COUNT} questions, got {len(questions)}")
    _check_question_format(questions, issues)

    opinion = [i for i, q in enumerate(questions, 1) if OPINION_MARKERS.search(q)]
    if opinion:
        warnings.append(f"Question(s) {', '.join(map(str, opinion))} ask for opinions, not comprehension")

    source_words = set(content_words(context.source_text))
    grounded = sum(1 for q in questions if set(content_words(q)) & source_words)
    if questions and source_words and grounded / len(questions) < RELEVANCE_THRESHOLD:
        warnings.append(f"Only {grounded}/{len(questions)} questions refer to the text")

    return _result(issues, warnings)


def validate_discussion(section: DiscussionSection, context: SharedContext) -> ValidationResult:
    issues: list[str] = []
    warnings: list[str] = []
    questions = section.questions
    level = context.cefr_level
    low, high = DISCUSSION_WORD_BANDS[level]

    if len(questions) != DISCUSSION_QUESTION_COUNT:
        issues.append(f"Expected exactly {DISCUSSION_QUESTION_COUNT} questions, got {len(questions)}")
    _check_question_format(questions, issues)

    for i, q in enumerate(questions, 1):
        count = word_count(q)
        if not low <= count <= high:
            issues.append(f"Question {i} has {count} words, {level.value} allows {low}-{high}")
        for phrase in DISCUSSION_AVOID_PATTERNS[level]:
            if phrase in q.lower():
                issues.append(f"Question {i} uses '{phrase}', too advanced for {level.value}")

    terms = context.relevance_terms
    if terms and questions:
        ratio = _relevance_ratio(questions, terms)
        if ratio == 0:
            issues.append("No question references the source themes or vocabulary")
        elif ratio < RELEVANCE_THRESHOLD:
            warnings.append(f"Only {round(ratio * len(questions))}/{len(questions)} questions reference the source")

    if questions:
        if not PERSONAL_MARKERS.search(questions[0]):
            warnings.append("Question 1 should be personal")
        if len(questions) >= DISCUSSION_QUESTION_COUNT and not EVALUATIVE_MARKERS.search(questions[-1]):
            warnings.append("Question 5 should be evaluative")
        if _distinct_starters(questions) < 3:
            warnings.append("Low variety of question openers")

    return _result(issues, warnings)


def _verb_match(pattern: re.Pattern, text: str, excluded: frozenset) -> str | None:
    for m in pattern.finditer(text):
        if m.group(1).lower() not in excluded:
            return m.group(0)
    return None


def _dialogue_checks(
    lines: list[DialogueLine],
    extra_text: str,
    context: SharedContext,
) -> tuple[list[str], list[str]]:
    issues: list[str] = []
    warnings: list[str] = []
    level = context.cefr_level

    if len(lines) < DIALOGUE_MIN_LINES:
        issues.append(f"Dialogue has {len(lines)} lines, at least {DIALOGUE_MIN_LINES} required")
    if lines and lines[0].speaker != DIALOGUE_OPENING_ROLE:
        issues.append(f"Dialogue must open with {DIALOGUE_OPENING_ROLE}, not {lines[0].speaker}")

    unknown = sorted({l.speaker for l in lines if l.speaker not in DIALOGUE_ROLES})
    if unknown:
        warnings.append(f"Unexpected speakers: {', '.join(unknown)}")
    repeats = sum(1 for a, b in zip(lines, lines[1:]) if a.speaker == b.speaker)
    if repeats:
        warnings.append(f"Speakers do not alternate in {repeats} place(s)")

    text = " ".join(l.line for l in lines)
    vocabulary = list(context.key_vocabulary)
    required = min(2, len(vocabulary))
    used = terms_used(f"{text} {extra_text}", vocabulary)
    if len(used) < required:
        issues.append(f"Dialogue uses {len(used)} lesson vocabulary word(s), at least {required} required")

    if is_below(level, CEFRLevel.B1):
        perfect = _verb_match(PERFECT_RE, text, NON_PARTICIPLE_ED)
        if perfect:
            issues.append(f"Perfect aspect is above {level.value}: '{perfect}'")
        passive = _verb_match(PASSIVE_RE, text, NON_PARTICIPLE_ED | ADJECTIVAL_PARTICIPLES)
        if passive:
            issues.append(f"Passive voice is above {level.value}: '{passive}'")
        hard = [w for w in BEGINNER_AVOID_WORDS.get(level, ()) if re.search(rf"\b{w}\b", text, re.IGNORECASE)]
        if hard:
            warnings.append(f"Words too advanced for {level.value}: {', '.join(hard)}")
    elif level in (CEFRLevel.B2, CEFRLevel.C1) and lines:
        if not (
            RELATIVE_CLAUSE_RE.search(text)
            or CONDITIONAL_RE.search(text)
            or _verb_match(PERFECT_RE, text, NON_PARTICIPLE_ED)
            or PAST_PERFECT_RE.search(text)
        ):
            issues.append(f"{level.value} dialogue needs a relative clause, conditional or perfect construction")

    return issues, warnings


def validate_dialogue_practice(section: DialoguePracticeSection, context: SharedContext) -> ValidationResult:
    issues, warnings = _dialogue_checks(section.lines, "", context)
    if len(section.follow_up_questions) < 3:
        warnings.append(f"Only {len(section.follow_up_questions)} follow-up questions")
    return _result(issues, warnings)


def validate_dialogue_fill_gap(section: DialogueFillGapSection, context: SharedContext) -> ValidationResult:
    # Gapped words live in the answer key, so vocabulary use counts the answers too.
    issues, warnings = _dialogue_checks(section.lines, " ".join(section.answers), context)
    gaps = section.gap_count
    gapped_lines = sum(1 for l in section.lines if GAP_MARKER in l.line)

    if gaps == 0:
        issues.append("Fill-gap dialogue has no gaps")
    elif gapped_lines == len(section.lines):
        issues.append("Every line is gapped")
    if len(section.answers) != gaps:
        issues.append(f"Answer key has {len(section.answers)} answers for {gaps} gaps")
    if 0 < gaps < 3:
        warnings.append(f"Only {gaps} gaps")
    return _result(issues, warnings)


def validate_grammar(section: GrammarSection, context: SharedContext) -> ValidationResult:
    issues: list[str] = []
    warnings: list[str] = []

    if not section.grammar_point.strip():
        issues.append("No grammar point named")
    if len(section.form.strip()) < GRAMMAR_MIN_FORM_CHARS:
        issues.append(f"Form explanation shorter than {GRAMMAR_MIN_FORM_CHARS} characters")
    if len(section.usage.strip()) < GRAMMAR_MIN_USAGE_CHARS:
        issues.append(f"Usage explanation shorter than {GRAMMAR_MIN_USAGE_CHARS} characters")
    if len(section.examples) < GRAMMAR_MIN_EXAMPLES:
        issues.append(f"{len(section.examples)} examples, at least {GRAMMAR_MIN_EXAMPLES} required")
    if len(section.exercises) != GRAMMAR_EXERCISE_COUNT:
        issues.append(f"{len(section.exercises)} exercises, exactly {GRAMMAR_EXERCISE_COUNT} required")
    for i, ex in enumerate(section.exercises, 1):
        missing = [name for name in ("prompt", "answer", "explanation") if not getattr(ex, name).strip()]
        if missing:
            issues.append(f"Exercise {i} is missing {', '.join(missing)}")

    malformed = sum(
        1 for e in section.examples
        if not starts_capitalized(e) or not ends_with_terminal_punctuation(e)
    )
    if malformed:
        warnings.append(f"{malformed} example(s) lack a capital or final punctuation")

    terms = context.relevance_terms
    if terms and section.examples and not any(_is_relevant(e, terms) for e in section.examples):
        warnings.append("Examples do not relate to the source themes")

    return _result(issues, warnings, issue_penalty=15)


def validate_pronunciation(section: PronunciationSection, context: SharedContext) -> ValidationResult:
    issues: list[str] = []
    warnings: list[str] = []
    words = section.words

    if len(words) < PRONUNCIATION_MIN_WORDS:
        issues.append(f"{len(words)} words, at least {PRONUNCIATION_MIN_WORDS} required")
    elif len(words) < PRONUNCIATION_TARGET_WORDS:
        warnings.append(f"{len(words)} of {PRONUNCIATION_TARGET_WORDS} target words")

    for w in words:
        if not w.ipa.strip():
            issues.append(f"'{w.word}' has no phonetic transcription")
        if not [t for t in w.tips if t.strip()]:
            issues.append(f"'{w.word}' has no pronunciation tip")
        if not contains_term(w.practice_sentence, w.word):
            issues.append(f"Practice sentence for '{w.word}' does not contain the word")

    sounds = {s.lower() for w in words for s in w.difficult_sounds}
    if len(words) >= PRONUNCIATION_MIN_WORDS and len(sounds) < math.ceil(len(words) / 2):
        warnings.append("Selected words practise too few distinct sounds")

    for i, t in enumerate(section.tongue_twisters, 1):
        if not t.text.strip():
            warnings.append(f"Tongue twister {i} is empty")
        if not t.target_sounds or not t.difficulty.strip():
            warnings.append(f"Tongue twister {i} is missing target sounds or difficulty")

    return _result(issues, warnings)


def validate_wrapup(section: WrapupSection, context: SharedContext) -> ValidationResult:
    issues: list[str] = []
    warnings: list[str] = []
    questions = section.questions

    if len(questions) != WRAPUP_QUESTION_COUNT:
        issues.append(f"Expected exactly {WRAPUP_QUESTION_COUNT} questions, got {len(questions)}")
    _check_question_format(questions, issues)
    if questions and not any(REFLECTIVE_MARKERS.search(q) for q in questions):
        warnings.append("Questions do not invite reflection on the lesson")

    return _result(issues, warnings)


VALIDATORS = {
    WarmupSection: validate_warmup,
    VocabularySection: validate_vocabulary,
    ReadingSection: validate_reading,
    ComprehensionSection: validate_comprehension,
    DiscussionSection: validate_discussion,
    DialoguePracticeSection: validate_dialogue_practice,
    DialogueFillGapSection: validate_dialogue_fill_gap,
    GrammarSection: validate_grammar,
    PronunciationSection: validate_pronunciation,
    WrapupSection: validate_wrapup,
}


def validate_section(section, context: SharedContext) -> ValidationResult:
    validator = VALIDATORS.get(type(section))
    if validator is None:
        raise TypeError(f"No validator for section type {type(section).__name__}")
    return validator(section, context)


def minimum_viable_issue(section) -> str | None:
    """Reason an exhausted candidate is too empty to ship, or None.

    This is the hard-failure boundary: below these floors a lesson would be
    missing a whole section, so the request fails instead.
    """
    if isinstance(section, (WarmupSection, ComprehensionSection, DiscussionSection)) and not section.questions:
        return f"{section.kind} produced no questions"
    if isinstance(section, WrapupSection) and len(section.questions) < WRAPUP_QUESTION_COUNT:
        return f"wrapup produced {len(section.questions)} questions, {WRAPUP_QUESTION_COUNT} required"
    if isinstance(section, VocabularySection) and not section.entries:
        return "vocabulary produced no entries"
    if isinstance(section, ReadingSection) and not section.passage.strip():
        return "reading produced an empty passage"
    if isinstance(section, (DialoguePracticeSection, DialogueFillGapSection)) and not section.lines:
        return f"{section.kind} produced no dialogue"
    if isinstance(section, DialogueFillGapSection) and section.gap_count == 0:
        return "dialogue_fill_gap produced no gaps"
    if isinstance(section, GrammarSection) and not section.examples:
        return "grammar produced no examples"
    if isinstance(section, PronunciationSection) and len(section.words) < PRONUNCIATION_MIN_WORDS:
        return f"pronunciation produced {len(section.words)} words, {PRONUNCIATION_MIN_WORDS} required"
    return None
