"""LLM generators for the question, vocabulary, reading, dialogue and grammar sections.

Every generator has the same shape:

    generate_<kind>(context, previous, feedback=None) -> section

`previous` maps SectionKind to sections already accepted for this lesson, and
`feedback` carries the blocking issues of the last failed attempt. Each
generator makes one LLM call and parses the reply strict-JSON-first, falling
back to a line-oriented parse; when neither works it raises ResponseParseError.

Pronunciation and title live in their own modules.
"""

import logging
import re

from linguaspark.services.cefr import (
    COMPREHENSION_QUESTION_COUNT,
    DIALOGUE_MIN_LINES,
    DIALOGUE_OPENING_ROLE,
    DISCUSSION_PROGRESSION,
    DISCUSSION_QUESTION_COUNT,
    DISCUSSION_WORD_BANDS,
    EXAMPLE_COUNT,
    EXAMPLE_LENGTH,
    GRAMMAR_EXERCISE_COUNT,
    GRAMMAR_MIN_EXAMPLES,
    GRAMMAR_POINTS,
    GUIDANCE,
    MAX_VOCABULARY_WORDS,
    READING_WORD_BANDS,
    WARMUP_QUESTION_COUNT,
    WRAPUP_QUESTION_COUNT,
    CEFRLevel,
    is_below,
)
from linguaspark.services.llm import generate_text
from linguaspark.services.prompting import SYSTEM_PROMPT, context_block, retry_block, source_block
from linguaspark.services.pronunciation import generate_pronunciation
from linguaspark.services.response_parsing import (
    ResponseParseError,
    parse_json,
    parse_labelled_fields,
    parse_list_lines,
    parse_questions,
    parse_speaker_lines,
    split_values,
    string_list,
    strip_fences,
    text_field,
)
from linguaspark.services.sections import (
    GAP_MARKER,
    ComprehensionSection,
    DialogueFillGapSection,
    DialogueLine,
    DialoguePracticeSection,
    DiscussionSection,
    GrammarExercise,
    GrammarSection,
    ReadingSection,
    SectionKind,
    VocabularyEntry,
    VocabularySection,
    WarmupSection,
    WrapupSection,
)
from linguaspark.services.shared_context import SharedContext

logger = logging.getLogger(__name__)

MAX_TOKENS = {
    SectionKind.WARMUP: 400,
    SectionKind.VOCABULARY: 2500,
    SectionKind.READING: 1500,
    SectionKind.COMPREHENSION: 500,
    SectionKind.DISCUSSION: 600,
    SectionKind.DIALOGUE_PRACTICE: 1500,
    SectionKind.DIALOGUE_FILL_GAP: 1500,
    SectionKind.GRAMMAR: 2000,
    SectionKind.WRAPUP: 400,
}

GAP_RE = re.compile(r"_{3,}")


def _ask(kind: SectionKind, prompt: str) -> str:
    completion = generate_text(
        prompt,
        system_prompt=SYSTEM_PROMPT,
        max_output_tokens=MAX_TOKENS[kind],
        json_mode=True,
        task_type=kind.value,
    )
    if completion.truncated:
        logger.info(f"{kind.value} response was truncated, parsing what arrived")
    return completion.text


# --- warm-up -----------------------------------------------------------------

def generate_warmup(context: SharedContext, previous: dict, feedback: list[str] | None = None) -> WarmupSection:
    prompt = f"""Write exactly {WARMUP_QUESTION_COUNT} warm-up questions to open a lesson.

{context_block(context)}
{retry_block(feedback)}
The student has NOT read anything yet. Ask about their own experience, habits
and opinions on the topic. Never refer to "the text", "the article" or "the
author", and never ask what happened or who did something in the source.
Each question ends with a question mark.

Return JSON: {{"questions": ["...", "...", "..."]}}"""
    return WarmupSection(questions=parse_questions(_ask(SectionKind.WARMUP, prompt)))


# --- vocabulary --------------------------------------------------------------

def _vocabulary_blocks(text: str) -> list[dict[str, list[str]]]:
    """Split a line-oriented reply into one labelled-field dict per WORD: block."""
    blocks: list[list[str]] = []
    for line in strip_fences(text).splitlines():
        if re.match(r"^\s*\**\s*WORD\s*\**\s*:", line, re.IGNORECASE):
            blocks.append([])
        if blocks:
            blocks[-1].append(line)
    return [parse_labelled_fields("\n".join(b)) for b in blocks]


def _example_fields(fields: dict[str, list[str]]) -> list[str]:
    numbered = []
    for label, values in fields.items():
        m = re.fullmatch(r"EXAMPLES?(?:_?(\d+))?", label)
        if m:
            numbered.append((int(m.group(1) or 0), values))
    return [v for _, values in sorted(numbered) for v in values]


def parse_vocabulary(text: str, example_count: int) -> VocabularySection:
    try:
        data = parse_json(text)
    except ResponseParseError:
        data = None

    raw_entries = None
    if isinstance(data, dict):
        raw_entries = data.get("entries") or data.get("vocabulary") or data.get("words")
    elif isinstance(data, list):
        raw_entries = data

    entries: list[VocabularyEntry] = []
    if isinstance(raw_entries, list):
        for item in raw_entries:
            if not isinstance(item, dict) or not text_field(item.get("word")):
                continue
            entries.append(VocabularyEntry(
                word=text_field(item["word"]),
                definition=text_field(item.get("definition")),
                part_of_speech=text_field(item.get("part_of_speech")) or None,
                examples=string_list(item.get("examples"))[:example_count],
            ))
    else:
        for fields in _vocabulary_blocks(text):
            word = (fields.get("WORD") or [""])[0]
            if not word:
                continue
            pos = (fields.get("PART_OF_SPEECH") or fields.get("POS") or [None])[0]
            entries.append(VocabularyEntry(
                word=word,
                definition=(fields.get("DEFINITION") or [""])[0],
                part_of_speech=pos,
                examples=_example_fields(fields)[:example_count],
            ))

    if not entries:
        raise ResponseParseError("no vocabulary entries found in response")
    return VocabularySection(entries=entries)


def generate_vocabulary(context: SharedContext, previous: dict, feedback: list[str] | None = None) -> VocabularySection:
    level = context.cefr_level
    count = EXAMPLE_COUNT[level]
    low, high = EXAMPLE_LENGTH[level]
    example_slots = ", ".join(['"..."'] * count)
    words = list(context.key_vocabulary)[:MAX_VOCABULARY_WORDS]
    if words:
        word_instruction = f"Teach exactly these words: {', '.join(words)}."
    else:
        word_instruction = f"Choose up to {MAX_VOCABULARY_WORDS} useful words from the source text."

    prompt = f"""Write vocabulary entries for a lesson.

{context_block(context)}
{source_block(context)}
{retry_block(feedback)}
{word_instruction}
For each word give a short learner-friendly definition, its part of speech, and
EXACTLY {count} example sentences. Every example:
- contains the word itself (an inflected form is fine)
- is {low}-{high} words long
- starts with a capital letter and ends with . ! or ?
- relates to the themes of the source text where possible

Return JSON:
{{"entries": [{{"word": "...", "definition": "...", "part_of_speech": "...", "examples": [{example_slots}]}}]}}"""
    return parse_vocabulary(_ask(SectionKind.VOCABULARY, prompt), count)


# --- reading -----------------------------------------------------------------

def parse_reading(text: str) -> ReadingSection:
    try:
        data = parse_json(text)
    except ResponseParseError:
        data = None
    if isinstance(data, dict) and text_field(data.get("passage")):
        title = text_field(data.get("title")) or None
        return ReadingSection(title=title, passage=text_field(data["passage"]))
    if isinstance(data, dict):
        raise ResponseParseError("reading JSON has no passage")

    lines = strip_fences(text).splitlines()
    title = None
    if lines and re.match(r"^\s*TITLE\s*:", lines[0], re.IGNORECASE):
        title = lines[0].split(":", 1)[1].strip() or None
        lines = lines[1:]
    passage = "\n".join(lines).strip()
    if not passage:
        raise ResponseParseError("empty reading passage")
    return ReadingSection(title=title, passage=passage)


def generate_reading(context: SharedContext, previous: dict, feedback: list[str] | None = None) -> ReadingSection:
    low, high = READING_WORD_BANDS[context.cefr_level]
    prompt = f"""Rewrite the source text as a reading passage for the student.

{context_block(context)}
{source_block(context)}
{retry_block(feedback)}
Requirements:
- {low}-{high} words, in paragraphs
- keep the facts and main ideas of the source; simplify language to the level
- use at least 3 of the key vocabulary words naturally

Return JSON: {{"title": "...", "passage": "..."}}"""
    return parse_reading(_ask(SectionKind.READING, prompt))


# --- comprehension -----------------------------------------------------------

def generate_comprehension(
    context: SharedContext,
    previous: dict,
    feedback: list[str] | None = None,
) -> ComprehensionSection:
    reading = previous.get(SectionKind.READING)
    passage = reading.passage if reading else context.prompt_source
    prompt = f"""Write exactly {COMPREHENSION_QUESTION_COUNT} comprehension questions about this passage.

{context_block(context)}
Passage:
\"\"\"
{passage}
\"\"\"
{retry_block(feedback)}
Each question is answerable from the passage alone (no opinions), checks a
different part of it, and ends with a question mark. Order them from main idea
to detail.

Return JSON: {{"questions": ["...", "...", "...", "...", "..."]}}"""
    return ComprehensionSection(questions=parse_questions(_ask(SectionKind.COMPREHENSION, prompt)))


# --- discussion --------------------------------------------------------------

def generate_discussion(context: SharedContext, previous: dict, feedback: list[str] | None = None) -> DiscussionSection:
    low, high = DISCUSSION_WORD_BANDS[context.cefr_level]
    progression = "\n".join(f"- {p}" for p in DISCUSSION_PROGRESSION)
    prompt = f"""Write exactly {DISCUSSION_QUESTION_COUNT} discussion questions for a conversation lesson.

{context_block(context)}
{retry_block(feedback)}
Follow this progression:
{progression}

Rules:
- every question is {low}-{high} words long and ends with a question mark
- at least 3 questions mention a theme or key vocabulary word from the source
- start the questions with different words

Return JSON: {{"questions": ["...", "...", "...", "...", "..."]}}"""
    return DiscussionSection(questions=parse_questions(_ask(SectionKind.DISCUSSION, prompt)))


# --- dialogues ---------------------------------------------------------------

def _grammar_limits(level: CEFRLevel) -> str:
    if is_below(level, CEFRLevel.B1):
        return ("Use only simple present and simple past. Do NOT use the present perfect "
                "(have/has + past participle) or the passive voice.")
    if level in (CEFRLevel.B2, CEFRLevel.C1):
        return ("Include at least one relative clause (who/which), one conditional (if ... would) "
                "and one perfect tense.")
    return f"Use grammar the student knows: {', '.join(GUIDANCE[level].tenses)}."


def _parse_dialogue_lines(data, text: str) -> list[DialogueLine]:
    raw = None
    if isinstance(data, dict):
        raw = data.get("dialogue") or data.get("lines")
    if isinstance(raw, list):
        pairs = [
            (text_field(item.get("speaker")).capitalize(), text_field(item.get("line")) or text_field(item.get("text")))
            for item in raw
            if isinstance(item, dict)
        ]
    else:
        pairs = parse_speaker_lines(text)
    lines = []
    for speaker, line in pairs:
        if speaker and line:
            line = GAP_RE.sub(GAP_MARKER, line)
            lines.append(DialogueLine(speaker=speaker, line=line, is_gap=GAP_MARKER in line))
    if not lines:
        raise ResponseParseError("no dialogue lines found in response")
    return lines


def parse_dialogue_practice(text: str) -> DialoguePracticeSection:
    try:
        data = parse_json(text)
    except ResponseParseError:
        data = None
    lines = _parse_dialogue_lines(data, text)
    if isinstance(data, dict):
        follow_ups = string_list(data.get("follow_up_questions") or data.get("questions"))
    else:
        speaker_texts = {line.line for line in lines}
        follow_ups = [
            q for q in parse_list_lines(text)
            if q.endswith("?") and not parse_speaker_lines(q) and q not in speaker_texts
        ]
    return DialoguePracticeSection(lines=lines, follow_up_questions=follow_ups)


def parse_dialogue_fill_gap(text: str) -> DialogueFillGapSection:
    try:
        data = parse_json(text)
    except ResponseParseError:
        data = None
    lines = _parse_dialogue_lines(data, text)
    if isinstance(data, dict):
        answers = string_list(data.get("answers"), keys=("answer", "text"))
    else:
        fields = parse_labelled_fields(text)
        if fields.get("ANSWERS"):
            answers = split_values(fields["ANSWERS"][0])
        else:
            numbered = sorted(
                (int(m.group(1)), values[0])
                for label, values in fields.items()
                if (m := re.fullmatch(r"ANSWER_?(\d+)", label))
            )
            answers = [a for _, a in numbered]
    return DialogueFillGapSection(lines=lines, answers=answers)


def _dialogue_prompt(context: SharedContext, feedback: list[str] | None, task: str, output: str) -> str:
    vocabulary = list(context.key_vocabulary)
    use = f"\n- use at least 3 of these words: {', '.join(vocabulary)}" if vocabulary else ""
    return f"""Write a dialogue between a Student and a Tutor about the topic of the source.

{context_block(context)}
{retry_block(feedback)}
Rules:
- at least {DIALOGUE_MIN_LINES + 2} lines, the {DIALOGUE_OPENING_ROLE} speaks first, speakers alternate
- speaker labels are exactly "Student" and "Tutor"
- {_grammar_limits(context.cefr_level)}{use}
{task}

{output}"""


def generate_dialogue_practice(
    context: SharedContext,
    previous: dict,
    feedback: list[str] | None = None,
) -> DialoguePracticeSection:
    prompt = _dialogue_prompt(
        context,
        feedback,
        "After the dialogue, write 3 follow-up questions the tutor can ask about it.",
        'Return JSON: {"dialogue": [{"speaker": "Student", "line": "..."}], "follow_up_questions": ["...", "...", "..."]}',
    )
    return parse_dialogue_practice(_ask(SectionKind.DIALOGUE_PRACTICE, prompt))


def generate_dialogue_fill_gap(
    context: SharedContext,
    previous: dict,
    feedback: list[str] | None = None,
) -> DialogueFillGapSection:
    prompt = _dialogue_prompt(
        context,
        feedback,
        f"Replace one key word in 4 to 6 of the lines (never all of them) with {GAP_MARKER}. "
        "Prefer key vocabulary words. List the removed words in order in answers, one per gap.",
        'Return JSON: {"dialogue": [{"speaker": "Student", "line": "..."}], "answers": ["...", "..."]}',
    )
    return parse_dialogue_fill_gap(_ask(SectionKind.DIALOGUE_FILL_GAP, prompt))


# --- grammar -----------------------------------------------------------------

def parse_grammar(text: str) -> GrammarSection:
    try:
        data = parse_json(text)
    except ResponseParseError:
        data = None

    if isinstance(data, dict):
        explanation = data.get("explanation") if isinstance(data.get("explanation"), dict) else {}
        exercises = []
        for item in data.get("exercises") or []:
            if isinstance(item, dict):
                exercises.append(GrammarExercise(
                    prompt=text_field(item.get("prompt")),
                    answer=text_field(item.get("answer")),
                    explanation=text_field(item.get("explanation")),
                ))
        notes = text_field(explanation.get("level_notes")) or text_field(explanation.get("levelNotes"))
        point = text_field(data.get("grammar_point")) or text_field(data.get("grammarPoint"))
        if not point and not exercises and not data.get("examples"):
            raise ResponseParseError("grammar JSON has none of the expected fields")
        return GrammarSection(
            grammar_point=point,
            form=text_field(explanation.get("form")) or text_field(data.get("form")),
            usage=text_field(explanation.get("usage")) or text_field(data.get("usage")),
            level_notes=notes or None,
            examples=string_list(data.get("examples")),
            exercises=exercises,
        )

    fields = parse_labelled_fields(text)
    point = (fields.get("GRAMMAR_POINT") or [""])[0]
    if not point:
        raise ResponseParseError("no grammar point found in response")

    def numbered(prefix: str) -> dict[int, str]:
        found = {}
        for label, values in fields.items():
            m = re.fullmatch(rf"{prefix}_?(\d+)", label)
            if m:
                found[int(m.group(1))] = values[0]
        return found

    prompts, answers, explanations = numbered("EXERCISE"), numbered("ANSWER"), numbered("EXPLANATION")
    exercises = [
        GrammarExercise(prompt=prompts[n], answer=answers.get(n, ""), explanation=explanations.get(n, ""))
        for n in sorted(prompts)
    ]
    examples = [v for _, v in sorted(numbered("EXAMPLE").items())]
    return GrammarSection(
        grammar_point=point,
        form=(fields.get("FORM") or [""])[0],
        usage=(fields.get("USAGE") or [""])[0],
        level_notes=(fields.get("LEVEL_NOTES") or [None])[0],
        examples=examples,
        exercises=exercises,
    )


def choose_grammar_point(context: SharedContext) -> str:
    """The level's grammar point best represented in the source text."""
    points = GRAMMAR_POINTS[context.cefr_level]
    text = context.source_text.lower()
    hints = {
        "present perfect": r"\b(have|has)\s+\w+ed\b",
        "passive voice": r"\b(is|are|was|were)\s+\w+ed\b",
        "past simple": r"\b\w+ed\b",
        "first and second conditionals": r"\bif\b",
        "third and mixed conditionals": r"\bif\b.*\bhad\b",
        "relative clauses": r"\b(who|which|whose)\b",
        "reported speech": r"\b(said|told|explained)\s+that\b",
        "comparatives and superlatives": r"\b\w+er than\b|\bmost\b",
        "modal verbs can/must/should": r"\b(can|must|should)\b",
    }
    scored = [(len(re.findall(hints[p], text)) if p in hints else 0, -i, p) for i, p in enumerate(points)]
    return max(scored)[2]


def generate_grammar(context: SharedContext, previous: dict, feedback: list[str] | None = None) -> GrammarSection:
    point = choose_grammar_point(context)
    prompt = f"""Write a grammar focus on "{point}" for the student.

{context_block(context)}
{retry_block(feedback)}
Requirements:
- "form": how the structure is built (at least two full sentences)
- "usage": when and why it is used (at least two full sentences), separate from form
- at least {GRAMMAR_MIN_EXAMPLES} example sentences about the source themes
- exactly {GRAMMAR_EXERCISE_COUNT} practice exercises, each with a prompt, the answer and a short explanation

Return JSON:
{{"grammar_point": "{point}", "explanation": {{"form": "...", "usage": "...", "level_notes": "..."}},
 "examples": ["..."], "exercises": [{{"prompt": "...", "answer": "...", "explanation": "..."}}]}}"""
    return parse_grammar(_ask(SectionKind.GRAMMAR, prompt))


# --- wrap-up -----------------------------------------------------------------

def generate_wrapup(context: SharedContext, previous: dict, feedback: list[str] | None = None) -> WrapupSection:
    grammar = previous.get(SectionKind.GRAMMAR)
    focus = f"Grammar practised: {grammar.grammar_point}\n" if grammar else ""
    prompt = f"""Write exactly {WRAPUP_QUESTION_COUNT} wrap-up questions to close the lesson.

{context_block(context)}
{focus}{retry_block(feedback)}
The questions help the student reflect on what they learned today, which new
words they will use, and how the topic connects to their life. Each ends with a
question mark.

Return JSON: {{"questions": ["...", "...", "..."]}}"""
    return WrapupSection(questions=parse_questions(_ask(SectionKind.WRAPUP, prompt)))


GENERATORS = {
    SectionKind.WARMUP: generate_warmup,
    SectionKind.VOCABULARY: generate_vocabulary,
    SectionKind.READING: generate_reading,
    SectionKind.COMPREHENSION: generate_comprehension,
    SectionKind.DISCUSSION: generate_discussion,
    SectionKind.DIALOGUE_PRACTICE: generate_dialogue_practice,
    SectionKind.DIALOGUE_FILL_GAP: generate_dialogue_fill_gap,
    SectionKind.GRAMMAR: generate_grammar,
    SectionKind.PRONUNCIATION: generate_pronunciation,
    SectionKind.WRAPUP: generate_wrapup,
}
