"""Pronunciation section: challenging-word selection and per-word generation.

Word choice is deterministic. Each candidate is scored against weighted spelling
patterns that tend to trip learners up (digraphs, silent letters, clusters,
suffixes, length), then a diversity pass favours words that add a sound not
yet covered. Only then is the LLM asked for IPA, tips and a practice sentence,
one word at a time, so a failure on one word drops that word and not the
section.
"""

import logging
import math
import re
from dataclasses import dataclass, field

from linguaspark.services.cefr import PRONUNCIATION_TARGET_WORDS
from linguaspark.services.llm import GenerationServiceFailure, generate_text
from linguaspark.services.prompting import SYSTEM_PROMPT, context_block, retry_block
from linguaspark.services.response_parsing import (
    ResponseParseError,
    parse_json,
    parse_labelled_fields,
    split_values,
    string_list,
    text_field,
)
from linguaspark.services.sections import PronunciationSection, PronunciationWord, TongueTwister
from linguaspark.services.shared_context import SharedContext
from linguaspark.services.text_analysis import content_words

logger = logging.getLogger(__name__)

WORD_MAX_TOKENS = 600
TWISTER_MAX_TOKENS = 500
MAX_LENGTH_SCORE = 12

# (sound label, pattern, weight). A pattern scores at most once per word.
DIFFICULTY_PATTERNS: list[tuple[str, re.Pattern, int]] = [
    (label, re.compile(pattern), weight)
    for label, pattern, weight in (
        # consonant digraphs
        ("th", r"th", 5),
        ("ch", r"ch", 4),
        ("sh", r"sh", 4),
        ("ph", r"ph", 3),
        ("gh", r"gh", 4),
        ("ng", r"ng", 3),
        ("wh", r"wh", 3),
        ("r-blend", r"[bcdfgkpt]r", 4),
        # vowel digraphs
        ("ough", r"ough|augh", 5),
        ("eau", r"eau", 4),
        ("ieu", r"ieu", 4),
        ("ou", r"ou", 3),
        ("oo", r"oo", 3),
        ("ea", r"ea", 3),
        ("au", r"au|aw", 3),
        ("oi", r"oi|oy", 3),
        ("ei", r"ei|ey", 2),
        ("ie", r"ie", 2),
        # endings
        ("tion", r"tion|sion", 3),
        ("ture", r"ture|sure", 3),
        ("cious", r"cious|tious", 2),
        # silent letters
        ("silent-initial", r"^(kn|gn|wr|ps)", 5),
        ("silent-final", r"(mb|bt|lm|lk)$", 4),
        ("silent-gh", r"[aeiou]gh", 3),
        # clusters
        ("consonant-cluster", r"[^aeiou\W\d_]{3,}", 3),
        ("vowel-cluster", r"[aeiou]{3,}", 2),
    )
]
STRESS_RE = re.compile(r"(ate|tion|ic)$")


@dataclass
class WordDifficulty:
    word: str
    score: int
    sounds: set[str] = field(default_factory=set)


def score_word(word: str) -> WordDifficulty:
    w = word.lower()
    score = min(len(w), MAX_LENGTH_SCORE)
    sounds = set()
    for label, pattern, weight in DIFFICULTY_PATTERNS:
        if pattern.search(w):
            score += weight
            sounds.add(label)
    if len(w) > 6 and STRESS_RE.search(w):
        score += 2
        sounds.add("stress")
    return WordDifficulty(word=word, score=score, sounds=sounds)


def _unique(words: list[str]) -> list[str]:
    seen = set()
    out = []
    for w in words:
        key = w.lower()
        if key not in seen:
            seen.add(key)
            out.append(w)
    return out


def select_pronunciation_words(
    vocabulary: list[str],
    source_text: str = "",
    count: int = PRONUNCIATION_TARGET_WORDS,
) -> list[str]:
    """Pick up to `count` hard-to-pronounce words, spread across different sounds."""
    candidates = _unique([w for w in vocabulary if w.isalpha() and len(w) >= 4])
    if not candidates:
        candidates = _unique(content_words(source_text))
    if not candidates:
        return []

    ranked = sorted((score_word(w) for w in candidates), key=lambda d: -d.score)
    selected: list[WordDifficulty] = []
    covered: set[str] = set()
    seed = math.ceil(count / 2)

    for d in ranked:
        if len(selected) >= count:
            break
        if d.sounds - covered or len(selected) < seed:
            selected.append(d)
            covered |= d.sounds

    for d in ranked:
        if len(selected) >= count:
            break
        if d not in selected:
            selected.append(d)

    words = [d.word for d in selected]
    if len(words) < count:
        extra = [w for w in _unique(content_words(source_text)) if w.lower() not in {x.lower() for x in words}]
        words += extra[: count - len(words)]
    return words


def _numbered(fields: dict[str, list[str]], prefix: str) -> list[str]:
    """Values of PREFIX, PREFIX_1, PREFIX_2, ... in numeric order."""
    keyed = []
    for label, values in fields.items():
        m = re.fullmatch(rf"{prefix}S?(?:_?(\d+))?", label)
        if m:
            keyed.append((int(m.group(1) or 0), values))
    return [v for _, values in sorted(keyed) for v in values]


def parse_pronunciation_word(text: str, word: str) -> PronunciationWord:
    try:
        data = parse_json(text)
    except ResponseParseError:
        data = None

    if isinstance(data, dict) and (text_field(data.get("ipa")) or text_field(data.get("IPA"))):
        ipa = text_field(data.get("ipa")) or text_field(data.get("IPA"))
        sounds = string_list(data.get("difficult_sounds"))
        tips = string_list(data.get("tips"), keys=("tip", "text"))
        practice = text_field(data.get("practice_sentence")) or text_field(data.get("practice"))
    else:
        fields = parse_labelled_fields(text)
        ipa = (fields.get("IPA") or [""])[0]
        sounds = split_values((fields.get("DIFFICULT_SOUNDS") or [""])[0])
        tips = _numbered(fields, "TIP")
        practice = (fields.get("PRACTICE") or fields.get("PRACTICE_SENTENCE") or [""])[0]

    if not ipa or not practice:
        raise ResponseParseError(f"pronunciation response for '{word}' lacks IPA or practice sentence")
    return PronunciationWord(
        word=word,
        ipa=ipa,
        difficult_sounds=sounds,
        tips=tips,
        practice_sentence=practice,
    )


def parse_tongue_twisters(text: str) -> list[TongueTwister]:
    try:
        data = parse_json(text)
    except ResponseParseError:
        data = None

    twisters = []
    if isinstance(data, dict) and isinstance(data.get("tongue_twisters"), list):
        for item in data["tongue_twisters"]:
            if isinstance(item, dict) and text_field(item.get("text")):
                twisters.append(TongueTwister(
                    text=text_field(item["text"]),
                    target_sounds=string_list(item.get("target_sounds")),
                    difficulty=text_field(item.get("difficulty")),
                ))
        return twisters

    fields = parse_labelled_fields(text)
    for label, values in sorted(fields.items()):
        m = re.fullmatch(r"TWISTER_?(\d+)", label)
        if not m:
            continue
        n = m.group(1)
        sounds = (fields.get(f"SOUNDS_{n}") or [""])[0]
        difficulty = (fields.get(f"DIFFICULTY_{n}") or [""])[0]
        twisters.append(TongueTwister(text=values[0], target_sounds=split_values(sounds), difficulty=difficulty))
    return twisters


def _word_prompt(word: str, context: SharedContext, feedback: list[str] | None) -> str:
    return f"""Create pronunciation practice for the English word "{word}".

{context_block(context)}
{retry_block(feedback)}
Return JSON:
{{"word": "{word}", "ipa": "/.../", "difficult_sounds": ["..."], "tips": ["...", "..."], "practice_sentence": "..."}}

Rules:
- ipa is the standard British or American IPA transcription between slashes
- difficult_sounds names the sounds a {context.target_language} speaker finds hard in this word
- give 2 short, practical tips
- the practice sentence must contain the word "{word}" and suit the student's level

If you cannot produce JSON, use exactly these lines:
WORD: {word}
IPA: /.../
DIFFICULT_SOUNDS: sound, sound
TIP_1: ...
TIP_2: ...
PRACTICE: ..."""


def _twister_prompt(words: list[str], context: SharedContext) -> str:
    return f"""Write 2 short tongue twisters that practise the difficult sounds in: {', '.join(words)}.

{context_block(context)}

Return JSON:
{{"tongue_twisters": [{{"text": "...", "target_sounds": ["..."], "difficulty": "easy|medium|hard"}}]}}

If you cannot produce JSON, use these lines:
TWISTER_1: ...
SOUNDS_1: sound, sound
DIFFICULTY_1: easy"""


def _generate_tongue_twisters(words: list[str], context: SharedContext) -> list[TongueTwister]:
    """Optional enrichment; any failure just means no tongue twisters."""
    try:
        completion = generate_text(
            _twister_prompt(words, context),
            system_prompt=SYSTEM_PROMPT,
            max_output_tokens=TWISTER_MAX_TOKENS,
            json_mode=True,
            task_type="pronunciation_twisters",
        )
        return parse_tongue_twisters(completion.text)
    except (GenerationServiceFailure, ResponseParseError) as e:
        logger.warning(f"Tongue twisters skipped: {e}")
        return []


def generate_pronunciation(
    context: SharedContext,
    previous: dict,
    feedback: list[str] | None = None,
) -> PronunciationSection:
    words = select_pronunciation_words(list(context.key_vocabulary), context.source_text)
    results: list[PronunciationWord] = []
    service_errors: list[GenerationServiceFailure] = []

    for word in words:
        try:
            completion = generate_text(
                _word_prompt(word, context, feedback),
                system_prompt=SYSTEM_PROMPT,
                max_output_tokens=WORD_MAX_TOKENS,
                json_mode=True,
                task_type="pronunciation",
            )
            results.append(parse_pronunciation_word(completion.text, word))
        except GenerationServiceFailure as e:
            logger.warning(f"Pronunciation for '{word}' failed ({e.kind.value}), dropping word")
            service_errors.append(e)
        except ResponseParseError as e:
            logger.warning(f"Pronunciation for '{word}' unparseable, dropping word: {e}")

    if words and not results and len(service_errors) == len(words):
        raise service_errors[-1]

    twisters = _generate_tongue_twisters([r.word for r in results], context) if results else []
    return PronunciationSection(words=results, tongue_twisters=twisters)
