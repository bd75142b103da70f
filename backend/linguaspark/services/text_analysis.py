"""Deterministic English text helpers used by the context builder and validators."""

import re

WORD_RE = re.compile(r"[A-Za-z][A-Za-z'-]*")
SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+(?=[A-Z0-9\"'“])")
CANDIDATE_RE = re.compile(r"\b[a-z]{4,12}\b")

STOPWORDS = frozenset("""
a about above after again against all also although always among an and another any are around as at
be because been before being below between both but by can could did does doing down during each either
even ever every few for from further had has have having he her here hers herself him himself his how
however i if in into is it its itself just least less like made make many may might more most much must
my myself near need never next no nor not now of off often on once one only or other others our ours
ourselves out over own per perhaps quite rather really said same say says she should since so some
something still such than that the their theirs them themselves then there these they this those though
through thus to too under until upon us very was we well were what whatever when where whether which
while who whom whose why will with within without would yet you your yours yourself yourselves
according across actually already among another anything became become becomes come comes could
during either else enough especially etc every everyone everything get gets getting give given gives
going gone got including instead into itself later least likely mostly must nothing often onto part
people seem seemed seems several shall show shown since someone sometimes take taken takes tell than
thing things think though three today together toward towards two unless used using usually various
want wants way ways went whether whole will year years
""".split())


def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def tokenize(text: str) -> list[str]:
    """Split into word tokens, keeping inner apostrophes and hyphens."""
    return WORD_RE.findall(text or "")


def word_count(text: str) -> int:
    return len(tokenize(text))


def split_sentences(text: str) -> list[str]:
    text = normalize_whitespace(text)
    if not text:
        return []
    return [s.strip() for s in SENTENCE_SPLIT_RE.split(text) if s.strip()]


def content_words(text: str) -> list[str]:
    """Lowercase candidate vocabulary tokens with stopwords removed, in text order."""
    return [w for w in CANDIDATE_RE.findall((text or "").lower()) if w not in STOPWORDS]


def _stem(word: str) -> str:
    word = word.lower()
    for suffix in ("ies", "ing", "ed", "es", "s", "ly"):
        if word.endswith(suffix) and len(word) - len(suffix) >= 3:
            return word[: -len(suffix)]
    return word


def contains_term(text: str, term: str) -> bool:
    """True when text contains term or a simple inflection of it.

    Multi-word terms match as a phrase; single words also match on a shared
    stem (warms/warming/warmed for warm).
    """
    term = (term or "").strip().lower()
    if not term:
        return False
    lowered = (text or "").lower()
    if " " in term:
        return term in lowered
    if re.search(rf"\b{re.escape(term)}", lowered):
        return True
    stem = _stem(term)
    if len(stem) < 3:
        return False
    return any(_stem(token) == stem for token in tokenize(lowered))


def terms_used(text: str, terms: list[str]) -> list[str]:
    """Distinct terms that occur in text, in the order given."""
    used = []
    for term in terms:
        if term.lower() not in {u.lower() for u in used} and contains_term(text, term):
            used.append(term)
    return used


def first_word(text: str) -> str:
    tokens = tokenize(text)
    return tokens[0].lower() if tokens else ""


def starts_capitalized(text: str) -> bool:
    stripped = (text or "").lstrip("\"'“‘(")
    return bool(stripped) and stripped[0].isupper()


def ends_with_terminal_punctuation(text: str) -> bool:
    stripped = (text or "").rstrip().rstrip("\"'”’)")
    return stripped.endswith((".", "!", "?"))
