"""Parsing of raw LLM text into section fields.

Each generator tries a strict JSON parse first and a tolerant line-oriented
parse second. When neither yields the fields a section needs, a
ResponseParseError is raised and the regeneration controller treats the
attempt as a failed validation. Nothing here invents missing values.
"""

import json
import re
from typing import Any


class ValidationFailure(Exception):
    """A candidate section did not meet its structural contract."""


class ResponseParseError(ValidationFailure):
    """The LLM response could not be turned into a candidate section."""


LIST_PREFIX_RE = re.compile(r"^\s*(?:[-*•]+(?=\s)|\(?\d{1,2}[.):]|[Qq]\d{1,2}[.):]?|#+)\s*")
LABEL_RE = re.compile(r"^\s*\**\s*([A-Za-z][A-Za-z_ ]{0,24}?(?:_?\d+)?)\s*\**\s*:\s*(.*)$")
SPEAKER_RE = re.compile(r"^\s*[*_]*\s*([A-Z][A-Za-z]{1,20})\s*[*_]*\s*:\s*(.+?)\s*$")


def strip_fences(text: str) -> str:
    text = (text or "").strip()
    if text.startswith("```"):
        text = re.sub(r"^```(?:json|JSON)?\s*", "", text)
        text = re.sub(r"\s*```\s*$", "", text)
    return text.strip()


def repair_incomplete_json(text: str) -> str:
    """Close an unterminated string and any open brackets/braces.

    Truncated responses usually stop mid-value; closing the structure keeps
    whatever complete items came before the cut. A string cut off mid-way is
    dropped rather than kept as a partial value.
    """
    stack: list[str] = []
    in_string = False
    escaped = False
    string_start = 0
    for i, ch in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
            string_start = i
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]" and stack:
            stack.pop()

    repaired = text[:string_start] if in_string else text
    repaired = re.sub(r"[,:]\s*$", "", repaired.rstrip())
    # Inside an object a trailing string is a key with no value; inside a list it is a complete item.
    if stack and stack[-1] == "}":
        repaired = re.sub(r'[,{]\s*"(?:[^"\\]|\\.)*"\s*$', lambda m: m.group(0)[0], repaired)
        repaired = re.sub(r",\s*$", "", repaired)
    return repaired + "".join(reversed(stack))


def parse_json(text: str) -> Any:
    """Strict-then-repairing JSON parse of an LLM response."""
    cleaned = strip_fences(text)
    if not cleaned:
        raise ResponseParseError("empty response")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    starts = [i for i in (cleaned.find("{"), cleaned.find("[")) if i >= 0]
    if not starts:
        raise ResponseParseError("no JSON value in response")
    body = cleaned[min(starts):]
    decoder = json.JSONDecoder()
    try:
        return decoder.raw_decode(body)[0]
    except json.JSONDecodeError:
        pass
    try:
        return json.loads(repair_incomplete_json(body))
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"unparseable JSON: {e}") from e


def text_field(value: Any) -> str:
    """A stripped string field; null, numbers and nested values count as missing."""
    return value.strip() if isinstance(value, str) else ""


def clean_item(text: str) -> str:
    text = LIST_PREFIX_RE.sub("", text or "").strip()
    text = re.sub(r"^\*\*(.+?)\*\*$", r"\1", text)
    return text.strip().strip('"').strip()


def string_list(value: Any, keys: tuple[str, ...] = ("question", "text", "sentence", "example")) -> list[str]:
    """Coerce a JSON list of strings or single-key objects into clean strings."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    items = []
    for item in value:
        if isinstance(item, dict):
            item = next((item[k] for k in keys if isinstance(item.get(k), str)), None)
        if isinstance(item, str) and clean_item(item):
            items.append(clean_item(item))
    return items


def parse_list_lines(text: str) -> list[str]:
    """Numbered or bulleted lines, with markers stripped and headings dropped."""
    items = []
    for raw in strip_fences(text).splitlines():
        item = clean_item(raw)
        if not item or item.endswith(":") or item.startswith(("{", "}", "[", "]")):
            continue
        items.append(item)
    return items


def parse_questions(text: str, json_key: str = "questions") -> list[str]:
    """Questions from {"questions": [...]}, a bare JSON list, or question lines."""
    try:
        data = parse_json(text)
    except ResponseParseError:
        data = None
    if isinstance(data, dict):
        questions = string_list(data.get(json_key))
        if questions:
            return questions
    elif isinstance(data, list):
        questions = string_list(data)
        if questions:
            return questions

    questions = [line for line in parse_list_lines(text) if line.endswith("?")]
    if not questions:
        raise ResponseParseError("no questions found in response")
    return questions


def parse_labelled_fields(text: str) -> dict[str, list[str]]:
    """Collect `LABEL: value` lines. Repeated labels keep every value in order.

    Labels are normalised to upper case with spaces as underscores, so
    "Tip 1:" and "TIP_1:" both land under TIP_1.
    """
    fields: dict[str, list[str]] = {}
    for raw in strip_fences(text).splitlines():
        m = LABEL_RE.match(raw)
        if not m:
            continue
        label = re.sub(r"\s+", "_", m.group(1).strip().upper())
        value = m.group(2).strip().strip("*").strip()
        if value:
            fields.setdefault(label, []).append(value)
    return fields


def parse_speaker_lines(text: str) -> list[tuple[str, str]]:
    """`Speaker: line` pairs in order, ignoring anything else."""
    pairs = []
    for raw in strip_fences(text).splitlines():
        m = SPEAKER_RE.match(raw)
        if m and m.group(1).upper() not in {"ANSWERS", "ANSWER", "QUESTIONS", "NOTE", "TITLE"}:
            pairs.append((m.group(1).capitalize(), m.group(2).strip()))
    return pairs


def split_values(value: str) -> list[str]:
    """Split a comma, semicolon or slash separated field."""
    return [v.strip().strip("/").strip() for v in re.split(r"[;,]|\s/\s", value) if v.strip().strip("/").strip()]
