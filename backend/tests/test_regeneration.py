"""Tests for the regeneration state machine."""

import json
from unittest.mock import MagicMock, patch

import pytest

from linguaspark.config import settings
from linguaspark.services.llm import AllProvidersFailed, FailureKind
from linguaspark.services.regeneration import (
    ExhaustedRegeneration,
    RegenerationController,
    RegenerationState as S,
)
from linguaspark.services.response_parsing import ResponseParseError
from linguaspark.services.section_validators import ValidationResult, validate_section
from linguaspark.services.sections import (
    DiscussionSection,
    GrammarExercise,
    GrammarSection,
    SectionKind,
    WarmupSection,
)

VALID = ValidationResult(valid=True, score=100)
INVALID = ValidationResult(valid=False, score=70, issues=["Expected exactly 3 questions, got 2"])


def _grammar(examples):
    return GrammarSection(
        grammar_point="present perfect",
        form="Use have or has with the past participle.",
        usage="We use it for experiences and for past actions that matter now.",
        examples=[f"The climate has changed since {1990 + i}." for i in range(examples)],
        exercises=[
            GrammarExercise(prompt=f"They ___ (cut) emissions {i}.", answer="have cut", explanation="Result now.")
            for i in range(5)
        ],
    )


def test_accepts_first_valid_candidate(context):
    section = WarmupSection(questions=["A?", "B?", "C?"])
    generate = MagicMock(return_value=section)
    validate = MagicMock(return_value=VALID)

    outcome = RegenerationController(SectionKind.WARMUP, generate, validate).run(context, {})

    assert outcome.section is section
    assert outcome.accepted
    assert not outcome.regenerated
    assert outcome.attempts == 1
    assert outcome.history == [S.IDLE, S.GENERATING, S.VALIDATING, S.ACCEPTED]
    generate.assert_called_once_with(context, {}, None)


def test_invalid_then_valid_passes_feedback(context):
    first = WarmupSection(questions=["A?", "B?"])
    second = WarmupSection(questions=["A?", "B?", "C?"])
    generate = MagicMock(side_effect=[first, second])
    validate = MagicMock(side_effect=[INVALID, VALID])

    outcome = RegenerationController(SectionKind.WARMUP, generate, validate).run(context, {})

    assert outcome.section is second
    assert outcome.accepted
    assert outcome.regenerated
    assert outcome.history == [S.IDLE, S.GENERATING, S.VALIDATING, S.RETRYING, S.GENERATING, S.VALIDATING, S.ACCEPTED]
    assert generate.call_args_list[1].args[2] == INVALID.issues


def test_grammar_with_three_examples_twice_ships_with_warning(context):
    """Exhausted but above the minimum: accepted with regenerated=True, not an error."""
    generate = MagicMock(return_value=_grammar(examples=3))

    outcome = RegenerationController(SectionKind.GRAMMAR, generate, validate_section).run(context, {})

    assert outcome.state == S.EXHAUSTED
    assert not outcome.accepted
    assert outcome.regenerated
    assert outcome.attempts == settings.max_section_attempts
    assert len(outcome.section.examples) == 3
    assert "3 examples, at least 5 required" in outcome.validation.issues
    assert generate.call_count == 2


def test_parse_error_uses_an_attempt(context):
    section = WarmupSection(questions=["A?", "B?", "C?"])
    generate = MagicMock(side_effect=[ResponseParseError("no questions found"), section])

    outcome = RegenerationController(SectionKind.WARMUP, generate, MagicMock(return_value=VALID)).run(context, {})

    assert outcome.accepted
    assert outcome.attempts == 2
    assert outcome.history[:4] == [S.IDLE, S.GENERATING, S.RETRYING, S.GENERATING]
    assert "could not be parsed" in generate.call_args_list[1].args[2][0]


def test_parse_errors_throughout_raise_exhausted(context):
    generate = MagicMock(side_effect=ResponseParseError("garbage"))

    with pytest.raises(ExhaustedRegeneration) as exc_info:
        RegenerationController(SectionKind.WARMUP, generate, MagicMock()).run(context, {})

    assert exc_info.value.section == SectionKind.WARMUP


def test_service_failure_throughout_is_re_raised(context):
    error = AllProvidersFailed(FailureKind.QUOTA, "quota exhausted")
    generate = MagicMock(side_effect=error)

    with pytest.raises(AllProvidersFailed) as exc_info:
        RegenerationController(SectionKind.DISCUSSION, generate, MagicMock()).run(context, {})

    assert exc_info.value is error
    assert generate.call_count == 2


def test_service_failure_then_viable_candidate(context):
    section = WarmupSection(questions=["A?", "B?"])
    generate = MagicMock(side_effect=[AllProvidersFailed(FailureKind.NETWORK, "timeout"), section])

    outcome = RegenerationController(SectionKind.WARMUP, generate, MagicMock(return_value=INVALID)).run(context, {})

    assert outcome.section is section
    assert outcome.state == S.EXHAUSTED


def test_exhausted_below_minimum_raises(context):
    generate = MagicMock(return_value=DiscussionSection(questions=[]))
    invalid = ValidationResult(valid=False, score=0, issues=["Expected exactly 5 questions, got 0"])

    with pytest.raises(ExhaustedRegeneration) as exc_info:
        RegenerationController(SectionKind.DISCUSSION, generate, MagicMock(return_value=invalid)).run(context, {})

    assert exc_info.value.reason == "discussion produced no questions"
    assert exc_info.value.validation is invalid


def test_max_attempts_override(context):
    generate = MagicMock(return_value=WarmupSection(questions=["A?"]))

    outcome = RegenerationController(
        SectionKind.WARMUP, generate, MagicMock(return_value=INVALID), max_attempts=3,
    ).run(context, {})

    assert outcome.attempts == 3
    assert generate.call_count == 3


def test_illegal_transition_rejected():
    controller = RegenerationController(SectionKind.WARMUP, MagicMock(), MagicMock())
    with pytest.raises(RuntimeError):
        controller._transition(S.ACCEPTED)


def test_attempts_are_logged(context, tmp_path):
    generate = MagicMock(return_value=WarmupSection(questions=["A?", "B?", "C?"]))

    with patch.object(settings, "log_dir", tmp_path):
        RegenerationController(SectionKind.WARMUP, generate, MagicMock(return_value=VALID)).run(context, {})

    entries = [json.loads(l) for f in tmp_path.glob("lesson_gen_*.jsonl") for l in f.read_text().splitlines()]
    assert entries[-1]["event"] == "validated"
    assert entries[-1]["section"] == "warmup"
    assert entries[-1]["valid"] is True
    assert entries[-1]["attempt"] == 1
