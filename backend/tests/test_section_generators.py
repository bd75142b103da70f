"""Tests for the section generators.

LLM calls are mocked at the generator module; these tests cover prompt
construction and the JSON-first / line-fallback parsing of each section.
"""

import json
from unittest.mock import patch

import pytest

from linguaspark.services.cefr import CEFRLevel
from linguaspark.services.llm import Completion
from linguaspark.services.response_parsing import ResponseParseError
from linguaspark.services.section_validators import validate_grammar, validate_vocabulary
from linguaspark.services.section_generators import (
    GENERATORS,
    choose_grammar_point,
    generate_comprehension,
    generate_dialogue_fill_gap,
    generate_discussion,
    generate_grammar,
    generate_reading,
    generate_vocabulary,
    generate_warmup,
    generate_wrapup,
    parse_dialogue_fill_gap,
    parse_dialogue_practice,
    parse_grammar,
    parse_reading,
    parse_vocabulary,
)
from linguaspark.services.sections import (
    GAP_MARKER,
    GrammarSection,
    ReadingSection,
    SectionKind,
    WarmupSection,
)


def _completion(text):
    if not isinstance(text, str):
        text = json.dumps(text)
    return Completion(text=text, model="gemini/gemini-3-flash-preview", max_output_tokens=1000)


@patch("linguaspark.services.section_generators.generate_text")
def test_generate_warmup(mock_gen, context):
    mock_gen.return_value = _completion({"questions": ["Do you like hot weather?", "How do you travel?", "What do you eat?"]})

    section = generate_warmup(context, {})

    assert isinstance(section, WarmupSection)
    assert len(section.questions) == 3
    kwargs = mock_gen.call_args.kwargs
    assert kwargs["task_type"] == "warmup"
    assert kwargs["json_mode"] is True
    assert "PREVIOUS ATTEMPT FAILED" not in mock_gen.call_args.args[0]


@patch("linguaspark.services.section_generators.generate_text")
def test_feedback_is_added_to_retry_prompt(mock_gen, context):
    mock_gen.return_value = _completion({"questions": ["One?", "Two?", "Three?", "Four?", "Five?"]})

    generate_discussion(context, {}, feedback=["Question 3 has 25 words, B1 allows 6-18"])

    prompt = mock_gen.call_args.args[0]
    assert "PREVIOUS ATTEMPT FAILED" in prompt
    assert "Question 3 has 25 words" in prompt
    assert "6-18 words long" in prompt


@patch("linguaspark.services.section_generators.generate_text")
def test_generate_vocabulary_prompt_follows_level(mock_gen, make_context):
    ctx = make_context(CEFRLevel.A2)
    entries = [{"word": w, "definition": "d", "examples": [f"{w} one.", f"{w} two."]} for w in ctx.key_vocabulary]
    mock_gen.return_value = _completion({"entries": entries})

    section = generate_vocabulary(ctx, {})

    prompt = mock_gen.call_args.args[0]
    assert "EXACTLY 5 example sentences" in prompt
    assert "climate" in prompt
    assert section.words == list(ctx.key_vocabulary)


class TestParseVocabulary:
    def test_json_trims_surplus_examples(self):
        text = json.dumps({"entries": [
            {"word": "drought", "definition": "no rain", "part_of_speech": "noun",
             "examples": ["A drought.", "Droughts.", "The drought.", "Drought!", "One more drought."]},
        ]})
        section = parse_vocabulary(text, 4)
        assert len(section.entries[0].examples) == 4
        assert section.entries[0].part_of_speech == "noun"

    def test_null_fields_count_as_missing(self, context):
        text = json.dumps({"entries": [
            {"word": "drought", "definition": None, "part_of_speech": None, "examples": ["A drought came."]},
        ]})
        section = parse_vocabulary(text, 4)
        assert section.entries[0].definition == ""
        assert section.entries[0].part_of_speech is None
        assert "'drought' has no definition" in validate_vocabulary(section, context).issues

    def test_line_fallback(self):
        text = (
            "WORD: drought\nDEFINITION: a long period without rain\nPART_OF_SPEECH: noun\n"
            "EXAMPLE_1: The drought lasted all summer.\nEXAMPLE_2: Farmers fear a drought.\n\n"
            "WORD: flood\nDEFINITION: too much water\n"
            "EXAMPLE_1: The flood closed the road.\nEXAMPLE_2: A flood can destroy homes."
        )
        section = parse_vocabulary(text, 3)
        assert section.words == ["drought", "flood"]
        assert section.entries[0].examples == ["The drought lasted all summer.", "Farmers fear a drought."]
        assert section.entries[1].definition == "too much water"

    def test_nothing_usable(self):
        with pytest.raises(ResponseParseError):
            parse_vocabulary("Sorry, I can't do that.", 4)


class TestParseReading:
    def test_json(self):
        section = parse_reading('{"title": "A Warmer World", "passage": "The planet is warming."}')
        assert section == ReadingSection(title="A Warmer World", passage="The planet is warming.")

    def test_plain_text_with_title(self):
        section = parse_reading("TITLE: A Warmer World\nThe planet is warming.\n\nSeas are rising.")
        assert section.title == "A Warmer World"
        assert section.passage == "The planet is warming.\n\nSeas are rising."

    def test_json_without_passage(self):
        with pytest.raises(ResponseParseError):
            parse_reading('{"title": "Only a title"}')


@patch("linguaspark.services.section_generators.generate_text")
def test_generate_reading(mock_gen, context):
    mock_gen.return_value = _completion({"passage": "The planet is warming."})
    assert generate_reading(context, {}).passage == "The planet is warming."
    assert "200-400 words" in mock_gen.call_args.args[0]


@patch("linguaspark.services.section_generators.generate_text")
def test_comprehension_asks_about_accepted_reading(mock_gen, context):
    mock_gen.return_value = _completion({"questions": ["Why?", "What?", "Who?", "Where?", "How?"]})
    reading = ReadingSection(passage="Glaciers in the Alps lost a tenth of their ice.")

    generate_comprehension(context, {SectionKind.READING: reading})

    assert "Glaciers in the Alps lost a tenth of their ice." in mock_gen.call_args.args[0]


class TestParseDialogue:
    def test_practice_json(self):
        text = json.dumps({
            "dialogue": [{"speaker": "student", "line": "Hi!"}, {"speaker": "Tutor", "line": "Hello."}],
            "follow_up_questions": ["Who speaks first?"],
        })
        section = parse_dialogue_practice(text)
        assert [l.speaker for l in section.lines] == ["Student", "Tutor"]
        assert section.follow_up_questions == ["Who speaks first?"]

    def test_practice_text(self):
        text = (
            "Student: Do you worry about the climate?\n"
            "Tutor: Yes, a little.\n\n"
            "Follow-up questions:\n"
            "1. What does the student worry about?\n"
            "2. How does the tutor feel?"
        )
        section = parse_dialogue_practice(text)
        assert len(section.lines) == 2
        assert section.follow_up_questions == ["What does the student worry about?", "How does the tutor feel?"]

    def test_fill_gap_json_normalises_gaps(self):
        text = json.dumps({
            "dialogue": [
                {"speaker": "Student", "line": "We use too much ___ at home."},
                {"speaker": "Tutor", "line": "Yes, and ________ too."},
            ],
            "answers": ["energy", "water"],
        })
        section = parse_dialogue_fill_gap(text)
        assert section.lines[0].line == f"We use too much {GAP_MARKER} at home."
        assert section.lines[0].is_gap
        assert section.gap_count == 2
        assert section.answers == ["energy", "water"]

    def test_fill_gap_answers_label(self):
        text = "Student: I save ___ at home.\nTutor: Good. I recycle ___.\nANSWERS: energy, plastic"
        section = parse_dialogue_fill_gap(text)
        assert section.answers == ["energy", "plastic"]
        assert section.gap_count == 2

    def test_fill_gap_numbered_answers(self):
        text = "Student: I save ___ at home.\nTutor: I recycle ___.\nANSWER_2: plastic\nANSWER_1: energy"
        assert parse_dialogue_fill_gap(text).answers == ["energy", "plastic"]

    def test_no_lines(self):
        with pytest.raises(ResponseParseError):
            parse_dialogue_practice("no dialogue here")


@patch("linguaspark.services.section_generators.generate_text")
def test_beginner_dialogue_prompt_forbids_perfect(mock_gen, make_context):
    mock_gen.return_value = _completion({"dialogue": [{"speaker": "Student", "line": "I save ___."}], "answers": ["energy"]})

    generate_dialogue_fill_gap(make_context(CEFRLevel.A2), {})

    prompt = mock_gen.call_args.args[0]
    assert "Do NOT use the present perfect" in prompt
    assert "the Student speaks first" in prompt


class TestParseGrammar:
    def test_json_with_nested_explanation(self):
        text = json.dumps({
            "grammar_point": "present perfect",
            "explanation": {"form": "have/has + past participle", "usage": "experiences", "level_notes": "B1"},
            "examples": ["I have seen it."],
            "exercises": [{"prompt": "I ___ (go)", "answer": "have gone", "explanation": "experience"}],
        })
        section = parse_grammar(text)
        assert section.form == "have/has + past participle"
        assert section.level_notes == "B1"
        assert section.exercises[0].answer == "have gone"

    def test_labelled_fallback(self):
        text = (
            "GRAMMAR_POINT: present perfect\n"
            "FORM: have or has plus the past participle.\n"
            "USAGE: for life experiences and recent news.\n"
            "EXAMPLE_1: I have visited Paris.\n"
            "EXAMPLE_2: She has finished.\n"
            "EXERCISE_1: I ___ (see) it.\nANSWER_1: have seen\nEXPLANATION_1: experience\n"
            "EXERCISE_2: He ___ (go).\nANSWER_2: has gone\nEXPLANATION_2: result"
        )
        section = parse_grammar(text)
        assert isinstance(section, GrammarSection)
        assert section.examples == ["I have visited Paris.", "She has finished."]
        assert [e.answer for e in section.exercises] == ["have seen", "has gone"]

    def test_null_exercise_fields_count_as_missing(self, context):
        text = json.dumps({
            "grammar_point": "present perfect",
            "form": "have or has plus the past participle",
            "usage": None,
            "examples": ["I have seen it."],
            "exercises": [{"prompt": "I ___ (go) there.", "answer": None, "explanation": None}],
        })
        section = parse_grammar(text)
        assert section.usage == ""
        assert section.exercises[0].answer == ""
        issues = validate_grammar(section, context).issues
        assert "Exercise 1 is missing answer, explanation" in issues

    def test_garbage(self):
        with pytest.raises(ResponseParseError):
            parse_grammar("I don't know.")


def test_choose_grammar_point_prefers_point_in_source(context):
    assert choose_grammar_point(context) == "present perfect"


@patch("linguaspark.services.section_generators.generate_text")
def test_generate_grammar_names_point_in_prompt(mock_gen, context):
    mock_gen.return_value = _completion({"grammar_point": "present perfect", "examples": ["I have seen it."]})

    section = generate_grammar(context, {})

    assert section.grammar_point == "present perfect"
    assert 'grammar focus on "present perfect"' in mock_gen.call_args.args[0]
    assert mock_gen.call_args.kwargs["task_type"] == "grammar"


@patch("linguaspark.services.section_generators.generate_text")
def test_wrapup_mentions_grammar_practised(mock_gen, context):
    mock_gen.return_value = _completion({"questions": ["What did you learn?", "Which word?", "How?"]})
    grammar = GrammarSection(grammar_point="passive voice", form="f", usage="u")

    generate_wrapup(context, {SectionKind.GRAMMAR: grammar})

    assert "Grammar practised: passive voice" in mock_gen.call_args.args[0]


def test_every_section_but_title_has_a_generator():
    assert set(GENERATORS) == set(SectionKind) - {SectionKind.TITLE}
