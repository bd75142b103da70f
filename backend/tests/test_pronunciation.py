"""Tests for pronunciation word selection and generation."""

import json
from unittest.mock import patch

import pytest

from linguaspark.services.llm import AllProvidersFailed, Completion, FailureKind
from linguaspark.services.pronunciation import (
    generate_pronunciation,
    parse_pronunciation_word,
    parse_tongue_twisters,
    score_word,
    select_pronunciation_words,
)
from linguaspark.services.response_parsing import ResponseParseError
from linguaspark.services.sections import PronunciationSection


def _completion(data):
    text = data if isinstance(data, str) else json.dumps(data)
    return Completion(text=text, model="gemini/gemini-3-flash-preview", max_output_tokens=600)


def _word_reply(word):
    return _completion({
        "word": word,
        "ipa": f"/{word}/",
        "difficult_sounds": ["θ"],
        "tips": ["Put your tongue between your teeth."],
        "practice_sentence": f"I heard the word {word} today.",
    })


class TestScoring:
    def test_digraphs_and_silent_letters_score_higher(self):
        assert score_word("thought").score > score_word("cat").score
        assert score_word("knight").score > score_word("night").score

    def test_sounds_are_labelled(self):
        result = score_word("through")
        assert "th" in result.sounds
        assert "ough" in result.sounds

    def test_stress_suffix(self):
        assert "stress" in score_word("temperature").sounds or "ture" in score_word("temperature").sounds
        assert "stress" in score_word("emission").sounds or "tion" in score_word("emission").sounds


class TestSelection:
    def test_picks_hard_words_first(self):
        words = select_pronunciation_words(["cat", "dog", "thorough", "drought", "plan", "sun", "light"], count=2)
        assert set(words) == {"thorough", "drought"}

    def test_spreads_across_sounds(self):
        vocabulary = ["thorough", "thought", "through", "chemistry", "phone", "sheep"]
        words = select_pronunciation_words(vocabulary, count=4)
        assert len(words) == 4
        sounds = set()
        for w in words:
            sounds |= score_word(w).sounds
        assert {"th", "ch"} <= sounds or {"th", "ph"} <= sounds or {"th", "sh"} <= sounds

    def test_falls_back_to_source_text(self):
        words = select_pronunciation_words([], "Thunderstorms brought strong winds through the mountains.", count=3)
        assert len(words) == 3

    def test_empty(self):
        assert select_pronunciation_words([], "") == []


class TestParsing:
    def test_json(self):
        word = parse_pronunciation_word(_word_reply("through").text, "through")
        assert word.ipa == "/through/"
        assert word.tips == ["Put your tongue between your teeth."]

    def test_labelled_lines(self):
        text = (
            "WORD: drought\nIPA: /draʊt/\nDIFFICULT_SOUNDS: aʊ, dr\n"
            "Tip 1: Start with a strong d.\nTip 2: The vowel is like 'ow'.\n"
            "PRACTICE: The drought lasted all summer."
        )
        word = parse_pronunciation_word(text, "drought")
        assert word.ipa == "/draʊt/"
        assert word.difficult_sounds == ["aʊ", "dr"]
        assert word.tips == ["Start with a strong d.", "The vowel is like 'ow'."]
        assert word.practice_sentence == "The drought lasted all summer."

    def test_missing_ipa(self):
        with pytest.raises(ResponseParseError):
            parse_pronunciation_word("PRACTICE: The drought lasted.", "drought")

    def test_null_ipa_is_missing(self):
        text = json.dumps({"word": "drought", "ipa": None, "tips": ["Say dr."], "practice_sentence": "The drought ended."})
        with pytest.raises(ResponseParseError):
            parse_pronunciation_word(text, "drought")

    def test_null_twister_difficulty(self):
        twisters = parse_tongue_twisters(json.dumps({"tongue_twisters": [
            {"text": "Three thin thinkers", "target_sounds": None, "difficulty": None},
            {"text": None},
        ]}))
        assert len(twisters) == 1
        assert twisters[0].difficulty == ""
        assert twisters[0].target_sounds == []

    def test_tongue_twisters_json_and_lines(self):
        twisters = parse_tongue_twisters(json.dumps({"tongue_twisters": [
            {"text": "Three thin thinkers", "target_sounds": ["θ"], "difficulty": "medium"},
        ]}))
        assert twisters[0].target_sounds == ["θ"]

        twisters = parse_tongue_twisters("TWISTER_1: Red lorry, yellow lorry\nSOUNDS_1: r, l\nDIFFICULTY_1: hard")
        assert twisters[0].text == "Red lorry, yellow lorry"
        assert twisters[0].target_sounds == ["r", "l"]
        assert twisters[0].difficulty == "hard"


@patch("linguaspark.services.pronunciation.generate_text")
def test_generates_one_call_per_word_then_twisters(mock_gen, context):
    words = select_pronunciation_words(list(context.key_vocabulary), context.source_text)
    mock_gen.side_effect = [_word_reply(w) for w in words] + [
        _completion({"tongue_twisters": [{"text": "Carbon cars", "target_sounds": ["k"], "difficulty": "easy"}]})
    ]

    section = generate_pronunciation(context, {})

    assert isinstance(section, PronunciationSection)
    assert [w.word for w in section.words] == words
    assert len(section.tongue_twisters) == 1
    assert mock_gen.call_count == len(words) + 1
    assert mock_gen.call_args_list[0].kwargs["task_type"] == "pronunciation"


@patch("linguaspark.services.pronunciation.generate_text")
def test_failed_word_is_dropped(mock_gen, context):
    words = select_pronunciation_words(list(context.key_vocabulary), context.source_text)
    replies = [_word_reply(w) for w in words]
    replies[1] = _completion("I am not sure about this word.")
    mock_gen.side_effect = replies + [AllProvidersFailed(FailureKind.NETWORK, "down")]

    section = generate_pronunciation(context, {})

    assert len(section.words) == len(words) - 1
    assert words[1] not in [w.word for w in section.words]
    assert section.tongue_twisters == []


@patch("linguaspark.services.pronunciation.generate_text")
def test_all_words_failing_on_service_raises(mock_gen, context):
    mock_gen.side_effect = AllProvidersFailed(FailureKind.QUOTA, "quota")

    with pytest.raises(AllProvidersFailed) as exc_info:
        generate_pronunciation(context, {})

    assert exc_info.value.kind == FailureKind.QUOTA
