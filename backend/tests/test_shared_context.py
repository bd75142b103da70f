"""Tests for the shared context builder and the text helpers it relies on."""

import pytest
from pydantic import ValidationError

from linguaspark.services.cefr import CEFRLevel, GUIDANCE
from linguaspark.services.sections import LessonType
from linguaspark.services.shared_context import (
    build_shared_context,
    estimate_difficulty,
    extract_themes,
    extract_vocabulary,
    summarize,
)
from linguaspark.services.text_analysis import (
    contains_term,
    split_sentences,
    terms_used,
    word_count,
)


class TestBuildSharedContext:
    def test_climate_text(self, climate_text):
        ctx = build_shared_context(climate_text, LessonType.DISCUSSION, CEFRLevel.B1, "Spanish")

        assert ctx.cefr_level == CEFRLevel.B1
        assert ctx.target_language == "Spanish"
        assert ctx.language_pair.source == "en"
        assert "climate" in ctx.key_vocabulary
        assert len(ctx.key_vocabulary) == GUIDANCE[CEFRLevel.B1].vocabulary_size
        assert ctx.themes[0] == "environment"
        assert ctx.summary.startswith("Climate change is one of the biggest problems")

    def test_context_is_immutable(self, context):
        with pytest.raises(ValidationError):
            context.cefr_level = CEFRLevel.A1

    def test_prompt_source_is_capped(self, context, climate_text):
        assert len(context.prompt_source) == 1000
        assert len(climate_text) > 1000

    def test_thin_input_gives_empty_lists_not_errors(self):
        ctx = build_shared_context("Hi.", LessonType.TRAVEL, CEFRLevel.A1, "French")
        assert ctx.key_vocabulary == ()
        assert ctx.themes == ()

    def test_with_vocabulary_merges_without_duplicates(self, context):
        merged = context.with_vocabulary(["Climate", "drought", " turbines "])

        assert merged is not context
        assert "drought" in merged.key_vocabulary
        assert "turbines" in merged.key_vocabulary
        assert [w.lower() for w in merged.key_vocabulary].count("climate") == 1
        assert "turbines" not in context.key_vocabulary

    def test_relevance_terms_include_themes_and_vocabulary(self, context):
        terms = context.relevance_terms
        assert "environment" in terms
        assert "climate" in terms
        assert len(terms) == len({t.lower() for t in terms})


class TestExtractVocabulary:
    def test_frequency_order(self):
        text = "Tourism grows. Tourism changes towns. Hotels open. Tourism brings hotels and money."
        words = extract_vocabulary(text, CEFRLevel.A1)
        assert words[0] == "tourism"
        assert words[1] == "hotels"

    def test_stopwords_excluded(self):
        words = extract_vocabulary("They would have been there about which other people.", CEFRLevel.A1)
        assert "would" not in words
        assert "people" not in words

    def test_size_follows_level(self, climate_text):
        assert len(extract_vocabulary(climate_text, CEFRLevel.A1)) == GUIDANCE[CEFRLevel.A1].vocabulary_size


class TestExtractThemes:
    def test_needs_two_keyword_hits(self):
        assert extract_themes("The hotel was nice.") == []

    def test_bucket_then_keywords(self):
        tags = extract_themes("Our flight left the airport late, but the hotel was great. The flight was short.")
        assert tags[0] == "travel"
        assert tags[1] == "flight"
        assert "hotel" in tags

    def test_at_most_three_buckets(self):
        text = (
            "climate carbon. business market. health doctor. travel hotel. music song. "
            "school teacher."
        )
        buckets = {"environment", "business", "health", "travel", "music", "education"}
        assert len([t for t in extract_themes(text) if t in buckets]) == 3


class TestDifficulty:
    def test_simple_text_is_easier_than_dense_text(self):
        simple = estimate_difficulty("I like my cat. It is big. We play a lot. She is fun.")
        dense = estimate_difficulty(
            "Notwithstanding considerable governmental intervention, macroeconomic instability "
            "persisted throughout the subsequent administrative restructuring, undermining "
            "institutional credibility and exacerbating intergenerational inequality considerably."
        )
        assert simple.estimated_level.value < dense.estimated_level.value
        assert simple.avg_sentence_length < dense.avg_sentence_length

    def test_empty_text(self):
        assert estimate_difficulty("").avg_sentence_length == 0.0

    def test_summary_is_leading_sentences(self):
        assert summarize("One. Two. Three. Four.") == "One. Two. Three."


class TestTextAnalysis:
    def test_word_count(self):
        assert word_count("It's a well-known fact, isn't it?") == 6

    def test_split_sentences(self):
        assert split_sentences("Hello there. How are you? Fine!") == ["Hello there.", "How are you?", "Fine!"]

    def test_contains_term_matches_inflections(self):
        assert contains_term("Summers are getting warmer.", "warm")
        assert contains_term("The glaciers melted.", "glacier")
        assert contains_term("We need renewable energy now.", "renewable energy")
        assert not contains_term("A cold winter.", "warm")

    def test_terms_used_distinct_in_order(self):
        assert terms_used("Carbon and climate, climate again.", ["climate", "carbon", "ocean"]) == ["climate", "carbon"]
