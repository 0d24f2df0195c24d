"""Tests for the dictionary store and spelling corrector.

Tests cover:
- Frequency file parsing and override loading
- Bundled dictionary resource
- Token skip rules, override table, dictionary suggestions
- Acceptance guard
"""

from __future__ import annotations

from pathlib import Path

import pytest

from contractbot.core.dictionary import (
    DEFAULT_OVERRIDES,
    DOMAIN_WORD_FREQUENCY,
    DictionaryStore,
    load_overrides,
    parse_frequency_lines,
)
from contractbot.core.spelling import SpellCorrector, Suggestion

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture(scope="module")
def store() -> DictionaryStore:
    return DictionaryStore.load()


@pytest.fixture(scope="module")
def corrector(store: DictionaryStore) -> SpellCorrector:
    return SpellCorrector(store)


# ============================================================================
# DictionaryStore Tests
# ============================================================================


class TestParseFrequencyLines:
    """Tests for the "word frequency" file format."""

    def test_basic_lines(self) -> None:
        rows = dict(parse_frequency_lines(["the 100", "contract 50"]))
        assert rows == {"the": 100, "contract": 50}

    def test_duplicates_are_summed(self) -> None:
        rows = dict(parse_frequency_lines(["part 10", "Part 5"]))
        assert rows == {"part": 15}

    def test_blank_and_malformed_lines_skipped(self) -> None:
        rows = dict(parse_frequency_lines(["", "   ", "lonely", "word 3"]))
        assert rows == {"word": 3}

    def test_non_integer_frequency_counts_as_one(self) -> None:
        rows = dict(parse_frequency_lines(["word many"]))
        assert rows == {"word": 1}


class TestDictionaryStore:
    """Tests for DictionaryStore construction and lookups."""

    def test_bundled_dictionary_loads(self, store: DictionaryStore) -> None:
        assert len(store) > 1000
        assert "contract" in store
        assert "Contract" in store

    def test_domain_words_weighted(self, store: DictionaryStore) -> None:
        assert store.frequency("contract") >= DOMAIN_WORD_FREQUENCY
        assert store.frequency("definitely-not-a-word") == 0

    def test_override_lookup(self, store: DictionaryStore) -> None:
        assert store.override("contarct") == "contract"
        assert store.override("CONTARCT") == "contract"
        assert store.override("contract") is None

    def test_filed_means_failed(self, store: DictionaryStore) -> None:
        assert store.override("filed") == "failed"

    def test_words_near_length(self) -> None:
        small = DictionaryStore({"ab": 1, "abc": 1, "abcdef": 1}, overrides={})
        words = {w for w, _ in small.words_near_length(3, 1)}
        assert words == {"ab", "abc"}

    def test_load_from_file(self, tmp_path: Path) -> None:
        dictionary = tmp_path / "words.txt"
        dictionary.write_text("alpha 10\nbeta 20\n", encoding="utf-8")

        loaded = DictionaryStore.load(dictionary, domain_words=())
        assert len(loaded) == 2
        assert loaded.frequency("beta") == 20

    def test_load_with_override_file(self, tmp_path: Path) -> None:
        dictionary = tmp_path / "words.txt"
        dictionary.write_text("widget 10\n", encoding="utf-8")
        overrides = tmp_path / "overrides.yaml"
        overrides.write_text("wdgt: widget\nContarct: contract\n", encoding="utf-8")

        loaded = DictionaryStore.load(dictionary, overrides, domain_words=())
        assert loaded.override("wdgt") == "widget"
        # Built-in table is kept
        assert loaded.override("shwo") == "show"

    def test_override_file_must_be_mapping(self, tmp_path: Path) -> None:
        overrides = tmp_path / "overrides.yaml"
        overrides.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ValueError):
            load_overrides(overrides)

    def test_empty_override_file(self, tmp_path: Path) -> None:
        overrides = tmp_path / "overrides.yaml"
        overrides.write_text("", encoding="utf-8")
        assert load_overrides(overrides) == {}

    def test_override_table_has_no_identity_entries(self) -> None:
        assert all(typo != canonical for typo, canonical in DEFAULT_OVERRIDES.items())


# ============================================================================
# SpellCorrector Tests
# ============================================================================


class TestSpellCorrector:
    """Tests for token-level correction."""

    def test_correct_word_unchanged(self, corrector: SpellCorrector) -> None:
        """Correcting an already-correct word returns it unchanged."""
        assert corrector.correct_word("contract") == "contract"
        best = corrector.suggestions("contract")[0]
        assert best.word == "contract"
        assert best.distance == 0

    def test_empty_input(self, corrector: SpellCorrector) -> None:
        result = corrector.correct("")
        assert result.corrected == ""
        assert not result.changed

    def test_override_corrections(self, corrector: SpellCorrector) -> None:
        result = corrector.correct("shwo me teh contarct")
        assert result.corrected == "show me the contract"
        assert [c.source for c in result.corrections] == ["override"] * 3

    def test_contarct_number(self, corrector: SpellCorrector) -> None:
        assert corrector.correct("contarct 123456").corrected == "contract 123456"

    def test_filed_parts(self, corrector: SpellCorrector) -> None:
        assert corrector.correct("show filed parts").corrected == "show failed parts"

    def test_token_count_and_punctuation_preserved(self, corrector: SpellCorrector) -> None:
        text = "contarct, please! what's the statuss?"
        result = corrector.correct(text)
        assert result.corrected == "contract, please! what's the status?"
        assert len(result.corrected.split()) == len(text.split())

    def test_sentence_start_capital_is_corrected(self, corrector: SpellCorrector) -> None:
        assert corrector.correct("Contarct 123456").corrected == "Contract 123456"

    def test_dictionary_suggestion(self, corrector: SpellCorrector) -> None:
        result = corrector.correct("check availabilty")
        assert result.corrected == "check availability"
        assert result.corrections[0].source == "dictionary"
        assert result.corrections[0].distance == 1

    def test_contract_like_root(self, corrector: SpellCorrector) -> None:
        assert corrector.correct("contrakt 123456").corrected == "contract 123456"


class TestSkipRules:
    """Tokens that are never corrected."""

    @pytest.mark.parametrize(
        "token",
        ["123456", "1,000", "AE125", "ab12345-12345678", "2025-01-31", "it's", "x"],
    )
    def test_passthrough(self, corrector: SpellCorrector, token: str) -> None:
        assert corrector.correct(f"show {token}").corrected == f"show {token}"

    def test_capitalized_name_mid_sentence(self, corrector: SpellCorrector) -> None:
        """Probable proper nouns are left alone, even known typos."""
        assert corrector.correct("contracts for Boieng").corrected == "contracts for Boieng"

    def test_short_token_only_via_override(self, corrector: SpellCorrector) -> None:
        assert corrector.correct("every yr").corrected == "every year"
        assert corrector.correct("zq").corrected == "zq"


class TestAcceptanceGuard:
    """Tests for _should_accept."""

    @pytest.fixture
    def corrector(self) -> SpellCorrector:
        return SpellCorrector(DictionaryStore({"contract": 100, "contact": 1000, "spec": 10}, overrides={}))

    def test_rejects_drastic_shortening(self, corrector: SpellCorrector) -> None:
        assert not corrector._should_accept("specifications", Suggestion("spec", 2, 10))

    def test_rejects_large_length_change(self, corrector: SpellCorrector) -> None:
        assert not corrector._should_accept("abcdefghij", Suggestion("abcde", 2, 10))

    def test_rejects_distance_two_on_short_words(self, corrector: SpellCorrector) -> None:
        assert not corrector._should_accept("abc", Suggestion("xyc", 2, 10))
        assert corrector._should_accept("abc", Suggestion("abd", 1, 10))

    def test_contract_root_only_becomes_contract(self, corrector: SpellCorrector) -> None:
        assert not corrector._should_accept("contrct", Suggestion("contact", 1, 1000))
        assert corrector._should_accept("contrct", Suggestion("contract", 1, 100))

    def test_higher_frequency_rival_is_skipped(self, corrector: SpellCorrector) -> None:
        """'contact' ranks first but the guard falls through to 'contract'."""
        assert corrector.suggestions("contrct")[0].word == "contact"
        assert corrector.correct("contrct").corrected == "contract"
