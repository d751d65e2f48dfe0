"""
Unit tests for keyword extraction.
"""

from __future__ import annotations

from debugmemory.memory.keywords import STOPWORDS, extract_keywords


class TestExtractKeywords:
    """Test extract_keywords function."""

    def test_lowercases_and_strips_punctuation(self) -> None:
        assert extract_keywords("Logger, NOT working!") == ["logger", "not", "working"]

    def test_drops_short_words(self) -> None:
        assert extract_keywords("db is ok now") == ["now"]

    def test_drops_stopwords(self) -> None:
        assert extract_keywords("this should have been fixed") == ["fixed"]

    def test_punctuation_splits_words(self) -> None:
        assert extract_keywords("useEffect/useState loop") == ["useeffect", "usestate", "loop"]

    def test_preserves_order_and_duplicates(self) -> None:
        assert extract_keywords("query query schema") == ["query", "query", "schema"]

    def test_empty_text(self) -> None:
        assert extract_keywords("") == []
        assert extract_keywords("   ") == []

    def test_only_noise(self) -> None:
        assert extract_keywords("a an the ... !!") == []

    def test_stopwords_are_lowercase(self) -> None:
        assert all(word == word.lower() for word in STOPWORDS)
