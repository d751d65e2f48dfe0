"""Keyword extraction shared by every matching strategy.

All scorers tokenize through ``extract_keywords`` so that scores computed by
different strategies (and by the commonality analyzer) stay comparable.
"""

from __future__ import annotations

import re

_PUNCTUATION_PATTERN = re.compile(r"[^\w\s]")
MIN_KEYWORD_LENGTH = 3

STOPWORDS = frozenset(
    {
        "the",
        "a",
        "an",
        "and",
        "or",
        "but",
        "in",
        "on",
        "at",
        "to",
        "for",
        "of",
        "with",
        "is",
        "are",
        "was",
        "were",
        "be",
        "been",
        "being",
        "have",
        "has",
        "had",
        "do",
        "does",
        "did",
        "will",
        "would",
        "should",
        "can",
        "could",
        "may",
        "might",
        "must",
        "this",
        "that",
        "these",
        "those",
        "i",
        "me",
        "my",
        "we",
        "our",
        "you",
        "your",
        "it",
        "its",
    }
)


def extract_keywords(text: str) -> list[str]:
    """Lower-case ``text``, strip punctuation, and drop short words and stop words.

    Order and duplicates are preserved.
    """
    if not text:
        return []
    normalized = _PUNCTUATION_PATTERN.sub(" ", text.lower())
    return [
        word
        for word in normalized.split()
        if len(word) >= MIN_KEYWORD_LENGTH and word not in STOPWORDS
    ]


__all__ = ["MIN_KEYWORD_LENGTH", "STOPWORDS", "extract_keywords"]
