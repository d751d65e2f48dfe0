"""Incident matching strategies.

Each strategy maps a query and the incident corpus to a list of
``StrategyMatch`` records. Strategies are pure and independent; the search
orchestrator runs them concurrently over the same in-memory corpus.

Score ceilings, strongest first:
- exact:    1.0   query is a substring of the symptom
- tag:      0.9   a tag and a query keyword contain one another
- fuzzy:    <=0.85 Jaro-Winkler similarity, scaled by 0.85
- category: 0.6   query keywords map to the incident's root-cause category
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass

from rapidfuzz.distance import JaroWinkler

from .keywords import extract_keywords
from .models import Incident, MatchType, StrategyMatch

EXACT_SCORE = 1.0
TAG_SCORE = 0.9
FUZZY_FLOOR = 0.7
FUZZY_SCALE = 0.85
CATEGORY_SCORE = 0.6

CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "database": ("database", "prisma", "query", "schema", "migration", "sql", "postgresql"),
    "react-hooks": ("react", "hook", "useeffect", "usestate", "component", "render"),
    "api": ("api", "endpoint", "route", "request", "response", "rest", "graphql"),
    "performance": ("slow", "latency", "timeout", "memory", "performance", "speed"),
    "authentication": ("auth", "login", "session", "token", "jwt", "oauth"),
    "validation": ("validation", "invalid", "format", "parse", "type"),
    "configuration": ("config", "env", "environment", "setting", "option"),
    "dependency": ("dependency", "package", "npm", "module", "import", "require"),
}


@dataclass(frozen=True)
class SearchQuery:
    """A query normalized once and shared by every strategy."""

    text: str
    lowered: str
    keywords: tuple[str, ...]

    @classmethod
    def from_text(cls, text: str) -> SearchQuery:
        lowered = text.strip().lower()
        return cls(text=text, lowered=lowered, keywords=tuple(extract_keywords(lowered)))


Strategy = Callable[[Sequence[Incident], SearchQuery], list[StrategyMatch]]


def _text(value: object) -> str:
    return value if isinstance(value, str) else ""


def exact_strategy(incidents: Sequence[Incident], query: SearchQuery) -> list[StrategyMatch]:
    """Match incidents whose symptom contains the whole query."""
    if not query.lowered:
        return []

    matches: list[StrategyMatch] = []
    for incident in incidents:
        symptom = _text(incident.symptom)
        if not symptom:
            continue
        if query.lowered in symptom.lower():
            matches.append(
                StrategyMatch(
                    incident=incident,
                    score=EXACT_SCORE,
                    match_type="exact",
                    highlights=[symptom],
                )
            )
    return matches


def tag_strategy(incidents: Sequence[Incident], query: SearchQuery) -> list[StrategyMatch]:
    """Match incidents with a tag that contains, or is contained in, a query keyword."""
    if not query.keywords:
        return []

    matches: list[StrategyMatch] = []
    for incident in incidents:
        tags = [tag for tag in (incident.tags or []) if isinstance(tag, str) and tag]
        if not tags:
            continue
        matched = [
            tag
            for tag in tags
            if any(word in tag.lower() or tag.lower() in word for word in query.keywords)
        ]
        if matched:
            matches.append(
                StrategyMatch(
                    incident=incident,
                    score=TAG_SCORE,
                    match_type="tag",
                    highlights=matched,
                )
            )
    return matches


def fuzzy_strategy(incidents: Sequence[Incident], query: SearchQuery) -> list[StrategyMatch]:
    """Match incidents whose symptom or root cause is close to the query by Jaro-Winkler."""
    if not query.lowered:
        return []

    matches: list[StrategyMatch] = []
    for incident in incidents:
        symptom = _text(incident.symptom)
        if not symptom:
            continue

        symptom_score = JaroWinkler.similarity(query.lowered, symptom.lower())
        description = _text(getattr(incident.root_cause, "description", ""))
        cause_score = (
            JaroWinkler.similarity(query.lowered, description.lower()) if description else 0.0
        )

        best = max(symptom_score, cause_score)
        if best < FUZZY_FLOOR:
            continue

        highlight = symptom if symptom_score >= cause_score else description
        matches.append(
            StrategyMatch(
                incident=incident,
                score=best * FUZZY_SCALE,
                match_type="fuzzy",
                highlights=[highlight],
            )
        )
    return matches


def detect_categories(keywords: Sequence[str]) -> set[str]:
    """Return the categories whose keyword list contains any of ``keywords``."""
    return {
        category
        for category, category_words in CATEGORY_KEYWORDS.items()
        if any(word in category_words for word in keywords)
    }


def category_strategy(incidents: Sequence[Incident], query: SearchQuery) -> list[StrategyMatch]:
    """Match every incident filed under a category the query points at."""
    detected = detect_categories(query.keywords)
    if not detected:
        return []

    matches: list[StrategyMatch] = []
    for incident in incidents:
        category = _text(getattr(incident.root_cause, "category", ""))
        if not category:
            continue
        lowered = category.lower()
        if lowered in detected or any(lowered in mc or mc in lowered for mc in detected):
            matches.append(
                StrategyMatch(
                    incident=incident,
                    score=CATEGORY_SCORE,
                    match_type="category",
                    highlights=[category],
                )
            )
    return matches


STRATEGIES: tuple[tuple[MatchType, Strategy], ...] = (
    ("exact", exact_strategy),
    ("tag", tag_strategy),
    ("fuzzy", fuzzy_strategy),
    ("category", category_strategy),
)


__all__ = [
    "CATEGORY_KEYWORDS",
    "CATEGORY_SCORE",
    "EXACT_SCORE",
    "FUZZY_FLOOR",
    "FUZZY_SCALE",
    "STRATEGIES",
    "TAG_SCORE",
    "SearchQuery",
    "Strategy",
    "category_strategy",
    "detect_categories",
    "exact_strategy",
    "fuzzy_strategy",
    "tag_strategy",
]
