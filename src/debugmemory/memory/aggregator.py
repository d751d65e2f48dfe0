"""Result fusion across assessments, incidents and patterns.

Every source is mapped onto ``ScoredItem`` with one weighted formula:

    score = 0.35*match + 0.25*confidence + 0.15*recency + 0.25*verification

followed by source-specific multiplicative boosts and a clamp to [0, 1].
Items are then filtered, ranked, deduplicated and capped.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from .models import (
    AggregatedResult,
    CompactIncident,
    CompactPattern,
    DomainAssessment,
    ScoredItem,
    clamp_unit,
)

MATCH_WEIGHT = 0.35
CONFIDENCE_WEIGHT = 0.25
RECENCY_WEIGHT = 0.15
VERIFICATION_WEIGHT = 0.25

VERIFICATION_SCORES: dict[str, float] = {"V": 1.0, "P": 0.6, "U": 0.3}

PATTERN_CONFIDENCE = 0.8
PATTERN_FREQUENCY_BOOST = 1.15
DEFAULT_MATCH = 0.5
QUALITY_BONUS = 0.1
MAX_ACTIONS = 5
MAX_SEARCH_TAGS = 10

_DAY_MS = 24 * 60 * 60 * 1000
_BOOST_WINDOW_MS = 7 * _DAY_MS


class AggregationConfig(BaseModel):
    """Tuning knobs for result fusion."""

    model_config = ConfigDict(extra="forbid")

    max_results: int = Field(default=10, ge=0, description="Maximum items returned.")
    min_score_threshold: float = Field(
        default=0.3, ge=0.0, le=1.0, description="Items scoring below this are dropped."
    )
    verification_boost: float = Field(
        default=1.2, ge=1.0, description="Multiplier for verified or highly confident items."
    )
    recency_boost: float = Field(
        default=1.1, ge=1.0, description="Multiplier for items from the last 7 days."
    )
    dedupe_threshold: float = Field(
        default=0.8, ge=0.0, le=1.0, description="Similarity at which two items are duplicates."
    )


def _now_ms(now: datetime | None) -> int:
    return int((now or datetime.now(UTC)).timestamp() * 1000)


def _fuse(match: float, confidence: float, recency: float, verification: float) -> float:
    return (
        MATCH_WEIGHT * clamp_unit(match)
        + CONFIDENCE_WEIGHT * clamp_unit(confidence)
        + RECENCY_WEIGHT * clamp_unit(recency)
        + VERIFICATION_WEIGHT * clamp_unit(verification)
    )


def calculate_recency_score(timestamp: int, *, now: datetime | None = None) -> float:
    """1.0 inside 24 hours, decaying linearly to 0.1 at 30 days."""
    age_ms = _now_ms(now) - timestamp
    if age_ms < _DAY_MS:
        return 1.0
    age_days = age_ms / _DAY_MS
    if age_days > 30:
        return 0.1
    return 1.0 - (age_days / 30) * 0.9


# -----------------------------------------------------------------------------
# Per-source scoring
# -----------------------------------------------------------------------------


def score_assessment(
    assessment: DomainAssessment,
    config: AggregationConfig | None = None,
    *,
    now: datetime | None = None,
) -> ScoredItem:
    cfg = config or AggregationConfig()
    match = min(
        1.0,
        len(assessment.probable_causes) * 0.25 + len(assessment.related_incidents) * 0.15,
    )

    verification = 0.5
    if assessment.related_incidents:
        verification = 0.7
    if assessment.confidence >= 0.8:
        verification = 0.9

    # Live assessments carry no timestamp and count as current.
    score = _fuse(match, assessment.confidence, 1.0, verification)
    if assessment.confidence >= 0.8:
        score *= cfg.verification_boost

    return ScoredItem(
        type="assessment",
        id=f"assess_{assessment.domain}_{_now_ms(now)}",
        score=clamp_unit(score),
        summary=assessment.probable_causes[0] if assessment.probable_causes else "Assessment completed",
        domain=assessment.domain,
        actions=list(assessment.recommended_actions),
        tags=list(assessment.search_tags),
        raw=assessment,
    )


def score_incident(
    incident: CompactIncident,
    config: AggregationConfig | None = None,
    *,
    now: datetime | None = None,
) -> ScoredItem:
    cfg = config or AggregationConfig()
    score = _fuse(
        incident.similarity or DEFAULT_MATCH,
        incident.confidence,
        calculate_recency_score(incident.timestamp, now=now),
        VERIFICATION_SCORES.get(incident.verification, VERIFICATION_SCORES["U"]),
    )
    if incident.verification == "V":
        score *= cfg.verification_boost
    if incident.timestamp > _now_ms(now) - _BOOST_WINDOW_MS:
        score *= cfg.recency_boost
    score += clamp_unit(incident.quality) * QUALITY_BONUS

    return ScoredItem(
        type="incident",
        id=incident.id,
        score=clamp_unit(score),
        summary=incident.symptom,
        domain=incident.category or None,
        actions=[incident.fix] if incident.fix else [],
        tags=list(incident.tags),
        raw=incident,
    )


def score_pattern(
    pattern: CompactPattern,
    match: float = DEFAULT_MATCH,
    config: AggregationConfig | None = None,
    *,
    now: datetime | None = None,
) -> ScoredItem:
    cfg = config or AggregationConfig()
    verification = 0.5
    if pattern.uses >= 3:
        verification = 0.8
    elif pattern.uses >= 2:
        verification = 0.65

    score = _fuse(
        match,
        PATTERN_CONFIDENCE,
        calculate_recency_score(pattern.last_used, now=now),
        verification,
    )
    if pattern.uses >= 3:
        score *= PATTERN_FREQUENCY_BOOST
    if pattern.last_used > _now_ms(now) - _BOOST_WINDOW_MS:
        score *= cfg.recency_boost

    return ScoredItem(
        type="pattern",
        id=pattern.id,
        score=clamp_unit(score),
        summary=pattern.description,
        domain=pattern.category,
        actions=[pattern.fix] if pattern.fix else [],
        tags=list(pattern.tags),
        raw=pattern,
    )


# -----------------------------------------------------------------------------
# Deduplication
# -----------------------------------------------------------------------------


def _jaccard(left: set[str], right: set[str]) -> float:
    union = left | right
    return len(left & right) / len(union) if union else 0.0


def item_similarity(first: ScoredItem, second: ScoredItem) -> float:
    """Blend of tag Jaccard (40%) and summary word Jaccard (60%).

    Items of different type or domain are never similar.
    """
    if first.type != second.type or first.domain != second.domain:
        return 0.0
    tag_similarity = _jaccard(set(first.tags), set(second.tags))
    word_similarity = _jaccard(
        set(first.summary.lower().split()), set(second.summary.lower().split())
    )
    return tag_similarity * 0.4 + word_similarity * 0.6


def deduplicate_items(items: Sequence[ScoredItem], threshold: float) -> list[ScoredItem]:
    """Drop every item that is a near-duplicate of one kept before it.

    Only items of the same type and domain can be duplicates.
    """
    kept: list[ScoredItem] = []
    for item in items:
        duplicate = any(
            existing.type == item.type
            and existing.domain == item.domain
            and item_similarity(existing, item) >= threshold
            for existing in kept
        )
        if not duplicate:
            kept.append(item)
    return kept


# -----------------------------------------------------------------------------
# Aggregation
# -----------------------------------------------------------------------------


def aggregate_results(
    assessments: Sequence[DomainAssessment],
    incidents: Sequence[CompactIncident],
    patterns: Sequence[CompactPattern],
    config: AggregationConfig | None = None,
    *,
    now: datetime | None = None,
) -> AggregatedResult:
    """Fuse heterogeneous results into one ranked, deduplicated list."""
    cfg = config or AggregationConfig()

    scored: list[ScoredItem] = [
        *(score_assessment(assessment, cfg, now=now) for assessment in assessments),
        *(score_incident(incident, cfg, now=now) for incident in incidents),
        *(
            score_pattern(pattern, pattern.similarity or DEFAULT_MATCH, cfg, now=now)
            for pattern in patterns
        ),
    ]
    scored = [item for item in scored if item.score >= cfg.min_score_threshold]
    scored.sort(key=lambda item: item.score, reverse=True)
    unique = deduplicate_items(scored, cfg.dedupe_threshold)
    top = unique[: cfg.max_results]

    domains = list(dict.fromkeys(item.domain for item in top if item.domain))
    tags = list(dict.fromkeys(tag for item in top for tag in item.tags))
    actions = list(dict.fromkeys(action for item in top for action in item.actions))
    confidence = sum(item.score for item in top) / len(top) if top else 0.0

    return AggregatedResult(
        items=top,
        total_count=len(unique),
        domains_involved=domains,
        aggregate_confidence=confidence,
        recommended_actions=actions[:MAX_ACTIONS],
        search_tags=tags[:MAX_SEARCH_TAGS],
    )


# -----------------------------------------------------------------------------
# Presentation
# -----------------------------------------------------------------------------

_TYPE_LABELS = {"assessment": "[assess]", "incident": "[incident]", "pattern": "[pattern]"}


def _score_bar(score: float) -> str:
    filled = round(score * 10)
    return "#" * filled + "." * (10 - filled)


def format_aggregated_results(result: AggregatedResult) -> str:
    """Render an aggregated result as a markdown report."""
    lines = [
        "## Aggregated Analysis Results",
        "",
        f"**Domains:** {', '.join(result.domains_involved) or 'General'}",
        f"**Confidence:** {result.aggregate_confidence:.0%}",
        f"**Total Matches:** {result.total_count}",
        "",
        "### Top Results",
        "",
    ]
    for index, item in enumerate(result.items, start=1):
        lines.append(
            f"{index}. {_TYPE_LABELS[item.type]} **{item.type}** "
            f"[{_score_bar(item.score)}] {item.score:.0%}"
        )
        lines.append(f"   {item.summary}")
        if item.domain:
            lines.append(f"   Domain: {item.domain}")
        lines.append("")

    lines.append("### Recommended Actions")
    lines.append("")
    for index, action in enumerate(result.recommended_actions, start=1):
        lines.append(f"{index}. {action}")

    if result.search_tags:
        lines.append("")
        lines.append(f"**Tags:** {', '.join(result.search_tags)}")

    return "\n".join(lines)


def create_quick_summary(result: AggregatedResult) -> str:
    """One-line summary of the top item and first recommended action."""
    if not result.items:
        return "No relevant matches found."
    action = result.recommended_actions[0] if result.recommended_actions else "Investigate further"
    return (
        f"[{result.aggregate_confidence:.0%} confidence] {result.items[0].summary}\n"
        f"Recommended: {action}"
    )


__all__ = [
    "AggregationConfig",
    "VERIFICATION_SCORES",
    "aggregate_results",
    "calculate_recency_score",
    "create_quick_summary",
    "deduplicate_items",
    "format_aggregated_results",
    "item_similarity",
    "score_assessment",
    "score_incident",
    "score_pattern",
]
