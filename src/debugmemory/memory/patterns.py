"""Pattern mining over the incident corpus.

This module provides:
- Commonality analysis for a cluster of incidents sharing a category
- Synthesis of a Pattern record from a qualifying cluster
- Batch extraction over the whole corpus
- The auto-extraction trigger run after an incident is stored
- Pattern formatting for prompt injection
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

from debugmemory.core.console import get_logger
from debugmemory.core.result import DebugMemoryError, Err, Ok, Result

from .models import Incident, Pattern, UsageHistory
from .store import INCIDENT_ID_PATTERN, MemoryStore, generate_pattern_id

logger = get_logger(__name__)

SYNTHESIS_NAME = "common_fix"
UNKNOWN_CATEGORY = "unknown"
COMMON_TAG_RATIO = 0.6
COMMON_FILE_MIN = 2
TAG_SIMILARITY_WEIGHT = 0.7
FILE_OVERLAP_BONUS = 0.15
MAX_SIGNATURE = 10
RECENT_INCIDENTS = 5
STALE_AFTER_DAYS = 90
LOW_QUALITY = 0.8
TRIGGER_MIN_CONFIDENCE = 0.7
APPLICABLE_AGENTS = ("coder", "frontend-ui", "database", "tester")

PATTERN_NAMES: dict[str, str] = {
    "react-hooks": "React Hook Dependency Issues",
    "error-handling": "Error Handling Pattern",
    "api": "API Error Pattern",
    "dependency": "Module Dependency Issues",
    "validation": "Input Validation Pattern",
    "config": "Configuration Management",
    "performance": "Performance Optimization",
}

_DAY_MS = 24 * 60 * 60 * 1000


@dataclass
class Commonality:
    score: float
    common_tags: list[str] = field(default_factory=list)
    common_files: list[str] = field(default_factory=list)


@dataclass
class PatternCandidate:
    category: str
    incidents: list[Incident]
    commonality: Commonality


# -----------------------------------------------------------------------------
# Commonality analysis
# -----------------------------------------------------------------------------


def _density_bonus(size: int) -> float:
    if size >= 5:
        return 0.15
    if size >= 3:
        return 0.10
    return 0.0


def calculate_commonality(incidents: Sequence[Incident]) -> Commonality:
    """Score how much a cluster has in common.

    Tags shared by at least 60% of members dominate the score; a file touched
    by two or more members and the cluster size add fixed bonuses.
    """
    if not incidents:
        return Commonality(score=0.0)

    tag_counts: Counter[str] = Counter()
    for incident in incidents:
        tag_counts.update(dict.fromkeys(incident.tags, 1))
    file_counts: Counter[str] = Counter()
    for incident in incidents:
        file_counts.update(dict.fromkeys(incident.files_changed, 1))

    needed = math.ceil(len(incidents) * COMMON_TAG_RATIO)
    common_tags = [tag for tag, count in tag_counts.items() if count >= needed]
    common_files = [path for path, count in file_counts.items() if count >= COMMON_FILE_MIN]

    tag_similarity = len(common_tags) / max(len(tag_counts), 1)
    file_bonus = FILE_OVERLAP_BONUS if common_files else 0.0
    score = tag_similarity * TAG_SIMILARITY_WEIGHT + file_bonus + _density_bonus(len(incidents))

    return Commonality(
        score=min(score, 1.0),
        common_tags=common_tags,
        common_files=common_files,
    )


def group_by_category(incidents: Sequence[Incident]) -> dict[str, list[Incident]]:
    groups: dict[str, list[Incident]] = {}
    for incident in incidents:
        groups.setdefault(incident.category or UNKNOWN_CATEGORY, []).append(incident)
    return groups


# -----------------------------------------------------------------------------
# Synthesis
# -----------------------------------------------------------------------------


def pattern_id_for(category: str) -> str:
    return generate_pattern_id(category, SYNTHESIS_NAME)


def extract_detection_signature(incidents: Sequence[Incident]) -> list[str]:
    keywords: dict[str, None] = {}
    for incident in incidents:
        for word in (incident.symptom or "").lower().split():
            if len(word) > 3:
                keywords.setdefault(word)
        for tag in incident.tags:
            keywords.setdefault(tag.lower())
        if incident.category:
            keywords.setdefault(incident.category)
    return list(keywords)[:MAX_SIGNATURE]


def synthesize_solution(incidents: Sequence[Incident]) -> str:
    best = ""
    for incident in incidents:
        if len(incident.fix.approach) > len(best):
            best = incident.fix.approach
    return (
        f"Common pattern observed across {len(incidents)} incidents:\n\n"
        f"{best}\n\n"
        "Verify this approach applies to your specific case before implementing."
    )


def extract_best_code_example(incidents: Sequence[Incident]) -> str | None:
    best: Incident | None = None
    for incident in incidents:
        if not incident.root_cause.code_snippet:
            continue
        if best is None or incident.root_cause.confidence > best.root_cause.confidence:
            best = incident
    return best.root_cause.code_snippet if best else None


def count_by_agent(incidents: Sequence[Incident]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for incident in incidents:
        agent = incident.agent_used or "unknown"
        counts[agent] = counts.get(agent, 0) + 1
    return counts


def extract_caveats(incidents: Sequence[Incident], *, now_ms: int) -> list[str]:
    caveats: list[str] = []

    unverified = sum(1 for incident in incidents if incident.verification.status != "verified")
    if unverified:
        caveats.append(f"{unverified}/{len(incidents)} applications were not fully verified")

    if any(incident.quality_score < LOW_QUALITY for incident in incidents):
        caveats.append("Some incidents have incomplete information - verify before applying")

    oldest = min(incident.timestamp for incident in incidents)
    if (now_ms - oldest) / _DAY_MS > STALE_AFTER_DAYS:
        caveats.append(
            f"Pattern based on incidents older than {STALE_AFTER_DAYS} days - codebase may have changed"
        )

    return caveats


def generate_pattern_name(category: str) -> str:
    if category in PATTERN_NAMES:
        return PATTERN_NAMES[category]
    return f"{category[:1].upper()}{category[1:]} Pattern"


def generate_pattern_description(category: str, incidents: Sequence[Incident]) -> str:
    total = len(incidents)
    average_minutes = sum(incident.fix.time_to_fix or 0.0 for incident in incidents) / total
    verified = sum(1 for incident in incidents if incident.verification.status == "verified")
    return (
        f"This pattern has been successfully applied {total} times to resolve {category} issues. "
        f"Average time to fix: {math.floor(average_minutes + 0.5)} minutes. "
        f"Success rate: {verified / total * 100:.0f}%."
    )


def create_pattern_from_incidents(
    candidate: PatternCandidate,
    *,
    now: datetime | None = None,
) -> Pattern:
    """Build a Pattern from a qualifying cluster. Does not persist it."""
    incidents = candidate.incidents
    category = candidate.category
    now_ms = int((now or datetime.now(UTC)).timestamp() * 1000)
    verified = sum(1 for incident in incidents if incident.verification.status == "verified")

    return Pattern(
        pattern_id=pattern_id_for(category),
        name=generate_pattern_name(category),
        description=generate_pattern_description(category, incidents),
        detection_signature=extract_detection_signature(incidents),
        applicable_to=list(APPLICABLE_AGENTS),
        solution_template=synthesize_solution(incidents),
        code_example=extract_best_code_example(incidents),
        tags=list(candidate.commonality.common_tags),
        related_patterns=[],
        usage_history=UsageHistory(
            total_uses=len(incidents),
            successful_uses=verified,
            by_agent=count_by_agent(incidents),
            recent_incidents=[incident.incident_id for incident in incidents[-RECENT_INCIDENTS:]],
        ),
        success_rate=verified / len(incidents),
        last_used=max(incident.timestamp for incident in incidents),
        caveats=extract_caveats(incidents, now_ms=now_ms),
        category=category,
    )


# -----------------------------------------------------------------------------
# Batch extraction
# -----------------------------------------------------------------------------


def find_candidates(
    incidents: Sequence[Incident],
    *,
    min_incidents: int,
    min_similarity: float,
) -> list[PatternCandidate]:
    candidates: list[PatternCandidate] = []
    for category, members in group_by_category(incidents).items():
        if len(members) < min_incidents:
            continue
        commonality = calculate_commonality(members)
        if commonality.score >= min_similarity:
            candidates.append(PatternCandidate(category, members, commonality))
    return candidates


async def extract_patterns(
    store: MemoryStore,
    *,
    min_incidents: int = 3,
    min_similarity: float = 0.7,
    auto_store: bool = True,
    now: datetime | None = None,
) -> Result[list[Pattern], DebugMemoryError]:
    """Scan the whole corpus and synthesize a pattern for every qualifying category.

    Categories that already have a synthesized pattern are skipped, so a
    second run over an unchanged corpus produces nothing new.

    Args:
        store: Storage collaborator.
        min_incidents: Smallest cluster considered.
        min_similarity: Minimum commonality score for promotion.
        auto_store: Persist each new pattern. With False this is a dry run.
        now: Reference time for staleness caveats.

    Returns:
        The newly synthesized patterns, or the first storage error.
    """
    match await store.load_all_incidents():
        case Err(err):
            return Err(err)
        case Ok(incidents):
            pass
    match await store.load_all_patterns():
        case Err(err):
            return Err(err)
        case Ok(existing):
            pass

    existing_ids = {pattern.pattern_id for pattern in existing}
    candidates = find_candidates(
        incidents, min_incidents=min_incidents, min_similarity=min_similarity
    )
    logger.debug(
        "Analyzed %d incidents: %d pattern candidates", len(incidents), len(candidates)
    )

    patterns: list[Pattern] = []
    for candidate in candidates:
        pattern_id = pattern_id_for(candidate.category)
        if pattern_id in existing_ids:
            logger.debug("Pattern already exists: %s", pattern_id)
            continue

        pattern = create_pattern_from_incidents(candidate, now=now)
        if auto_store:
            match await store.persist_pattern(pattern):
                case Err(err):
                    return Err(err)
                case Ok(_):
                    logger.info(
                        "Stored pattern %s from %d incidents",
                        pattern.pattern_id,
                        len(candidate.incidents),
                    )
            existing_ids.add(pattern_id)
        patterns.append(pattern)

    return Ok(patterns)


async def suggest_patterns(
    store: MemoryStore,
    *,
    now: datetime | None = None,
) -> Result[list[Pattern], DebugMemoryError]:
    """Dry-run extraction with a lower similarity bar; nothing is persisted."""
    return await extract_patterns(
        store, min_incidents=3, min_similarity=0.6, auto_store=False, now=now
    )


# -----------------------------------------------------------------------------
# Auto-extraction trigger
# -----------------------------------------------------------------------------


async def maybe_extract_on_store(
    new_incident: Incident,
    store: MemoryStore,
    *,
    min_similar: int = 3,
    min_quality: float = 0.75,
    now: datetime | None = None,
) -> Result[Pattern | None, DebugMemoryError]:
    """Promote the new incident's category cluster to a pattern once it qualifies.

    The cluster is every unconsumed incident of the same category with a
    root-cause confidence of at least 0.7 and a storable id. On promotion the
    pattern is persisted first, then each member is stamped with its
    ``pattern_id``.
    Stamping is best-effort: a failed write is logged and the rest proceed.

    Returns:
        Ok(pattern) when a new pattern was created, Ok(None) when the cluster
        does not qualify or already has a pattern, Err on a storage failure
        before or while writing the pattern.
    """
    match await store.load_all_incidents():
        case Err(err):
            return Err(err)
        case Ok(incidents):
            pass

    if not any(incident.incident_id == new_incident.incident_id for incident in incidents):
        incidents = [*incidents, new_incident]

    category = new_incident.category
    cluster = [
        incident
        for incident in incidents
        if incident.category == category
        and incident.root_cause.confidence >= TRIGGER_MIN_CONFIDENCE
        and not incident.patternized
        # Members must be writable back with their pattern_id.
        and INCIDENT_ID_PATTERN.match(incident.incident_id)
    ]
    if len(cluster) < min_similar:
        return Ok(None)

    commonality = calculate_commonality(cluster)
    if commonality.score < min_quality:
        logger.debug(
            "Commonality for %s is %.0f%% (need %.0f%%)",
            category or UNKNOWN_CATEGORY,
            commonality.score * 100,
            min_quality * 100,
        )
        return Ok(None)

    candidate = PatternCandidate(category or UNKNOWN_CATEGORY, cluster, commonality)
    match await store.load_pattern(pattern_id_for(candidate.category)):
        case Err(err):
            return Err(err)
        case Ok(existing) if existing is not None:
            return Ok(None)
        case Ok(_):
            pass

    pattern = create_pattern_from_incidents(candidate, now=now)
    match await store.persist_pattern(pattern):
        case Err(err):
            return Err(err)
        case Ok(_):
            pass
    logger.info("Auto-extracted pattern %s from %d incidents", pattern.pattern_id, len(cluster))

    for incident in cluster:
        tagged = replace(incident, pattern_id=pattern.pattern_id, patternized=True)
        match await store.persist_incident(tagged):
            case Err(err):
                logger.warning(
                    "Failed to tag %s with %s: %s", incident.incident_id, pattern.pattern_id, err
                )
            case Ok(_):
                pass

    return Ok(pattern)


# -----------------------------------------------------------------------------
# Formatting
# -----------------------------------------------------------------------------


def format_patterns(patterns: Sequence[Pattern]) -> str:
    """Format patterns as a markdown section for injection into agent prompts."""
    if not patterns:
        return ""

    lines = ["## Known Patterns", ""]
    for pattern in patterns:
        lines.append(f"### {pattern.name} ({pattern.pattern_id})")
        lines.append(pattern.description)
        if pattern.detection_signature:
            lines.append(f"**When:** {', '.join(pattern.detection_signature)}")
        lines.append(f"**Solution:** {pattern.solution_template}")
        lines.append(f"**Success rate:** {pattern.success_rate:.0%}")
        for caveat in pattern.caveats:
            lines.append(f"- {caveat}")
        lines.append("")

    return "\n".join(lines)


__all__ = [
    "PATTERN_NAMES",
    "Commonality",
    "PatternCandidate",
    "calculate_commonality",
    "create_pattern_from_incidents",
    "extract_patterns",
    "find_candidates",
    "format_patterns",
    "generate_pattern_description",
    "generate_pattern_name",
    "group_by_category",
    "maybe_extract_on_store",
    "pattern_id_for",
    "suggest_patterns",
]
