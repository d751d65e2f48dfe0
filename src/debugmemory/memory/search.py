"""Parallel retrieval over the incident and pattern corpus.

This module provides functions for:
- Running every incident strategy concurrently over one shared corpus load
- Merging strategy matches (max score per incident), thresholding and ranking
- Scoring patterns against a query by signature and tag overlap
- The higher-level "check memory" flow where patterns take precedence
"""

from __future__ import annotations

import asyncio
import json
import math
import time
from collections.abc import Awaitable, Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import TypeVar

from debugmemory.core.console import get_logger
from debugmemory.core.result import DebugMemoryError, Err, Ok, Result, StorageError

from .models import (
    Incident,
    MatchType,
    ParallelSearchResult,
    Pattern,
    RetrievalResult,
    StrategyMatch,
)
from .store import MemoryStore
from .strategies import STRATEGIES, SearchQuery, Strategy

logger = get_logger(__name__)
T = TypeVar("T")

DEFAULT_THRESHOLD = 0.5
DEFAULT_MAX_RESULTS = 10
DEFAULT_PATTERN_RESULTS = 5
PATTERN_CONFIDENCE = 0.9
INCIDENT_CONFIDENCE = 0.7
SIGNATURE_WEIGHT = 0.7
TAG_WEIGHT = 0.3
_DAY_MS = 24 * 60 * 60 * 1000


@dataclass
class Corpus:
    """Incidents and patterns loaded once and shared read-only by every scorer."""

    incidents: list[Incident]
    patterns: list[Pattern]


@dataclass
class PatternMatch:
    pattern: Pattern
    score: float


@dataclass
class MemoryCheck:
    """Patterns and incidents found by one combined lookup."""

    patterns: list[PatternMatch]
    incidents: list[StrategyMatch]
    execution_time_ms: float
    parallel_speedup: float


# -----------------------------------------------------------------------------
# Corpus loading
# -----------------------------------------------------------------------------


async def _with_timeout(
    operation: Awaitable[Result[T, DebugMemoryError]],
    timeout: float | None,
    what: str,
) -> Result[T, DebugMemoryError]:
    try:
        return await asyncio.wait_for(operation, timeout=timeout)
    except TimeoutError:
        return Err(StorageError(f"Timed out loading {what}", context={"timeout": timeout}))


async def load_corpus(
    store: MemoryStore,
    *,
    timeout: float | None = None,
) -> Result[Corpus, DebugMemoryError]:
    """Bulk-load incidents and patterns concurrently."""
    incidents_result, patterns_result = await asyncio.gather(
        _with_timeout(store.load_all_incidents(), timeout, "incidents"),
        _with_timeout(store.load_all_patterns(), timeout, "patterns"),
    )
    match incidents_result:
        case Err(err):
            return Err(err)
        case Ok(incidents):
            pass
    match patterns_result:
        case Err(err):
            return Err(err)
        case Ok(patterns):
            pass
    return Ok(Corpus(incidents=incidents, patterns=patterns))


# -----------------------------------------------------------------------------
# Incident search
# -----------------------------------------------------------------------------


def merge_and_rank(
    batches: Iterable[Sequence[StrategyMatch]],
    *,
    threshold: float = DEFAULT_THRESHOLD,
    max_results: int = DEFAULT_MAX_RESULTS,
) -> list[StrategyMatch]:
    """Keep the best match per incident id, drop those under threshold, rank and truncate.

    Ties keep discovery order: strategy order first, then corpus order.
    """
    best: dict[str, StrategyMatch] = {}
    for batch in batches:
        for match in batch:
            key = match.incident.incident_id
            existing = best.get(key)
            if existing is None or match.score > existing.score:
                best[key] = match

    survivors = [match for match in best.values() if match.score >= threshold]
    survivors.sort(key=lambda match: match.score, reverse=True)
    return survivors[: max(max_results, 0)]


async def _run_strategy(
    strategy: Strategy,
    incidents: Sequence[Incident],
    query: SearchQuery,
) -> list[StrategyMatch]:
    return strategy(incidents, query)


async def search_corpus(
    query: str,
    incidents: Sequence[Incident],
    *,
    threshold: float = DEFAULT_THRESHOLD,
    max_results: int = DEFAULT_MAX_RESULTS,
) -> ParallelSearchResult:
    """Fan every strategy out over an already-loaded incident corpus."""
    started = time.perf_counter()
    if not incidents:
        return ParallelSearchResult(
            results=[],
            strategies_used=[],
            execution_time_ms=(time.perf_counter() - started) * 1000,
            parallel_speedup=1.0,
        )

    search_query = SearchQuery.from_text(query)
    batches = await asyncio.gather(
        *(_run_strategy(strategy, incidents, search_query) for _, strategy in STRATEGIES)
    )

    strategies_used: list[MatchType] = [
        name for (name, _), batch in zip(STRATEGIES, batches, strict=True) if batch
    ]
    results = merge_and_rank(batches, threshold=threshold, max_results=max_results)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.debug(
        "Search %r: %d matches from %s in %.1fms",
        query,
        len(results),
        strategies_used or "no strategies",
        elapsed_ms,
    )
    return ParallelSearchResult(
        results=results,
        strategies_used=strategies_used,
        execution_time_ms=elapsed_ms,
        parallel_speedup=float(len(strategies_used)) if strategies_used else 1.0,
    )


async def parallel_search(
    query: str,
    store: MemoryStore,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    max_results: int = DEFAULT_MAX_RESULTS,
    timeout: float | None = None,
) -> Result[ParallelSearchResult, DebugMemoryError]:
    """Search incidents with all strategies concurrently.

    Args:
        query: Free-text problem description.
        store: Storage collaborator supplying the corpus.
        threshold: Minimum merged score to keep a match.
        max_results: Maximum matches returned.
        timeout: Optional limit in seconds on the corpus load.

    Returns:
        Ranked matches, one per incident, or the storage error.
    """
    match await load_corpus(store, timeout=timeout):
        case Err(err):
            return Err(err)
        case Ok(corpus):
            pass

    return Ok(
        await search_corpus(
            query, corpus.incidents, threshold=threshold, max_results=max_results
        )
    )


# -----------------------------------------------------------------------------
# Pattern matching
# -----------------------------------------------------------------------------


def score_pattern(pattern: Pattern, keywords: Sequence[str]) -> float:
    """Weighted overlap: 70% detection signature, 30% tags."""
    signature = pattern.detection_signature
    signature_hits = sum(
        1 for sig in signature if any(word in sig.lower() for word in keywords)
    )
    tag_hits = sum(1 for tag in pattern.tags if tag.lower() in keywords)
    score = (
        signature_hits / max(len(signature), 1) * SIGNATURE_WEIGHT
        + tag_hits / max(len(pattern.tags), 1) * TAG_WEIGHT
    )
    return min(score, 1.0)


async def _score_one(pattern: Pattern, keywords: Sequence[str]) -> PatternMatch:
    return PatternMatch(pattern=pattern, score=score_pattern(pattern, keywords))


async def rank_patterns(
    query: str,
    patterns: Sequence[Pattern],
    *,
    threshold: float = DEFAULT_THRESHOLD,
    max_results: int = DEFAULT_PATTERN_RESULTS,
) -> list[PatternMatch]:
    """Score every pattern concurrently, then filter, sort and truncate."""
    if not patterns:
        return []
    keywords = SearchQuery.from_text(query).keywords
    scored = await asyncio.gather(*(_score_one(pattern, keywords) for pattern in patterns))
    survivors = [match for match in scored if match.score >= threshold]
    survivors.sort(key=lambda match: match.score, reverse=True)
    return survivors[: max(max_results, 0)]


async def match_patterns(
    query: str,
    store: MemoryStore,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    max_results: int = DEFAULT_PATTERN_RESULTS,
    timeout: float | None = None,
) -> Result[list[PatternMatch], DebugMemoryError]:
    match await _with_timeout(store.load_all_patterns(), timeout, "patterns"):
        case Err(err):
            return Err(err)
        case Ok(patterns):
            pass
    return Ok(await rank_patterns(query, patterns, threshold=threshold, max_results=max_results))


# -----------------------------------------------------------------------------
# Combined flows
# -----------------------------------------------------------------------------


def estimate_tokens(items: Sequence[Incident | Pattern]) -> int:
    """Rough token estimate: four characters of JSON per token."""
    total_chars = sum(len(json.dumps(item.to_dict())) for item in items)
    return math.ceil(total_chars / 4)


def _with_similarity(match: StrategyMatch) -> Incident:
    return replace(match.incident, similarity_score=match.score)


async def check_memory(
    symptom: str,
    store: MemoryStore,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    max_results: int = DEFAULT_PATTERN_RESULTS,
    timeout: float | None = None,
) -> Result[RetrievalResult, DebugMemoryError]:
    """Look up patterns first; fall back to incidents only when none qualify."""
    match await load_corpus(store, timeout=timeout):
        case Err(err):
            return Err(err)
        case Ok(corpus):
            pass

    pattern_matches = await rank_patterns(
        symptom, corpus.patterns, threshold=threshold, max_results=max_results
    )
    if pattern_matches:
        patterns = [match.pattern for match in pattern_matches]
        logger.debug("Found %d matching patterns", len(patterns))
        return Ok(
            RetrievalResult(
                incidents=[],
                patterns=patterns,
                confidence=PATTERN_CONFIDENCE,
                retrieval_method="pattern",
                tokens_used=estimate_tokens(patterns),
            )
        )

    search = await search_corpus(
        symptom, corpus.incidents, threshold=threshold, max_results=max_results
    )
    incidents = [_with_similarity(match) for match in search.results]
    logger.debug("Found %d similar incidents", len(incidents))
    return Ok(
        RetrievalResult(
            incidents=incidents,
            patterns=[],
            confidence=INCIDENT_CONFIDENCE if incidents else 0.0,
            retrieval_method="incident",
            tokens_used=estimate_tokens(incidents),
        )
    )


async def parallel_memory_check(
    symptom: str,
    store: MemoryStore,
    *,
    threshold: float = DEFAULT_THRESHOLD,
    max_results: int = DEFAULT_MAX_RESULTS,
    timeout: float | None = None,
) -> Result[MemoryCheck, DebugMemoryError]:
    """Run pattern matching and incident search side by side over one corpus load."""
    started = time.perf_counter()
    match await load_corpus(store, timeout=timeout):
        case Err(err):
            return Err(err)
        case Ok(corpus):
            pass

    pattern_matches, search = await asyncio.gather(
        rank_patterns(
            symptom,
            corpus.patterns,
            threshold=threshold,
            max_results=min(max_results, DEFAULT_PATTERN_RESULTS),
        ),
        search_corpus(symptom, corpus.incidents, threshold=threshold, max_results=max_results),
    )
    return Ok(
        MemoryCheck(
            patterns=pattern_matches,
            incidents=search.results,
            execution_time_ms=(time.perf_counter() - started) * 1000,
            parallel_speedup=2.0 + search.parallel_speedup,
        )
    )


async def search_by_tags(
    tags: Sequence[str],
    store: MemoryStore,
) -> Result[list[Incident], DebugMemoryError]:
    """Return incidents carrying any of ``tags`` (exact, case-sensitive)."""
    match await store.load_all_incidents():
        case Err(err):
            return Err(err)
        case Ok(incidents):
            pass
    wanted = set(tags)
    return Ok([incident for incident in incidents if wanted.intersection(incident.tags)])


async def get_recent_incidents(
    store: MemoryStore,
    days: int = 7,
    *,
    now: datetime | None = None,
) -> Result[list[Incident], DebugMemoryError]:
    """Return incidents from the last ``days`` days, newest first."""
    match await store.load_all_incidents():
        case Err(err):
            return Err(err)
        case Ok(incidents):
            pass
    reference = int((now or datetime.now(UTC)).timestamp() * 1000)
    cutoff = reference - days * _DAY_MS
    recent = [incident for incident in incidents if incident.timestamp >= cutoff]
    recent.sort(key=lambda incident: incident.timestamp, reverse=True)
    return Ok(recent)


__all__ = [
    "Corpus",
    "MemoryCheck",
    "PatternMatch",
    "check_memory",
    "estimate_tokens",
    "get_recent_incidents",
    "load_corpus",
    "match_patterns",
    "merge_and_rank",
    "parallel_memory_check",
    "parallel_search",
    "rank_patterns",
    "score_pattern",
    "search_by_tags",
    "search_corpus",
]
