"""Incident retrieval and pattern mining.

Public entry points:
    - parallel_search / check_memory / parallel_memory_check: retrieval
    - match_patterns: pattern lookup by signature and tag overlap
    - extract_patterns / maybe_extract_on_store: pattern mining
    - aggregate_results: fusion of assessments, incidents and patterns
    - store_incident: persist an incident and run the extraction trigger
    - detect_domains / parse_assessment_response / rank_assessments: domain assessments
    - analyze_symptom: assessments fused with memory lookups
    - find_incomplete_incidents / generate_quality_feedback: record review
"""

from __future__ import annotations

from .aggregator import (
    AggregationConfig,
    aggregate_results,
    create_quick_summary,
    format_aggregated_results,
)
from .api import StoreOutcome, SymptomAnalysis, analyze_symptom, store_incident
from .assessments import (
    DomainDetection,
    OrchestrationResult,
    create_orchestration_result,
    detect_domains,
    format_orchestration_result,
    parse_assessment_response,
    plan_assessment,
    rank_assessments,
    select_domains_for_assessment,
)
from .keywords import extract_keywords
from .models import (
    AggregatedResult,
    CompactIncident,
    CompactPattern,
    DomainAssessment,
    Incident,
    ParallelSearchResult,
    Pattern,
    RetrievalResult,
    ScoredItem,
    StrategyMatch,
    compact_incident,
    compact_pattern,
    parse_incident,
    parse_pattern,
)
from .patterns import (
    calculate_commonality,
    extract_patterns,
    format_patterns,
    maybe_extract_on_store,
    suggest_patterns,
)
from .search import (
    MemoryCheck,
    PatternMatch,
    check_memory,
    get_recent_incidents,
    match_patterns,
    parallel_memory_check,
    parallel_search,
    search_by_tags,
)
from .store import (
    JsonMemoryStore,
    MemoryStats,
    MemoryStore,
    find_incomplete_incidents,
    generate_incident_id,
    generate_pattern_id,
    generate_quality_feedback,
    get_memory_stats,
    validate_incident,
)

__all__ = [
    "AggregatedResult",
    "AggregationConfig",
    "CompactIncident",
    "CompactPattern",
    "DomainAssessment",
    "DomainDetection",
    "Incident",
    "JsonMemoryStore",
    "MemoryCheck",
    "MemoryStats",
    "MemoryStore",
    "OrchestrationResult",
    "ParallelSearchResult",
    "Pattern",
    "PatternMatch",
    "RetrievalResult",
    "ScoredItem",
    "StoreOutcome",
    "StrategyMatch",
    "SymptomAnalysis",
    "aggregate_results",
    "analyze_symptom",
    "calculate_commonality",
    "check_memory",
    "compact_incident",
    "compact_pattern",
    "create_orchestration_result",
    "create_quick_summary",
    "detect_domains",
    "extract_keywords",
    "extract_patterns",
    "find_incomplete_incidents",
    "format_aggregated_results",
    "format_orchestration_result",
    "format_patterns",
    "generate_incident_id",
    "generate_pattern_id",
    "generate_quality_feedback",
    "get_memory_stats",
    "get_recent_incidents",
    "match_patterns",
    "maybe_extract_on_store",
    "parallel_memory_check",
    "parallel_search",
    "parse_assessment_response",
    "parse_incident",
    "parse_pattern",
    "plan_assessment",
    "rank_assessments",
    "search_by_tags",
    "select_domains_for_assessment",
    "store_incident",
    "suggest_patterns",
    "validate_incident",
]
