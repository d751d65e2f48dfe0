"""Entry points that combine storage with pattern mining and result fusion."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import datetime

from debugmemory.core.config import MemoryConfig
from debugmemory.core.console import get_logger
from debugmemory.core.result import DebugMemoryError, Err, Ok, Result, ValidationError

from .aggregator import AggregationConfig, aggregate_results
from .assessments import AssessmentPlan, plan_assessment, rank_assessments
from .models import (
    AggregatedResult,
    DomainAssessment,
    Incident,
    Pattern,
    compact_incident,
    compact_pattern,
)
from .patterns import maybe_extract_on_store
from .search import DEFAULT_MAX_RESULTS, DEFAULT_THRESHOLD, parallel_memory_check
from .store import MemoryStore, assess_completeness, calculate_quality_score, validate_incident

logger = get_logger(__name__)


@dataclass
class StoreOutcome:
    incident_id: str
    quality_score: float
    pattern: Pattern | None = None


def _with_completeness(incident: Incident) -> Incident:
    if incident.completeness is None:
        return replace(incident, completeness=assess_completeness(incident))
    if not incident.completeness.quality_score:
        completeness = replace(
            incident.completeness, quality_score=calculate_quality_score(incident)
        )
        return replace(incident, completeness=completeness)
    return incident


async def store_incident(
    incident: Incident,
    store: MemoryStore,
    config: MemoryConfig,
    *,
    validate: bool = False,
) -> Result[StoreOutcome, DebugMemoryError]:
    """Persist an incident, then give the auto-extraction trigger a chance to run.

    Completeness and the quality score are filled in when absent. With
    ``validate`` set, an incident missing required fields is rejected before
    anything is written.
    """
    prepared = _with_completeness(incident)

    if validate:
        report = validate_incident(prepared)
        if not report.valid:
            return Err(
                ValidationError(
                    f"Invalid incident: {', '.join(report.errors)}",
                    context={"id": prepared.incident_id, "errors": report.errors},
                )
            )

    match await store.persist_incident(prepared):
        case Err(err):
            return Err(err)
        case Ok(_):
            pass

    quality = prepared.quality_score
    logger.info("Incident stored: %s (quality: %.0f%%)", prepared.incident_id, quality * 100)

    pattern: Pattern | None = None
    if config.auto_extract:
        match await maybe_extract_on_store(
            prepared,
            store,
            min_similar=config.auto_extract_min_similar,
            min_quality=config.auto_extract_min_quality,
        ):
            case Err(err):
                return Err(err)
            case Ok(extracted):
                pattern = extracted

    return Ok(StoreOutcome(incident_id=prepared.incident_id, quality_score=quality, pattern=pattern))


@dataclass
class SymptomAnalysis:
    """Domain plan, ranked assessments and the fused result for one symptom."""

    plan: AssessmentPlan
    assessments: list[DomainAssessment]
    result: AggregatedResult


async def analyze_symptom(
    symptom: str,
    store: MemoryStore,
    assessments: Sequence[DomainAssessment] = (),
    *,
    threshold: float = DEFAULT_THRESHOLD,
    max_results: int = DEFAULT_MAX_RESULTS,
    timeout: float | None = None,
    aggregation: AggregationConfig | None = None,
    now: datetime | None = None,
) -> Result[SymptomAnalysis, DebugMemoryError]:
    """Fuse live domain assessments with what memory already knows.

    Incidents and patterns come from one combined lookup and carry their
    match score into the aggregator as similarity.
    """
    plan = plan_assessment(symptom)
    match await parallel_memory_check(
        symptom, store, threshold=threshold, max_results=max_results, timeout=timeout
    ):
        case Err(err):
            return Err(err)
        case Ok(found):
            pass

    ranked = rank_assessments(assessments)
    incidents = [
        compact_incident(replace(hit.incident, similarity_score=hit.score))
        for hit in found.incidents
    ]
    patterns = [compact_pattern(hit.pattern, hit.score) for hit in found.patterns]
    result = aggregate_results(ranked, incidents, patterns, aggregation, now=now)
    logger.debug(
        "Analyzed symptom: %d assessments, %d incidents, %d patterns",
        len(ranked),
        len(incidents),
        len(patterns),
    )
    return Ok(SymptomAnalysis(plan=plan, assessments=ranked, result=result))


__all__ = ["StoreOutcome", "SymptomAnalysis", "analyze_symptom", "store_incident"]
