"""Domain detection and assessment ranking.

A symptom is matched against per-domain keyword lists to decide which
domain assessors should look at it. Their JSON answers are parsed into
``DomainAssessment`` records, ranked, and condensed into a priority list
and an ordered action sequence.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

from debugmemory.core.console import get_logger

from .models import DomainAssessment, clamp_unit

logger = get_logger(__name__)

DomainPriority: TypeAlias = Literal["high", "medium", "low"]

DOMAIN_KEYWORDS: dict[str, tuple[str, ...]] = {
    "database": (
        "query", "schema", "migration", "prisma", "sql", "slow query", "connection",
        "constraint", "database", "postgresql", "postgres", "mysql", "mongodb", "index",
        "foreign key", "transaction", "pool", "timeout", "deadlock",
    ),
    "frontend": (
        "react", "hook", "useeffect", "usestate", "render", "component", "ui", "state",
        "hydration", "client", "browser", "dom", "css", "style", "redux", "zustand",
        "context", "props", "rerender", "infinite loop",
    ),
    "api": (
        "endpoint", "route", "request", "response", "auth", "500", "404", "401", "rest",
        "graphql", "middleware", "api", "cors", "jwt", "token", "session", "header",
        "body", "payload", "fetch", "axios",
    ),
    "performance": (
        "slow", "latency", "timeout", "memory", "leak", "cpu", "bottleneck", "performance",
        "optimization", "n+1", "cache", "bundle", "load time", "blocking", "async", "lag",
        "freeze", "hang", "unresponsive",
    ),
}

DOMAIN_WEIGHTS: dict[str, float] = {
    "database": 0.9,
    "api": 0.85,
    "frontend": 0.8,
    "performance": 0.75,
}
DEFAULT_DOMAIN_WEIGHT = 0.5
MAX_SEQUENCE = 5
ACTIONS_PER_ASSESSMENT = 2

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


@dataclass
class DomainDetection:
    domain: str
    priority: DomainPriority
    match_count: int
    matched_keywords: list[str] = field(default_factory=list)


@dataclass
class AssessmentPlan:
    """Which assessors to run for a symptom, with a prompt for each."""

    detections: list[DomainDetection]
    selected_domains: list[str]
    prompts: dict[str, str]
    use_orchestrator: bool


@dataclass
class PriorityItem:
    rank: int
    domain: str
    action: str


@dataclass
class AssessmentSummary:
    domain: str
    confidence: float
    summary: str


@dataclass
class OrchestrationResult:
    symptom: str
    domains_assessed: list[str]
    assessments: list[AssessmentSummary]
    priority_ranking: list[PriorityItem]
    recommended_sequence: list[str]


def _weight(domain: str, weights: Mapping[str, float] | None = None) -> float:
    return (weights or DOMAIN_WEIGHTS).get(domain, DEFAULT_DOMAIN_WEIGHT)


# -----------------------------------------------------------------------------
# Detection
# -----------------------------------------------------------------------------


def detect_domains(
    symptom: str,
    *,
    weights: Mapping[str, float] | None = None,
) -> list[DomainDetection]:
    """Score every domain by keyword hits in ``symptom``.

    Keywords match as lower-case substrings. Two or more hits make a domain
    high priority, one hit medium, none low. Results are ordered by hit
    count, then by domain weight.
    """
    normalized = symptom.lower()
    detections: list[DomainDetection] = []
    for domain, keywords in DOMAIN_KEYWORDS.items():
        matched = [keyword for keyword in keywords if keyword in normalized]
        priority: DomainPriority
        if len(matched) >= 2:
            priority = "high"
        elif matched:
            priority = "medium"
        else:
            priority = "low"
        detections.append(
            DomainDetection(
                domain=domain,
                priority=priority,
                match_count=len(matched),
                matched_keywords=matched,
            )
        )

    detections.sort(key=lambda d: (-d.match_count, -_weight(d.domain, weights)))
    return detections


def select_domains_for_assessment(
    detections: Sequence[DomainDetection],
    *,
    min_matches: int = 1,
    max_domains: int = 4,
    include_low_priority: bool = False,
) -> list[str]:
    """Pick the domains worth assessing; a vague symptom gets all of them."""
    selected = [
        detection
        for detection in detections
        if (include_low_priority or detection.priority != "low")
        and detection.match_count >= min_matches
    ]
    if not selected:
        selected = list(detections)
    return [detection.domain for detection in selected[:max_domains]]


def assessor_prompt(symptom: str, domain: str) -> str:
    return (
        f"Assess the following symptom for {domain}-related issues:\n\n"
        f"**Symptom:** {symptom}\n\n"
        "Follow your assessment process:\n"
        "1. Classify the symptom type\n"
        "2. Search debugging memory for similar incidents\n"
        f"3. Analyze context specific to {domain}\n"
        "4. Generate a JSON assessment with confidence score\n\n"
        "Return ONLY the JSON assessment object."
    )


def plan_assessment(
    symptom: str,
    *,
    min_matches: int = 1,
    max_domains: int = 4,
    include_low_priority: bool = False,
) -> AssessmentPlan:
    """Detect domains, select assessors and decide whether to fan out.

    A single high-priority domain that is also the only selection can be
    assessed directly; anything else goes through the orchestrator.
    """
    detections = detect_domains(symptom)
    selected = select_domains_for_assessment(
        detections,
        min_matches=min_matches,
        max_domains=max_domains,
        include_low_priority=include_low_priority,
    )
    high = [detection for detection in detections if detection.priority == "high"]
    return AssessmentPlan(
        detections=detections,
        selected_domains=selected,
        prompts={domain: assessor_prompt(symptom, domain) for domain in selected},
        use_orchestrator=len(high) != 1 or len(selected) > 1,
    )


# -----------------------------------------------------------------------------
# Parsing and ranking
# -----------------------------------------------------------------------------


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def parse_assessment_response(response: str, domain: str) -> DomainAssessment | None:
    """Pull the JSON assessment out of an assessor's reply.

    The first ``{`` through the last ``}`` is parsed. Replies with no JSON,
    invalid JSON, a zero or missing confidence, or no ``probable_causes``
    key yield None. Confidence is clamped into [0, 1].
    """
    found = _JSON_OBJECT.search(response)
    if found is None:
        return None
    try:
        parsed = json.loads(found.group(0))
    except json.JSONDecodeError as exc:
        logger.debug("Unparseable %s assessment: %s", domain, exc)
        return None
    if not isinstance(parsed, dict):
        return None

    confidence = parsed.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)) or not confidence:
        return None
    if parsed.get("probable_causes") is None:
        return None

    return DomainAssessment(
        domain=domain,
        confidence=clamp_unit(confidence),
        probable_causes=_str_list(parsed.get("probable_causes")),
        recommended_actions=_str_list(parsed.get("recommended_actions")),
        related_incidents=_str_list(parsed.get("related_incidents")),
        search_tags=_str_list(parsed.get("search_tags")),
        symptom_classification=str(parsed.get("symptom_classification") or "unknown"),
    )


def rank_assessments(assessments: Sequence[DomainAssessment]) -> list[DomainAssessment]:
    """Order by confidence, then related-incident count, then domain weight."""
    return sorted(
        assessments,
        key=lambda a: (-a.confidence, -len(a.related_incidents), -_weight(a.domain)),
    )


def priority_ranking(ranked: Sequence[DomainAssessment]) -> list[PriorityItem]:
    return [
        PriorityItem(
            rank=index,
            domain=assessment.domain,
            action=assessment.recommended_actions[0]
            if assessment.recommended_actions
            else "Investigate further",
        )
        for index, assessment in enumerate(ranked, start=1)
    ]


def recommended_sequence(ranked: Sequence[DomainAssessment]) -> list[str]:
    """Top two actions from each assessment in rank order, deduplicated."""
    sequence = dict.fromkeys(
        action
        for assessment in ranked
        for action in assessment.recommended_actions[:ACTIONS_PER_ASSESSMENT]
    )
    return list(sequence)[:MAX_SEQUENCE]


def create_orchestration_result(
    symptom: str,
    assessments: Sequence[DomainAssessment],
) -> OrchestrationResult:
    ranked = rank_assessments(assessments)
    return OrchestrationResult(
        symptom=symptom,
        domains_assessed=[assessment.domain for assessment in assessments],
        assessments=[
            AssessmentSummary(
                domain=assessment.domain,
                confidence=assessment.confidence,
                summary=assessment.probable_causes[0]
                if assessment.probable_causes
                else "No specific cause identified",
            )
            for assessment in ranked
        ],
        priority_ranking=priority_ranking(ranked),
        recommended_sequence=recommended_sequence(ranked),
    )


# -----------------------------------------------------------------------------
# Presentation
# -----------------------------------------------------------------------------


def format_detections(detections: Sequence[DomainDetection]) -> str:
    lines = ["## Domain Analysis", ""]
    for detection in detections:
        lines.append(f"**{detection.domain}** ({detection.priority})")
        if detection.matched_keywords:
            lines.append(f"   Keywords: {', '.join(detection.matched_keywords)}")
        lines.append("")
    return "\n".join(lines)


def format_orchestration_result(result: OrchestrationResult) -> str:
    """Render an orchestration result as a markdown report."""
    lines = [
        "## Parallel Assessment Results",
        "",
        f"**Symptom:** {result.symptom}",
        "",
        f"**Domains Assessed:** {', '.join(result.domains_assessed)}",
        "",
        "### Assessment Summary",
        "",
    ]
    for summary in result.assessments:
        filled = round(summary.confidence * 10)
        bar = "#" * filled + "." * (10 - filled)
        lines.append(f"**{summary.domain}** [{bar}] {summary.confidence:.0%}")
        lines.append(f"   {summary.summary}")
        lines.append("")

    lines.append("### Priority Ranking")
    lines.append("")
    for item in result.priority_ranking:
        lines.append(f"{item.rank}. **{item.domain}**: {item.action}")

    lines.append("")
    lines.append("### Recommended Sequence")
    lines.append("")
    for index, action in enumerate(result.recommended_sequence, start=1):
        lines.append(f"{index}. {action}")

    return "\n".join(lines)


__all__ = [
    "AssessmentPlan",
    "AssessmentSummary",
    "DOMAIN_KEYWORDS",
    "DOMAIN_WEIGHTS",
    "DomainDetection",
    "OrchestrationResult",
    "PriorityItem",
    "assessor_prompt",
    "create_orchestration_result",
    "detect_domains",
    "format_detections",
    "format_orchestration_result",
    "parse_assessment_response",
    "plan_assessment",
    "priority_ranking",
    "rank_assessments",
    "recommended_sequence",
    "select_domains_for_assessment",
]
