"""Memory data models.

This module contains the dataclasses shared by the retrieval, pattern and
aggregation layers, plus the lenient parsers that turn stored JSON records
into them. The ``to_dict`` methods define the on-disk JSON shape.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

VerificationStatus: TypeAlias = Literal["verified", "partial", "unverified"]
VerificationCode: TypeAlias = Literal["V", "P", "U"]
MatchType: TypeAlias = Literal["exact", "tag", "fuzzy", "category"]
ItemType: TypeAlias = Literal["assessment", "incident", "pattern"]
RetrievalMethod: TypeAlias = Literal["pattern", "incident"]

_VERIFICATION_STATUSES: tuple[str, ...] = ("verified", "partial", "unverified")
_VERIFICATION_CODES: dict[str, VerificationCode] = {
    "verified": "V",
    "partial": "P",
    "unverified": "U",
}


# -----------------------------------------------------------------------------
# Coercion helpers
# -----------------------------------------------------------------------------


def clamp_unit(value: float) -> float:
    """Clamp a number into [0, 1], mapping NaN to 0."""
    if value != value:  # NaN
        return 0.0
    return max(0.0, min(1.0, float(value)))


def _as_str(value: object, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _as_optional_str(value: object) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _as_float(value: object, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value))
    except (TypeError, ValueError):
        return default


def _as_int(value: object, default: int = 0) -> int:
    number = _as_float(value, float(default))
    if number != number or number in (float("inf"), float("-inf")):
        return default
    return int(number)


def _as_str_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


def _as_mapping(value: object) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


# -----------------------------------------------------------------------------
# Incident
# -----------------------------------------------------------------------------


@dataclass
class RootCause:
    description: str = ""
    category: str = ""
    confidence: float = 0.0
    file: str | None = None
    line_range: tuple[int, int] | None = None
    code_snippet: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "description": self.description,
            "category": self.category,
            "confidence": self.confidence,
        }
        if self.file is not None:
            data["file"] = self.file
        if self.line_range is not None:
            data["line_range"] = list(self.line_range)
        if self.code_snippet is not None:
            data["code_snippet"] = self.code_snippet
        return data


@dataclass
class FileChange:
    file: str
    lines_changed: int = 0
    change_type: str = "modify"
    summary: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "file": self.file,
            "lines_changed": self.lines_changed,
            "change_type": self.change_type,
            "summary": self.summary,
        }


@dataclass
class Fix:
    approach: str = ""
    changes: list[FileChange] = field(default_factory=list)
    pattern_used: str | None = None
    time_to_fix: float | None = None  # minutes

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "approach": self.approach,
            "changes": [change.to_dict() for change in self.changes],
        }
        if self.pattern_used is not None:
            data["pattern_used"] = self.pattern_used
        if self.time_to_fix is not None:
            data["time_to_fix"] = self.time_to_fix
        return data


@dataclass
class Verification:
    status: VerificationStatus = "unverified"
    regression_tests_passed: bool = False
    user_journey_tested: bool = False
    success_criteria_met: bool = False
    tests_run: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "regression_tests_passed": self.regression_tests_passed,
            "user_journey_tested": self.user_journey_tested,
            "success_criteria_met": self.success_criteria_met,
            "tests_run": list(self.tests_run),
        }


@dataclass
class QualityGates:
    guardian_validated: bool = False
    tested_e2e: bool = False
    tested_from_ui: bool = False
    security_reviewed: bool = False
    architect_reviewed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "guardian_validated": self.guardian_validated,
            "tested_e2e": self.tested_e2e,
            "tested_from_ui": self.tested_from_ui,
            "security_reviewed": self.security_reviewed,
            "architect_reviewed": self.architect_reviewed,
        }


@dataclass
class Completeness:
    symptom: bool = False
    root_cause: bool = False
    fix: bool = False
    verification: bool = False
    quality_score: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "symptom": self.symptom,
            "root_cause": self.root_cause,
            "fix": self.fix,
            "verification": self.verification,
            "quality_score": self.quality_score,
        }


@dataclass
class Incident:
    """A record of one resolved problem.

    ``similarity_score`` is attached only when the incident is returned from
    a search and is never written back to storage.
    """

    incident_id: str
    timestamp: int  # Unix epoch milliseconds
    symptom: str
    root_cause: RootCause = field(default_factory=RootCause)
    fix: Fix = field(default_factory=Fix)
    verification: Verification = field(default_factory=Verification)
    tags: list[str] = field(default_factory=list)
    files_changed: list[str] = field(default_factory=list)
    session_id: str | None = None
    symptom_type: str | None = None
    agent_used: str | None = None
    quality_gates: QualityGates | None = None
    completeness: Completeness | None = None
    pattern_id: str | None = None
    patternized: bool = False
    similarity_score: float | None = None

    @property
    def category(self) -> str:
        return self.root_cause.category

    @property
    def quality_score(self) -> float:
        return self.completeness.quality_score if self.completeness else 0.0

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "incident_id": self.incident_id,
            "timestamp": self.timestamp,
            "symptom": self.symptom,
            "root_cause": self.root_cause.to_dict(),
            "fix": self.fix.to_dict(),
            "verification": self.verification.to_dict(),
            "tags": list(self.tags),
            "files_changed": list(self.files_changed),
        }
        for key in ("session_id", "symptom_type", "agent_used", "pattern_id"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.quality_gates is not None:
            data["quality_gates"] = self.quality_gates.to_dict()
        if self.completeness is not None:
            data["completeness"] = self.completeness.to_dict()
        if self.patternized:
            data["patternized"] = True
        return data


def _parse_line_range(value: object) -> tuple[int, int] | None:
    if isinstance(value, list) and len(value) == 2:
        return (_as_int(value[0]), _as_int(value[1]))
    return None


def _parse_root_cause(raw: Mapping[str, Any]) -> RootCause:
    return RootCause(
        description=_as_str(raw.get("description")),
        category=_as_str(raw.get("category")),
        confidence=clamp_unit(_as_float(raw.get("confidence"))),
        file=_as_optional_str(raw.get("file")),
        line_range=_parse_line_range(raw.get("line_range")),
        code_snippet=_as_optional_str(raw.get("code_snippet")),
    )


def _parse_fix(raw: Mapping[str, Any]) -> Fix:
    changes: list[FileChange] = []
    raw_changes = raw.get("changes")
    if isinstance(raw_changes, list):
        for item in raw_changes:
            change = _as_mapping(item)
            if not change.get("file"):
                continue
            changes.append(
                FileChange(
                    file=str(change["file"]),
                    lines_changed=_as_int(change.get("lines_changed")),
                    change_type=_as_str(change.get("change_type"), "modify"),
                    summary=_as_str(change.get("summary")),
                )
            )
    time_to_fix = raw.get("time_to_fix")
    return Fix(
        approach=_as_str(raw.get("approach")),
        changes=changes,
        pattern_used=_as_optional_str(raw.get("pattern_used")),
        time_to_fix=_as_float(time_to_fix) if time_to_fix is not None else None,
    )


def _parse_verification(raw: Mapping[str, Any]) -> Verification:
    status = _as_str(raw.get("status"), "unverified").lower()
    if status not in _VERIFICATION_STATUSES:
        status = "unverified"
    return Verification(
        status=status,  # type: ignore[arg-type]
        regression_tests_passed=bool(raw.get("regression_tests_passed", False)),
        user_journey_tested=bool(raw.get("user_journey_tested", False)),
        success_criteria_met=bool(raw.get("success_criteria_met", False)),
        tests_run=_as_str_list(raw.get("tests_run")),
    )


def _parse_quality_gates(raw: object) -> QualityGates | None:
    if not isinstance(raw, Mapping):
        return None
    return QualityGates(**{key: bool(raw.get(key, False)) for key in QualityGates().to_dict()})


def _parse_completeness(raw: object) -> Completeness | None:
    if not isinstance(raw, Mapping):
        return None
    return Completeness(
        symptom=bool(raw.get("symptom", False)),
        root_cause=bool(raw.get("root_cause", False)),
        fix=bool(raw.get("fix", False)),
        verification=bool(raw.get("verification", False)),
        quality_score=clamp_unit(_as_float(raw.get("quality_score"))),
    )


def parse_incident(raw: Mapping[str, Any]) -> Incident:
    """Parse a raw JSON mapping into an Incident.

    Missing fields fall back to empty defaults so that partial records can
    still be loaded; strategies skip what they cannot score.
    """
    pattern_id = _as_optional_str(raw.get("pattern_id"))
    similarity = raw.get("similarity_score")
    return Incident(
        incident_id=_as_str(raw.get("incident_id")),
        timestamp=_as_int(raw.get("timestamp")),
        symptom=_as_str(raw.get("symptom")),
        root_cause=_parse_root_cause(_as_mapping(raw.get("root_cause"))),
        fix=_parse_fix(_as_mapping(raw.get("fix"))),
        verification=_parse_verification(_as_mapping(raw.get("verification"))),
        tags=_as_str_list(raw.get("tags")),
        files_changed=_as_str_list(raw.get("files_changed")),
        session_id=_as_optional_str(raw.get("session_id")),
        symptom_type=_as_optional_str(raw.get("symptom_type")),
        agent_used=_as_optional_str(raw.get("agent_used")),
        quality_gates=_parse_quality_gates(raw.get("quality_gates")),
        completeness=_parse_completeness(raw.get("completeness")),
        pattern_id=pattern_id,
        # A patternized incident without a back-reference is treated as unconsumed.
        patternized=bool(raw.get("patternized", False)) and pattern_id is not None,
        similarity_score=clamp_unit(_as_float(similarity)) if similarity is not None else None,
    )


# -----------------------------------------------------------------------------
# Pattern
# -----------------------------------------------------------------------------


@dataclass
class UsageHistory:
    total_uses: int = 0
    successful_uses: int = 0
    by_agent: dict[str, int] = field(default_factory=dict)
    recent_incidents: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_uses": self.total_uses,
            "successful_uses": self.successful_uses,
            "by_agent": dict(self.by_agent),
            "recent_incidents": list(self.recent_incidents),
        }


@dataclass
class Pattern:
    """A reusable solution synthesized from a cluster of similar incidents."""

    pattern_id: str
    name: str
    description: str
    detection_signature: list[str] = field(default_factory=list)
    applicable_to: list[str] = field(default_factory=list)
    solution_template: str = ""
    code_example: str | None = None
    tags: list[str] = field(default_factory=list)
    related_patterns: list[str] = field(default_factory=list)
    usage_history: UsageHistory = field(default_factory=UsageHistory)
    success_rate: float = 0.0
    last_used: int = 0  # Unix epoch milliseconds
    caveats: list[str] = field(default_factory=list)
    requires_validation: list[str] = field(default_factory=list)
    category: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "pattern_id": self.pattern_id,
            "name": self.name,
            "description": self.description,
            "detection_signature": list(self.detection_signature),
            "applicable_to": list(self.applicable_to),
            "solution_template": self.solution_template,
            "tags": list(self.tags),
            "related_patterns": list(self.related_patterns),
            "usage_history": self.usage_history.to_dict(),
            "success_rate": self.success_rate,
            "last_used": self.last_used,
            "caveats": list(self.caveats),
        }
        if self.code_example is not None:
            data["code_example"] = self.code_example
        if self.requires_validation:
            data["requires_validation"] = list(self.requires_validation)
        if self.category is not None:
            data["category"] = self.category
        return data


def parse_pattern(raw: Mapping[str, Any]) -> Pattern:
    """Parse a raw JSON mapping into a Pattern."""
    usage = _as_mapping(raw.get("usage_history"))
    by_agent = {str(k): _as_int(v) for k, v in _as_mapping(usage.get("by_agent")).items()}
    return Pattern(
        pattern_id=_as_str(raw.get("pattern_id")),
        name=_as_str(raw.get("name")),
        description=_as_str(raw.get("description")),
        detection_signature=_as_str_list(raw.get("detection_signature")),
        applicable_to=_as_str_list(raw.get("applicable_to")),
        solution_template=_as_str(raw.get("solution_template")),
        code_example=_as_optional_str(raw.get("code_example")),
        tags=_as_str_list(raw.get("tags")),
        related_patterns=_as_str_list(raw.get("related_patterns")),
        usage_history=UsageHistory(
            total_uses=_as_int(usage.get("total_uses")),
            successful_uses=_as_int(usage.get("successful_uses")),
            by_agent=by_agent,
            recent_incidents=_as_str_list(usage.get("recent_incidents")),
        ),
        success_rate=clamp_unit(_as_float(raw.get("success_rate"))),
        last_used=_as_int(raw.get("last_used")),
        caveats=_as_str_list(raw.get("caveats")),
        requires_validation=_as_str_list(raw.get("requires_validation")),
        category=_as_optional_str(raw.get("category")),
    )


# -----------------------------------------------------------------------------
# Retrieval results
# -----------------------------------------------------------------------------


@dataclass
class StrategyMatch:
    """One strategy's verdict on one incident. Never persisted."""

    incident: Incident
    score: float
    match_type: MatchType
    highlights: list[str] = field(default_factory=list)


@dataclass
class ParallelSearchResult:
    results: list[StrategyMatch]
    strategies_used: list[MatchType]
    execution_time_ms: float
    parallel_speedup: float


@dataclass
class RetrievalResult:
    incidents: list[Incident]
    patterns: list[Pattern]
    confidence: float
    retrieval_method: RetrievalMethod
    tokens_used: int


@dataclass
class ValidationReport:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# -----------------------------------------------------------------------------
# Aggregation inputs and outputs
# -----------------------------------------------------------------------------


@dataclass
class DomainAssessment:
    """A live assessment produced by a domain-specific assessor."""

    domain: str
    confidence: float
    probable_causes: list[str] = field(default_factory=list)
    recommended_actions: list[str] = field(default_factory=list)
    related_incidents: list[str] = field(default_factory=list)
    search_tags: list[str] = field(default_factory=list)
    symptom_classification: str = "unknown"


@dataclass
class CompactIncident:
    """Token-efficient incident summary used for result fusion."""

    id: str
    timestamp: int
    symptom: str
    category: str
    confidence: float
    fix: str
    verification: VerificationCode = "U"
    tags: list[str] = field(default_factory=list)
    quality: float = 0.0
    similarity: float | None = None


@dataclass
class CompactPattern:
    """Token-efficient pattern summary used for result fusion."""

    id: str
    category: str | None
    description: str
    fix: str
    tags: list[str] = field(default_factory=list)
    uses: int = 0
    last_used: int = 0
    similarity: float | None = None


@dataclass
class ScoredItem:
    """Uniform ranking currency across assessments, incidents and patterns."""

    type: ItemType
    id: str
    score: float
    summary: str
    domain: str | None = None
    actions: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    raw: DomainAssessment | CompactIncident | CompactPattern | None = None


@dataclass
class AggregatedResult:
    items: list[ScoredItem]
    total_count: int
    domains_involved: list[str]
    aggregate_confidence: float
    recommended_actions: list[str]
    search_tags: list[str]


def compact_incident(incident: Incident) -> CompactIncident:
    """Summarize an incident for the aggregator."""
    return CompactIncident(
        id=incident.incident_id,
        timestamp=incident.timestamp,
        symptom=incident.symptom,
        category=incident.root_cause.category,
        confidence=incident.root_cause.confidence,
        fix=incident.fix.approach,
        verification=_VERIFICATION_CODES.get(incident.verification.status, "U"),
        tags=list(incident.tags),
        quality=incident.quality_score,
        similarity=incident.similarity_score,
    )


def compact_pattern(pattern: Pattern, similarity: float | None = None) -> CompactPattern:
    """Summarize a pattern for the aggregator."""
    paragraphs = [part.strip() for part in pattern.solution_template.split("\n\n") if part.strip()]
    # Synthesized templates wrap the fix in a header and a closing reminder.
    if len(paragraphs) >= 3:
        fix = paragraphs[1]
    else:
        fix = paragraphs[0] if paragraphs else pattern.name
    return CompactPattern(
        id=pattern.pattern_id,
        category=pattern.category,
        description=pattern.description or pattern.name,
        fix=fix,
        tags=list(pattern.tags),
        uses=pattern.usage_history.total_uses,
        last_used=pattern.last_used,
        similarity=similarity,
    )


__all__ = [
    "AggregatedResult",
    "CompactIncident",
    "CompactPattern",
    "Completeness",
    "DomainAssessment",
    "FileChange",
    "Fix",
    "Incident",
    "ItemType",
    "MatchType",
    "ParallelSearchResult",
    "Pattern",
    "QualityGates",
    "RetrievalMethod",
    "RetrievalResult",
    "RootCause",
    "ScoredItem",
    "StrategyMatch",
    "UsageHistory",
    "ValidationReport",
    "Verification",
    "VerificationCode",
    "VerificationStatus",
    "clamp_unit",
    "compact_incident",
    "compact_pattern",
    "parse_incident",
    "parse_pattern",
]
