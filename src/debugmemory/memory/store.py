"""Record storage for incidents and patterns.

This module provides:
- MemoryStore: the protocol the engine depends on
- JsonMemoryStore: one JSON file per record under incidents/ and patterns/
- Id generators and validation for incident and pattern ids
- Completeness and quality scoring applied when an incident is stored
"""

from __future__ import annotations

import asyncio
import json
import os
import re
import secrets
import string
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from debugmemory.core.config import MemoryConfig, memory_paths
from debugmemory.core.console import get_logger
from debugmemory.core.result import (
    DebugMemoryError,
    Err,
    InvalidIdError,
    Ok,
    Result,
    StorageError,
)

from .models import (
    Completeness,
    Incident,
    Pattern,
    ValidationReport,
    parse_incident,
    parse_pattern,
)

logger = get_logger(__name__)

INCIDENT_ID_PATTERN = re.compile(r"^INC_\d{8}_\d{6}_[a-z0-9]{1,4}$")
PATTERN_ID_PATTERN = re.compile(r"^PTN_[A-Z_]+$")
_ID_ALPHABET = string.ascii_lowercase + string.digits
_RECORD_SUFFIX = ".json"


# -----------------------------------------------------------------------------
# Store Protocol
# -----------------------------------------------------------------------------


class MemoryStore(Protocol):
    """Protocol for incident and pattern storage implementations.

    Bulk loads return an empty list when nothing has been stored yet.
    ``persist_*`` are upserts keyed by record id.
    """

    async def load_all_incidents(self) -> Result[list[Incident], DebugMemoryError]: ...

    async def load_all_patterns(self) -> Result[list[Pattern], DebugMemoryError]: ...

    async def load_incident(self, incident_id: str) -> Result[Incident | None, DebugMemoryError]: ...

    async def load_pattern(self, pattern_id: str) -> Result[Pattern | None, DebugMemoryError]: ...

    async def persist_incident(self, incident: Incident) -> Result[Incident, DebugMemoryError]: ...

    async def persist_pattern(self, pattern: Pattern) -> Result[Pattern, DebugMemoryError]: ...


# -----------------------------------------------------------------------------
# Id generation and validation
# -----------------------------------------------------------------------------


def generate_incident_id(now: datetime | None = None) -> str:
    """Return a new id of the form ``INC_YYYYMMDD_HHMMSS_xxxx`` (UTC)."""
    moment = now or datetime.now(UTC)
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(4))
    return f"INC_{moment.strftime('%Y%m%d')}_{moment.strftime('%H%M%S')}_{suffix}"


def generate_pattern_id(category: str, name: str) -> str:
    """Return the deterministic id for a (category, name) pair."""
    clean_category = re.sub(r"[^A-Z]", "_", category.upper())
    clean_name = re.sub(r"[^A-Z]", "_", name.upper())
    return f"PTN_{clean_category}_{clean_name}"


def validate_incident_id(incident_id: str) -> Result[str, InvalidIdError]:
    if not INCIDENT_ID_PATTERN.match(incident_id or ""):
        return Err(InvalidIdError("Malformed incident id", context={"id": incident_id}))
    return Ok(incident_id)


def validate_pattern_id(pattern_id: str) -> Result[str, InvalidIdError]:
    if not PATTERN_ID_PATTERN.match(pattern_id or ""):
        return Err(InvalidIdError("Malformed pattern id", context={"id": pattern_id}))
    return Ok(pattern_id)


# -----------------------------------------------------------------------------
# Quality scoring
# -----------------------------------------------------------------------------


def calculate_quality_score(incident: Incident) -> float:
    """Score how reusable an incident record is, from 0 to 1.

    Root cause 0.3, fix 0.3, verification 0.2, tags 0.15.
    """
    score = 0.0

    description_length = len(incident.root_cause.description or "")
    if description_length >= 50:
        score += 0.10
    if description_length >= 100:
        score += 0.05
    confidence = incident.root_cause.confidence or 0.0
    if confidence >= 0.7:
        score += 0.10
    if confidence >= 0.9:
        score += 0.05

    if len(incident.fix.approach or "") >= 20:
        score += 0.15
    changes = len(incident.fix.changes)
    if changes >= 1:
        score += 0.10
    if changes >= 3:
        score += 0.05

    if incident.verification.status == "verified":
        score += 0.15
    elif incident.verification.status == "partial":
        score += 0.08
    if incident.verification.regression_tests_passed:
        score += 0.025
    if incident.verification.user_journey_tested:
        score += 0.025

    tag_count = len(incident.tags)
    if tag_count >= 2:
        score += 0.05
    if tag_count >= 3:
        score += 0.05
    if tag_count >= 5:
        score += 0.05

    return min(score, 1.0)


def assess_completeness(incident: Incident) -> Completeness:
    return Completeness(
        symptom=len(incident.symptom or "") >= 20,
        root_cause=len(incident.root_cause.description or "") >= 50,
        fix=bool(incident.fix.approach) and len(incident.fix.changes) > 0,
        verification=incident.verification.status == "verified",
        quality_score=calculate_quality_score(incident),
    )


def generate_quality_feedback(incident: Incident) -> str:
    """Explain an incident's quality score and list what would raise it."""
    score = calculate_quality_score(incident)
    lines = [f"Overall Quality: {score:.0%}"]
    if score >= 0.9:
        lines.append("Excellent - This incident is well documented and highly reusable.")
    elif score >= 0.75:
        lines.append("Good - This incident has sufficient detail for future reference.")
    elif score >= 0.5:
        lines.append("Fair - Consider adding more details to improve reusability.")
    else:
        lines.append("Poor - This incident needs more detail to be useful.")

    suggestions: list[str] = []
    if len(incident.root_cause.description or "") < 50:
        suggestions.append("- Add more detail to root cause analysis")
    if (incident.root_cause.confidence or 0.0) < 0.7:
        suggestions.append("- Increase confidence score if diagnosis is clear")
    if len(incident.fix.approach or "") < 20:
        suggestions.append("- Document the fix approach more thoroughly")
    if not incident.fix.changes:
        suggestions.append("- Document specific file changes")
    if incident.verification.status != "verified":
        suggestions.append("- Verify the fix works before storing")
    if len(incident.tags) < 3:
        suggestions.append("- Add more tags for better categorization")

    if suggestions:
        lines.append("\nSuggestions for improvement:")
        lines.extend(suggestions)
    return "\n".join(lines)


def validate_incident(incident: Incident) -> ValidationReport:
    """Check required fields; missing optional quality signals become warnings."""
    errors: list[str] = []
    warnings: list[str] = []

    if not incident.incident_id:
        errors.append("Missing incident_id")
    if not incident.timestamp:
        errors.append("Missing timestamp")
    if not incident.symptom:
        errors.append("Missing symptom")
    if not incident.root_cause.description and not incident.root_cause.category:
        errors.append("Missing root_cause")
    if not incident.fix.approach:
        errors.append("Missing fix")

    if not incident.root_cause.confidence:
        warnings.append("Root cause missing confidence score")
    if incident.verification.status == "unverified":
        warnings.append("Incident not verified")
    if incident.quality_gates is None or not incident.quality_gates.guardian_validated:
        warnings.append("Not validated by guardian")

    return ValidationReport(valid=not errors, errors=errors, warnings=warnings)


# -----------------------------------------------------------------------------
# JSON file helpers
# -----------------------------------------------------------------------------


def _write_record(directory: Path, record_id: str, payload: dict[str, Any]) -> Path:
    """Atomically write one record as pretty-printed JSON."""
    directory.mkdir(parents=True, exist_ok=True)
    target = directory / f"{record_id}{_RECORD_SUFFIX}"
    temp_path = target.with_suffix(".tmp")
    try:
        with temp_path.open("w", encoding="utf-8") as fh:
            fh.write(json.dumps(payload, indent=2, ensure_ascii=False))
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(temp_path, target)
    except OSError:
        temp_path.unlink(missing_ok=True)
        raise
    return target


def _read_record(path: Path) -> dict[str, Any] | None:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as exc:
        logger.debug("Skipping unreadable record %s: %s", path.name, exc)
        return None
    if not isinstance(raw, dict):
        logger.debug("Skipping non-object record %s", path.name)
        return None
    return raw


def _read_directory(directory: Path) -> list[dict[str, Any]]:
    if not directory.exists():
        return []
    records: list[dict[str, Any]] = []
    for path in sorted(directory.glob(f"*{_RECORD_SUFFIX}")):
        raw = _read_record(path)
        if raw is not None:
            records.append(raw)
    return records


# -----------------------------------------------------------------------------
# Store Implementation
# -----------------------------------------------------------------------------


class JsonMemoryStore(MemoryStore):
    """File-backed store keeping one JSON document per incident or pattern."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root).expanduser()
        self._incidents_dir = self._root / "incidents"
        self._patterns_dir = self._root / "patterns"

    @classmethod
    def from_config(cls, config: MemoryConfig) -> JsonMemoryStore:
        return cls(memory_paths(config).root)

    @property
    def root(self) -> Path:
        return self._root

    async def load_all_incidents(self) -> Result[list[Incident], DebugMemoryError]:
        try:
            records = await asyncio.to_thread(_read_directory, self._incidents_dir)
        except OSError as exc:
            return Err(
                StorageError(
                    "Failed to read incidents",
                    context={"path": str(self._incidents_dir), "error": str(exc)},
                )
            )
        return Ok([parse_incident(raw) for raw in records])

    async def load_all_patterns(self) -> Result[list[Pattern], DebugMemoryError]:
        try:
            records = await asyncio.to_thread(_read_directory, self._patterns_dir)
        except OSError as exc:
            return Err(
                StorageError(
                    "Failed to read patterns",
                    context={"path": str(self._patterns_dir), "error": str(exc)},
                )
            )
        return Ok([parse_pattern(raw) for raw in records])

    async def load_incident(self, incident_id: str) -> Result[Incident | None, DebugMemoryError]:
        match validate_incident_id(incident_id):
            case Err(err):
                return Err(err)
            case Ok(_):
                pass

        path = self._incidents_dir / f"{incident_id}{_RECORD_SUFFIX}"
        if not path.exists():
            return Ok(None)
        try:
            raw = await asyncio.to_thread(_read_record, path)
        except OSError as exc:
            return Err(StorageError("Failed to read incident", context={"id": incident_id, "error": str(exc)}))
        return Ok(parse_incident(raw) if raw is not None else None)

    async def load_pattern(self, pattern_id: str) -> Result[Pattern | None, DebugMemoryError]:
        match validate_pattern_id(pattern_id):
            case Err(err):
                return Err(err)
            case Ok(_):
                pass

        path = self._patterns_dir / f"{pattern_id}{_RECORD_SUFFIX}"
        if not path.exists():
            return Ok(None)
        try:
            raw = await asyncio.to_thread(_read_record, path)
        except OSError as exc:
            return Err(StorageError("Failed to read pattern", context={"id": pattern_id, "error": str(exc)}))
        return Ok(parse_pattern(raw) if raw is not None else None)

    async def persist_incident(self, incident: Incident) -> Result[Incident, DebugMemoryError]:
        match validate_incident_id(incident.incident_id):
            case Err(err):
                return Err(err)
            case Ok(_):
                pass
        try:
            await asyncio.to_thread(
                _write_record, self._incidents_dir, incident.incident_id, incident.to_dict()
            )
        except OSError as exc:
            return Err(
                StorageError(
                    "Failed to write incident",
                    context={"id": incident.incident_id, "error": str(exc)},
                )
            )
        return Ok(incident)

    async def persist_pattern(self, pattern: Pattern) -> Result[Pattern, DebugMemoryError]:
        match validate_pattern_id(pattern.pattern_id):
            case Err(err):
                return Err(err)
            case Ok(_):
                pass
        try:
            await asyncio.to_thread(
                _write_record, self._patterns_dir, pattern.pattern_id, pattern.to_dict()
            )
        except OSError as exc:
            return Err(
                StorageError(
                    "Failed to write pattern",
                    context={"id": pattern.pattern_id, "error": str(exc)},
                )
            )
        logger.debug("Pattern stored: %s", pattern.pattern_id)
        return Ok(pattern)


# -----------------------------------------------------------------------------
# Statistics
# -----------------------------------------------------------------------------


@dataclass
class MemoryStats:
    total_incidents: int
    total_patterns: int
    oldest_incident: int
    newest_incident: int
    disk_usage_kb: int


def summarize_corpus(incidents: Sequence[Incident], patterns: Sequence[Pattern]) -> MemoryStats:
    timestamps = [incident.timestamp for incident in incidents if incident.timestamp]
    return MemoryStats(
        total_incidents=len(incidents),
        total_patterns=len(patterns),
        oldest_incident=min(timestamps) if timestamps else 0,
        newest_incident=max(timestamps) if timestamps else 0,
        # Rough estimate: ~1KB per incident, ~2KB per pattern.
        disk_usage_kb=len(incidents) + 2 * len(patterns),
    )


async def get_memory_stats(store: MemoryStore) -> Result[MemoryStats, DebugMemoryError]:
    incidents_result, patterns_result = await asyncio.gather(
        store.load_all_incidents(), store.load_all_patterns()
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
    return Ok(summarize_corpus(incidents, patterns))


# -----------------------------------------------------------------------------
# Review
# -----------------------------------------------------------------------------


INCOMPLETE_TAG = "incomplete"
INCOMPLETE_QUALITY = 0.7


def is_incomplete(incident: Incident) -> bool:
    """Tagged incomplete, scored below 0.7, or never verified.

    Records without a completeness block are judged on the other two.
    """
    low_quality = (
        incident.completeness is not None
        and incident.completeness.quality_score < INCOMPLETE_QUALITY
    )
    return (
        INCOMPLETE_TAG in incident.tags
        or low_quality
        or incident.verification.status == "unverified"
    )


async def find_incomplete_incidents(
    store: MemoryStore,
) -> Result[list[Incident], DebugMemoryError]:
    """Return the incidents that need another pass, oldest first."""
    match await store.load_all_incidents():
        case Err(err):
            return Err(err)
        case Ok(incidents):
            pass
    incomplete = [incident for incident in incidents if is_incomplete(incident)]
    incomplete.sort(key=lambda incident: incident.timestamp)
    return Ok(incomplete)


__all__ = [
    "INCIDENT_ID_PATTERN",
    "PATTERN_ID_PATTERN",
    "JsonMemoryStore",
    "MemoryStats",
    "MemoryStore",
    "assess_completeness",
    "calculate_quality_score",
    "find_incomplete_incidents",
    "generate_quality_feedback",
    "generate_incident_id",
    "generate_pattern_id",
    "get_memory_stats",
    "is_incomplete",
    "summarize_corpus",
    "validate_incident",
    "validate_incident_id",
    "validate_pattern_id",
]
