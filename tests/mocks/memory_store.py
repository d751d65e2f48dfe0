"""In-memory storage collaborator for engine tests.

Provides a deterministic MemoryStore implementation backed by dicts, with
write-failure simulation for exercising persistence error paths, plus
factories for building incidents.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from debugmemory.core.result import DebugMemoryError, Err, Ok, Result, StorageError
from debugmemory.memory.models import (
    Completeness,
    FileChange,
    Fix,
    Incident,
    Pattern,
    RootCause,
    Verification,
    VerificationStatus,
)

_counter = 0


def now_ms() -> int:
    return int(datetime.now(UTC).timestamp() * 1000)


def days_ago_ms(days: float) -> int:
    return int((datetime.now(UTC) - timedelta(days=days)).timestamp() * 1000)


def make_incident(
    symptom: str = "Something is broken in production today",
    *,
    incident_id: str | None = None,
    category: str = "api",
    confidence: float = 0.9,
    description: str = "Root cause explained in enough detail to be useful later on.",
    approach: str = "Apply the fix",
    tags: list[str] | None = None,
    files: list[str] | None = None,
    status: VerificationStatus = "verified",
    timestamp: int | None = None,
    quality: float | None = 0.9,
    code_snippet: str | None = None,
    agent: str | None = None,
    time_to_fix: float | None = None,
    patternized: bool = False,
    pattern_id: str | None = None,
) -> Incident:
    """Build an incident with sensible defaults and a unique, valid id."""
    global _counter
    _counter += 1
    return Incident(
        incident_id=incident_id or f"INC_20250101_120000_{_counter % 10000:04d}",
        timestamp=timestamp if timestamp is not None else now_ms(),
        symptom=symptom,
        root_cause=RootCause(
            description=description,
            category=category,
            confidence=confidence,
            code_snippet=code_snippet,
        ),
        fix=Fix(
            approach=approach,
            changes=[FileChange(file=path) for path in (files or [])],
            time_to_fix=time_to_fix,
        ),
        verification=Verification(status=status),
        tags=list(tags or []),
        files_changed=list(files or []),
        agent_used=agent,
        completeness=Completeness(quality_score=quality) if quality is not None else None,
        patternized=patternized,
        pattern_id=pattern_id,
    )


class InMemoryStore:
    """Deterministic MemoryStore for testing.

    Records are kept in insertion order. Writes can be made to fail either
    for every record or only for specific ids.

    Usage:
        store = InMemoryStore([make_incident("...")])
        store.fail_incident_writes({"INC_20250101_120000_0001"})
    """

    def __init__(
        self,
        incidents: list[Incident] | None = None,
        patterns: list[Pattern] | None = None,
    ) -> None:
        self.incidents: dict[str, Incident] = {i.incident_id: i for i in incidents or []}
        self.patterns: dict[str, Pattern] = {p.pattern_id: p for p in patterns or []}
        self.load_calls = 0
        self.persisted_incidents: list[str] = []
        self.persisted_patterns: list[str] = []
        self._failing_incidents: set[str] | None = None
        self._fail_all_incidents = False
        self._fail_patterns = False
        self._fail_loads = False

    def fail_incident_writes(self, ids: set[str] | None = None) -> InMemoryStore:
        """Fail writes for ``ids``, or for every incident when None."""
        if ids is None:
            self._fail_all_incidents = True
        else:
            self._failing_incidents = set(ids)
        return self

    def fail_pattern_writes(self) -> InMemoryStore:
        self._fail_patterns = True
        return self

    def fail_loads(self) -> InMemoryStore:
        self._fail_loads = True
        return self

    async def load_all_incidents(self) -> Result[list[Incident], DebugMemoryError]:
        self.load_calls += 1
        if self._fail_loads:
            return Err(StorageError("Simulated load failure"))
        return Ok(list(self.incidents.values()))

    async def load_all_patterns(self) -> Result[list[Pattern], DebugMemoryError]:
        self.load_calls += 1
        if self._fail_loads:
            return Err(StorageError("Simulated load failure"))
        return Ok(list(self.patterns.values()))

    async def load_incident(self, incident_id: str) -> Result[Incident | None, DebugMemoryError]:
        return Ok(self.incidents.get(incident_id))

    async def load_pattern(self, pattern_id: str) -> Result[Pattern | None, DebugMemoryError]:
        return Ok(self.patterns.get(pattern_id))

    async def persist_incident(self, incident: Incident) -> Result[Incident, DebugMemoryError]:
        failing = self._fail_all_incidents or (
            self._failing_incidents is not None and incident.incident_id in self._failing_incidents
        )
        if failing:
            return Err(StorageError("Simulated write failure", context={"id": incident.incident_id}))
        self.incidents[incident.incident_id] = incident
        self.persisted_incidents.append(incident.incident_id)
        return Ok(incident)

    async def persist_pattern(self, pattern: Pattern) -> Result[Pattern, DebugMemoryError]:
        if self._fail_patterns:
            return Err(StorageError("Simulated write failure", context={"id": pattern.pattern_id}))
        self.patterns[pattern.pattern_id] = pattern
        self.persisted_patterns.append(pattern.pattern_id)
        return Ok(pattern)
