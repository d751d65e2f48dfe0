"""
Unit tests for storing incidents.

Tests cover completeness backfill, optional validation and the
auto-extraction trigger run after a successful write.
"""

from __future__ import annotations

from typing import Any

import pytest

from debugmemory.core.config import MemoryConfig
from debugmemory.core.result import DebugMemoryError, Err, Ok, Result, ValidationError
from debugmemory.memory.api import analyze_symptom, store_incident
from debugmemory.memory.models import DomainAssessment
from debugmemory.memory.store import calculate_quality_score
from tests.mocks.memory_store import InMemoryStore, make_incident


def _ok(result: Result[Any, DebugMemoryError]) -> Any:
    assert isinstance(result, Ok), result
    return result.value


def _hooks_incident(index: int) -> Any:
    return make_incident(
        f"useEffect runs in an infinite loop #{index}",
        category="react-hooks",
        tags=["react", "hooks"],
    )


@pytest.mark.asyncio
async def test_completeness_is_backfilled() -> None:
    store = InMemoryStore()
    incident = make_incident(quality=None, files=["a.py"])

    outcome = _ok(await store_incident(incident, store, MemoryConfig()))

    stored = store.incidents[incident.incident_id]
    assert stored.completeness is not None
    assert stored.completeness.fix
    assert outcome.quality_score == calculate_quality_score(incident)
    assert outcome.pattern is None


@pytest.mark.asyncio
async def test_zero_quality_is_recalculated() -> None:
    store = InMemoryStore()
    incident = make_incident(quality=0.0)
    outcome = _ok(await store_incident(incident, store, MemoryConfig()))
    assert outcome.quality_score == calculate_quality_score(incident)
    assert outcome.quality_score > 0


@pytest.mark.asyncio
async def test_existing_quality_is_kept() -> None:
    store = InMemoryStore()
    outcome = _ok(await store_incident(make_incident(quality=0.42), store, MemoryConfig()))
    assert outcome.quality_score == 0.42


@pytest.mark.asyncio
async def test_validation_rejects_before_writing() -> None:
    store = InMemoryStore()
    incident = make_incident("", approach="")

    result = await store_incident(incident, store, MemoryConfig(), validate=True)

    assert isinstance(result, Err)
    assert isinstance(result.error, ValidationError)
    assert result.error.context["errors"] == ["Missing symptom", "Missing fix"]
    assert store.persisted_incidents == []


@pytest.mark.asyncio
async def test_write_failure_propagates() -> None:
    store = InMemoryStore().fail_incident_writes()
    result = await store_incident(make_incident(), store, MemoryConfig())
    assert isinstance(result, Err)


@pytest.mark.asyncio
async def test_third_similar_incident_creates_pattern() -> None:
    store = InMemoryStore([_hooks_incident(1), _hooks_incident(2)])
    third = _hooks_incident(3)

    outcome = _ok(await store_incident(third, store, MemoryConfig()))

    assert outcome.pattern is not None
    assert outcome.pattern.pattern_id == "PTN_REACT_HOOKS_COMMON_FIX"
    assert "PTN_REACT_HOOKS_COMMON_FIX" in store.patterns
    assert all(incident.patternized for incident in store.incidents.values())
    assert all(
        incident.pattern_id == "PTN_REACT_HOOKS_COMMON_FIX" for incident in store.incidents.values()
    )


@pytest.mark.asyncio
async def test_auto_extract_disabled() -> None:
    store = InMemoryStore([_hooks_incident(1), _hooks_incident(2)])
    outcome = _ok(
        await store_incident(_hooks_incident(3), store, MemoryConfig(auto_extract=False))
    )
    assert outcome.pattern is None
    assert store.patterns == {}


@pytest.mark.asyncio
async def test_pattern_write_failure_propagates() -> None:
    store = InMemoryStore([_hooks_incident(1), _hooks_incident(2)]).fail_pattern_writes()
    third = _hooks_incident(3)

    result = await store_incident(third, store, MemoryConfig())

    assert isinstance(result, Err)
    assert third.incident_id in store.incidents
    assert not any(incident.patternized for incident in store.incidents.values())


@pytest.mark.asyncio
async def test_analyze_fuses_assessments_with_memory() -> None:
    target = make_incident(
        "Login token expired after deploy", category="authentication", tags=["auth"]
    )
    store = InMemoryStore([target, make_incident("Chart renders blank", category="ui")])
    assessments = [
        DomainAssessment(domain="database", confidence=0.4, probable_causes=["Stale session row"]),
        DomainAssessment(
            domain="api",
            confidence=0.9,
            probable_causes=["JWT clock skew"],
            recommended_actions=["Allow clock leeway"],
        ),
    ]

    analysis = _ok(await analyze_symptom("Login token expired after deploy", store, assessments))

    assert analysis.plan.selected_domains == ["api"]
    assert [a.domain for a in analysis.assessments] == ["api", "database"]
    types = {item.type for item in analysis.result.items}
    assert {"assessment", "incident"} <= types
    incident_ids = [item.id for item in analysis.result.items if item.type == "incident"]
    assert incident_ids == [target.incident_id]
    assert "Allow clock leeway" in analysis.result.recommended_actions


@pytest.mark.asyncio
async def test_analyze_without_assessments() -> None:
    analysis = _ok(await analyze_symptom("it is broken", InMemoryStore()))
    assert analysis.assessments == []
    assert analysis.result.items == []
    assert len(analysis.plan.selected_domains) == 4


@pytest.mark.asyncio
async def test_analyze_load_failure() -> None:
    result = await analyze_symptom("anything", InMemoryStore().fail_loads())
    assert isinstance(result, Err)
