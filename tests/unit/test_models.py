"""Tests for record parsing and compact summaries."""

from __future__ import annotations

import math
from typing import get_args

import pytest

from debugmemory.memory.models import (
    Pattern,
    RetrievalMethod,
    UsageHistory,
    clamp_unit,
    compact_incident,
    compact_pattern,
    parse_incident,
    parse_pattern,
)
from tests.mocks.memory_store import make_incident


@pytest.mark.parametrize(
    ("value", "expected"),
    [(-1.0, 0.0), (0.4, 0.4), (7.0, 1.0), (math.nan, 0.0)],
)
def test_clamp_unit(value: float, expected: float) -> None:
    assert clamp_unit(value) == expected


def test_retrieval_methods() -> None:
    assert get_args(RetrievalMethod) == ("pattern", "incident")


class TestParseIncident:
    def test_lenient_fields(self) -> None:
        incident = parse_incident(
            {
                "incident_id": "INC_20250101_120000_abcd",
                "timestamp": "1700000000000",
                "symptom": "Crash on save",
                "root_cause": {"description": "Null deref", "category": "state", "confidence": 3},
                "fix": {"approach": "Guard", "changes": [{"file": "a.py"}, {"lines_changed": 2}]},
                "verification": {"status": "BOGUS"},
                "tags": ["save", "", None, " state "],
                "completeness": {"quality_score": -0.5},
            }
        )
        assert incident.timestamp == 1_700_000_000_000
        assert incident.root_cause.confidence == 1.0
        assert [change.file for change in incident.fix.changes] == ["a.py"]
        assert incident.verification.status == "unverified"
        assert incident.tags == ["save", "state"]
        assert incident.quality_score == 0.0

    def test_patternized_requires_back_reference(self) -> None:
        assert not parse_incident({"patternized": True}).patternized
        tagged = parse_incident({"patternized": True, "pattern_id": "PTN_API_COMMON_FIX"})
        assert tagged.patternized
        assert tagged.pattern_id == "PTN_API_COMMON_FIX"

    def test_garbage_types(self) -> None:
        incident = parse_incident({"timestamp": "soon", "tags": "not-a-list", "root_cause": 5})
        assert incident.timestamp == 0
        assert incident.tags == []
        assert incident.root_cause.description == ""

    def test_similarity_score_stays_out_of_storage(self) -> None:
        incident = make_incident()
        incident.similarity_score = 0.9
        assert "similarity_score" not in incident.to_dict()


class TestParsePattern:
    def test_usage_history(self) -> None:
        pattern = parse_pattern(
            {
                "pattern_id": "PTN_API_COMMON_FIX",
                "name": "API Error Pattern",
                "usage_history": {"total_uses": "4", "by_agent": {"fixer": 3.0}},
                "success_rate": 1.5,
            }
        )
        assert pattern.usage_history.total_uses == 4
        assert pattern.usage_history.by_agent == {"fixer": 3}
        assert pattern.success_rate == 1.0
        assert pattern.category is None


class TestCompact:
    def test_compact_incident(self) -> None:
        incident = make_incident(
            "Checkout hangs",
            category="payments",
            approach="Add a timeout",
            status="partial",
            tags=["checkout"],
            quality=0.6,
        )
        compact = compact_incident(incident)
        assert compact.id == incident.incident_id
        assert compact.category == "payments"
        assert compact.fix == "Add a timeout"
        assert compact.verification == "P"
        assert compact.quality == 0.6
        assert compact.similarity is None

    def test_compact_pattern_takes_middle_paragraph(self) -> None:
        pattern = Pattern(
            pattern_id="PTN_API_COMMON_FIX",
            name="API Error Pattern",
            description="Recurring API failures",
            solution_template="Based on 3 incidents:\n\nRetry with backoff\n\nVerify the fix.",
            usage_history=UsageHistory(total_uses=3),
            last_used=42,
            category="api",
        )
        compact = compact_pattern(pattern, similarity=0.7)
        assert compact.fix == "Retry with backoff"
        assert compact.uses == 3
        assert compact.last_used == 42
        assert compact.similarity == 0.7

    def test_compact_pattern_short_template(self) -> None:
        pattern = Pattern(
            pattern_id="PTN_API_COMMON_FIX",
            name="API Error Pattern",
            description="",
            solution_template="Just retry",
        )
        compact = compact_pattern(pattern)
        assert compact.fix == "Just retry"
        assert compact.description == "API Error Pattern"
