"""
Unit tests for result aggregation.

Tests cover per-source scoring, recency decay, deduplication and the
aggregate output shape.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import ValidationError

from debugmemory.memory.aggregator import (
    AggregationConfig,
    aggregate_results,
    calculate_recency_score,
    create_quick_summary,
    deduplicate_items,
    format_aggregated_results,
    item_similarity,
    score_assessment,
    score_incident,
    score_pattern,
)
from debugmemory.memory.models import (
    AggregatedResult,
    CompactIncident,
    CompactPattern,
    DomainAssessment,
    ScoredItem,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def _ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def _incident(
    incident_id: str = "INC_1",
    *,
    verification: str = "V",
    age_days: float = 0.0,
    similarity: float | None = None,
    confidence: float = 0.9,
    quality: float = 0.9,
    symptom: str = "Login form throws on submit",
    category: str = "authentication",
    tags: list[str] | None = None,
    fix: str = "Guard against missing token",
) -> CompactIncident:
    return CompactIncident(
        id=incident_id,
        timestamp=_ms(NOW - timedelta(days=age_days)),
        symptom=symptom,
        category=category,
        confidence=confidence,
        fix=fix,
        verification=verification,  # type: ignore[arg-type]
        tags=tags if tags is not None else ["auth", "login"],
        quality=quality,
        similarity=similarity,
    )


def _pattern(uses: int = 3, age_days: float = 10.0, similarity: float | None = None) -> CompactPattern:
    return CompactPattern(
        id="PTN_API_COMMON_FIX",
        category="api",
        description="API Error Pattern",
        fix="Retry with backoff",
        tags=["api", "retry"],
        uses=uses,
        last_used=_ms(NOW - timedelta(days=age_days)),
        similarity=similarity,
    )


class TestRecency:
    def test_within_a_day(self) -> None:
        assert calculate_recency_score(_ms(NOW - timedelta(hours=23)), now=NOW) == 1.0

    def test_linear_decay(self) -> None:
        score = calculate_recency_score(_ms(NOW - timedelta(days=15)), now=NOW)
        assert score == pytest.approx(1.0 - 0.5 * 0.9)

    def test_floor_after_thirty_days(self) -> None:
        assert calculate_recency_score(_ms(NOW - timedelta(days=40)), now=NOW) == 0.1


class TestScoring:
    def test_assessment(self) -> None:
        assessment = DomainAssessment(
            domain="database",
            confidence=0.85,
            probable_causes=["Connection pool exhausted", "Slow query"],
            recommended_actions=["Raise pool size"],
            related_incidents=["INC_1"],
            search_tags=["pool"],
        )
        item = score_assessment(assessment, now=NOW)
        expected = (0.35 * 0.65 + 0.25 * 0.85 + 0.15 * 1.0 + 0.25 * 0.9) * 1.2
        assert item.score == pytest.approx(expected)
        assert item.id == f"assess_database_{_ms(NOW)}"
        assert item.summary == "Connection pool exhausted"
        assert item.actions == ["Raise pool size"]

    def test_assessment_without_causes(self) -> None:
        item = score_assessment(DomainAssessment(domain="ui", confidence=0.2), now=NOW)
        assert item.summary == "Assessment completed"
        assert item.score == pytest.approx(0.25 * 0.2 + 0.15 + 0.25 * 0.5)

    def test_unverified_old_incident(self) -> None:
        item = score_incident(_incident(verification="U", age_days=40), now=NOW)
        expected = 0.35 * 0.5 + 0.25 * 0.9 + 0.15 * 0.1 + 0.25 * 0.3 + 0.9 * 0.1
        assert item.score == pytest.approx(expected)
        assert item.domain == "authentication"
        assert item.actions == ["Guard against missing token"]

    def test_verified_recent_incident_clamped(self) -> None:
        item = score_incident(_incident(verification="V", age_days=0), now=NOW)
        assert item.score == 1.0

    def test_pattern(self) -> None:
        item = score_pattern(_pattern(uses=3, age_days=10), now=NOW)
        recency = 1.0 - (10 / 30) * 0.9
        expected = (0.35 * 0.5 + 0.25 * 0.8 + 0.15 * recency + 0.25 * 0.8) * 1.15
        assert item.score == pytest.approx(expected)
        assert item.type == "pattern"

    def test_pattern_verification_by_uses(self) -> None:
        one = score_pattern(_pattern(uses=1, age_days=40), now=NOW).score
        two = score_pattern(_pattern(uses=2, age_days=40), now=NOW).score
        assert two - one == pytest.approx(0.25 * 0.15)

    def test_out_of_range_inputs_stay_bounded(self) -> None:
        item = score_incident(_incident(confidence=5.0, quality=-3.0, similarity=9.0), now=NOW)
        assert 0.0 <= item.score <= 1.0


class TestDeduplication:
    def _item(self, summary: str, tags: list[str], item_type: str = "incident") -> ScoredItem:
        return ScoredItem(
            type=item_type,  # type: ignore[arg-type]
            id=summary,
            score=0.5,
            summary=summary,
            domain="api",
            tags=tags,
        )

    def test_identical_items_are_similar(self) -> None:
        a = self._item("Timeout calling billing", ["api"])
        b = self._item("timeout calling billing", ["api"])
        assert item_similarity(a, b) == pytest.approx(1.0)

    def test_different_types_never_similar(self) -> None:
        a = self._item("Timeout calling billing", ["api"])
        b = self._item("Timeout calling billing", ["api"], item_type="pattern")
        assert item_similarity(a, b) == 0.0

    def test_first_survives(self) -> None:
        a = self._item("Timeout calling billing", ["api"])
        b = self._item("timeout calling billing", ["api"])
        c = self._item("Schema mismatch in response", ["json"])
        assert deduplicate_items([a, b, c], 0.8) == [a, c]

    def test_threshold_is_inclusive(self) -> None:
        a = self._item("one two", ["x"])
        b = self._item("one two", ["y"])
        # tags 0/2, words 2/2 -> 0.6
        assert deduplicate_items([a, b], 0.6) == [a]
        assert deduplicate_items([a, b], 0.61) == [a, b]

    def test_zero_threshold_keeps_other_types_and_domains(self) -> None:
        a = self._item("Timeout calling billing", ["api"])
        b = self._item("Unrelated words", ["x"])
        c = self._item("Timeout calling billing", ["api"], item_type="pattern")
        other_domain = ScoredItem(
            type="incident", id="db", score=0.5, summary="Deadlock", domain="database"
        )
        assert deduplicate_items([a, b, c, other_domain], 0.0) == [a, c, other_domain]


class TestAggregate:
    def test_verified_recent_ranks_above_unverified_old(self) -> None:
        verified = _incident("INC_V", verification="V", age_days=0, symptom="Login fails")
        unverified = _incident(
            "INC_U", verification="U", age_days=40, symptom="Checkout hangs", category="payments"
        )
        result = aggregate_results([], [unverified, verified], [], now=NOW)
        assert [item.id for item in result.items] == ["INC_V", "INC_U"]
        assert result.items[0].score > result.items[1].score

    def test_output_shape(self) -> None:
        assessment = DomainAssessment(
            domain="api",
            confidence=0.9,
            probable_causes=["Upstream timeout"],
            recommended_actions=["Add retries", "Retry with backoff"],
            search_tags=["timeout"],
        )
        incidents = [
            _incident("INC_A", symptom="Billing call times out", category="api", fix="Add retries"),
            _incident("INC_B", symptom="Billing call times out", category="api", fix="Add retries"),
            _incident("INC_C", verification="U", age_days=60, confidence=0.0, quality=0.0),
        ]
        result = aggregate_results([assessment], incidents, [_pattern(age_days=1)], now=NOW)

        ids = [item.id for item in result.items]
        assert "INC_B" not in ids  # duplicate of INC_A
        assert result.total_count == len(result.items)
        assert result.domains_involved == ["api"]
        assert len(result.recommended_actions) == len(set(result.recommended_actions))
        assert len(result.recommended_actions) <= 5
        assert result.aggregate_confidence == pytest.approx(
            sum(item.score for item in result.items) / len(result.items)
        )
        assert all(item.score >= 0.3 for item in result.items)

    def test_min_score_filter(self) -> None:
        weak = _incident(verification="U", age_days=60, confidence=0.0, quality=0.0)
        config = AggregationConfig(min_score_threshold=0.5)
        assert aggregate_results([], [weak], [], config, now=NOW).items == []

    def test_max_results(self) -> None:
        incidents = [
            _incident(f"INC_{i}", symptom=f"distinct symptom number {i}", tags=[f"t{i}"])
            for i in range(5)
        ]
        result = aggregate_results([], incidents, [], AggregationConfig(max_results=2), now=NOW)
        assert len(result.items) == 2
        assert result.total_count == 5

    def test_empty(self) -> None:
        result = aggregate_results([], [], [], now=NOW)
        assert result.items == []
        assert result.aggregate_confidence == 0.0

    def test_config_validation(self) -> None:
        with pytest.raises(ValidationError):
            AggregationConfig(min_score_threshold=1.5)

    def test_zero_dedupe_threshold_keeps_each_source_type(self) -> None:
        incident = _incident("INC_DB", category="database", symptom="Deadlock on orders table")
        config = AggregationConfig(dedupe_threshold=0.0, min_score_threshold=0.0)
        result = aggregate_results([], [incident], [_pattern(age_days=1)], config, now=NOW)
        assert {item.type for item in result.items} == {"incident", "pattern"}
        assert set(result.domains_involved) == {"api", "database"}


class TestPresentation:
    def _result(self) -> AggregatedResult:
        return aggregate_results([], [_incident()], [], now=NOW)

    def test_quick_summary(self) -> None:
        summary = create_quick_summary(self._result())
        assert summary == (
            "[100% confidence] Login form throws on submit\n"
            "Recommended: Guard against missing token"
        )

    def test_quick_summary_empty(self) -> None:
        empty = aggregate_results([], [], [], now=NOW)
        assert create_quick_summary(empty) == "No relevant matches found."

    def test_report(self) -> None:
        report = format_aggregated_results(self._result())
        assert report.startswith("## Aggregated Analysis Results")
        assert "**Domains:** authentication" in report
        assert "**Total Matches:** 1" in report
        assert "1. Guard against missing token" in report
        assert "**Tags:** auth, login" in report
