"""Tests for result merging and rendering."""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from reflection.aggregator import (
    EXCERPT_MAX_CHARS,
    ResultAggregator,
    make_excerpt,
    render_outcome,
    render_results,
)
from reflection.config import ReflectionConfig
from reflection.models import (
    Candidate,
    CollectionOutcome,
    ScoredResult,
    SearchOutcome,
    SearchState,
)
from reflection.registry import CollectionRegistry

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

aggregator = ResultAggregator(
    CollectionRegistry(Mock(), ReflectionConfig(_env_file=None)).derive_project
)


def candidate(point_id, score, collection="conv_projA_voyage", **payload):
    payload.setdefault("text", f"text {point_id}")
    return Candidate(id=point_id, score=score, payload=payload, collection=collection)


class TestMerge:
    def test_sorted_descending_and_truncated(self):
        outcomes = [
            CollectionOutcome("conv_projA_voyage", [candidate(1, 0.7), candidate(2, 0.95)]),
            CollectionOutcome("conv_projB_voyage", [candidate(3, 0.8, "conv_projB_voyage")]),
        ]
        results = aggregator.merge(outcomes, limit=2, now=NOW)
        assert [r.id for r in results] == [2, 3]

    def test_limit_three_of_ten(self):
        scores = [0.71, 0.99, 0.73, 0.85, 0.74, 0.9, 0.72, 0.76, 0.8, 0.75]
        outcomes = [
            CollectionOutcome(
                "conv_projA_voyage", [candidate(i, s) for i, s in enumerate(scores[:5])]
            ),
            CollectionOutcome(
                "conv_projB_voyage",
                [candidate(i + 5, s, "conv_projB_voyage") for i, s in enumerate(scores[5:])],
            ),
        ]
        results = aggregator.merge(outcomes, limit=3, now=NOW)
        assert [r.score for r in results] == [0.99, 0.9, 0.85]

    def test_ties_keep_input_order(self):
        outcomes = [
            CollectionOutcome("conv_projA_voyage", [candidate("first", 0.8)]),
            CollectionOutcome("conv_projB_voyage", [candidate("second", 0.8, "conv_projB_voyage")]),
        ]
        results = aggregator.merge(outcomes, limit=5, now=NOW)
        assert [r.id for r in results] == ["first", "second"]

    def test_no_dedup_across_collections(self):
        outcomes = [
            CollectionOutcome("conv_projA_voyage", [candidate(7, 0.8)]),
            CollectionOutcome("conv_projB_voyage", [candidate(7, 0.8, "conv_projB_voyage")]),
        ]
        results = aggregator.merge(outcomes, limit=5, now=NOW)
        assert [(r.id, r.source_collection) for r in results] == [
            (7, "conv_projA_voyage"),
            (7, "conv_projB_voyage"),
        ]

    def test_failed_outcomes_contribute_nothing(self):
        outcomes = [
            CollectionOutcome("conv_projA_voyage", error="boom"),
            CollectionOutcome("conv_projB_voyage", [candidate(1, 0.8, "conv_projB_voyage")]),
        ]
        assert len(aggregator.merge(outcomes, limit=5, now=NOW)) == 1


@given(
    scores=st.lists(
        st.sampled_from([0.5, 0.6, 0.7, 0.8]), min_size=0, max_size=20
    ),
    limit=st.integers(min_value=1, max_value=25),
)
@settings(max_examples=100)
def test_merge_is_a_stable_sort(scores, limit):
    candidates = [candidate(i, s) for i, s in enumerate(scores)]
    results = aggregator.merge([CollectionOutcome("conv_projA_voyage", candidates)], limit, NOW)

    assert len(results) == min(limit, len(scores))
    for earlier, later in zip(results, results[1:]):
        assert earlier.score >= later.score
        if earlier.score == later.score:
            assert earlier.id < later.id


class TestToScoredResult:
    def test_payload_fields(self):
        result = aggregator.to_scored_result(
            candidate(
                1,
                0.8,
                text="hello",
                timestamp="2025-01-01T00:00:00Z",
                role="user",
                project="my-app",
                conversation_id="abc",
            ),
            NOW,
        )
        assert result == ScoredResult(
            id=1,
            score=0.8,
            timestamp="2025-01-01T00:00:00Z",
            role="user",
            excerpt="hello",
            project_name="my-app",
            conversation_id="abc",
            source_collection="conv_projA_voyage",
        )

    def test_start_role_wins_over_role(self):
        result = aggregator.to_scored_result(
            candidate(1, 0.8, start_role="assistant", role="user"), NOW
        )
        assert result.role == "assistant"

    def test_fallbacks(self):
        result = aggregator.to_scored_result(candidate(1, 0.8), NOW)
        assert result.role == "unknown"
        assert result.timestamp == NOW.isoformat()
        assert result.project_name == "projA"
        assert result.conversation_id is None

    @pytest.mark.parametrize(
        "payload,expected",
        [
            ({"project_name": "named"}, "named"),
            ({"project_id": "by-id"}, "by-id"),
            ({"project": "first", "project_name": "second"}, "first"),
            ({"project": ""}, "projA"),
        ],
    )
    def test_project_precedence(self, payload, expected):
        assert aggregator.to_scored_result(candidate(1, 0.8, **payload), NOW).project_name == expected


class TestExcerpt:
    def test_short_text_unchanged(self):
        assert make_excerpt("short") == "short"

    def test_exactly_max_is_not_marked(self):
        text = "x" * EXCERPT_MAX_CHARS
        assert make_excerpt(text) == text

    def test_long_text_truncated_with_ellipsis(self):
        excerpt = make_excerpt("y" * 1200)
        assert excerpt == "y" * 500 + "..."

    def test_missing_text(self):
        assert make_excerpt(None) == ""

    def test_non_string_text(self):
        assert make_excerpt(["indexing", "blocks"]) == "['indexing', 'blocks']"
        assert make_excerpt(42) == "42"


def scored(score=0.812, **overrides):
    fields = dict(
        id=1,
        score=score,
        timestamp="2025-01-15T10:30:00Z",
        role="user",
        excerpt="discussed database indexing strategy",
        project_name="projA",
        conversation_id=None,
        source_collection="conv_projA_voyage",
    )
    fields.update(overrides)
    return ScoredResult(**fields)


class TestRender:
    def test_render_results(self):
        text = render_results("indexing", [scored()])
        assert text == (
            'Found 1 relevant conversation(s) for "indexing":\n\n'
            "**Result 1** (Score: 0.812)\n"
            "Time: 2025-01-15 10:30:00 UTC\n"
            "Project: projA\n"
            "Role: user\n"
            "Excerpt: discussed database indexing strategy\n"
            "---"
        )

    def test_results_are_numbered_and_separated(self):
        text = render_results("q", [scored(0.9), scored(0.8, id=2)])
        assert "**Result 1** (Score: 0.900)" in text
        assert "---\n\n**Result 2** (Score: 0.800)" in text

    def test_decayed_score_above_one(self):
        assert "(Score: 1.150)" in render_results("q", [scored(1.15)])

    def test_unparseable_time_is_shown_verbatim(self):
        assert "Time: sometime\n" in render_results("q", [scored(timestamp="sometime")])

    def test_out_of_range_time_is_shown_verbatim(self):
        text = render_results("q", [scored(timestamp="0001-01-01T00:00:00+01:00")])
        assert "Time: 0001-01-01T00:00:00+01:00\n" in text

    def test_outcome_with_results(self):
        outcome = SearchOutcome("r", "indexing", SearchState.DONE, results=[scored()])
        assert render_outcome(outcome).startswith("Found 1 relevant conversation(s)")

    def test_empty_outcome(self):
        outcome = SearchOutcome("r", "indexing", SearchState.DONE, collections_searched=2)
        text = render_outcome(outcome)
        assert text.startswith('No conversations found for "indexing"')
        assert "2 collection(s)" in text

    def test_empty_outcome_without_collections(self):
        outcome = SearchOutcome("r", "indexing", SearchState.DONE)
        assert "import conversations first" in render_outcome(outcome)

    def test_failed_outcome(self):
        outcome = SearchOutcome(
            "r", "indexing", SearchState.FAILED, error="Vector store unavailable: down"
        )
        assert render_outcome(outcome) == "Error: Vector store unavailable: down"
