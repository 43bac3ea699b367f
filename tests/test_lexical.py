"""Tests for the lexical fallback searcher."""

import pytest

from reflection.lexical import LEXICAL_SCORE, LexicalFallbackSearcher, matches_query


class TestMatchesQuery:
    @pytest.mark.parametrize(
        "text,query,expected",
        [
            ("discussed database indexing strategy", "indexing", True),
            ("discussed database indexing strategy", "INDEXING", True),
            ("Discussed Database", "database", True),
            ("discussed database indexing strategy", "sharding indexing", True),
            ("discussed database indexing strategy", "sharding replicas", False),
            ("", "indexing", False),
            (None, "indexing", False),
            ("reindexing jobs", "indexing", True),
            (["indexing", "blocks"], "indexing", True),
            ([{"type": "text"}], "indexing", False),
            (42, "42", True),
        ],
    )
    def test_any_token_substring(self, text, query, expected):
        assert matches_query(text, query) is expected


@pytest.fixture
def searcher(store, make_config):
    return LexicalFallbackSearcher(store.client, make_config(lexical_scan_limit=3))


class TestLexicalSearch:
    @pytest.mark.asyncio
    async def test_matches_get_placeholder_score_in_scan_order(self, searcher, store):
        store.add("conv_projA_voyage", "a", text="indexing plan")
        store.add("conv_projA_voyage", "b", text="lunch menu")
        store.add("conv_projA_voyage", "c", text="Index rebuild, INDEXING done")

        outcomes = await searcher.search(["conv_projA_voyage"], "indexing")

        candidates = outcomes[0].candidates
        assert [c.id for c in candidates] == ["a", "c"]
        assert all(c.score == LEXICAL_SCORE for c in candidates)

    @pytest.mark.asyncio
    async def test_scans_a_bounded_page_without_vectors(self, searcher, store):
        for i in range(10):
            store.add("conv_projA_voyage", i, text="indexing")

        outcomes = await searcher.search(["conv_projA_voyage"], "indexing")

        kwargs = store.client.scroll.await_args.kwargs
        assert kwargs["limit"] == 3
        assert kwargs["with_vectors"] is False
        assert len(outcomes[0].candidates) == 3

    @pytest.mark.asyncio
    async def test_no_match_is_empty_not_failed(self, searcher, store):
        store.add("conv_projA_voyage", 1, text="indexing plan")
        outcomes = await searcher.search(["conv_projA_voyage"], "kubernetes")
        assert outcomes[0].ok
        assert outcomes[0].candidates == []

    @pytest.mark.asyncio
    async def test_failing_collection_is_isolated(self, searcher, store):
        store.add("conv_projA_voyage", 1, text="indexing plan")
        store.add("conv_projB_voyage", 2, text="indexing plan")
        store.failing.add("conv_projA_voyage")

        outcomes = await searcher.search(
            ["conv_projA_voyage", "conv_projB_voyage"], "indexing"
        )

        assert not outcomes[0].ok
        assert [c.id for c in outcomes[1].candidates] == [2]

    @pytest.mark.asyncio
    async def test_non_string_text_does_not_break_the_scan(self, searcher, store):
        store.add("conv_projA_voyage", 1, text=["indexing", "blocks"])
        store.add("conv_projA_voyage", 2, text="indexing plan")
        store.add("conv_projA_voyage", 3, text={"nested": "lunch"})

        outcomes = await searcher.search(["conv_projA_voyage"], "indexing")

        assert outcomes[0].ok
        assert [c.id for c in outcomes[0].candidates] == [1, 2]

    @pytest.mark.asyncio
    async def test_matching_error_is_absorbed_per_collection(self, searcher, store, mocker):
        store.add("conv_projA_voyage", 1, text="indexing plan")
        mocker.patch("reflection.lexical.matches_query", side_effect=RuntimeError("bad payload"))

        outcomes = await searcher.search(["conv_projA_voyage"], "indexing")

        assert not outcomes[0].ok
        assert "bad payload" in outcomes[0].error
