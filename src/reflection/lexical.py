"""Substring search used when no embedding provider is available.

A point matches when its text contains, case-insensitively, any
whitespace-delimited token of the query. Matches get a fixed score of 0.5
and keep the store's scan order. Only one bounded page per collection is
scanned.
"""

import asyncio
import logging
import time
from collections.abc import Sequence

from qdrant_client import AsyncQdrantClient

from .config import ReflectionConfig, get_config
from .fanout import CollectionQueryFailed
from .metrics import collection_queries_total, failure_events_total
from .models import Candidate, CollectionOutcome, SearchMode, payload_text

__all__ = ["LEXICAL_SCORE", "LexicalFallbackSearcher", "matches_query"]

logger = logging.getLogger("reflection.lexical")

LEXICAL_SCORE = 0.5


def matches_query(text, query: str) -> bool:
    """True if text contains any whitespace-delimited token of query.

    Non-string text (content block lists, numbers) is matched on its str().
    None never matches.

    Example:
        >>> matches_query("Discussed database INDEXING strategy", "indexing speed")
        True
        >>> matches_query("unrelated", "indexing")
        False
    """
    lowered = payload_text(text).lower()
    return any(token.lower() in lowered for token in query.split())


class LexicalFallbackSearcher:
    """Bounded scroll plus token match over each visible collection."""

    def __init__(self, client: AsyncQdrantClient, config: ReflectionConfig | None = None):
        self.client = client
        self.config = config or get_config()
        self.scan_limit = self.config.lexical_scan_limit
        self.timeout = self.config.collection_timeout_seconds

    async def search(
        self,
        collections: Sequence[str],
        query: str,
        request_id: str | None = None,
    ) -> list[CollectionOutcome]:
        """Scan every collection concurrently, one outcome per collection."""
        tasks = [self._search_one(name, query, request_id) for name in collections]
        return list(await asyncio.gather(*tasks))

    async def _scan(self, collection: str, query: str) -> tuple[int, list[Candidate]]:
        points, _next_offset = await self.client.scroll(
            collection_name=collection,
            limit=self.scan_limit,
            with_payload=True,
            with_vectors=False,
        )
        candidates = [
            Candidate(
                id=point.id,
                score=LEXICAL_SCORE,
                payload=point.payload or {},
                collection=collection,
            )
            for point in points
            if matches_query((point.payload or {}).get("text"), query)
        ]
        return len(points), candidates

    async def _search_one(
        self, collection: str, query: str, request_id: str | None
    ) -> CollectionOutcome:
        start = time.perf_counter()
        try:
            scanned, candidates = await asyncio.wait_for(
                self._scan(collection, query), timeout=self.timeout
            )
        except Exception as e:
            reason = (
                f"timed out after {self.timeout}s"
                if isinstance(e, asyncio.TimeoutError)
                else f"{type(e).__name__}: {e}"
            )
            error = CollectionQueryFailed(collection, reason)
            collection_queries_total.labels(
                mode=SearchMode.LEXICAL.value, status="failed"
            ).inc()
            failure_events_total.labels(
                component="collection", error_code="COLLECTION_QUERY_FAILED"
            ).inc()
            logger.warning(
                "collection_query_failed",
                extra={
                    "request_id": request_id,
                    "collection": collection,
                    "mode": SearchMode.LEXICAL.value,
                    "error": reason,
                },
            )
            return CollectionOutcome(collection=collection, error=str(error))

        collection_queries_total.labels(
            mode=SearchMode.LEXICAL.value, status="success"
        ).inc()
        logger.debug(
            "collection_query_completed",
            extra={
                "request_id": request_id,
                "collection": collection,
                "mode": SearchMode.LEXICAL.value,
                "scanned": scanned,
                "results": len(candidates),
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return CollectionOutcome(collection=collection, candidates=candidates)
