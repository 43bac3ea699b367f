"""Concurrent per-collection semantic search.

One query per visible collection is dispatched at once with asyncio.gather.
Each task returns a CollectionOutcome; a failure or timeout in one collection
is logged and turned into an empty outcome for that collection only, so a
sibling task never sees it.

Modes:
    plain: ceil(limit * 1.5) candidates with the store-side score threshold
    decay: ceil(limit * 3) candidates, no store threshold, then
           decay -> filter(adjusted >= min_score) -> sort -> truncate(limit)
"""

import asyncio
import logging
import math
import time
from collections.abc import Sequence
from datetime import datetime, timezone

from qdrant_client import AsyncQdrantClient

from .config import ReflectionConfig, get_config
from .decay import DecayScorer
from .metrics import collection_queries_total, failure_events_total
from .models import Candidate, CollectionOutcome, DecayConfig, SearchMode, SearchRequest

__all__ = [
    "CollectionQueryFailed",
    "FanOutSearcher",
    "candidate_limit",
]

logger = logging.getLogger("reflection.fanout")

PLAIN_OVERFETCH = 1.5
DECAY_OVERFETCH = 3


class CollectionQueryFailed(Exception):
    """Raised when a single collection query fails or times out.

    Never escapes the fan-out; it is captured in that collection's
    CollectionOutcome.
    """

    def __init__(self, collection: str, reason: str):
        super().__init__(f"{collection}: {reason}")
        self.collection = collection
        self.reason = reason


def candidate_limit(limit: int, use_decay: bool) -> int:
    """Per-collection candidate count requested from the store.

    Example:
        >>> candidate_limit(5, use_decay=False)
        8
        >>> candidate_limit(5, use_decay=True)
        15
    """
    factor = DECAY_OVERFETCH if use_decay else PLAIN_OVERFETCH
    return math.ceil(limit * factor)


class FanOutSearcher:
    """Scatter/gather vector search across conversation collections.

    Attributes:
        client: Shared AsyncQdrantClient
        timeout: Per-collection deadline in seconds
    """

    def __init__(self, client: AsyncQdrantClient, config: ReflectionConfig | None = None):
        self.client = client
        self.config = config or get_config()
        self.timeout = self.config.collection_timeout_seconds

    async def search(
        self,
        collections: Sequence[str],
        query_vector: list[float],
        request: SearchRequest,
        decay_config: DecayConfig,
        use_decay: bool,
        request_id: str | None = None,
        now: datetime | None = None,
    ) -> list[CollectionOutcome]:
        """Query every collection concurrently.

        Args:
            collections: Visible collection names
            query_vector: Embedded query
            request: Validated search request (limit, min_score)
            decay_config: Immutable decay settings
            use_decay: Effective decay switch for this request
            request_id: Correlation id for log events
            now: Reference time for decay, defaults to the current UTC time

        Returns:
            One CollectionOutcome per collection, in input order.
        """
        now = now or datetime.now(timezone.utc)
        scorer = DecayScorer(decay_config) if use_decay else None
        tasks = [
            self._search_one(name, query_vector, request, scorer, request_id, now)
            for name in collections
        ]
        return list(await asyncio.gather(*tasks))

    async def _search_one(
        self,
        collection: str,
        query_vector: list[float],
        request: SearchRequest,
        scorer: DecayScorer | None,
        request_id: str | None,
        now: datetime,
    ) -> CollectionOutcome:
        mode = SearchMode.DECAY if scorer else SearchMode.PLAIN
        start = time.perf_counter()
        try:
            candidates = await asyncio.wait_for(
                self._query(collection, query_vector, request, scorer, request_id, now),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            error = CollectionQueryFailed(collection, f"timed out after {self.timeout}s")
            return self._failed(collection, mode, error, "timeout", start, request_id)
        except Exception as e:
            error = CollectionQueryFailed(collection, f"{type(e).__name__}: {e}")
            return self._failed(collection, mode, error, "failed", start, request_id)

        collection_queries_total.labels(mode=mode.value, status="success").inc()
        logger.debug(
            "collection_query_completed",
            extra={
                "request_id": request_id,
                "collection": collection,
                "mode": mode.value,
                "results": len(candidates),
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return CollectionOutcome(collection=collection, candidates=candidates)

    async def _query(
        self,
        collection: str,
        query_vector: list[float],
        request: SearchRequest,
        scorer: DecayScorer | None,
        request_id: str | None,
        now: datetime,
    ) -> list[Candidate]:
        limit = candidate_limit(request.limit, use_decay=scorer is not None)

        if scorer is None:
            response = await self.client.query_points(
                collection_name=collection,
                query=query_vector,
                limit=limit,
                score_threshold=request.min_score,
                with_payload=True,
            )
            return [
                Candidate(
                    id=point.id,
                    score=point.score,
                    payload=point.payload or {},
                    collection=collection,
                )
                for point in response.points
            ]

        # Threshold is applied after decay, never by the store
        response = await self.client.query_points(
            collection_name=collection,
            query=query_vector,
            limit=limit,
            with_payload=True,
        )
        adjusted = [
            Candidate(
                id=point.id,
                score=scorer.adjust(
                    point.score, (point.payload or {}).get("timestamp"), now
                ),
                payload=point.payload or {},
                collection=collection,
            )
            for point in response.points
        ]
        kept = [c for c in adjusted if c.score >= request.min_score]
        kept.sort(key=lambda c: c.score, reverse=True)

        logger.debug(
            "decay_applied",
            extra={
                "request_id": request_id,
                "collection": collection,
                "candidates": len(adjusted),
                "kept": len(kept),
                "min_score": request.min_score,
            },
        )
        return kept[: request.limit]

    def _failed(
        self,
        collection: str,
        mode: SearchMode,
        error: CollectionQueryFailed,
        status: str,
        start: float,
        request_id: str | None,
    ) -> CollectionOutcome:
        collection_queries_total.labels(mode=mode.value, status=status).inc()
        failure_events_total.labels(
            component="collection",
            error_code="COLLECTION_TIMEOUT" if status == "timeout" else "COLLECTION_QUERY_FAILED",
        ).inc()
        logger.warning(
            "collection_query_failed",
            extra={
                "request_id": request_id,
                "collection": collection,
                "mode": mode.value,
                "error": error.reason,
                "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            },
        )
        return CollectionOutcome(collection=collection, error=str(error))
