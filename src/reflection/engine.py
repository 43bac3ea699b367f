"""Reflection search engine: one request from query to ranked results.

Per-request lifecycle:

    NOT_STARTED -> EMBEDDING -> (DEGRADED | EMBEDDED) -> FANNING_OUT
                -> AGGREGATING -> DONE

or FAILED when the vector store cannot list collections and no earlier
listing is available. Embedding failure never aborts a request; it switches
the request to lexical matching.

The Qdrant client, the embedding provider and the frozen config are shared
read-only by every request, so one engine serves any number of concurrent
searches.
"""

import logging
import time
import uuid
from datetime import datetime, timezone

from qdrant_client import AsyncQdrantClient

from .aggregator import ResultAggregator
from .config import ReflectionConfig, get_config
from .embeddings import EmbeddingProvider, EmbeddingUnavailable, create_embedding_provider
from .fanout import FanOutSearcher
from .isolation import IsolationPolicy
from .lexical import LexicalFallbackSearcher
from .metrics import (
    fanout_duration_seconds,
    search_duration_seconds,
    search_requests_total,
)
from .models import SearchMode, SearchOutcome, SearchRequest, SearchState
from .project import detect_project
from .qdrant_client import StoreUnavailable, get_qdrant_client
from .registry import CollectionRegistry
from .timing import timed_operation

__all__ = ["ReflectionEngine"]

logger = logging.getLogger("reflection.engine")


class ReflectionEngine:
    """Answers reflect_on_past searches over conversation collections.

    Attributes:
        config: Frozen ReflectionConfig
        client: Shared AsyncQdrantClient
        embedding_provider: Active provider, or None for lexical-only mode
        current_project: Normalized label of the caller's project
        decay_config: Immutable decay settings built once from config

    Example:
        >>> async with ReflectionEngine.from_config() as engine:
        ...     outcome = await engine.search(SearchRequest(query="indexing"))
        >>> outcome.state
        <SearchState.DONE: 'done'>
    """

    def __init__(
        self,
        client: AsyncQdrantClient,
        embedding_provider: EmbeddingProvider | None,
        config: ReflectionConfig | None = None,
        current_project: str | None = None,
    ):
        self.config = config or get_config()
        self.client = client
        self.embedding_provider = embedding_provider
        self.current_project = (
            current_project or self.config.project_id or detect_project()
        )
        self.decay_config = self.config.decay_config()

        self.registry = CollectionRegistry(client, self.config)
        self.policy = IsolationPolicy(
            self.config.isolation_mode,
            self.current_project,
            self.registry.derive_project,
            allow_cross_project=self.config.allow_cross_project,
        )
        self.fanout = FanOutSearcher(client, self.config)
        self.lexical = LexicalFallbackSearcher(client, self.config)
        self.aggregator = ResultAggregator(self.registry.derive_project)

        logger.info(
            "engine_initialized",
            extra={
                "isolation_mode": self.config.isolation_mode.value,
                "current_project": self.current_project,
                "embedding_provider": embedding_provider.name if embedding_provider else None,
                "decay_enabled": self.decay_config.enabled,
                "decay_weight": self.decay_config.weight,
                "decay_scale_days": self.decay_config.scale_days,
            },
        )

    @classmethod
    def from_config(
        cls, config: ReflectionConfig | None = None, current_project: str | None = None
    ) -> "ReflectionEngine":
        """Build an engine with the configured Qdrant client and embedding provider."""
        config = config or get_config()
        return cls(
            get_qdrant_client(config),
            create_embedding_provider(config),
            config=config,
            current_project=current_project,
        )

    def _transition(self, outcome: SearchOutcome, state: SearchState) -> None:
        logger.debug(
            "state_transition",
            extra={
                "request_id": outcome.request_id,
                "from_state": outcome.state.value,
                "to_state": state.value,
            },
        )
        outcome.state = state

    def _model_suffix(self) -> str | None:
        if self.config.collection_suffix:
            return self.config.collection_suffix
        return self.embedding_provider.collection_suffix

    async def _list_collections(
        self, outcome: SearchOutcome, model_suffix: str | None
    ) -> list[str] | None:
        """List collections, falling back to the last known listing.

        Returns None when the store is down and nothing was ever listed.
        """
        try:
            return await self.registry.list_collections(model_suffix)
        except StoreUnavailable as e:
            cached = self.registry.cached_collections(model_suffix)
            logger.warning(
                "store_unavailable",
                extra={
                    "request_id": outcome.request_id,
                    "error": str(e),
                    "fallback": "last_known" if cached is not None else "none",
                    "cached_collections": len(cached) if cached is not None else 0,
                },
            )
            if cached is None:
                outcome.error = f"Vector store unavailable: {e}"
            return cached

    async def search(self, request: SearchRequest) -> SearchOutcome:
        """Run one search request to completion.

        Args:
            request: Validated SearchRequest

        Returns:
            SearchOutcome in state DONE (possibly with no results) or FAILED.
        """
        start = time.perf_counter()
        now = datetime.now(timezone.utc)
        outcome = SearchOutcome(
            request_id=uuid.uuid4().hex[:12],
            query=request.query,
            state=SearchState.NOT_STARTED,
        )
        use_decay = (
            request.use_decay if request.use_decay is not None else self.decay_config.enabled
        )
        log_extra = {"request_id": outcome.request_id}

        logger.info(
            "reflection_request_started",
            extra={
                **log_extra,
                "limit": request.limit,
                "min_score": request.min_score,
                "project": request.project,
                "cross_project": request.cross_project,
                "use_decay": use_decay,
            },
        )

        # Embed, or degrade to lexical matching
        self._transition(outcome, SearchState.EMBEDDING)
        query_vector = None
        if self.embedding_provider is None:
            logger.info(
                "embedding_unavailable", extra={**log_extra, "reason": "no_provider"}
            )
        else:
            try:
                with timed_operation("embed_query", logger, extra=log_extra):
                    query_vector = await self.embedding_provider.embed(request.query)
            except EmbeddingUnavailable as e:
                logger.warning(
                    "embedding_unavailable", extra={**log_extra, "reason": str(e)}
                )

        if query_vector is None:
            self._transition(outcome, SearchState.DEGRADED)
            outcome.mode = SearchMode.LEXICAL
            model_suffix = None
        else:
            self._transition(outcome, SearchState.EMBEDDED)
            outcome.mode = SearchMode.DECAY if use_decay else SearchMode.PLAIN
            model_suffix = self._model_suffix()

        all_collections = await self._list_collections(outcome, model_suffix)
        if all_collections is None:
            self._transition(outcome, SearchState.FAILED)
            return self._finish(outcome, start)

        visible = self.policy.visible_collections(all_collections, request)
        outcome.collections_searched = len(visible)

        self._transition(outcome, SearchState.FANNING_OUT)
        with timed_operation(
            "fanout",
            logger,
            extra={**log_extra, "collections": len(visible), "mode": outcome.mode.value},
            histogram=fanout_duration_seconds,
        ):
            if query_vector is None:
                outcomes = await self.lexical.search(
                    visible, request.query, request_id=outcome.request_id
                )
            else:
                outcomes = await self.fanout.search(
                    visible,
                    query_vector,
                    request,
                    self.decay_config,
                    use_decay,
                    request_id=outcome.request_id,
                    now=now,
                )
        outcome.failed_collections = [o.collection for o in outcomes if not o.ok]

        self._transition(outcome, SearchState.AGGREGATING)
        outcome.results = self.aggregator.merge(outcomes, request.limit, now=now)
        logger.debug(
            "aggregation_completed",
            extra={
                **log_extra,
                "candidates": sum(len(o.candidates) for o in outcomes),
                "results": len(outcome.results),
                "failed_collections": len(outcome.failed_collections),
            },
        )

        self._transition(outcome, SearchState.DONE)
        return self._finish(outcome, start)

    def _finish(self, outcome: SearchOutcome, start: float) -> SearchOutcome:
        duration = time.perf_counter() - start
        search_duration_seconds.observe(duration)

        if outcome.failed:
            status = "failed"
        elif outcome.results:
            status = "success"
        else:
            status = "empty"
        search_requests_total.labels(
            mode=outcome.mode.value if outcome.mode else "none", status=status
        ).inc()

        log = logger.error if outcome.failed else logger.info
        log(
            "reflection_request_completed",
            extra={
                "request_id": outcome.request_id,
                "state": outcome.state.value,
                "mode": outcome.mode.value if outcome.mode else None,
                "collections_searched": outcome.collections_searched,
                "failed_collections": outcome.failed_collections,
                "results": len(outcome.results),
                "error": outcome.error,
                "duration_ms": round(duration * 1000, 2),
            },
        )
        return outcome

    async def aclose(self) -> None:
        """Close the embedding provider and the Qdrant client."""
        if self.embedding_provider is not None:
            await self.embedding_provider.aclose()
        await self.client.close()

    async def __aenter__(self) -> "ReflectionEngine":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
