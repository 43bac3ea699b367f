"""Shared pytest fixtures for Reflection tests.

Fixture Organization:
    - Config fixtures: ReflectionConfig built without .env or process env leakage
    - Store fixtures: In-memory fake of the async Qdrant client
    - Embedding fixtures: Providers that never touch the network
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import httpx
import pytest
from qdrant_client import AsyncQdrantClient
from qdrant_client.http.models import (
    CollectionDescription,
    CollectionsResponse,
    QueryResponse,
    Record,
    ScoredPoint,
)

from reflection.config import ReflectionConfig, reset_config
from reflection.embeddings import EmbeddingProvider

ENV_VARS = (
    "QDRANT_HOST",
    "QDRANT_PORT",
    "ISOLATION_MODE",
    "ALLOW_CROSS_PROJECT",
    "ENABLE_MEMORY_DECAY",
    "DECAY_ENABLED",
    "DECAY_WEIGHT",
    "DECAY_SCALE_DAYS",
    "VOYAGE_KEY",
    "VOYAGE_API_KEY",
    "OPENAI_API_KEY",
    "PREFER_LOCAL_EMBEDDINGS",
    "COLLECTION_SUFFIX",
    "PROJECT_ID",
    "REFLECTION_PROJECT_ID",
    "DEFAULT_MIN_SCORE",
    "DEFAULT_LIMIT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep process environment out of ReflectionConfig and detect_project."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture(autouse=True)
def reset_logging():
    """Let caplog see reflection.* records.

    configure_logging() runs on package import, installs its own handler and
    disables propagation, which hides records from caplog.
    """
    logger = logging.getLogger("reflection")
    handlers = list(logger.handlers)
    level = logger.level
    logger.handlers.clear()
    logger.propagate = True

    yield

    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = False


# =============================================================================
# Config
# =============================================================================


@pytest.fixture
def make_config():
    """Factory for ReflectionConfig that ignores any .env file.

    Example:
        def test_decay(make_config):
            config = make_config(enable_memory_decay=True)
    """

    def _make(**overrides) -> ReflectionConfig:
        overrides.setdefault("project_id", "projA")
        return ReflectionConfig(_env_file=None, **overrides)

    return _make


@pytest.fixture
def config(make_config):
    return make_config()


# =============================================================================
# Fake Qdrant
# =============================================================================


def iso_days_ago(days: float, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return (now - timedelta(days=days)).isoformat()


class FakeStore:
    """In-memory stand-in for the Qdrant collections the engine reads.

    Every point carries the similarity score query_points reports for it,
    so tests control raw scores directly.

    Attributes:
        collections: name -> list of {"id", "score", "payload"}
        failing: Collections whose queries raise
        slow: Collections whose queries hang for 5 seconds
        down: When True, get_collections raises
    """

    def __init__(self):
        self.collections: dict[str, list[dict]] = {}
        self.failing: set[str] = set()
        self.slow: set[str] = set()
        self.down = False
        self.client = AsyncMock(spec=AsyncQdrantClient)
        self.client.get_collections.side_effect = self._get_collections
        self.client.query_points.side_effect = self._query_points
        self.client.scroll.side_effect = self._scroll

    def add(self, collection: str, point_id, score: float = 0.8, **payload) -> None:
        self.collections.setdefault(collection, []).append(
            {"id": point_id, "score": score, "payload": payload}
        )

    def create(self, collection: str) -> None:
        self.collections.setdefault(collection, [])

    async def _get_collections(self):
        if self.down:
            raise ConnectionError("qdrant unreachable")
        return CollectionsResponse(
            collections=[CollectionDescription(name=name) for name in self.collections]
        )

    async def _check(self, collection_name: str) -> None:
        if collection_name in self.failing:
            raise RuntimeError(f"query failed for {collection_name}")
        if collection_name in self.slow:
            await asyncio.sleep(5)

    async def _query_points(
        self, collection_name, query=None, limit=10, score_threshold=None, **kwargs
    ):
        await self._check(collection_name)
        points = [
            p
            for p in self.collections.get(collection_name, [])
            if score_threshold is None or p["score"] >= score_threshold
        ]
        points.sort(key=lambda p: p["score"], reverse=True)
        return QueryResponse(
            points=[
                ScoredPoint(id=p["id"], version=1, score=p["score"], payload=p["payload"])
                for p in points[:limit]
            ]
        )

    async def _scroll(self, collection_name, limit=10, **kwargs):
        await self._check(collection_name)
        points = self.collections.get(collection_name, [])[:limit]
        return (
            [Record(id=p["id"], payload=p["payload"]) for p in points],
            None,
        )


@pytest.fixture
def store():
    return FakeStore()


# =============================================================================
# Embedding providers
# =============================================================================


class FakeEmbeddingProvider(EmbeddingProvider):
    """Returns a constant vector; the fake store ignores vectors anyway."""

    name = "fake"

    def __init__(self, suffix: str = "_voyage"):
        super().__init__("fake-model", suffix, max_retries=0)
        self.calls: list[str] = []

    async def _request(self, text: str) -> list[float]:
        self.calls.append(text)
        return [0.1, 0.2, 0.3]


class BrokenEmbeddingProvider(EmbeddingProvider):
    """Fails every request like an unreachable embedding service."""

    name = "broken"

    def __init__(self, suffix: str = "_voyage"):
        super().__init__("broken-model", suffix, max_retries=0)

    async def _request(self, text: str) -> list[float]:
        raise httpx.ConnectError("connection refused")


@pytest.fixture
def embedding_provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def broken_provider():
    return BrokenEmbeddingProvider()
