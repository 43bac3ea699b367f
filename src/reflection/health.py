"""Health checks and search mode selection.

Health checks never raise; they return a status dict the caller can use to
decide how a search will be answered.

Search Modes:
    - semantic: Qdrant and an embedding provider are healthy
    - lexical: Qdrant healthy, no usable embedding provider
    - unavailable: Qdrant unreachable
"""

import asyncio
import logging

from qdrant_client import AsyncQdrantClient

from .embeddings import EmbeddingProvider
from .qdrant_client import check_qdrant_health

__all__ = ["HEALTH_CHECK_TIMEOUT", "check_services", "get_search_mode"]

HEALTH_CHECK_TIMEOUT = 2.0

logger = logging.getLogger("reflection.health")


async def _bounded(check, name: str) -> bool:
    try:
        return bool(await asyncio.wait_for(check, timeout=HEALTH_CHECK_TIMEOUT))
    except Exception as e:
        logger.warning(
            f"{name}_health_check_failed",
            extra={"error": str(e), "error_type": type(e).__name__},
        )
        return False


async def check_services(
    client: AsyncQdrantClient, provider: EmbeddingProvider | None
) -> dict[str, bool]:
    """Check Qdrant and the embedding provider concurrently.

    Each check is bounded by HEALTH_CHECK_TIMEOUT. A missing provider counts
    as unhealthy embedding, which is a valid state (lexical search).

    Returns:
        dict with keys ``qdrant``, ``embedding`` and ``all_healthy``.
    """
    if provider is None:
        qdrant_ok = await _bounded(check_qdrant_health(client), "qdrant")
        embedding_ok = False
    else:
        qdrant_ok, embedding_ok = await asyncio.gather(
            _bounded(check_qdrant_health(client), "qdrant"),
            _bounded(provider.health_check(), "embedding"),
        )

    logger.info(
        "service_health",
        extra={
            "qdrant": qdrant_ok,
            "embedding": embedding_ok,
            "embedding_provider": provider.name if provider else None,
            "all_healthy": qdrant_ok and embedding_ok,
        },
    )
    return {
        "qdrant": qdrant_ok,
        "embedding": embedding_ok,
        "all_healthy": qdrant_ok and embedding_ok,
    }


def get_search_mode(health: dict[str, bool]) -> str:
    """Map a health dict to the mode searches will run in.

    Example:
        >>> get_search_mode({"qdrant": True, "embedding": False, "all_healthy": False})
        'lexical'
    """
    if not health["qdrant"]:
        return "unavailable"
    if not health["embedding"]:
        return "lexical"
    return "semantic"
