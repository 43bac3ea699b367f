"""Qdrant client wrapper for the Reflection engine.

Provides the process-wide async Qdrant client, a health check and the
StoreUnavailable error raised when the vector store cannot be reached.
"""

import logging

from qdrant_client import AsyncQdrantClient

from .config import ReflectionConfig, get_config

__all__ = [
    "StoreUnavailable",
    "check_qdrant_health",
    "get_qdrant_client",
]

logger = logging.getLogger("reflection.store")


class StoreUnavailable(Exception):
    """Raised when Qdrant is not available.

    This exception indicates Qdrant is unreachable or unhealthy.
    The engine falls back to the last known collection listing when it has one.
    """

    pass


def get_qdrant_client(config: ReflectionConfig | None = None) -> AsyncQdrantClient:
    """Get configured async Qdrant client.

    One client is created per engine and reused read-only by every request.

    Args:
        config: Optional ReflectionConfig instance. Uses get_config() if not provided.

    Returns:
        Configured AsyncQdrantClient instance.

    Example:
        >>> client = get_qdrant_client()
        >>> response = await client.get_collections()
        >>> [c.name for c in response.collections]
        ['conv_my-app_voyage']
    """
    config = config or get_config()

    # Timeout prevents indefinite hangs if Qdrant is unresponsive
    return AsyncQdrantClient(
        host=config.qdrant_host,
        port=config.qdrant_port,
        api_key=config.qdrant_api_key,
        https=config.qdrant_use_https,
        timeout=config.qdrant_timeout,
    )


async def check_qdrant_health(client: AsyncQdrantClient) -> bool:
    """Check if Qdrant is healthy.

    Attempts to list collections to verify Qdrant is accessible and responsive.

    Returns:
        True if Qdrant responds successfully, False otherwise.
    """
    try:
        await client.get_collections()
        return True

    except Exception as e:
        logger.warning(
            "qdrant_unhealthy",
            extra={
                "error": str(e),
                "error_type": type(e).__name__,
            },
        )
        return False
