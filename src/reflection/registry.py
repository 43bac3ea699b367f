"""Conversation collection discovery.

Collections are named ``conv_<project>_<model-suffix>``. The registry lists
them fresh from Qdrant on every request and derives the owning project label
from the name.
"""

import logging

from qdrant_client import AsyncQdrantClient

from .config import MODEL_SUFFIXES, ReflectionConfig, get_config
from .metrics import failure_events_total
from .qdrant_client import StoreUnavailable

__all__ = ["CollectionRegistry"]

logger = logging.getLogger("reflection.registry")


class CollectionRegistry:
    """Lists the conversation collections present in the vector store.

    The last successful listing is kept so a request can still be answered
    when Qdrant's collection endpoint is briefly unreachable. It is never used
    while the store responds; every call lists afresh.

    Attributes:
        client: Shared AsyncQdrantClient
        prefix: Collection name prefix (``conv_``)
        last_known: Result of the most recent successful listing, or None
    """

    def __init__(self, client: AsyncQdrantClient, config: ReflectionConfig | None = None):
        self.client = client
        self.config = config or get_config()
        self.prefix = self.config.collection_prefix
        self.last_known: list[str] | None = None

    async def list_collections(self, model_suffix: str | None = None) -> list[str]:
        """List conversation collections, optionally for one model family.

        Args:
            model_suffix: Keep only names ending with this suffix (e.g.
                ``_voyage``). None enumerates every conversation collection.

        Returns:
            Collection names in store order.

        Raises:
            StoreUnavailable: If the store cannot list its collections.
        """
        try:
            response = await self.client.get_collections()
        except Exception as e:
            failure_events_total.labels(
                component="qdrant", error_code="STORE_UNAVAILABLE"
            ).inc()
            logger.error(
                "collection_listing_failed",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            raise StoreUnavailable(f"Failed to list collections: {e}") from e

        names = [c.name for c in response.collections if c.name.startswith(self.prefix)]
        self.last_known = names

        if model_suffix:
            names = [name for name in names if name.endswith(model_suffix)]

        logger.debug(
            "collections_listed",
            extra={"count": len(names), "model_suffix": model_suffix},
        )
        return names

    def cached_collections(self, model_suffix: str | None = None) -> list[str] | None:
        """Return the last successful listing, filtered like list_collections."""
        if self.last_known is None:
            return None
        if model_suffix:
            return [name for name in self.last_known if name.endswith(model_suffix)]
        return list(self.last_known)

    def derive_project(self, collection_name: str) -> str:
        """Derive the project label from a collection name.

        Example:
            >>> registry.derive_project("conv_projA_voyage")
            'projA'
        """
        name = collection_name
        if name.startswith(self.prefix):
            name = name[len(self.prefix):]
        for suffix in MODEL_SUFFIXES.values():
            if name.endswith(suffix):
                name = name[: -len(suffix)]
                break
        return name
