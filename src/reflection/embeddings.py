"""Query embedding providers for the Reflection engine.

Three interchangeable providers turn a query into a fixed-length vector:
the self-hosted embedding service, Voyage AI and OpenAI. Which one is active
is a deployment detail; absence of all three is a valid runtime state in
which the engine falls back to lexical matching.

All providers use a long-lived httpx.AsyncClient with granular timeouts and
retry timeouts with tenacity (exponential backoff plus jitter).
"""

import logging
import time
from abc import ABC, abstractmethod

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from .config import MODEL_SUFFIXES, ReflectionConfig, get_config
from .metrics import (
    embedding_duration_seconds,
    embedding_requests_total,
    failure_events_total,
)

__all__ = [
    "EmbeddingProvider",
    "EmbeddingUnavailable",
    "LocalEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "VoyageEmbeddingProvider",
    "create_embedding_provider",
]

logger = logging.getLogger("reflection.embed")

VOYAGE_BASE_URL = "https://api.voyageai.com/v1"
OPENAI_BASE_URL = "https://api.openai.com/v1"


class EmbeddingUnavailable(Exception):
    """Raised when a query embedding cannot be produced.

    Wraps httpx errors, timeouts and malformed responses. The engine answers
    the request with the lexical fallback instead.
    """

    pass


class EmbeddingProvider(ABC):
    """Abstract base class for query embedding providers.

    Attributes:
        model_name: Model identifier, for logging
        collection_suffix: Suffix of the collections this model's vectors live in
    """

    name: str = "base"

    def __init__(
        self,
        model_name: str,
        collection_suffix: str,
        timeout: float = 15.0,
        max_retries: int = 2,
        headers: dict | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.model_name = model_name
        self.collection_suffix = collection_suffix
        self._max_retries = max_retries
        self._backoff_base = 0.5
        self._backoff_cap = 8.0

        timeout_config = httpx.Timeout(
            connect=3.0,
            read=timeout,
            write=5.0,
            pool=3.0,
        )
        self.client = httpx.AsyncClient(
            timeout=timeout_config, headers=headers, transport=transport
        )

    @abstractmethod
    async def _request(self, text: str) -> list[float]:
        """Send one embedding request and return the vector.

        Raises:
            httpx.HTTPError: On transport or HTTP status errors
            KeyError, IndexError, TypeError: On malformed responses
        """
        pass

    async def embed(self, text: str) -> list[float]:
        """Embed query text, retrying only on timeouts.

        Raises:
            EmbeddingUnavailable: If all retries are exhausted or any
                non-timeout error occurs.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(1 + self._max_retries),
            wait=wait_exponential(multiplier=self._backoff_base, max=self._backoff_cap)
            + wait_random(0, self._backoff_base),
            retry=retry_if_exception_type(httpx.TimeoutException),
            before_sleep=self._log_retry,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    vector = await self._attempt(text)
        except httpx.TimeoutException as e:
            failure_events_total.labels(
                component="embedding", error_code="EMBEDDING_TIMEOUT"
            ).inc()
            logger.error(
                "embedding_timeout",
                extra={
                    "provider": self.name,
                    "model": self.model_name,
                    "error": str(e),
                },
            )
            raise EmbeddingUnavailable(f"{self.name} embedding timed out") from e
        except (
            httpx.HTTPError, KeyError, IndexError, TypeError, ValueError, OverflowError
        ) as e:
            failure_events_total.labels(
                component="embedding", error_code="EMBEDDING_UNAVAILABLE"
            ).inc()
            logger.error(
                "embedding_error",
                extra={
                    "provider": self.name,
                    "model": self.model_name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise EmbeddingUnavailable(f"{self.name} embedding failed: {e}") from e

        return vector

    async def _attempt(self, text: str) -> list[float]:
        start = time.perf_counter()
        try:
            vector = [float(x) for x in await self._request(text)]
        except httpx.TimeoutException:
            self._record("timeout", start)
            raise
        except Exception:
            self._record("failed", start)
            raise

        if not vector:
            self._record("failed", start)
            raise EmbeddingUnavailable(f"{self.name} returned an empty embedding")

        self._record("success", start)
        return vector

    def _log_retry(self, retry_state: RetryCallState) -> None:
        """Called by tenacity before sleeping between attempts."""
        logger.warning(
            "embedding_retry",
            extra={
                "provider": self.name,
                "attempt": retry_state.attempt_number,
                "max_retries": self._max_retries,
                "sleep_seconds": round(retry_state.next_action.sleep, 2),
            },
        )

    def _record(self, status: str, start: float) -> None:
        embedding_requests_total.labels(provider=self.name, status=status).inc()
        embedding_duration_seconds.observe(time.perf_counter() - start)

    async def health_check(self) -> bool:
        """Return True if the provider can accept requests."""
        return True

    async def aclose(self) -> None:
        """Close the underlying httpx client."""
        await self.client.aclose()


class LocalEmbeddingProvider(EmbeddingProvider):
    """Self-hosted embedding service (``POST /embed/dense``)."""

    name = "local"

    def __init__(self, base_url: str, model_name: str, **kwargs):
        super().__init__(model_name, MODEL_SUFFIXES["local"], **kwargs)
        self.base_url = base_url

    async def _request(self, text: str) -> list[float]:
        response = await self.client.post(
            f"{self.base_url}/embed/dense",
            json={"texts": [text], "model": "en"},
        )
        response.raise_for_status()
        return response.json()["embeddings"][0]

    async def health_check(self) -> bool:
        try:
            response = await self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except Exception as e:
            logger.warning(
                "embedding_health_check_failed",
                extra={"base_url": self.base_url, "error": str(e)},
            )
            return False


class VoyageEmbeddingProvider(EmbeddingProvider):
    """Voyage AI hosted embeddings."""

    name = "voyage"

    def __init__(self, api_key: str, model_name: str, **kwargs):
        super().__init__(
            model_name,
            MODEL_SUFFIXES["voyage"],
            headers={"Authorization": f"Bearer {api_key}"},
            **kwargs,
        )

    async def _request(self, text: str) -> list[float]:
        response = await self.client.post(
            f"{VOYAGE_BASE_URL}/embeddings",
            json={"input": [text], "model": self.model_name, "input_type": "query"},
        )
        response.raise_for_status()
        return response.json()["data"][0]["embedding"]


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """OpenAI hosted embeddings."""

    name = "openai"

    def __init__(self, api_key: str, model_name: str, **kwargs):
        super().__init__(
            model_name,
            MODEL_SUFFIXES["openai"],
            headers={"Authorization": f"Bearer {api_key}"},
            **kwargs,
        )

    async def _request(self, text: str) -> list[float]:
        response = await self.client.post(
            f"{OPENAI_BASE_URL}/embeddings",
            json={"input": [text], "model": self.model_name},
        )
        response.raise_for_status()
        return response.json()["data"][0]["embedding"]


def create_embedding_provider(
    config: ReflectionConfig | None = None,
) -> EmbeddingProvider | None:
    """Select the embedding provider for this deployment.

    Selection order:
        1. PREFER_LOCAL_EMBEDDINGS=true -> self-hosted service
        2. VOYAGE_KEY set -> Voyage AI
        3. OPENAI_API_KEY set -> OpenAI
        4. Nothing configured -> None (lexical fallback)

    Returns:
        An EmbeddingProvider, or None when no provider is configured.
    """
    config = config or get_config()
    kwargs = {
        "timeout": config.embedding_timeout,
        "max_retries": config.embedding_max_retries,
    }

    if config.prefer_local_embeddings:
        provider: EmbeddingProvider | None = LocalEmbeddingProvider(
            config.get_embedding_url(), config.local_model, **kwargs
        )
    elif config.voyage_key.get_secret_value():
        provider = VoyageEmbeddingProvider(
            config.voyage_key.get_secret_value(), config.voyage_model, **kwargs
        )
    elif config.openai_api_key.get_secret_value():
        provider = OpenAIEmbeddingProvider(
            config.openai_api_key.get_secret_value(), config.openai_model, **kwargs
        )
    else:
        provider = None

    logger.info(
        "embedding_provider_selected",
        extra={
            "provider": provider.name if provider else "none",
            "model": provider.model_name if provider else None,
        },
    )
    return provider
