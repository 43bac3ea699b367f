"""Configuration management with pydantic-settings for the Reflection engine.

Settings are loaded once per process and are immutable afterwards:
- Automatic .env file loading with proper precedence
- Validation with clear error messages (bounds on every threshold)
- SecretStr for provider API keys
- Frozen config (safe to share between concurrent requests)

References:
- Pydantic Settings: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

import logging
from functools import lru_cache

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import DecayConfig, IsolationMode

logger = logging.getLogger(__name__)

__all__ = [
    "COLLECTION_PREFIX",
    "MODEL_SUFFIXES",
    "ReflectionConfig",
    "get_config",
    "reset_config",
]

# Conversation collections are named conv_<project>_<model-suffix>
COLLECTION_PREFIX = "conv_"

# Embedding model family -> collection name suffix
MODEL_SUFFIXES = {
    "local": "_local",
    "voyage": "_voyage",
    "openai": "_openai",
}


class ReflectionConfig(BaseSettings):
    """Configuration for the Reflection search engine.

    Loads from (in order of precedence):
    1. Environment variables (highest priority)
    2. .env file in the working directory
    3. Default values (lowest priority)

    Attributes:
        qdrant_host: Qdrant server hostname
        qdrant_port: Qdrant server port
        qdrant_api_key: Optional API key for Qdrant authentication
        collection_prefix: Prefix identifying conversation collections
        collection_suffix: Override for the model suffix of queryable collections
        isolation_mode: isolated, shared or hybrid project visibility
        allow_cross_project: Default for requests that do not set crossProject
        enable_memory_decay: Process-wide default for time-decay scoring
        decay_weight: Weight of the recency boost added to raw similarity
        decay_scale_days: Time constant of the exponential decay, in days
        default_min_score: Minimum score when a request does not set one
        default_limit: Result count when a request does not set one
        lexical_scan_limit: Points scanned per collection in degraded mode
        collection_timeout_seconds: Deadline for each per-collection query
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,  # Use defaults instead of empty strings
        case_sensitive=False,  # DECAY_WEIGHT = decay_weight
        validate_default=True,
        frozen=True,  # Immutable after creation
        extra="ignore",
        populate_by_name=True,
    )

    # Vector store
    qdrant_host: str = Field(default="localhost", description="Qdrant server hostname")

    qdrant_port: int = Field(
        default=6333,
        ge=1,
        le=65535,
        description="Qdrant server port",
    )

    qdrant_api_key: str | None = Field(
        default=None, description="Optional API key for Qdrant authentication"
    )

    qdrant_use_https: bool = Field(
        default=False,
        description="Use HTTPS for Qdrant connections",
    )

    qdrant_timeout: int = Field(
        default=30,
        ge=1,
        le=120,
        description="Qdrant client timeout in seconds",
    )

    # Collection naming
    collection_prefix: str = Field(
        default=COLLECTION_PREFIX,
        min_length=1,
        description="Prefix shared by all conversation collections",
    )

    collection_suffix: str | None = Field(
        default=None,
        description="Restrict semantic search to collections with this suffix. "
        "Defaults to the active embedding provider's suffix.",
    )

    # Project isolation
    isolation_mode: IsolationMode = Field(
        default=IsolationMode.HYBRID,
        description="Project visibility: isolated, shared or hybrid",
    )

    allow_cross_project: bool = Field(
        default=False,
        description="Search other projects when a request leaves crossProject unset (hybrid mode)",
    )

    project_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("project_id", "reflection_project_id"),
        description="Current project label. Detected from the working directory when unset",
    )

    # Time decay
    enable_memory_decay: bool = Field(
        default=False,
        validation_alias=AliasChoices("enable_memory_decay", "decay_enabled"),
        description="Apply time decay unless a request overrides useDecay",
    )

    decay_weight: float = Field(
        default=0.3,
        ge=0.0,
        description="Recency boost weight: adjusted = raw + weight * exp(-age/scale)",
    )

    decay_scale_days: float = Field(
        default=90.0,
        gt=0.0,
        description="Decay time constant in days (must be > 0)",
    )

    # Request defaults
    default_min_score: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Minimum score for results when the request does not set minScore",
    )

    default_limit: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Number of results when the request does not set limit",
    )

    # Fan-out
    lexical_scan_limit: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Points scanned per collection by the lexical fallback",
    )

    collection_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="Deadline for a single collection query during fan-out",
    )

    # Embedding providers
    prefer_local_embeddings: bool = Field(
        default=False,
        description="Use the self-hosted embedding service even if API keys are set",
    )

    voyage_key: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("voyage_key", "voyage_api_key"),
        description="Voyage AI API key",
    )

    openai_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="OpenAI API key",
    )

    voyage_model: str = Field(default="voyage-3-large", description="Voyage embedding model")

    openai_model: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )

    embedding_host: str = Field(
        default="localhost", description="Self-hosted embedding service hostname"
    )

    embedding_port: int = Field(
        default=28080,
        ge=1,
        le=65535,
        description="Self-hosted embedding service port",
    )

    local_model: str = Field(
        default="jina-embeddings-v2-base-en",
        description="Model name reported by the self-hosted embedding service",
    )

    embedding_timeout: float = Field(
        default=15.0,
        gt=0.0,
        le=120.0,
        description="Read timeout for embedding requests in seconds",
    )

    embedding_max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries for embedding requests that time out",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Log level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )

    log_format: str = Field(
        default="json",
        pattern="^(json|text)$",
        description="Log format: json (production), text (development)",
    )

    @field_validator("isolation_mode", mode="before")
    @classmethod
    def normalize_isolation_mode(cls, v):
        """Accept ISOLATION_MODE values in any case."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    def get_qdrant_url(self) -> str:
        """Get full Qdrant URL for connections."""
        scheme = "https" if self.qdrant_use_https else "http"
        return f"{scheme}://{self.qdrant_host}:{self.qdrant_port}"

    def get_embedding_url(self) -> str:
        """Get full self-hosted embedding service URL."""
        return f"http://{self.embedding_host}:{self.embedding_port}"

    def decay_config(self) -> DecayConfig:
        """Build the immutable decay settings shared by every request."""
        return DecayConfig(
            enabled=self.enable_memory_decay,
            weight=self.decay_weight,
            scale_days=self.decay_scale_days,
        )


# Module-level singleton with lru_cache for thread-safety
@lru_cache(maxsize=1)
def get_config() -> ReflectionConfig:
    """Get global configuration singleton.

    First call loads from environment + .env file, subsequent calls return
    the cached instance.

    Raises:
        ValidationError: If configuration values are invalid.

    Example:
        >>> config = get_config()
        >>> config.decay_scale_days
        90.0
        >>> get_config() is config
        True
    """
    config = ReflectionConfig()
    logger.debug(
        "config_loaded",
        extra={
            "isolation_mode": config.isolation_mode.value,
            "decay_enabled": config.enable_memory_decay,
            "decay_weight": config.decay_weight,
            "decay_scale_days": config.decay_scale_days,
        },
    )
    return config


def reset_config() -> None:
    """Reset configuration singleton for testing.

    Warning:
        Only use in test code. Production code should not reset config.
    """
    get_config.cache_clear()
