"""Reflection - semantic search over past conversations.

Provides the reflect_on_past search through:
- Configuration management with environment overrides
- Query embedding providers (self-hosted, Voyage AI, OpenAI)
- Multi-collection fan-out over Qdrant with optional time decay
- Project isolation and lexical fallback when no embeddings are available

Python Version: 3.10+ required
"""

# Configure logging before other imports
from .logging_config import StructuredFormatter, configure_logging

configure_logging()

from .__version__ import __version__
from .aggregator import ResultAggregator, render_outcome, render_results
from .config import ReflectionConfig, get_config, reset_config
from .decay import DecayScorer, compute_decay_factor, parse_timestamp
from .embeddings import (
    EmbeddingProvider,
    EmbeddingUnavailable,
    LocalEmbeddingProvider,
    OpenAIEmbeddingProvider,
    VoyageEmbeddingProvider,
    create_embedding_provider,
)
from .engine import ReflectionEngine
from .fanout import CollectionQueryFailed, FanOutSearcher
from .health import check_services, get_search_mode
from .isolation import IsolationPolicy
from .lexical import LexicalFallbackSearcher
from .models import (
    Candidate,
    CollectionOutcome,
    DecayConfig,
    InvalidRequest,
    IsolationMode,
    ScoredResult,
    SearchMode,
    SearchOutcome,
    SearchRequest,
    SearchState,
)
from .project import detect_project, normalize_project_name, project_key
from .qdrant_client import StoreUnavailable, check_qdrant_health, get_qdrant_client
from .registry import CollectionRegistry
from .timing import timed_operation
from .tools import REFLECT_ON_PAST_TOOL, ToolResult, reflect_on_past

__all__ = [
    "REFLECT_ON_PAST_TOOL",
    "Candidate",
    "CollectionOutcome",
    "CollectionQueryFailed",
    "CollectionRegistry",
    "DecayConfig",
    "DecayScorer",
    "EmbeddingProvider",
    "EmbeddingUnavailable",
    "FanOutSearcher",
    "InvalidRequest",
    "IsolationMode",
    "IsolationPolicy",
    "LexicalFallbackSearcher",
    "LocalEmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "ReflectionConfig",
    "ReflectionEngine",
    "ResultAggregator",
    "ScoredResult",
    "SearchMode",
    "SearchOutcome",
    "SearchRequest",
    "SearchState",
    "StoreUnavailable",
    "StructuredFormatter",
    "ToolResult",
    "VoyageEmbeddingProvider",
    "__version__",
    "check_qdrant_health",
    "check_services",
    "compute_decay_factor",
    "configure_logging",
    "create_embedding_provider",
    "detect_project",
    "get_config",
    "get_qdrant_client",
    "get_search_mode",
    "normalize_project_name",
    "parse_timestamp",
    "project_key",
    "reflect_on_past",
    "render_outcome",
    "render_results",
    "reset_config",
    "timed_operation",
]
