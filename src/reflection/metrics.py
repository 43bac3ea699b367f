"""
Prometheus metrics definitions for the Reflection engine.

Counters and histograms for search requests, per-collection fan-out
queries, embedding calls and failure events.

Naming conventions: snake_case, reflection_ prefix.
"""

from prometheus_client import Counter, Histogram, Info

from .__version__ import __version__

# ==============================================================================
# COUNTERS - Monotonically increasing values
# ==============================================================================

search_requests_total = Counter(
    "reflection_requests_total",
    "Total reflect_on_past requests",
    ["mode", "status"],
    # mode: plain, decay, lexical, none
    # status: success, empty, failed, invalid
)

collection_queries_total = Counter(
    "reflection_collection_queries_total",
    "Per-collection queries issued during fan-out",
    ["mode", "status"],
    # status: success, failed, timeout
)

embedding_requests_total = Counter(
    "reflection_embedding_requests_total",
    "Total query embedding requests",
    ["provider", "status"],
    # status: success, timeout, failed
)

failure_events_total = Counter(
    "reflection_failure_events_total",
    "Total failure events for alerting",
    ["component", "error_code"],
    # component: qdrant, embedding, collection
    # error_code: STORE_UNAVAILABLE, COLLECTION_QUERY_FAILED, COLLECTION_TIMEOUT,
    #             EMBEDDING_UNAVAILABLE
)

# ==============================================================================
# HISTOGRAMS - Distributions of observed values
# ==============================================================================

search_duration_seconds = Histogram(
    "reflection_search_duration_seconds",
    "End-to-end reflect_on_past latency in seconds",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

embedding_duration_seconds = Histogram(
    "reflection_embedding_duration_seconds",
    "Query embedding time in seconds",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

fanout_duration_seconds = Histogram(
    "reflection_fanout_duration_seconds",
    "Time for all per-collection queries to settle, in seconds",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0],
)

# ==============================================================================
# INFO - Static metadata about the system
# ==============================================================================

system_info = Info("reflection_system", "Reflection engine build information")

system_info.info({"version": __version__})
