"""Merge per-collection results and render them for the caller.

Merging keeps duplicates across collections (a point id is only unique
within its own collection), sorts by score with a stable sort so ties keep
their input order, and truncates to the request limit.
"""

from collections.abc import Callable, Sequence
from datetime import datetime, timezone

from .decay import parse_timestamp
from .models import Candidate, CollectionOutcome, ScoredResult, SearchOutcome, payload_text

__all__ = [
    "EXCERPT_MAX_CHARS",
    "ResultAggregator",
    "make_excerpt",
    "render_outcome",
    "render_results",
]

EXCERPT_MAX_CHARS = 500
ELLIPSIS = "..."
PROJECT_KEYS = ("project", "project_name", "project_id")
ROLE_KEYS = ("start_role", "role")


def make_excerpt(text) -> str:
    """Cap text at 500 characters, marking truncation with an ellipsis.

    Non-string payload text is rendered with str() first.
    """
    text = payload_text(text)
    if len(text) > EXCERPT_MAX_CHARS:
        return text[:EXCERPT_MAX_CHARS] + ELLIPSIS
    return text


def _first(payload: dict, keys: Sequence[str]) -> str | None:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return str(value)
    return None


class ResultAggregator:
    """Flattens CollectionOutcomes into the final ranked result list.

    Args:
        derive_project: Maps a collection name to a project label, used when
            a payload carries no project field
    """

    def __init__(self, derive_project: Callable[[str], str]):
        self.derive_project = derive_project

    def merge(
        self,
        outcomes: Sequence[CollectionOutcome],
        limit: int,
        now: datetime | None = None,
    ) -> list[ScoredResult]:
        """Merge, sort by score descending (stable) and truncate to limit."""
        now = now or datetime.now(timezone.utc)
        candidates = [c for outcome in outcomes for c in outcome.candidates]
        ordered = sorted(candidates, key=lambda c: c.score, reverse=True)
        return [self.to_scored_result(c, now) for c in ordered[:limit]]

    def to_scored_result(self, candidate: Candidate, now: datetime) -> ScoredResult:
        """Render one candidate, filling missing payload fields."""
        payload = candidate.payload or {}
        timestamp = payload.get("timestamp")
        if timestamp in (None, ""):
            timestamp = now.isoformat()
        conversation_id = payload.get("conversation_id")

        return ScoredResult(
            id=candidate.id,
            score=candidate.score,
            timestamp=str(timestamp),
            role=_first(payload, ROLE_KEYS) or "unknown",
            excerpt=make_excerpt(payload.get("text")),
            project_name=_first(payload, PROJECT_KEYS)
            or self.derive_project(candidate.collection),
            conversation_id=str(conversation_id) if conversation_id is not None else None,
            source_collection=candidate.collection,
        )


def _format_time(timestamp: str) -> str:
    parsed = parse_timestamp(timestamp)
    if parsed is None:
        return timestamp
    try:
        return parsed.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    except OverflowError:
        # Offset pushes the value outside datetime's year range
        return timestamp


def render_results(query: str, results: Sequence[ScoredResult]) -> str:
    """Render results as the human-readable block returned by the tool.

    Example:
        Found 1 relevant conversation(s) for "indexing":

        **Result 1** (Score: 0.812)
        Time: 2025-01-15 10:30:00 UTC
        Project: projA
        Role: user
        Excerpt: discussed database indexing strategy
        ---
    """
    sections = [
        f"**Result {i}** (Score: {result.score:.3f})\n"
        f"Time: {_format_time(result.timestamp)}\n"
        f"Project: {result.project_name or 'unknown'}\n"
        f"Role: {result.role}\n"
        f"Excerpt: {result.excerpt}\n"
        f"---"
        for i, result in enumerate(results, start=1)
    ]
    return (
        f'Found {len(results)} relevant conversation(s) for "{query}":\n\n'
        + "\n\n".join(sections)
    )


def render_outcome(outcome: SearchOutcome) -> str:
    """Render a finished search, distinguishing "no results" from failure."""
    if outcome.failed:
        return f"Error: {outcome.error or 'search failed'}"
    if outcome.results:
        return render_results(outcome.query, outcome.results)
    if outcome.collections_searched == 0:
        return (
            f'No conversations found for "{outcome.query}". '
            "No conversation collections are visible; import conversations first."
        )
    return (
        f'No conversations found for "{outcome.query}" '
        f"across {outcome.collections_searched} collection(s)."
    )
