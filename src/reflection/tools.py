"""The reflect_on_past tool operation.

Validates raw tool arguments, runs the search and renders the text block
returned to the agent. Transport wiring (MCP server, stdio, ...) lives
outside this package; it only needs REFLECT_ON_PAST_TOOL and reflect_on_past.
"""

import logging
from dataclasses import dataclass
from typing import Any

from .aggregator import render_outcome
from .engine import ReflectionEngine
from .metrics import search_requests_total
from .models import InvalidRequest, SearchRequest

__all__ = ["REFLECT_ON_PAST_TOOL", "ToolResult", "reflect_on_past"]

logger = logging.getLogger("reflection.tools")

REFLECT_ON_PAST_TOOL = {
    "name": "reflect_on_past",
    "description": "Search for relevant past conversations using semantic search "
    "with optional time decay",
    "inputSchema": {
        "type": "object",
        "properties": {
            "query": {
                "type": "string",
                "description": "The search query to find semantically similar conversations",
            },
            "limit": {
                "type": "number",
                "description": "Maximum number of results to return (default: 5)",
                "default": 5,
            },
            "project": {
                "type": "string",
                "description": "Filter by project name (optional)",
            },
            "crossProject": {
                "type": "boolean",
                "description": "Search across all projects (default: false, "
                "respects isolation mode)",
                "default": False,
            },
            "minScore": {
                "type": "number",
                "description": "Minimum similarity score (0-1, default: 0.7)",
                "default": 0.7,
            },
            "useDecay": {
                "type": "boolean",
                "description": "Apply time-based decay to prioritize recent memories "
                "(default: uses environment setting)",
            },
        },
        "required": ["query"],
    },
}


@dataclass(frozen=True)
class ToolResult:
    """Rendered tool response."""

    text: str
    is_error: bool = False


async def reflect_on_past(
    arguments: dict[str, Any] | None, engine: ReflectionEngine
) -> ToolResult:
    """Handle one reflect_on_past call.

    Invalid arguments are rejected before any store or embedding access.
    A successful search with no matches is not an error; a store outage
    with nothing to fall back on is.

    Args:
        arguments: Raw tool arguments (camelCase names as published)
        engine: Shared ReflectionEngine

    Returns:
        ToolResult with the rendered text block.

    Example:
        >>> result = await reflect_on_past({"query": "indexing"}, engine)
        >>> result.text.splitlines()[0]
        'Found 1 relevant conversation(s) for "indexing":'
    """
    try:
        request = SearchRequest.from_arguments(
            arguments,
            default_limit=engine.config.default_limit,
            default_min_score=engine.config.default_min_score,
        )
    except InvalidRequest as e:
        search_requests_total.labels(mode="none", status="invalid").inc()
        logger.warning("invalid_request", extra={"error": str(e)})
        return ToolResult(text=f"Error: {e}", is_error=True)

    outcome = await engine.search(request)
    return ToolResult(text=render_outcome(outcome), is_error=outcome.failed)
