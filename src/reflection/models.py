"""Data models for reflection search requests and results.

Defines the validated request struct accepted from the tool protocol, the
per-collection candidate and outcome types produced by fan-out, and the
rendered result types handed back to callers.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

__all__ = [
    "Candidate",
    "CollectionOutcome",
    "DecayConfig",
    "InvalidRequest",
    "IsolationMode",
    "ScoredResult",
    "SearchMode",
    "SearchOutcome",
    "SearchRequest",
    "SearchState",
    "payload_text",
]


def payload_text(value: Any) -> str:
    """Text of a payload field as a string.

    Payloads are written by other tools, so ``text`` may be a list of content
    blocks or a number; those are rendered with str(). None becomes "".
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


class InvalidRequest(Exception):
    """Raised when a search request fails validation.

    Raised before any store or embedding access takes place.
    """

    pass


class IsolationMode(str, Enum):
    """Project visibility policy for a search.

    Note: Uses (str, Enum) so values compare equal to the plain strings read
    from ISOLATION_MODE.
    """

    ISOLATED = "isolated"  # Current project only
    SHARED = "shared"  # Every project
    HYBRID = "hybrid"  # Current project, others on crossProject opt-in


class SearchMode(str, Enum):
    """How a request was answered."""

    PLAIN = "plain"  # Raw similarity with store-side threshold
    DECAY = "decay"  # Similarity plus recency boost, threshold after decay
    LEXICAL = "lexical"  # No embedding capability, substring matching


class SearchState(str, Enum):
    """Lifecycle of a single search request."""

    NOT_STARTED = "not_started"
    EMBEDDING = "embedding"
    DEGRADED = "degraded"
    EMBEDDED = "embedded"
    FANNING_OUT = "fanning_out"
    AGGREGATING = "aggregating"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class DecayConfig:
    """Process-wide time decay settings.

    Attributes:
        enabled: Default for requests that do not set useDecay
        weight: Recency boost weight (>= 0)
        scale_days: Exponential time constant in days (> 0)
    """

    enabled: bool = False
    weight: float = 0.3
    scale_days: float = 90.0

    def __post_init__(self):
        if not self.weight >= 0.0 or math.isinf(self.weight):
            raise ValueError(f"decay weight must be a finite value >= 0, got {self.weight}")
        if not self.scale_days > 0.0 or math.isinf(self.scale_days):
            raise ValueError(
                f"decay scale_days must be a finite value > 0, got {self.scale_days}"
            )

    @property
    def scale_ms(self) -> float:
        """Decay time constant in milliseconds."""
        return self.scale_days * 86_400_000


class SearchRequest(BaseModel):
    """Validated reflect_on_past request.

    Accepts both the protocol's camelCase names (crossProject, minScore,
    useDecay) and the snake_case field names.

    Example:
        >>> SearchRequest.from_arguments({"query": "indexing", "minScore": 0.5})
        SearchRequest(query='indexing', limit=5, project=None, ...)
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="forbid",
    )

    query: str = Field(..., min_length=1)

    limit: int = Field(default=5, ge=1)

    project: str | None = None

    cross_project: bool | None = Field(default=None, alias="crossProject")

    min_score: float = Field(
        default=0.7, ge=0.0, le=1.0, allow_inf_nan=False, alias="minScore"
    )

    use_decay: bool | None = Field(default=None, alias="useDecay")

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("query must contain non-whitespace characters")
        return v

    @field_validator("project")
    @classmethod
    def blank_project_is_none(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v

    @classmethod
    def from_arguments(
        cls,
        arguments: dict[str, Any] | None,
        default_limit: int = 5,
        default_min_score: float = 0.7,
    ) -> "SearchRequest":
        """Build a request from raw tool arguments.

        Missing limit/minScore fall back to the given process defaults.

        Raises:
            InvalidRequest: If any field is missing, mistyped or out of range.
        """
        if not isinstance(arguments, dict):
            raise InvalidRequest("arguments must be an object")

        data = dict(arguments)
        if data.get("limit") is None:
            data["limit"] = default_limit
        if data.get("minScore") is None and data.get("min_score") is None:
            data.pop("min_score", None)
            data["minScore"] = default_min_score

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'request'}: {err['msg']}"
                for err in e.errors()
            )
            raise InvalidRequest(f"Invalid request: {problems}") from e


@dataclass(frozen=True)
class Candidate:
    """A point returned by one collection query, before rendering."""

    id: Any
    score: float
    payload: dict
    collection: str


@dataclass
class CollectionOutcome:
    """Result of querying a single collection during fan-out.

    A failed or timed-out query carries the error text and no candidates.
    """

    collection: str
    candidates: list[Candidate] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ScoredResult:
    """One rendered search result.

    Scores are comparable only within a single request's result set.
    """

    id: Any
    score: float
    timestamp: str
    role: str
    excerpt: str
    project_name: str
    conversation_id: str | None
    source_collection: str


@dataclass
class SearchOutcome:
    """Final state of a search request."""

    request_id: str
    query: str
    state: SearchState
    mode: SearchMode | None = None
    results: list[ScoredResult] = field(default_factory=list)
    collections_searched: int = 0
    failed_collections: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.state is SearchState.FAILED
