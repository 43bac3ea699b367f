"""Exponential time decay scoring for conversation search.

Recent conversations get a recency boost on top of their raw similarity:

Formula:
    decay_factor = exp(-age_ms / (scale_days * 86_400_000))
    adjusted_score = raw_score + weight * decay_factor

The boost is additive, so decay can raise a recent item above an older one
but never pushes an old item below its raw similarity. Adjusted scores are
not bounded to [0, 1].

Decay is applied client-side after retrieval, because the threshold must be
checked against the adjusted score rather than the raw one.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone

from .models import DecayConfig

__all__ = ["DecayScorer", "compute_decay_factor", "parse_timestamp"]

MS_PER_DAY = 86_400_000


def parse_timestamp(value) -> datetime | None:
    """Parse a payload timestamp into an aware UTC datetime.

    Accepts ISO-8601 strings with ``Z`` or an explicit offset, plus datetime
    objects. Naive values are treated as UTC.

    Returns:
        The parsed datetime, or None when the value is absent or unparseable.

    Example:
        >>> parse_timestamp("2025-01-15T10:30:00Z")
        datetime.datetime(2025, 1, 15, 10, 30, tzinfo=datetime.timezone.utc)
        >>> parse_timestamp("yesterday") is None
        True
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def compute_decay_factor(age_ms: float, scale_days: float) -> float:
    """Compute exp(-age/scale), a value in (0, 1].

    Negative ages (clock skew, future timestamps) are clamped to 0.

    Example:
        >>> compute_decay_factor(0, 90)
        1.0
        >>> round(compute_decay_factor(90 * 86_400_000, 90), 3)
        0.368
    """
    age_ms = max(age_ms, 0.0)
    return math.exp(-age_ms / (scale_days * MS_PER_DAY))


class DecayScorer:
    """Applies the configured recency boost to raw similarity scores.

    Stateless apart from the immutable DecayConfig, so one instance is safely
    shared by all concurrent requests.
    """

    def __init__(self, decay_config: DecayConfig):
        self.config = decay_config

    def age_ms(self, timestamp, now: datetime) -> float:
        """Age of a timestamp in milliseconds, 0 when absent or unparseable."""
        parsed = parse_timestamp(timestamp)
        if parsed is None:
            return 0.0
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return max((now - parsed).total_seconds() * 1000.0, 0.0)

    def adjust(self, raw_score: float, timestamp, now: datetime) -> float:
        """Return ``raw_score + weight * decay_factor``.

        Args:
            raw_score: Similarity score from the store
            timestamp: Payload timestamp (ISO string, datetime or None)
            now: Reference time for the age calculation

        Example:
            >>> scorer = DecayScorer(DecayConfig(enabled=True))
            >>> now = datetime.now(timezone.utc)
            >>> round(scorer.adjust(0.6, now, now), 3)
            0.9
        """
        factor = compute_decay_factor(self.age_ms(timestamp, now), self.config.scale_days)
        return raw_score + self.config.weight * factor
