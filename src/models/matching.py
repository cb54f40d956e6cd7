"""Track matching results and unmatched-track review records."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class MatchType(str, Enum):  # noqa: UP042
    """Which tier of the matching engine produced a result.

    Tiers run in this order and the first hit wins; confidence falls with
    each tier (exact 100, alias 95, phonetic 80, fuzzy <= 94).
    """

    EXACT = "exact"
    ALIAS = "alias"
    PHONETIC = "phonetic"
    FUZZY = "fuzzy"


class MatchResult(BaseModel):
    """Outcome of matching one raw track name. Ephemeral, never persisted."""

    model_config = ConfigDict(frozen=True)

    canonical_key: str
    match_type: MatchType
    confidence: float = Field(ge=0.0, le=100.0)

    @property
    def is_exact(self) -> bool:
        return self.match_type == MatchType.EXACT


class UnmatchedTrack(BaseModel):
    """A raw title that no tier matched, kept for human review."""

    model_config = ConfigDict(frozen=True)

    artist_key: str
    raw_title: str
    suggested_key: str | None = None
    confidence: float = 0.0
    occurrences: int = 1
    first_seen: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))
    last_seen: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))
