"""Hybrid track matching engine.

Resolves a raw setlist title (as typed by a taper) to one of an artist's
canonical tracks.  Strategies run in order and the first hit wins:

    1. exact     -- normalized title equals a canonical name     (100)
    2. alias     -- normalized title equals a configured alias   (95)
    3. phonetic  -- metaphone code equals a canonical code, or
                    contains one of at least ``phonetic_min_length``
                    characters                                    (80)
    4. fuzzy     -- rapidfuzz similarity >= ``fuzzy_threshold``
                    against up to ``fuzzy_candidate_limit`` names
                    whose metaphone is within two edits  (score, max 94)

Indexes are built per artist from its YAML definition and dropped with
``clear_indexes`` once an import finishes, so long batch jobs do not keep
every artist's index alive.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import jellyfish
import structlog

from src.config.artist_config import ArtistConfigLoader
from src.models.artist import ArtistDefinition
from src.models.matching import MatchResult, MatchType
from src.utils.logging import get_logger
from src.utils.text_normalizer import metaphone_key, normalize_track_name, similarity_percent

EXACT_CONFIDENCE = 100.0
ALIAS_CONFIDENCE = 95.0
PHONETIC_CONFIDENCE = 80.0
# Fuzzy scores stay strictly below the alias tier.
FUZZY_CONFIDENCE_CAP = 94.0
# Max metaphone edit distance for a name to be scored by the fuzzy tier.
_PHONETIC_DISTANCE = 2


@dataclass
class _ArtistIndex:
    """Lookup tables for one artist, built once per run."""

    exact: dict[str, str] = field(default_factory=dict)
    alias: dict[str, str] = field(default_factory=dict)
    # (metaphone code, canonical key) in definition order
    phonetic: list[tuple[str, str]] = field(default_factory=list)
    # (normalized canonical name, metaphone code, canonical key) in definition order
    names: list[tuple[str, str, str]] = field(default_factory=list)
    fuzzy_threshold: float = 75.0
    phonetic_min_length: int = 4


class TrackMatcher:
    """Match raw track titles against per-artist canonical tracks.

    Parameters
    ----------
    artist_loader:
        Source of artist definitions.
    fuzzy_threshold:
        Minimum similarity percentage for the fuzzy tier.
    phonetic_min_length:
        Minimum canonical metaphone length for a substring match.
    fuzzy_candidate_limit:
        How many phonetically close names the fuzzy tier scores.
    """

    def __init__(
        self,
        artist_loader: ArtistConfigLoader,
        fuzzy_threshold: float = 75.0,
        phonetic_min_length: int = 4,
        fuzzy_candidate_limit: int = 5,
    ) -> None:
        self._loader = artist_loader
        self._fuzzy_threshold = fuzzy_threshold
        self._phonetic_min_length = phonetic_min_length
        self._fuzzy_candidate_limit = max(1, fuzzy_candidate_limit)
        self._indexes: dict[str, _ArtistIndex] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Index lifecycle
    # ------------------------------------------------------------------

    def build_indexes(self, artist_key: str) -> None:
        """Build (or rebuild) the lookup tables for *artist_key*."""
        definition = self._loader.load(artist_key)
        self._indexes[artist_key] = self._index_for(definition)
        self._logger.info(
            "match_indexes_built",
            artist_key=artist_key,
            tracks=len(definition.tracks),
        )

    def _index_for(self, definition: ArtistDefinition) -> _ArtistIndex:
        overrides = definition.matching
        index = _ArtistIndex(
            fuzzy_threshold=(
                overrides.fuzzy_threshold
                if overrides.fuzzy_threshold is not None
                else self._fuzzy_threshold
            ),
            phonetic_min_length=(
                overrides.phonetic_min_length
                if overrides.phonetic_min_length is not None
                else self._phonetic_min_length
            ),
        )
        seen_codes: set[str] = set()
        for track in definition.tracks:
            normalized = normalize_track_name(track.name)
            if not normalized:
                continue
            index.exact.setdefault(normalized, track.key)
            for alias in track.aliases:
                alias_norm = normalize_track_name(alias)
                if alias_norm:
                    index.alias.setdefault(alias_norm, track.key)
            code = metaphone_key(normalized)
            index.names.append((normalized, code, track.key))
            # First track wins on a shared code.
            if code and code not in seen_codes:
                seen_codes.add(code)
                index.phonetic.append((code, track.key))
        return index

    def clear_indexes(self, artist_key: str | None = None) -> None:
        """Drop one artist's indexes, or every index when *artist_key* is None."""
        if artist_key is None:
            self._indexes.clear()
        else:
            self._indexes.pop(artist_key, None)

    def has_index(self, artist_key: str) -> bool:
        return artist_key in self._indexes

    def _require_index(self, artist_key: str) -> _ArtistIndex:
        if artist_key not in self._indexes:
            self.build_indexes(artist_key)
        return self._indexes[artist_key]

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def match(self, track_name: str, artist_key: str) -> MatchResult | None:
        """Return the first tier's match for *track_name*, or ``None``."""
        normalized = normalize_track_name(track_name)
        if not normalized:
            return None
        index = self._require_index(artist_key)

        key = index.exact.get(normalized)
        if key is not None:
            return MatchResult(canonical_key=key, match_type=MatchType.EXACT, confidence=EXACT_CONFIDENCE)

        key = index.alias.get(normalized)
        if key is not None:
            return MatchResult(canonical_key=key, match_type=MatchType.ALIAS, confidence=ALIAS_CONFIDENCE)

        key = self._phonetic_match(normalized, index)
        if key is not None:
            return MatchResult(
                canonical_key=key,
                match_type=MatchType.PHONETIC,
                confidence=PHONETIC_CONFIDENCE,
            )

        best = self._best_fuzzy(normalized, index)
        if best is not None and best[1] >= index.fuzzy_threshold:
            return MatchResult(
                canonical_key=best[0],
                match_type=MatchType.FUZZY,
                confidence=round(min(best[1], FUZZY_CONFIDENCE_CAP), 2),
            )
        return None

    def suggest(self, track_name: str, artist_key: str) -> tuple[str, float] | None:
        """Best fuzzy candidate regardless of threshold, for review records."""
        normalized = normalize_track_name(track_name)
        if not normalized:
            return None
        return self._best_unbounded(normalized, self._require_index(artist_key))

    def _phonetic_match(self, normalized: str, index: _ArtistIndex) -> str | None:
        code = metaphone_key(normalized)
        if not code:
            return None
        for canonical_code, key in index.phonetic:
            if code == canonical_code:
                return key
        for canonical_code, key in index.phonetic:
            if len(canonical_code) >= index.phonetic_min_length and canonical_code in code:
                return key
        return None

    def _fuzzy_candidates(
        self,
        code: str,
        index: _ArtistIndex,
    ) -> list[tuple[int, str, str]]:
        """Names whose metaphone is within ``_PHONETIC_DISTANCE`` edits of *code*."""
        candidates: list[tuple[int, str, str]] = []
        for position, (name, canonical_code, key) in enumerate(index.names):
            if not code or not canonical_code:
                continue
            if jellyfish.levenshtein_distance(code, canonical_code) <= _PHONETIC_DISTANCE:
                candidates.append((position, name, key))
                if len(candidates) >= self._fuzzy_candidate_limit:
                    break
        return candidates

    def _best_fuzzy(self, normalized: str, index: _ArtistIndex) -> tuple[str, float] | None:
        candidates = self._fuzzy_candidates(metaphone_key(normalized), index)
        return self._highest_scoring(normalized, candidates)

    def _best_unbounded(self, normalized: str, index: _ArtistIndex) -> tuple[str, float] | None:
        candidates = [(position, name, key) for position, (name, _, key) in enumerate(index.names)]
        return self._highest_scoring(normalized, candidates)

    @staticmethod
    def _highest_scoring(
        normalized: str,
        candidates: list[tuple[int, str, str]],
    ) -> tuple[str, float] | None:
        if not candidates:
            return None
        scored = [
            (similarity_percent(normalized, name), position, key)
            for position, name, key in candidates
        ]
        # Highest score first; earlier definitions win ties.
        scored.sort(key=lambda item: (-item[0], item[1]))
        score, _, key = scored[0]
        return key, score
