"""Text normalization utilities for track titles and catalog keys.

This module handles three distinct normalization concerns:

1. **Track title normalization** -- Strips accents, folds the many Unicode
   dash variants tapers paste into setlists down to an ASCII hyphen, turns
   segue arrows into ``>``, collapses whitespace and lowercases, so
   "Eyes Of The World" and "eyes  of the world" compare equal.

2. **Phonetic keys and similarity** -- Metaphone codes via jellyfish and
   an LCS-based similarity percentage via rapidfuzz, both used by the
   track matching engine's phonetic and fuzzy tiers.

3. **Catalog slugs** -- ``url_key`` and safe filename helpers used when
   building catalog item fields and cache/lock/job file names.
"""

from __future__ import annotations

import re
import unicodedata

import jellyfish
from rapidfuzz import fuzz

# Em dash, en dash, minus sign, hyphen, non-breaking hyphen, figure dash,
# horizontal bar.
_DASH_TRANSLATION = str.maketrans(
    {
        "—": "-",
        "–": "-",
        "−": "-",
        "‐": "-",
        "‑": "-",
        "‒": "-",
        "―": "-",
        "→": ">",
    }
)

_WHITESPACE_RE = re.compile(r"\s+")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_UNSAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9_-]")

URL_KEY_MAX_LENGTH = 64


def strip_accents(text: str) -> str:
    """Remove combining diacritical marks after NFD decomposition."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def normalize_track_name(name: str) -> str:
    """Normalize a raw or canonical track title for index lookups.

    Args:
        name: Raw track title, e.g. ``"Café  Blues — Reprise"``.

    Returns:
        Normalized title, e.g. ``"cafe blues - reprise"``.  Empty input
        (or input that is only whitespace) returns ``""``.
    """
    if not name:
        return ""
    normalized = strip_accents(name).translate(_DASH_TRANSLATION)
    normalized = _WHITESPACE_RE.sub(" ", normalized).strip()
    return normalized.lower()


def metaphone_key(text: str) -> str:
    """Return the metaphone code for *text* (already normalized or not).

    jellyfish works word by word and keeps spaces; the code is compacted
    so multi-word titles compare as one key.
    """
    if not text:
        return ""
    return jellyfish.metaphone(text).replace(" ", "").upper()


def similarity_percent(left: str, right: str) -> float:
    """Character similarity as a 0-100 percentage.

    ``rapidfuzz.fuzz.ratio`` is the normalized Indel similarity, i.e.
    ``2 * LCS / (len(a) + len(b))`` -- the same shape as the classic
    longest-common-substring ``similar_text`` percentage.
    """
    if not left or not right:
        return 0.0
    return float(fuzz.ratio(left, right))


def make_url_key(value: str) -> str:
    """Lowercase slug with non-alphanumerics collapsed to ``-`` (max 64 chars)."""
    slug = _NON_ALNUM_RE.sub("-", strip_accents(value).lower()).strip("-")
    return slug[:URL_KEY_MAX_LENGTH].rstrip("-")


def safe_filename(value: str) -> str:
    """Replace every character outside ``[A-Za-z0-9_-]`` with ``_``."""
    return _UNSAFE_FILENAME_RE.sub("_", value)
