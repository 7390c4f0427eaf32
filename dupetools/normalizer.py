"""
Text normalization applied to metadata before fuzzy comparison.

The steps run in a fixed order and each one is switched by a MatchConfig flag,
except the final whitespace collapse which always runs.
"""

from __future__ import annotations

import re

from .models import MatchConfig

PUNCTUATION_RE = re.compile(r"[^\w\s]|_")
ARTIST_PREFIX_RE = re.compile(r"^(the|a|an)\s+", re.IGNORECASE)
FEATURING_PAREN_RE = re.compile(
    r"\s*[\(\[]\s*(feat\.?|ft\.?|featuring)\s[^\)\]]*[\)\]]", re.IGNORECASE
)
FEATURING_TAIL_RE = re.compile(r"\s+(feat\.?|ft\.?|featuring)(\s.*)?$", re.IGNORECASE)
EDITION_RE = re.compile(
    r"\s+[\(\[]?\s*(deluxe|remastered|extended|edition|version|live)\s*[\)\]]?\s*$",
    re.IGNORECASE,
)
WHITESPACE_RE = re.compile(r"\s+")

UNKNOWN_ALBUMS = {"", "unknown", "unknown album"}


def strip_featuring(text: str) -> str:
    text = FEATURING_PAREN_RE.sub("", text)
    return FEATURING_TAIL_RE.sub("", text)


def strip_album_editions(text: str) -> str:
    # "Greatest Hits (Deluxe) Remastered" needs more than one pass
    while True:
        stripped = EDITION_RE.sub("", text)
        if stripped == text:
            return text
        text = stripped


def normalize(text: str, config: MatchConfig, field: str = "title") -> str:
    """Normalize one metadata value.

    ``field`` selects the field-specific rules: articles are only dropped from
    artists, featuring credits from titles and artists, and edition markers
    from albums.
    """
    if text is None:
        raise TypeError("normalize() expects a string; substitute '' for missing metadata")
    result = text
    if config.ignore_case:
        result = result.lower()
    if config.ignore_punctuation:
        result = PUNCTUATION_RE.sub(" ", result)
    if field == "artist" and config.ignore_artist_prefixes:
        result = ARTIST_PREFIX_RE.sub("", result.lstrip())
    if field in ("title", "artist") and config.ignore_featuring:
        result = strip_featuring(result)
    if field == "album" and config.ignore_album_editions:
        result = strip_album_editions(result)
    return WHITESPACE_RE.sub(" ", result).strip()


def is_unknown_album(album: str) -> bool:
    return (album or "").strip().lower() in UNKNOWN_ALBUMS
