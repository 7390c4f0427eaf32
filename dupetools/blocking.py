"""
Candidate reduction ahead of pairwise scoring.

Each entry gets a coarse BlockingKey. Two entries are only compared when they
share at least one signal:

1. the same title prefix
2. the same artist prefix
3. the same or an adjacent duration bucket
4. the same normalized (artist, album) pair

Duplicates that differ in all four signals are not found here. Callers that
need exhaustive recall pass ``exhaustive=True`` and pay for every pair.
"""

from __future__ import annotations

import itertools
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple

from .models import CandidateQueryError, CatalogEntry, MatchConfig
from .normalizer import is_unknown_album, normalize

logger = logging.getLogger(__name__)

PREFIX_LENGTH = 10
DURATION_BUCKET_SECONDS = 30


@dataclass(frozen=True)
class BlockingKey:
    title_prefix: str
    artist_prefix: str
    duration_bucket: Optional[int]
    artist_album: Optional[Tuple[str, str]]


def text_prefix(text: Optional[str], config: MatchConfig, field: str) -> str:
    """First PREFIX_LENGTH characters of the normalized ``text``."""
    return normalize(text or "", config, field)[:PREFIX_LENGTH]


def duration_bucket(seconds: Optional[int]) -> Optional[int]:
    if seconds and seconds > 0:
        return int(round(seconds / DURATION_BUCKET_SECONDS))
    return None


def artist_album_key(
    artist: Optional[str], album: Optional[str], config: MatchConfig
) -> Optional[Tuple[str, str]]:
    artist = normalize(artist or "", config, "artist")
    if not artist or is_unknown_album(album or ""):
        return None
    album = normalize(album or "", config, "album")
    return (artist, album) if album else None


def blocking_key(entry: CatalogEntry, config: MatchConfig) -> BlockingKey:
    return BlockingKey(
        title_prefix=text_prefix(entry.title, config, "title"),
        artist_prefix=text_prefix(entry.artist, config, "artist"),
        duration_bucket=duration_bucket(entry.duration),
        artist_album=artist_album_key(entry.artist, entry.album, config),
    )


def first_shared_signal(a: BlockingKey, b: BlockingKey) -> Optional[int]:
    """Index of the first signal two keys share, or None when they share nothing."""
    if a.title_prefix and a.title_prefix == b.title_prefix:
        return 0
    if a.artist_prefix and a.artist_prefix == b.artist_prefix:
        return 1
    if (
        a.duration_bucket is not None
        and b.duration_bucket is not None
        and abs(a.duration_bucket - b.duration_bucket) <= 1
    ):
        return 2
    if a.artist_album is not None and a.artist_album == b.artist_album:
        return 3
    return None


def _blocks(keys: Sequence[BlockingKey], attr: str) -> Dict[object, List[int]]:
    blocks: Dict[object, List[int]] = defaultdict(list)
    for index, key in enumerate(keys):
        value = getattr(key, attr)
        if value:
            blocks[value].append(index)
    return blocks


def _pairs_within(blocks: Dict[object, List[int]]) -> Iterator[Tuple[int, int]]:
    for members in blocks.values():
        yield from itertools.combinations(members, 2)


def _duration_pairs(keys: Sequence[BlockingKey]) -> Iterator[Tuple[int, int]]:
    buckets: Dict[int, List[int]] = defaultdict(list)
    for index, key in enumerate(keys):
        if key.duration_bucket is not None:
            buckets[key.duration_bucket].append(index)
    for bucket, members in buckets.items():
        yield from itertools.combinations(members, 2)
        for i in members:
            for j in buckets.get(bucket + 1, ()):
                yield (i, j) if i < j else (j, i)


def candidate_pairs(
    entries: Sequence[CatalogEntry], config: MatchConfig, exhaustive: bool = False
) -> Iterator[Tuple[int, int]]:
    """Lazily yield index pairs ``(i, j)`` with ``i < j`` worth scoring.

    Every pair is yielded at most once: a pair found through one signal is
    skipped when an earlier signal already produced it.
    """
    if exhaustive:
        yield from itertools.combinations(range(len(entries)), 2)
        return

    keys = [blocking_key(e, config) for e in entries]
    sources = (
        (0, _pairs_within(_blocks(keys, "title_prefix"))),
        (1, _pairs_within(_blocks(keys, "artist_prefix"))),
        (2, _duration_pairs(keys)),
        (3, _pairs_within(_blocks(keys, "artist_album"))),
    )
    for signal, pairs in sources:
        for i, j in pairs:
            if first_shared_signal(keys[i], keys[j]) == signal:
                yield i, j


def candidate_degrees(
    entries: Sequence[CatalogEntry],
    config: MatchConfig,
    exhaustive: bool = False,
    should_stop: Optional[Callable[[], bool]] = None,
) -> Optional[List[int]]:
    """How many candidate pairs each entry takes part in.

    Half the sum is the number of pairs a run will score. Returns None when
    ``should_stop`` turns true while the pairs are being counted.
    """
    n = len(entries)
    if exhaustive:
        return [n - 1] * n
    degrees = [0] * n
    for count, (i, j) in enumerate(candidate_pairs(entries, config), start=1):
        degrees[i] += 1
        degrees[j] += 1
        if should_stop is not None and count % 10000 == 0 and should_stop():
            return None
    return degrees


def load_catalog(
    store, config: Optional[MatchConfig] = None, use_candidate_query: bool = True
) -> List[CatalogEntry]:
    """Fetch entries from a store, preferring its candidate pre-filter.

    The store blocks with the same signals as ``candidate_pairs`` under
    ``config``. A failing pre-filter is logged and the full catalog is
    returned instead.
    """
    if not use_candidate_query:
        return store.all_entries()
    try:
        entries = store.candidate_entries(config or MatchConfig())
    except CandidateQueryError as e:
        logger.warning(f"Candidate query failed, scanning the full catalog instead: {e}")
        return store.all_entries()
    logger.info(f"Candidate query narrowed the catalog to {len(entries)} entries")
    return entries
