"""
Pick which file of a duplicate group to keep.

Rules, first decisive one wins:
1. highest bitrate
2. most complete metadata (title, artist, album present)
3. file already sitting in a folder named after its artist and album
Otherwise the group is left for manual review.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import CatalogEntry, DuplicateGroup, KeeperDecision

logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def metadata_score(entry: CatalogEntry) -> int:
    return sum(1 for value in (entry.title, entry.artist, entry.album) if value and value.strip())


def _folder_token(value: str) -> str:
    return _NON_ALNUM_RE.sub("", (value or "").lower())


def in_organized_folder(entry: CatalogEntry) -> bool:
    artist, album = _folder_token(entry.artist), _folder_token(entry.album)
    if not artist or not album:
        return False
    folder = _folder_token(str(entry.path.parent))
    return artist in folder and album in folder


def select_keeper(entries: Sequence[CatalogEntry]) -> Optional[KeeperDecision]:
    """Choose the entry to keep, or None when nothing tells them apart."""
    if not entries:
        return None
    if len(entries) == 1:
        return KeeperDecision(entries[0], "Only file in group")

    best_rate = max(e.bitrate or 0 for e in entries)
    by_rate = [e for e in entries if (e.bitrate or 0) == best_rate]
    if len(by_rate) == 1:
        return KeeperDecision(by_rate[0], f"Highest bitrate ({best_rate} kbps)")

    best_meta = max(metadata_score(e) for e in by_rate)
    by_meta = [e for e in by_rate if metadata_score(e) == best_meta]
    if len(by_meta) == 1:
        return KeeperDecision(by_meta[0], f"Most complete metadata ({best_meta}/3 fields)")

    for entry in by_meta:
        if in_organized_folder(entry):
            return KeeperDecision(entry, "Already in an artist/album folder")

    logger.debug(f"No keeper rule separates {len(entries)} files; manual review needed")
    return None


def plan_resolution(groups: Iterable[DuplicateGroup]) -> List[Tuple[DuplicateGroup, Optional[KeeperDecision]]]:
    return [(group, select_keeper(group.entries)) for group in groups]
