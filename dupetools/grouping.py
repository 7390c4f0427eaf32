"""
Duplicate grouping by connected components.

Every passing pair is an edge and each connected component with two or more
members becomes a DuplicateGroup. The oracle is not transitive, so a group may
hold A and C even though only A~B and B~C passed. That looser grouping is kept
on purpose: it surfaces more candidates for review.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, Iterable, List, Sequence

from .blocking import candidate_pairs
from .matching import are_duplicates
from .models import CatalogEntry, DuplicateGroup, InvalidEntryError, MatchConfig

logger = logging.getLogger(__name__)


class UnionFind:
    """Disjoint sets over ``0..size-1`` with union by size and path halving."""

    def __init__(self, size: int):
        self.parent = list(range(size))
        self.size = [1] * size

    def find(self, item: int) -> int:
        parent = self.parent
        while parent[item] != item:
            parent[item] = parent[parent[item]]
            item = parent[item]
        return item

    def union(self, a: int, b: int) -> int:
        """Merge the sets holding ``a`` and ``b`` and return the surviving root."""
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return ra
        if self.size[ra] < self.size[rb]:
            ra, rb = rb, ra
        self.parent[rb] = ra
        self.size[ra] += self.size[rb]
        return ra

    def components(self) -> List[List[int]]:
        """Members of every set with more than one element, in first-member order."""
        by_root: Dict[int, List[int]] = {}
        for item in range(len(self.parent)):
            by_root.setdefault(self.find(item), []).append(item)
        return [members for members in by_root.values() if len(members) > 1]


def validate_entries(entries: Iterable[CatalogEntry]) -> List[CatalogEntry]:
    """Check identity keys before a run; raises InvalidEntryError with the offending count."""
    entries = list(entries)
    missing = sum(1 for e in entries if e is None or e.key is None or e.key == "")
    if missing:
        raise InvalidEntryError(f"{missing} catalog entries have no identity key", count=missing)
    repeated = {key: n for key, n in Counter(e.key for e in entries).items() if n > 1}
    if repeated:
        count = sum(repeated.values())
        sample = ", ".join(sorted(str(key) for key in repeated)[:3])
        raise InvalidEntryError(
            f"{count} catalog entries share an identity key (e.g. {sample})", count=count
        )
    return entries


def build_groups(entries: Sequence[CatalogEntry], components: Iterable[Sequence[int]]) -> List[DuplicateGroup]:
    return [
        DuplicateGroup(group_id=n, entries=tuple(entries[i] for i in sorted(members)))
        for n, members in enumerate(components, start=1)
    ]


def group_duplicates(
    entries: Iterable[CatalogEntry], config: MatchConfig, exhaustive: bool = False
) -> List[DuplicateGroup]:
    """Group a catalog into duplicate sets, blocking first unless ``exhaustive``."""
    entries = validate_entries(entries)
    uf = UnionFind(len(entries))
    compared = 0
    for i, j in candidate_pairs(entries, config, exhaustive=exhaustive):
        compared += 1
        if are_duplicates(entries[i], entries[j], config):
            uf.union(i, j)
    groups = build_groups(entries, uf.components())
    logger.debug(
        f"Compared {compared} candidate pairs across {len(entries)} entries, found {len(groups)} groups"
    )
    return groups


def find_fuzzy_duplicates(
    entries: Iterable[CatalogEntry], config: MatchConfig, exhaustive: bool = False
) -> List[CatalogEntry]:
    """Every entry that belongs to some duplicate group."""
    return [entry for group in group_duplicates(entries, config, exhaustive) for entry in group]
