"""
String similarity primitives used by the field comparator.

Both metrics come from rapidfuzz; the wrappers pin down the edge cases the
engine relies on (empty strings, equal strings) and the 0-100 rounding.
"""

from __future__ import annotations

import math

from rapidfuzz.distance import Jaro, Levenshtein

# Winkler prefix scale and the longest common prefix that earns a bonus
PREFIX_WEIGHT = 0.1
MAX_PREFIX = 4


def jaro_winkler_similarity(a: str, b: str) -> float:
    """Jaro-Winkler similarity in [0, 1].

    The common-prefix bonus is added whatever the Jaro score, with no 0.7
    boost threshold.
    """
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    jaro = Jaro.similarity(a, b)
    prefix = 0
    for x, y in zip(a[:MAX_PREFIX], b[:MAX_PREFIX]):
        if x != y:
            break
        prefix += 1
    return jaro + PREFIX_WEIGHT * prefix * (1 - jaro)


def levenshtein_distance(a: str, b: str) -> int:
    return Levenshtein.distance(a, b)


def levenshtein_similarity(a: str, b: str) -> float:
    """Edit distance expressed as a 0-100 similarity against the longer string."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 100.0
    return (longest - levenshtein_distance(a, b)) / longest * 100


def percent_similarity(a: str, b: str) -> int:
    """Jaro-Winkler as a whole percentage, rounded half up.

    The pair is ordered first so the score is identical whichever way round
    the two entries are passed.
    """
    if a > b:
        a, b = b, a
    return int(math.floor(jaro_winkler_similarity(a, b) * 100 + 0.5))
