"""
Field comparison and the pairwise duplicate decision.

A pair of catalog entries is a duplicate when enough of the four counted
fields (title, artist, album, duration) pass their thresholds. Fields that
cannot be evaluated because one side has no value are left out of the count
instead of failing. The track number is a separate veto that is checked first.
"""

from __future__ import annotations

from typing import Any, Dict, List

from .models import CatalogEntry, FieldVerdict, MatchConfig
from .normalizer import is_unknown_album, normalize
from .similarity import percent_similarity


def _text_verdict(field: str, left: str, right: str, threshold: float, config: MatchConfig) -> FieldVerdict:
    score = percent_similarity(normalize(left, config, field), normalize(right, config, field))
    return FieldVerdict(field=field, score=score, passed=score >= threshold, threshold=threshold)


def compare_title(e1: CatalogEntry, e2: CatalogEntry, config: MatchConfig) -> FieldVerdict:
    return _text_verdict("title", e1.title, e2.title, config.title_threshold, config)


def compare_artist(e1: CatalogEntry, e2: CatalogEntry, config: MatchConfig) -> FieldVerdict:
    return _text_verdict("artist", e1.artist, e2.artist, config.artist_threshold, config)


def compare_album(e1: CatalogEntry, e2: CatalogEntry, config: MatchConfig) -> FieldVerdict:
    if is_unknown_album(e1.album) or is_unknown_album(e2.album):
        return FieldVerdict(
            field="album",
            score=None,
            passed=False,
            threshold=config.album_threshold,
            excluded=True,
            detail="album unknown",
        )
    return _text_verdict("album", e1.album, e2.album, config.album_threshold, config)


def compare_duration(e1: CatalogEntry, e2: CatalogEntry, config: MatchConfig) -> FieldVerdict:
    d1, d2 = e1.duration, e2.duration
    if not d1 or not d2 or d1 <= 0 or d2 <= 0:
        return FieldVerdict(
            field="duration", score=None, passed=False, excluded=True, detail="duration unknown"
        )
    diff = abs(d1 - d2)
    allowed = max(config.duration_tolerance_seconds, config.duration_tolerance_fraction * max(d1, d2))
    return FieldVerdict(
        field="duration",
        score=None,
        passed=diff <= allowed,
        threshold=allowed,
        detail=f"diff {diff}s, allowed {allowed:.1f}s",
    )


def compare_fields(e1: CatalogEntry, e2: CatalogEntry, config: MatchConfig) -> List[FieldVerdict]:
    """The four counted verdicts, in title/artist/album/duration order."""
    return [
        compare_title(e1, e2, config),
        compare_artist(e1, e2, config),
        compare_album(e1, e2, config),
        compare_duration(e1, e2, config),
    ]


def is_track_vetoed(e1: CatalogEntry, e2: CatalogEntry, config: MatchConfig) -> bool:
    if not config.require_exact_track_number:
        return False
    t1, t2 = e1.track_number, e2.track_number
    return bool(t1) and bool(t2) and t1 != t2


def _count(verdicts: List[FieldVerdict]) -> tuple[int, int]:
    evaluated = [v for v in verdicts if not v.excluded]
    return len(evaluated), sum(1 for v in evaluated if v.passed)


def are_duplicates(e1: CatalogEntry, e2: CatalogEntry, config: MatchConfig) -> bool:
    """Decide whether two entries are the same recording under ``config``.

    When fewer fields can be evaluated than ``minimum_fields_to_match`` the pair
    never qualifies.
    """
    if e1.key == e2.key:
        return False
    if is_track_vetoed(e1, e2, config):
        return False
    _, passed = _count(compare_fields(e1, e2, config))
    return passed >= config.minimum_fields_to_match


def calculate_similarity(e1: CatalogEntry, e2: CatalogEntry, config: MatchConfig) -> float:
    """Mean score of the evaluated fields, 0-100. Duration counts as 100 or 0."""
    scores = []
    for verdict in compare_fields(e1, e2, config):
        if verdict.excluded:
            continue
        if verdict.score is None:
            scores.append(100.0 if verdict.passed else 0.0)
        else:
            scores.append(float(verdict.score))
    if not scores:
        return 0.0
    return sum(scores) / len(scores)


def _format_text_line(verdict: FieldVerdict) -> str:
    label = verdict.field.capitalize()
    if verdict.excluded:
        return f"  {label}: N/A ({verdict.detail})"
    status = "PASS" if verdict.passed else "FAIL"
    return f"  {label}: {verdict.score:.1f}% (threshold: {verdict.threshold:.1f}%) {status}"


def get_similarity_breakdown(e1: CatalogEntry, e2: CatalogEntry, config: MatchConfig) -> str:
    """Human-readable report of every field decision for a pair."""
    verdicts = compare_fields(e1, e2, config)
    title, artist, album, duration = verdicts
    lines = ["Similarity Breakdown:"]
    lines.extend(_format_text_line(v) for v in (title, artist, album))
    if duration.excluded:
        lines.append(f"  Duration: N/A ({duration.detail})")
    else:
        lines.append(f"  Duration: {'MATCH' if duration.passed else 'NO MATCH'} ({duration.detail})")

    vetoed = is_track_vetoed(e1, e2, config)
    if not e1.track_number or not e2.track_number:
        track_line = "N/A (track number unknown)"
    elif e1.track_number == e2.track_number:
        track_line = "MATCH"
    else:
        track_line = "VETO" if vetoed else "NO MATCH (not required)"
    lines.append(f"  Track: {track_line}")

    evaluated, passed = _count(verdicts)
    lines.append(
        f"  Fields: {passed} of {evaluated} evaluated passed "
        f"(minimum {config.minimum_fields_to_match})"
    )
    verdict = are_duplicates(e1, e2, config)
    lines.append(f"Result: {'DUPLICATE' if verdict else 'NOT DUPLICATE'}")
    return "\n".join(lines)


def compare_entries(e1: CatalogEntry, e2: CatalogEntry, config: MatchConfig) -> Dict[str, Any]:
    return {
        "similarity": calculate_similarity(e1, e2, config),
        "are_duplicates": are_duplicates(e1, e2, config),
        "breakdown": get_similarity_breakdown(e1, e2, config),
    }
