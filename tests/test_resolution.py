"""Tests for keeper selection."""

from __future__ import annotations

from dupetools.models import CatalogEntry, DuplicateGroup
from dupetools.resolution import in_organized_folder, metadata_score, plan_resolution, select_keeper


def test_highest_bitrate_wins() -> None:
    low = CatalogEntry("/dl/song.mp3", "Song", "Band", "LP", bitrate=320)
    high = CatalogEntry("/dl/song.flac", "Song", "Band", "LP", bitrate=1011)
    decision = select_keeper([low, high])
    assert decision.keeper is high
    assert decision.reason == "Highest bitrate (1011 kbps)"


def test_metadata_breaks_bitrate_tie() -> None:
    sparse = CatalogEntry("/dl/a.flac", "Song", "", "", bitrate=900)
    full = CatalogEntry("/dl/b.flac", "Song", "Band", "LP", bitrate=900)
    decision = select_keeper([sparse, full])
    assert decision.keeper is full
    assert "3/3" in decision.reason


def test_organized_folder_breaks_remaining_tie() -> None:
    stray = CatalogEntry("/downloads/track.flac", "Song", "AC/DC", "Back in Black")
    filed = CatalogEntry("/music/ACDC/Back In Black/01 Song.flac", "Song", "AC/DC", "Back in Black")
    assert in_organized_folder(filed)
    assert not in_organized_folder(stray)
    decision = select_keeper([stray, filed])
    assert decision.keeper is filed


def test_undecidable_group_needs_review() -> None:
    a = CatalogEntry("/x/1.flac", "Song", "Band", "LP")
    b = CatalogEntry("/y/2.flac", "Song", "Band", "LP")
    assert select_keeper([a, b]) is None
    assert select_keeper([]) is None


def test_metadata_score() -> None:
    assert metadata_score(CatalogEntry("/a", " ", "x", "")) == 1


def test_plan_resolution() -> None:
    group = DuplicateGroup(
        1,
        (CatalogEntry("/a.flac", bitrate=100), CatalogEntry("/b.flac", bitrate=200)),
    )
    [(planned, decision)] = plan_resolution([group])
    assert planned is group
    assert decision.keeper.key == "/b.flac"
