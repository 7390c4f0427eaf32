"""Tests for MatchConfig and the shared value types."""

from __future__ import annotations

import dataclasses

import pytest

from dupetools.models import CatalogEntry, DuplicateGroup, MatchConfig, ScanStats, ScanStatus


def test_presets() -> None:
    strict = MatchConfig.strict()
    assert strict.minimum_fields_to_match == 4
    assert strict.duration_tolerance_seconds == 0
    lenient = MatchConfig.lenient()
    assert lenient.minimum_fields_to_match == 2
    assert lenient.title_threshold == 70
    assert MatchConfig.balanced() == MatchConfig()


def test_config_is_immutable() -> None:
    config = MatchConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.title_threshold = 10
    assert config.replace(title_threshold=10).title_threshold == 10
    assert config.title_threshold == 85


@pytest.mark.parametrize(
    "changes",
    [
        {"title_threshold": -1},
        {"album_threshold": 101},
        {"minimum_fields_to_match": 0},
        {"minimum_fields_to_match": 5},
        {"duration_tolerance_seconds": -5},
        {"duration_tolerance_fraction": 1.5},
    ],
)
def test_out_of_range_values_rejected(changes) -> None:
    with pytest.raises(ValueError):
        MatchConfig(**changes)


def test_dict_round_trip_and_summary() -> None:
    config = MatchConfig.lenient()
    assert MatchConfig.from_dict(config.to_dict()) == config
    summary = config.summary()
    assert "Profile: lenient" in summary
    assert "At least 2 of 4 fields must match" in summary


def test_entry_coerces_missing_text() -> None:
    entry = CatalogEntry("/m/Band/01 Song.flac", title=None, artist=None, album=None)
    assert (entry.title, entry.artist, entry.album) == ("", "", "")
    assert entry.display_name() == "Unknown Artist - 01 Song"


def test_group_and_stats() -> None:
    group = DuplicateGroup(1, (CatalogEntry("/a"), CatalogEntry("/b")))
    assert len(group) == 2
    assert group.keys == {"/a", "/b"}
    assert ScanStats().fraction_done == 1.0
    assert ScanStats(pairs_total=4, pairs_compared=1).fraction_done == 0.25
    assert not ScanStatus.GROUP.terminal
    assert ScanStatus.CANCELLED.terminal
