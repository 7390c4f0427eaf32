"""Tests for candidate reduction."""

from __future__ import annotations

import itertools

import pytest

from dupetools.blocking import (
    artist_album_key,
    blocking_key,
    candidate_degrees,
    candidate_pairs,
    duration_bucket,
    first_shared_signal,
    load_catalog,
    text_prefix,
)
from dupetools.models import CandidateQueryError, CatalogEntry, MatchConfig


def test_blocking_key_fields(make_entry, balanced: MatchConfig) -> None:
    entry = make_entry(
        title="Hotel California (Remastered)",
        artist="The Eagles",
        album="Hotel California (Deluxe)",
        duration=391,
    )
    key = blocking_key(entry, balanced)
    assert key.title_prefix == "hotel cali"
    assert key.artist_prefix == "eagles"
    assert key.duration_bucket == 13
    assert key.artist_album == ("eagles", "hotel california")


def test_unknown_album_has_no_artist_album_signal(make_entry, balanced: MatchConfig) -> None:
    key = blocking_key(make_entry(title="x", artist="y", album="Unknown"), balanced)
    assert key.artist_album is None
    assert key.duration_bucket is None


def test_pairs_share_a_signal(make_entry, balanced: MatchConfig) -> None:
    entries = [
        make_entry(title="Alpha Song", artist="One", duration=100),
        make_entry(title="Alpha Song Live", artist="Two", duration=400),
        make_entry(title="Beta", artist="One", duration=700),
        make_entry(title="Gamma", artist="Three", duration=1000),
        make_entry(title="Delta", artist="Four", duration=1020),
        make_entry(title="Omega", artist="Five", album="LP", duration=None),
        make_entry(title="Zeta", artist="Five", album="LP", duration=None),
    ]
    pairs = set(candidate_pairs(entries, balanced))
    # title prefix, artist prefix, adjacent duration bucket, artist prefix
    assert pairs == {(0, 1), (0, 2), (3, 4), (5, 6)}


def test_pairs_are_unique_and_ordered(make_entry, balanced: MatchConfig) -> None:
    # Every entry shares every signal with every other one
    entries = [
        make_entry(title="Same Title Here", artist="Same Artist", album="LP", duration=200 + i)
        for i in range(6)
    ]
    pairs = list(candidate_pairs(entries, balanced))
    assert len(pairs) == len(set(pairs)) == 15
    assert all(i < j for i, j in pairs)


def test_adjacent_duration_buckets(make_entry, balanced: MatchConfig) -> None:
    entries = [
        make_entry(title="a", artist="b", duration=44),  # bucket 1
        make_entry(title="c", artist="d", duration=46),  # bucket 2
        make_entry(title="e", artist="f", duration=106),  # bucket 4
    ]
    assert list(candidate_pairs(entries, balanced)) == [(0, 1)]


def test_exhaustive_yields_every_pair(make_entry, balanced: MatchConfig) -> None:
    entries = [make_entry(title=str(i) * 3, artist=f"artist {i}") for i in range(5)]
    assert list(candidate_pairs(entries, balanced)) == []
    assert list(candidate_pairs(entries, balanced, exhaustive=True)) == list(
        itertools.combinations(range(5), 2)
    )
    assert candidate_degrees(entries, balanced, exhaustive=True) == [4] * 5


def test_first_shared_signal_order(make_entry, balanced: MatchConfig) -> None:
    a = blocking_key(make_entry(title="Song", artist="Band", album="LP", duration=200), balanced)
    b = blocking_key(make_entry(title="Song", artist="Band", album="LP", duration=200), balanced)
    c = blocking_key(make_entry(title="Other", artist="Band", album="LP", duration=900), balanced)
    d = blocking_key(make_entry(title="Else", artist="Nobody", album="", duration=None), balanced)
    assert first_shared_signal(a, b) == 0
    assert first_shared_signal(a, c) == 1
    assert first_shared_signal(a, d) is None


class FakeStore:
    def __init__(self, entries, fail=False):
        self.entries = entries
        self.fail = fail
        self.calls = []

    def all_entries(self):
        self.calls.append("all")
        return list(self.entries)

    def candidate_entries(self, config):
        self.calls.append("candidates")
        self.config = config
        if self.fail:
            raise CandidateQueryError("no such column: title")
        return self.entries[:1]


def test_load_catalog_uses_candidate_query() -> None:
    store = FakeStore([CatalogEntry("/a"), CatalogEntry("/b")])
    assert [e.key for e in load_catalog(store)] == ["/a"]
    assert store.calls == ["candidates"]


def test_load_catalog_falls_back_on_query_failure(caplog: pytest.LogCaptureFixture) -> None:
    store = FakeStore([CatalogEntry("/a"), CatalogEntry("/b")], fail=True)
    with caplog.at_level("WARNING", logger="dupetools.blocking"):
        entries = load_catalog(store)
    assert [e.key for e in entries] == ["/a", "/b"]
    assert store.calls == ["candidates", "all"]
    assert "Candidate query failed" in caplog.text


def test_load_catalog_can_skip_prefilter() -> None:
    store = FakeStore([CatalogEntry("/a")])
    load_catalog(store, use_candidate_query=False)
    assert store.calls == ["all"]


def test_load_catalog_passes_profile_to_store() -> None:
    strict = MatchConfig.strict()
    store = FakeStore([CatalogEntry("/a")])
    load_catalog(store, strict)
    assert store.config is strict
    load_catalog(store)
    assert store.config == MatchConfig()


def test_candidate_degrees_count_pairs_per_entry(make_entry, balanced: MatchConfig) -> None:
    entries = [
        make_entry(title="Alpha Song", artist="One", duration=100),
        make_entry(title="Alpha Song Live", artist="Two", duration=400),
        make_entry(title="Beta", artist="One", duration=700),
        make_entry(title="Lonely", artist="Nobody", duration=2000),
    ]
    # (0, 1) share a title prefix, (0, 2) an artist prefix
    assert candidate_degrees(entries, balanced) == [2, 1, 1, 0]


def test_candidate_degrees_stop_early(make_entry, balanced: MatchConfig) -> None:
    entries = [make_entry(title="Same", artist=f"a{i}") for i in range(150)]
    assert candidate_degrees(entries, balanced, should_stop=lambda: True) is None
    assert candidate_degrees(entries, balanced, should_stop=lambda: False) == [149] * 150


def test_store_helpers_match_blocking_key(make_entry, balanced: MatchConfig) -> None:
    entry = make_entry(title="The Boy (Live)", artist="The X", album="Boy (Deluxe Edition)", duration=44)
    key = blocking_key(entry, balanced)
    assert text_prefix(entry.title, balanced, "title") == key.title_prefix
    assert text_prefix(None, balanced, "artist") == ""
    assert duration_bucket(entry.duration) == key.duration_bucket == 1
    assert duration_bucket(0) is None
    assert artist_album_key("The X", "Boy (Deluxe Edition)", balanced) == key.artist_album == ("x", "boy")
