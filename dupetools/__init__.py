"""
dupetools: near-duplicate detection for personal music catalogs.

This package provides:
- A SQLite catalog of local audio files, indexed from their tags.
- A fuzzy duplicate engine that compares title, artist, album and duration
  under a configurable matching profile.
- Blocking to keep large catalogs near-linear, and a cancellable parallel
  scanner that streams duplicate groups as they are found.
- Keeper selection to decide which copy of a duplicate to retain.
"""
