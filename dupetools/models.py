"""
Value types shared by the duplicate engine.

Everything here is created fresh per comparison run and thrown away afterwards.
MatchConfig is frozen so a running scan can never observe a half-updated profile.
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

FIELD_NAMES = ("title", "artist", "album", "duration")


class InvalidEntryError(ValueError):
    """Raised when catalog entries handed to the engine cannot be compared."""

    def __init__(self, message: str, count: int = 0):
        super().__init__(message)
        self.count = count


class CandidateQueryError(RuntimeError):
    """Raised by a store when its candidate query cannot be executed."""


@dataclass(frozen=True)
class CatalogEntry:
    """Read-only projection of one catalog row."""

    key: Union[str, int]
    title: str = ""
    artist: str = ""
    album: str = ""
    track_number: Optional[int] = None
    duration: Optional[int] = None
    bitrate: Optional[int] = None

    def __post_init__(self):
        # Missing metadata is compared as an empty string
        for name in ("title", "artist", "album"):
            if getattr(self, name) is None:
                object.__setattr__(self, name, "")

    @property
    def path(self) -> Path:
        return Path(str(self.key))

    def display_name(self) -> str:
        artist = self.artist or "Unknown Artist"
        title = self.title or self.path.stem
        return f"{artist} - {title}"


@dataclass(frozen=True)
class MatchConfig:
    """Thresholds and normalization switches for one matching profile."""

    name: str = "balanced"
    title_threshold: float = 85.0
    artist_threshold: float = 90.0
    album_threshold: float = 85.0
    duration_tolerance_seconds: float = 10.0
    duration_tolerance_fraction: float = 0.05
    minimum_fields_to_match: int = 3
    require_exact_track_number: bool = False
    ignore_case: bool = True
    ignore_punctuation: bool = True
    ignore_artist_prefixes: bool = True
    ignore_featuring: bool = True
    ignore_album_editions: bool = True

    def __post_init__(self):
        for name in ("title_threshold", "artist_threshold", "album_threshold"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be between 0 and 100, got {value}")
        if self.duration_tolerance_seconds < 0:
            raise ValueError("duration_tolerance_seconds must not be negative")
        if not 0 <= self.duration_tolerance_fraction <= 1:
            raise ValueError(
                "duration_tolerance_fraction must be between 0 and 1, "
                f"got {self.duration_tolerance_fraction}"
            )
        if not 1 <= self.minimum_fields_to_match <= 4:
            raise ValueError(
                f"minimum_fields_to_match must be between 1 and 4, got {self.minimum_fields_to_match}"
            )

    @classmethod
    def balanced(cls) -> "MatchConfig":
        return cls()

    @classmethod
    def strict(cls) -> "MatchConfig":
        return cls(
            name="strict",
            title_threshold=100,
            artist_threshold=100,
            album_threshold=100,
            duration_tolerance_seconds=0,
            duration_tolerance_fraction=0,
            minimum_fields_to_match=4,
            require_exact_track_number=True,
        )

    @classmethod
    def lenient(cls) -> "MatchConfig":
        return cls(
            name="lenient",
            title_threshold=70,
            artist_threshold=75,
            album_threshold=70,
            duration_tolerance_seconds=30,
            duration_tolerance_fraction=0.10,
            minimum_fields_to_match=2,
        )

    def replace(self, **changes: Any) -> "MatchConfig":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base: Optional["MatchConfig"] = None) -> "MatchConfig":
        """Build a config from a flat mapping, starting from ``base`` (balanced by default)."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown match settings: {', '.join(unknown)}")
        return replace(base or cls(), **data)

    def summary(self) -> str:
        lines = [
            f"Profile: {self.name}",
            f"Title >= {self.title_threshold:g}%, Artist >= {self.artist_threshold:g}%, "
            f"Album >= {self.album_threshold:g}%",
            f"Duration within {self.duration_tolerance_seconds:g}s "
            f"or {self.duration_tolerance_fraction * 100:g}% of the longer track",
            f"At least {self.minimum_fields_to_match} of 4 fields must match",
        ]
        if self.require_exact_track_number:
            lines.append("Track numbers must match when both are present")
        switches = [
            label
            for flag, label in (
                (self.ignore_case, "case"),
                (self.ignore_punctuation, "punctuation"),
                (self.ignore_artist_prefixes, "artist articles"),
                (self.ignore_featuring, "featured artists"),
                (self.ignore_album_editions, "album editions"),
            )
            if flag
        ]
        if switches:
            lines.append("Ignoring: " + ", ".join(switches))
        return "\n".join(lines)


@dataclass(frozen=True)
class FieldVerdict:
    """Outcome of comparing one field. ``excluded`` fields count neither way."""

    field: str
    score: Optional[float]
    passed: bool
    threshold: Optional[float] = None
    excluded: bool = False
    detail: str = ""


@dataclass(frozen=True)
class DuplicateGroup:
    group_id: int
    entries: Tuple[CatalogEntry, ...]

    @property
    def keys(self) -> frozenset:
        return frozenset(e.key for e in self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)


@dataclass(frozen=True)
class KeeperDecision:
    keeper: CatalogEntry
    reason: str


class ScanStatus(str, enum.Enum):
    GROUP = "group"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self is not ScanStatus.GROUP


@dataclass
class ScanStats:
    """Counters owned by a single scanner run."""

    pairs_total: int = 0
    pairs_compared: int = 0
    groups_found: int = 0

    @property
    def fraction_done(self) -> float:
        if not self.pairs_total:
            return 1.0
        return self.pairs_compared / self.pairs_total


@dataclass(frozen=True)
class ScanEvent:
    status: ScanStatus
    stats: ScanStats
    group: Optional[DuplicateGroup] = None
    error: Optional[BaseException] = field(default=None, compare=False)
