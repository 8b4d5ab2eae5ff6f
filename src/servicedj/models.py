"""
Domain records for ServiceDJ.

Rows from the store and tables from the TOML config are converted here into
typed records. Required fields are validated once, at this boundary, so the
generation pipeline never deals with partially-populated rows.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple, Dict, Any, Mapping


class DayStatus(str, Enum):
    """Lifecycle of a ScheduleDay."""

    PENDING = "pending"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    LOCKED = "locked"


class RunStatus(str, Enum):
    """Lifecycle of a single (date, block) generation."""

    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


def _require(row: Mapping[str, Any], keys: Tuple[str, ...], what: str) -> None:
    missing = [k for k in keys if k not in row or row[k] is None]
    if missing:
        raise ValueError(f"{what} is missing required fields: {', '.join(missing)}")


def _optional_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    return bool(value)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


# Editable track attributes (Database.add_track / update_track keywords)
TRACK_FIELDS = (
    "title",
    "artist",
    "uri",
    "duration_seconds",
    "tempo_bpm",
    "energy",
    "is_instrumental",
    "is_explicit",
    "source_tag",
)


def validate_track_fields(fields: Mapping[str, Any]) -> None:
    """
    Check track values shared by catalog import and administrative edits.

    Only the keys present are checked, so partial updates validate too.

    Raises:
        ValueError: On an unknown field or a blank or out-of-range value
    """
    unknown = sorted(set(fields) - set(TRACK_FIELDS))
    if unknown:
        raise ValueError(f"Unknown track fields: {', '.join(unknown)}")

    for name in ("title", "artist", "uri"):
        if name in fields and (fields[name] is None or not str(fields[name]).strip()):
            raise ValueError(f"{name} must not be blank")

    if "duration_seconds" in fields:
        duration = fields["duration_seconds"]
        if duration is None or duration <= 0:
            raise ValueError(f"duration_sec must be positive, got {duration}")

    energy = fields.get("energy")
    if energy is not None and not 0.0 <= energy <= 1.0:
        raise ValueError(f"energy must be within [0, 1], got {energy}")

    bpm = fields.get("tempo_bpm")
    if bpm is not None and bpm <= 0:
        raise ValueError(f"bpm must be positive, got {bpm}")


@dataclass(frozen=True)
class Track:
    """Immutable catalog track. Unknown tempo/energy are None, never 0."""

    id: int
    title: str
    artist: str
    uri: str
    duration_seconds: float
    tempo_bpm: Optional[float] = None
    energy: Optional[float] = None
    is_instrumental: Optional[bool] = None
    is_explicit: bool = False
    source_tag: str = "manual"

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Track":
        _require(row, ("id", "title", "artist", "uri", "duration_sec"), "Track row")
        return cls(
            id=row["id"],
            title=row["title"],
            artist=row["artist"],
            uri=row["uri"],
            duration_seconds=float(row["duration_sec"]),
            tempo_bpm=row["bpm"],
            energy=row["energy"],
            is_instrumental=_optional_bool(row["instrumental"]),
            is_explicit=bool(row["explicit"]),
            source_tag=row["source"] or "manual",
        )


@dataclass(frozen=True)
class PlayBlock:
    """Configuration of one service window (Lunch/Dinner/Late)."""

    name: str
    target_minutes: int
    tempo_range: Tuple[float, float]
    energy_range: Tuple[float, float]
    prefer_instrumental: bool = False
    color_tag: str = ""
    id: Optional[int] = None

    def __post_init__(self):
        if self.target_minutes <= 0:
            raise ValueError(f"Block {self.name}: target_minutes must be positive")
        if self.tempo_range[0] > self.tempo_range[1]:
            raise ValueError(f"Block {self.name}: tempo_range min > max")
        if self.energy_range[0] > self.energy_range[1]:
            raise ValueError(f"Block {self.name}: energy_range min > max")

    @property
    def target_seconds(self) -> int:
        return self.target_minutes * 60

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PlayBlock":
        _require(
            row,
            ("id", "name", "target_min", "bpm_min", "bpm_max", "energy_min", "energy_max"),
            "PlayBlock row",
        )
        return cls(
            id=row["id"],
            name=row["name"],
            target_minutes=int(row["target_min"]),
            tempo_range=(float(row["bpm_min"]), float(row["bpm_max"])),
            energy_range=(float(row["energy_min"]), float(row["energy_max"])),
            prefer_instrumental=bool(row["prefer_instrumental"]),
            color_tag=row["color"] or "",
        )

    @classmethod
    def from_config(cls, data: Mapping[str, Any]) -> "PlayBlock":
        """Build from a `[[blocks]]` table of the TOML config."""
        _require(data, ("name", "target_min", "bpm_range", "energy_range"), "Block config")
        bpm_min, bpm_max = data["bpm_range"]
        energy_min, energy_max = data["energy_range"]
        return cls(
            name=data["name"],
            target_minutes=int(data["target_min"]),
            tempo_range=(float(bpm_min), float(bpm_max)),
            energy_range=(float(energy_min), float(energy_max)),
            prefer_instrumental=bool(data.get("prefer_instrumental", False)),
            color_tag=data.get("color", ""),
        )


@dataclass(frozen=True)
class RotationRules:
    """Singleton rotation settings (latest row wins)."""

    track_cooldown_days: int
    artist_cooldown_minutes: int
    exclude_explicit: bool = True
    normalize_loudness: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RotationRules":
        _require(row, ("track_cooldown_days", "artist_cooldown_min"), "RotationRules row")
        return cls(
            track_cooldown_days=int(row["track_cooldown_days"]),
            artist_cooldown_minutes=int(row["artist_cooldown_min"]),
            exclude_explicit=bool(row["exclude_explicit"]),
            normalize_loudness=bool(row["normalize_loudness"]),
        )


@dataclass(frozen=True)
class Candidate:
    """A track that passed eligibility filtering, with rotation annotations."""

    track: Track
    last_played_date: Optional[str] = None  # None: never played
    recent_artist_usage: int = 0


@dataclass(frozen=True)
class CandidateFilters:
    """Eligibility criteria handed to the repository."""

    cutoff_date: str
    exclude_explicit: bool
    prefer_instrumental: bool
    admin_override: bool = False


@dataclass
class GeneratedItem:
    """One track placed at a position of a (date, block) playlist."""

    track_id: int
    artist: str
    date_iso: str
    block_id: int
    position: int
    generated_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "track_id": self.track_id,
            "artist": self.artist,
            "date_iso": self.date_iso,
            "block_id": self.block_id,
            "position": self.position,
            "generated_at": self.generated_at,
        }


@dataclass(frozen=True)
class ScheduleDay:
    date_iso: str
    status: DayStatus
