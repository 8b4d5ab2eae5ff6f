"""
Block Generation (orchestrator).

generate_block(date, block) runs:
  load config -> claim (date, block) -> filter -> score -> sort -> select
  -> energy curve -> persist -> summary stats

Per (date, block) state: absent -> generating -> {completed, failed}.
Every failure comes back as a structured BlockResult; no exception escapes
generate_block. Nothing but the claim (and a force-clear) is written before
the final persist step.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from ..models import (
    DayStatus,
    GeneratedItem,
    PlayBlock,
    RotationRules,
    RunStatus,
    Track,
    utc_now,
)
from .candidates import CandidateFilter
from .energy import build_energy_curve
from .random_source import RandomSource, SeededRandom
from .scoring import rank_candidates
from .selector import SPACING_WALLCLOCK, select_tracks

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    INVALID_REQUEST = "invalid_request"
    CONFIG_MISSING = "config_missing"
    DAY_LOCKED = "day_locked"
    ALREADY_EXISTS = "already_exists"
    NO_CANDIDATES = "no_candidates"
    NO_SELECTION = "no_selection"
    PERSISTENCE_FAILURE = "persistence_failure"


class BlockGenerationError(Exception):
    """Base class for recoverable generation failures."""

    kind: ErrorKind = ErrorKind.PERSISTENCE_FAILURE
    # Caller-input problem (4xx-equivalent) rather than catalog/infrastructure
    client_error = False
    # Whether the ScheduleDay should be marked failed
    fails_day = True

    def __init__(self, message: str, stats: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.stats = stats or {}


class InvalidRequest(BlockGenerationError):
    kind = ErrorKind.INVALID_REQUEST
    client_error = True
    fails_day = False


class ConfigMissing(BlockGenerationError):
    kind = ErrorKind.CONFIG_MISSING
    client_error = True


class DayLocked(BlockGenerationError):
    kind = ErrorKind.DAY_LOCKED
    client_error = True
    fails_day = False


class AlreadyExists(BlockGenerationError):
    kind = ErrorKind.ALREADY_EXISTS
    client_error = True
    fails_day = False


class NoCandidates(BlockGenerationError):
    kind = ErrorKind.NO_CANDIDATES


class NoSelection(BlockGenerationError):
    kind = ErrorKind.NO_SELECTION


class PersistenceFailure(BlockGenerationError):
    kind = ErrorKind.PERSISTENCE_FAILURE


@dataclass
class GenerationError:
    """Structured failure returned to callers."""

    kind: ErrorKind
    message: str
    client_error: bool
    stats: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, error: BlockGenerationError) -> "GenerationError":
        return cls(
            kind=error.kind,
            message=error.message,
            client_error=error.client_error,
            stats=dict(error.stats),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "error": self.message,
            "client_error": self.client_error,
            "stats": self.stats,
        }


@dataclass
class BlockResult:
    """Outcome of one (date, block) generation."""

    date_iso: str
    block_name: str
    success: bool
    block_id: Optional[int] = None
    tracks: List[Dict[str, Any]] = field(default_factory=list)
    stats: Dict[str, Any] = field(default_factory=dict)
    error: Optional[GenerationError] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        if not self.success:
            return {"success": False, **self.error.to_dict()}
        return {
            "success": True,
            "playlist": {
                "date_iso": self.date_iso,
                "block_name": self.block_name,
                "block_id": self.block_id,
                "tracks": self.tracks,
                "stats": self.stats,
            },
        }


def summarize(
    tracks: List[Track],
    block: PlayBlock,
    rules: RotationRules,
    candidate_count: int,
) -> Dict[str, Any]:
    """
    Summary statistics for a generated block.

    Averages ignore unknown BPM/energy and are None when nothing is known.
    """
    total_seconds = float(sum(t.duration_seconds for t in tracks))
    bpms = [t.tempo_bpm for t in tracks if t.tempo_bpm is not None]
    energies = [t.energy for t in tracks if t.energy is not None]

    return {
        "target_duration_min": block.target_minutes,
        "actual_duration_sec": total_seconds,
        "actual_duration_min": round(total_seconds / 60, 1),
        "track_count": len(tracks),
        "avg_bpm": int(round(float(np.mean(bpms)))) if bpms else None,
        "avg_energy": round(float(np.mean(energies)), 2) if energies else None,
        "candidates_considered": candidate_count,
        "artist_separation_min": rules.artist_cooldown_minutes,
    }


class BlockGenerator:
    """
    Playlist generator for one service block.

    Orchestrates candidate filtering, scoring, selection, sequencing and
    persistence against a Database.
    """

    def __init__(
        self,
        database,
        rng: Optional[RandomSource] = None,
        artist_spacing: str = SPACING_WALLCLOCK,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize generator.

        Args:
            database: Database (track repository, block/rules config, items)
            rng: Random source for scoring and sequencing
            artist_spacing: "wallclock" or "runtime" (see selector)
            clock: Clock override for wallclock artist spacing
        """
        self.db = database
        self.rng = rng or SeededRandom()
        self.artist_spacing = artist_spacing
        self.clock = clock
        self.candidate_filter = CandidateFilter(database)
        logger.info(f"BlockGenerator initialized (artist spacing: {artist_spacing})")

    @classmethod
    def from_config(cls, database, config) -> "BlockGenerator":
        seed = config.get("generation", "random_seed")
        return cls(
            database,
            rng=SeededRandom(seed),
            artist_spacing=config.get("generation", "artist_spacing", SPACING_WALLCLOCK),
        )

    def generate_block(
        self,
        date_iso: str,
        block_name: str,
        force: bool = False,
        admin_override: bool = False,
        update_day: bool = True,
    ) -> BlockResult:
        """
        Generate and persist the playlist for one (date, block).

        Args:
            date_iso: Target date (YYYY-MM-DD)
            block_name: Play block name (e.g. "Lunch")
            force: Replace an existing playlist
            admin_override: Ignore track cooldown
            update_day: Set the ScheduleDay to completed/failed. The
                scheduler passes False and settles the day itself.

        Returns:
            BlockResult (success with tracks/stats, or a structured error)
        """
        logger.info(
            f"Generating {block_name} for {date_iso} (force={force}, override={admin_override})"
        )
        try:
            result = self._generate(date_iso, block_name, force, admin_override)
        except BlockGenerationError as e:
            return self._failure(date_iso, block_name, e, update_day)
        except sqlite3.Error as e:
            logger.error(f"Database error generating {block_name} for {date_iso}: {e}", exc_info=True)
            return self._failure(
                date_iso, block_name, PersistenceFailure(f"Database error: {e}"), update_day
            )

        if update_day:
            self._set_day(result.date_iso, DayStatus.COMPLETED)
        return result

    def _generate(
        self,
        date_iso: str,
        block_name: str,
        force: bool,
        admin_override: bool,
    ) -> BlockResult:
        try:
            date_iso = date.fromisoformat(date_iso).isoformat()
        except (TypeError, ValueError):
            raise InvalidRequest(f"Invalid date: {date_iso!r} (expected YYYY-MM-DD)")

        block = self.db.get_play_block(block_name)
        if block is None:
            raise ConfigMissing(f"Invalid block name: {block_name}")

        rules = self.db.get_rotation_rules()
        if rules is None:
            raise ConfigMissing("No rotation rules configured")

        day = self.db.get_day(date_iso)
        if day is not None and day.status == DayStatus.LOCKED:
            raise DayLocked(f"{date_iso} is locked; unlock it to regenerate")

        if not self.db.claim_block_run(date_iso, block.id, force=force):
            raise AlreadyExists(
                "Playlist already exists for this date/block. Use force=true to regenerate."
            )

        try:
            return self._run_pipeline(date_iso, block, rules, admin_override)
        except (BlockGenerationError, sqlite3.Error):
            self._release_run(date_iso, block.id)
            raise

    def _run_pipeline(
        self,
        date_iso: str,
        block: PlayBlock,
        rules: RotationRules,
        admin_override: bool,
    ) -> BlockResult:
        candidates = self.candidate_filter.find_candidates(date_iso, block, rules, admin_override)
        if not candidates:
            raise NoCandidates(
                "No tracks available that match the criteria and cooldown rules",
                stats={"candidates_considered": 0, "track_count": 0},
            )

        ranked = [candidate for candidate, _ in rank_candidates(candidates, block, self.rng)]

        selected = select_tracks(
            ranked, block, rules, artist_spacing=self.artist_spacing, clock=self.clock
        )
        if not selected:
            raise NoSelection(
                "Could not select any tracks with artist separation requirements",
                stats={"candidates_considered": len(candidates), "track_count": 0},
            )

        ordered = build_energy_curve([c.track for c in selected], self.rng)
        items = self._persist(date_iso, block, ordered)
        stats = summarize(ordered, block, rules, len(candidates))

        logger.info(
            f"✅ {block.name} {date_iso}: {stats['track_count']} tracks, "
            f"{stats['actual_duration_min']}min (target {block.target_minutes}min), "
            f"{len(candidates)} candidates"
        )

        return BlockResult(
            date_iso=date_iso,
            block_name=block.name,
            success=True,
            block_id=block.id,
            tracks=[
                {
                    **item.to_dict(),
                    "title": track.title,
                    "duration_sec": track.duration_seconds,
                    "bpm": track.tempo_bpm,
                    "energy": track.energy,
                    "uri": track.uri,
                }
                for item, track in zip(items, ordered)
            ],
            stats=stats,
        )

    def _persist(self, date_iso: str, block: PlayBlock, ordered: List[Track]) -> List[GeneratedItem]:
        """Write all items and complete the run in one transaction."""
        generated_at = utc_now()
        items = [
            GeneratedItem(
                track_id=track.id,
                artist=track.artist,
                date_iso=date_iso,
                block_id=block.id,
                position=position,
                generated_at=generated_at,
            )
            for position, track in enumerate(ordered, start=1)
        ]
        try:
            with self.db.transaction():
                for item in items:
                    self.db.record_placement(item)
                self.db.set_block_run_status(date_iso, block.id, RunStatus.COMPLETED)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Failed to persist playlist: {e}") from e
        return items

    def _release_run(self, date_iso: str, block_id: int) -> None:
        try:
            self.db.set_block_run_status(date_iso, block_id, RunStatus.FAILED)
        except sqlite3.Error as e:
            logger.error(f"Could not mark run {date_iso}/{block_id} failed: {e}")

    def _set_day(self, date_iso: str, status: DayStatus) -> None:
        try:
            day = self.db.get_day(date_iso)
            if day is not None and day.status == DayStatus.LOCKED:
                return
            self.db.set_day_status(date_iso, status)
        except sqlite3.Error as e:
            logger.error(f"Could not set {date_iso} to {status.value}: {e}")

    def _failure(
        self,
        date_iso: str,
        block_name: str,
        error: BlockGenerationError,
        update_day: bool,
    ) -> BlockResult:
        if error.client_error:
            logger.warning(f"{block_name} {date_iso}: {error.message}")
        else:
            logger.error(f"{block_name} {date_iso}: {error.message}")

        if update_day and error.fails_day:
            self._set_day(date_iso, DayStatus.FAILED)

        return BlockResult(
            date_iso=date_iso,
            block_name=block_name,
            success=False,
            error=GenerationError.from_exception(error),
        )


def generate_block(
    database,
    date_iso: str,
    block_name: str,
    force: bool = False,
    admin_override: bool = False,
    rng: Optional[RandomSource] = None,
) -> BlockResult:
    """
    Generate one block with a throwaway BlockGenerator.

    Args:
        database: Connected Database
        date_iso: Target date (YYYY-MM-DD)
        block_name: Play block name
        force: Replace an existing playlist
        admin_override: Ignore track cooldown
        rng: Optional random source

    Returns:
        BlockResult
    """
    return BlockGenerator(database, rng=rng).generate_block(
        date_iso, block_name, force=force, admin_override=admin_override
    )
