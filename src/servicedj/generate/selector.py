"""
Constrained Selector: greedy fill of a block's duration window.

- Single pass over score-sorted candidates (no backtracking or look-ahead)
- Constraints:
  - No track repeats
  - Artist spacing (artist_cooldown_minutes)
  - Total duration at most target * 1.3, except the first pick
- Stops once total >= target and at least 8 tracks are selected
- Output: tracks in selection order (not yet sequenced)
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Set

from ..models import Candidate, PlayBlock, RotationRules

logger = logging.getLogger(__name__)

MIN_TRACKS = 8
MAX_OVERSHOOT = 1.3

SPACING_WALLCLOCK = "wallclock"
SPACING_RUNTIME = "runtime"


class SelectionConstraints:
    """Selection constraints derived from block and rotation config."""

    def __init__(
        self,
        block: PlayBlock,
        rules: RotationRules,
        artist_spacing: str = SPACING_WALLCLOCK,
    ):
        """
        Args:
            block: Block being filled (target duration)
            rules: Rotation rules (artist cooldown)
            artist_spacing: "wallclock" measures artist spacing on the
                selector's own clock; "runtime" measures it in playlist
                seconds accumulated in selection order
        """
        if artist_spacing not in (SPACING_WALLCLOCK, SPACING_RUNTIME):
            raise ValueError(f"Unknown artist spacing mode: {artist_spacing}")
        self.target_seconds = block.target_seconds
        self.max_seconds = block.target_seconds * MAX_OVERSHOOT
        self.artist_cooldown_seconds = rules.artist_cooldown_minutes * 60
        self.artist_spacing = artist_spacing
        self.min_tracks = MIN_TRACKS


class ConstrainedSelector:
    """
    Greedy track selector.

    Walks the ranked candidates once and takes every track that fits.
    A skipped track is not revisited.
    """

    def __init__(
        self,
        constraints: SelectionConstraints,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            constraints: SelectionConstraints object
            clock: Seconds source for wallclock spacing (default time.monotonic)
        """
        self.constraints = constraints
        self.clock = clock or time.monotonic
        self.used_in_set: Set[int] = set()
        self.artist_last_placed: Dict[str, float] = {}
        self.total_seconds = 0.0
        self.skipped_artist = 0
        self.skipped_overshoot = 0

    def _spacing_now(self) -> float:
        if self.constraints.artist_spacing == SPACING_RUNTIME:
            return self.total_seconds
        return self.clock()

    def _artist_too_recent(self, artist: str) -> bool:
        """
        Check whether the artist was placed within the cooldown.

        Args:
            artist: Artist name

        Returns:
            True if the artist must be skipped
        """
        last_placed = self.artist_last_placed.get(artist)
        if last_placed is None:
            return False
        return self._spacing_now() - last_placed < self.constraints.artist_cooldown_seconds

    def _target_reached(self, selected: List[Candidate]) -> bool:
        return (
            self.total_seconds >= self.constraints.target_seconds
            and len(selected) >= self.constraints.min_tracks
        )

    def select(self, ranked: List[Candidate]) -> List[Candidate]:
        """
        Fill the block from score-sorted candidates.

        Args:
            ranked: Candidates sorted by score, best first

        Returns:
            Selected candidates in selection order; empty if nothing fits
        """
        selected: List[Candidate] = []

        for candidate in ranked:
            track = candidate.track
            if track.id in self.used_in_set:
                continue

            if self._target_reached(selected):
                break

            if self._artist_too_recent(track.artist):
                logger.debug(f"Track {track.id}: artist {track.artist} placed too recently; skipping")
                self.skipped_artist += 1
                continue

            if selected and self.total_seconds + track.duration_seconds > self.constraints.max_seconds:
                logger.debug(
                    f"Track {track.id}: {track.duration_seconds:.0f}s would overshoot "
                    f"{self.constraints.max_seconds:.0f}s; skipping"
                )
                self.skipped_overshoot += 1
                continue

            placed_at = self._spacing_now()
            self.used_in_set.add(track.id)
            self.artist_last_placed[track.artist] = placed_at
            selected.append(candidate)
            self.total_seconds += track.duration_seconds

        logger.info(
            f"✅ Selected {len(selected)} tracks, {self.total_seconds:.0f}s "
            f"(target {self.constraints.target_seconds}s; skipped "
            f"{self.skipped_artist} for artist spacing, {self.skipped_overshoot} for overshoot)"
        )
        return selected


def select_tracks(
    ranked: List[Candidate],
    block: PlayBlock,
    rules: RotationRules,
    artist_spacing: str = SPACING_WALLCLOCK,
    clock: Optional[Callable[[], float]] = None,
) -> List[Candidate]:
    """
    Run one selection pass.

    Args:
        ranked: Candidates sorted by score, best first
        block: Block being filled
        rules: Rotation rules
        artist_spacing: "wallclock" or "runtime"
        clock: Optional clock for wallclock spacing

    Returns:
        Selected candidates in selection order
    """
    constraints = SelectionConstraints(block, rules, artist_spacing)
    return ConstrainedSelector(constraints, clock=clock).select(ranked)
