"""
Energy Curve Sequencing: intro (low) -> mid (lift) -> outro (calm).

- Tracks are sorted by energy and split into overlapping bands:
  low = bottom 40%, mid = 30th-70th percentile, high = top 40%
- Intro (20%, at least 1) and outro (20%, at least 1) draw from low+mid
- Mid (remaining 60%) draws from the union of mid+high throughout; the pool
  order flips at the halfway point but every pick is uniform over the same pool
- Picks are random within a band, without replacement
- Anything left unplaced is appended; no track is dropped or duplicated
"""

import logging
import math
from typing import List, Optional, Sequence, Set, Tuple

from ..models import Track
from .random_source import RandomSource

logger = logging.getLogger(__name__)

DEFAULT_ENERGY = 0.3

# Band cut points (fraction of the energy-sorted pool)
LOW_BAND_END = 0.4
MID_BAND_START = 0.3
MID_BAND_END = 0.7
HIGH_BAND_START = 0.6

# Intro/outro share of the playlist
EDGE_SHARE = 0.2


def track_energy(track: Track) -> float:
    """
    Energy used for sequencing (0.0-1.0).

    Unknown energy sorts as a fairly calm track (0.3).
    """
    if track.energy is None:
        return DEFAULT_ENERGY
    return max(0.0, min(1.0, float(track.energy)))


def curve_segments(total: int) -> Tuple[int, int, int]:
    """
    Split a playlist length into (intro, mid, outro) counts.

    Intro and outro get floor(20%) with a floor of 1; mid takes the rest.
    For very short playlists mid can be negative, in which case the
    sequencer simply places nothing in the mid segment.
    """
    if total <= 0:
        return (0, 0, 0)
    edge = max(1, math.floor(total * EDGE_SHARE))
    return (edge, total - 2 * edge, edge)


def energy_bands(tracks: Sequence[Track]) -> Tuple[List[int], List[int], List[int]]:
    """
    Index bands (low, mid, high) over the energy-sorted tracks.

    Returns:
        Three lists of indices into `tracks`; bands overlap.
    """
    n = len(tracks)
    order = sorted(range(n), key=lambda i: track_energy(tracks[i]))
    low = order[: math.floor(n * LOW_BAND_END)]
    mid = order[math.floor(n * MID_BAND_START): math.floor(n * MID_BAND_END)]
    high = order[math.floor(n * HIGH_BAND_START):]
    return low, mid, high


def build_energy_curve(tracks: Sequence[Track], rng: RandomSource) -> List[Track]:
    """
    Order selected tracks into an energy curve.

    Args:
        tracks: Selected tracks (any order)
        rng: Random source for picks within a band

    Returns:
        Permutation of `tracks`
    """
    n = len(tracks)
    if n == 0:
        return []

    low, mid, high = energy_bands(tracks)
    intro_count, mid_count, outro_count = curve_segments(n)
    used: Set[int] = set()
    ordered: List[int] = []

    def pick(pool: List[int]) -> Optional[int]:
        available = [i for i in pool if i not in used]
        if not available:
            return None
        index = available[math.floor(rng.float() * len(available))]
        used.add(index)
        return index

    def place(pool: List[int]) -> None:
        index = pick(pool)
        if index is not None:
            ordered.append(index)

    for _ in range(intro_count):
        place(low + mid)

    # Both orderings hold the same indices, so the draw is uniform over mid+high
    for step in range(max(0, mid_count)):
        progress = step / mid_count
        place(mid + high if progress < 0.5 else high + mid)

    for _ in range(outro_count):
        place(low + mid)

    leftovers = [i for i in range(n) if i not in used]
    if leftovers:
        logger.debug(f"Energy curve: {len(leftovers)} leftover tracks appended")
    ordered.extend(leftovers)

    logger.debug(
        f"Energy curve: intro={intro_count}, mid={max(0, mid_count)}, outro={outro_count}, "
        f"energies={[round(track_energy(tracks[i]), 2) for i in ordered]}"
    )
    return [tracks[i] for i in ordered]
