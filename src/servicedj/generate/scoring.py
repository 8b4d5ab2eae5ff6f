"""
Track Scorer: desirability of a candidate for a block.

score = tempo fit + energy fit + artist freshness + random term

Tempo/energy fit: 50 in range, 20 known but out of range, 30 unknown.
Artist freshness: max(0, 20 - 2 * recent uses).
Random term: [0, 10), keeps identical inputs from always ordering the same.
"""

import logging
from typing import List, Optional, Tuple

from ..models import Candidate, PlayBlock
from .random_source import RandomSource

logger = logging.getLogger(__name__)

IN_RANGE_SCORE = 50
OUT_OF_RANGE_SCORE = 20
UNKNOWN_SCORE = 30
FRESHNESS_MAX = 20
FRESHNESS_DECAY = 2
RANDOM_SPAN = 10.0


def range_score(value: Optional[float], bounds: Tuple[float, float]) -> int:
    """Three-tier fit of a value against an inclusive range."""
    if value is None:
        return UNKNOWN_SCORE
    low, high = bounds
    if low <= value <= high:
        return IN_RANGE_SCORE
    return OUT_OF_RANGE_SCORE


def artist_freshness(recent_artist_usage: int) -> int:
    return max(0, FRESHNESS_MAX - FRESHNESS_DECAY * recent_artist_usage)


def base_score(candidate: Candidate, block: PlayBlock) -> int:
    """Deterministic part of the score."""
    track = candidate.track
    return (
        range_score(track.tempo_bpm, block.tempo_range)
        + range_score(track.energy, block.energy_range)
        + artist_freshness(candidate.recent_artist_usage)
    )


def score_track(candidate: Candidate, block: PlayBlock, rng: RandomSource) -> float:
    """Full score including the random tie-break term."""
    return base_score(candidate, block) + rng.float() * RANDOM_SPAN


def rank_candidates(
    candidates: List[Candidate],
    block: PlayBlock,
    rng: RandomSource,
) -> List[Tuple[Candidate, float]]:
    """
    Score every candidate and sort best first.

    Returns:
        List of (candidate, score) tuples, score descending
    """
    scored = [(c, score_track(c, block, rng)) for c in candidates]
    scored.sort(key=lambda pair: pair[1], reverse=True)

    if scored:
        logger.debug(
            f"Scored {len(scored)} candidates for {block.name}: "
            f"best={scored[0][1]:.1f}, worst={scored[-1][1]:.1f}"
        )
    return scored
