"""
Candidate Filter: eligible tracks for one (date, block).

A track is eligible iff:
- explicit content is allowed, or the track is not explicit
- the block does not prefer instrumentals, or the track is instrumental
  (unknown instrumental flag counts as acceptable)
- admin override is set, or the track was never played, or its last play is
  on or before the cooldown cutoff (date - track_cooldown_days)

An empty result is reported upward as zero candidates, never raised.
"""

import logging
from datetime import date, timedelta
from typing import List

from ..models import Candidate, CandidateFilters, PlayBlock, RotationRules

logger = logging.getLogger(__name__)


def cooldown_cutoff(date_iso: str, track_cooldown_days: int) -> str:
    """
    Compute the cooldown cutoff date.

    Args:
        date_iso: Target date (YYYY-MM-DD)
        track_cooldown_days: Days a track must rest

    Returns:
        Cutoff date as YYYY-MM-DD

    Raises:
        ValueError: If date_iso is not an ISO calendar date
    """
    target = date.fromisoformat(date_iso)
    return (target - timedelta(days=track_cooldown_days)).isoformat()


class CandidateFilter:
    """Builds the candidate pool from the track repository."""

    def __init__(self, repository):
        """
        Args:
            repository: Object exposing query_candidates(filters)
        """
        self.repository = repository

    def build_filters(
        self,
        date_iso: str,
        block: PlayBlock,
        rules: RotationRules,
        admin_override: bool = False,
    ) -> CandidateFilters:
        return CandidateFilters(
            cutoff_date=cooldown_cutoff(date_iso, rules.track_cooldown_days),
            exclude_explicit=rules.exclude_explicit,
            prefer_instrumental=block.prefer_instrumental,
            admin_override=admin_override,
        )

    def find_candidates(
        self,
        date_iso: str,
        block: PlayBlock,
        rules: RotationRules,
        admin_override: bool = False,
    ) -> List[Candidate]:
        """
        Produce the eligible pool for a block on a date.

        Args:
            date_iso: Target date (YYYY-MM-DD)
            block: Block being generated
            rules: Current rotation rules
            admin_override: Ignore track cooldown

        Returns:
            Candidates with last played date and recent artist usage
        """
        filters = self.build_filters(date_iso, block, rules, admin_override)
        candidates = self.repository.query_candidates(filters)

        logger.info(
            f"{len(candidates)} candidates for {block.name} on {date_iso} "
            f"(cutoff {filters.cutoff_date}, override={admin_override})"
        )
        if not candidates:
            logger.warning(f"No eligible tracks for {block.name} on {date_iso}")
        return candidates
