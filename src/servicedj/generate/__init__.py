"""
Block Generation Module: Build one service block's playlist.

Pipeline (strict, each stage consumes the previous stage's full output):
- candidates: eligibility filtering (explicit, instrumental, track cooldown)
- scoring: BPM/energy fit + artist freshness + small random term
- selector: greedy fill to target duration with artist spacing
- energy: intro (low) -> mid (lift) -> outro (calm) ordering
- playlist: orchestration, persistence and summary statistics
"""

__all__ = ["candidates", "scoring", "selector", "energy", "playlist", "random_source"]
