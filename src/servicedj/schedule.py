"""
Daily and weekly scheduling of service blocks.

A day runs its blocks in configured order (Lunch -> Dinner -> Late). The
day is marked generating while it runs, then completed if every block
succeeded and failed otherwise. A week is N consecutive days.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from .generate.playlist import BlockGenerator, BlockResult
from .models import DayStatus

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_ORDER = ["Lunch", "Dinner", "Late"]


@dataclass
class DayResult:
    date_iso: str
    success: bool = True
    blocks: List[BlockResult] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def summary(self) -> Dict[str, Any]:
        succeeded = [b for b in self.blocks if b.success]
        return {
            "total_blocks": len(succeeded),
            "total_tracks": sum(b.stats.get("track_count", 0) for b in succeeded),
            "total_duration_min": round(
                sum(b.stats.get("actual_duration_min", 0) for b in succeeded), 1
            ),
            "errors_count": len(self.errors),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date_iso": self.date_iso,
            "success": self.success,
            "blocks": [b.to_dict() for b in self.blocks if b.success],
            "errors": self.errors,
            "summary": self.summary,
        }


@dataclass
class WeekResult:
    start_date: str
    days: List[DayResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(d.success for d in self.days)

    @property
    def summary(self) -> Dict[str, Any]:
        total_days = len(self.days)
        successful_days = sum(1 for d in self.days if d.success)
        day_summaries = [d.summary for d in self.days]
        return {
            "total_days": total_days,
            "successful_days": successful_days,
            "total_blocks": sum(s["total_blocks"] for s in day_summaries),
            "total_tracks": sum(s["total_tracks"] for s in day_summaries),
            "total_duration_min": round(sum(s["total_duration_min"] for s in day_summaries), 1),
            "success_rate": round(successful_days / total_days * 100) if total_days else 0,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_date": self.start_date,
            "success": self.success,
            "days": [d.to_dict() for d in self.days],
            "errors": [
                {"date": d.date_iso, "errors": d.errors} for d in self.days if not d.success
            ],
            "weekly_summary": self.summary,
        }


class Scheduler:
    """Sequences BlockGenerator calls across blocks and days."""

    def __init__(
        self,
        database,
        generator: Optional[BlockGenerator] = None,
        block_order: Optional[List[str]] = None,
        week_days: int = 7,
    ):
        self.db = database
        self.generator = generator or BlockGenerator(database)
        self.block_order = list(block_order or DEFAULT_BLOCK_ORDER)
        self.week_days = week_days

    @classmethod
    def from_config(cls, database, config) -> "Scheduler":
        return cls(
            database,
            generator=BlockGenerator.from_config(database, config),
            block_order=config.get("schedule", "block_order", DEFAULT_BLOCK_ORDER),
            week_days=config.get("schedule", "week_days", 7),
        )

    def set_day_status(self, date_iso: str, status: DayStatus) -> None:
        """Create or update a day (e.g. lock/unlock it)."""
        date_iso = date.fromisoformat(date_iso).isoformat()
        self.db.set_day_status(date_iso, status)
        logger.info(f"{date_iso} marked {status.value}")

    def generate_daily(
        self,
        date_iso: str,
        force: bool = False,
        admin_override: bool = False,
    ) -> DayResult:
        """
        Generate every block of one day.

        Args:
            date_iso: Day to generate (YYYY-MM-DD)
            force: Replace existing playlists
            admin_override: Ignore track cooldown

        Returns:
            DayResult with per-block results and errors
        """
        result = DayResult(date_iso=date_iso)

        try:
            date_iso = date.fromisoformat(date_iso).isoformat()
        except (TypeError, ValueError):
            result.success = False
            result.errors.append({"block": None, "error": f"Invalid date: {date_iso!r}"})
            return result
        result.date_iso = date_iso

        day = self.db.get_day(date_iso)
        if day is not None and day.status == DayStatus.LOCKED:
            logger.warning(f"{date_iso} is locked; skipping generation")
            result.success = False
            result.errors.append({"block": None, "error": "Day is locked - unlock to regenerate"})
            return result

        self.db.set_day_status(date_iso, DayStatus.GENERATING)

        for block_name in self.block_order:
            block_result = self.generator.generate_block(
                date_iso,
                block_name,
                force=force,
                admin_override=admin_override,
                update_day=False,
            )
            result.blocks.append(block_result)
            if not block_result.success:
                result.success = False
                result.errors.append({
                    "block": block_name,
                    "kind": block_result.error.kind.value,
                    "error": block_result.error.message,
                })

        final_status = DayStatus.COMPLETED if result.success else DayStatus.FAILED
        self.db.set_day_status(date_iso, final_status)

        summary = result.summary
        logger.info(
            f"{date_iso} {final_status.value}: {summary['total_blocks']} blocks, "
            f"{summary['total_tracks']} tracks, {summary['errors_count']} errors"
        )
        return result

    def generate_weekly(
        self,
        start_date_iso: str,
        force: bool = False,
        admin_override: bool = False,
    ) -> WeekResult:
        """
        Generate consecutive days starting at start_date_iso.

        Raises:
            ValueError: If start_date_iso is not an ISO date
        """
        start = date.fromisoformat(start_date_iso)
        result = WeekResult(start_date=start.isoformat())

        for offset in range(self.week_days):
            day_iso = (start + timedelta(days=offset)).isoformat()
            logger.info(f"Generating week day {offset + 1}/{self.week_days}: {day_iso}")
            result.days.append(
                self.generate_daily(day_iso, force=force, admin_override=admin_override)
            )

        summary = result.summary
        logger.info(
            f"Week from {result.start_date}: {summary['successful_days']}/{summary['total_days']} "
            f"days ok ({summary['success_rate']}%), {summary['total_tracks']} tracks"
        )
        return result

    def get_schedule(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = 30,
    ) -> List[Dict[str, Any]]:
        return self.db.list_schedule(start_date=start_date, end_date=end_date, limit=limit)
