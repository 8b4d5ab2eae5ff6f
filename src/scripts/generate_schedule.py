#!/usr/bin/env python3
"""
Generate Service Playlists Script

Usage:
    generate_schedule.py block 2025-08-13 Dinner [--force] [--override]
    generate_schedule.py day 2025-08-13 [--force] [--override]
    generate_schedule.py week 2025-08-11 [--force] [--override]
    generate_schedule.py lock 2025-08-13
    generate_schedule.py unlock 2025-08-13

Config path comes from SERVICEDJ_CONFIG_PATH (default configs/servicedj.toml).
Exit codes: 0 ok, 1 generation failed, 2 bad arguments, 130 interrupted.
"""

import argparse
import json
import sys
import logging
from pathlib import Path

# Add src/ to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from servicedj.config import Config
from servicedj.db import Database
from servicedj.generate.playlist import BlockGenerator
from servicedj.models import DayStatus
from servicedj.schedule import Scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate Lunch/Dinner/Late playlists")
    sub = parser.add_subparsers(dest="command", required=True)

    block = sub.add_parser("block", help="Generate one (date, block) playlist")
    block.add_argument("date", help="YYYY-MM-DD")
    block.add_argument("block", help="Block name, e.g. Dinner")

    day = sub.add_parser("day", help="Generate every block of a day")
    day.add_argument("date", help="YYYY-MM-DD")

    week = sub.add_parser("week", help="Generate consecutive days")
    week.add_argument("date", help="First day, YYYY-MM-DD")

    for p in (block, day, week):
        p.add_argument("--force", action="store_true", help="Replace existing playlists")
        p.add_argument("--override", action="store_true", help="Ignore track cooldown")
        p.add_argument("--json", action="store_true", help="Print the result as JSON")

    for name in ("lock", "unlock"):
        p = sub.add_parser(name, help=f"{name.capitalize()} a day")
        p.add_argument("date", help="YYYY-MM-DD")

    return parser


def main(argv=None):
    """Main generation entrypoint."""
    args = build_parser().parse_args(argv)
    try:
        logger.info(f"🎵 Starting {args.command} generation...")

        config = Config.load()
        logger.info(f"Config loaded: {config}")

        with Database(config.database_path) as db:
            config.seed_database(db)
            scheduler = Scheduler.from_config(db, config)

            if args.command in ("lock", "unlock"):
                status = DayStatus.LOCKED if args.command == "lock" else DayStatus.PENDING
                scheduler.set_day_status(args.date, status)
                return 0

            if args.command == "block":
                generator = BlockGenerator.from_config(db, config)
                result = generator.generate_block(
                    args.date, args.block, force=args.force, admin_override=args.override
                )
            elif args.command == "day":
                result = scheduler.generate_daily(
                    args.date, force=args.force, admin_override=args.override
                )
            else:
                result = scheduler.generate_weekly(
                    args.date, force=args.force, admin_override=args.override
                )

        if args.json:
            print(json.dumps(result.to_dict(), indent=2))

        if not result.success:
            logger.error(f"❌ {args.command} generation finished with errors")
            return 1

        logger.info(f"✅ {args.command} generation complete")
        return 0

    except KeyboardInterrupt:
        logger.warning("Generation interrupted by user")
        return 130
    except ValueError as e:
        logger.error(f"Invalid argument: {e}")
        return 2
    except Exception as e:
        logger.error(f"Generation failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
