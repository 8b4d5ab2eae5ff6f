#!/usr/bin/env python3
"""
Import Track Catalog Script

Usage:
    import_catalog.py tracks.csv [more.csv ...]

CSV header must contain title, artist, uri, duration_sec; bpm, energy,
instrumental and explicit are optional.
"""

import argparse
import sys
import logging
from pathlib import Path

# Add src/ to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from servicedj.catalog import CatalogImportError, import_csv
from servicedj.config import Config
from servicedj.db import Database

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def main(argv=None):
    """Main import entrypoint."""
    parser = argparse.ArgumentParser(description="Import tracks from CSV files")
    parser.add_argument("paths", nargs="+", help="CSV files to import")
    args = parser.parse_args(argv)

    try:
        logger.info("📥 Starting catalog import...")

        config = Config.load()
        logger.info(f"Config loaded: {config}")

        failures = 0
        with Database(config.database_path) as db:
            for path in args.paths:
                try:
                    result = import_csv(db, path)
                except CatalogImportError as e:
                    logger.error(f"❌ {e}")
                    failures += 1
                    continue
                logger.info(f"  {path}: {result.to_dict()}")

            stats = db.get_stats()

        logger.info("")
        logger.info("=" * 60)
        logger.info("📊 Catalog Summary")
        logger.info("=" * 60)
        logger.info(f"  Tracks:       {stats['total_tracks']}")
        logger.info(f"  Artists:      {stats['distinct_artists']}")
        logger.info(f"  With BPM:     {stats['tracks_with_bpm']}")
        logger.info(f"  With energy:  {stats['tracks_with_energy']}")
        logger.info("=" * 60)

        return 1 if failures else 0

    except KeyboardInterrupt:
        logger.warning("Import interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Import failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
