#!/usr/bin/env python3
"""
Export Playlist Script

Usage:
    export_playlist.py file 2025-08-13 Dinner [--format csv|m3u]
    export_playlist.py push 2025-08-13 Dinner
    export_playlist.py list [--date D] [--block B] [--start D] [--end D] [--limit N]

push creates a private playlist on the remote service; the access token
is read from SERVICEDJ_SINK_TOKEN.
"""

import argparse
import os
import sys
import logging
from pathlib import Path

# Add src/ to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from servicedj.config import Config
from servicedj.db import Database
from servicedj.export import EXPORT_FORMATS, ExportError, export_block, push_block
from servicedj.sink import RemotePlaylistSink, SinkError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Export or list generated playlists")
    sub = parser.add_subparsers(dest="command", required=True)

    file_cmd = sub.add_parser("file", help="Write a CSV or M3U file")
    push_cmd = sub.add_parser("push", help="Push to the remote service")
    for p in (file_cmd, push_cmd):
        p.add_argument("date", help="YYYY-MM-DD")
        p.add_argument("block", help="Block name, e.g. Dinner")
    file_cmd.add_argument("--format", choices=EXPORT_FORMATS, default="csv")

    list_cmd = sub.add_parser("list", help="List generated playlists, newest first")
    list_cmd.add_argument("--date", help="Exact date, YYYY-MM-DD")
    list_cmd.add_argument("--block", help="Block name")
    list_cmd.add_argument("--start", help="First date, YYYY-MM-DD")
    list_cmd.add_argument("--end", help="Last date, YYYY-MM-DD")
    list_cmd.add_argument("--limit", type=int, default=50)
    list_cmd.add_argument("--offset", type=int, default=0)
    return parser


def log_playlists(playlists) -> None:
    logger.info("=" * 60)
    logger.info(f"📋 {len(playlists)} playlists")
    logger.info("=" * 60)
    for p in playlists:
        minutes = (p["total_duration_sec"] or 0) / 60
        logger.info(
            f"  {p['date_iso']}  {p['block_name']:<8} {p['track_count']:>3} tracks  "
            f"{minutes:6.1f} / {p['target_min']} min"
        )


def main(argv=None):
    """Main export entrypoint."""
    args = build_parser().parse_args(argv)

    try:
        config = Config.load()
        logger.info(f"Config loaded: {config}")

        with Database(config.database_path) as db:
            if args.command == "list":
                log_playlists(
                    db.list_playlists(
                        date_iso=args.date,
                        block_name=args.block,
                        start_date=args.start,
                        end_date=args.end,
                        limit=args.limit,
                        offset=args.offset,
                    )
                )
            elif args.command == "push":
                token = os.getenv("SERVICEDJ_SINK_TOKEN")
                if not token:
                    logger.error("SERVICEDJ_SINK_TOKEN is not set")
                    return 1
                sink = RemotePlaylistSink.from_config(config, token)
                result = push_block(db, sink, args.date, args.block)
                logger.info(f"✅ Pushed {result['tracks_added']} tracks: {result['url']}")
            else:
                path = export_block(
                    db,
                    args.date,
                    args.block,
                    export_format=args.format,
                    output_dir=config.get("export", "output_dir", "data/exports"),
                )
                logger.info(f"✅ Exported {path}")
        return 0

    except (ExportError, SinkError) as e:
        logger.error(f"❌ {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning("Export interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"Export failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
