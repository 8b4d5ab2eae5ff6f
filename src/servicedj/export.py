"""
Playlist export: CSV and M3U files, remote sink push, export history.

File names: {date}_{block}.csv / .m3u (block lower-cased).
CSV columns: position,artist,title,uri,durationSec,dateISO,block
"""

import csv
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "m3u")
CSV_HEADER = ["position", "artist", "title", "uri", "durationSec", "dateISO", "block"]


class ExportError(Exception):
    """Raised when a playlist cannot be exported."""
    pass


def export_filename(date_iso: str, block_name: str, export_format: str) -> str:
    return f"{date_iso}_{block_name.lower()}.{export_format}"


def _format_duration(seconds: Any) -> int:
    return int(round(float(seconds or 0)))


def write_csv(
    tracks: List[Dict[str, Any]],
    date_iso: str,
    block_name: str,
    output_path: Path,
) -> None:
    """
    Write CSV playlist file.

    Args:
        tracks: Playlist rows ordered by position
        date_iso: Playlist date
        block_name: Block name
        output_path: Output CSV file path
    """
    with open(output_path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        for track in tracks:
            writer.writerow([
                track["position"],
                track["artist"],
                track["title"],
                track.get("uri") or "",
                _format_duration(track.get("duration_sec")),
                date_iso,
                block_name,
            ])
    logger.info(f"Wrote CSV playlist: {output_path}")


def write_m3u(
    tracks: List[Dict[str, Any]],
    date_iso: str,
    block_name: str,
    output_path: Path,
) -> None:
    """
    Write extended M3U playlist file.

    Args:
        tracks: Playlist rows ordered by position
        date_iso: Playlist date
        block_name: Block name
        output_path: Output M3U file path
    """
    with open(output_path, "w", encoding="utf-8") as f:
        f.write("#EXTM3U\n")
        f.write(f"#PLAYLIST:{date_iso} - {block_name}\n")
        f.write("#EXTENC:UTF-8\n")
        for track in tracks:
            duration = _format_duration(track.get("duration_sec"))
            f.write(f"#EXTINF:{duration},{track['artist']} - {track['title']}\n")
            f.write(f"{track.get('uri') or ''}\n")
    logger.info(f"Wrote M3U playlist: {output_path}")


def _load_playlist(database, date_iso: str, block_name: str) -> List[Dict[str, Any]]:
    tracks = database.get_playlist(date_iso, block_name)
    if not tracks:
        raise ExportError(f"Playlist not found for {date_iso} {block_name}")
    return tracks


def _record(database, date_iso: str, block_name: str, export_format: str, target, count: int) -> None:
    try:
        database.record_export(date_iso, block_name, export_format, target, count)
    except sqlite3.Error as e:
        # History is bookkeeping; the export itself already succeeded
        logger.error(f"Failed to register export in history: {e}")


def export_block(
    database,
    date_iso: str,
    block_name: str,
    export_format: str = "csv",
    output_dir: str = "data/exports",
) -> Path:
    """
    Export a persisted (date, block) playlist to a file.

    Args:
        database: Connected Database
        date_iso: Playlist date
        block_name: Block name
        export_format: "csv" or "m3u"
        output_dir: Directory for the file

    Returns:
        Path of the written file

    Raises:
        ExportError: Unknown format, missing playlist or unwritable file
    """
    if export_format not in EXPORT_FORMATS:
        raise ExportError(f"Invalid format {export_format!r}. Must be one of: {', '.join(EXPORT_FORMATS)}")

    tracks = _load_playlist(database, date_iso, block_name)

    output_path = Path(output_dir)
    output_path = output_path / export_filename(date_iso, block_name, export_format)
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        if export_format == "csv":
            write_csv(tracks, date_iso, block_name, output_path)
        else:
            write_m3u(tracks, date_iso, block_name, output_path)
    except OSError as e:
        raise ExportError(f"Failed to write {output_path}: {e}") from e

    _record(database, date_iso, block_name, export_format, str(output_path), len(tracks))
    return output_path


def push_block(database, sink, date_iso: str, block_name: str) -> Dict[str, Any]:
    """
    Push a persisted (date, block) playlist to the remote sink.

    Args:
        database: Connected Database
        sink: RemotePlaylistSink
        date_iso: Playlist date
        block_name: Block name

    Returns:
        Sink result {"playlist_id", "url", "tracks_added"}

    Raises:
        ExportError: Missing playlist
        SinkError: Remote failure
    """
    tracks = _load_playlist(database, date_iso, block_name)
    total_minutes = round(sum(float(t["duration_sec"]) for t in tracks) / 60)

    result = sink.push_playlist(
        name=f"{date_iso} {block_name}",
        description=(
            f"Generated playlist for {block_name} block on {date_iso}. "
            f"{len(tracks)} tracks, {total_minutes} minutes."
        ),
        uris=[t.get("uri") for t in tracks],
    )
    _record(database, date_iso, block_name, "remote", result.get("url"), result["tracks_added"])
    return result
