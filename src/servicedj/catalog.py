"""
Catalog import: load tracks from CSV files or row dicts.

Required columns: title, artist, uri, duration_sec
Optional columns: bpm, energy, instrumental, explicit

Invalid rows and URIs already in the catalog are skipped with a warning.
Every import is recorded as a catalog source (importing -> completed|failed).
"""

import csv
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .db import DuplicateTrackError
from .models import validate_track_fields

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("title", "artist", "uri", "duration_sec")
TRUE_VALUES = {"1", "true", "yes", "y", "t"}
FALSE_VALUES = {"0", "false", "no", "n", "f"}


class CatalogImportError(Exception):
    """Raised when a whole import cannot proceed (unreadable file, bad header)."""
    pass


@dataclass
class ImportResult:
    source_id: int
    imported_ids: List[int] = field(default_factory=list)
    skipped_invalid: int = 0
    skipped_duplicate: int = 0

    @property
    def tracks_imported(self) -> int:
        return len(self.imported_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "tracks_imported": self.tracks_imported,
            "skipped_invalid": self.skipped_invalid,
            "skipped_duplicate": self.skipped_duplicate,
        }


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_float(value: Any) -> Optional[float]:
    if _blank(value):
        return None
    return float(value)


def _parse_bool(value: Any) -> Optional[bool]:
    """Parse a loose boolean; blank means unknown."""
    if _blank(value):
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ValueError(f"Not a boolean: {value!r}")


def parse_track_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Validate one import row and convert it to Database.add_track kwargs.

    Raises:
        ValueError: If a required field is missing or a value is malformed
    """
    missing = [c for c in REQUIRED_COLUMNS if _blank(row.get(c))]
    if missing:
        raise ValueError(f"missing {', '.join(missing)}")

    fields = {
        "title": str(row["title"]).strip(),
        "artist": str(row["artist"]).strip(),
        "uri": str(row["uri"]).strip(),
        "duration_seconds": float(row["duration_sec"]),
        "tempo_bpm": _parse_float(row.get("bpm")),
        "energy": _parse_float(row.get("energy")),
        "is_instrumental": _parse_bool(row.get("instrumental")),
        "is_explicit": bool(_parse_bool(row.get("explicit"))),
    }
    validate_track_fields(fields)
    return fields


def import_tracks(
    database,
    rows: Iterable[Mapping[str, Any]],
    source_type: str = "csv",
    source_value: str = "inline",
) -> ImportResult:
    """
    Import track rows into the catalog.

    Args:
        database: Connected Database
        rows: Mappings with the import columns
        source_type: Catalog source type recorded for this import
        source_value: File path or other description of the source

    Returns:
        ImportResult with imported ids and skip counts
    """
    source_id = database.create_catalog_source(source_type, source_value)
    result = ImportResult(source_id=source_id)

    try:
        for line, row in enumerate(rows, start=1):
            try:
                fields = parse_track_row(row)
            except (ValueError, TypeError) as e:
                logger.warning(f"Skipping invalid track at row {line}: {e}")
                result.skipped_invalid += 1
                continue

            try:
                track_id = database.add_track(source_tag=source_type, **fields)
            except DuplicateTrackError:
                logger.warning(f"Track already exists: {fields['uri']}")
                result.skipped_duplicate += 1
                continue

            result.imported_ids.append(track_id)
    except Exception:
        database.finish_catalog_source(source_id, "failed", result.tracks_imported)
        raise

    database.finish_catalog_source(source_id, "completed", result.tracks_imported)
    logger.info(
        f"✅ Imported {result.tracks_imported} tracks from {source_type}:{source_value} "
        f"({result.skipped_invalid} invalid, {result.skipped_duplicate} duplicates)"
    )
    return result


def import_csv(database, csv_path: str) -> ImportResult:
    """
    Import a CSV file with a header row.

    Raises:
        CatalogImportError: If the file is unreadable or lacks required columns
    """
    path = Path(csv_path)
    try:
        with open(path, newline="", encoding="utf-8") as f:
            reader = csv.DictReader(f)
            header = [h.strip() for h in (reader.fieldnames or [])]
            missing = [c for c in REQUIRED_COLUMNS if c not in header]
            if missing:
                raise CatalogImportError(
                    f"{path} is missing required columns: {', '.join(missing)}"
                )
            reader.fieldnames = header
            return import_tracks(database, reader, source_type="csv", source_value=str(path))
    except OSError as e:
        raise CatalogImportError(f"Cannot read {path}: {e}")
