"""
SQLite Database Management for ServiceDJ.

Manages the track catalog, play block / rotation configuration, generated
playlists and schedule state.

- Schema: tracks, play_blocks, rotation_rules (configuration)
- History: generated_items (one row per placed track) drives track cooldown
  and artist usage
- block_runs: one row per (date, block) generation; its UNIQUE key is the
  conflict target that serializes concurrent generations
"""

import sqlite3
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, List, Dict, Any, Iterator

from .models import (
    Candidate,
    CandidateFilters,
    DayStatus,
    GeneratedItem,
    PlayBlock,
    RotationRules,
    RunStatus,
    ScheduleDay,
    Track,
    utc_now,
    validate_track_fields,
)

logger = logging.getLogger(__name__)

# Track keyword -> tracks column
TRACK_COLUMNS = {
    "title": "title",
    "artist": "artist",
    "uri": "uri",
    "duration_seconds": "duration_sec",
    "tempo_bpm": "bpm",
    "energy": "energy",
    "is_instrumental": "instrumental",
    "is_explicit": "explicit",
    "source_tag": "source",
}


class TrackError(Exception):
    """Base class for catalog edit failures."""
    pass


class DuplicateTrackError(TrackError):
    """Raised when a URI is already in the catalog."""
    pass


class TrackInUseError(TrackError):
    """Raised when deleting a track that is placed in a generated playlist."""
    pass


class Database:
    """SQLite database manager for ServiceDJ."""

    SCHEMA_VERSION = 2

    # SQL schema definition
    SCHEMA = """
    -- Catalog: imported track metadata
    CREATE TABLE IF NOT EXISTS tracks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        title TEXT NOT NULL,
        artist TEXT NOT NULL,
        uri TEXT NOT NULL UNIQUE,
        duration_sec REAL NOT NULL,
        bpm REAL,
        energy REAL,
        instrumental INTEGER,
        explicit INTEGER NOT NULL DEFAULT 0,
        source TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    -- Service windows
    CREATE TABLE IF NOT EXISTS play_blocks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        target_min INTEGER NOT NULL,
        bpm_min REAL NOT NULL,
        bpm_max REAL NOT NULL,
        energy_min REAL NOT NULL,
        energy_max REAL NOT NULL,
        prefer_instrumental INTEGER NOT NULL DEFAULT 0,
        color TEXT,
        updated_at TEXT NOT NULL
    );

    -- Rotation rules: latest row is current
    CREATE TABLE IF NOT EXISTS rotation_rules (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        track_cooldown_days INTEGER NOT NULL,
        artist_cooldown_min INTEGER NOT NULL,
        exclude_explicit INTEGER NOT NULL DEFAULT 1,
        normalize_loudness INTEGER NOT NULL DEFAULT 1,
        updated_at TEXT NOT NULL
    );

    -- Generated playlists: one row per placed track
    CREATE TABLE IF NOT EXISTS generated_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        track_id INTEGER NOT NULL,
        artist TEXT NOT NULL,
        date_iso TEXT NOT NULL,
        block_id INTEGER NOT NULL,
        position INTEGER NOT NULL,
        generated_at TEXT NOT NULL,
        FOREIGN KEY (track_id) REFERENCES tracks(id) ON DELETE RESTRICT,
        FOREIGN KEY (block_id) REFERENCES play_blocks(id) ON DELETE CASCADE,
        UNIQUE (date_iso, block_id, position),
        UNIQUE (date_iso, block_id, track_id)
    );

    -- Per (date, block) generation state
    CREATE TABLE IF NOT EXISTS block_runs (
        date_iso TEXT NOT NULL,
        block_id INTEGER NOT NULL,
        status TEXT NOT NULL,
        started_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        PRIMARY KEY (date_iso, block_id)
    );

    CREATE TABLE IF NOT EXISTS schedule_days (
        date_iso TEXT PRIMARY KEY,
        status TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS catalog_sources (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        type TEXT NOT NULL,
        value TEXT NOT NULL,
        status TEXT NOT NULL,
        tracks_imported INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        imported_at TEXT
    );

    CREATE TABLE IF NOT EXISTS export_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        date_iso TEXT NOT NULL,
        block_name TEXT NOT NULL,
        format TEXT NOT NULL,
        file_path TEXT,
        track_count INTEGER NOT NULL,
        exported_at TEXT NOT NULL,
        UNIQUE (date_iso, block_name, format)
    );

    -- Schema version tracking
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        updated_at TEXT NOT NULL
    );

    -- Indices for common queries
    CREATE INDEX IF NOT EXISTS idx_tracks_artist ON tracks(artist);
    CREATE INDEX IF NOT EXISTS idx_items_track_date ON generated_items(track_id, date_iso);
    CREATE INDEX IF NOT EXISTS idx_items_artist_date ON generated_items(artist, date_iso);
    CREATE INDEX IF NOT EXISTS idx_items_date_block ON generated_items(date_iso, block_id);
    """

    def __init__(self, db_path: str = "data/db/servicedj.sqlite"):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn: Optional[sqlite3.Connection] = None

    def connect(self) -> None:
        """Open database connection and initialize schema."""
        # Autocommit; multi-statement writes go through transaction()
        self.conn = sqlite3.connect(str(self.db_path), isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        logger.info(f"Connected to database: {self.db_path}")
        self._initialize_schema()

    def disconnect(self) -> None:
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("Database disconnected")

    def __enter__(self) -> "Database":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    def _initialize_schema(self) -> None:
        """Initialize or migrate schema."""
        assert self.conn is not None
        cursor = self.conn.cursor()

        cursor.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
        )
        if not cursor.fetchone():
            logger.info("Initializing database schema...")
            cursor.executescript(self.SCHEMA)
            cursor.execute(
                "INSERT INTO schema_version (version, updated_at) VALUES (?, ?)",
                (self.SCHEMA_VERSION, utc_now()),
            )
            logger.info(f"✅ Database schema initialized (v{self.SCHEMA_VERSION})")
        else:
            cursor.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
            current_version = cursor.fetchone()[0]
            if current_version < self.SCHEMA_VERSION:
                logger.warning(
                    f"Schema version mismatch: {current_version} < {self.SCHEMA_VERSION}. "
                    f"Consider running migration."
                )

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a group of statements atomically.

        Takes the write lock up front (BEGIN IMMEDIATE) so a claim and the
        statements depending on it cannot interleave with another writer.
        """
        assert self.conn is not None
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            yield self.conn
        except BaseException:
            self.conn.rollback()
            raise
        else:
            self.conn.commit()

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def add_track(
        self,
        title: str,
        artist: str,
        uri: str,
        duration_seconds: float,
        tempo_bpm: Optional[float] = None,
        energy: Optional[float] = None,
        is_instrumental: Optional[bool] = None,
        is_explicit: bool = False,
        source_tag: str = "manual",
    ) -> int:
        """
        Insert a track into the catalog.

        Returns:
            New track id.

        Raises:
            DuplicateTrackError: If the URI is already in the catalog.
        """
        assert self.conn is not None
        now = utc_now()
        try:
            cursor = self.conn.execute(
                """
                INSERT INTO tracks (
                    title, artist, uri, duration_sec, bpm, energy,
                    instrumental, explicit, source, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    title,
                    artist,
                    uri,
                    duration_seconds,
                    tempo_bpm,
                    energy,
                    None if is_instrumental is None else int(is_instrumental),
                    int(is_explicit),
                    source_tag,
                    now,
                    now,
                ),
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateTrackError(f"Track with URI {uri} already exists") from e
        logger.debug(f"Added track {cursor.lastrowid}: {artist} - {title}")
        return cursor.lastrowid

    def get_track(self, track_id: int) -> Optional[Track]:
        assert self.conn is not None
        row = self.conn.execute("SELECT * FROM tracks WHERE id = ?", (track_id,)).fetchone()
        return Track.from_row(dict(row)) if row else None

    def get_track_by_uri(self, uri: str) -> Optional[Track]:
        assert self.conn is not None
        row = self.conn.execute("SELECT * FROM tracks WHERE uri = ?", (uri,)).fetchone()
        return Track.from_row(dict(row)) if row else None

    def list_tracks(
        self,
        artist: Optional[str] = None,
        source: Optional[str] = None,
        bpm_min: Optional[float] = None,
        bpm_max: Optional[float] = None,
        energy_min: Optional[float] = None,
        energy_max: Optional[float] = None,
        instrumental: Optional[bool] = None,
        explicit: Optional[bool] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Track]:
        """
        List catalog tracks with optional filters.

        Args:
            artist: Case-insensitive substring of the artist name.
            source: Exact source tag (e.g. "csv").
            bpm_min, bpm_max: Inclusive tempo range; unknown tempo never matches.
            energy_min, energy_max: Inclusive energy range; unknown energy never matches.
            instrumental: Exact instrumental flag; unknown never matches.
            explicit: Exact explicit flag.
            limit: Maximum rows (None for all).
            offset: Rows to skip.

        Returns:
            List of Track records ordered by id.
        """
        assert self.conn is not None
        query = "SELECT * FROM tracks WHERE 1=1"
        params: List[Any] = []
        if artist:
            query += " AND LOWER(artist) LIKE LOWER(?)"
            params.append(f"%{artist}%")
        if source:
            query += " AND source = ?"
            params.append(source)
        if bpm_min is not None:
            query += " AND bpm >= ?"
            params.append(bpm_min)
        if bpm_max is not None:
            query += " AND bpm <= ?"
            params.append(bpm_max)
        if energy_min is not None:
            query += " AND energy >= ?"
            params.append(energy_min)
        if energy_max is not None:
            query += " AND energy <= ?"
            params.append(energy_max)
        if instrumental is not None:
            query += " AND instrumental = ?"
            params.append(int(instrumental))
        if explicit is not None:
            query += " AND explicit = ?"
            params.append(int(explicit))
        query += " ORDER BY id LIMIT ? OFFSET ?"
        params.extend([-1 if limit is None else limit, offset])
        return [Track.from_row(dict(row)) for row in self.conn.execute(query, params)]

    def update_track(self, track_id: int, **fields: Any) -> Optional[Track]:
        """
        Administrative edit of a catalog track.

        Args:
            track_id: Track to edit.
            **fields: Any of the add_track keywords (title, artist, uri,
                duration_seconds, tempo_bpm, energy, is_instrumental,
                is_explicit, source_tag).

        Returns:
            The updated Track, or None if no such track exists.

        Raises:
            ValueError: No fields given, unknown field, or invalid value.
            DuplicateTrackError: The new URI belongs to another track.
        """
        assert self.conn is not None
        if not fields:
            raise ValueError("No valid fields to update")
        validate_track_fields(fields)

        values: Dict[str, Any] = {}
        for name, value in fields.items():
            if name == "is_instrumental":
                value = None if value is None else int(value)
            elif name == "is_explicit":
                value = int(bool(value))
            values[TRACK_COLUMNS[name]] = value

        assignments = ", ".join(f"{column} = ?" for column in values)
        try:
            cursor = self.conn.execute(
                f"UPDATE tracks SET {assignments}, updated_at = ? WHERE id = ?",
                [*values.values(), utc_now(), track_id],
            )
        except sqlite3.IntegrityError as e:
            raise DuplicateTrackError(f"Track with URI {fields.get('uri')} already exists") from e

        if cursor.rowcount == 0:
            return None
        logger.info(f"Updated track {track_id}: {', '.join(values)}")
        return self.get_track(track_id)

    def delete_track(self, track_id: int) -> bool:
        """
        Remove a track from the catalog.

        Tracks placed in a generated playlist are kept: their items define
        playlist positions and the play history used by cooldowns.

        Returns:
            True if a track was deleted, False if it did not exist.

        Raises:
            TrackInUseError: If the track appears in any generated playlist.
        """
        assert self.conn is not None
        placements = self.conn.execute(
            "SELECT COUNT(*) FROM generated_items WHERE track_id = ?", (track_id,)
        ).fetchone()[0]
        if placements:
            raise TrackInUseError(
                f"Track {track_id} is placed in {placements} generated playlist slots; "
                f"regenerate those playlists before deleting it"
            )
        cursor = self.conn.execute("DELETE FROM tracks WHERE id = ?", (track_id,))
        return cursor.rowcount > 0

    def query_candidates(self, filters: CandidateFilters) -> List[Candidate]:
        """
        Return catalog tracks eligible under the given filters.

        Last played date is taken over every generated item (any block, any
        date). Artist usage counts items strictly after the cutoff date.

        Args:
            filters: Cutoff date and content/rotation switches.

        Returns:
            Candidates annotated with last played date and recent artist usage.
        """
        assert self.conn is not None
        rows = self.conn.execute(
            """
            SELECT t.*,
                   last_played.date_iso AS last_played_date,
                   COALESCE(artist_usage.usage_count, 0) AS recent_artist_usage
            FROM tracks t
            LEFT JOIN (
                SELECT track_id, MAX(date_iso) AS date_iso
                FROM generated_items
                GROUP BY track_id
            ) last_played ON t.id = last_played.track_id
            LEFT JOIN (
                SELECT artist, COUNT(*) AS usage_count
                FROM generated_items
                WHERE date_iso > ?
                GROUP BY artist
            ) artist_usage ON t.artist = artist_usage.artist
            WHERE (? = 0 OR t.explicit = 0)
              AND (? = 0 OR t.instrumental = 1 OR t.instrumental IS NULL)
              AND (? = 1 OR last_played.date_iso IS NULL OR last_played.date_iso <= ?)
            ORDER BY t.id
            """,
            (
                filters.cutoff_date,
                int(filters.exclude_explicit),
                int(filters.prefer_instrumental),
                int(filters.admin_override),
                filters.cutoff_date,
            ),
        ).fetchall()

        return [
            Candidate(
                track=Track.from_row(dict(row)),
                last_played_date=row["last_played_date"],
                recent_artist_usage=int(row["recent_artist_usage"]),
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_play_block(self, name: str) -> Optional[PlayBlock]:
        assert self.conn is not None
        row = self.conn.execute("SELECT * FROM play_blocks WHERE name = ?", (name,)).fetchone()
        return PlayBlock.from_row(dict(row)) if row else None

    def list_play_blocks(self) -> List[PlayBlock]:
        assert self.conn is not None
        rows = self.conn.execute("SELECT * FROM play_blocks ORDER BY id").fetchall()
        return [PlayBlock.from_row(dict(row)) for row in rows]

    def save_play_block(self, block: PlayBlock) -> int:
        """Insert or update a play block by name. Returns its id."""
        assert self.conn is not None
        self.conn.execute(
            """
            INSERT INTO play_blocks (
                name, target_min, bpm_min, bpm_max, energy_min, energy_max,
                prefer_instrumental, color, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(name) DO UPDATE SET
                target_min = excluded.target_min,
                bpm_min = excluded.bpm_min,
                bpm_max = excluded.bpm_max,
                energy_min = excluded.energy_min,
                energy_max = excluded.energy_max,
                prefer_instrumental = excluded.prefer_instrumental,
                color = excluded.color,
                updated_at = excluded.updated_at
            """,
            (
                block.name,
                block.target_minutes,
                block.tempo_range[0],
                block.tempo_range[1],
                block.energy_range[0],
                block.energy_range[1],
                int(block.prefer_instrumental),
                block.color_tag,
                utc_now(),
            ),
        )
        row = self.conn.execute("SELECT id FROM play_blocks WHERE name = ?", (block.name,)).fetchone()
        logger.debug(f"Saved play block {block.name} (id={row['id']})")
        return row["id"]

    def get_rotation_rules(self) -> Optional[RotationRules]:
        assert self.conn is not None
        row = self.conn.execute(
            "SELECT * FROM rotation_rules ORDER BY id DESC LIMIT 1"
        ).fetchone()
        return RotationRules.from_row(dict(row)) if row else None

    def save_rotation_rules(self, rules: RotationRules) -> None:
        """Store a new current rotation rules row."""
        assert self.conn is not None
        self.conn.execute(
            """
            INSERT INTO rotation_rules (
                track_cooldown_days, artist_cooldown_min,
                exclude_explicit, normalize_loudness, updated_at
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (
                rules.track_cooldown_days,
                rules.artist_cooldown_minutes,
                int(rules.exclude_explicit),
                int(rules.normalize_loudness),
                utc_now(),
            ),
        )

    # ------------------------------------------------------------------
    # Generated playlists
    # ------------------------------------------------------------------

    def claim_block_run(self, date_iso: str, block_id: int, force: bool = False) -> bool:
        """
        Atomically take ownership of a (date, block) generation.

        Without force, the claim only succeeds when the pair has no items and
        no run, or its previous run failed. With force, existing items are
        deleted and the run restarts.

        Returns:
            True if this caller now owns the generation.
        """
        now = utc_now()
        with self.transaction() as conn:
            if not force:
                existing = conn.execute(
                    "SELECT COUNT(*) FROM generated_items WHERE date_iso = ? AND block_id = ?",
                    (date_iso, block_id),
                ).fetchone()[0]
                if existing:
                    return False

            cursor = conn.execute(
                """
                INSERT INTO block_runs (date_iso, block_id, status, started_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(date_iso, block_id) DO UPDATE SET
                    status = excluded.status,
                    started_at = excluded.started_at,
                    updated_at = excluded.updated_at
                WHERE block_runs.status = ? OR ? = 1
                """,
                (
                    date_iso,
                    block_id,
                    RunStatus.GENERATING.value,
                    now,
                    now,
                    RunStatus.FAILED.value,
                    int(force),
                ),
            )
            if cursor.rowcount == 0:
                return False

            if force:
                deleted = conn.execute(
                    "DELETE FROM generated_items WHERE date_iso = ? AND block_id = ?",
                    (date_iso, block_id),
                ).rowcount
                if deleted:
                    logger.info(f"Cleared {deleted} existing items for {date_iso} block {block_id}")
        return True

    def set_block_run_status(self, date_iso: str, block_id: int, status: RunStatus) -> None:
        assert self.conn is not None
        self.conn.execute(
            "UPDATE block_runs SET status = ?, updated_at = ? WHERE date_iso = ? AND block_id = ?",
            (status.value, utc_now(), date_iso, block_id),
        )

    def get_block_run_status(self, date_iso: str, block_id: int) -> Optional[RunStatus]:
        assert self.conn is not None
        row = self.conn.execute(
            "SELECT status FROM block_runs WHERE date_iso = ? AND block_id = ?",
            (date_iso, block_id),
        ).fetchone()
        return RunStatus(row["status"]) if row else None

    def record_placement(self, item: GeneratedItem) -> None:
        """Insert one generated item. Callers batch these inside transaction()."""
        assert self.conn is not None
        self.conn.execute(
            """
            INSERT INTO generated_items (track_id, artist, date_iso, block_id, position, generated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (item.track_id, item.artist, item.date_iso, item.block_id, item.position, item.generated_at),
        )

    def count_items(self, date_iso: str, block_id: int) -> int:
        assert self.conn is not None
        return self.conn.execute(
            "SELECT COUNT(*) FROM generated_items WHERE date_iso = ? AND block_id = ?",
            (date_iso, block_id),
        ).fetchone()[0]

    def get_items(self, date_iso: str, block_id: int) -> List[GeneratedItem]:
        assert self.conn is not None
        rows = self.conn.execute(
            """
            SELECT * FROM generated_items
            WHERE date_iso = ? AND block_id = ?
            ORDER BY position
            """,
            (date_iso, block_id),
        ).fetchall()
        return [
            GeneratedItem(
                track_id=row["track_id"],
                artist=row["artist"],
                date_iso=row["date_iso"],
                block_id=row["block_id"],
                position=row["position"],
                generated_at=row["generated_at"],
            )
            for row in rows
        ]

    def get_playlist(self, date_iso: str, block_name: str) -> List[Dict[str, Any]]:
        """
        Ordered tracks of a persisted (date, block) playlist.

        Returns:
            List of dicts (position, track_id, title, artist, duration_sec,
            bpm, energy, uri); empty if nothing was generated.
        """
        assert self.conn is not None
        rows = self.conn.execute(
            """
            SELECT gi.position, t.id AS track_id, t.title, t.artist,
                   t.duration_sec, t.bpm, t.energy, t.uri
            FROM generated_items gi
            JOIN tracks t ON gi.track_id = t.id
            JOIN play_blocks pb ON gi.block_id = pb.id
            WHERE gi.date_iso = ? AND pb.name = ?
            ORDER BY gi.position
            """,
            (date_iso, block_name),
        ).fetchall()
        return [dict(row) for row in rows]

    def list_playlists(
        self,
        date_iso: Optional[str] = None,
        block_name: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Summaries of generated playlists, newest date first."""
        assert self.conn is not None
        query = """
            SELECT gi.date_iso, pb.name AS block_name, pb.id AS block_id,
                   pb.target_min, pb.color,
                   COUNT(gi.id) AS track_count,
                   SUM(t.duration_sec) AS total_duration_sec,
                   MIN(gi.generated_at) AS generated_at
            FROM generated_items gi
            JOIN tracks t ON gi.track_id = t.id
            JOIN play_blocks pb ON gi.block_id = pb.id
            WHERE 1=1
        """
        params: List[Any] = []
        if date_iso:
            query += " AND gi.date_iso = ?"
            params.append(date_iso)
        if block_name:
            query += " AND pb.name = ?"
            params.append(block_name)
        if start_date:
            query += " AND gi.date_iso >= ?"
            params.append(start_date)
        if end_date:
            query += " AND gi.date_iso <= ?"
            params.append(end_date)
        query += """
            GROUP BY gi.date_iso, pb.id
            ORDER BY gi.date_iso DESC, pb.id
            LIMIT ? OFFSET ?
        """
        params.extend([limit, offset])
        return [dict(row) for row in self.conn.execute(query, params)]

    # ------------------------------------------------------------------
    # Schedule days
    # ------------------------------------------------------------------

    def get_day(self, date_iso: str) -> Optional[ScheduleDay]:
        assert self.conn is not None
        row = self.conn.execute(
            "SELECT * FROM schedule_days WHERE date_iso = ?", (date_iso,)
        ).fetchone()
        return ScheduleDay(date_iso=row["date_iso"], status=DayStatus(row["status"])) if row else None

    def set_day_status(self, date_iso: str, status: DayStatus) -> None:
        """Create or update a schedule day."""
        assert self.conn is not None
        now = utc_now()
        self.conn.execute(
            """
            INSERT INTO schedule_days (date_iso, status, created_at, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(date_iso) DO UPDATE SET
                status = excluded.status,
                updated_at = excluded.updated_at
            """,
            (date_iso, status.value, now, now),
        )
        logger.debug(f"Schedule day {date_iso} -> {status.value}")

    def list_schedule(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: int = 30,
    ) -> List[Dict[str, Any]]:
        """
        Schedule days with per-block generation stats.

        Returns:
            List of {date_iso, status, blocks: [{block_id, block_name,
            target_min, color, track_count, duration_sec, generated}]}.
        """
        assert self.conn is not None
        query = "SELECT * FROM schedule_days WHERE 1=1"
        params: List[Any] = []
        if start_date:
            query += " AND date_iso >= ?"
            params.append(start_date)
        if end_date:
            query += " AND date_iso <= ?"
            params.append(end_date)
        query += " ORDER BY date_iso DESC LIMIT ?"
        params.append(limit)
        days = self.conn.execute(query, params).fetchall()

        block_rows = self.conn.execute("SELECT * FROM play_blocks ORDER BY id").fetchall()
        schedule = []
        for day in days:
            stats = {
                row["block_id"]: row
                for row in self.conn.execute(
                    """
                    SELECT gi.block_id, COUNT(*) AS track_count,
                           SUM(t.duration_sec) AS duration_sec
                    FROM generated_items gi
                    JOIN tracks t ON gi.track_id = t.id
                    WHERE gi.date_iso = ?
                    GROUP BY gi.block_id
                    """,
                    (day["date_iso"],),
                )
            }
            blocks = []
            for block in block_rows:
                stat = stats.get(block["id"])
                track_count = stat["track_count"] if stat else 0
                blocks.append({
                    "block_id": block["id"],
                    "block_name": block["name"],
                    "target_min": block["target_min"],
                    "color": block["color"],
                    "track_count": track_count,
                    "duration_sec": stat["duration_sec"] if stat else 0,
                    "generated": track_count > 0,
                })
            schedule.append({"date_iso": day["date_iso"], "status": day["status"], "blocks": blocks})
        return schedule

    # ------------------------------------------------------------------
    # Import / export bookkeeping
    # ------------------------------------------------------------------

    def create_catalog_source(self, source_type: str, value: str) -> int:
        assert self.conn is not None
        cursor = self.conn.execute(
            """
            INSERT INTO catalog_sources (type, value, status, created_at)
            VALUES (?, ?, 'importing', ?)
            """,
            (source_type, value, utc_now()),
        )
        return cursor.lastrowid

    def finish_catalog_source(self, source_id: int, status: str, tracks_imported: int = 0) -> None:
        assert self.conn is not None
        self.conn.execute(
            """
            UPDATE catalog_sources
            SET status = ?, tracks_imported = ?, imported_at = ?
            WHERE id = ?
            """,
            (status, tracks_imported, utc_now(), source_id),
        )

    def list_catalog_sources(self) -> List[Dict[str, Any]]:
        assert self.conn is not None
        rows = self.conn.execute("SELECT * FROM catalog_sources ORDER BY id DESC").fetchall()
        return [dict(row) for row in rows]

    def record_export(
        self,
        date_iso: str,
        block_name: str,
        export_format: str,
        file_path: Optional[str],
        track_count: int,
    ) -> None:
        """Create or refresh the export history entry for (date, block, format)."""
        assert self.conn is not None
        self.conn.execute(
            """
            INSERT INTO export_history (date_iso, block_name, format, file_path, track_count, exported_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(date_iso, block_name, format) DO UPDATE SET
                file_path = excluded.file_path,
                track_count = excluded.track_count,
                exported_at = excluded.exported_at
            """,
            (date_iso, block_name, export_format, file_path, track_count, utc_now()),
        )

    def list_exports(self, limit: int = 50) -> List[Dict[str, Any]]:
        assert self.conn is not None
        rows = self.conn.execute(
            "SELECT * FROM export_history ORDER BY exported_at DESC LIMIT ?", (limit,)
        ).fetchall()
        return [dict(row) for row in rows]

    def get_stats(self) -> Dict[str, Any]:
        """
        Get catalog statistics.

        Returns:
            Dictionary with counts and metadata coverage.
        """
        assert self.conn is not None
        cursor = self.conn.cursor()

        cursor.execute("SELECT COUNT(*) FROM tracks")
        total_tracks = cursor.fetchone()[0]

        cursor.execute("SELECT COUNT(*) FROM tracks WHERE bpm IS NOT NULL")
        with_bpm = cursor.fetchone()[0]

        cursor.execute("SELECT COUNT(*) FROM tracks WHERE energy IS NOT NULL")
        with_energy = cursor.fetchone()[0]

        cursor.execute("SELECT COUNT(DISTINCT artist) FROM tracks")
        artists = cursor.fetchone()[0]

        cursor.execute("SELECT COUNT(*) FROM generated_items")
        generated_items = cursor.fetchone()[0]

        return {
            "total_tracks": total_tracks,
            "tracks_with_bpm": with_bpm,
            "tracks_with_energy": with_energy,
            "distinct_artists": artists,
            "generated_items": generated_items,
        }
