"""
Tests for catalog administration and playlist listing.

Covers track edits, filtered listing, deletion of tracks that generated
playlists still reference, and the export script's list mode.
"""

import importlib.util
import logging
import sqlite3
from pathlib import Path

import pytest

from servicedj.config import Config
from servicedj.db import Database, DuplicateTrackError, TrackInUseError
from servicedj.generate.playlist import BlockGenerator
from servicedj.generate.random_source import SeededRandom

DATE = "2025-08-13"
EXPORT_SCRIPT = Path(__file__).parent.parent / "src" / "scripts" / "export_playlist.py"


def load_export_script():
    spec = importlib.util.spec_from_file_location("export_playlist", EXPORT_SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def generator(database):
    return BlockGenerator(database, rng=SeededRandom(42))


class TestUpdateTrack:
    """Test administrative track edits."""

    def test_updates_fields(self, database, add_tracks):
        (track_id,) = add_tracks(1)

        track = database.update_track(
            track_id, title="Renamed", energy=0.9, tempo_bpm=124.0, is_instrumental=True
        )

        assert track.title == "Renamed"
        assert track.energy == 0.9
        assert track.tempo_bpm == 124.0
        assert track.is_instrumental is True
        assert database.get_track(track_id).title == "Renamed"
        assert database.get_track(track_id).artist == "Artist 0"

    def test_no_fields(self, database, add_tracks):
        (track_id,) = add_tracks(1)
        with pytest.raises(ValueError, match="No valid fields"):
            database.update_track(track_id)

    def test_unknown_field(self, database, add_tracks):
        (track_id,) = add_tracks(1)
        with pytest.raises(ValueError, match="Unknown track fields"):
            database.update_track(track_id, mood="happy")

    @pytest.mark.parametrize(
        "fields",
        [
            {"energy": 1.5},
            {"tempo_bpm": 0},
            {"duration_seconds": -10},
            {"title": "  "},
        ],
    )
    def test_invalid_values(self, database, add_tracks, fields):
        (track_id,) = add_tracks(1)
        with pytest.raises(ValueError):
            database.update_track(track_id, **fields)
        assert database.get_track(track_id).title == "Track 0"

    def test_duplicate_uri(self, database, add_tracks):
        first, second = add_tracks(2)
        with pytest.raises(DuplicateTrackError, match="spotify:track:0000"):
            database.update_track(second, uri="spotify:track:0000")
        assert database.get_track(second).uri == "spotify:track:0001"

    def test_missing_track(self, database):
        assert database.update_track(999, title="Nobody") is None


class TestListTracks:
    """Test catalog listing filters."""

    def test_unfiltered_in_id_order(self, database, add_tracks):
        ids = add_tracks(5)
        assert [t.id for t in database.list_tracks()] == ids

    def test_artist_substring_case_insensitive(self, database, add_tracks):
        add_tracks(3)
        database.add_track(title="Song", artist="The Quiet Trio", uri="u:1", duration_seconds=200)
        assert [t.artist for t in database.list_tracks(artist="quiet")] == ["The Quiet Trio"]
        assert len(database.list_tracks(artist="ARTIST")) == 3

    def test_source(self, database, add_tracks):
        add_tracks(2)
        imported = add_tracks(2, start=10, source_tag="csv")
        assert [t.id for t in database.list_tracks(source="csv")] == imported

    def test_bpm_range(self, database, add_tracks):
        add_tracks(10)
        tracks = database.list_tracks(bpm_min=83, bpm_max=85)
        assert [t.tempo_bpm for t in tracks] == [83.0, 84.0, 85.0]

    def test_energy_range(self, database, add_tracks):
        add_tracks(10)
        database.add_track(title="Unknown", artist="X", uri="u:1", duration_seconds=200)
        tracks = database.list_tracks(energy_min=0.7)
        assert [t.energy for t in tracks] == [0.7, 0.8, 0.9]
        assert len(database.list_tracks(energy_max=0.2)) == 3

    def test_flags(self, database, add_tracks):
        add_tracks(2)
        vocal = add_tracks(1, start=10, is_instrumental=False, is_explicit=True)
        instrumental = add_tracks(1, start=20, is_instrumental=True)

        assert [t.id for t in database.list_tracks(instrumental=True)] == instrumental
        assert [t.id for t in database.list_tracks(instrumental=False)] == vocal
        assert [t.id for t in database.list_tracks(explicit=True)] == vocal
        assert len(database.list_tracks(explicit=False)) == 3

    def test_limit_offset(self, database, add_tracks):
        ids = add_tracks(10)
        assert [t.id for t in database.list_tracks(limit=3)] == ids[:3]
        assert [t.id for t in database.list_tracks(limit=3, offset=8)] == ids[8:]
        assert [t.id for t in database.list_tracks(offset=7)] == ids[7:]


class TestDeleteTrack:
    """Test catalog deletion against generated playlists."""

    def test_placed_track_refused(self, database, catalog, generator):
        result = generator.generate_block(DATE, "Dinner")
        assert result.success
        block = database.get_play_block("Dinner")
        placed = result.tracks[2]["track_id"]

        with pytest.raises(TrackInUseError, match=f"Track {placed}"):
            database.delete_track(placed)

        items = database.get_items(DATE, block.id)
        assert [i.position for i in items] == list(range(1, 25))
        assert database.count_items(DATE, block.id) == 24
        assert database.get_track(placed) is not None

    def test_foreign_key_restricts_raw_delete(self, database, catalog, generator):
        result = generator.generate_block(DATE, "Dinner")
        with pytest.raises(sqlite3.IntegrityError):
            database.conn.execute(
                "DELETE FROM tracks WHERE id = ?", (result.tracks[0]["track_id"],)
            )

    def test_unplaced_track_deleted(self, database, catalog, generator):
        result = generator.generate_block(DATE, "Dinner")
        unplaced = next(t for t in catalog if t not in {p["track_id"] for p in result.tracks})

        assert database.delete_track(unplaced) is True
        assert database.get_track(unplaced) is None

    def test_missing_track(self, database):
        assert database.delete_track(999) is False


class TestListPlaylists:
    """Test generated playlist summaries."""

    @pytest.fixture
    def generated(self, database, catalog, generator):
        for date_iso in ("2025-08-12", "2025-08-13", "2025-08-14"):
            for block_name in ("Lunch", "Dinner"):
                assert generator.generate_block(date_iso, block_name).success

    def test_newest_first(self, database, generated):
        playlists = database.list_playlists()
        assert [(p["date_iso"], p["block_name"]) for p in playlists] == [
            ("2025-08-14", "Lunch"),
            ("2025-08-14", "Dinner"),
            ("2025-08-13", "Lunch"),
            ("2025-08-13", "Dinner"),
            ("2025-08-12", "Lunch"),
            ("2025-08-12", "Dinner"),
        ]
        dinner = playlists[1]
        assert dinner["track_count"] == 24
        assert dinner["total_duration_sec"] == 7200.0
        assert dinner["target_min"] == 120

    def test_date_range(self, database, generated):
        playlists = database.list_playlists(start_date="2025-08-13", end_date="2025-08-14")
        assert {p["date_iso"] for p in playlists} == {"2025-08-13", "2025-08-14"}
        assert len(playlists) == 4

        assert len(database.list_playlists(start_date="2025-08-14")) == 2
        assert {p["date_iso"] for p in database.list_playlists(end_date="2025-08-12")} == {
            "2025-08-12"
        }

    def test_exact_date_and_block(self, database, generated):
        (playlist,) = database.list_playlists(date_iso="2025-08-13", block_name="Dinner")
        assert playlist["block_name"] == "Dinner"
        assert [p["date_iso"] for p in database.list_playlists(block_name="Lunch")] == [
            "2025-08-14",
            "2025-08-13",
            "2025-08-12",
        ]

    def test_limit_offset(self, database, generated):
        page = database.list_playlists(limit=2, offset=2)
        assert [(p["date_iso"], p["block_name"]) for p in page] == [
            ("2025-08-13", "Lunch"),
            ("2025-08-13", "Dinner"),
        ]

    def test_empty(self, database):
        assert database.list_playlists() == []


class TestExportScriptList:
    """Test the export script's list mode against a database file."""

    @pytest.fixture
    def config_path(self, tmp_path, monkeypatch):
        db_path = tmp_path / "servicedj.db"
        with Database(str(db_path)) as db:
            Config.defaults().seed_database(db)
            for i in range(130):
                db.add_track(
                    title=f"Track {i}",
                    artist=f"Artist {i}",
                    uri=f"spotify:track:{i:04d}",
                    duration_seconds=300.0,
                    energy=round((i % 10) / 10, 1),
                )
            generator = BlockGenerator(db, rng=SeededRandom(1))
            assert generator.generate_block("2025-08-12", "Dinner").success
            assert generator.generate_block("2025-08-13", "Dinner").success

        path = tmp_path / "servicedj.toml"
        path.write_text(f'[database]\npath = "{db_path.as_posix()}"\n', encoding="utf-8")
        monkeypatch.setenv("SERVICEDJ_CONFIG_PATH", str(path))
        return path

    def test_lists_date_range(self, config_path, caplog):
        with caplog.at_level(logging.INFO, logger="export_playlist"):
            assert load_export_script().main(["list", "--start", "2025-08-13"]) == 0

        assert "1 playlists" in caplog.text
        assert "2025-08-13  Dinner" in caplog.text
        assert "2025-08-12" not in caplog.text

    def test_lists_all(self, config_path, caplog):
        with caplog.at_level(logging.INFO, logger="export_playlist"):
            assert load_export_script().main(["list", "--block", "Dinner"]) == 0

        assert "2 playlists" in caplog.text
        assert " 24 tracks   120.0 / 120 min" in caplog.text
