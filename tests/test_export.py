"""
Tests for CSV/M3U export and remote push bookkeeping.
"""

import csv
from unittest.mock import Mock

import pytest

from servicedj.export import ExportError, export_block, export_filename, push_block
from servicedj.generate.playlist import BlockGenerator
from servicedj.generate.random_source import SeededRandom

DATE = "2025-08-13"


@pytest.fixture
def dinner_playlist(database, catalog):
    result = BlockGenerator(database, rng=SeededRandom(5)).generate_block(DATE, "Dinner")
    assert result.success
    return result


class TestExportFiles:
    """Test file exports."""

    def test_filename(self):
        assert export_filename(DATE, "Dinner", "m3u") == "2025-08-13_dinner.m3u"

    def test_csv(self, database, dinner_playlist, tmp_path):
        path = export_block(database, DATE, "Dinner", "csv", output_dir=str(tmp_path))

        assert path == tmp_path / "2025-08-13_dinner.csv"
        with open(path, newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))

        assert rows[0] == ["position", "artist", "title", "uri", "durationSec", "dateISO", "block"]
        assert len(rows) == 25
        first = dinner_playlist.tracks[0]
        assert rows[1] == [
            "1", first["artist"], first["title"], first["uri"], "300", DATE, "Dinner",
        ]

    def test_m3u(self, database, dinner_playlist, tmp_path):
        path = export_block(database, DATE, "Dinner", "m3u", output_dir=str(tmp_path / "out"))

        lines = path.read_text(encoding="utf-8").splitlines()

        assert lines[:3] == ["#EXTM3U", f"#PLAYLIST:{DATE} - Dinner", "#EXTENC:UTF-8"]
        first = dinner_playlist.tracks[0]
        assert lines[3] == f"#EXTINF:300,{first['artist']} - {first['title']}"
        assert lines[4] == first["uri"]
        assert len(lines) == 3 + 2 * 24

    def test_records_history(self, database, dinner_playlist, tmp_path):
        export_block(database, DATE, "Dinner", "csv", output_dir=str(tmp_path))
        export_block(database, DATE, "Dinner", "csv", output_dir=str(tmp_path))

        (entry,) = database.list_exports()
        assert entry["format"] == "csv"
        assert entry["track_count"] == 24
        assert entry["file_path"].endswith("2025-08-13_dinner.csv")

    def test_missing_playlist(self, database, tmp_path):
        with pytest.raises(ExportError, match="not found"):
            export_block(database, DATE, "Dinner", "csv", output_dir=str(tmp_path))

    def test_invalid_format(self, database, dinner_playlist, tmp_path):
        with pytest.raises(ExportError, match="Invalid format"):
            export_block(database, DATE, "Dinner", "xspf", output_dir=str(tmp_path))


class TestPushBlock:
    """Test pushing to a remote sink."""

    def test_push_records_history(self, database, dinner_playlist):
        sink = Mock()
        sink.push_playlist = Mock(
            return_value={"playlist_id": "p1", "url": "https://open.example/p1", "tracks_added": 24}
        )

        result = push_block(database, sink, DATE, "Dinner")

        assert result["tracks_added"] == 24
        kwargs = sink.push_playlist.call_args.kwargs
        assert kwargs["name"] == f"{DATE} Dinner"
        assert "24 tracks, 120 minutes" in kwargs["description"]
        assert kwargs["uris"] == [t["uri"] for t in dinner_playlist.tracks]

        (entry,) = database.list_exports()
        assert entry["format"] == "remote"
        assert entry["file_path"] == "https://open.example/p1"

    def test_push_missing_playlist(self, database):
        with pytest.raises(ExportError):
            push_block(database, Mock(), DATE, "Dinner")
