"""
Tests for the Block Generator orchestrator.

Runs the full pipeline against an in-memory database: claim, filter,
score, select, sequence, persist, and every structured failure.
"""

import sqlite3
from unittest.mock import patch

import pytest

from servicedj.db import Database
from servicedj.generate.playlist import (
    BlockGenerator,
    ErrorKind,
    generate_block,
    summarize,
)
from servicedj.generate.random_source import SeededRandom
from servicedj.models import DayStatus, PlayBlock, RotationRules, RunStatus, Track

DATE = "2025-08-13"


@pytest.fixture
def generator(database):
    return BlockGenerator(database, rng=SeededRandom(42))


def track_ids(result):
    return [t["track_id"] for t in result.tracks]


class TestSuccessfulGeneration:
    """Test a generation that fills the block."""

    def test_fills_dinner_block(self, database, catalog, generator):
        result = generator.generate_block(DATE, "Dinner")

        assert result.success is True
        assert result.error is None
        assert result.block_name == "Dinner"
        assert [t["position"] for t in result.tracks] == list(range(1, 25))
        assert len(set(track_ids(result))) == 24

        stats = result.stats
        assert stats["track_count"] == 24
        assert stats["target_duration_min"] == 120
        assert stats["actual_duration_sec"] == 7200.0
        assert stats["actual_duration_min"] == 120.0
        assert stats["candidates_considered"] == 130
        assert stats["artist_separation_min"] == 30
        assert stats["avg_bpm"] is not None
        assert 0.0 <= stats["avg_energy"] <= 1.0

    def test_persists_items_and_state(self, database, catalog, generator):
        result = generator.generate_block(DATE, "Dinner")
        block = database.get_play_block("Dinner")

        items = database.get_items(DATE, block.id)
        assert [i.track_id for i in items] == track_ids(result)
        assert database.get_block_run_status(DATE, block.id) == RunStatus.COMPLETED
        assert database.get_day(DATE).status == DayStatus.COMPLETED

        playlist = database.get_playlist(DATE, "Dinner")
        assert [row["track_id"] for row in playlist] == track_ids(result)

    def test_track_payload(self, database, catalog, generator):
        result = generator.generate_block(DATE, "Dinner")
        first = result.tracks[0]
        assert set(first) >= {
            "track_id", "artist", "date_iso", "block_id", "position",
            "generated_at", "title", "duration_sec", "bpm", "energy", "uri",
        }
        assert first["date_iso"] == DATE

    def test_to_dict(self, database, catalog, generator):
        payload = generator.generate_block(DATE, "Dinner").to_dict()
        assert payload["success"] is True
        assert payload["playlist"]["block_name"] == "Dinner"
        assert len(payload["playlist"]["tracks"]) == 24

    def test_next_day_respects_track_cooldown(self, database, catalog, generator):
        first = generator.generate_block(DATE, "Dinner")
        second = generator.generate_block("2025-08-14", "Dinner")

        assert second.success is True
        assert not set(track_ids(first)) & set(track_ids(second))
        assert second.stats["candidates_considered"] == 130 - 24

    def test_admin_override_reuses_recent_tracks(self, database, catalog, generator):
        generator.generate_block(DATE, "Dinner")
        result = generator.generate_block("2025-08-14", "Dinner", admin_override=True)
        assert result.stats["candidates_considered"] == 130

    def test_date_normalized(self, database, catalog, generator):
        result = generator.generate_block("2025-08-13", "Dinner")
        assert result.date_iso == DATE

    def test_module_level_helper(self, database, catalog):
        result = generate_block(database, DATE, "Late", rng=SeededRandom(1))
        assert result.success is True
        assert result.stats["track_count"] == 18


class TestIdempotency:
    """Test duplicate requests and forced regeneration."""

    def test_second_request_rejected(self, database, catalog, generator):
        first = generator.generate_block(DATE, "Dinner")
        block = database.get_play_block("Dinner")
        before = [(i.position, i.track_id, i.generated_at) for i in database.get_items(DATE, block.id)]

        rejected = [generator.generate_block(DATE, "Dinner") for _ in range(2)]

        for result in rejected:
            assert result.success is False
            assert result.error.kind == ErrorKind.ALREADY_EXISTS
            assert result.error.client_error is True
            assert "force=true" in result.error.message

        after = [(i.position, i.track_id, i.generated_at) for i in database.get_items(DATE, block.id)]
        assert after == before
        assert [track_id for _, track_id, _ in after] == track_ids(first)
        assert database.get_day(DATE).status == DayStatus.COMPLETED

    def test_in_flight_run_rejected(self, database, catalog, generator):
        """Another worker already claimed the pair."""
        block = database.get_play_block("Dinner")
        assert database.claim_block_run(DATE, block.id) is True

        result = generator.generate_block(DATE, "Dinner")

        assert result.error.kind == ErrorKind.ALREADY_EXISTS
        assert database.count_items(DATE, block.id) == 0

    def test_force_replaces_playlist(self, database, catalog, generator):
        generator.generate_block(DATE, "Dinner")
        result = generator.generate_block(DATE, "Dinner", force=True)

        assert result.success is True
        assert [t["position"] for t in result.tracks] == list(range(1, 25))
        assert result.stats["candidates_considered"] == 130

        block = database.get_play_block("Dinner")
        assert database.count_items(DATE, block.id) == 24

    def test_failed_run_can_be_retried(self, database, add_tracks, generator):
        failed = generator.generate_block(DATE, "Dinner")
        assert failed.error.kind == ErrorKind.NO_CANDIDATES

        add_tracks(30)
        retried = generator.generate_block(DATE, "Dinner")

        assert retried.success is True
        block = database.get_play_block("Dinner")
        assert database.get_block_run_status(DATE, block.id) == RunStatus.COMPLETED


class TestFailures:
    """Test structured failures."""

    def test_unknown_block(self, database, catalog, generator):
        result = generator.generate_block(DATE, "Brunch")

        assert result.success is False
        assert result.error.kind == ErrorKind.CONFIG_MISSING
        assert result.error.message == "Invalid block name: Brunch"
        assert result.error.client_error is True
        assert database.get_day(DATE).status == DayStatus.FAILED

    def test_missing_rotation_rules(self):
        with Database(":memory:") as db:
            db.save_play_block(PlayBlock("Dinner", 120, (80, 110), (0.3, 0.6)))
            result = BlockGenerator(db).generate_block(DATE, "Dinner")

        assert result.error.kind == ErrorKind.CONFIG_MISSING
        assert result.error.message == "No rotation rules configured"

    def test_invalid_date(self, database, catalog, generator):
        result = generator.generate_block("2025-13-45", "Dinner")

        assert result.error.kind == ErrorKind.INVALID_REQUEST
        assert result.error.client_error is True
        assert database.get_day("2025-13-45") is None

    def test_no_candidates(self, database, generator):
        result = generator.generate_block(DATE, "Dinner")

        assert result.success is False
        assert result.error.kind == ErrorKind.NO_CANDIDATES
        assert result.error.client_error is False
        assert result.error.stats["candidates_considered"] == 0

        block = database.get_play_block("Dinner")
        assert database.get_block_run_status(DATE, block.id) == RunStatus.FAILED
        assert database.get_day(DATE).status == DayStatus.FAILED

        payload = result.to_dict()
        assert payload == {
            "success": False,
            "kind": "no_candidates",
            "error": result.error.message,
            "client_error": False,
            "stats": {"candidates_considered": 0, "track_count": 0},
        }

    def test_locked_day(self, database, catalog, generator):
        database.set_day_status(DATE, DayStatus.LOCKED)

        result = generator.generate_block(DATE, "Dinner")

        assert result.error.kind == ErrorKind.DAY_LOCKED
        block = database.get_play_block("Dinner")
        assert database.count_items(DATE, block.id) == 0
        assert database.get_day(DATE).status == DayStatus.LOCKED

    def test_persistence_failure_rolls_back(self, database, catalog, generator):
        with patch.object(
            database, "record_placement", side_effect=sqlite3.OperationalError("disk I/O error")
        ):
            result = generator.generate_block(DATE, "Dinner")

        assert result.error.kind == ErrorKind.PERSISTENCE_FAILURE
        assert result.error.client_error is False

        block = database.get_play_block("Dinner")
        assert database.count_items(DATE, block.id) == 0
        assert database.get_block_run_status(DATE, block.id) == RunStatus.FAILED
        assert database.get_day(DATE).status == DayStatus.FAILED

    def test_scheduler_mode_leaves_day_alone(self, database, generator):
        result = generator.generate_block(DATE, "Dinner", update_day=False)
        assert result.error.kind == ErrorKind.NO_CANDIDATES
        assert database.get_day(DATE) is None


class TestSummarize:
    """Test summary statistics."""

    def test_unknown_metadata_gives_none(self):
        block = PlayBlock("Late", 90, (60, 90), (0.2, 0.5))
        rules = RotationRules(track_cooldown_days=7, artist_cooldown_minutes=45)
        tracks = [
            Track(id=i, title="t", artist="a", uri=f"u{i}", duration_seconds=150.0)
            for i in range(4)
        ]

        stats = summarize(tracks, block, rules, candidate_count=9)

        assert stats["avg_bpm"] is None
        assert stats["avg_energy"] is None
        assert stats["actual_duration_sec"] == 600.0
        assert stats["actual_duration_min"] == 10.0
        assert stats["artist_separation_min"] == 45
        assert stats["candidates_considered"] == 9

    def test_averages_ignore_unknown(self):
        block = PlayBlock("Late", 90, (60, 90), (0.2, 0.5))
        rules = RotationRules(track_cooldown_days=7, artist_cooldown_minutes=30)
        tracks = [
            Track(id=1, title="t", artist="a", uri="u1", duration_seconds=200.0, tempo_bpm=90.0, energy=0.2),
            Track(id=2, title="t", artist="b", uri="u2", duration_seconds=200.0, tempo_bpm=101.0, energy=0.5),
            Track(id=3, title="t", artist="c", uri="u3", duration_seconds=200.0),
        ]

        stats = summarize(tracks, block, rules, candidate_count=3)

        assert stats["avg_bpm"] == 96
        assert stats["avg_energy"] == 0.35
