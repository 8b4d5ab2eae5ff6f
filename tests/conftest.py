"""Shared fixtures: an in-memory seeded database and a catalog builder."""

import pytest

from servicedj.config import Config
from servicedj.db import Database


@pytest.fixture
def database():
    """In-memory database seeded with the default blocks and rotation rules."""
    db = Database(":memory:")
    db.connect()
    Config.defaults().seed_database(db)
    yield db
    db.disconnect()


@pytest.fixture
def add_tracks(database):
    """Factory adding `count` tracks by distinct artists; returns their ids."""

    def _add(count, start=0, duration=300.0, **overrides):
        ids = []
        for i in range(start, start + count):
            fields = {
                "title": f"Track {i}",
                "artist": f"Artist {i}",
                "uri": f"spotify:track:{i:04d}",
                "duration_seconds": duration,
                "tempo_bpm": 80.0 + (i % 40),
                "energy": round((i % 10) / 10, 1),
            }
            fields.update(overrides)
            ids.append(database.add_track(**fields))
        return ids

    return _add


@pytest.fixture
def catalog(add_tracks):
    """130 five-minute tracks: enough for two full service days."""
    return add_tracks(130)
