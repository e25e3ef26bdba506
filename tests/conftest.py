"""Pytest fixtures for HabitForge tests.

This module provides fixtures for test configuration and databases.
"""

from __future__ import annotations

from pathlib import Path
from typing import Generator

import pytest

from habitforge.core.config import Config
from habitforge.core.database import Database
from tests import helpers


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Make sure real API keys never leak into tests."""
    for name in ("ELEVENLABS_API_KEY", "ELEVENLABS_VOICE_ID", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def test_config_dir(tmp_path: Path) -> Path:
    """Create temporary config directory for tests.

    Args:
        tmp_path: pytest temporary directory fixture

    Returns:
        Path to temporary config directory.
    """
    config_dir = tmp_path / "habitforge_test"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


@pytest.fixture
def test_config(test_config_dir: Path) -> Config:
    """Create test configuration.

    Args:
        test_config_dir: Temporary config directory

    Returns:
        Config instance for testing.
    """
    return Config(config_dir=test_config_dir)


@pytest.fixture
def test_db_path(test_config: Config) -> Path:
    """Path of the database the app and CLI will open for the test config dir."""
    return test_config.get_database_file()


@pytest.fixture
def empty_db(test_db_path: Path) -> Generator[Database, None, None]:
    """Create empty test database.

    Yields:
        Empty Database instance.
    """
    db = Database(test_db_path)
    yield db
    db.close()


@pytest.fixture
def populated_db(test_db_path: Path) -> Generator[Database, None, None]:
    """Create test database with sample data.

    Creates:
    - User "Ada"
    - Habit "No sugar" with events HIT, HIT, SLIP, HIT (in that order)
    - Habit "Morning run" with no events
    - Note "hindi" with tags: Devanagari text, an image, an audio file
    - Note "affirmations" with two text tags
    - Note "empty" with no tags

    Yields:
        Database instance with sample data.
    """
    db = Database(test_db_path)

    for registry in (helpers.USER_IDS, helpers.HABIT_IDS, helpers.EVENT_IDS, helpers.NOTE_IDS):
        registry.clear()

    user = db.create_user(name="Ada", email="ada@example.com")
    helpers.USER_IDS["Ada"] = user["id"]

    sugar = db.create_habit(
        user["id"],
        "No sugar",
        goalType="quit",
        microGoal="No dessert after dinner",
        triggers=["stress", "boredom"],
        hitDefinition="A day without sweets",
        slipDefinition="Any dessert",
    )
    helpers.HABIT_IDS["No sugar"] = sugar["id"]
    helpers.EVENT_IDS["No sugar"] = [
        db.create_event(sugar["id"], event_type)["id"]
        for event_type in ("HIT", "HIT", "SLIP", "HIT")
    ]

    run = db.create_habit(user["id"], "Morning run", goalType="build")
    helpers.HABIT_IDS["Morning run"] = run["id"]
    helpers.EVENT_IDS["Morning run"] = []

    hindi = db.create_note("Hindi practice", ["नमस्ते दुनिया", "photo.png", "greeting.mp3"])
    helpers.NOTE_IDS["hindi"] = hindi["id"]
    affirmations = db.create_note("Daily affirmations", ["I am calm", "I keep my promises"])
    helpers.NOTE_IDS["affirmations"] = affirmations["id"]
    empty = db.create_note("Nothing to play", [])
    helpers.NOTE_IDS["empty"] = empty["id"]

    yield db
    db.close()
