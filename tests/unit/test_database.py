"""Unit tests for database operations.

Tests all methods in habitforge/core/database.py including:
- Users, habits and habit events
- Notes with ordered tags
- Media records
- Record shape (camelCase keys, UUID7 hex IDs, ISO timestamps)
"""

from __future__ import annotations

import re
from pathlib import Path

import pytest

from habitforge.core.database import Database, NotFoundError, new_id, now_iso
from tests.helpers import MISSING_ID, get_event_ids, get_habit_id, get_note_id, get_user_id

TIMESTAMP_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


@pytest.mark.unit
class TestHelpers:
    """Tests for id and timestamp helpers."""

    def test_new_id_is_uuid7_hex(self) -> None:
        value = new_id()
        assert re.fullmatch(r"[0-9a-f]{32}", value)
        assert value[12] == "7"

    def test_new_ids_sort_in_creation_order(self) -> None:
        ids = [new_id() for _ in range(20)]
        assert ids == sorted(ids)

    def test_now_iso_format(self) -> None:
        assert TIMESTAMP_RE.match(now_iso())


@pytest.mark.unit
class TestDatabaseInit:
    """Test database initialization."""

    def test_creates_file(self, test_db_path: Path) -> None:
        db = Database(test_db_path)
        db.close()
        assert test_db_path.exists()

    def test_in_memory(self) -> None:
        db = Database(":memory:")
        assert db.get_all_notes() == []
        db.close()

    def test_reopen_keeps_data(self, test_db_path: Path) -> None:
        db = Database(test_db_path)
        note = db.create_note("persist me", ["a"])
        db.close()

        db = Database(test_db_path)
        assert db.get_note(note["id"])["content"] == "persist me"
        db.close()


@pytest.mark.unit
class TestUsers:
    """Test user operations."""

    def test_create_and_get(self, empty_db: Database) -> None:
        user = empty_db.create_user(name="Ada", email="ada@example.com")

        assert empty_db.get_user(user["id"]) == user
        assert TIMESTAMP_RE.match(user["createdAt"])
        assert user["personalityInsights"] is None

    def test_latest_user(self, empty_db: Database) -> None:
        assert empty_db.get_latest_user() is None

        empty_db.create_user(name="First")
        empty_db.create_user(name="Second")

        assert empty_db.get_latest_user()["name"] == "Second"

    def test_missing_user(self, empty_db: Database) -> None:
        assert empty_db.get_user(MISSING_ID) is None


@pytest.mark.unit
class TestHabits:
    """Test habit operations."""

    def test_create_requires_user(self, empty_db: Database) -> None:
        with pytest.raises(NotFoundError) as exc:
            empty_db.create_habit(MISSING_ID, "Orphan")
        assert exc.value.entity == "User"

    def test_create_ignores_unknown_fields(self, populated_db: Database) -> None:
        habit = populated_db.create_habit(get_user_id("Ada"), "Read", colour="red", goalType="build")

        assert habit["goalType"] == "build"
        assert "colour" not in habit
        assert habit["triggers"] == []

    def test_get_all_habits_events_oldest_first(self, populated_db: Database) -> None:
        habits = populated_db.get_all_habits()
        sugar = next(h for h in habits if h["name"] == "No sugar")

        assert [e["id"] for e in sugar["events"]] == get_event_ids("No sugar")
        assert [e["type"] for e in sugar["events"]] == ["HIT", "HIT", "SLIP", "HIT"]

    def test_get_habit_events_newest_first(self, populated_db: Database) -> None:
        habit = populated_db.get_habit(get_habit_id("No sugar"))

        assert [e["id"] for e in habit["events"]] == list(reversed(get_event_ids("No sugar")))

    def test_update_habit(self, populated_db: Database) -> None:
        habit_id = get_habit_id("Morning run")
        before = populated_db.get_habit(habit_id)

        habit = populated_db.update_habit(habit_id, {"triggers": ["rain"], "reflectionDepthOverride": 3})

        assert habit["triggers"] == ["rain"]
        assert habit["reflectionDepthOverride"] == 3
        assert habit["name"] == before["name"]
        assert habit["updatedAt"] >= before["updatedAt"]

    def test_update_missing_habit(self, populated_db: Database) -> None:
        with pytest.raises(NotFoundError):
            populated_db.update_habit(MISSING_ID, {"name": "x"})

    def test_delete_habit_cascades_events(self, populated_db: Database) -> None:
        habit_id = get_habit_id("No sugar")

        assert populated_db.delete_habit(habit_id) is True
        assert populated_db.get_habit(habit_id) is None
        assert all(populated_db.get_event(e) is None for e in get_event_ids("No sugar"))
        assert populated_db.delete_habit(habit_id) is False


@pytest.mark.unit
class TestEvents:
    """Test habit event operations."""

    def test_create_event_defaults(self, populated_db: Database) -> None:
        event = populated_db.create_event(get_habit_id("Morning run"), "HIT")

        assert event["userId"] == get_user_id("Ada")
        assert event["mood"] is None
        assert event["emotionTags"] == []
        assert event["isReversal"] is False
        assert TIMESTAMP_RE.match(event["timestamp"])

    def test_create_event_missing_habit(self, populated_db: Database) -> None:
        with pytest.raises(NotFoundError) as exc:
            populated_db.create_event(MISSING_ID, "HIT")
        assert exc.value.entity == "Habit"

    def test_create_event_with_details(self, populated_db: Database) -> None:
        event = populated_db.create_event(
            get_habit_id("No sugar"),
            "SLIP",
            mood="tired",
            intensity=4,
            emotion_tags=["stress"],
            is_reversal=True,
        )

        assert event["intensity"] == 4
        assert event["emotionTags"] == ["stress"]
        assert event["isReversal"] is True

    def test_update_event(self, populated_db: Database) -> None:
        event_id = get_event_ids("No sugar")[0]
        event = populated_db.update_event(event_id, {"mood": "proud", "emotionTags": ["joy"]})

        assert event["mood"] == "proud"
        assert event["emotionTags"] == ["joy"]
        assert event["type"] == "HIT"

    def test_update_missing_event(self, populated_db: Database) -> None:
        with pytest.raises(NotFoundError) as exc:
            populated_db.update_event(MISSING_ID, {"mood": "x"})
        assert exc.value.entity == "Event"

    def test_set_reflection_trims(self, populated_db: Database) -> None:
        event = populated_db.set_reflection(get_event_ids("No sugar")[2], "\n  Long day \t")
        assert event["reflectionNote"] == "Long day"

    def test_delete_events(self, populated_db: Database) -> None:
        ids = get_event_ids("No sugar")

        assert populated_db.delete_event(ids[0]) is True
        assert populated_db.delete_event(ids[0]) is False
        assert populated_db.delete_events([ids[0], ids[1], ids[2]]) == 2
        assert populated_db.delete_events([]) == 0
        assert len(populated_db.get_habit(get_habit_id("No sugar"))["events"]) == 1


@pytest.mark.unit
class TestNotes:
    """Test note and tag operations."""

    def test_tags_keep_position(self, populated_db: Database) -> None:
        note = populated_db.get_note(get_note_id("hindi"))

        assert [t["name"] for t in note["tags"]] == ["नमस्ते दुनिया", "photo.png", "greeting.mp3"]
        assert [t["position"] for t in note["tags"]] == [0, 1, 2]

    def test_get_all_notes_newest_first(self, populated_db: Database) -> None:
        notes = populated_db.get_all_notes()
        assert [n["id"] for n in notes] == [
            get_note_id("empty"),
            get_note_id("affirmations"),
            get_note_id("hindi"),
        ]

    def test_update_note_replaces_tags(self, populated_db: Database) -> None:
        note_id = get_note_id("hindi")
        note = populated_db.update_note(note_id, None, ["greeting.mp3", "new"])

        assert note["content"] == "Hindi practice"
        assert [t["name"] for t in note["tags"]] == ["greeting.mp3", "new"]

    def test_update_missing_note(self, populated_db: Database) -> None:
        with pytest.raises(NotFoundError) as exc:
            populated_db.update_note(MISSING_ID, "x", [])
        assert exc.value.entity == "Note"

    def test_delete_note_removes_tags(self, populated_db: Database) -> None:
        note_id = get_note_id("hindi")

        assert populated_db.delete_note(note_id) is True
        assert populated_db.get_note(note_id) is None
        count = populated_db.conn.execute(
            "SELECT COUNT(*) FROM tags WHERE note_id = ?", (note_id,)
        ).fetchone()[0]
        assert count == 0
        assert populated_db.delete_note(note_id) is False


@pytest.mark.unit
class TestMedia:
    """Test media record operations."""

    def test_images_and_audios_are_separate(self, empty_db: Database) -> None:
        image = empty_db.create_image("/uploads/1-a.png", "1-a.png")
        empty_db.create_audio("/audios/2-b.mp3", "2-b.mp3")

        assert empty_db.get_all_images() == [image]
        assert [a["filename"] for a in empty_db.get_all_audios()] == ["2-b.mp3"]

    def test_media_newest_first(self, empty_db: Database) -> None:
        empty_db.create_image("/uploads/1-a.png", "1-a.png")
        empty_db.create_image("/uploads/2-b.png", "2-b.png")

        assert [i["filename"] for i in empty_db.get_all_images()] == ["2-b.png", "1-a.png"]
