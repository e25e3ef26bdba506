"""Database operations for HabitForge.

This module provides all data access functionality using SQLite.
All methods return JSON-serializable types (dicts, lists, primitives)
so the CLI and the web API can hand results straight to the user.

Record keys are camelCase (userId, goalType, createdAt, ...) to match
the REST payloads; table columns are snake_case.

CRITICAL: This module must have NO Flask dependencies.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from uuid6 import uuid7

logger = logging.getLogger(__name__)

__all__ = ["Database", "NotFoundError", "HABIT_FIELDS", "EVENT_FIELDS"]


class NotFoundError(LookupError):
    """A referenced record does not exist."""

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


# camelCase payload key -> column, for the mutable habit fields
HABIT_FIELDS = {
    "name": "name",
    "goalType": "goal_type",
    "microGoal": "micro_goal",
    "triggers": "triggers",
    "cravingNarrative": "craving_narrative",
    "resistanceStyle": "resistance_style",
    "motivationOverride": "motivation_override",
    "reflectionDepthOverride": "reflection_depth_override",
    "hitDefinition": "hit_definition",
    "slipDefinition": "slip_definition",
}

# camelCase payload key -> column, for the mutable event fields
EVENT_FIELDS = {
    "mood": "mood",
    "intensity": "intensity",
    "reflectionNote": "reflection_note",
    "emotionTags": "emotion_tags",
    "aiPromptUsed": "ai_prompt_used",
    "isReversal": "is_reversal",
}

_JSON_LIST_COLUMNS = frozenset(["triggers", "emotion_tags"])

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT,
    name TEXT,
    personality_insights TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS habits (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id),
    name TEXT NOT NULL,
    goal_type TEXT,
    micro_goal TEXT,
    triggers TEXT NOT NULL DEFAULT '[]',
    craving_narrative TEXT,
    resistance_style TEXT,
    motivation_override TEXT,
    reflection_depth_override INTEGER,
    hit_definition TEXT,
    slip_definition TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS habit_events (
    id TEXT PRIMARY KEY,
    habit_id TEXT NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    type TEXT NOT NULL CHECK (type IN ('HIT', 'SLIP')),
    timestamp TEXT NOT NULL,
    mood TEXT,
    intensity INTEGER,
    reflection_note TEXT,
    emotion_tags TEXT NOT NULL DEFAULT '[]',
    ai_prompt_used TEXT,
    is_reversal INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS notes (
    id TEXT PRIMARY KEY,
    content TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tags (
    id TEXT PRIMARY KEY,
    note_id TEXT NOT NULL REFERENCES notes(id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS images (
    id TEXT PRIMARY KEY,
    url TEXT NOT NULL,
    filename TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS audios (
    id TEXT PRIMARY KEY,
    url TEXT NOT NULL,
    filename TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_habits_user ON habits(user_id);
CREATE INDEX IF NOT EXISTS idx_events_habit ON habit_events(habit_id);
CREATE INDEX IF NOT EXISTS idx_events_timestamp ON habit_events(timestamp);
CREATE INDEX IF NOT EXISTS idx_notes_created ON notes(created_at);
CREATE INDEX IF NOT EXISTS idx_tags_note ON tags(note_id, position);
"""


def now_iso() -> str:
    """Current UTC time as ISO-8601 with milliseconds and a Z suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


def new_id() -> str:
    """Generate a new UUID7 hex string (32 characters, no hyphens)."""
    return uuid7().hex


class Database:
    """SQLite-backed store for users, habits, events, notes and media records."""

    def __init__(self, db_path: Union[Path, str]) -> None:
        """Initialize database connection.

        Args:
            db_path: Path to the SQLite database file, or ':memory:' for in-memory
        """
        path_str = str(db_path)
        self.db_path = path_str
        # The web server may call in from several request threads
        self.conn = sqlite3.connect(path_str, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.RLock()
        self._init_schema()
        logger.info(f"Opened database at {path_str}")

    def _init_schema(self) -> None:
        with self._lock, self.conn:
            self.conn.executescript(SCHEMA)

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()
        logger.info("Closed database connection")

    # ============================================================================
    # Users
    # ============================================================================

    def create_user(
        self,
        name: Optional[str] = None,
        email: Optional[str] = None,
        personality_insights: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a user and return it."""
        user_id = new_id()
        now = now_iso()
        with self._lock, self.conn:
            self.conn.execute(
                "INSERT INTO users (id, email, name, personality_insights, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (user_id, email, name, personality_insights, now, now),
            )
        return self.get_user(user_id)

    def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Get a user by ID."""
        with self._lock:
            row = self.conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return self._user_to_dict(row) if row else None

    def get_latest_user(self) -> Optional[Dict[str, Any]]:
        """Get the most recently created user."""
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM users ORDER BY created_at DESC, id DESC LIMIT 1"
            ).fetchone()
        return self._user_to_dict(row) if row else None

    # ============================================================================
    # Habits
    # ============================================================================

    def create_habit(self, user_id: str, name: str, **fields: Any) -> Dict[str, Any]:
        """Create a habit for a user.

        Args:
            user_id: Owner of the habit
            name: Habit name
            **fields: Any of the camelCase keys in HABIT_FIELDS except name

        Raises:
            NotFoundError: If the user does not exist
        """
        if self.get_user(user_id) is None:
            raise NotFoundError("User", user_id)

        values = {column: None for column in HABIT_FIELDS.values()}
        values["triggers"] = []
        for key, value in fields.items():
            if key in HABIT_FIELDS and key != "name":
                values[HABIT_FIELDS[key]] = value
        values["name"] = name

        habit_id = new_id()
        now = now_iso()
        columns = ["id", "user_id", *values.keys(), "created_at", "updated_at"]
        params = [habit_id, user_id, *(self._encode(c, v) for c, v in values.items()), now, now]
        placeholders = ", ".join("?" for _ in columns)
        with self._lock, self.conn:
            self.conn.execute(
                f"INSERT INTO habits ({', '.join(columns)}) VALUES ({placeholders})", params
            )
        logger.info(f"Created habit {habit_id} for user {user_id}")
        return self.get_habit(habit_id)

    def get_all_habits(self) -> List[Dict[str, Any]]:
        """Get all habits, each with its events (oldest first)."""
        with self._lock:
            habit_rows = self.conn.execute(
                "SELECT * FROM habits ORDER BY created_at, id"
            ).fetchall()
            event_rows = self.conn.execute(
                "SELECT * FROM habit_events ORDER BY timestamp, id"
            ).fetchall()

        events_by_habit: Dict[str, List[Dict[str, Any]]] = {}
        for row in event_rows:
            events_by_habit.setdefault(row["habit_id"], []).append(self._event_to_dict(row))

        return [
            self._habit_to_dict(row, events_by_habit.get(row["id"], []))
            for row in habit_rows
        ]

    def get_habit(self, habit_id: str) -> Optional[Dict[str, Any]]:
        """Get a habit with its events, newest event first."""
        with self._lock:
            row = self.conn.execute("SELECT * FROM habits WHERE id = ?", (habit_id,)).fetchone()
            if row is None:
                return None
            event_rows = self.conn.execute(
                "SELECT * FROM habit_events WHERE habit_id = ? ORDER BY created_at DESC, id DESC",
                (habit_id,),
            ).fetchall()
        return self._habit_to_dict(row, [self._event_to_dict(r) for r in event_rows])

    def update_habit(self, habit_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Partially update a habit. Unknown keys are ignored.

        Raises:
            NotFoundError: If the habit does not exist
        """
        updates = {HABIT_FIELDS[k]: v for k, v in fields.items() if k in HABIT_FIELDS}
        with self._lock, self.conn:
            exists = self.conn.execute("SELECT 1 FROM habits WHERE id = ?", (habit_id,)).fetchone()
            if not exists:
                raise NotFoundError("Habit", habit_id)
            if updates:
                assignments = ", ".join(f"{column} = ?" for column in updates)
                params = [self._encode(c, v) for c, v in updates.items()]
                self.conn.execute(
                    f"UPDATE habits SET {assignments}, updated_at = ? WHERE id = ?",
                    [*params, now_iso(), habit_id],
                )
        return self.get_habit(habit_id)

    def delete_habit(self, habit_id: str) -> bool:
        """Delete a habit and all its events.

        Returns:
            True if the habit existed
        """
        with self._lock, self.conn:
            self.conn.execute("DELETE FROM habit_events WHERE habit_id = ?", (habit_id,))
            cursor = self.conn.execute("DELETE FROM habits WHERE id = ?", (habit_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted habit {habit_id}")
        return deleted

    # ============================================================================
    # Habit events
    # ============================================================================

    def create_event(
        self,
        habit_id: str,
        event_type: str,
        user_id: Optional[str] = None,
        mood: Optional[str] = None,
        intensity: Optional[int] = None,
        reflection_note: Optional[str] = None,
        emotion_tags: Optional[List[str]] = None,
        ai_prompt_used: Optional[str] = None,
        is_reversal: bool = False,
    ) -> Dict[str, Any]:
        """Record a HIT or SLIP against a habit.

        Args:
            habit_id: Habit the event belongs to
            event_type: "HIT" or "SLIP" (already validated)
            user_id: Defaults to the habit owner

        Raises:
            NotFoundError: If the habit does not exist
        """
        with self._lock:
            habit = self.conn.execute(
                "SELECT user_id FROM habits WHERE id = ?", (habit_id,)
            ).fetchone()
        if habit is None:
            raise NotFoundError("Habit", habit_id)

        event_id = new_id()
        now = now_iso()
        with self._lock, self.conn:
            self.conn.execute(
                "INSERT INTO habit_events (id, habit_id, user_id, type, timestamp, mood, intensity, "
                "reflection_note, emotion_tags, ai_prompt_used, is_reversal, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    event_id,
                    habit_id,
                    user_id or habit["user_id"],
                    event_type,
                    now,
                    mood,
                    intensity,
                    reflection_note,
                    json.dumps(emotion_tags or []),
                    ai_prompt_used,
                    1 if is_reversal else 0,
                    now,
                ),
            )
        logger.info(f"Recorded {event_type} event {event_id} for habit {habit_id}")
        return self.get_event(event_id)

    def get_event(self, event_id: str) -> Optional[Dict[str, Any]]:
        """Get a habit event by ID."""
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM habit_events WHERE id = ?", (event_id,)
            ).fetchone()
        return self._event_to_dict(row) if row else None

    def update_event(self, event_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Partially update an event. Unknown keys are ignored.

        Raises:
            NotFoundError: If the event does not exist
        """
        updates = {EVENT_FIELDS[k]: v for k, v in fields.items() if k in EVENT_FIELDS}
        with self._lock, self.conn:
            exists = self.conn.execute(
                "SELECT 1 FROM habit_events WHERE id = ?", (event_id,)
            ).fetchone()
            if not exists:
                raise NotFoundError("Event", event_id)
            if updates:
                assignments = ", ".join(f"{column} = ?" for column in updates)
                params = [self._encode(c, v) for c, v in updates.items()]
                self.conn.execute(
                    f"UPDATE habit_events SET {assignments} WHERE id = ?", [*params, event_id]
                )
        return self.get_event(event_id)

    def set_reflection(self, event_id: str, reflection_note: str) -> Dict[str, Any]:
        """Attach a reflection to an event. The note is stored trimmed."""
        return self.update_event(event_id, {"reflectionNote": reflection_note.strip()})

    def delete_event(self, event_id: str) -> bool:
        """Delete a single event. Returns True if it existed."""
        with self._lock, self.conn:
            cursor = self.conn.execute("DELETE FROM habit_events WHERE id = ?", (event_id,))
        return cursor.rowcount > 0

    def delete_events(self, event_ids: Iterable[str]) -> int:
        """Delete several events. Returns the number actually removed."""
        ids = list(event_ids)
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)
        with self._lock, self.conn:
            cursor = self.conn.execute(
                f"DELETE FROM habit_events WHERE id IN ({placeholders})", ids
            )
        logger.info(f"Deleted {cursor.rowcount} of {len(ids)} requested events")
        return cursor.rowcount

    # ============================================================================
    # Notes and tags
    # ============================================================================

    def get_all_notes(self) -> List[Dict[str, Any]]:
        """Get all notes with their tags, newest first."""
        with self._lock:
            note_rows = self.conn.execute(
                "SELECT * FROM notes ORDER BY created_at DESC, id DESC"
            ).fetchall()
            tag_rows = self.conn.execute(
                "SELECT * FROM tags ORDER BY note_id, position"
            ).fetchall()

        tags_by_note: Dict[str, List[Dict[str, Any]]] = {}
        for row in tag_rows:
            tags_by_note.setdefault(row["note_id"], []).append(self._tag_to_dict(row))

        return [self._note_to_dict(row, tags_by_note.get(row["id"], [])) for row in note_rows]

    def get_note(self, note_id: str) -> Optional[Dict[str, Any]]:
        """Get a specific note with its tags."""
        with self._lock:
            row = self.conn.execute("SELECT * FROM notes WHERE id = ?", (note_id,)).fetchone()
            if row is None:
                return None
            tag_rows = self.conn.execute(
                "SELECT * FROM tags WHERE note_id = ? ORDER BY position", (note_id,)
            ).fetchall()
        return self._note_to_dict(row, [self._tag_to_dict(r) for r in tag_rows])

    def create_note(self, content: str = "", tags: Optional[List[str]] = None) -> Dict[str, Any]:
        """Create a note with tags in the given order."""
        note_id = new_id()
        now = now_iso()
        with self._lock, self.conn:
            self.conn.execute(
                "INSERT INTO notes (id, content, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (note_id, content or "", now, now),
            )
            self._insert_tags(note_id, tags or [])
        logger.info(f"Created note {note_id} with {len(tags or [])} tags")
        return self.get_note(note_id)

    def update_note(
        self, note_id: str, content: Optional[str], tags: List[str]
    ) -> Dict[str, Any]:
        """Update a note and replace its tags.

        Args:
            note_id: Note to update
            content: New content, or None to leave content unchanged
            tags: The complete new tag list

        Raises:
            NotFoundError: If the note does not exist
        """
        with self._lock, self.conn:
            exists = self.conn.execute("SELECT 1 FROM notes WHERE id = ?", (note_id,)).fetchone()
            if not exists:
                raise NotFoundError("Note", note_id)
            if content is not None:
                self.conn.execute(
                    "UPDATE notes SET content = ?, updated_at = ? WHERE id = ?",
                    (content, now_iso(), note_id),
                )
            else:
                self.conn.execute(
                    "UPDATE notes SET updated_at = ? WHERE id = ?", (now_iso(), note_id)
                )
            self.conn.execute("DELETE FROM tags WHERE note_id = ?", (note_id,))
            self._insert_tags(note_id, tags)
        return self.get_note(note_id)

    def delete_note(self, note_id: str) -> bool:
        """Delete a note and its tags. Returns True if it existed."""
        with self._lock, self.conn:
            self.conn.execute("DELETE FROM tags WHERE note_id = ?", (note_id,))
            cursor = self.conn.execute("DELETE FROM notes WHERE id = ?", (note_id,))
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info(f"Deleted note {note_id}")
        return deleted

    def _insert_tags(self, note_id: str, tags: List[str]) -> None:
        self.conn.executemany(
            "INSERT INTO tags (id, note_id, position, name) VALUES (?, ?, ?, ?)",
            [(new_id(), note_id, position, name) for position, name in enumerate(tags)],
        )

    # ============================================================================
    # Media records
    # ============================================================================

    def create_image(self, url: str, filename: str) -> Dict[str, Any]:
        """Record an uploaded image."""
        return self._create_media("images", url, filename)

    def get_all_images(self) -> List[Dict[str, Any]]:
        """Get all image records, newest first."""
        return self._list_media("images")

    def create_audio(self, url: str, filename: str) -> Dict[str, Any]:
        """Record an uploaded audio file."""
        return self._create_media("audios", url, filename)

    def get_all_audios(self) -> List[Dict[str, Any]]:
        """Get all audio records, newest first."""
        return self._list_media("audios")

    def _create_media(self, table: str, url: str, filename: str) -> Dict[str, Any]:
        media_id = new_id()
        now = now_iso()
        with self._lock, self.conn:
            self.conn.execute(
                f"INSERT INTO {table} (id, url, filename, created_at) VALUES (?, ?, ?, ?)",
                (media_id, url, filename, now),
            )
        return {"id": media_id, "url": url, "filename": filename, "createdAt": now}

    def _list_media(self, table: str) -> List[Dict[str, Any]]:
        with self._lock:
            rows = self.conn.execute(
                f"SELECT * FROM {table} ORDER BY created_at DESC, id DESC"
            ).fetchall()
        return [
            {"id": r["id"], "url": r["url"], "filename": r["filename"], "createdAt": r["created_at"]}
            for r in rows
        ]

    # ============================================================================
    # Row conversion
    # ============================================================================

    @staticmethod
    def _encode(column: str, value: Any) -> Any:
        if column in _JSON_LIST_COLUMNS:
            return json.dumps(value or [])
        if column == "is_reversal":
            return 1 if value else 0
        return value

    @staticmethod
    def _user_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "email": row["email"],
            "name": row["name"],
            "personalityInsights": row["personality_insights"],
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
        }

    @staticmethod
    def _habit_to_dict(row: sqlite3.Row, events: List[Dict[str, Any]]) -> Dict[str, Any]:
        habit: Dict[str, Any] = {"id": row["id"], "userId": row["user_id"]}
        for key, column in HABIT_FIELDS.items():
            value = row[column]
            habit[key] = json.loads(value) if column in _JSON_LIST_COLUMNS else value
        habit["createdAt"] = row["created_at"]
        habit["updatedAt"] = row["updated_at"]
        habit["events"] = events
        return habit

    @staticmethod
    def _event_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "habitId": row["habit_id"],
            "userId": row["user_id"],
            "type": row["type"],
            "timestamp": row["timestamp"],
            "mood": row["mood"],
            "intensity": row["intensity"],
            "reflectionNote": row["reflection_note"],
            "emotionTags": json.loads(row["emotion_tags"]),
            "aiPromptUsed": row["ai_prompt_used"],
            "isReversal": bool(row["is_reversal"]),
            "createdAt": row["created_at"],
        }

    @staticmethod
    def _note_to_dict(row: sqlite3.Row, tags: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "content": row["content"],
            "createdAt": row["created_at"],
            "updatedAt": row["updated_at"],
            "tags": tags,
        }

    @staticmethod
    def _tag_to_dict(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            "id": row["id"],
            "noteId": row["note_id"],
            "position": row["position"],
            "name": row["name"],
        }
