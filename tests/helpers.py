"""Test helper functions for HabitForge tests.

The populated_db fixture records the IDs it generates here so tests can
refer to sample records by name.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable, Dict, List

# Populated by the populated_db fixture
USER_IDS: Dict[str, str] = {}
HABIT_IDS: Dict[str, str] = {}
EVENT_IDS: Dict[str, List[str]] = {}
NOTE_IDS: Dict[str, str] = {}

# Well-formed UUID7 hex that is never generated by the fixtures
MISSING_ID = "00000000000070008000000000000999"


def get_user_id(name: str) -> str:
    """Get sample user ID by name."""
    return USER_IDS[name]


def get_habit_id(name: str) -> str:
    """Get sample habit ID by habit name."""
    return HABIT_IDS[name]


def get_event_ids(habit_name: str) -> List[str]:
    """Get sample event IDs of a habit, in creation order."""
    return EVENT_IDS[habit_name]


def get_note_id(key: str) -> str:
    """Get sample note ID by key ("hindi", "affirmations", "empty")."""
    return NOTE_IDS[key]


# Repository root, the working directory for CLI subprocesses
REPO_ROOT = Path(__file__).resolve().parents[1]

# Signature of the run_cli fixture
RunCli = Callable[..., subprocess.CompletedProcess]
