"""Shared domain constants for HabitForge.

Records themselves travel as plain dicts (see database.py); this module
only holds the enumerations and file format sets that several modules
agree on.
"""

from __future__ import annotations

from enum import Enum


class EventType(Enum):
    """The two outcomes recorded against a habit."""

    HIT = "HIT"
    SLIP = "SLIP"

    @property
    def score(self) -> int:
        """Contribution of one event to the cumulative habit score."""
        return 1 if self is EventType.HIT else -1


class MediaKind(Enum):
    """Kinds of uploaded media and where they live under the media directory.

    The value is the public directory name, which is also the URL prefix
    (/uploads/..., /audios/...).
    """

    IMAGE = "uploads"
    AUDIO = "audios"

    @property
    def url_prefix(self) -> str:
        return f"/{self.value}/"


# Suffixes used to infer what a note tag refers to
IMAGE_FILE_FORMATS = frozenset(["png", "jpg", "jpeg", "gif", "webp", "bmp", "svg"])
AUDIO_FILE_FORMATS = frozenset(["mp3", "wav", "ogg", "m4a", "aac", "flac", "opus", "webm"])
