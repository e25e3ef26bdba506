"""Tag references and tag content classification for playback.

A note tag is a plain string. What it means (something to speak, an image,
an audio file) is inferred from its shape every time it is played; nothing
about the interpretation is stored.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from habitforge.core.models import AUDIO_FILE_FORMATS, IMAGE_FILE_FORMATS, MediaKind

__all__ = [
    "SelectedTag",
    "TextTag",
    "ImageRef",
    "AudioRef",
    "TagContent",
    "classify_tag",
    "audio_source",
    "contains_devanagari",
    "build_queue",
    "lookup_tag",
    "select_all_tags",
]


@dataclass(frozen=True, order=True)
class SelectedTag:
    """Reference to one tag of one note. Ordered by (note_id, tag_index)."""

    note_id: str
    tag_index: int

    def __str__(self) -> str:
        return f"{self.note_id}:{self.tag_index}"


@dataclass(frozen=True)
class TextTag:
    text: str


@dataclass(frozen=True)
class ImageRef:
    url: str


@dataclass(frozen=True)
class AudioRef:
    url: str


TagContent = Union[TextTag, ImageRef, AudioRef]


def _suffix_pattern(formats: Iterable[str]) -> "re.Pattern[str]":
    suffixes = "|".join(sorted(formats))
    # Bare filename, path, or http(s) URL; a query string is ignored
    return re.compile(rf"^(?:https?://)?\S+\.(?:{suffixes})(?:\?\S*)?$", re.IGNORECASE)


_IMAGE_PATTERN = _suffix_pattern(IMAGE_FILE_FORMATS)
_AUDIO_PATTERN = _suffix_pattern(AUDIO_FILE_FORMATS)
_DEVANAGARI_PATTERN = re.compile("[\u0900-\u097F]")


def classify_tag(value: str) -> TagContent:
    """Decide whether a tag is an image, an audio file or text to speak."""
    candidate = value.strip()
    if _IMAGE_PATTERN.match(candidate):
        return ImageRef(candidate)
    if _AUDIO_PATTERN.match(candidate):
        return AudioRef(candidate)
    return TextTag(value)


def audio_source(value: str) -> str:
    """Playable source for an audio tag.

    Absolute URLs and values already under /audios/ are used as-is; anything
    else is taken to be a stored audio filename.
    """
    prefix = MediaKind.AUDIO.url_prefix
    if value.startswith(("http://", "https://", prefix)):
        return value
    return prefix + value.lstrip("/")


def contains_devanagari(text: str) -> bool:
    return bool(_DEVANAGARI_PATTERN.search(text))


def build_queue(selection: Iterable[Union[SelectedTag, Tuple[str, int]]]) -> List[SelectedTag]:
    """Deduplicate a selection and put it in playback order."""
    refs = {ref if isinstance(ref, SelectedTag) else SelectedTag(*ref) for ref in selection}
    return sorted(refs)


def _tag_name(tag: Any) -> str:
    return tag["name"] if isinstance(tag, dict) else tag


def lookup_tag(notes: Iterable[Dict[str, Any]], ref: SelectedTag) -> Optional[str]:
    """Read the current string value of a referenced tag.

    Returns None if the note is gone or no longer has that many tags.
    """
    for note in notes:
        if note.get("id") != ref.note_id:
            continue
        tags = note.get("tags") or []
        if 0 <= ref.tag_index < len(tags):
            return _tag_name(tags[ref.tag_index])
        return None
    return None


def select_all_tags(notes: Iterable[Dict[str, Any]]) -> List[SelectedTag]:
    """Every tag of every note, in playback order."""
    return build_queue(
        SelectedTag(note["id"], index)
        for note in notes
        for index in range(len(note.get("tags") or []))
    )
