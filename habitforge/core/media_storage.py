"""Media file storage for HabitForge.

This module handles file operations for uploaded media:
- Saving uploaded images to {media_directory}/uploads/
- Saving uploaded audio to {media_directory}/audios/
- Resolving stored files back to paths for serving and playback

Stored files are named {epoch-millis}-{sanitized original name} and are
publicly addressed as /uploads/<name> or /audios/<name>.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import BinaryIO, Dict, Optional, Union

from werkzeug.utils import secure_filename

from .models import AUDIO_FILE_FORMATS, IMAGE_FILE_FORMATS, MediaKind
from .validation import ValidationError

logger = logging.getLogger(__name__)

__all__ = ["MediaStorage", "parse_media_kind", "is_supported_format"]


def parse_media_kind(kind: Union[str, MediaKind]) -> MediaKind:
    """Accept "image"/"audio" (or a MediaKind) and return the MediaKind."""
    if isinstance(kind, MediaKind):
        return kind
    try:
        return MediaKind[str(kind).upper()]
    except KeyError:
        raise ValidationError("kind", f"must be image or audio, got {kind!r}") from None


def is_supported_format(kind: Union[str, MediaKind], filename: str) -> bool:
    """Check if a filename has an extension known for the given media kind."""
    if "." not in filename:
        return False
    ext = filename.rsplit(".", 1)[-1].lower()
    formats = IMAGE_FILE_FORMATS if parse_media_kind(kind) is MediaKind.IMAGE else AUDIO_FILE_FORMATS
    return ext in formats


class MediaStorage:
    """Manages uploaded media files on disk."""

    def __init__(self, media_directory: Union[Path, str]) -> None:
        """Initialize the media storage.

        Args:
            media_directory: Directory that holds the uploads/ and audios/ subdirectories.
        """
        self.media_directory = Path(media_directory)

    def directory_for(self, kind: Union[str, MediaKind]) -> Path:
        """Directory where files of this kind are stored."""
        return self.media_directory / parse_media_kind(kind).value

    def ensure_directories(self) -> None:
        """Create the uploads and audios directories if they don't exist."""
        for kind in MediaKind:
            self.directory_for(kind).mkdir(parents=True, exist_ok=True)

    def save(
        self, kind: Union[str, MediaKind], filename: str, data: Union[bytes, BinaryIO]
    ) -> Dict[str, str]:
        """Store an uploaded file.

        Args:
            kind: "image" or "audio"
            filename: Original filename as sent by the client
            data: File content, as bytes or a readable binary stream

        Returns:
            {"url": "/uploads/<name>", "filename": "<name>", "path": "<absolute path>"}

        Raises:
            ValidationError: If the filename is empty or sanitizes to nothing.
        """
        media_kind = parse_media_kind(kind)
        if not filename or not filename.strip():
            raise ValidationError("file", "filename is required")
        safe_name = secure_filename(filename)
        if not safe_name:
            raise ValidationError("file", f"invalid filename: {filename!r}")

        if not is_supported_format(media_kind, safe_name):
            # Stored anyway; tags naming it will not classify as this kind
            logger.warning(f"Unrecognized {media_kind.name.lower()} format: {safe_name}")

        stored_name = f"{int(time.time() * 1000)}-{safe_name}"
        directory = self.directory_for(media_kind)
        directory.mkdir(parents=True, exist_ok=True)
        dest = directory / stored_name

        content = data if isinstance(data, (bytes, bytearray)) else data.read()
        with open(dest, "wb") as f:
            f.write(content)

        logger.info(f"Stored {media_kind.name.lower()} {stored_name} ({len(content)} bytes)")
        return {
            "url": f"{media_kind.url_prefix}{stored_name}",
            "filename": stored_name,
            "path": str(dest),
        }

    def get_file_path(self, kind: Union[str, MediaKind], filename: str) -> Optional[Path]:
        """Get the path to a stored file if it exists.

        Names that would escape the media directory resolve to None.
        """
        directory = self.directory_for(kind).resolve()
        path = (directory / filename).resolve()
        if path.parent != directory:
            return None
        return path if path.is_file() else None
