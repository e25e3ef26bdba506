"""Input validation for HabitForge.

This module provides validation functions for all user inputs.
All validators raise ValidationError with descriptive messages.

CRITICAL: This module must have NO Flask dependencies.
"""

from __future__ import annotations

import uuid
from typing import Any, List, Optional

__all__ = [
    "ValidationError",
    "validate_uuid_hex",
    "validate_entity_id",
    "validate_required_string",
    "validate_optional_string",
    "validate_optional_int",
    "validate_string_list",
    "validate_tags",
    "validate_id_list",
    "validate_event_type",
    "EVENT_TYPES",
]

# Limits
MAX_NAME_LENGTH = 200
MAX_NOTE_CONTENT_LENGTH = 100_000
MAX_TAG_LENGTH = 2_000
MAX_TAGS_PER_NOTE = 500

EVENT_TYPES = ("HIT", "SLIP")


class ValidationError(ValueError):
    """Validation error with field and message attributes."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"

    def __repr__(self) -> str:
        return f"ValidationError(field='{self.field}', message='{self.message}')"


def validate_uuid_hex(value: str, field_name: str = "id") -> str:
    """Validate a UUID hex string and return it normalized (32 chars, lowercase)."""
    if not isinstance(value, str):
        raise ValidationError(
            field_name, f"must be a string, got {type(value).__name__}"
        )
    try:
        return uuid.UUID(hex=value.replace("-", "")).hex
    except ValueError as e:
        raise ValidationError(field_name, f"invalid UUID format: {e}") from None


def validate_entity_id(entity_id: Any, field_name: str = "id") -> str:
    """Validate a required entity ID (habit, event, note, user)."""
    if entity_id is None or entity_id == "":
        raise ValidationError(field_name, "is required")
    return validate_uuid_hex(entity_id, field_name)


def validate_required_string(
    value: Any, field_name: str, max_length: int = MAX_NAME_LENGTH
) -> str:
    """Validate a required, non-blank string and return it stripped."""
    if value is None:
        raise ValidationError(field_name, "is required")
    if not isinstance(value, str):
        raise ValidationError(
            field_name, f"must be a string, got {type(value).__name__}"
        )
    stripped = value.strip()
    if not stripped:
        raise ValidationError(field_name, "cannot be empty or whitespace only")
    if len(stripped) > max_length:
        raise ValidationError(
            field_name, f"cannot exceed {max_length} characters (got {len(stripped)})"
        )
    return stripped


def validate_optional_string(
    value: Any, field_name: str, max_length: int = MAX_NOTE_CONTENT_LENGTH
) -> Optional[str]:
    """Validate an optional string. None passes through unchanged."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(
            field_name, f"must be a string, got {type(value).__name__}"
        )
    if len(value) > max_length:
        raise ValidationError(
            field_name, f"cannot exceed {max_length} characters (got {len(value)})"
        )
    return value


def validate_optional_int(value: Any, field_name: str) -> Optional[int]:
    """Validate an optional integer (bools are rejected)."""
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            field_name, f"must be an integer, got {type(value).__name__}"
        )
    return value


def validate_string_list(value: Any, field_name: str) -> List[str]:
    """Validate a list of strings. None becomes an empty list."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(field_name, f"must be a list, got {type(value).__name__}")
    for i, item in enumerate(value):
        if not isinstance(item, str):
            raise ValidationError(
                field_name, f"item {i} must be a string, got {type(item).__name__}"
            )
    return list(value)


def validate_tags(tags: Any) -> List[str]:
    """Validate note tags.

    Anything that is not a list is treated as "no tags", matching how the
    notes endpoints have always behaved. Items are stripped and empty items
    dropped; order is preserved because it defines playback order.
    """
    if not isinstance(tags, list):
        return []
    result: List[str] = []
    for i, tag in enumerate(tags):
        if not isinstance(tag, str):
            raise ValidationError("tags", f"item {i} must be a string, got {type(tag).__name__}")
        stripped = tag.strip()
        if not stripped:
            continue
        if len(stripped) > MAX_TAG_LENGTH:
            raise ValidationError("tags", f"item {i} exceeds {MAX_TAG_LENGTH} characters")
        result.append(stripped)
    if len(result) > MAX_TAGS_PER_NOTE:
        raise ValidationError("tags", f"cannot exceed {MAX_TAGS_PER_NOTE} tags")
    return result


def validate_id_list(ids: Any, field_name: str = "ids") -> List[str]:
    """Validate a non-empty list of entity IDs."""
    if not isinstance(ids, list) or not ids:
        raise ValidationError(field_name, "must be a non-empty list")
    result = []
    for i, entity_id in enumerate(ids):
        try:
            result.append(validate_uuid_hex(entity_id, field_name))
        except ValidationError as e:
            raise ValidationError(field_name, f"item {i}: {e.message}") from None
    return result


def validate_event_type(value: Any) -> str:
    """Validate a habit event type. Accepts any case, returns HIT or SLIP."""
    if not isinstance(value, str):
        raise ValidationError("type", f"must be one of {', '.join(EVENT_TYPES)}")
    normalized = value.strip().upper()
    if normalized not in EVENT_TYPES:
        raise ValidationError("type", f"must be one of {', '.join(EVENT_TYPES)}")
    return normalized
