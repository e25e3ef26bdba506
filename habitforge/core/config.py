"""Configuration management for HabitForge.

This module handles loading and saving application configuration to/from
a JSON file. The config directory can be customized via CLI argument.

API keys are never written to the config file; they are read from the
environment (ELEVENLABS_API_KEY, ELEVENLABS_VOICE_ID, OPENAI_API_KEY).

CRITICAL: This module must have NO Flask dependencies.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from .validation import ValidationError

__all__ = ["Config", "DEFAULT_CONFIG_DIR"]

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "habitforge"

# Environment variables that take precedence over config keys
ENV_OVERRIDES = {
    "elevenlabs_voice_id": "ELEVENLABS_VOICE_ID",
}


class Config:
    """Manages application configuration stored in JSON format.

    Attributes:
        config_dir: Path to the configuration directory
    """

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """Initialize configuration manager.

        Args:
            config_dir: Custom config directory path. If None, uses ~/.config/habitforge/
        """
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.config_data = self.load_config()

    @property
    def config_file(self) -> Path:
        """Get the config file path."""
        return self.config_dir / "config.json"

    def _defaults(self) -> Dict[str, Any]:
        return {
            "database_file": str(self.config_dir / "habitforge.db"),
            "media_directory": str(self.config_dir / "public"),
            "elevenlabs_api_url": "https://api.elevenlabs.io/v1/text-to-speech",
            "elevenlabs_voice_id": "H6QPv2pQZDcGqLwDTIJQ",
            "elevenlabs_model_id": "eleven_multilingual_v2",
            "hindi_voice_id": "21m00Tcm4TlvDq8ikWAM",
            "openai_model": "gpt-3.5-turbo",
            "request_timeout": 30,
            "tag_repeat_count": 1,
            "sequence_repeat_count": 1,
        }

    def load_config(self) -> Dict[str, Any]:
        """Load configuration from file, creating it with defaults if missing.

        Returns:
            Configuration dictionary with defaults filled in.

        Raises:
            ValidationError: If the config file is not valid JSON.
        """
        config = self._defaults()
        if not self.config_file.exists():
            self.save_config(config)
            logger.info(f"Created default config at {self.config_file}")
            return config

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                stored = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError("config_file", f"invalid JSON: {e}") from None

        if not isinstance(stored, dict):
            raise ValidationError("config_file", "must contain a JSON object")

        config.update(stored)
        return config

    def save_config(self, config: Dict[str, Any]) -> None:
        """Write configuration to file."""
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(config, f, indent=2, ensure_ascii=False)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Environment overrides win over the file for the keys that have one.
        """
        env_name = ENV_OVERRIDES.get(key)
        if env_name and os.environ.get(env_name):
            return os.environ[env_name]
        value = self.config_data.get(key)
        return value if value is not None else default

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value and save to file."""
        self.config_data[key] = value
        self.save_config(self.config_data)

    def get_config_dir(self) -> Path:
        """Get the configuration directory path."""
        return self.config_dir

    def get_database_file(self) -> Path:
        """Get the database file path."""
        return Path(self.get("database_file"))

    def get_media_directory(self) -> Path:
        """Get the directory holding uploads/ and audios/."""
        return Path(self.get("media_directory"))

    def get_elevenlabs_api_key(self) -> Optional[str]:
        """Get the ElevenLabs API key from the environment."""
        return os.environ.get("ELEVENLABS_API_KEY") or None

    def get_openai_api_key(self) -> Optional[str]:
        """Get the OpenAI API key from the environment."""
        return os.environ.get("OPENAI_API_KEY") or None

    def get_int(self, key: str, default: int) -> int:
        """Get a positive integer value, falling back to default on bad data."""
        value = self.get(key, default)
        try:
            number = int(value)
        except (TypeError, ValueError):
            logger.warning(f"Config value {key}={value!r} is not an integer, using {default}")
            return default
        return number if number > 0 else default
