"""Clients for the external speech synthesis and chat completion services.

SpeechSynthesisGateway talks to the ElevenLabs text-to-speech HTTP API
with requests. ChatCompletionGateway talks to the OpenAI chat completion
API through the openai SDK. Both raise UpstreamError for anything that
goes wrong on the other side, so callers only handle one exception type.

CRITICAL: This module must have NO Flask dependencies.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests
from openai import OpenAI, OpenAIError

from .config import Config

logger = logging.getLogger(__name__)

__all__ = ["UpstreamError", "SpeechSynthesisGateway", "ChatCompletionGateway"]

VOICE_SETTINGS = {"stability": 0.5, "similarity_boost": 0.5}


class UpstreamError(Exception):
    """An external service failed or could not be reached.

    Attributes:
        service: Short service name ("elevenlabs", "openai")
        status: Upstream HTTP status, or None for configuration/transport failures
        body: Upstream response body or error description
    """

    def __init__(self, service: str, status: Optional[int], body: str) -> None:
        self.service = service
        self.status = status
        self.body = body
        if status is None:
            super().__init__(f"{service}: {body}")
        else:
            super().__init__(f"{service} returned {status}: {body}")


class SpeechSynthesisGateway:
    """Text to speech via the ElevenLabs API."""

    service = "elevenlabs"

    def __init__(
        self,
        api_key: Optional[str],
        api_url: str,
        default_voice_id: str,
        model_id: str,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key
        self.api_url = api_url.rstrip("/")
        self.default_voice_id = default_voice_id
        self.model_id = model_id
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_config(cls, config: Config) -> "SpeechSynthesisGateway":
        return cls(
            api_key=config.get_elevenlabs_api_key(),
            api_url=config.get("elevenlabs_api_url"),
            default_voice_id=config.get("elevenlabs_voice_id"),
            model_id=config.get("elevenlabs_model_id"),
            timeout=config.get_int("request_timeout", 30),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def synthesize(self, text: str, voice_id: Optional[str] = None) -> bytes:
        """Convert text to speech.

        Args:
            text: Text to speak
            voice_id: Voice to use; the default voice when None

        Returns:
            MP3 audio bytes

        Raises:
            UpstreamError: If no API key is configured, the request fails,
                or the API answers with a non-2xx status
        """
        if not self.api_key:
            raise UpstreamError(self.service, None, "ElevenLabs API key not configured")

        url = f"{self.api_url}/{voice_id or self.default_voice_id}"
        payload = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": VOICE_SETTINGS,
        }
        headers = {
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
            "xi-api-key": self.api_key,
        }

        try:
            response = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"ElevenLabs request failed: {e}")
            raise UpstreamError(self.service, None, str(e)) from e

        if not response.ok:
            logger.error(f"ElevenLabs API error {response.status_code}: {response.text}")
            raise UpstreamError(self.service, response.status_code, response.text)

        logger.info(f"Synthesized {len(text)} characters ({len(response.content)} bytes)")
        return response.content


class ChatCompletionGateway:
    """Prompt to text via the OpenAI chat completion API."""

    service = "openai"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-3.5-turbo",
        timeout: float = 30,
        client: Any = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_config(cls, config: Config) -> "ChatCompletionGateway":
        return cls(
            api_key=config.get_openai_api_key(),
            model=config.get("openai_model"),
            timeout=config.get_int("request_timeout", 30),
        )

    def _get_client(self) -> Any:
        if self._client is None:
            if not self.api_key:
                raise UpstreamError(self.service, None, "OpenAI API key not configured")
            self._client = OpenAI(api_key=self.api_key, timeout=self.timeout)
        return self._client

    def complete(self, prompt: str) -> str:
        """Send a single user prompt and return the reply text.

        Raises:
            UpstreamError: If no API key is configured or the SDK call fails
        """
        client = self._get_client()
        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
            )
        except OpenAIError as e:
            status = getattr(e, "status_code", None)
            logger.error(f"OpenAI request failed ({status}): {e}")
            raise UpstreamError(self.service, status, str(e)) from e

        return response.choices[0].message.content or ""
