"""Speech synthesis callables for the tag playback scheduler.

The scheduler awaits ``synthesize(text, voice_id)`` and expects audio bytes.
GatewaySpeechClient calls the ElevenLabs gateway in-process;
ApiSpeechClient posts to /api/elevenlabs of a running HabitForge web server.
Both run the blocking HTTP request in the event loop's default executor.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import requests

from habitforge.core.gateways import SpeechSynthesisGateway, UpstreamError

logger = logging.getLogger(__name__)

__all__ = ["GatewaySpeechClient", "ApiSpeechClient"]


class GatewaySpeechClient:
    def __init__(self, gateway: SpeechSynthesisGateway) -> None:
        self.gateway = gateway

    async def __call__(self, text: str, voice_id: Optional[str] = None) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.gateway.synthesize, text, voice_id)


class ApiSpeechClient:
    """Synthesizes speech through a HabitForge server's /api/elevenlabs route."""

    service = "habitforge-api"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def synthesize(self, text: str, voice_id: Optional[str] = None) -> bytes:
        payload = {"text": text}
        if voice_id:
            payload["voiceId"] = voice_id

        try:
            response = self.session.post(
                f"{self.base_url}/api/elevenlabs", json=payload, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise UpstreamError(self.service, None, str(e)) from e

        if not response.ok:
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                details = body.get("details") or body.get("error") or response.text
            else:
                details = response.text
            raise UpstreamError(self.service, response.status_code, str(details))

        return response.content

    async def __call__(self, text: str, voice_id: Optional[str] = None) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.synthesize, text, voice_id)
