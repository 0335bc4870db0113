"""Piper TTS client used for narration tracks."""

import logging
from typing import Optional

from vidagents.errors import BackendJobError
from vidagents.services.service_client import ServiceClient

logger = logging.getLogger(__name__)

# UI voice names -> Piper voice models
VOICE_MODELS: dict[str, str] = {
    "amy": "en_US-amy-medium",
    "female": "en_US-lessac-medium",
    "male": "en_US-ryan-medium",
}


class PiperTTSClient(ServiceClient):
    """Async client for the Piper HTTP server."""

    service_name = "Piper TTS"

    async def synthesize(self, text: str, voice: Optional[str] = None) -> bytes:
        """Synthesize ``text`` and return WAV bytes.

        Args:
            text: Narration text.
            voice: UI voice name ("amy", "male", "female") or a raw Piper
                voice model id. None uses the server default.
        """
        payload: dict[str, str] = {"text": text}
        if voice:
            payload["voice"] = VOICE_MODELS.get(voice, voice)
        logger.info(
            "POST %s/ voice=%s chars=%d", self.host, payload.get("voice", "(default)"), len(text),
        )
        response = await self._request("POST", "/", json=payload)
        audio = response.content
        if not audio:
            raise BackendJobError("Piper TTS returned an empty audio body")
        return audio
