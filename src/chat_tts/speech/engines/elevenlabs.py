"""
ElevenLabs remote synthesizer.

Talks to the ElevenLabs REST API (https://api.elevenlabs.io/v1) with an
account API key. Returns MP3 audio for the ExternalTtsAdapter to play.
"""

import logging
from typing import Any, Optional

import httpx

from .base import AudioFormat, EngineVoice, RemoteSynthesizer, SynthesisResult

logger = logging.getLogger("chat-tts.speech.engines.elevenlabs")

ELEVENLABS_API_BASE = "https://api.elevenlabs.io/v1"
DEFAULT_MODEL_ID = "eleven_monolingual_v1"
DEFAULT_TIMEOUT = 30.0
DEFAULT_VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.75,
}


class ElevenLabsError(RuntimeError):
    """Error returned by the ElevenLabs API."""


class ElevenLabsSynthesizer(RemoteSynthesizer):
    """
    ElevenLabs text-to-speech client.

    Uses a single httpx.AsyncClient for connection pooling. The client is
    created lazily and closed by ``close()``.
    """

    def __init__(
        self,
        api_key: str,
        model_id: str = DEFAULT_MODEL_ID,
        base_url: str = ELEVENLABS_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the synthesizer.

        Args:
            api_key: ElevenLabs account API key
            model_id: Synthesis model identifier
            base_url: API base URL
            timeout: Request timeout in seconds
            client: Optional pre-configured httpx client (used by tests)
        """
        self.api_key = api_key
        self.model_id = model_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return "elevenlabs"

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "xi-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> SynthesisResult:
        if not self.api_key:
            raise ElevenLabsError("ElevenLabs API key not set")
        if not voice_id:
            raise ElevenLabsError("No ElevenLabs voice selected")

        payload = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": dict(DEFAULT_VOICE_SETTINGS),
        }

        try:
            response = await self._get_client().post(
                f"{self.base_url}/text-to-speech/{voice_id}",
                headers=self._headers,
                json=payload,
            )
        except httpx.HTTPError as exc:
            raise ElevenLabsError(f"ElevenLabs request failed: {exc}") from exc

        if response.status_code != 200:
            raise ElevenLabsError(
                f"ElevenLabs synthesis failed ({response.status_code}): {_error_detail(response)}"
            )

        logger.debug("ElevenLabs returned %d bytes for voice %s", len(response.content), voice_id)
        return SynthesisResult(
            audio_data=response.content,
            format=AudioFormat.MP3,
            engine_name=self.name,
            extra={"voice_id": voice_id, "model_id": self.model_id},
        )

    async def list_voices(self) -> list[EngineVoice]:
        """Fetch the account's voices.

        Raises:
            ElevenLabsError: If the request fails or the API reports an error.
        """
        if not self.api_key:
            raise ElevenLabsError("ElevenLabs API key not set")

        try:
            response = await self._get_client().get(
                f"{self.base_url}/voices",
                headers=self._headers,
            )
            data: dict[str, Any] = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ElevenLabsError(f"Failed to fetch ElevenLabs voices: {exc}") from exc

        if response.status_code != 200 or "error" in data:
            raise ElevenLabsError(f"Failed to fetch ElevenLabs voices: {_error_detail(response)}")

        return [
            EngineVoice(
                name=v.get("name", v["voice_id"]),
                language_tag=(v.get("labels") or {}).get("language", "en-US"),
                engine_id=v["voice_id"],
            )
            for v in data.get("voices", [])
        ]

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


def _error_detail(response: httpx.Response) -> str:
    """Extract a readable error message from an API error response."""
    try:
        data = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"

    detail = data.get("detail") or data.get("error")
    if isinstance(detail, dict):
        return str(detail.get("message") or detail)
    return str(detail or f"HTTP {response.status_code}")
