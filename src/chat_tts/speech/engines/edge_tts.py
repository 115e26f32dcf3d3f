"""
Edge-TTS remote synthesizer.

Edge-TTS uses Microsoft's edge speech service (free, no API key) to
provide cloud-based text-to-speech. It is the keyless alternative to
ElevenLabs for the external TTS path.

Requires the `edge-tts` package: pip install chat-tts[voice]
"""

import logging
import time
from typing import Optional

from .base import AudioFormat, EngineVoice, RemoteSynthesizer, SynthesisResult

logger = logging.getLogger("chat-tts.speech.engines.edge_tts")

DEFAULT_VOICE = "en-US-GuyNeural"


def _check_edge_tts_available() -> bool:
    """Check if the edge-tts package is importable."""
    try:
        import edge_tts  # noqa: F401

        return True
    except ImportError:
        return False


def _percent(multiplier: float) -> str:
    """Convert a 1.0-based multiplier into edge-tts' signed percent string."""
    value = int(round((multiplier - 1) * 100))
    return f"+{value}%" if value >= 0 else f"{value}%"


class EdgeTTSSynthesizer(RemoteSynthesizer):
    """Edge-TTS synthesizer for cloud-based speech synthesis.

    Requires an internet connection. Returns MP3 audio.
    """

    def __init__(self, default_voice: str = DEFAULT_VOICE, rate: float = 1.0, volume: float = 1.0) -> None:
        self._available: bool | None = None
        self.default_voice = default_voice
        self.rate = rate
        self.volume = volume

    @property
    def name(self) -> str:
        return "edge-tts"

    def is_available(self) -> bool:
        if self._available is None:
            self._available = _check_edge_tts_available()
            if not self._available:
                logger.debug("edge-tts package not installed")
        return self._available

    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> SynthesisResult:
        """Synthesize text using Edge-TTS.

        Raises:
            RuntimeError: If edge-tts is not available or synthesis fails.
        """
        if not self.is_available():
            raise RuntimeError("Edge-TTS is not available (edge-tts not installed)")

        voice = voice_id or self.default_voice

        try:
            import edge_tts

            start_time = time.monotonic()
            communicate = edge_tts.Communicate(
                text,
                voice=voice,
                rate=_percent(self.rate),
                volume=_percent(self.volume),
            )

            audio_chunks: list[bytes] = []
            async for chunk in communicate.stream():
                if chunk["type"] == "audio":
                    audio_chunks.append(chunk["data"])

            audio_data = b"".join(audio_chunks)
            elapsed_ms = (time.monotonic() - start_time) * 1000
            logger.info(
                "Edge-TTS synthesis: %.0fms latency, %d bytes, voice=%s",
                elapsed_ms,
                len(audio_data),
                voice,
            )
        except ImportError:
            self._available = False
            raise RuntimeError("edge-tts package not found during synthesis")
        except Exception as exc:
            raise RuntimeError(f"Edge-TTS synthesis failed: {exc}") from exc

        if not audio_data:
            raise RuntimeError("Edge-TTS returned no audio")

        return SynthesisResult(
            audio_data=audio_data,
            format=AudioFormat.MP3,
            engine_name=self.name,
            extra={"voice": voice},
        )

    async def list_voices(self) -> list[EngineVoice]:
        if not self.is_available():
            return []

        import edge_tts

        try:
            voices = await edge_tts.list_voices()
        except Exception as exc:
            logger.warning("Failed to list Edge-TTS voices: %s", exc)
            return []

        return [
            EngineVoice(
                name=v.get("FriendlyName") or v["ShortName"],
                language_tag=v.get("Locale", "en-US"),
                engine_id=v["ShortName"],
            )
            for v in voices
        ]
