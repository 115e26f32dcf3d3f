"""
Local speech engine backed by pyttsx3.

pyttsx3 drives the operating system's own voices (SAPI5 on Windows,
NSSpeechSynthesizer on macOS, espeak-ng on Linux). Its run loop blocks,
so each utterance is spoken in a worker thread and the coroutine returns
when the engine's ``finished-utterance`` event fires.

Requires the `pyttsx3` package: pip install chat-tts[voice]
"""

import asyncio
import logging
import threading
from typing import Any, Optional

from .base import EngineVoice, SpeechEngine, SpeechEngineError, Utterance

logger = logging.getLogger("chat-tts.speech.engines.pyttsx")

# pyttsx3 expresses rate in words per minute; 1.0x maps to this value
_BASE_WORDS_PER_MINUTE = 200


def _check_pyttsx3_available() -> bool:
    """Check if the pyttsx3 package is importable."""
    try:
        import pyttsx3  # noqa: F401

        return True
    except ImportError:
        return False


class Pyttsx3Engine(SpeechEngine):
    """Speaks utterances with the host's installed system voices.

    The underlying engine instance is created lazily on first use and is
    exclusively owned by this wrapper.
    """

    def __init__(self, driver_name: Optional[str] = None) -> None:
        self._driver_name = driver_name
        self._available: bool | None = None
        self._engine: Any = None
        self._lock = threading.Lock()
        self._voices: list[EngineVoice] = []

    @property
    def name(self) -> str:
        return "pyttsx3"

    def is_available(self) -> bool:
        if self._available is None:
            self._available = _check_pyttsx3_available()
            if not self._available:
                logger.debug("pyttsx3 package not installed")
        return self._available

    def _ensure_engine(self) -> Any:
        if self._engine is not None:
            return self._engine
        if not self.is_available():
            raise SpeechEngineError("pyttsx3 engine is not available (pyttsx3 not installed)")

        import pyttsx3

        try:
            self._engine = pyttsx3.init(self._driver_name)
        except Exception as exc:
            raise SpeechEngineError(f"pyttsx3 initialisation failed: {exc}") from exc

        self._voices = [
            EngineVoice(
                name=getattr(voice, "name", None) or voice.id,
                language_tag=_language_tag(voice),
                engine_id=voice.id,
            )
            for voice in (self._engine.getProperty("voices") or [])
        ]
        logger.info("pyttsx3 engine initialised with %d voices", len(self._voices))
        return self._engine

    def list_voices(self) -> list[EngineVoice]:
        try:
            self._ensure_engine()
        except SpeechEngineError as exc:
            logger.warning("Cannot list pyttsx3 voices: %s", exc)
            return []
        return list(self._voices)

    async def speak(self, utterance: Utterance) -> None:
        engine = self._ensure_engine()
        await asyncio.to_thread(self._speak_sync, engine, utterance)

    def _speak_sync(self, engine: Any, utterance: Utterance) -> None:
        """Blocking speak, executed in a worker thread."""
        with self._lock:
            voice_id = self._voice_id_for(utterance.voice_name)
            try:
                if voice_id is not None:
                    engine.setProperty("voice", voice_id)
                engine.setProperty("rate", int(_BASE_WORDS_PER_MINUTE * utterance.rate))
                engine.setProperty("volume", max(0.0, min(1.0, utterance.volume)))
                engine.say(utterance.text)
                engine.runAndWait()
            except Exception as exc:
                raise SpeechEngineError(f"pyttsx3 utterance failed: {exc}") from exc

    def _voice_id_for(self, voice_name: Optional[str]) -> Optional[str]:
        if not voice_name:
            return None
        for voice in self._voices:
            if voice.name == voice_name:
                return voice.engine_id
        logger.debug("Voice '%s' not installed, keeping engine default", voice_name)
        return None

    def cancel(self) -> None:
        if self._engine is None:
            return
        try:
            self._engine.stop()
        except Exception as exc:
            logger.warning("pyttsx3 stop failed: %s", exc)

    async def shutdown(self) -> None:
        self.cancel()
        self._engine = None


def _language_tag(voice: Any) -> str:
    languages = getattr(voice, "languages", None) or []
    if not languages:
        return "en-US"
    tag = languages[0]
    if isinstance(tag, bytes):
        # espeak reports languages as b"\x05en-us"
        tag = tag.decode("utf-8", errors="ignore").lstrip("\x05")
    return str(tag)
