"""
Catalog of installed synthetic voices.

The host platform owns the actual list of voices; the speech pipeline
only needs to enumerate them (for randomization) and look one up by
name (for assignments and defaults).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional

from .engines.base import SpeechEngine

logger = logging.getLogger("chat-tts.speech.catalog")


@dataclass(frozen=True)
class Voice:
    """An installed voice.

    Attributes:
        name: Voice name, unique within a catalog.
        language_tag: Language of the voice, e.g. "en-US".
    """

    name: str
    language_tag: str = "en-US"


class VoiceCatalog(ABC):
    """Read-only view of the voices available to the local engine."""

    @abstractmethod
    def list_voices(self) -> list[Voice]:
        ...

    def find_by_name(self, name: Optional[str]) -> Optional[Voice]:
        """Return the voice with exactly this name, or None."""
        if not name:
            return None
        for voice in self.list_voices():
            if voice.name == name:
                return voice
        return None

    def voice_names(self) -> list[str]:
        return [voice.name for voice in self.list_voices()]

    @staticmethod
    def from_engine(engine: SpeechEngine) -> "EngineVoiceCatalog":
        """Build a catalog over a local engine's installed voices."""
        return EngineVoiceCatalog(engine)


class StaticVoiceCatalog(VoiceCatalog):
    """Catalog over a fixed list of voices."""

    def __init__(self, voices: Iterable[Voice]) -> None:
        self._voices = list(voices)

    @classmethod
    def from_names(cls, names: Iterable[str], language_tag: str = "en-US") -> "StaticVoiceCatalog":
        return cls(Voice(name=name, language_tag=language_tag) for name in names)

    def list_voices(self) -> list[Voice]:
        return list(self._voices)


class EngineVoiceCatalog(VoiceCatalog):
    """Catalog backed by a local SpeechEngine's installed voices.

    Voices are loaded on first access and cached until ``refresh()``.
    """

    def __init__(self, engine: SpeechEngine) -> None:
        self._engine = engine
        self._voices: Optional[list[Voice]] = None

    def refresh(self) -> int:
        """Reload voices from the engine. Returns the number of voices."""
        self._voices = [
            Voice(name=v.name, language_tag=v.language_tag)
            for v in self._engine.list_voices()
        ]
        logger.info("Loaded %d voices from engine '%s'", len(self._voices), self._engine.name)
        return len(self._voices)

    def list_voices(self) -> list[Voice]:
        if self._voices is None:
            self.refresh()
        return list(self._voices or [])
