"""
Abstract base classes for speech backends.

Two kinds of backend exist:

- SpeechEngine: a local engine that speaks an utterance on the audio
  device itself (system voices). Completion is awaited, so the engine's
  end/error events become the return/raise of ``speak()``.
- RemoteSynthesizer: a remote API that turns text into an audio buffer,
  which the ExternalTtsAdapter then plays through its AudioPlayer.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class AudioFormat(Enum):
    """Supported audio buffer formats."""

    WAV = "wav"
    MP3 = "mp3"
    OPUS = "opus"


class SpeechEngineError(RuntimeError):
    """Raised when the local engine reports an utterance error."""


@dataclass
class EngineVoice:
    """A voice as reported by a speech engine.

    Attributes:
        name: Human-readable voice name (the lookup key).
        language_tag: BCP-47 style language tag, e.g. "en-US".
        engine_id: Engine-specific identifier for the voice.
    """

    name: str
    language_tag: str = "en-US"
    engine_id: Optional[str] = None


@dataclass
class Utterance:
    """One discrete piece of text for the local engine.

    Attributes:
        text: Text to speak. Already within the engine's length limit.
        voice_name: Name of the voice to use; None keeps the engine default.
        rate: Speaking rate multiplier (1.0 = normal).
        pitch: Pitch multiplier (1.0 = normal).
        volume: Volume between 0.0 and 1.0.
    """

    text: str
    voice_name: Optional[str] = None
    rate: float = 1.0
    pitch: float = 1.0
    volume: float = 1.0


@dataclass
class SynthesisResult:
    """Audio produced by a remote synthesizer.

    Attributes:
        audio_data: Raw encoded audio bytes.
        format: Encoding of ``audio_data``.
        engine_name: Name of the synthesizer that produced it.
        extra: Provider-specific metadata.
    """

    audio_data: bytes
    format: AudioFormat
    engine_name: str
    extra: dict[str, object] = field(default_factory=dict)


class SpeechEngine(ABC):
    """Abstract local speech engine.

    Subclasses must implement:
    - name: A human-readable engine name.
    - is_available(): Whether the engine's dependencies are installed.
    - list_voices(): Voices the engine can speak with.
    - speak(): Speak one utterance, returning when it has ended.
    - cancel(): End the in-flight utterance early.

    ``speak()`` must return normally when the utterance ends or is
    cancelled, and raise SpeechEngineError when the engine reports an
    error. Only the SpeechQueue calls into an engine instance.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable engine name."""
        ...

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this engine's dependencies are installed and functional."""
        ...

    @abstractmethod
    def list_voices(self) -> list[EngineVoice]:
        """Return the voices installed for this engine."""
        ...

    @abstractmethod
    async def speak(self, utterance: Utterance) -> None:
        """Speak an utterance and wait until it ends.

        Raises:
            SpeechEngineError: If the engine reports an error.
        """
        ...

    @abstractmethod
    def cancel(self) -> None:
        """Stop the in-flight utterance. Safe to call when idle."""
        ...

    def pause(self) -> None:
        """Suspend the in-flight utterance.

        Default implementation is a no-op for engines without pause support.
        """

    def resume(self) -> None:
        """Resume a suspended utterance. Default implementation is a no-op."""

    async def shutdown(self) -> None:
        """Optional cleanup to release resources."""


class RemoteSynthesizer(ABC):
    """Abstract remote text-to-audio API client."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> SynthesisResult:
        """Convert text to an audio buffer.

        Raises:
            RuntimeError: If the request fails for any reason.
        """
        ...

    async def list_voices(self) -> list[EngineVoice]:
        """List remote voices. Default returns an empty list."""
        return []

    async def close(self) -> None:
        """Release network resources. Default is a no-op."""
