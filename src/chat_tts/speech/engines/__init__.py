"""
Speech backends for the chat-tts speech subsystem.

Local engines implement SpeechEngine; remote APIs implement
RemoteSynthesizer. Engines with optional dependencies report
availability instead of raising ImportError.
"""

from .base import (
    AudioFormat,
    EngineVoice,
    RemoteSynthesizer,
    SpeechEngine,
    SpeechEngineError,
    SynthesisResult,
    Utterance,
)
from .edge_tts import EdgeTTSSynthesizer
from .elevenlabs import ElevenLabsError, ElevenLabsSynthesizer
from .pyttsx import Pyttsx3Engine

__all__ = [
    "AudioFormat",
    "EngineVoice",
    "RemoteSynthesizer",
    "SpeechEngine",
    "SpeechEngineError",
    "SynthesisResult",
    "Utterance",
    "EdgeTTSSynthesizer",
    "ElevenLabsError",
    "ElevenLabsSynthesizer",
    "Pyttsx3Engine",
]
