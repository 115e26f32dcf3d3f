"""
Speech subsystem for chat-tts.

Turns admitted chat messages into speech:
- MessageFilter decides whether a message is spoken and at what priority
- MessageFormatter builds the spoken text ("alice says: ...")
- VoiceResolver picks voice and prosody (random, per-user, per-role, default)
- SpeechQueue schedules items on the local engine, with an optional
  ExternalTtsAdapter (ElevenLabs / Edge-TTS) tried first

SpeechService wires these together around one SpeechOptions snapshot.

Install local/edge engines: pip install chat-tts[voice]
"""

from .catalog import EngineVoiceCatalog, StaticVoiceCatalog, Voice, VoiceCatalog
from .chunking import split_text_into_chunks
from .engines.base import SpeechEngine, SpeechEngineError, Utterance
from .external import (
    AudioOutput,
    AudioPlayer,
    ExternalTtsAdapter,
    ExternalTtsError,
    SubprocessAudioOutput,
    build_external_adapter,
)
from .filter import MessageFilter, is_bot_username
from .formatter import MessageFormatter
from .lookups import (
    RedemptionGrant,
    RedemptionLedger,
    RedemptionLookup,
    RedemptionType,
    RoleLookup,
    StaticRoleLookup,
)
from .models import (
    ExternalTtsSettings,
    FilterSettings,
    PlaybackState,
    QueueItem,
    SpeechOptions,
    VoiceAssignment,
    VoiceSettings,
)
from .queue import QueueObserver, SchedulerState, SpeechQueue
from .resolver import VoiceResolver, VoiceSelection
from .service import SpeechService

__all__ = [
    # Service
    "SpeechService",
    # Pipeline
    "MessageFilter",
    "is_bot_username",
    "MessageFormatter",
    "VoiceResolver",
    "VoiceSelection",
    "SpeechQueue",
    "SchedulerState",
    "QueueObserver",
    "split_text_into_chunks",
    # External TTS
    "ExternalTtsAdapter",
    "ExternalTtsError",
    "AudioPlayer",
    "AudioOutput",
    "SubprocessAudioOutput",
    "build_external_adapter",
    # Engines
    "SpeechEngine",
    "SpeechEngineError",
    "Utterance",
    # Catalog and lookups
    "Voice",
    "VoiceCatalog",
    "StaticVoiceCatalog",
    "EngineVoiceCatalog",
    "RoleLookup",
    "StaticRoleLookup",
    "RedemptionLookup",
    "RedemptionLedger",
    "RedemptionGrant",
    "RedemptionType",
    # Models
    "SpeechOptions",
    "FilterSettings",
    "VoiceSettings",
    "VoiceAssignment",
    "ExternalTtsSettings",
    "QueueItem",
    "PlaybackState",
]
