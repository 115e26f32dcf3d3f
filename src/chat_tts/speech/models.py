"""
Configuration and queue models for the chat speech pipeline.

The configuration models form one closed, versioned snapshot
(``SpeechOptions``) that is validated once when it is applied. The filter,
formatter and resolver only ever read from it.

Key components:
- FilterSettings: Admission rules and text clean-up toggles
- VoiceSettings: Default voice, randomization and per-user assignments
- ExternalTtsSettings: Remote TTS provider configuration
- SpeechOptions: The full snapshot handed to the speech service
- QueueItem / PlaybackState: Runtime state owned by the SpeechQueue
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, SecretStr, field_validator
from shortuuid import random

OPTIONS_SCHEMA_VERSION = 1

# Reserved match keys for role-group voice assignments / allow-list entries
ROLE_MODERATORS = "@moderators"
ROLE_VIPS = "@vips"
ROLE_SUBSCRIBERS = "@subscribers"
ROLE_GENERAL = "@general"

ROLE_TOKENS = (ROLE_MODERATORS, ROLE_VIPS, ROLE_SUBSCRIBERS, ROLE_GENERAL)


class UserNickname(BaseModel):
    """Spoken nickname for a chat user."""
    username: str
    nickname: str


class WordReplacement(BaseModel):
    """
    A pattern/replacement rule applied before speaking.

    Attributes:
        pattern: Regular expression to match
        replacement: Text to substitute
        case_sensitive: Whether matching respects case
        whole_word: Whether the pattern is wrapped in word boundaries
    """
    pattern: str
    replacement: str = ""
    case_sensitive: bool = False
    whole_word: bool = False


class FilterSettings(BaseModel):
    """Independently toggled admission and formatting rules."""

    enabled: bool = Field(
        default=True,
        description="When False every non-empty message is admitted"
    )
    keyword_blacklist: list[str] = Field(
        default_factory=list,
        description="Case-insensitive substrings that reject a message; '@name' entries block users"
    )
    user_blacklist: list[str] = Field(default_factory=list)
    speak_usernames: bool = True
    use_nicknames: bool = False
    user_nicknames: list[UserNickname] = Field(default_factory=list)
    skip_emojis_in_message: bool = True
    skip_links_in_message: bool = True
    skip_bot_messages: bool = True
    skip_command_messages: bool = Field(
        default=True,
        description="Never speak chat commands (messages starting with '!')"
    )
    specific_users_only: bool = False
    specific_users_list: list[str] = Field(
        default_factory=list,
        description="Allow-list of usernames and role tokens (@moderators, @vips, @subscribers)"
    )
    word_replacements: list[WordReplacement] = Field(default_factory=list)
    min_message_length: int = Field(default=0, ge=0)
    max_message_length: int = Field(default=500, ge=0)
    user_cooldown: float = Field(
        default=0,
        ge=0,
        description="Seconds required between two accepted messages from one user"
    )
    priority_users: list[str] = Field(default_factory=list)

    @field_validator(
        "keyword_blacklist",
        "user_blacklist",
        "specific_users_list",
        "priority_users",
        mode="before",
    )
    @classmethod
    def drop_blank_entries(cls, v: Optional[list[str]]) -> list[str]:
        """Accept null lists from hand-edited configs and strip blank entries."""
        if v is None:
            return []
        return [str(entry).strip() for entry in v if entry is not None and str(entry).strip()]


class VoiceAssignment(BaseModel):
    """
    Voice override for a single user or a role group.

    ``username`` is either an exact chat username or one of the reserved
    role tokens (``@moderators``, ``@vips``, ``@subscribers``, ``@general``).
    Prosody fields left as None fall through to the global defaults.
    """
    username: str
    voice_name: str
    rate: Optional[float] = Field(default=None, gt=0.0, le=10.0)
    pitch: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    volume: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class VoiceSettings(BaseModel):
    """Global voice defaults plus randomization and assignments."""

    voice_name: Optional[str] = None
    rate: float = Field(default=1.0, gt=0.0, le=10.0)
    pitch: float = Field(default=1.0, ge=0.0, le=2.0)
    volume: float = Field(default=1.0, ge=0.0, le=1.0)
    randomize_voice: bool = False
    included_voices_for_randomization: list[str] = Field(default_factory=list)
    excluded_voices_for_randomization: list[str] = Field(default_factory=list)
    user_voice_assignments: list[VoiceAssignment] = Field(default_factory=list)


class ExternalTtsProvider(str, Enum):
    """Remote synthesis backends."""
    ELEVENLABS = "elevenlabs"
    EDGE_TTS = "edge-tts"


class ExternalTtsSettings(BaseModel):
    """Remote TTS configuration. Disabled unless explicitly enabled."""

    enabled: bool = False
    provider: ExternalTtsProvider = ExternalTtsProvider.ELEVENLABS
    api_key: Optional[SecretStr] = None
    voice_id: Optional[str] = None
    model_id: str = "eleven_monolingual_v1"

    @property
    def is_usable(self) -> bool:
        """Whether the remote path should be attempted at all."""
        if not self.enabled:
            return False
        if self.provider == ExternalTtsProvider.ELEVENLABS:
            return self.api_key is not None and bool(self.api_key.get_secret_value())
        return True


class SpeechOptions(BaseModel):
    """Complete, versioned configuration snapshot for the speech pipeline."""

    version: int = Field(default=OPTIONS_SCHEMA_VERSION)
    voice: VoiceSettings = Field(default_factory=VoiceSettings)
    filters: FilterSettings = Field(default_factory=FilterSettings)
    external_tts: ExternalTtsSettings = Field(default_factory=ExternalTtsSettings)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: int) -> int:
        if v > OPTIONS_SCHEMA_VERSION:
            raise ValueError(
                f"options version {v} is newer than supported version {OPTIONS_SCHEMA_VERSION}"
            )
        return v


@dataclass
class QueueItem:
    """A unit of text waiting in the SpeechQueue.

    Attributes:
        text: Already formatted text to speak.
        priority: Higher values are spoken first.
        sender_id: Chat username the text came from, if any.
        correlation_id: Identifier used to remove/reorder the item.
    """

    text: str
    priority: int = 0
    sender_id: Optional[str] = None
    correlation_id: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {
            "text": self.text,
            "priority": self.priority,
            "sender_id": self.sender_id,
            "correlation_id": self.correlation_id,
        }


@dataclass
class PlaybackState:
    """Scheduler state; only the SpeechQueue mutates it."""

    speaking: bool = False
    paused: bool = False
    current_item: Optional[QueueItem] = None


def new_correlation_id() -> str:
    """Generate a short random correlation id for a queue item."""
    return random(length=10)


__all__ = [
    "OPTIONS_SCHEMA_VERSION",
    "ROLE_MODERATORS",
    "ROLE_VIPS",
    "ROLE_SUBSCRIBERS",
    "ROLE_GENERAL",
    "ROLE_TOKENS",
    "UserNickname",
    "WordReplacement",
    "FilterSettings",
    "VoiceAssignment",
    "VoiceSettings",
    "ExternalTtsProvider",
    "ExternalTtsSettings",
    "SpeechOptions",
    "QueueItem",
    "PlaybackState",
    "new_correlation_id",
]
