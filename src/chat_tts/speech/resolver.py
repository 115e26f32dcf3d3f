"""
Voice and prosody resolution for a queued item.

First match wins:

1. Randomization (when enabled, nothing else is consulted)
2. Exact sender assignment
3. Role-group assignment: moderator -> VIP -> subscriber -> general
4. Global defaults

Rate, pitch and volume left unset on a matched assignment are inherited
from the global defaults field by field.
"""

import logging
import random
from dataclasses import dataclass
from typing import Optional

from .catalog import VoiceCatalog
from .lookups import RoleLookup, check_safely
from .models import (
    ROLE_GENERAL,
    ROLE_MODERATORS,
    ROLE_SUBSCRIBERS,
    ROLE_VIPS,
    VoiceAssignment,
    VoiceSettings,
)

logger = logging.getLogger("chat-tts.speech.resolver")

SOURCE_RANDOM = "random"
SOURCE_USER = "user"
SOURCE_DEFAULT = "default"


@dataclass
class VoiceSelection:
    """Resolved voice and prosody for one item.

    Attributes:
        voice_name: Voice to speak with; None keeps the engine default.
        rate: Speaking rate multiplier.
        pitch: Pitch multiplier.
        volume: Volume between 0.0 and 1.0.
        source: Which resolution stage matched ("random", "user",
            "role:@vips", "default").
    """

    voice_name: Optional[str]
    rate: float
    pitch: float
    volume: float
    source: str = SOURCE_DEFAULT


class VoiceResolver:
    """Resolves the voice for a sender from VoiceSettings."""

    def __init__(
        self,
        catalog: VoiceCatalog,
        roles: Optional[RoleLookup] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        """
        Args:
            catalog: Installed voices, used for randomization
            roles: Role-membership collaborator for role-group assignments
            rng: Random source, injectable for deterministic tests
        """
        self._catalog = catalog
        self._roles = roles
        self._rng = rng or random.Random()

    def random_candidates(self, settings: VoiceSettings) -> list[str]:
        """Voice names eligible for random selection."""
        all_voices = self._catalog.voice_names()
        included = set(settings.included_voices_for_randomization)
        excluded = set(settings.excluded_voices_for_randomization)

        if included:
            candidates = [name for name in all_voices if name in included]
        elif excluded:
            candidates = [name for name in all_voices if name not in excluded]
        else:
            candidates = all_voices

        return candidates or all_voices

    async def resolve(self, sender_id: Optional[str], settings: VoiceSettings) -> VoiceSelection:
        """Resolve the voice and prosody for a sender.

        Args:
            sender_id: Chat username, or None for anonymous items.
            settings: Current voice settings snapshot.

        Returns:
            The resolved VoiceSelection.
        """
        if settings.randomize_voice:
            candidates = self.random_candidates(settings)
            if candidates:
                name = self._rng.choice(candidates)
                logger.debug("Random voice '%s' for '%s'", name, sender_id)
                return self._defaults(settings, voice_name=name, source=SOURCE_RANDOM)
            logger.warning("Voice randomization enabled but the catalog is empty")

        assignments = settings.user_voice_assignments

        if sender_id:
            lowered = sender_id.lower()
            for assignment in assignments:
                if assignment.username.lower() == lowered:
                    return self._apply(assignment, settings, SOURCE_USER)

        role_assignment = await self._match_role(sender_id, assignments)
        if role_assignment is not None:
            return self._apply(role_assignment, settings, f"role:{role_assignment.username}")

        return self._defaults(settings)

    async def _match_role(
        self,
        sender_id: Optional[str],
        assignments: list[VoiceAssignment],
    ) -> Optional[VoiceAssignment]:
        by_role = {
            a.username.lower(): a for a in reversed(assignments) if a.username.startswith("@")
        }
        if not by_role:
            return None

        if sender_id and self._roles is not None:
            checks = (
                (ROLE_MODERATORS, self._roles.is_moderator),
                (ROLE_VIPS, self._roles.is_vip),
                (ROLE_SUBSCRIBERS, self._roles.is_subscriber),
            )
            for token, check in checks:
                if token in by_role and await check_safely(check, sender_id, token):
                    return by_role[token]

        return by_role.get(ROLE_GENERAL)

    @staticmethod
    def _apply(assignment: VoiceAssignment, settings: VoiceSettings, source: str) -> VoiceSelection:
        return VoiceSelection(
            voice_name=assignment.voice_name or settings.voice_name,
            rate=assignment.rate if assignment.rate is not None else settings.rate,
            pitch=assignment.pitch if assignment.pitch is not None else settings.pitch,
            volume=assignment.volume if assignment.volume is not None else settings.volume,
            source=source,
        )

    @staticmethod
    def _defaults(
        settings: VoiceSettings,
        voice_name: Optional[str] = None,
        source: str = SOURCE_DEFAULT,
    ) -> VoiceSelection:
        return VoiceSelection(
            voice_name=voice_name if voice_name is not None else settings.voice_name,
            rate=settings.rate,
            pitch=settings.pitch,
            volume=settings.volume,
            source=source,
        )
