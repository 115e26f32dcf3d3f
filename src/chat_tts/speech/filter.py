"""
Message admission filter.

Decides whether a chat message is spoken at all and with what priority.
Rules are evaluated in a fixed order and the first failing rule rejects
the message:

  1. Empty / whitespace-only message
  2. Filtering disabled -> admit everything else
  3. Allow-list mode (usernames, role tokens, active redemptions)
  4. Blocked users
  5. Message length bounds
  6. Per-user cooldown
  7. Emoji-only message
  8. Bot usernames (when enabled)
  9. Blacklisted keywords

Role and redemption lookups are async collaborators; a failing lookup
counts as "no" and never aborts filtering.
"""

import logging
import re
import time
from typing import Callable, Optional

from .formatter import is_emoji_only
from .lookups import RedemptionLookup, RoleLookup, check_safely
from .models import ROLE_MODERATORS, ROLE_SUBSCRIBERS, ROLE_VIPS, FilterSettings

logger = logging.getLogger("chat-tts.speech.filter")

PRIORITY_USER_BONUS = 10

# Well-known chat bots
KNOWN_BOTS: frozenset[str] = frozenset({
    "nightbot",
    "streamelements",
    "streamlabs",
    "moobot",
    "commanderroot",
    "sery_bot",
    "fossabot",
    "deepbot",
    "wizebot",
    "streamcaptainbot",
    "pretzelrocks",
    "botisimo",
    "phantombot",
    "streamjam",
    "stay_hydrated_bot",
    "soundalerts",
    "ankhbot",
    "streamkit",
    "vivbot",
    "coebot",
    "xanbot",
    "scottybot",
    "ohbot",
    "hnlbot",
    "revlobot",
    "muxybot",
    "mirthbot",
    "fredboat",
    "electricalskateboard",
    "blerp",
    "slanderbot",
    "streamholics",
    "restreambot",
    "songlistbot",
    "creatisbot",
    "mitsuku",
    "streamavatarbot",
    "twitchprimereminder",
    "own3d",
    "streamdeck",
    "streamdeckbot",
})

_BOT_PATTERNS = (
    re.compile(r"bot$", re.IGNORECASE),
    re.compile(r"^bot", re.IGNORECASE),
    re.compile(r"_bot_", re.IGNORECASE),
    re.compile(r"\bbot\b", re.IGNORECASE),
)


def is_bot_username(username: str) -> bool:
    """Check if a username belongs to a known bot or looks like one."""
    if username.lower() in KNOWN_BOTS:
        return True
    return any(pattern.search(username) for pattern in _BOT_PATTERNS)


class MessageFilter:
    """
    Admission filter with per-user cooldown state.

    Attributes:
        settings: Current FilterSettings snapshot (read-only during a pass)
        _last_accepted: Maps lower-cased username -> monotonic time of the
            user's last admitted message
    """

    def __init__(
        self,
        settings: Optional[FilterSettings] = None,
        roles: Optional[RoleLookup] = None,
        redemptions: Optional[RedemptionLookup] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the filter.

        Args:
            settings: Initial filter settings (defaults if None)
            roles: Role-membership collaborator; without one nobody holds a role
            redemptions: Redemption collaborator; without one nobody holds a grant
            clock: Monotonic clock in seconds, injectable for tests
        """
        self.settings = settings or FilterSettings()
        self._roles = roles
        self._redemptions = redemptions
        self._clock = clock
        self._last_accepted: dict[str, float] = {}

    def update_settings(self, settings: FilterSettings) -> None:
        """Replace the settings snapshot. Cooldown state is kept."""
        self.settings = settings

    async def should_admit(self, message: str, sender_id: Optional[str] = None) -> bool:
        """Decide whether a message should be spoken.

        Args:
            message: Raw chat message.
            sender_id: Chat username, if known.

        Returns:
            True if every enabled rule passes.
        """
        if not message or not message.strip():
            return False

        settings = self.settings
        if not settings.enabled:
            return True

        if settings.specific_users_only and not await self._passes_allow_list(sender_id):
            logger.debug("Rejected message from '%s': not on allow-list", sender_id)
            return False

        if sender_id and self._is_blocked_user(sender_id):
            logger.debug("Rejected message from blocked user '%s'", sender_id)
            return False

        if settings.min_message_length and len(message) < settings.min_message_length:
            return False
        if settings.max_message_length and len(message) > settings.max_message_length:
            return False

        now = self._clock()
        if sender_id and settings.user_cooldown > 0:
            last = self._last_accepted.get(sender_id.lower())
            if last is not None and (now - last) < settings.user_cooldown:
                logger.debug("Rejected message from '%s': cooldown active", sender_id)
                return False

        if is_emoji_only(message):
            return False

        if settings.skip_bot_messages and sender_id and is_bot_username(sender_id):
            logger.debug("Rejected message from bot '%s'", sender_id)
            return False

        keyword = self._blacklisted_keyword(message)
        if keyword is not None:
            logger.info("Message blocked due to keyword: %s", keyword)
            return False

        if sender_id and settings.user_cooldown > 0:
            self._last_accepted[sender_id.lower()] = now
        return True

    def compute_priority(self, message: str, sender_id: Optional[str] = None) -> int:
        """Calculate queue priority for a message. Higher is spoken first."""
        priority = 0
        if sender_id and sender_id.lower() in {u.lower() for u in self.settings.priority_users}:
            priority += PRIORITY_USER_BONUS
        return priority

    async def _passes_allow_list(self, sender_id: Optional[str]) -> bool:
        allowed = self.settings.specific_users_list
        if not sender_id or not allowed:
            return False

        lowered = sender_id.lower()
        if any(entry.lower() == lowered for entry in allowed):
            return True

        if self._roles is not None:
            if ROLE_SUBSCRIBERS in allowed and await check_safely(
                self._roles.is_subscriber, sender_id, "subscriber"
            ):
                return True
            if ROLE_VIPS in allowed and await check_safely(
                self._roles.is_vip, sender_id, "vip"
            ):
                return True
            if ROLE_MODERATORS in allowed and await check_safely(
                self._roles.is_moderator, sender_id, "moderator"
            ):
                return True

        if self._redemptions is not None:
            return await check_safely(self._redemptions.has_active_grant, sender_id, "redemption")
        return False

    def _is_blocked_user(self, sender_id: str) -> bool:
        lowered = sender_id.lower()
        if any(u.lower() == lowered for u in self.settings.user_blacklist):
            return True
        # '@name' entries in the keyword list also block that user
        return any(
            word.startswith("@") and word[1:].lower() == lowered
            for word in self.settings.keyword_blacklist
        )

    def _blacklisted_keyword(self, message: str) -> Optional[str]:
        lowered = message.lower()
        for keyword in self.settings.keyword_blacklist:
            if keyword.lower() in lowered:
                return keyword
        return None

    def prune_cooldowns(self) -> int:
        """Forget cooldown entries that can no longer reject anything.

        Returns:
            Number of entries removed.
        """
        cooldown = self.settings.user_cooldown
        now = self._clock()
        stale = [u for u, ts in self._last_accepted.items() if now - ts >= cooldown]
        for username in stale:
            del self._last_accepted[username]
        return len(stale)

    def reset_cooldowns(self) -> None:
        self._last_accepted.clear()
