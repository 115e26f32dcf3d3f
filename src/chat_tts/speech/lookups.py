"""
Role and redemption lookups used by filtering and voice resolution.

Both are external collaborators: role membership normally comes from the
chat platform's API and redemptions from a channel-points/rewards system.
This module defines the async interfaces, a failure-tolerant call helper,
and simple in-memory implementations.

Key components:
- RoleLookup / RedemptionLookup: Async collaborator interfaces
- StaticRoleLookup: Role membership from fixed username sets
- RedemptionLedger: Time- and message-count-bounded grants
- check_safely: Await a lookup, degrading any failure to False
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Iterable, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger("chat-tts.speech.lookups")


class RoleLookup(ABC):
    """Async role-membership checks for chat users."""

    @abstractmethod
    async def is_moderator(self, sender_id: str) -> bool:
        ...

    @abstractmethod
    async def is_vip(self, sender_id: str) -> bool:
        ...

    @abstractmethod
    async def is_subscriber(self, sender_id: str) -> bool:
        ...


class RedemptionLookup(ABC):
    """Async check for an active eligibility grant."""

    @abstractmethod
    async def has_active_grant(self, sender_id: str) -> bool:
        ...


async def check_safely(
    check: Callable[[str], Awaitable[bool]],
    sender_id: str,
    label: str,
) -> bool:
    """Run a lookup coroutine, treating any failure as False.

    Args:
        check: Bound async lookup method (e.g. ``roles.is_vip``)
        sender_id: User to check
        label: Short name used in the log message

    Returns:
        The lookup result, or False if it raised.
    """
    try:
        return bool(await check(sender_id))
    except Exception as exc:
        logger.warning("%s lookup failed for '%s', treating as false: %s", label, sender_id, exc)
        return False


class StaticRoleLookup(RoleLookup):
    """Role membership from fixed, case-insensitive username sets."""

    def __init__(
        self,
        moderators: Iterable[str] = (),
        vips: Iterable[str] = (),
        subscribers: Iterable[str] = (),
    ) -> None:
        self.moderators = {u.lower() for u in moderators}
        self.vips = {u.lower() for u in vips}
        self.subscribers = {u.lower() for u in subscribers}

    async def is_moderator(self, sender_id: str) -> bool:
        return sender_id.lower() in self.moderators

    async def is_vip(self, sender_id: str) -> bool:
        return sender_id.lower() in self.vips

    async def is_subscriber(self, sender_id: str) -> bool:
        return sender_id.lower() in self.subscribers


class RedemptionType(str, Enum):
    """How a redemption grant is bounded."""
    TIME = "time"
    MESSAGES = "messages"


class RedemptionGrant(BaseModel):
    """
    A bounded grant of eligibility for one chat user.

    Attributes:
        username: The user holding the grant
        redemption_type: TIME grants expire at ``expires_at``; MESSAGES
            grants allow ``messages_remaining`` more messages
        expires_at: Expiry time for TIME grants (timezone-aware)
        messages_remaining: Remaining message count for MESSAGES grants
        updated_at: Last time the grant was consumed or changed
    """
    username: str
    redemption_type: RedemptionType
    expires_at: Optional[datetime] = None
    messages_remaining: int = Field(default=0, ge=0)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RedemptionLedger(RedemptionLookup):
    """
    In-memory redemption grants.

    A TIME grant is active while its expiry lies in the future. A MESSAGES
    grant is active while it has messages left, and each successful check
    consumes one message.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._grants: dict[str, RedemptionGrant] = {}
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def grant(self, grant: RedemptionGrant) -> None:
        """Add or replace the grant for a user."""
        self._grants[grant.username.lower()] = grant
        logger.info(
            "Redemption granted to '%s' (%s)", grant.username, grant.redemption_type.value
        )

    def revoke(self, username: str) -> bool:
        """Remove a user's grant. Returns True if one existed."""
        return self._grants.pop(username.lower(), None) is not None

    def get(self, username: str) -> Optional[RedemptionGrant]:
        return self._grants.get(username.lower())

    async def has_active_grant(self, sender_id: str) -> bool:
        grant = self._grants.get(sender_id.lower())
        if grant is None:
            return False

        now = self._clock()
        if grant.redemption_type == RedemptionType.TIME:
            return grant.expires_at is not None and grant.expires_at > now

        if grant.messages_remaining > 0:
            grant.messages_remaining -= 1
            grant.updated_at = now
            logger.debug(
                "Consumed redemption message for '%s' (%d left)",
                sender_id,
                grant.messages_remaining,
            )
            return True
        return False

    def prune(self) -> int:
        """Drop expired and exhausted grants. Returns the number removed."""
        now = self._clock()
        stale = [
            key for key, grant in self._grants.items()
            if (grant.redemption_type == RedemptionType.TIME
                and (grant.expires_at is None or grant.expires_at <= now))
            or (grant.redemption_type == RedemptionType.MESSAGES
                and grant.messages_remaining <= 0)
        ]
        for key in stale:
            del self._grants[key]
        return len(stale)
