"""
Turns an admitted chat message into the text that is actually spoken.

Formatting runs in a fixed order: display name, emoji removal, link
removal, word replacements, whitespace clean-up, empty-message
placeholder, and finally the optional "NAME says:" prefix.
"""

import logging
import re
from typing import Optional

from .models import FilterSettings, WordReplacement

logger = logging.getLogger("chat-tts.speech.formatter")

# Pictographic emoji plus the joiners/modifiers that glue sequences together.
# Plain digits, '#' and '*' are deliberately not treated as emoji.
EMOJI_PATTERN = re.compile(
    "["
    "\U0001F000-\U0001FAFF"  # mahjong .. symbols & pictographs ext-A (incl. flags, skin tones)
    "\U00002300-\U000023FF"  # misc technical (watch, hourglass, media controls)
    "\U00002600-\U000027BF"  # misc symbols and dingbats
    "\U00002B00-\U00002BFF"  # arrows/shapes (star, large squares)
    "\U00002194-\U00002199\U000021A9\U000021AA"
    "\U000000A9\U000000AE\U0000203C\U00002049\U00002122\U00002139"
    "\U00003030\U0000303D\U00003297\U00003299"
    "\U0000200D"  # zero width joiner
    "\U0000FE0E\U0000FE0F"  # variation selectors
    "\U000020E3"  # combining enclosing keycap
    "\U000E0020-\U000E007F"  # tag sequences (subdivision flags)
    "]+"
)

URL_PATTERN = re.compile(r"(https?://\S+)|(www\.\S+)", re.IGNORECASE)

_WHITESPACE_RUN = re.compile(r"\s+")

EMPTY_MESSAGE_TEMPLATE = "{name} sent a message with no readable content"
EMPTY_MESSAGE_ANONYMOUS = "Message with no readable content"


def remove_emoji(text: str) -> str:
    """Remove emoji code points from text."""
    return EMOJI_PATTERN.sub("", text)


def remove_links(text: str) -> str:
    """Remove http(s):// and www. URLs from text."""
    return URL_PATTERN.sub("", text)


def is_emoji_only(text: str) -> bool:
    """True when a non-empty text has no visible content once emoji are removed."""
    return bool(text) and not remove_emoji(text).strip()


def compile_replacement(rule: WordReplacement) -> Optional[re.Pattern[str]]:
    """Compile a word-replacement rule, or return None if the pattern is invalid."""
    pattern = rule.pattern
    if not pattern:
        return None
    if rule.whole_word:
        pattern = rf"\b{pattern}\b"
    flags = 0 if rule.case_sensitive else re.IGNORECASE
    try:
        return re.compile(pattern, flags)
    except re.error as exc:
        logger.warning("Skipping invalid word replacement pattern %r: %s", rule.pattern, exc)
        return None


def apply_word_replacements(text: str, rules: list[WordReplacement]) -> str:
    """Apply replacement rules in order, skipping the ones that cannot be used."""
    for rule in rules:
        regex = compile_replacement(rule)
        if regex is None:
            continue
        replacement = rule.replacement
        # Replacement text is literal; backslashes and group syntax are not expanded
        text = regex.sub(lambda _match: replacement, text)
    return text


class MessageFormatter:
    """Builds the spoken text for a chat message."""

    def display_name(self, sender_id: str, settings: FilterSettings) -> str:
        """Resolve the name to speak for a sender (nickname when enabled)."""
        if settings.use_nicknames:
            lowered = sender_id.lower()
            for entry in settings.user_nicknames:
                if entry.username.lower() == lowered:
                    return entry.nickname
        return sender_id

    def clean(self, message: str, settings: FilterSettings) -> str:
        """Apply content stripping, replacements and whitespace clean-up."""
        processed = message
        if settings.skip_emojis_in_message:
            processed = remove_emoji(processed)
        if settings.skip_links_in_message:
            processed = remove_links(processed)
        if settings.word_replacements:
            processed = apply_word_replacements(processed, settings.word_replacements)
        return _WHITESPACE_RUN.sub(" ", processed).strip()

    def format(self, sender_id: Optional[str], raw_message: str, settings: FilterSettings) -> str:
        """Format a message for speech.

        Args:
            sender_id: Chat username; None for anonymous/system messages.
            raw_message: Message exactly as received.
            settings: Current filter settings snapshot.

        Returns:
            The text to enqueue. Never empty.
        """
        name = self.display_name(sender_id, settings) if sender_id else None
        speak_name = settings.speak_usernames and bool(name)

        processed = self.clean(raw_message, settings)

        if not processed:
            if speak_name:
                return EMPTY_MESSAGE_TEMPLATE.format(name=name)
            return EMPTY_MESSAGE_ANONYMOUS

        if speak_name:
            return f"{name} says: {processed}"
        return processed
