"""
Speech service facade.

Wires the admission filter, formatter, voice resolver and playback queue
together around one configuration snapshot, and exposes the controls the
rest of the application uses: handling incoming chat messages, mute,
pause/resume, queue inspection and change notifications.

Events fired through ``on()`` listeners:
- "settings_changed": options were applied; listener gets the SpeechOptions
- "mute_changed": mute state flipped; listener gets the new bool
"""

import logging
import random
import time
from typing import Any, Callable, Optional

from .catalog import EngineVoiceCatalog, VoiceCatalog
from .engines.base import SpeechEngine
from .external import AudioPlayer, ExternalTtsAdapter, build_external_adapter
from .filter import MessageFilter
from .formatter import MessageFormatter
from .lookups import RedemptionLookup, RoleLookup
from .models import QueueItem, SpeechOptions
from .queue import DEFAULT_CHUNK_SIZE, QueueObserver, SpeechQueue
from .resolver import VoiceResolver

logger = logging.getLogger("chat-tts.speech.service")

EVENT_SETTINGS_CHANGED = "settings_changed"
EVENT_MUTE_CHANGED = "mute_changed"

COMMAND_PREFIX = "!"

MIN_RATE = 0.1
MAX_RATE = 2.0


class SpeechService:
    """
    Entry point for turning chat messages into speech.

    Attributes:
        options: Current configuration snapshot
        filter: Admission filter (owns cooldown state)
        formatter: Message formatter
        resolver: Voice resolver
        queue: Playback queue / scheduler (owns the engine)
    """

    def __init__(
        self,
        engine: SpeechEngine,
        options: Optional[SpeechOptions] = None,
        catalog: Optional[VoiceCatalog] = None,
        roles: Optional[RoleLookup] = None,
        redemptions: Optional[RedemptionLookup] = None,
        external: Optional[ExternalTtsAdapter] = None,
        audio_player: Optional[AudioPlayer] = None,
        observer: Optional[QueueObserver] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """
        Initialize the service.

        Args:
            engine: Local speech engine, handed to the queue
            options: Initial configuration (defaults if None)
            catalog: Installed voices; defaults to the engine's own voices
            roles: Role-membership collaborator
            redemptions: Redemption-grant collaborator
            external: Pre-built external TTS adapter; when None one is
                built from ``options.external_tts`` if usable
            audio_player: Player used for adapters built from options
            observer: Receives queue status pushes
            rng: Random source for voice randomization
            clock: Monotonic clock for cooldowns
            chunk_size: Queue chunking threshold
        """
        self.options = options or SpeechOptions()
        self.catalog = catalog or EngineVoiceCatalog(engine)
        self.filter = MessageFilter(self.options.filters, roles=roles, redemptions=redemptions, clock=clock)
        self.formatter = MessageFormatter()
        self.resolver = VoiceResolver(self.catalog, roles=roles, rng=rng)

        self._audio_player = audio_player
        self._owns_external = external is None
        if external is None:
            external = build_external_adapter(self.options.external_tts, player=audio_player)

        self.queue = SpeechQueue(
            engine,
            self.resolver,
            options=self.options,
            external=external,
            observer=observer,
            chunk_size=chunk_size,
        )
        self._muted = False
        self._listeners: dict[str, list[Callable[..., Any]]] = {}

    # ── Messages ──────────────────────────────────────────────────────

    async def handle_message(
        self,
        sender_id: Optional[str],
        message: str,
        correlation_id: Optional[str] = None,
    ) -> list[QueueItem]:
        """Filter, format and enqueue one chat message.

        Args:
            sender_id: Chat username, if known.
            message: Raw chat message.
            correlation_id: Chat message id, used for remove/reorder.

        Returns:
            The queued items; empty if the message was not admitted or
            the service is muted.
        """
        if self._muted:
            return []

        filters = self.options.filters
        if filters.skip_command_messages and message.lstrip().startswith(COMMAND_PREFIX):
            logger.debug("Skipping chat command from '%s'", sender_id)
            return []

        if not await self.filter.should_admit(message, sender_id):
            return []

        priority = self.filter.compute_priority(message, sender_id)
        text = self.formatter.format(sender_id, message, filters)
        return self.queue.enqueue(text, priority, sender_id, correlation_id)

    def speak(
        self,
        text: str,
        priority: int = 0,
        sender_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> list[QueueItem]:
        """Enqueue text as-is, bypassing the filter and formatter."""
        if self._muted:
            return []
        return self.queue.enqueue(text, priority, sender_id, correlation_id)

    # ── Configuration ─────────────────────────────────────────────────

    async def apply_options(self, options: SpeechOptions) -> None:
        """Apply a new configuration snapshot and notify listeners."""
        previous = self.options.external_tts
        self.options = options
        self.filter.update_settings(options.filters)
        self.queue.apply_options(options)

        if self._owns_external and options.external_tts != previous:
            old = self.queue.external
            self.queue.external = build_external_adapter(
                options.external_tts, player=self._audio_player
            )
            if old is not None:
                await old.close()

        self._emit(EVENT_SETTINGS_CHANGED, options)

    def _update_voice(self, **changes: float) -> SpeechOptions:
        voice = self.options.voice.model_copy(update=changes)
        options = self.options.model_copy(update={"voice": voice})
        self.options = options
        self.queue.apply_options(options)
        self._emit(EVENT_SETTINGS_CHANGED, options)
        return options

    def adjust_volume(self, amount: float) -> float:
        """Change the default volume by ``amount``, clamped to 0..1.

        Returns:
            The new volume.
        """
        volume = max(0.0, min(1.0, self.options.voice.volume + amount))
        self._update_voice(volume=volume)
        logger.info("Volume: %d%%", round(volume * 100))
        return volume

    def adjust_rate(self, amount: float) -> float:
        """Change the default rate by ``amount``, clamped to 0.1..2.

        Returns:
            The new rate.
        """
        rate = max(MIN_RATE, min(MAX_RATE, self.options.voice.rate + amount))
        self._update_voice(rate=rate)
        logger.info("Speech rate: %.1fx", rate)
        return rate

    # ── Mute / playback ───────────────────────────────────────────────

    @property
    def muted(self) -> bool:
        return self._muted

    def set_mute_state(self, muted: bool) -> None:
        """Mute (stop and clear everything) or unmute.

        Pausing is independent of muting: a pause set before muting is
        still in effect after unmuting.
        """
        if muted == self._muted:
            return
        self._muted = muted
        if muted:
            self.queue.stop()
        logger.info("TTS %s", "muted" if muted else "enabled")
        self._emit(EVENT_MUTE_CHANGED, muted)

    def toggle_mute(self) -> bool:
        self.set_mute_state(not self._muted)
        return self._muted

    def pause(self) -> None:
        self.queue.pause()

    def resume(self) -> None:
        self.queue.resume()

    def stop(self) -> None:
        self.queue.stop()

    def skip_current(self) -> bool:
        return self.queue.skip_current()

    def remove_from_queue(self, correlation_id: str) -> bool:
        return self.queue.remove_from_queue(correlation_id)

    def reorder_queue(self, correlation_id: str, new_index: int) -> bool:
        return self.queue.reorder_queue(correlation_id, new_index)

    def get_queue_snapshot(self) -> list[QueueItem]:
        return self.queue.get_queue_snapshot()

    def get_current_item(self) -> Optional[QueueItem]:
        return self.queue.current_item

    def is_speaking(self) -> bool:
        return self.queue.is_speaking()

    async def shutdown(self) -> None:
        """Stop playback and release engine and network resources."""
        self.queue.stop()
        external = self.queue.external
        if external is not None:
            await external.close()
        await self.queue.engine.shutdown()

    # ── Events ────────────────────────────────────────────────────────

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        self._listeners.setdefault(event, []).append(callback)

    def off(self, event: str, callback: Callable[..., Any]) -> None:
        listeners = self._listeners.get(event)
        if listeners and callback in listeners:
            listeners.remove(callback)

    def _emit(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(*args)
            except Exception as exc:
                logger.warning("Listener for '%s' failed: %s", event, exc)
