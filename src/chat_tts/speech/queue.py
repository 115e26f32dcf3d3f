"""
Priority playback queue and scheduler.

The SpeechQueue owns the pending items, the playback state and the only
reference to the local speech engine. A single asyncio task (the dispatch
loop) pops the highest-priority item, resolves its voice and speaks it,
either through the external TTS adapter or the local engine. Completion
of each utterance is awaited, so the loop only advances once the engine
has reported end or error.

States:
    IDLE -> (enqueue) -> READY -> (dispatch) -> SPEAKING -> READY / IDLE

Pausing is orthogonal: it suspends the engine and stops further
dequeues until ``resume()``.
"""

import asyncio
import dataclasses
import logging
from enum import Enum
from typing import Optional

from .chunking import split_text_into_chunks
from .engines.base import SpeechEngine, Utterance
from .external import ExternalTtsAdapter
from .models import PlaybackState, QueueItem, SpeechOptions, new_correlation_id
from .resolver import VoiceResolver, VoiceSelection

logger = logging.getLogger("chat-tts.speech.queue")

DEFAULT_CHUNK_SIZE = 300
DEFAULT_UTTERANCE_LIMIT = 200


class SchedulerState(str, Enum):
    """Coarse scheduler state, independent of pausing."""
    IDLE = "idle"
    READY = "ready"
    SPEAKING = "speaking"


class QueueObserver:
    """
    Receives playback status pushed by the SpeechQueue.

    All methods are no-ops; override the ones you need. Observer errors
    are logged and never interrupt playback.
    """

    def on_item_started(self, item: QueueItem, selection: VoiceSelection) -> None:
        pass

    def on_item_finished(self, item: QueueItem) -> None:
        pass

    def on_item_failed(self, item: QueueItem, error: Optional[BaseException]) -> None:
        pass

    def on_queue_changed(self, snapshot: list[QueueItem]) -> None:
        pass


class SpeechQueue:
    """
    Priority queue of formatted chat text with a single dispatch loop.

    Items are kept sorted by descending priority; the sort is stable and
    re-applied after every enqueue, so equal priorities keep arrival order.
    There is no aging: sustained high-priority traffic can delay
    low-priority items indefinitely.

    Attributes:
        options: Current configuration snapshot (voice + external TTS)
        chunk_size: Texts longer than this are split into several items
        utterance_limit: Local-engine pieces are at most this long
    """

    def __init__(
        self,
        engine: SpeechEngine,
        resolver: VoiceResolver,
        options: Optional[SpeechOptions] = None,
        external: Optional[ExternalTtsAdapter] = None,
        observer: Optional[QueueObserver] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        utterance_limit: int = DEFAULT_UTTERANCE_LIMIT,
    ) -> None:
        if chunk_size <= 0 or utterance_limit <= 0:
            raise ValueError("chunk_size and utterance_limit must be positive")

        self.options = options or SpeechOptions()
        self.chunk_size = chunk_size
        self.utterance_limit = utterance_limit
        self.external = external
        self.observer = observer or QueueObserver()

        self._engine = engine
        self._resolver = resolver
        self._items: list[QueueItem] = []
        self._playback = PlaybackState()
        self._skip_requested = False
        self._worker: Optional[asyncio.Task[None]] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._resumed = asyncio.Event()
        self._resumed.set()

    # ── Inspection ────────────────────────────────────────────────────

    @property
    def engine(self) -> SpeechEngine:
        return self._engine

    @property
    def current_item(self) -> Optional[QueueItem]:
        return self._playback.current_item

    @property
    def playback(self) -> PlaybackState:
        """Copy of the playback state."""
        return dataclasses.replace(self._playback)

    @property
    def state(self) -> SchedulerState:
        if self._playback.speaking:
            return SchedulerState.SPEAKING
        if self._items:
            return SchedulerState.READY
        return SchedulerState.IDLE

    @property
    def is_paused(self) -> bool:
        return self._playback.paused

    def is_speaking(self) -> bool:
        return self._playback.speaking

    def get_queue_snapshot(self) -> list[QueueItem]:
        """Copies of the pending items in playback order."""
        return [dataclasses.replace(item) for item in self._items]

    def __len__(self) -> int:
        return len(self._items)

    async def wait_until_idle(self) -> None:
        """Wait until the dispatch loop has nothing left to do (or is paused)."""
        await self._idle.wait()

    # ── Configuration ─────────────────────────────────────────────────

    def apply_options(self, options: SpeechOptions) -> None:
        """Swap the configuration snapshot. Takes effect from the next item."""
        self.options = options

    # ── Queue mutation ────────────────────────────────────────────────

    def enqueue(
        self,
        text: str,
        priority: int = 0,
        sender_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> list[QueueItem]:
        """Add text to the queue and start dispatching if idle.

        Text longer than ``chunk_size`` becomes several items sharing the
        priority and sender, with correlation ids ``<id>-chunk-<n>``.
        Must be called from the event loop thread.

        Args:
            text: Already formatted text to speak.
            priority: Higher values are spoken first.
            sender_id: Chat username the text came from.
            correlation_id: Identifier for remove/reorder; generated if omitted.

        Returns:
            The queued items (empty for blank text).
        """
        text = text.strip()
        if not text:
            return []

        base_id = correlation_id or new_correlation_id()
        if len(text) > self.chunk_size:
            chunks = split_text_into_chunks(text, self.chunk_size)
            logger.debug(
                "Message too long (%d chars), split into %d chunks", len(text), len(chunks)
            )
            items = [
                QueueItem(
                    text=chunk,
                    priority=priority,
                    sender_id=sender_id,
                    correlation_id=f"{base_id}-chunk-{index}",
                )
                for index, chunk in enumerate(chunks)
            ]
        else:
            items = [QueueItem(text=text, priority=priority, sender_id=sender_id, correlation_id=base_id)]

        self._items.extend(items)
        self._items.sort(key=lambda queued: queued.priority, reverse=True)
        self._notify_queue_changed()
        self._ensure_worker()
        return items

    def remove_from_queue(self, correlation_id: str) -> bool:
        """Remove pending items with this correlation id.

        Returns:
            True if anything was removed.
        """
        before = len(self._items)
        self._items = [item for item in self._items if item.correlation_id != correlation_id]
        removed = before != len(self._items)
        if removed:
            self._notify_queue_changed()
        return removed

    def reorder_queue(self, correlation_id: str, new_index: int) -> bool:
        """Move a pending item to an explicit position, ignoring priority.

        Returns:
            False if the item is unknown or ``new_index`` is out of range.
        """
        if new_index < 0 or new_index >= len(self._items):
            return False

        for index, item in enumerate(self._items):
            if item.correlation_id == correlation_id:
                break
        else:
            return False

        self._items.insert(new_index, self._items.pop(index))
        self._notify_queue_changed()
        return True

    # ── Playback control ──────────────────────────────────────────────

    def pause(self) -> None:
        """Suspend the engine and stop dequeuing."""
        if self._playback.paused:
            return
        self._playback.paused = True
        self._resumed.clear()
        self._engine.pause()
        logger.info("Speech paused")

    def resume(self) -> None:
        """Un-suspend the engine and restart dispatch if items are waiting."""
        if not self._playback.paused:
            return
        self._playback.paused = False
        self._resumed.set()
        self._engine.resume()
        logger.info("Speech resumed")
        if self._items:
            self._ensure_worker()

    def skip_current(self) -> bool:
        """End the in-flight item; the dispatch loop moves on to the next one.

        Returns:
            False if nothing was playing.
        """
        item = self._playback.current_item
        if item is None:
            return False
        logger.info("Skipping current item %s", item.correlation_id)
        self._skip_requested = True
        self._engine.cancel()
        if self.external is not None:
            self.external.stop()
        return True

    def stop(self) -> None:
        """Cancel playback, empty the queue and return to idle."""
        self._items.clear()
        self._skip_requested = True
        self._engine.cancel()
        if self.external is not None:
            self.external.stop()

        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()

        self._playback.speaking = False
        self._playback.current_item = None
        self._idle.set()
        self._notify_queue_changed()
        logger.info("Speech stopped")

    # ── Dispatch ──────────────────────────────────────────────────────

    def _ensure_worker(self) -> None:
        if self._playback.paused:
            return
        if self._worker is not None and not self._worker.done():
            return
        self._idle.clear()
        self._worker = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        task = asyncio.current_task()
        try:
            while not self._playback.paused:
                if not await self.dequeue_and_dispatch():
                    break
        finally:
            # stop() may already have replaced this task with a newer one
            if self._worker is task:
                self._worker = None
                self._idle.set()

    async def dequeue_and_dispatch(self) -> bool:
        """Pop the highest-priority item and speak it.

        Returns:
            False if the queue was empty (the scheduler is now idle),
            True once an item has been handled, successfully or not.
        """
        if not self._items:
            self._playback.speaking = False
            self._playback.current_item = None
            return False

        item = self._items.pop(0)
        self._playback.current_item = item
        self._playback.speaking = True
        self._skip_requested = False
        self._notify_queue_changed()

        try:
            selection = await self._resolver.resolve(item.sender_id, self.options.voice)
            self._emit("on_item_started", item, selection)
            spoken = await self._dispatch(item, selection)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Playback of %s failed: %s", item.correlation_id, exc)
            self._emit("on_item_failed", item, exc)
        else:
            if spoken:
                self._emit("on_item_finished", item)
            else:
                self._emit("on_item_failed", item, None)
        finally:
            if self._playback.current_item is item:
                self._playback.current_item = None
                self._playback.speaking = False
                self._notify_queue_changed()
        return True

    async def _dispatch(self, item: QueueItem, selection: VoiceSelection) -> bool:
        if self._skip_requested:
            # skipped while the voice was being resolved
            return True
        external = self.external
        if external is not None and self.options.external_tts.enabled:
            voice_id = external.voice_id_for(selection.voice_name) or self.options.external_tts.voice_id
            if await external.speak(item.text, voice_id):
                return True
            if self._skip_requested:
                return True
            logger.warning(
                "External TTS failed for %s, falling back to local engine", item.correlation_id
            )

        return await self._speak_locally(item, selection)

    async def _speak_locally(self, item: QueueItem, selection: VoiceSelection) -> bool:
        pieces = split_text_into_chunks(item.text, self.utterance_limit)
        for piece in pieces:
            await self._resumed.wait()
            if self._skip_requested:
                break
            await self._engine.speak(
                Utterance(
                    text=piece,
                    voice_name=selection.voice_name,
                    rate=selection.rate,
                    pitch=selection.pitch,
                    volume=selection.volume,
                )
            )
        return True

    # ── Notifications ─────────────────────────────────────────────────

    def _notify_queue_changed(self) -> None:
        self._emit("on_queue_changed", self.get_queue_snapshot())

    def _emit(self, method: str, *args: object) -> None:
        try:
            getattr(self.observer, method)(*args)
        except Exception as exc:
            logger.warning("Queue observer %s failed: %s", method, exc)
