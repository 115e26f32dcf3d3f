"""
Tests for the SpeechQueue scheduler.

The local engine is a FakeEngine; with ``hold`` set, each utterance stays
in flight until it is cancelled or released, so tests can inspect and
control the queue mid-playback.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from chat_tts.speech.external import AudioPlayer, ExternalTtsAdapter
from chat_tts.speech.models import ExternalTtsSettings, SpeechOptions, VoiceSettings
from chat_tts.speech.queue import QueueObserver, SchedulerState, SpeechQueue
from chat_tts.speech.resolver import VoiceResolver


def _queue(engine, catalog, options=None, external=None, observer=None, **kwargs) -> SpeechQueue:
    return SpeechQueue(
        engine,
        VoiceResolver(catalog),
        options=options,
        external=external,
        observer=observer,
        **kwargs,
    )


def _external_options() -> SpeechOptions:
    return SpeechOptions(external_tts=ExternalTtsSettings(enabled=True, voice_id="voice-1"))


def _mock_external(succeeds: bool) -> MagicMock:
    external = MagicMock(spec=ExternalTtsAdapter)
    external.speak = AsyncMock(return_value=succeeds)
    external.voice_id_for.return_value = None
    return external


# ── Ordering and chunking ────────────────────────────────────────────


class TestEnqueue:

    @pytest.mark.asyncio
    async def test_priority_order(self, engine, catalog) -> None:
        queue = _queue(engine, catalog)
        queue.enqueue("five", priority=5)
        queue.enqueue("ten", priority=10)
        queue.enqueue("zero", priority=0)

        await queue.wait_until_idle()
        assert engine.spoken_texts == ["ten", "five", "zero"]

    @pytest.mark.asyncio
    async def test_equal_priorities_keep_arrival_order(self, engine, catalog) -> None:
        queue = _queue(engine, catalog)
        queue.pause()
        for text, priority in [("a", 0), ("b", 1), ("c", 0), ("d", 1), ("e", 0)]:
            queue.enqueue(text, priority=priority)

        assert [item.text for item in queue.get_queue_snapshot()] == ["b", "d", "a", "c", "e"]

    @pytest.mark.asyncio
    async def test_long_text_is_chunked(self, engine, catalog) -> None:
        queue = _queue(engine, catalog)
        queue.pause()
        text = ("word " * 130)[:650]

        items = queue.enqueue(text, priority=3, sender_id="alice", correlation_id="msg1")

        assert len(items) >= 3
        assert [item.correlation_id for item in items] == [f"msg1-chunk-{i}" for i in range(len(items))]
        assert all(item.priority == 3 and item.sender_id == "alice" for item in items)
        assert all(len(item.text) <= 300 for item in items)
        assert "".join(item.text for item in items).replace(" ", "") == text.replace(" ", "")
        assert len(queue) == len(items)

    @pytest.mark.asyncio
    async def test_correlation_id_generated(self, engine, catalog) -> None:
        queue = _queue(engine, catalog)
        queue.pause()
        first, = queue.enqueue("hello")
        second, = queue.enqueue("hello")
        assert first.correlation_id and second.correlation_id
        assert first.correlation_id != second.correlation_id

    @pytest.mark.asyncio
    async def test_blank_text_ignored(self, engine, catalog) -> None:
        queue = _queue(engine, catalog)
        assert queue.enqueue("   ") == []
        assert queue.state == SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self, engine, catalog) -> None:
        queue = _queue(engine, catalog)
        queue.pause()
        queue.enqueue("hello", correlation_id="a")
        queue.get_queue_snapshot()[0].text = "changed"
        assert queue.get_queue_snapshot()[0].text == "hello"


# ── Dispatch ─────────────────────────────────────────────────────────


class TestDispatch:

    @pytest.mark.asyncio
    async def test_dequeue_on_empty_queue(self, engine, catalog) -> None:
        queue = _queue(engine, catalog)
        assert await queue.dequeue_and_dispatch() is False
        assert queue.current_item is None
        assert queue.state == SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_resolved_voice_is_used(self, engine, catalog) -> None:
        options = SpeechOptions(voice=VoiceSettings(voice_name="Carmen", rate=1.5, volume=0.4))
        queue = _queue(engine, catalog, options=options)
        queue.enqueue("hello")
        await queue.wait_until_idle()

        utterance, = engine.spoken
        assert (utterance.voice_name, utterance.rate, utterance.volume) == ("Carmen", 1.5, 0.4)

    @pytest.mark.asyncio
    async def test_long_item_spoken_in_pieces(self, engine, catalog) -> None:
        observer = MagicMock(spec=QueueObserver)
        queue = _queue(engine, catalog, observer=observer)
        text = "This sentence is exactly forty chars ok. " * 6

        items = queue.enqueue(text.strip())
        await queue.wait_until_idle()

        assert len(items) == 1
        assert len(engine.spoken) >= 2
        assert all(len(u.text) <= 200 for u in engine.spoken)
        observer.on_item_finished.assert_called_once_with(items[0])

    @pytest.mark.asyncio
    async def test_engine_error_does_not_stall(self, engine, catalog) -> None:
        observer = MagicMock(spec=QueueObserver)
        engine.fail_on = {"broken"}
        queue = _queue(engine, catalog, observer=observer)
        queue.enqueue("broken")
        queue.enqueue("fine")

        await queue.wait_until_idle()

        assert engine.spoken_texts == ["broken", "fine"]
        assert observer.on_item_failed.call_count == 1
        assert observer.on_item_failed.call_args.args[0].text == "broken"
        observer.on_item_finished.assert_called_once()
        assert queue.state == SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_observer_errors_are_ignored(self, engine, catalog) -> None:
        observer = MagicMock(spec=QueueObserver)
        observer.on_queue_changed.side_effect = RuntimeError("ui gone")
        observer.on_item_started.side_effect = RuntimeError("ui gone")
        queue = _queue(engine, catalog, observer=observer)
        queue.enqueue("hello")
        await queue.wait_until_idle()
        assert engine.spoken_texts == ["hello"]


class TestExternalFallback:

    @pytest.mark.asyncio
    async def test_external_used_when_enabled(self, engine, catalog) -> None:
        external = _mock_external(succeeds=True)
        queue = _queue(engine, catalog, options=_external_options(), external=external)
        queue.enqueue("hello")
        await queue.wait_until_idle()

        external.speak.assert_awaited_once_with("hello", "voice-1")
        assert engine.spoken == []

    @pytest.mark.asyncio
    async def test_external_failure_retries_locally_once(self, engine, catalog) -> None:
        observer = MagicMock(spec=QueueObserver)
        external = _mock_external(succeeds=False)
        queue = _queue(engine, catalog, options=_external_options(), external=external, observer=observer)
        queue.enqueue("first")
        queue.enqueue("second")

        await queue.wait_until_idle()

        assert external.speak.await_count == 2
        assert engine.spoken_texts == ["first", "second"]
        assert observer.on_item_finished.call_count == 2
        assert queue.state == SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_external_ignored_when_disabled(self, engine, catalog) -> None:
        external = _mock_external(succeeds=True)
        queue = _queue(engine, catalog, external=external)
        queue.enqueue("hello")
        await queue.wait_until_idle()

        external.speak.assert_not_awaited()
        assert engine.spoken_texts == ["hello"]

    @pytest.mark.asyncio
    async def test_remote_voice_id_from_voice_name(self, engine, catalog) -> None:
        external = _mock_external(succeeds=True)
        external.voice_id_for.side_effect = lambda name: "remote-carmen" if name == "Carmen" else None
        options = _external_options().model_copy(update={"voice": VoiceSettings(voice_name="Carmen")})
        queue = _queue(engine, catalog, options=options, external=external)
        queue.enqueue("hello")
        await queue.wait_until_idle()

        external.speak.assert_awaited_once_with("hello", "remote-carmen")


# ── Controls ─────────────────────────────────────────────────────────


class TestControls:

    @pytest.mark.asyncio
    async def test_pause_holds_dequeue_until_resume(self, engine, catalog, settle) -> None:
        queue = _queue(engine, catalog)
        queue.pause()
        queue.enqueue("hello")
        for _ in range(5):
            await asyncio.sleep(0)

        assert engine.spoken == []
        assert queue.state == SchedulerState.READY
        assert queue.is_paused is True
        assert engine.pause_count == 1

        queue.resume()
        await queue.wait_until_idle()
        assert engine.spoken_texts == ["hello"]
        assert engine.resume_count == 1

    @pytest.mark.asyncio
    async def test_pause_between_items(self, engine, catalog, settle) -> None:
        engine.hold = True
        queue = _queue(engine, catalog)
        queue.enqueue("one")
        queue.enqueue("two")
        await settle(lambda: queue.is_speaking())

        queue.pause()
        engine.release()
        await queue.wait_until_idle()

        assert engine.spoken_texts == ["one"]
        assert [item.text for item in queue.get_queue_snapshot()] == ["two"]

        engine.hold = False
        queue.resume()
        await queue.wait_until_idle()
        assert engine.spoken_texts == ["one", "two"]

    @pytest.mark.asyncio
    async def test_skip_current(self, engine, catalog, settle) -> None:
        engine.hold = True
        queue = _queue(engine, catalog)
        long_item = "This sentence is exactly forty chars ok. " * 6
        queue.enqueue(long_item.strip(), priority=1)
        queue.enqueue("next")
        await settle(lambda: queue.is_speaking())

        assert queue.state == SchedulerState.SPEAKING
        assert queue.current_item.priority == 1

        engine.hold = False
        assert queue.skip_current() is True
        await queue.wait_until_idle()

        # remaining pieces of the skipped item are not spoken
        assert len(engine.spoken) == 2
        assert engine.spoken_texts[-1] == "next"
        assert engine.cancel_count == 1

    @pytest.mark.asyncio
    async def test_skip_when_idle(self, engine, catalog) -> None:
        queue = _queue(engine, catalog)
        assert queue.skip_current() is False
        assert queue.state == SchedulerState.IDLE

    @pytest.mark.asyncio
    async def test_skip_does_not_fall_back_to_local(self, engine, catalog, settle) -> None:
        external = _mock_external(succeeds=False)
        queue = _queue(engine, catalog, options=_external_options(), external=external)

        async def interrupted(text, voice_id):
            queue.skip_current()
            return False

        external.speak.side_effect = interrupted
        queue.enqueue("hello")
        await queue.wait_until_idle()

        assert engine.spoken == []
        external.stop.assert_called_once()

    @pytest.mark.asyncio
    async def test_skip_while_resolving_voice(self, engine, catalog, synthesizer, output, settle) -> None:
        resolver = VoiceResolver(catalog)
        resolve = resolver.resolve
        gate = asyncio.Event()
        resolving = asyncio.Event()

        async def slow_resolve(sender_id, settings):
            resolving.set()
            await gate.wait()
            return await resolve(sender_id, settings)

        resolver.resolve = slow_resolve
        external = ExternalTtsAdapter(synthesizer, AudioPlayer(output))
        queue = SpeechQueue(engine, resolver, options=_external_options(), external=external)
        queue.enqueue("hello")
        await settle(resolving.is_set)

        assert queue.skip_current() is True
        gate.set()
        await queue.wait_until_idle()

        assert synthesizer.requests == []
        assert output.played == []
        assert engine.spoken == []

    @pytest.mark.asyncio
    async def test_remove_from_queue(self, engine, catalog) -> None:
        queue = _queue(engine, catalog)
        queue.pause()
        queue.enqueue("a", correlation_id="id-a")
        queue.enqueue("b", correlation_id="id-b")

        assert queue.remove_from_queue("id-a") is True
        assert queue.remove_from_queue("id-a") is False
        assert [item.correlation_id for item in queue.get_queue_snapshot()] == ["id-b"]

    @pytest.mark.asyncio
    async def test_reorder_queue(self, engine, catalog) -> None:
        queue = _queue(engine, catalog)
        queue.pause()
        queue.enqueue("a", priority=10, correlation_id="a")
        queue.enqueue("b", correlation_id="b")
        queue.enqueue("c", correlation_id="c")

        assert queue.reorder_queue("c", 0) is True
        assert [item.correlation_id for item in queue.get_queue_snapshot()] == ["c", "a", "b"]
        assert queue.reorder_queue("c", 3) is False
        assert queue.reorder_queue("c", -1) is False
        assert queue.reorder_queue("missing", 0) is False

    @pytest.mark.asyncio
    async def test_enqueue_resorts_after_manual_reorder(self, engine, catalog) -> None:
        queue = _queue(engine, catalog)
        queue.pause()
        queue.enqueue("a", priority=10, correlation_id="a")
        queue.enqueue("b", correlation_id="b")
        queue.reorder_queue("b", 0)
        queue.enqueue("c", priority=5, correlation_id="c")

        assert [item.correlation_id for item in queue.get_queue_snapshot()] == ["a", "c", "b"]

    @pytest.mark.asyncio
    async def test_stop(self, engine, catalog, settle) -> None:
        engine.hold = True
        observer = MagicMock(spec=QueueObserver)
        queue = _queue(engine, catalog, observer=observer)
        queue.enqueue("one")
        queue.enqueue("two")
        await settle(lambda: queue.is_speaking())

        queue.stop()

        assert queue.state == SchedulerState.IDLE
        assert queue.current_item is None
        assert queue.is_speaking() is False
        assert queue.get_queue_snapshot() == []
        assert engine.cancel_count >= 1
        assert observer.on_queue_changed.call_args.args[0] == []

        engine.hold = False
        queue.enqueue("three")
        await queue.wait_until_idle()
        assert engine.spoken_texts == ["one", "three"]

    @pytest.mark.asyncio
    async def test_stop_when_idle(self, engine, catalog) -> None:
        queue = _queue(engine, catalog)
        queue.stop()
        assert queue.state == SchedulerState.IDLE
        await queue.wait_until_idle()

    @pytest.mark.asyncio
    async def test_stop_cancels_external_playback(self, engine, catalog) -> None:
        external = _mock_external(succeeds=True)
        queue = _queue(engine, catalog, options=_external_options(), external=external)
        queue.stop()
        external.stop.assert_called_once()

    def test_rejects_invalid_limits(self, engine, catalog) -> None:
        with pytest.raises(ValueError):
            _queue(engine, catalog, chunk_size=0)
