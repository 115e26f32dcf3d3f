"""
Shared fakes for the speech tests.

The local engine, audio output and remote synthesizer are replaced by
in-memory fakes that record what they were asked to do. FakeEngine can
hold each utterance open until it is cancelled or released, which lets
tests observe the scheduler mid-playback.
"""

import asyncio
from typing import Callable, Optional

import pytest

from chat_tts.speech.catalog import StaticVoiceCatalog
from chat_tts.speech.engines.base import (
    AudioFormat,
    EngineVoice,
    RemoteSynthesizer,
    SpeechEngine,
    SpeechEngineError,
    SynthesisResult,
    Utterance,
)
from chat_tts.speech.external import AudioOutput, ExternalTtsError


class FakeEngine(SpeechEngine):
    """Local engine that records utterances instead of speaking them."""

    def __init__(self, voices: tuple[str, ...] = ("Alice", "Brian", "Carmen")) -> None:
        self.voices = voices
        self.spoken: list[Utterance] = []
        self.fail_on: set[str] = set()
        self.hold = False
        self.cancel_count = 0
        self.pause_count = 0
        self.resume_count = 0
        self.started = asyncio.Event()
        self._release: Optional[asyncio.Event] = None

    @property
    def name(self) -> str:
        return "fake"

    def is_available(self) -> bool:
        return True

    def list_voices(self) -> list[EngineVoice]:
        return [EngineVoice(name=v, engine_id=v.lower()) for v in self.voices]

    @property
    def spoken_texts(self) -> list[str]:
        return [u.text for u in self.spoken]

    async def speak(self, utterance: Utterance) -> None:
        self.spoken.append(utterance)
        self.started.set()
        if utterance.text in self.fail_on:
            raise SpeechEngineError(f"cannot speak {utterance.text!r}")
        if self.hold:
            self._release = asyncio.Event()
            await self._release.wait()
        else:
            await asyncio.sleep(0)

    def release(self) -> None:
        if self._release is not None:
            self._release.set()

    def cancel(self) -> None:
        self.cancel_count += 1
        self.release()

    def pause(self) -> None:
        self.pause_count += 1

    def resume(self) -> None:
        self.resume_count += 1


class FakeOutput(AudioOutput):
    """Audio output that records buffers, optionally failing or holding."""

    def __init__(self) -> None:
        self.played: list[bytes] = []
        self.fail = False
        self.hold = False
        self.stop_count = 0
        self._gate: Optional[asyncio.Event] = None

    async def play(self, audio: SynthesisResult) -> None:
        self.played.append(audio.audio_data)
        if self.fail:
            raise ExternalTtsError("device unavailable")
        if self.hold:
            self._gate = asyncio.Event()
            await self._gate.wait()
        else:
            await asyncio.sleep(0)

    def finish(self) -> None:
        if self._gate is not None:
            self._gate.set()

    def stop(self) -> None:
        self.stop_count += 1
        self.finish()


class FakeSynthesizer(RemoteSynthesizer):
    """Remote synthesizer returning the text's bytes as 'audio'."""

    def __init__(self) -> None:
        self.requests: list[tuple[str, Optional[str]]] = []
        self.fail = False
        self.voices = [
            EngineVoice(name="Rachel", engine_id="21m00Tcm4TlvDq8ikWAM"),
            EngineVoice(name="Adam", engine_id="pNInz6obpgDQGcFmaJgB"),
        ]
        self.closed = False

    @property
    def name(self) -> str:
        return "fake-remote"

    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> SynthesisResult:
        self.requests.append((text, voice_id))
        if self.fail:
            raise RuntimeError("network unreachable")
        return SynthesisResult(
            audio_data=text.encode(),
            format=AudioFormat.MP3,
            engine_name=self.name,
        )

    async def list_voices(self) -> list[EngineVoice]:
        if self.fail:
            raise RuntimeError("network unreachable")
        return list(self.voices)

    async def close(self) -> None:
        self.closed = True


async def wait_for(predicate: Callable[[], bool], attempts: int = 200) -> None:
    """Yield to the event loop until predicate() holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def output() -> FakeOutput:
    return FakeOutput()


@pytest.fixture
def synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()


@pytest.fixture
def catalog() -> StaticVoiceCatalog:
    return StaticVoiceCatalog.from_names(["Alice", "Brian", "Carmen", "Dmitri"])


@pytest.fixture
def settle() -> Callable[[Callable[[], bool]], object]:
    return wait_for
