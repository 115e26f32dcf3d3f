"""
Remote text-to-speech with sequential audio playback.

The ExternalTtsAdapter asks a RemoteSynthesizer for an audio buffer and
hands it to an AudioPlayer. The player owns the single audio output and
plays buffers strictly in submission order, starting the next buffer
only after the previous one has finished.

Failures never raise out of ``ExternalTtsAdapter.speak()``: they are
logged and reported as ``False`` so the caller can fall back to the
local engine.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections import deque
from typing import Optional, Sequence

from .engines.base import EngineVoice, RemoteSynthesizer, SynthesisResult
from .engines.edge_tts import EdgeTTSSynthesizer
from .engines.elevenlabs import ElevenLabsSynthesizer
from .models import ExternalTtsProvider, ExternalTtsSettings

logger = logging.getLogger("chat-tts.speech.external")

MAX_TEXT_LENGTH = 4000
TRUNCATION_MARKER = "..."

DEFAULT_PLAYER_COMMAND = ("ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet", "-")


class ExternalTtsError(RuntimeError):
    """Raised by audio outputs when a buffer cannot be played."""


def truncate_text(text: str, limit: int = MAX_TEXT_LENGTH) -> str:
    """Cut text longer than ``limit`` characters, marking the cut with '...'."""
    if len(text) <= limit:
        return text
    return text[: limit - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER


class AudioOutput(ABC):
    """A device that plays one encoded audio buffer at a time."""

    @abstractmethod
    async def play(self, audio: SynthesisResult) -> None:
        """Play a buffer and return once it has finished.

        Returns normally when playback is interrupted by ``stop()``.

        Raises:
            ExternalTtsError: If the buffer cannot be played.
        """
        ...

    @abstractmethod
    def stop(self) -> None:
        """Interrupt the buffer being played, if any."""
        ...


class SubprocessAudioOutput(AudioOutput):
    """Pipes each buffer into an external player process (ffplay by default)."""

    def __init__(self, command: Sequence[str] = DEFAULT_PLAYER_COMMAND) -> None:
        self.command = list(command)
        self._process: Optional[asyncio.subprocess.Process] = None
        self._stopped = False

    async def play(self, audio: SynthesisResult) -> None:
        self._stopped = False
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ExternalTtsError(f"Could not start audio player {self.command[0]!r}: {exc}") from exc

        try:
            _, stderr = await self._process.communicate(audio.audio_data)
        except (BrokenPipeError, ConnectionResetError):
            # Player exited before reading everything (usually stop())
            stderr = b""
            await self._process.wait()

        returncode = self._process.returncode
        self._process = None
        if returncode != 0 and not self._stopped:
            detail = stderr.decode(errors="replace").strip() if stderr else ""
            raise ExternalTtsError(
                f"Audio player exited with code {returncode}" + (f": {detail}" if detail else "")
            )

    def stop(self) -> None:
        self._stopped = True
        process = self._process
        if process is not None and process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass


class AudioPlayer:
    """
    FIFO playback of audio buffers through a single AudioOutput.

    ``submit()`` queues a buffer and returns a future that resolves to True
    when it finished playing, or False when it failed or was dropped by
    ``stop()``. One worker task drains the queue.
    """

    def __init__(self, output: Optional[AudioOutput] = None) -> None:
        self.output = output or SubprocessAudioOutput()
        self._pending: deque[tuple[SynthesisResult, asyncio.Future[bool]]] = deque()
        self._current: Optional[asyncio.Future[bool]] = None
        self._worker: Optional[asyncio.Task[None]] = None

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_playing(self) -> bool:
        return self._current is not None

    def submit(self, audio: SynthesisResult) -> "asyncio.Future[bool]":
        """Queue a buffer for playback. Must be called on the event loop."""
        loop = asyncio.get_running_loop()
        done: asyncio.Future[bool] = loop.create_future()
        self._pending.append((audio, done))
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain())
        return done

    async def play(self, audio: SynthesisResult) -> bool:
        """Queue a buffer and wait until it has been played."""
        return await self.submit(audio)

    async def _drain(self) -> None:
        while self._pending:
            audio, done = self._pending.popleft()
            if done.done():
                continue
            self._current = done
            try:
                await self.output.play(audio)
            except asyncio.CancelledError:
                _resolve(done, False)
                raise
            except Exception as exc:
                logger.error("Audio playback failed: %s", exc)
                _resolve(done, False)
            else:
                _resolve(done, True)
            finally:
                self._current = None

    def stop(self) -> int:
        """Interrupt playback and drop all queued buffers.

        Returns:
            Number of queued (not yet started) buffers dropped.
        """
        dropped = 0
        while self._pending:
            _, done = self._pending.popleft()
            _resolve(done, False)
            dropped += 1
        if self._current is not None:
            _resolve(self._current, False)
        self.output.stop()
        if dropped:
            logger.debug("Dropped %d queued audio buffers", dropped)
        return dropped


def _resolve(future: "asyncio.Future[bool]", value: bool) -> None:
    if not future.done():
        future.set_result(value)


class ExternalTtsAdapter:
    """
    Speaks text through a remote synthesizer.

    Attributes:
        synthesizer: Remote text-to-audio client
        player: Sequential audio player shared by every request
        default_voice_id: Voice used when ``speak()`` gets none
    """

    def __init__(
        self,
        synthesizer: RemoteSynthesizer,
        player: Optional[AudioPlayer] = None,
        default_voice_id: Optional[str] = None,
    ) -> None:
        self.synthesizer = synthesizer
        self.player = player or AudioPlayer()
        self.default_voice_id = default_voice_id
        self._voice_ids: dict[str, str] = {}
        self._generation = 0

    @property
    def name(self) -> str:
        return self.synthesizer.name

    async def speak(self, text: str, voice_id: Optional[str] = None) -> bool:
        """Synthesize and play text.

        Args:
            text: Text to speak; truncated beyond MAX_TEXT_LENGTH characters.
            voice_id: Remote voice id; falls back to ``default_voice_id``.

        Returns:
            True once the audio has finished playing, False on any
            synthesis or playback failure, or if ``stop()`` interrupted it.
        """
        generation = self._generation
        text = truncate_text(text)
        try:
            audio = await self.synthesizer.synthesize(text, voice_id or self.default_voice_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("%s synthesis failed: %s", self.name, exc)
            return False

        if generation != self._generation:
            logger.debug("Discarding synthesized audio after stop()")
            return False

        return await self.player.play(audio)

    def stop(self) -> None:
        """Stop playback and discard buffered or in-flight audio."""
        self._generation += 1
        self.player.stop()

    async def fetch_voices(self) -> list[EngineVoice]:
        """List the remote voices and remember their ids by name.

        Returns:
            The voices, or an empty list if the request failed.
        """
        try:
            voices = await self.synthesizer.list_voices()
        except Exception as exc:
            logger.error("Failed to fetch %s voices: %s", self.name, exc)
            return []

        self._voice_ids = {v.name: v.engine_id or v.name for v in voices}
        logger.info("Fetched %d %s voices", len(voices), self.name)
        return voices

    def voice_id_for(self, voice_name: Optional[str]) -> Optional[str]:
        """Remote voice id for a voice name seen by ``fetch_voices()``."""
        if not voice_name:
            return None
        return self._voice_ids.get(voice_name)

    async def test_connection(self) -> bool:
        """Check that the remote API answers a voice listing request."""
        try:
            await self.synthesizer.list_voices()
        except Exception as exc:
            logger.warning("%s connection test failed: %s", self.name, exc)
            return False
        return True

    async def close(self) -> None:
        self.stop()
        await self.synthesizer.close()


def build_external_adapter(
    settings: ExternalTtsSettings,
    player: Optional[AudioPlayer] = None,
) -> Optional[ExternalTtsAdapter]:
    """Create an adapter for the configured provider.

    Returns:
        The adapter, or None when external TTS is disabled or unusable.
    """
    if not settings.is_usable:
        return None

    synthesizer: RemoteSynthesizer
    if settings.provider == ExternalTtsProvider.ELEVENLABS:
        if settings.api_key is None:
            return None
        synthesizer = ElevenLabsSynthesizer(
            api_key=settings.api_key.get_secret_value(),
            model_id=settings.model_id,
        )
    else:
        edge = EdgeTTSSynthesizer()
        if not edge.is_available():
            logger.warning("edge-tts not installed, external TTS disabled")
            return None
        synthesizer = edge

    logger.info("External TTS enabled via %s", synthesizer.name)
    return ExternalTtsAdapter(synthesizer, player=player, default_voice_id=settings.voice_id)
