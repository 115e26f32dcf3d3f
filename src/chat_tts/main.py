"""
chat-tts MCP server.
Exposes the speech queue as FastMCP tools: speak chat messages, inspect
and reorder the queue, pause/skip/stop playback and mute.
"""

import json
import logging
from typing import Annotated

from dotenv import load_dotenv
from fastmcp import FastMCP
from pydantic import Field

from .config import ConfigurationError, default_options_path, load_options
from .speech import SpeechOptions, SpeechService
from .speech.engines import Pyttsx3Engine

logger = logging.getLogger("chat-tts")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)

if not load_dotenv():
    logger.debug(".env file not found, using process environment only")

options_path = default_options_path()
try:
    options = load_options(options_path)
except ConfigurationError as exc:
    logger.error("%s - falling back to default options", exc)
    options = SpeechOptions()

engine = Pyttsx3Engine()
if not engine.is_available():
    logger.warning("pyttsx3 is not installed; install chat-tts[voice] for local speech")

service = SpeechService(engine, options=options)
logger.debug("Speech service initialized, registering tools")

mcp = FastMCP(
    name="chat-tts"
)


def _item_dict(item) -> dict | None:
    return item.to_dict() if item is not None else None


def _queue_status_logic(speech: SpeechService) -> dict:
    """Snapshot of the scheduler for the queue_status tool."""
    return {
        "state": speech.queue.state.value,
        "paused": speech.queue.is_paused,
        "muted": speech.muted,
        "current_item": _item_dict(speech.get_current_item()),
        "queue": [item.to_dict() for item in speech.get_queue_snapshot()],
    }


async def _list_voices_logic(speech: SpeechService) -> dict[str, list[dict[str, str]]]:
    result: dict[str, list[dict[str, str]]] = {
        "local": [
            {"name": v.name, "language": v.language_tag}
            for v in speech.catalog.list_voices()
        ],
    }
    external = speech.queue.external
    if external is not None:
        result[external.name] = [
            {"name": v.name, "id": v.engine_id or v.name}
            for v in await external.fetch_voices()
        ]
    return result


@mcp.tool
async def speak_message(
    username: Annotated[str | None, Field(description="Chat username of the sender")],
    message: Annotated[str, Field(description="Raw chat message text")],
    message_id: Annotated[str | None, Field(description="Chat message id, used to remove or reorder it later")] = None,
) -> str:
    """Filter, format and queue a chat message for speech."""
    items = await service.handle_message(username, message, message_id)
    if not items:
        return "Message not queued (filtered or muted)."
    ids = ", ".join(item.correlation_id or "?" for item in items)
    return f"Queued {len(items)} item(s): {ids}"


@mcp.tool
def queue_status() -> str:
    """Show the pending queue, the item being spoken and the playback flags."""
    return json.dumps(_queue_status_logic(service), indent=2)


@mcp.tool
def skip_current() -> str:
    """Skip the message currently being spoken."""
    if service.skip_current():
        return "Skipped current message."
    return "Nothing is being spoken."


@mcp.tool
def pause_speech() -> str:
    """Pause speech; queued messages wait until resumed."""
    service.pause()
    return "Speech paused."


@mcp.tool
def resume_speech() -> str:
    """Resume paused speech."""
    service.resume()
    return "Speech resumed."


@mcp.tool
def stop_speech() -> str:
    """Stop speaking and clear the queue."""
    service.stop()
    return "Speech stopped and queue cleared."


@mcp.tool
def remove_from_queue(
    message_id: Annotated[str, Field(description="Correlation id of the queued item")],
) -> str:
    """Remove a pending message from the queue."""
    if service.remove_from_queue(message_id):
        return f"Removed '{message_id}' from the queue."
    return f"No queued item with id '{message_id}'."


@mcp.tool
def reorder_queue(
    message_id: Annotated[str, Field(description="Correlation id of the queued item")],
    position: Annotated[int, Field(description="New zero-based position in the queue", ge=0)],
) -> str:
    """Move a pending message to an explicit queue position."""
    if service.reorder_queue(message_id, position):
        return f"Moved '{message_id}' to position {position}."
    return f"Could not move '{message_id}' to position {position}."


@mcp.tool
def set_mute(
    muted: Annotated[bool, Field(description="True to mute (clears the queue), False to unmute")],
) -> str:
    """Mute or unmute speech."""
    service.set_mute_state(muted)
    return "TTS muted." if service.muted else "TTS enabled."


@mcp.tool
async def list_voices() -> str:
    """List the local voices, and remote voices when external TTS is enabled."""
    return json.dumps(await _list_voices_logic(service), indent=2)


def run() -> None:
    """Main entry point for the chat-tts MCP server."""
    logger.info("Speech options: %s", options_path)
    mcp.run()


if __name__ == "__main__":
    run()
