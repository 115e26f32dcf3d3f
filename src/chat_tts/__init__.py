"""
chat-tts - reads live chat messages aloud, served as a FastMCP tool server.
"""

from .config import ConfigurationError, load_options, save_options
from .speech import SpeechOptions, SpeechService

try:
    from importlib.metadata import version as _get_version
    __version__ = _get_version("chat-tts")
except Exception:
    __version__ = "0.1.0"  # Fallback if metadata unavailable
__all__ = ["SpeechService", "SpeechOptions", "ConfigurationError", "load_options", "save_options"]
