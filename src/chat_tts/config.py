"""
Loading and saving of SpeechOptions snapshots.

Options live in a YAML file (``chat_tts.yaml`` by default). The file is
validated once, at load time, into a SpeechOptions model; anything the
models reject raises ConfigurationError. The ElevenLabs API key can be
kept out of the file and supplied through the environment
(``ELEVENLABS_API_KEY``, also read from a ``.env`` file).
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import SecretStr, ValidationError

from .speech.models import SpeechOptions

logger = logging.getLogger("chat-tts.config")

DEFAULT_OPTIONS_FILE = "chat_tts.yaml"
API_KEY_ENV = "ELEVENLABS_API_KEY"
OPTIONS_PATH_ENV = "CHAT_TTS_OPTIONS"


class ConfigurationError(Exception):
    """Raised when an options file cannot be read or fails validation."""


def default_options_path() -> Path:
    """Options path from ``CHAT_TTS_OPTIONS``, else ./chat_tts.yaml."""
    return Path(os.getenv(OPTIONS_PATH_ENV, DEFAULT_OPTIONS_FILE)).expanduser().resolve()


def parse_options(data: Any) -> SpeechOptions:
    """Validate raw (already parsed) configuration data.

    Raises:
        ConfigurationError: If the data is not a mapping or fails validation.
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Options must be a mapping, got {type(data).__name__}"
        )
    try:
        return SpeechOptions.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid speech options: {exc}") from exc


def apply_environment(options: SpeechOptions) -> SpeechOptions:
    """Fill the external TTS API key from the environment when unset."""
    external = options.external_tts
    if external.api_key is not None and external.api_key.get_secret_value():
        return options

    api_key = os.getenv(API_KEY_ENV)
    if not api_key:
        return options

    logger.debug("Using %s from environment", API_KEY_ENV)
    external = external.model_copy(update={"api_key": SecretStr(api_key)})
    return options.model_copy(update={"external_tts": external})


def load_options(path: Optional[Path] = None, use_env: bool = True) -> SpeechOptions:
    """Load options from a YAML file.

    A missing file yields the default options.

    Args:
        path: Options file; defaults to ``default_options_path()``.
        use_env: Read ``.env`` and fill secrets from the environment.

    Returns:
        The validated SpeechOptions.

    Raises:
        ConfigurationError: If the file is unreadable, not valid YAML, or
            fails validation.
    """
    path = Path(path) if path is not None else default_options_path()

    if path.exists():
        try:
            with open(path, encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"Could not read options file {path}: {exc}") from exc
        options = parse_options(data)
        logger.info("Loaded speech options from %s", path)
    else:
        logger.info("No options file at %s, using defaults", path)
        options = SpeechOptions()

    if use_env:
        load_dotenv()
        options = apply_environment(options)
    return options


def save_options(options: SpeechOptions, path: Optional[Path] = None) -> Path:
    """Write options to YAML. The API key is never written.

    Returns:
        The path written to.
    """
    path = Path(path) if path is not None else default_options_path()
    data = options.model_dump(mode="json", exclude={"external_tts": {"api_key"}})

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as fh:
        yaml.safe_dump(
            data,
            fh,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
    logger.debug("Speech options saved to %s", path)
    return path
