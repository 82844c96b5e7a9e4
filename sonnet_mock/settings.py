"""Server configuration loader.

Loads defaults from config/defaults.toml, layers an optional user TOML
file, SONNET_MOCK_* environment variables, and explicit overrides on
top, and validates the result into a ServerConfig.
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from sonnet_mock.env import env_overrides, load_dotenv_file
from sonnet_mock.errors import ConfigError
from sonnet_mock.schemas.config import ServerConfig

logger = logging.getLogger(__name__)

# Default config directory relative to the sonnet_mock package
_CONFIG_DIR = Path(__file__).parent / "config"


def _read_server_table(path: Path) -> dict[str, Any]:
    """Return the [server] table of a TOML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigError: If the TOML cannot be parsed or [server] is not a table.
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e

    section = raw.get("server", {})
    if not isinstance(section, dict):
        raise ConfigError(f"[server] in {path} must be a table")
    return section


def load_server_config(
    config_path: Path | None = None,
    overrides: dict[str, Any] | None = None,
    *,
    use_env: bool = True,
) -> ServerConfig:
    """Resolve the server configuration.

    Precedence, highest first: ``overrides`` (CLI flags), SONNET_MOCK_*
    environment variables (after merging ./.env), ``config_path``, and
    the bundled defaults.toml.

    Args:
        config_path: Optional user TOML file with a [server] table.
        overrides: Explicit values; ``None`` entries are ignored.
        use_env: Read the environment and ./.env. Disabled in tests.

    Returns:
        A validated ServerConfig.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
        ConfigError: If any layer holds an invalid value.
    """
    values: dict[str, Any] = {}

    defaults = _CONFIG_DIR / "defaults.toml"
    if defaults.exists():
        values.update(_read_server_table(defaults))

    if config_path is not None:
        values.update(_read_server_table(config_path))

    if use_env:
        load_dotenv_file()
        for key, value in env_overrides().items():
            if key in ServerConfig.model_fields:
                values[key] = value
            else:
                logger.warning("Ignoring unknown setting SONNET_MOCK_%s", key.upper())

    if overrides:
        values.update({k: v for k, v in overrides.items() if v is not None})

    unknown = sorted(set(values) - set(ServerConfig.model_fields))
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    try:
        return ServerConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid server configuration: {e}") from e
