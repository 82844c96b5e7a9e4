"""Environment handling for sonnet-mock.

Settings can come from SONNET_MOCK_* environment variables. Before they
are read, a ``.env`` file in the working directory is merged into
os.environ with this priority:
  1. Environment variables (highest, already set in shell)
  2. .env in current directory
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

ENV_PREFIX = "SONNET_MOCK_"


def load_dotenv_file(path: Path | None = None) -> None:
    """Load KEY=VALUE pairs from ``path`` (default ./.env) into os.environ.

    Existing env vars are NOT overwritten.
    """
    env_file = path or Path.cwd() / ".env"
    if env_file.is_file():
        _load_env_file(env_file)


def _load_env_file(path: Path) -> None:
    """Parse a simple KEY=VALUE .env file and set vars that aren't already set."""
    try:
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith("export "):
                line = line[len("export "):]
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key and key not in os.environ:
                os.environ[key] = value
                logger.debug("Loaded %s from %s", key, path)
    except OSError:
        logger.debug("Could not read %s", path)


def env_overrides(environ: dict[str, str] | None = None) -> dict[str, str]:
    """Collect SONNET_MOCK_* variables as lower-case config field names.

    ``SONNET_MOCK_INTER_TOKEN_LATENCY_MS=0`` becomes
    ``{"inter_token_latency_ms": "0"}``. Empty values are ignored.
    """
    source = os.environ if environ is None else environ
    overrides: dict[str, str] = {}
    for key, value in source.items():
        if not key.startswith(ENV_PREFIX) or value == "":
            continue
        overrides[key[len(ENV_PREFIX):].lower()] = value
    return overrides


def export_overrides(values: dict[str, object]) -> None:
    """Write config values back as SONNET_MOCK_* env vars.

    Used by the CLI before spawning uvicorn workers, which rebuild the
    app from the environment in each process.
    """
    for field, value in values.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        os.environ[ENV_PREFIX + field.upper()] = str(value)
