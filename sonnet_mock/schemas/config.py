"""Server configuration schema.

Loaded by ``sonnet_mock.settings`` from the bundled defaults.toml, an
optional user TOML file, SONNET_MOCK_* environment variables, and CLI flags.
"""

from __future__ import annotations

import os
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator


class OverflowPolicy(StrEnum):
    """What to do when a request asks for more tokens than the corpus holds.

    CLAMP stops at the end of the corpus. REPEAT honours the requested
    budget up to ``max_repeat_tokens`` and wraps around to the start of
    the corpus.
    """

    CLAMP = "clamp"
    REPEAT = "repeat"


class LogLevel(StrEnum):
    """Logging levels accepted by both stdlib logging and uvicorn."""

    CRITICAL = "critical"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    DEBUG = "debug"


DEFAULT_MAX_REPEAT_TOKENS = 65536


def _default_workers() -> int:
    return os.cpu_count() or 1


class ServerConfig(BaseModel):
    """Process-wide settings for the mock server."""

    host: str = Field(default="0.0.0.0", description="Listen address")
    port: int = Field(default=8079, ge=0, le=65535, description="Listen port")
    workers: int = Field(
        default_factory=_default_workers, ge=1, description="Worker processes"
    )
    max_connections: int = Field(
        default=256, ge=1, description="Concurrent connection limit per worker"
    )
    request_timeout: float = Field(
        default=600.0, gt=0, description="Idle connection timeout in seconds"
    )
    inter_token_latency_ms: float = Field(
        default=50.0, ge=0, description="Delay before each streamed content frame"
    )
    inter_token_jitter_ms: float = Field(
        default=50.0, ge=0, description="Uniform random extra delay per frame"
    )
    think_time: bool = Field(
        default=True, description="Simulate time-to-first-token before streaming"
    )
    think_time_min_ms: float = Field(default=500.0, ge=0)
    think_time_max_ms: float = Field(default=1000.0, ge=0)
    api_key: str | None = Field(
        default=None, description="Bearer token required on /v1 routes when set"
    )
    overflow: OverflowPolicy = Field(default=OverflowPolicy.CLAMP)
    max_repeat_tokens: int = Field(
        default=DEFAULT_MAX_REPEAT_TOKENS,
        ge=1,
        description="Budget ceiling when overflow is repeat",
    )
    corpus_path: Path | None = Field(
        default=None, description="Text file for the corpus (bundled sonnets when unset)"
    )
    tokenizer: str = Field(
        default="whitespace",
        description="'whitespace' or a Hugging Face tokenizer identifier",
    )
    random_seed: int | None = Field(
        default=None, description="Seed for think-time and jitter draws"
    )
    log_level: LogLevel = Field(default=LogLevel.WARNING)

    @field_validator("log_level", mode="before")
    @classmethod
    def _lower_log_level(cls, value: object) -> object:
        return value.lower() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _check_think_time_range(self) -> ServerConfig:
        if self.think_time_min_ms > self.think_time_max_ms:
            raise ValueError(
                "think_time_min_ms must not exceed think_time_max_ms"
            )
        return self
