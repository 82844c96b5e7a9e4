"""sonnet-mock schema definitions.

Pydantic v2 models for inbound requests, server configuration, and the
OpenAI-compatible wire objects the renderer reproduces.
"""

from sonnet_mock.schemas.completion import (
    ChatCompletion,
    ChatCompletionChunk,
    ChunkChoice,
    CompletionChoice,
    CompletionMessage,
    CompletionUsage,
    Delta,
    Usage,
)
from sonnet_mock.schemas.config import LogLevel, OverflowPolicy, ServerConfig
from sonnet_mock.schemas.request import CompletionRequest, StreamOptions

__all__ = [
    "ChatCompletion",
    "ChatCompletionChunk",
    "ChunkChoice",
    "CompletionChoice",
    "CompletionMessage",
    "CompletionRequest",
    "CompletionUsage",
    "Delta",
    "LogLevel",
    "OverflowPolicy",
    "ServerConfig",
    "StreamOptions",
    "Usage",
]
