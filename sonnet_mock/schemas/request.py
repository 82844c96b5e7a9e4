"""Inbound completion request schema."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class StreamOptions(BaseModel):
    """Options that only apply when ``stream`` is true."""

    model_config = ConfigDict(extra="allow")

    include_usage: bool = Field(
        default=False, description="Send a usage chunk before [DONE]"
    )


class CompletionRequest(BaseModel):
    """Body of ``/v1/completions`` and ``/v1/chat/completions``.

    Only the fields below are interpreted. Everything else a client sends
    (``model``, ``messages``, ``prompt``, ``temperature``, ...) is accepted
    and kept in ``model_extra`` without being read.
    """

    model_config = ConfigDict(extra="allow")

    max_tokens: int | None = Field(
        default=None, ge=0, description="Token budget; defaults to the whole corpus"
    )
    stream: bool | None = Field(default=None, description="Stream SSE frames")
    stream_options: StreamOptions | None = Field(default=None)

    @property
    def include_usage(self) -> bool:
        return self.stream_options is not None and self.stream_options.include_usage
