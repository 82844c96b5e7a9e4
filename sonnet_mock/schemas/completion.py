"""OpenAI-compatible wire objects.

Field order matches the renderer templates, so ``model_dump()`` of these
models serialised with ``json.dumps(..., separators=(",", ":"),
ensure_ascii=False)`` is the reference output for ``sonnet_mock.render``.
They also document the response shapes in the OpenAPI schema.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from sonnet_mock.render import (
    CHUNK_CREATED,
    COMPLETION_CREATED,
    COMPLETION_ID,
    MODEL_NAME,
)


class Delta(BaseModel):
    content: str
    reasoning_content: str | None = None


class ChunkChoice(BaseModel):
    index: int = 0
    delta: Delta
    logprobs: Any = None
    finish_reason: str | None = None
    token_ids: list[int] | None = None


class Usage(BaseModel):
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(ge=0)
    total_tokens: int = Field(ge=0)


class ChatCompletionChunk(BaseModel):
    """One ``data:`` frame of a streamed completion."""

    id: str = COMPLETION_ID
    object: Literal["chat.completion.chunk"] = "chat.completion.chunk"
    created: int = CHUNK_CREATED
    model: str = MODEL_NAME
    choices: list[ChunkChoice] = Field(default_factory=list)
    usage: Usage | None = None

    def wire_dict(self) -> dict[str, Any]:
        """Dump for the wire; content chunks carry no ``usage`` key."""
        exclude = {"usage"} if self.usage is None else None
        return self.model_dump(exclude=exclude)


class CompletionMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str
    refusal: str | None = None
    annotations: list[Any] | None = None
    audio: Any = None
    function_call: Any = None
    tool_calls: list[Any] = Field(default_factory=list)
    reasoning: str | None = None
    reasoning_content: str | None = None


class CompletionChoice(BaseModel):
    index: int = 0
    message: CompletionMessage
    logprobs: Any = None
    finish_reason: str = "length"
    stop_reason: str | None = None
    token_ids: list[int] | None = None


class CompletionUsage(BaseModel):
    prompt_tokens: int = 0
    total_tokens: int = Field(ge=0)
    completion_tokens: int = Field(ge=0)
    prompt_tokens_details: Any = None


class ChatCompletion(BaseModel):
    """Non-streamed completion body."""

    id: str = COMPLETION_ID
    object: Literal["chat.completion"] = "chat.completion"
    created: int = COMPLETION_CREATED
    model: str = MODEL_NAME
    choices: list[CompletionChoice]
    usage: CompletionUsage
