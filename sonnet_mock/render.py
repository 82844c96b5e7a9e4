"""Template renderer for completion bodies and SSE frames.

Every frame is built by joining fixed JSON fragments around an escaped
content string or decimal counters, so no generic serializer runs on the
hot path. The output is byte-identical to ``json.dumps`` of the matching
wire model (see ``sonnet_mock.schemas.completion``) with compact separators
and ``ensure_ascii=False``.
"""

from __future__ import annotations

import json

MODEL_NAME = "sonnet-mock-model"
COMPLETION_ID = "chatcmpl-xxx"
CHUNK_CREATED = 1770187171
COMPLETION_CREATED = 1770188771

# ── Streaming chunk fragments ────────────────────────────────────

_CHUNK_PREFIX = (
    '{"id":"' + COMPLETION_ID + '","object":"chat.completion.chunk",'
    '"created":' + str(CHUNK_CREATED) + ',"model":"' + MODEL_NAME + '",'
    '"choices":[{"index":0,"delta":{"content":'
)
_CHUNK_SUFFIX = (
    ',"reasoning_content":null},"logprobs":null,'
    '"finish_reason":null,"token_ids":null}]}'
)
# Finish chunk shares the chunk prefix
_FINISH_SUFFIX = (
    ',"reasoning_content":null},"logprobs":null,'
    '"finish_reason":"length","token_ids":null}]}'
)

_USAGE_PREFIX = (
    '{"id":"' + COMPLETION_ID + '","object":"chat.completion.chunk",'
    '"created":' + str(CHUNK_CREATED) + ',"model":"' + MODEL_NAME + '",'
    '"choices":[],"usage":{"prompt_tokens":0,"completion_tokens":'
)
_USAGE_MID = ',"total_tokens":'
_USAGE_SUFFIX = "}}"

DONE_SENTINEL = "[DONE]"

# ── Full completion fragments ────────────────────────────────────

_CHAT_PREFIX = (
    '{"id":"' + COMPLETION_ID + '","object":"chat.completion",'
    '"created":' + str(COMPLETION_CREATED) + ',"model":"' + MODEL_NAME + '",'
    '"choices":[{"index":0,"message":{"role":"assistant","content":'
)
_CHAT_MID1 = (
    ',"refusal":null,"annotations":null,"audio":null,"function_call":null,'
    '"tool_calls":[],"reasoning":null,"reasoning_content":null},'
    '"logprobs":null,"finish_reason":"length","stop_reason":null,'
    '"token_ids":null}],"usage":{"prompt_tokens":0,"total_tokens":'
)
_CHAT_MID2 = ',"completion_tokens":'
_CHAT_SUFFIX = ',"prompt_tokens_details":null}}'

# ── Error bodies ─────────────────────────────────────────────────

ERROR_INVALID_API_KEY = (
    '{"error":{"message":"Invalid API key",'
    '"type":"invalid_request_error","code":"invalid_api_key"}}'
)
ERROR_MISSING_API_KEY = (
    '{"error":{"message":"Missing Authorization header",'
    '"type":"invalid_request_error","code":"missing_api_key"}}'
)

_escape = json.JSONEncoder(ensure_ascii=False).encode


def escape_content(content: str) -> str:
    """Return ``content`` as a quoted JSON string literal."""
    return _escape(content)


def render_chunk(content: str) -> str:
    """Content-delta chunk with ``finish_reason: null``."""
    return "".join((_CHUNK_PREFIX, _escape(content), _CHUNK_SUFFIX))


def render_finish(content: str) -> str:
    """Final content chunk with ``finish_reason: "length"``."""
    return "".join((_CHUNK_PREFIX, _escape(content), _FINISH_SUFFIX))


def render_usage(completion_tokens: int, total_tokens: int) -> str:
    """Usage chunk: empty choice list plus a usage object (no prompt tokens)."""
    return "".join((
        _USAGE_PREFIX,
        str(completion_tokens),
        _USAGE_MID,
        str(total_tokens),
        _USAGE_SUFFIX,
    ))


def render_done() -> str:
    """The end-of-stream marker."""
    return DONE_SENTINEL


def render_full_completion(
    content: str, completion_tokens: int, total_tokens: int
) -> str:
    """Non-streamed ``chat.completion`` body."""
    return "".join((
        _CHAT_PREFIX,
        _escape(content),
        _CHAT_MID1,
        str(total_tokens),
        _CHAT_MID2,
        str(completion_tokens),
        _CHAT_SUFFIX,
    ))


def render_error(message: str, error_type: str, code: str) -> str:
    """OpenAI-style error body for messages not covered by the constants."""
    return "".join((
        '{"error":{"message":',
        _escape(message),
        ',"type":',
        _escape(error_type),
        ',"code":',
        _escape(code),
        "}}",
    ))
