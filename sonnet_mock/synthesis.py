"""Completion synthesis: turning a token budget into a response.

Non-streaming requests get one rendered ``chat.completion`` body;
streaming requests get a StreamSession primed with the same budget.
Nothing here mutates the corpus or keeps state between calls.
"""

from __future__ import annotations

import random

from sonnet_mock.corpus import TokenCorpus
from sonnet_mock.render import render_full_completion
from sonnet_mock.schemas.config import DEFAULT_MAX_REPEAT_TOKENS, OverflowPolicy
from sonnet_mock.stream import StreamSession, StreamTiming


def effective_budget(
    corpus: TokenCorpus,
    requested: int | None,
    overflow: OverflowPolicy = OverflowPolicy.CLAMP,
    max_repeat_tokens: int = DEFAULT_MAX_REPEAT_TOKENS,
) -> int:
    """Number of tokens a request will actually receive.

    An absent budget means the whole corpus. Under CLAMP the budget is
    capped at the corpus length; under REPEAT it is honoured up to
    ``max_repeat_tokens``.
    """
    if requested is None:
        return corpus.total_count
    if overflow is OverflowPolicy.REPEAT:
        return min(requested, max_repeat_tokens)
    return min(requested, corpus.total_count)


def completion_text(
    corpus: TokenCorpus,
    budget: int,
    overflow: OverflowPolicy = OverflowPolicy.CLAMP,
) -> str:
    """Concatenate the first ``budget`` tokens (wrapping under REPEAT)."""
    if overflow is OverflowPolicy.REPEAT:
        return corpus.cycle(budget)
    return corpus.prefix(budget)


def synthesize_completion(
    corpus: TokenCorpus,
    requested: int | None = None,
    overflow: OverflowPolicy = OverflowPolicy.CLAMP,
    max_repeat_tokens: int = DEFAULT_MAX_REPEAT_TOKENS,
) -> str:
    """Render the full non-streamed completion body for ``requested`` tokens."""
    if requested is None:
        # Whole corpus: reuse the precomputed text
        return render_full_completion(corpus.text, corpus.total_count, corpus.total_count)

    budget = effective_budget(corpus, requested, overflow, max_repeat_tokens)
    return render_full_completion(completion_text(corpus, budget, overflow), budget, budget)


def open_stream(
    corpus: TokenCorpus,
    requested: int | None = None,
    *,
    include_usage: bool = False,
    timing: StreamTiming | None = None,
    overflow: OverflowPolicy = OverflowPolicy.CLAMP,
    max_repeat_tokens: int = DEFAULT_MAX_REPEAT_TOKENS,
    rng: random.Random | None = None,
) -> StreamSession:
    """Build a StreamSession for ``requested`` tokens (at least one)."""
    budget = max(1, effective_budget(corpus, requested, overflow, max_repeat_tokens))
    return StreamSession(
        corpus,
        budget,
        include_usage=include_usage,
        timing=timing,
        rng=rng,
    )


def synthesize(
    corpus: TokenCorpus,
    requested: int | None = None,
    *,
    stream: bool = False,
    include_usage: bool = False,
    timing: StreamTiming | None = None,
    overflow: OverflowPolicy = OverflowPolicy.CLAMP,
    max_repeat_tokens: int = DEFAULT_MAX_REPEAT_TOKENS,
    rng: random.Random | None = None,
) -> str | StreamSession:
    """Produce the response for one request.

    Returns the rendered body when ``stream`` is false, otherwise a
    StreamSession ready to be drained.
    """
    if not stream:
        return synthesize_completion(corpus, requested, overflow, max_repeat_tokens)
    return open_stream(
        corpus,
        requested,
        include_usage=include_usage,
        timing=timing,
        overflow=overflow,
        max_repeat_tokens=max_repeat_tokens,
        rng=rng,
    )
