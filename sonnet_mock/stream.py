"""Streaming session: a token-paced sequence of SSE frames.

A session walks a fixed phase sequence::

    INIT -> EMITTING -> FINISHING -> USAGE_OR_DONE -> DONE -> COMPLETED

``transition()`` is a pure function over an immutable SessionState and
returns at most one frame per call, so the whole phase table can be
exercised without an event loop. ``StreamSession.frames()`` drives it
under asyncio and adds the think-time and inter-token delays.

One slot of the budget is reserved for the finish frame: a session with
budget ``b`` emits ``b - 1`` content deltas followed by a finish frame
that carries the last token.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import AsyncIterator
from dataclasses import dataclass, replace
from enum import StrEnum

from sonnet_mock.corpus import TokenCorpus
from sonnet_mock.render import (
    render_chunk,
    render_done,
    render_finish,
    render_usage,
)
from sonnet_mock.schemas.config import ServerConfig

logger = logging.getLogger(__name__)


class Phase(StrEnum):
    """Lifecycle phase of a streaming session."""

    INIT = "init"
    EMITTING = "emitting"
    FINISHING = "finishing"
    USAGE_OR_DONE = "usage_or_done"
    DONE = "done"
    COMPLETED = "completed"


class FrameKind(StrEnum):
    """Kind of SSE frame a transition produced."""

    CHUNK = "chunk"
    FINISH = "finish"
    USAGE = "usage"
    DONE = "done"


@dataclass(frozen=True)
class Frame:
    """One ``data:`` event of the stream."""

    kind: FrameKind
    data: str

    def to_sse(self) -> str:
        return f"data: {self.data}\n\n"


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of a session's progress."""

    budget: int
    include_usage: bool = False
    phase: Phase = Phase.EMITTING
    cursor: int = 0
    usage_sent: bool = False
    done_sent: bool = False

    @property
    def delta_limit(self) -> int:
        """Number of content-delta frames; the last slot goes to the finish frame."""
        return self.budget - 1


def initial_state(
    budget: int, include_usage: bool = False, think_time: bool = False
) -> SessionState:
    """Build the starting state, clamping ``budget`` to at least one token."""
    return SessionState(
        budget=max(1, budget),
        include_usage=include_usage,
        phase=Phase.INIT if think_time else Phase.EMITTING,
    )


def _finish(state: SessionState, corpus: TokenCorpus) -> tuple[SessionState, Frame]:
    content = corpus.token_at(state.cursor) if state.cursor < state.budget else ""
    next_state = replace(state, phase=Phase.USAGE_OR_DONE, cursor=state.cursor + 1)
    return next_state, Frame(FrameKind.FINISH, render_finish(content))


def _done(state: SessionState) -> tuple[SessionState, Frame]:
    next_state = replace(state, phase=Phase.COMPLETED, done_sent=True)
    return next_state, Frame(FrameKind.DONE, render_done())


def transition(
    state: SessionState, corpus: TokenCorpus
) -> tuple[SessionState, Frame | None]:
    """Advance ``state`` by one step.

    Returns the next state and the frame to send, if any. Only the INIT
    step (think-time) and the terminal COMPLETED state produce no frame.
    """
    phase = state.phase

    if phase is Phase.INIT:
        return replace(state, phase=Phase.EMITTING), None

    if phase is Phase.EMITTING:
        if state.cursor >= state.delta_limit:
            # Budget of one: no deltas, go straight to the finish frame
            return _finish(state, corpus)
        frame = Frame(FrameKind.CHUNK, render_chunk(corpus.token_at(state.cursor)))
        cursor = state.cursor + 1
        next_phase = Phase.EMITTING if cursor < state.delta_limit else Phase.FINISHING
        return replace(state, phase=next_phase, cursor=cursor), frame

    if phase is Phase.FINISHING:
        return _finish(state, corpus)

    if phase is Phase.USAGE_OR_DONE:
        if state.include_usage and not state.usage_sent:
            frame = Frame(FrameKind.USAGE, render_usage(state.budget, state.budget))
            return replace(state, phase=Phase.DONE, usage_sent=True), frame
        return _done(state)

    if phase is Phase.DONE:
        return _done(state)

    return state, None


def run_to_completion(state: SessionState, corpus: TokenCorpus) -> list[Frame]:
    """Apply ``transition`` until COMPLETED and collect every frame, no delays."""
    frames: list[Frame] = []
    while state.phase is not Phase.COMPLETED:
        state, frame = transition(state, corpus)
        if frame is not None:
            frames.append(frame)
    return frames


@dataclass(frozen=True)
class StreamTiming:
    """Delays applied by the session driver, in seconds."""

    inter_token_latency: float = 0.0
    inter_token_jitter: float = 0.0
    think_time: bool = False
    think_time_min: float = 0.5
    think_time_max: float = 1.0

    @classmethod
    def from_config(cls, config: ServerConfig) -> StreamTiming:
        return cls(
            inter_token_latency=config.inter_token_latency_ms / 1000,
            inter_token_jitter=config.inter_token_jitter_ms / 1000,
            think_time=config.think_time,
            think_time_min=config.think_time_min_ms / 1000,
            think_time_max=config.think_time_max_ms / 1000,
        )

    def think_delay(self, rng: random.Random) -> float:
        return rng.uniform(self.think_time_min, self.think_time_max)

    def token_delay(self, rng: random.Random) -> float:
        """Latency plus jitter; zero latency streams back-to-back, jitter ignored."""
        if self.inter_token_latency <= 0:
            return 0.0
        jitter = rng.uniform(0, self.inter_token_jitter) if self.inter_token_jitter else 0.0
        return self.inter_token_latency + jitter


class StreamSession:
    """Drives one streaming response.

    Owned by the task serving the request. Cancelling that task (client
    disconnect) or closing the ``frames()`` generator stops the session
    at once: the pending sleep is cancelled and no further frame is built.
    """

    def __init__(
        self,
        corpus: TokenCorpus,
        budget: int,
        *,
        include_usage: bool = False,
        timing: StreamTiming | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.corpus = corpus
        self.timing = timing or StreamTiming()
        self.state = initial_state(budget, include_usage, self.timing.think_time)
        self._rng = rng or random.Random()
        self.closed = False

    @property
    def phase(self) -> Phase:
        return self.state.phase

    def step(self) -> Frame | None:
        """Advance one transition without any delay."""
        self.state, frame = transition(self.state, self.corpus)
        return frame

    async def _pause(self) -> None:
        phase = self.state.phase
        if phase is Phase.INIT:
            await asyncio.sleep(self.timing.think_delay(self._rng))
        elif phase is Phase.EMITTING and self.state.cursor == 0 and self.timing.think_time:
            # First token follows the think time directly
            return
        elif phase in (Phase.EMITTING, Phase.FINISHING):
            delay = self.timing.token_delay(self._rng)
            if delay > 0:
                await asyncio.sleep(delay)

    async def frames(self) -> AsyncIterator[Frame]:
        """Yield frames in order, sleeping at the configured suspension points."""
        logger.debug(
            "Stream started: budget=%d usage=%s", self.state.budget, self.state.include_usage
        )
        try:
            while self.state.phase is not Phase.COMPLETED:
                await self._pause()
                frame = self.step()
                if frame is not None:
                    yield frame
        finally:
            self.closed = True
            if self.state.phase is Phase.COMPLETED:
                logger.debug("Stream completed after %d tokens", self.state.cursor)
            else:
                logger.debug(
                    "Stream cancelled in %s at token %d",
                    self.state.phase, self.state.cursor,
                )

    def __aiter__(self) -> AsyncIterator[Frame]:
        return self.frames()
