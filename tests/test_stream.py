"""Tests for sonnet_mock.stream — the streaming session state machine."""

from __future__ import annotations

import asyncio
import json
import random
from unittest.mock import AsyncMock, patch

import pytest

from sonnet_mock.corpus import TokenCorpus
from sonnet_mock.render import render_chunk, render_done, render_finish, render_usage
from sonnet_mock.schemas.config import ServerConfig
from sonnet_mock.stream import (
    Frame,
    FrameKind,
    Phase,
    SessionState,
    StreamSession,
    StreamTiming,
    initial_state,
    run_to_completion,
    transition,
)

_CORPUS = TokenCorpus(("Shall", " I", " compare", " thee"))


def _kinds(frames: list[Frame]) -> list[FrameKind]:
    return [f.kind for f in frames]


def _content(frame: Frame) -> str:
    return json.loads(frame.data)["choices"][0]["delta"]["content"]


# ══════════════════════════════════════════════════════════════════
# initial_state
# ══════════════════════════════════════════════════════════════════


class TestInitialState:
    def test_starts_emitting_without_think_time(self):
        state = initial_state(3)
        assert state.phase is Phase.EMITTING
        assert state.cursor == 0
        assert state.budget == 3

    def test_starts_in_init_with_think_time(self):
        assert initial_state(3, think_time=True).phase is Phase.INIT

    def test_budget_clamped_to_one(self):
        assert initial_state(0).budget == 1

    def test_delta_limit_reserves_finish_slot(self):
        assert initial_state(5).delta_limit == 4


# ══════════════════════════════════════════════════════════════════
# transition
# ══════════════════════════════════════════════════════════════════


class TestTransition:
    def test_init_emits_nothing(self):
        state = initial_state(3, think_time=True)
        next_state, frame = transition(state, _CORPUS)
        assert frame is None
        assert next_state.phase is Phase.EMITTING
        assert next_state.cursor == 0

    def test_does_not_mutate_input_state(self):
        state = initial_state(3)
        transition(state, _CORPUS)
        assert state.cursor == 0
        assert state.phase is Phase.EMITTING

    def test_emitting_produces_delta_and_advances(self):
        next_state, frame = transition(initial_state(3), _CORPUS)
        assert frame == Frame(FrameKind.CHUNK, render_chunk("Shall"))
        assert next_state.cursor == 1
        assert next_state.phase is Phase.EMITTING

    def test_last_delta_moves_to_finishing(self):
        state = SessionState(budget=3, cursor=1)
        next_state, frame = transition(state, _CORPUS)
        assert _content(frame) == " I"
        assert next_state.phase is Phase.FINISHING

    def test_finishing_carries_reserved_token(self):
        state = SessionState(budget=3, phase=Phase.FINISHING, cursor=2)
        next_state, frame = transition(state, _CORPUS)
        assert frame == Frame(FrameKind.FINISH, render_finish(" compare"))
        assert next_state.phase is Phase.USAGE_OR_DONE
        assert next_state.cursor == 3

    def test_finishing_without_reserved_slot_is_empty(self):
        state = SessionState(budget=2, phase=Phase.FINISHING, cursor=2)
        _, frame = transition(state, _CORPUS)
        assert frame == Frame(FrameKind.FINISH, render_finish(""))

    def test_usage_emitted_when_requested(self):
        state = SessionState(budget=3, include_usage=True, phase=Phase.USAGE_OR_DONE, cursor=3)
        next_state, frame = transition(state, _CORPUS)
        assert frame == Frame(FrameKind.USAGE, render_usage(3, 3))
        assert next_state.usage_sent is True
        assert next_state.phase is Phase.DONE

    def test_usage_not_repeated(self):
        state = SessionState(
            budget=3, include_usage=True, phase=Phase.USAGE_OR_DONE, usage_sent=True
        )
        next_state, frame = transition(state, _CORPUS)
        assert frame.kind is FrameKind.DONE
        assert next_state.phase is Phase.COMPLETED

    def test_usage_skipped_goes_straight_to_done(self):
        state = SessionState(budget=3, phase=Phase.USAGE_OR_DONE, cursor=3)
        next_state, frame = transition(state, _CORPUS)
        assert frame == Frame(FrameKind.DONE, render_done())
        assert next_state.done_sent is True

    def test_done_then_completed(self):
        state = SessionState(budget=3, phase=Phase.DONE)
        next_state, frame = transition(state, _CORPUS)
        assert frame.data == "[DONE]"
        assert next_state.phase is Phase.COMPLETED

    def test_completed_is_terminal(self):
        state = SessionState(budget=3, phase=Phase.COMPLETED, done_sent=True)
        next_state, frame = transition(state, _CORPUS)
        assert frame is None
        assert next_state == state


# ══════════════════════════════════════════════════════════════════
# Whole sequences
# ══════════════════════════════════════════════════════════════════


class TestFrameSequence:
    def test_scenario_three_tokens_with_usage(self):
        frames = run_to_completion(initial_state(3, include_usage=True), _CORPUS)
        assert frames == [
            Frame(FrameKind.CHUNK, render_chunk("Shall")),
            Frame(FrameKind.CHUNK, render_chunk(" I")),
            Frame(FrameKind.FINISH, render_finish(" compare")),
            Frame(FrameKind.USAGE, render_usage(3, 3)),
            Frame(FrameKind.DONE, "[DONE]"),
        ]

    @pytest.mark.parametrize("budget", [2, 3, 4])
    @pytest.mark.parametrize("usage", [True, False])
    def test_counts_and_order(self, budget, usage):
        frames = run_to_completion(initial_state(budget, include_usage=usage), _CORPUS)
        expected = [FrameKind.CHUNK] * (budget - 1) + [FrameKind.FINISH]
        if usage:
            expected.append(FrameKind.USAGE)
        expected.append(FrameKind.DONE)
        assert _kinds(frames) == expected

    def test_budget_one_has_no_deltas(self):
        frames = run_to_completion(initial_state(1, include_usage=True), _CORPUS)
        assert _kinds(frames) == [FrameKind.FINISH, FrameKind.USAGE, FrameKind.DONE]
        assert _content(frames[0]) == "Shall"

    def test_think_time_adds_no_frames(self):
        with_think = run_to_completion(initial_state(3, think_time=True), _CORPUS)
        without = run_to_completion(initial_state(3), _CORPUS)
        assert with_think == without

    def test_budget_beyond_corpus_wraps(self):
        frames = run_to_completion(initial_state(6), _CORPUS)
        contents = [_content(f) for f in frames[:-1]]
        assert contents == ["Shall", " I", " compare", " thee", "Shall", " I"]

    def test_usage_counts_every_content_token(self):
        frames = run_to_completion(initial_state(4, include_usage=True), _CORPUS)
        content_frames = [f for f in frames if f.kind in (FrameKind.CHUNK, FrameKind.FINISH)]
        usage = json.loads(frames[-2].data)["usage"]
        assert usage["completion_tokens"] == len(content_frames) == 4
        assert usage["total_tokens"] == 4


class TestFrame:
    def test_to_sse(self):
        assert Frame(FrameKind.DONE, "[DONE]").to_sse() == "data: [DONE]\n\n"


# ══════════════════════════════════════════════════════════════════
# StreamTiming
# ══════════════════════════════════════════════════════════════════


class TestStreamTiming:
    def test_from_config_converts_ms(self):
        config = ServerConfig(
            inter_token_latency_ms=20,
            inter_token_jitter_ms=10,
            think_time=False,
            think_time_min_ms=100,
            think_time_max_ms=300,
        )
        timing = StreamTiming.from_config(config)
        assert timing.inter_token_latency == pytest.approx(0.02)
        assert timing.inter_token_jitter == pytest.approx(0.01)
        assert timing.think_time is False
        assert timing.think_time_min == pytest.approx(0.1)
        assert timing.think_time_max == pytest.approx(0.3)

    def test_zero_latency_means_no_delay(self):
        assert StreamTiming().token_delay(random.Random(0)) == 0.0

    def test_zero_latency_ignores_jitter(self):
        timing = StreamTiming(inter_token_latency=0.0, inter_token_jitter=0.05)
        rng = random.Random(3)
        assert all(timing.token_delay(rng) == 0.0 for _ in range(20))

    def test_token_delay_within_jitter_range(self):
        timing = StreamTiming(inter_token_latency=0.05, inter_token_jitter=0.05)
        rng = random.Random(1)
        for _ in range(50):
            assert 0.05 <= timing.token_delay(rng) <= 0.1

    def test_think_delay_within_range(self):
        timing = StreamTiming(think_time=True, think_time_min=0.5, think_time_max=1.0)
        rng = random.Random(2)
        for _ in range(50):
            assert 0.5 <= timing.think_delay(rng) <= 1.0


# ══════════════════════════════════════════════════════════════════
# StreamSession driver
# ══════════════════════════════════════════════════════════════════


class TestStreamSession:
    @pytest.mark.asyncio()
    async def test_frames_match_pure_sequence(self):
        session = StreamSession(_CORPUS, 3, include_usage=True)
        frames = [f async for f in session.frames()]
        assert frames == run_to_completion(initial_state(3, include_usage=True), _CORPUS)
        assert session.phase is Phase.COMPLETED
        assert session.closed is True

    @pytest.mark.asyncio()
    async def test_async_iteration(self):
        session = StreamSession(_CORPUS, 2)
        frames = [f async for f in session]
        assert _kinds(frames) == [FrameKind.CHUNK, FrameKind.FINISH, FrameKind.DONE]

    @pytest.mark.asyncio()
    async def test_zero_latency_never_sleeps(self):
        session = StreamSession(_CORPUS, 4)
        with patch("sonnet_mock.stream.asyncio.sleep", new_callable=AsyncMock) as sleep:
            frames = [f async for f in session.frames()]
        assert len(frames) == 5
        sleep.assert_not_called()

    @pytest.mark.asyncio()
    async def test_sleeps_think_time_then_per_token(self):
        timing = StreamTiming(
            inter_token_latency=0.05,
            think_time=True,
            think_time_min=0.7,
            think_time_max=0.7,
        )
        session = StreamSession(_CORPUS, 3, include_usage=True, timing=timing)
        with patch("sonnet_mock.stream.asyncio.sleep", new_callable=AsyncMock) as sleep:
            frames = [f async for f in session.frames()]

        delays = [c.args[0] for c in sleep.call_args_list]
        # think time, second delta, finish; the first delta follows think time
        # directly and usage and done are immediate
        assert delays == [pytest.approx(0.7), 0.05, 0.05]
        assert len(frames) == 5

    @pytest.mark.asyncio()
    async def test_first_delta_waits_without_think_time(self):
        timing = StreamTiming(inter_token_latency=0.05)
        session = StreamSession(_CORPUS, 3, timing=timing)
        with patch("sonnet_mock.stream.asyncio.sleep", new_callable=AsyncMock) as sleep:
            _ = [f async for f in session.frames()]
        assert [c.args[0] for c in sleep.call_args_list] == [0.05, 0.05, 0.05]

    @pytest.mark.asyncio()
    async def test_configured_zero_latency_ignores_jitter(self):
        config = ServerConfig(inter_token_latency_ms=0, think_time=False)
        assert config.inter_token_jitter_ms > 0
        session = StreamSession(_CORPUS, 4, timing=StreamTiming.from_config(config))
        with patch("sonnet_mock.stream.asyncio.sleep", new_callable=AsyncMock) as sleep:
            frames = [f async for f in session.frames()]
        assert len(frames) == 5
        sleep.assert_not_called()

    @pytest.mark.asyncio()
    async def test_seeded_rng_gives_identical_delays(self):
        timing = StreamTiming(inter_token_latency=0.01, inter_token_jitter=0.02)

        async def _delays(seed):
            session = StreamSession(_CORPUS, 3, timing=timing, rng=random.Random(seed))
            with patch("sonnet_mock.stream.asyncio.sleep", new_callable=AsyncMock) as sleep:
                _ = [f async for f in session.frames()]
            return [c.args[0] for c in sleep.call_args_list]

        assert await _delays(7) == await _delays(7)

    @pytest.mark.asyncio()
    async def test_aclose_stops_emission(self):
        session = StreamSession(_CORPUS, 4, include_usage=True)
        gen = session.frames()
        first = await gen.__anext__()
        second = await gen.__anext__()
        await gen.aclose()

        assert _kinds([first, second]) == [FrameKind.CHUNK, FrameKind.CHUNK]
        assert session.closed is True
        assert session.phase is not Phase.COMPLETED
        with pytest.raises(StopAsyncIteration):
            await gen.__anext__()

    @pytest.mark.asyncio()
    async def test_task_cancellation_during_sleep(self):
        timing = StreamTiming(inter_token_latency=10.0)
        session = StreamSession(_CORPUS, 4, timing=timing)
        received: list[Frame] = []

        async def _consume():
            async for frame in session.frames():
                received.append(frame)

        task = asyncio.create_task(_consume())
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert received == []
        assert session.closed is True
        assert session.state.cursor == 0

    @pytest.mark.asyncio()
    async def test_no_frames_after_cancellation_point(self):
        timing = StreamTiming(inter_token_latency=0.001)
        session = StreamSession(_CORPUS, 4, timing=timing)
        received: list[Frame] = []

        async def _consume():
            async for frame in session.frames():
                received.append(frame)
                if len(received) == 2:
                    # Park here until cancelled
                    await asyncio.Event().wait()

        task = asyncio.create_task(_consume())
        while len(received) < 2:
            await asyncio.sleep(0.001)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert len(received) == 2
        assert session.state.cursor == 2
