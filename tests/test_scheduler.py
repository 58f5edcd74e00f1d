"""Tests for scheduling module."""

import asyncio
from datetime import datetime, timedelta

import pytest

from greentwin.scheduling import AsyncioScheduler, ManualScheduler


class TestManualScheduler:
    @pytest.mark.asyncio
    async def test_fires_in_time_order(self):
        fired = []
        scheduler = ManualScheduler(on_fire=fired.append)
        scheduler.schedule_in(30, "b")
        scheduler.schedule_in(10, "a")
        scheduler.schedule_in(10, "a2")

        assert await scheduler.advance(5) == []
        assert await scheduler.advance(60) == ["a", "a2", "b"]
        assert fired == ["a", "a2", "b"]
        assert scheduler.pending() == {}

    @pytest.mark.asyncio
    async def test_cancel_and_reschedule(self):
        scheduler = ManualScheduler()
        scheduler.schedule_in(10, "x")
        assert scheduler.cancel("x") is True
        assert scheduler.cancel("x") is False

        scheduler.schedule_in(10, "y")
        scheduler.schedule_in(100, "y")  # replaces
        assert await scheduler.advance(50) == []
        assert scheduler.is_pending("y")
        assert await scheduler.advance(50) == ["y"]

    @pytest.mark.asyncio
    async def test_clock_moves_to_due_time_while_firing(self):
        start = datetime(2024, 1, 1, 12)
        seen = []
        scheduler = ManualScheduler(start=start)
        scheduler.on_fire = lambda token: seen.append(scheduler.now())
        scheduler.schedule_in(60, "t")
        await scheduler.advance(3600)
        assert seen == [start + timedelta(seconds=60)]
        assert scheduler.now() == start + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_async_handler_and_errors(self):
        calls = []

        async def handler(token):
            calls.append(token)
            if token == "bad":
                raise RuntimeError("boom")

        scheduler = ManualScheduler(on_fire=handler)
        scheduler.schedule_in(1, "bad")
        scheduler.schedule_in(2, "good")
        await scheduler.advance(5)
        assert calls == ["bad", "good"]

    @pytest.mark.asyncio
    async def test_handler_can_schedule_due_token(self):
        scheduler = ManualScheduler()

        def handler(token):
            if token == "first":
                scheduler.schedule_in(0, "second")

        scheduler.on_fire = handler
        scheduler.schedule_in(1, "first")
        assert await scheduler.advance(1) == ["first", "second"]


class TestAsyncioScheduler:
    @pytest.mark.asyncio
    async def test_fires_on_loop(self):
        fired = asyncio.Event()
        scheduler = AsyncioScheduler(on_fire=lambda token: fired.set())
        scheduler.schedule_in(0.01, "tick")
        assert scheduler.is_pending("tick")
        await asyncio.wait_for(fired.wait(), timeout=1)
        assert not scheduler.is_pending("tick")
        await scheduler.shutdown()

    @pytest.mark.asyncio
    async def test_cancel_and_shutdown(self):
        fired = []
        scheduler = AsyncioScheduler(on_fire=fired.append)
        scheduler.schedule_in(0.01, "a")
        scheduler.schedule_in(0.01, "b")
        assert scheduler.cancel("a")
        await scheduler.shutdown()
        await asyncio.sleep(0.03)
        assert fired == []
        assert scheduler.pending() == {}

    def test_schedule_before_loop_is_deferred(self):
        fired = []
        scheduler = AsyncioScheduler(on_fire=fired.append)
        scheduler.schedule_in(0.01, "early")
        scheduler.schedule_in(60, "late")
        scheduler.schedule_in(60, "dropped")
        assert scheduler.cancel("dropped")
        assert set(scheduler.pending()) == {"early", "late"}

        async def run():
            scheduler.start()
            await asyncio.sleep(0.05)
            armed = scheduler.pending()
            await scheduler.shutdown()
            return armed

        assert set(asyncio.run(run())) == {"late"}
        assert fired == ["early"]
        assert scheduler.pending() == {}

    def test_deferred_tokens_armed_by_next_schedule(self):
        fired = []
        scheduler = AsyncioScheduler(on_fire=fired.append)
        scheduler.schedule_in(0, "held")

        async def run():
            scheduler.schedule_in(0.01, "fresh")
            await asyncio.sleep(0.05)
            await scheduler.shutdown()

        asyncio.run(run())
        assert sorted(fired) == ["fresh", "held"]
