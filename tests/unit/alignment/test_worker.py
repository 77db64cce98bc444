"""Tests for boardalign.alignment.worker module."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import pytest

from boardalign.alignment import MachineTaskQueue


class TestMachineTaskQueue:
    @pytest.mark.asyncio
    async def test_run_returns_result(self) -> None:
        async def operation() -> int:
            return 42

        async with MachineTaskQueue() as queue:
            assert await queue.run(operation) == 42

    @pytest.mark.asyncio
    async def test_operations_never_overlap(self) -> None:
        active = 0
        peak = 0
        order: list[int] = []

        def make(index: int) -> Callable[[], Awaitable[int]]:
            async def operation() -> int:
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.001)
                order.append(index)
                active -= 1
                return index

            return operation

        async with MachineTaskQueue() as queue:
            futures = [queue.submit(make(i), name=f"op{i}") for i in range(5)]
            results = await asyncio.gather(*futures)

        assert results == [0, 1, 2, 3, 4]
        assert order == [0, 1, 2, 3, 4]
        assert peak == 1

    @pytest.mark.asyncio
    async def test_exception_is_delivered_to_caller(self) -> None:
        async def failing() -> None:
            raise ValueError("motion fault")

        async def ok() -> str:
            return "still running"

        async with MachineTaskQueue() as queue:
            with pytest.raises(ValueError, match="motion fault"):
                await queue.run(failing)
            assert await queue.run(ok) == "still running"

    @pytest.mark.asyncio
    async def test_cancelled_future_is_skipped(self) -> None:
        calls: list[str] = []

        async def record() -> None:
            calls.append("ran")

        async with MachineTaskQueue() as queue:
            future = queue.submit(record)
            future.cancel()
            await queue.run(record)

        assert calls == ["ran"]

    @pytest.mark.asyncio
    async def test_close_drains_queued_operations(self) -> None:
        calls: list[int] = []

        def make(index: int) -> Callable[[], Awaitable[None]]:
            async def operation() -> None:
                calls.append(index)

            return operation

        queue = MachineTaskQueue()
        queue.start()
        assert queue.running
        futures = [queue.submit(make(i)) for i in range(3)]
        await queue.close()

        assert calls == [0, 1, 2]
        assert all(f.done() for f in futures)
        assert not queue.running

    @pytest.mark.asyncio
    async def test_submit_requires_running_queue(self) -> None:
        async def noop() -> None:
            return None

        queue = MachineTaskQueue()
        with pytest.raises(RuntimeError, match="not running"):
            queue.submit(noop)

        queue.start()
        await queue.close()
        with pytest.raises(RuntimeError, match="not running"):
            queue.submit(noop)

    @pytest.mark.asyncio
    async def test_start_twice_raises(self) -> None:
        async with MachineTaskQueue() as queue:
            with pytest.raises(RuntimeError, match="already started"):
                queue.start()
