"""Tests for boardalign.alignment.gates module."""

from __future__ import annotations

import asyncio
import threading

import pytest

from boardalign.alignment import AutoProceedGate, GateDecision, QueueUserGate


async def _wait_for_prompt(gate: QueueUserGate) -> None:
    while gate.pending is None:
        await asyncio.sleep(0)


class TestAutoProceedGate:
    @pytest.mark.asyncio
    async def test_proceeds_and_records_prompt(self) -> None:
        gate = AutoProceedGate()
        decision = await gate.present("(Board 1/1) | Title", "Do it", "Next")

        assert decision is GateDecision.PROCEED
        assert gate.prompts[0].title == "(Board 1/1) | Title"
        assert gate.prompts[0].proceed_label == "Next"

    @pytest.mark.asyncio
    async def test_cancels_when_proceeding_not_allowed(self) -> None:
        gate = AutoProceedGate()
        decision = await gate.present("t", "i", "Next", allow_proceed=False)
        assert decision is GateDecision.CANCEL


class TestQueueUserGate:
    @pytest.mark.asyncio
    async def test_proceed(self) -> None:
        gate = QueueUserGate()
        task = asyncio.create_task(gate.present("Title", "Instructions", "Next"))
        await _wait_for_prompt(gate)

        assert gate.pending is not None
        assert gate.pending.instructions == "Instructions"
        assert gate.proceed() is True
        assert await task is GateDecision.PROCEED
        assert gate.pending is None

    @pytest.mark.asyncio
    async def test_proceed_from_another_thread(self) -> None:
        gate = QueueUserGate()
        task = asyncio.create_task(gate.present("Title", "Instructions", "Next"))
        await _wait_for_prompt(gate)

        answered: list[bool] = []
        thread = threading.Thread(target=lambda: answered.append(gate.proceed()))
        thread.start()
        thread.join()

        assert answered == [True]
        assert await task is GateDecision.PROCEED

    @pytest.mark.asyncio
    async def test_cancel(self) -> None:
        gate = QueueUserGate()
        task = asyncio.create_task(gate.present("Title", "Instructions", "Next"))
        await _wait_for_prompt(gate)

        assert gate.cancel() is True
        assert await task is GateDecision.CANCEL

    @pytest.mark.asyncio
    async def test_proceed_refused_when_not_allowed(self) -> None:
        gate = QueueUserGate()
        task = asyncio.create_task(
            gate.present("Title", "Instructions", "Next", allow_proceed=False)
        )
        await _wait_for_prompt(gate)

        assert gate.proceed() is False
        assert gate.cancel() is True
        assert await task is GateDecision.CANCEL

    def test_answers_without_prompt_are_ignored(self) -> None:
        gate = QueueUserGate()
        assert gate.proceed() is False
        assert gate.cancel() is False

    @pytest.mark.asyncio
    async def test_second_prompt_while_pending_raises(self) -> None:
        gate = QueueUserGate()
        task = asyncio.create_task(gate.present("First", "i", "Next"))
        await _wait_for_prompt(gate)

        with pytest.raises(RuntimeError, match="already pending"):
            await gate.present("Second", "i", "Next")

        gate.proceed()
        assert await task is GateDecision.PROCEED

    @pytest.mark.asyncio
    async def test_abandoned_prompt_is_cleared(self) -> None:
        gate = QueueUserGate()
        task = asyncio.create_task(gate.present("Title", "i", "Next"))
        await _wait_for_prompt(gate)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert gate.pending is None
        assert gate.proceed() is False
