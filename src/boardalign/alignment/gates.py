"""User gate implementations.

QueueUserGate holds a prompt open until ``proceed()`` or ``cancel()`` is
called. Both may be called from any thread (e.g. a UI thread); the decision
is handed to the alignment loop with ``call_soon_threadsafe`` so it never
races with the state machine.
"""

from __future__ import annotations

import asyncio
import logging
import threading

from pydantic import BaseModel

from boardalign.alignment.protocol import GateDecision

logger = logging.getLogger(__name__)


class GatePrompt(BaseModel, frozen=True):
    """A prompt currently shown to the operator."""

    title: str
    instructions: str
    proceed_label: str
    allow_proceed: bool = True


class QueueUserGate:
    """Gate answered by an external caller.

    Usage:
        gate = QueueUserGate()
        machine = AlignmentStateMachine(boards, ..., gate=gate)
        # UI thread, after showing gate.pending:
        gate.proceed()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._future: asyncio.Future[GateDecision] | None = None
        self._pending: GatePrompt | None = None

    @property
    def pending(self) -> GatePrompt | None:
        """The prompt awaiting a decision, if any."""
        with self._lock:
            return self._pending

    async def present(
        self,
        title: str,
        instructions: str,
        proceed_label: str,
        allow_proceed: bool = True,
    ) -> GateDecision:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[GateDecision] = loop.create_future()
        with self._lock:
            if self._future is not None and not self._future.done():
                raise RuntimeError("A gate prompt is already pending")
            self._loop = loop
            self._future = future
            self._pending = GatePrompt(
                title=title,
                instructions=instructions,
                proceed_label=proceed_label,
                allow_proceed=allow_proceed,
            )
        logger.info("%s: %s", title, instructions)
        try:
            return await future
        finally:
            with self._lock:
                if self._future is future:
                    self._future = None
                    self._pending = None

    def proceed(self) -> bool:
        """Answer the pending prompt with PROCEED.

        Returns:
            True if a prompt was pending and accepts proceeding.
        """
        with self._lock:
            if self._pending is None or not self._pending.allow_proceed:
                return False
        return self._decide(GateDecision.PROCEED)

    def cancel(self) -> bool:
        """Answer the pending prompt with CANCEL.

        Returns:
            True if a prompt was pending.
        """
        return self._decide(GateDecision.CANCEL)

    def _decide(self, decision: GateDecision) -> bool:
        with self._lock:
            loop, future = self._loop, self._future
        if loop is None or future is None or future.done():
            return False
        loop.call_soon_threadsafe(self._resolve, future, decision)
        return True

    @staticmethod
    def _resolve(
        future: asyncio.Future[GateDecision], decision: GateDecision
    ) -> None:
        # runs on the loop; the prompt may have been answered or abandoned meanwhile
        if not future.done():
            future.set_result(decision)


class AutoProceedGate:
    """Gate that always proceeds when allowed. Used for automation and tests."""

    def __init__(self) -> None:
        self.prompts: list[GatePrompt] = []

    async def present(
        self,
        title: str,
        instructions: str,
        proceed_label: str,
        allow_proceed: bool = True,
    ) -> GateDecision:
        self.prompts.append(
            GatePrompt(
                title=title,
                instructions=instructions,
                proceed_label=proceed_label,
                allow_proceed=allow_proceed,
            )
        )
        return GateDecision.PROCEED if allow_proceed else GateDecision.CANCEL
