"""Single-worker execution queue for machine operations.

Motion and vision requests are executed strictly one at a time by a single
worker task. The requesting flow awaits the returned future, which is
completed by the worker with the operation's result or exception. In-flight
operations are never interrupted; a caller that stops caring about a result
simply discards it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from types import TracebackType
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

OperationFactory = Callable[[], Awaitable[T]]

_Job = tuple[Callable[[], Awaitable[Any]], "asyncio.Future[Any]", str]


class MachineTaskQueue:
    """Serializes machine operations on one worker task.

    Usage:
        async with MachineTaskQueue() as queue:
            await queue.run(lambda: motion.move_near(target), name="move")
            location = await queue.run(lambda: locator.locate(bl, placement))
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[_Job | None] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def __aenter__(self) -> MachineTaskQueue:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def start(self) -> None:
        """Start the worker task on the running loop."""
        if self._worker is not None:
            raise RuntimeError("MachineTaskQueue already started")
        self._worker = asyncio.get_running_loop().create_task(
            self._run_worker(), name="machine-task-queue"
        )

    async def close(self) -> None:
        """Stop accepting work, let queued operations finish, stop the worker."""
        if self._closed:
            return
        self._closed = True
        if self._worker is None:
            return
        self._queue.put_nowait(None)
        await self._worker

    def submit(
        self, factory: OperationFactory[T], *, name: str = "operation"
    ) -> asyncio.Future[T]:
        """Queue an operation and return a future for its outcome.

        Args:
            factory: Zero-argument callable returning the awaitable to run.
                It is only called by the worker, so the operation does not
                start before every earlier operation completed.
            name: Label used in log messages.

        Returns:
            Future completed with the operation's result or exception.

        Raises:
            RuntimeError: If the queue is not running.
        """
        if self._closed or self._worker is None:
            raise RuntimeError("MachineTaskQueue is not running")
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait((factory, future, name))
        return future

    async def run(self, factory: OperationFactory[T], *, name: str = "operation") -> T:
        """Submit an operation and wait for its result."""
        return await self.submit(factory, name=name)

    async def _run_worker(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                if job is None:
                    return
                factory, future, name = job
                if future.cancelled():
                    logger.debug("Skipping cancelled %s", name)
                    continue
                logger.debug("Running %s", name)
                try:
                    result = await factory()
                except asyncio.CancelledError:
                    if not future.done():
                        future.cancel()
                    raise
                except Exception as e:
                    logger.debug("%s failed: %s", name, e)
                    if not future.done():
                        future.set_exception(e)
                else:
                    if not future.done():
                        future.set_result(result)
            finally:
                self._queue.task_done()
