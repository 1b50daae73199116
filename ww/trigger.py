import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Coroutine
from dataclasses import dataclass
from enum import StrEnum, auto
from typing import Any

_LOGGER = logging.getLogger(__name__)


class TriggerOutcome(StrEnum):
    FIRED = auto()
    INTERRUPTED = auto()


@dataclass(frozen=True)
class InterruptSignal:
    reason: str | None = None


class InterruptSource:
    """
    Delivers one-shot InterruptSignals to whichever trigger wait is pending.
    A signal sent while no wait is pending is held for the next one.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[InterruptSignal] = asyncio.Queue()

    def interrupt(self, reason: str | None = None) -> None:
        self._queue.put_nowait(InterruptSignal(reason))

    async def get(self) -> InterruptSignal:
        return await self._queue.get()


_END_OF_PROGRESS = object()


class TriggerWait:
    """
    A single wait cycle: a bounded stream of progress messages and one
    outcome. The progress stream always ends before the outcome resolves.
    """

    def __init__(self) -> None:
        self._progress: asyncio.Queue[Any] = asyncio.Queue()
        self._outcome: asyncio.Future[TriggerOutcome] = asyncio.get_running_loop().create_future()
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    def start(self, wait: Coroutine[Any, Any, TriggerOutcome]) -> None:
        self._task = asyncio.create_task(self._run(wait))

    async def _run(self, wait: Coroutine[Any, Any, TriggerOutcome]) -> None:
        try:
            outcome = await wait
        except asyncio.CancelledError:
            self._close_progress()
            self._outcome.cancel()
            raise
        except Exception as wait_exception:
            _LOGGER.error("Trigger wait failed", exc_info=wait_exception)
            self._close_progress()
            self._outcome.set_exception(wait_exception)
            return

        _LOGGER.debug(f"Trigger wait resolved: {outcome}")
        self._close_progress()
        self._outcome.set_result(outcome)

    def _close_progress(self) -> None:
        self._closed = True
        self._progress.put_nowait(_END_OF_PROGRESS)

    def report(self, message: str) -> None:
        if not self._closed:
            self._progress.put_nowait(message)

    async def progress(self) -> AsyncIterator[str]:
        while True:
            message = await self._progress.get()
            if message is _END_OF_PROGRESS:
                return
            yield message

    async def outcome(self) -> TriggerOutcome:
        return await asyncio.shield(self._outcome)

    def cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()


class Trigger(ABC):
    def wait_for_trigger(self, interrupts: InterruptSource) -> TriggerWait:
        wait = TriggerWait()
        wait.start(self._wait_or_interrupt(wait, interrupts))
        return wait

    async def _wait_or_interrupt(
        self, wait: TriggerWait, interrupts: InterruptSource
    ) -> TriggerOutcome:
        interrupted = asyncio.create_task(interrupts.get())
        try:
            outcome = await self._wait(wait, interrupted)
        finally:
            interrupted.cancel()

        # A signal that arrived during the wait always wins
        if interrupted.done() and not interrupted.cancelled():
            _LOGGER.info(f"Trigger wait interrupted: {interrupted.result().reason}")
            return TriggerOutcome.INTERRUPTED
        return outcome

    @abstractmethod
    async def _wait(
        self, wait: TriggerWait, interrupted: "asyncio.Task[InterruptSignal]"
    ) -> TriggerOutcome:
        """
        Waits for the trigger condition, reporting progress on the given
        wait, and returns early with INTERRUPTED once interrupted is done.
        Must release everything it acquired before returning.
        """
