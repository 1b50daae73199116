import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum, auto

from result import Err, Ok, Result

from .display import Display, DisplayStatus
from .errors import ExecutionError, PipeOpenFailed, SpawnFailed, WaitFailed
from .executor import LineCallback, StatusCallback, execute
from .model import (
    Command,
    ExecutionConfig,
    Failed,
    ProcessStatus,
    Started,
    Stream,
    Succeeded,
)
from .trigger import InterruptSource, Trigger, TriggerOutcome

_LOGGER = logging.getLogger(__name__)

ExecuteFunction = Callable[
    [Command, LineCallback, LineCallback, StatusCallback],
    Awaitable[Result[Succeeded | Failed, ExecutionError]],
]


class RunState(StrEnum):
    IDLE = auto()
    STARTING = auto()
    RUNNING = auto()
    SUCCEEDED = auto()
    FAILED = auto()
    WAITING_FOR_TRIGGER = auto()
    ENDED = auto()
    INTERRUPTED = auto()


@dataclass
class OutputLine:
    stream: Stream
    text: str


@dataclass
class StatusChanged:
    status: ProcessStatus


@dataclass
class ExecutionDone:
    pass


ProcessEvent = OutputLine | StatusChanged | ExecutionDone


@dataclass
class Orchestrator:
    """
    Runs the configured command, then waits on the trigger and runs it
    again, until the trigger wait is interrupted. Without a trigger the
    command runs once and the orchestrator waits for an interrupt to quit.

    All state below is touched only from the task running run().
    """

    config: ExecutionConfig
    display: Display
    interrupts: InterruptSource
    executor: ExecuteFunction = execute
    clock: Callable[[], datetime] = datetime.now

    def __post_init__(self) -> None:
        self._state = RunState.IDLE
        self._buffers: dict[Stream, list[str]] = {Stream.STDOUT: [], Stream.STDERR: []}
        self.transitions: list[RunState] = [RunState.IDLE]

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def _label(self) -> str:
        return self.config.command.label

    async def run(self) -> Result[RunState, WaitFailed]:
        restarting = False
        while True:
            match await self._run_once(restarting):
                case Err() as err:
                    return err
                case Ok():
                    pass

            trigger = self.config.trigger
            if trigger is None:
                self._transition(RunState.ENDED)
                self.display.update_status(DisplayStatus.ENDED, self._label, "")
                signal = await self.interrupts.get()
                _LOGGER.info(f"Quitting: {signal.reason}")
                return Ok(RunState.ENDED)

            self._transition(RunState.WAITING_FOR_TRIGGER)
            match await self._wait_for(trigger):
                case TriggerOutcome.FIRED:
                    restarting = True
                case TriggerOutcome.INTERRUPTED:
                    self._transition(RunState.INTERRUPTED)
                    return Ok(RunState.INTERRUPTED)

    def _transition(self, state: RunState) -> None:
        _LOGGER.debug(f"{self._state} -> {state}")
        self._state = state
        self.transitions.append(state)

    async def _wait_for(self, trigger: Trigger) -> TriggerOutcome:
        wait = trigger.wait_for_trigger(self.interrupts)
        try:
            async for message in wait.progress():
                self.display.update_status(DisplayStatus.WAITING, self._label, message)
            return await wait.outcome()
        finally:
            wait.cancel()

    async def _run_once(self, restarting: bool) -> Result[None, WaitFailed]:
        self._transition(RunState.STARTING)
        if restarting and self.config.clear_on_restart:
            self.display.update_status(DisplayStatus.TRIGGERED, self._label, "")

        events: asyncio.Queue[ProcessEvent] = asyncio.Queue()
        execution = asyncio.create_task(
            self.executor(
                self.config.command,
                lambda text: events.put_nowait(OutputLine(Stream.STDOUT, text)),
                lambda text: events.put_nowait(OutputLine(Stream.STDERR, text)),
                lambda status: events.put_nowait(StatusChanged(status)),
            )
        )
        execution.add_done_callback(lambda _: events.put_nowait(ExecutionDone()))

        try:
            while True:
                match await events.get():
                    case OutputLine(stream, text):
                        self._on_output(stream, text)
                    case StatusChanged(Started()):
                        self._transition(RunState.RUNNING)
                        self.display.update_status(DisplayStatus.RUNNING, self._label, "")
                    case StatusChanged(Succeeded() | Failed() as terminal):
                        self._finish(terminal)
                    case ExecutionDone():
                        break
        finally:
            if not execution.done():
                execution.cancel()
                # the executor terminates the child before finishing
                await asyncio.wait([execution])

        match execution.result():
            case Ok():
                return Ok(None)
            case Err(SpawnFailed() | PipeOpenFailed() as start_error):
                self._finish(Failed(reason=start_error.describe()))
                return Ok(None)
            case Err(WaitFailed() as wait_failed):
                self._finish(Failed(reason=wait_failed.describe()))
                return Err(wait_failed)
            case _:
                raise AssertionError("unreachable")

    def _on_output(self, stream: Stream, text: str) -> None:
        highlighted = self.config.highlighter.highlight(text)
        if self.config.buffered_output:
            self._buffers[stream].append(highlighted)
        else:
            self._write(stream, highlighted)

    def _write(self, stream: Stream, text: str) -> None:
        match stream:
            case Stream.STDOUT:
                self.display.on_stdout(text)
            case Stream.STDERR:
                self.display.on_stderr(text)

    def _flush(self) -> None:
        for stream in (Stream.STDOUT, Stream.STDERR):
            for text in self._buffers[stream]:
                self._write(stream, text)
            self._buffers[stream] = []

    def _finish(self, terminal: Succeeded | Failed) -> None:
        self._flush()
        match terminal:
            case Succeeded():
                self._transition(RunState.SUCCEEDED)
                self.display.update_status(
                    DisplayStatus.SUCCESS, self._label, f"at {self.clock():%H:%M:%S}"
                )
            case Failed():
                self._transition(RunState.FAILED)
                self.display.update_status(DisplayStatus.FAILED, self._label, terminal.describe())
