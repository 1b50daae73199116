"""Shared fakes for the ww test suite."""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

from result import Err, Ok, Result
from typing_extensions import override

from ww.display import Display, DisplayStatus
from ww.errors import DisplayFailed, ExecutionError, WaitFailed
from ww.executor import LineCallback, StatusCallback
from ww.model import Command, ExecutionConfig, Failed, Started, Succeeded
from ww.trigger import InterruptSignal, Trigger, TriggerOutcome, TriggerWait


class RecordingDisplay(Display):
    """Records every call as a tuple, in order."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.on_call: Callable[[tuple], None] | None = None

    def _record(self, call: tuple) -> None:
        self.calls.append(call)
        if self.on_call is not None:
            self.on_call(call)

    @override
    def init(self, config: ExecutionConfig) -> Result[None, DisplayFailed]:
        self._record(("init",))
        return Ok(None)

    @override
    def stop(self) -> Result[None, DisplayFailed]:
        self._record(("stop",))
        return Ok(None)

    @override
    def update_status(self, status: DisplayStatus, command_label: str, extra_header: str) -> None:
        self._record(("status", status, extra_header))

    @override
    def on_stdout(self, text: str) -> None:
        self._record(("stdout", text))

    @override
    def on_stderr(self, text: str) -> None:
        self._record(("stderr", text))

    @property
    def statuses(self) -> list[DisplayStatus]:
        return [call[1] for call in self.calls if call[0] == "status"]

    @property
    def output(self) -> list[tuple]:
        return [call for call in self.calls if call[0] in ("stdout", "stderr")]


@dataclass
class ScriptedRun:
    # (stream, text) pairs, emitted in order
    lines: list[tuple[str, str]] = field(default_factory=list)
    status: Succeeded | Failed = field(default_factory=Succeeded)
    start_error: ExecutionError | None = None
    wait_error: WaitFailed | None = None
    before_exit: Callable[[], None] | None = None


class ScriptedExecutor:
    """Plays back one ScriptedRun per call, in order."""

    def __init__(self, *runs: ScriptedRun) -> None:
        self.runs = list(runs)
        self.commands: list[Command] = []

    async def __call__(
        self,
        command: Command,
        on_stdout_line: LineCallback,
        on_stderr_line: LineCallback,
        on_status: StatusCallback,
    ) -> Result[Succeeded | Failed, ExecutionError]:
        self.commands.append(command)
        run = self.runs.pop(0)
        if run.start_error is not None:
            return Err(run.start_error)

        on_status(Started())
        for stream, text in run.lines:
            if stream == "stdout":
                on_stdout_line(text)
            else:
                on_stderr_line(text)
            await asyncio.sleep(0)

        # let the orchestrator drain everything posted so far
        for _ in range(5):
            await asyncio.sleep(0)
        if run.before_exit is not None:
            run.before_exit()

        if run.wait_error is not None:
            return Err(run.wait_error)

        on_status(run.status)
        return Ok(run.status)


class ScriptedTrigger(Trigger):
    """Reports the given messages on every wait, then resolves to the next scripted outcome."""

    def __init__(self, outcomes: list[TriggerOutcome], messages: list[str] | None = None) -> None:
        self.outcomes = list(outcomes)
        self.messages = messages or []
        self.waits = 0

    @override
    async def _wait(
        self, wait: TriggerWait, interrupted: "asyncio.Task[InterruptSignal]"
    ) -> TriggerOutcome:
        self.waits += 1
        for message in self.messages:
            wait.report(message)
        await asyncio.sleep(0)
        return self.outcomes.pop(0)
