from dataclasses import dataclass
from enum import StrEnum, auto
from signal import Signals
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .highlighter import Highlighter
    from .trigger import Trigger


@dataclass(frozen=True)
class Command:
    program: str
    args: tuple[str, ...] = ()

    @property
    def label(self) -> str:
        return " ".join([self.program, *self.args])


@dataclass(frozen=True)
class Started:
    pass


@dataclass(frozen=True)
class Succeeded:
    pass


@dataclass(frozen=True)
class Failed:
    exit_code: int | None = None
    signal: Signals | None = None
    reason: str | None = None

    def describe(self) -> str:
        if self.signal is not None:
            return f"killed by {self.signal.name}"
        if self.exit_code is not None:
            return f"exit code {self.exit_code}"
        return self.reason or "failed"


ProcessStatus = Started | Succeeded | Failed


def status_from_returncode(returncode: int) -> Succeeded | Failed:
    if returncode == 0:
        return Succeeded()
    if returncode < 0:
        try:
            return Failed(signal=Signals(-returncode))
        except ValueError:
            return Failed(exit_code=returncode)
    return Failed(exit_code=returncode)


class Stream(StrEnum):
    STDOUT = auto()
    STDERR = auto()


@dataclass(frozen=True)
class ExecutionConfig:
    command: Command
    highlighter: "Highlighter"
    trigger: "Trigger | None" = None
    buffered_output: bool = True
    clear_on_restart: bool = True
