from abc import ABC, abstractmethod
from enum import StrEnum, auto

from result import Result

from .errors import DisplayFailed
from .model import ExecutionConfig


class DisplayStatus(StrEnum):
    # The command is about to be re-run; clear old output once new output arrives
    TRIGGERED = auto()
    RUNNING = auto()
    SUCCESS = auto()
    FAILED = auto()
    # Trigger progress while waiting for the next run
    WAITING = auto()
    # No trigger configured; nothing left to do but quit
    ENDED = auto()


class Display(ABC):
    """
    Renders status and command output. Only the orchestrator calls these
    methods, never concurrently; implementations own their redraw timing.
    """

    @abstractmethod
    def init(self, config: ExecutionConfig) -> Result[None, DisplayFailed]: ...

    @abstractmethod
    def stop(self) -> Result[None, DisplayFailed]: ...

    @abstractmethod
    def update_status(self, status: DisplayStatus, command_label: str, extra_header: str) -> None: ...

    @abstractmethod
    def on_stdout(self, text: str) -> None: ...

    @abstractmethod
    def on_stderr(self, text: str) -> None: ...
