import logging
import threading
from collections import deque
from abc import abstractmethod

from result import Err, Ok, Result
from rich.console import Console, Group, RenderableType
from rich.errors import LiveError
from rich.live import Live
from rich.table import Table
from rich.text import Text
from typing_extensions import override

from .display import Display, DisplayStatus
from .errors import DisplayFailed
from .model import ExecutionConfig

_LOGGER = logging.getLogger(__name__)

REFRESH_PER_SECOND = 4

ENDED_MESSAGE = "ww: press Ctrl+C to exit"

# Output lines kept for redraws; older ones are dropped
MAX_OUTPUT_LINES = 5000

_STATUS_STYLES = {
    DisplayStatus.RUNNING: "bold white",
    DisplayStatus.SUCCESS: "bold green",
    DisplayStatus.FAILED: "bold red",
    DisplayStatus.WAITING: "bold white",
}


class _RichDisplay(Display):
    """
    Keeps the latest status and output and lets rich's Live redraw them on
    its own refresh thread. Output is decoded as ANSI, never as markup.
    """

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()
        self._lock = threading.Lock()
        self._live: Live | None = None
        self._command_label = ""
        self._status = DisplayStatus.RUNNING
        self._extra_header = ""
        self._chunks: deque[str] = deque(maxlen=MAX_OUTPUT_LINES)
        self._clear_on_next_output = False
        self._ended = False

    @abstractmethod
    def _make_live(self) -> Live: ...

    @abstractmethod
    def _render(self) -> RenderableType: ...

    @override
    def init(self, config: ExecutionConfig) -> Result[None, DisplayFailed]:
        self._command_label = config.command.label
        try:
            self._live = self._make_live()
            self._live.start()
        except (LiveError, OSError) as live_exception:
            _LOGGER.error("Could not start display", exc_info=live_exception)
            return Err(DisplayFailed(live_exception))
        return Ok(None)

    @override
    def stop(self) -> Result[None, DisplayFailed]:
        if self._live is None:
            return Ok(None)
        try:
            self._live.stop()
        except OSError as stop_exception:
            return Err(DisplayFailed(stop_exception))
        finally:
            self._live = None
        return Ok(None)

    @override
    def update_status(self, status: DisplayStatus, command_label: str, extra_header: str) -> None:
        with self._lock:
            match status:
                case DisplayStatus.TRIGGERED:
                    # cleared by the first output of the new run
                    self._clear_on_next_output = True
                case DisplayStatus.ENDED:
                    self._ended = True
                case _:
                    self._status = status
                    self._command_label = command_label
                    self._extra_header = extra_header

    @override
    def on_stdout(self, text: str) -> None:
        with self._lock:
            if self._clear_on_next_output:
                self._chunks.clear()
                self._ended = False
                self._clear_on_next_output = False
            self._chunks.append(text)

    @override
    def on_stderr(self, text: str) -> None:
        self.on_stdout(text)

    def _snapshot(self) -> tuple[DisplayStatus, str, str, str, bool]:
        with self._lock:
            return (
                self._status,
                self._command_label,
                self._extra_header,
                "".join(self._chunks),
                self._ended,
            )

    def _status_text(self, status: DisplayStatus, extra_header: str) -> Text:
        return Text(f"{status} {extra_header}".rstrip(), style=_STATUS_STYLES.get(status, ""))


class InlineDisplay(_RichDisplay):
    """
    Redraws the command label, its output and the status line in place
    below the prompt.
    """

    @override
    def _make_live(self) -> Live:
        return Live(
            console=self._console,
            auto_refresh=True,
            refresh_per_second=REFRESH_PER_SECOND,
            vertical_overflow="visible",
            get_renderable=self._render,
        )

    @override
    def _render(self) -> RenderableType:
        status, label, extra_header, output, ended = self._snapshot()
        parts: list[RenderableType] = [
            Text(label, style="bold white"),
            Text.from_ansi(output),
            self._status_text(status, extra_header),
        ]
        if ended:
            parts.append(Text(ENDED_MESSAGE, style="yellow"))
        return Group(*parts)


class FullscreenDisplay(_RichDisplay):
    """
    Takes over the terminal: a header row with the command and status, and
    as much of the end of the output as fits below it.
    """

    @override
    def _make_live(self) -> Live:
        return Live(
            console=self._console,
            screen=True,
            auto_refresh=True,
            refresh_per_second=REFRESH_PER_SECOND,
            get_renderable=self._render,
        )

    @override
    def _render(self) -> RenderableType:
        status, label, extra_header, output, ended = self._snapshot()
        style = _STATUS_STYLES.get(status, "")

        header = Table.grid(expand=True)
        header.add_column(ratio=1, no_wrap=True, overflow="ellipsis")
        header.add_column(justify="right", no_wrap=True)
        header.add_row(Text(f"{label} {extra_header}".rstrip(), style=style), Text(status, style=style))

        lines = output.splitlines()
        if ended:
            lines += ["", ENDED_MESSAGE]
        visible = max(self._console.size.height - 1, 0)
        body = Text.from_ansi("\n".join(lines[-visible:] if visible else []))
        return Group(header, body)
