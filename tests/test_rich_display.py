import io

import pytest
from result import Ok
from rich.console import Console

from ww import rich_display
from ww.display import DisplayStatus
from ww.highlighter import Highlighter, highlighter_for_terms
from ww.model import Command, ExecutionConfig
from ww.rich_display import ENDED_MESSAGE, FullscreenDisplay, InlineDisplay

_CONFIG = ExecutionConfig(command=Command("make", ("test",)), highlighter=Highlighter())


def _console(height: int = 25) -> Console:
    return Console(
        file=io.StringIO(), width=80, height=height, color_system=None, force_terminal=False
    )


def _rendered(console: Console, renderable) -> str:
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


class TestInlineDisplay:
    def test_final_frame_is_printed_on_stop(self) -> None:
        console = _console()
        display = InlineDisplay(console)
        assert display.init(_CONFIG) == Ok(None)

        display.update_status(DisplayStatus.RUNNING, "make test", "")
        display.on_stdout("compiling\n")
        display.on_stderr("warning: unused\n")
        display.update_status(DisplayStatus.SUCCESS, "make test", "at 12:00:00")
        assert display.stop() == Ok(None)

        output = console.file.getvalue()
        assert "make test" in output
        assert "compiling" in output
        assert "warning: unused" in output
        assert "success at 12:00:00" in output

    def test_triggered_clears_on_first_new_output(self) -> None:
        console = _console()
        display = InlineDisplay(console)

        display.on_stdout("old run\n")
        display.update_status(DisplayStatus.TRIGGERED, "make test", "")
        still_shown = _rendered(console, display._render())
        display.on_stdout("new run\n")
        after = _rendered(console, display._render())

        assert "old run" in still_shown
        assert "old run" not in after
        assert "new run" in after

    def test_output_is_not_read_as_markup(self) -> None:
        console = _console()
        display = InlineDisplay(console)

        display.on_stdout("[bold]literal[/bold]\n")

        assert "[bold]literal[/bold]" in _rendered(console, display._render())

    def test_highlight_codes_are_not_printed(self) -> None:
        console = _console()
        display = InlineDisplay(console)

        display.on_stdout(highlighter_for_terms(["error"]).highlight("1 error\n"))
        rendered = _rendered(console, display._render())

        assert "1 error" in rendered
        assert "\x1b" not in rendered

    def test_ended_message(self) -> None:
        console = _console()
        display = InlineDisplay(console)

        display.update_status(DisplayStatus.ENDED, "make test", "")

        assert ENDED_MESSAGE in _rendered(console, display._render())

    def test_only_the_latest_output_is_kept(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(rich_display, "MAX_OUTPUT_LINES", 10)
        console = _console()
        display = InlineDisplay(console)

        for number in range(15):
            display.on_stdout(f"line {number}\n")
        lines = [line.rstrip() for line in _rendered(console, display._render()).splitlines()]

        assert "line 4" not in lines
        assert "line 5" in lines
        assert "line 14" in lines

    def test_stop_without_init(self) -> None:
        assert InlineDisplay(_console()).stop() == Ok(None)


class TestFullscreenDisplay:
    def test_header_shows_command_and_status(self) -> None:
        console = _console()
        display = FullscreenDisplay(console)

        display.update_status(DisplayStatus.WAITING, "make test", "2s left")
        first_line = _rendered(console, display._render()).splitlines()[0]

        assert "make test 2s left" in first_line
        assert first_line.rstrip().endswith("waiting")

    @pytest.mark.parametrize("height", [5, 10])
    def test_shows_the_tail_of_the_output(self, height: int) -> None:
        console = _console(height)
        display = FullscreenDisplay(console)

        for number in range(50):
            display.on_stdout(f"line {number}\n")
        lines = [line.rstrip() for line in _rendered(console, display._render()).splitlines()]

        assert len(lines) == height
        assert lines[-1] == "line 49"
        assert "line 0" not in lines
