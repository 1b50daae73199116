import asyncio
import codecs
import errno
import logging
import os
from collections.abc import Callable
from signal import Signals

from result import Err, Ok, Result

from .errors import ExecutionError, PipeOpenFailed, SpawnFailed, WaitFailed
from .model import Command, Failed, ProcessStatus, Started, Succeeded, status_from_returncode

_LOGGER = logging.getLogger(__name__)

# Lines longer than this are delivered in pieces of this size.
STREAM_LIMIT = 256 * 1024

LineCallback = Callable[[str], None]
StatusCallback = Callable[[ProcessStatus], None]

_PIPE_ERRNOS = (errno.EMFILE, errno.ENFILE)


def shell_wrap(command: Command, shell: str | None = None) -> Command:
    """
    Runs the command through the user's shell. Arguments containing
    whitespace are double-quoted so the shell splits them the same way.
    Arguments that already contain a double quote are passed through as-is.
    """

    if shell is None:
        shell = os.getenv("SHELL") or "/bin/sh"

    words = [command.program] + [_quote_if_spaced(arg) for arg in command.args]
    return Command(shell, ("-c", " ".join(words)))


def _quote_if_spaced(arg: str) -> str:
    if any(c.isspace() for c in arg):
        return f'"{arg}"'
    return arg


async def _spawn(
    command: Command,
) -> Result[asyncio.subprocess.Process, SpawnFailed | PipeOpenFailed]:
    try:
        process = await asyncio.create_subprocess_exec(
            command.program,
            *command.args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=STREAM_LIMIT,
            start_new_session=True,
        )
    except OSError as spawn_exception:
        _LOGGER.error(f"Failed to start {command.label!r}: {spawn_exception}")
        if spawn_exception.errno in _PIPE_ERRNOS:
            return Err(PipeOpenFailed("output pipes", spawn_exception))
        return Err(SpawnFailed(command.program, spawn_exception))

    for name, stream in (("stdout", process.stdout), ("stderr", process.stderr)):
        if stream is None:
            await _terminate(process, Signals.SIGKILL)
            return Err(PipeOpenFailed(name, RuntimeError(f"no {name} pipe")))

    return Ok(process)


async def _read_lines(stream: asyncio.StreamReader, on_line: LineCallback) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        try:
            chunk = await stream.readuntil(b"\n")
        except asyncio.IncompleteReadError as eof:
            # end of input, possibly with an unterminated last line
            tail = decoder.decode(eof.partial, final=True)
            if tail:
                on_line(tail)
            return
        except asyncio.LimitOverrunError as overrun:
            chunk = await stream.readexactly(overrun.consumed)

        text = decoder.decode(chunk)
        if text:
            on_line(text)


async def _stream_until_exit(
    process: asyncio.subprocess.Process,
    on_stdout_line: LineCallback,
    on_stderr_line: LineCallback,
) -> int:
    assert process.stdout is not None and process.stderr is not None

    async with asyncio.TaskGroup() as tg:
        tg.create_task(_read_lines(process.stdout, on_stdout_line))
        tg.create_task(_read_lines(process.stderr, on_stderr_line))

    # Both streams hit end of input before the child is reaped
    return await process.wait()


async def _terminate(process: asyncio.subprocess.Process, signal: Signals) -> None:
    # The whole group, so descendants holding the output pipes exit too
    try:
        os.killpg(process.pid, signal)
    except ProcessLookupError:
        pass
    await process.wait()


def _root_cause(exception: BaseException) -> BaseException:
    while isinstance(exception, BaseExceptionGroup) and exception.exceptions:
        exception = exception.exceptions[0]
    return exception


async def execute(
    command: Command,
    on_stdout_line: LineCallback,
    on_stderr_line: LineCallback,
    on_status: StatusCallback,
) -> Result[Succeeded | Failed, ExecutionError]:
    match await _spawn(command):
        case Ok(process):
            pass
        case Err() as err:
            return err

    _LOGGER.info(f"Started {command.label!r} as pid {process.pid}")
    on_status(Started())

    try:
        returncode = await _stream_until_exit(process, on_stdout_line, on_stderr_line)
    except asyncio.CancelledError:
        _LOGGER.info(f"Cancelled while {process.pid} was running, terminating it")
        await asyncio.shield(_terminate(process, Signals.SIGTERM))
        raise
    except Exception as wait_exception:
        cause = _root_cause(wait_exception)
        _LOGGER.error(f"Failed waiting for pid {process.pid}", exc_info=cause)
        await _terminate(process, Signals.SIGKILL)
        return Err(WaitFailed(command.program, cause))  # type: ignore[arg-type]

    status = status_from_returncode(returncode)
    _LOGGER.info(f"pid {process.pid} exited: {status}")
    on_status(status)
    return Ok(status)
