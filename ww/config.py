import logging
import os
import pathlib
import shlex
import sys
from argparse import REMAINDER, ArgumentParser, Namespace
from collections.abc import Mapping
from configparser import ConfigParser
from configparser import Error as ConfigParserError
from dataclasses import dataclass
from typing import NoReturn, TypeVar

from result import Err, Ok, Result

from .env import args_from_environment
from .errors import ConstructionError, InvalidConfig
from .executor import shell_wrap
from .fs_trigger import make_fs_trigger
from .highlighter import highlighter_for_terms
from .interval_trigger import make_interval_trigger
from .model import Command, ExecutionConfig
from .trigger import Trigger

_LOGGER = logging.getLogger(__name__)

DEFAULT_INTERVAL = 2.0
DEFAULT_EXCLUDES = [".git"]

_T = TypeVar("_T")


@dataclass
class WwConfig:
    log_level: int
    log_file: str
    fullscreen: bool
    execution: ExecutionConfig


@dataclass
class _ConfigFilePath:
    dir: pathlib.Path | None

    def maybe_relative(self, path_str: str | None) -> pathlib.Path | None:
        if not path_str:
            return None

        input_path = pathlib.Path(path_str).expanduser()

        if path_str.startswith("./") and self.dir:
            return self.dir.joinpath(input_path)

        return input_path


class _ArgNamespace(Namespace):
    config_file: pathlib.Path | None
    log_file: pathlib.Path | None
    log_level: str | None
    interval: float | None
    watch: bool | None
    shell: bool | None
    color: list[str] | None
    exclude: list[str] | None
    fullscreen: bool | None
    unbuffered: bool | None
    keep_output: bool | None
    command: str
    args: list[str]


class _ArgumentParser(ArgumentParser):
    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _parse_args(args: list[str]) -> _ArgNamespace:
    arg_parser = _ArgumentParser(
        prog="ww",
        description="Run a command repeatedly, re-running it on an interval or on file changes",
        epilog="Default arguments can be set in the WW_DEFAULT_ARGS environment variable",
    )

    # Booleans default to None so that an unset flag falls through to the config file
    arg_parser.add_argument(
        "-n",
        "--interval",
        type=float,
        help=f"Run command every X seconds (default {DEFAULT_INTERVAL:g}, 0 to run once)",
    )
    arg_parser.add_argument(
        "-w", "--watch", action="store_true", default=None, help="Watch current directory for changes"
    )
    arg_parser.add_argument(
        "-s", "--shell", action="store_true", default=None, help="Run command inside $SHELL"
    )
    arg_parser.add_argument(
        "-c",
        "--color",
        action="append",
        help="Highlight the given string in output (repeatable, case-insensitive)",
    )
    arg_parser.add_argument(
        "-x",
        "--exclude",
        action="append",
        help="Exclude files/directories with the given name or glob when watching (repeatable, default .git)",
    )
    arg_parser.add_argument(
        "-f", "--fullscreen", action="store_true", default=None, help="Use the whole terminal"
    )
    arg_parser.add_argument(
        "-u",
        "--unbuffered",
        action="store_true",
        default=None,
        help="Show output as it is produced instead of when the command finishes",
    )
    arg_parser.add_argument(
        "-k",
        "--keep-output",
        action="store_true",
        default=None,
        help="Do not clear previous output when the command is re-run",
    )
    arg_parser.add_argument(
        "--config", dest="config_file", type=pathlib.Path, help="Configuration file"
    )
    arg_parser.add_argument("--log-level", help="Log level, defaults to WARNING")
    arg_parser.add_argument("--log-file", type=pathlib.Path, help="Log file")

    arg_parser.add_argument("command", help="Command to run")
    arg_parser.add_argument("args", nargs=REMAINDER, help="Arguments to the command")

    return arg_parser.parse_args(args, _ArgNamespace())


@dataclass
class _ConfigFile:
    # [core]
    log_level: str | None = None
    log_file: pathlib.Path | None = None

    # [ww]
    interval: float | None = None
    exclude: list[str] | None = None
    watch: bool | None = None
    shell: bool | None = None
    fullscreen: bool | None = None
    unbuffered: bool | None = None
    keep_output: bool | None = None


def default_config_path(environ: Mapping[str, str]) -> pathlib.Path:
    config_home = environ.get("XDG_CONFIG_HOME") or f"{environ.get('HOME', '~')}/.config"
    return pathlib.Path(config_home).expanduser().joinpath("ww", "config.ini")


def _parse_file(path: pathlib.Path | None) -> Result[_ConfigFile, InvalidConfig]:
    if not path:
        return Ok(_ConfigFile())

    config_parser = ConfigParser()
    try:
        if not config_parser.read(path):
            return Err(InvalidConfig(f"could not read config file {path}"))

        config_dir = _ConfigFilePath(path.parent)

        exclude: list[str] | None
        match config_parser.get("ww", "exclude", fallback=None):
            case str() as exclude_str:
                exclude = shlex.split(exclude_str)
            case _:
                exclude = None

        return Ok(
            _ConfigFile(
                log_level=config_parser.get("core", "log_level", fallback=None),
                log_file=config_dir.maybe_relative(
                    config_parser.get("core", "log_file", fallback=None)
                ),
                interval=config_parser.getfloat("ww", "interval", fallback=None),
                exclude=exclude,
                watch=config_parser.getboolean("ww", "watch", fallback=None),
                shell=config_parser.getboolean("ww", "shell", fallback=None),
                fullscreen=config_parser.getboolean("ww", "fullscreen", fallback=None),
                unbuffered=config_parser.getboolean("ww", "unbuffered", fallback=None),
                keep_output=config_parser.getboolean("ww", "keep_output", fallback=None),
            )
        )
    except (ConfigParserError, ValueError) as parse_exception:
        return Err(InvalidConfig(f"invalid config file {path}: {parse_exception}"))


def _make_trigger(
    watch: bool, interval: float, excludes: list[str], cwd: pathlib.Path
) -> Result[Trigger | None, ConstructionError]:
    if watch:
        return make_fs_trigger(cwd, excludes)
    if interval == 0:
        return Ok(None)
    return make_interval_trigger(interval)


def parse_config(
    argv: list[str],
    environ: Mapping[str, str] = os.environ,
    cwd: pathlib.Path | None = None,
) -> Result[WwConfig, ConstructionError]:
    args = _parse_args(args_from_environment(environ) + argv[1:])

    config_path = args.config_file
    if config_path is None and default_config_path(environ).is_file():
        config_path = default_config_path(environ)

    match _parse_file(config_path):
        case Ok(file):
            pass
        case Err() as err:
            return err

    level_name = (args.log_level or file.log_level or "WARNING").upper()
    if level_name not in logging.getLevelNamesMapping():
        return Err(InvalidConfig(f"unknown log level {level_name}"))

    command = Command(args.command, tuple(args.args))
    if _first(args.shell, file.shell, False):
        command = shell_wrap(command, environ.get("SHELL") or "/bin/sh")

    match _make_trigger(
        watch=_first(args.watch, file.watch, False),
        interval=_first(args.interval, file.interval, DEFAULT_INTERVAL),
        excludes=_first(args.exclude, file.exclude, list(DEFAULT_EXCLUDES)),
        cwd=cwd or pathlib.Path(os.getcwd()),
    ):
        case Ok(trigger):
            pass
        case Err() as err:
            return err

    return Ok(
        WwConfig(
            log_level=logging.getLevelNamesMapping()[level_name],
            log_file=str(args.log_file or file.log_file or os.devnull),
            fullscreen=_first(args.fullscreen, file.fullscreen, False),
            execution=ExecutionConfig(
                command=command,
                highlighter=highlighter_for_terms(args.color or []),
                trigger=trigger,
                buffered_output=not _first(args.unbuffered, file.unbuffered, False),
                clear_on_restart=not _first(args.keep_output, file.keep_output, False),
            ),
        )
    )


def _first(*values: _T | None) -> _T:
    for value in values:
        if value is not None:
            return value
    raise ValueError("no value given")
