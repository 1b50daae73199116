#!/usr/bin/env python3

import asyncio
import logging
import os
import signal
import sys
from dataclasses import dataclass
from functools import partial

from result import Err, Ok

from . import config as ww_config
from .config import WwConfig
from .display import Display
from .orchestrator import Orchestrator
from .rich_display import FullscreenDisplay, InlineDisplay
from .trigger import InterruptSource

_LOGGER = logging.getLogger(__name__)

_TERMINATING_SIGNALS = [
    signal.SIGTERM,
    signal.SIGINT,
    signal.SIGQUIT,
    signal.SIGHUP,
]


@dataclass
class _SignalState:
    interrupts: InterruptSource
    orchestrator_task: "asyncio.Task"
    received: int = 0


def _handle_terminating_signals(sig: signal.Signals, state: _SignalState) -> None:
    state.received += 1
    if state.received == 1:
        # Only ends a trigger wait; a running command is left to finish
        _LOGGER.info(f"Received {sig.name}, stopping after the current run")
        state.interrupts.interrupt(f"received {sig.name}")
    else:
        _LOGGER.info(f"Received {sig.name} again, stopping now")
        state.orchestrator_task.cancel()


async def run_ww(config: WwConfig, display: Display) -> int:
    match display.init(config.execution):
        case Ok():
            pass
        case Err(display_failed):
            print(f"ww: {display_failed.describe()}", file=sys.stderr)
            return 1

    interrupts = InterruptSource()
    orchestrator = Orchestrator(config.execution, display, interrupts)
    orchestrator_task = asyncio.create_task(orchestrator.run())

    loop = asyncio.get_running_loop()
    signal_state = _SignalState(interrupts, orchestrator_task)
    for term_signal in _TERMINATING_SIGNALS:
        loop.add_signal_handler(
            term_signal,
            partial(_handle_terminating_signals, sig=term_signal, state=signal_state),
        )

    try:
        result = await orchestrator_task
    except asyncio.CancelledError:
        _LOGGER.info(f"Stopped in state {orchestrator.state}")
        return 0
    except Exception:
        _LOGGER.exception("Orchestrator failed")
        print("ww: internal error, see the log file for details", file=sys.stderr)
        return 1
    finally:
        for term_signal in _TERMINATING_SIGNALS:
            loop.remove_signal_handler(term_signal)
        match display.stop():
            case Err(display_failed):
                _LOGGER.warning(display_failed.describe())

    match result:
        case Ok(state):
            _LOGGER.info(f"Finished in state {state}")
            return 0
        case Err(wait_failed):
            print(f"ww: {wait_failed.describe()}", file=sys.stderr)
            return 1


async def main(config: WwConfig, display: Display) -> int:
    logging.basicConfig(level=config.log_level, filename=config.log_file)

    _LOGGER.info(f"=== Starting ww {os.getpid()}: {config.execution.command.label} ===")

    return await run_ww(config, display)


def cli() -> int:
    match ww_config.parse_config(sys.argv):
        case Ok(config):
            pass
        case Err(construction_error):
            print(f"ww: {construction_error.describe()}", file=sys.stderr)
            return 1

    display: Display = FullscreenDisplay() if config.fullscreen else InlineDisplay()
    return asyncio.run(main(config, display))


if __name__ == "__main__":
    sys.exit(cli())
