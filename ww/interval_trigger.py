import asyncio
import logging
import math

from result import Err, Ok, Result
from typing_extensions import override

from .errors import InvalidInterval
from .trigger import InterruptSignal, Trigger, TriggerOutcome, TriggerWait

_LOGGER = logging.getLogger(__name__)


class IntervalTrigger(Trigger):
    """
    Fires once the interval has elapsed, counting down one progress
    message per whole second remaining: 3s reports "2s left" and "1s left".
    """

    def __init__(self, seconds: float) -> None:
        self.seconds = seconds

    @override
    async def _wait(
        self, wait: TriggerWait, interrupted: "asyncio.Task[InterruptSignal]"
    ) -> TriggerOutcome:
        remaining = self.seconds
        while remaining > 0:
            # Sleep down to the next whole second, so the countdown ticks on integers
            step = remaining - (math.ceil(remaining) - 1)
            done, _ = await asyncio.wait([interrupted], timeout=step)
            if done:
                return TriggerOutcome.INTERRUPTED

            remaining = math.ceil(remaining) - 1
            if remaining > 0:
                wait.report(f"{remaining}s left")

        _LOGGER.debug(f"Interval of {self.seconds}s elapsed")
        return TriggerOutcome.FIRED


def make_interval_trigger(seconds: float) -> Result[IntervalTrigger, InvalidInterval]:
    if not math.isfinite(seconds) or seconds < 0:
        return Err(InvalidInterval(seconds))
    return Ok(IntervalTrigger(seconds))
