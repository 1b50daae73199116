import asyncio

import pytest
from typing_extensions import override

from ww.trigger import InterruptSignal, InterruptSource, Trigger, TriggerOutcome, TriggerWait


class _FiresAfterInterrupt(Trigger):
    """Fires only once an interrupt has already been delivered."""

    @override
    async def _wait(
        self, wait: TriggerWait, interrupted: "asyncio.Task[InterruptSignal]"
    ) -> TriggerOutcome:
        await asyncio.wait([interrupted])
        wait.report("fired anyway")
        return TriggerOutcome.FIRED


class _Broken(Trigger):
    @override
    async def _wait(
        self, wait: TriggerWait, interrupted: "asyncio.Task[InterruptSignal]"
    ) -> TriggerOutcome:
        wait.report("about to fail")
        raise RuntimeError("watcher died")


@pytest.mark.asyncio
async def test_interrupt_wins_over_firing() -> None:
    interrupts = InterruptSource()
    wait = _FiresAfterInterrupt().wait_for_trigger(interrupts)

    interrupts.interrupt("test")

    assert await asyncio.wait_for(wait.outcome(), timeout=1) == TriggerOutcome.INTERRUPTED


@pytest.mark.asyncio
async def test_progress_ends_before_the_outcome() -> None:
    interrupts = InterruptSource()
    wait = _FiresAfterInterrupt().wait_for_trigger(interrupts)
    interrupts.interrupt("test")

    messages = [message async for message in wait.progress()]

    assert messages == ["fired anyway"]
    assert await wait.outcome() == TriggerOutcome.INTERRUPTED


@pytest.mark.asyncio
async def test_interrupts_are_consumed_once() -> None:
    interrupts = InterruptSource()
    trigger = _FiresAfterInterrupt()
    interrupts.interrupt("only one")

    first = await trigger.wait_for_trigger(interrupts).outcome()
    second = trigger.wait_for_trigger(interrupts)
    outcome = asyncio.ensure_future(second.outcome())
    done, _ = await asyncio.wait([outcome], timeout=0.1)

    assert first == TriggerOutcome.INTERRUPTED
    assert not done

    second.cancel()
    with pytest.raises(asyncio.CancelledError):
        await outcome


@pytest.mark.asyncio
async def test_failure_is_raised_from_outcome() -> None:
    wait = _Broken().wait_for_trigger(InterruptSource())

    assert [message async for message in wait.progress()] == ["about to fail"]
    with pytest.raises(RuntimeError, match="watcher died"):
        await wait.outcome()
