"""Tests for CancelableTimer."""
import asyncio

import pytest

from thoughtflow.services.debounce import CancelableTimer

DELAY = 0.05


class Recorder:
    def __init__(self, hold: asyncio.Event = None):
        self.fired = 0
        self.hold = hold

    async def __call__(self):
        self.fired += 1
        if self.hold is not None:
            await self.hold.wait()


@pytest.mark.anyio
async def test_fires_once_after_quiet_period():
    recorder = Recorder()
    timer = CancelableTimer(DELAY, recorder)

    for _ in range(5):
        timer.schedule()
        await asyncio.sleep(DELAY / 5)
    assert recorder.fired == 0

    await timer.wait()
    assert recorder.fired == 1
    assert not timer.pending


@pytest.mark.anyio
async def test_cancel_prevents_firing():
    recorder = Recorder()
    timer = CancelableTimer(DELAY, recorder)
    timer.schedule()

    assert timer.cancel() is True
    assert timer.cancel() is False
    await asyncio.sleep(DELAY * 2)

    assert recorder.fired == 0


@pytest.mark.anyio
async def test_dispose_cancels_and_refuses_new_schedules():
    recorder = Recorder()
    timer = CancelableTimer(DELAY, recorder)
    timer.schedule()
    timer.dispose()
    await asyncio.sleep(DELAY * 2)

    assert recorder.fired == 0
    assert timer.disposed
    with pytest.raises(RuntimeError):
        timer.schedule()


@pytest.mark.anyio
async def test_running_callback_survives_reschedule():
    hold = asyncio.Event()
    recorder = Recorder(hold)
    timer = CancelableTimer(DELAY, recorder)
    timer.schedule()
    while not timer.running:
        await asyncio.sleep(DELAY / 5)

    timer.schedule()
    timer.cancel()
    assert timer.running

    hold.set()
    await timer.wait()
    assert recorder.fired == 1


@pytest.mark.anyio
async def test_callback_failure_does_not_break_timer():
    calls = []

    async def flaky():
        calls.append(len(calls))
        if len(calls) == 1:
            raise RuntimeError("boom")

    timer = CancelableTimer(0, flaky)
    timer.schedule()
    await timer.wait()
    timer.schedule()
    await timer.wait()

    assert calls == [0, 1]


def test_negative_delay_rejected():
    with pytest.raises(ValueError):
        CancelableTimer(-1, Recorder())
