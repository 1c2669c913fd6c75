import asyncio

import pytest

from voiceinterview.interview.clock import SessionClock


def test_budget_must_be_positive():
    with pytest.raises(ValueError):
        SessionClock(0)


@pytest.mark.asyncio
async def test_clock_expires_once():
    fired = []
    clock = SessionClock(0.05, on_expire=lambda: fired.append(True))

    clock.start()
    await asyncio.sleep(0.15)

    assert fired == [True]
    assert clock.expired is True
    assert clock.remaining == 0.0


@pytest.mark.asyncio
async def test_stopped_clock_never_expires():
    fired = []
    clock = SessionClock(0.05, on_expire=lambda: fired.append(True))

    clock.start()
    assert clock.stop() is True
    assert clock.stop() is False
    await asyncio.sleep(0.1)

    assert fired == []
    assert clock.running is False
    assert clock.remaining > 0


@pytest.mark.asyncio
async def test_remaining_only_decreases():
    clock = SessionClock(10)
    assert clock.remaining == 10

    clock.start()
    first = clock.remaining
    await asyncio.sleep(0.02)
    second = clock.remaining
    clock.stop()
    stopped = clock.remaining
    await asyncio.sleep(0.02)

    assert first > second >= stopped
    assert clock.remaining == stopped


@pytest.mark.asyncio
async def test_ticks_report_remaining_time():
    ticks = []
    clock = SessionClock(1.0, on_tick=ticks.append, tick_interval=0.02)

    clock.start()
    await asyncio.sleep(0.11)
    clock.stop()

    assert len(ticks) >= 3
    assert ticks == sorted(ticks, reverse=True)


@pytest.mark.asyncio
async def test_start_twice_rejected():
    clock = SessionClock(1.0)
    clock.start()

    with pytest.raises(RuntimeError):
        clock.start()
    clock.stop()


@pytest.mark.asyncio
async def test_expiry_callback_errors_are_contained():
    def boom():
        raise RuntimeError("callback failed")

    clock = SessionClock(0.01, on_expire=boom)
    clock.start()
    await asyncio.sleep(0.05)

    assert clock.expired is True
