"""Tests for the countdown ticker and remaining-time helper."""
import asyncio
import pytest
from datetime import datetime, timedelta, timezone

from twofactor.core.clock import FixedClock, remaining_seconds
from twofactor.services.ticker import CountdownTicker, snapshot


@pytest.mark.parametrize("unix,expected", [
    (0, 30),
    (1, 29),
    (29, 1),
    (30, 30),
    (59, 1),
    (1111111109, 1),
])
def test_remaining_seconds(unix, expected):
    assert remaining_seconds(unix, 30) == expected


def test_remaining_seconds_custom_period():
    assert remaining_seconds(61, 60) == 59


def test_remaining_seconds_invalid_period():
    with pytest.raises(ValueError):
        remaining_seconds(10, 0)


def test_snapshot_rollover():
    start = datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)
    first = snapshot(start)
    later = snapshot(start + timedelta(seconds=1))

    assert first.rolled_over is True
    assert first.remaining == 30
    assert later.rolled_over is False
    assert later.remaining == 29
    assert later.time_step == first.time_step


@pytest.mark.asyncio
async def test_ticker_reports_countdown():
    clock = FixedClock(datetime(2024, 1, 15, 10, 30, 15, tzinfo=timezone.utc))
    ticks = []

    def on_tick(tick):
        ticks.append(tick.remaining)
        clock.advance(1)

    ticker = CountdownTicker(on_tick, clock=clock, interval=0.001)
    ticker.start()
    while len(ticks) < 3:
        await asyncio.sleep(0.001)
    await ticker.stop()

    assert ticks[:3] == [15, 14, 13]
    assert ticker.is_running is False


@pytest.mark.asyncio
async def test_ticker_survives_callback_errors():
    calls = []

    async def on_tick(tick):
        calls.append(tick)
        raise RuntimeError("display gone")

    ticker = CountdownTicker(on_tick, clock=FixedClock(), interval=0.001)
    ticker.start()
    while len(calls) < 2:
        await asyncio.sleep(0.001)
    assert ticker.is_running is True
    await ticker.stop()


@pytest.mark.asyncio
async def test_start_is_idempotent():
    ticker = CountdownTicker(lambda tick: None, clock=FixedClock(), interval=0.01)
    first = ticker.start()
    assert ticker.start() is first
    await ticker.stop()
    await ticker.stop()


def test_invalid_period():
    with pytest.raises(ValueError):
        CountdownTicker(lambda tick: None, period=0)
