import asyncio

import pytest

from position_risk.metrics import MetricRegistry
from position_risk.risk_engine.scheduler import PeriodicTicker


@pytest.mark.asyncio
async def test_ticker_fires_repeatedly():
    calls = 0

    async def callback():
        nonlocal calls
        calls += 1

    ticker = PeriodicTicker(callback, 0.01)
    assert ticker.start() is True
    await asyncio.sleep(0.06)
    ticker.stop()
    await ticker.wait_idle()

    assert calls >= 2
    assert ticker.skipped == 0


@pytest.mark.asyncio
async def test_firing_during_in_flight_call_is_skipped():
    release = asyncio.Event()
    metrics = MetricRegistry()
    calls = 0

    async def slow_callback():
        nonlocal calls
        calls += 1
        await release.wait()

    ticker = PeriodicTicker(slow_callback, lambda: 0.01, metrics=metrics)
    ticker.start()
    await asyncio.sleep(0.06)

    assert calls == 1
    assert ticker.in_flight is True
    assert ticker.skipped >= 1
    assert metrics.value("risk_ticks_skipped_total") == ticker.skipped

    assert ticker.stop() is True
    assert ticker.stop() is False
    assert ticker.running is False
    # Stopping does not cancel the call already running.
    assert ticker.in_flight is True
    release.set()
    await ticker.wait_idle()
    assert ticker.in_flight is False


@pytest.mark.asyncio
async def test_callback_errors_do_not_stop_the_loop():
    calls = 0

    async def failing():
        nonlocal calls
        calls += 1
        raise RuntimeError("tick failed")

    ticker = PeriodicTicker(failing, 0.01)
    ticker.start()
    assert ticker.start() is False
    await asyncio.sleep(0.06)
    ticker.stop()
    await ticker.wait_idle()

    assert calls >= 2
