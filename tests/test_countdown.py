"""Countdown formatting ladder and ticker suspension tests."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

from order_sync.engine.countdown import (
    IMMINENT_TEXT,
    CountdownTick,
    CountdownTicker,
    countdown_for,
    countdowns_for,
    format_countdown,
)
from order_sync.models import Order

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


def _order(order_id: str, status: str, *, ready_in: timedelta | None = None) -> Order:
    payload: dict[str, Any] = {
        "id": order_id,
        "orderNumber": f"CMD-{order_id}",
        "status": status,
        "total": "18.50",
    }
    if ready_in is not None:
        payload["estimatedReadyTime"] = (NOW + ready_in).isoformat()
    return Order.model_validate(payload)


def test_format_countdown_ladder() -> None:
    assert format_countdown(NOW + timedelta(seconds=45), NOW).text == "45 sec"
    assert format_countdown(NOW + timedelta(minutes=12, seconds=5), NOW).text == "12 min 5 sec"
    assert format_countdown(NOW + timedelta(minutes=90), NOW).text == "1h 30min"
    assert format_countdown(NOW + timedelta(hours=2), NOW).text == "2h"


def test_format_countdown_boundaries() -> None:
    at_minute = format_countdown(NOW + timedelta(seconds=60), NOW)
    assert at_minute.kind == "minutes"
    assert at_minute.text == "1 min 0 sec"
    at_hour = format_countdown(NOW + timedelta(minutes=60), NOW)
    assert at_hour.kind == "hours"
    assert at_hour.text == "1h"


def test_countdown_turns_imminent_once_target_passes() -> None:
    ert = NOW + timedelta(seconds=1)
    assert not format_countdown(ert, NOW).imminent
    after = format_countdown(ert, NOW + timedelta(seconds=1))
    assert after.imminent
    assert after.text == IMMINENT_TEXT
    assert format_countdown(ert, NOW + timedelta(minutes=10)).imminent


def test_countdown_accepts_naive_timestamps_as_utc() -> None:
    value = format_countdown(datetime(2026, 3, 2, 12, 5), NOW)
    assert value.text == "5 min 0 sec"


def test_stale_ready_time_on_non_preparing_order_is_ignored() -> None:
    ready = _order("1", "ready", ready_in=timedelta(minutes=5))
    preparing = _order("2", "preparing", ready_in=timedelta(minutes=5))
    no_ert = _order("3", "preparing")
    assert countdown_for(ready, NOW) is None
    assert countdown_for(no_ert, NOW) is None
    assert countdown_for(preparing, NOW) is not None
    assert set(countdowns_for([ready, preparing, no_ert], NOW)) == {"2"}


def test_ticker_only_runs_while_a_preparing_order_exists() -> None:
    orders = [_order("1", "confirmed")]
    ticks: list[CountdownTick] = []
    ticker = CountdownTicker(
        orders_provider=lambda: orders,
        on_tick=ticks.append,
        tick_seconds=0.01,
        now_provider=lambda: NOW,
    )

    async def scenario() -> None:
        ticker.sync()
        assert not ticker.running

        orders[0] = _order("1", "preparing", ready_in=timedelta(minutes=3))
        ticker.sync()
        assert ticker.running
        await asyncio.sleep(0.05)
        assert ticks
        assert ticks[-1].values["1"].text == "3 min 0 sec"

        orders[0] = _order("1", "ready", ready_in=timedelta(minutes=3))
        await asyncio.sleep(0.05)
        assert not ticker.running
        count = len(ticks)
        await asyncio.sleep(0.03)
        assert len(ticks) == count

    asyncio.run(scenario())


def test_ticker_stop_is_idempotent() -> None:
    orders = [_order("1", "preparing", ready_in=timedelta(minutes=3))]
    ticker = CountdownTicker(orders_provider=lambda: orders, on_tick=lambda tick: None)

    async def scenario() -> None:
        ticker.sync()
        assert ticker.running
        ticker.stop()
        ticker.stop()
        assert not ticker.running

    asyncio.run(scenario())
