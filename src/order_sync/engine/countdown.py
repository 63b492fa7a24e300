"""Remaining-time countdown derived from an order's estimated ready time."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Literal

from ..models import Order
from .status import COUNTDOWN_STATUS

CountdownKind = Literal["imminent", "seconds", "minutes", "hours"]

IMMINENT_TEXT = "Bientôt prêt"


@dataclass(frozen=True, slots=True)
class CountdownValue:
    """Remaining duration at the granularity chosen by the formatting ladder."""

    kind: CountdownKind
    text: str
    hours: int = 0
    minutes: int = 0
    seconds: int = 0

    @property
    def imminent(self) -> bool:
        return self.kind == "imminent"


IMMINENT = CountdownValue(kind="imminent", text=IMMINENT_TEXT)


@dataclass(frozen=True, slots=True)
class CountdownTick:
    """Countdown values for every order that currently shows one."""

    at: datetime
    values: dict[str, CountdownValue] = field(default_factory=dict)


def _as_utc(value: datetime) -> datetime:
    return value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)


def format_countdown(estimated_ready_time: datetime, now: datetime) -> CountdownValue:
    """Describe the time left until estimated_ready_time.

    Exactly one branch applies: imminent once the target is reached, then
    seconds below a minute, minutes and seconds below an hour, hours and
    minutes beyond.
    """
    remaining = _as_utc(estimated_ready_time) - _as_utc(now)
    if remaining.total_seconds() <= 0:
        return IMMINENT

    total_seconds = int(remaining.total_seconds())
    total_minutes, secs = divmod(total_seconds, 60)
    if total_minutes < 1:
        return CountdownValue(kind="seconds", text=f"{total_seconds} sec", seconds=total_seconds)
    if total_minutes < 60:
        return CountdownValue(
            kind="minutes",
            text=f"{total_minutes} min {secs} sec",
            minutes=total_minutes,
            seconds=secs,
        )
    hours, mins = divmod(total_minutes, 60)
    text = f"{hours}h {mins}min" if mins > 0 else f"{hours}h"
    return CountdownValue(kind="hours", text=text, hours=hours, minutes=mins)


def countdown_for(order: Order, now: datetime) -> CountdownValue | None:
    """Return the countdown for order, or None when it must not show one.

    A populated estimated ready time on a non-preparing order is stale data
    and is ignored.
    """
    if order.status != COUNTDOWN_STATUS or order.estimated_ready_time is None:
        return None
    return format_countdown(order.estimated_ready_time, now)


def countdowns_for(orders: Iterable[Order], now: datetime) -> dict[str, CountdownValue]:
    """Countdown values keyed by order id for every order that has one."""
    values: dict[str, CountdownValue] = {}
    for order in orders:
        value = countdown_for(order, now)
        if value is not None:
            values[order.id] = value
    return values


class CountdownTicker:
    """Re-evaluate countdowns on a fixed tick while a preparing order exists."""

    def __init__(
        self,
        *,
        orders_provider: Callable[[], Iterable[Order]],
        on_tick: Callable[[CountdownTick], None],
        tick_seconds: float = 1.0,
        now_provider: Callable[[], datetime] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._orders_provider = orders_provider
        self._on_tick = on_tick
        self.tick_seconds = tick_seconds
        self._now_provider = now_provider or (lambda: datetime.now(UTC))
        self.logger = logger or logging.getLogger(__name__)
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def evaluate(self) -> CountdownTick:
        """Compute the current countdown values without scheduling anything."""
        now = _as_utc(self._now_provider())
        return CountdownTick(at=now, values=countdowns_for(self._orders_provider(), now))

    def has_work(self) -> bool:
        return any(
            order.status == COUNTDOWN_STATUS and order.estimated_ready_time is not None
            for order in self._orders_provider()
        )

    def sync(self) -> None:
        """Resume ticking when needed, suspend it when nothing is preparing."""
        if self.has_work():
            if not self.running:
                self._task = asyncio.get_running_loop().create_task(self._run())
                self.logger.debug("Countdown ticker resumed.")
        else:
            self.stop()

    def stop(self) -> None:
        """Cancel the tick task; safe to call repeatedly."""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.tick_seconds)
            tick = self.evaluate()
            if not tick.values:
                self.logger.debug("Countdown ticker suspended: no preparing orders.")
                self._task = None
                return
            self._on_tick(tick)
