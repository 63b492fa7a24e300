"""One sync engine instance per active order view."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeAlias

from ..exceptions import RoleNotPermittedError
from ..models import (
    Banner,
    MutationOutcome,
    NewOrderSignal,
    NotificationRecord,
    Order,
    Role,
    SyncCycleResult,
    TransitionEvent,
)
from .countdown import CountdownTick, CountdownTicker, CountdownValue
from .mutator import OptimisticMutator
from .notifications import NotificationEmitter
from .polling import PollingSynchronizer
from .source import OrderDataSource

if TYPE_CHECKING:
    from ..config import Settings

EngineEvent: TypeAlias = (
    TransitionEvent
    | NotificationRecord
    | NewOrderSignal
    | CountdownTick
    | MutationOutcome
    | SyncCycleResult
)
EngineListener: TypeAlias = Callable[[EngineEvent], None]


class OrderSyncEngine:
    """Polling, optimistic mutation, notifications and countdowns for one view.

    Subscribers receive every TransitionEvent, every new or updated
    NotificationRecord, each NewOrderSignal (administrator role), countdown
    ticks, mutation outcomes and failed sync cycles.
    """

    def __init__(
        self,
        source: OrderDataSource,
        *,
        role: Role,
        tenant_id: str | None = None,
        status_filter: str | None = None,
        poll_interval_seconds: float = 12.0,
        countdown_tick_seconds: float = 1.0,
        pending_ttl_seconds: float = 60.0,
        logger: logging.Logger | None = None,
        now_provider: Callable[[], datetime] | None = None,
    ) -> None:
        self.role = role
        self.poll_interval_seconds = poll_interval_seconds
        self.logger = logger or logging.getLogger(__name__)
        self._now_provider = now_provider or (lambda: datetime.now(UTC))
        self._listeners: list[EngineListener] = []

        self.synchronizer = PollingSynchronizer(
            source,
            role=role,
            tenant_id=tenant_id,
            status_filter=status_filter,
            pending_ttl_seconds=pending_ttl_seconds,
            logger=self.logger,
            now_provider=self._now_provider,
            on_transitions=self._handle_transitions,
            on_snapshot=self._handle_snapshot,
            on_failure=self._publish,
        )
        self.emitter = NotificationEmitter(
            role=role,
            logger=self.logger,
            now_provider=self._now_provider,
            on_notification=self._publish,
            on_new_order=self._publish,
        )
        self.mutator = OptimisticMutator(
            self.synchronizer,
            logger=self.logger,
            now_provider=self._now_provider,
            on_outcome=self._handle_outcome,
        )
        self.ticker = CountdownTicker(
            orders_provider=lambda: self.synchronizer.snapshot.values(),
            on_tick=self._publish,
            tick_seconds=countdown_tick_seconds,
            now_provider=self._now_provider,
            logger=self.logger,
        )

    @classmethod
    def from_settings(
        cls,
        source: OrderDataSource,
        settings: Settings,
        *,
        logger: logging.Logger | None = None,
        now_provider: Callable[[], datetime] | None = None,
    ) -> OrderSyncEngine:
        """Build an engine for the role and tenant configured in settings."""
        return cls(
            source,
            role=settings.sync_role,
            tenant_id=settings.sync_restaurant_id,
            status_filter=(
                settings.sync_default_admin_filter if settings.sync_role == "admin" else None
            ),
            poll_interval_seconds=settings.poll_interval_seconds,
            countdown_tick_seconds=settings.sync_countdown_tick_seconds,
            pending_ttl_seconds=settings.sync_pending_mutation_ttl_seconds,
            logger=logger,
            now_provider=now_provider,
        )

    # Lifecycle

    @property
    def running(self) -> bool:
        return self.synchronizer.running

    def start(self, interval_seconds: float | None = None) -> None:
        """Start polling; calling it again while running has no effect."""
        self.synchronizer.start(interval_seconds or self.poll_interval_seconds)

    def stop(self) -> None:
        """Cancel polling and countdown ticking. In-flight mutations are discarded."""
        self.synchronizer.stop()
        self.ticker.stop()

    async def refresh_now(self) -> SyncCycleResult:
        """Fetch immediately, sharing the in-flight guard with the timer."""
        return await self.synchronizer.refresh_now()

    def set_status_filter(self, label: str | None) -> None:
        self.synchronizer.set_status_filter(label)

    # Reads

    def get_snapshot(self) -> list[Order]:
        return list(self.synchronizer.snapshot.values())

    def get_order(self, order_id: str) -> Order | None:
        return self.synchronizer.get(order_id)

    @property
    def last_sync_failed(self) -> bool:
        return self.synchronizer.last_sync_failed

    @property
    def banner(self) -> Banner | None:
        return self.emitter.banner

    @property
    def notifications(self) -> list[NotificationRecord]:
        return self.emitter.notifications

    @property
    def unread_count(self) -> int:
        return self.emitter.unread_count

    def grouped_notifications(self) -> list[NotificationRecord]:
        """Notifications with recent look-alikes folded into one entry."""
        return self.emitter.grouped_notifications()

    def countdowns(self) -> dict[str, CountdownValue]:
        """Current countdown value per preparing order."""
        return self.ticker.evaluate().values

    # Actions

    def subscribe(self, listener: EngineListener) -> Callable[[], None]:
        """Register listener and return a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def request_transition(
        self,
        order_id: str,
        new_status: str,
        estimated_minutes: Any = None,
    ) -> asyncio.Task[MutationOutcome]:
        """Apply new_status immediately and confirm it with the server."""
        if self.role != "admin":
            raise RoleNotPermittedError("Only the administrator view can change order status.")
        task = self.mutator.request_transition(order_id, new_status, estimated_minutes)
        self.ticker.sync()
        return task

    def mark_as_read(self, notification_id: str) -> bool:
        return self.emitter.mark_as_read(notification_id)

    def mark_all_as_read(self) -> int:
        return self.emitter.mark_all_as_read()

    def clear(self, notification_id: str) -> bool:
        return self.emitter.clear(notification_id)

    def clear_all(self) -> int:
        return self.emitter.clear_all()

    def dismiss_banner(self) -> None:
        self.emitter.dismiss_banner()

    # Wiring

    def _handle_snapshot(self, orders: list[Order]) -> None:
        self.emitter.handle_snapshot(orders)
        self.ticker.sync()

    def _handle_transitions(self, events: list[TransitionEvent]) -> None:
        for event in events:
            self.logger.info(
                "Order status changed: order=%s %s -> %s",
                event.order_number,
                event.from_status,
                event.to_status,
            )
            self._publish(event)
        self.emitter.handle_transitions(events, self.synchronizer.snapshot)

    def _handle_outcome(self, outcome: MutationOutcome) -> None:
        self._publish(outcome)
        self.ticker.sync()

    def _publish(self, event: EngineEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                self.logger.exception(
                    "Engine subscriber failed on %s.",
                    type(event).__name__,
                )
