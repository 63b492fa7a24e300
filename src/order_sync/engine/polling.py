"""Periodic fetch, optimistic overlay and snapshot diffing for one view."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from ..exceptions import OrderApiError, OrderRequestError
from ..models import Order, PendingMutation, Role, SyncCycleResult, TransitionEvent
from .source import OrderDataSource
from .status import is_known_status, is_legal_transition


def failure_category(exc: Exception) -> str:
    """Error category reported for a failed fetch or status change."""
    if isinstance(exc, OrderRequestError):
        return exc.category
    if isinstance(exc, TimeoutError):
        return "network"
    return "unknown"


class PollingSynchronizer:
    """Own the live snapshot and keep it aligned with the server by polling."""

    def __init__(
        self,
        source: OrderDataSource,
        *,
        role: Role,
        tenant_id: str | None = None,
        status_filter: str | None = None,
        pending_ttl_seconds: float = 60.0,
        logger: logging.Logger | None = None,
        now_provider: Callable[[], datetime] | None = None,
        on_transitions: Callable[[list[TransitionEvent]], None] | None = None,
        on_snapshot: Callable[[list[Order]], None] | None = None,
        on_failure: Callable[[SyncCycleResult], None] | None = None,
    ) -> None:
        self.source = source
        self.role = role
        self.tenant_id = tenant_id
        self.status_filter = status_filter
        self.pending_ttl = timedelta(seconds=pending_ttl_seconds)
        self.logger = logger or logging.getLogger(__name__)
        self._now_provider = now_provider or (lambda: datetime.now(UTC))
        self._on_transitions = on_transitions
        self._on_snapshot = on_snapshot
        self._on_failure = on_failure

        self._snapshot: dict[str, Order] = {}
        self._pending: dict[str, PendingMutation] = {}
        self._has_baseline = False
        self._in_flight = False
        self._task: asyncio.Task[None] | None = None
        self._reported_unknown: set[tuple[str, str]] = set()
        # Orders whose failed mutation is being corrected by the next fetch.
        self._resyncing: set[str] = set()
        # Committed statuses held until a fetch started after the commit lands:
        # order id -> (status, sequence of the last fetch started before commit).
        self._settling: dict[str, tuple[str, int]] = {}
        self._fetch_seq = 0

        # Bumped on every stop so late results from an older session are dropped.
        self.generation = 0
        self.last_sync_failed = False
        self.last_error: Exception | None = None
        self.last_synced_at: datetime | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def snapshot(self) -> dict[str, Order]:
        """Copy of the live snapshot keyed by order id."""
        return dict(self._snapshot)

    @property
    def pending(self) -> dict[str, PendingMutation]:
        return dict(self._pending)

    def get(self, order_id: str) -> Order | None:
        return self._snapshot.get(order_id)

    def start(self, interval_seconds: float) -> None:
        """Begin the repeating cycle; a second call while running does nothing."""
        if self.running:
            return
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        # The first cycle after a (re)start only establishes the diff baseline.
        self._has_baseline = False
        self._task = asyncio.get_running_loop().create_task(self._run(interval_seconds))
        self.logger.info(
            "Order polling started: role=%s tenant=%s interval=%.1fs",
            self.role,
            self.tenant_id,
            interval_seconds,
        )

    def stop(self) -> None:
        """Cancel the repeating cycle; safe to call more than once."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
            self.logger.info("Order polling stopped: role=%s", self.role)
        self.generation += 1

    def set_status_filter(self, label: str | None) -> None:
        """Change the server-side view filter and re-baseline the diff."""
        if label == self.status_filter:
            return
        self.status_filter = label
        # Orders entering or leaving the filtered view are not transitions.
        self._has_baseline = False

    async def refresh_now(self) -> SyncCycleResult:
        """Run one fetch-and-diff cycle unless another one is in flight."""
        if self._in_flight:
            self.logger.debug("Order fetch already in flight; skipping cycle.")
            return SyncCycleResult(status="skipped")

        generation = self.generation
        self._fetch_seq += 1
        sequence = self._fetch_seq
        self._in_flight = True
        try:
            fetched = await self.source.list_orders(
                self.role,
                self.tenant_id,
                self.status_filter,
            )
        except Exception as exc:
            # Timeouts and other source faults cost one cycle, never the loop.
            return self._record_failure(exc, generation)
        finally:
            self._in_flight = False

        if generation != self.generation:
            self.logger.debug("Discarding order fetch completed after stop.")
            return SyncCycleResult(status="discarded", fetched_count=len(fetched))
        return self._apply(fetched, sequence)

    def apply_optimistic(self, mutation: PendingMutation) -> Order:
        """Show mutation.requested_status immediately and remember it as pending."""
        current = self._snapshot[mutation.order_id]
        updated = current.model_copy(update={"status": mutation.requested_status})
        self._snapshot[mutation.order_id] = updated
        self._pending[mutation.order_id] = mutation
        return updated

    def resolve_pending(self, mutation: PendingMutation) -> bool:
        """Forget mutation if it is still the pending one for its order."""
        current = self._pending.get(mutation.order_id)
        if current is None or current is not mutation:
            return False
        del self._pending[mutation.order_id]
        return True

    def release_failed(self, mutation: PendingMutation) -> bool:
        """Forget a failed mutation; the next fetch restores its order silently."""
        if not self.resolve_pending(mutation):
            return False
        self._settling.pop(mutation.order_id, None)
        self._resyncing.add(mutation.order_id)
        return True

    def commit_pending(
        self,
        mutation: PendingMutation,
        server_order: Order | None = None,
    ) -> bool:
        """Settle a confirmed mutation.

        The committed status keeps overriding fetched data until a fetch that
        started after this call has been applied, so a poll already in flight
        cannot bring back the prior status.
        """
        if not self.resolve_pending(mutation):
            return False
        status = mutation.requested_status
        if server_order is not None and self.apply_server_order(server_order):
            status = server_order.status
        self._settling[mutation.order_id] = (status, self._fetch_seq)
        return True

    def apply_server_order(self, order: Order) -> bool:
        """Adopt an authoritative order returned by a confirmed mutation."""
        if order.id not in self._snapshot or order.id in self._pending:
            return False
        if not self._tenant_matches(order):
            return False
        self._snapshot[order.id] = order
        return True

    async def _run(self, interval_seconds: float) -> None:
        while True:
            result = await self.refresh_now()
            if result.status == "failed" and self._on_failure is not None:
                self._on_failure(result)
            await asyncio.sleep(interval_seconds)

    def _apply(self, fetched: list[Order], sequence: int) -> SyncCycleResult:
        now = self._now()
        self._expire_pending(now)

        next_snapshot: dict[str, Order] = {}
        dropped = 0
        overlaid = 0
        for order in fetched:
            if not self._tenant_matches(order):
                dropped += 1
                continue
            self._note_unknown_status(order)
            held = self._held_status(order.id, sequence)
            if held is not None and held != order.status:
                order = order.model_copy(update={"status": held})
                overlaid += 1
            next_snapshot[order.id] = order
        self._settling = {
            order_id: entry
            for order_id, entry in self._settling.items()
            if entry[1] > sequence
        }

        if dropped:
            self.logger.debug(
                "Dropped %d order(s) outside tenant %s.",
                dropped,
                self.tenant_id,
            )

        baseline = not self._has_baseline
        transitions = (
            []
            if baseline
            else self._diff(self._snapshot, next_snapshot, now, skip=self._resyncing)
        )
        self._resyncing.clear()
        self._snapshot = next_snapshot
        self._has_baseline = True
        self.last_sync_failed = False
        self.last_error = None
        self.last_synced_at = now

        if self._on_snapshot is not None:
            self._on_snapshot(list(next_snapshot.values()))
        if transitions and self._on_transitions is not None:
            self._on_transitions(transitions)

        return SyncCycleResult(
            status="synced",
            fetched_count=len(fetched),
            dropped_foreign_tenant=dropped,
            overlaid_count=overlaid,
            transitions=transitions,
            baseline=baseline,
        )

    def _record_failure(self, exc: Exception, generation: int) -> SyncCycleResult:
        category = failure_category(exc)
        error = str(exc) or type(exc).__name__
        if generation != self.generation:
            return SyncCycleResult(status="discarded", error=error, error_category=category)
        self.last_sync_failed = True
        self.last_error = exc
        self.logger.warning(
            "Order fetch failed (%s): %s",
            category,
            error,
            exc_info=None if isinstance(exc, OrderApiError) else exc,
            extra={"role": self.role, "tenant_id": self.tenant_id},
        )
        return SyncCycleResult(status="failed", error=error, error_category=category)

    def _held_status(self, order_id: str, sequence: int) -> str | None:
        mutation = self._pending.get(order_id)
        if mutation is not None:
            return mutation.requested_status
        settled = self._settling.get(order_id)
        if settled is not None and sequence <= settled[1]:
            return settled[0]
        return None

    @staticmethod
    def _diff(
        previous: dict[str, Order],
        current: dict[str, Order],
        now: datetime,
        skip: set[str] | frozenset[str] = frozenset(),
    ) -> list[TransitionEvent]:
        events: list[TransitionEvent] = []
        for order_id in sorted((current.keys() & previous.keys()) - skip):
            before = previous[order_id].status
            after = current[order_id].status
            if before == after:
                continue
            events.append(
                TransitionEvent(
                    order_id=order_id,
                    order_number=current[order_id].order_number,
                    from_status=before,
                    to_status=after,
                    observed_at=now,
                    legal=is_legal_transition(before, after),
                )
            )
        return events

    def _tenant_matches(self, order: Order) -> bool:
        return self.tenant_id is None or order.restaurant_id == self.tenant_id

    def _expire_pending(self, now: datetime) -> None:
        for order_id, mutation in list(self._pending.items()):
            if now - mutation.issued_at > self.pending_ttl:
                del self._pending[order_id]
                self.logger.warning(
                    "Pending mutation expired without a response: order=%s status=%s",
                    order_id,
                    mutation.requested_status,
                )

    def _note_unknown_status(self, order: Order) -> None:
        if is_known_status(order.status):
            return
        key = (order.id, order.status)
        if key in self._reported_unknown:
            return
        self._reported_unknown.add(key)
        self.logger.warning(
            "Unrecognized order status from server: order=%s status=%r",
            order.id,
            order.status,
        )

    def _now(self) -> datetime:
        now = self._now_provider()
        return now.astimezone(UTC) if now.tzinfo else now.replace(tzinfo=UTC)
