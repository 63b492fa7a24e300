"""Optimistic administrator status changes with resync on failure."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from ..exceptions import (
    InvalidPreparationTimeError,
    InvalidStatusError,
    MutationRejectedError,
    OrderApiError,
    OrderNotFoundError,
)
from ..models import MutationOutcome, PendingMutation
from .polling import PollingSynchronizer, failure_category
from .status import is_known_status


def validate_preparation_minutes(value: Any) -> int:
    """Return value as a positive int or raise InvalidPreparationTimeError.

    Accepts ints and all-digit strings such as the text typed into the
    preparation time field.
    """
    if isinstance(value, bool):
        raise InvalidPreparationTimeError("Estimated minutes must be a positive integer.")
    if isinstance(value, int):
        minutes = value
    elif isinstance(value, str) and value.strip().isdigit():
        minutes = int(value.strip())
    else:
        raise InvalidPreparationTimeError(
            f"Estimated minutes must be a positive integer, got {value!r}."
        )
    if minutes <= 0:
        raise InvalidPreparationTimeError(
            f"Estimated minutes must be a positive integer, got {minutes}."
        )
    return minutes


class OptimisticMutator:
    """Apply a status locally, send it, then commit or force a resync."""

    def __init__(
        self,
        synchronizer: PollingSynchronizer,
        *,
        logger: logging.Logger | None = None,
        now_provider: Callable[[], datetime] | None = None,
        on_outcome: Callable[[MutationOutcome], None] | None = None,
    ) -> None:
        self.synchronizer = synchronizer
        self.logger = logger or logging.getLogger(__name__)
        self._now_provider = now_provider or (lambda: datetime.now(UTC))
        self._on_outcome = on_outcome
        self._tasks: set[asyncio.Task[MutationOutcome]] = set()

    @property
    def in_flight_count(self) -> int:
        return len(self._tasks)

    def request_transition(
        self,
        order_id: str,
        new_status: str,
        estimated_minutes: Any = None,
    ) -> asyncio.Task[MutationOutcome]:
        """Show new_status now and send it to the server in the background.

        Validation errors are raised before the snapshot is touched. The
        returned task resolves once the server has answered.
        """
        minutes = (
            validate_preparation_minutes(estimated_minutes)
            if estimated_minutes is not None
            else None
        )
        if not is_known_status(new_status):
            raise InvalidStatusError(f"Cannot request unknown status {new_status!r}.")
        current = self.synchronizer.get(order_id)
        if current is None:
            raise OrderNotFoundError(f"Order {order_id} is not in the current snapshot.")

        mutation = PendingMutation(
            order_id=order_id,
            requested_status=new_status,
            prior_status=current.status,
            estimated_minutes=minutes,
            issued_at=self._now(),
        )
        self.synchronizer.apply_optimistic(mutation)
        self.logger.info(
            "Optimistic status change: order=%s %s -> %s",
            order_id,
            mutation.prior_status,
            new_status,
        )

        task = asyncio.get_running_loop().create_task(
            self._send(mutation, self.synchronizer.generation)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _send(self, mutation: PendingMutation, generation: int) -> MutationOutcome:
        try:
            server_order = await self.synchronizer.source.update_order_status(
                mutation.order_id,
                mutation.requested_status,
                mutation.estimated_minutes,
            )
        except Exception as exc:
            return await self._handle_failure(mutation, generation, exc)

        if generation != self.synchronizer.generation:
            self.synchronizer.resolve_pending(mutation)
            return self._discarded(mutation)
        self.synchronizer.commit_pending(mutation, server_order)
        outcome = MutationOutcome(
            status="committed",
            order_id=mutation.order_id,
            requested_status=mutation.requested_status,
            prior_status=mutation.prior_status,
        )
        self._report(outcome)
        return outcome

    async def _handle_failure(
        self,
        mutation: PendingMutation,
        generation: int,
        exc: Exception,
    ) -> MutationOutcome:
        self.synchronizer.release_failed(mutation)
        if generation != self.synchronizer.generation:
            return self._discarded(mutation)

        if isinstance(exc, MutationRejectedError):
            status = "rejected"
            reason = exc.reason
            category = exc.category
        else:
            status = "failed"
            category = failure_category(exc)
            reason = category
        self.logger.warning(
            "Status change failed: order=%s requested=%s reason=%s",
            mutation.order_id,
            mutation.requested_status,
            reason,
            exc_info=None if isinstance(exc, OrderApiError) else exc,
        )
        outcome = MutationOutcome(
            status=status,
            order_id=mutation.order_id,
            requested_status=mutation.requested_status,
            prior_status=mutation.prior_status,
            reason=reason,
            error_category=category,
            message=str(exc) or type(exc).__name__,
        )
        self._report(outcome)
        # No local undo: the authoritative snapshot comes from the next fetch.
        await self.synchronizer.refresh_now()
        return outcome

    def _discarded(self, mutation: PendingMutation) -> MutationOutcome:
        self.logger.debug(
            "Discarding status change result after stop: order=%s",
            mutation.order_id,
        )
        return MutationOutcome(
            status="discarded",
            order_id=mutation.order_id,
            requested_status=mutation.requested_status,
            prior_status=mutation.prior_status,
        )

    def _report(self, outcome: MutationOutcome) -> None:
        if self._on_outcome is not None:
            self._on_outcome(outcome)

    def _now(self) -> datetime:
        now = self._now_provider()
        return now.astimezone(UTC) if now.tzinfo else now.replace(tzinfo=UTC)
