"""Optimistic status change, commit, failure resync and input validation tests."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Any

import pytest

from order_sync.engine.mutator import OptimisticMutator, validate_preparation_minutes
from order_sync.engine.polling import PollingSynchronizer
from order_sync.exceptions import (
    InvalidPreparationTimeError,
    InvalidStatusError,
    MutationRejectedError,
    OrderNotFoundError,
    OrderRequestError,
)
from order_sync.models import MutationOutcome, Order, TransitionEvent


def _record(order_id: str, status: str, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": order_id,
        "orderNumber": f"CMD-{order_id}",
        "status": status,
        "total": "32.00",
        "restaurantId": "resto-1",
    }
    payload.update(overrides)
    return payload


class _FakeSource:
    def __init__(self, records: list[dict[str, Any]]) -> None:
        self.records = records
        self.update_calls: list[tuple[str, str, int | None]] = []
        self.update_error: Exception | None = None
        self.update_response: dict[str, Any] | None = None
        self.update_gate: asyncio.Event | None = None
        self.list_gate: asyncio.Event | None = None

    async def list_orders(
        self,
        role: str,
        tenant_id: str | None,
        status_filter: str | None = None,
    ) -> list[Order]:
        if self.list_gate is not None:
            await self.list_gate.wait()
        return [Order.model_validate(record) for record in self.records]

    async def update_order_status(
        self,
        order_id: str,
        new_status: str,
        estimated_minutes: int | None = None,
    ) -> Order | None:
        self.update_calls.append((order_id, new_status, estimated_minutes))
        if self.update_gate is not None:
            await self.update_gate.wait()
        if self.update_error is not None:
            raise self.update_error
        if self.update_response is None:
            return None
        return Order.model_validate(self.update_response)


def _build(
    source: _FakeSource,
) -> tuple[PollingSynchronizer, OptimisticMutator, list[MutationOutcome], list[TransitionEvent]]:
    logger = logging.getLogger("test.order_sync.mutator")
    now = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)
    transitions: list[TransitionEvent] = []
    sync = PollingSynchronizer(
        source,
        role="admin",
        tenant_id="resto-1",
        logger=logger,
        now_provider=lambda: now,
        on_transitions=transitions.extend,
    )
    outcomes: list[MutationOutcome] = []
    mutator = OptimisticMutator(
        sync,
        logger=logger,
        now_provider=lambda: now,
        on_outcome=outcomes.append,
    )
    return sync, mutator, outcomes, transitions


def test_status_is_applied_before_the_request_resolves() -> None:
    source = _FakeSource([_record("1", "confirmed")])
    source.update_response = _record(
        "1", "preparing", estimatedReadyTime="2026-03-02T12:20:00Z"
    )
    sync, mutator, outcomes, _ = _build(source)

    async def scenario() -> MutationOutcome:
        await sync.refresh_now()
        task = mutator.request_transition("1", "preparing", "20")
        assert sync.get("1").status == "preparing"
        assert "1" in sync.pending
        assert mutator.in_flight_count == 1
        return await task

    outcome = asyncio.run(scenario())
    assert outcome.ok
    assert outcome.prior_status == "confirmed"
    assert outcomes == [outcome]
    assert source.update_calls == [("1", "preparing", 20)]
    assert sync.pending == {}
    assert sync.get("1").estimated_ready_time == datetime(2026, 3, 2, 12, 20, tzinfo=UTC)


def test_poll_during_in_flight_mutation_does_not_flicker_back() -> None:
    source = _FakeSource([_record("1", "pending")])
    sync, mutator, _, transitions = _build(source)

    async def scenario() -> None:
        await sync.refresh_now()
        source.update_gate = asyncio.Event()
        task = mutator.request_transition("1", "confirmed")
        await asyncio.sleep(0)
        result = await sync.refresh_now()
        assert result.overlaid_count == 1
        assert sync.get("1").status == "confirmed"
        source.update_gate.set()
        await task

    asyncio.run(scenario())
    assert transitions == []


def test_failed_mutation_forces_resync_to_server_status() -> None:
    source = _FakeSource([_record("1", "confirmed")])
    source.update_error = OrderRequestError("gateway timeout", category="server", status_code=504)
    sync, mutator, outcomes, transitions = _build(source)

    async def scenario() -> MutationOutcome:
        await sync.refresh_now()
        return await mutator.request_transition("1", "preparing", 15)

    outcome = asyncio.run(scenario())
    assert outcome.status == "failed"
    assert outcome.reason == "server"
    assert outcomes == [outcome]
    assert sync.pending == {}
    assert sync.get("1").status == "confirmed"
    # Restoring the server value is not an observed status change.
    assert transitions == []


def test_rejected_mutation_carries_reason() -> None:
    source = _FakeSource([_record("1", "completed")])
    source.update_error = MutationRejectedError(
        "Invalid transition", reason="invalid_status", status_code=400
    )
    sync, mutator, _, _ = _build(source)

    async def scenario() -> MutationOutcome:
        await sync.refresh_now()
        return await mutator.request_transition("1", "preparing")

    outcome = asyncio.run(scenario())
    assert outcome.status == "rejected"
    assert outcome.reason == "invalid_status"
    assert outcome.error_category == "validation"
    assert not outcome.ok
    assert sync.get("1").status == "completed"


@pytest.mark.parametrize("minutes", ["abc", "", "-5", 0, -3, True, 12.5, "1.5"])
def test_invalid_preparation_minutes_never_touch_the_snapshot(minutes: Any) -> None:
    source = _FakeSource([_record("1", "confirmed")])
    sync, mutator, outcomes, _ = _build(source)
    asyncio.run(sync.refresh_now())
    before = sync.snapshot

    with pytest.raises(InvalidPreparationTimeError):
        mutator.request_transition("1", "preparing", minutes)

    assert sync.snapshot == before
    assert sync.pending == {}
    assert source.update_calls == []
    assert outcomes == []


def test_validate_preparation_minutes_accepts_digit_strings() -> None:
    assert validate_preparation_minutes(25) == 25
    assert validate_preparation_minutes(" 40 ") == 40


def test_unknown_status_and_missing_order_are_rejected_locally() -> None:
    source = _FakeSource([_record("1", "confirmed")])
    sync, mutator, _, _ = _build(source)
    asyncio.run(sync.refresh_now())

    with pytest.raises(InvalidStatusError):
        mutator.request_transition("1", "teleported")
    with pytest.raises(OrderNotFoundError):
        mutator.request_transition("missing", "preparing")
    assert sync.get("1").status == "confirmed"
    assert source.update_calls == []


def test_result_arriving_after_stop_is_discarded() -> None:
    source = _FakeSource([_record("1", "confirmed")])
    source.update_response = _record("1", "preparing")
    sync, mutator, outcomes, _ = _build(source)

    async def scenario() -> MutationOutcome:
        await sync.refresh_now()
        source.update_gate = asyncio.Event()
        task = mutator.request_transition("1", "preparing")
        await asyncio.sleep(0)
        sync.stop()
        source.update_gate.set()
        return await task

    outcome = asyncio.run(scenario())
    assert outcome.status == "discarded"
    assert outcomes == []


def test_poll_started_before_commit_keeps_committed_status() -> None:
    source = _FakeSource([_record("1", "pending")])
    sync, mutator, _, transitions = _build(source)

    async def scenario() -> None:
        await sync.refresh_now()
        source.list_gate = asyncio.Event()
        stale_poll = asyncio.get_running_loop().create_task(sync.refresh_now())
        await asyncio.sleep(0)
        assert sync.in_flight

        outcome = await mutator.request_transition("1", "confirmed")
        assert outcome.status == "committed"
        assert sync.pending == {}

        # The gated fetch answers with data read before the commit.
        source.list_gate.set()
        result = await stale_poll
        assert result.overlaid_count == 1
        assert sync.get("1").status == "confirmed"

        source.list_gate = None
        source.records = [_record("1", "preparing")]
        fresh = await sync.refresh_now()
        assert fresh.overlaid_count == 0
        assert sync.get("1").status == "preparing"

    asyncio.run(scenario())
    assert [(e.from_status, e.to_status) for e in transitions] == [("confirmed", "preparing")]


def test_unexpected_error_from_source_fails_and_resyncs() -> None:
    source = _FakeSource([_record("1", "pending")])
    source.update_error = TimeoutError()
    sync, mutator, outcomes, transitions = _build(source)

    async def scenario() -> MutationOutcome:
        await sync.refresh_now()
        return await mutator.request_transition("1", "confirmed")

    outcome = asyncio.run(scenario())
    assert outcome.status == "failed"
    assert outcome.error_category == "network"
    assert outcome.message == "TimeoutError"
    assert outcomes == [outcome]
    assert sync.pending == {}
    assert sync.get("1").status == "pending"
    assert transitions == []
