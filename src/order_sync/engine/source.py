"""Data-access contract consumed by the sync engine."""

from __future__ import annotations

from typing import Protocol

from ..models import Order, Role


class OrderDataSource(Protocol):
    """Remote order store the engine polls and mutates.

    Implementations raise OrderRequestError for transport or authorization
    failures and MutationRejectedError when the server refuses an update.
    """

    async def list_orders(
        self,
        role: Role,
        tenant_id: str | None,
        status_filter: str | None = None,
    ) -> list[Order]: ...

    async def update_order_status(
        self,
        order_id: str,
        new_status: str,
        estimated_minutes: int | None = None,
    ) -> Order | None: ...
