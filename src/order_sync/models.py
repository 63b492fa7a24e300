"""Typed models shared by the sync engine, the API client and the CLI."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

Role = Literal["customer", "admin"]

NotificationType = Literal[
    "order_status",
    "new_order",
    "new_message",
    "new_review",
    "new_user",
]

Priority = Literal["high", "medium"]

BannerKind = Literal["status_change", "new_order"]


def _ensure_utc(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)
    return value


class _WireModel(BaseModel):
    """Base for models exchanged with the order API in camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Order(_WireModel):
    """Client-side cached copy of one server-owned order."""

    id: str
    order_number: str
    status: str
    estimated_ready_time: datetime | None = None
    total: Decimal = Decimal("0")
    restaurant_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    order_type: str | None = None

    @field_validator("id", "order_number", "restaurant_id", mode="before")
    @classmethod
    def coerce_identifier(cls, value: Any) -> Any:
        # Server ids arrive as integers or strings; identity is compared as text.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("estimated_ready_time", "created_at", "updated_at", mode="before")
    @classmethod
    def ensure_timezone_aware(cls, value: Any) -> Any:
        return _ensure_utc(value)

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value


class TransitionEvent(BaseModel):
    """One detected status change between two consecutive snapshots."""

    model_config = ConfigDict(frozen=True)

    order_id: str
    order_number: str
    from_status: str
    to_status: str
    observed_at: datetime
    legal: bool = True

    @field_validator("observed_at", mode="before")
    @classmethod
    def ensure_utc(cls, value: Any) -> Any:
        return _ensure_utc(value)


class PendingMutation(BaseModel):
    """Optimistic status change awaiting the server's answer."""

    order_id: str
    requested_status: str
    prior_status: str
    estimated_minutes: int | None = None
    issued_at: datetime

    @field_validator("issued_at", mode="before")
    @classmethod
    def ensure_utc(cls, value: Any) -> Any:
        return _ensure_utc(value)


class NotificationRecord(BaseModel):
    """User-facing notification that lives until cleared."""

    id: str
    type: NotificationType
    title: str
    message: str
    order_id: str | None = None
    order_number: str | None = None
    status: str | None = None
    priority: Priority = "medium"
    created_at: datetime
    read: bool = False
    # Set on records that stand for several recent look-alikes.
    count: int = 1
    grouped_ids: list[str] = Field(default_factory=list)

    @field_validator("created_at", mode="before")
    @classmethod
    def ensure_utc(cls, value: Any) -> Any:
        return _ensure_utc(value)


class Banner(BaseModel):
    """Single-slot alert describing the most recent change."""

    model_config = ConfigDict(frozen=True)

    kind: BannerKind
    order_id: str
    order_number: str
    status: str | None = None
    shown_at: datetime


class NewOrderSignal(BaseModel):
    """Raised once per pending order id the administrator has not seen yet."""

    model_config = ConfigDict(frozen=True)

    order_id: str
    order_number: str
    observed_at: datetime


class SyncCycleResult(BaseModel):
    """Outcome of one fetch-and-diff cycle."""

    status: Literal["synced", "skipped", "failed", "discarded"]
    fetched_count: int = 0
    dropped_foreign_tenant: int = 0
    overlaid_count: int = 0
    transitions: list[TransitionEvent] = Field(default_factory=list)
    baseline: bool = False
    error: str | None = None
    error_category: str | None = None


class MutationOutcome(BaseModel):
    """Result of an optimistic status change once the server has answered."""

    status: Literal["committed", "rejected", "failed", "discarded"]
    order_id: str
    requested_status: str
    prior_status: str
    reason: str | None = None
    error_category: str | None = None
    message: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "committed"
