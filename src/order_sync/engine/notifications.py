"""Role-aware banner slot, notification records and new-order detection."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime, timedelta

from ..models import (
    Banner,
    NewOrderSignal,
    NotificationRecord,
    NotificationType,
    Order,
    Priority,
    Role,
    TransitionEvent,
)

# Statuses a customer is told about, with the wording shown to them.
_CUSTOMER_STATUS_MESSAGES: dict[str, str] = {
    "confirmed": "confirmée",
    "preparing": "en préparation",
    "ready": "prête à récupérer",
    "on_delivery": "en livraison",
    "completed": "livrée",
    "cancelled": "annulée",
}

_CUSTOMER_STATUS_PRIORITY: dict[str, Priority] = {
    "completed": "medium",
}

# Recent records of one kind collapse into a single grouped entry.
_GROUP_WINDOW = timedelta(minutes=5)
_STATUS_GROUPED_TYPES = frozenset({"order_status", "new_order"})
_PRIORITY_RANK: dict[str, int] = {"medium": 1, "high": 2}

_GROUP_WORDING: dict[str, tuple[str, str]] = {
    "new_order": (
        "{count} nouvelles commandes",
        "{count} nouvelles commandes ont été passées",
    ),
    "new_message": ("{count} nouveaux messages", "{count} nouveaux messages ont été reçus"),
    "new_review": ("{count} nouveaux avis", "{count} nouveaux avis ont été soumis"),
    "new_user": ("{count} nouveaux clients", "{count} nouveaux clients se sont inscrits"),
    "order_status": (
        "{count} mises à jour de commandes",
        "Le statut de {count} commandes a été mis à jour",
    ),
}


def _merge_group(
    type_: NotificationType,
    status: str | None,
    members: list[NotificationRecord],
) -> NotificationRecord:
    newest = max(member.created_at for member in members)
    priority = max((member.priority for member in members), key=_PRIORITY_RANK.__getitem__)
    title, message = _GROUP_WORDING[type_]
    key = f"{type_}-{status}" if status else type_
    return NotificationRecord(
        id=f"grouped-{key}-{newest.isoformat()}",
        type=type_,
        title=title.format(count=len(members)),
        message=message.format(count=len(members)),
        status=status,
        priority=priority,
        created_at=newest,
        read=all(member.read for member in members),
        count=len(members),
        grouped_ids=[member.id for member in members],
    )


def _as_utc(value: datetime) -> datetime:
    return value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)


class NotificationEmitter:
    """Turn transitions and fetched orders into banners and notifications."""

    def __init__(
        self,
        *,
        role: Role,
        logger: logging.Logger | None = None,
        now_provider: Callable[[], datetime] | None = None,
        on_notification: Callable[[NotificationRecord], None] | None = None,
        on_new_order: Callable[[NewOrderSignal], None] | None = None,
    ) -> None:
        self.role = role
        self.logger = logger or logging.getLogger(__name__)
        self._now_provider = now_provider or (lambda: datetime.now(UTC))
        self._on_notification = on_notification
        self._on_new_order = on_new_order
        self._banner: Banner | None = None
        self._records: dict[str, NotificationRecord] = {}
        self._cleared_ids: set[str] = set()
        # Pending order ids the administrator has already been told about.
        self._seen_pending_ids: set[str] = set()

    @property
    def banner(self) -> Banner | None:
        return self._banner

    @property
    def notifications(self) -> list[NotificationRecord]:
        """Live records, newest first."""
        return sorted(self._records.values(), key=lambda record: record.created_at, reverse=True)

    @property
    def unread_count(self) -> int:
        return sum(1 for record in self._records.values() if not record.read)

    def grouped_notifications(self, now: datetime | None = None) -> list[NotificationRecord]:
        """Live records with recent look-alikes folded together, newest first.

        Records under five minutes old are grouped by type, and order records
        also by status. A group of two or more is replaced by one record that
        carries the newest timestamp, the highest priority and the member ids.
        It reads as read only once every member is. Older records and lone
        members are returned as they are.
        """
        cutoff = (self._now() if now is None else _as_utc(now)) - _GROUP_WINDOW
        result: list[NotificationRecord] = []
        groups: dict[tuple[NotificationType, str | None], list[NotificationRecord]] = {}
        for record in self.notifications:
            if record.created_at < cutoff:
                result.append(record)
                continue
            status = record.status if record.type in _STATUS_GROUPED_TYPES else None
            groups.setdefault((record.type, status), []).append(record)

        for (type_, status), members in groups.items():
            if len(members) == 1:
                result.append(members[0])
            else:
                result.append(_merge_group(type_, status, members))
        return sorted(result, key=lambda record: record.created_at, reverse=True)

    @property
    def seen_pending_ids(self) -> frozenset[str]:
        return frozenset(self._seen_pending_ids)

    def dismiss_banner(self) -> None:
        self._banner = None

    def handle_transitions(
        self,
        events: Iterable[TransitionEvent],
        orders: Mapping[str, Order],
    ) -> list[NotificationRecord]:
        """Show each transition in the banner and notify customers of it."""
        created: list[NotificationRecord] = []
        for event in events:
            self._banner = Banner(
                kind="status_change",
                order_id=event.order_id,
                order_number=event.order_number,
                status=event.to_status,
                shown_at=event.observed_at,
            )
            if self.role != "customer":
                continue
            message = _CUSTOMER_STATUS_MESSAGES.get(event.to_status)
            if message is None:
                continue
            order = orders.get(event.order_id)
            stamp_source = None
            if order is not None:
                stamp_source = order.updated_at or order.created_at
            stamp = (stamp_source or event.observed_at).isoformat()
            record = self._add(
                notification_id=f"order-{event.order_id}-{event.to_status}-{stamp}",
                type_="order_status",
                title=f"Commande {event.order_number}",
                message=f"Votre commande est {message}",
                order_id=event.order_id,
                order_number=event.order_number,
                status=event.to_status,
                priority=_CUSTOMER_STATUS_PRIORITY.get(event.to_status, "high"),
            )
            if record is not None:
                created.append(record)
        return created

    def handle_snapshot(self, orders: Iterable[Order]) -> list[NewOrderSignal]:
        """Signal every pending order the administrator has not seen yet.

        Every pending id in orders is marked seen whether or not it signalled.
        Customers never receive new-order signals.
        """
        if self.role != "admin":
            return []
        now = self._now()
        signals: list[NewOrderSignal] = []
        pending = sorted(
            (order for order in orders if order.status == "pending"),
            key=lambda order: order.id,
        )
        for order in pending:
            if order.id not in self._seen_pending_ids:
                signals.append(
                    NewOrderSignal(
                        order_id=order.id,
                        order_number=order.order_number,
                        observed_at=now,
                    )
                )
            self._seen_pending_ids.add(order.id)

        for signal in signals:
            self._banner = Banner(
                kind="new_order",
                order_id=signal.order_id,
                order_number=signal.order_number,
                status="pending",
                shown_at=now,
            )
            self._add(
                notification_id=f"new_order-{signal.order_id}",
                type_="new_order",
                title=f"Nouvelle commande {signal.order_number}",
                message="Une nouvelle commande a été passée",
                order_id=signal.order_id,
                order_number=signal.order_number,
                status="pending",
                priority="high",
            )
            if self._on_new_order is not None:
                self._on_new_order(signal)
        if signals:
            self.logger.info("Detected %d new pending order(s).", len(signals))
        return signals

    def push_external(
        self,
        *,
        type_: NotificationType,
        source_id: str,
        title: str,
        message: str,
        priority: Priority = "medium",
    ) -> NotificationRecord | None:
        """Record a host-supplied notification such as a new message or review."""
        return self._add(
            notification_id=f"{type_}-{source_id}",
            type_=type_,
            title=title,
            message=message,
            priority=priority,
        )

    def mark_as_read(self, notification_id: str) -> bool:
        """Mark one record read. Unknown or already-read ids are a no-op."""
        record = self._records.get(notification_id)
        if record is None or record.read:
            return False
        updated = record.model_copy(update={"read": True})
        self._records[notification_id] = updated
        self._emit(updated)
        return True

    def mark_all_as_read(self) -> int:
        unread = [record.id for record in self._records.values() if not record.read]
        for notification_id in unread:
            self.mark_as_read(notification_id)
        return len(unread)

    def clear(self, notification_id: str) -> bool:
        """Remove one record for good; the same id is never raised again.

        Ids that were never raised are left alone.
        """
        if self._records.pop(notification_id, None) is None:
            return False
        self._cleared_ids.add(notification_id)
        return True

    def clear_all(self) -> int:
        count = len(self._records)
        self._cleared_ids.update(self._records)
        self._records.clear()
        return count

    def _add(
        self,
        *,
        notification_id: str,
        type_: NotificationType,
        title: str,
        message: str,
        order_id: str | None = None,
        order_number: str | None = None,
        status: str | None = None,
        priority: Priority = "medium",
    ) -> NotificationRecord | None:
        if notification_id in self._records or notification_id in self._cleared_ids:
            return None
        record = NotificationRecord(
            id=notification_id,
            type=type_,
            title=title,
            message=message,
            order_id=order_id,
            order_number=order_number,
            status=status,
            priority=priority,
            created_at=self._now(),
        )
        self._records[notification_id] = record
        self._emit(record)
        return record

    def _emit(self, record: NotificationRecord) -> None:
        if self._on_notification is not None:
            self._on_notification(record)

    def _now(self) -> datetime:
        return _as_utc(self._now_provider())
