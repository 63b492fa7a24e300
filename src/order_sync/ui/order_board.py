"""Rich-rendered board of the live snapshot for terminal supervision."""

from __future__ import annotations

from datetime import UTC, datetime

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..engine.countdown import CountdownValue
from ..engine.status import is_known_status, is_terminal, status_label
from ..models import Banner, NotificationRecord, Order

_STATUS_STYLES: dict[str, str] = {
    "pending": "yellow",
    "confirmed": "cyan",
    "preparing": "magenta",
    "ready": "green",
    "on_delivery": "blue",
    "completed": "dim green",
    "cancelled": "dim red",
    "rejected": "red",
}

_EPOCH = datetime.min.replace(tzinfo=UTC)


def _created_sort_key(order: Order) -> datetime:
    return order.created_at or _EPOCH


class OrderBoard:
    """Render snapshot, banner and unread notifications to a console."""

    def __init__(self, *, console: Console, role: str, tenant_id: str | None = None) -> None:
        self.console = console
        self.role = role
        self.tenant_id = tenant_id

    def render(
        self,
        *,
        orders: list[Order],
        countdowns: dict[str, CountdownValue],
        banner: Banner | None,
        notifications: list[NotificationRecord],
        last_sync_failed: bool,
        cycle_index: int | None = None,
    ) -> None:
        parts: list[Panel | Table] = [self._build_header_panel(last_sync_failed, cycle_index)]
        if banner is not None:
            parts.append(self._build_banner_panel(banner))
        parts.append(self._build_orders_table(orders, countdowns))
        unread = [record for record in notifications if not record.read]
        if unread:
            parts.append(self._build_notifications_panel(unread))
        self.console.print(Group(*parts))

    def _build_header_panel(self, last_sync_failed: bool, cycle_index: int | None) -> Panel:
        now = datetime.now(UTC).strftime("%H:%M:%S")
        sync_state = Text("last sync failed", style="bold red") if last_sync_failed else Text(
            "in sync", style="green"
        )
        line = Text.assemble(
            f"role={self.role} tenant={self.tenant_id or '-'} ",
            f"cycle={cycle_index if cycle_index is not None else '-'} at {now} ",
            sync_state,
        )
        return Panel(line, title="Order Sync", border_style="cyan")

    @staticmethod
    def _build_banner_panel(banner: Banner) -> Panel:
        if banner.kind == "new_order":
            message = f"Nouvelle commande {banner.order_number}"
        else:
            message = f"Commande {banner.order_number}: {status_label(banner.status or '')}"
        return Panel(Text(message), title="Banner", border_style="yellow")

    @staticmethod
    def _build_orders_table(orders: list[Order], countdowns: dict[str, CountdownValue]) -> Table:
        table = Table(title=f"Orders ({len(orders)})")
        table.add_column("Order", overflow="fold")
        table.add_column("Status")
        table.add_column("Ready in")
        table.add_column("Total", justify="right")
        table.add_column("Created (UTC)")
        for order in sorted(orders, key=_created_sort_key, reverse=True):
            style = _STATUS_STYLES.get(order.status, "")
            label = status_label(order.status)
            if not is_known_status(order.status):
                label = f"{label} (?)"
            elif is_terminal(order.status):
                style = f"{style} italic".strip()
            countdown = countdowns.get(order.id)
            table.add_row(
                Text(order.order_number),
                Text(label, style=style),
                countdown.text if countdown is not None else "-",
                f"{order.total:.2f} €",
                order.created_at.isoformat() if order.created_at else "-",
            )
        return table

    @staticmethod
    def _build_notifications_panel(unread: list[NotificationRecord]) -> Panel:
        lines = [f"[{record.priority}] {record.title}: {record.message}" for record in unread[:10]]
        # Plain Text: host-supplied titles and the priority tag are not markup.
        return Panel(
            Text("\n".join(lines)),
            title=f"Unread ({len(unread)})",
            border_style="magenta",
        )
