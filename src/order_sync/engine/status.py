"""Canonical order statuses, the display transition graph and view filters."""

from __future__ import annotations

from typing import Literal

OrderStatus = Literal[
    "pending",
    "confirmed",
    "preparing",
    "ready",
    "on_delivery",
    "completed",
    "cancelled",
    "rejected",
]

CANONICAL_STATUSES: frozenset[str] = frozenset(
    {
        "pending",
        "confirmed",
        "preparing",
        "ready",
        "on_delivery",
        "completed",
        "cancelled",
        "rejected",
    }
)

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "cancelled", "rejected"})

# Only status for which an estimated ready time is meaningful.
COUNTDOWN_STATUS = "preparing"

_ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "rejected", "cancelled"}),
    "confirmed": frozenset({"preparing", "cancelled"}),
    "preparing": frozenset({"ready", "cancelled"}),
    "ready": frozenset({"on_delivery", "completed", "cancelled"}),
    "on_delivery": frozenset({"completed", "cancelled"}),
    "completed": frozenset(),
    "cancelled": frozenset(),
    "rejected": frozenset(),
}

# Administrator view filters. None means unfiltered.
ADMIN_FILTERS: dict[str, frozenset[str] | None] = {
    "recu": frozenset({"pending", "confirmed"}),
    "en_cours": frozenset({"preparing", "ready", "on_delivery"}),
    "livrer": frozenset({"completed"}),
    "annuler": frozenset({"cancelled"}),
    "refuse": frozenset({"rejected"}),
    "all": None,
}

# Alternate spellings the server accepts for the same filters.
_ADMIN_FILTER_ALIASES: dict[str, str] = {
    "annulé": "annuler",
    "annule": "annuler",
    "refusé": "refuse",
    "refusee": "refuse",
}

_STATUS_LABELS: dict[str, str] = {
    "pending": "en attente",
    "confirmed": "confirmée",
    "preparing": "en préparation",
    "ready": "prête",
    "on_delivery": "en livraison",
    "completed": "terminée",
    "cancelled": "annulée",
    "rejected": "refusée",
}


def is_known_status(status: str) -> bool:
    """Return True when status belongs to the canonical set."""
    return status in CANONICAL_STATUSES


def is_terminal(status: str) -> bool:
    """Return True when status is terminal. Unknown statuses never are."""
    return status in TERMINAL_STATUSES


def is_legal_transition(from_status: str, to_status: str) -> bool:
    """Return True when the change is one the client expects to display.

    The server decides what it accepts; this only classifies observed changes.
    Unknown statuses are never a legal origin or target.
    """
    return to_status in _ALLOWED_TRANSITIONS.get(from_status, frozenset())


def allowed_next_statuses(status: str, order_type: str | None = None) -> list[str]:
    """List the statuses an administrator may request from status."""
    allowed = set(_ALLOWED_TRANSITIONS.get(status, frozenset()))
    if order_type != "delivery":
        allowed.discard("on_delivery")
    return sorted(allowed)


def resolve_admin_filter(label: str | None) -> frozenset[str] | None:
    """Map a filter label to its canonical statuses (None means unfiltered)."""
    if label is None:
        return None
    key = label.strip().lower()
    key = _ADMIN_FILTER_ALIASES.get(key, key)
    return ADMIN_FILTERS.get(key)


def matches_filter(status: str, label: str | None) -> bool:
    """Return True when status is visible under the given filter label.

    Customer views filter by raw status name; administrator views use the
    filter table. "all" and None show everything.
    """
    if label is None or label == "all":
        return True
    if label in CANONICAL_STATUSES:
        return status == label
    statuses = resolve_admin_filter(label)
    return statuses is None or status in statuses


def status_label(status: str) -> str:
    """Return the display label for status, or the raw value when unknown."""
    return _STATUS_LABELS.get(status, status)
