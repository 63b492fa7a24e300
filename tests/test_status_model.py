"""Status set, transition graph and view filter tests."""

from __future__ import annotations

import pytest

from order_sync.engine.status import (
    ADMIN_FILTERS,
    CANONICAL_STATUSES,
    allowed_next_statuses,
    is_known_status,
    is_legal_transition,
    is_terminal,
    matches_filter,
    resolve_admin_filter,
    status_label,
)


def test_terminal_statuses_have_no_successors() -> None:
    for status in ("completed", "cancelled", "rejected"):
        assert is_terminal(status)
        assert allowed_next_statuses(status, order_type="delivery") == []
        for target in CANONICAL_STATUSES:
            assert not is_legal_transition(status, target)


@pytest.mark.parametrize(
    ("from_status", "to_status", "expected"),
    [
        ("pending", "confirmed", True),
        ("pending", "rejected", True),
        ("confirmed", "preparing", True),
        ("preparing", "ready", True),
        ("ready", "on_delivery", True),
        ("ready", "completed", True),
        ("on_delivery", "completed", True),
        ("pending", "ready", False),
        ("preparing", "confirmed", False),
        ("completed", "pending", False),
    ],
)
def test_legal_transition_graph(from_status: str, to_status: str, expected: bool) -> None:
    assert is_legal_transition(from_status, to_status) is expected


def test_unknown_status_is_neither_terminal_nor_legal() -> None:
    assert not is_known_status("awaiting_courier")
    assert not is_terminal("awaiting_courier")
    assert not is_legal_transition("awaiting_courier", "completed")
    assert not is_legal_transition("ready", "awaiting_courier")
    assert status_label("awaiting_courier") == "awaiting_courier"


def test_on_delivery_only_offered_for_delivery_orders() -> None:
    assert allowed_next_statuses("ready", order_type="delivery") == [
        "cancelled",
        "completed",
        "on_delivery",
    ]
    assert allowed_next_statuses("ready", order_type="pickup") == ["cancelled", "completed"]
    assert allowed_next_statuses("ready") == ["cancelled", "completed"]


def test_admin_filters_cover_every_canonical_status() -> None:
    covered: set[str] = set()
    for statuses in ADMIN_FILTERS.values():
        if statuses is not None:
            covered |= statuses
    assert covered == CANONICAL_STATUSES
    assert ADMIN_FILTERS["all"] is None


def test_resolve_admin_filter_accepts_aliases_and_case() -> None:
    assert resolve_admin_filter("ANNULÉ") == frozenset({"cancelled"})
    assert resolve_admin_filter(" refusee ") == frozenset({"rejected"})
    assert resolve_admin_filter("En_Cours") == frozenset({"preparing", "ready", "on_delivery"})
    assert resolve_admin_filter(None) is None
    assert resolve_admin_filter("unknown-filter") is None


def test_matches_filter_for_admin_labels_and_raw_statuses() -> None:
    assert matches_filter("pending", "recu")
    assert matches_filter("confirmed", "recu")
    assert not matches_filter("preparing", "recu")
    assert matches_filter("anything", "all")
    assert matches_filter("anything", None)
    # Customer views filter by raw status name.
    assert matches_filter("ready", "ready")
    assert not matches_filter("preparing", "ready")
