"""Terminal UI helpers for the order watcher."""

from .order_board import OrderBoard

__all__ = ["OrderBoard"]
