"""Order-status synchronization engine."""

from .countdown import (
    CountdownTick,
    CountdownTicker,
    CountdownValue,
    countdown_for,
    format_countdown,
)
from .mutator import OptimisticMutator, validate_preparation_minutes
from .notifications import NotificationEmitter
from .polling import PollingSynchronizer
from .session import EngineEvent, OrderSyncEngine
from .source import OrderDataSource

__all__ = [
    "CountdownTick",
    "CountdownTicker",
    "CountdownValue",
    "EngineEvent",
    "NotificationEmitter",
    "OptimisticMutator",
    "OrderDataSource",
    "OrderSyncEngine",
    "PollingSynchronizer",
    "countdown_for",
    "format_countdown",
    "validate_preparation_minutes",
]
