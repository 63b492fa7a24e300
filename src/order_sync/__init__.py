"""Order-status synchronization for the white-label ordering app."""

__version__ = "0.1.0"
