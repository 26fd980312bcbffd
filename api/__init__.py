"""Shop credit ledger HTTP and WebSocket API."""

__version__ = "1.0.0"
