"""Ping store backends."""

from .base import OutOfOrderPingError, PingStore, PingStoreError
from .memory_store import MemoryPingStore
from .sqlite_store import SqlitePingStore

__all__ = ["MemoryPingStore", "OutOfOrderPingError", "PingStore", "PingStoreError", "SqlitePingStore"]
