"""Log store interface and implementations."""

from streamgroup.store.base import (
    BEGINNING,
    OLDEST_PENDING,
    UNDELIVERED,
    AckFailed,
    InvalidArgument,
    LogStore,
    StoreError,
    StoreUnavailable,
    StreamEntry,
)
from streamgroup.store.memory import MemoryLogStore
from streamgroup.store.redis_store import RedisLogStore

__all__ = [
    "BEGINNING",
    "OLDEST_PENDING",
    "UNDELIVERED",
    "AckFailed",
    "InvalidArgument",
    "LogStore",
    "MemoryLogStore",
    "RedisLogStore",
    "StoreError",
    "StoreUnavailable",
    "StreamEntry",
]
