"""
In-process log store.

Implements the same consumer group semantics as Redis Streams (per-member
pending sets, a group-wide last-delivered ID, blocking reads for undelivered
entries) behind a single condition variable, so it can be shared by threads
in one process. Used for tests and dry runs without a Redis server.
"""

import bisect
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from streamgroup.core.stream_id import MalformedIdError, StreamId
from streamgroup.store.base import (
    BEGINNING,
    END,
    OLDEST_PENDING,
    RANGE_MAX,
    RANGE_MIN,
    UNDELIVERED,
    InvalidArgument,
    LogStore,
    StreamEntry,
)
from streamgroup.utils.logging import get_logger

logger = get_logger(__name__)

ZERO_ID = StreamId(0, 0)


@dataclass
class PendingEntry:
    """
    Delivery record of an unacknowledged entry.

    Attributes:
        consumer: Member name the entry was delivered to
        delivery_count: Number of times it has been delivered
    """
    consumer: str
    delivery_count: int = 1


@dataclass
class GroupState:
    """State of one consumer group."""
    last_delivered: StreamId = ZERO_ID
    pending: Dict[StreamId, PendingEntry] = field(default_factory=dict)
    ack_counts: Dict[str, int] = field(default_factory=dict)


@dataclass
class StreamState:
    """Entries and groups of one stream."""
    entries: Dict[StreamId, Dict[str, str]] = field(default_factory=dict)
    ids: List[StreamId] = field(default_factory=list)  # ascending
    last_id: StreamId = ZERO_ID
    groups: Dict[str, GroupState] = field(default_factory=dict)

    def span(self, low: StreamId, high: StreamId) -> Tuple[int, int]:
        """Index bounds in ids of the IDs within [low, high]."""
        return bisect.bisect_left(self.ids, low), bisect.bisect_right(self.ids, high)


def _parse_bound(value: str, low: bool) -> StreamId:
    if value == RANGE_MIN:
        return ZERO_ID
    if value == RANGE_MAX:
        return StreamId(2**64 - 1, 2**64 - 1)
    try:
        return StreamId.parse(value)
    except MalformedIdError:
        pass
    if value.isdigit():
        # A bare time component covers the whole millisecond
        return StreamId(int(value), 0 if low else 2**64 - 1)
    raise InvalidArgument(f"Invalid stream ID specified as range bound: {value!r}")


class MemoryLogStore(LogStore):
    """
    Thread-safe in-memory log store.

    Example:
        store = MemoryLogStore()
        store.group_create("numbers", "primes")
        store.append("numbers", {"n": "0"})
        entries = store.group_read("numbers", "primes", "WORKER-01", ">", 5, 100)
    """

    def __init__(self, blocking: bool = True):
        """
        Initialize store.

        Args:
            blocking: If False, undelivered reads return immediately instead
                of waiting out their block duration.
        """
        self.blocking = blocking
        self._streams: Dict[str, StreamState] = {}
        self._cond = threading.Condition()

    def _next_id(self, state: StreamState) -> StreamId:
        now_ms = int(time.time() * 1000)
        if now_ms > state.last_id.time:
            return StreamId(now_ms, 0)
        return state.last_id.successor()

    def _group(self, stream: str, group: str) -> Tuple[StreamState, GroupState]:
        state = self._streams.get(stream)
        if state is None or group not in state.groups:
            raise InvalidArgument(
                f"NOGROUP No such key '{stream}' or consumer group '{group}'"
            )
        return state, state.groups[group]

    def append(self, stream: str, fields: Dict[str, str]) -> str:
        if not fields:
            raise InvalidArgument("An entry needs at least one field")
        with self._cond:
            state = self._streams.setdefault(stream, StreamState())
            entry_id = self._next_id(state)
            state.entries[entry_id] = {k: str(v) for k, v in fields.items()}
            state.ids.append(entry_id)
            state.last_id = entry_id
            self._cond.notify_all()
        return str(entry_id)

    def group_create(self, stream: str, group: str, start_id: str = BEGINNING) -> None:
        with self._cond:
            state = self._streams.setdefault(stream, StreamState())
            if group in state.groups:
                raise InvalidArgument(f"BUSYGROUP Consumer group '{group}' already exists")
            if start_id == END:
                start = state.last_id
            elif start_id == BEGINNING:
                start = ZERO_ID
            else:
                start = _parse_bound(start_id, low=True)
            state.groups[group] = GroupState(last_delivered=start)

        logger.debug("Consumer group created", stream=stream, group=group, start=str(start))

    def group_read(
        self,
        stream: str,
        group: str,
        consumer: str,
        cursor: str,
        count: int,
        block_ms: int,
    ) -> List[StreamEntry]:
        if count < 1:
            raise InvalidArgument(f"COUNT must be positive, got {count}")

        if cursor != UNDELIVERED:
            return self._read_pending(stream, group, consumer, cursor, count)

        deadline = time.monotonic() + block_ms / 1000.0
        with self._cond:
            while True:
                state, group_state = self._group(stream, group)
                start = bisect.bisect_right(state.ids, group_state.last_delivered)
                fresh = state.ids[start:start + count]

                if fresh:
                    for entry_id in fresh:
                        group_state.pending[entry_id] = PendingEntry(consumer)
                    group_state.last_delivered = fresh[-1]
                    return [
                        StreamEntry(str(entry_id), dict(state.entries[entry_id]))
                        for entry_id in fresh
                    ]

                remaining = deadline - time.monotonic()
                if not self.blocking or remaining <= 0:
                    return []
                self._cond.wait(remaining)

    def _read_pending(
        self,
        stream: str,
        group: str,
        consumer: str,
        cursor: str,
        count: int,
    ) -> List[StreamEntry]:
        lower = ZERO_ID if cursor == OLDEST_PENDING else _parse_bound(cursor, low=True)
        with self._cond:
            state, group_state = self._group(stream, group)
            owned = sorted(
                entry_id for entry_id, pending in group_state.pending.items()
                if pending.consumer == consumer and entry_id > lower
            )[:count]

            result = []
            for entry_id in owned:
                group_state.pending[entry_id].delivery_count += 1
                result.append(StreamEntry(str(entry_id), dict(state.entries.get(entry_id, {}))))
            return result

    def ack(self, stream: str, group: str, entry_id: str) -> int:
        parsed = StreamId.parse(entry_id)
        with self._cond:
            state = self._streams.get(stream)
            if state is None or group not in state.groups:
                return 0
            group_state = state.groups[group]
            if group_state.pending.pop(parsed, None) is None:
                return 0
            group_state.ack_counts[entry_id] = group_state.ack_counts.get(entry_id, 0) + 1
            return 1

    def delete(self, stream: str) -> None:
        with self._cond:
            removed = self._streams.pop(stream, None)
            self._cond.notify_all()

        if removed is not None:
            logger.debug("Stream deleted", stream=stream, entries=len(removed.entries))

    def exists(self, stream: str) -> bool:
        with self._cond:
            return stream in self._streams

    def length(self, stream: str) -> int:
        with self._cond:
            state = self._streams.get(stream)
            return len(state.entries) if state else 0

    def range(
        self,
        stream: str,
        start: str = RANGE_MIN,
        end: str = RANGE_MAX,
        count: int = 10,
    ) -> List[StreamEntry]:
        low = _parse_bound(start, low=True)
        high = _parse_bound(end, low=False)
        with self._cond:
            state = self._streams.get(stream)
            if state is None:
                return []
            first, stop = state.span(low, high)
            ids = state.ids[first:min(stop, first + count)]
            return [StreamEntry(str(i), dict(state.entries[i])) for i in ids]

    def revrange(
        self,
        stream: str,
        end: str = RANGE_MAX,
        start: str = RANGE_MIN,
        count: int = 10,
    ) -> List[StreamEntry]:
        low = _parse_bound(start, low=True)
        high = _parse_bound(end, low=False)
        with self._cond:
            state = self._streams.get(stream)
            if state is None:
                return []
            first, stop = state.span(low, high)
            ids = state.ids[max(first, stop - count):stop][::-1]
            return [StreamEntry(str(i), dict(state.entries[i])) for i in ids]

    def pending_count(self, stream: str, group: str) -> int:
        with self._cond:
            _, group_state = self._group(stream, group)
            return len(group_state.pending)

    def remove(self, stream: str, entry_id: str) -> int:
        """
        Remove a single entry body, leaving group pending sets untouched.

        Returns:
            Number of entries removed
        """
        parsed = StreamId.parse(entry_id)
        with self._cond:
            state = self._streams.get(stream)
            if state is None:
                return 0
            if state.entries.pop(parsed, None) is None:
                return 0
            del state.ids[bisect.bisect_left(state.ids, parsed)]
            return 1

    def pending_for(self, stream: str, group: str, consumer: str) -> List[str]:
        """IDs pending for one member, oldest first."""
        with self._cond:
            _, group_state = self._group(stream, group)
            return [
                str(entry_id) for entry_id in sorted(group_state.pending)
                if group_state.pending[entry_id].consumer == consumer
            ]

    def ack_counts(self, stream: str, group: str) -> Dict[str, int]:
        """Successful acknowledgments per entry ID."""
        with self._cond:
            _, group_state = self._group(stream, group)
            return dict(group_state.ack_counts)
