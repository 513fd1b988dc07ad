"""
Log store interface.

The consumer group protocol never speaks to the store directly; it goes
through this interface so that the same consumer, producer and orchestrator
code runs against Redis Streams or the in-process store.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List

# Group-read cursor tokens
OLDEST_PENDING = "0"  # this consumer's pending entries, from the oldest
UNDELIVERED = ">"     # entries never delivered to any group member

# Group-create start offsets
BEGINNING = "0"
END = "$"

# Range bounds
RANGE_MIN = "-"
RANGE_MAX = "+"


class StoreError(Exception):
    """Base class for log store failures."""
    pass


class StoreUnavailable(StoreError):
    """Connection or transport failure talking to the store."""
    pass


class InvalidArgument(StoreError):
    """The store rejected a command's arguments."""
    pass


class AckFailed(StoreError):
    """An acknowledgment could not be recorded."""
    pass


@dataclass
class StreamEntry:
    """
    A single stream entry.

    Attributes:
        id: Textual entry ID assigned by the store
        fields: Field name to value mapping (empty if the entry was deleted
            while still pending)
    """
    id: str
    fields: Dict[str, str] = field(default_factory=dict)

    def get_int(self, name: str) -> int:
        """
        Read an integer field.

        Raises:
            KeyError: If the field is missing
            ValueError: If the value is not an integer
        """
        return int(self.fields[name])


class LogStore(ABC):
    """Capability surface of an append-only log store with consumer groups."""

    @abstractmethod
    def append(self, stream: str, fields: Dict[str, str]) -> str:
        """Append an entry and return its store-assigned ID."""

    @abstractmethod
    def group_create(self, stream: str, group: str, start_id: str = BEGINNING) -> None:
        """Create a consumer group, creating the stream if needed."""

    @abstractmethod
    def group_read(
        self,
        stream: str,
        group: str,
        consumer: str,
        cursor: str,
        count: int,
        block_ms: int,
    ) -> List[StreamEntry]:
        """
        Read entries on behalf of a group member.

        With ``cursor == UNDELIVERED`` the call blocks up to ``block_ms`` for
        new entries and returns an empty list on timeout. With any other
        cursor it returns the member's pending entries with IDs greater than
        the cursor, without blocking.
        """

    @abstractmethod
    def ack(self, stream: str, group: str, entry_id: str) -> int:
        """Acknowledge an entry; returns the number of entries removed from pending."""

    @abstractmethod
    def delete(self, stream: str) -> None:
        """Delete the stream and its groups."""

    @abstractmethod
    def exists(self, stream: str) -> bool:
        """Check whether the stream exists."""

    @abstractmethod
    def length(self, stream: str) -> int:
        """Number of entries in the stream."""

    @abstractmethod
    def range(
        self,
        stream: str,
        start: str = RANGE_MIN,
        end: str = RANGE_MAX,
        count: int = 10,
    ) -> List[StreamEntry]:
        """Entries with ``start <= id <= end`` in ascending order."""

    @abstractmethod
    def revrange(
        self,
        stream: str,
        end: str = RANGE_MAX,
        start: str = RANGE_MIN,
        count: int = 10,
    ) -> List[StreamEntry]:
        """Entries with ``start <= id <= end`` in descending order."""

    @abstractmethod
    def pending_count(self, stream: str, group: str) -> int:
        """Number of delivered but unacknowledged entries across the group."""

    def close(self) -> None:
        """Release any connection held by the store."""
