"""
Stream entry ID arithmetic.

A stream entry ID is a two-part identifier ``<time>-<sequence>`` where both
parts are unsigned 64-bit integers. IDs are totally ordered by
``(time, sequence)``; the successor and predecessor of an ID are used by
range scans to turn an exclusive bound into the inclusive bound the store
expects.
"""

import re
from dataclasses import dataclass
from typing import Union

MAX_TIME = 2**64 - 1
MAX_SEQUENCE = 2**64 - 1

_ID_PATTERN = re.compile(r"(\d+)-(\d+)", re.ASCII)


class MalformedIdError(ValueError):
    """Raised when a stream entry ID cannot be parsed."""
    pass


@dataclass(frozen=True, order=True)
class StreamId:
    """
    Stream entry identifier.

    Attributes:
        time: Millisecond time component
        sequence: Sequence number within the millisecond
    """
    time: int
    sequence: int

    def __post_init__(self) -> None:
        """Validate ID components."""
        if not 0 <= self.time <= MAX_TIME:
            raise MalformedIdError(f"Time component out of range: {self.time}")
        if not 0 <= self.sequence <= MAX_SEQUENCE:
            raise MalformedIdError(f"Sequence component out of range: {self.sequence}")

    @classmethod
    def parse(cls, value: str) -> "StreamId":
        """
        Parse the canonical ``<time>-<sequence>`` form.

        Args:
            value: Textual ID

        Returns:
            Parsed StreamId

        Raises:
            MalformedIdError: If either part is not a non-negative integer
        """
        match = _ID_PATTERN.fullmatch(value) if isinstance(value, str) else None
        if match is None:
            raise MalformedIdError(f"Malformed stream entry ID: {value!r}")
        return cls(int(match.group(1)), int(match.group(2)))

    def successor(self) -> "StreamId":
        """
        Next ID in stream order.

        Raises:
            OverflowError: If this is the largest representable ID
        """
        if self.sequence < MAX_SEQUENCE:
            return StreamId(self.time, self.sequence + 1)
        if self.time == MAX_TIME:
            raise OverflowError(f"No successor for {self}")
        return StreamId(self.time + 1, 0)

    def predecessor(self) -> "StreamId":
        """
        Previous ID in stream order.

        Raises:
            OverflowError: If this is 0-0
        """
        if self.sequence > 0:
            return StreamId(self.time, self.sequence - 1)
        if self.time == 0:
            raise OverflowError(f"No predecessor for {self}")
        return StreamId(self.time - 1, MAX_SEQUENCE)

    def __str__(self) -> str:
        return f"{self.time}-{self.sequence}"


def incr_id(value: Union[str, StreamId]) -> str:
    """Return the textual successor of a textual or parsed ID."""
    stream_id = value if isinstance(value, StreamId) else StreamId.parse(value)
    return str(stream_id.successor())


def decr_id(value: Union[str, StreamId]) -> str:
    """Return the textual predecessor of a textual or parsed ID."""
    stream_id = value if isinstance(value, StreamId) else StreamId.parse(value)
    return str(stream_id.predecessor())
