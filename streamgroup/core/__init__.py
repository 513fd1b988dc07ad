"""Core value types shared by the store, consumers and range scans."""

from streamgroup.core.stream_id import MalformedIdError, StreamId, decr_id, incr_id

__all__ = ["MalformedIdError", "StreamId", "decr_id", "incr_id"]
