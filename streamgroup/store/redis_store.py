"""
Redis Streams log store.

Maps the log store interface onto redis-py stream commands (XADD,
XREADGROUP, XACK, XGROUP CREATE, ...) and translates redis-py exceptions
into the store error taxonomy.
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import DataError, RedisError, ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from streamgroup.store.base import (
    BEGINNING,
    RANGE_MAX,
    RANGE_MIN,
    AckFailed,
    InvalidArgument,
    LogStore,
    StoreError,
    StoreUnavailable,
    StreamEntry,
)
from streamgroup.utils.logging import get_logger

logger = get_logger(__name__)


@contextmanager
def _translate_errors(command: str, error_class: type = InvalidArgument) -> Iterator[None]:
    """Re-raise redis-py exceptions as store errors."""
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError) as e:
        raise StoreUnavailable(f"{command}: {e}") from e
    except (ResponseError, DataError) as e:
        raise error_class(f"{command}: {e}") from e
    except RedisError as e:
        raise StoreError(f"{command}: {e}") from e


def _to_entries(items: Optional[List[Any]]) -> List[StreamEntry]:
    return [StreamEntry(entry_id, dict(fields or {})) for entry_id, fields in items or []]


class RedisLogStore(LogStore):
    """
    Log store backed by a Redis server.

    Example:
        store = RedisLogStore(host="127.0.0.1", port=6379, client_name="PRODUCER")
        store.connect()
        store.append("numbers", {"n": "0"})
        store.close()
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 6379,
        db: int = 0,
        client_name: Optional[str] = None,
        connection_timeout: int = 5,
        client: Optional[redis.Redis] = None,
    ):
        """
        Initialize Redis store.

        Args:
            host: Redis host
            port: Redis port
            db: Database number
            client_name: Connection name reported by CLIENT LIST
            connection_timeout: Socket connect timeout in seconds
            client: Pre-built client (for testing)
        """
        self.host = host
        self.port = port
        self.db = db
        self.client_name = client_name

        # No socket read timeout: blocking reads are bounded by their BLOCK argument
        self._client = client or redis.Redis(
            host=host,
            port=port,
            db=db,
            client_name=client_name,
            decode_responses=True,
            socket_connect_timeout=connection_timeout,
            health_check_interval=30,
        )

    @classmethod
    def from_config(cls, config, client_name: Optional[str] = None) -> "RedisLogStore":
        """Build a store from a Config instance."""
        return cls(
            host=config.get("redis.host"),
            port=int(config.get("redis.port")),
            db=int(config.get("redis.db")),
            client_name=client_name,
        )

    def connect(self) -> None:
        """
        Verify the server is reachable.

        Raises:
            StoreUnavailable: If the server cannot be reached
        """
        with _translate_errors("PING"):
            self._client.ping()
        logger.info(
            "Connected to Redis",
            host=self.host,
            port=self.port,
            db=self.db,
            client_name=self.client_name,
        )

    def append(self, stream: str, fields: Dict[str, str]) -> str:
        with _translate_errors("XADD"):
            return self._client.xadd(stream, fields)

    def group_create(self, stream: str, group: str, start_id: str = BEGINNING) -> None:
        with _translate_errors("XGROUP CREATE"):
            self._client.xgroup_create(stream, group, id=start_id, mkstream=True)

    def group_read(
        self,
        stream: str,
        group: str,
        consumer: str,
        cursor: str,
        count: int,
        block_ms: int,
    ) -> List[StreamEntry]:
        with _translate_errors("XREADGROUP"):
            reply = self._client.xreadgroup(
                group,
                consumer,
                {stream: cursor},
                count=count,
                block=block_ms,
            )

        if not reply:
            return []
        if isinstance(reply, dict):
            # RESP3 replies are keyed by stream name
            return _to_entries(reply.get(stream, [[]])[0])
        return _to_entries(reply[0][1])

    def ack(self, stream: str, group: str, entry_id: str) -> int:
        with _translate_errors("XACK", error_class=AckFailed):
            return self._client.xack(stream, group, entry_id)

    def delete(self, stream: str) -> None:
        with _translate_errors("DEL"):
            self._client.delete(stream)

    def exists(self, stream: str) -> bool:
        with _translate_errors("EXISTS"):
            return self._client.exists(stream) > 0

    def length(self, stream: str) -> int:
        with _translate_errors("XLEN"):
            return self._client.xlen(stream)

    def range(
        self,
        stream: str,
        start: str = RANGE_MIN,
        end: str = RANGE_MAX,
        count: int = 10,
    ) -> List[StreamEntry]:
        with _translate_errors("XRANGE"):
            return _to_entries(self._client.xrange(stream, min=start, max=end, count=count))

    def revrange(
        self,
        stream: str,
        end: str = RANGE_MAX,
        start: str = RANGE_MIN,
        count: int = 10,
    ) -> List[StreamEntry]:
        with _translate_errors("XREVRANGE"):
            return _to_entries(self._client.xrevrange(stream, max=end, min=start, count=count))

    def pending_count(self, stream: str, group: str) -> int:
        with _translate_errors("XPENDING"):
            summary = self._client.xpending(stream, group)
        return int(summary["pending"])

    def remove(self, stream: str, entry_id: str) -> int:
        """Remove a single entry body (XDEL)."""
        with _translate_errors("XDEL"):
            return self._client.xdel(stream, entry_id)

    def close(self) -> None:
        try:
            self._client.close()
        except RedisError as e:
            logger.warning("Error closing Redis connection", error=str(e))
