"""Tests for the Redis Streams log store adapter."""

from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from streamgroup.store.base import (
    OLDEST_PENDING,
    UNDELIVERED,
    AckFailed,
    InvalidArgument,
    StoreUnavailable,
    StreamEntry,
)
from streamgroup.store.redis_store import RedisLogStore
from streamgroup.utils.config import Config


@pytest.fixture
def client():
    """Create a stand-in redis-py client."""
    return MagicMock()


@pytest.fixture
def redis_store(client):
    """Create a store around the stand-in client."""
    return RedisLogStore(client=client)


class TestCommands:
    """Test command translation."""

    def test_append(self, redis_store, client):
        """Test append issues XADD with an auto ID."""
        client.xadd.return_value = "1-0"

        assert redis_store.append("numbers", {"n": "0"}) == "1-0"
        client.xadd.assert_called_once_with("numbers", {"n": "0"})

    def test_group_create_with_mkstream(self, redis_store, client):
        """Test group creation also creates the stream."""
        redis_store.group_create("numbers", "primes")

        client.xgroup_create.assert_called_once_with("numbers", "primes", id="0", mkstream=True)

    def test_group_read_arguments(self, redis_store, client):
        """Test XREADGROUP receives group, name, cursor, count and block."""
        client.xreadgroup.return_value = []

        redis_store.group_read("numbers", "primes", "WORKER-01", UNDELIVERED, 3, 400)

        client.xreadgroup.assert_called_once_with(
            "primes", "WORKER-01", {"numbers": ">"}, count=3, block=400,
        )

    def test_group_read_parses_resp2_reply(self, redis_store, client):
        """Test a list reply is turned into entries."""
        client.xreadgroup.return_value = [
            ["numbers", [("1-0", {"n": "0"}), ("1-1", {"n": "1"})]],
        ]

        entries = redis_store.group_read("numbers", "primes", "W", UNDELIVERED, 2, 100)

        assert entries == [StreamEntry("1-0", {"n": "0"}), StreamEntry("1-1", {"n": "1"})]

    def test_group_read_parses_resp3_reply(self, redis_store, client):
        """Test a dict reply is turned into entries."""
        client.xreadgroup.return_value = {"numbers": [[("1-0", {"n": "0"})]]}

        entries = redis_store.group_read("numbers", "primes", "W", UNDELIVERED, 2, 100)

        assert entries == [StreamEntry("1-0", {"n": "0"})]

    @pytest.mark.parametrize("reply", [None, []])
    def test_group_read_timeout(self, redis_store, client, reply):
        """Test a timed out read yields no entries."""
        client.xreadgroup.return_value = reply

        assert redis_store.group_read("numbers", "primes", "W", UNDELIVERED, 1, 100) == []

    def test_history_read_with_no_pending(self, redis_store, client):
        """Test a history read with nothing pending yields no entries."""
        client.xreadgroup.return_value = [["numbers", []]]

        assert redis_store.group_read("numbers", "primes", "W", OLDEST_PENDING, 1, 100) == []

    def test_deleted_pending_entry(self, redis_store, client):
        """Test a pending entry whose body was deleted has no fields."""
        client.xreadgroup.return_value = [["numbers", [("1-0", None)]]]

        entries = redis_store.group_read("numbers", "primes", "W", OLDEST_PENDING, 1, 100)

        assert entries == [StreamEntry("1-0", {})]

    def test_exists(self, redis_store, client):
        """Test EXISTS is reported as a bool."""
        client.exists.return_value = 1
        assert redis_store.exists("numbers") is True

        client.exists.return_value = 0
        assert redis_store.exists("numbers") is False

    def test_range_and_revrange(self, redis_store, client):
        """Test range bounds are passed through."""
        client.xrange.return_value = [("1-0", {"n": "0"})]
        client.xrevrange.return_value = [("1-0", {"n": "0"})]

        assert redis_store.range("numbers", "0-1", "+", 5)[0].id == "1-0"
        assert redis_store.revrange("numbers", "+", "0-1", 5)[0].id == "1-0"
        client.xrange.assert_called_once_with("numbers", min="0-1", max="+", count=5)
        client.xrevrange.assert_called_once_with("numbers", max="+", min="0-1", count=5)

    def test_pending_count(self, redis_store, client):
        """Test the XPENDING summary is reduced to its count."""
        client.xpending.return_value = {"pending": 4, "min": "1-0", "max": "1-3", "consumers": []}

        assert redis_store.pending_count("numbers", "primes") == 4

    def test_from_config(self):
        """Test building a store from configuration."""
        config = Config()
        config.set("redis.host", "redis.internal")
        config.set("redis.port", 6380)

        store = RedisLogStore.from_config(config, client_name="PRODUCER")

        assert store.host == "redis.internal"
        assert store.port == 6380
        assert store.client_name == "PRODUCER"


class TestErrorMapping:
    """Test redis-py exceptions map to store errors."""

    def test_connection_error_is_unavailable(self, redis_store, client):
        """Test connection loss surfaces as StoreUnavailable."""
        client.xreadgroup.side_effect = RedisConnectionError("Connection refused")

        with pytest.raises(StoreUnavailable, match="XREADGROUP"):
            redis_store.group_read("numbers", "primes", "W", UNDELIVERED, 1, 100)

    def test_timeout_is_unavailable(self, redis_store, client):
        """Test socket timeouts surface as StoreUnavailable."""
        client.ping.side_effect = RedisTimeoutError("Timeout")

        with pytest.raises(StoreUnavailable):
            redis_store.connect()

    def test_response_error_is_invalid_argument(self, redis_store, client):
        """Test server-side rejections surface as InvalidArgument."""
        client.xgroup_create.side_effect = ResponseError("BUSYGROUP Consumer Group name already exists")

        with pytest.raises(InvalidArgument, match="BUSYGROUP"):
            redis_store.group_create("numbers", "primes")

    def test_ack_rejection_is_ack_failed(self, redis_store, client):
        """Test XACK rejections surface as AckFailed."""
        client.xack.side_effect = ResponseError("WRONGTYPE")

        with pytest.raises(AckFailed):
            redis_store.ack("numbers", "primes", "1-0")

    def test_original_error_is_chained(self, redis_store, client):
        """Test the redis-py exception is kept as the cause."""
        error = RedisConnectionError("gone")
        client.xadd.side_effect = error

        with pytest.raises(StoreUnavailable) as exc_info:
            redis_store.append("numbers", {"n": "1"})

        assert exc_info.value.__cause__ is error
