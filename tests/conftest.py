"""Shared fixtures: in-process stand-ins for consumer processes."""

import itertools
import threading
from typing import Dict, List, Optional

import pytest

from streamgroup.consumer.worker import ConsumerConfig, StreamConsumer
from streamgroup.process.launcher import (
    ProcessHandle,
    ProcessLauncher,
    ProcessNotFound,
    ProcessSpawnFailed,
)
from streamgroup.store.base import LogStore, StoreError, StreamEntry
from streamgroup.store.memory import MemoryLogStore

STREAM = "numbers"
GROUP = "primes"


class ConsumerKilled(Exception):
    """Raised inside a thread-backed consumer once it has been killed."""


class KillSwitchStore(LogStore):
    """Store wrapper that fails every call after its consumer is killed."""

    def __init__(self, inner: LogStore):
        self.inner = inner
        self.killed = threading.Event()

    def _check(self) -> None:
        if self.killed.is_set():
            raise ConsumerKilled()

    def append(self, stream, fields):
        self._check()
        return self.inner.append(stream, fields)

    def group_create(self, stream, group, start_id="0"):
        self._check()
        self.inner.group_create(stream, group, start_id)

    def group_read(self, stream, group, consumer, cursor, count, block_ms) -> List[StreamEntry]:
        self._check()
        entries = self.inner.group_read(stream, group, consumer, cursor, count, block_ms)
        # A process killed mid-read never sees the reply
        self._check()
        return entries

    def ack(self, stream, group, entry_id):
        self._check()
        return self.inner.ack(stream, group, entry_id)

    def delete(self, stream):
        self._check()
        self.inner.delete(stream)

    def exists(self, stream):
        self._check()
        return self.inner.exists(stream)

    def length(self, stream):
        return self.inner.length(stream)

    def range(self, stream, start="-", end="+", count=10):
        return self.inner.range(stream, start, end, count)

    def revrange(self, stream, end="+", start="-", count=10):
        return self.inner.revrange(stream, end, start, count)

    def pending_count(self, stream, group):
        return self.inner.pending_count(stream, group)


class ThreadHandle(ProcessHandle):
    """Handle on a consumer running in a thread."""

    _pids = itertools.count(1000)

    def __init__(self, name: str, consumer: StreamConsumer, switch: KillSwitchStore):
        self.name = name
        self.consumer = consumer
        self.switch = switch
        self._pid = next(self._pids)
        self.error: Optional[StoreError] = None
        self.thread = threading.Thread(target=self._run, name=name, daemon=True)

    def _run(self) -> None:
        try:
            self.consumer.run()
        except ConsumerKilled:
            pass
        except StoreError as e:
            # A real consumer process exits with the error
            self.error = e

    @property
    def pid(self) -> Optional[int]:
        return self._pid

    def is_alive(self) -> bool:
        return self.thread.is_alive() and not self.switch.killed.is_set()


class ThreadLauncher(ProcessLauncher):
    """
    Runs each consumer in a thread against a shared in-memory store.

    Killing a consumer makes its next store call fail, the way a killed
    process stops talking to Redis.
    """

    def __init__(
        self,
        store: LogStore,
        stream: str = STREAM,
        group: str = GROUP,
        config: Optional[ConsumerConfig] = None,
        processor=None,
        fail_after: Optional[int] = None,
    ):
        self.store = store
        self.stream = stream
        self.group = group
        self.config = config or ConsumerConfig(initial_block_ms=10, max_idle_retries=2)
        self.processor = processor
        self.fail_after = fail_after

        self.handles: List[ThreadHandle] = []
        self.terminated: List[str] = []
        self.spawn_counts: Dict[str, int] = {}

    def spawn(self, name: str) -> ProcessHandle:
        if self.fail_after is not None and len(self.handles) >= self.fail_after:
            raise ProcessSpawnFailed(f"Failure creating new consumer: {name}")

        switch = KillSwitchStore(self.store)
        kwargs = {"processor": self.processor} if self.processor else {}
        consumer = StreamConsumer(switch, self.stream, self.group, name, self.config, **kwargs)
        handle = ThreadHandle(name, consumer, switch)
        handle.thread.start()

        self.handles.append(handle)
        self.spawn_counts[name] = self.spawn_counts.get(name, 0) + 1
        return handle

    def terminate(self, handle: ProcessHandle) -> None:
        if not handle.is_alive():
            raise ProcessNotFound(f"Consumer {handle.name} already exited")
        handle.switch.killed.set()
        handle.thread.join(timeout=5.0)
        self.terminated.append(handle.name)

    def join_all(self, timeout: float = 10.0) -> None:
        for handle in self.handles:
            handle.thread.join(timeout=timeout)


@pytest.fixture
def store():
    """In-memory store with the numbers stream and primes group."""
    memory_store = MemoryLogStore()
    memory_store.group_create(STREAM, GROUP)
    return memory_store


@pytest.fixture
def quick_store():
    """Non-blocking in-memory store with the numbers stream and primes group."""
    memory_store = MemoryLogStore(blocking=False)
    memory_store.group_create(STREAM, GROUP)
    return memory_store
