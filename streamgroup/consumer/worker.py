"""
Consumer group member.

A consumer drains a stream in two phases:

1. Recovering: re-read the entries already delivered to this member's name
   but never acknowledged (left behind by a previous process holding the
   same name), process and acknowledge them.
2. Live: read entries never delivered to any member of the group.

While live, every empty read doubles the block duration; after
``max_idle_retries`` doublings the next empty read ends the consumer.
"""

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from streamgroup.consumer.processing import is_prime
from streamgroup.store.base import (
    OLDEST_PENDING,
    UNDELIVERED,
    LogStore,
    StoreError,
    StoreUnavailable,
    StreamEntry,
)
from streamgroup.utils.logging import get_logger

logger = get_logger(__name__)


class ConsumerPhase(Enum):
    """Read phase of a consumer."""

    RECOVERING = "Recovering"  # Draining own pending entries
    LIVE = "Live"              # Reading undelivered entries


class StopReason(Enum):
    """Why a consumer's loop ended."""

    IDLE = "idle"
    STORE_UNAVAILABLE = "store_unavailable"


@dataclass
class ConsumerConfig:
    """
    Configuration for a group consumer.

    Attributes:
        initial_block_ms: Block duration of the first read and after any
            non-empty read
        max_idle_retries: Empty live reads tolerated before stopping
        min_batch: Smallest batch size requested
        max_batch: Largest batch size requested
        field: Entry field holding the number to process
    """
    initial_block_ms: int = 100
    max_idle_retries: int = 5
    min_batch: int = 1
    max_batch: int = 6
    field: str = "n"

    def __post_init__(self) -> None:
        if self.initial_block_ms <= 0:
            raise ValueError(f"initial_block_ms must be positive, got {self.initial_block_ms}")
        if self.max_idle_retries < 0:
            raise ValueError(f"max_idle_retries must be non-negative, got {self.max_idle_retries}")
        if not 1 <= self.min_batch <= self.max_batch:
            raise ValueError(
                f"Invalid batch range: {self.min_batch}..{self.max_batch}"
            )

    @classmethod
    def from_config(cls, config) -> "ConsumerConfig":
        """Build from a Config instance."""
        return cls(
            initial_block_ms=int(config.get("consumer.initial_block_ms")),
            max_idle_retries=int(config.get("consumer.max_idle_retries")),
            min_batch=int(config.get("consumer.min_batch")),
            max_batch=int(config.get("consumer.max_batch")),
            field=config.get("producer.field"),
        )


@dataclass
class ConsumerStats:
    """
    Summary of one consumer run.

    Attributes:
        processed: Entries processed and handed to ack
        recovered: Of those, entries processed while recovering
        primes: Entries the processor classified as prime
        skipped: Entries acknowledged without processing (deleted or malformed)
        ack_failures: Acknowledgments that raised
        empty_reads: Empty live reads
        block_durations: Block duration of every read issued, in order
        phase: Phase when the loop ended
        stop_reason: Why the loop ended
    """
    processed: int = 0
    recovered: int = 0
    primes: int = 0
    skipped: int = 0
    ack_failures: int = 0
    empty_reads: int = 0
    block_durations: List[int] = field(default_factory=list)
    phase: ConsumerPhase = ConsumerPhase.RECOVERING
    stop_reason: Optional[StopReason] = None


class StreamConsumer:
    """
    One member of a consumer group.

    Example:
        consumer = StreamConsumer(store, "numbers", "primes", "WORKER-01")
        stats = consumer.run()
        print(stats.processed, stats.stop_reason)
    """

    def __init__(
        self,
        store: LogStore,
        stream: str,
        group: str,
        name: str,
        config: Optional[ConsumerConfig] = None,
        processor: Callable[[int], bool] = is_prime,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize consumer.

        Args:
            store: Log store
            stream: Stream name
            group: Consumer group name
            name: Logical member name, stable across restarts
            config: Consumer configuration
            processor: Work applied to each entry's number
            rng: Random source for batch sizes
        """
        self.store = store
        self.stream = stream
        self.group = group
        self.name = name
        self.config = config or ConsumerConfig()
        self.processor = processor
        self._rng = rng or random.Random()

        self.phase = ConsumerPhase.RECOVERING
        self.cursor = OLDEST_PENDING
        self.idle_timeout_ms = self.config.initial_block_ms
        self.idle_retry_count = 0
        self.stopped = False

        self.stats = ConsumerStats()

    def run(self) -> ConsumerStats:
        """
        Read, process and acknowledge until idle.

        Returns:
            Run summary

        Raises:
            StoreUnavailable: If the store connection is lost
        """
        logger.info(
            "Consumer starting",
            consumer=self.name,
            stream=self.stream,
            group=self.group,
            phase=self.phase.value,
        )

        while self.step():
            pass

        logger.info(
            "Consumer stopped",
            consumer=self.name,
            reason=self.stats.stop_reason.value,
            processed=self.stats.processed,
            recovered=self.stats.recovered,
            ack_failures=self.stats.ack_failures,
        )
        return self.stats

    def step(self) -> bool:
        """
        Run one read iteration.

        Returns:
            False once the consumer has stopped
        """
        if self.stopped:
            return False

        batch_size = self._rng.randint(self.config.min_batch, self.config.max_batch)
        self.stats.block_durations.append(self.idle_timeout_ms)

        try:
            entries = self.store.group_read(
                self.stream,
                self.group,
                self.name,
                self.cursor,
                batch_size,
                self.idle_timeout_ms,
            )
        except StoreUnavailable as e:
            self._stop(StopReason.STORE_UNAVAILABLE)
            logger.error(
                "Store unavailable, consumer exiting",
                consumer=self.name,
                error=str(e),
            )
            raise

        if not entries:
            return self._on_empty_read()

        self.idle_timeout_ms = self.config.initial_block_ms
        self.idle_retry_count = 0

        for entry in entries:
            self._process(entry)

        if self.phase == ConsumerPhase.RECOVERING:
            # Entries whose ack failed stay pending for the next instance
            self.cursor = entries[-1].id

        return True

    def _on_empty_read(self) -> bool:
        if self.phase == ConsumerPhase.RECOVERING:
            self._enter_live()
            return True

        self.stats.empty_reads += 1

        if self.idle_retry_count >= self.config.max_idle_retries:
            self._stop(StopReason.IDLE)
            return False

        self.idle_retry_count += 1
        self.idle_timeout_ms *= 2

        logger.debug(
            "No entries, backing off",
            consumer=self.name,
            retry=self.idle_retry_count,
            block_ms=self.idle_timeout_ms,
        )
        return True

    def _enter_live(self) -> None:
        logger.info(
            "Recovery complete, switching to live entries",
            consumer=self.name,
            recovered=self.stats.recovered,
        )
        self.phase = ConsumerPhase.LIVE
        self.stats.phase = self.phase
        self.cursor = UNDELIVERED
        self.idle_timeout_ms = self.config.initial_block_ms
        self.idle_retry_count = 0

    def _stop(self, reason: StopReason) -> None:
        self.stopped = True
        self.stats.stop_reason = reason
        self.stats.phase = self.phase

    def _process(self, entry: StreamEntry) -> None:
        if not entry.fields:
            logger.warning(
                "Pending entry was deleted from the stream",
                consumer=self.name,
                entry_id=entry.id,
            )
            self.stats.skipped += 1
            self._ack(entry)
            return

        try:
            n = entry.get_int(self.config.field)
        except (KeyError, ValueError):
            logger.warning(
                "Entry has no usable number, discarding",
                consumer=self.name,
                entry_id=entry.id,
                fields=entry.fields,
            )
            self.stats.skipped += 1
            self._ack(entry)
            return

        prime = self.processor(n)

        self.stats.processed += 1
        if self.phase == ConsumerPhase.RECOVERING:
            self.stats.recovered += 1
        if prime:
            self.stats.primes += 1

        logger.info(
            "Entry processed",
            consumer=self.name,
            entry_id=entry.id,
            n=n,
            prime=prime,
            phase=self.phase.value,
        )

        self._ack(entry)

    def _ack(self, entry: StreamEntry) -> None:
        try:
            acked = self.store.ack(self.stream, self.group, entry.id)
        except StoreError as e:
            self.stats.ack_failures += 1
            logger.warning(
                "Acknowledgment failed, entry stays pending",
                consumer=self.name,
                entry_id=entry.id,
                error=str(e),
            )
            return

        if not acked:
            logger.warning(
                "Entry was not pending at acknowledgment",
                consumer=self.name,
                entry_id=entry.id,
            )
