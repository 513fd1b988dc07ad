"""
Number producer.

Appends the natural numbers to a stream, one entry per iteration, pausing a
random interval between appends. The interval is divided by the fleet size
so the aggregate rate stays roughly constant whatever the number of
consumers.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Optional

from streamgroup.store.base import LogStore
from streamgroup.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ProducerConfig:
    """
    Configuration for the number producer.

    Attributes:
        members: Fleet size the append rate is scaled to
        min_interval_ms: Lower bound of the random interval before scaling
        max_interval_ms: Upper bound of the random interval before scaling
        field: Entry field carrying the number
        start: First number produced
        limit: Stop by itself after this many appends (None: until stopped)
    """
    members: int = 10
    min_interval_ms: int = 1000
    max_interval_ms: int = 2000
    field: str = "n"
    start: int = 0
    limit: Optional[int] = None

    def __post_init__(self) -> None:
        if self.members < 1:
            raise ValueError(f"members must be at least 1, got {self.members}")
        if not 0 <= self.min_interval_ms <= self.max_interval_ms:
            raise ValueError(
                f"Invalid interval range: {self.min_interval_ms}..{self.max_interval_ms}"
            )

    @classmethod
    def from_config(cls, config) -> "ProducerConfig":
        """Build from a Config instance."""
        return cls(
            members=int(config.get("fleet.members")),
            min_interval_ms=int(config.get("producer.min_interval_ms")),
            max_interval_ms=int(config.get("producer.max_interval_ms")),
            field=config.get("producer.field"),
        )

    def interval_ms(self, rng: random.Random) -> int:
        """Draw the pause before the next append."""
        return rng.randint(self.min_interval_ms, self.max_interval_ms) // self.members


class NumberProducer:
    """
    Appends 0, 1, 2, ... to a stream until stopped.

    The stop request is checked once per iteration, before the append, so a
    stop takes effect within one append-plus-sleep cycle.

    Example:
        producer = NumberProducer(store, "numbers")
        task = asyncio.create_task(producer.run())
        ...
        producer.stop()
        appended = await task
    """

    def __init__(
        self,
        store: LogStore,
        stream: str,
        config: Optional[ProducerConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize producer.

        Args:
            store: Log store
            stream: Stream to append to
            config: Producer configuration
            rng: Random source for intervals
        """
        self.store = store
        self.stream = stream
        self.config = config or ProducerConfig()
        self._rng = rng or random.Random()

        self.next_value = self.config.start
        self.appended = 0
        self.last_id: Optional[str] = None
        self._stop_requested = asyncio.Event()

    def stop(self) -> None:
        """Request the producer loop to end at its next iteration."""
        self._stop_requested.set()

    @property
    def stopping(self) -> bool:
        return self._stop_requested.is_set()

    async def run(self) -> int:
        """
        Produce until stopped or the configured limit is reached.

        Returns:
            Number of entries appended
        """
        logger.info(
            "Producer started",
            stream=self.stream,
            start=self.next_value,
            members=self.config.members,
        )

        while True:
            if self._stop_requested.is_set():
                logger.info("Producer stop signal received", appended=self.appended)
                break

            if self.config.limit is not None and self.appended >= self.config.limit:
                logger.info("Producer limit reached", appended=self.appended)
                break

            n = self.next_value
            self.last_id = await asyncio.to_thread(
                self.store.append,
                self.stream,
                {self.config.field: str(n)},
            )
            self.appended += 1
            self.next_value += 1

            logger.debug("Number produced", n=n, entry_id=self.last_id)

            await asyncio.sleep(self.config.interval_ms(self._rng) / 1000.0)

        return self.appended
