"""
Consumer group orchestrator.

Sets up the stream and group, starts the consumer fleet as separate
processes, runs the producer and the chaos controller as background tasks
until told to stop, then tears everything down in a fixed order:

1. stop the producer, so no new entries arrive during teardown
2. stop the chaos controller and take back the roster, so nothing restarts
   a consumer that is being killed
3. kill every consumer process in the roster
4. delete the stream
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, List, Optional

from streamgroup.chaos.controller import ChaosConfig, ChaosController
from streamgroup.process.launcher import (
    ConsumerProcess,
    ProcessError,
    ProcessLauncher,
    ProcessSpawnFailed,
)
from streamgroup.producer.producer import NumberProducer, ProducerConfig
from streamgroup.store.base import BEGINNING, LogStore, StoreError
from streamgroup.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class OrchestratorConfig:
    """
    Configuration for the orchestrator.

    Attributes:
        stream: Stream name
        group: Consumer group name
        members: Number of consumer processes
        name_prefix: Prefix of the logical consumer names
    """
    stream: str = "numbers"
    group: str = "primes"
    members: int = 10
    name_prefix: str = "WORKER"

    @classmethod
    def from_config(cls, config) -> "OrchestratorConfig":
        """Build from a Config instance."""
        return cls(
            stream=config.get("stream.key"),
            group=config.get("stream.group"),
            members=int(config.get("fleet.members")),
            name_prefix=config.get("fleet.name_prefix"),
        )

    def consumer_names(self) -> List[str]:
        """Logical consumer names, e.g. WORKER-01 .. WORKER-10."""
        return [f"{self.name_prefix}-{i:02d}" for i in range(1, self.members + 1)]


@dataclass
class OrchestratorReport:
    """
    Outcome of a run.

    Attributes:
        appended: Entries the producer appended
        restarts: Consumers killed and restarted by the chaos controller
        terminated: Live consumer processes killed at shutdown
        stream_deleted: Whether the stream was removed
    """
    appended: int = 0
    restarts: int = 0
    terminated: int = 0
    stream_deleted: bool = False


class Orchestrator:
    """
    Runs a chaos-tested consumer group end to end.

    Example:
        orchestrator = Orchestrator(store, SubprocessLauncher(consumer_command("numbers", "primes")))
        report = await orchestrator.run(stop_event.wait())
    """

    def __init__(
        self,
        store: LogStore,
        launcher: ProcessLauncher,
        config: Optional[OrchestratorConfig] = None,
        producer_config: Optional[ProducerConfig] = None,
        chaos_config: Optional[ChaosConfig] = None,
        producer_store: Optional[LogStore] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            store: Log store used for setup and teardown
            launcher: Consumer process launcher
            config: Orchestrator configuration
            producer_config: Producer configuration (members follows config)
            chaos_config: Chaos configuration
            producer_store: Separate store connection for the producer
            rng: Random source shared by producer and chaos
        """
        self.store = store
        self.launcher = launcher
        self.config = config or OrchestratorConfig()
        self.producer_config = producer_config or ProducerConfig(members=self.config.members)
        self.chaos_config = chaos_config or ChaosConfig()
        self.producer_store = producer_store or store
        self._rng = rng or random.Random()

        self.producer: Optional[NumberProducer] = None
        self.chaos: Optional[ChaosController] = None
        self.report = OrchestratorReport()

    def setup(self) -> None:
        """Recreate the stream with an empty group reading from the beginning."""
        self.store.delete(self.config.stream)
        self.store.group_create(self.config.stream, self.config.group, BEGINNING)
        logger.info(
            "Stream and group created",
            stream=self.config.stream,
            group=self.config.group,
        )

    def spawn_fleet(self) -> List[ConsumerProcess]:
        """
        Start one consumer process per logical name.

        Raises:
            ProcessSpawnFailed: After killing the consumers already started
                and deleting the stream
        """
        roster: List[ConsumerProcess] = []
        try:
            for name in self.config.consumer_names():
                roster.append(self.launcher.start(name))
        except ProcessSpawnFailed as e:
            logger.error("Consumer fleet startup failed", error=str(e), started=len(roster))
            for consumer in roster:
                self.launcher.terminate_quietly(consumer)
            self.store.delete(self.config.stream)
            raise

        logger.info("Consumer fleet started", members=len(roster))
        return roster

    async def run(self, stop_trigger: Awaitable) -> OrchestratorReport:
        """
        Run until the stop trigger completes, then shut down.

        Args:
            stop_trigger: Awaitable that completes when the operator asks to stop

        Returns:
            Run report

        Raises:
            Exception: The first producer or chaos failure, after shutdown
        """
        self.setup()
        roster = self.spawn_fleet()

        self.chaos = ChaosController(roster, self.launcher, self.chaos_config, self._rng)
        self.producer = NumberProducer(
            self.producer_store, self.config.stream, self.producer_config, self._rng
        )

        chaos_task = asyncio.create_task(self.chaos.run(), name="chaos")
        producer_task = asyncio.create_task(self.producer.run(), name="producer")
        stop_task = asyncio.ensure_future(stop_trigger)

        try:
            await self._wait_for_stop(stop_task, [chaos_task, producer_task])
        finally:
            if not stop_task.done():
                stop_task.cancel()
            await self.shutdown(producer_task, chaos_task)

        return self.report

    async def _wait_for_stop(self, stop_task: asyncio.Future, workers: List[asyncio.Task]) -> None:
        """Wait for the stop trigger or a background task failure."""
        waiting = {stop_task, *workers}
        while waiting:
            done, waiting = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)
            if stop_task in done:
                logger.info("Stop requested")
                stop_task.result()
                return
            for task in done:
                if task.exception() is not None:
                    logger.error(
                        "Background task failed",
                        task=task.get_name(),
                        error=str(task.exception()),
                    )
                    return
                logger.info("Background task finished", task=task.get_name())

    async def shutdown(self, producer_task: asyncio.Task, chaos_task: asyncio.Task) -> None:
        """
        Stop producer, chaos and consumers, then delete the stream.

        Raises:
            Exception: The first producer, chaos, terminate or delete failure,
                after every step has been attempted
        """
        failures: List[BaseException] = []

        logger.info("Stopping producer")
        self.producer.stop()
        try:
            await producer_task
        except Exception as e:
            failures.append(e)
            logger.error("Producer failed", error=str(e), exc_info=True)
        self.report.appended = self.producer.appended

        logger.info("Stopping chaos controller")
        self.chaos.stop()
        try:
            roster = await chaos_task
        except Exception as e:
            failures.append(e)
            logger.error("Chaos controller failed", error=str(e), exc_info=True)
            roster = self.chaos.roster
        self.report.restarts = self.chaos.restarts

        logger.info("Stopping consumer processes", consumers=len(roster))
        for consumer in roster:
            try:
                if self.launcher.terminate_quietly(consumer):
                    self.report.terminated += 1
            except ProcessError as e:
                failures.append(e)
                logger.error(
                    "Failed to terminate consumer",
                    consumer=consumer.name,
                    pid=consumer.handle.pid,
                    error=str(e),
                )

        try:
            self.store.delete(self.config.stream)
        except StoreError as e:
            failures.append(e)
            logger.error("Failed to delete stream", stream=self.config.stream, error=str(e))
        else:
            self.report.stream_deleted = True
        logger.info(
            "Shutdown complete",
            appended=self.report.appended,
            restarts=self.report.restarts,
            terminated=self.report.terminated,
        )

        if failures:
            raise failures[0]
