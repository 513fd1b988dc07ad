"""
Chaos controller.

Randomly kills a consumer process and immediately starts a replacement under
the same logical name. The replacement begins by recovering whatever the
killed instance left pending, which is what the chaos run exercises.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import List, Optional

from streamgroup.process.launcher import ConsumerProcess, ProcessLauncher
from streamgroup.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ChaosConfig:
    """
    Configuration for the chaos controller.

    Attributes:
        kill_odds: One kill chance in this many iterations
        min_sleep_ms: Shortest pause between iterations
        max_sleep_ms: Longest pause between iterations
    """
    kill_odds: int = 11
    min_sleep_ms: int = 1000
    max_sleep_ms: int = 2000

    def __post_init__(self) -> None:
        if self.kill_odds < 1:
            raise ValueError(f"kill_odds must be at least 1, got {self.kill_odds}")
        if not 0 <= self.min_sleep_ms <= self.max_sleep_ms:
            raise ValueError(
                f"Invalid sleep range: {self.min_sleep_ms}..{self.max_sleep_ms}"
            )

    @classmethod
    def from_config(cls, config) -> "ChaosConfig":
        """Build from a Config instance."""
        return cls(
            kill_odds=int(config.get("chaos.kill_odds")),
            min_sleep_ms=int(config.get("chaos.min_sleep_ms")),
            max_sleep_ms=int(config.get("chaos.max_sleep_ms")),
        )


class ChaosController:
    """
    Kills and restarts random consumers until stopped.

    The controller owns the roster while it runs; ``run()`` hands the final
    roster, including replacements, back to the caller.

    Example:
        chaos = ChaosController(roster, launcher)
        task = asyncio.create_task(chaos.run())
        ...
        chaos.stop()
        roster = await task
    """

    def __init__(
        self,
        roster: List[ConsumerProcess],
        launcher: ProcessLauncher,
        config: Optional[ChaosConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize chaos controller.

        Args:
            roster: Running consumers, taken over by the controller
            launcher: Process launcher used to kill and respawn
            config: Chaos configuration
            rng: Random source for kill decisions, victims and pauses
        """
        self.roster = list(roster)
        self.launcher = launcher
        self.config = config or ChaosConfig()
        self._rng = rng or random.Random()

        self.restarts = 0
        self._stop_requested = asyncio.Event()

    def stop(self) -> None:
        """Request the chaos loop to end at its next iteration."""
        self._stop_requested.set()

    def should_strike(self) -> bool:
        """Decide whether this iteration kills a consumer."""
        return bool(self.roster) and self._rng.randrange(self.config.kill_odds) == 0

    def restart(self, index: int) -> ConsumerProcess:
        """
        Kill the consumer in a roster slot and install its replacement.

        Args:
            index: Roster slot

        Returns:
            The replacement roster entry

        Raises:
            ProcessError: If the victim cannot be killed; the slot keeps it so
                shutdown can try again
            ProcessSpawnFailed: If the replacement cannot be started; the slot
                keeps the killed entry
        """
        victim = self.roster[index]
        self.launcher.terminate_quietly(victim)

        replacement = self.launcher.start(victim.name)
        self.roster[index] = replacement
        self.restarts += 1

        logger.info(
            "CHAOS: Restarted consumer",
            consumer=victim.name,
            old_pid=victim.handle.pid,
            new_pid=replacement.handle.pid,
            restarts=self.restarts,
        )
        return replacement

    async def run(self) -> List[ConsumerProcess]:
        """
        Inject failures until stopped.

        Returns:
            The current roster
        """
        logger.info(
            "Chaos controller started",
            consumers=len(self.roster),
            kill_odds=self.config.kill_odds,
        )

        while True:
            if self._stop_requested.is_set():
                logger.info("Chaos stop signal received", restarts=self.restarts)
                break

            if self.should_strike():
                victim = self._rng.randrange(len(self.roster))
                await asyncio.to_thread(self.restart, victim)

            pause_ms = self._rng.randint(self.config.min_sleep_ms, self.config.max_sleep_ms)
            await asyncio.sleep(pause_ms / 1000.0)

        return self.roster
