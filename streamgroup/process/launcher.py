"""
Consumer process management.

Consumers run as separate OS processes so they can be killed without
warning. A roster entry pairs a logical consumer name with the handle of
the process currently running under that name; restarting a consumer
produces a new entry rather than mutating the old one.
"""

import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from streamgroup.utils.logging import get_logger

logger = get_logger(__name__)


class ProcessError(Exception):
    """Base class for process management failures."""
    pass


class ProcessSpawnFailed(ProcessError):
    """A consumer process could not be started."""
    pass


class ProcessNotFound(ProcessError):
    """The process to terminate is no longer running."""
    pass


class ProcessHandle(ABC):
    """Opaque handle on a running consumer."""

    @property
    @abstractmethod
    def pid(self) -> Optional[int]:
        """OS process ID, if the handle is backed by a process."""

    @abstractmethod
    def is_alive(self) -> bool:
        """Whether the process is still running."""


@dataclass(frozen=True)
class ConsumerProcess:
    """
    A logical consumer and the process currently serving it.

    Attributes:
        name: Logical consumer name, stable across restarts
        handle: Handle of the current process instance
    """
    name: str
    handle: ProcessHandle


class ProcessLauncher(ABC):
    """Starts and kills consumer processes by logical name."""

    @abstractmethod
    def spawn(self, name: str) -> ProcessHandle:
        """
        Start a consumer under a logical name.

        Raises:
            ProcessSpawnFailed: If the process cannot be started
        """

    @abstractmethod
    def terminate(self, handle: ProcessHandle) -> None:
        """
        Kill a consumer process and reap it.

        Raises:
            ProcessNotFound: If the process had already exited
        """

    def start(self, name: str) -> ConsumerProcess:
        """Spawn a consumer and wrap it in a roster entry."""
        return ConsumerProcess(name, self.spawn(name))

    def terminate_quietly(self, consumer: ConsumerProcess) -> bool:
        """
        Terminate a roster entry, treating an already-dead process as done.

        Returns:
            True if a live process was killed
        """
        try:
            self.terminate(consumer.handle)
        except ProcessNotFound:
            logger.warning(
                "Consumer process already exited",
                consumer=consumer.name,
                pid=consumer.handle.pid,
            )
            return False
        return True


class PopenHandle(ProcessHandle):
    """Handle backed by a subprocess.Popen."""

    def __init__(self, process: subprocess.Popen):
        self.process = process

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid

    def is_alive(self) -> bool:
        return self.process.poll() is None

    def __repr__(self) -> str:
        return f"PopenHandle(pid={self.pid}, alive={self.is_alive()})"


class SubprocessLauncher(ProcessLauncher):
    """
    Launches each consumer as a child process.

    Example:
        launcher = SubprocessLauncher(consumer_command("numbers", "primes"))
        handle = launcher.spawn("WORKER-01")
        launcher.terminate(handle)
    """

    def __init__(
        self,
        command_factory: Callable[[str], Sequence[str]],
        kill_timeout: float = 5.0,
    ):
        """
        Initialize launcher.

        Args:
            command_factory: Builds the argv for a consumer name
            kill_timeout: Seconds to wait for a killed process to be reaped
        """
        self.command_factory = command_factory
        self.kill_timeout = kill_timeout

    def spawn(self, name: str) -> ProcessHandle:
        command = list(self.command_factory(name))
        try:
            process = subprocess.Popen(command)
        except OSError as e:
            raise ProcessSpawnFailed(f"Failure creating consumer {name}: {e}") from e

        logger.debug("Consumer process spawned", consumer=name, pid=process.pid)
        return PopenHandle(process)

    def terminate(self, handle: ProcessHandle) -> None:
        if not isinstance(handle, PopenHandle):
            raise TypeError(f"Unsupported handle: {handle!r}")

        if not handle.is_alive():
            raise ProcessNotFound(
                f"Process {handle.pid} already exited with {handle.process.returncode}"
            )

        handle.process.kill()
        try:
            handle.process.wait(timeout=self.kill_timeout)
        except subprocess.TimeoutExpired as e:
            raise ProcessError(f"Process {handle.pid} did not exit after kill") from e


def consumer_command(
    stream: str,
    group: str,
    host: str = "127.0.0.1",
    port: int = 6379,
    db: int = 0,
    extra_args: Optional[List[str]] = None,
) -> Callable[[str], List[str]]:
    """
    Build a command factory that runs ``streamgroup consume`` for a name.

    Args:
        stream: Stream name
        group: Consumer group name
        host: Redis host
        port: Redis port
        db: Redis database
        extra_args: Additional CLI arguments

    Returns:
        Function mapping a consumer name to an argv list
    """
    def build(name: str) -> List[str]:
        return [
            sys.executable, "-m", "streamgroup.main",
            "--host", host,
            "--port", str(port),
            "--db", str(db),
            *(extra_args or []),
            "consume", stream, group, name,
        ]

    return build
