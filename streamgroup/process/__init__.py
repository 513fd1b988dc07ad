"""Consumer process management."""

from streamgroup.process.launcher import (
    ConsumerProcess,
    ProcessError,
    ProcessHandle,
    ProcessLauncher,
    ProcessNotFound,
    ProcessSpawnFailed,
    SubprocessLauncher,
    consumer_command,
)

__all__ = [
    "ConsumerProcess",
    "ProcessError",
    "ProcessHandle",
    "ProcessLauncher",
    "ProcessNotFound",
    "ProcessSpawnFailed",
    "SubprocessLauncher",
    "consumer_command",
]
