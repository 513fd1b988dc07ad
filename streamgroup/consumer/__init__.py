"""Consumer group members."""

from streamgroup.consumer.processing import is_prime
from streamgroup.consumer.worker import (
    ConsumerConfig,
    ConsumerPhase,
    ConsumerStats,
    StopReason,
    StreamConsumer,
)

__all__ = [
    "ConsumerConfig",
    "ConsumerPhase",
    "ConsumerStats",
    "StopReason",
    "StreamConsumer",
    "is_prime",
]
