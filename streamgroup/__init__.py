"""
streamgroup - cooperative consumer groups over an append-only stream.

This package coordinates independent consumer processes that drain a stream
through a shared consumer group while a producer appends numbers and a chaos
controller kills and restarts consumers, with:
- Stream entry ID arithmetic
- A log store interface with Redis Streams and in-memory implementations
- A two-phase (recover, then live) consumer with idle backoff
- Process supervision, fault injection and ordered shutdown
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
