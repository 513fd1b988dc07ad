#!/usr/bin/env python3
"""
Command-line entry point for streamgroup.

Usage:
    # Run the chaos-tested consumer group demo against a local Redis
    python -m streamgroup.main run --members 10

    # Run a single consumer (normally spawned by ``run``)
    python -m streamgroup.main consume numbers primes WORKER-01

    # Sum the numbers in a stream with paged range queries
    python -m streamgroup.main range-sum numbers
"""

import argparse
import asyncio
import signal
import sys
import threading
from typing import List, Optional

from streamgroup.chaos.controller import ChaosConfig
from streamgroup.consumer.worker import ConsumerConfig, StreamConsumer
from streamgroup.orchestrator import Orchestrator, OrchestratorConfig, OrchestratorReport
from streamgroup.process.launcher import ProcessError, SubprocessLauncher, consumer_command
from streamgroup.producer.producer import ProducerConfig
from streamgroup.store.base import StoreError, StoreUnavailable
from streamgroup.store.range_scan import sum_field
from streamgroup.store.redis_store import RedisLogStore
from streamgroup.utils.config import Config
from streamgroup.utils.logging import bind_process_context, configure_logging, get_logger

logger = get_logger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description='streamgroup - chaos-tested consumer groups over Redis Streams'
    )

    parser.add_argument(
        '--host',
        type=str,
        help='Resolvable hostname or IP address of the Redis server (default: 127.0.0.1)'
    )

    parser.add_argument(
        '--port',
        type=int,
        help='TCP port number of the Redis server (default: 6379)'
    )

    parser.add_argument(
        '--db',
        type=int,
        help='Database number on the Redis server (default: 0)'
    )

    parser.add_argument(
        '--config',
        type=str,
        help='Additional YAML configuration file'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        help='Logging level (default: INFO)'
    )

    parser.add_argument(
        '--log-format',
        type=str,
        choices=['console', 'json'],
        help='Log output format (default: console)'
    )

    commands = parser.add_subparsers(dest='command', required=True)

    run = commands.add_parser('run', help='Run producer, consumer fleet and chaos controller')
    run.add_argument(
        '--members',
        type=int,
        help='Number of consumer processes (default: 10)'
    )

    consume = commands.add_parser('consume', help='Run a single group consumer')
    consume.add_argument('stream', help='Stream name')
    consume.add_argument('group', help='Consumer group name')
    consume.add_argument('name', help='Consumer name')

    range_sum = commands.add_parser('range-sum', help='Sum a numeric field over a stream')
    range_sum.add_argument('stream', nargs='?', help='Stream name (default: numbers)')
    range_sum.add_argument('--field', default='n', help='Field to sum (default: n)')
    range_sum.add_argument('--count', type=int, default=5, help='Page size (default: 5)')

    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> Config:
    """Layer command-line flags over file and environment configuration."""
    config = Config(args.config)

    overrides = {
        'redis.host': args.host,
        'redis.port': args.port,
        'redis.db': args.db,
        'logging.level': args.log_level,
        'logging.format': args.log_format,
        'fleet.members': getattr(args, 'members', None),
    }
    for key, value in overrides.items():
        if value is not None:
            config.set(key, value)

    return config


def _wait_for_enter(loop: asyncio.AbstractEventLoop, stop: asyncio.Event) -> None:
    """Set the stop event when the operator presses ENTER (runs in a thread)."""
    if sys.stdin.readline():
        loop.call_soon_threadsafe(stop.set)


async def _run_until_stopped(orchestrator: Orchestrator) -> OrchestratorReport:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop.set)

    threading.Thread(target=_wait_for_enter, args=(loop, stop), daemon=True).start()
    print("Press ENTER again later to exit cleanly...")

    return await orchestrator.run(stop.wait())


def run_command(config: Config) -> int:
    """Run the full demo until the operator stops it."""
    print("Press ENTER to run the application now.")
    sys.stdin.readline()

    store = RedisLogStore.from_config(config)
    store.connect()
    producer_store = RedisLogStore.from_config(config, client_name='PRODUCER')

    orchestrator_config = OrchestratorConfig.from_config(config)
    launcher = SubprocessLauncher(
        consumer_command(
            orchestrator_config.stream,
            orchestrator_config.group,
            host=config.get('redis.host'),
            port=int(config.get('redis.port')),
            db=int(config.get('redis.db')),
            extra_args=[
                '--log-level', config.get('logging.level'),
                '--log-format', config.get('logging.format'),
            ],
        )
    )

    orchestrator = Orchestrator(
        store,
        launcher,
        config=orchestrator_config,
        producer_config=ProducerConfig.from_config(config),
        chaos_config=ChaosConfig.from_config(config),
        producer_store=producer_store,
    )

    try:
        report = asyncio.run(_run_until_stopped(orchestrator))
    finally:
        producer_store.close()
        store.close()

    print(
        f"\n\nProduced {report.appended} numbers, "
        f"restarted {report.restarts} consumers. Good-bye!"
    )
    return 0


def consume_command(config: Config, stream: str, group: str, name: str) -> int:
    """Run one consumer until it gives up on an idle stream."""
    bind_process_context(consumer=name)

    # Only the orchestrator terminates consumers
    signal.signal(signal.SIGINT, signal.SIG_IGN)

    store = RedisLogStore.from_config(config, client_name=name)
    try:
        if not store.exists(stream):
            logger.error(
                "Stream does not exist. Try running the producer first.",
                stream=stream,
            )
            return 1

        consumer = StreamConsumer(store, stream, group, name, ConsumerConfig.from_config(config))
        consumer.run()
    except StoreUnavailable:
        return 1
    finally:
        store.close()

    return 0


def range_sum_command(config: Config, stream: str, field: str, count: int) -> int:
    """Print the sum of a field over the whole stream."""
    store = RedisLogStore.from_config(config)
    try:
        total = sum_field(store, stream, field, count)
    finally:
        store.close()

    print(f"The sum of the {field} field in stream {stream} is {total}.")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    config = load_config(args)

    configure_logging(
        log_level=config.get('logging.level'),
        log_format=config.get('logging.format'),
    )

    try:
        if args.command == 'run':
            return run_command(config)
        if args.command == 'consume':
            return consume_command(config, args.stream, args.group, args.name)
        return range_sum_command(
            config,
            args.stream or config.get('stream.key'),
            args.field,
            args.count,
        )

    except (StoreError, ProcessError) as e:
        logger.error("Fatal error", command=args.command, error=str(e), exc_info=True)
        return 1

    except KeyboardInterrupt:
        logger.info("Received interrupt signal")
        return 130


if __name__ == '__main__':
    sys.exit(main())
