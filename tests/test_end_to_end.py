"""End-to-end consumer group run under chaos."""

import asyncio
import random

import pytest
from conftest import GROUP, STREAM, ThreadLauncher

from streamgroup.chaos.controller import ChaosConfig, ChaosController
from streamgroup.consumer.processing import is_prime
from streamgroup.consumer.worker import ConsumerConfig, StopReason, StreamConsumer
from streamgroup.orchestrator import Orchestrator, OrchestratorConfig
from streamgroup.producer.producer import NumberProducer, ProducerConfig
from streamgroup.store.memory import MemoryLogStore
from streamgroup.store.range_scan import iter_range


class TestChaosRun:
    """Test at-least-once delivery while consumers are killed and restarted."""

    @pytest.mark.asyncio
    async def test_every_entry_acknowledged_exactly_once(self):
        """Test no entry is lost or acknowledged twice across restarts."""
        store = MemoryLogStore()
        processed = []

        def record(n):
            processed.append(n)
            return is_prime(n)

        consumer_config = ConsumerConfig(initial_block_ms=5, max_idle_retries=4)
        launcher = ThreadLauncher(store, config=consumer_config, processor=record)
        orchestrator = Orchestrator(
            store,
            launcher,
            config=OrchestratorConfig(stream=STREAM, group=GROUP, members=5),
            producer_config=ProducerConfig(members=5, min_interval_ms=0, max_interval_ms=10),
            chaos_config=ChaosConfig(kill_odds=2, min_sleep_ms=5, max_sleep_ms=15),
        )

        orchestrator.setup()
        roster = orchestrator.spawn_fleet()
        chaos = ChaosController(roster, launcher, orchestrator.chaos_config, random.Random(1))
        producer = NumberProducer(store, STREAM, orchestrator.producer_config, random.Random(2))

        chaos_task = asyncio.create_task(chaos.run())
        producer_task = asyncio.create_task(producer.run())
        await asyncio.sleep(0.6)

        producer.stop()
        appended = await producer_task
        chaos.stop()
        roster = await chaos_task
        for consumer in roster:
            launcher.terminate_quietly(consumer)
        await asyncio.to_thread(launcher.join_all)

        assert chaos.restarts > 0
        assert appended > 0

        # One more instance per name drains whatever the fleet left behind
        drainers = [
            StreamConsumer(store, STREAM, GROUP, name, consumer_config, processor=record)
            for name in orchestrator.config.consumer_names()
        ]
        results = await asyncio.gather(*(asyncio.to_thread(d.run) for d in drainers))

        ids = [entry.id for entry in iter_range(store, STREAM, count=100)]
        assert len(ids) == appended
        assert all(stats.stop_reason == StopReason.IDLE for stats in results)
        assert store.pending_count(STREAM, GROUP) == 0
        assert store.ack_counts(STREAM, GROUP) == {entry_id: 1 for entry_id in ids}
        assert set(processed) == set(range(appended))

    @pytest.mark.asyncio
    async def test_restarted_name_recovers_its_pending_entries(self):
        """Test a replacement consumer finishes what the killed one left."""
        store = MemoryLogStore(blocking=False)
        store.group_create(STREAM, GROUP)
        ids = [store.append(STREAM, {"n": str(n)}) for n in range(8)]

        # The killed instance of WORKER-05 had taken five entries
        store.group_read(STREAM, GROUP, "WORKER-05", ">", 5, 0)
        assert store.pending_for(STREAM, GROUP, "WORKER-05") == ids[:5]

        replacement = StreamConsumer(store, STREAM, GROUP, "WORKER-05", ConsumerConfig())
        stats = await asyncio.to_thread(replacement.run)

        assert stats.recovered == 5
        assert stats.processed == 8
        assert store.pending_count(STREAM, GROUP) == 0
