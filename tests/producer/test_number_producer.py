"""Tests for the number producer."""

import asyncio
import random

import pytest

from streamgroup.producer.producer import NumberProducer, ProducerConfig
from streamgroup.store.memory import MemoryLogStore


def fast_config(**overrides):
    values = dict(members=10, min_interval_ms=0, max_interval_ms=20)
    values.update(overrides)
    return ProducerConfig(**values)


class TestProducerConfig:
    """Test producer configuration."""

    def test_interval_scaled_by_members(self):
        """Test the pause is the random interval divided by fleet size."""
        config = ProducerConfig(members=10)
        rng = random.Random(1)

        intervals = [config.interval_ms(rng) for _ in range(200)]

        assert all(100 <= i <= 200 for i in intervals)

    def test_single_member_interval(self):
        """Test one member keeps the full interval."""
        config = ProducerConfig(members=1)

        assert 1000 <= config.interval_ms(random.Random(3)) <= 2000

    def test_invalid_members(self):
        """Test a fleet must have a member."""
        with pytest.raises(ValueError):
            ProducerConfig(members=0)


class TestNumberProducer:
    """Test NumberProducer."""

    @pytest.mark.asyncio
    async def test_appends_increasing_numbers(self):
        """Test the producer appends 0, 1, 2, ... in order."""
        store = MemoryLogStore()
        producer = NumberProducer(store, "numbers", fast_config(limit=25))

        appended = await producer.run()

        values = [int(e.fields["n"]) for e in store.range("numbers", count=100)]
        assert appended == 25
        assert values == list(range(25))
        assert producer.last_id == store.revrange("numbers", count=1)[0].id

    @pytest.mark.asyncio
    async def test_stop_before_start_appends_nothing(self):
        """Test a stop requested up front prevents any append."""
        store = MemoryLogStore()
        producer = NumberProducer(store, "numbers", fast_config())
        producer.stop()

        assert await producer.run() == 0
        assert not store.exists("numbers")

    @pytest.mark.asyncio
    async def test_stop_within_one_cycle(self):
        """Test no entry is appended after the producer task returns."""
        store = MemoryLogStore()
        producer = NumberProducer(store, "numbers", fast_config())
        task = asyncio.create_task(producer.run())

        await asyncio.sleep(0.1)
        producer.stop()
        appended = await asyncio.wait_for(task, timeout=1.0)
        await asyncio.sleep(0.05)

        assert appended > 0
        assert store.length("numbers") == appended
        assert producer.stopping

    @pytest.mark.asyncio
    async def test_custom_start_and_field(self):
        """Test the start value and field name are configurable."""
        store = MemoryLogStore()
        producer = NumberProducer(store, "numbers", fast_config(start=100, field="value", limit=3))

        await producer.run()

        assert [e.fields for e in store.range("numbers")] == [
            {"value": "100"}, {"value": "101"}, {"value": "102"},
        ]
