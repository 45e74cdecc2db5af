"""Tests for AdaptiveCompressionEngine (fake transport, manual clock)."""

import asyncio

import orjson
import pytest

from netcompress.config import CompressionConfig
from netcompress.engine import AdaptiveCompressionEngine
from netcompress.errors import (
    CompressionAdapterError,
    ConfigurationError,
    ProbeInProgressError,
)
from netcompress.network_monitor import NetworkMonitor
from netcompress.types import NetworkClass, NetworkInfo, RecommendationLevel, SpeedSample
from tests.fakes import AsyncAdapter, FakeTransport

FAST_PROBE = {"probe": {"latency_probe_gap_ms": 0, "concurrent_fetches": 1}}


class StaticSource:
    def __init__(self, effective_type):
        self.info = NetworkInfo(effective_type=effective_type)

    def get_network_info(self):
        return self.info


@pytest.fixture
def engine(clock, transport):
    return AdaptiveCompressionEngine(FAST_PROBE, transport=transport, clock=clock)


async def _wait_for_history(engine, count=1):
    for _ in range(100):
        if len(engine.probe_history) >= count:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("probe loop never completed a round")


class TestConstruction:
    def test_accepts_mapping(self, clock):
        engine = AdaptiveCompressionEngine({"thresholds": {"3g": 900}}, clock=clock)
        assert engine.config.thresholds["3g"] == 900

    def test_invalid_config_rejected(self, clock):
        with pytest.raises(ConfigurationError):
            AdaptiveCompressionEngine({"min_compression_ratio": 1.5}, clock=clock)

    def test_async_adapter_rejected(self, clock):
        with pytest.raises(CompressionAdapterError):
            AdaptiveCompressionEngine(adapter=AsyncAdapter(), clock=clock)


class TestCompress:
    def test_small_payload_passes_through(self, engine):
        report = engine.compress({"a": 1}, "4g")
        assert report.compressed is False
        assert report.verdict.level == RecommendationLevel.THRESHOLD
        assert report.outcome.payload == '{"a":1}'
        assert report.outcome.algorithm == "none"
        assert report.network_class == NetworkClass.G4

    def test_large_payload_compressed(self, engine, repetitive_data):
        report = engine.compress(repetitive_data, "4g")
        assert report.compressed is True
        restored = engine.decompress(report.outcome.payload, report.outcome.algorithm)
        assert orjson.loads(restored) == repetitive_data

    def test_slow_live_link_triggers_critical(self, engine):
        engine.record_sample(2.0)
        report = engine.compress({"text": "lorem ipsum " * 40}, "4g")
        assert report.verdict.level == RecommendationLevel.CRITICAL
        assert report.compressed is True

    def test_force(self, engine):
        report = engine.compress({"a": 1}, "4g", force=True)
        assert report.verdict.level == RecommendationLevel.FORCED
        assert report.outcome.forced is True
        assert report.compressed is True

    def test_network_class_from_monitor(self, clock, transport):
        monitor = NetworkMonitor(StaticSource(NetworkClass.SLOW_2G))
        engine = AdaptiveCompressionEngine(
            transport=transport, clock=clock, network_monitor=monitor
        )
        report = engine.compress({"message": "x" * 150})
        assert report.network_class == NetworkClass.SLOW_2G
        assert report.verdict.should_compress is True

    def test_unserializable_with_fallback(self, engine):
        data = {}
        data["loop"] = data
        report = engine.compress(data, "4g")
        assert report.verdict is None
        assert report.compressed is False
        assert report.outcome.error_message is not None

    def test_stats(self, engine, repetitive_data):
        engine.compress(repetitive_data, "4g")
        engine.execute("x" * 10)
        stats = engine.get_stats()
        assert stats.total_attempts == 2
        assert stats.accepted == 1

        engine.reset_stats()
        assert engine.get_stats().total_attempts == 0


class TestDecide:
    def test_decide_delegates(self, engine):
        verdict = engine.decide(3000, "4g")
        assert verdict.should_compress is True
        assert verdict.metrics.used_live_data is False

    def test_record_sample_object(self, engine, clock):
        assert engine.record_sample(SpeedSample(400.0)) == pytest.approx(400.0)
        assert engine.get_average_speed() == pytest.approx(400.0)

    def test_weak_network(self, engine):
        engine.record_sample(0.7)
        assert engine.classify_weak_network().multiplier == 0.05

    def test_performance_status(self, engine):
        engine.record_sample(100.0)
        status = engine.performance_status()
        assert status.has_real_data is True
        assert status.sample_count == 1


class TestProbing:
    @pytest.mark.asyncio
    async def test_probe_round_feeds_analyzer(self, engine):
        result = await engine.run_probe_round()
        assert result.speed_kbps == pytest.approx(1024.0)
        assert engine.get_average_speed() == pytest.approx(1024.0)
        assert engine.probe_history == (result,)

    @pytest.mark.asyncio
    async def test_probe_summary(self, engine):
        assert engine.probe_summary() is None
        await engine.run_probe_round()
        await engine.run_probe_round()
        summary = engine.probe_summary()
        assert summary["rounds"] == 2
        assert summary["average_speed_kbps"] == pytest.approx(1024.0)
        assert summary["min_latency_ms"] == pytest.approx(20.0)
        assert summary["quality_distribution"] == {"excellent": 2}

    @pytest.mark.asyncio
    async def test_bad_override_does_not_block_later_rounds(self, engine):
        with pytest.raises(ConfigurationError):
            await engine.run_probe_round(concurent_fetches=2)
        assert engine.probe_history == ()

        result = await engine.run_probe_round()
        assert engine.probe_history == (result,)

    @pytest.mark.asyncio
    async def test_concurrent_round_rejected(self, clock):
        gate = asyncio.Event()
        transport = FakeTransport(clock, gate=gate)
        engine = AdaptiveCompressionEngine(FAST_PROBE, transport=transport, clock=clock)

        task = asyncio.ensure_future(engine.run_probe_round())
        await asyncio.sleep(0)
        with pytest.raises(ProbeInProgressError):
            await engine.run_probe_round()
        gate.set()
        await task
        assert len(engine.probe_history) == 1

    @pytest.mark.asyncio
    async def test_start_and_stop(self, engine):
        engine.start()
        assert engine.is_running is True
        await _wait_for_history(engine)
        await engine.stop()
        assert engine.is_running is False

    @pytest.mark.asyncio
    async def test_context_manager(self, clock, transport):
        async with AdaptiveCompressionEngine(FAST_PROBE, transport=transport, clock=clock) as engine:
            await _wait_for_history(engine)
            assert engine.is_running is True
        assert engine.is_running is False

    @pytest.mark.asyncio
    async def test_context_manager_without_optimization(self, clock, transport):
        config = {**FAST_PROBE, "performance": {"enabled": False}}
        async with AdaptiveCompressionEngine(config, transport=transport, clock=clock) as engine:
            assert engine.is_running is False


class TestConfigUpdates:
    def test_valid_update(self, engine):
        assert engine.update_config({"thresholds": {"4g": 4096}}) is True
        assert engine.config.thresholds["4g"] == 4096
        assert engine.decide(3000, "4g").should_compress is False

    def test_invalid_update_keeps_config(self, engine):
        assert engine.update_config({"thresholds": {"slow-2g": 9999}}) is False
        assert engine.config.thresholds["slow-2g"] == 100

    def test_unknown_key_rejected(self, engine):
        assert engine.update_config({"turbo": True}) is False

    def test_executor_sees_update(self, engine):
        assert engine.update_config({"min_compression_size": 5}) is True
        assert engine.executor.config.min_compression_size == 5

    @pytest.mark.asyncio
    async def test_history_size_update(self, engine):
        await engine.run_probe_round()
        await engine.run_probe_round()
        assert engine.update_config({"probe": {"history_size": 1}}) is True
        assert len(engine.probe_history) == 1


class TestSystemStatus:
    def test_keys(self, engine):
        status = engine.system_status()
        assert set(status) == {"config", "network", "performance", "compression", "speed_test"}
        assert status["network"]["effective_type"] == "4g"
        assert status["performance"]["weak_network"] is None
        assert status["speed_test"]["summary"] is None

    def test_weak_network_name(self, engine):
        engine.record_sample(1.5)
        assert engine.system_status()["performance"]["weak_network"] == "very-slow"


class TestNetworkChanges:
    def test_close_detaches_listener(self, clock, transport):
        monitor = NetworkMonitor()
        engine = AdaptiveCompressionEngine(transport=transport, clock=clock, network_monitor=monitor)
        assert len(monitor._listeners) == 1
        asyncio.run(engine.close())
        assert monitor._listeners == []
