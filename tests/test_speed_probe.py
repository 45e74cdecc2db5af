"""Tests for the speed probe (fake transport, manual clock)."""

import asyncio

import pytest

from netcompress.config import ProbeConfig
from netcompress.errors import ConfigurationError, ProbeInProgressError
from netcompress.speed_probe import SpeedProbe, assess_quality, population_stddev
from netcompress.types import NetworkQuality
from tests.fakes import FakeTransport


@pytest.fixture
def probe(transport, fast_probe_config, clock):
    return SpeedProbe(transport, fast_probe_config, clock=clock)


class TestRound:
    @pytest.mark.asyncio
    async def test_successful_round(self, probe, transport):
        result = await probe.run()

        assert result.latency_ms == pytest.approx(20.0)
        assert result.speed_kbps == pytest.approx(1024.0)  # 1024 B in 8ms
        assert result.packet_loss == 0.0
        assert result.jitter == 0.0
        assert result.successful_fetches == 1
        assert result.quality == NetworkQuality.EXCELLENT
        assert result.sample.speed_kbps == result.speed_kbps
        assert result.sample.data_size_bytes == 1024
        assert probe.is_running is False

    @pytest.mark.asyncio
    async def test_request_urls(self, probe, transport):
        await probe.run()
        heads = transport.calls_for("HEAD")
        gets = transport.calls_for("GET")
        assert len(heads) == 5
        assert len(gets) == 1
        assert heads[0].startswith("/api/speed-test?size=64&timestamp=")
        assert gets[0].startswith("/api/speed-test?size=1024&timestamp=")

    @pytest.mark.asyncio
    async def test_duration_and_timestamp(self, probe, clock):
        started = clock.now_ms()
        result = await probe.run()
        # 5 HEAD probes of 20ms + one 8ms fetch
        assert result.test_duration_ms == pytest.approx(108.0)
        assert result.timestamp_ms == started + 108

    @pytest.mark.asyncio
    async def test_overrides_apply_to_one_round(self, probe, transport):
        await probe.run(concurrent_fetches=3)
        assert len(transport.calls_for("GET")) == 3
        assert probe.config.concurrent_fetches == 1

    @pytest.mark.asyncio
    async def test_unknown_override_leaves_probe_usable(self, probe, transport):
        with pytest.raises(ConfigurationError, match="probe.concurent_fetches"):
            await probe.run(concurent_fetches=2)
        assert probe.is_running is False
        assert transport.calls == []

        result = await probe.run()
        assert result.successful_fetches == 1

    @pytest.mark.asyncio
    async def test_invalid_override_rejected(self, probe, transport):
        with pytest.raises(ConfigurationError, match="probe.concurrent_fetches"):
            await probe.run(concurrent_fetches=0)
        with pytest.raises(ConfigurationError, match="probe.request_timeout_ms"):
            await probe.run(request_timeout_ms=-1)
        assert probe.is_running is False
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_single_flight(self, clock):
        gate = asyncio.Event()
        transport = FakeTransport(clock, gate=gate)
        probe = SpeedProbe(transport, ProbeConfig(latency_probe_gap_ms=0), clock=clock)

        task = asyncio.ensure_future(probe.run())
        await asyncio.sleep(0)
        assert probe.is_running is True

        with pytest.raises(ProbeInProgressError, match="Speed test already in progress"):
            await probe.run()

        gate.set()
        await task
        assert probe.is_running is False

    @pytest.mark.asyncio
    async def test_flag_cleared_after_cancellation(self, clock):
        transport = FakeTransport(clock, hang=True)
        probe = SpeedProbe(transport, ProbeConfig(latency_probe_gap_ms=0), clock=clock)
        task = asyncio.ensure_future(probe.run())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert probe.is_running is False


class TestLatency:
    @pytest.mark.asyncio
    async def test_all_probes_fail_uses_fallback(self, clock, fast_probe_config):
        transport = FakeTransport(clock, fail_methods=("HEAD",))
        probe = SpeedProbe(transport, fast_probe_config, clock=clock)
        assert await probe.measure_latency() == 100.0

    @pytest.mark.asyncio
    async def test_two_probes_keep_lowest(self, transport, clock):
        probe = SpeedProbe(
            transport, ProbeConfig(latency_probes=2, latency_probe_gap_ms=0), clock=clock
        )
        assert await probe.measure_latency() == pytest.approx(20.0)

    @pytest.mark.asyncio
    async def test_non_ok_status_counts_as_failure(self, clock, fast_probe_config):
        transport = FakeTransport(clock, status=503)
        probe = SpeedProbe(transport, fast_probe_config, clock=clock)
        assert await probe.measure_latency() == 100.0


class TestThroughput:
    @pytest.mark.asyncio
    async def test_partial_failure(self, clock):
        transport = FakeTransport(clock, fail_gets=1)
        probe = SpeedProbe(transport, ProbeConfig(latency_probe_gap_ms=0), clock=clock)
        result = await probe.measure_throughput()
        assert result.successful == 2
        assert result.packet_loss == pytest.approx(100 / 3)

    @pytest.mark.asyncio
    async def test_all_fail_then_retry_succeeds(self, clock):
        transport = FakeTransport(clock, fail_gets=3)
        probe = SpeedProbe(transport, ProbeConfig(latency_probe_gap_ms=0), clock=clock)
        result = await probe.measure_throughput()
        assert result.speed_kbps == pytest.approx(1024.0)
        assert result.packet_loss == 100.0
        assert result.successful == 0
        assert len(transport.calls_for("GET")) == 4

    @pytest.mark.asyncio
    async def test_total_failure_synthesizes_critical_sample(self, clock, fast_probe_config):
        transport = FakeTransport(clock, fail_methods=("HEAD", "GET"))
        probe = SpeedProbe(transport, fast_probe_config, clock=clock)
        result = await probe.run()

        assert result.speed_kbps == 1.0
        assert result.latency_ms == 100.0
        assert result.packet_loss == 100.0
        assert result.successful_fetches == 0
        assert result.quality == NetworkQuality.VERY_POOR

    @pytest.mark.asyncio
    async def test_round_timeout_cancels_fetches(self, clock):
        transport = FakeTransport(clock, hang=True)
        config = ProbeConfig(
            latency_probes=1,
            latency_probe_gap_ms=0,
            request_timeout_ms=30,
            round_timeout_ms=10,
        )
        probe = SpeedProbe(transport, config, clock=clock)
        result = await probe.run()

        assert result.speed_kbps == 1.0
        assert result.latency_ms == 100.0
        assert result.packet_loss == 100.0

    @pytest.mark.asyncio
    async def test_round_timeout_bounds_latency_phase(self, clock):
        transport = FakeTransport(clock, hang=True)
        config = ProbeConfig(
            latency_probes=5,
            latency_probe_gap_ms=0,
            request_timeout_ms=200,
            round_timeout_ms=30,
        )
        probe = SpeedProbe(transport, config, clock=clock)
        loop = asyncio.get_running_loop()

        started = loop.time()
        result = await probe.run()

        # five sequential 200ms probes would take a full second
        assert loop.time() - started < 0.5
        assert len(transport.calls_for("HEAD")) <= 2
        assert result.latency_ms == 100.0
        assert result.speed_kbps == 1.0

    @pytest.mark.asyncio
    async def test_bytes_read_drives_speed(self, clock, fast_probe_config):
        transport = FakeTransport(clock, bytes_read=2048)
        probe = SpeedProbe(transport, fast_probe_config, clock=clock)
        result = await probe.measure_throughput()
        assert result.speed_kbps == pytest.approx(2048.0)


class TestQuality:
    @pytest.mark.parametrize(
        "speed, latency, loss, expected",
        [
            (6000.0, 50.0, 0.0, NetworkQuality.EXCELLENT),
            (1500.0, 300.0, 2.0, NetworkQuality.GOOD),
            (500.0, 300.0, 2.0, NetworkQuality.FAIR),
            (500.0, 600.0, 7.0, NetworkQuality.POOR),
            (50.0, 1500.0, 50.0, NetworkQuality.VERY_POOR),
        ],
    )
    def test_labels(self, speed, latency, loss, expected):
        assert assess_quality(speed, latency, loss) == expected

    def test_speed_bound_is_strict(self):
        assert assess_quality(100.0, 0.0, 0.0) == NetworkQuality.FAIR
        assert assess_quality(100.1, 0.0, 0.0) == NetworkQuality.GOOD

    def test_latency_bound_is_strict(self):
        # 200ms falls into the next band
        assert assess_quality(1500.0, 199.9, 0.0) == NetworkQuality.EXCELLENT
        assert assess_quality(1500.0, 200.0, 0.0) == NetworkQuality.GOOD


class TestStddev:
    def test_single_value(self):
        assert population_stddev([42.0]) == 0.0

    def test_population(self):
        assert population_stddev([2.0, 4.0]) == pytest.approx(1.0)
