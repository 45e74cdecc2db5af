# =============================================================================
# netcompress -- Adaptive Compression Engine
# =============================================================================
#
# Primary public API. Wires the speed probe, the performance analyzer, the
# executor and the network monitor together. Async context manager for the
# periodic probe loop.
# =============================================================================

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Mapping
from dataclasses import asdict
from typing import Any

from ._logging import logger
from .analyzer import PerformanceAnalyzer
from .clock import Clock, SystemClock
from .compression import CompressionAdapter, ZlibCompressionAdapter
from .config import CompressionConfig
from .constants import ALGORITHM_NONE, DEFAULT_ESTIMATED_RATIO, PROBE_SUMMARY_WINDOW
from .errors import ConfigurationError, ProbeInProgressError, SerializationError
from .executor import CompressionExecutor, payload_size, serialize
from .network_monitor import NetworkMonitor
from .speed_probe import SpeedProbe
from .transport import HttpxTransport, Transport
from .types import (
    CompressionOutcome,
    CompressionReport,
    NetworkClass,
    NetworkInfo,
    PerformanceStatus,
    PerformanceVerdict,
    ProbeResult,
    RunningStats,
    SpeedSample,
    WeakNetworkProfile,
)


class AdaptiveCompressionEngine:
    """Decide per payload whether to compress, based on measured speed.

    Args:
        config: :class:`CompressionConfig` or a plain mapping accepted by
            :meth:`CompressionConfig.from_dict`. Validated on construction.
        adapter: Synchronous compression adapter (default zlib/base64).
        transport: Transport for speed probes. Defaults to an
            :class:`HttpxTransport` on *base_url*, created on first use.
        clock: Time source shared by every component.
        network_monitor: Telemetry boundary used when no network class is
            passed explicitly.
        base_url: Base URL for the default transport.

    Raises:
        ConfigurationError: If the configuration is invalid.
        CompressionAdapterError: If *adapter* is asynchronous.

    Example::

        async with AdaptiveCompressionEngine(base_url="https://api.example.com") as engine:
            report = engine.compress({"items": items})
            send(report.outcome.payload, algorithm=report.outcome.algorithm)
    """

    def __init__(
        self,
        config: CompressionConfig | Mapping[str, Any] | None = None,
        *,
        adapter: CompressionAdapter | None = None,
        transport: Transport | None = None,
        clock: Clock | None = None,
        network_monitor: NetworkMonitor | None = None,
        base_url: str = "",
    ) -> None:
        if isinstance(config, Mapping):
            config = CompressionConfig.from_dict(config)
        self._config = (config or CompressionConfig()).ensure_valid()
        self._clock = clock or SystemClock()

        self._executor = CompressionExecutor(
            adapter or ZlibCompressionAdapter(), self._config, clock=self._clock
        )
        self._analyzer = PerformanceAnalyzer(self._config, clock=self._clock)

        self._base_url = base_url
        self._transport = transport
        self._owns_transport = False
        self._probe: SpeedProbe | None = None
        self._probe_history: deque[ProbeResult] = deque(maxlen=self._config.probe.history_size)
        self._probe_task: asyncio.Task[None] | None = None

        self._network_monitor = network_monitor or NetworkMonitor()
        self._unsubscribe_network = self._network_monitor.subscribe(self._handle_network_change)

    # -- Context manager ------------------------------------------------------

    async def __aenter__(self) -> AdaptiveCompressionEngine:
        if self._config.performance.enabled:
            self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    # -- Properties -----------------------------------------------------------

    @property
    def config(self) -> CompressionConfig:
        return self._config

    @property
    def analyzer(self) -> PerformanceAnalyzer:
        return self._analyzer

    @property
    def executor(self) -> CompressionExecutor:
        return self._executor

    @property
    def network_monitor(self) -> NetworkMonitor:
        return self._network_monitor

    @property
    def is_running(self) -> bool:
        """True while the periodic probe loop is active."""
        return self._probe_task is not None and not self._probe_task.done()

    @property
    def probe_history(self) -> tuple[ProbeResult, ...]:
        return tuple(self._probe_history)

    # -- Speed measurement ----------------------------------------------------

    async def run_probe_round(self, **overrides: Any) -> ProbeResult:
        """Run one probe round and feed its sample to the analyzer.

        Raises:
            ProbeInProgressError: If a round is already outstanding.
            ConfigurationError: If *overrides* are unknown or invalid.
        """
        result = await self._speed_probe().run(**overrides)
        self._analyzer.record_sample(result.sample)
        self._probe_history.append(result)
        logger.info(
            "Speed test completed: %.2f Kbps, %.1fms latency, quality %s",
            result.speed_kbps,
            result.latency_ms,
            result.quality.value,
        )
        return result

    def record_sample(self, sample: SpeedSample | float) -> float | None:
        """Add an externally measured sample; returns the new average."""
        if not isinstance(sample, SpeedSample):
            sample = SpeedSample(speed_kbps=float(sample))
        return self._analyzer.record_sample(sample)

    def get_average_speed(self) -> float | None:
        return self._analyzer.get_average_speed()

    def classify_weak_network(self) -> WeakNetworkProfile | None:
        return self._analyzer.classify_weak_network()

    def start(self) -> None:
        """Start probing every ``speed_test_interval_ms`` (first round immediately)."""
        if self.is_running:
            return
        self._probe_task = asyncio.create_task(self._probe_loop())
        logger.info(
            "Periodic speed testing started (every %sms)",
            self._config.performance.speed_test_interval_ms,
        )

    async def stop(self) -> None:
        task, self._probe_task = self._probe_task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.info("Periodic speed testing stopped")

    async def close(self) -> None:
        """Stop probing, detach from the network monitor, release the transport."""
        await self.stop()
        self._unsubscribe_network()
        if self._owns_transport and isinstance(self._transport, HttpxTransport):
            await self._transport.aclose()

    async def _probe_loop(self) -> None:
        while True:
            try:
                await self.run_probe_round()
            except ProbeInProgressError:
                logger.debug("Skipping periodic speed test, round already in progress")
            except Exception as exc:
                logger.warning("Periodic speed test failed: %s", exc)

            try:
                await asyncio.sleep(self._config.performance.speed_test_interval_ms / 1000)
            except asyncio.CancelledError:
                return

    def _speed_probe(self) -> SpeedProbe:
        if self._probe is None:
            if self._transport is None:
                self._transport = HttpxTransport(self._base_url)
                self._owns_transport = True
            self._probe = SpeedProbe(self._transport, self._config.probe, clock=self._clock)
        return self._probe

    # -- Decisions ------------------------------------------------------------

    def resolve_network_class(self, network_class: NetworkClass | str | None = None) -> NetworkClass:
        """Explicit class if given, else the monitor's current effective type."""
        if network_class is not None:
            return NetworkClass.normalize(network_class)
        return self._network_monitor.refresh().effective_type

    def decide(
        self,
        data_size_bytes: int,
        network_class: NetworkClass | str | None = None,
        *,
        force: bool = False,
        estimated_compression_ratio: float = DEFAULT_ESTIMATED_RATIO,
        use_performance_optimization: bool | None = None,
    ) -> PerformanceVerdict:
        return self._analyzer.decide(
            data_size_bytes,
            self.resolve_network_class(network_class),
            force=force,
            estimated_compression_ratio=estimated_compression_ratio,
            use_performance_optimization=use_performance_optimization,
        )

    def execute(self, data: Any, force: bool = False) -> CompressionOutcome:
        return self._executor.execute(data, force=force)

    def compress(
        self,
        data: Any,
        network_class: NetworkClass | str | None = None,
        force: bool = False,
    ) -> CompressionReport:
        """Decide on the serialized size, then execute if recommended.

        Unserializable data is reported through the outcome's
        ``error_message`` when fallback is enabled.
        """
        started = self._clock.monotonic_ms()
        nc = self.resolve_network_class(network_class)

        try:
            serialized = serialize(data)
        except SerializationError:
            # The executor owns the fallback policy for serialization faults
            outcome = self._executor.execute(data, force=force)
            return CompressionReport(None, outcome, nc, self._elapsed(started))

        size = payload_size(serialized)
        verdict = self._analyzer.decide(size, nc, force=force)

        if verdict.should_compress:
            outcome = self._executor.execute(serialized, force=force)
        else:
            outcome = CompressionOutcome(
                accepted=False,
                payload=serialized,
                original_size_bytes=size,
                final_size_bytes=size,
                ratio=0.0,
                algorithm=ALGORITHM_NONE,
                elapsed_ms=0.0,
            )

        report = CompressionReport(verdict, outcome, nc, self._elapsed(started))
        logger.debug(
            "compress: %d -> %d bytes (%s, %s)",
            outcome.original_size_bytes,
            outcome.final_size_bytes,
            outcome.algorithm,
            verdict.level.value,
        )
        return report

    def decompress(self, payload: str, algorithm: str | None = None) -> str:
        return self._executor.decompress(payload, algorithm)

    # -- Stats ----------------------------------------------------------------

    def get_stats(self) -> RunningStats:
        return self._executor.stats

    def reset_stats(self) -> None:
        self._executor.reset_stats()

    def performance_status(self) -> PerformanceStatus:
        return self._analyzer.status()

    def probe_summary(self, window: int = PROBE_SUMMARY_WINDOW) -> dict[str, Any] | None:
        """Aggregate over the last *window* probe rounds; ``None`` before any round."""
        recent = list(self._probe_history)[-window:]
        if not recent:
            return None

        speeds = [r.speed_kbps for r in recent]
        latencies = [r.latency_ms for r in recent]
        distribution: dict[str, int] = {}
        for result in recent:
            distribution[result.quality.value] = distribution.get(result.quality.value, 0) + 1

        return {
            "rounds": len(recent),
            "average_speed_kbps": sum(speeds) / len(speeds),
            "min_speed_kbps": min(speeds),
            "max_speed_kbps": max(speeds),
            "average_latency_ms": sum(latencies) / len(latencies),
            "min_latency_ms": min(latencies),
            "max_latency_ms": max(latencies),
            "quality_distribution": distribution,
            "last_test_at_ms": recent[-1].timestamp_ms,
        }

    def system_status(self) -> dict[str, Any]:
        info = self._network_monitor.network_info()
        status = self.performance_status()
        return {
            "config": self._config.summary(),
            "network": {
                "effective_type": info.effective_type.value,
                "downlink_mbps": info.downlink_mbps,
                "rtt_ms": info.rtt_ms,
                "save_data": info.save_data,
                "description": self._network_monitor.description(info),
                "quality_score": self._network_monitor.quality_score(info),
                "is_slow": self._network_monitor.is_slow_network(info),
            },
            "performance": {
                **asdict(status),
                "weak_network": status.weak_network.name.value if status.weak_network else None,
            },
            "compression": self.get_stats().as_dict(),
            "speed_test": {
                "periodic": self.is_running,
                "in_progress": self._probe is not None and self._probe.is_running,
                "history_size": len(self._probe_history),
                "summary": self.probe_summary(),
            },
        }

    # -- Configuration --------------------------------------------------------

    def update_config(self, changes: Mapping[str, Any]) -> bool:
        """Apply *changes* section by section; returns False and keeps the
        current configuration if the result would be invalid."""
        try:
            updated = self._config.merged(changes)
        except (ConfigurationError, TypeError) as exc:
            logger.warning("Configuration update rejected: %s", exc)
            return False

        violations = updated.validate()
        if violations:
            logger.warning("Configuration update rejected: %s", "; ".join(violations))
            return False

        self._config = updated
        self._analyzer.config = updated
        self._executor.config = updated
        if self._probe is not None:
            self._probe.config = updated.probe
        if self._probe_history.maxlen != updated.probe.history_size:
            self._probe_history = deque(self._probe_history, maxlen=updated.probe.history_size)

        logger.info("Configuration updated: %s", ", ".join(sorted(changes)))
        return True

    # -- Internal -------------------------------------------------------------

    def _handle_network_change(self, info: NetworkInfo) -> None:
        logger.info(
            "Network changed: %s (%s)",
            info.effective_type.value,
            self._network_monitor.description(info),
        )

    def _elapsed(self, started: float) -> float:
        return max(0.0, self._clock.monotonic_ms() - started)
