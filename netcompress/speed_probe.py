# =============================================================================
# netcompress -- Speed Probe
# =============================================================================
#
# One probe round = latency phase, then throughput phase, then aggregation.
# Measurement faults never escape a round: the caller always gets a usable
# sample, synthesized as a critical-speed sample when everything fails.
# =============================================================================

from __future__ import annotations

import asyncio
import statistics
from dataclasses import dataclass
from typing import Any

from ._logging import logger
from .clock import Clock, SystemClock
from .config import ProbeConfig
from .constants import (
    PROBE_FALLBACK_SPEED_KBPS,
    PROBE_LATENCY_SIZE,
    QUALITY_EXCELLENT_SCORE,
    QUALITY_FAIR_SCORE,
    QUALITY_GOOD_SCORE,
    QUALITY_LATENCY_CEILING_PENALTY,
    QUALITY_LATENCY_PENALTIES,
    QUALITY_LOSS_CEILING_PENALTY,
    QUALITY_LOSS_PENALTIES,
    QUALITY_POOR_SCORE,
    QUALITY_SPEED_FLOOR_PENALTY,
    QUALITY_SPEED_PENALTIES,
)
from .errors import ProbeInProgressError, ProbeTimeoutError, TransportError
from .transport import Transport, TransportResponse
from .types import NetworkQuality, ProbeResult, SpeedSample

# Guards the speed division against a zero-length timing
_MIN_ELAPSED_MS = 0.001


@dataclass(frozen=True, slots=True)
class ThroughputResult:
    """Aggregated throughput phase of one round."""

    speed_kbps: float
    jitter: float
    packet_loss: float
    successful: int


class SpeedProbe:
    """Runs speed probe rounds against a test endpoint.

    Single-flight: starting a round while another one is outstanding raises
    :class:`ProbeInProgressError` instead of queuing.

    Args:
        transport: Performs the HTTP requests.
        config: Protocol settings (counts, sizes, timeouts).
        clock: Time source for timestamps and durations.
    """

    def __init__(
        self,
        transport: Transport,
        config: ProbeConfig | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._transport = transport
        self._config = config or ProbeConfig()
        self._clock = clock or SystemClock()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def config(self) -> ProbeConfig:
        return self._config

    @config.setter
    def config(self, config: ProbeConfig) -> None:
        self._config = config

    async def run(self, **overrides: Any) -> ProbeResult:
        """Run one full probe round.

        Keyword arguments override :class:`ProbeConfig` fields for this
        round only, e.g. ``run(concurrent_fetches=5)``. The whole round,
        latency phase included, is bounded by ``round_timeout_ms``.

        Raises:
            ProbeInProgressError: If a round is already outstanding.
            ConfigurationError: If *overrides* name unknown or invalid
                settings. No round is started.
        """
        if self._running:
            raise ProbeInProgressError()
        options = self._config.merged(overrides) if overrides else self._config

        self._running = True
        started = self._clock.monotonic_ms()
        try:
            deadline = self._deadline(options)
            latency = await self.measure_latency(options, deadline=deadline)
            throughput = await self.measure_throughput(options, deadline=deadline)
            quality = assess_quality(throughput.speed_kbps, latency, throughput.packet_loss)

            duration = self._clock.monotonic_ms() - started
            timestamp = self._clock.now_ms()
            sample = SpeedSample(
                speed_kbps=throughput.speed_kbps,
                timestamp_ms=timestamp,
                data_size_bytes=options.test_size,
                duration_ms=duration,
            )
            logger.debug(
                "Probe round: %.2f Kbps, latency %.1fms, jitter %.2f, loss %.0f%%, %s",
                throughput.speed_kbps,
                latency,
                throughput.jitter,
                throughput.packet_loss,
                quality.value,
            )
            return ProbeResult(
                speed_kbps=throughput.speed_kbps,
                latency_ms=latency,
                jitter=throughput.jitter,
                packet_loss=throughput.packet_loss,
                quality=quality,
                test_duration_ms=duration,
                timestamp_ms=timestamp,
                successful_fetches=throughput.successful,
                sample=sample,
            )
        finally:
            self._running = False

    # -- Phases ---------------------------------------------------------------

    async def measure_latency(
        self, options: ProbeConfig | None = None, *, deadline: float | None = None
    ) -> float:
        """Average latency of sequential minimal probes, min and max trimmed.

        *deadline* is an event loop time; probes stop once it has passed.
        """
        options = options or self._config
        if deadline is None:
            deadline = self._deadline(options)
        measurements: list[float] = []

        for i in range(options.latency_probes):
            if self._remaining(deadline) <= 0:
                logger.warning("Speed test round timed out during latency probes")
                break

            start = self._clock.monotonic_ms()
            try:
                await self._request(
                    options, size=PROBE_LATENCY_SIZE, method="HEAD", deadline=deadline
                )
            except TransportError as exc:
                logger.warning("Latency test failed: %s", exc)
            else:
                measurements.append(self._clock.monotonic_ms() - start)

            if i < options.latency_probes - 1 and options.latency_probe_gap_ms > 0:
                await asyncio.sleep(
                    min(options.latency_probe_gap_ms / 1000, self._remaining(deadline))
                )

        if not measurements:
            logger.warning(
                "All latency probes failed, using %.0fms default",
                options.fallback_latency_ms,
            )
            return options.fallback_latency_ms

        measurements.sort()
        trimmed = measurements[1:-1]
        return statistics.fmean(trimmed) if trimmed else measurements[0]

    async def measure_throughput(
        self, options: ProbeConfig | None = None, *, deadline: float | None = None
    ) -> ThroughputResult:
        """Concurrent fixed-size fetches; one sequential retry if all fail.

        Fetches still outstanding at *deadline* are cancelled.
        """
        options = options or self._config
        if deadline is None:
            deadline = self._deadline(options)
        count = options.concurrent_fetches

        tasks = [
            asyncio.ensure_future(self._fetch_speed(options, deadline)) for _ in range(count)
        ]
        done, pending = await asyncio.wait(tasks, timeout=self._remaining(deadline))
        if pending:
            logger.warning("Speed test round timed out, cancelling %d fetches", len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        speeds: list[float] = []
        for task in done:
            if task.cancelled():
                continue
            exc = task.exception()
            if exc is None:
                speeds.append(task.result())
            else:
                logger.debug("Speed test fetch failed: %s", exc)

        if not speeds:
            logger.warning("All %d speed tests failed, retrying once", count)
            try:
                speed = await self._fetch_speed(options, deadline)
            except TransportError as exc:
                logger.warning("Fallback speed test failed (%s), assuming critical network", exc)
                speed = PROBE_FALLBACK_SPEED_KBPS
            return ThroughputResult(speed_kbps=speed, jitter=0.0, packet_loss=100.0, successful=0)

        return ThroughputResult(
            speed_kbps=statistics.fmean(speeds),
            jitter=population_stddev(speeds),
            packet_loss=(count - len(speeds)) / count * 100,
            successful=len(speeds),
        )

    # -- Requests -------------------------------------------------------------

    async def _fetch_speed(self, options: ProbeConfig, deadline: float) -> float:
        start = self._clock.monotonic_ms()
        response = await self._request(options, size=options.test_size, deadline=deadline)
        elapsed = max(self._clock.monotonic_ms() - start, _MIN_ELAPSED_MS)
        transferred = response.bytes_read or options.test_size
        return transferred * 8 / elapsed  # bits/ms == Kbps

    async def _request(
        self,
        options: ProbeConfig,
        *,
        size: int,
        method: str = "GET",
        deadline: float,
    ) -> TransportResponse:
        url = f"{options.test_url}?size={size}&timestamp={self._clock.now_ms()}"
        timeout = min(options.request_timeout_ms / 1000, self._remaining(deadline))
        try:
            response = await asyncio.wait_for(
                self._transport.request(
                    url, method=method, timeout_ms=options.request_timeout_ms
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ProbeTimeoutError("Speed test timeout") from exc
        except TransportError:
            raise
        except Exception as exc:
            raise TransportError(f"Speed test request failed: {exc}") from exc

        if not response.ok:
            raise TransportError(f"HTTP {response.status}")
        return response

    # Deadlines are event loop times so they track real waiting even when
    # the injected clock does not move.

    @staticmethod
    def _deadline(options: ProbeConfig) -> float:
        return asyncio.get_running_loop().time() + options.round_timeout_ms / 1000

    @staticmethod
    def _remaining(deadline: float) -> float:
        return max(0.0, deadline - asyncio.get_running_loop().time())


def population_stddev(values: list[float]) -> float:
    """Population standard deviation; 0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    return statistics.pstdev(values)


def assess_quality(speed_kbps: float, latency_ms: float, packet_loss: float) -> NetworkQuality:
    """Weighted quality score of one round, mapped onto a label."""
    score = 100

    for bound, penalty in QUALITY_SPEED_PENALTIES:
        if speed_kbps > bound:
            score -= penalty
            break
    else:
        score -= QUALITY_SPEED_FLOOR_PENALTY

    score -= _band_penalty(latency_ms, QUALITY_LATENCY_PENALTIES, QUALITY_LATENCY_CEILING_PENALTY)
    score -= _band_penalty(packet_loss, QUALITY_LOSS_PENALTIES, QUALITY_LOSS_CEILING_PENALTY)

    if score >= QUALITY_EXCELLENT_SCORE:
        return NetworkQuality.EXCELLENT
    if score >= QUALITY_GOOD_SCORE:
        return NetworkQuality.GOOD
    if score >= QUALITY_FAIR_SCORE:
        return NetworkQuality.FAIR
    if score >= QUALITY_POOR_SCORE:
        return NetworkQuality.POOR
    return NetworkQuality.VERY_POOR


def _band_penalty(
    value: float,
    bands: tuple[tuple[float, int], ...],
    ceiling: int,
) -> int:
    for bound, penalty in bands:
        if value < bound:
            return penalty
    return ceiling
