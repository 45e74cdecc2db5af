# =============================================================================
# netcompress -- Performance Analyzer
# =============================================================================
#
# Sample store + weak-network classification + threshold composition ->
# one PerformanceVerdict per call. Verdicts are re-derived from scratch on
# every call; nothing here depends on the time of the call.
# =============================================================================

from __future__ import annotations

import math

from ._logging import logger
from .classifier import classify_weak_network
from .clock import Clock
from .config import CompressionConfig
from .constants import (
    CRITICAL_TRANSMISSION_MS,
    DEFAULT_ESTIMATED_RATIO,
    NOMINAL_SPEED_KBPS,
)
from .sample_store import SampleStore
from .threshold import ThresholdComposer
from .types import (
    NetworkClass,
    PerformanceStatus,
    PerformanceVerdict,
    RecommendationLevel,
    SpeedSample,
    VerdictMetrics,
    WeakNetworkProfile,
)


def transmission_time_ms(data_size_bytes: float, speed_kbps: float | None) -> float:
    """Time to send *data_size_bytes* at *speed_kbps*; infinite at zero speed."""
    if not speed_kbps or speed_kbps <= 0:
        return math.inf
    return data_size_bytes * 8 / (speed_kbps * 1000) * 1000


def estimate_compression_benefit(
    original_size: float,
    speed_kbps: float | None,
    estimated_compression_ratio: float = DEFAULT_ESTIMATED_RATIO,
) -> float:
    """Milliseconds saved by sending ``original_size * ratio`` bytes instead."""
    original = transmission_time_ms(original_size, speed_kbps)
    compressed = transmission_time_ms(original_size * estimated_compression_ratio, speed_kbps)
    return original - compressed


class PerformanceAnalyzer:
    """Turns measured speed samples into compression decisions.

    Args:
        config: Validated configuration.
        clock: Time source for the sample store.
    """

    def __init__(
        self,
        config: CompressionConfig | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        self._config = config or CompressionConfig()
        self._store = SampleStore(clock=clock)

    @property
    def config(self) -> CompressionConfig:
        return self._config

    @config.setter
    def config(self, config: CompressionConfig) -> None:
        self._config = config

    @property
    def store(self) -> SampleStore:
        return self._store

    @property
    def performance_threshold_ms(self) -> float:
        return self._config.performance.performance_threshold_ms

    # -- Samples --------------------------------------------------------------

    def record_sample(self, sample: SpeedSample) -> float | None:
        average = self._store.add(sample)
        logger.debug(
            "Speed sample %.2f Kbps recorded (%d retained, average %s)",
            sample.speed_kbps,
            self._store.sample_count,
            f"{average:.2f}" if average is not None else "n/a",
        )
        return average

    def get_average_speed(self) -> float | None:
        return self._store.average

    def classify_weak_network(self) -> WeakNetworkProfile | None:
        return classify_weak_network(self._store.average)

    def dynamic_threshold(
        self,
        network_class: NetworkClass | str | None,
        *,
        use_performance_optimization: bool | None = None,
    ) -> int:
        """Threshold for *network_class* under the current live data."""
        baseline = self._config.threshold_for(network_class)
        composer = ThresholdComposer(self.performance_threshold_ms)
        live = self._live_speed(use_performance_optimization)
        if live is not None:
            return composer.compose(baseline, actual_speed_kbps=live)
        return composer.compose(baseline, weak_profile=self.classify_weak_network())

    # -- Decision -------------------------------------------------------------

    def decide(
        self,
        data_size_bytes: int,
        network_class: NetworkClass | str | None = None,
        *,
        force: bool = False,
        estimated_compression_ratio: float = DEFAULT_ESTIMATED_RATIO,
        use_performance_optimization: bool | None = None,
    ) -> PerformanceVerdict:
        """Decide whether a payload of *data_size_bytes* should be compressed.

        Priority: forced, then live data (when present and enabled), then
        the static per-class threshold.
        """
        nc = NetworkClass.normalize(network_class)
        live = self._live_speed(use_performance_optimization)
        threshold = self.dynamic_threshold(
            nc, use_performance_optimization=use_performance_optimization
        )
        perf_ms = self.performance_threshold_ms

        speed = live if live is not None else NOMINAL_SPEED_KBPS[nc.value]
        estimated_time = transmission_time_ms(data_size_bytes, speed)
        benefit = estimate_compression_benefit(
            data_size_bytes, speed, estimated_compression_ratio
        )

        if live is not None:
            should_compress = data_size_bytes > threshold or estimated_time > perf_ms
            level, recommendation = self._live_recommendation(
                data_size_bytes, threshold, live, estimated_time, benefit, should_compress
            )
        else:
            should_compress = self._static_should_compress(data_size_bytes, threshold)
            level = RecommendationLevel.THRESHOLD
            if should_compress:
                recommendation = (
                    f"THRESHOLD: Data size ({data_size_bytes} bytes) exceeds {nc.value} "
                    f"threshold ({threshold} bytes). Compression recommended"
                )
            else:
                recommendation = (
                    f"THRESHOLD: Data size ({data_size_bytes} bytes) within {nc.value} "
                    f"threshold ({threshold} bytes). No compression needed"
                )

        if force:
            should_compress = True
            level = RecommendationLevel.FORCED
            recommendation = "FORCED: Compression forced by caller request"

        verdict = PerformanceVerdict(
            should_compress=should_compress,
            estimated_transmission_time_ms=estimated_time,
            compression_benefit_ms=benefit,
            recommendation=recommendation,
            level=level,
            metrics=VerdictMetrics(
                data_size_bytes=data_size_bytes,
                network_class=nc,
                dynamic_threshold_bytes=threshold,
                performance_threshold_ms=perf_ms,
                actual_speed_kbps=live,
                estimated_speed_kbps=speed,
                estimated_compression_ratio=estimated_compression_ratio,
                used_live_data=live is not None,
            ),
        )
        logger.debug("Decision for %d bytes on %s: %s", data_size_bytes, nc.value, recommendation)
        return verdict

    def _live_speed(self, use_performance_optimization: bool | None) -> float | None:
        enabled = (
            self._config.performance.enabled
            if use_performance_optimization is None
            else use_performance_optimization
        )
        average = self._store.average
        if enabled and average is not None and average > 0:
            return average
        return None

    def _static_should_compress(self, data_size_bytes: int, threshold: int) -> bool:
        if not self._config.enable_auto_compression:
            logger.debug("Auto compression is disabled")
            return False
        if data_size_bytes <= 0:
            return False
        if data_size_bytes > self._config.max_compression_size:
            logger.debug(
                "Data size (%d) exceeds maximum compression size (%d)",
                data_size_bytes,
                self._config.max_compression_size,
            )
            return False
        return data_size_bytes >= threshold

    def _live_recommendation(
        self,
        data_size_bytes: int,
        threshold: int,
        speed_kbps: float,
        estimated_time: float,
        benefit: float,
        should_compress: bool,
    ) -> tuple[RecommendationLevel, str]:
        perf_ms = self.performance_threshold_ms
        if estimated_time > CRITICAL_TRANSMISSION_MS:
            return RecommendationLevel.CRITICAL, (
                f"CRITICAL: Transmission will take {estimated_time:.2f}ms "
                f"({speed_kbps / 1000:.2f} Mbps). Compression recommended - "
                f"could save {benefit:.2f}ms"
            )
        if estimated_time > perf_ms:
            return RecommendationLevel.PERFORMANCE, (
                f"PERFORMANCE: Transmission will take {estimated_time:.2f}ms, exceeding "
                f"{perf_ms}ms threshold. Compression recommended - could save {benefit:.2f}ms"
            )
        if should_compress:
            return RecommendationLevel.OPTIMIZATION, (
                f"OPTIMIZATION: Data size ({data_size_bytes} bytes) exceeds dynamic "
                f"threshold ({threshold} bytes). Optional compression - could save "
                f"{benefit:.2f}ms"
            )
        return RecommendationLevel.EFFICIENT, (
            f"EFFICIENT: Transmission estimated at {estimated_time:.2f}ms, within "
            f"performance threshold. No compression needed"
        )

    # -- Status ---------------------------------------------------------------

    def status(self) -> PerformanceStatus:
        count = self._store.sample_count
        return PerformanceStatus(
            average_speed_kbps=self._store.average,
            sample_count=count,
            last_sample_at_ms=self._store.last_sample_at_ms,
            weak_network=self.classify_weak_network(),
            performance_threshold_ms=self.performance_threshold_ms,
            has_real_data=count > 0,
            has_min_samples=count >= self._config.performance.min_speed_test_samples,
        )

    def reset(self) -> None:
        self._store.clear()
