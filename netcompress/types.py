# =============================================================================
# netcompress -- Type Definitions
# =============================================================================

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from .constants import DEFAULT_NETWORK_CLASS


class NetworkClass(str, Enum):
    """Coarse connection class, as reported by network telemetry.

    Each class has a static compression threshold and a nominal speed used
    when no live measurement is available.
    """

    SLOW_2G = "slow-2g"
    G2 = "2g"
    G3 = "3g"
    G4 = "4g"

    @classmethod
    def normalize(cls, value: NetworkClass | str | None) -> NetworkClass:
        """Map any input onto a known class; unknown values become ``4g``."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls(DEFAULT_NETWORK_CLASS)


class NetworkQuality(str, Enum):
    """Quality label derived from a probe round's weighted score.

    Score starts at 100; speed deducts up to 60, latency and packet loss
    up to 30 each. EXCELLENT >= 80, GOOD >= 60, FAIR >= 40, POOR >= 20.
    """

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    VERY_POOR = "very-poor"


class WeakNetworkName(str, Enum):
    """Named very-low-speed bands, ordered by increasing severity."""

    VERY_SLOW = "very-slow"
    EXTREMELY_SLOW = "extremely-slow"
    CRITICAL = "critical"


class RecommendationLevel(str, Enum):
    """Tag at the start of every verdict recommendation."""

    FORCED = "FORCED"
    CRITICAL = "CRITICAL"
    PERFORMANCE = "PERFORMANCE"
    OPTIMIZATION = "OPTIMIZATION"
    EFFICIENT = "EFFICIENT"
    THRESHOLD = "THRESHOLD"


@dataclass(frozen=True, slots=True)
class SpeedSample:
    """One throughput measurement.

    Attributes:
        speed_kbps: Measured speed in kilobits per second.
        timestamp_ms: Wall-clock time of the measurement. ``None`` lets the
            sample store stamp it on insertion.
        data_size_bytes: Size of the test payload.
        duration_ms: Duration of the probe round that produced it.
    """

    speed_kbps: float
    timestamp_ms: int | None = None
    data_size_bytes: int = 0
    duration_ms: float = 0.0


@dataclass(frozen=True, slots=True)
class ProbeResult:
    """Outcome of one speed probe round."""

    speed_kbps: float
    latency_ms: float
    jitter: float
    packet_loss: float
    quality: NetworkQuality
    test_duration_ms: float
    timestamp_ms: int
    successful_fetches: int
    sample: SpeedSample


@dataclass(frozen=True, slots=True)
class WeakNetworkProfile:
    """A weak-network band ``[min_kbps, max_kbps)`` with its threshold multiplier."""

    name: WeakNetworkName
    min_kbps: float
    max_kbps: float
    multiplier: float

    def contains(self, speed_kbps: float) -> bool:
        return self.min_kbps <= speed_kbps < self.max_kbps


@dataclass(frozen=True, slots=True)
class VerdictMetrics:
    """Numbers behind a :class:`PerformanceVerdict`.

    Attributes:
        data_size_bytes: Payload size the decision was made for.
        network_class: Class used for the static baseline.
        dynamic_threshold_bytes: Threshold actually compared against.
        performance_threshold_ms: Target transmission time.
        actual_speed_kbps: Live average speed, ``None`` without live data.
        estimated_speed_kbps: Speed used for the time estimate (live or nominal).
        estimated_compression_ratio: Ratio assumed for the benefit estimate.
        used_live_data: Whether the live-data branch decided.
    """

    data_size_bytes: int
    network_class: NetworkClass
    dynamic_threshold_bytes: int
    performance_threshold_ms: float
    actual_speed_kbps: float | None = None
    estimated_speed_kbps: float | None = None
    estimated_compression_ratio: float = 0.5
    used_live_data: bool = False


@dataclass(frozen=True, slots=True)
class PerformanceVerdict:
    """Compress / don't-compress decision for one payload size."""

    should_compress: bool
    estimated_transmission_time_ms: float
    compression_benefit_ms: float
    recommendation: str
    level: RecommendationLevel
    metrics: VerdictMetrics


@dataclass(frozen=True, slots=True)
class CompressionOutcome:
    """Result of one executor invocation.

    When ``accepted`` is False, ``payload`` is the original serialized form
    (or the original object if it could not be serialized) and the final
    size equals the original size.
    """

    accepted: bool
    payload: Any
    original_size_bytes: int
    final_size_bytes: int
    ratio: float
    algorithm: str
    elapsed_ms: float
    forced: bool = False
    error_message: str | None = None


@dataclass
class RunningStats:
    """Cumulative executor counters."""

    total_attempts: int = 0
    accepted: int = 0
    total_original_bytes: int = 0
    total_compressed_bytes: int = 0
    average_elapsed_ms: float = 0.0

    def record(
        self,
        original_size: int,
        final_size: int,
        accepted: bool,
        elapsed_ms: float,
    ) -> None:
        self.total_attempts += 1
        self.total_original_bytes += original_size
        if accepted:
            self.accepted += 1
            self.total_compressed_bytes += final_size
        n = self.total_attempts
        self.average_elapsed_ms = (self.average_elapsed_ms * (n - 1) + elapsed_ms) / n

    def reset(self) -> None:
        self.total_attempts = 0
        self.accepted = 0
        self.total_original_bytes = 0
        self.total_compressed_bytes = 0
        self.average_elapsed_ms = 0.0

    @property
    def success_rate(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.accepted / self.total_attempts

    @property
    def overall_compression_ratio(self) -> float:
        if self.total_original_bytes == 0:
            return 0.0
        return 1 - self.total_compressed_bytes / self.total_original_bytes

    @property
    def space_saved(self) -> int:
        return self.total_original_bytes - self.total_compressed_bytes

    def as_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["success_rate"] = round(self.success_rate, 4)
        data["overall_compression_ratio"] = round(self.overall_compression_ratio, 4)
        data["space_saved"] = self.space_saved
        return data


@dataclass(frozen=True, slots=True)
class NetworkInfo:
    """Telemetry snapshot of the current connection.

    Attributes:
        effective_type: Connection class.
        downlink_mbps: Reported downlink bandwidth, if known.
        rtt_ms: Reported round-trip time, if known.
        save_data: Whether the user asked for reduced data usage.
    """

    effective_type: NetworkClass
    downlink_mbps: float | None = None
    rtt_ms: float | None = None
    save_data: bool = False


@dataclass(frozen=True, slots=True)
class PerformanceStatus:
    """Snapshot of the analyzer's live-data state."""

    average_speed_kbps: float | None
    sample_count: int
    last_sample_at_ms: int | None
    weak_network: WeakNetworkProfile | None
    performance_threshold_ms: float
    has_real_data: bool
    has_min_samples: bool


@dataclass
class CompressionReport:
    """Decision plus execution for one payload, as returned by the engine."""

    verdict: PerformanceVerdict | None
    outcome: CompressionOutcome
    network_class: NetworkClass
    processing_time_ms: float = 0.0

    @property
    def compressed(self) -> bool:
        return self.outcome.accepted
