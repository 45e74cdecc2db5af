"""Adaptive payload compression driven by measured network speed.

Async usage::

    from netcompress import AdaptiveCompressionEngine

    async with AdaptiveCompressionEngine(base_url="https://api.example.com") as engine:
        report = engine.compress({"items": items})
        if report.compressed:
            send(report.outcome.payload, encoding=report.outcome.algorithm)

Without live measurements the engine falls back to static per-class
thresholds::

    engine = AdaptiveCompressionEngine({"thresholds": {"3g": 512}})
    verdict = engine.decide(4096, "3g")
    print(verdict.recommendation)
"""

from ._version import __version__
from .analyzer import PerformanceAnalyzer, estimate_compression_benefit, transmission_time_ms
from .classifier import WEAK_NETWORK_PROFILES, classify_weak_network
from .clock import Clock, SystemClock
from .compression import (
    DECOMPRESSION_FAILED,
    CompressionAdapter,
    ZlibCompressionAdapter,
    is_likely_compressed,
)
from .config import CompressionConfig, PerformanceConfig, ProbeConfig
from .engine import AdaptiveCompressionEngine
from .errors import (
    CompressionAdapterError,
    ConfigurationError,
    DecompressionError,
    NetCompressError,
    ProbeInProgressError,
    ProbeTimeoutError,
    SerializationError,
    TransportError,
)
from .executor import CompressionExecutor
from .network_monitor import NetworkMonitor, TelemetrySource
from .sample_store import SampleStore
from .speed_probe import SpeedProbe, assess_quality
from .threshold import ThresholdComposer
from .transport import HttpxTransport, Transport, TransportResponse
from .types import (
    CompressionOutcome,
    CompressionReport,
    NetworkClass,
    NetworkInfo,
    NetworkQuality,
    PerformanceStatus,
    PerformanceVerdict,
    ProbeResult,
    RecommendationLevel,
    RunningStats,
    SpeedSample,
    VerdictMetrics,
    WeakNetworkName,
    WeakNetworkProfile,
)

__all__ = [
    "__version__",
    "AdaptiveCompressionEngine",
    "PerformanceAnalyzer",
    "CompressionExecutor",
    "SpeedProbe",
    "SampleStore",
    "ThresholdComposer",
    "NetworkMonitor",
    "TelemetrySource",
    "CompressionConfig",
    "PerformanceConfig",
    "ProbeConfig",
    "CompressionAdapter",
    "ZlibCompressionAdapter",
    "DECOMPRESSION_FAILED",
    "is_likely_compressed",
    "Transport",
    "TransportResponse",
    "HttpxTransport",
    "Clock",
    "SystemClock",
    "WEAK_NETWORK_PROFILES",
    "classify_weak_network",
    "assess_quality",
    "transmission_time_ms",
    "estimate_compression_benefit",
    "NetworkClass",
    "NetworkQuality",
    "NetworkInfo",
    "WeakNetworkName",
    "WeakNetworkProfile",
    "RecommendationLevel",
    "SpeedSample",
    "ProbeResult",
    "VerdictMetrics",
    "PerformanceVerdict",
    "CompressionOutcome",
    "CompressionReport",
    "PerformanceStatus",
    "RunningStats",
    "NetCompressError",
    "ConfigurationError",
    "ProbeInProgressError",
    "TransportError",
    "ProbeTimeoutError",
    "SerializationError",
    "CompressionAdapterError",
    "DecompressionError",
]
