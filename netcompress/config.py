# =============================================================================
# netcompress -- Configuration
# =============================================================================
#
# Typed configuration with explicit defaults and a single validation pass.
# Validation happens here, never at decision time.
# =============================================================================

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Mapping

import orjson

from ._logging import logger
from .constants import (
    AGGRESSIVE_MODE_THRESHOLD_KBPS,
    DEFAULT_THRESHOLDS,
    MAX_COMPRESSION_SIZE,
    MIN_COMPRESSION_RATIO,
    MIN_COMPRESSION_SIZE,
    MIN_SPEED_TEST_SAMPLES,
    PERFORMANCE_THRESHOLD_MS,
    PROBE_CONCURRENT_FETCHES,
    PROBE_FALLBACK_LATENCY_MS,
    PROBE_HISTORY_SIZE,
    PROBE_LATENCY_COUNT,
    PROBE_LATENCY_GAP_MS,
    PROBE_REQUEST_TIMEOUT_MS,
    PROBE_ROUND_TIMEOUT_MS,
    PROBE_TEST_SIZE,
    PROBE_TEST_URL,
    SPEED_TEST_INTERVAL_MS,
)
from .errors import ConfigurationError
from .types import NetworkClass

# slow-2g <= 2g <= 3g <= 4g
_CLASS_ORDER = (NetworkClass.SLOW_2G, NetworkClass.G2, NetworkClass.G3, NetworkClass.G4)


@dataclass
class PerformanceConfig:
    """Live-measurement driven decision settings.

    Attributes:
        enabled: Use live speed data when available.
        performance_threshold_ms: Target transmission time per payload.
        speed_test_interval_ms: Period of the engine's background probe loop.
        min_speed_test_samples: Informational; decisions still run below it.
        aggressive_mode_threshold_kbps: Reserved. Accepted and validated,
            not read by any decision path.
    """

    enabled: bool = True
    performance_threshold_ms: float = PERFORMANCE_THRESHOLD_MS
    speed_test_interval_ms: int = SPEED_TEST_INTERVAL_MS
    min_speed_test_samples: int = MIN_SPEED_TEST_SAMPLES
    aggressive_mode_threshold_kbps: float = AGGRESSIVE_MODE_THRESHOLD_KBPS


@dataclass
class ProbeConfig:
    """Speed probe protocol settings (all times in milliseconds).

    ``round_timeout_ms`` bounds a whole round, latency phase included;
    ``request_timeout_ms`` bounds each request within it.
    """

    test_url: str = PROBE_TEST_URL
    test_size: int = PROBE_TEST_SIZE
    latency_probes: int = PROBE_LATENCY_COUNT
    latency_probe_gap_ms: float = PROBE_LATENCY_GAP_MS
    concurrent_fetches: int = PROBE_CONCURRENT_FETCHES
    request_timeout_ms: float = PROBE_REQUEST_TIMEOUT_MS
    round_timeout_ms: float = PROBE_ROUND_TIMEOUT_MS
    fallback_latency_ms: float = PROBE_FALLBACK_LATENCY_MS
    history_size: int = PROBE_HISTORY_SIZE

    def validate(self) -> list[str]:
        """Return every violation found; an empty list means valid."""
        violations: list[str] = []
        if not isinstance(self.test_url, str) or not self.test_url:
            violations.append("Invalid probe.test_url: must be a non-empty string")
        for name in ("test_size", "latency_probes", "concurrent_fetches", "history_size"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value < 1:
                violations.append(f"Invalid probe.{name}: must be an integer >= 1")
        for name in ("request_timeout_ms", "round_timeout_ms", "fallback_latency_ms"):
            value = getattr(self, name)
            if not _is_number(value) or value <= 0:
                violations.append(f"Invalid probe.{name}: must be positive")
        if not _is_number(self.latency_probe_gap_ms) or self.latency_probe_gap_ms < 0:
            violations.append("Invalid probe.latency_probe_gap_ms: must be non-negative")
        return violations

    def merged(self, overrides: Mapping[str, Any]) -> ProbeConfig:
        """Return a validated copy with *overrides* applied.

        Raises:
            ConfigurationError: On unknown option names or invalid values.
        """
        _reject_unknown(ProbeConfig, overrides, prefix="probe.")
        options = replace(self, **overrides)
        violations = options.validate()
        if violations:
            raise ConfigurationError(violations)
        return options


@dataclass
class CompressionConfig:
    """Top-level configuration.

    Attributes:
        thresholds: Static compression threshold per network class, bytes.
            Must be non-decreasing from ``slow-2g`` to ``4g``.
        enable_auto_compression: Allow the static fallback path to compress.
        max_compression_size: Static path never compresses above this size.
        min_compression_size: Executor skips smaller payloads unless forced.
        min_compression_ratio: Smallest ratio worth keeping, in ``[0, 1)``.
        enable_fallback: Recover from serialization/adapter faults by
            returning the original data instead of raising.
        performance: Live-data settings.
        probe: Speed probe settings.
    """

    thresholds: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_THRESHOLDS))
    enable_auto_compression: bool = True
    max_compression_size: int = MAX_COMPRESSION_SIZE
    min_compression_size: int = MIN_COMPRESSION_SIZE
    min_compression_ratio: float = MIN_COMPRESSION_RATIO
    enable_fallback: bool = True
    performance: PerformanceConfig = field(default_factory=PerformanceConfig)
    probe: ProbeConfig = field(default_factory=ProbeConfig)

    def __post_init__(self) -> None:
        merged = dict(DEFAULT_THRESHOLDS)
        for key, value in (self.thresholds or {}).items():
            name = key.value if isinstance(key, NetworkClass) else str(key)
            merged[name] = value
        self.thresholds = merged

    # -- Construction ---------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> CompressionConfig:
        """Build a config from plain data, merging partial sections over defaults.

        Raises:
            ConfigurationError: On unknown option names.
        """
        options = dict(data or {})
        _reject_unknown(cls, options, prefix="")
        performance = _section(PerformanceConfig, options.pop("performance", None), "performance.")
        probe = _section(ProbeConfig, options.pop("probe", None), "probe.")
        return cls(performance=performance, probe=probe, **options)

    @classmethod
    def from_json(cls, text: str | bytes) -> CompressionConfig:
        try:
            data = orjson.loads(text)
        except orjson.JSONDecodeError as exc:
            raise ConfigurationError([f"Invalid configuration JSON: {exc}"]) from exc
        if not isinstance(data, dict):
            raise ConfigurationError(["Configuration JSON must be an object"])
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return orjson.dumps(self.to_dict(), option=orjson.OPT_INDENT_2).decode()

    def merged(self, changes: Mapping[str, Any]) -> CompressionConfig:
        """Return a new config with *changes* applied section by section."""
        data = self.to_dict()
        for key, value in changes.items():
            if key in ("thresholds", "performance", "probe") and isinstance(value, Mapping):
                data[key] = {**data[key], **value}
            else:
                data[key] = value
        return CompressionConfig.from_dict(data)

    # -- Validation -----------------------------------------------------------

    def validate(self) -> list[str]:
        """Return every violation found; an empty list means valid."""
        violations: list[str] = []
        known = {nc.value for nc in NetworkClass}

        for name, value in self.thresholds.items():
            if name not in known:
                violations.append(f"Unknown network type in thresholds: {name}")
            if not _is_number(value) or value < 0:
                violations.append(f"Invalid threshold for {name}: must be a non-negative number")

        ordered = [self.thresholds.get(nc.value) for nc in _CLASS_ORDER]
        if all(_is_number(v) for v in ordered):
            if any(a > b for a, b in zip(ordered, ordered[1:])):
                violations.append(
                    "Compression thresholds should increase with network speed "
                    "(slow-2g <= 2g <= 3g <= 4g)"
                )

        if not _is_number(self.max_compression_size) or self.max_compression_size <= 0:
            violations.append("Invalid max_compression_size: must be a positive number")
        if not _is_number(self.min_compression_size) or self.min_compression_size < 0:
            violations.append("Invalid min_compression_size: must be a non-negative number")
        if not _is_number(self.min_compression_ratio) or not 0 <= self.min_compression_ratio < 1:
            violations.append("Invalid min_compression_ratio: must be in [0, 1)")

        perf = self.performance
        if not _is_number(perf.performance_threshold_ms) or perf.performance_threshold_ms <= 0:
            violations.append("Invalid performance.performance_threshold_ms: must be positive")
        if not _is_number(perf.speed_test_interval_ms) or perf.speed_test_interval_ms <= 0:
            violations.append("Invalid performance.speed_test_interval_ms: must be positive")
        if not _is_number(perf.min_speed_test_samples) or perf.min_speed_test_samples < 1:
            violations.append("Invalid performance.min_speed_test_samples: must be at least 1")
        if (
            not _is_number(perf.aggressive_mode_threshold_kbps)
            or perf.aggressive_mode_threshold_kbps <= 0
        ):
            violations.append(
                "Invalid performance.aggressive_mode_threshold_kbps: must be positive"
            )

        violations.extend(self.probe.validate())
        return violations

    def ensure_valid(self) -> CompressionConfig:
        violations = self.validate()
        if violations:
            raise ConfigurationError(violations)
        return self

    # -- Thresholds -----------------------------------------------------------

    def threshold_for(self, network_class: NetworkClass | str | None) -> int:
        """Static threshold for *network_class*; unknown classes use ``4g``."""
        nc = NetworkClass.normalize(network_class)
        if network_class is not None and nc.value != network_class:
            logger.debug("Unknown network type %r, using %s threshold", network_class, nc.value)
        return self.thresholds[nc.value]

    def set_threshold(self, network_class: NetworkClass | str, value: int) -> bool:
        """Set one threshold; reverts and returns False if the result is invalid."""
        name = network_class.value if isinstance(network_class, NetworkClass) else network_class
        if name not in {nc.value for nc in NetworkClass}:
            logger.warning("Cannot set threshold for unknown network type: %s", name)
            return False

        previous = self.thresholds[name]
        self.thresholds[name] = value
        violations = self.validate()
        if violations:
            self.thresholds[name] = previous
            logger.warning("Threshold %s=%r rejected: %s", name, value, "; ".join(violations))
            return False

        logger.info("Updated threshold for %s: %s -> %s", name, previous, value)
        return True

    def summary(self) -> dict[str, Any]:
        return {
            "thresholds": dict(self.thresholds),
            "enable_auto_compression": self.enable_auto_compression,
            "max_compression_size": format_bytes(self.max_compression_size),
            "min_compression_ratio": self.min_compression_ratio,
            "enable_fallback": self.enable_fallback,
            "performance_optimization": self.performance.enabled,
            "performance_threshold": f"{self.performance.performance_threshold_ms}ms",
            "speed_test_interval": f"{self.performance.speed_test_interval_ms}ms",
        }


def format_bytes(size: int) -> str:
    """Human-readable size, e.g. ``1048576 -> "1 MB"``."""
    if size <= 0:
        return "0 Bytes"
    units = ("Bytes", "KB", "MB", "GB")
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {units[unit]}"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _reject_unknown(kind: type, options: Mapping[str, Any], prefix: str) -> None:
    allowed = {f.name for f in fields(kind)}
    unknown = sorted(k for k in options if k not in allowed)
    if unknown:
        raise ConfigurationError([f"Unknown option: {prefix}{name}" for name in unknown])


def _section(kind: type, value: Any, prefix: str) -> Any:
    if value is None:
        return kind()
    if isinstance(value, kind):
        return value
    if not isinstance(value, Mapping):
        raise ConfigurationError([f"Option {prefix.rstrip('.')} must be a mapping"])
    _reject_unknown(kind, value, prefix)
    return kind(**value)
