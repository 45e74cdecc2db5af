# =============================================================================
# netcompress -- Sample Store
# =============================================================================
#
# Time-windowed, exponentially time-decayed speed samples -> one average.
# =============================================================================

from __future__ import annotations

import math
from dataclasses import replace

from .clock import Clock, SystemClock
from .constants import SAMPLE_DECAY_MS, SAMPLE_RETENTION_MS
from .types import SpeedSample


class SampleStore:
    """Holds recent :class:`SpeedSample` objects and their decayed average.

    Samples older than *retention_ms* are dropped on every insertion, then
    the average is recomputed with ``weight = exp(-age / decay_ms)``. The
    average depends only on the retained timestamps, not insertion order.

    Args:
        clock: Time source for "now".
        retention_ms: Hard retention window (default 10 minutes).
        decay_ms: Decay constant (default 5 minutes).
    """

    def __init__(
        self,
        *,
        clock: Clock | None = None,
        retention_ms: int = SAMPLE_RETENTION_MS,
        decay_ms: int = SAMPLE_DECAY_MS,
    ) -> None:
        self._clock = clock or SystemClock()
        self._retention_ms = retention_ms
        self._decay_ms = decay_ms
        self._samples: list[SpeedSample] = []
        self._average: float | None = None

    def add(self, sample: SpeedSample) -> float | None:
        """Insert *sample*, prune, recompute; returns the new average."""
        if not math.isfinite(sample.speed_kbps) or sample.speed_kbps < 0:
            raise ValueError(f"Invalid sample speed: {sample.speed_kbps!r}")

        now = self._clock.now_ms()
        if sample.timestamp_ms is None:
            sample = replace(sample, timestamp_ms=now)

        self._samples.append(sample)
        cutoff = now - self._retention_ms
        self._samples = [s for s in self._samples if s.timestamp_ms > cutoff]
        self._average = self._weighted_average(now)
        return self._average

    @property
    def average(self) -> float | None:
        """Decayed average in Kbps, ``None`` when no sample is retained."""
        return self._average

    @property
    def samples(self) -> tuple[SpeedSample, ...]:
        return tuple(self._samples)

    @property
    def sample_count(self) -> int:
        return len(self._samples)

    @property
    def last_sample_at_ms(self) -> int | None:
        if not self._samples:
            return None
        return max(s.timestamp_ms for s in self._samples)

    def clear(self) -> None:
        self._samples = []
        self._average = None

    def _weighted_average(self, now: int) -> float | None:
        if not self._samples:
            return None

        weighted_sum = 0.0
        total_weight = 0.0
        for sample in self._samples:
            weight = math.exp(-(now - sample.timestamp_ms) / self._decay_ms)
            weighted_sum += sample.speed_kbps * weight
            total_weight += weight

        return weighted_sum / total_weight if total_weight > 0 else None
