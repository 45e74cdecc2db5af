# =============================================================================
# netcompress -- Threshold Composer
# =============================================================================

from __future__ import annotations

import math

from .constants import (
    BLEND_BASELINE_WEIGHT,
    BLEND_DYNAMIC_WEIGHT,
    DYNAMIC_BUDGET_SHARE,
    DYNAMIC_THRESHOLD_FLOOR,
    PERFORMANCE_THRESHOLD_MS,
)
from .types import WeakNetworkProfile


class ThresholdComposer:
    """Derive the byte threshold above which compression is worthwhile.

    With a live speed the threshold is half the payload that fits in the
    target transmission time, blended 30/70 with the static baseline and
    capped at the baseline: live data can only move the trigger earlier.
    Without live data the baseline is returned, shrunk by the weak-network
    multiplier when one applies.

    Args:
        performance_threshold_ms: Target transmission time.
    """

    def __init__(self, performance_threshold_ms: float = PERFORMANCE_THRESHOLD_MS) -> None:
        self.performance_threshold_ms = performance_threshold_ms

    def compose(
        self,
        baseline: int,
        *,
        actual_speed_kbps: float | None = None,
        weak_profile: WeakNetworkProfile | None = None,
    ) -> int:
        if actual_speed_kbps is not None and actual_speed_kbps > 0:
            return self.live_threshold(baseline, actual_speed_kbps)
        if weak_profile is not None:
            return math.floor(baseline * weak_profile.multiplier)
        return baseline

    def live_threshold(self, baseline: int, actual_speed_kbps: float) -> int:
        max_bytes_in_budget = self.performance_threshold_ms * actual_speed_kbps * 1000 / 8
        candidate = max(DYNAMIC_THRESHOLD_FLOOR, math.floor(max_bytes_in_budget * DYNAMIC_BUDGET_SHARE))
        blended = math.floor(baseline * BLEND_BASELINE_WEIGHT + candidate * BLEND_DYNAMIC_WEIGHT)
        return min(blended, baseline)
