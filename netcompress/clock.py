# =============================================================================
# netcompress -- Clock
# =============================================================================

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Time source injected into every time-dependent component."""

    def now_ms(self) -> int:
        """Wall-clock milliseconds, used for sample timestamps and decay."""
        ...

    def monotonic_ms(self) -> float:
        """Monotonic milliseconds, used for durations."""
        ...


class SystemClock:
    def now_ms(self) -> int:
        return int(time.time() * 1000)

    def monotonic_ms(self) -> float:
        return time.perf_counter() * 1000
