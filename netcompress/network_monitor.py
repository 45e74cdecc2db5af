# =============================================================================
# netcompress -- Network Monitor
# =============================================================================
#
# Telemetry source -> normalized NetworkInfo, plus a listener channel for
# network-class changes.
# =============================================================================

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from ._logging import logger
from .constants import FALLBACK_DOWNLINK_MBPS, FALLBACK_RTT_MS
from .types import NetworkClass, NetworkInfo

NetworkListener = Callable[[NetworkInfo], object]

_TYPE_SCORES = {
    NetworkClass.SLOW_2G.value: 10,
    NetworkClass.G2.value: 30,
    NetworkClass.G3.value: 60,
    NetworkClass.G4.value: 90,
}

_DESCRIPTIONS = {
    NetworkClass.SLOW_2G.value: "Very slow connection (2G)",
    NetworkClass.G2.value: "Slow connection (2G)",
    NetworkClass.G3.value: "Medium speed connection (3G)",
    NetworkClass.G4.value: "Fast connection (4G)",
}


@runtime_checkable
class TelemetrySource(Protocol):
    """Anything that can report the current connection."""

    def get_network_info(self) -> NetworkInfo | None: ...


class NetworkMonitor:
    """Read network telemetry and fan out changes to listeners.

    Without a source (or when the source fails) the last known info is
    reused; before any info was seen the fallback is ``4g``, 10 Mbps, 100 ms.
    """

    def __init__(self, source: TelemetrySource | None = None) -> None:
        self._source = source
        self._listeners: list[NetworkListener] = []
        self._last_known: NetworkInfo | None = None
        self._last_notified: NetworkClass | None = None

    @property
    def last_known(self) -> NetworkInfo | None:
        return self._last_known

    def network_info(self) -> NetworkInfo:
        if self._source is None:
            return self._fallback()

        try:
            raw = self._source.get_network_info()
        except Exception as exc:
            logger.warning("Network detection failed: %s", exc)
            return self._fallback()

        if raw is None:
            return self._fallback()

        info = NetworkInfo(
            effective_type=NetworkClass.normalize(raw.effective_type),
            downlink_mbps=raw.downlink_mbps,
            rtt_ms=raw.rtt_ms,
            save_data=raw.save_data,
        )
        self._last_known = info
        return info

    def _fallback(self) -> NetworkInfo:
        if self._last_known is not None:
            return self._last_known
        return NetworkInfo(
            effective_type=NetworkClass.G4,
            downlink_mbps=FALLBACK_DOWNLINK_MBPS,
            rtt_ms=FALLBACK_RTT_MS,
            save_data=False,
        )

    # -- Derived views --------------------------------------------------------

    def is_slow_network(self, info: NetworkInfo | None = None) -> bool:
        info = info or self.network_info()
        return info.effective_type in (NetworkClass.SLOW_2G, NetworkClass.G2)

    def is_fast_network(self, info: NetworkInfo | None = None) -> bool:
        info = info or self.network_info()
        return info.effective_type == NetworkClass.G4

    def quality_score(self, info: NetworkInfo | None = None) -> int:
        """0-100 score from type, downlink, RTT and data-saver mode."""
        info = info or self.network_info()
        score = _TYPE_SCORES.get(NetworkClass.normalize(info.effective_type).value, 50)

        if info.downlink_mbps:
            if info.downlink_mbps >= 10:
                score += 10
            elif info.downlink_mbps < 1:
                score -= 10

        if info.rtt_ms:
            if info.rtt_ms <= 100:
                score += 5
            elif info.rtt_ms >= 500:
                score -= 10

        if info.save_data:
            score -= 20

        return max(0, min(100, score))

    def description(self, info: NetworkInfo | None = None) -> str:
        info = info or self.network_info()
        text = _DESCRIPTIONS.get(
            NetworkClass.normalize(info.effective_type).value, "Unknown network type"
        )
        if info.save_data:
            text += " (Data saver mode)"
        return text

    # -- Listeners ------------------------------------------------------------

    def subscribe(self, listener: NetworkListener) -> Callable[[], None]:
        """Register *listener*; returns a callable that removes it again."""
        if not callable(listener):
            raise TypeError("Listener must be callable")
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: NetworkListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify(self, info: NetworkInfo) -> None:
        for listener in list(self._listeners):
            try:
                listener(info)
            except Exception:
                logger.exception("Error in network change listener")

    def refresh(self) -> NetworkInfo:
        """Poll the source and notify listeners if the network class changed."""
        info = self.network_info()
        if info.effective_type != self._last_notified:
            self._last_notified = info.effective_type
            self.notify(info)
        return info

    def destroy(self) -> None:
        self._listeners.clear()
        self._last_known = None
        self._last_notified = None
