# =============================================================================
# netcompress -- Weak Network Classifier
# =============================================================================

from __future__ import annotations

from .types import WeakNetworkName, WeakNetworkProfile

# Half-open [min, max) bands, ordered by increasing severity. Anything
# outside them, including speeds just above 2 Kbps, is a normal network.
WEAK_NETWORK_PROFILES: tuple[WeakNetworkProfile, ...] = (
    WeakNetworkProfile(WeakNetworkName.VERY_SLOW, 1.0, 2.0, 0.1),
    WeakNetworkProfile(WeakNetworkName.EXTREMELY_SLOW, 0.5, 1.0, 0.05),
    WeakNetworkProfile(WeakNetworkName.CRITICAL, 0.1, 0.5, 0.02),
)


def classify_weak_network(
    average_speed_kbps: float | None,
    profiles: tuple[WeakNetworkProfile, ...] = WEAK_NETWORK_PROFILES,
) -> WeakNetworkProfile | None:
    """Return the weak-network profile containing the speed, or ``None``."""
    if average_speed_kbps is None:
        return None
    for profile in profiles:
        if profile.contains(average_speed_kbps):
            return profile
    return None
