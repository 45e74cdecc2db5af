# =============================================================================
# netcompress -- Error Types
# =============================================================================


class NetCompressError(Exception):
    """Base exception for all netcompress errors."""


class ConfigurationError(NetCompressError):
    """Configuration failed validation."""

    def __init__(self, violations: list[str]) -> None:
        self.violations = list(violations)
        super().__init__("Invalid configuration: " + "; ".join(self.violations))


class ProbeInProgressError(NetCompressError):
    """A speed probe round is already running on this instance."""

    def __init__(self) -> None:
        super().__init__("Speed test already in progress")


class TransportError(NetCompressError):
    """A probe request failed or returned a non-OK status."""


class ProbeTimeoutError(TransportError):
    """A probe request exceeded its hard timeout."""


class SerializationError(NetCompressError):
    """Payload could not be serialized to JSON."""


class CompressionAdapterError(NetCompressError):
    """The compression adapter raised or returned an unusable result."""


class DecompressionError(NetCompressError):
    """The compression adapter could not decompress a payload."""
