# =============================================================================
# netcompress -- Compression Executor
# =============================================================================
#
# Serialize -> compress via adapter -> keep the result only if it is worth
# it. Never returns a result larger than the original unless forced.
# =============================================================================

from __future__ import annotations

import inspect
from dataclasses import replace
from typing import Any

import orjson

from ._logging import logger
from .clock import Clock, SystemClock
from .compression import DECOMPRESSION_FAILED, CompressionAdapter, is_likely_compressed
from .config import CompressionConfig
from .constants import ALGORITHM_NONE, HEURISTIC_MIN_SIZE
from .errors import CompressionAdapterError, DecompressionError, SerializationError
from .types import CompressionOutcome, RunningStats

# Absorbs float error so a ratio exactly at the configured minimum passes
_RATIO_TOLERANCE = 1e-9


def serialize(data: Any) -> str:
    """Strings pass through; everything else is JSON-encoded."""
    if isinstance(data, str):
        return data
    try:
        return orjson.dumps(data).decode("utf-8")
    except orjson.JSONEncodeError as exc:
        raise SerializationError(f"Data serialization failed: {exc}") from exc


def payload_size(text: str) -> int:
    """Size of *text* in UTF-8 bytes."""
    return len(text.encode("utf-8", errors="surrogatepass"))


class CompressionExecutor:
    """Applies compression decisions and keeps running statistics.

    Args:
        adapter: Synchronous compression adapter.
        config: Supplies ``min_compression_size``, ``min_compression_ratio``
            and ``enable_fallback``.
        clock: Time source for elapsed-time measurement.

    Raises:
        CompressionAdapterError: If *adapter* has a coroutine ``compress``.
    """

    def __init__(
        self,
        adapter: CompressionAdapter,
        config: CompressionConfig | None = None,
        *,
        clock: Clock | None = None,
    ) -> None:
        if inspect.iscoroutinefunction(adapter.compress):
            raise CompressionAdapterError("Async compression adapters are not supported")
        self._adapter = adapter
        self._config = config or CompressionConfig()
        self._clock = clock or SystemClock()
        self._stats = RunningStats()

    @property
    def adapter(self) -> CompressionAdapter:
        return self._adapter

    @property
    def config(self) -> CompressionConfig:
        return self._config

    @config.setter
    def config(self, config: CompressionConfig) -> None:
        self._config = config

    @property
    def stats(self) -> RunningStats:
        """Copy of the running statistics."""
        return replace(self._stats)

    def reset_stats(self) -> None:
        self._stats.reset()

    # -- Compression ----------------------------------------------------------

    def execute(self, data: Any, force: bool = False) -> CompressionOutcome:
        """Compress *data* and apply the accept/reject rule.

        Raises:
            SerializationError: Unserializable data with fallback disabled.
            Exception: Whatever the adapter raised, with fallback disabled.
        """
        started = self._clock.monotonic_ms()

        try:
            original = serialize(data)
        except SerializationError as exc:
            self._stats.record(0, 0, False, self._elapsed(started))
            if not self._config.enable_fallback:
                raise
            logger.warning("%s", exc)
            return CompressionOutcome(
                accepted=False,
                payload=data,
                original_size_bytes=0,
                final_size_bytes=0,
                ratio=0.0,
                algorithm=ALGORITHM_NONE,
                elapsed_ms=self._elapsed(started),
                forced=force,
                error_message=str(exc),
            )

        original_size = payload_size(original)

        if original_size < self._config.min_compression_size and not force:
            return self._reject(
                original, original_size, started, force, "Data too small for compression"
            )

        try:
            compressed = self._compress(original)
        except Exception as exc:
            if not self._config.enable_fallback:
                self._stats.record(original_size, original_size, False, self._elapsed(started))
                raise
            logger.warning("Compression failed, keeping original data: %s", exc)
            return self._reject(
                original, original_size, started, force, f"Compression failed: {exc}"
            )

        if compressed is None:
            return self._reject(original, original_size, started, force, None)

        compressed_size = payload_size(compressed)
        ratio = 1 - compressed_size / original_size if original_size else 0.0

        if not force:
            if compressed_size >= original_size:
                return self._reject(original, original_size, started, force, None)
            if ratio + _RATIO_TOLERANCE < self._config.min_compression_ratio:
                return self._reject(original, original_size, started, force, None)

        elapsed = self._elapsed(started)
        self._stats.record(original_size, compressed_size, True, elapsed)
        return CompressionOutcome(
            accepted=True,
            payload=compressed,
            original_size_bytes=original_size,
            final_size_bytes=compressed_size,
            ratio=ratio,
            algorithm=self._adapter.algorithm_name(),
            elapsed_ms=elapsed,
            forced=force,
        )

    def decompress(self, payload: str, algorithm: str | None = None) -> str:
        """Reverse :meth:`execute`.

        Payloads marked ``none`` are returned unchanged.

        Raises:
            DecompressionError: The adapter failed, returned the failure
                sentinel, or *algorithm* is not the adapter's.
        """
        algorithm = algorithm or self._adapter.algorithm_name()
        if algorithm == ALGORITHM_NONE:
            return payload
        if algorithm != self._adapter.algorithm_name():
            raise DecompressionError(f"Unsupported algorithm: {algorithm}")

        try:
            result = self._adapter.decompress(payload)
        except Exception as exc:
            raise DecompressionError(f"Decompression failed: {exc}") from exc

        if result is DECOMPRESSION_FAILED or result is None:
            raise DecompressionError(
                f"Decompression failed: {algorithm} could not decompress payload"
            )
        return result

    def should_compress(self, data: Any) -> bool:
        """Cheap pre-check: big enough, compressible type, not already compressed."""
        try:
            serialized = serialize(data)
        except SerializationError:
            return False
        if payload_size(serialized) < HEURISTIC_MIN_SIZE:
            return False
        if is_likely_compressed(serialized):
            return False
        return isinstance(data, (dict, list, tuple, str))

    def benchmark(self, data: Any, iterations: int = 10) -> dict[str, Any]:
        """Run :meth:`execute` *iterations* times and average accepted runs."""
        outcomes = [self.execute(data) for _ in range(iterations)]
        accepted = [o for o in outcomes if o.accepted]
        count = len(accepted)
        return {
            "algorithm": self._adapter.algorithm_name(),
            "iterations": iterations,
            "results": outcomes,
            "average_ratio": sum(o.ratio for o in accepted) / count if count else 0.0,
            "average_elapsed_ms": sum(o.elapsed_ms for o in accepted) / count if count else 0.0,
            "success_rate": count / iterations if iterations else 0.0,
        }

    # -- Internal -------------------------------------------------------------

    def _compress(self, original: str) -> str | None:
        result = self._adapter.compress(original)
        if inspect.isawaitable(result):
            if inspect.iscoroutine(result):
                result.close()
            raise CompressionAdapterError(
                "Async compression adapter not supported in synchronous context"
            )
        if result is not None and not isinstance(result, str):
            raise CompressionAdapterError(
                f"Compression adapter returned {type(result).__name__}, expected str"
            )
        return result

    def _reject(
        self,
        original: str,
        original_size: int,
        started: float,
        force: bool,
        error_message: str | None,
    ) -> CompressionOutcome:
        elapsed = self._elapsed(started)
        self._stats.record(original_size, original_size, False, elapsed)
        return CompressionOutcome(
            accepted=False,
            payload=original,
            original_size_bytes=original_size,
            final_size_bytes=original_size,
            ratio=0.0,
            algorithm=ALGORITHM_NONE,
            elapsed_ms=elapsed,
            forced=force,
            error_message=error_message,
        )

    def _elapsed(self, started: float) -> float:
        return max(0.0, self._clock.monotonic_ms() - started)
