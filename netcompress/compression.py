# =============================================================================
# netcompress -- Compression Adapters
# =============================================================================
#
# The executor only sees the CompressionAdapter protocol: text in, text out.
# ZlibCompressionAdapter is the default implementation.
# =============================================================================

from __future__ import annotations

import base64
import binascii
import re
import zlib
from enum import Enum
from typing import Protocol, runtime_checkable

from .constants import COMPRESSION_LEVEL


class DecompressionFailure(Enum):
    """Sentinel returned by adapters that cannot decompress a payload."""

    DECOMPRESSION_FAILED = "decompression-failed"


DECOMPRESSION_FAILED = DecompressionFailure.DECOMPRESSION_FAILED


@runtime_checkable
class CompressionAdapter(Protocol):
    """Synchronous text compressor. Async adapters are rejected by the executor."""

    def compress(self, data: str) -> str: ...

    def decompress(self, data: str) -> str | DecompressionFailure: ...

    def algorithm_name(self) -> str: ...


class ZlibCompressionAdapter:
    """Zlib over UTF-8, carried as base64 text.

    Args:
        level: Zlib compression level 1--9 (default 6).
    """

    def __init__(self, level: int = COMPRESSION_LEVEL) -> None:
        self.level = level

    def compress(self, data: str) -> str:
        return base64.b64encode(zlib.compress(data.encode("utf-8"), self.level)).decode("ascii")

    def decompress(self, data: str) -> str | DecompressionFailure:
        try:
            raw = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError):
            return DECOMPRESSION_FAILED

        try:
            inflated = zlib.decompress(raw)
        except zlib.error:
            # Try raw deflate (no zlib header)
            try:
                inflated = zlib.decompress(raw, -zlib.MAX_WBITS)
            except zlib.error:
                return DECOMPRESSION_FAILED

        try:
            return inflated.decode("utf-8")
        except UnicodeDecodeError:
            return DECOMPRESSION_FAILED

    def algorithm_name(self) -> str:
        return "zlib"


_COMPRESSED_SIGNATURES = re.compile(r"^(PK|GZIP|PNG|JPEG|GIF|%PDF|7ZIP)")


def is_likely_compressed(text: str) -> bool:
    """Heuristic: archive/image signature, NUL bytes or a leading control char."""
    if _COMPRESSED_SIGNATURES.match(text):
        return True
    if "\x00" in text:
        return True
    return bool(text) and ord(text[0]) < 32
