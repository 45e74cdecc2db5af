# =============================================================================
# netcompress -- HTTP Transport
# =============================================================================
#
# The only network I/O in the package. The speed probe talks to a
# ``Transport``; ``HttpxTransport`` is the production implementation.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import httpx

from .errors import ProbeTimeoutError, TransportError

_NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
}


@dataclass(frozen=True, slots=True)
class TransportResponse:
    """Minimal view of a probe response."""

    ok: bool
    status: int
    bytes_read: int = 0


@runtime_checkable
class Transport(Protocol):
    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        timeout_ms: float,
    ) -> TransportResponse: ...


class HttpxTransport:
    """``Transport`` backed by :class:`httpx.AsyncClient`.

    GET bodies are streamed to the end so the measured time covers the
    whole transfer.

    Args:
        base_url: Prefix for relative probe URLs.
        client: Shared client to borrow. When omitted the transport owns
            one and closes it in :meth:`aclose`.
    """

    def __init__(
        self,
        base_url: str = "",
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url)

    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        timeout_ms: float,
    ) -> TransportResponse:
        timeout = httpx.Timeout(timeout_ms / 1000)
        try:
            async with self._client.stream(
                method, url, headers=_NO_CACHE_HEADERS, timeout=timeout
            ) as response:
                bytes_read = 0
                if method == "GET":
                    async for chunk in response.aiter_bytes():
                        bytes_read += len(chunk)
        except httpx.TimeoutException as exc:
            raise ProbeTimeoutError("Speed test timeout") from exc
        except (httpx.HTTPError, httpx.StreamError) as exc:
            raise TransportError(f"Speed test request failed: {exc}") from exc

        return TransportResponse(
            ok=response.is_success,
            status=response.status_code,
            bytes_read=bytes_read,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()
