"""Transport adapters that deliver raw model-stream bytes."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Iterable
from typing import Any, Protocol

import httpx

from edu_advisor.errors import TransportError

logger = logging.getLogger(__name__)


class StreamTransport(Protocol):
    """Minimal transport contract consumed by advisory sessions."""

    def stream(self, request: dict[str, Any]) -> AsyncIterator[bytes]:
        """Send `request` and yield response body bytes as they arrive."""

    async def aclose(self) -> None:
        """Release any connection resources held by the transport."""


class HttpxStreamTransport:
    """Streams an OpenAI-compatible chat completion over httpx.

    Connection, protocol and non-200 responses all surface as
    `TransportError`; there is no retry at this layer.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = base_url.rstrip("/") + "/chat/completions"
        self._headers = {"Accept": "text/event-stream"}
        if api_key:
            self._headers["Authorization"] = f"Bearer {api_key}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )

    async def stream(self, request: dict[str, Any]) -> AsyncIterator[bytes]:
        try:
            async with self._client.stream(
                "POST", self.url, json=request, headers=self._headers
            ) as response:
                if response.status_code != 200:
                    body = await response.aread()
                    raise TransportError(
                        f"HTTP {response.status_code}: {body[:200].decode('utf-8', 'replace')}"
                    )
                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.HTTPError as exc:
            logger.warning("Model stream transport failed: %s", exc)
            raise TransportError(str(exc) or exc.__class__.__name__) from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class IterableTransport:
    """Replays in-memory byte chunks; used offline and in tests.

    `delay` yields control between chunks so concurrent sessions interleave.
    `fail_with` is raised as a `TransportError` once the chunks are exhausted.
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        *,
        delay: float = 0.0,
        fail_with: str | None = None,
    ) -> None:
        self._chunks = list(chunks)
        self._delay = delay
        self._fail_with = fail_with
        self.requests: list[dict[str, Any]] = []
        self.closed = False

    async def stream(self, request: dict[str, Any]) -> AsyncIterator[bytes]:
        self.requests.append(request)
        for chunk in self._chunks:
            await asyncio.sleep(self._delay)
            yield chunk
        if self._fail_with is not None:
            raise TransportError(self._fail_with)

    async def aclose(self) -> None:
        self.closed = True


def sse_frames(texts: Iterable[str], *, done: bool = True) -> list[bytes]:
    """Encode text deltas the way an OpenAI-compatible backend frames them."""
    frames = [
        f"data: {json.dumps({'choices': [{'delta': {'content': text}}]})}\n\n".encode("utf-8")
        for text in texts
    ]
    if done:
        frames.append(b"data: [DONE]\n\n")
    return frames
