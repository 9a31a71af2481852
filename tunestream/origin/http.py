from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import httpx

from tunestream.errors import OriginUnavailable, ResourceNotFound, UnsatisfiableRange
from tunestream.origin import DEFAULT_CONTENT_TYPE, Origin, ResourceDescriptor
from tunestream.ranges import ByteRange

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024

# byte offsets must refer to the stored file, not a compressed rendition of it
IDENTITY = {"Accept-Encoding": "identity"}


def total_from_content_range(value: str | None) -> int | None:
    """`bytes 0-99/1000` -> 1000, `bytes */1000` -> 1000, unknown length -> None."""
    if not value or "/" not in value:
        return None
    total = value.rsplit("/", 1)[1].strip()
    return int(total) if total.isdigit() else None


def _check_status(response: httpx.Response, url: str) -> None:
    if response.status_code in (404, 410):
        raise ResourceNotFound()
    if response.status_code == 416:
        raise UnsatisfiableRange(total_from_content_range(response.headers.get("Content-Range")) or 0)
    if response.status_code not in (200, 206):
        logger.warning(f"Origin answered {response.status_code} for {url}")
        raise OriginUnavailable()


@dataclass
class HttpStream:
    response: httpx.Response
    chunk_size: int

    @property
    def status(self) -> int:
        return self.response.status_code

    @property
    def partial(self) -> bool:
        return self.response.status_code == 206

    @property
    def total(self) -> int | None:
        if self.partial:
            return total_from_content_range(self.response.headers.get("Content-Range"))
        length = self.response.headers.get("Content-Length")
        return int(length) if length and length.isdigit() else None

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.response.aiter_bytes(self.chunk_size):
                yield chunk
        except (httpx.HTTPError, httpx.StreamError) as e:
            raise OriginUnavailable(f"Origin stream interrupted: {e!r}") from e

    async def aclose(self) -> None:
        await self.response.aclose()


@dataclass
class HttpOrigin(Origin):
    client: httpx.AsyncClient
    probe_timeout: float = 10.0
    chunk_size: int = DEFAULT_CHUNK_SIZE

    @classmethod
    @asynccontextmanager
    async def connect(
        cls,
        probe_timeout: float = 10.0,
        connect_timeout: float = 10.0,
        read_timeout: float = 30.0,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> AsyncIterator[HttpOrigin]:
        timeout = httpx.Timeout(read_timeout, connect=connect_timeout)
        limits = httpx.Limits(max_connections=100, max_keepalive_connections=20)
        async with httpx.AsyncClient(timeout=timeout, limits=limits, follow_redirects=True) as client:
            yield cls(client, probe_timeout, chunk_size)

    async def probe(self, url: str) -> ResourceDescriptor:
        try:
            response = await self.client.head(url, headers=IDENTITY, timeout=self.probe_timeout)
        except httpx.HTTPError as e:
            logger.warning(f"Probe of {url} failed: {e!r}")
            raise OriginUnavailable() from e
        _check_status(response, url)
        length = response.headers.get("Content-Length", "")
        if not length.isdigit():
            logger.warning(f"Origin did not report a usable Content-Length for {url}: {length!r}")
            raise OriginUnavailable()
        return ResourceDescriptor(
            total_length=int(length),
            content_type=response.headers.get("Content-Type", DEFAULT_CONTENT_TYPE),
            range_supported=response.headers.get("Accept-Ranges", "").lower() == "bytes",
        )

    async def open(self, url: str, byte_range: ByteRange | None = None) -> HttpStream:
        headers = dict(IDENTITY)
        if byte_range is not None:
            headers["Range"] = byte_range.header
        request = self.client.build_request("GET", url, headers=headers)
        try:
            response = await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            logger.warning(f"Opening {url} failed: {e!r}")
            raise OriginUnavailable() from e
        try:
            _check_status(response, url)
        except Exception:
            await response.aclose()
            raise
        return HttpStream(response, self.chunk_size)
