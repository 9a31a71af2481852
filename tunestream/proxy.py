"""Range-aware audio streaming from a remote origin.

The proxy answers `GET /stream/<id>` by resolving the id to an origin URL,
probing the origin for the resource's length and type, and relaying either
the whole file (200) or the one byte range the client asked for (206).
Bytes are forwarded as they arrive; nothing is buffered beyond a chunk.

Everything that can fail is done before the response starts: the catalogue
lookup, the probe and opening the origin stream. Once headers are sent, an
origin failure or short body raises out of the body iterator so the server
drops the connection and the client sees a short read, never a truncated
200/206.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass

from fastapi.responses import Response, StreamingResponse
from starlette.requests import ClientDisconnect
from starlette.types import Receive, Scope, Send

from tunestream.catalog import Catalog, MediaRecord
from tunestream.errors import OriginUnavailable, UnsatisfiableRange
from tunestream.metadata import DescriptorCache
from tunestream.origin import Origin, OriginStream, ResourceDescriptor
from tunestream.ranges import ByteRange, RangeRequest, parse_range_header

logger = logging.getLogger(__name__)

DEFAULT_CACHE_CONTROL = "public, max-age=31536000"


@dataclass(frozen=True)
class StreamPlan:
    """What will be sent for one request, decided before any byte moves."""

    resource_id: str
    url: str
    descriptor: ResourceDescriptor
    requested: RangeRequest | None
    byte_range: ByteRange | None
    cached: bool
    declared_type: str | None = None

    @property
    def status_code(self) -> int:
        return 206 if self.byte_range is not None else 200

    @property
    def content_type(self) -> str:
        """The catalogue's declared type when it has one, else what the origin reports."""
        return self.declared_type or self.descriptor.content_type

    @property
    def content_length(self) -> int:
        if self.byte_range is not None:
            return self.byte_range.length
        return self.descriptor.total_length

    def headers(self, cache_control: str) -> dict[str, str]:
        headers = {
            "Content-Length": str(self.content_length),
            "Accept-Ranges": "bytes",
            "Cache-Control": cache_control,
        }
        if self.byte_range is not None:
            headers["Content-Range"] = self.byte_range.content_range
        return headers

    def with_descriptor(self, descriptor: ResourceDescriptor) -> StreamPlan:
        byte_range = self.requested.resolve(descriptor.total_length) if self.requested is not None else None
        return dataclasses.replace(self, descriptor=descriptor, byte_range=byte_range, cached=False)


class OriginStreamResponse(StreamingResponse):
    """Streams an origin body and always closes the origin stream afterwards.

    The close happens however the response ends: completion, an origin
    error, or the client going away mid-transfer.
    """

    def __init__(
        self,
        origin_stream: OriginStream,
        content: AsyncIterator[bytes],
        status_code: int,
        headers: dict[str, str],
        media_type: str,
    ) -> None:
        super().__init__(content, status_code=status_code, headers=headers, media_type=media_type)
        self.origin_stream = origin_stream

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except ClientDisconnect:
            logger.debug("Client disconnected mid-stream")
        finally:
            await self.origin_stream.aclose()


async def relay(stream: OriginStream, plan: StreamPlan) -> AsyncIterator[bytes]:
    """Forward exactly `plan.content_length` bytes of the planned window.

    An origin that ignored the Range request sends the whole file; the
    bytes before the window are skipped here instead.
    """
    skip = plan.byte_range.start if plan.byte_range is not None and not stream.partial else 0
    remaining = plan.content_length
    if remaining == 0:
        return
    async for chunk in stream.aiter_bytes():
        if skip:
            if len(chunk) <= skip:
                skip -= len(chunk)
                continue
            chunk = chunk[skip:]
            skip = 0
        chunk = chunk[:remaining]
        remaining -= len(chunk)
        if chunk:
            yield chunk
        if remaining == 0:
            return
    logger.warning(f"Origin for {plan.resource_id} ended {remaining} bytes short")
    raise OriginUnavailable("Origin ended the stream early")


@dataclass
class RangeStreamProxy:
    catalog: Catalog
    origin: Origin
    descriptors: DescriptorCache
    cache_control: str = DEFAULT_CACHE_CONTROL
    cloud_name: str | None = None

    async def resolve(self, resource_id: str) -> MediaRecord:
        return await self.catalog.resolve(resource_id)

    async def describe(self, resource_id: str, url: str, fresh: bool = False) -> tuple[ResourceDescriptor, bool]:
        """The resource's descriptor, and whether it came from the cache.

        `fresh` skips the cache; used where no origin stream will be opened to
        check the cached length against.
        """
        if fresh:
            return await self.reprobe(resource_id, url), False
        cached = await self.descriptors.get(resource_id)
        if cached is not None:
            return cached, True
        descriptor = await self.origin.probe(url)
        await self.descriptors.put(resource_id, descriptor)
        return descriptor, False

    async def reprobe(self, resource_id: str, url: str) -> ResourceDescriptor:
        await self.descriptors.invalidate(resource_id)
        descriptor = await self.origin.probe(url)
        await self.descriptors.put(resource_id, descriptor)
        return descriptor

    async def plan(self, resource_id: str, range_header: str | None, fresh: bool = False) -> StreamPlan:
        """Work out status and headers for a request, raising for 404/416/502."""
        record = await self.resolve(resource_id)
        url = record.origin_url(self.cloud_name)
        descriptor, cached = await self.describe(resource_id, url, fresh)
        requested = parse_range_header(range_header)
        if range_header and requested is None:
            logger.debug(f"Ignoring malformed Range header {range_header!r}")
        byte_range = None
        if requested is not None:
            try:
                byte_range = requested.resolve(descriptor.total_length)
            except UnsatisfiableRange:
                if not cached:
                    raise
                # a cached length may be out of date; only a fresh probe can refuse the range
                descriptor = await self.reprobe(resource_id, url)
                cached = False
                byte_range = requested.resolve(descriptor.total_length)
        return StreamPlan(resource_id, url, descriptor, requested, byte_range, cached, record.content_type)

    async def _open_verified(self, plan: StreamPlan) -> OriginStream | None:
        """Open the origin stream; None when the origin disagrees with the plan's length."""
        try:
            stream = await self.origin.open(plan.url, plan.byte_range)
        except UnsatisfiableRange:
            return None
        if stream.total is not None and stream.total != plan.descriptor.total_length:
            await stream.aclose()
            return None
        return stream

    async def open(self, plan: StreamPlan) -> tuple[StreamPlan, OriginStream]:
        stream = await self._open_verified(plan)
        if stream is not None:
            return plan, stream
        logger.info(f"Origin length for {plan.resource_id} changed since it was probed, re-probing")
        plan = plan.with_descriptor(await self.reprobe(plan.resource_id, plan.url))
        stream = await self._open_verified(plan)
        if stream is None:
            raise OriginUnavailable("Origin length keeps changing")
        return plan, stream

    async def handle_stream_request(self, resource_id: str, range_header: str | None) -> Response:
        plan = await self.plan(resource_id, range_header)
        plan, stream = await self.open(plan)
        logger.debug(
            f"Streaming {resource_id} status={plan.status_code} "
            f"range={plan.byte_range.content_range if plan.byte_range else 'full'}"
        )
        return OriginStreamResponse(
            stream,
            relay(stream, plan),
            status_code=plan.status_code,
            headers=plan.headers(self.cache_control),
            media_type=plan.content_type,
        )

    async def handle_head_request(self, resource_id: str, range_header: str | None) -> Response:
        plan = await self.plan(resource_id, range_header, fresh=True)
        return Response(
            status_code=plan.status_code,
            headers=plan.headers(self.cache_control),
            media_type=plan.content_type,
        )
