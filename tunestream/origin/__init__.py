from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import asdict, dataclass, field
from typing import Protocol
from urllib.parse import urlsplit

from tunestream.ranges import ByteRange

DEFAULT_CONTENT_TYPE = "audio/mpeg"


@dataclass(frozen=True)
class ResourceDescriptor:
    total_length: int
    content_type: str = DEFAULT_CONTENT_TYPE
    range_supported: bool = True

    def to_json(self) -> bytes:
        return json.dumps(asdict(self)).encode()

    @classmethod
    def from_json(cls, raw: bytes) -> ResourceDescriptor:
        return cls(**json.loads(raw))


class OriginStream(Protocol):
    """An open response body from the origin.

    `total` is the resource length the origin reported while serving this
    response, or None when it did not say. `partial` is True when the
    origin honored the requested byte range.
    """

    status: int
    total: int | None
    partial: bool

    def aiter_bytes(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None: ...


class Origin(Protocol):
    async def probe(self, url: str) -> ResourceDescriptor: ...

    async def open(self, url: str, byte_range: ByteRange | None = None) -> OriginStream: ...


@dataclass
class OriginRouter(Origin):
    """Dispatches to an origin by URL scheme, e.g. `s3://` to an S3 origin."""

    default: Origin
    routes: dict[str, Origin] = field(default_factory=dict)

    def _route(self, url: str) -> Origin:
        return self.routes.get(urlsplit(url).scheme, self.default)

    async def probe(self, url: str) -> ResourceDescriptor:
        return await self._route(url).probe(url)

    async def open(self, url: str, byte_range: ByteRange | None = None) -> OriginStream:
        return await self._route(url).open(url, byte_range)
