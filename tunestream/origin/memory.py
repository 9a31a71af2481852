from collections.abc import AsyncIterator
from dataclasses import dataclass, field

import anyio

from tunestream.errors import OriginUnavailable, ResourceNotFound
from tunestream.origin import DEFAULT_CONTENT_TYPE, Origin, ResourceDescriptor
from tunestream.ranges import ByteRange


@dataclass
class Object:
    body: bytes
    content_type: str = DEFAULT_CONTENT_TYPE


@dataclass
class MemoryStream:
    origin: "InMemoryOrigin"
    body: bytes
    total: int | None
    partial: bool
    closed: bool = False

    @property
    def status(self) -> int:
        return 206 if self.partial else 200

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        size = self.origin.chunk_size
        for offset in range(0, len(self.body), size):
            if self.origin.chunk_delay:
                await anyio.sleep(self.origin.chunk_delay)
            if self.origin.fail_after is not None and self.origin.bytes_sent >= self.origin.fail_after:
                raise OriginUnavailable("Origin stream interrupted")
            chunk = self.body[offset : offset + size]
            self.origin.bytes_sent += len(chunk)
            yield chunk

    async def aclose(self) -> None:
        if not self.closed:
            self.closed = True
            self.origin.open_streams -= 1


@dataclass
class InMemoryOrigin(Origin):
    """Serves bytes from a dict keyed by URL.

    `open_streams` counts streams opened and not yet closed so callers can
    check that nothing leaks.
    """

    objects: dict[str, Object] = field(default_factory=dict)
    range_supported: bool = True
    chunk_size: int = 64 * 1024
    chunk_delay: float = 0
    fail_after: int | None = None
    open_streams: int = 0
    bytes_sent: int = 0

    def put(self, url: str, body: bytes, content_type: str = DEFAULT_CONTENT_TYPE) -> None:
        self.objects[url] = Object(body=body, content_type=content_type)

    def _get(self, url: str) -> Object:
        try:
            return self.objects[url]
        except KeyError:
            raise ResourceNotFound() from None

    async def probe(self, url: str) -> ResourceDescriptor:
        obj = self._get(url)
        return ResourceDescriptor(
            total_length=len(obj.body),
            content_type=obj.content_type,
            range_supported=self.range_supported,
        )

    async def open(self, url: str, byte_range: ByteRange | None = None) -> MemoryStream:
        data = self._get(url).body
        self.open_streams += 1
        if byte_range is not None and self.range_supported:
            return MemoryStream(self, data[byte_range.start : byte_range.end + 1], total=len(data), partial=True)
        return MemoryStream(self, data, total=len(data), partial=False)
