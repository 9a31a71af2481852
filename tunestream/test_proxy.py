import dataclasses

import pytest

from tunestream.catalog import Catalog, MediaRecord
from tunestream.errors import OriginUnavailable, ResourceNotFound, UnsatisfiableRange
from tunestream.metadata import DescriptorCache
from tunestream.metadata.memory import MemoryCacheBackend
from tunestream.origin import ResourceDescriptor
from tunestream.origin.memory import InMemoryOrigin
from tunestream.proxy import OriginStreamResponse, RangeStreamProxy, relay

AUDIO = bytes(i % 199 for i in range(1000))
URL = "https://cdn.example/track.mp3"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def origin() -> InMemoryOrigin:
    origin = InMemoryOrigin(chunk_size=64)
    origin.put(URL, AUDIO, content_type="audio/flac")
    return origin


@pytest.fixture
async def proxy(origin: InMemoryOrigin) -> RangeStreamProxy:
    catalog = Catalog(MemoryCacheBackend())
    await catalog.put(MediaRecord(id="track", url=URL))
    return RangeStreamProxy(catalog, origin, DescriptorCache(MemoryCacheBackend(), ttl=60))


async def drain(response: OriginStreamResponse) -> bytes:
    try:
        return b"".join([chunk async for chunk in response.body_iterator])  # type: ignore[misc]
    finally:
        await response.origin_stream.aclose()


@pytest.mark.anyio
async def test_plan_full(proxy: RangeStreamProxy) -> None:
    plan = await proxy.plan("track", None)
    assert plan.status_code == 200
    assert plan.byte_range is None
    assert plan.headers("public") == {
        "Content-Length": "1000",
        "Accept-Ranges": "bytes",
        "Cache-Control": "public",
    }


@pytest.mark.anyio
async def test_plan_partial(proxy: RangeStreamProxy) -> None:
    plan = await proxy.plan("track", "bytes=200-499")
    assert plan.status_code == 206
    assert plan.headers("public")["Content-Range"] == "bytes 200-499/1000"
    assert plan.content_length == 300


@pytest.mark.anyio
async def test_plan_unsatisfiable(proxy: RangeStreamProxy) -> None:
    with pytest.raises(UnsatisfiableRange):
        await proxy.plan("track", "bytes=1500-")


@pytest.mark.anyio
async def test_plan_unknown(proxy: RangeStreamProxy) -> None:
    with pytest.raises(ResourceNotFound):
        await proxy.plan("other", None)


@pytest.mark.anyio
async def test_probe_is_cached(proxy: RangeStreamProxy, origin: InMemoryOrigin) -> None:
    await proxy.plan("track", None)
    origin.objects.clear()
    plan = await proxy.plan("track", "bytes=0-9")
    assert plan.cached
    assert plan.descriptor.content_type == "audio/flac"


@pytest.mark.anyio
async def test_catalogue_content_type_wins(proxy: RangeStreamProxy) -> None:
    await proxy.catalog.put(MediaRecord(id="typed", url=URL, content_type="audio/mp4"))
    plan = await proxy.plan("typed", None)
    assert plan.content_type == "audio/mp4"
    assert plan.descriptor.content_type == "audio/flac"


@pytest.mark.anyio
async def test_catalogue_content_type_survives_reprobe(proxy: RangeStreamProxy, origin: InMemoryOrigin) -> None:
    await proxy.catalog.put(MediaRecord(id="typed", url=URL, content_type="audio/mp4"))
    await proxy.plan("typed", None)
    origin.put(URL, AUDIO[:800], content_type="audio/mpeg")

    response = await proxy.handle_stream_request("typed", "bytes=0-9")
    assert isinstance(response, OriginStreamResponse)
    assert response.media_type == "audio/mp4"
    assert await drain(response) == AUDIO[:10]


@pytest.mark.anyio
async def test_head_plan_ignores_cached_descriptor(proxy: RangeStreamProxy, origin: InMemoryOrigin) -> None:
    await proxy.plan("track", None)
    origin.put(URL, AUDIO[:800], content_type="audio/flac")

    response = await proxy.handle_head_request("track", "bytes=100-")
    assert response.headers["Content-Range"] == "bytes 100-799/800"
    assert (await proxy.plan("track", None)).descriptor.total_length == 800


@pytest.mark.anyio
async def test_handle_stream_request_streams_window(proxy: RangeStreamProxy, origin: InMemoryOrigin) -> None:
    response = await proxy.handle_stream_request("track", "bytes=100-899")
    assert isinstance(response, OriginStreamResponse)
    assert response.status_code == 206
    assert response.media_type == "audio/flac"
    assert await drain(response) == AUDIO[100:900]
    assert origin.open_streams == 0


@pytest.mark.anyio
@pytest.mark.parametrize("start,end", [(0, 0), (63, 64), (64, 127), (100, 999), (999, 999)])
async def test_relay_skips_when_origin_ignores_range(
    proxy: RangeStreamProxy, origin: InMemoryOrigin, start: int, end: int
) -> None:
    origin.range_supported = False
    plan = await proxy.plan("track", f"bytes={start}-{end}")
    stream = await origin.open(URL, plan.byte_range)
    assert not stream.partial
    body = b"".join([chunk async for chunk in relay(stream, plan)])
    await stream.aclose()
    assert body == AUDIO[start : end + 1]


@pytest.mark.anyio
async def test_relay_raises_on_short_origin_body(proxy: RangeStreamProxy, origin: InMemoryOrigin) -> None:
    plan = await proxy.plan("track", None)
    origin.put(URL, AUDIO[:500])
    stream = await origin.open(URL)
    received = b""
    with pytest.raises(OriginUnavailable):
        async for chunk in relay(stream, plan):
            received += chunk
    await stream.aclose()
    assert received == AUDIO[:500]


@pytest.mark.anyio
async def test_length_changing_twice_gives_up(proxy: RangeStreamProxy, origin: InMemoryOrigin) -> None:
    plan = await proxy.plan("track", None)

    real_probe = origin.probe

    async def lying_probe(url: str) -> ResourceDescriptor:
        return dataclasses.replace(await real_probe(url), total_length=len(AUDIO) + 1)

    origin.probe = lying_probe  # type: ignore[method-assign]
    with pytest.raises(OriginUnavailable):
        await proxy.open(plan.with_descriptor(await lying_probe(URL)))
    assert origin.open_streams == 0
