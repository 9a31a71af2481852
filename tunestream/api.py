from typing import Annotated

from fastapi import APIRouter, Depends, Header, Path, Response

from tunestream.access import require_access
from tunestream.catalog import format_duration
from tunestream.depends import Injected
from tunestream.errors import success_response
from tunestream.proxy import RangeStreamProxy

router = APIRouter()

Authorized = Annotated[str | None, Depends(require_access)]


@router.get("/health")
async def health() -> Response:
    return Response(status_code=200)


@router.head("/stream/{resource_id}")
async def head_song(
    resource_id: Annotated[str, Path()],
    proxy: Injected[RangeStreamProxy],
    caller: Authorized,
    range: Annotated[str | None, Header()] = None,
) -> Response:
    return await proxy.handle_head_request(resource_id, range)


@router.get("/stream/{resource_id}")
async def stream_song(
    resource_id: Annotated[str, Path()],
    proxy: Injected[RangeStreamProxy],
    caller: Authorized,
    range: Annotated[str | None, Header()] = None,
) -> Response:
    return await proxy.handle_stream_request(resource_id, range)


@router.get("/stream/{resource_id}/info")
async def song_info(
    resource_id: Annotated[str, Path()],
    proxy: Injected[RangeStreamProxy],
    caller: Authorized,
) -> Response:
    record = await proxy.resolve(resource_id)
    descriptor, _ = await proxy.describe(resource_id, record.origin_url(proxy.cloud_name), fresh=True)
    return success_response(
        {
            "id": record.id,
            "title": record.title,
            "format": record.format,
            "duration": record.duration,
            "formatted_duration": format_duration(record.duration) if record.duration is not None else None,
            "content_type": record.content_type or descriptor.content_type,
            "size": descriptor.total_length,
            "range_supported": descriptor.range_supported,
        },
        "Audio metadata retrieved successfully",
    )
