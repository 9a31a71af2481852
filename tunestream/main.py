import logging
from contextlib import AsyncExitStack

import anyio
from fastapi import FastAPI

from tunestream.access import AccessPolicy, PublicAccess, TokenAccess
from tunestream.api import router
from tunestream.catalog import Catalog, load_catalog_file
from tunestream.config import Config
from tunestream.depends import bind
from tunestream.errors import install_error_handlers
from tunestream.metadata import DescriptorCache, MetadataBackend
from tunestream.origin import Origin, OriginRouter
from tunestream.proxy import RangeStreamProxy
from tunestream.request_id import RequestIdMiddleware

logger = logging.getLogger(__name__)


def make_app(
    origin: Origin,
    catalog: Catalog,
    cache: DescriptorCache,
    config: Config,
    access: AccessPolicy | None = None,
) -> FastAPI:
    app = FastAPI(debug=config.debug)
    app.include_router(router)
    app.add_middleware(RequestIdMiddleware)
    install_error_handlers(app)
    if access is None:
        access = TokenAccess(config.stream_tokens) if config.stream_tokens else PublicAccess()
    proxy = RangeStreamProxy(
        catalog=catalog,
        origin=origin,
        descriptors=cache,
        cache_control=config.cache_control,
        cloud_name=config.cloudinary_cloud_name,
    )
    bind(app, Config, config)
    bind(app, AccessPolicy, access)
    bind(app, RangeStreamProxy, proxy)
    return app


async def main() -> None:
    import uvicorn

    from tunestream.logging_config import setup_logging
    from tunestream.metadata.memory import MemoryCacheBackend
    from tunestream.metadata.redis import RedisMetadataBackend
    from tunestream.origin.http import HttpOrigin
    from tunestream.origin.s3 import S3Origin

    config = Config()
    setup_logging(config)

    async with AsyncExitStack() as stack:
        backend: MetadataBackend
        if config.redis_url:
            backend = await stack.enter_async_context(RedisMetadataBackend.connect(config.redis_url))
        else:
            logger.warning("REDIS_URL not set, keeping the catalogue in memory")
            backend = MemoryCacheBackend()

        http = await stack.enter_async_context(
            HttpOrigin.connect(
                probe_timeout=config.origin_probe_timeout,
                connect_timeout=config.origin_connect_timeout,
                read_timeout=config.origin_read_timeout,
                chunk_size=config.stream_chunk_size,
            )
        )
        origin = OriginRouter(default=http)
        if config.s3_access_key_id and config.s3_secret_access_key:
            origin.routes["s3"] = S3Origin(
                http,
                access_key_id=config.s3_access_key_id,
                access_key_secret=config.s3_secret_access_key,
                region=config.s3_region,
                endpoint=config.s3_endpoint,
            )

        catalog = Catalog(backend)
        if config.catalog_path:
            await catalog.load(load_catalog_file(config.catalog_path))

        app = make_app(origin, catalog, DescriptorCache(backend, ttl=config.descriptor_ttl_seconds), config)

        server = uvicorn.Server(uvicorn.Config(app, host=config.host, port=config.port, log_config=None))
        await server.serve()


def run() -> None:
    anyio.run(main)


if __name__ == "__main__":
    run()
