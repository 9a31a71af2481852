import dataclasses
import os
import typing
from typing import Any, Callable, TypeVar

import dotenv

T = TypeVar("T")

dotenv.load_dotenv()


def env(key: str, convert: Callable[[str], T] = typing.cast(Callable[[str], T], str), **kwargs: Any) -> T:
    """Dataclass field read from the environment when the instance is created.

    `"NAME:default"` supplies a default; a bare `"NAME"` is required.
    """
    key, partition, default = key.partition(":")

    def default_factory() -> T:
        if key in os.environ:
            return convert(os.environ[key])
        if partition == ":":
            return convert(default)
        raise KeyError(key)

    return typing.cast(T, dataclasses.field(default_factory=default_factory, **kwargs))


def _flag(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _csv(value: str) -> frozenset[str]:
    return frozenset(item.strip() for item in value.split(",") if item.strip())


def _optional(value: str) -> str | None:
    return value or None


@dataclasses.dataclass
class Config:
    # Server
    host: str = env("HOST:0.0.0.0")
    port: int = env("PORT:8000", convert=int)
    log_level: str = env("LOG_LEVEL:INFO")
    debug: bool = env("DEBUG:false", convert=_flag)

    # Storage for the catalogue and descriptor cache; in-memory when unset
    redis_url: str | None = env("REDIS_URL:", convert=_optional)
    catalog_path: str | None = env("CATALOG_PATH:", convert=_optional)
    cloudinary_cloud_name: str | None = env("CLOUDINARY_CLOUD_NAME:", convert=_optional)

    # Origin
    origin_probe_timeout: float = env("ORIGIN_PROBE_TIMEOUT:10", convert=float)
    origin_connect_timeout: float = env("ORIGIN_CONNECT_TIMEOUT:10", convert=float)
    origin_read_timeout: float = env("ORIGIN_READ_TIMEOUT:30", convert=float)
    stream_chunk_size: int = env("STREAM_CHUNK_SIZE:65536", convert=int)
    descriptor_ttl_seconds: float = env("DESCRIPTOR_TTL_SECONDS:60", convert=float)
    cache_control: str = env("CACHE_CONTROL:public, max-age=31536000")

    # Access; public when no tokens are configured
    stream_tokens: frozenset[str] = env("STREAM_TOKENS:", convert=_csv)

    # S3-compatible origins, enabled when a key is set
    s3_access_key_id: str | None = env("S3_ACCESS_KEY_ID:", convert=_optional)
    s3_secret_access_key: str | None = env("S3_SECRET_ACCESS_KEY:", convert=_optional)
    s3_region: str = env("S3_REGION:us-east-1")
    s3_endpoint: str | None = env("S3_ENDPOINT:", convert=_optional)
