from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

from aioaws.s3 import S3Client, S3Config

from tunestream.errors import ResourceNotFound
from tunestream.origin import Origin, ResourceDescriptor
from tunestream.origin.http import HttpOrigin, HttpStream
from tunestream.ranges import ByteRange


def split_s3_url(url: str) -> tuple[str, str]:
    """`s3://bucket/path/to/key` -> ("bucket", "path/to/key")"""
    parts = urlsplit(url)
    key = parts.path.lstrip("/")
    if parts.scheme != "s3" or not parts.netloc or not key:
        raise ResourceNotFound(f"Not an S3 object URL: {url}")
    return parts.netloc, key


@dataclass
class S3Origin(Origin):
    """Media stored in an S3-compatible bucket, fetched through presigned URLs."""

    http: HttpOrigin
    access_key_id: str
    access_key_secret: str
    region: str
    endpoint: str | None = None

    def _get_client(self, bucket: str) -> S3Client:
        return S3Client(
            self.http.client,
            S3Config(
                aws_access_key=self.access_key_id,
                aws_secret_key=self.access_key_secret,
                aws_region=self.region,
                aws_s3_bucket=bucket,
                aws_host=self.endpoint,
            ),
        )

    def _sign(self, url: str, method: str) -> str:
        bucket, key = split_s3_url(url)
        # HEAD and GET need separate signatures
        return self._get_client(bucket).signed_download_url(key, method=method)

    async def probe(self, url: str) -> ResourceDescriptor:
        return await self.http.probe(self._sign(url, "HEAD"))

    async def open(self, url: str, byte_range: ByteRange | None = None) -> HttpStream:
        return await self.http.open(self._sign(url, "GET"), byte_range)
