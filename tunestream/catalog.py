"""Song catalogue: maps the ids clients stream by to where the audio lives."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Iterable

from tunestream.errors import ResourceNotFound
from tunestream.metadata import MetadataBackend

logger = logging.getLogger(__name__)

CLOUDINARY_DELIVERY_URL = "https://res.cloudinary.com/{cloud_name}/video/upload/{public_id}"


@dataclass(frozen=True)
class MediaRecord:
    id: str
    title: str | None = None
    url: str | None = None
    public_id: str | None = None
    format: str = "mp3"
    duration: float | None = None
    content_type: str | None = None
    published: bool = True
    active: bool = True

    @property
    def streamable(self) -> bool:
        return self.published and self.active

    def origin_url(self, cloud_name: str | None = None) -> str:
        """The stored URL, or a Cloudinary delivery URL built from the public id.

        Cloudinary files audio under the `video` resource type.
        """
        if self.url:
            return self.url
        if self.public_id and cloud_name:
            public_id = self.public_id
            if "." not in public_id.rsplit("/", 1)[-1]:
                public_id = f"{public_id}.{self.format}"
            return CLOUDINARY_DELIVERY_URL.format(cloud_name=cloud_name, public_id=public_id)
        raise ResourceNotFound(f"Song {self.id} has no playable source")

    def to_json(self) -> bytes:
        return json.dumps(asdict(self)).encode()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MediaRecord:
        fields = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in fields})


def format_duration(seconds: float) -> str:
    """Seconds as M:SS, e.g. 245 -> "4:05"."""
    minutes, remaining = divmod(int(seconds), 60)
    return f"{minutes}:{remaining:02d}"


def load_catalog_file(path: str | Path) -> list[MediaRecord]:
    with Path(path).open() as fp:
        entries = json.load(fp)
    if not isinstance(entries, list):
        raise ValueError(f"{path}: expected a JSON list of media records")
    return [MediaRecord.from_dict(entry) for entry in entries]


@dataclass
class Catalog:
    backend: MetadataBackend

    @staticmethod
    def _key(resource_id: str) -> str:
        return f"media/{resource_id}"

    async def put(self, record: MediaRecord) -> None:
        await self.backend.put(self._key(record.id), record.to_json())

    async def load(self, records: Iterable[MediaRecord]) -> int:
        count = 0
        for record in records:
            await self.put(record)
            count += 1
        logger.info(f"Loaded {count} media records into the catalogue")
        return count

    async def get(self, resource_id: str) -> MediaRecord | None:
        raw = await self.backend.get(self._key(resource_id))
        if raw is None:
            return None
        return MediaRecord.from_dict(json.loads(raw))

    async def resolve(self, resource_id: str) -> MediaRecord:
        """Look up a record that may be streamed.

        Unpublished and deactivated songs are reported as missing.
        """
        record = await self.get(resource_id)
        if record is None or not record.streamable:
            raise ResourceNotFound()
        return record
