from dataclasses import dataclass
from typing import Protocol

from tunestream.origin import ResourceDescriptor


class MetadataBackend(Protocol):
    async def put(self, key: str, value: bytes, ttl: float | None = None) -> None: ...

    async def get(self, key: str) -> bytes | None: ...

    async def delete(self, key: str) -> None: ...


@dataclass
class DescriptorCache:
    """Short-lived cache of origin probes, keyed by resource id.

    A ttl of 0 disables caching entirely.
    """

    backend: MetadataBackend
    ttl: float = 60

    @staticmethod
    def _key(resource_id: str) -> str:
        return f"descriptor/{resource_id}"

    async def get(self, resource_id: str) -> ResourceDescriptor | None:
        if self.ttl <= 0:
            return None
        raw = await self.backend.get(self._key(resource_id))
        if raw is None:
            return None
        return ResourceDescriptor.from_json(raw)

    async def put(self, resource_id: str, descriptor: ResourceDescriptor) -> None:
        if self.ttl <= 0:
            return
        await self.backend.put(self._key(resource_id), descriptor.to_json(), ttl=self.ttl)

    async def invalidate(self, resource_id: str) -> None:
        await self.backend.delete(self._key(resource_id))
