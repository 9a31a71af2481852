import time
from collections.abc import Callable
from dataclasses import dataclass, field

from tunestream.metadata import MetadataBackend


@dataclass
class MemoryCacheBackend(MetadataBackend):
    storage: dict[str, tuple[bytes, float | None]] = field(default_factory=dict)
    clock: Callable[[], float] = time.monotonic

    async def put(self, key: str, value: bytes, ttl: float | None = None) -> None:
        expires_at = self.clock() + ttl if ttl is not None else None
        self.storage[key] = (value, expires_at)

    async def get(self, key: str) -> bytes | None:
        entry = self.storage.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self.clock() >= expires_at:
            del self.storage[key]
            return None
        return value

    async def delete(self, key: str) -> None:
        self.storage.pop(key, None)
