"""In-process object storage for local runs and tests."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sanctuary.storage.base import ObjectStorage, StorageError

logger = logging.getLogger(__name__)


@dataclass
class StoredObject:
    data: bytes
    content_type: str


class MemoryStorage(ObjectStorage):
    """Keeps objects in a dict; signed URLs use a ``memory://`` scheme."""

    def __init__(self, bucket: str = "private-library") -> None:
        self._bucket = bucket
        self.objects: dict[str, StoredObject] = {}

    async def upload(self, key: str, data: bytes, content_type: str) -> None:
        if key in self.objects:
            raise StorageError(f"Object {key} already exists", backend="memory")
        self.objects[key] = StoredObject(data=data, content_type=content_type)

    async def create_signed_url(self, key: str, expires_in: int) -> str:
        if key not in self.objects:
            raise StorageError(f"Object {key} not found", backend="memory")
        return f"memory://{self._bucket}/{key}?expires_in={expires_in}"
