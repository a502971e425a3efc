"""Abstract base class for private object storage.

Fetched media and page previews are stored under per-user keys and handed
back to the client only through time-limited signed URLs.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


def media_key(user_id: str, extension: str = "mp4") -> str:
    """Random per-user key for downloaded media."""
    return f"{user_id}/{uuid.uuid4()}.{extension}"


def screenshot_key(user_id: str) -> str:
    """Random per-user key for page previews."""
    return f"{user_id}/screenshots/{uuid.uuid4()}.png"


class ObjectStorage(ABC):
    """Abstract interface for a private bucket with signed-URL access."""

    @abstractmethod
    async def upload(self, key: str, data: bytes, content_type: str) -> None:
        """Store ``data`` under ``key``. Existing objects are never overwritten.

        Raises:
            StorageError: If the upload is rejected or the service is unreachable.
        """
        ...

    @abstractmethod
    async def create_signed_url(self, key: str, expires_in: int) -> str:
        """Mint a read URL for ``key`` valid for ``expires_in`` seconds.

        Raises:
            StorageError: If no URL could be created.
        """
        ...

    async def close(self) -> None:
        """Release any held connections."""


class StorageError(Exception):
    """Raised when an object-storage operation fails."""

    def __init__(self, message: str, backend: str = "") -> None:
        super().__init__(message)
        self.backend = backend
