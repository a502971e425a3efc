"""Object storage module for sanctuary.

Public API:
    ObjectStorage -- Abstract base class
    StorageError -- Raised on failed uploads or signing
    MemoryStorage -- In-process implementation
    SupabaseStorage -- Supabase Storage REST implementation
"""

from sanctuary.storage.base import ObjectStorage, StorageError, media_key, screenshot_key
from sanctuary.storage.memory import MemoryStorage

__all__ = [
    "MemoryStorage",
    "ObjectStorage",
    "StorageError",
    "SupabaseStorage",
    "media_key",
    "screenshot_key",
]


def __getattr__(name: str) -> type:
    """Lazy import for concrete implementations that require external deps."""
    if name == "SupabaseStorage":
        from sanctuary.storage.supabase import SupabaseStorage
        return SupabaseStorage
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
