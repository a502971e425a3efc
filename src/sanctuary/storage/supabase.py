"""Supabase Storage backend.

Uses the Storage REST API directly with the service-role key:

    POST {project}/storage/v1/object/{bucket}/{key}       <- raw bytes
    POST {project}/storage/v1/object/sign/{bucket}/{key}  <- {"expiresIn": n}
"""

from __future__ import annotations

import logging

import httpx

from sanctuary.storage.base import ObjectStorage, StorageError

logger = logging.getLogger(__name__)


class SupabaseStorage(ObjectStorage):
    """Private Supabase bucket accessed with the service-role key."""

    def __init__(
        self,
        project_url: str,
        service_key: str,
        bucket: str = "private-library",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._storage_url = f"{project_url.rstrip('/')}/storage/v1"
        self._bucket = bucket
        self._client = httpx.AsyncClient(
            base_url=self._storage_url,
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {service_key}", "apikey": service_key},
        )

    async def upload(self, key: str, data: bytes, content_type: str) -> None:
        try:
            resp = await self._client.post(
                f"/object/{self._bucket}/{key}",
                content=data,
                headers={"Content-Type": content_type, "x-upsert": "false"},
            )
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise StorageError(f"Upload of {key} failed: {e}", backend="supabase") from e
        logger.debug("Uploaded %s (%d bytes, %s)", key, len(data), content_type)

    async def create_signed_url(self, key: str, expires_in: int) -> str:
        try:
            resp = await self._client.post(
                f"/object/sign/{self._bucket}/{key}",
                json={"expiresIn": expires_in},
            )
            resp.raise_for_status()
            signed_path = resp.json().get("signedURL")
        except (httpx.HTTPError, ValueError) as e:
            raise StorageError(f"Signing {key} failed: {e}", backend="supabase") from e
        if not signed_path:
            raise StorageError(f"No signed URL returned for {key}", backend="supabase")
        return f"{self._storage_url}{signed_path}"

    async def close(self) -> None:
        await self._client.aclose()
