"""
Supabase Storage client for attachment blobs.

Thin httpx wrapper over the Storage REST API: upload-with-overwrite and
public URL construction. One shared AsyncClient per process. Uploads are
single-shot; callers decide what a failed upload means.
"""

from urllib.parse import quote

import httpx

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class StorageError(Exception):
    """Raised when an object upload is rejected or unreachable."""

    def __init__(self, message: str, status_code: int | None = None, path: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.path = path


class StorageClient:
    """Uploads objects into a Supabase Storage bucket."""

    def __init__(self, base_url: str | None = None, service_key: str | None = None):
        self.base_url = (base_url or settings.SUPABASE_URL).rstrip("/")
        self._service_key = service_key or settings.SUPABASE_SERVICE_ROLE_KEY
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(settings.STORAGE_TIMEOUT_SECONDS),
                limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def _auth_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._service_key}",
            "apikey": self._service_key,
        }

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{quote(path)}"

    async def upload(self, bucket: str, path: str, content: bytes, content_type: str) -> str:
        """
        Upload bytes to bucket/path, overwriting any existing object.

        Returns:
            Public URL of the stored object

        Raises:
            StorageError: on a non-2xx answer or a transport failure
        """
        url = f"{self.base_url}/storage/v1/object/{bucket}/{quote(path)}"
        headers = {
            **self._auth_headers(),
            "Content-Type": content_type or "application/octet-stream",
            "x-upsert": "true",
        }

        try:
            response = await self._get_client().post(url, headers=headers, content=content)
        except httpx.RequestError as e:
            raise StorageError(f"Storage unreachable: {e}", path=path) from e

        if not response.is_success:
            logger.warning(
                "Storage upload rejected",
                bucket=bucket,
                path=path,
                status_code=response.status_code,
                response=response.text[:200],
            )
            raise StorageError(
                f"Upload rejected with status {response.status_code}",
                status_code=response.status_code,
                path=path,
            )

        return self.public_url(bucket, path)


storage_client = StorageClient()
