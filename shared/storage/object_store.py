"""
Object store access for NewsDesk services.

Two backends share one async interface:

* ``GCSObjectStore`` talks to the Google Cloud Storage JSON API over httpx.
* ``LocalObjectStore`` maps keys onto a directory tree, for development and tests.

Keys are '/'-separated; a "prefix" behaves like a directory path ending in '/'.
"""

from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

import httpx

from shared.app_logging.logger import get_logger
from shared.config.settings import get_settings
from shared.utils.retry import RetryError, async_retry

logger = get_logger(__name__)


class ObjectStoreError(Exception):
    """The object store could not be reached or answered with an error."""


class ObjectNotFoundError(ObjectStoreError):
    """The requested key does not exist."""

    def __init__(self, key: str):
        super().__init__(f"Object not found: {key}")
        self.key = key


class ObjectStore:
    """Async list/read/write interface over a hierarchical key namespace."""

    name = "object_store"

    async def list(self, prefix: str) -> List[str]:
        """Return every key starting with ``prefix``, sorted."""
        raise NotImplementedError

    async def read(self, key: str) -> bytes:
        raise NotImplementedError

    async def write(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        raise NotImplementedError

    async def ping(self) -> bool:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class LocalObjectStore(ObjectStore):
    """Object store backed by a local directory."""

    name = "local"

    def __init__(self, root):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents and path != self.root.resolve():
            raise ObjectStoreError(f"Key escapes storage root: {key}")
        return path

    async def list(self, prefix: str) -> List[str]:
        if not self.root.exists():
            return []
        # Walk from the deepest existing directory named by the prefix
        base = self.root / prefix
        if not prefix.endswith("/"):
            base = base.parent
        if not base.is_dir():
            return []
        keys = [
            p.relative_to(self.root).as_posix()
            for p in base.rglob("*")
            if p.is_file()
        ]
        return sorted(k for k in keys if k.startswith(prefix))

    async def read(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise ObjectNotFoundError(key)
        try:
            return path.read_bytes()
        except OSError as e:
            raise ObjectStoreError(f"Failed to read {key}: {e}") from e

    async def write(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise ObjectStoreError(f"Failed to write {key}: {e}") from e

    async def ping(self) -> bool:
        return self.root.is_dir()


class GCSObjectStore(ObjectStore):
    """Google Cloud Storage bucket accessed through the JSON API."""

    name = "gcs"

    def __init__(
        self,
        bucket: str,
        api_url: str = "https://storage.googleapis.com",
        access_token: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.bucket = bucket
        self.api_url = api_url.rstrip("/")
        headers = {"Authorization": f"Bearer {access_token}"} if access_token else {}
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=headers)
        self._logger = get_logger("storage.gcs")

    def _objects_url(self) -> str:
        return f"{self.api_url}/storage/v1/b/{quote(self.bucket, safe='')}/o"

    @async_retry(retryable_exceptions=(httpx.TransportError,))
    async def _get(self, url: str, params: dict) -> httpx.Response:
        return await self._client.get(url, params=params)

    @async_retry(retryable_exceptions=(httpx.TransportError,))
    async def _post(self, url: str, params: dict, content: bytes, content_type: str) -> httpx.Response:
        return await self._client.post(
            url, params=params, content=content, headers={"Content-Type": content_type}
        )

    async def _request(self, method, *args) -> httpx.Response:
        try:
            response = await method(*args)
        except RetryError as e:
            raise ObjectStoreError(f"GCS unreachable: {e.__cause__ or e}") from e
        if response.status_code >= 500:
            raise ObjectStoreError(f"GCS error {response.status_code}: {response.text[:200]}")
        return response

    async def list(self, prefix: str) -> List[str]:
        keys: List[str] = []
        params = {"prefix": prefix, "fields": "items(name),nextPageToken"}
        while True:
            response = await self._request(self._get, self._objects_url(), params)
            if response.status_code == 404:
                raise ObjectStoreError(f"Bucket not found: {self.bucket}")
            if response.status_code >= 400:
                raise ObjectStoreError(f"GCS list failed ({response.status_code}) for prefix {prefix}")
            payload = response.json()
            keys.extend(item["name"] for item in payload.get("items", []))
            token = payload.get("nextPageToken")
            if not token:
                break
            params = {**params, "pageToken": token}
        return sorted(keys)

    async def read(self, key: str) -> bytes:
        url = f"{self._objects_url()}/{quote(key, safe='')}"
        response = await self._request(self._get, url, {"alt": "media"})
        if response.status_code == 404:
            raise ObjectNotFoundError(key)
        if response.status_code >= 400:
            raise ObjectStoreError(f"GCS read failed ({response.status_code}) for {key}")
        return response.content

    async def write(self, key: str, data: bytes, content_type: str = "application/json") -> None:
        url = f"{self.api_url}/upload/storage/v1/b/{quote(self.bucket, safe='')}/o"
        response = await self._request(
            self._post, url, {"uploadType": "media", "name": key}, data, content_type
        )
        if response.status_code >= 400:
            raise ObjectStoreError(f"GCS write failed ({response.status_code}) for {key}")
        self._logger.debug(f"Wrote {len(data)} bytes to gs://{self.bucket}/{key}")

    async def ping(self) -> bool:
        try:
            response = await self._client.get(
                f"{self.api_url}/storage/v1/b/{quote(self.bucket, safe='')}",
                params={"fields": "name"},
            )
            return response.status_code == 200
        except httpx.HTTPError as e:
            self._logger.error(f"GCS ping failed: {e}")
            return False

    async def close(self) -> None:
        await self._client.aclose()


def create_object_store() -> ObjectStore:
    """Build the object store selected by STORAGE_BACKEND."""
    settings = get_settings()
    if settings.storage.backend == "local":
        logger.info(f"Using local object store at {settings.storage.local_root}")
        return LocalObjectStore(settings.storage.local_root)
    logger.info(f"Using GCS bucket {settings.storage.bucket_name}")
    return GCSObjectStore(
        bucket=settings.storage.bucket_name,
        api_url=settings.storage.gcs_api_url,
        access_token=settings.storage.access_token,
        timeout=settings.service.http_timeout,
    )

