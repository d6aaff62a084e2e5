from __future__ import annotations

from typing import AsyncIterable, AsyncIterator, Callable, Optional

from .client import DEFAULT_READ_BUFFER_SIZE, Blob, StorageClient
from .store import blob_key_with_prefix

BLOB_KEY_PREFIX = "metric-values"


class MetricValueStore:
    """Blob storage for metric values.

    Metric values are written unencrypted under ``metric-values/<key>`` with a key
    supplied by ``generate_blob_key``.
    """

    def __init__(self, storage_client: StorageClient, generate_blob_key: Callable[[], str]) -> None:
        self._storage_client = storage_client
        self._generate_blob_key = generate_blob_key

    async def write(self, content: AsyncIterable[bytes]) -> "MetricValueBlob":
        """Write a metric value as a new blob and return it with its generated key."""
        blob_key = self._generate_blob_key()
        created = await self._storage_client.create_blob(
            blob_key_with_prefix(BLOB_KEY_PREFIX, blob_key), content
        )
        return MetricValueBlob(blob_key, created)

    async def read(self, blob_key: str) -> Optional["MetricValueBlob"]:
        """Return the metric value stored under ``blob_key`` or ``None``."""
        blob = await self._storage_client.get_blob(blob_key_with_prefix(BLOB_KEY_PREFIX, blob_key))
        if blob is None:
            return None
        return MetricValueBlob(blob_key, blob)


class MetricValueBlob(Blob):
    """Blob exposing the unprefixed metric value key"""

    def __init__(self, blob_key: str, wrapped: Blob) -> None:
        super().__init__(blob_key, wrapped.storage_client)
        self._wrapped = wrapped

    def read(self, buffer_size: int = DEFAULT_READ_BUFFER_SIZE) -> AsyncIterator[bytes]:
        return self._wrapped.read(buffer_size)

    async def delete(self) -> None:
        await self._wrapped.delete()


__all__ = ["BLOB_KEY_PREFIX", "MetricValueBlob", "MetricValueStore"]
