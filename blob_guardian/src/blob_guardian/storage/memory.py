"""In-memory blob backend, mainly for tests and ephemeral use."""
from __future__ import annotations

from typing import AsyncIterable, AsyncIterator, Dict, Optional

import structlog

from .client import DEFAULT_READ_BUFFER_SIZE, Blob, StorageClient, check_blob_key

logger = structlog.get_logger(__name__)


class InMemoryStorageClient(StorageClient):
    """Keeps blob content in a dict keyed by blob key."""

    def __init__(self) -> None:
        self._contents: Dict[str, bytes] = {}

    @property
    def contents(self) -> Dict[str, bytes]:
        """Live view of persisted bytes, for inspection in tests."""
        return self._contents

    async def create_blob(self, blob_key: str, content: AsyncIterable[bytes]) -> Blob:
        check_blob_key(blob_key)
        buffer = bytearray()
        async for chunk in content:
            buffer.extend(chunk)
        # Nothing is visible until the stream has been fully consumed.
        self._contents[blob_key] = bytes(buffer)
        logger.debug("blob.create", backend="memory", blob_key=blob_key, size=len(buffer))
        return InMemoryBlob(blob_key, self)

    async def get_blob(self, blob_key: str) -> Optional[Blob]:
        check_blob_key(blob_key)
        if blob_key not in self._contents:
            return None
        return InMemoryBlob(blob_key, self)

    def _remove(self, blob_key: str) -> None:
        self._contents.pop(blob_key, None)


class InMemoryBlob(Blob):
    def __init__(self, blob_key: str, storage_client: InMemoryStorageClient) -> None:
        super().__init__(blob_key, storage_client)
        self._client = storage_client

    async def read(self, buffer_size: int = DEFAULT_READ_BUFFER_SIZE) -> AsyncIterator[bytes]:
        if buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        data = self._client.contents.get(self.blob_key, b"")
        for start in range(0, len(data), buffer_size):
            yield data[start : start + buffer_size]

    async def delete(self) -> None:
        self._client._remove(self.blob_key)


__all__ = ["InMemoryBlob", "InMemoryStorageClient"]
