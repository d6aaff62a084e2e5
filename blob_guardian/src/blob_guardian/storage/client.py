"""Backend-agnostic blob storage contract.

A :class:`StorageClient` creates blobs from a stream of byte chunks and fetches
them again by key. Backends, the encrypting decorator and the typed stores all
speak this one interface so they can be stacked freely.
"""
from __future__ import annotations

import contextlib
from abc import ABC, abstractmethod
from typing import AsyncIterable, AsyncIterator, Optional

DEFAULT_READ_BUFFER_SIZE = 64 * 1024


class Blob(ABC):
    """Read-only handle to content previously written under ``blob_key``.

    The handle does not own any backend connection; each call to :meth:`read`
    opens a fresh single-pass stream that is released once it is exhausted or
    closed.
    """

    def __init__(self, blob_key: str, storage_client: "StorageClient") -> None:
        self._blob_key = blob_key
        self._storage_client = storage_client

    @property
    def blob_key(self) -> str:
        return self._blob_key

    @property
    def storage_client(self) -> "StorageClient":
        return self._storage_client

    @abstractmethod
    def read(self, buffer_size: int = DEFAULT_READ_BUFFER_SIZE) -> AsyncIterator[bytes]:
        """Return a lazy, finite stream of the blob content"""

    @abstractmethod
    async def delete(self) -> None:
        """Remove the blob from the backend"""


class StorageClient(ABC):
    """Creates and fetches blobs by key"""

    @abstractmethod
    async def create_blob(self, blob_key: str, content: AsyncIterable[bytes]) -> Blob:
        """Persist ``content`` under ``blob_key``.

        ``content`` is consumed exactly once. Backend faults raise
        :class:`~blob_guardian.exceptions.StorageFailure` and leave no blob behind.
        """

    @abstractmethod
    async def get_blob(self, blob_key: str) -> Optional[Blob]:
        """Return the blob stored under ``blob_key`` or ``None`` if there is none"""


def check_blob_key(blob_key: str) -> str:
    if not isinstance(blob_key, str) or not blob_key:
        raise ValueError("Blob key must be a non-empty string")
    return blob_key


async def iter_content(data: bytes, chunk_size: int = DEFAULT_READ_BUFFER_SIZE) -> AsyncIterator[bytes]:
    """Expose an in-memory byte string as an async content stream."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    view = memoryview(data)
    for start in range(0, len(view), chunk_size):
        yield bytes(view[start : start + chunk_size])


async def read_all(blob: Blob) -> bytes:
    """Drain a blob into memory, closing its stream on every exit path."""
    buffer = bytearray()
    async with contextlib.aclosing(blob.read()) as stream:
        async for chunk in stream:
            buffer.extend(chunk)
    return bytes(buffer)


__all__ = [
    "Blob",
    "DEFAULT_READ_BUFFER_SIZE",
    "StorageClient",
    "check_blob_key",
    "iter_content",
    "read_all",
]
