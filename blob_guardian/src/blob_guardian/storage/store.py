from __future__ import annotations

import secrets
from typing import Callable, Generic, Optional, TypeVar

import structlog

from ..exceptions import CorruptDataFailure
from .client import Blob, StorageClient, check_blob_key, iter_content, read_all

T = TypeVar("T")

logger = structlog.get_logger(__name__)


def generate_blob_key() -> str:
    """Random 128-bit hex key, collision resistant enough for generated keys"""
    return secrets.token_hex(16)


def blob_key_with_prefix(prefix: str, blob_key: str) -> str:
    return f"{prefix}/{check_blob_key(blob_key)}"


class Store(Generic[T]):
    """Typed key-value view over a :class:`StorageClient`.

    Every key is namespaced as ``"<prefix>/<key>"`` so unrelated stores can
    share one backend. Values are turned into bytes with ``serialize`` and
    parsed back with ``deserialize``; any exception raised by ``deserialize``
    is reported as :class:`CorruptDataFailure`.
    """

    def __init__(
        self,
        storage_client: StorageClient,
        *,
        prefix: str,
        serialize: Callable[[T], bytes],
        deserialize: Callable[[bytes], T],
        generate_key: Callable[[], str] = generate_blob_key,
    ) -> None:
        prefix = prefix.strip("/")
        if not prefix:
            raise ValueError("Store prefix must be non-empty")
        self._storage_client = storage_client
        self._prefix = prefix
        self._serialize = serialize
        self._deserialize = deserialize
        self._generate_key = generate_key

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def storage_client(self) -> StorageClient:
        return self._storage_client

    def blob_key(self, key: str) -> str:
        return blob_key_with_prefix(self._prefix, key)

    async def write(self, value: T, key: Optional[str] = None) -> str:
        """Write ``value`` and return the (unprefixed) key it was stored under."""
        if key is None:
            key = self._generate_key()
        blob_key = self.blob_key(key)
        data = self._serialize(value)
        await self._storage_client.create_blob(blob_key, iter_content(data))
        logger.debug("store.write", prefix=self._prefix, key=key)
        return key

    async def read(self, key: str) -> Optional[T]:
        blob = await self.get_blob(key)
        if blob is None:
            logger.debug("store.read.miss", prefix=self._prefix, key=key)
            return None
        data = await read_all(blob)
        try:
            return self._deserialize(data)
        except Exception as exc:
            logger.warning("store.read.corrupt", prefix=self._prefix, key=key, error=type(exc).__name__)
            raise CorruptDataFailure(f"Value under {self.blob_key(key)} cannot be decoded") from exc

    async def get_blob(self, key: str) -> Optional[Blob]:
        return await self._storage_client.get_blob(self.blob_key(key))


__all__ = ["Store", "blob_key_with_prefix", "generate_blob_key"]
