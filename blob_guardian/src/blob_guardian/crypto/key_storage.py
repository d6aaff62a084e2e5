from __future__ import annotations

from abc import ABC, abstractmethod

from blob_guardian.config import DEFAULT_CHUNK_SIZE
from blob_guardian.crypto.kms import KmsClientRegistry
from blob_guardian.crypto.kms_storage import KmsStorageClient
from blob_guardian.crypto.private_keys import PrivateKeyStore
from blob_guardian.storage.client import StorageClient


class KeyStorageProvider(ABC):
    """Builds KMS-protected storage from a key URI"""

    @abstractmethod
    def make_kms_storage_client(self, storage_client: StorageClient, key_uri: str) -> StorageClient:
        ...

    @abstractmethod
    def make_kms_private_key_store(self, storage_client: StorageClient, key_uri: str) -> PrivateKeyStore:
        """Return a private key store over ``storage_client``.

        The argument is the raw backend, not a typed store: the provider layers
        KMS encryption and PKCS#8 encoding on top of it itself.
        """


class KmsKeyStorageProvider(KeyStorageProvider):
    """Resolves key URIs through ``kms_clients`` at construction of each product.

    An unknown scheme or an inaccessible key raises
    :class:`~blob_guardian.exceptions.UnresolvableKeyFailure` here rather than on
    first read or write.
    """

    def __init__(self, kms_clients: KmsClientRegistry, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._kms_clients = kms_clients
        self._chunk_size = chunk_size

    def make_kms_storage_client(self, storage_client: StorageClient, key_uri: str) -> KmsStorageClient:
        return KmsStorageClient(storage_client, self._kms_clients.get_aead(key_uri), chunk_size=self._chunk_size)

    def make_kms_private_key_store(self, storage_client: StorageClient, key_uri: str) -> PrivateKeyStore:
        return PrivateKeyStore(storage_client, self._kms_clients.get_aead(key_uri), chunk_size=self._chunk_size)


__all__ = ["KeyStorageProvider", "KmsKeyStorageProvider"]
