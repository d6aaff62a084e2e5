"""Envelope-encrypting :class:`StorageClient` decorator.

Every blob gets a fresh AES-256-GCM data key. The data key is wrapped by the
KMS :class:`Aead` and written in front of the chunked ciphertext (see
:mod:`blob_guardian.crypto.framing`); the blob key is bound as associated data
to both the wrapped key and every chunk, so a ciphertext moved to another key
no longer decrypts.
"""
from __future__ import annotations

import contextlib
import os
from typing import AsyncIterable, AsyncIterator, Optional

import structlog

from blob_guardian.config import DEFAULT_CHUNK_SIZE, MAX_CHUNK_SIZE
from blob_guardian.crypto.aead import AES256_KEY_SIZE, SALT_SIZE, Aead, AesGcmAead, ChunkCipher
from blob_guardian.crypto.framing import EnvelopeHeader, FrameReader, encode_frame, iter_frames, read_header
from blob_guardian.exceptions import DecryptionFailure
from blob_guardian.storage.client import DEFAULT_READ_BUFFER_SIZE, Blob, StorageClient, check_blob_key

logger = structlog.get_logger(__name__)


class KmsStorageClient(StorageClient):
    """Wraps ``storage_client`` so that only ciphertext ever reaches it."""

    def __init__(self, storage_client: StorageClient, aead: Aead, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        if not 0 < chunk_size <= MAX_CHUNK_SIZE:
            raise ValueError(f"chunk_size must be between 1 and {MAX_CHUNK_SIZE}")
        self._storage_client = storage_client
        self._aead = aead
        self._chunk_size = chunk_size

    @property
    def storage_client(self) -> StorageClient:
        return self._storage_client

    async def create_blob(self, blob_key: str, content: AsyncIterable[bytes]) -> Blob:
        check_blob_key(blob_key)
        associated_data = blob_key.encode("utf-8")
        data_key = AesGcmAead.gen_key()
        salt = os.urandom(SALT_SIZE)
        header = EnvelopeHeader(wrapped_key=self._aead.encrypt(data_key, associated_data), salt=salt)
        cipher = ChunkCipher(key=data_key, salt=salt, aad_domain=associated_data)
        created = await self._storage_client.create_blob(
            blob_key, self._encrypt(header, cipher, content)
        )
        logger.debug("kms_blob.create", blob_key=blob_key)
        return KmsBlob(created, self, self._aead)

    async def get_blob(self, blob_key: str) -> Optional[Blob]:
        blob = await self._storage_client.get_blob(blob_key)
        if blob is None:
            return None
        return KmsBlob(blob, self, self._aead)

    async def _encrypt(
        self, header: EnvelopeHeader, cipher: ChunkCipher, content: AsyncIterable[bytes]
    ) -> AsyncIterator[bytes]:
        yield header.to_bytes()
        index = 0
        pending: Optional[bytes] = None
        # One chunk is held back so the final one can be flagged as last.
        async for piece in _rechunk(content, self._chunk_size):
            if pending is not None:
                yield encode_frame(cipher.encrypt(plaintext=pending, chunk_index=index, last=False))
                index += 1
            pending = piece
        final = pending if pending is not None else b""
        yield encode_frame(cipher.encrypt(plaintext=final, chunk_index=index, last=True))


class KmsBlob(Blob):
    """Decrypts the wrapped blob lazily; only authenticated chunks are yielded.

    Chunks are authenticated one at a time, so a reader may receive the leading
    chunks before a later chunk fails with
    :class:`~blob_guardian.exceptions.DecryptionFailure`. Callers that must not act
    on partial plaintext should drain the stream first, as :func:`~blob_guardian.storage.client.read_all` and
    :class:`~blob_guardian.storage.store.Store` do.
    """

    def __init__(self, wrapped: Blob, storage_client: KmsStorageClient, aead: Aead) -> None:
        super().__init__(wrapped.blob_key, storage_client)
        self._wrapped = wrapped
        self._aead = aead

    async def read(self, buffer_size: int = DEFAULT_READ_BUFFER_SIZE) -> AsyncIterator[bytes]:
        associated_data = self.blob_key.encode("utf-8")
        try:
            async with contextlib.aclosing(self._wrapped.read(buffer_size)) as stream:
                reader = FrameReader(stream)
                header = await read_header(reader)
                data_key = self._aead.decrypt(header.wrapped_key, associated_data)
                if len(data_key) != AES256_KEY_SIZE:
                    raise DecryptionFailure("Unwrapped data key has the wrong size")
                cipher = ChunkCipher(key=data_key, salt=header.salt, aad_domain=associated_data)
                index = 0
                async for payload, last in iter_frames(reader):
                    plaintext = cipher.decrypt(ciphertext=payload, chunk_index=index, last=last)
                    index += 1
                    if plaintext:
                        yield plaintext
        except DecryptionFailure as exc:
            logger.warning("kms_blob.decrypt_failed", blob_key=self.blob_key, reason=str(exc))
            raise

    async def delete(self) -> None:
        await self._wrapped.delete()


async def _rechunk(content: AsyncIterable[bytes], chunk_size: int) -> AsyncIterator[bytes]:
    buffer = bytearray()
    async for chunk in content:
        buffer.extend(chunk)
        while len(buffer) >= chunk_size:
            yield bytes(buffer[:chunk_size])
            del buffer[:chunk_size]
    if buffer:
        yield bytes(buffer)


__all__ = ["KmsBlob", "KmsStorageClient"]
