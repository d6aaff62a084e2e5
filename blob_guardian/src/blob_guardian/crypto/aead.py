
from __future__ import annotations

import os
import struct
from abc import ABC, abstractmethod
from typing import Final

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from blob_guardian.exceptions import DecryptionFailure

AES256_KEY_SIZE: Final[int] = 32
NONCE_SIZE: Final[int] = 12
TAG_SIZE: Final[int] = 16
SALT_SIZE: Final[int] = 16
NONCE_PREFIX_SIZE: Final[int] = 4
COUNTER_SIZE: Final[int] = 8
MAX_CHUNKS: Final[int] = 2 ** (COUNTER_SIZE * 8)

_CHUNK_AAD = struct.Struct(">QB")


class Aead(ABC):
    """Authenticated encryption capability, as handed out by a KMS"""

    @abstractmethod
    def encrypt(self, plaintext: bytes, associated_data: bytes) -> bytes:
        ...

    @abstractmethod
    def decrypt(self, ciphertext: bytes, associated_data: bytes) -> bytes:
        """Raise :class:`DecryptionFailure` when authentication fails"""


class AesGcmAead(Aead):
    """AES-256-GCM with a random nonce carried in front of the ciphertext"""

    def __init__(self, key: bytes) -> None:
        if len(key) != AES256_KEY_SIZE:
            raise ValueError("AES-256-GCM requires a 32-byte key")
        self._aead = AESGCM(key)

    @staticmethod
    def gen_key() -> bytes:
        return os.urandom(AES256_KEY_SIZE)

    def encrypt(self, plaintext: bytes, associated_data: bytes) -> bytes:
        nonce = os.urandom(NONCE_SIZE)
        return nonce + self._aead.encrypt(nonce, plaintext, associated_data)

    def decrypt(self, ciphertext: bytes, associated_data: bytes) -> bytes:
        if len(ciphertext) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionFailure("Ciphertext too short")
        nonce, body = ciphertext[:NONCE_SIZE], ciphertext[NONCE_SIZE:]
        try:
            return self._aead.decrypt(nonce, body, associated_data)
        except InvalidTag as exc:
            raise DecryptionFailure("AEAD tag verification failed") from exc


class ChunkCipher:
    """AES-256-GCM over a chunk sequence with nonces derived via HKDF(prefix) + counter.

    Each chunk is bound to ``aad_domain``, its index and whether it is the last
    chunk, so reordering, truncation and extension are all caught on decrypt.
    """

    def __init__(self, *, key: bytes, salt: bytes, aad_domain: bytes) -> None:
        if len(key) != AES256_KEY_SIZE:
            raise ValueError("AES-256-GCM requires a 32-byte key")
        if len(salt) < SALT_SIZE:
            raise ValueError("HKDF salt must be at least 128 bits")
        self._aad_domain = aad_domain
        self._nonce_prefix = HKDF(
            algorithm=hashes.SHA256(),
            length=NONCE_PREFIX_SIZE,
            salt=salt,
            info=b"BGE1-nonce-prefix",
        ).derive(key)
        self._aead = AESGCM(key)

    def encrypt(self, *, plaintext: bytes, chunk_index: int, last: bool) -> bytes:
        nonce = self._derive_nonce(chunk_index)
        return self._aead.encrypt(nonce, plaintext, self._associated_data(chunk_index, last))

    def decrypt(self, *, ciphertext: bytes, chunk_index: int, last: bool) -> bytes:
        nonce = self._derive_nonce(chunk_index)
        try:
            return self._aead.decrypt(nonce, ciphertext, self._associated_data(chunk_index, last))
        except InvalidTag as exc:
            raise DecryptionFailure(f"AEAD tag verification failed for chunk {chunk_index}") from exc

    def _associated_data(self, chunk_index: int, last: bool) -> bytes:
        return self._aad_domain + _CHUNK_AAD.pack(chunk_index, 1 if last else 0)

    def _derive_nonce(self, chunk_index: int) -> bytes:
        if not 0 <= chunk_index < MAX_CHUNKS:
            raise DecryptionFailure("AES-GCM chunk counter exhausted")
        return self._nonce_prefix + chunk_index.to_bytes(COUNTER_SIZE, byteorder="big")


__all__ = ["Aead", "AesGcmAead", "ChunkCipher", "AES256_KEY_SIZE", "SALT_SIZE", "TAG_SIZE"]
