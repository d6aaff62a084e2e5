
from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import AsyncIterator, Final, Tuple

from blob_guardian.config import MAX_CHUNK_SIZE
from blob_guardian.crypto.aead import SALT_SIZE, TAG_SIZE
from blob_guardian.exceptions import DecryptionFailure

MAGIC: Final[bytes] = b"BGE1"
PREFIX_STRUCT = struct.Struct(">4sI")
CHUNK_STRUCT = struct.Struct(">I")
MAX_WRAPPED_KEY_SIZE: Final[int] = 4096
MAX_CHUNK_CIPHERTEXT_SIZE: Final[int] = MAX_CHUNK_SIZE + TAG_SIZE


@dataclass(slots=True)
class EnvelopeHeader:
    """``magic || len(wrapped_key) || wrapped_key || salt``"""

    wrapped_key: bytes
    salt: bytes

    def to_bytes(self) -> bytes:
        if not 0 < len(self.wrapped_key) <= MAX_WRAPPED_KEY_SIZE:
            raise ValueError("Wrapped data key has an invalid length")
        if len(self.salt) != SALT_SIZE:
            raise ValueError(f"Salt must be {SALT_SIZE} bytes")
        return PREFIX_STRUCT.pack(MAGIC, len(self.wrapped_key)) + self.wrapped_key + self.salt


class FrameReader:
    """Hands out exact-size reads over an async stream of arbitrary chunks."""

    def __init__(self, stream: AsyncIterator[bytes]) -> None:
        self._stream = stream
        self._buffer = bytearray()
        self._exhausted = False

    async def _fill(self) -> bool:
        if self._exhausted:
            return False
        try:
            chunk = await self._stream.__anext__()
        except StopAsyncIteration:
            self._exhausted = True
            return False
        self._buffer.extend(chunk)
        return True

    async def read_exactly(self, size: int, what: str) -> bytes:
        while len(self._buffer) < size:
            if not await self._fill():
                raise DecryptionFailure(f"Truncated {what}")
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    async def at_eof(self) -> bool:
        while not self._buffer:
            if not await self._fill():
                return True
        return False


async def read_header(reader: FrameReader) -> EnvelopeHeader:
    magic, wrapped_len = PREFIX_STRUCT.unpack(await reader.read_exactly(PREFIX_STRUCT.size, "envelope header"))
    if magic != MAGIC:
        raise DecryptionFailure("Not an encrypted blob")
    if not 0 < wrapped_len <= MAX_WRAPPED_KEY_SIZE:
        raise DecryptionFailure("Invalid wrapped data key length")
    wrapped_key = await reader.read_exactly(wrapped_len, "wrapped data key")
    salt = await reader.read_exactly(SALT_SIZE, "envelope salt")
    return EnvelopeHeader(wrapped_key=wrapped_key, salt=salt)


async def iter_frames(reader: FrameReader) -> AsyncIterator[Tuple[bytes, bool]]:
    """Yield ``(ciphertext, is_last)`` for each frame after the header."""
    if await reader.at_eof():
        raise DecryptionFailure("Encrypted blob has no chunks")
    while True:
        (length,) = CHUNK_STRUCT.unpack(await reader.read_exactly(CHUNK_STRUCT.size, "chunk header"))
        if not TAG_SIZE <= length <= MAX_CHUNK_CIPHERTEXT_SIZE:
            raise DecryptionFailure("Invalid chunk length")
        payload = await reader.read_exactly(length, "ciphertext chunk")
        last = await reader.at_eof()
        yield payload, last
        if last:
            return


def encode_frame(payload: bytes) -> bytes:
    return CHUNK_STRUCT.pack(len(payload)) + payload


__all__ = [
    "EnvelopeHeader",
    "FrameReader",
    "MAGIC",
    "encode_frame",
    "iter_frames",
    "read_header",
]
