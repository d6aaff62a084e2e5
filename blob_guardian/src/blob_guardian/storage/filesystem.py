"""Local filesystem blob backend."""
from __future__ import annotations

import asyncio
import os
import tempfile
from pathlib import Path
from typing import AsyncIterable, AsyncIterator, BinaryIO, Optional

import structlog

from ..exceptions import StorageFailure
from .client import DEFAULT_READ_BUFFER_SIZE, Blob, StorageClient, check_blob_key

logger = structlog.get_logger(__name__)

_TEMP_PREFIX = ".tmp-"


class FileSystemStorageClient(StorageClient):
    """Stores each blob as one file under ``root``.

    Blob keys are ``/``-separated; each segment becomes a directory level. Segments
    that are empty or start with ``.`` are rejected so a key can never escape the
    root or collide with in-flight temporary files.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root).expanduser().resolve(strict=False)

    @property
    def root(self) -> Path:
        return self._root

    async def create_blob(self, blob_key: str, content: AsyncIterable[bytes]) -> Blob:
        path = self._resolve_blob_path(blob_key)
        try:
            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
            handle = await asyncio.to_thread(_open_temp, path.parent)
        except OSError as exc:
            raise StorageFailure(f"Cannot write blob {blob_key}: {exc}") from exc

        temp_path = Path(handle.name)
        committed = False
        size = 0
        try:
            try:
                async for chunk in content:
                    await asyncio.to_thread(handle.write, chunk)
                    size += len(chunk)
                await asyncio.to_thread(_flush_and_close, handle)
                await asyncio.to_thread(os.replace, temp_path, path)
            except OSError as exc:
                raise StorageFailure(f"Cannot write blob {blob_key}: {exc}") from exc
            committed = True
        finally:
            if not committed:
                handle.close()
                temp_path.unlink(missing_ok=True)
        logger.debug("blob.create", backend="filesystem", blob_key=blob_key, size=size)
        return FileSystemBlob(blob_key, self, path)

    async def get_blob(self, blob_key: str) -> Optional[Blob]:
        path = self._resolve_blob_path(blob_key)
        try:
            exists = await asyncio.to_thread(path.is_file)
        except OSError as exc:
            raise StorageFailure(f"Cannot stat blob {blob_key}: {exc}") from exc
        if not exists:
            return None
        return FileSystemBlob(blob_key, self, path)

    def _resolve_blob_path(self, blob_key: str) -> Path:
        check_blob_key(blob_key)
        segments = blob_key.split("/")
        for segment in segments:
            if not segment or segment.startswith("."):
                raise ValueError(f"Invalid blob key segment in {blob_key!r}")
            if "\\" in segment or "\x00" in segment:
                raise ValueError(f"Invalid character in blob key {blob_key!r}")
        return self._root.joinpath(*segments)


class FileSystemBlob(Blob):
    def __init__(self, blob_key: str, storage_client: FileSystemStorageClient, path: Path) -> None:
        super().__init__(blob_key, storage_client)
        self._path = path

    async def read(self, buffer_size: int = DEFAULT_READ_BUFFER_SIZE) -> AsyncIterator[bytes]:
        if buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        try:
            handle = await asyncio.to_thread(self._path.open, "rb")
        except OSError as exc:
            raise StorageFailure(f"Cannot read blob {self.blob_key}: {exc}") from exc
        try:
            while True:
                try:
                    chunk = await asyncio.to_thread(handle.read, buffer_size)
                except OSError as exc:
                    raise StorageFailure(f"Cannot read blob {self.blob_key}: {exc}") from exc
                if not chunk:
                    return
                yield chunk
        finally:
            handle.close()

    async def delete(self) -> None:
        try:
            await asyncio.to_thread(self._path.unlink, missing_ok=True)
        except OSError as exc:
            raise StorageFailure(f"Cannot delete blob {self.blob_key}: {exc}") from exc


def _open_temp(directory: Path) -> BinaryIO:
    return tempfile.NamedTemporaryFile(mode="wb", dir=directory, prefix=_TEMP_PREFIX, delete=False)


def _flush_and_close(handle: BinaryIO) -> None:
    handle.flush()
    os.fsync(handle.fileno())
    handle.close()


__all__ = ["FileSystemBlob", "FileSystemStorageClient"]
