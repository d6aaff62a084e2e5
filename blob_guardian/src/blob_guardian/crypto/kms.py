"""KMS key URI resolution.

A :class:`KmsClient` turns a key URI into an :class:`~blob_guardian.crypto.aead.Aead`
without ever exposing the key itself. Clients are collected in a
:class:`KmsClientRegistry` that is passed explicitly to whoever needs to resolve
URIs.
"""
from __future__ import annotations

import os
import re
import stat
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

import structlog

from blob_guardian.crypto.aead import AES256_KEY_SIZE, Aead, AesGcmAead
from blob_guardian.exceptions import BlobGuardianError, UnresolvableKeyFailure

LOCAL_KMS_PREFIX = "local-kms://"
_KEY_NAME = re.compile(r"[A-Za-z0-9][A-Za-z0-9._-]{0,127}")

logger = structlog.get_logger(__name__)


class KmsClient(ABC):
    """A minimal interface for external key managers"""

    @abstractmethod
    def does_support(self, key_uri: str) -> bool:
        ...

    @abstractmethod
    def get_aead(self, key_uri: str) -> Aead:
        """Return an AEAD backed by the KMS key at ``key_uri``"""


class KmsClientRegistry:
    """Ordered set of KMS clients; the most recently registered match wins"""

    def __init__(self, clients: Iterable[KmsClient] = ()) -> None:
        self._clients: List[KmsClient] = list(clients)

    def register(self, client: KmsClient) -> None:
        self._clients.append(client)

    def get(self, key_uri: str) -> KmsClient:
        for client in reversed(self._clients):
            if client.does_support(key_uri):
                return client
        raise UnresolvableKeyFailure(f"No KMS client supports key URI {key_uri!r}")

    def get_aead(self, key_uri: str) -> Aead:
        client = self.get(key_uri)
        try:
            aead = client.get_aead(key_uri)
        except BlobGuardianError:
            raise
        except Exception as exc:
            raise UnresolvableKeyFailure(f"Cannot resolve KMS key {key_uri!r}: {exc}") from exc
        logger.info("kms.resolve", key_uri=key_uri, client=type(client).__name__)
        return aead


class LocalKmsClient(KmsClient):
    """Serves ``local-kms://<name>`` keys from memory or a keyring directory.

    Key files are raw 32-byte AES keys stored as ``<keyring_dir>/<name>.key`` with
    mode 0600; keys held in memory take precedence over files.
    """

    def __init__(
        self,
        keyring_dir: Optional[Path] = None,
        keys: Optional[Mapping[str, bytes]] = None,
    ) -> None:
        self._keyring_dir = Path(keyring_dir).expanduser() if keyring_dir else None
        self._keys: Dict[str, bytes] = dict(keys or {})

    @staticmethod
    def key_uri(name: str) -> str:
        return LOCAL_KMS_PREFIX + _check_key_name(name)

    def does_support(self, key_uri: str) -> bool:
        return key_uri.startswith(LOCAL_KMS_PREFIX)

    def get_aead(self, key_uri: str) -> Aead:
        if not self.does_support(key_uri):
            raise UnresolvableKeyFailure(f"Unsupported key URI {key_uri!r}")
        name = key_uri[len(LOCAL_KMS_PREFIX):]
        if not _KEY_NAME.fullmatch(name):
            raise UnresolvableKeyFailure(f"Malformed local KMS key name in {key_uri!r}")
        key = self._keys.get(name)
        if key is None:
            key = self._load_key_file(name)
        return AesGcmAead(key)

    def create_key(self, name: str) -> str:
        """Generate a new key and return its URI; existing keys are never replaced."""
        _check_key_name(name)
        if name in self._keys or (self._keyring_dir is not None and self._key_path(name).exists()):
            raise ValueError(f"KMS key {name!r} already exists")
        key = AesGcmAead.gen_key()
        if self._keyring_dir is None:
            self._keys[name] = key
        else:
            self._write_key_file(name, key)
        logger.info("kms.key.created", key_uri=LOCAL_KMS_PREFIX + name)
        return LOCAL_KMS_PREFIX + name

    def _key_path(self, name: str) -> Path:
        assert self._keyring_dir is not None
        return self._keyring_dir / f"{name}.key"

    def _load_key_file(self, name: str) -> bytes:
        if self._keyring_dir is None:
            raise UnresolvableKeyFailure(f"Unknown local KMS key {name!r}")
        path = self._key_path(name)
        if not path.is_file():
            raise UnresolvableKeyFailure(f"Unknown local KMS key {name!r}")
        if os.name == "posix":
            mode = stat.S_IMODE(path.stat().st_mode)
            if mode != 0o600:
                raise UnresolvableKeyFailure(
                    f"Insecure permissions on {path}: expected 0o600, found {oct(mode)}"
                )
        key = path.read_bytes()
        if len(key) != AES256_KEY_SIZE:
            raise UnresolvableKeyFailure(f"Local KMS key {name!r} is malformed")
        return key

    def _write_key_file(self, name: str, key: bytes) -> None:
        path = self._key_path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "wb") as handle:
            handle.write(key)
        os.chmod(path, 0o600)


def _check_key_name(name: str) -> str:
    if not _KEY_NAME.fullmatch(name):
        raise ValueError(f"Invalid KMS key name {name!r}")
    return name


__all__ = ["KmsClient", "KmsClientRegistry", "LocalKmsClient", "LOCAL_KMS_PREFIX"]
