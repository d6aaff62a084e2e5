
from __future__ import annotations

from typing import Final, Optional, Union

import structlog
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from blob_guardian.config import DEFAULT_CHUNK_SIZE
from blob_guardian.crypto.aead import Aead
from blob_guardian.crypto.kms_storage import KmsStorageClient
from blob_guardian.storage.client import StorageClient
from blob_guardian.storage.store import Store

PRIVATE_KEY_PREFIX: Final[str] = "private-keys"
SUPPORTED_ALGORITHMS: Final[tuple[str, ...]] = ("ed25519", "ec-p256", "rsa-3072")

_CURVE_NAMES: Final[dict[str, str]] = {"secp256r1": "p256"}

PrivateKey = Union[Ed25519PrivateKey, ec.EllipticCurvePrivateKey, rsa.RSAPrivateKey]

logger = structlog.get_logger(__name__)


class PrivateKeyHandle:
    """Opaque private key usable for signing; exported only as PKCS#8 DER"""

    def __init__(self, private_key: PrivateKey) -> None:
        if not isinstance(private_key, (Ed25519PrivateKey, ec.EllipticCurvePrivateKey, rsa.RSAPrivateKey)):
            raise TypeError(f"Unsupported private key type: {type(private_key).__name__}")
        self._private_key = private_key

    @classmethod
    def generate(cls, algorithm: str = "ed25519") -> PrivateKeyHandle:
        name = algorithm.lower()
        if name == "ed25519":
            return cls(Ed25519PrivateKey.generate())
        if name == "ec-p256":
            return cls(ec.generate_private_key(ec.SECP256R1()))
        if name == "rsa-3072":
            return cls(rsa.generate_private_key(public_exponent=65537, key_size=3072))
        raise ValueError(f"Unsupported key algorithm: {algorithm}")

    @classmethod
    def from_pkcs8(cls, data: bytes) -> PrivateKeyHandle:
        return cls(serialization.load_der_private_key(data, password=None))

    @property
    def algorithm(self) -> str:
        if isinstance(self._private_key, Ed25519PrivateKey):
            return "ed25519"
        if isinstance(self._private_key, ec.EllipticCurvePrivateKey):
            return "ec-" + _CURVE_NAMES.get(self._private_key.curve.name, self._private_key.curve.name)
        return f"rsa-{self._private_key.key_size}"

    def to_pkcs8(self) -> bytes:
        return self._private_key.private_bytes(
            encoding=serialization.Encoding.DER,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def public_key_pem(self) -> bytes:
        return self._private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    def sign(self, message: bytes) -> bytes:
        key = self._private_key
        if isinstance(key, Ed25519PrivateKey):
            return key.sign(message)
        if isinstance(key, ec.EllipticCurvePrivateKey):
            return key.sign(message, ec.ECDSA(hashes.SHA256()))
        return key.sign(message, padding.PKCS1v15(), hashes.SHA256())

    def verify(self, message: bytes, signature: bytes) -> bool:
        public_key = self._private_key.public_key()
        try:
            if isinstance(public_key, ec.EllipticCurvePublicKey):
                public_key.verify(signature, message, ec.ECDSA(hashes.SHA256()))
            elif isinstance(public_key, rsa.RSAPublicKey):
                public_key.verify(signature, message, padding.PKCS1v15(), hashes.SHA256())
            else:
                public_key.verify(signature, message)
        except InvalidSignature:
            return False
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PrivateKeyHandle):
            return NotImplemented
        return self.public_key_pem() == other.public_key_pem()

    def __hash__(self) -> int:
        return hash(self.public_key_pem())

    def __repr__(self) -> str:
        return f"PrivateKeyHandle(algorithm={self.algorithm!r})"


class PrivateKeyStore:
    """Private keys persisted under ``private-keys/<key_id>``, always encrypted.

    Reads surface ``None`` for unknown ids, :class:`DecryptionFailure` when the
    KMS key does not match or the ciphertext was altered, and
    :class:`CorruptDataFailure` when the plaintext is not a usable PKCS#8 key.
    """

    def __init__(self, storage_client: StorageClient, aead: Aead, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._store: Store[PrivateKeyHandle] = Store(
            KmsStorageClient(storage_client, aead, chunk_size=chunk_size),
            prefix=PRIVATE_KEY_PREFIX,
            serialize=PrivateKeyHandle.to_pkcs8,
            deserialize=PrivateKeyHandle.from_pkcs8,
        )

    async def write(self, key_id: str, handle: PrivateKeyHandle) -> None:
        await self._store.write(handle, key_id)
        logger.info("private_key.write", key_id=key_id, algorithm=handle.algorithm)

    async def read(self, key_id: str) -> Optional[PrivateKeyHandle]:
        return await self._store.read(key_id)


__all__ = ["PRIVATE_KEY_PREFIX", "PrivateKeyHandle", "PrivateKeyStore", "SUPPORTED_ALGORITHMS"]
