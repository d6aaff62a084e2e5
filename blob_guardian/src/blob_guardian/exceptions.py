
from __future__ import annotations

"""Central exception hierarchy"""
class BlobGuardianError(Exception):
    """Base exception for all failures"""


class StorageFailure(BlobGuardianError):
    """Raised when the blob backend fails to read or write"""


class UnresolvableKeyFailure(BlobGuardianError):
    """Raised when a KMS key URI cannot be resolved to an AEAD"""


class DecryptionFailure(BlobGuardianError):
    """Raised for authentication or integrity failures on read"""


class CorruptDataFailure(BlobGuardianError):
    """Raised when stored plaintext does not decode into the expected value"""


__all__ = [
    "BlobGuardianError",
    "CorruptDataFailure",
    "DecryptionFailure",
    "StorageFailure",
    "UnresolvableKeyFailure",
]
