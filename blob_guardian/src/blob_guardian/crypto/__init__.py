from .aead import Aead, AesGcmAead
from .key_storage import KeyStorageProvider, KmsKeyStorageProvider
from .kms import KmsClient, KmsClientRegistry, LocalKmsClient
from .kms_storage import KmsBlob, KmsStorageClient
from .private_keys import PrivateKeyHandle, PrivateKeyStore

__all__ = [
    "Aead",
    "AesGcmAead",
    "KeyStorageProvider",
    "KmsBlob",
    "KmsClient",
    "KmsClientRegistry",
    "KmsKeyStorageProvider",
    "KmsStorageClient",
    "LocalKmsClient",
    "PrivateKeyHandle",
    "PrivateKeyStore",
]
