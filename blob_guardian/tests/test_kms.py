import os
from pathlib import Path

import pytest

from blob_guardian.crypto.aead import AesGcmAead
from blob_guardian.crypto.kms import KmsClientRegistry, LocalKmsClient
from blob_guardian.exceptions import DecryptionFailure, UnresolvableKeyFailure


def test_in_memory_key_round_trip() -> None:
    client = LocalKmsClient()
    uri = client.create_key("primary")
    assert uri == "local-kms://primary"
    aead = client.get_aead(uri)
    ciphertext = aead.encrypt(b"data key", b"context")
    assert ciphertext != b"data key"
    assert aead.decrypt(ciphertext, b"context") == b"data key"


def test_wrong_associated_data_fails() -> None:
    aead = AesGcmAead(AesGcmAead.gen_key())
    ciphertext = aead.encrypt(b"secret", b"blob-a")
    with pytest.raises(DecryptionFailure):
        aead.decrypt(ciphertext, b"blob-b")


def test_different_keys_do_not_decrypt_each_other() -> None:
    client = LocalKmsClient()
    first = client.get_aead(client.create_key("first"))
    second = client.get_aead(client.create_key("second"))
    with pytest.raises(DecryptionFailure):
        second.decrypt(first.encrypt(b"secret", b""), b"")


def test_keyring_dir_persists_keys(tmp_path: Path) -> None:
    uri = LocalKmsClient(keyring_dir=tmp_path).create_key("disk")
    key_file = tmp_path / "disk.key"
    assert key_file.stat().st_size == 32
    ciphertext = LocalKmsClient(keyring_dir=tmp_path).get_aead(uri).encrypt(b"x", b"")
    assert LocalKmsClient(keyring_dir=tmp_path).get_aead(uri).decrypt(ciphertext, b"") == b"x"


def test_existing_key_is_never_replaced(tmp_path: Path) -> None:
    LocalKmsClient(keyring_dir=tmp_path).create_key("once")
    original = (tmp_path / "once.key").read_bytes()
    with pytest.raises(ValueError, match="already exists"):
        LocalKmsClient(keyring_dir=tmp_path).create_key("once")
    assert (tmp_path / "once.key").read_bytes() == original

    in_memory = LocalKmsClient()
    in_memory.create_key("once")
    with pytest.raises(ValueError, match="already exists"):
        in_memory.create_key("once")


@pytest.mark.skipif(os.name != "posix", reason="POSIX permissions only")
def test_insecure_key_file_is_rejected(tmp_path: Path) -> None:
    uri = LocalKmsClient(keyring_dir=tmp_path).create_key("loose")
    (tmp_path / "loose.key").chmod(0o644)
    with pytest.raises(UnresolvableKeyFailure):
        LocalKmsClient(keyring_dir=tmp_path).get_aead(uri)


def test_unknown_key_is_unresolvable(tmp_path: Path) -> None:
    with pytest.raises(UnresolvableKeyFailure):
        LocalKmsClient().get_aead("local-kms://missing")
    with pytest.raises(UnresolvableKeyFailure):
        LocalKmsClient(keyring_dir=tmp_path).get_aead("local-kms://missing")


@pytest.mark.parametrize("name", ["", "../up", "a/b", ".hidden"])
def test_invalid_key_names(name: str) -> None:
    client = LocalKmsClient()
    with pytest.raises(ValueError):
        client.create_key(name)
    with pytest.raises(UnresolvableKeyFailure):
        client.get_aead("local-kms://" + name)


def test_registry_rejects_unknown_scheme() -> None:
    registry = KmsClientRegistry([LocalKmsClient()])
    with pytest.raises(UnresolvableKeyFailure):
        registry.get_aead("gcp-kms://projects/p/locations/l/keyRings/r/cryptoKeys/k")


def test_registry_prefers_latest_client() -> None:
    older = LocalKmsClient()
    newer = LocalKmsClient()
    uri = newer.create_key("shared")
    registry = KmsClientRegistry([older])
    registry.register(newer)
    assert registry.get(uri) is newer
    registry.get_aead(uri)


def test_registry_wraps_client_faults() -> None:
    class _Unreachable(LocalKmsClient):
        def get_aead(self, key_uri: str):
            raise ConnectionError("KMS unreachable")

    registry = KmsClientRegistry([_Unreachable()])
    with pytest.raises(UnresolvableKeyFailure):
        registry.get_aead("local-kms://anything")
