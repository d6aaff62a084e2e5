import pytest

from blob_guardian.crypto.kms import LocalKmsClient
from blob_guardian.crypto.kms_storage import KmsStorageClient
from blob_guardian.crypto.private_keys import SUPPORTED_ALGORITHMS, PrivateKeyHandle, PrivateKeyStore
from blob_guardian.exceptions import CorruptDataFailure, DecryptionFailure
from blob_guardian.storage.client import iter_content
from blob_guardian.storage.memory import InMemoryStorageClient

_MESSAGE = b"fixed test message"


@pytest.fixture
def kms() -> LocalKmsClient:
    client = LocalKmsClient()
    client.create_key("kek-a")
    client.create_key("kek-b")
    return client


@pytest.mark.asyncio
async def test_ed25519_round_trip_signs_identically(kms: LocalKmsClient) -> None:
    store = PrivateKeyStore(InMemoryStorageClient(), kms.get_aead("local-kms://kek-a"))
    handle = PrivateKeyHandle.generate("ed25519")
    await store.write("key-1", handle)

    restored = await store.read("key-1")
    assert restored is not None
    assert restored == handle
    assert restored.sign(_MESSAGE) == handle.sign(_MESSAGE)


@pytest.mark.asyncio
@pytest.mark.parametrize("algorithm", ["ec-p256", "rsa-3072"])
async def test_other_algorithms_round_trip(kms: LocalKmsClient, algorithm: str) -> None:
    store = PrivateKeyStore(InMemoryStorageClient(), kms.get_aead("local-kms://kek-a"))
    handle = PrivateKeyHandle.generate(algorithm)
    await store.write("cert-skid", handle)

    restored = await store.read("cert-skid")
    assert restored is not None
    assert restored.algorithm == handle.algorithm
    assert handle.verify(_MESSAGE, restored.sign(_MESSAGE))
    assert restored.verify(_MESSAGE, handle.sign(_MESSAGE))


@pytest.mark.asyncio
async def test_key_material_is_encrypted_at_rest(kms: LocalKmsClient) -> None:
    backend = InMemoryStorageClient()
    store = PrivateKeyStore(backend, kms.get_aead("local-kms://kek-a"))
    handle = PrivateKeyHandle.generate("ed25519")
    await store.write("key-1", handle)

    assert list(backend.contents) == ["private-keys/key-1"]
    assert handle.to_pkcs8() not in backend.contents["private-keys/key-1"]


@pytest.mark.asyncio
async def test_read_unknown_key_returns_none(kms: LocalKmsClient) -> None:
    store = PrivateKeyStore(InMemoryStorageClient(), kms.get_aead("local-kms://kek-a"))
    assert await store.read("unknown") is None


@pytest.mark.asyncio
async def test_wrong_kms_key_fails_decryption(kms: LocalKmsClient) -> None:
    backend = InMemoryStorageClient()
    writer = PrivateKeyStore(backend, kms.get_aead("local-kms://kek-b"))
    await writer.write("key-1", PrivateKeyHandle.generate())

    reader = PrivateKeyStore(backend, kms.get_aead("local-kms://kek-a"))
    with pytest.raises(DecryptionFailure):
        await reader.read("key-1")


@pytest.mark.asyncio
async def test_tampered_key_fails_decryption(kms: LocalKmsClient) -> None:
    backend = InMemoryStorageClient()
    store = PrivateKeyStore(backend, kms.get_aead("local-kms://kek-a"))
    await store.write("key-1", PrivateKeyHandle.generate())
    stored = bytearray(backend.contents["private-keys/key-1"])
    stored[-1] ^= 0xFF
    backend.contents["private-keys/key-1"] = bytes(stored)
    with pytest.raises(DecryptionFailure):
        await store.read("key-1")


@pytest.mark.asyncio
async def test_undecodable_key_is_corrupt(kms: LocalKmsClient) -> None:
    backend = InMemoryStorageClient()
    aead = kms.get_aead("local-kms://kek-a")
    await KmsStorageClient(backend, aead).create_blob("private-keys/bogus", iter_content(b"not a pkcs8 key"))

    store = PrivateKeyStore(backend, aead)
    with pytest.raises(CorruptDataFailure):
        await store.read("bogus")


def test_handle_pkcs8_round_trip() -> None:
    handle = PrivateKeyHandle.generate("ec-p256")
    restored = PrivateKeyHandle.from_pkcs8(handle.to_pkcs8())
    assert restored == handle
    assert restored.algorithm == "ec-p256"
    assert b"BEGIN PUBLIC KEY" in restored.public_key_pem()


@pytest.mark.parametrize("algorithm", SUPPORTED_ALGORITHMS)
def test_algorithm_name_matches_generate(algorithm: str) -> None:
    handle = PrivateKeyHandle.generate(algorithm)
    assert handle.algorithm == algorithm
    assert PrivateKeyHandle.generate(handle.algorithm).algorithm == algorithm


def test_verify_rejects_foreign_signature() -> None:
    first = PrivateKeyHandle.generate()
    second = PrivateKeyHandle.generate()
    assert not first.verify(_MESSAGE, second.sign(_MESSAGE))


def test_unsupported_algorithm() -> None:
    with pytest.raises(ValueError):
        PrivateKeyHandle.generate("dsa-1024")
