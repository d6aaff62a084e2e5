import pytest

from blob_guardian.storage.client import iter_content, read_all
from blob_guardian.storage.memory import InMemoryStorageClient
from blob_guardian.storage.metric_values import MetricValueStore
from blob_guardian.storage.store import generate_blob_key


@pytest.mark.asyncio
async def test_write_then_read_hello() -> None:
    client = InMemoryStorageClient()
    store = MetricValueStore(client, generate_blob_key)

    written = await store.write(iter_content(b"hello"))
    assert written.blob_key
    assert list(client.contents) == [f"metric-values/{written.blob_key}"]
    assert client.contents[f"metric-values/{written.blob_key}"] == b"hello"

    fetched = await store.read(written.blob_key)
    assert fetched is not None
    assert fetched.blob_key == written.blob_key
    assert await read_all(fetched) == b"hello"


@pytest.mark.asyncio
async def test_read_unknown_key_returns_none() -> None:
    store = MetricValueStore(InMemoryStorageClient(), generate_blob_key)
    assert await store.read("missing") is None


@pytest.mark.asyncio
async def test_delete_through_wrapper() -> None:
    store = MetricValueStore(InMemoryStorageClient(), lambda: "fixed")
    written = await store.write(iter_content(b"value"))
    await written.delete()
    assert await store.read("fixed") is None
