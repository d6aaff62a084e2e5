from .client import Blob, StorageClient, iter_content, read_all
from .filesystem import FileSystemStorageClient
from .memory import InMemoryStorageClient
from .metric_values import MetricValueBlob, MetricValueStore
from .store import Store, generate_blob_key

__all__ = [
    "Blob",
    "FileSystemStorageClient",
    "InMemoryStorageClient",
    "MetricValueBlob",
    "MetricValueStore",
    "StorageClient",
    "Store",
    "generate_blob_key",
    "iter_content",
    "read_all",
]
