"""Typer-based command line interface for Blob Guardian."""
from __future__ import annotations

import asyncio
import base64
import contextlib
from pathlib import Path
from typing import AsyncIterator, Optional

import typer

from .config import AppConfig, load_config
from .crypto.key_storage import KmsKeyStorageProvider
from .crypto.kms import KmsClientRegistry, LocalKmsClient
from .crypto.private_keys import SUPPORTED_ALGORITHMS, PrivateKeyHandle
from .exceptions import CorruptDataFailure, DecryptionFailure, StorageFailure, UnresolvableKeyFailure
from .logging import configure_logging
from .storage.client import DEFAULT_READ_BUFFER_SIZE, StorageClient
from .storage.filesystem import FileSystemStorageClient
from .version import __version__

app = typer.Typer(help="Blob Guardian CLI")
kms_app = typer.Typer(help="Manage local KMS keys")
keys_app = typer.Typer(help="Manage KMS-protected private keys")
app.add_typer(kms_app, name="kms")
app.add_typer(keys_app, name="keys")


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"blob-guardian {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", metavar="PATH"),
    version: bool = typer.Option(False, "--version", callback=_print_version, is_eager=True),
) -> None:
    ctx.obj = load_config(config)
    configure_logging(ctx.obj.logging.normalized_level())


def _kms_client(config: AppConfig) -> LocalKmsClient:
    return LocalKmsClient(keyring_dir=config.kms.keyring_dir)


def _provider(config: AppConfig) -> KmsKeyStorageProvider:
    return KmsKeyStorageProvider(KmsClientRegistry([_kms_client(config)]), chunk_size=config.crypto.chunk_size)


def _storage_client(config: AppConfig, key_uri: Optional[str]) -> StorageClient:
    backend: StorageClient = FileSystemStorageClient(config.storage.root)
    if key_uri:
        backend = _provider(config).make_kms_storage_client(backend, key_uri)
    return backend


def _require_key_uri(config: AppConfig, key_uri: Optional[str]) -> str:
    resolved = key_uri or config.kms.key_uri
    if not resolved:
        typer.echo("A KMS key URI is required (--key-uri or kms.key_uri)", err=True)
        raise typer.Exit(code=2)
    return resolved


async def _read_file(path: Path) -> AsyncIterator[bytes]:
    with path.open("rb") as handle:
        while True:
            chunk = await asyncio.to_thread(handle.read, DEFAULT_READ_BUFFER_SIZE)
            if not chunk:
                return
            yield chunk


def _run(coro):
    try:
        return asyncio.run(coro)
    except UnresolvableKeyFailure as exc:
        typer.echo(f"KMS key error: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    except DecryptionFailure as exc:
        typer.echo(f"Decryption failed: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    except StorageFailure as exc:
        typer.echo(f"Storage error: {exc}", err=True)
        raise typer.Exit(code=3) from exc
    except CorruptDataFailure as exc:
        typer.echo(f"Corrupt data: {exc}", err=True)
        raise typer.Exit(code=4) from exc
    except ValueError as exc:
        typer.echo(f"Invalid input: {exc}", err=True)
        raise typer.Exit(code=2) from exc


@kms_app.command("create")
def kms_create(ctx: typer.Context, name: str = typer.Argument(..., help="Key name")) -> None:
    """Create a local KMS key and print its URI"""
    try:
        uri = _kms_client(ctx.obj).create_key(name)
    except ValueError as exc:
        typer.echo(f"KMS key error: {exc}", err=True)
        raise typer.Exit(code=2) from exc
    typer.echo(uri)


@app.command()
def put(
    ctx: typer.Context,
    blob_key: str = typer.Argument(..., help="Blob key"),
    input: Path = typer.Option(..., "-i", "--input", exists=True, readable=True, dir_okay=False),
    key_uri: Optional[str] = typer.Option(None, "--key-uri", help="Encrypt with this KMS key"),
) -> None:
    """Store a file as a blob"""
    config: AppConfig = ctx.obj
    uri = key_uri or config.kms.key_uri

    async def _put() -> None:
        client = _storage_client(config, uri)
        await client.create_blob(blob_key, _read_file(input))

    _run(_put())
    typer.echo(f"Stored {blob_key}" + (" (encrypted)" if uri else ""))


@app.command()
def get(
    ctx: typer.Context,
    blob_key: str = typer.Argument(..., help="Blob key"),
    output: Path = typer.Option(..., "-o", "--output", help="Write content here"),
    key_uri: Optional[str] = typer.Option(None, "--key-uri", help="Decrypt with this KMS key"),
) -> None:
    """Fetch a blob into a file"""
    config: AppConfig = ctx.obj
    uri = key_uri or config.kms.key_uri

    async def _get() -> bool:
        client = _storage_client(config, uri)
        blob = await client.get_blob(blob_key)
        if blob is None:
            return False
        partial = output.with_name(output.name + ".part")
        try:
            with partial.open("wb") as handle:
                async with contextlib.aclosing(blob.read()) as stream:
                    async for chunk in stream:
                        handle.write(chunk)
            partial.replace(output)
        finally:
            partial.unlink(missing_ok=True)
        return True

    if not _run(_get()):
        typer.echo(f"Blob not found: {blob_key}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Fetched {blob_key} -> {output}")


@keys_app.command("generate")
def keys_generate(
    ctx: typer.Context,
    key_id: str = typer.Argument(..., help="Private key id"),
    algorithm: str = typer.Option("ed25519", "--algorithm", help="|".join(SUPPORTED_ALGORITHMS)),
    key_uri: Optional[str] = typer.Option(None, "--key-uri", help="KMS key protecting the private key"),
) -> None:
    """Generate a private key, store it encrypted and print its public key"""
    config: AppConfig = ctx.obj
    uri = _require_key_uri(config, key_uri)
    if algorithm.lower() not in SUPPORTED_ALGORITHMS:
        typer.echo(f"Unsupported algorithm: {algorithm}", err=True)
        raise typer.Exit(code=2)
    handle = PrivateKeyHandle.generate(algorithm)

    async def _write() -> None:
        store = _provider(config).make_kms_private_key_store(FileSystemStorageClient(config.storage.root), uri)
        await store.write(key_id, handle)

    _run(_write())
    typer.echo(handle.public_key_pem().decode("ascii"), nl=False)


@keys_app.command("sign")
def keys_sign(
    ctx: typer.Context,
    key_id: str = typer.Argument(..., help="Private key id"),
    input: Path = typer.Option(..., "-i", "--input", exists=True, readable=True, dir_okay=False),
    key_uri: Optional[str] = typer.Option(None, "--key-uri", help="KMS key protecting the private key"),
) -> None:
    """Sign a file with a stored private key and print the base64 signature"""
    config: AppConfig = ctx.obj
    uri = _require_key_uri(config, key_uri)

    async def _read() -> Optional[PrivateKeyHandle]:
        store = _provider(config).make_kms_private_key_store(FileSystemStorageClient(config.storage.root), uri)
        return await store.read(key_id)

    handle = _run(_read())
    if handle is None:
        typer.echo(f"Private key not found: {key_id}", err=True)
        raise typer.Exit(code=1)
    signature = handle.sign(input.read_bytes())
    typer.echo(base64.b64encode(signature).decode("ascii"))


if __name__ == "__main__":  # pragma: no cover
    app()
