"""Configuration loading utilities for Blob Guardian."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .paths import default_keyring_dir, default_storage_root, runtime_config_dir

DEFAULT_CHUNK_SIZE = 64 * 1024
MAX_CHUNK_SIZE = 16 * 1024 * 1024


class StorageConfig(BaseModel):
    root: Path = Field(default_factory=default_storage_root, description="Filesystem backend root")

    @field_validator("root")
    @classmethod
    def _expand_root(cls, value: Path) -> Path:
        return value.expanduser()


class CryptoConfig(BaseModel):
    chunk_size: int = Field(
        default=DEFAULT_CHUNK_SIZE,
        ge=1,
        le=MAX_CHUNK_SIZE,
        description="Plaintext bytes per encrypted chunk",
    )


class KmsConfig(BaseModel):
    key_uri: Optional[str] = Field(default=None, description="Default KMS key URI for encryption")
    keyring_dir: Path = Field(default_factory=default_keyring_dir)

    @field_validator("key_uri")
    @classmethod
    def _validate_key_uri(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if "://" not in value:
            raise ValueError(f"KMS key URI '{value}' has no scheme")
        return value

    @field_validator("keyring_dir")
    @classmethod
    def _expand_keyring(cls, value: Path) -> Path:
        return value.expanduser()


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", description="Logging verbosity level")

    def normalized_level(self) -> str:
        return self.level.upper()


class AppConfig(BaseModel):
    storage: StorageConfig = Field(default_factory=StorageConfig)
    crypto: CryptoConfig = Field(default_factory=CryptoConfig)
    kms: KmsConfig = Field(default_factory=KmsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


DEFAULT_CONFIG = AppConfig()


def config_search_paths(explicit: Optional[Path] = None) -> Iterable[Path]:
    if explicit:
        yield explicit
    yield Path.cwd() / ".blob_guardian" / "config.yaml"
    yield runtime_config_dir() / "config.yaml"


def load_config(path: Optional[Path] = None) -> AppConfig:
    for candidate in config_search_paths(path):
        if candidate.is_file():
            with candidate.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
            try:
                return AppConfig.model_validate(data)
            except ValidationError as exc:
                raise ValueError(f"Invalid configuration in {candidate}: {exc}") from exc
    return DEFAULT_CONFIG.model_copy(deep=True)


def dump_default_config(target: Path) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    with target.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(DEFAULT_CONFIG.model_dump(mode="json"), handle, sort_keys=False)
