"""Shared filesystem path helpers for Blob Guardian."""
from __future__ import annotations

import sys
from pathlib import Path

from platformdirs import PlatformDirs

_APP_NAME = "Blob Guardian"
_LINUX_APP_NAME = "blob-guardian"


def _dirs() -> PlatformDirs:
    if sys.platform in ("win32", "darwin"):
        return PlatformDirs(appname=_APP_NAME, appauthor=None, roaming=True)
    return PlatformDirs(appname=_LINUX_APP_NAME, appauthor=None, roaming=False)


def runtime_config_dir() -> Path:
    """Return the per-user runtime configuration directory."""
    return Path(_dirs().user_config_path)


def default_storage_root() -> Path:
    """Return the default root for the filesystem blob backend."""
    return Path(_dirs().user_data_path) / "blobs"


def default_keyring_dir() -> Path:
    """Return the default directory holding local KMS keys."""
    return Path(_dirs().user_data_path) / "kms"
