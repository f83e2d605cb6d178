# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Artifact storage for backup files."""

from __future__ import annotations

import hashlib
import logging
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

import aiofiles
import aiofiles.os

from vigil.core.exceptions import BackupError

logger = logging.getLogger("vigil.backup.artifacts")


def checksum(data: bytes) -> str:
    """SHA-256 hex digest of an artifact's stored bytes."""
    return hashlib.sha256(data).hexdigest()


class ArtifactStore(ABC):
    """Byte-addressable area where backup artifacts are kept by path."""

    @abstractmethod
    async def write(self, name: str, data: bytes) -> str:
        """Store *data* under *name* and return the artifact path."""

    @abstractmethod
    async def read(self, path: str) -> bytes: ...

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """Remove an artifact; returns ``False`` if it did not exist."""

    @abstractmethod
    async def exists(self, path: str) -> bool: ...


class LocalArtifactStore(ArtifactStore):
    """Artifacts as files under one local (or mounted) directory.

    Writes land in a temporary sibling first and are renamed into place,
    so a crash never leaves a truncated file under the final name.
    """

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    async def write(self, name: str, data: bytes) -> str:
        if Path(name).name != name:
            raise BackupError(f"Artifact name must not contain a directory: {name!r}")
        await aiofiles.os.makedirs(self._root, exist_ok=True)
        final = self._root / name
        staging = self._root / f".{name}.{uuid.uuid4().hex}.part"
        try:
            async with aiofiles.open(staging, "wb") as fh:
                await fh.write(data)
                await fh.flush()
            await aiofiles.os.replace(staging, final)
        except OSError as exc:
            if await aiofiles.os.path.exists(staging):
                await aiofiles.os.remove(staging)
            raise BackupError(f"Failed to write artifact {final}: {exc}") from exc
        return str(final)

    async def read(self, path: str) -> bytes:
        try:
            async with aiofiles.open(path, "rb") as fh:
                return await fh.read()
        except OSError as exc:
            raise BackupError(f"Failed to read artifact {path}: {exc}") from exc

    async def delete(self, path: str) -> bool:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            logger.warning("Failed to delete artifact %s: %s", path, exc)
            return False
        return True

    async def exists(self, path: str) -> bool:
        return await aiofiles.os.path.exists(path)
