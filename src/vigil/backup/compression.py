# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Lossless byte-stream compressors used around the serialized dump."""

from __future__ import annotations

import gzip
import zlib
from typing import Protocol, runtime_checkable

from vigil.core.exceptions import BackupError


@runtime_checkable
class Compressor(Protocol):
    name: str
    suffix: str

    def compress(self, data: bytes) -> bytes: ...

    def decompress(self, data: bytes) -> bytes: ...


class GzipCompressor:
    """gzip with a fixed mtime so identical dumps compress identically."""

    name = "gzip"
    suffix = ".gz"

    def __init__(self, level: int = 6) -> None:
        if not 0 <= level <= 9:
            raise ValueError("gzip level must be between 0 and 9")
        self._level = level

    def compress(self, data: bytes) -> bytes:
        return gzip.compress(data, compresslevel=self._level, mtime=0)

    def decompress(self, data: bytes) -> bytes:
        try:
            return gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as exc:
            raise BackupError(f"Artifact is not valid gzip data: {exc}") from exc
