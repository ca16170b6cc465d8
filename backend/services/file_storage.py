"""
File storage collaborator.

The workflow only records file metadata; bytes are handed to a FileStorage
which returns an opaque key. LocalFileStorage keeps them under UPLOAD_DIR.
"""

import asyncio
import time
import uuid
from pathlib import Path
from typing import Protocol, runtime_checkable

from utils.logging import get_logger

logger = get_logger(__name__)


class StoredFileMissing(Exception):
    """Raised when a storage key has no bytes behind it."""
    pass


@runtime_checkable
class FileStorage(Protocol):
    """put(bytes) -> key, get(key) -> bytes, delete(key)."""

    async def put(self, content: bytes, file_name: str) -> str:
        ...

    async def get(self, key: str) -> bytes:
        ...

    async def delete(self, key: str) -> None:
        ...


class LocalFileStorage:
    """Stores files on local disk with generated, collision-free names."""

    def __init__(self, root: str):
        self.root = Path(root)

    def _path_for(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise StoredFileMissing(f"Invalid storage key: {key}")
        return path

    @staticmethod
    def _generate_key(file_name: str) -> str:
        suffix = Path(file_name).suffix.lower()
        return f"{int(time.time() * 1000)}-{uuid.uuid4().hex}{suffix}"

    async def put(self, content: bytes, file_name: str) -> str:
        key = self._generate_key(file_name)
        path = self._path_for(key)

        def _write():
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)

        await asyncio.to_thread(_write)
        logger.debug(
            "Stored file",
            extra={"data": {"key": key, "file_name": file_name, "size": len(content)}}
        )
        return key

    async def get(self, key: str) -> bytes:
        path = self._path_for(key)
        if not path.exists():
            raise StoredFileMissing(f"No stored file for key: {key}")
        return await asyncio.to_thread(path.read_bytes)

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        await asyncio.to_thread(path.unlink, True)
        logger.debug("Deleted stored file", extra={"data": {"key": key}})
