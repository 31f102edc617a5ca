"""
Persistence of output files.

Paths are vault-relative POSIX paths ('Recordings/rec-....wav'). The
filesystem implementation maps them under a root directory and moves the
blocking I/O off the event loop.
"""

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath

from .errors import StorageError


class StorageBackend(ABC):
    """Abstract persistence capability."""

    @abstractmethod
    async def exists(self, path: str) -> bool:
        pass

    @abstractmethod
    async def write_binary(self, path: str, data: bytes) -> str:
        """
        Write bytes to a new file.

        Returns:
            The path the file was written to

        Raises:
            StorageError: If the write fails
        """
        pass


class FileSystemStorage(StorageBackend):
    """Stores files under a root directory on the local filesystem."""

    def __init__(self, root: str = '.'):
        self.root = Path(root)

    def resolve(self, path: str) -> Path:
        relative = PurePosixPath(path)
        if relative.is_absolute() or '..' in relative.parts:
            raise StorageError(f"Path escapes storage root: {path}")
        return self.root.joinpath(*relative.parts)

    async def exists(self, path: str) -> bool:
        target = self.resolve(path)
        try:
            return await asyncio.to_thread(target.exists)
        except OSError as e:
            raise StorageError(f"Could not check {path}: {e}") from e

    async def write_binary(self, path: str, data: bytes) -> str:
        target = self.resolve(path)

        def _write():
            target.parent.mkdir(parents=True, exist_ok=True)
            # 'xb' refuses to overwrite an existing file
            with open(target, 'xb') as f:
                f.write(data)

        try:
            await asyncio.to_thread(_write)
        except FileExistsError as e:
            raise StorageError(f"File already exists: {path}") from e
        except OSError as e:
            raise StorageError(f"Could not write {path}: {e}") from e
        return path
