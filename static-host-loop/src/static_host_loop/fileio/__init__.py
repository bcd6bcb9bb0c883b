from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from static_host_core.operations import Close, FileOpen, Read, Write
from static_host_loop._utils import _execute

if TYPE_CHECKING:
    from static_host_loop.typedefs import Coro


@dataclass(slots=True, kw_only=True)
class File:
    """Utility wrapper for file operations. Represents a single regular file."""

    fd: int

    """Path the file was opened with"""
    path: Path

    """Position of the next read or write"""
    offset: int = 0

    def read(self, size: int = 65536) -> Coro[bytes]:
        """Reads up to size bytes from the current offset.

        Returns:
            the bytes read, empty at end of file
        """
        result = yield from _execute(Read(fd=self.fd, size=size, offset=self.offset))
        self.offset += result.size
        return result.content

    def write(self, data: bytes | str) -> Coro[int]:
        """Writes data at the current offset. May write less than given."""
        _data = data.encode() if isinstance(data, str) else data
        result = yield from _execute(Write(fd=self.fd, data=_data, offset=self.offset))
        self.offset += result.size
        return result.size

    def write_all(self, data: bytes | str) -> Coro[None]:
        """Writes all of data, retrying on short writes."""
        view = memoryview(data.encode() if isinstance(data, str) else data)
        while view:
            written = yield from self.write(bytes(view))
            view = view[written:]

    def stat(self) -> os.stat_result:
        """Metadata of the open file. Unlike path based lookups, immune to renames.

        A plain fstat, not a ring operation: it only reads the inode, which the
        kernel has cached since open.
        """
        return os.fstat(self.fd)

    def close(self) -> Coro[None]:
        """Close file low-level coroutine."""
        yield from _execute(Close(fd=self.fd))


def open_file(path: str | Path, mode: str = "r") -> Coro[File]:
    """Open file coroutine.

    Args:
        path: the file to open
        mode: combination of r, w, c (create) and a (append)
    """
    _path = Path(path)

    result = yield from _execute(FileOpen(path=str(_path), mode=mode))
    return File(fd=result.fd, path=_path)
