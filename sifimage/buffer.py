"""An in-memory, growable byte store usable as backing storage for an image."""

from __future__ import annotations

import io


class Buffer:
    """A variable-sized byte buffer supporting positional reads, writes, seeks and truncation."""

    def __init__(self, data: bytes = b"") -> None:
        self._buf = bytearray(data)
        self._pos = 0

    def read_at(self, size: int, offset: int) -> bytes:
        """Return up to size bytes starting at offset, without moving the position.

        Raises EOFError if offset is at or beyond the end of the buffer. A read
        that runs past the end returns the bytes that are available.
        """
        if offset < 0:
            raise ValueError("negative offset")
        if size < 0:
            raise ValueError("negative size")
        if offset >= len(self._buf):
            raise EOFError("EOF")
        return bytes(self._buf[offset : offset + size])

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes (all remaining if negative) from the current position."""
        if self._pos >= len(self._buf):
            return b""
        end = len(self._buf) if size is None or size < 0 else self._pos + size
        data = bytes(self._buf[self._pos : end])
        self._pos += len(data)
        return data

    def write(self, data: bytes) -> int:
        """Write data at the current position, growing the buffer as needed."""
        if self._pos < 0:
            raise ValueError("negative position")
        chunk = bytes(data)
        end = self._pos + len(chunk)
        if end > len(self._buf):
            self._buf.extend(bytes(end - len(self._buf)))
        self._buf[self._pos : end] = chunk
        self._pos = end
        return len(chunk)

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        """Move the position and return it."""
        if whence == io.SEEK_SET:
            target = offset
        elif whence == io.SEEK_CUR:
            target = self._pos + offset
        elif whence == io.SEEK_END:
            target = len(self._buf) + offset
        else:
            raise ValueError("invalid whence")
        if target < 0:
            raise ValueError("negative position")
        self._pos = target
        return target

    def tell(self) -> int:
        """Return the current position."""
        return self._pos

    def truncate(self, size: int | None = None) -> int:
        """Discard all but the first size bytes (default: the current position)."""
        if size is None:
            size = self._pos
        if size < 0 or size > len(self._buf):
            raise ValueError("truncation out of range")
        del self._buf[size:]
        return size

    def getvalue(self) -> bytes:
        """Return the contents of the buffer."""
        return bytes(self._buf)

    def __len__(self) -> int:
        return len(self._buf)