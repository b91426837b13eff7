"""Loaded SIF images, descriptor selection and container loading."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import datetime, timedelta, timezone
from typing import Any

from sifimage.descriptor import Descriptor, RawDescriptor
from sifimage.errors import (
    InvalidGroupIDError,
    InvalidObjectIDError,
    MultipleObjectsFoundError,
    NoObjectsError,
    ObjectNotFoundError,
    SIFError,
)
from sifimage.types import CURRENT_VERSION, HDR_MAGIC, DataType, Header, PartType

Selector = Callable[[Descriptor], bool]

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def with_data_type(data_type: DataType) -> Selector:
    """Select descriptors of the given data type."""
    return lambda d: d.data_type == data_type


def with_id(object_id: int) -> Selector:
    """Select the descriptor with the given object ID."""

    def select(d: Descriptor) -> bool:
        if object_id == 0:
            raise InvalidObjectIDError()
        return d.id == object_id

    return select


def with_no_group() -> Selector:
    """Select descriptors not contained in an object group."""
    return lambda d: d.group_id == 0


def with_group_id(group_id: int) -> Selector:
    """Select descriptors in the given object group."""

    def select(d: Descriptor) -> bool:
        if group_id == 0:
            raise InvalidGroupIDError()
        return d.group_id == group_id

    return select


def with_linked_id(object_id: int) -> Selector:
    """Select descriptors linked to the given data object."""

    def select(d: Descriptor) -> bool:
        if object_id == 0:
            raise InvalidObjectIDError()
        linked, is_group = d.linked_id
        return not is_group and linked == object_id

    return select


def with_linked_group_id(group_id: int) -> Selector:
    """Select descriptors linked to the given object group."""

    def select(d: Descriptor) -> bool:
        if group_id == 0:
            raise InvalidGroupIDError()
        linked, is_group = d.linked_id
        return is_group and linked == group_id

    return select


def with_partition_type(pt: PartType) -> Selector:
    """Select partition descriptors of the given partition type."""
    return lambda d: d.raw.is_partition_of_type(pt)


class FileImage:
    """A SIF image: its global header, descriptors and backing storage."""

    def __init__(
        self,
        rw: Any,
        header: Header,
        descriptors: list[RawDescriptor],
        *,
        close_on_unload: bool = True,
    ) -> None:
        self.rw = rw
        self.header = header
        self.descriptors = list(descriptors)
        self.close_on_unload = close_on_unload
        self.min_ids: dict[int, int] = {}
        self._populate_min_ids()

    def _populate_min_ids(self) -> None:
        self.min_ids = {}
        for raw in self._used():
            current = self.min_ids.get(raw.group_id)
            if current is None or raw.id < current:
                self.min_ids[raw.group_id] = raw.id

    def _used(self) -> Iterator[RawDescriptor]:
        return (raw for raw in self.descriptors if raw.used)

    def _descriptor(self, raw: RawDescriptor) -> Descriptor:
        return Descriptor(raw, self.rw, raw.id - self.min_ids.get(raw.group_id, 0))

    def _select(self, selectors: tuple[Selector, ...]) -> Iterator[RawDescriptor]:
        """Yield in-use raw descriptors matched by every selector."""
        for raw in self._used():
            d = self._descriptor(raw)
            if all(select(d) for select in selectors):
                yield raw

    def _check_not_empty(self) -> None:
        if self.header.descriptors_free == self.header.descriptors_total:
            raise NoObjectsError()

    def get_descriptors(self, *args: Selector) -> list[Descriptor]:
        """Return all in-use descriptors matched by every selector."""
        self._check_not_empty()
        return [self._descriptor(raw) for raw in self._select(args)]

    def get_descriptor(self, *args: Selector) -> Descriptor:
        """Return the single in-use descriptor matched by every selector."""
        self._check_not_empty()
        found: RawDescriptor | None = None
        for raw in self._select(args):
            if found is not None:
                raise MultipleObjectsFoundError()
            found = raw
        if found is None:
            raise ObjectNotFoundError()
        return self._descriptor(found)

    def with_descriptors(self, fn: Callable[[Descriptor], bool]) -> None:
        """Call fn with each in-use descriptor until it returns True."""
        for raw in self._used():
            if fn(self._descriptor(raw)):
                break

    @property
    def launch_script(self) -> str:
        """The image launch script."""
        return bytes(self.header.launch_script).rstrip(b"\x00").decode("utf-8", "replace")

    @property
    def version(self) -> str:
        """The SIF specification version of the image."""
        return bytes(self.header.version).rstrip(b"\x00").decode("ascii", "replace")

    @property
    def primary_arch(self) -> str:
        """The primary CPU architecture, or "unknown"."""
        return self.header.arch.go_arch()

    @property
    def id(self) -> str:
        """The image ID."""
        return str(self.header.id)

    @property
    def created_at(self) -> datetime:
        """Image creation time."""
        return _EPOCH + timedelta(seconds=self.header.created_at)

    @property
    def modified_at(self) -> datetime:
        """Image last modification time."""
        return _EPOCH + timedelta(seconds=self.header.modified_at)

    @property
    def descriptors_free(self) -> int:
        """Number of free descriptors."""
        return self.header.descriptors_free

    @property
    def descriptors_total(self) -> int:
        """Total number of descriptors."""
        return self.header.descriptors_total

    @property
    def descriptors_offset(self) -> int:
        """Offset in bytes of the descriptor section."""
        return self.header.descriptors_offset

    @property
    def descriptors_size(self) -> int:
        """Size in bytes of the descriptor section."""
        return self.header.descriptors_size

    @property
    def data_offset(self) -> int:
        """Offset in bytes of the data section."""
        return self.header.data_offset

    @property
    def data_size(self) -> int:
        """Size in bytes of the data section."""
        return self.header.data_size

    def header_integrity_bytes(self) -> bytes:
        """Return the integrity-protected fields of the global header."""
        return self.header.integrity_bytes()

    def unload(self) -> None:
        """Release resources, closing the backing storage if configured to."""
        close = getattr(self.rw, "close", None)
        if self.close_on_unload and close is not None:
            close()

    def __enter__(self) -> FileImage:
        return self

    def __exit__(self, *args: Any) -> None:
        self.unload()


def _read_section(rw: Any, offset: int, size: int) -> bytes:
    """Read up to size bytes at offset without disturbing the stream position."""
    read_at = getattr(rw, "read_at", None)
    if read_at is not None:
        try:
            return bytes(read_at(size, offset))
        except EOFError:
            return b""
    position = rw.tell()
    try:
        rw.seek(offset)
        return bytes(rw.read(size))
    finally:
        rw.seek(position)


def _load(rw: Any, close_on_unload: bool) -> FileImage:
    header = Header.from_bytes(_read_section(rw, 0, Header.SIZE))

    if header.magic != HDR_MAGIC:
        raise SIFError("invalid SIF magic")
    if header.version != CURRENT_VERSION.header_bytes():
        raise SIFError("incompatible SIF version")

    total = header.descriptors_total
    if total < 0 or header.descriptors_size < 0 or header.descriptors_offset < 0:
        raise SIFError("reading descriptors: invalid descriptor section")
    needed = total * RawDescriptor.SIZE
    data = _read_section(rw, header.descriptors_offset, min(header.descriptors_size, needed))
    if len(data) < needed:
        raise SIFError("reading descriptors: unexpected EOF")
    descriptors = [
        RawDescriptor.from_bytes(data[start : start + RawDescriptor.SIZE])
        for start in range(0, needed, RawDescriptor.SIZE)
    ]
    return FileImage(rw, header, descriptors, close_on_unload=close_on_unload)


def load_container(rw: Any, *, close_on_unload: bool = True) -> FileImage:
    """Load a SIF image from a seekable binary stream or Buffer."""
    return _load(rw, close_on_unload)


def load_container_from_path(path: Any, *, writable: bool = True) -> FileImage:
    """Open and load the SIF image at path; the file is closed on unload."""
    fp = open(path, "r+b" if writable else "rb")
    try:
        return _load(fp, True)
    except BaseException:
        fp.close()
        raise