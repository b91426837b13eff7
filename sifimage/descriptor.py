"""On-disk object descriptors and the read-only view of them."""

from __future__ import annotations

import io
import struct
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import IntEnum
from typing import Any, TypeVar

from sifimage.arch import Arch
from sifimage.errors import SIFError, UnexpectedDataTypeError
from sifimage.types import (
    DESCR_ENTITY_LEN,
    DESCR_GROUP_MASK,
    DESCR_MAX_PRIV_LEN,
    DESCR_NAME_LEN,
    DataType,
    FormatType,
    FSType,
    HashType,
    MessageType,
    PartType,
    SBOMFormat,
)

_E = TypeVar("_E", bound=IntEnum)

# Hash names used by this package for the hash types stored in signatures.
HASH_NAMES: dict[HashType, str] = {
    HashType.SHA256: "sha256",
    HashType.SHA384: "sha384",
    HashType.SHA512: "sha512",
    HashType.BLAKE2S: "blake2s_256",
    HashType.BLAKE2B: "blake2b_256",
}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _enum_or_int(enum_cls: type[_E], value: int) -> _E | int:
    """Return value as a member of enum_cls, or as a plain int if it is not one."""
    try:
        return enum_cls(value)
    except ValueError:
        return value


def _from_unix(seconds: int) -> datetime:
    return _EPOCH + timedelta(seconds=seconds)


_PARTITION_STRUCT = struct.Struct("<ii3s")
_SIGNATURE_STRUCT = struct.Struct(f"<i{DESCR_ENTITY_LEN}s")
_CRYPTO_MESSAGE_STRUCT = struct.Struct("<ii")
_SBOM_STRUCT = struct.Struct("<i")


def _unpack(st: struct.Struct, data: bytes) -> tuple:
    if len(data) < st.size:
        raise SIFError("unexpected EOF")
    return st.unpack_from(data)


@dataclass
class Partition:
    """Metadata of a partition data object."""

    fstype: FSType | int = 0
    parttype: PartType | int = 0
    arch: Arch | bytes = Arch.UNKNOWN

    SIZE = _PARTITION_STRUCT.size

    def pack(self) -> bytes:
        """Encode the metadata in its on-disk layout."""
        arch = self.arch.value if isinstance(self.arch, Arch) else bytes(self.arch)
        return _PARTITION_STRUCT.pack(int(self.fstype), int(self.parttype), arch)

    @classmethod
    def from_bytes(cls, data: bytes) -> Partition:
        """Decode the metadata from the start of data."""
        fstype, parttype, arch = _unpack(_PARTITION_STRUCT, data)
        return cls(_enum_or_int(FSType, fstype), _enum_or_int(PartType, parttype), Arch(arch))


@dataclass
class Signature:
    """Metadata of a signature data object."""

    hashtype: HashType | int = 0
    entity: bytes = bytes(DESCR_ENTITY_LEN)

    SIZE = _SIGNATURE_STRUCT.size

    def pack(self) -> bytes:
        """Encode the metadata in its on-disk layout."""
        return _SIGNATURE_STRUCT.pack(int(self.hashtype), bytes(self.entity))

    @classmethod
    def from_bytes(cls, data: bytes) -> Signature:
        """Decode the metadata from the start of data."""
        hashtype, entity = _unpack(_SIGNATURE_STRUCT, data)
        return cls(_enum_or_int(HashType, hashtype), entity)


@dataclass
class CryptoMessage:
    """Metadata of a cryptographic message data object."""

    format_type: FormatType | int = 0
    message_type: MessageType | int = 0

    SIZE = _CRYPTO_MESSAGE_STRUCT.size

    def pack(self) -> bytes:
        """Encode the metadata in its on-disk layout."""
        return _CRYPTO_MESSAGE_STRUCT.pack(int(self.format_type), int(self.message_type))

    @classmethod
    def from_bytes(cls, data: bytes) -> CryptoMessage:
        """Decode the metadata from the start of data."""
        format_type, message_type = _unpack(_CRYPTO_MESSAGE_STRUCT, data)
        return cls(_enum_or_int(FormatType, format_type), _enum_or_int(MessageType, message_type))


@dataclass
class SBOM:
    """Metadata of a software bill of materials data object."""

    format: SBOMFormat | int = 0

    SIZE = _SBOM_STRUCT.size

    def pack(self) -> bytes:
        """Encode the metadata in its on-disk layout."""
        return _SBOM_STRUCT.pack(int(self.format))

    @classmethod
    def from_bytes(cls, data: bytes) -> SBOM:
        """Decode the metadata from the start of data."""
        (fmt,) = _unpack(_SBOM_STRUCT, data)
        return cls(_enum_or_int(SBOMFormat, fmt))


_RAW_STRUCT = struct.Struct(f"<i?III7q{DESCR_NAME_LEN}s{DESCR_MAX_PRIV_LEN}s")
_INTEGRITY_STRUCT = struct.Struct("<i?IIqqqq")


@dataclass
class RawDescriptor:
    """An object descriptor as stored in the image."""

    data_type: DataType | int = 0
    used: bool = False
    id: int = 0
    group_id: int = 0
    linked_id: int = 0
    offset: int = 0
    size: int = 0
    size_with_padding: int = 0
    created_at: int = 0
    modified_at: int = 0
    uid: int = 0
    gid: int = 0
    name: bytes = bytes(DESCR_NAME_LEN)
    extra: bytes = bytes(DESCR_MAX_PRIV_LEN)

    SIZE = _RAW_STRUCT.size

    def pack(self) -> bytes:
        """Encode the descriptor in its on-disk little-endian layout."""
        return _RAW_STRUCT.pack(
            int(self.data_type),
            bool(self.used),
            self.id,
            self.group_id,
            self.linked_id,
            self.offset,
            self.size,
            self.size_with_padding,
            self.created_at,
            self.modified_at,
            self.uid,
            self.gid,
            bytes(self.name),
            bytes(self.extra),
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> RawDescriptor:
        """Decode a descriptor from the start of data."""
        if len(data) < _RAW_STRUCT.size:
            raise SIFError("reading descriptors: unexpected EOF")
        data_type, *rest = _RAW_STRUCT.unpack_from(data)
        return cls(_enum_or_int(DataType, data_type), *rest)

    def set_name(self, name: str | bytes) -> None:
        """Store name in the name field, padded with zero bytes."""
        encoded = name.encode() if isinstance(name, str) else bytes(name)
        if len(encoded) > DESCR_NAME_LEN:
            raise SIFError("name value too large")
        self.name = encoded.ljust(DESCR_NAME_LEN, b"\x00")

    def set_extra(self, extra: Any) -> None:
        """Store packed metadata in the extra field, padded with zero bytes."""
        if extra is None:
            return
        packed = extra.pack()
        if len(packed) > DESCR_MAX_PRIV_LEN:
            raise SIFError("extra value too large")
        self.extra = packed.ljust(DESCR_MAX_PRIV_LEN, b"\x00")

    def partition_metadata(self) -> tuple[FSType | int, PartType | int, str]:
        """Return (file system type, partition type, architecture name)."""
        if self.data_type != DataType.PARTITION:
            raise UnexpectedDataTypeError(self.data_type, [DataType.PARTITION])
        p = Partition.from_bytes(self.extra)
        arch = p.arch if isinstance(p.arch, Arch) else Arch(p.arch)
        return p.fstype, p.parttype, arch.go_arch()

    def is_partition_of_type(self, pt: PartType) -> bool:
        """Report whether this is a partition data object of type pt."""
        try:
            _, t, _ = self.partition_metadata()
        except SIFError:
            return False
        return t == pt


def _read_at(source: Any, size: int, offset: int) -> bytes:
    """Read up to size bytes at offset from source without disturbing its position."""
    read_at = getattr(source, "read_at", None)
    if read_at is not None:
        try:
            return bytes(read_at(size, offset))
        except EOFError:
            return b""
    position = source.tell()
    try:
        source.seek(offset)
        return bytes(source.read(size))
    finally:
        source.seek(position)


class _SectionReader(io.RawIOBase):
    """Reads a fixed region of a source."""

    def __init__(self, source: Any, offset: int, size: int) -> None:
        super().__init__()
        self._source = source
        self._offset = offset
        self._size = size
        self._pos = 0

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        remaining = self._size - self._pos
        if remaining <= 0 or len(b) == 0:
            return 0
        chunk = _read_at(self._source, min(len(b), remaining), self._offset + self._pos)
        b[: len(chunk)] = chunk
        self._pos += len(chunk)
        return len(chunk)


class Descriptor:
    """A data object descriptor together with access to its data."""

    def __init__(self, raw: RawDescriptor, source: Any, relative_id: int) -> None:
        self.raw = raw
        self.source = source
        self.relative_id = relative_id

    def __repr__(self) -> str:
        return f"Descriptor(id={self.id}, data_type={self.data_type!s}, size={self.size})"

    @property
    def data_type(self) -> DataType | int:
        """Type of the data object."""
        return self.raw.data_type

    @property
    def id(self) -> int:
        """Data object ID."""
        return self.raw.id

    @property
    def group_id(self) -> int:
        """Group ID of the data object, or zero if it is not in a group."""
        return self.raw.group_id & ~DESCR_GROUP_MASK

    @property
    def linked_id(self) -> tuple[int, bool]:
        """The linked object or group ID, and whether it is a group ID."""
        link = self.raw.linked_id
        return link & ~DESCR_GROUP_MASK, link & DESCR_GROUP_MASK == DESCR_GROUP_MASK

    @property
    def offset(self) -> int:
        """Offset of the data object in the image."""
        return self.raw.offset

    @property
    def size(self) -> int:
        """Size of the data object."""
        return self.raw.size

    @property
    def created_at(self) -> datetime:
        """Creation time of the data object."""
        return _from_unix(self.raw.created_at)

    @property
    def modified_at(self) -> datetime:
        """Modification time of the data object."""
        return _from_unix(self.raw.modified_at)

    @property
    def name(self) -> str:
        """Name of the data object."""
        return bytes(self.raw.name).rstrip(b"\x00").decode("utf-8", "replace")

    def partition_metadata(self) -> tuple[FSType | int, PartType | int, str]:
        """Return (file system type, partition type, architecture name)."""
        return self.raw.partition_metadata()

    def signature_metadata(self) -> tuple[str, bytes]:
        """Return (hash name, 20-byte signing entity fingerprint)."""
        if self.raw.data_type != DataType.SIGNATURE:
            raise UnexpectedDataTypeError(self.raw.data_type, [DataType.SIGNATURE])
        s = Signature.from_bytes(self.raw.extra)
        try:
            hash_name = HASH_NAMES[HashType(s.hashtype)]
        except (ValueError, KeyError):
            raise SIFError("hash algorithm unsupported") from None
        return hash_name, bytes(s.entity[:20]).ljust(20, b"\x00")

    def crypto_message_metadata(self) -> tuple[FormatType | int, MessageType | int]:
        """Return (format type, message type)."""
        if self.raw.data_type != DataType.CRYPTO_MESSAGE:
            raise UnexpectedDataTypeError(self.raw.data_type, [DataType.CRYPTO_MESSAGE])
        m = CryptoMessage.from_bytes(self.raw.extra)
        return m.format_type, m.message_type

    def sbom_metadata(self) -> SBOMFormat | int:
        """Return the SBOM format."""
        if self.raw.data_type != DataType.SBOM:
            raise UnexpectedDataTypeError(self.raw.data_type, [DataType.SBOM])
        return SBOM.from_bytes(self.raw.extra).format

    def get_data(self) -> bytes:
        """Return the whole data object."""
        data = self.get_reader().read()
        if len(data) < self.raw.size:
            raise EOFError("unexpected EOF")
        return data

    def get_reader(self) -> io.RawIOBase:
        """Return a binary stream reading the data object."""
        return _SectionReader(self.source, self.raw.offset, self.raw.size)

    def integrity_bytes(self) -> bytes:
        """Return the integrity-protected fields of the descriptor."""
        r = self.raw
        return (
            _INTEGRITY_STRUCT.pack(
                int(r.data_type),
                bool(r.used),
                self.relative_id,
                r.linked_id,
                r.size,
                r.created_at,
                r.uid,
                r.gid,
            )
            + bytes(r.name)
            + bytes(r.extra)
        )