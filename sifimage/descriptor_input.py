"""Description of a new data object to be written into an image."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, BinaryIO, Union

from sifimage.arch import Arch, sif_arch
from sifimage.descriptor import HASH_NAMES, SBOM, CryptoMessage, Partition, RawDescriptor, Signature
from sifimage.errors import InvalidGroupIDError, InvalidObjectIDError, SIFError, UnexpectedDataTypeError
from sifimage.types import (
    DESCR_ENTITY_LEN,
    DESCR_GROUP_MASK,
    DataType,
    FormatType,
    FSType,
    MessageType,
    PartType,
    SBOMFormat,
)

DEFAULT_OBJECT_GROUP = 1

# Unix time of the zero time value, used when no time is given.
ZERO_TIME_UNIX = -62135596800

Metadata = Union[Partition, Signature, CryptoMessage, SBOM]

_METADATA_TYPES: dict[type, DataType] = {
    Partition: DataType.PARTITION,
    Signature: DataType.SIGNATURE,
    CryptoMessage: DataType.CRYPTO_MESSAGE,
    SBOM: DataType.SBOM,
}

_HASH_TYPES = {name: hash_type for hash_type, name in HASH_NAMES.items()}


def unix_seconds(t: datetime | None) -> int:
    """Return t as Unix seconds; None stands for the zero time."""
    if t is None:
        return ZERO_TIME_UNIX
    if t.tzinfo is None:
        t = t.astimezone(timezone.utc)
    return math.floor(t.timestamp())


def partition_metadata(fs: FSType, pt: PartType, arch: str) -> Partition:
    """Return partition metadata; arch is a runtime architecture name such as "amd64"."""
    code = sif_arch(arch)
    if code is Arch.UNKNOWN:
        raise SIFError(f"unknown architecture: {arch}")
    return Partition(fs, pt, code)


def signature_metadata(hash_name: str, fingerprint: bytes) -> Signature:
    """Return signature metadata for a hash name and signing entity fingerprint."""
    entity = bytes(fingerprint)[:DESCR_ENTITY_LEN].ljust(DESCR_ENTITY_LEN, b"\x00")
    return Signature(_HASH_TYPES.get(hash_name, 0), entity)


def crypto_message_metadata(format_type: FormatType, message_type: MessageType) -> CryptoMessage:
    """Return cryptographic message metadata."""
    return CryptoMessage(format_type, message_type)


def sbom_metadata(sbom_format: SBOMFormat) -> SBOM:
    """Return SBOM metadata."""
    return SBOM(sbom_format)


class DescriptorInput:
    """A new data object: its type, contents and descriptor options.

    group_id=None places the object outside any group. Partitions are aligned
    on 4096 bytes unless alignment is given; other objects are not aligned.
    """

    def __init__(
        self,
        data_type: DataType,
        source: BinaryIO | None,
        *,
        group_id: int | None = DEFAULT_OBJECT_GROUP,
        linked_id: int | None = None,
        linked_group_id: int | None = None,
        alignment: int | None = None,
        name: str = "",
        time: datetime | None = None,
        metadata: Metadata | None = None,
    ) -> None:
        if group_id == 0:
            raise InvalidGroupIDError()
        if linked_id is not None and linked_group_id is not None:
            raise ValueError("linked_id and linked_group_id are mutually exclusive")
        if linked_id == 0:
            raise InvalidObjectIDError()
        if linked_group_id == 0:
            raise InvalidGroupIDError()
        if metadata is not None:
            expected = _METADATA_TYPES.get(type(metadata))
            if expected is None:
                raise TypeError(f"unsupported metadata: {metadata!r}")
            if data_type != expected:
                raise UnexpectedDataTypeError(data_type, [expected])

        self.data_type = data_type
        self.source = source
        self.group_id = group_id or 0
        if linked_group_id is not None:
            self.link_id = linked_group_id | DESCR_GROUP_MASK
        else:
            self.link_id = linked_id or 0
        if alignment is None:
            alignment = 4096 if data_type == DataType.PARTITION else 0
        self.alignment = alignment
        self.name = name
        self.time = time
        self.metadata: Any = metadata

    def fill_descriptor(self, raw: RawDescriptor, t: datetime | None) -> None:
        """Fill raw from this input, using t unless this input carries its own time."""
        raw.data_type = self.data_type
        raw.group_id = self.group_id | DESCR_GROUP_MASK
        raw.linked_id = self.link_id
        seconds = unix_seconds(self.time if self.time is not None else t)
        raw.created_at = seconds
        raw.modified_at = seconds
        raw.uid = 0
        raw.gid = 0
        raw.set_name(self.name)
        raw.set_extra(self.metadata)