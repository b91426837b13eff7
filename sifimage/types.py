"""Core SIF types: format constants, enumerations and the global header."""

from __future__ import annotations

import struct
import uuid
from dataclasses import dataclass, field
from enum import IntEnum

from sifimage.arch import Arch
from sifimage.errors import SIFError

HDR_LAUNCH_LEN = 32
HDR_MAGIC_LEN = 10
HDR_VERSION_LEN = 3
HDR_MAGIC = b"SIF_MAGIC\x00"

DESCR_GROUP_MASK = 0xF0000000
DESCR_ENTITY_LEN = 256
DESCR_NAME_LEN = 128
DESCR_MAX_PRIV_LEN = 384


class SpecVersion(IntEnum):
    """SIF specification version."""

    VERSION_01 = 1

    def __str__(self) -> str:
        return f"{int(self):02d}"

    def header_bytes(self) -> bytes:
        """Return the version formatted for direct inclusion in a header."""
        return f"{int(self):02d}".encode().ljust(HDR_VERSION_LEN, b"\x00")[:HDR_VERSION_LEN]


CURRENT_VERSION = SpecVersion.VERSION_01


class _LabelledEnum(IntEnum):
    """Integer enumeration whose members carry a human-readable label."""

    def __new__(cls, value: int, label: str):
        obj = int.__new__(cls, value)
        obj._value_ = value
        obj.label = label
        return obj

    def __str__(self) -> str:
        return self.label

    def __format__(self, spec: str) -> str:
        return format(self.label, spec)


class DataType(_LabelledEnum):
    """Type of a data object stored in an image."""

    DEFFILE = 0x4001, "Def.FILE"
    ENV_VAR = 0x4002, "Env.Vars"
    LABELS = 0x4003, "JSON.Labels"
    PARTITION = 0x4004, "FS"
    SIGNATURE = 0x4005, "Signature"
    GENERIC_JSON = 0x4006, "JSON.Generic"
    GENERIC = 0x4007, "Generic/Raw"
    CRYPTO_MESSAGE = 0x4008, "Cryptographic Message"
    SBOM = 0x4009, "SBOM"


class FSType(_LabelledEnum):
    """File system type of a partition data object."""

    SQUASH = 1, "Squashfs"
    EXT3 = 2, "Ext3"
    IMMU_OBJ = 3, "Archive"
    RAW = 4, "Raw"
    ENCRYPTED_SQUASHFS = 5, "Encrypted squashfs"


class PartType(_LabelledEnum):
    """Partition type (system, primary system, data, overlay)."""

    SYSTEM = 1, "System"
    PRIM_SYS = 2, "*System"
    DATA = 3, "Data"
    OVERLAY = 4, "Overlay"


class HashType(IntEnum):
    """Hash function used to fingerprint data objects."""

    SHA256 = 1
    SHA384 = 2
    SHA512 = 3
    BLAKE2S = 4
    BLAKE2B = 5


class FormatType(_LabelledEnum):
    """Format of a cryptographic message object."""

    OPENPGP = 1, "OpenPGP"
    PEM = 2, "PEM"


class MessageType(_LabelledEnum):
    """Kind of message stored in a cryptographic message object."""

    CLEAR_SIGNATURE = 0x100, "Clear Signature"
    RSA_OAEP = 0x200, "RSA-OAEP"


class SBOMFormat(_LabelledEnum):
    """Format of a software bill of materials object."""

    CYCLONEDX_JSON = 1, "cyclonedx-json"
    CYCLONEDX_XML = 2, "cyclonedx-xml"
    GITHUB_JSON = 3, "github-json"
    SPDX_JSON = 4, "spdx-json"
    SPDX_RDF = 5, "spdx-rdf"
    SPDX_TAG_VALUE = 6, "spdx-tag-value"
    SPDX_YAML = 7, "spdx-yaml"
    SYFT_JSON = 8, "syft-json"


_HEADER_STRUCT = struct.Struct(
    f"<{HDR_LAUNCH_LEN}s{HDR_MAGIC_LEN}s{HDR_VERSION_LEN}s3s16s8q"
)
_INTEGRITY_STRUCT = struct.Struct(f"<{HDR_LAUNCH_LEN}s{HDR_MAGIC_LEN}s{HDR_VERSION_LEN}s")


@dataclass
class Header:
    """Global header of a SIF image."""

    launch_script: bytes = bytes(HDR_LAUNCH_LEN)
    magic: bytes = HDR_MAGIC
    version: bytes = field(default_factory=CURRENT_VERSION.header_bytes)
    arch: Arch = Arch.UNKNOWN
    id: uuid.UUID = field(default_factory=lambda: uuid.UUID(int=0))
    created_at: int = 0
    modified_at: int = 0
    descriptors_free: int = 0
    descriptors_total: int = 0
    descriptors_offset: int = 0
    descriptors_size: int = 0
    data_offset: int = 0
    data_size: int = 0

    SIZE = _HEADER_STRUCT.size

    def pack(self) -> bytes:
        """Encode the header in its on-disk little-endian layout."""
        return _HEADER_STRUCT.pack(
            self.launch_script,
            self.magic,
            self.version,
            self.arch.value,
            self.id.bytes,
            self.created_at,
            self.modified_at,
            self.descriptors_free,
            self.descriptors_total,
            self.descriptors_offset,
            self.descriptors_size,
            self.data_offset,
            self.data_size,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> Header:
        """Decode a header from the start of data."""
        if len(data) < _HEADER_STRUCT.size:
            raise SIFError("reading global header: unexpected EOF")
        (
            launch_script,
            magic,
            version,
            arch,
            raw_id,
            *numbers,
        ) = _HEADER_STRUCT.unpack_from(data)
        return cls(launch_script, magic, version, Arch(arch), uuid.UUID(bytes=raw_id), *numbers)

    def integrity_bytes(self) -> bytes:
        """Return the integrity-protected fields of the header."""
        return _INTEGRITY_STRUCT.pack(self.launch_script, self.magic, self.version) + self.id.bytes