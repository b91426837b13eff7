"""CPU architecture codes stored in SIF headers and partition descriptors."""

from __future__ import annotations

from enum import Enum


class Arch(Enum):
    """Three-byte architecture code as written on disk."""

    UNKNOWN = b"00\x00"
    I386 = b"01\x00"
    AMD64 = b"02\x00"
    ARM = b"03\x00"
    ARM64 = b"04\x00"
    PPC64 = b"05\x00"
    PPC64LE = b"06\x00"
    MIPS = b"07\x00"
    MIPSLE = b"08\x00"
    MIPS64 = b"09\x00"
    MIPS64LE = b"10\x00"
    S390X = b"11\x00"
    RISCV64 = b"12\x00"

    @classmethod
    def _missing_(cls, value: object) -> Arch:
        # Codes not known to this implementation read as unknown.
        return cls.UNKNOWN

    def go_arch(self) -> str:
        """Return the runtime architecture name, or "unknown"."""
        return _GO_NAMES.get(self, "unknown")


_GO_NAMES: dict[Arch, str] = {
    Arch.I386: "386",
    Arch.AMD64: "amd64",
    Arch.ARM: "arm",
    Arch.ARM64: "arm64",
    Arch.PPC64: "ppc64",
    Arch.PPC64LE: "ppc64le",
    Arch.MIPS: "mips",
    Arch.MIPSLE: "mipsle",
    Arch.MIPS64: "mips64",
    Arch.MIPS64LE: "mips64le",
    Arch.S390X: "s390x",
    Arch.RISCV64: "riscv64",
}

_BY_NAME: dict[str, Arch] = {name: arch for arch, name in _GO_NAMES.items()}


def sif_arch(arch: str) -> Arch:
    """Return the SIF architecture code for a runtime architecture name."""
    return _BY_NAME.get(arch, Arch.UNKNOWN)