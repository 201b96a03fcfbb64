from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import BinaryIO

from .constants import (
    FLAG_ARCHIVED,
    FLAG_COMPRESSED,
    FLAG_ENCRYPTED,
    FLAG_MASK,
    FLAG_UNSALTED,
    HEADER_SIZE,
)
from .errors import FormatError


# Container header: flags u16, little endian.
#  bit 0 compressed (gzip)
#  bit 1 encrypted (AES-256-OFB)
#  bit 2 archived (tar)
#  bit 3 unsalted: encryption preamble is a clear IV rather than "Salted__"+salt
# Remaining bits are reserved and must be zero.
_HEADER_STRUCT = struct.Struct("<H")


@dataclass(frozen=True)
class ContainerHeader:
    compressed: bool = False
    encrypted: bool = False
    archived: bool = False
    unsalted: bool = False

    def __post_init__(self):
        if self.unsalted and not self.encrypted:
            raise FormatError("unsalted flag set on an unencrypted container")

    @property
    def flags(self) -> int:
        flags = 0
        if self.compressed:
            flags |= FLAG_COMPRESSED
        if self.encrypted:
            flags |= FLAG_ENCRYPTED
        if self.archived:
            flags |= FLAG_ARCHIVED
        if self.unsalted:
            flags |= FLAG_UNSALTED
        return flags

    @classmethod
    def from_flags(cls, flags: int) -> "ContainerHeader":
        if flags & ~FLAG_MASK:
            raise FormatError(f"unknown container flags 0x{flags & ~FLAG_MASK:04x}")
        return cls(
            compressed=bool(flags & FLAG_COMPRESSED),
            encrypted=bool(flags & FLAG_ENCRYPTED),
            archived=bool(flags & FLAG_ARCHIVED),
            unsalted=bool(flags & FLAG_UNSALTED),
        )

    def pack(self) -> bytes:
        return _HEADER_STRUCT.pack(self.flags)

    @classmethod
    def unpack(cls, raw: bytes) -> "ContainerHeader":
        if len(raw) != HEADER_SIZE:
            raise FormatError(f"container header too short ({len(raw)} of {HEADER_SIZE} bytes)")
        (flags,) = _HEADER_STRUCT.unpack(raw)
        return cls.from_flags(flags)

    def write(self, f: BinaryIO) -> None:
        f.write(self.pack())

    @classmethod
    def read(cls, f: BinaryIO) -> "ContainerHeader":
        raw = b""
        while len(raw) < HEADER_SIZE:
            data = f.read(HEADER_SIZE - len(raw))
            if not data:
                break
            raw += data
        return cls.unpack(raw)

    def describe(self) -> str:
        parts = []
        if self.archived:
            parts.append("tar")
        if self.compressed:
            parts.append("gzip")
        if self.encrypted:
            parts.append("aes256-ofb" if not self.unsalted else "aes256-ofb/iv")
        return "+".join(parts) or "raw"
