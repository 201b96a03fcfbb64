from __future__ import annotations

import zlib
from typing import BinaryIO

from .constants import DEFAULT_CHUNK_SIZE, DEFAULT_COMPRESS_LEVEL
from .errors import FormatError
from .streams import Layer


# zlib wbits selecting the gzip container (RFC 1952) around raw deflate
GZIP_WBITS = 16 + zlib.MAX_WBITS


class CompressWriter(Layer):
    """Streaming gzip compressor. ``close()`` writes the CRC/size trailer."""

    def __init__(self, inner: BinaryIO, level: int = DEFAULT_COMPRESS_LEVEL):
        if not -1 <= level <= 9:
            raise ValueError(f"compression level must be in -1..9, got {level}")
        self._z = zlib.compressobj(level, zlib.DEFLATED, GZIP_WBITS)
        super().__init__(inner)

    def write(self, b) -> int:
        data = bytes(b)
        out = self._z.compress(data)
        if out:
            self.inner.write(out)
        return len(data)

    def _finish(self) -> None:
        self.inner.write(self._z.flush(zlib.Z_FINISH))


class DecompressReader(Layer):
    """Streaming gzip decompressor with bounded output per read.

    Corrupt input, a stream that ends before the gzip trailer, and bytes after
    the trailer all raise :class:`FormatError`.
    """

    def __init__(self, inner: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._z = zlib.decompressobj(GZIP_WBITS)
        self._pending = b""
        self._chunk_size = chunk_size
        super().__init__(inner)

    def readinto(self, b) -> int:
        try:
            while not self._pending:
                if self._z.eof:
                    self._check_trailing()
                    return 0
                data = self._z.unconsumed_tail
                if not data:
                    data = self.inner.read(self._chunk_size)
                    if not data:
                        raise FormatError("compressed stream ended before the gzip trailer")
                self._pending = self._z.decompress(data, self._chunk_size)
        except zlib.error as exc:
            raise FormatError(f"corrupt compressed stream: {exc}") from exc
        n = min(len(b), len(self._pending))
        b[:n] = self._pending[:n]
        self._pending = self._pending[n:]
        return n

    def _check_trailing(self) -> None:
        if self._z.unused_data or self.inner.read(1):
            raise FormatError("unexpected data after the compressed stream")
