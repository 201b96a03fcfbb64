from __future__ import annotations

import os
from dataclasses import dataclass
from typing import BinaryIO, Callable, List, Optional

from .archive import ArchiveEntry, ExtractSummary, ProgressFactory, extract_archive, write_archive
from .codec import CompressWriter, DecompressReader
from .config import Options
from .constants import HEADER_SIZE
from .encryption import DecryptReader, EncryptWriter
from .errors import PasswordRequired
from .header import ContainerHeader
from .streams import Borrowed, ChecksumStream, Layer, ProgressStream


# Canonical layer order, outermost (wire) first:
#   [checksum] header [encrypt] [compress] tar|raw
# i.e. the payload is archived, then compressed, then encrypted. Decoding
# peels the same layers in reverse, driven by the header flags.


@dataclass
class RawSource:
    """A single unarchived payload."""

    stream: BinaryIO
    name: str
    size: Optional[int] = None


@dataclass
class EncodeResult:
    header: ContainerHeader
    checksum: Optional[str] = None
    bytes_in: int = 0


@dataclass
class DecodeResult:
    header: ContainerHeader
    checksum: Optional[str] = None
    bytes_out: int = 0
    output: Optional[str] = None
    summary: Optional[ExtractSummary] = None


def _copy(src: BinaryIO, dst: BinaryIO, chunk_size: int) -> int:
    copied = 0
    while True:
        data = src.read(chunk_size)
        if not data:
            return copied
        dst.write(data)
        copied += len(data)


def encode(
    sink: BinaryIO,
    options: Options,
    password: Optional[bytes] = None,
    *,
    entries: Optional[List[ArchiveEntry]] = None,
    source: Optional[RawSource] = None,
    progress: Optional[ProgressFactory] = None,
) -> EncodeResult:
    """Write one container to ``sink``.

    Exactly one of ``entries`` (tar mode) or ``source`` (raw mode) is given.
    ``sink`` is borrowed: it is flushed, never closed. On any error the layers
    are torn down without flushing and the error propagates.
    """
    if (entries is None) == (source is None):
        raise ValueError("encode needs exactly one of entries or source")
    header = options.container_header(archived=entries is not None)
    if header.encrypted and password is None:
        raise PasswordRequired("encryption requested but no password given")

    result = EncodeResult(header=header)
    out: Layer = Borrowed(sink)
    checksum: Optional[ChecksumStream] = None
    try:
        if options.checksum:
            out = checksum = ChecksumStream(out)
        if options.header:
            header.write(out)
        if header.encrypted:
            out = EncryptWriter(out, password, salted=not header.unsalted)
        if header.compressed:
            out = CompressWriter(out, level=options.compress_level)
        if entries is not None:
            result.bytes_in = write_archive(out, entries, progress)
        else:
            src: Layer = Borrowed(source.stream)
            if progress is not None and source.size:
                src = ProgressStream(src, source.size, progress(source.name, source.size))
            with src:
                result.bytes_in = _copy(src, out, options.chunk_size)
    except BaseException:
        out.abort()
        raise
    out.close()
    if checksum is not None:
        result.checksum = checksum.digest_value
    return result


def decode(
    source: BinaryIO,
    options: Options,
    password: Optional[bytes] = None,
    *,
    dest: Optional[str] = None,
    name: Optional[str] = None,
    stdout: Optional[BinaryIO] = None,
    progress: Optional[ProgressFactory] = None,
    total: Optional[int] = None,
    ask_password: Optional[Callable[[], bytes]] = None,
) -> DecodeResult:
    """Read one container from ``source`` and materialise its payload.

    Archives are extracted under ``dest``. A raw payload goes to ``stdout``
    when given, else to ``dest/name``. ``total`` is the container size when
    known; it drives progress for untransformed raw payloads. ``ask_password``
    is called when the header declares encryption and ``password`` is None.
    ``source`` is borrowed and left open. Output already written is not rolled
    back when a later step fails.
    """
    dest = dest if dest is not None else options.dest
    inp: Layer = Borrowed(source)
    checksum: Optional[ChecksumStream] = None
    result: Optional[DecodeResult] = None
    try:
        if options.checksum:
            inp = checksum = ChecksumStream(inp)
        if options.header:
            header = ContainerHeader.read(inp)
        else:
            header = options.container_header()
        result = DecodeResult(header=header)

        if header.encrypted:
            if password is None and ask_password is not None:
                password = ask_password()
            if password is None:
                raise PasswordRequired("container is encrypted; password required")
            inp = DecryptReader(inp, password, salted=not header.unsalted)
        if header.compressed:
            inp = DecompressReader(inp, options.chunk_size)

        if header.archived:
            os.makedirs(dest, exist_ok=True)
            result.summary = extract_archive(inp, dest, progress)
            result.bytes_out = result.summary.bytes
            result.output = dest
        else:
            src: Layer = Borrowed(inp)
            plain_total = None
            if total is not None and not header.encrypted and not header.compressed:
                plain_total = total - (HEADER_SIZE if options.header else 0)
            if progress is not None and plain_total:
                label = name or "download"
                src = ProgressStream(src, plain_total, progress(label, plain_total))
            if stdout is not None:
                with src:
                    result.bytes_out = _copy(src, stdout, options.chunk_size)
                stdout.flush()
                result.output = "-"
            else:
                os.makedirs(dest, exist_ok=True)
                target = os.path.join(dest, name or "download")
                with src, open(target, "wb") as fh:
                    result.bytes_out = _copy(src, fh, options.chunk_size)
                result.output = target

        if checksum is not None:
            checksum.drain(options.chunk_size)
    except BaseException:
        inp.abort()
        raise
    inp.close()
    if checksum is not None:
        result.checksum = checksum.digest_value
    return result
