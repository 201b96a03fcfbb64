from __future__ import annotations

import io
import os
import shutil
import tarfile
import time
from dataclasses import dataclass, field
from typing import BinaryIO, Callable, Iterator, List, Optional, Tuple

from .constants import DEFAULT_CHUNK_SIZE
from .errors import FormatError
from .pathutil import norm_path
from .streams import Layer, ProgressReporter, ProgressStream


# (archive path, total bytes) -> reporter for that entry
ProgressFactory = Callable[[str, int], ProgressReporter]


@dataclass
class ArchiveEntry:
    path: str
    is_dir: bool
    mode: int
    size: int = 0
    source: Optional[str] = None  # filesystem path of a file's content
    mtime: Optional[float] = None

    def open(self) -> BinaryIO:
        if self.is_dir or self.source is None:
            raise ValueError(f"entry has no content: {self.path}")
        return open(self.source, "rb")


@dataclass
class ExtractSummary:
    files: int = 0
    dirs: int = 0
    bytes: int = 0
    skipped: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _tarinfo(entry: ArchiveEntry) -> tarfile.TarInfo:
    info = tarfile.TarInfo(norm_path(entry.path))
    info.mode = entry.mode & 0o7777
    info.mtime = int(entry.mtime if entry.mtime is not None else time.time())
    if entry.is_dir:
        info.type = tarfile.DIRTYPE
    else:
        info.type = tarfile.REGTYPE
        info.size = entry.size
    return info


def write_archive(
    out: BinaryIO,
    entries: List[ArchiveEntry],
    progress: Optional[ProgressFactory] = None,
) -> int:
    """Write ``entries`` as a streaming tar to ``out``; returns content bytes written.

    ``out`` is not closed. The end-of-archive marker is written only when every
    entry made it; on error the partial archive is left unterminated.
    """
    if not entries:
        raise ValueError("nothing to archive")
    written = 0
    with tarfile.open(fileobj=out, mode="w|", format=tarfile.PAX_FORMAT) as tar:
        for entry in entries:
            info = _tarinfo(entry)
            if entry.is_dir:
                tar.addfile(info)
                continue
            src = entry.open()
            if progress is not None:
                src = ProgressStream(src, entry.size, progress(info.name, entry.size))
            with src:
                tar.addfile(info, src)
            written += entry.size
    return written


# tarfile's stream reader pulls at most one record past the header it stops at
_READ_AHEAD = 4 * tarfile.RECORDSIZE
_END_MARKER_SIZE = 2 * tarfile.BLOCKSIZE


class _Recorder(Layer):
    """Counts the bytes read through it and keeps the most recent ones."""

    def __init__(self, inner: BinaryIO, keep: int = _READ_AHEAD):
        super().__init__(inner)
        self.count = 0
        self._keep = keep
        self._tail = bytearray()

    def _observe(self, data: bytes) -> None:
        self.count += len(data)
        self._tail += data
        excess = len(self._tail) - self._keep
        if excess > 0:
            del self._tail[:excess]

    def since(self, offset: int) -> bytes:
        start = len(self._tail) - (self.count - offset)
        if start < 0:
            raise FormatError(f"archive end at offset {offset} is out of reach")
        return bytes(self._tail[start:])

    def close(self) -> None:
        # borrowed read side; nothing to flush or close below
        io.RawIOBase.close(self)


def _check_end(rec: _Recorder, offset: int, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
    """Require the two zero blocks of a tar end marker at ``offset`` and only NUL after them.

    tarfile's stream reader treats an unreadable header past the first member
    as the end of the archive; this turns that into an error.
    """
    data = rec.since(offset)
    while len(data) < _END_MARKER_SIZE:
        more = rec.read(_END_MARKER_SIZE - len(data))
        if not more:
            break
        data += more
    if data[:_END_MARKER_SIZE].strip(b"\0"):
        raise FormatError(f"corrupt archive: unreadable header at offset {offset}")
    if len(data) < _END_MARKER_SIZE:
        raise FormatError(f"archive truncated: end-of-archive marker missing at offset {offset}")
    rest = data[_END_MARKER_SIZE:]
    while True:
        if rest.strip(b"\0"):
            raise FormatError("unexpected data after the end of the archive")
        rest = rec.read(chunk_size)
        if not rest:
            return


def iter_archive(inp: BinaryIO) -> Iterator[Tuple[tarfile.TarInfo, Optional[BinaryIO]]]:
    """Yield (member, reader) in stream order; reader is None for non-files.

    Each reader must be consumed before advancing. The sequence ends only at
    a proper end-of-archive marker, after which ``inp`` is read to EOF and
    must hold nothing but NUL padding. Anything else raises
    :class:`FormatError`.
    """
    rec = _Recorder(inp)
    try:
        with tarfile.open(fileobj=rec, mode="r|") as tar:
            for member in tar:
                yield member, (tar.extractfile(member) if member.isreg() else None)
            _check_end(rec, tar.offset)
    except tarfile.TarError as exc:
        raise FormatError(f"corrupt archive: {exc}") from exc
    finally:
        rec.close()


def _safe_chmod(path: str, mode: int, summary: ExtractSummary) -> None:
    # permission bits only; setuid/setgid/sticky from an archive are dropped
    try:
        os.chmod(path, mode & 0o777)
    except OSError as exc:
        summary.warnings.append(f"failed to set mode on {path}: {exc}")


def extract_archive(
    inp: BinaryIO,
    dest: str,
    progress: Optional[ProgressFactory] = None,
) -> ExtractSummary:
    """Extract a tar stream under ``dest`` strictly in stream order.

    Directories are created when missing. Regular files are created or
    truncated and receive exactly the member's declared size, then get the
    archived mode. Symlinks, devices and the like are skipped. A later member
    with the same path overwrites an earlier one.
    """
    summary = ExtractSummary()
    try:
        for member, reader in iter_archive(inp):
            try:
                rel = norm_path(member.name)
            except ValueError as exc:
                raise FormatError(f"unsafe path in archive: {member.name!r}") from exc
            target = os.path.join(dest, rel) if rel else dest
            if member.isdir():
                if not os.path.isdir(target):
                    os.makedirs(target, exist_ok=True)
                summary.dirs += 1
                continue
            if reader is None:
                summary.skipped.append(rel or member.name)
                continue
            if not rel:
                raise FormatError(f"file entry without a name: {member.name!r}")
            os.makedirs(os.path.dirname(target) or ".", exist_ok=True)
            src: BinaryIO = reader
            if progress is not None:
                src = ProgressStream(reader, member.size, progress(rel, member.size))
            with src, open(target, "wb") as fh:
                shutil.copyfileobj(src, fh, DEFAULT_CHUNK_SIZE)
            _safe_chmod(target, member.mode, summary)
            summary.files += 1
            summary.bytes += member.size
    except tarfile.TarError as exc:
        raise FormatError(f"corrupt archive: {exc}") from exc
    return summary
